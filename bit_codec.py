from __future__ import annotations
from typing import Iterable, Optional, Union
import numpy as np

from errors import ConfigurationError

BitsLike = Union[str, Iterable[int], np.ndarray]

# Longest sequence bits_to_int converts; longer input is a ConfigurationError.
MAX_BIT_LENGTH = 4096


def as_bits(bits: BitsLike, name: str = "bits") -> np.ndarray:
    """'0101' / [0,1,0,1] / ndarray -> uint8 array, MSB first."""
    if isinstance(bits, str):
        if any(c not in "01" for c in bits):
            raise ValueError(f"{name} must contain only '0' and '1' (got {bits!r}).")
        return np.fromiter((c == "1" for c in bits), dtype=np.uint8, count=len(bits))
    arr = np.asarray(list(bits) if not isinstance(bits, np.ndarray) else bits)
    if arr.ndim != 1:
        raise ValueError(f"{name} must be one-dimensional.")
    if arr.size and not np.isin(arr, (0, 1)).all():
        raise ValueError(f"{name} must be 0/1.")
    return arr.astype(np.uint8, copy=False)


def bits_to_int(bits: BitsLike, max_bits: int = MAX_BIT_LENGTH) -> int:
    """Big-endian value of a bit sequence. Empty or all-zero -> 0."""
    arr = as_bits(bits)
    if len(arr) > max_bits:
        raise ConfigurationError(
            f"Bit sequence of length {len(arr)} exceeds the supported maximum of {max_bits}."
        )
    return pack_bits(arr)


def pack_bits(arr: np.ndarray) -> int:
    """bits_to_int for an already-checked uint8 array (no validation)."""
    pad = -len(arr) % 8
    return int.from_bytes(np.packbits(arr).tobytes(), "big") >> pad


def bits_to_str(bits: BitsLike, start: int = 0, end: Optional[int] = None) -> str:
    arr = as_bits(bits)
    return "".join("1" if b else "0" for b in arr[start:end])


def int_to_bits(value: int, width: int) -> np.ndarray:
    """MSB-first expansion of value, left-padded with zeros to width."""
    if value < 0:
        raise ValueError("value must be non-negative.")
    if width < 0 or value >> width:
        raise ValueError(f"{value} does not fit in {width} bits.")
    return np.array([(value >> (width - 1 - i)) & 1 for i in range(width)], dtype=np.uint8)
