from __future__ import annotations
from typing import NamedTuple
import numpy as np
import sympy as sp

from bit_codec import BitsLike, MAX_BIT_LENGTH, as_bits, bits_to_int, int_to_bits, pack_bits
from errors import ConfigurationError

# =========================
# GF(2) polynomial helpers
# =========================

def poly_mod(dividend: int, divisor: int) -> int:
    """Remainder of polynomial long division over GF(2) (ints as bitmasks, MSB = highest power)."""
    if divisor == 0:
        raise ConfigurationError("Division by zero polynomial: the divisor has no set bits.")
    r, d = dividend, divisor.bit_length()
    # r == 0 has no degree, the loop must stop there
    while r and r.bit_length() >= d:
        r ^= divisor << (r.bit_length() - d)
    return r

# ==============================================
# Frame Check Sequence
#   - divisor (key) of key_len bits -> FCS of key_len-1 bits
#   - FCS region sits right after the data bits
# ==============================================

class GeneratorKey(NamedTuple):
    """A validated divisor: its bits, integer value, FCS width and remainder mask."""
    bits: np.ndarray
    value: int
    width: int
    mask: int


def check_divisor(divisor: BitsLike, max_bits: int = MAX_BIT_LENGTH) -> np.ndarray:
    key = as_bits(divisor, name="divisor")
    if len(key) < 2:
        raise ConfigurationError(f"Divisor must have at least 2 bits (got {len(key)}).")
    if len(key) > max_bits:
        raise ConfigurationError(f"Divisor length {len(key)} exceeds the supported maximum of {max_bits}.")
    if not key.any():
        raise ConfigurationError("Zero-valued divisor is an invalid generator polynomial.")
    return key

def prepare_key(divisor: BitsLike, max_bits: int = MAX_BIT_LENGTH) -> GeneratorKey:
    key = check_divisor(divisor, max_bits)
    width = len(key) - 1
    return GeneratorKey(bits=key, value=pack_bits(key), width=width, mask=(1 << width) - 1)

def fcs_width(divisor: BitsLike) -> int:
    return len(as_bits(divisor, name="divisor")) - 1

def compute_remainder(divisor: BitsLike, dividend: BitsLike, max_bits: int = MAX_BIT_LENGTH) -> int:
    """
    CRC remainder of dividend modulo divisor over GF(2).

    The result is masked to fcs_width(divisor) bits, i.e. r mod 2^(key_len-1).
    Raises ConfigurationError for a zero or too-short divisor, or for a
    dividend longer than max_bits.
    """
    key = prepare_key(divisor, max_bits)
    return poly_mod(bits_to_int(dividend, max_bits), key.value) & key.mask

def frame_remainder(key: GeneratorKey, frame: np.ndarray) -> int:
    """compute_remainder for a prepared key and a uint8 frame; nothing is re-checked."""
    return poly_mod(pack_bits(frame), key.value) & key.mask

def write_fcs(key: GeneratorKey, frame: np.ndarray, data_len: int) -> int:
    frame[data_len:] = 0
    fcs = frame_remainder(key, frame)
    frame[data_len:] = int_to_bits(fcs, key.width)
    return fcs

def append_fcs(frame: np.ndarray, data_len: int, divisor: BitsLike,
               max_bits: int = MAX_BIT_LENGTH) -> int:
    """
    Zero the FCS region of frame, compute the remainder over the whole frame
    and write it MSB-first into frame[data_len:]. Modifies frame in place.
    """
    key = prepare_key(divisor, max_bits)
    if len(frame) != data_len + key.width:
        raise ValueError(f"Frame length {len(frame)} != data_len + {key.width}.")
    if len(frame) > max_bits:
        raise ConfigurationError(f"Frame length {len(frame)} exceeds the supported maximum of {max_bits}.")
    return write_fcs(key, frame, data_len)

def generator_polynomial(divisor: BitsLike):
    """Generator as a sympy expression in x, e.g. 110101 -> x**5 + x**4 + x**2 + 1."""
    x = sp.Symbol("x")
    coeffs = [int(b) for b in as_bits(divisor, name="divisor")]
    return sp.Poly(coeffs, x, modulus=2).as_expr()
