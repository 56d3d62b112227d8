from __future__ import annotations
from typing import Callable, Iterable, List, NamedTuple, Optional, Tuple
import numpy as np

from bit_codec import BitsLike, MAX_BIT_LENGTH, as_bits, bits_to_str
from errors import ConfigurationError
from fcs import GeneratorKey, frame_remainder, prepare_key, write_fcs


class TrialOutcome(NamedTuple):
    corrupted: bool
    detected: bool


def check_ber(p: float) -> float:
    if not (0.0 <= p <= 1.0):
        raise ConfigurationError(f"BER must be in [0,1] (got {p}).")
    return float(p)

def check_frame(key: GeneratorKey, data_len: int, max_bits: int = MAX_BIT_LENGTH) -> int:
    """Validate data_len against the key; return the frame length."""
    if data_len < 1:
        raise ConfigurationError(f"data_len must be >= 1 (got {data_len}).")
    frame_len = data_len + key.width
    if frame_len > max_bits:
        raise ConfigurationError(
            f"Frame length {frame_len} exceeds the supported maximum of {max_bits}."
        )
    return frame_len


# -------------
# Binary Symmetric Channel
# -------------
class BSC:
    """Binary Symmetric Channel with crossover probability p.

    rng: injected numpy Generator; defaults to default_rng(seed).
    """
    def __init__(self, p: float, rng: Optional[np.random.Generator] = None,
                 seed: Optional[int] = None, verbose: bool = False):
        self.p = check_ber(p)
        self.verbose = verbose
        self.rng = rng if rng is not None else np.random.default_rng(seed)

    def transmit(self, bits: Iterable[int]) -> Tuple[np.ndarray, List[int]]:
        """Transmit bits through the channel.
        Returns:
            y: received bits (after potential flips)
            flips: list of indices where a flip occurred
        """
        x = as_bits(bits)
        y, flips = self.corrupt(x)
        if self.verbose:
            self._print_report(x, y, flips)
        return y, flips

    def corrupt(self, x: np.ndarray) -> Tuple[np.ndarray, List[int]]:
        """transmit() without input checks or report; x must be a 0/1 uint8 array."""
        flip = self.rng.random(len(x)) < self.p
        return x ^ flip.astype(np.uint8), np.flatnonzero(flip).tolist()

    def _print_report(self, x: np.ndarray, y: np.ndarray, flips: List[int]) -> None:
        print("=== BSC REPORT ===")
        print(f"p = {self.p}")
        print(f"n = {len(x)} bits")
        print("x (in): ", bits_to_str(x))
        print("y (out):", bits_to_str(y))
        print("flip idx:", flips)
        if flips:
            print(f"Total flips: {len(flips)} ({len(flips)/len(x):.2%})")
        else:
            print("Total flips: 0 (0.00%)")
        print("=" * 32)


# -------------
# One simulated transmission
# -------------
def _new_frame(key: GeneratorKey, data_len: int, rng: np.random.Generator) -> np.ndarray:
    frame = np.zeros(data_len + key.width, dtype=np.uint8)
    frame[:data_len] = rng.integers(0, 2, size=data_len, dtype=np.uint8)
    write_fcs(key, frame, data_len)
    return frame

def build_frame(key: BitsLike, data_len: int, rng: np.random.Generator,
                max_bits: int = MAX_BIT_LENGTH) -> np.ndarray:
    """Random data bits followed by their FCS (len = data_len + len(key) - 1)."""
    spec = prepare_key(key, max_bits)
    check_frame(spec, data_len, max_bits)
    return _new_frame(spec, data_len, rng)

def format_trial(frame: np.ndarray, data_len: int, outcome: TrialOutcome) -> str:
    return (f"MESSAGE: {bits_to_str(frame, 0, data_len)}"
            f"\tFCS: {bits_to_str(frame, data_len)}"
            f"\tERROR: {'TRUE' if outcome.detected else 'FALSE'}")

def simulate_trial(key: GeneratorKey, data_len: int, channel: BSC,
                   sink: Optional[Callable[[str], None]] = None) -> TrialOutcome:
    """
    One transmission with a prepared key and channel; nothing is re-validated.

    Draws data_len bits from channel.rng for the data, then one uniform per
    frame bit for the noise. corrupted = at least one bit flipped;
    detected = the received frame leaves a nonzero remainder.
    """
    frame = _new_frame(key, data_len, channel.rng)
    received, flips = channel.corrupt(frame)
    outcome = TrialOutcome(
        corrupted=bool(flips),
        detected=frame_remainder(key, received) != 0,
    )
    if sink is not None:
        sink(format_trial(frame, data_len, outcome))
    return outcome

def run_trial(key: BitsLike, data_len: int, ber: float, rng: np.random.Generator,
              sink: Optional[Callable[[str], None]] = None,
              max_bits: int = MAX_BIT_LENGTH) -> TrialOutcome:
    """Validate the configuration, then run simulate_trial once through BSC(ber, rng)."""
    spec = prepare_key(key, max_bits)
    check_frame(spec, data_len, max_bits)
    return simulate_trial(spec, data_len, BSC(ber, rng=rng), sink)
