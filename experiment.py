from __future__ import annotations
from concurrent.futures import ProcessPoolExecutor
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Tuple
import logging
import math

import numpy as np
from tqdm import tqdm

from bit_codec import BitsLike, MAX_BIT_LENGTH, bits_to_str
from channel import BSC, TrialOutcome, check_ber, check_frame, simulate_trial
from errors import ConfigurationError
from fcs import prepare_key

logger = logging.getLogger(__name__)


def _ratio(num: int, den: int) -> float:
    return num / den if den else math.nan


# ===================================================
# Aggregate counters
# ===================================================
@dataclass
class ExperimentStats:
    trial_count: int = 0
    corrupted_count: int = 0
    detected_count: int = 0

    def record(self, outcome: TrialOutcome) -> None:
        if outcome.detected and not outcome.corrupted:
            # an untouched frame always divides to 0
            raise RuntimeError("Error detected on a frame that was not corrupted.")
        self.trial_count += 1
        self.corrupted_count += int(outcome.corrupted)
        self.detected_count += int(outcome.detected)

    def merge(self, other: "ExperimentStats") -> "ExperimentStats":
        return ExperimentStats(
            trial_count=self.trial_count + other.trial_count,
            corrupted_count=self.corrupted_count + other.corrupted_count,
            detected_count=self.detected_count + other.detected_count,
        )

    __add__ = merge

    @property
    def undetected_count(self) -> int:
        return self.corrupted_count - self.detected_count

    @property
    def corruption_rate(self) -> float:
        return _ratio(self.corrupted_count, self.trial_count)

    @property
    def detection_rate(self) -> float:
        """Share of corrupted frames the FCS caught (nan if none were corrupted)."""
        return _ratio(self.detected_count, self.corrupted_count)

    @property
    def miss_rate(self) -> float:
        return _ratio(self.undetected_count, self.corrupted_count)

    @property
    def overall_detection_rate(self) -> float:
        return _ratio(self.detected_count, self.trial_count)

    @property
    def overall_miss_rate(self) -> float:
        return _ratio(self.undetected_count, self.trial_count)


def expected_corruption_rate(frame_len: int, ber: float) -> float:
    """P(at least one of frame_len bits flips) under independent flips."""
    return 1.0 - (1.0 - ber) ** frame_len


# ===================================================
# Driver
# ===================================================
class CrcExperiment:
    """
    Repeated CRC trials over a binary symmetric channel.

    The whole configuration is checked here, so a bad key, BER or length
    fails before any trial runs.
    """
    def __init__(self, key: BitsLike, data_len: int, ber: float,
                 max_bits: int = MAX_BIT_LENGTH):
        self.key = prepare_key(key, max_bits)
        self.frame_len = check_frame(self.key, data_len, max_bits)
        self.data_len = int(data_len)
        self.ber = check_ber(ber)
        self.max_bits = max_bits

    def run(self, trial_count: int, rng: Optional[np.random.Generator] = None,
            seed: Optional[int] = None, progress: bool = False,
            sink: Optional[Callable[[str], None]] = None) -> ExperimentStats:
        _check_trials(trial_count)
        rng = rng if rng is not None else np.random.default_rng(seed)
        logger.info(f"Running {trial_count} trials: P={bits_to_str(self.key.bits)}, "
                    f"frame={self.frame_len} bits, BER={self.ber}")
        channel = BSC(self.ber, rng=rng)
        stats = ExperimentStats()
        for _ in tqdm(range(trial_count), desc=f"BER={self.ber:g}", unit="trial",
                      leave=False, disable=not progress):
            stats.record(simulate_trial(self.key, self.data_len, channel, sink))
        logger.info(f"Done: {stats.corrupted_count} corrupted, {stats.detected_count} detected")
        return stats

    def run_sharded(self, trial_count: int, workers: int,
                    seed: Optional[int] = None) -> ExperimentStats:
        """
        Split trial_count over workers processes, each with its own stream
        from SeedSequence(seed).spawn(workers), and sum the per-shard counters.
        """
        _check_trials(trial_count)
        if workers < 1:
            raise ConfigurationError(f"workers must be >= 1 (got {workers}).")
        jobs = [(self, n, child) for n, child in
                zip(shard_sizes(trial_count, workers), np.random.SeedSequence(seed).spawn(workers))
                if n > 0]
        if len(jobs) == 1:
            return _run_shard(jobs[0])
        logger.debug(f"Dispatching {len(jobs)} shards: {[n for _, n, _ in jobs]}")
        total = ExperimentStats()
        with ProcessPoolExecutor(max_workers=len(jobs)) as pool:
            for stats in pool.map(_run_shard, jobs):
                total = total.merge(stats)
        return total


def _check_trials(trial_count: int) -> None:
    if trial_count < 1:
        raise ConfigurationError(f"trial_count must be >= 1 (got {trial_count}).")

def shard_sizes(trial_count: int, workers: int) -> List[int]:
    base, extra = divmod(trial_count, workers)
    return [base + (1 if i < extra else 0) for i in range(workers)]

def _run_shard(job: Tuple[CrcExperiment, int, np.random.SeedSequence]) -> ExperimentStats:
    experiment, n, seed_seq = job
    return experiment.run(n, rng=np.random.default_rng(seed_seq))


def run_experiment(trial_count: int, key: BitsLike, data_len: int, ber: float,
                   seed: Optional[int] = None, workers: int = 1, progress: bool = False,
                   sink: Optional[Callable[[str], None]] = None) -> ExperimentStats:
    experiment = CrcExperiment(key, data_len, ber)
    if workers > 1:
        return experiment.run_sharded(trial_count, workers, seed=seed)
    return experiment.run(trial_count, seed=seed, progress=progress, sink=sink)

def sweep_ber(ber_values: Iterable[float], trial_count: int, key: BitsLike, data_len: int,
              seed: Optional[int] = None, progress: bool = False) -> List[Tuple[float, ExperimentStats]]:
    """One run per BER, each on its own child stream of SeedSequence(seed)."""
    ber_values = list(ber_values)
    experiments = [CrcExperiment(key, data_len, ber) for ber in ber_values]
    _check_trials(trial_count)
    children = np.random.SeedSequence(seed).spawn(len(experiments))
    results = []
    for experiment, child in zip(experiments, children):
        stats = experiment.run(trial_count, rng=np.random.default_rng(child), progress=progress)
        results.append((experiment.ber, stats))
    return results


# ===================================================
# Summary record
# ===================================================
SUMMARY_FIELDS = [
    "trial_count", "divisor", "frame_length", "detected_errors", "real_errors",
    "undetected_errors", "corruption_pct", "detection_success_pct", "miss_pct",
    "overall_detection_pct", "overall_miss_pct",
]

def summarize(stats: ExperimentStats, key: BitsLike, data_len: int) -> Dict[str, object]:
    key_str = bits_to_str(key)
    return {
        "trial_count": stats.trial_count,
        "divisor": key_str,
        "frame_length": data_len + len(key_str) - 1,
        "detected_errors": stats.detected_count,
        "real_errors": stats.corrupted_count,
        "undetected_errors": stats.undetected_count,
        "corruption_pct": stats.corruption_rate * 100.0,
        "detection_success_pct": stats.detection_rate * 100.0,
        "miss_pct": stats.miss_rate * 100.0,
        "overall_detection_pct": stats.overall_detection_rate * 100.0,
        "overall_miss_pct": stats.overall_miss_rate * 100.0,
    }
