#!/usr/bin/env python3
"""
Monte Carlo CRC detection experiment over a binary symmetric channel.

Sends NUM_TRIALS random frames of DATA_LEN data bits (+ FCS) through a
channel that flips each bit with probability BER and reports how many
corrupted frames the FCS caught.
"""
from __future__ import annotations
from contextlib import ExitStack
from pathlib import Path
from typing import Dict, List, Optional
import argparse
import csv
import logging
import math
import sys

from bit_codec import as_bits, bits_to_str
from errors import ConfigurationError
from experiment import (
    SUMMARY_FIELDS,
    CrcExperiment,
    ExperimentStats,
    expected_corruption_rate,
    summarize,
    sweep_ber,
)
from fcs import generator_polynomial

# ===================================================
# Config (reference scenario)
# ===================================================
DATA_LEN = 20           # data bits per frame
KEY = "110101"          # generator polynomial x^5 + x^4 + x^2 + 1
NUM_TRIALS = 10_000_000
BER = 0.001

CSV_FIELDS = ["ber"] + SUMMARY_FIELDS

logger = logging.getLogger("run_crc_experiment")


def _pct(v: float) -> str:
    return "undefined" if math.isnan(v) else f"{v:.6f}"

def print_summary(stats: ExperimentStats, key: str, data_len: int, ber: float) -> None:
    s = summarize(stats, key, data_len)
    print(f"--- Number of transmitted packets: {s['trial_count']} | P = {s['divisor']} "
          f"({generator_polynomial(key)}) | Packet Length = {s['frame_length']}")
    print(f"Errors detected: {s['detected_errors']}")
    print(f"Errors produced: {s['real_errors']}")
    print(f"Rate of produced errors totally: (%) {_pct(s['corruption_pct'])}"
          f"  [expected {expected_corruption_rate(s['frame_length'], ber) * 100.0:.6f}]")
    print(f"Success rate of detection: (%) {_pct(s['detection_success_pct'])}")
    print(f"Miss rate of detection: (%) {_pct(s['miss_pct'])}")
    print(f"Rate of detected errors totally: (%) {_pct(s['overall_detection_pct'])}")
    print(f"Rate of non-detected errors totally: (%) {_pct(s['overall_miss_pct'])}")
    print("---")

def append_csv(filename: str, rows: List[Dict[str, object]]) -> None:
    """Append summary rows, writing the header only for a new file."""
    file = Path(filename)
    new_file = not file.exists() or file.stat().st_size == 0
    with file.open("a", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=CSV_FIELDS)
        if new_file:
            writer.writeheader()
        writer.writerows(rows)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=__doc__.strip().splitlines()[0])
    parser.add_argument("--trials", type=int, default=NUM_TRIALS, help="number of frames to send")
    parser.add_argument("--data-len", type=int, default=DATA_LEN, help="data bits per frame")
    parser.add_argument("--key", default=KEY, help="generator polynomial as a bit string")
    parser.add_argument("--ber", type=float, default=BER, help="bit error rate in [0,1]")
    parser.add_argument("--sweep", type=float, nargs="+", metavar="BER",
                        help="run once per BER value instead of --ber")
    parser.add_argument("--seed", type=int, default=None, help="RNG seed (blank for fresh entropy)")
    parser.add_argument("--workers", type=int, default=1, help="processes to shard trials over")
    parser.add_argument("--csv", default=None, help="append summary rows to this CSV file")
    parser.add_argument("--messages", default=None,
                        help="write one MESSAGE/FCS/ERROR line per trial to this file")
    parser.add_argument("--no-progress", action="store_true", help="hide the progress bar")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    return parser

def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        key = bits_to_str(as_bits(args.key, name="key"))
        if args.messages and (args.workers > 1 or args.sweep):
            raise ConfigurationError("--messages needs a single in-process run (no --workers/--sweep).")
        if args.sweep:
            results = sweep_ber(args.sweep, args.trials, key, args.data_len,
                                seed=args.seed, progress=not args.no_progress)
        else:
            experiment = CrcExperiment(key, args.data_len, args.ber)
            with ExitStack() as stack:
                sink = None
                if args.messages:
                    out = stack.enter_context(open(args.messages, "w"))
                    sink = lambda line: out.write(line + "\n")
                if args.workers > 1:
                    stats = experiment.run_sharded(args.trials, args.workers, seed=args.seed)
                else:
                    stats = experiment.run(args.trials, seed=args.seed,
                                           progress=not args.no_progress, sink=sink)
            results = [(experiment.ber, stats)]
    except ValueError as e:  # ConfigurationError included
        parser.error(str(e))

    for ber, stats in results:
        print_summary(stats, key, args.data_len, ber)

    if args.csv:
        append_csv(args.csv, [dict(ber=ber, **summarize(stats, key, args.data_len))
                              for ber, stats in results])
        logger.info(f"Summary saved to {args.csv}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
