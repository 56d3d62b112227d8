import re

import numpy as np
import pytest

from bit_codec import bits_to_str
from channel import BSC, TrialOutcome, build_frame, format_trial, run_trial, simulate_trial
from errors import ConfigurationError
from fcs import compute_remainder, prepare_key


class TestBSC:
    @pytest.mark.parametrize("p", [-0.1, 1.5, float("nan")])
    def test_invalid_probability(self, p):
        with pytest.raises(ConfigurationError):
            BSC(p, seed=1)

    def test_p_zero_is_lossless(self, rng):
        x = rng.integers(0, 2, size=64)
        y, flips = BSC(0.0, rng=rng).transmit(x)
        assert flips == []
        assert np.array_equal(y, x)

    def test_p_one_flips_everything(self, rng):
        x = rng.integers(0, 2, size=64)
        y, flips = BSC(1.0, rng=rng).transmit(x)
        assert flips == list(range(64))
        assert np.array_equal(y, 1 - x)

    def test_flip_indices_match_difference(self):
        x = np.zeros(500, dtype=np.uint8)
        y, flips = BSC(0.3, seed=9).transmit(x)
        assert flips == np.flatnonzero(y).tolist()
        assert 0 < len(flips) < 500

    def test_rejects_non_binary_input(self):
        with pytest.raises(ValueError):
            BSC(0.1, seed=1).transmit([0, 1, 2])

    def test_verbose_report(self, capsys):
        BSC(1.0, seed=1, verbose=True).transmit([0, 1, 1])
        out = capsys.readouterr().out
        assert "=== BSC REPORT ===" in out
        assert "y (out): 100" in out
        assert "Total flips: 3 (100.00%)" in out

    def test_quiet_by_default(self, capsys):
        BSC(0.5, seed=1).transmit([0, 1, 1])
        assert capsys.readouterr().out == ""


class TestBuildFrame:
    def test_layout_and_zero_remainder(self, rng, reference_key):
        frame = build_frame(reference_key, 20, rng)
        assert len(frame) == 25
        assert frame.dtype == np.uint8
        assert compute_remainder(reference_key, frame) == 0

    def test_same_seed_same_frame(self, reference_key):
        a = build_frame(reference_key, 20, np.random.default_rng(5))
        b = build_frame(reference_key, 20, np.random.default_rng(5))
        assert np.array_equal(a, b)

    def test_bad_data_len(self, rng, reference_key):
        with pytest.raises(ConfigurationError):
            build_frame(reference_key, 0, rng)


class TestRunTrial:
    def test_noiseless_channel(self, rng, reference_key):
        for _ in range(200):
            assert run_trial(reference_key, 20, 0.0, rng) == TrialOutcome(False, False)

    def test_parity_key_detects_forced_single_flip(self, scripted_rng):
        # key 11, 4 data bits -> 5-bit frame; only the third bit draws below BER
        rng = scripted_rng([1, 0, 1, 1], [0.9, 0.9, 0.0, 0.9, 0.9])
        outcome = run_trial("11", 4, 0.5, rng)
        assert outcome == TrialOutcome(corrupted=True, detected=True)

    def test_parity_key_misses_double_flip(self, scripted_rng):
        rng = scripted_rng([1, 0, 1, 1], [0.0, 0.9, 0.0, 0.9, 0.9])
        outcome = run_trial("11", 4, 0.5, rng)
        assert outcome == TrialOutcome(corrupted=True, detected=False)

    def test_draw_order(self, scripted_rng, reference_key):
        rng = scripted_rng([0] * 20, [0.5] * 25)
        run_trial(reference_key, 20, 0.001, rng)
        assert rng.calls == [("integers", 20), ("random", 25)]

    def test_sink_gets_message_line(self, scripted_rng):
        lines = []
        rng = scripted_rng([1, 0, 1, 1], [0.9] * 5)
        run_trial("11", 4, 0.5, rng, sink=lines.append)
        # 1011 has odd weight, so the parity FCS is 1
        assert lines == ["MESSAGE: 1011\tFCS: 1\tERROR: FALSE"]

    @pytest.mark.parametrize("ber", [-0.5, 2.0])
    def test_invalid_ber(self, rng, ber, reference_key):
        with pytest.raises(ConfigurationError):
            run_trial(reference_key, 20, ber, rng)

    def test_zero_divisor(self, rng):
        with pytest.raises(ConfigurationError):
            run_trial("000000", 20, 0.1, rng)


def test_format_trial():
    frame = np.array([1, 1, 0, 0, 1, 0, 1], dtype=np.uint8)
    line = format_trial(frame, 4, TrialOutcome(True, True))
    assert re.fullmatch(r"MESSAGE: [01]{4}\tFCS: [01]{3}\tERROR: (TRUE|FALSE)", line)
    assert line == f"MESSAGE: {bits_to_str(frame, 0, 4)}\tFCS: 101\tERROR: TRUE"


class TestSimulateTrial:
    def test_same_stream_as_run_trial(self, reference_key):
        key = prepare_key(reference_key)
        channel = BSC(0.05, rng=np.random.default_rng(3))
        fast = [simulate_trial(key, 20, channel) for _ in range(300)]
        rng = np.random.default_rng(3)
        checked = [run_trial(reference_key, 20, 0.05, rng) for _ in range(300)]
        assert fast == checked
        assert any(o.corrupted for o in fast)

    def test_forced_single_flip(self, scripted_rng):
        channel = BSC(0.5, rng=scripted_rng([1, 0, 1, 1], [0.9, 0.0, 0.9, 0.9, 0.9]))
        assert simulate_trial(prepare_key("11"), 4, channel) == TrialOutcome(True, True)

    def test_corrupt_matches_transmit(self):
        x = np.array([0, 1, 1, 0, 1], dtype=np.uint8)
        y1, f1 = BSC(0.4, seed=8).corrupt(x)
        y2, f2 = BSC(0.4, seed=8).transmit(x)
        assert np.array_equal(y1, y2)
        assert f1 == f2
