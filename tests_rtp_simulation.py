#!/usr/bin/env python3
"""
Tests for the RTP simulation and audit CLI

Validates:
1. Hash-based rounds return close to 1 - edge for low, mid and high targets
2. Win rate tracks the target
3. Streak analysis
4. Pass/fail against tolerance and floor
5. CLI subcommands exit 0 on success and 1 on a failed check
"""

import json
import sys
import unittest
from pathlib import Path

# ── Ensure project root is on sys.path ──
PROJECT_ROOT = Path(__file__).parent
sys.path.insert(0, str(PROJECT_ROOT))

from tools import dice_cli
from tools.rtp_simulation import RtpResult, RtpSimulator, analyze_streaks

FIXED_SECRET = "a" * 64


class TestRtpSimulation(unittest.TestCase):

    @classmethod
    def setUpClass(cls):
        cls.report = RtpSimulator(server_seed=FIXED_SECRET).run(
            targets=(50, 70, 90), n_rounds=20_000)

    def test_all_targets_pass(self):
        self.assertTrue(self.report.overall_pass, self.report.summary())
        self.assertEqual([r.target for r in self.report.results], [50, 70, 90])

    def test_rtp_close_to_theory(self):
        for r in self.report.results:
            self.assertAlmostEqual(r.rtp_pct, r.theoretical_rtp_pct, delta=6.0)
            self.assertGreater(r.rtp_pct, 80.0)

    def test_win_rate_tracks_target(self):
        for r in self.report.results:
            self.assertAlmostEqual(r.win_rate_pct, r.target, delta=2.0)

    def test_theoretical_rtp(self):
        by_target = {r.target: r for r in self.report.results}
        self.assertAlmostEqual(by_target[50].theoretical_rtp_pct, 99.0)
        self.assertAlmostEqual(by_target[70].theoretical_rtp_pct, 95.0)
        self.assertAlmostEqual(by_target[90].theoretical_rtp_pct, 91.0)

    def test_streaks_reported(self):
        for r in self.report.results:
            self.assertGreaterEqual(r.streaks["max_win_streak"], 1)
            self.assertGreaterEqual(r.streaks["max_loss_streak"], 1)

    def test_report_json(self):
        data = json.loads(self.report.to_json())
        self.assertTrue(data["overall_pass"])
        self.assertEqual(len(data["targets"]), 3)
        self.assertIn("Target Number: 50", self.report.summary())

    def test_fixed_seed_is_reproducible(self):
        a = RtpSimulator(server_seed=FIXED_SECRET).run_target(60, n_rounds=500)
        b = RtpSimulator(server_seed=FIXED_SECRET).run_target(60, n_rounds=500)
        self.assertEqual(a.total_returned, b.total_returned)
        self.assertEqual(a.wins, b.wins)

    def test_invalid_target(self):
        with self.assertRaises(ValueError):
            RtpSimulator().run_target(0, n_rounds=10)


class TestRtpChecks(unittest.TestCase):

    def _result(self, returned, theory=99.0):
        return RtpResult(target=50, n_rounds=100, wager=1.0, total_wagered=100.0,
                         total_returned=returned, wins=50, theoretical_rtp_pct=theory,
                         tolerance_pct=6.0, floor_pct=80.0)

    def test_within_tolerance(self):
        self.assertTrue(self._result(95.0).rtp_pass)
        self.assertTrue(self._result(104.0).rtp_pass)

    def test_outside_tolerance(self):
        self.assertFalse(self._result(92.0).rtp_pass)
        self.assertFalse(self._result(106.0).rtp_pass)

    def test_below_floor(self):
        self.assertFalse(self._result(79.0, theory=82.0).rtp_pass)

    def test_streaks(self):
        s = analyze_streaks([True, True, False, False, False, True])
        self.assertEqual(s, {"max_win_streak": 2, "max_loss_streak": 3})
        self.assertEqual(analyze_streaks([]), {"max_win_streak": 0, "max_loss_streak": 0})


class TestDiceCli(unittest.TestCase):

    def test_verify_match(self):
        code = dice_cli.main([
            "verify", "--server-seed", FIXED_SECRET, "--client-seed", "test_seed",
            "--nonce", "1", "--number", "75",
            "--commitment", "ffe054fe7ae0cb6dc65c3af9b61d5209f439851db43d0ba5997337df154668eb",
        ])
        self.assertEqual(code, 0)

    def test_verify_mismatch(self):
        code = dice_cli.main([
            "verify", "--server-seed", FIXED_SECRET, "--client-seed", "test_seed",
            "--nonce", "2", "--number", "75",
        ])
        self.assertEqual(code, 1)

    def test_table(self):
        self.assertEqual(dice_cli.main(["table", "--targets", "50", "90", "99"]), 0)

    def test_simulate_model(self):
        self.assertEqual(dice_cli.main(
            ["simulate", "--engine", "model", "--rounds", "2000", "--targets", "50"]), 0)

    def test_simulate_hash(self):
        self.assertEqual(dice_cli.main(
            ["simulate", "--rounds", "3000", "--targets", "90", "--json"]), 0)

    def test_command_required(self):
        with self.assertRaises(SystemExit):
            dice_cli.main([])


if __name__ == "__main__":
    unittest.main(verbosity=2)
