"""
DICEFAIR — RTP Simulation

Plays N rounds per target through the real round engine (SHA-512 outcomes,
nonce sequencing, payout rounding) and checks the measured return to player
against theory:
  • Measured RTP within ±tolerance points of 1 - edge(target)
  • Measured RTP above a floor
  • Win rate and win/loss streaks reported alongside

Usage:
    from tools.rtp_simulation import RtpSimulator
    sim = RtpSimulator()
    report = sim.run(targets=(50, 70, 90), n_rounds=10_000)
    print(report.summary())
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone

from config.settings import DiceConfig
from sim_engine.rmg import dice
from tools.nonce_sequencer import MemoryNonceSequencer
from tools.provably_fair import CommitmentEpoch, commitment_of, create_epoch
from tools.round_engine import RoundEngine

SIM_IDENTITY = "simulation@dicefair.local"


# ═══════════════════════════════════════════════════════════════
# Data Structures
# ═══════════════════════════════════════════════════════════════

@dataclass
class RtpResult:
    """Results from one simulated target."""
    target: int
    n_rounds: int
    wager: float
    total_wagered: float
    total_returned: float
    wins: int
    theoretical_rtp_pct: float
    tolerance_pct: float
    floor_pct: float
    streaks: dict = field(default_factory=dict)
    duration_seconds: float = 0.0

    @property
    def rtp_pct(self) -> float:
        return self.total_returned / self.total_wagered * 100 if self.total_wagered else 0.0

    @property
    def win_rate_pct(self) -> float:
        return self.wins / self.n_rounds * 100 if self.n_rounds else 0.0

    @property
    def rtp_delta_pct(self) -> float:
        return abs(self.rtp_pct - self.theoretical_rtp_pct)

    @property
    def rtp_pass(self) -> bool:
        return self.rtp_delta_pct <= self.tolerance_pct and self.rtp_pct >= self.floor_pct

    def summary(self) -> str:
        status = "✅ PASS" if self.rtp_pass else "❌ FAIL"
        return "\n".join([
            f"Target Number: {self.target}",
            f"  Actual RTP: {self.rtp_pct:.2f}%",
            f"  Theoretical RTP: {self.theoretical_rtp_pct:.2f}%",
            f"  Win Rate: {self.win_rate_pct:.2f}% (expected: {self.target}%)",
            f"  Max Win Streak: {self.streaks.get('max_win_streak', 0)}",
            f"  Max Loss Streak: {self.streaks.get('max_loss_streak', 0)}",
            f"  RTP Check: {status}",
        ])

    def to_dict(self) -> dict:
        return {
            "target": self.target,
            "n_rounds": self.n_rounds,
            "rtp_pct": round(self.rtp_pct, 2),
            "theoretical_rtp_pct": round(self.theoretical_rtp_pct, 2),
            "rtp_delta_pct": round(self.rtp_delta_pct, 2),
            "rtp_pass": self.rtp_pass,
            "win_rate_pct": round(self.win_rate_pct, 2),
            "expected_win_rate_pct": self.target,
            "streaks": self.streaks,
            "duration_s": round(self.duration_seconds, 2),
        }


@dataclass
class RtpReport:
    """Simulation report across several targets."""
    results: list[RtpResult] = field(default_factory=list)
    overall_pass: bool = True
    generated_at: str = ""

    def __post_init__(self):
        self.generated_at = datetime.now(timezone.utc).isoformat()

    def add(self, result: RtpResult):
        self.results.append(result)
        if not result.rtp_pass:
            self.overall_pass = False

    def summary(self) -> str:
        n = self.results[0].n_rounds if self.results else 0
        lines = [
            f"Monte Carlo Simulation Results ({n} games for each target):",
            "=" * 60,
        ]
        lines += [r.summary() for r in self.results]
        lines.append(f"Overall: {'✅ ALL PASS' if self.overall_pass else '❌ SOME FAILED'}")
        return "\n".join(lines)

    def to_json(self, indent: int = 2) -> str:
        return json.dumps({
            "generated_at": self.generated_at,
            "overall_pass": self.overall_pass,
            "targets": [r.to_dict() for r in self.results],
        }, indent=indent)


# ═══════════════════════════════════════════════════════════════
# Streak Analysis
# ═══════════════════════════════════════════════════════════════

def analyze_streaks(wins: list[bool]) -> dict:
    """Longest runs of consecutive wins and losses."""
    max_win = max_loss = cur_win = cur_loss = 0
    for won in wins:
        if won:
            cur_win += 1
            cur_loss = 0
            max_win = max(max_win, cur_win)
        else:
            cur_loss += 1
            cur_win = 0
            max_loss = max(max_loss, cur_loss)
    return {"max_win_streak": max_win, "max_loss_streak": max_loss}


# ═══════════════════════════════════════════════════════════════
# Simulator
# ═══════════════════════════════════════════════════════════════

class RtpSimulator:
    """Runs rounds through RoundEngine with a process-local nonce store."""

    def __init__(self, tolerance_pct: float = DiceConfig.RTP_TOLERANCE_PCT,
                 floor_pct: float = DiceConfig.RTP_FLOOR_PCT,
                 client_seed: str = "test_seed", server_seed: str = None):
        self.tolerance_pct = tolerance_pct
        self.floor_pct = floor_pct
        self.client_seed = client_seed
        self.server_seed = server_seed

    def _epoch(self) -> CommitmentEpoch:
        if self.server_seed:
            return CommitmentEpoch(secret=self.server_seed,
                                   commitment=commitment_of(self.server_seed))
        return create_epoch()

    def run_target(self, target: int, n_rounds: int = 10_000,
                   wager: float = 1.0) -> RtpResult:
        sequencer = MemoryNonceSequencer()
        sequencer.register(SIM_IDENTITY)
        engine = RoundEngine(self._epoch(), sequencer)

        t0 = time.time()
        returned = 0.0
        outcomes = []
        for _ in range(n_rounds):
            result = engine.play(SIM_IDENTITY, self.client_seed, target, wager)
            if not result.ok:
                raise ValueError(result.error.message)
            returned += result.outcome.payout
            outcomes.append(result.outcome.win)

        return RtpResult(
            target=target,
            n_rounds=n_rounds,
            wager=wager,
            total_wagered=wager * n_rounds,
            total_returned=returned,
            wins=sum(outcomes),
            theoretical_rtp_pct=dice.theoretical_rtp(target) * 100,
            tolerance_pct=self.tolerance_pct,
            floor_pct=self.floor_pct,
            streaks=analyze_streaks(outcomes),
            duration_seconds=time.time() - t0,
        )

    def run(self, targets=(50, 70, 90), n_rounds: int = 10_000,
            wager: float = 1.0) -> RtpReport:
        report = RtpReport()
        for target in targets:
            report.add(self.run_target(target, n_rounds, wager))
        return report
