"""
DICEFAIR — Dice Platform

Server-side orchestration around the round engine:

  1. Commitment epochs: publish a seed hash, play, reveal, rotate
  2. Player registry: nonce counters keyed by player identity
  3. Round ledger: every result stored for later audit
  4. Rotation policy: every round result discloses its seed, so that seed
     is revealed and replaced before the result is handed back

Usage:
    from tools.dice_platform import DicePlatform
    platform = DicePlatform(db_path="dice.db")
    platform.register("alice@example.com")
    print(platform.commitment())                 # publish before play
    result = platform.play("alice@example.com", "my-seed", 50, 10.0)
    platform.audit_round(result.outcome.round_id)
"""

from __future__ import annotations

import logging
import threading

from config.database import init_db
from config.settings import DiceConfig
from tools.nonce_sequencer import NonceSequencer, SqlNonceSequencer
from tools.provably_fair import create_epoch, verification_data
from tools.round_engine import PlayResult, RoundEngine
from tools.round_ledger import RoundLedger

logger = logging.getLogger("dicefair.platform")


class DicePlatform:
    """Owns the live epoch and hands rounds to a RoundEngine bound to it."""

    def __init__(self, db_path: str = None,
                 seed_bytes: int = DiceConfig.SEED_BYTES,
                 sequencer: NonceSequencer = None,
                 ledger: RoundLedger = None):
        init_db(db_path)
        self.seed_bytes = seed_bytes
        self.sequencer = sequencer or SqlNonceSequencer(db_path)
        self.ledger = ledger or RoundLedger(db_path)
        self._lock = threading.Lock()
        self._start_epoch()

    def _start_epoch(self):
        epoch = create_epoch(self.seed_bytes)
        self.ledger.save_epoch(epoch)
        self._engine = RoundEngine(epoch, self.sequencer, self.ledger)
        logger.info(f"Epoch {epoch.epoch_id} started, commitment {epoch.commitment}")

    @property
    def epoch(self):
        return self._engine.epoch

    # ─── Player-facing ────────────────────────────────────────

    def commitment(self) -> dict:
        """Current seed commitment, safe to publish."""
        return self.epoch.public_view()

    def register(self, identity: str) -> bool:
        return self.sequencer.register(identity)

    def play(self, identity: str, player_value: str | None,
             target: int, wager: float) -> PlayResult:
        with self._lock:
            engine = self._engine
        result = engine.play(identity, player_value, target, wager)
        if result.ok:
            self._retire(engine)
        return result

    def verify(self, server_seed: str, client_seed: str, nonce: int,
               number: int, commitment: str = "") -> dict:
        """Stateless check of revealed inputs against a claimed number."""
        data = verification_data(server_seed, client_seed, nonce, number,
                                 commitment=commitment)
        data["verified"] = data["number_matches"] and data.get("commitment_matches", True)
        return data

    # ─── Rotation ─────────────────────────────────────────────

    def _retire(self, engine: RoundEngine):
        """Rotate away from an epoch whose seed a round result just disclosed."""
        with self._lock:
            if engine is self._engine:
                self._rotate_locked()

    def rotate(self) -> dict:
        """Reveal the live seed and publish a new commitment."""
        with self._lock:
            return self._rotate_locked()

    def _rotate_locked(self) -> dict:
        old = self._engine.epoch
        revealed = self.ledger.reveal_epoch(old.epoch_id)
        self._start_epoch()
        return {"revealed": revealed, "next": self.epoch.public_view()}

    # ─── Audit ────────────────────────────────────────────────

    def audit_round(self, round_id: str) -> dict:
        return self.ledger.audit_round(round_id)

    def player_stats(self, identity: str) -> dict:
        stats = self.ledger.player_stats(identity)
        stats["last_nonce"] = self.sequencer.lookup(identity)
        return stats
