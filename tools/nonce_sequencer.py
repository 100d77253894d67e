"""
DICEFAIR — Nonce Sequencer

Per-player round counter. Each round consumes ``last + 1`` and the new value
is persisted before the outcome is derived, so a counter can never be
replayed against the same server seed.

Two stores:
    SqlNonceSequencer     durable, SQLite or PostgreSQL via config.database
    MemoryNonceSequencer  process-local, for simulations and tests

Usage:
    from tools.nonce_sequencer import SqlNonceSequencer
    seq = SqlNonceSequencer("dice.db")
    seq.register("alice@example.com")
    seq.next_for("alice@example.com")   # 1
    seq.next_for("alice@example.com")   # 2
"""

from __future__ import annotations

import logging
import random
import threading
import time
from abc import ABC, abstractmethod

from config.database import connect, is_contention_error
from config.settings import DiceConfig
from tools.errors import SequencerContention, UnknownIdentity

logger = logging.getLogger("dicefair.nonce")


class NonceSequencer(ABC):
    """Durable monotonic counter keyed by player identity."""

    @abstractmethod
    def register(self, identity: str) -> bool:
        """Create a counter at 0. Returns False if the identity already exists."""
        ...

    @abstractmethod
    def lookup(self, identity: str) -> int:
        """Last consumed counter. Raises UnknownIdentity."""
        ...

    @abstractmethod
    def next_for(self, identity: str) -> int:
        """Atomically consume and return the next counter. Raises UnknownIdentity."""
        ...


# ═══════════════════════════════════════════════════════════════
# In-memory store
# ═══════════════════════════════════════════════════════════════

class MemoryNonceSequencer(NonceSequencer):
    """Thread-safe counters with one lock per identity."""

    def __init__(self):
        self._counters: dict[str, int] = {}
        self._locks: dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def register(self, identity: str) -> bool:
        with self._registry_lock:
            if identity in self._counters:
                return False
            self._counters[identity] = 0
            self._locks[identity] = threading.Lock()
            return True

    def lookup(self, identity: str) -> int:
        try:
            return self._counters[identity]
        except KeyError:
            raise UnknownIdentity(identity) from None

    def next_for(self, identity: str) -> int:
        lock = self._locks.get(identity)
        if lock is None:
            raise UnknownIdentity(identity)
        with lock:
            nxt = self._counters[identity] + 1
            self._counters[identity] = nxt
            return nxt


# ═══════════════════════════════════════════════════════════════
# SQL store
# ═══════════════════════════════════════════════════════════════

class SqlNonceSequencer(NonceSequencer):
    """Counters in the ``dice_players`` table.

    The advance is a locked read followed by a compare-and-swap update.
    A lost swap or a lock timeout is retried with exponential backoff and
    jitter; once retries run out SequencerContention is raised.
    """

    def __init__(self, db_path: str = None,
                 max_retries: int = DiceConfig.NONCE_MAX_RETRIES,
                 backoff_base: float = DiceConfig.NONCE_BACKOFF_BASE,
                 backoff_max: float = DiceConfig.NONCE_BACKOFF_MAX):
        self.db_path = db_path
        self.max_retries = max(1, max_retries)
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max

    def register(self, identity: str) -> bool:
        with connect(self.db_path) as db:
            db.execute(
                """INSERT INTO dice_players (identity, last_nonce) VALUES (?, 0)
                   ON CONFLICT (identity) DO NOTHING""",
                [identity],
            )
            created = db.rowcount == 1
        if created:
            logger.info(f"Registered player {identity}")
        return created

    def lookup(self, identity: str) -> int:
        with connect(self.db_path) as db:
            row = db.execute(
                "SELECT last_nonce FROM dice_players WHERE identity = ?", [identity]
            ).fetchone()
        if row is None:
            raise UnknownIdentity(identity)
        return row["last_nonce"]

    def next_for(self, identity: str) -> int:
        for attempt in range(self.max_retries):
            try:
                return self._advance(identity)
            except SequencerContention:
                delay = min(self.backoff_base * (2 ** attempt), self.backoff_max)
                delay *= random.uniform(0.5, 1.0)
                logger.debug(f"Nonce contention for {identity} "
                             f"(attempt {attempt + 1}/{self.max_retries}), retry in {delay:.3f}s")
                time.sleep(delay)
        logger.error(f"Nonce advance for {identity} failed after {self.max_retries} attempts")
        raise SequencerContention(
            f"Could not advance nonce for {identity} after {self.max_retries} attempts")

    def _advance(self, identity: str) -> int:
        db = connect(self.db_path)
        try:
            db.begin_write()
            lock_clause = " FOR UPDATE" if db.is_pg else ""
            row = db.execute(
                "SELECT last_nonce FROM dice_players WHERE identity = ?" + lock_clause,
                [identity],
            ).fetchone()
            if row is None:
                raise UnknownIdentity(identity)

            last = row["last_nonce"]
            db.execute(
                """UPDATE dice_players SET last_nonce = ?
                   WHERE identity = ? AND last_nonce = ?""",
                [last + 1, identity, last],
            )
            if db.rowcount != 1:
                raise SequencerContention(f"Nonce for {identity} moved past {last}")
            db.commit()
            return last + 1
        except Exception as e:
            db.rollback()
            if is_contention_error(e):
                raise SequencerContention(str(e)) from e
            raise
        finally:
            db.close()
