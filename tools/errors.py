"""
DICEFAIR — Error Kinds

Every failure the dice engine can report has an ErrorKind. Validation and
lookup failures travel back to callers as RoundError values inside a
PlayResult; infrastructure failures are raised.

Usage:
    from tools.errors import ErrorKind, RoundError, UnknownIdentity
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ErrorKind(str, Enum):
    INVALID_TARGET = "invalid_target"
    INVALID_WAGER = "invalid_wager"
    UNKNOWN_IDENTITY = "unknown_identity"
    COMMITMENT_MISMATCH = "commitment_mismatch"
    SEQUENCER_CONTENTION = "sequencer_contention"


@dataclass(frozen=True)
class RoundError:
    """A recoverable, user-visible failure."""
    kind: ErrorKind
    message: str

    def to_dict(self) -> dict:
        return {"error": self.kind.value, "message": self.message}


class DiceError(Exception):
    """Base for all dice engine exceptions."""
    kind: ErrorKind = None

    def to_error(self) -> RoundError:
        return RoundError(self.kind, str(self))


class InvalidTarget(DiceError, ValueError):
    kind = ErrorKind.INVALID_TARGET


class InvalidWager(DiceError, ValueError):
    kind = ErrorKind.INVALID_WAGER


class UnknownIdentity(DiceError):
    kind = ErrorKind.UNKNOWN_IDENTITY

    def __init__(self, identity: str):
        super().__init__(f"Unknown player: {identity}. Register before playing.")
        self.identity = identity


class CommitmentMismatch(DiceError):
    kind = ErrorKind.COMMITMENT_MISMATCH


class SequencerContention(DiceError):
    """Nonce update lost a race. Retried internally; raised once retries run out."""
    kind = ErrorKind.SEQUENCER_CONTENTION
