"""
DICEFAIR — Round Engine

Plays one dice round against a commitment epoch:

    1. validate target / wager            (no side effects on failure)
    2. consume the player's next nonce    (durable before derivation)
    3. derive number = SHA-512(seed:client:nonce) % 100 + 1
    4. settle: win when number <= target, payout = wager x multiplier

Validation and lookup failures come back as a RoundError inside the
PlayResult instead of being raised. Once the nonce is consumed the round
always completes and returns an outcome.

Usage:
    from tools.provably_fair import create_epoch
    from tools.nonce_sequencer import MemoryNonceSequencer
    from tools.round_engine import RoundEngine

    seq = MemoryNonceSequencer()
    seq.register("alice@example.com")
    engine = RoundEngine(create_epoch(), seq)
    result = engine.play("alice@example.com", "my-seed", target=50, wager=10.0)
    if result.ok:
        print(result.outcome.number, result.outcome.payout)
    else:
        print(result.error.kind, result.error.message)
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, asdict, field
from typing import Optional

from sim_engine.rmg import dice
from tools.errors import InvalidTarget, InvalidWager, RoundError, UnknownIdentity
from tools.nonce_sequencer import NonceSequencer
from tools.provably_fair import CommitmentEpoch, derive_number, new_player_value

logger = logging.getLogger("dicefair.round")


@dataclass(frozen=True)
class RoundOutcome:
    """A completed, auditable round."""
    number: int
    win: bool
    payout: float
    server_seed: str
    nonce: int
    target: int
    wager: float
    client_seed: str
    identity: str
    epoch_id: str
    commitment: str
    multiplier: float
    round_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class PlayResult:
    """Either an outcome or the reason the round was refused."""
    outcome: Optional[RoundOutcome] = None
    error: Optional[RoundError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class RoundEngine:
    """Plays rounds against one commitment epoch.

    The epoch is passed in rather than created here, so several engines
    (epochs, tenants) can share one sequencer.
    """

    def __init__(self, epoch: CommitmentEpoch, sequencer: NonceSequencer,
                 ledger=None):
        self.epoch = epoch
        self.sequencer = sequencer
        self.ledger = ledger

    def play(self, identity: str, player_value: Optional[str],
             target: int, wager: float) -> PlayResult:
        try:
            target = dice.validate_target(target)
            wager = dice.validate_wager(wager)
            if not identity:
                raise UnknownIdentity(identity)
            if not player_value:
                player_value = new_player_value()
            nonce = self.sequencer.next_for(identity)
        except (InvalidTarget, InvalidWager, UnknownIdentity) as e:
            return PlayResult(error=e.to_error())

        # Nonce consumed: from here the round runs to completion.
        number = derive_number(self.epoch.secret, player_value, nonce)
        win = number <= target
        outcome = RoundOutcome(
            number=number,
            win=win,
            payout=dice.payout(wager, target) if win else 0.0,
            server_seed=self.epoch.secret,
            nonce=nonce,
            target=target,
            wager=wager,
            client_seed=player_value,
            identity=identity,
            epoch_id=self.epoch.epoch_id,
            commitment=self.epoch.commitment,
            multiplier=dice.payout_multiplier(target),
        )

        if self.ledger is not None:
            try:
                self.ledger.record_round(outcome)
            except Exception:
                logger.exception(f"Ledger write failed for {identity} nonce={nonce}")

        return PlayResult(outcome=outcome)
