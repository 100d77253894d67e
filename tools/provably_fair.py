"""
DICEFAIR — Provably Fair Dice RNG

Server-seed commitment + client seed + nonce scheme for verifiable dice rolls.

Architecture:
    Operator generates server_seed and publishes SHA-256(server_seed).
    Player provides client_seed (or one is generated).
    For each round:
        combined = SHA-512(server_seed + ":" + client_seed + ":" + nonce)
        number   = int(combined, 16) % 100 + 1          → 1..100
    Once the server seed is revealed anyone can recompute both values.

Usage:
    from tools.provably_fair import create_epoch, derive_number, verify_round

    epoch = create_epoch()
    print(epoch.commitment)                 # share with players up front
    n = derive_number(epoch.secret, "client", 1)
    verify_round(epoch.secret, "client", 1, n)      # True
    verify_commitment(epoch.secret, epoch.commitment)  # True
"""

from __future__ import annotations

import hashlib
import hmac
import os
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone

from tools.errors import CommitmentMismatch

SEED_BYTES = 32
OUTCOME_RANGE = 100
DELIMITER = ":"


# ═══════════════════════════════════════════════════════════════
# Commitment
# ═══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class CommitmentEpoch:
    """One server secret and its published commitment.

    Immutable for its whole life, so it can be shared across threads
    without locking. ``secret`` stays private until the epoch is revealed.
    """
    secret: str
    commitment: str
    epoch_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    created_at: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def public_view(self) -> dict:
        return {
            "epoch_id": self.epoch_id,
            "commitment": self.commitment,
            "created_at": self.created_at,
        }

    def __repr__(self) -> str:
        return f"CommitmentEpoch(epoch_id={self.epoch_id!r}, commitment={self.commitment!r})"


def commitment_of(secret: str) -> str:
    """SHA-256 hex digest of the secret's hex string."""
    return hashlib.sha256(secret.encode()).hexdigest()


def create_epoch(n_bytes: int = SEED_BYTES) -> CommitmentEpoch:
    """Generate a fresh secret from the OS entropy pool and commit to it."""
    secret = os.urandom(n_bytes).hex()
    return CommitmentEpoch(secret=secret, commitment=commitment_of(secret))


def new_player_value(n_bytes: int = SEED_BYTES) -> str:
    """Client seed for players who do not bring their own."""
    return os.urandom(n_bytes).hex()


# ═══════════════════════════════════════════════════════════════
# Outcome derivation
# ═══════════════════════════════════════════════════════════════

def round_message(secret: str, player_value: str, nonce: int) -> str:
    return DELIMITER.join((secret, player_value, str(nonce)))


def derive_hash(secret: str, player_value: str, nonce: int) -> str:
    """SHA-512 hex digest of ``secret:player_value:nonce``."""
    return hashlib.sha512(round_message(secret, player_value, nonce).encode()).hexdigest()


def hash_to_number(hex_hash: str) -> int:
    """Read the whole digest as one unsigned integer and map it onto 1..100."""
    return int(hex_hash, 16) % OUTCOME_RANGE + 1


def derive_number(secret: str, player_value: str, nonce: int) -> int:
    """Deterministic dice number in [1, 100] for one round."""
    return hash_to_number(derive_hash(secret, player_value, nonce))


# ═══════════════════════════════════════════════════════════════
# Verification
# ═══════════════════════════════════════════════════════════════

def verify_round(secret: str, player_value: str, nonce: int,
                 claimed_number: int) -> bool:
    """True iff the revealed inputs reproduce the claimed number."""
    return derive_number(secret, player_value, nonce) == claimed_number


def verify_commitment(secret: str, commitment: str) -> bool:
    """True iff the disclosed secret hashes to the published commitment."""
    return hmac.compare_digest(commitment_of(secret).encode(),
                               commitment.strip().lower().encode())


def check_commitment(secret: str, commitment: str) -> None:
    """Raise CommitmentMismatch unless the secret matches the commitment."""
    if not verify_commitment(secret, commitment):
        raise CommitmentMismatch(
            f"Disclosed server seed does not hash to commitment {commitment}")


def verification_data(secret: str, player_value: str, nonce: int,
                      claimed_number: int, commitment: str = "") -> dict:
    """Everything an auditor needs to check one round by hand."""
    combined = derive_hash(secret, player_value, nonce)
    number = hash_to_number(combined)
    data = {
        "server_seed": secret,
        "client_seed": player_value,
        "nonce": nonce,
        "combined_hash": combined,
        "computed_number": number,
        "claimed_number": claimed_number,
        "number_matches": number == claimed_number,
        "verification_steps": [
            "1. Compute: combined = SHA-512(server_seed + ':' + client_seed + ':' + str(nonce))",
            "2. Read the full hex digest as a base-16 integer",
            "3. number = integer % 100 + 1",
            "4. Check: SHA-256(server_seed) == published commitment",
        ],
    }
    if commitment:
        data["commitment"] = commitment
        data["commitment_matches"] = verify_commitment(secret, commitment)
    return data
