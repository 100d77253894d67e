"""
DICEFAIR — Round Ledger

Durable record of commitment epochs and completed rounds, so a round can be
audited after its server seed is revealed, independently of live state.

Usage:
    from tools.round_ledger import RoundLedger
    ledger = RoundLedger("dice.db")
    ledger.save_epoch(epoch)
    ledger.record_round(outcome)
    ledger.reveal_epoch(epoch.epoch_id)
    report = ledger.audit_round(outcome.round_id)
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from config.database import connect
from tools.errors import CommitmentMismatch
from tools.provably_fair import CommitmentEpoch, check_commitment, verification_data

logger = logging.getLogger("dicefair.ledger")


class RoundLedger:
    """Epoch and round history in ``dice_epochs`` / ``dice_rounds``."""

    def __init__(self, db_path: str = None):
        self.db_path = db_path

    # ─── Epochs ───────────────────────────────────────────────

    def save_epoch(self, epoch: CommitmentEpoch) -> None:
        with connect(self.db_path) as db:
            db.execute(
                """INSERT INTO dice_epochs (id, commitment, secret, status, created_at)
                   VALUES (?, ?, ?, 'active', ?)
                   ON CONFLICT (id) DO NOTHING""",
                [epoch.epoch_id, epoch.commitment, epoch.secret, epoch.created_at],
            )

    def reveal_epoch(self, epoch_id: str) -> dict:
        """Mark an epoch revealed and return its disclosed seed."""
        now = datetime.now(timezone.utc).isoformat()
        with connect(self.db_path) as db:
            db.execute(
                """UPDATE dice_epochs SET status = 'revealed', revealed_at = ?
                   WHERE id = ? AND status = 'active'""",
                [now, epoch_id],
            )
            row = db.execute("SELECT * FROM dice_epochs WHERE id = ?",
                             [epoch_id]).fetchone()
        if row is None:
            raise ValueError(f"Epoch not found: {epoch_id}")
        logger.info(f"Revealed epoch {epoch_id}")
        return {
            "epoch_id": row["id"],
            "server_seed": row["secret"],
            "commitment": row["commitment"],
            "revealed_at": row["revealed_at"],
        }

    def get_epoch(self, epoch_id: str) -> dict | None:
        """Public view of an epoch. The seed is only included once revealed."""
        with connect(self.db_path) as db:
            row = db.execute("SELECT * FROM dice_epochs WHERE id = ?",
                             [epoch_id]).fetchone()
        if row is None:
            return None
        view = {
            "epoch_id": row["id"],
            "commitment": row["commitment"],
            "status": row["status"],
            "created_at": row["created_at"],
            "revealed_at": row["revealed_at"],
        }
        if row["status"] == "revealed":
            view["server_seed"] = row["secret"]
        return view

    # ─── Rounds ───────────────────────────────────────────────

    def record_round(self, outcome) -> str:
        with connect(self.db_path) as db:
            db.execute(
                """INSERT INTO dice_rounds
                   (id, epoch_id, identity, player_value, nonce, number, win,
                    target, wager, payout)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                [outcome.round_id, outcome.epoch_id, outcome.identity,
                 outcome.client_seed, outcome.nonce, outcome.number,
                 int(outcome.win), outcome.target, outcome.wager, outcome.payout],
            )
        return outcome.round_id

    def get_round(self, round_id: str) -> dict | None:
        with connect(self.db_path) as db:
            row = db.execute("SELECT * FROM dice_rounds WHERE id = ?",
                             [round_id]).fetchone()
        return _round_dict(row) if row else None

    def rounds_for(self, identity: str, limit: int = 50) -> list[dict]:
        with connect(self.db_path) as db:
            rows = db.execute(
                """SELECT * FROM dice_rounds WHERE identity = ?
                   ORDER BY nonce DESC LIMIT ?""",
                [identity, limit],
            ).fetchall()
        return [_round_dict(r) for r in rows]

    def audit_round(self, round_id: str) -> dict:
        """Recompute a revealed round and check its seed commitment."""
        rnd = self.get_round(round_id)
        if rnd is None:
            raise ValueError(f"Round not found: {round_id}")
        epoch = self.get_epoch(rnd["epoch_id"])
        if epoch is None:
            raise ValueError(f"Epoch not found: {rnd['epoch_id']}")
        if epoch["status"] != "revealed":
            raise ValueError("Server seed must be revealed to audit rounds")

        data = verification_data(epoch["server_seed"], rnd["client_seed"],
                                 rnd["nonce"], rnd["number"],
                                 commitment=epoch["commitment"])
        data["round"] = rnd
        data["verified"] = data["number_matches"]
        try:
            check_commitment(epoch["server_seed"], epoch["commitment"])
        except CommitmentMismatch as e:
            data["verified"] = False
            data["error"] = e.to_error().to_dict()
            logger.warning(f"Commitment mismatch on round {round_id}")
        return data

    def player_stats(self, identity: str) -> dict:
        """Aggregated results for one player."""
        with connect(self.db_path) as db:
            row = db.execute(
                """SELECT COUNT(*) AS n, SUM(win) AS wins,
                          SUM(wager) AS wagered, SUM(payout) AS won
                   FROM dice_rounds WHERE identity = ?""",
                [identity],
            ).fetchone()
        n = row["n"] or 0
        wagered = row["wagered"] or 0
        won = row["won"] or 0
        return {
            "identity": identity,
            "rounds": n,
            "wins": row["wins"] or 0,
            "total_wagered": round(wagered, 2),
            "total_won": round(won, 2),
            "profit": round(won - wagered, 2),
            "rtp_pct": round(won / wagered * 100, 2) if wagered > 0 else 0,
        }


def _round_dict(row: dict) -> dict:
    return {
        "round_id": row["id"],
        "epoch_id": row["epoch_id"],
        "identity": row["identity"],
        "client_seed": row["player_value"],
        "nonce": row["nonce"],
        "number": row["number"],
        "win": bool(row["win"]),
        "target": row["target"],
        "wager": row["wager"],
        "payout": row["payout"],
        "created_at": row["created_at"],
    }
