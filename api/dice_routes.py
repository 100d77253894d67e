"""
DICEFAIR — Dice API Routes

    GET  /api/dice/commitment              live seed commitment
    POST /api/dice/register                {identity}
    POST /api/dice/play                    {identity, target, wager, client_seed?}
    POST /api/dice/verify                  {server_seed, client_seed, nonce, number, commitment?}
    GET  /api/dice/multipliers?targets=50,70
    GET  /api/dice/rounds/<round_id>/audit
    GET  /api/dice/players/<identity>/stats
"""

import logging
import re
from typing import Any, Optional

from flask import current_app, jsonify, request
from pydantic import BaseModel, Field, ValidationError, field_validator

from api import dice_bp
from sim_engine.rmg import dice
from tools.errors import DiceError, ErrorKind, SequencerContention

logger = logging.getLogger("dicefair.api")

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


# ═══════════════════════════════════════════════════════════
# Request Models
# ═══════════════════════════════════════════════════════════

class IdentityRequest(BaseModel):
    """Identities are compared after trimming, on register and on play."""
    identity: str

    @field_validator("identity")
    @classmethod
    def _strip(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("identity is required")
        return v


class RegisterRequest(IdentityRequest):

    @field_validator("identity")
    @classmethod
    def _email_shape(cls, v: str) -> str:
        v = v.strip()
        if not _EMAIL_RE.match(v):
            raise ValueError("identity must be an email address")
        return v


class PlayRequest(IdentityRequest):
    # Range and type checks happen in the round engine so the error kinds match
    target: Any
    wager: Any
    client_seed: Optional[str] = None


class VerifyRequest(BaseModel):
    server_seed: str = Field(min_length=1)
    client_seed: str
    nonce: int = Field(ge=1)
    number: int
    commitment: str = ""


def _platform():
    return current_app.config["DICE_PLATFORM"]


def _error(kind, message: str, status: int):
    kind = kind.value if isinstance(kind, ErrorKind) else kind
    return jsonify({"error": kind, "message": message}), status


# ═══════════════════════════════════════════════════════════
# Error Handlers
# ═══════════════════════════════════════════════════════════

@dice_bp.errorhandler(ValidationError)
def _bad_request(e: ValidationError):
    first = e.errors()[0]
    field = ".".join(str(p) for p in first.get("loc", ())) or "body"
    return _error("invalid_request", f"{field}: {first.get('msg', 'invalid value')}", 400)


@dice_bp.errorhandler(SequencerContention)
def _contention(e: SequencerContention):
    return _error(e.kind, "Service busy, try again", 503)


@dice_bp.errorhandler(DiceError)
def _dice_error(e: DiceError):
    status = 404 if e.kind is ErrorKind.UNKNOWN_IDENTITY else 400
    return _error(e.kind, str(e), status)


# ═══════════════════════════════════════════════════════════
# Endpoints
# ═══════════════════════════════════════════════════════════

@dice_bp.route("/commitment")
def api_commitment():
    return jsonify(_platform().commitment())


@dice_bp.route("/register", methods=["POST"])
def api_register():
    req = RegisterRequest.model_validate(request.get_json(silent=True) or {})
    platform = _platform()
    created = platform.register(req.identity)
    return jsonify({
        "identity": req.identity,
        "created": created,
        "last_nonce": platform.sequencer.lookup(req.identity),
    }), 201 if created else 200


@dice_bp.route("/play", methods=["POST"])
def api_play():
    req = PlayRequest.model_validate(request.get_json(silent=True) or {})
    platform = _platform()
    result = platform.play(req.identity, req.client_seed, req.target, req.wager)
    if not result.ok:
        status = 404 if result.error.kind is ErrorKind.UNKNOWN_IDENTITY else 400
        return jsonify(result.error.to_dict()), status

    body = result.outcome.to_dict()
    body["next_commitment"] = platform.commitment()
    return jsonify(body)


@dice_bp.route("/verify", methods=["POST"])
def api_verify():
    req = VerifyRequest.model_validate(request.get_json(silent=True) or {})
    return jsonify(_platform().verify(req.server_seed, req.client_seed,
                                      req.nonce, req.number, req.commitment))


@dice_bp.route("/multipliers")
def api_multipliers():
    raw = request.args.get("targets", "")
    targets = None
    if raw:
        try:
            targets = [int(t) for t in raw.split(",") if t.strip()]
        except ValueError:
            return _error(ErrorKind.INVALID_TARGET, "targets must be comma-separated integers", 400)
    return jsonify({"rows": dice.multiplier_table(targets)})


@dice_bp.route("/rounds/<round_id>/audit")
def api_audit_round(round_id):
    platform = _platform()
    rnd = platform.ledger.get_round(round_id)
    if rnd is None:
        return _error("not_found", f"Round not found: {round_id}", 404)
    epoch = platform.ledger.get_epoch(rnd["epoch_id"])
    if epoch is None:
        return _error("not_found", f"Epoch not found: {rnd['epoch_id']}", 404)
    if epoch["status"] != "revealed":
        return _error("not_revealed", "Server seed must be revealed to audit rounds", 409)
    return jsonify(platform.audit_round(round_id))


@dice_bp.route("/players/<identity>/stats")
def api_player_stats(identity):
    return jsonify(_platform().player_stats(identity))
