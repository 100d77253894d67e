"""Dice — roll 1..100, win when the roll is at or under the target.

House edge grows with the target: a flat 1% up to 50, then +0.2% per point.
"""
from decimal import Decimal, ROUND_HALF_UP, localcontext
from numbers import Real
import math

from config.settings import DiceConfig
from sim_engine.rmg.base import BaseRMGEngine
from tools.errors import InvalidTarget, InvalidWager

TARGET_MIN = 1
TARGET_MAX = 99
ROLL_MAX = 100

BASE_EDGE = 0.01
EDGE_PIVOT = 50
EDGE_STEP = 0.002

MAX_WAGER = DiceConfig.MAX_WAGER

_CENT = Decimal("0.01")
# Enough digits to quantize any finite float to cents
_MONEY_PREC = 400


def validate_target(target) -> int:
    if isinstance(target, bool) or not isinstance(target, int):
        raise InvalidTarget(
            f"Invalid target number. Must be an integer between {TARGET_MIN} and {TARGET_MAX}.")
    if not TARGET_MIN <= target <= TARGET_MAX:
        raise InvalidTarget(
            f"Invalid target number. Must be between {TARGET_MIN} and {TARGET_MAX}.")
    return target


def validate_wager(wager) -> float:
    if isinstance(wager, bool) or not isinstance(wager, Real):
        raise InvalidWager("Invalid bet amount. Must be a positive number.")
    try:
        wager = float(wager)
    except OverflowError:
        raise InvalidWager(f"Invalid bet amount. Maximum bet is {MAX_WAGER:,.2f}.") from None
    if not math.isfinite(wager) or wager <= 0:
        raise InvalidWager("Invalid bet amount. Must be a positive number.")
    if wager > MAX_WAGER:
        raise InvalidWager(f"Invalid bet amount. Maximum bet is {MAX_WAGER:,.2f}.")
    return wager


def dynamic_edge(target: int) -> float:
    """House edge for a target: 0.01 up to 50, then +0.002 per point above."""
    validate_target(target)
    extra = max((target - EDGE_PIVOT) * EDGE_STEP, 0)
    return BASE_EDGE + extra


def payout_multiplier(target: int) -> float:
    """Fair multiplier 100/target scaled down by the house edge."""
    return (100.0 / target) * (1.0 - dynamic_edge(target))


def round_money(amount: float) -> float:
    """Round half-up to cents on the amount's shortest decimal form."""
    with localcontext() as ctx:
        ctx.prec = _MONEY_PREC
        return float(Decimal(repr(amount)).quantize(_CENT, rounding=ROUND_HALF_UP))


def payout(wager: float, target: int) -> float:
    """Winning payout for a wager, rounded to 2 decimals."""
    return round_money(validate_wager(wager) * payout_multiplier(target))


def win_probability(target: int) -> float:
    return validate_target(target) / ROLL_MAX


def theoretical_rtp(target: int) -> float:
    """Return to player: win probability x multiplier = 1 - edge."""
    return 1.0 - dynamic_edge(target)


def multiplier_table(targets=None) -> list[dict]:
    """Per-target edge, multiplier, win chance and RTP for display."""
    rows = []
    for t in targets or range(TARGET_MIN, TARGET_MAX + 1):
        rows.append({
            "target": t,
            "edge": round(dynamic_edge(t), 6),
            "multiplier": round_money(payout_multiplier(t)),
            "win_chance_pct": round(win_probability(t) * 100, 2),
            "rtp_pct": round(theoretical_rtp(t) * 100, 2),
        })
    return rows


class DiceEngine(BaseRMGEngine):
    game_type = "dice"
    display_name = "Dice"

    def generate_config(self, target: int = 50, **kw) -> dict:
        validate_target(target)
        return {
            "game_type": "dice",
            "target": target,
            "house_edge": dynamic_edge(target),
            "multiplier": payout_multiplier(target),
        }

    def compute_house_edge(self, config: dict) -> float:
        return dynamic_edge(config.get("target", 50))

    def simulate_round(self, config: dict, rng) -> float:
        target = config.get("target", 50)
        roll = rng.randint(1, ROLL_MAX)
        if roll <= target:
            return payout_multiplier(target)
        return 0.0
