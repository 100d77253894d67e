"""
DICEFAIR - Configuration

Environment-driven settings for the provably fair dice engine.
Values come from the process environment, optionally seeded from a .env file.

    DATABASE_URL         postgres://... selects PostgreSQL, anything else SQLite
    DB_PATH              SQLite file (default dicefair.db)
    SEED_BYTES           server/client seed entropy in bytes (default 32)
    MAX_WAGER            largest accepted wager (default 1e9)
    NONCE_MAX_RETRIES    nonce compare-and-swap attempts before giving up
    NONCE_BACKOFF_BASE   first retry delay in seconds, doubled per attempt
    NONCE_BACKOFF_MAX    retry delay ceiling in seconds

Seed rotation policy: a round result carries the server seed it was played
with, so that seed is revealed and a new commitment published before the
result is returned. No round is ever played against a seed a player has seen.
"""

import os
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()

BASE_DIR = Path(__file__).parent.parent


def _env_int(key: str, default: int) -> int:
    try:
        return int(os.getenv(key, default))
    except (TypeError, ValueError):
        return default


def _env_float(key: str, default: float) -> float:
    try:
        return float(os.getenv(key, default))
    except (TypeError, ValueError):
        return default


class DiceConfig:

    # --- Storage ---
    DATABASE_URL = os.getenv("DATABASE_URL", "")
    DB_PATH = os.getenv("DB_PATH", "dicefair.db")

    # --- Seeds ---
    # Rotation is not configurable: every round result discloses the live
    # server seed, so the epoch is revealed and replaced after each round.
    # DicePlatform.rotate() can still retire an epoch that saw no play.
    SEED_BYTES = _env_int("SEED_BYTES", 32)

    # --- Wagers ---
    MAX_WAGER = _env_float("MAX_WAGER", 1_000_000_000.0)

    # --- Nonce sequencing ---
    NONCE_MAX_RETRIES = _env_int("NONCE_MAX_RETRIES", 8)
    NONCE_BACKOFF_BASE = _env_float("NONCE_BACKOFF_BASE", 0.005)
    NONCE_BACKOFF_MAX = _env_float("NONCE_BACKOFF_MAX", 0.25)

    # --- RTP simulation ---
    RTP_TOLERANCE_PCT = _env_float("RTP_TOLERANCE_PCT", 6.0)
    RTP_FLOOR_PCT = _env_float("RTP_FLOOR_PCT", 80.0)

    # --- Service ---
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
    PORT = _env_int("PORT", 4567)
