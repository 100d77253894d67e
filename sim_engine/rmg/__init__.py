"""
DICEFAIR — RMG Math Engine

Math models for real-money games: house edge, payout multiplier and a
seeded Monte Carlo check of the model.

Usage:
    from sim_engine.rmg import get_game_engine
    engine = get_game_engine("dice")
    config = engine.generate_config(target=70)
    results = engine.simulate(config, rounds=100_000)
"""

from sim_engine.rmg.dice import DiceEngine

GAME_ENGINES = {
    "dice": DiceEngine,
}

GAME_TYPES = list(GAME_ENGINES.keys())


def get_game_engine(game_type: str):
    """Get the math engine for a game type."""
    cls = GAME_ENGINES.get(game_type.lower())
    if cls is None:
        raise ValueError(f"Unknown game type: {game_type}. Available: {GAME_TYPES}")
    return cls()
