"""
DICEFAIR — Base RMG Engine

Abstract base for game math models: house edge, single-round model and a
seeded Monte Carlo run over that model.
"""

import bisect
import math
import random
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

# Upper bounds of the multiplier buckets, open on the right; 0x is its own bucket
BUCKET_EDGES = (1.0, 2.0, 5.0, 10.0)
BUCKET_LABELS = ("0-1x", "1-2x", "2-5x", "5-10x", "10x+")


def bucket_for(mult: float) -> str:
    if mult == 0:
        return "0x"
    return BUCKET_LABELS[bisect.bisect_right(BUCKET_EDGES, mult)]


@dataclass
class SimResult:
    """Outcome of a seeded model run. One unit wagered per round."""
    game_type: str
    rounds: int
    house_edge_theoretical: float
    rtp: float
    hit_rate: float
    avg_multiplier: float
    max_multiplier_hit: float
    std_dev: float
    confidence_95: tuple = (0.0, 0.0)  # house edge
    distribution: dict = field(default_factory=dict)

    @property
    def house_edge_measured(self) -> float:
        return 1.0 - self.rtp

    @property
    def total_wagered(self) -> float:
        return float(self.rounds)

    @property
    def total_returned(self) -> float:
        return self.rtp * self.rounds

    def to_dict(self) -> dict:
        return {
            "game_type": self.game_type,
            "rounds": self.rounds,
            "house_edge_theoretical": round(self.house_edge_theoretical, 6),
            "house_edge_measured": round(self.house_edge_measured, 6),
            "rtp": round(self.rtp, 4),
            "hit_rate": round(self.hit_rate, 4),
            "avg_multiplier": round(self.avg_multiplier, 4),
            "max_multiplier_hit": round(self.max_multiplier_hit, 2),
            "std_dev": round(self.std_dev, 4),
            "confidence_95": [round(x, 6) for x in self.confidence_95],
            "distribution": self.distribution,
        }


class BaseRMGEngine(ABC):
    """A game's math: config, theoretical edge and a one-round sampler."""

    game_type: str = "base"
    display_name: str = "Base Game"

    @abstractmethod
    def generate_config(self, **kwargs) -> dict:
        ...

    @abstractmethod
    def compute_house_edge(self, config: dict) -> float:
        ...

    @abstractmethod
    def simulate_round(self, config: dict, rng: random.Random) -> float:
        """Multiplier paid for one round, 0 on a loss."""
        ...

    def simulate(self, config: dict, rounds: int = 100_000, seed: int = 42) -> SimResult:
        """Sample ``rounds`` rounds from a PRNG seeded with ``seed``."""
        if rounds <= 0:
            raise ValueError("rounds must be positive")
        rng = random.Random(seed)
        mults = [self.simulate_round(config, rng) for _ in range(rounds)]

        mean = math.fsum(mults) / rounds
        var = max(math.fsum(m * m for m in mults) / rounds - mean * mean, 0.0)
        half_width = 1.96 * math.sqrt(var / rounds)
        edge = 1.0 - mean

        counts = {}
        for m in mults:
            label = bucket_for(m)
            counts[label] = counts.get(label, 0) + 1

        return SimResult(
            game_type=self.game_type,
            rounds=rounds,
            house_edge_theoretical=self.compute_house_edge(config),
            rtp=mean,
            hit_rate=sum(1 for m in mults if m > 0) / rounds,
            avg_multiplier=mean,
            max_multiplier_hit=max(mults),
            std_dev=math.sqrt(var),
            confidence_95=(edge - half_width, edge + half_width),
            distribution={k: round(v / rounds, 4) for k, v in sorted(counts.items())},
        )
