import math
from dataclasses import asdict, dataclass, fields


def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves rounded up (2.5 -> 3, -2.5 -> -2)."""
    return math.floor(value + 0.5)


@dataclass(frozen=True)
class MatchWeights:

    location: float = 0.20
    budget: float = 0.20
    lifestyle: float = 0.15
    preferences: float = 0.15
    schedule: float = 0.10
    cleanliness: float = 0.10
    social_level: float = 0.10

    def __post_init__(self) -> None:
        total = sum(getattr(self, f.name) for f in fields(self))
        if abs(total - 1.0) > 1e-6:
            raise ValueError(f"Match weights must sum to 1.0, got {total:.4f}")


DEFAULT_WEIGHTS = MatchWeights()


@dataclass(frozen=True)
class CompatibilityFactors:
    """Per-factor scores, each an integer in [0, 100]."""

    location: int
    budget: int
    lifestyle: int
    preferences: int
    schedule: int
    cleanliness: int
    social_level: int

    def weighted_overall(self, weights: MatchWeights = DEFAULT_WEIGHTS) -> int:
        total = sum(
            getattr(self, f.name) * getattr(weights, f.name)
            for f in fields(self)
        )
        return max(0, min(100, round_half_up(total)))

    def as_dict(self) -> dict[str, int]:
        return asdict(self)
