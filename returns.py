"""
Random return generation for the projection engine.
Two sampling models live here side by side: the monthly fat-tail model used for
the headline path and retirement simulation, and the coarser annual uniform
model used by the sequence-risk trials.
"""
import math
from dataclasses import dataclass
from typing import List, Union

import numpy as np

# Probability that a month's deviation is doubled
FAT_TAIL_PROBABILITY = 0.05
FAT_TAIL_MULTIPLIER = 2.0

SeedLike = Union[None, int, np.random.SeedSequence]


def make_rng(seed: SeedLike = None) -> np.random.Generator:
    """Create an independent generator from a seed, SeedSequence or fresh entropy"""
    return np.random.default_rng(seed)


def spawn_seeds(master_seed: SeedLike, count: int) -> List[np.random.SeedSequence]:
    """
    Derive one child seed per trial from a master seed.

    Trial i always receives the same child regardless of how trials are later
    split across workers.
    """
    if isinstance(master_seed, np.random.SeedSequence):
        root = master_seed
    else:
        root = np.random.SeedSequence(master_seed)
    return root.spawn(count)


def next_monthly_return(rng: np.random.Generator,
                        monthly_expected_rate: float,
                        annual_volatility_pct: float) -> float:
    """
    Sample one month's return.

    Args:
        rng: Random generator owned by the caller
        monthly_expected_rate: Expected return for the month as a decimal
        annual_volatility_pct: Annual volatility in percent (15 means 15%)

    Returns:
        Monthly return as a decimal; negative values are loss months
    """
    deviation = (rng.random() - 0.5) * annual_volatility_pct / math.sqrt(12) / 100
    if rng.random() < FAT_TAIL_PROBABILITY:
        deviation *= FAT_TAIL_MULTIPLIER
    return monthly_expected_rate + deviation


class ReturnSampler:
    """Common interface for return models"""

    def sample(self, rng: np.random.Generator) -> float:
        raise NotImplementedError

    def sample_path(self, rng: np.random.Generator, periods: int) -> np.ndarray:
        return np.array([self.sample(rng) for _ in range(periods)], dtype=float)


@dataclass(frozen=True)
class MonthlyFatTailSampler(ReturnSampler):
    """Monthly uniform shock scaled by sqrt(12), with a 5% chance of doubling"""
    annual_return_pct: float
    annual_volatility_pct: float

    @property
    def monthly_expected_rate(self) -> float:
        return self.annual_return_pct / 12 / 100

    def sample(self, rng: np.random.Generator) -> float:
        return next_monthly_return(rng, self.monthly_expected_rate, self.annual_volatility_pct)


@dataclass(frozen=True)
class AnnualUniformSampler(ReturnSampler):
    """One flat uniform draw per year, no fat tail"""
    annual_return_pct: float
    annual_volatility_pct: float

    def sample(self, rng: np.random.Generator) -> float:
        return self.annual_return_pct / 100 + (rng.random() - 0.5) * self.annual_volatility_pct / 100

    def sample_path(self, rng: np.random.Generator, periods: int) -> np.ndarray:
        draws = rng.random(periods)
        return self.annual_return_pct / 100 + (draws - 0.5) * self.annual_volatility_pct / 100


def shuffle_from(returns: np.ndarray, start: int, rng: np.random.Generator) -> np.ndarray:
    """
    Shuffle returns[start:] in place with a uniform random permutation.

    Generator.shuffle is a Fisher-Yates shuffle; slicing a numpy array gives a
    view, so the leading years stay untouched.
    """
    start = max(0, start)
    if len(returns) - start > 1:
        rng.shuffle(returns[start:])
    return returns
