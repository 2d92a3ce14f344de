"""
Geometric invariants and the hash function built on top of them.

A hasher turns an ordered set of M points into a vector of invariants,
discretizes every invariant into one of ``num_discrete`` buckets and packs
the buckets into a single integer. The buckets are learned from training
data so each one holds roughly the same share of observed values.
"""

import logging
from abc import ABC, abstractmethod
from itertools import combinations
from math import comb
from typing import Dict, Tuple

import numpy as np

from .config import InvariantType, LlahConfig

logger = logging.getLogger(__name__)


def triangle_areas(a: np.ndarray, b: np.ndarray, c: np.ndarray) -> np.ndarray:
    """Absolute areas of the triangles ``(a[i], b[i], c[i])``."""
    ab = b - a
    ac = c - a
    return 0.5 * np.abs(ab[..., 0] * ac[..., 1] - ab[..., 1] * ac[..., 0])


def _ratio(numerator: np.ndarray, denominator: np.ndarray) -> np.ndarray:
    # Degenerate (collinear) configurations become +inf and land in the last bucket
    out = np.full(numerator.shape, np.inf, dtype=np.float64)
    np.divide(numerator, denominator, out=out, where=denominator > 0)
    return out


def tail_fraction(histogram: np.ndarray) -> float:
    """Fraction of the histogram's mass sitting in its last bin."""
    histogram = np.asarray(histogram)
    total = histogram.sum()
    if total == 0:
        return 0.0
    return float(histogram[-1]) / float(total)


def check_histogram_tail(histogram: np.ndarray, num_discrete: int) -> bool:
    """
    Check that invariants are not piling up at the end of the histogram.

    Logs a warning when the last bin holds more than ``0.5 / num_discrete``
    of the mass. That means ``max_invariant_value`` is too small.

    Returns:
        True if the histogram looks fine
    """
    fraction = tail_fraction(histogram)
    max_allowed = 0.5 / num_discrete
    if fraction > max_allowed:
        logger.warning(
            "Last element in histogram has a significant count. %.5f > %.5f "
            "max_invariant_value should be increased",
            fraction, max_allowed
        )
        return False
    return True


class LlahHasher(ABC):
    """
    Base class for computing LLAH hash codes from ordered point sets.

    Subclasses define the invariant family. Until ``learn_discretization``
    is called the buckets split ``[0, max_invariant_value)`` uniformly.
    """

    # Smallest M the invariant family can be computed from
    min_combination_size = 4

    def __init__(
        self,
        num_discrete: int = 100,
        hash_table_size: int = 500_000,
        max_invariant_value: float = 25.0
    ):
        if num_discrete < 2:
            raise ValueError("num_discrete must be at least 2")
        if hash_table_size < 1:
            raise ValueError("hash_table_size must be positive")
        self.hash_table_size = hash_table_size
        self._index_cache: Dict[int, np.ndarray] = {}
        self.set_uniform_discretization(max_invariant_value, num_discrete)

    @property
    @abstractmethod
    def points_per_invariant(self) -> int:
        """How many points a single invariant is computed from."""

    def number_of_invariants(self, size_of_combination: int) -> int:
        """Length of the invariant vector for sets of ``size_of_combination`` points."""
        return comb(size_of_combination, self.points_per_invariant)

    @abstractmethod
    def _invariants_from(self, subsets: np.ndarray) -> np.ndarray:
        """
        Compute one invariant per row of ``subsets``.

        Args:
            subsets: Array of shape (k, points_per_invariant, 2)
        """

    def _combination_indices(self, size_of_combination: int) -> np.ndarray:
        indices = self._index_cache.get(size_of_combination)
        if indices is None:
            indices = np.array(
                list(combinations(range(size_of_combination), self.points_per_invariant)),
                dtype=np.intp
            ).reshape(-1, self.points_per_invariant)
            self._index_cache[size_of_combination] = indices
        return indices

    def compute_invariants(self, points: np.ndarray) -> np.ndarray:
        """
        Compute the invariant vector of an ordered point set.

        Args:
            points: Array of shape (M, 2). Order matters.

        Returns:
            Float array of length ``number_of_invariants(M)``
        """
        points = np.asarray(points, dtype=np.float64)
        return self._invariants_from(points[self._combination_indices(len(points))])

    def set_uniform_discretization(self, max_value: float, num_discrete: int) -> None:
        """Split ``[0, max_value)`` into ``num_discrete`` equal width buckets."""
        if max_value <= 0:
            raise ValueError("max_value must be positive")
        self.num_discrete = num_discrete
        self.max_invariant_value = float(max_value)
        self.boundaries = np.arange(1, num_discrete) * (max_value / num_discrete)

    def learn_discretization(
        self,
        histogram: np.ndarray,
        max_value: float,
        num_discrete: int
    ) -> None:
        """
        Learn bucket boundaries from a histogram of invariant values.

        Boundary k is the upper edge of the first bin where the cumulative
        count reaches ``k / num_discrete`` of the total, which gives every
        bucket roughly the same mass.

        Args:
            histogram: Counts over ``[0, max_value)``, last bin includes overflow
            max_value: Value at the upper edge of the histogram
            num_discrete: Number of buckets
        """
        histogram = np.asarray(histogram, dtype=np.int64)
        total = histogram.sum()
        if total == 0:
            raise ValueError("Can't learn a discretization from an empty histogram")
        if num_discrete < 2:
            raise ValueError("num_discrete must be at least 2")

        cumulative = np.cumsum(histogram)
        targets = total * np.arange(1, num_discrete) / num_discrete
        bins = np.searchsorted(cumulative, targets, side='left')

        self.num_discrete = num_discrete
        self.max_invariant_value = float(max_value)
        self.boundaries = (bins + 1) * (max_value / len(histogram))

    @staticmethod
    def histogram_index(values: np.ndarray, histogram_length: int, max_value: float) -> np.ndarray:
        """Histogram bin of each value. Anything past ``max_value`` goes in the last bin."""
        values = np.nan_to_num(np.asarray(values, dtype=np.float64), nan=max_value, posinf=max_value)
        bins = np.floor(histogram_length * values / max_value)
        return np.clip(bins, 0, histogram_length - 1).astype(np.intp)

    def discretize(self, values: np.ndarray) -> np.ndarray:
        """Bucket index in ``[0, num_discrete)`` for each invariant value."""
        return np.searchsorted(self.boundaries, values, side='right').astype(np.int64)

    def compute_hash(self, discrete: np.ndarray) -> int:
        """Pack discretized invariants into a hash code using mixed radix encoding."""
        hash_code = 0
        radix = 1
        for value in discrete:
            hash_code += int(value) * radix
            radix *= self.num_discrete
        return hash_code % self.hash_table_size

    def compute_feature(self, points: np.ndarray) -> Tuple[int, Tuple[int, ...], np.ndarray]:
        """
        Compute everything a feature needs from an ordered point set.

        Returns:
            Tuple of (hash_code, discretized invariants, continuous invariants)
        """
        values = self.compute_invariants(points)
        discrete = self.discretize(values)
        return self.compute_hash(discrete), tuple(int(v) for v in discrete), values


class AffineHasher(LlahHasher):
    """
    Affine invariant: ratio of two triangle areas sharing a vertex.

    For every ordered 4-combination (a, b, c, d) the invariant is
    ``area(a, c, d) / area(a, b, c)``.
    """

    min_combination_size = 4

    @property
    def points_per_invariant(self) -> int:
        return 4

    def _invariants_from(self, subsets: np.ndarray) -> np.ndarray:
        a, b, c, d = (subsets[:, i] for i in range(4))
        return _ratio(triangle_areas(a, c, d), triangle_areas(a, b, c))


class CrossRatioHasher(LlahHasher):
    """
    Perspective invariant: cross ratio of five points.

    For every ordered 5-combination (a, b, c, d, e) the invariant is
    ``P(a,b,c) * P(a,d,e) / (P(a,b,d) * P(a,c,e))`` where P is the
    triangle area.
    """

    min_combination_size = 5

    @property
    def points_per_invariant(self) -> int:
        return 5

    def _invariants_from(self, subsets: np.ndarray) -> np.ndarray:
        a, b, c, d, e = (subsets[:, i] for i in range(5))
        numerator = triangle_areas(a, b, c) * triangle_areas(a, d, e)
        denominator = triangle_areas(a, b, d) * triangle_areas(a, c, e)
        return _ratio(numerator, denominator)


def create_hasher(config: LlahConfig) -> LlahHasher:
    """Create the hasher selected by the configuration."""
    hasher_types = {
        InvariantType.AFFINE: AffineHasher,
        InvariantType.CROSS_RATIO: CrossRatioHasher,
    }
    hasher_type = hasher_types[InvariantType(config.invariant_type)]
    return hasher_type(
        num_discrete=config.num_discrete,
        hash_table_size=config.hash_table_size,
        max_invariant_value=config.max_invariant_value
    )
