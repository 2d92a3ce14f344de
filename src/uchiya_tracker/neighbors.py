"""
Local neighborhoods used to build LLAH features.

For every point the N nearest neighbors are found and ordered by angle
around the point. Which neighbor comes first depends on how the scene was
observed, but their cyclic order does not, so every M-combination of the
neighbors is produced in each of its M cyclic rotations.
"""

from itertools import combinations
from math import comb
from typing import Iterator, Optional, Tuple

import numpy as np
from scipy.spatial import KDTree

from .points import PointLike, as_point_array


class NeighborFinder:
    """
    Finds the N nearest neighbors of a point, sorted by angle.

    The KD-tree is rebuilt by ``set_points``. Documents are added rarely and
    never removed so incremental maintenance isn't worth it.
    """

    def __init__(self, num_neighbors: int):
        """
        Args:
            num_neighbors: Number of neighbors (N) returned for each point
        """
        if num_neighbors < 1:
            raise ValueError("num_neighbors must be at least 1")
        self.num_neighbors = num_neighbors
        self.points = np.empty((0, 2), dtype=np.float64)
        self._tree: Optional[KDTree] = None

    def set_points(self, points: PointLike) -> None:
        """
        Build the proximity index over the full point set.

        Raises:
            ValueError: If there are fewer than N+1 points
        """
        points = as_point_array(points)
        if len(points) < self.num_neighbors + 1:
            raise ValueError(
                f"There needs to be at least {self.num_neighbors + 1} points"
            )
        self.points = points
        self._tree = KDTree(points)

    def find_neighbors(self, target_index: int) -> np.ndarray:
        """
        Find the neighbors of one point in the current point set.

        Args:
            target_index: Index of the target point

        Returns:
            Indices of the N nearest neighbors, ordered by
            ``atan2(dy, dx)`` around the target, ascending
        """
        if self._tree is None:
            raise ValueError("set_points() must be called first")

        target = self.points[target_index]
        _, indices = self._tree.query(target, k=self.num_neighbors + 1)
        indices = np.asarray(indices, dtype=np.intp)

        # The target is its own nearest neighbor. With duplicated coordinates
        # it can be pushed out of the result, then drop the farthest instead.
        keep = indices != target_index
        if keep.all():
            neighbors = indices[:-1]
        else:
            neighbors = indices[keep]

        offsets = self.points[neighbors] - target
        angles = np.arctan2(offsets[:, 1], offsets[:, 0])
        return neighbors[np.argsort(angles, kind='stable')]


class CombinationPermutations:
    """
    Lazy sequence of ``(point_id, subset)`` pairs for a point set.

    Order is angular order, then combination order, then rotation order.
    That order decides which rotation a stored feature corresponds to, so
    registration and lookup must both go through this class. Each call to
    ``iter()`` starts over and nothing is buffered.
    """

    def __init__(
        self,
        points: PointLike,
        finder: NeighborFinder,
        size_of_combination: int
    ):
        if size_of_combination > finder.num_neighbors:
            raise ValueError("Combination size can't be larger than the number of neighbors")
        self.points = as_point_array(points)
        self.finder = finder
        self.size_of_combination = size_of_combination

    def __len__(self) -> int:
        return count_permutations(
            len(self.points), self.finder.num_neighbors, self.size_of_combination
        )

    def __iter__(self) -> Iterator[Tuple[int, np.ndarray]]:
        m = self.size_of_combination
        self.finder.set_points(self.points)

        for point_id in range(len(self.points)):
            neighbors = self.finder.find_neighbors(point_id)

            for combo in combinations(neighbors, m):
                set_m = self.points[list(combo)]
                # When looking up, the first observed point is unknown
                for shift in range(m):
                    yield point_id, np.roll(set_m, -shift, axis=0)


def count_permutations(num_points: int, num_neighbors: int, size_of_combination: int) -> int:
    """Number of subsets produced for a point set: ``n * C(N, M) * M``."""
    return num_points * comb(num_neighbors, size_of_combination) * size_of_combination
