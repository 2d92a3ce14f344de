"""
Inverted index from hash code to the features which produced it.
"""

from collections import defaultdict
from typing import TYPE_CHECKING, Dict, Iterator, List

if TYPE_CHECKING:
    from .operations import LlahFeature


class LlahHashTable:
    """
    Hash table for LLAH features.

    Features live in a flat arena and each bucket stores indices into it.
    Unrelated features are expected to share buckets since the
    discretization is coarse on purpose.
    """

    def __init__(self):
        self.features: List['LlahFeature'] = []
        self._buckets: Dict[int, List[int]] = defaultdict(list)

    def add(self, feature: 'LlahFeature') -> int:
        """
        Add a feature to the table.

        Returns:
            Index of the feature inside the arena
        """
        index = len(self.features)
        self.features.append(feature)
        self._buckets[feature.hash_code].append(index)
        return index

    def lookup(self, hash_code: int) -> Iterator[int]:
        """Arena indices of every feature with this hash code, newest first."""
        bucket = self._buckets.get(hash_code)
        if not bucket:
            return iter(())
        return reversed(bucket)

    def get(self, index: int) -> 'LlahFeature':
        return self.features[index]

    def bucket_count(self) -> int:
        return len(self._buckets)

    def largest_bucket(self) -> int:
        if not self._buckets:
            return 0
        return max(len(bucket) for bucket in self._buckets.values())

    def __len__(self) -> int:
        return len(self.features)
