"""
Locally Likely Arrangement Hashing (LLAH) document registration and lookup.

LLAH describes a point by the geometry of its N nearest neighbors. The
neighbors are sorted by angle, but which one comes first is unknown, so
every cyclic rotation of every M-combination of them is hashed. Documents
are registered by inserting all of these features into a hash table.
Looking up an observed point set computes the same features again and
votes for the documents whose stored features match.

References:
    Nakai, Kise and Iwamura, "Use of affine invariants in locally likely
    arrangement hashing for camera-based document image retrieval",
    Document Analysis Systems, 2006.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set, Tuple

import numpy as np

from .config import LlahConfig
from .hash_table import LlahHashTable
from .hasher import LlahHasher, check_histogram_tail, create_hasher
from .neighbors import CombinationPermutations, NeighborFinder
from .points import PointIndex, PointLike, as_point_array

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class LlahFeature:
    """Hash code and invariants computed from one (point, combination, rotation)."""

    hash_code: int
    document_id: int
    point_id: int
    # Discretized invariants, compared for equality during lookup
    invariants: Tuple[int, ...]
    values: np.ndarray


@dataclass(eq=False)
class LlahDocument:
    """A registered point pattern."""

    document_id: int
    locations: np.ndarray
    features: List[LlahFeature] = field(default_factory=list)

    @property
    def num_points(self) -> int:
        return len(self.locations)


@dataclass(eq=False)
class LlahResult:
    """
    Votes received by one document during a lookup.

    Results are recycled by the workspace that produced them, so copy out
    anything needed before the next lookup.
    """

    document: Optional[LlahDocument] = None
    point_mask: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=bool))
    point_hits: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=np.int64))

    def reset(self) -> None:
        self.document = None
        self.point_mask = np.zeros(0, dtype=bool)
        self.point_hits = np.zeros(0, dtype=np.int64)

    def setup(self, document: LlahDocument) -> None:
        """Point this result at a document and clear its counters."""
        self.document = document
        self.point_mask = np.zeros(document.num_points, dtype=bool)
        self.point_hits = np.zeros(document.num_points, dtype=np.int64)

    def count_matches(self) -> int:
        """Number of document points that were matched at least once."""
        return int(np.count_nonzero(self.point_mask))

    def count_hits(self) -> int:
        """Total number of votes, including repeated votes for a point."""
        return int(self.point_hits.sum())

    def lookup_matches(self, matches: List[PointIndex]) -> List[PointIndex]:
        """
        Export the matched document points.

        Args:
            matches: Storage for the output. It's cleared first.

        Returns:
            The same list, filled with one PointIndex per matched point
        """
        matches.clear()
        if self.document is None:
            return matches
        for index in np.flatnonzero(self.point_mask):
            x, y = self.document.locations[index]
            matches.append(PointIndex(float(x), float(y), int(index)))
        return matches


class LlahWorkspace:
    """
    Scratch state for one caller of an LlahOperations instance.

    Holds the neighbor search structure, a pool of results and the set of
    stored features already counted during the current lookup. Callers
    sharing an index from different threads need one workspace each.
    """

    def __init__(self, num_neighbors: int):
        self.finder = NeighborFinder(num_neighbors)
        self.seen: Set[int] = set()
        self._results: List[LlahResult] = []
        self._used = 0

    def reset(self) -> None:
        """Release all pooled results and forget which features were counted."""
        self._used = 0
        self.seen = set()

    def grow_result(self) -> LlahResult:
        """Take the next result from the pool, creating one if needed."""
        if self._used == len(self._results):
            self._results.append(LlahResult())
        result = self._results[self._used]
        self._used += 1
        result.reset()
        return result


class LlahOperations:
    """
    Registers documents and looks them up with LLAH features.

    Typical use is to ``learn_hashing`` from the point sets which are going
    to be registered, then ``create_document`` for each of them, and later
    ``lookup_documents`` with observed points.
    """

    def __init__(
        self,
        number_of_neighbors: int,
        size_of_combination: int,
        hasher: LlahHasher
    ):
        """
        Args:
            number_of_neighbors: Number of nearest neighbors considered (N)
            size_of_combination: Size of the combinations drawn from the neighbors (M)
            hasher: Computes invariants and hash codes
        """
        if size_of_combination > number_of_neighbors:
            raise ValueError(
                f"size_of_combination ({size_of_combination}) can't be larger than "
                f"number_of_neighbors ({number_of_neighbors})"
            )
        if size_of_combination < hasher.min_combination_size:
            raise ValueError(
                f"{type(hasher).__name__} needs combinations of at least "
                f"{hasher.min_combination_size} points"
            )

        self.number_of_neighbors = number_of_neighbors
        self.size_of_combination = size_of_combination
        self.number_of_invariants = hasher.number_of_invariants(size_of_combination)
        self.hasher = hasher

        self.hash_table = LlahHashTable()
        self.documents: List[LlahDocument] = []
        self.workspace = self.create_workspace()

    @classmethod
    def from_config(cls, config: Optional[LlahConfig] = None) -> 'LlahOperations':
        """Create the operations and their hasher from a configuration."""
        config = config or LlahConfig()
        return cls(config.num_neighbors, config.combination_size, create_hasher(config))

    def create_workspace(self) -> LlahWorkspace:
        """Create independent scratch state for another caller of this index."""
        return LlahWorkspace(self.number_of_neighbors)

    def check_list_size(self, points: PointLike) -> None:
        """
        Ensure there are enough points to compute features.

        Raises:
            ValueError: If there are fewer than N+1 points
        """
        if len(points) < self.number_of_neighbors + 1:
            raise ValueError(
                f"There needs to be at least {self.number_of_neighbors + 1} points"
            )

    def compute_all_features(
        self,
        points: PointLike,
        workspace: Optional[LlahWorkspace] = None
    ) -> CombinationPermutations:
        """Every (point_id, ordered subset) the features of ``points`` are computed from."""
        workspace = workspace or self.workspace
        return CombinationPermutations(points, workspace.finder, self.size_of_combination)

    def learn_hashing(
        self,
        point_sets: Iterable[PointLike],
        num_discrete: int,
        histogram_length: int,
        max_invariant_value: float
    ) -> None:
        """
        Learn the hash function's discretization from a set of documents.

        Must be called before documents are created. Learning after that
        leaves the already registered features inconsistent with lookups.

        Args:
            point_sets: Point sets. Each set represents one document.
            num_discrete: Number of discrete values an invariant is converted to
            histogram_length: Number of bins in the histogram. 100,000 is recommended.
            max_invariant_value: Largest value an invariant is assumed to have.
                                 For affine invariants ~25 works.
        """
        # Fine grained histogram with more extreme values than expected
        histogram = np.zeros(histogram_length, dtype=np.int64)

        num_sets = 0
        for points in point_sets:
            points = as_point_array(points)
            self.check_list_size(points)
            num_sets += 1
            for _, subset in self.compute_all_features(points):
                values = self.hasher.compute_invariants(subset)
                bins = self.hasher.histogram_index(values, histogram_length, max_invariant_value)
                np.add.at(histogram, bins, 1)

        logger.info(
            "Learning discretization from %d point sets (%d invariants)",
            num_sets, int(histogram.sum())
        )

        check_histogram_tail(histogram, num_discrete)
        self.hasher.learn_discretization(histogram, max_invariant_value, num_discrete)

    def create_document(self, points: PointLike) -> LlahDocument:
        """
        Create a new document and add its features to the hash table.

        Args:
            points: Location of the points inside the document

        Returns:
            The registered document

        Raises:
            ValueError: If there are fewer than N+1 points
        """
        points = as_point_array(points)
        self.check_list_size(points)

        locations = points.copy()
        locations.setflags(write=False)
        document = LlahDocument(document_id=len(self.documents), locations=locations)
        self.documents.append(document)

        for point_id, subset in self.compute_all_features(locations):
            hash_code, invariants, values = self.hasher.compute_feature(subset)
            feature = LlahFeature(
                hash_code=hash_code,
                document_id=document.document_id,
                point_id=point_id,
                invariants=invariants,
                values=values
            )
            document.features.append(feature)
            self.hash_table.add(feature)

        logger.debug(
            "Created document %d with %d points and %d features",
            document.document_id, document.num_points, len(document.features)
        )
        return document

    def lookup_documents(
        self,
        points: PointLike,
        output: Dict[int, LlahResult],
        workspace: Optional[LlahWorkspace] = None
    ) -> None:
        """
        Look up all the documents which match the observed points.

        Args:
            points: Observed point locations
            output: Filled with document_id -> LlahResult. Cleared first.
                    WARNING: results are recycled by the next lookup.
            workspace: Scratch state to use. Defaults to this instance's own.

        Raises:
            ValueError: If there are fewer than N+1 points
        """
        points = as_point_array(points)
        self.check_list_size(points)
        workspace = workspace or self.workspace

        output.clear()
        workspace.reset()

        for _, subset in self.compute_all_features(points, workspace):
            hash_code, invariants, _ = self.hasher.compute_feature(subset)
            self._vote(hash_code, invariants, output, workspace)

        logger.debug(
            "Lookup of %d points matched %d documents", len(points), len(output)
        )

    def _vote(
        self,
        hash_code: int,
        invariants: Tuple[int, ...],
        output: Dict[int, LlahResult],
        workspace: LlahWorkspace
    ) -> None:
        """Vote for the first stored feature matching the probe that hasn't been counted yet."""
        for index in self.hash_table.lookup(hash_code):
            found = self.hash_table.get(index)

            if found.invariants != invariants:
                continue

            # A stored feature is only counted once per lookup
            if index in workspace.seen:
                continue
            workspace.seen.add(index)

            result = output.get(found.document_id)
            if result is None:
                result = workspace.grow_result()
                result.setup(self.documents[found.document_id])
                output[found.document_id] = result

            result.point_mask[found.point_id] = True
            result.point_hits[found.point_id] += 1

            # The probe is only allowed to match once
            break

    def get_stats(self) -> Dict[str, float]:
        """
        Get statistics about the index.

        Returns:
            Dictionary with index statistics
        """
        if not self.documents:
            return {
                'total_documents': 0,
                'total_features': 0,
                'buckets': 0,
                'largest_bucket': 0,
                'average_points': 0.0
            }

        return {
            'total_documents': len(self.documents),
            'total_features': len(self.hash_table),
            'buckets': self.hash_table.bucket_count(),
            'largest_bucket': self.hash_table.largest_bucket(),
            'average_points': float(np.mean([d.num_points for d in self.documents]))
        }
