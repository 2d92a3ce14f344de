"""
Tests for LLAH document registration and lookup.
"""

import logging

import pytest
import numpy as np
from math import comb

from uchiya_tracker.config import LlahConfig
from uchiya_tracker.hasher import AffineHasher, CrossRatioHasher
from uchiya_tracker.operations import LlahOperations, LlahResult
from uchiya_tracker.points import PointIndex


def random_points(seed, count=20):
    return np.random.default_rng(seed).uniform(-2, 2, size=(count, 2))


def create_ops(point_sets, num_discrete=100, N=7, M=5):
    """Operations with the discretization learned from ``point_sets``."""
    ops = LlahOperations(N, M, AffineHasher(num_discrete=num_discrete))
    ops.learn_hashing(point_sets, num_discrete, 100_000, 25.0)
    return ops


class TestConstruction:
    """Test creating LlahOperations."""

    def test_from_config(self):
        ops = LlahOperations.from_config(LlahConfig(num_neighbors=8, combination_size=6))
        assert ops.number_of_neighbors == 8
        assert ops.size_of_combination == 6
        assert ops.number_of_invariants == comb(6, 4)
        assert isinstance(ops.hasher, AffineHasher)

    def test_default_config(self):
        ops = LlahOperations.from_config()
        assert ops.number_of_neighbors == 7
        assert ops.number_of_invariants == 5

    def test_combination_larger_than_neighbors(self):
        with pytest.raises(ValueError):
            LlahOperations(4, 5, AffineHasher())

    def test_combination_too_small_for_hasher(self):
        with pytest.raises(ValueError):
            LlahOperations(7, 4, CrossRatioHasher())


class TestCheckListSize:
    """Test the input size gate."""

    def test_boundary(self):
        ops = LlahOperations(7, 5, AffineHasher())
        with pytest.raises(ValueError):
            ops.check_list_size(random_points(0, count=7))
        ops.check_list_size(random_points(0, count=8))

    def test_create_rejects_small_sets(self):
        ops = LlahOperations(7, 5, AffineHasher())
        with pytest.raises(ValueError, match="at least 8 points"):
            ops.create_document(random_points(0, count=7))
        assert ops.documents == []
        assert len(ops.hash_table) == 0

    def test_lookup_rejects_small_sets(self):
        ops = LlahOperations(7, 5, AffineHasher())
        output = {}
        with pytest.raises(ValueError):
            ops.lookup_documents(random_points(0, count=7), output)


class TestLearnHashing:
    """Test learning the discretization."""

    def test_learned_boundaries(self):
        ops = create_ops([random_points(1), random_points(2)], num_discrete=20)
        boundaries = ops.hasher.boundaries

        assert ops.hasher.num_discrete == 20
        assert len(boundaries) == 19
        assert np.all(np.diff(boundaries) >= 0)
        assert boundaries[-1] <= 25.0

    def test_learned_buckets_are_balanced(self):
        """Invariants of the training data spread evenly across buckets."""
        point_sets = [random_points(seed) for seed in range(3)]
        ops = create_ops(point_sets, num_discrete=10)

        values = np.concatenate([
            ops.hasher.compute_invariants(subset)
            for points in point_sets
            for _, subset in ops.compute_all_features(points)
        ])
        counts = np.bincount(ops.hasher.discretize(values), minlength=10)
        expected = len(values) / 10
        assert np.all(np.abs(counts - expected) < 0.1 * expected)

    def test_warns_when_values_clip(self, caplog):
        """A max_invariant_value which is far too small triggers the warning."""
        ops = LlahOperations(7, 5, AffineHasher())
        with caplog.at_level(logging.WARNING, logger="uchiya_tracker.hasher"):
            ops.learn_hashing([random_points(1)], 10, 1000, 0.5)

        assert any("max_invariant_value" in r.getMessage() for r in caplog.records)
        # Learning still completes
        assert ops.hasher.num_discrete == 10
        assert len(ops.hasher.boundaries) == 9

    def test_small_training_set_rejected(self):
        ops = LlahOperations(7, 5, AffineHasher())
        with pytest.raises(ValueError):
            ops.learn_hashing([random_points(1, count=5)], 10, 1000, 25.0)


class TestCreateDocument:
    """Test registering documents."""

    def test_sequential_ids(self):
        point_sets = [random_points(seed) for seed in range(3)]
        ops = create_ops(point_sets)

        documents = [ops.create_document(points) for points in point_sets]
        assert [d.document_id for d in documents] == [0, 1, 2]
        assert ops.documents == documents

    def test_features(self):
        points = random_points(4)
        ops = create_ops([points])
        document = ops.create_document(points)

        expected = 20 * comb(7, 5) * 5
        assert len(document.features) == expected
        assert len(ops.hash_table) == expected
        for feature in document.features:
            assert feature.document_id == 0
            assert 0 <= feature.point_id < 20
            assert len(feature.invariants) == ops.number_of_invariants

    def test_points_are_copied(self):
        points = random_points(4)
        ops = create_ops([points])
        document = ops.create_document(points)

        points[0] = [100.0, 100.0]
        assert document.locations[0, 0] != 100.0
        with pytest.raises(ValueError):
            document.locations[0, 0] = 1.0

    def test_accepts_tuples(self):
        points = [tuple(p) for p in random_points(4)]
        ops = create_ops([points])
        document = ops.create_document(points)
        assert document.num_points == 20


class TestLookupDocuments:
    """Test looking up documents."""

    def test_self_recall(self):
        """A document's own points match every one of its points."""
        points = random_points(10)
        ops = create_ops([points])
        ops.create_document(points)

        output = {}
        ops.lookup_documents(points, output)

        assert 0 in output
        assert output[0].count_matches() == 20
        assert output[0].count_hits() == 20 * comb(7, 5) * 5

    def test_unrelated_points(self):
        """An unrelated point set matches few if any points."""
        points = random_points(10)
        ops = create_ops([points])
        ops.create_document(points)

        output = {}
        ops.lookup_documents(random_points(99), output)

        assert 0 not in output or output[0].count_matches() < 3

    def test_disjoint_documents(self):
        """Two random documents don't match each other."""
        a = random_points(20)
        b = random_points(21)
        ops = create_ops([a, b])
        ops.create_document(a)
        ops.create_document(b)

        output = {}
        ops.lookup_documents(a, output)
        assert output[0].count_matches() == 20
        assert 1 not in output or output[1].count_matches() < 3

        ops.lookup_documents(b, output)
        assert output[1].count_matches() == 20
        assert 0 not in output or output[0].count_matches() < 3

    def test_reordered_lookup(self):
        """The order points are observed in doesn't matter."""
        points = random_points(30)
        ops = create_ops([points])
        ops.create_document(points)

        output = {}
        order = np.random.default_rng(1).permutation(20)
        ops.lookup_documents(points[order], output)

        assert output[0].count_matches() == 20

    def test_reordered_document(self):
        """The order points were registered in doesn't matter."""
        points = random_points(31)
        order = np.random.default_rng(2).permutation(20)
        ops = create_ops([points])
        ops.create_document(points[order])

        output = {}
        ops.lookup_documents(points, output)

        assert output[0].count_matches() == 20

    def test_rotated_scaled_lookup(self):
        """A rotated, scaled and shifted observation still matches."""
        points = random_points(32)
        ops = create_ops([points])
        ops.create_document(points)

        theta = 0.7
        rotation = np.array([[np.cos(theta), -np.sin(theta)], [np.sin(theta), np.cos(theta)]])
        observed = 3.0 * points @ rotation.T + np.array([50.0, -20.0])

        output = {}
        ops.lookup_documents(observed, output)

        assert output[0].count_matches() >= 15

    def test_partial_occlusion(self):
        """Some points still match when part of the document is hidden."""
        points = random_points(33, count=30)
        ops = create_ops([points])
        ops.create_document(points)

        visible = points[points[:, 0] < 0.5]
        assert len(visible) >= 8

        output = {}
        ops.lookup_documents(visible, output)

        assert 0 in output
        assert output[0].count_matches() > 0
        matched = []
        output[0].lookup_matches(matched)
        assert len(matched) == output[0].count_matches()

    def test_output_is_cleared(self):
        points = random_points(10)
        ops = create_ops([points])
        ops.create_document(points)

        output = {42: LlahResult()}
        ops.lookup_documents(points, output)
        assert 42 not in output

    def test_results_are_recycled(self):
        """The same pooled result object is reused by the next lookup."""
        points = random_points(10)
        ops = create_ops([points])
        ops.create_document(points)

        output = {}
        ops.lookup_documents(points, output)
        first = output[0]
        ops.lookup_documents(points, output)
        assert output[0] is first
        assert first.count_matches() == 20

    def test_separate_workspace(self):
        """A second workspace gives identical results without touching the first."""
        points = random_points(10)
        ops = create_ops([points])
        ops.create_document(points)

        output_a = {}
        output_b = {}
        workspace = ops.create_workspace()
        ops.lookup_documents(points, output_a)
        ops.lookup_documents(points[:12], output_b, workspace)

        assert output_a[0] is not output_b.get(0)
        assert output_a[0].count_matches() == 20

    def test_each_stored_feature_counted_once(self):
        """Hits never exceed the number of stored features of a point."""
        points = random_points(12)
        ops = create_ops([points], num_discrete=10)
        ops.create_document(points)

        output = {}
        ops.lookup_documents(points, output)

        per_point = comb(7, 5) * 5
        assert output[0].point_hits.max() <= per_point
        assert output[0].count_hits() <= len(ops.hash_table)

    def test_one_vote_per_observed_subset(self):
        """Each observed subset votes at most once even when many stored features share its invariants."""
        points = random_points(13, count=40)
        ops = create_ops([points], num_discrete=2)
        ops.create_document(points)

        observed = points[:8]
        output = {}
        ops.lookup_documents(observed, output)

        subsets = len(observed) * comb(7, 5) * 5
        assert len(ops.hash_table) > subsets
        assert 0 in output
        assert output[0].count_hits() <= subsets


class TestLlahResult:
    """Test the per document result."""

    def test_counts_and_matches(self):
        points = random_points(10)
        ops = create_ops([points])
        document = ops.create_document(points)

        result = LlahResult()
        result.setup(document)
        result.point_mask[[2, 5]] = True
        result.point_hits[2] = 3
        result.point_hits[5] = 1

        assert result.count_matches() == 2
        assert result.count_hits() == 4

        matches = [PointIndex(0.0, 0.0, 99)]
        result.lookup_matches(matches)
        assert [m.index for m in matches] == [2, 5]
        assert matches[0].x == pytest.approx(points[2, 0])
        assert matches[1].y == pytest.approx(points[5, 1])

    def test_reset(self):
        result = LlahResult()
        result.point_mask = np.ones(3, dtype=bool)
        result.point_hits = np.ones(3, dtype=np.int64)
        result.reset()

        assert result.document is None
        assert result.count_matches() == 0
        assert result.count_hits() == 0
        assert result.lookup_matches([]) == []


class TestStats:
    """Test index statistics."""

    def test_empty(self):
        stats = LlahOperations(7, 5, AffineHasher()).get_stats()
        assert stats['total_documents'] == 0
        assert stats['total_features'] == 0

    def test_with_documents(self):
        point_sets = [random_points(1), random_points(2, count=25)]
        ops = create_ops(point_sets)
        for points in point_sets:
            ops.create_document(points)

        stats = ops.get_stats()
        assert stats['total_documents'] == 2
        assert stats['total_features'] == 45 * comb(7, 5) * 5
        assert stats['buckets'] > 0
        assert stats['largest_bucket'] >= 1
        assert stats['average_points'] == pytest.approx(22.5)
