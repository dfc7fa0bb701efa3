"""
Test suite for bound inference and the fitness functions.

Tests cover:
- Initial bounds and triangle-inequality closure
- Contact map error and distance map error on handcrafted bounds
- The candidate evaluator and per-candidate caching
- Reference providers and the contact sampler
"""

import random

import numpy as np
import pytest

from contact_evolve.evolutionary.contact_map import ContactMap
from contact_evolve.evolutionary.fitness import (
    CandidateEvaluator,
    ErrorScores,
    contact_map_error,
    distance_map_error,
)
from contact_evolve.exceptions import NoSuchEntryError
from contact_evolve.reference import (
    BoundMatrix,
    InMemoryReferenceProvider,
    ReferenceData,
    ResiduePair,
    TriangleBoundInferrer,
    random_contact_subset,
    reference_data_from_coordinates,
)

from conftest import FIVE_RESIDUE_CONTACTS, chain_distances


def two_residue_bounds(upper: float) -> BoundMatrix:
    return BoundMatrix(
        lower=np.zeros((2, 2)),
        upper=np.array([[0.0, upper], [upper, 0.0]])
    )


class TestTriangleBoundInferrer:
    """Test bound inference from sparse contacts."""

    def test_initial_bounds(self):
        """Test that only backbone and contact pairs are bounded before closure."""
        bounds = TriangleBoundInferrer().initial_bounds([ResiduePair(1, 4)], 5)
        assert bounds.upper[0, 1] == pytest.approx(3.8)
        assert bounds.lower[0, 1] == pytest.approx(3.8)
        assert bounds.upper[0, 3] == pytest.approx(9.0)
        assert bounds.lower[3, 0] == pytest.approx(2.8)
        assert np.isinf(bounds.upper[0, 2])

    def test_backbone_closure(self):
        """Test that a bare chain closes to 3.8 A per residue step."""
        bounds = TriangleBoundInferrer()([], 5)
        for i in range(5):
            for j in range(5):
                assert bounds.upper[i, j] == pytest.approx(3.8 * abs(i - j))

    def test_contact_shortcut(self):
        """Test that a contact shortens paths through it."""
        bounds = TriangleBoundInferrer()([ResiduePair(1, 4)], 5)
        assert bounds.upper[0, 3] == pytest.approx(9.0)
        assert bounds.upper[0, 4] == pytest.approx(12.8)

    def test_bounds_consistent(self):
        """Test symmetry and lower <= upper after closure."""
        contacts = [ResiduePair(*p) for p in FIVE_RESIDUE_CONTACTS]
        bounds = TriangleBoundInferrer()(contacts, 5)
        assert np.allclose(bounds.upper, bounds.upper.T)
        assert np.allclose(bounds.lower, bounds.lower.T)
        assert np.all(bounds.lower <= bounds.upper + 1e-9)
        assert np.all(np.diag(bounds.lower) == 0.0)
        assert bounds.has_bound(0, 4)

    def test_invalid_distances(self):
        """Test that min_distance above the cutoff is rejected."""
        with pytest.raises(ValueError):
            TriangleBoundInferrer(contact_cutoff=2.0, min_distance=2.8)


class TestErrorFunctions:
    """Test the pure error functions on handcrafted bounds."""

    def test_contact_map_error_excess(self):
        """Test that looser inferred bounds are penalized by their excess."""
        error = contact_map_error(two_residue_bounds(7.0), two_residue_bounds(5.0), 1)
        assert error == pytest.approx(2.0)

    def test_contact_map_error_tighter_is_free(self):
        """Test that tighter inferred bounds are not penalized."""
        assert contact_map_error(two_residue_bounds(4.0), two_residue_bounds(5.0), 1) == 0.0

    def test_contact_map_error_normalized(self):
        """Test normalization by the reference contact count."""
        error = contact_map_error(two_residue_bounds(7.0), two_residue_bounds(5.0), 4)
        assert error == pytest.approx(0.5)

    def test_contact_map_error_skips_unbounded_reference(self):
        """Test that pairs without a reference bound do not count."""
        assert contact_map_error(two_residue_bounds(7.0), two_residue_bounds(np.inf), 1) == 0.0

    def test_contact_map_error_size_mismatch(self):
        """Test that differently sized bounds are rejected."""
        with pytest.raises(ValueError):
            contact_map_error(two_residue_bounds(1.0), TriangleBoundInferrer()([], 3), 1)

    def test_distance_map_error(self):
        """Test 2 / (n (n - 1)) * sqrt(sum of squared excess)."""
        distances = np.array([[0.0, 3.0], [3.0, 0.0]])
        assert distance_map_error(two_residue_bounds(5.0), distances) == pytest.approx(2.0)

    def test_distance_map_error_tight_bounds(self):
        """Test that bounds at or below the true distance cost nothing."""
        distances = np.array([[0.0, 3.0], [3.0, 0.0]])
        assert distance_map_error(two_residue_bounds(3.0), distances) == 0.0

    def test_distance_map_error_zero_distance_skipped(self):
        """Test that zero true distances are ignored."""
        distances = np.zeros((2, 2))
        assert distance_map_error(two_residue_bounds(5.0), distances) == 0.0


class TestCandidateEvaluator:
    """Test scoring candidates against the reference."""

    def test_full_reference_scores_zero(self, context):
        """Test that the reference's own contacts reproduce its bounds."""
        evaluator = CandidateEvaluator(context.reference, TriangleBoundInferrer())
        assert evaluator.contact_map_error(context.reference.full_contacts) == pytest.approx(0.0)

    def test_subset_scores_positive(self, context, pair_a):
        """Test that dropping contacts loosens bounds."""
        candidate = ContactMap(pair_a, context)
        scores = candidate.errors()
        assert isinstance(scores, ErrorScores)
        assert scores.contact_map_error > 0.0
        assert scores.distance_map_error is None

    def test_errors_cached(self, context, pair_a):
        """Test that a candidate evaluates only once."""
        candidate = ContactMap(pair_a, context)
        assert candidate.errors() is candidate.errors()
        assert 'contact_map_error' in candidate.to_dict()

    def test_distance_map_error_requires_distances(self, context, pair_a):
        """Test that the distance error needs a distance matrix."""
        with pytest.raises(ValueError):
            context.evaluator.distance_map_error(pair_a)

    def test_distance_map_error_with_distances(self, context_with_distances, pair_a):
        """Test that both errors are computed when distances exist."""
        candidate = ContactMap(pair_a, context_with_distances)
        scores = candidate.errors()
        assert scores.distance_map_error is not None
        assert scores.distance_map_error >= 0.0

    def test_evaluator_shared(self, context):
        """Test that the context hands out one evaluator."""
        assert context.evaluator is context.evaluator


class TestProviders:
    """Test reference providers and the contact sampler."""

    def test_in_memory_provider(self):
        """Test registering and fetching reference data."""
        data = ReferenceData('toy', 5, FIVE_RESIDUE_CONTACTS)
        provider = InMemoryReferenceProvider([data])
        assert provider.get_reference_contacts('toy') is data
        assert 'toy' in provider
        assert len(provider) == 1

    def test_unknown_protein(self):
        """Test that unknown ids raise NoSuchEntryError."""
        with pytest.raises(NoSuchEntryError):
            InMemoryReferenceProvider().get_reference_contacts('nope')

    def test_reference_data_validation(self):
        """Test rejection of malformed reference data."""
        with pytest.raises(ValueError):
            ReferenceData('toy', 1, [])
        with pytest.raises(ValueError):
            ReferenceData('toy', 5, [(1, 9)])
        with pytest.raises(ValueError):
            ReferenceData('toy', 5, FIVE_RESIDUE_CONTACTS, distances=np.zeros((4, 4)))

    def test_contacts_from_coordinates(self):
        """Test deriving contacts from residues spaced 3.8 A on a line."""
        coordinates = [[3.8 * i, 0.0, 0.0] for i in range(5)]
        data = reference_data_from_coordinates('line', coordinates, cutoff=8.0)
        assert data.contacts == {ResiduePair(1, 3), ResiduePair(2, 4), ResiduePair(3, 5)}
        assert np.allclose(data.distances, chain_distances(5))

    def test_coordinates_shape(self):
        """Test that coordinates must be (n, 3)."""
        with pytest.raises(ValueError):
            reference_data_from_coordinates('bad', [[0.0, 1.0]])

    def test_random_subset(self):
        """Test sampling size, membership and reproducibility."""
        contacts = frozenset(ResiduePair(*p) for p in FIVE_RESIDUE_CONTACTS)
        sample = random_contact_subset(contacts, 3, random.Random(4))
        assert len(sample) == 3
        assert sample <= contacts
        assert sample == random_contact_subset(contacts, 3, random.Random(4))
        assert random_contact_subset(contacts, 0) == frozenset()

    def test_random_subset_bounds(self):
        """Test that invalid sample sizes are rejected."""
        contacts = frozenset(ResiduePair(*p) for p in FIVE_RESIDUE_CONTACTS)
        with pytest.raises(ValueError):
            random_contact_subset(contacts, -1)
        with pytest.raises(ValueError):
            random_contact_subset(contacts, 6)
