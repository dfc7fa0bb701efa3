"""
Shared fixtures: the five-residue reference used across the test suite.

Backbone (1,2),(2,3),(3,4),(4,5); tertiary reference contacts
(1,3),(1,4),(2,4),(2,5),(3,5). Candidate A holds (1,3),(2,4), candidate B
holds (1,4),(2,5).
"""

import random

import numpy as np
import pytest

from contact_evolve.evolutionary.context import EvolutionContext, Reference
from contact_evolve.reference import ResiduePair

FIVE_RESIDUE_CONTACTS = [(1, 3), (1, 4), (2, 4), (2, 5), (3, 5)]


def chain_distances(sequence_length: int, spacing: float = 3.8) -> np.ndarray:
    """True distances of residues placed on a straight line."""
    positions = np.arange(sequence_length) * spacing
    return np.abs(positions[:, None] - positions[None, :])


def make_context(seed: int = 7, with_distances: bool = False) -> EvolutionContext:
    distances = chain_distances(5) if with_distances else None
    reference = Reference('toy', 5, FIVE_RESIDUE_CONTACTS, distances=distances)
    return EvolutionContext(reference=reference, rng=random.Random(seed))


@pytest.fixture
def context() -> EvolutionContext:
    return make_context()


@pytest.fixture
def context_with_distances() -> EvolutionContext:
    return make_context(with_distances=True)


@pytest.fixture
def pair_a():
    return frozenset({ResiduePair(1, 3), ResiduePair(2, 4)})


@pytest.fixture
def pair_b():
    return frozenset({ResiduePair(1, 4), ResiduePair(2, 5)})
