"""
Reference structures and the structural collaborators of the optimizer.

Provides residue pairs and contact sets, reference providers, the random
contact sampler and triangle-inequality bound inference.
"""

from .contacts import (
    ResiduePair,
    ContactSet,
    as_contact_set,
    backbone_pairs,
    tertiary_only,
)
from .bounds import (
    BoundMatrix,
    TriangleBoundInferrer,
    BACKBONE_CA_DISTANCE,
    MIN_CA_DISTANCE,
    DEFAULT_CONTACT_CUTOFF,
)
from .providers import (
    ReferenceData,
    ReferenceProvider,
    InMemoryReferenceProvider,
    ContactSampler,
    reference_data_from_coordinates,
    random_contact_subset,
)

__all__ = [
    'ResiduePair',
    'ContactSet',
    'as_contact_set',
    'backbone_pairs',
    'tertiary_only',
    'BoundMatrix',
    'TriangleBoundInferrer',
    'BACKBONE_CA_DISTANCE',
    'MIN_CA_DISTANCE',
    'DEFAULT_CONTACT_CUTOFF',
    'ReferenceData',
    'ReferenceProvider',
    'InMemoryReferenceProvider',
    'ContactSampler',
    'reference_data_from_coordinates',
    'random_contact_subset',
]
