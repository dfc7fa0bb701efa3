"""
Evolution context: the reference structure of one protein and the shared
services (random number generator, sampler, bound inference) every candidate,
population and species of a run is built against.

References are created on first use per protein id and are read-only while an
evolution is in flight; a registry owns them instead of process-wide state.
"""

import logging
import random
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, Mapping, Optional, Union

import numpy as np

from ..algebra import SparseRelationMatrix
from ..exceptions import NoSuchEntryError
from ..reference import (
    BoundMatrix,
    ContactSampler,
    ContactSet,
    ReferenceData,
    ReferenceProvider,
    ResiduePair,
    TriangleBoundInferrer,
    as_contact_set,
    backbone_pairs,
    random_contact_subset,
    tertiary_only,
)

logger = logging.getLogger(__name__)

BoundInferrer = Callable[[Iterable[ResiduePair], int], BoundMatrix]
WeightedContacts = Union[Mapping[ResiduePair, float], Iterable]

# power 3 statistics need mat^1..mat^3
MIN_POTENCE = 4


def contact_matrix(
    contacts: WeightedContacts,
    sequence_length: int
) -> SparseRelationMatrix:
    """Build the symmetric contact matrix of a contact set plus the backbone.

    Args:
        contacts: Contact pairs, or a mapping of pair -> weight
        sequence_length: Number of residues (matrix dimension)

    Returns:
        Square matrix with every contact stored at (i, j) and (j, i); backbone
        pairs always carry weight 1.0
    """
    if isinstance(contacts, Mapping):
        weighted = {
            p if isinstance(p, ResiduePair) else ResiduePair(*p): w
            for p, w in contacts.items()
        }
    else:
        weighted = {p: 1.0 for p in as_contact_set(contacts)}

    matrix = SparseRelationMatrix(sequence_length)
    for pair, weight in weighted.items():
        i, j = pair.to_indices()
        matrix.set(i, j, weight)
        matrix.set(j, i, weight)
    for pair in backbone_pairs(sequence_length):
        i, j = pair.to_indices()
        matrix.set(i, j, 1.0)
        matrix.set(j, i, 1.0)
    return matrix


class Reference:
    """Full contact structure of one protein, shared read-only by its candidates.

    Attributes:
        protein_id: Identifier of the protein
        sequence_length: Number of residues
        tertiary_contacts: Evolvable (non-backbone) reference contacts
        full_contacts: Tertiary contacts plus backbone
        mat: Symmetric matrix of full_contacts
        square: mat . mat
        cube: square . mat
        distances: Optional true distance matrix
    """

    def __init__(
        self,
        protein_id: str,
        sequence_length: int,
        contacts: Iterable,
        distances: Optional[np.ndarray] = None
    ):
        self.protein_id = protein_id
        self.sequence_length = sequence_length
        self.tertiary_contacts: ContactSet = tertiary_only(as_contact_set(contacts))
        self.full_contacts: ContactSet = self.tertiary_contacts | backbone_pairs(sequence_length)
        self.distances = distances

        self.mat = contact_matrix(self.tertiary_contacts, sequence_length)
        self.square = self.mat.multiply(self.mat)
        self.cube = self.square.multiply(self.mat)
        self._powers = {1: self.mat, 2: self.square, 3: self.cube}
        self._bounds: Optional[BoundMatrix] = None

        logger.info(
            f"Reference {protein_id}: {sequence_length} residues, "
            f"{len(self.tertiary_contacts)} tertiary contacts"
        )

    @classmethod
    def from_data(cls, data: ReferenceData) -> 'Reference':
        return cls(data.protein_id, data.sequence_length, data.contacts, data.distances)

    @property
    def edge_count(self) -> int:
        """Number of contacts in the full reference (backbone included)."""
        return len(self.full_contacts)

    def power(self, k: int) -> SparseRelationMatrix:
        """Return mat^k for k in 1..3.

        Raises:
            NoSuchEntryError: For any other power
        """
        try:
            return self._powers[k]
        except KeyError:
            raise NoSuchEntryError(
                f"Reference {self.protein_id} has no power {k}; available {sorted(self._powers)}"
            ) from None

    def bounds(self, inferrer: BoundInferrer) -> BoundMatrix:
        """Closed distance bounds of the full reference, inferred once."""
        if self._bounds is None:
            self._bounds = inferrer(self.full_contacts, self.sequence_length)
        return self._bounds


class ReferenceRegistry:
    """Creates references on first use and keeps them until cleared."""

    def __init__(self, provider: ReferenceProvider):
        self.provider = provider
        self._references: Dict[str, Reference] = {}

    def get(self, protein_id: str) -> Reference:
        reference = self._references.get(protein_id)
        if reference is None:
            reference = Reference.from_data(self.provider.get_reference_contacts(protein_id))
            self._references[protein_id] = reference
        return reference

    def clear(self, protein_id: Optional[str] = None) -> None:
        """Drop one reference, or all of them when protein_id is None."""
        if protein_id is None:
            self._references.clear()
        else:
            self._references.pop(protein_id, None)
        logger.debug(f"Cleared reference registry entry: {protein_id or 'all'}")

    def context(self, protein_id: str, seed: Optional[int] = None, **kwargs) -> 'EvolutionContext':
        """Return a fresh evolution context for protein_id."""
        return EvolutionContext(reference=self.get(protein_id), rng=random.Random(seed), **kwargs)

    def __contains__(self, protein_id: str) -> bool:
        return protein_id in self._references


@dataclass
class EvolutionContext:
    """Everything a run shares: the reference and one seedable RNG.

    Attributes:
        reference: Reference structure of the protein being evolved
        rng: The random number generator threaded through the whole run
        sampler: Draws k contacts from the reference
        bound_inferrer: Closes a contact set into complete distance bounds
        max_potence: Candidates keep mat^1 .. mat^(max_potence - 1)
    """
    reference: Reference
    rng: random.Random = field(default_factory=random.Random)
    sampler: ContactSampler = random_contact_subset
    bound_inferrer: BoundInferrer = field(default_factory=TriangleBoundInferrer)
    max_potence: int = MIN_POTENCE
    _evaluator: Optional[object] = field(default=None, init=False, repr=False)

    def __post_init__(self):
        if self.max_potence < MIN_POTENCE:
            raise ValueError(f"max_potence must be at least {MIN_POTENCE}, got {self.max_potence}")

    @classmethod
    def create(cls, reference: Reference, seed: Optional[int] = None, **kwargs) -> 'EvolutionContext':
        return cls(reference=reference, rng=random.Random(seed), **kwargs)

    @property
    def protein_id(self) -> str:
        return self.reference.protein_id

    @property
    def evaluator(self):
        """Cached CandidateEvaluator bound to this context's reference."""
        if self._evaluator is None:
            from .fitness import CandidateEvaluator
            self._evaluator = CandidateEvaluator(self.reference, self.bound_inferrer)
        return self._evaluator

    def spawn_rng(self) -> random.Random:
        """Derive an independent generator from the shared one."""
        return random.Random(self.rng.getrandbits(64))
