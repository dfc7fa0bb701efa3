"""
Contact map candidates.

A candidate is a set of tertiary contacts of one protein wrapped as a symmetric
sparse matrix (backbone always included), together with its power series and
the native/non-native statistics of its second and third powers measured
against the shared reference.
"""

import logging
import random
from typing import Any, Dict, Iterable, List, Mapping, Optional

from ..algebra import SparseRelationMatrix
from ..exceptions import CrossoverExhaustedError, NoSuchEntryError, ProteinMismatchError
from ..reference import ContactSet, ResiduePair, as_contact_set, backbone_pairs
from ..reference.contacts import check_in_range
from .context import EvolutionContext, WeightedContacts, contact_matrix
from .fitness import ErrorScores

logger = logging.getLogger(__name__)

SCORED_POWERS = (2, 3)


class ContactMap:
    """One candidate contact subset and its derived statistics.

    Attributes:
        context: Evolution context (reference, RNG, sampler)
        contacts: Tertiary contacts (1-based, backbone excluded)
        weights: Weight of every tertiary contact
        mat: Symmetric contact matrix, backbone included
        potence_series: {k: mat^k} for k = 1 .. max_potence - 1
        potence_normalized: {k: mat^k / largest entry of mat^k}
        natives: {power: entries of mat^power that are reference contacts}
        non_natives: {power: remaining entries of mat^power}
        sensitivities: {power: native / (native + reference entries missed)}
    """

    def __init__(self, contacts: WeightedContacts, context: EvolutionContext):
        """Build a candidate from an explicit (optionally weighted) contact set.

        Backbone pairs in the input are ignored; the backbone is always present.

        Args:
            contacts: Contact pairs or a mapping of pair -> weight
            context: Evolution context of the protein

        Raises:
            ValueError: If a contact lies beyond the sequence
        """
        self.context = context
        if isinstance(contacts, Mapping):
            weights = {
                p if isinstance(p, ResiduePair) else ResiduePair(*p): float(w)
                for p, w in contacts.items()
            }
        else:
            weights = {p: 1.0 for p in as_contact_set(contacts)}
        self.weights: Dict[ResiduePair, float] = {
            p: w for p, w in weights.items() if not p.is_backbone
        }
        self.contacts: ContactSet = frozenset(self.weights)
        check_in_range(self.contacts, self.sequence_length)

        self._errors: Optional[ErrorScores] = None
        self._compute_statistics()

    @classmethod
    def from_random_sample(
        cls,
        context: EvolutionContext,
        k: int,
        rng: Optional[random.Random] = None
    ) -> 'ContactMap':
        """Sample k tertiary contacts of the reference; the backbone is added on top."""
        if rng is None:
            rng = context.rng
        sample = context.sampler(context.reference.tertiary_contacts, k, rng)
        return cls(sample, context)

    @classmethod
    def merge(
        cls,
        parent1: 'ContactMap',
        parent2: 'ContactMap',
        rng: Optional[random.Random] = None,
        target_size: Optional[int] = None
    ) -> 'ContactMap':
        """Crossover of two parents of the same protein.

        The offspring keeps every shared contact, then fills up to the target
        size by repeatedly flipping a fair coin, drawing a random remaining
        contact from the chosen parent's unique contacts (or from the other
        parent's once the chosen pool is empty).

        Args:
            parent1: First parent
            parent2: Second parent
            rng: Optional random number generator (defaults to the context RNG)
            target_size: Number of tertiary contacts of the offspring (defaults
                to the parents' common contact count)

        Returns:
            Offspring candidate

        Raises:
            ProteinMismatchError: If the parents belong to different proteins
            ValueError: If the parents differ in size and no target_size is given
            CrossoverExhaustedError: If both unique pools run dry first
        """
        if parent1.protein_id != parent2.protein_id:
            raise ProteinMismatchError(
                f"Cannot merge contact maps of {parent1.protein_id} and {parent2.protein_id}"
            )
        if rng is None:
            rng = parent1.context.rng
        if target_size is None:
            if len(parent1.contacts) != len(parent2.contacts):
                raise ValueError(
                    f"Parents hold {len(parent1.contacts)} and {len(parent2.contacts)} contacts; "
                    f"pass target_size to merge candidates of different sizes"
                )
            target_size = len(parent1.contacts)

        shared = parent1.contacts & parent2.contacts
        pools: List[List[ResiduePair]] = [
            sorted(parent1.contacts - shared),
            sorted(parent2.contacts - shared),
        ]
        offspring = set(shared)

        while len(offspring) < target_size:
            choice = 0 if rng.random() < 0.5 else 1
            if not pools[choice]:
                choice = 1 - choice
            if not pools[choice]:
                raise CrossoverExhaustedError(
                    f"Offspring stuck at {len(offspring)} of {target_size} contacts, "
                    f"both parents' unique contacts are used up"
                )
            pair = pools[choice].pop(rng.randrange(len(pools[choice])))
            offspring.add(pair)

        weights = {p: parent1.weights.get(p, parent2.weights.get(p, 1.0)) for p in offspring}
        logger.debug(
            f"Merged {len(parent1.contacts)}+{len(parent2.contacts)} contacts "
            f"({len(shared)} shared) into {len(weights)}"
        )
        return cls(weights, parent1.context)

    def _compute_statistics(self) -> None:
        reference = self.context.reference
        self.mat = contact_matrix(self.weights, self.sequence_length)

        self.potence_series: Dict[int, SparseRelationMatrix] = {1: self.mat}
        for k in range(2, self.context.max_potence):
            self.potence_series[k] = self.potence_series[k - 1].multiply(self.mat)
        self.potence_normalized: Dict[int, SparseRelationMatrix] = {
            k: power.normalized() for k, power in self.potence_series.items()
        }

        reference_pairs = reference.mat.index_pairs()
        self.natives: Dict[int, int] = {}
        self.non_natives: Dict[int, int] = {}
        self.sensitivities: Dict[int, float] = {}
        for k in SCORED_POWERS:
            pairs = self.potence_series[k].index_pairs()
            native = len(pairs & reference_pairs)
            missed = len(reference.power(k).index_pairs() - pairs)
            self.natives[k] = native
            self.non_natives[k] = len(pairs) - native
            self.sensitivities[k] = native / (native + missed) if native + missed else 0.0

    @property
    def protein_id(self) -> str:
        return self.context.reference.protein_id

    @property
    def sequence_length(self) -> int:
        return self.context.reference.sequence_length

    @property
    def square(self) -> SparseRelationMatrix:
        return self.potence_series[2]

    @property
    def full_contacts(self) -> ContactSet:
        """Tertiary contacts plus backbone."""
        return self.contacts | backbone_pairs(self.sequence_length)

    def power(self, k: int) -> SparseRelationMatrix:
        """Return mat^k.

        Raises:
            NoSuchEntryError: If k is not part of the power series
        """
        try:
            return self.potence_series[k]
        except KeyError:
            raise NoSuchEntryError(
                f"Power {k} not indexed; series covers 1..{self.context.max_potence - 1}"
            ) from None

    def normalized_power(self, k: int) -> SparseRelationMatrix:
        try:
            return self.potence_normalized[k]
        except KeyError:
            raise NoSuchEntryError(
                f"Normalized power {k} not indexed; series covers 1..{self.context.max_potence - 1}"
            ) from None

    @property
    def native2(self) -> int:
        return self.natives[2]

    @property
    def non_natives2(self) -> int:
        return self.non_natives[2]

    @property
    def native3(self) -> int:
        return self.natives[3]

    @property
    def non_natives3(self) -> int:
        return self.non_natives[3]

    @property
    def sensitivity2(self) -> float:
        return self.sensitivities[2]

    @property
    def sensitivity3(self) -> float:
        return self.sensitivities[3]

    def errors(self) -> ErrorScores:
        """Fitness scores, computed on first request and cached."""
        if self._errors is None:
            self._errors = self.context.evaluator.evaluate(self.full_contacts)
        return self._errors

    def to_dict(self) -> Dict[str, Any]:
        """Convert candidate to dictionary representation."""
        data = {
            'protein_id': self.protein_id,
            'contacts': [[p.i, p.j] for p in sorted(self.contacts)],
            'native2': self.native2,
            'non_natives2': self.non_natives2,
            'native3': self.native3,
            'non_natives3': self.non_natives3,
            'sensitivity2': self.sensitivity2,
            'sensitivity3': self.sensitivity3,
        }
        if self._errors is not None:
            data.update(self._errors.to_dict())
        return data

    def __len__(self) -> int:
        return len(self.contacts)

    def __repr__(self) -> str:
        return (
            f"ContactMap({self.protein_id}, contacts={len(self.contacts)}, "
            f"native2={self.native2}, non_natives2={self.non_natives2})"
        )


def random_contact_maps(
    context: EvolutionContext,
    count: int,
    k: int,
    rng: Optional[random.Random] = None
) -> List[ContactMap]:
    """Sample count independent candidates with k tertiary contacts each."""
    return [ContactMap.from_random_sample(context, k, rng) for _ in range(count)]


def kept_contacts(candidates: Iterable[ContactMap]) -> ContactSet:
    """Contacts shared by every candidate (empty for no candidates)."""
    kept: Optional[ContactSet] = None
    for candidate in candidates:
        kept = candidate.contacts if kept is None else kept & candidate.contacts
    return kept if kept is not None else frozenset()
