"""
Reference structure providers and contact samplers.

These are the structural collaborators of the optimizer: something that hands
out the full contact set of a protein (plus, optionally, its true distance
matrix), and something that draws a random sub-contact-set from it.
"""

import logging
import random
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Optional, Protocol, Sequence

import numpy as np

from ..exceptions import NoSuchEntryError
from .contacts import ContactSet, ResiduePair, as_contact_set, check_in_range

logger = logging.getLogger(__name__)

ContactSampler = Callable[[ContactSet, int, random.Random], ContactSet]


@dataclass
class ReferenceData:
    """Structural data of one protein.

    Attributes:
        protein_id: Identifier the data is keyed by
        sequence_length: Number of residues
        contacts: Full contact set (backbone pairs may be included)
        distances: Optional (n, n) array of true C-alpha distances
    """
    protein_id: str
    sequence_length: int
    contacts: ContactSet
    distances: Optional[np.ndarray] = None

    def __post_init__(self):
        if self.sequence_length < 2:
            raise ValueError(f"Sequence length must be at least 2, got {self.sequence_length}")
        self.contacts = as_contact_set(self.contacts)
        check_in_range(self.contacts, self.sequence_length)
        if self.distances is not None:
            self.distances = np.asarray(self.distances, dtype=float)
            expected = (self.sequence_length, self.sequence_length)
            if self.distances.shape != expected:
                raise ValueError(
                    f"Distance matrix shape {self.distances.shape} does not match {expected}"
                )


class ReferenceProvider(Protocol):
    def get_reference_contacts(self, protein_id: str) -> ReferenceData:
        ...


class InMemoryReferenceProvider:
    """Dictionary backed provider for references that are already loaded."""

    def __init__(self, references: Optional[Iterable[ReferenceData]] = None):
        self._references: Dict[str, ReferenceData] = {}
        for data in references or ():
            self.add(data)

    def add(self, data: ReferenceData) -> None:
        self._references[data.protein_id] = data
        logger.debug(
            f"Registered reference {data.protein_id}: {data.sequence_length} residues, "
            f"{len(data.contacts)} contacts"
        )

    def get_reference_contacts(self, protein_id: str) -> ReferenceData:
        """Return the data registered for protein_id.

        Raises:
            NoSuchEntryError: If no reference is registered under protein_id
        """
        try:
            return self._references[protein_id]
        except KeyError:
            raise NoSuchEntryError(f"No reference structure for protein '{protein_id}'") from None

    def __contains__(self, protein_id: str) -> bool:
        return protein_id in self._references

    def __len__(self) -> int:
        return len(self._references)


def reference_data_from_coordinates(
    protein_id: str,
    coordinates: Sequence[Sequence[float]],
    cutoff: float = 9.0,
    min_separation: int = 2
) -> ReferenceData:
    """Derive contacts and the distance matrix from C-alpha coordinates.

    Args:
        protein_id: Identifier of the structure
        coordinates: (n, 3) C-alpha positions in sequence order
        cutoff: Maximal distance of a contact in Angstrom
        min_separation: Minimal sequence separation |i - j| of a tertiary contact

    Returns:
        ReferenceData whose contacts are the tertiary contacts under the cutoff
    """
    coords = np.asarray(coordinates, dtype=float)
    if coords.ndim != 2 or coords.shape[1] != 3:
        raise ValueError(f"Expected (n, 3) coordinates, got shape {coords.shape}")

    deltas = coords[:, None, :] - coords[None, :, :]
    distances = np.sqrt((deltas ** 2).sum(axis=-1))

    rows, cols = np.nonzero(np.triu(distances <= cutoff, k=min_separation))
    contacts = frozenset(ResiduePair(int(i) + 1, int(j) + 1) for i, j in zip(rows, cols))
    logger.info(f"{protein_id}: {len(contacts)} contacts at cutoff {cutoff} A")

    return ReferenceData(
        protein_id=protein_id,
        sequence_length=coords.shape[0],
        contacts=contacts,
        distances=distances
    )


def random_contact_subset(
    contacts: ContactSet,
    k: int,
    rng: Optional[random.Random] = None
) -> ContactSet:
    """Draw k distinct contacts uniformly at random.

    Args:
        contacts: Contact set to sample from
        k: Number of contacts to draw
        rng: Optional random number generator

    Returns:
        Frozen set of k contacts

    Raises:
        ValueError: If k is negative or larger than the contact set
    """
    if rng is None:
        rng = random

    if not (0 <= k <= len(contacts)):
        raise ValueError(f"Cannot sample {k} contacts from a set of {len(contacts)}")

    # sorted so that a seeded generator gives the same subset on every run
    return frozenset(rng.sample(sorted(contacts), k))
