"""
Residue pairs and contact sets.

Contacts use 1-based sequence positions and are canonicalized so that the
smaller position comes first; matrices use 0-based indices.
"""

from dataclasses import dataclass
from typing import FrozenSet, Iterable, Set, Tuple


@dataclass(frozen=True, order=True)
class ResiduePair:
    """Unordered contact between two sequence positions (1-based, i < j)."""
    i: int
    j: int

    def __post_init__(self):
        if self.i == self.j:
            raise ValueError(f"A residue cannot contact itself: ({self.i}, {self.j})")
        if min(self.i, self.j) < 1:
            raise ValueError(f"Residue positions are 1-based, got ({self.i}, {self.j})")
        if self.i > self.j:
            first, second = self.j, self.i
            object.__setattr__(self, 'i', first)
            object.__setattr__(self, 'j', second)

    @property
    def is_backbone(self) -> bool:
        """Sequential (i, i+1) contacts belong to the chain itself."""
        return self.j - self.i == 1

    def to_indices(self) -> Tuple[int, int]:
        """Return the 0-based matrix indices of this pair."""
        return self.i - 1, self.j - 1

    @classmethod
    def from_indices(cls, row: int, col: int) -> 'ResiduePair':
        return cls(row + 1, col + 1)

    def __repr__(self) -> str:
        return f"({self.i},{self.j})"


ContactSet = FrozenSet[ResiduePair]


def as_contact_set(pairs: Iterable) -> ContactSet:
    """Coerce ResiduePairs or (i, j) tuples into a frozen contact set."""
    return frozenset(p if isinstance(p, ResiduePair) else ResiduePair(*p) for p in pairs)


def backbone_pairs(sequence_length: int) -> ContactSet:
    """Return the sequential contacts (i, i+1) of a chain."""
    return frozenset(ResiduePair(i, i + 1) for i in range(1, sequence_length))


def tertiary_only(contacts: Iterable[ResiduePair]) -> ContactSet:
    """Drop backbone contacts, keeping the evolvable ones."""
    return frozenset(p for p in contacts if not p.is_backbone)


def check_in_range(contacts: Iterable[ResiduePair], sequence_length: int) -> None:
    """Raise ValueError if a contact lies beyond the sequence."""
    out_of_range: Set[ResiduePair] = {p for p in contacts if p.j > sequence_length}
    if out_of_range:
        raise ValueError(
            f"Contacts {sorted(out_of_range)} exceed sequence length {sequence_length}"
        )
