"""
Fitness functions for contact map candidates.

Both scores compare the distance bounds inferred from a candidate's contacts
with reference data. Lower is better for both.

- Contact map error: mean positive excess of the inferred upper bounds over the
  reference upper bounds, normalized by the number of reference contacts.
- Distance map error: root of the summed squared excess of the inferred upper
  bounds over the true distances, scaled by 2 / (n (n - 1)).
"""

import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterable, Optional

import numpy as np

from ..reference import BoundMatrix, ResiduePair
from .context import BoundInferrer, Reference

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ErrorScores:
    """Both fitness scores of one candidate."""
    contact_map_error: float
    distance_map_error: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def contact_map_error(
    inferred: BoundMatrix,
    reference: BoundMatrix,
    reference_edge_count: int
) -> float:
    """Mean positive excess of inferred upper bounds over reference upper bounds.

    Only pairs i < j for which the reference has a (finite) upper bound count,
    and an inferred bound tighter than the reference is not penalized.

    Args:
        inferred: Bounds closed from the candidate's contacts
        reference: Bounds closed from the full reference contacts
        reference_edge_count: Number of contacts of the full reference

    Returns:
        The contact map error
    """
    if inferred.size != reference.size:
        raise ValueError(f"Bound matrices differ in size: {inferred.size} vs {reference.size}")
    if reference_edge_count <= 0:
        raise ValueError("Reference must contain at least one contact")

    upper_triangle = np.triu(np.ones_like(reference.upper, dtype=bool), k=1)
    mask = upper_triangle & np.isfinite(reference.upper)
    excess = np.maximum(0.0, inferred.upper[mask] - reference.upper[mask])
    return float(excess.sum() / reference_edge_count)


def distance_map_error(inferred: BoundMatrix, distances: np.ndarray) -> float:
    """Scaled root squared excess of inferred upper bounds over true distances.

    Pairs with a zero true distance, and pairs whose inferred upper bound does
    not exceed the true distance, do not contribute.
    """
    distances = np.asarray(distances, dtype=float)
    n = distances.shape[0]
    if inferred.size != n:
        raise ValueError(f"Bound matrix size {inferred.size} does not match {n} residues")
    if n < 2:
        return 0.0

    upper_triangle = np.triu(np.ones((n, n), dtype=bool), k=1)
    mask = upper_triangle & (distances != 0.0) & (inferred.upper > distances)
    squared = (inferred.upper[mask] - distances[mask]) ** 2
    return float(2.0 / (n * (n - 1)) * np.sqrt(squared.sum()))


class CandidateEvaluator:
    """Scores contact subsets of one reference.

    Reference bounds are inferred once and reused; the evaluator keeps no other
    state, so scores are pure functions of the subset.
    """

    def __init__(self, reference: Reference, bound_inferrer: BoundInferrer):
        self.reference = reference
        self.bound_inferrer = bound_inferrer

    def infer(self, contacts: Iterable[ResiduePair]) -> BoundMatrix:
        return self.bound_inferrer(contacts, self.reference.sequence_length)

    def contact_map_error(self, contacts: Iterable[ResiduePair]) -> float:
        return contact_map_error(
            self.infer(contacts),
            self.reference.bounds(self.bound_inferrer),
            self.reference.edge_count
        )

    def distance_map_error(self, contacts: Iterable[ResiduePair]) -> float:
        """
        Raises:
            ValueError: If the reference carries no true distance matrix
        """
        if self.reference.distances is None:
            raise ValueError(
                f"Reference {self.reference.protein_id} has no distance matrix"
            )
        return distance_map_error(self.infer(contacts), self.reference.distances)

    def evaluate(self, contacts: Iterable[ResiduePair]) -> ErrorScores:
        """Compute both scores from a single bound inference."""
        contacts = list(contacts)
        inferred = self.infer(contacts)
        cm_error = contact_map_error(
            inferred,
            self.reference.bounds(self.bound_inferrer),
            self.reference.edge_count
        )
        dm_error = None
        if self.reference.distances is not None:
            dm_error = distance_map_error(inferred, self.reference.distances)
        logger.debug(f"Evaluated {len(contacts)} contacts: CM={cm_error:.4f} DM={dm_error}")
        return ErrorScores(contact_map_error=cm_error, distance_map_error=dm_error)
