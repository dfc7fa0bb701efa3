"""
Distance bound inference.

Turns a sparse contact set into a complete pair of lower/upper distance bound
matrices by triangle-inequality closure (bound smoothing).
"""

import logging
from dataclasses import dataclass
from typing import Iterable

import numpy as np

from .contacts import ResiduePair, backbone_pairs

logger = logging.getLogger(__name__)

# C-alpha geometry in Angstrom
BACKBONE_CA_DISTANCE = 3.8
MIN_CA_DISTANCE = 2.8
DEFAULT_CONTACT_CUTOFF = 9.0


@dataclass
class BoundMatrix:
    """Lower and upper distance bounds for every residue pair (0-based, symmetric).

    Attributes:
        lower: (n, n) array of lower bounds
        upper: (n, n) array of upper bounds, np.inf where nothing is known
    """
    lower: np.ndarray
    upper: np.ndarray

    @property
    def size(self) -> int:
        return self.upper.shape[0]

    def has_bound(self, i: int, j: int) -> bool:
        return bool(np.isfinite(self.upper[i, j]))


class TriangleBoundInferrer:
    """Infer complete bounds from a sparse contact set.

    Backbone pairs are fixed at the C-alpha virtual bond length, contact pairs
    lie between the minimal C-alpha separation and the contact cutoff. Upper
    bounds are closed with Floyd-Warshall shortest paths, lower bounds with the
    inverse triangle inequality l(i,j) >= l(i,k) - u(k,j).
    """

    def __init__(
        self,
        contact_cutoff: float = DEFAULT_CONTACT_CUTOFF,
        backbone_distance: float = BACKBONE_CA_DISTANCE,
        min_distance: float = MIN_CA_DISTANCE
    ):
        if not (0 < min_distance <= contact_cutoff):
            raise ValueError(
                f"Need 0 < min_distance <= contact_cutoff, got {min_distance}, {contact_cutoff}"
            )
        self.contact_cutoff = contact_cutoff
        self.backbone_distance = backbone_distance
        self.min_distance = min_distance

    def initial_bounds(self, contacts: Iterable[ResiduePair], sequence_length: int) -> BoundMatrix:
        """Sparse bounds before closure: only the given contacts plus the backbone."""
        lower = np.zeros((sequence_length, sequence_length))
        upper = np.full((sequence_length, sequence_length), np.inf)
        np.fill_diagonal(upper, 0.0)

        for pair in contacts:
            i, j = pair.to_indices()
            lower[i, j] = lower[j, i] = self.min_distance
            upper[i, j] = upper[j, i] = self.contact_cutoff

        for pair in backbone_pairs(sequence_length):
            i, j = pair.to_indices()
            lower[i, j] = lower[j, i] = self.backbone_distance
            upper[i, j] = upper[j, i] = self.backbone_distance

        return BoundMatrix(lower=lower, upper=upper)

    def __call__(self, contacts: Iterable[ResiduePair], sequence_length: int) -> BoundMatrix:
        """Return closed bounds for every pair of residues."""
        bounds = self.initial_bounds(contacts, sequence_length)
        upper = bounds.upper
        for k in range(sequence_length):
            upper = np.minimum(upper, upper[:, k:k + 1] + upper[k:k + 1, :])

        lower = bounds.lower
        for k in range(sequence_length):
            candidate = np.maximum(
                lower[:, k:k + 1] - upper[k:k + 1, :],
                lower[k:k + 1, :] - upper[:, k:k + 1]
            )
            lower = np.maximum(lower, candidate)
        np.fill_diagonal(lower, 0.0)

        unreachable = int(np.count_nonzero(~np.isfinite(upper)))
        if unreachable:
            logger.debug(f"{unreachable} residue pairs without an upper bound")
        return BoundMatrix(lower=lower, upper=upper)
