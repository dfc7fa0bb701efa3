"""
Ranking and elite selection for contact map populations.

Two families of rules are implemented:

- Native-ratio ranking (power 2 or power 3): for every pair (i, j) both
  candidates' native and non-native counts are divided by their combined total;
  a candidate earns a point when its native ratio is at least the other's and
  its non-native ratio at most the other's. A pair whose combined total is zero
  has undefined ratios and awards no point. Candidates scoring at least
  P / 4 - 1 form the elite set.
- Error ranking (contact map or distance map error): a candidate earns a point
  against every candidate whose error is not smaller. The elite threshold is
  (P - 1) / 2.

When no candidate reaches the threshold the best scored candidates form the
elite set, so a non-empty population never loses all of its members.
"""

import logging
import random
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

logger = logging.getLogger(__name__)


class RankingCriterion(Enum):
    """Statistic a population is ranked by."""
    POWER2 = 'power2'
    POWER3 = 'power3'
    CONTACT_MAP_ERROR = 'contact_map_error'
    DISTANCE_MAP_ERROR = 'distance_map_error'

    @property
    def power(self) -> Optional[int]:
        return {RankingCriterion.POWER2: 2, RankingCriterion.POWER3: 3}.get(self)

    @property
    def uses_errors(self) -> bool:
        return self.power is None


@dataclass
class RankingResult:
    """Outcome of ranking one population.

    Attributes:
        criterion: Rule the scores were computed with
        scores: Accumulated points per candidate index
        threshold: Minimal score of an elite candidate
        elite: Indices of elite candidates in ascending order
    """
    criterion: RankingCriterion
    scores: List[int]
    threshold: float
    elite: List[int]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'criterion': self.criterion.value,
            'scores': list(self.scores),
            'threshold': self.threshold,
            'elite': list(self.elite),
        }


def choose_criterion(rng: Optional[random.Random] = None) -> RankingCriterion:
    """Coin flip between power 2 and power 3 native-ratio ranking."""
    if rng is None:
        rng = random
    return RankingCriterion.POWER2 if rng.random() < 0.5 else RankingCriterion.POWER3


def native_ratio_scores(natives: Sequence[int], non_natives: Sequence[int]) -> List[int]:
    """
    Pairwise Pareto scores on the native / non-native ratios.

    Args:
        natives: Native count per candidate
        non_natives: Non-native count per candidate

    Returns:
        Points accumulated by each candidate
    """
    if len(natives) != len(non_natives):
        raise ValueError(f"Got {len(natives)} native and {len(non_natives)} non-native counts")

    size = len(natives)
    scores = [0] * size
    for i in range(size):
        for j in range(i + 1, size):
            total = natives[i] + natives[j] + non_natives[i] + non_natives[j]
            if total == 0:
                # undefined ratios are incomparable
                continue
            ratio_nat_i = natives[i] / total
            ratio_nat_j = natives[j] / total
            ratio_non_i = non_natives[i] / total
            ratio_non_j = non_natives[j] / total

            if ratio_nat_i >= ratio_nat_j and ratio_non_i <= ratio_non_j:
                scores[i] += 1
            if ratio_nat_j >= ratio_nat_i and ratio_non_j <= ratio_non_i:
                scores[j] += 1
    return scores


def error_scores(errors: Sequence[float]) -> List[int]:
    """Pairwise scores where the smaller (or equal) error wins."""
    size = len(errors)
    scores = [0] * size
    for i in range(size):
        for j in range(i + 1, size):
            if errors[i] <= errors[j]:
                scores[i] += 1
            if errors[j] <= errors[i]:
                scores[j] += 1
    return scores


def elite_threshold(criterion: RankingCriterion, population_size: int) -> float:
    if criterion.uses_errors:
        return (population_size - 1) / 2.0
    return population_size / 4.0 - 1.0


def rank_candidates(candidates: Sequence[Any], criterion: RankingCriterion) -> RankingResult:
    """
    Rank contact map candidates and extract the elite set.

    Args:
        candidates: ContactMap instances of one population
        criterion: Statistic to rank by

    Returns:
        RankingResult with per-candidate scores and elite indices
    """
    if criterion.uses_errors:
        if criterion is RankingCriterion.CONTACT_MAP_ERROR:
            values = [c.errors().contact_map_error for c in candidates]
        else:
            values = [c.errors().distance_map_error for c in candidates]
            if any(v is None for v in values):
                raise ValueError("Distance map ranking needs a reference distance matrix")
        scores = error_scores(values)
    else:
        power = criterion.power
        scores = native_ratio_scores(
            [c.natives[power] for c in candidates],
            [c.non_natives[power] for c in candidates]
        )

    threshold = elite_threshold(criterion, len(candidates))
    elite = [i for i, score in enumerate(scores) if score >= threshold]
    if not elite and scores:
        # mutually incomparable candidates: keep the best scored instead of none
        best = max(scores)
        elite = [i for i, score in enumerate(scores) if score == best]
        logger.debug(f"No candidate reached {threshold:.2f}, keeping {len(elite)} with score {best}")
    logger.debug(
        f"Ranked {len(candidates)} candidates by {criterion.value}: "
        f"{len(elite)} elite (threshold {threshold:.2f})"
    )
    return RankingResult(criterion=criterion, scores=scores, threshold=threshold, elite=elite)


def parse_criterion(value: Optional[str]) -> Optional[RankingCriterion]:
    """Map a configuration value to a criterion; None or 'random' means coin flip."""
    if value is None or value == 'random':
        return None
    try:
        return RankingCriterion(value)
    except ValueError:
        valid = ['random'] + [c.value for c in RankingCriterion]
        raise ValueError(f"Unknown ranking criterion '{value}', expected one of {valid}") from None
