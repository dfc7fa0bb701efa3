"""
Single-population evolution of contact maps.

A population holds candidates of one protein. Each generation the elite set is
crossed pairwise, the elite parents survive unchanged, the combined pool is
re-ranked and truncated back to the configured population size.
"""

import logging
import math
import random
from dataclasses import asdict, dataclass
from itertools import combinations
from typing import Any, Dict, List, Optional, Sequence

from ..exceptions import NotInitializedError, ProteinMismatchError
from ..reference import ContactSet
from .contact_map import ContactMap, kept_contacts
from .selection import RankingCriterion, RankingResult, choose_criterion, rank_candidates

logger = logging.getLogger(__name__)


@dataclass
class PopulationStatistics:
    """Population averages of the native-count statistics."""
    mean_native2: float = 0.0
    mean_non_natives2: float = 0.0
    mean_native3: float = 0.0
    mean_non_natives3: float = 0.0
    mean_sensitivity2: float = 0.0
    mean_sensitivity3: float = 0.0

    @classmethod
    def from_candidates(cls, candidates: Sequence[ContactMap]) -> 'PopulationStatistics':
        if not candidates:
            return cls()
        n = len(candidates)
        return cls(
            mean_native2=sum(c.native2 for c in candidates) / n,
            mean_non_natives2=sum(c.non_natives2 for c in candidates) / n,
            mean_native3=sum(c.native3 for c in candidates) / n,
            mean_non_natives3=sum(c.non_natives3 for c in candidates) / n,
            mean_sensitivity2=sum(c.sensitivity2 for c in candidates) / n,
            mean_sensitivity3=sum(c.sensitivity3 for c in candidates) / n,
        )

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


def mean_and_stdev(values: Sequence[float]) -> Dict[str, float]:
    """Mean and standard error sqrt(sum((x - mean)^2) / (n (n - 1)))."""
    n = len(values)
    if n == 0:
        return {'mean': 0.0, 'stdev': 0.0}
    mean = sum(values) / n
    if n == 1:
        return {'mean': mean, 'stdev': 0.0}
    variance = sum((v - mean) ** 2 for v in values)
    return {'mean': mean, 'stdev': math.sqrt(variance / (n * (n - 1)))}


class ContactMapPopulation:
    """Fixed-size list of contact map candidates of one protein.

    Attributes:
        candidates: Current candidates
        generation: Generation index of this population
        max_generations: Generation budget of the run
        criterion: Active ranking rule, stable until reselected
        fixed_criterion: Requested ranking rule, None if drawn by coin flip
        statistics: Population averages
        ranking: Result of the last ranking, None until ranked
    """

    def __init__(
        self,
        candidates: Sequence[ContactMap],
        generation: int = 0,
        max_generations: int = 20,
        criterion: Optional[RankingCriterion] = None,
        rng: Optional[random.Random] = None,
        rank: bool = True,
        population_size: Optional[int] = None
    ):
        """Create a population.

        Args:
            candidates: Candidates, all of the same protein
            generation: Generation index
            max_generations: Generation budget
            criterion: Ranking rule kept by every later generation; a coin flip
                between power 2 and power 3 per generation when None
            rng: Random number generator (defaults to the candidates' context RNG)
            rank: Rank immediately
            population_size: Size later generations are truncated to
                (defaults to the number of candidates)

        Raises:
            ValueError: If there are no candidates
            ProteinMismatchError: If candidates disagree on the protein
        """
        if not candidates:
            raise ValueError("A population needs at least one contact map")
        protein_ids = {c.protein_id for c in candidates}
        if len(protein_ids) > 1:
            raise ProteinMismatchError(f"Population mixes proteins {sorted(protein_ids)}")

        self.candidates: List[ContactMap] = list(candidates)
        self.generation = generation
        self.max_generations = max_generations
        self.rng = rng if rng is not None else self.candidates[0].context.rng
        self.fixed_criterion = criterion
        self.criterion = criterion if criterion is not None else choose_criterion(self.rng)
        self.statistics = PopulationStatistics.from_candidates(self.candidates)
        self.ranking: Optional[RankingResult] = None
        self.population_size = population_size if population_size is not None else len(self.candidates)

        if rank:
            self.rank()

    @property
    def protein_id(self) -> str:
        return self.candidates[0].protein_id

    @property
    def is_ranked(self) -> bool:
        return self.ranking is not None

    def rank(self) -> RankingResult:
        """Rank the candidates by the active criterion."""
        self.ranking = rank_candidates(self.candidates, self.criterion)
        return self.ranking

    def reselect_criterion(self, rng: Optional[random.Random] = None) -> RankingCriterion:
        """Flip the coin again; the population must be re-ranked afterwards."""
        self.criterion = choose_criterion(rng if rng is not None else self.rng)
        self.ranking = None
        return self.criterion

    def elite(self) -> List[ContactMap]:
        """
        Raises:
            NotInitializedError: If the population has not been ranked
        """
        if self.ranking is None:
            raise NotInitializedError(f"Generation {self.generation} population has not been ranked")
        return [self.candidates[i] for i in self.ranking.elite]

    def evolve(self, rng: Optional[random.Random] = None) -> 'ContactMapPopulation':
        """Produce the next generation.

        Every pair of elite candidates is crossed, the elite parents are added
        unchanged, the pool is ranked by the same rule and its elite is
        truncated to the current population size. A requested criterion
        carries over to the next generation; otherwise it flips a new coin.

        Args:
            rng: Random number generator for crossover and the next coin flip

        Returns:
            New population at generation + 1

        Raises:
            NotInitializedError: If the population has not been ranked
        """
        if rng is None:
            rng = self.rng
        parents = self.elite()

        offspring = [ContactMap.merge(a, b, rng) for a, b in combinations(parents, 2)]
        pool = offspring + parents
        pool_ranking = rank_candidates(pool, self.criterion)

        keep = min(len(pool_ranking.elite), self.population_size)
        survivors = [pool[i] for i in pool_ranking.elite[:keep]]
        if keep < self.population_size:
            logger.warning(
                f"Population shrinks from {self.population_size} to {keep} at generation {self.generation + 1}"
            )

        logger.debug(
            f"Generation {self.generation} -> {self.generation + 1}: {len(parents)} elite, "
            f"{len(offspring)} offspring, {keep} survivors"
        )
        return ContactMapPopulation(
            survivors,
            generation=self.generation + 1,
            max_generations=self.max_generations,
            criterion=self.fixed_criterion,
            rng=rng,
            population_size=self.population_size
        )

    def kept_contacts(self) -> ContactSet:
        """Contacts every candidate agrees on."""
        return kept_contacts(self.candidates)

    def error_statistics(self) -> Dict[str, Dict[str, float]]:
        """Mean and standard error of both fitness scores."""
        scores = [c.errors() for c in self.candidates]
        result = {'contact_map_error': mean_and_stdev([s.contact_map_error for s in scores])}
        if all(s.distance_map_error is not None for s in scores):
            result['distance_map_error'] = mean_and_stdev([s.distance_map_error for s in scores])
        return result

    def best(self) -> ContactMap:
        """Candidate with the highest power 2 sensitivity, fewer non-natives on ties."""
        return max(self.candidates, key=lambda c: (c.sensitivity2, -c.non_natives2))

    def clear(self) -> None:
        """Drop all candidates; the population must be refilled before use."""
        self.candidates.clear()
        self.ranking = None
        self.statistics = PopulationStatistics()

    def to_dict(self) -> Dict[str, Any]:
        """Convert population to dictionary representation."""
        return {
            'protein_id': self.protein_id if self.candidates else None,
            'generation': self.generation,
            'size': len(self.candidates),
            'criterion': self.criterion.value,
            'statistics': self.statistics.to_dict(),
            'kept_contacts': len(self.kept_contacts()),
            'ranking': self.ranking.to_dict() if self.ranking else None,
        }

    def __len__(self) -> int:
        return len(self.candidates)

    def __iter__(self):
        return iter(self.candidates)

    def __getitem__(self, index: int) -> ContactMap:
        return self.candidates[index]
