"""
Island model for contact map evolution.

A species keeps a grid of (island, generation) -> population. Every generation
step first checks whether the islands have become homogeneous; if so, all
individuals are pooled and dealt back at random (migration). Then every island
evolves one generation independently. Prior generations are never dropped, so
stepping is idempotent and a run can resume where it stopped.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

import pandas as pd

from ..exceptions import NoSuchEntryError, ProteinMismatchError
from ..reference import ContactSet
from .contact_map import ContactMap, random_contact_maps
from .context import EvolutionContext
from .population import ContactMapPopulation
from .selection import RankingCriterion, parse_criterion

logger = logging.getLogger(__name__)

ERROR_METRICS = ('contact_map_error', 'distance_map_error')


class TerminationReason(Enum):
    """Why an evolution loop stopped."""
    MAX_GENERATIONS = 'max_generations'
    HOMOGENEOUS = 'homogeneous'
    CONVERGED = 'converged'
    CANCELLED = 'cancelled'


@dataclass
class Island:
    """One sub-population across generations.

    Attributes:
        island_id: Unique identifier for this island
        generations: Population of every generation computed so far
        migration_history: Migration events this island took part in
    """
    island_id: int
    generations: Dict[int, ContactMapPopulation] = field(default_factory=dict)
    migration_history: List[Dict[str, Any]] = field(default_factory=list)

    def population(self, generation: int) -> ContactMapPopulation:
        try:
            return self.generations[generation]
        except KeyError:
            raise NoSuchEntryError(
                f"Island {self.island_id} has no generation {generation}"
            ) from None

    def latest_generation(self) -> int:
        return max(self.generations) if self.generations else -1

    def to_dict(self) -> Dict[str, Any]:
        """Convert island to dictionary representation."""
        return {
            'island_id': self.island_id,
            'generations': sorted(self.generations),
            'migrations': len(self.migration_history),
        }


class Species:
    """Island-model orchestrator over populations of one protein.

    Attributes:
        context: Evolution context shared by all islands
        num_islands: Number of islands D
        population_size: Candidates per island P
        target_contacts: Tertiary contacts per candidate
        max_generations: Generation budget G
        homogeneity_fraction: Agreement fraction for the homogeneity tests
        convergence_threshold: Error standard deviation that counts as converged
        criterion: Fixed ranking rule, or None for a coin flip per population
        max_workers: Threads used to evolve islands of one generation
        current_generation: Generation index g
        homogeneous: Set once the islands agree on enough kept contacts
    """

    def __init__(
        self,
        context: EvolutionContext,
        num_islands: int = 4,
        population_size: int = 10,
        target_contacts: int = 10,
        max_generations: int = 20,
        homogeneity_fraction: float = 0.8,
        convergence_threshold: float = 0.003,
        criterion: Optional[RankingCriterion] = None,
        max_workers: int = 1
    ):
        if num_islands < 1:
            raise ValueError(f"Need at least one island, got {num_islands}")
        if population_size < 1:
            raise ValueError(f"Population size must be positive, got {population_size}")
        if not (0.0 < homogeneity_fraction <= 1.0):
            raise ValueError(f"Homogeneity fraction must lie in (0, 1], got {homogeneity_fraction}")

        self.context = context
        self.num_islands = num_islands
        self.population_size = population_size
        self.target_contacts = target_contacts
        self.max_generations = max_generations
        self.homogeneity_fraction = homogeneity_fraction
        self.convergence_threshold = convergence_threshold
        self.criterion = criterion
        self.max_workers = max(1, max_workers)

        self.islands: List[Island] = [Island(island_id=i) for i in range(num_islands)]
        self.current_generation = 0
        self.homogeneous = False
        self.total_migrations = 0
        self.migration_log: List[Dict[str, Any]] = []

        logger.info(
            f"Initialized Species for {context.protein_id} with {num_islands} islands, "
            f"population_size={population_size}, target_contacts={target_contacts}"
        )

    @property
    def protein_id(self) -> str:
        return self.context.protein_id

    def seed_islands(self, populations: Optional[List[ContactMapPopulation]] = None) -> None:
        """Fill generation 0 of every island.

        Args:
            populations: One population per island; sampled from the reference
                when omitted

        Raises:
            ValueError: If the number of populations does not match the islands
            ProteinMismatchError: If a population belongs to another protein
        """
        if populations is None:
            populations = [
                self._new_population(
                    random_contact_maps(self.context, self.population_size, self.target_contacts),
                    generation=0
                )
                for _ in self.islands
            ]
        if len(populations) != self.num_islands:
            raise ValueError(f"Got {len(populations)} populations for {self.num_islands} islands")

        for island, population in zip(self.islands, populations):
            if population.protein_id != self.protein_id:
                raise ProteinMismatchError(
                    f"Population of {population.protein_id} cannot seed species of {self.protein_id}"
                )
            island.generations = {0: population}

        self.current_generation = 0
        self.homogeneous = False
        logger.info(f"Seeded {self.num_islands} islands at generation 0")

    def _new_population(
        self,
        candidates: List[ContactMap],
        generation: int,
        rng=None
    ) -> ContactMapPopulation:
        return ContactMapPopulation(
            candidates,
            generation=generation,
            max_generations=self.max_generations,
            criterion=self.criterion,
            rng=rng if rng is not None else self.context.rng,
            population_size=self.population_size
        )

    def get_population(self, island_id: int, generation: int) -> ContactMapPopulation:
        """
        Raises:
            NoSuchEntryError: If the island or generation does not exist
        """
        if not (0 <= island_id < self.num_islands):
            raise NoSuchEntryError(f"No island {island_id}; species has {self.num_islands}")
        return self.islands[island_id].population(generation)

    def populations_at(self, generation: int) -> List[ContactMapPopulation]:
        return [island.population(generation) for island in self.islands]

    def kept_contacts(self, generation: int) -> List[ContactSet]:
        """Per-island contacts every candidate of that island agrees on."""
        return [population.kept_contacts() for population in self.populations_at(generation)]

    def is_generation_homogeneous(self, generation: int) -> bool:
        """Average kept-contact count per island reaches the fraction of the target.

        Kept contacts are counted with duplicates across islands.
        """
        total = sum(len(kept) for kept in self.kept_contacts(generation))
        average = total / self.num_islands
        homogeneous = average >= self.homogeneity_fraction * self.target_contacts
        logger.debug(
            f"Generation {generation}: {average:.2f} kept contacts per island, "
            f"homogeneous={homogeneous}"
        )
        return homogeneous

    def check_for_homogeneity(self, generation: int, threshold_fraction: Optional[float] = None) -> bool:
        """Contacts kept by all islands reach the target scaled by threshold_fraction.

        A positive result sets the terminal homogeneous flag.
        """
        if threshold_fraction is None:
            threshold_fraction = self.homogeneity_fraction
        kept = self.kept_contacts(generation)
        shared = frozenset.intersection(*kept) if kept else frozenset()
        if len(shared) / threshold_fraction >= self.target_contacts:
            self.homogeneous = True
            logger.info(
                f"Islands homogeneous at generation {generation}: "
                f"{len(shared)} contacts shared by all {self.num_islands} islands"
            )
        return self.homogeneous

    def migrate(self, generation: int) -> Dict[str, Any]:
        """Pool every individual of a generation and deal them back at random.

        Each island receives as many individuals as it held before, drawn
        without replacement, so no individual is created or lost.

        Args:
            generation: Generation whose populations are reshuffled

        Returns:
            Dictionary with migration statistics
        """
        populations = self.populations_at(generation)
        sizes = [len(population) for population in populations]
        pool: List[ContactMap] = [c for population in populations for c in population]

        rng = self.context.rng
        shuffled = rng.sample(pool, len(pool))

        start = 0
        for island, size in zip(self.islands, sizes):
            drawn = shuffled[start:start + size]
            start += size
            island.generations[generation] = self._new_population(drawn, generation)
            island.migration_history.append({'generation': generation, 'received': size})

        self.total_migrations += 1
        stats = {
            'generation': generation,
            'pooled': len(pool),
            'island_sizes': sizes,
        }
        self.migration_log.append(stats)
        logger.info(f"Migration at generation {generation}: {len(pool)} individuals reshuffled")
        return stats

    swap_species = migrate

    def evolve_step(self, cancel_event: Optional[threading.Event] = None) -> bool:
        """Advance every island by one generation.

        Args:
            cancel_event: Checked before any work is done

        Returns:
            False if cancelled, True otherwise
        """
        if cancel_event is not None and cancel_event.is_set():
            logger.info(f"Evolution cancelled before generation {self.current_generation + 1}")
            return False

        generation = self.current_generation
        if self.is_generation_homogeneous(generation):
            self.migrate(generation)

        pending = [island for island in self.islands if generation + 1 not in island.generations]
        # one generator per island, drawn before the fork so that results do not
        # depend on the number of workers
        rngs = [self.context.spawn_rng() for _ in pending]

        def advance(island: Island, rng) -> ContactMapPopulation:
            return island.population(generation).evolve(rng)

        if self.max_workers > 1 and len(pending) > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                results = list(executor.map(advance, pending, rngs))
        else:
            results = [advance(island, rng) for island, rng in zip(pending, rngs)]

        for island, population in zip(pending, results):
            island.generations[generation + 1] = population

        skipped = self.num_islands - len(pending)
        if skipped:
            logger.debug(f"{skipped} islands already had generation {generation + 1}")

        self.current_generation = generation + 1
        logger.info(f"Species reached generation {self.current_generation}")
        return True

    def evolve(
        self,
        final_generation: Optional[int] = None,
        cancel_event: Optional[threading.Event] = None,
        callback: Optional[Callable[[int], None]] = None
    ) -> TerminationReason:
        """Evolve until final_generation or until the islands are homogeneous.

        Args:
            final_generation: Last generation (defaults to max_generations)
            cancel_event: Cooperative cancellation flag
            callback: Called with the new generation index after each step

        Returns:
            Reason the loop stopped
        """
        if final_generation is None:
            final_generation = self.max_generations

        while self.current_generation < final_generation:
            if self.check_for_homogeneity(self.current_generation, self.homogeneity_fraction):
                logger.info(
                    f"Stopping at generation {self.current_generation} of {final_generation}: "
                    f"islands are homogeneous"
                )
                return TerminationReason.HOMOGENEOUS
            if not self.evolve_step(cancel_event):
                return TerminationReason.CANCELLED
            if callback is not None:
                callback(self.current_generation)

        return TerminationReason.MAX_GENERATIONS

    def evolve_until_converged(
        self,
        metric: str = 'contact_map_error',
        cancel_event: Optional[threading.Event] = None,
        callback: Optional[Callable[[int], None]] = None
    ) -> TerminationReason:
        """Evolve until the mean error spread drops below the convergence threshold."""
        while self.current_generation < self.max_generations:
            if self.is_less_than_threshold(self.current_generation, metric):
                logger.info(
                    f"Converged at generation {self.current_generation}: mean {metric} stdev "
                    f"below {self.convergence_threshold}"
                )
                return TerminationReason.CONVERGED
            if not self.evolve_step(cancel_event):
                return TerminationReason.CANCELLED
            if callback is not None:
                callback(self.current_generation)

        return TerminationReason.MAX_GENERATIONS

    def mean_error_stdev(self, generation: int, metric: str = 'contact_map_error') -> float:
        """Average over islands of the standard error of one fitness score."""
        if metric not in ERROR_METRICS:
            raise ValueError(f"Unknown error metric '{metric}', expected one of {ERROR_METRICS}")
        stdevs = []
        for population in self.populations_at(generation):
            stats = population.error_statistics()
            if metric not in stats:
                raise ValueError(f"Metric {metric} unavailable: reference has no distance matrix")
            stdevs.append(stats[metric]['stdev'])
        return sum(stdevs) / len(stdevs)

    def is_less_than_threshold(self, generation: int, metric: str = 'contact_map_error') -> bool:
        return self.mean_error_stdev(generation, metric) <= self.convergence_threshold

    def best_candidate(self, generation: Optional[int] = None) -> ContactMap:
        """Best candidate of a generation across all islands."""
        if generation is None:
            generation = self.current_generation
        best = [population.best() for population in self.populations_at(generation)]
        return max(best, key=lambda c: (c.sensitivity2, -c.non_natives2))

    def get_population_statistics(self, generation: Optional[int] = None) -> Dict[str, Any]:
        """Statistics of one generation across all islands."""
        if generation is None:
            generation = self.current_generation
        populations = self.populations_at(generation)
        candidates = [c for population in populations for c in population]
        n = len(candidates)
        return {
            'generation': generation,
            'total_candidates': n,
            'mean_sensitivity2': sum(c.sensitivity2 for c in candidates) / n if n else 0.0,
            'mean_sensitivity3': sum(c.sensitivity3 for c in candidates) / n if n else 0.0,
            'best_sensitivity2': max((c.sensitivity2 for c in candidates), default=0.0),
            'mean_kept_contacts': (
                sum(len(p.kept_contacts()) for p in populations) / len(populations)
            ),
            'homogeneous': self.homogeneous,
        }

    def history_frame(self) -> pd.DataFrame:
        """One row per (island, generation) population."""
        rows = []
        for island in self.islands:
            for generation, population in sorted(island.generations.items()):
                row = {
                    'island': island.island_id,
                    'generation': generation,
                    'size': len(population),
                    'criterion': population.criterion.value,
                    'elite': len(population.ranking.elite) if population.ranking else 0,
                    'kept_contacts': len(population.kept_contacts()),
                }
                row.update(population.statistics.to_dict())
                rows.append(row)
        columns = ['island', 'generation', 'size', 'criterion', 'elite', 'kept_contacts']
        if not rows:
            return pd.DataFrame(columns=columns)
        return pd.DataFrame(rows).sort_values(['generation', 'island']).reset_index(drop=True)

    def clear(self) -> None:
        """Drop every population and reset the generation counter."""
        for island in self.islands:
            island.generations.clear()
            island.migration_history.clear()
        self.current_generation = 0
        self.homogeneous = False
        self.migration_log.clear()
        self.total_migrations = 0
        logger.debug(f"Cleared species of {self.protein_id}")

    def to_dict(self) -> Dict[str, Any]:
        """Convert species state to dictionary."""
        return {
            'protein_id': self.protein_id,
            'num_islands': self.num_islands,
            'population_size': self.population_size,
            'target_contacts': self.target_contacts,
            'max_generations': self.max_generations,
            'current_generation': self.current_generation,
            'homogeneous': self.homogeneous,
            'total_migrations': self.total_migrations,
            'islands': [island.to_dict() for island in self.islands],
        }


def create_species_from_config(config: Dict[str, Any], context: EvolutionContext) -> Species:
    """Create a Species instance from configuration dictionary.

    Args:
        config: Configuration dictionary with 'evolution' section
        context: Evolution context of the protein

    Returns:
        Configured Species instance (not yet seeded)
    """
    evolution_config = config.get('evolution', {})

    return Species(
        context,
        num_islands=evolution_config.get('num_islands', 4),
        population_size=evolution_config.get('population_size', 10),
        target_contacts=evolution_config.get('target_contacts', 10),
        max_generations=evolution_config.get('max_generations', 20),
        homogeneity_fraction=evolution_config.get('homogeneity_fraction', 0.8),
        convergence_threshold=evolution_config.get('convergence_threshold', 0.003),
        criterion=parse_criterion(evolution_config.get('ranking', 'random')),
        max_workers=evolution_config.get('max_workers', 1)
    )
