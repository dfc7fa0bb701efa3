"""
Run orchestration for contact map evolution.

Builds the evolution context, the island species and the loggers from one
configuration dictionary, runs the configured termination mode and collects
the results.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import pandas as pd
import yaml

from ..reference import (
    InMemoryReferenceProvider,
    ReferenceData,
    ReferenceProvider,
    TriangleBoundInferrer,
    reference_data_from_coordinates,
)
from ..utils.logging import EvolutionLogger, GenerationLog, MigrationLog, setup_logging
from .contact_map import ContactMap
from .context import ReferenceRegistry
from .island_manager import ERROR_METRICS, TerminationReason, create_species_from_config
from .selection import RankingCriterion

logger = logging.getLogger(__name__)

TERMINATION_MODES = ('homogeneity', 'convergence', 'max_generations')

DEFAULT_CONFIG: Dict[str, Any] = {
    'evolution': {
        'seed': None,
        'num_islands': 4,
        'population_size': 10,
        'target_contacts': 10,
        'max_generations': 20,
        'max_potence': 4,
        'homogeneity_fraction': 0.8,
        'convergence_threshold': 0.003,
        'convergence_metric': 'contact_map_error',
        'termination': 'homogeneity',
        'ranking': 'random',
        'max_workers': 1,
    },
    'bounds': {
        'backbone_distance': 3.8,
        'min_distance': 2.8,
        'contact_cutoff': 9.0,
    },
    'logging': {
        'level': 'INFO',
        'directory': 'results/logs',
        'to_file': True,
        'to_console': True,
    },
}


def validate_evolution_config(config: Dict[str, Any]) -> bool:
    """
    Validate evolution configuration parameters.

    Args:
        config: Configuration dictionary

    Returns:
        True if configuration is valid, False otherwise
    """
    evolution_config = config.get('evolution', {})

    for param in ('num_islands', 'population_size', 'target_contacts', 'max_generations'):
        value = evolution_config.get(param)
        if not isinstance(value, int) or value < 1:
            logger.warning(f"Evolution parameter {param} must be a positive integer, got {value}")
            return False

    fraction = evolution_config.get('homogeneity_fraction', 0.8)
    if not (0.0 < fraction <= 1.0):
        logger.warning("Homogeneity fraction must be between 0.0 and 1.0")
        return False

    if evolution_config.get('max_potence', 4) < 4:
        logger.warning("max_potence must be at least 4 to score third powers")
        return False

    if evolution_config.get('termination', 'homogeneity') not in TERMINATION_MODES:
        logger.warning(f"Termination mode must be one of {TERMINATION_MODES}")
        return False

    if evolution_config.get('convergence_metric', 'contact_map_error') not in ERROR_METRICS:
        logger.warning(f"Convergence metric must be one of {ERROR_METRICS}")
        return False

    ranking = evolution_config.get('ranking', 'random')
    if ranking != 'random' and ranking not in [c.value for c in RankingCriterion]:
        logger.warning(f"Unknown ranking criterion '{ranking}'")
        return False

    if evolution_config.get('population_size', 1) < 4:
        logger.warning("Populations below 4 candidates make every candidate elite")

    return True


def reference_data_from_config(config: Dict[str, Any]) -> ReferenceData:
    """Build reference data from the 'reference' configuration section.

    The section holds either explicit 'contacts' (pairs of 1-based positions)
    with a 'sequence_length', or 'ca_coordinates' from which contacts are
    derived with 'contact_cutoff'.
    """
    reference_config = config.get('reference') or {}
    protein_id = reference_config.get('protein_id', 'reference')

    if 'ca_coordinates' in reference_config:
        return reference_data_from_coordinates(
            protein_id,
            reference_config['ca_coordinates'],
            cutoff=reference_config.get(
                'contact_cutoff', config.get('bounds', {}).get('contact_cutoff', 9.0)
            )
        )

    if 'contacts' not in reference_config or 'sequence_length' not in reference_config:
        raise ValueError("Reference needs 'contacts' and 'sequence_length', or 'ca_coordinates'")

    return ReferenceData(
        protein_id=protein_id,
        sequence_length=reference_config['sequence_length'],
        contacts=[tuple(pair) for pair in reference_config['contacts']],
        distances=reference_config.get('distances')
    )


@dataclass
class RunResult:
    """Outcome of one evolution run.

    Attributes:
        protein_id: Protein the run evolved contacts for
        termination: Why the run stopped
        final_generation: Last generation reached
        best: Best candidate of the final generation
        history: Per (island, generation) table
        runtime_seconds: Wall-clock duration
    """
    protein_id: str
    termination: TerminationReason
    final_generation: int
    best: ContactMap
    history: pd.DataFrame
    runtime_seconds: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            'protein_id': self.protein_id,
            'termination': self.termination.value,
            'final_generation': self.final_generation,
            'best': self.best.to_dict(),
            'runtime_seconds': self.runtime_seconds,
        }


class ContactEvolve:
    """
    Contact map evolution run.

    Attributes:
        config: Normalized configuration dictionary
        registry: Reference registry backing the context
        context: Evolution context of the configured protein
        species: Island orchestrator
        evolution_logger: Structured JSON-lines logger, None if file logging is off
    """

    def __init__(
        self,
        config: Dict[str, Any],
        provider: Optional[ReferenceProvider] = None,
        protein_id: Optional[str] = None
    ):
        """
        Initialize a run.

        Args:
            config: Configuration dictionary loaded from YAML
            provider: Reference provider; built from the 'reference' section
                when omitted
            protein_id: Protein to evolve (defaults to reference.protein_id)

        Raises:
            ValueError: If the configuration is invalid
        """
        self.config = self._normalize_config(config)
        if not validate_evolution_config(self.config):
            raise ValueError("Invalid evolution configuration, see log for details")

        logging_config = self.config['logging']
        self.log_dir = logging_config['directory']
        setup_logging(
            log_dir=self.log_dir,
            log_level=logging_config['level'],
            log_to_file=logging_config['to_file'],
            log_to_console=logging_config['to_console']
        )

        if provider is None:
            data = reference_data_from_config(self.config)
            provider = InMemoryReferenceProvider([data])
            protein_id = protein_id or data.protein_id
        if protein_id is None:
            protein_id = self.config.get('reference', {}).get('protein_id', 'reference')

        self._initialize_components(provider, protein_id)

        evolution_config = self.config['evolution']
        logger.info(f"ContactEvolve initialized for {protein_id}")
        logger.info(f"Islands: {evolution_config['num_islands']} x {evolution_config['population_size']}")
        logger.info(f"Target contacts: {evolution_config['target_contacts']}")
        logger.info(f"Termination: {evolution_config['termination']}")

    def _normalize_config(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """
        Fill defaults and map alternative key names onto one schema.
        """
        cfg = dict(config or {})

        evolution_cfg = dict(DEFAULT_CONFIG['evolution'])
        user_evolution = dict(cfg.get('evolution', {}) or {})
        if 'max_generations' not in user_evolution and 'generations' in user_evolution:
            user_evolution['max_generations'] = user_evolution.pop('generations')
        if 'num_islands' not in user_evolution and 'demes' in user_evolution:
            user_evolution['num_islands'] = user_evolution.pop('demes')
        evolution_cfg.update(user_evolution)
        cfg['evolution'] = evolution_cfg

        bounds_cfg = dict(DEFAULT_CONFIG['bounds'])
        bounds_cfg.update(cfg.get('bounds', {}) or {})
        cfg['bounds'] = bounds_cfg

        logging_cfg = dict(DEFAULT_CONFIG['logging'])
        user_logging = dict(cfg.get('logging', {}) or {})
        if 'directory' not in user_logging and 'log_directory' in user_logging:
            user_logging['directory'] = user_logging.pop('log_directory')
        logging_cfg.update(user_logging)
        cfg['logging'] = logging_cfg

        return cfg

    def _initialize_components(self, provider: ReferenceProvider, protein_id: str):
        """Initialize context, species and loggers from configuration."""
        bounds_config = self.config['bounds']
        evolution_config = self.config['evolution']

        self.registry = ReferenceRegistry(provider)
        self.context = self.registry.context(
            protein_id,
            seed=evolution_config['seed'],
            bound_inferrer=TriangleBoundInferrer(
                contact_cutoff=bounds_config['contact_cutoff'],
                backbone_distance=bounds_config['backbone_distance'],
                min_distance=bounds_config['min_distance']
            ),
            max_potence=evolution_config['max_potence']
        )

        available = len(self.context.reference.tertiary_contacts)
        if evolution_config['target_contacts'] > available:
            raise ValueError(
                f"Target of {evolution_config['target_contacts']} contacts exceeds the "
                f"{available} tertiary contacts of {protein_id}"
            )

        self.species = create_species_from_config(self.config, self.context)

        self.evolution_logger: Optional[EvolutionLogger] = None
        if self.config['logging']['to_file']:
            self.evolution_logger = EvolutionLogger(log_dir=self.log_dir)
        self._logged_migrations = 0

    def _record_generation(self, generation: int) -> None:
        if self.evolution_logger is None:
            return

        for migration in self.species.migration_log[self._logged_migrations:]:
            self.evolution_logger.log_migration(MigrationLog(
                generation=migration['generation'],
                pooled=migration['pooled'],
                island_sizes=migration['island_sizes']
            ))
        self._logged_migrations = len(self.species.migration_log)

        for island in self.species.islands:
            population = island.population(generation)
            self.evolution_logger.log_population(GenerationLog(
                generation=generation,
                island_id=island.island_id,
                size=len(population),
                criterion=population.criterion.value,
                elite=len(population.ranking.elite) if population.ranking else 0,
                kept_contacts=len(population.kept_contacts()),
                statistics=population.statistics.to_dict()
            ))
        self.evolution_logger.log_metrics(
            generation, self.species.get_population_statistics(generation)
        )

    def run(self, cancel_event: Optional[threading.Event] = None) -> RunResult:
        """
        Seed the islands and evolve until the configured termination.

        Args:
            cancel_event: Cooperative cancellation flag checked every generation

        Returns:
            RunResult with the best candidate and the population history
        """
        start_time = time.time()
        evolution_config = self.config['evolution']
        mode = evolution_config['termination']

        self.species.seed_islands()
        self._record_generation(0)

        if mode == 'homogeneity':
            termination = self.species.evolve(
                cancel_event=cancel_event, callback=self._record_generation
            )
        elif mode == 'convergence':
            termination = self.species.evolve_until_converged(
                metric=evolution_config['convergence_metric'],
                cancel_event=cancel_event,
                callback=self._record_generation
            )
        else:
            termination = TerminationReason.MAX_GENERATIONS
            while self.species.current_generation < self.species.max_generations:
                if not self.species.evolve_step(cancel_event):
                    termination = TerminationReason.CANCELLED
                    break
                self._record_generation(self.species.current_generation)

        result = RunResult(
            protein_id=self.context.protein_id,
            termination=termination,
            final_generation=self.species.current_generation,
            best=self.species.best_candidate(),
            history=self.species.history_frame(),
            runtime_seconds=time.time() - start_time
        )

        logger.info(
            f"Run finished ({termination.value}) at generation {result.final_generation}: "
            f"best sensitivity2={result.best.sensitivity2:.3f}, "
            f"non_natives2={result.best.non_natives2}"
        )
        return result


def create_contact_evolve_from_config(config_path: str) -> ContactEvolve:
    """
    Factory function to create a ContactEvolve run from a YAML config.

    Args:
        config_path: Path to YAML configuration file

    Returns:
        ContactEvolve: Initialized run
    """
    with open(config_path, 'r') as f:
        config = yaml.safe_load(f)

    return ContactEvolve(config)


def run_evolution(config_path: str) -> RunResult:
    """
    Convenience function to run a complete evolution from a config file.

    Args:
        config_path: Path to YAML configuration file

    Returns:
        RunResult of the run
    """
    return create_contact_evolve_from_config(config_path).run()
