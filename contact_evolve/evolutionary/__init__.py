"""
Evolutionary Algorithm Module for contact_evolve.

This module implements the optimization engine: contact map candidates and
their fitness, population ranking and crossover, and the island model with
homogeneity detection and migration.
"""

from .context import Reference, ReferenceRegistry, EvolutionContext, contact_matrix
from .fitness import ErrorScores, CandidateEvaluator, contact_map_error, distance_map_error
from .contact_map import ContactMap, random_contact_maps, kept_contacts
from .selection import RankingCriterion, RankingResult, rank_candidates, choose_criterion, parse_criterion
from .population import ContactMapPopulation, PopulationStatistics, mean_and_stdev
from .island_manager import Island, Species, TerminationReason, create_species_from_config
from .algorithm import ContactEvolve, RunResult, validate_evolution_config, create_contact_evolve_from_config, run_evolution

__all__ = [
    # Context
    'Reference',
    'ReferenceRegistry',
    'EvolutionContext',
    'contact_matrix',

    # Fitness
    'ErrorScores',
    'CandidateEvaluator',
    'contact_map_error',
    'distance_map_error',

    # Candidates
    'ContactMap',
    'random_contact_maps',
    'kept_contacts',

    # Selection
    'RankingCriterion',
    'RankingResult',
    'rank_candidates',
    'choose_criterion',
    'parse_criterion',

    # Population
    'ContactMapPopulation',
    'PopulationStatistics',
    'mean_and_stdev',

    # Island Manager
    'Island',
    'Species',
    'TerminationReason',
    'create_species_from_config',

    # Algorithm
    'ContactEvolve',
    'RunResult',
    'validate_evolution_config',
    'create_contact_evolve_from_config',
    'run_evolution',
]
