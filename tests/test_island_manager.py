"""
Test suite for the island model.

Tests cover:
- Seeding and grid access
- Both homogeneity heuristics
- Migration preserving the multiset of individuals
- Idempotent generation steps, cancellation and termination reasons
- Deterministic parallel island evolution
- Error-spread convergence, history table and configuration factory
"""

import threading
from collections import Counter

import pandas as pd
import pytest

from contact_evolve.evolutionary.contact_map import ContactMap
from contact_evolve.evolutionary.context import EvolutionContext, Reference
from contact_evolve.evolutionary.island_manager import (
    Species,
    TerminationReason,
    create_species_from_config,
)
from contact_evolve.evolutionary.population import ContactMapPopulation
from contact_evolve.evolutionary.selection import RankingCriterion
from contact_evolve.exceptions import NoSuchEntryError, ProteinMismatchError

from conftest import FIVE_RESIDUE_CONTACTS, make_context


def uniform_population(context, contacts, size=4) -> ContactMapPopulation:
    return ContactMapPopulation([ContactMap(contacts, context) for _ in range(size)])


def make_species(context=None, **kwargs) -> Species:
    if context is None:
        context = make_context()
    settings = dict(num_islands=3, population_size=6, target_contacts=3, max_generations=5)
    settings.update(kwargs)
    return Species(context, **settings)


class TestSeeding:
    """Test seeding and grid access."""

    def test_seed_from_reference(self):
        """Test that every island gets a sampled generation 0."""
        species = make_species()
        species.seed_islands()
        for island in species.islands:
            population = island.population(0)
            assert len(population) == 6
            assert all(len(c.contacts) == 3 for c in population)
        assert species.current_generation == 0

    def test_seed_wrong_count(self, context):
        """Test that one population per island is required."""
        species = make_species(context)
        with pytest.raises(ValueError):
            species.seed_islands([uniform_population(context, [(1, 3)])])

    def test_seed_other_protein(self, context):
        """Test that populations of another protein are rejected."""
        other = EvolutionContext(reference=Reference('other', 5, FIVE_RESIDUE_CONTACTS))
        species = make_species(context, num_islands=1)
        with pytest.raises(ProteinMismatchError):
            species.seed_islands([uniform_population(other, [(1, 3)])])

    def test_missing_cells(self):
        """Test that missing islands or generations raise NoSuchEntryError."""
        species = make_species()
        species.seed_islands()
        with pytest.raises(NoSuchEntryError):
            species.get_population(0, 1)
        with pytest.raises(NoSuchEntryError):
            species.get_population(7, 0)
        assert species.get_population(2, 0) is species.islands[2].population(0)

    def test_invalid_settings(self, context):
        """Test constructor validation."""
        with pytest.raises(ValueError):
            Species(context, num_islands=0)
        with pytest.raises(ValueError):
            Species(context, homogeneity_fraction=1.5)


class TestHomogeneity:
    """Test both homogeneity heuristics."""

    def test_identical_islands(self, context):
        """Test that identical kept subsets of full size are homogeneous."""
        species = make_species(context)
        contacts = [(1, 3), (2, 4), (3, 5)]
        species.seed_islands([uniform_population(context, contacts) for _ in range(3)])
        assert species.check_for_homogeneity(0, 0.8)
        assert species.homogeneous
        assert species.is_generation_homogeneous(0)

    def test_disjoint_islands(self, context):
        """Test that pairwise disjoint islands are not homogeneous."""
        species = make_species(context, target_contacts=1)
        species.seed_islands([
            uniform_population(context, [(1, 3)]),
            uniform_population(context, [(2, 4)]),
            uniform_population(context, [(3, 5)]),
        ])
        assert not species.check_for_homogeneity(0, 0.8)
        assert not species.homogeneous
        # each island agrees internally, so the averaged test still fires
        assert species.is_generation_homogeneous(0)

    def test_disagreeing_candidates(self, context, pair_a, pair_b):
        """Test that islands without internal agreement are not homogeneous."""
        species = make_species(context, num_islands=2, target_contacts=2)
        mixed = [
            ContactMapPopulation([ContactMap(pair_a, context), ContactMap(pair_b, context)])
            for _ in range(2)
        ]
        species.seed_islands(mixed)
        assert species.kept_contacts(0) == [frozenset(), frozenset()]
        assert not species.is_generation_homogeneous(0)
        assert not species.check_for_homogeneity(0)

    def test_threshold_fraction(self, context):
        """Test that a stricter fraction needs a larger intersection."""
        species = make_species(context, num_islands=2, target_contacts=3)
        species.seed_islands([uniform_population(context, [(1, 3), (2, 4)]) for _ in range(2)])
        # 2 / 0.8 = 2.5 < 3 but 2 / 0.6 >= 3
        assert not species.check_for_homogeneity(0, 0.8)
        assert species.check_for_homogeneity(0, 0.6)


class TestMigration:
    """Test the reshuffle of individuals across islands."""

    def test_multiset_preserved(self):
        """Test that no individual is created or lost."""
        species = make_species()
        species.seed_islands()
        before = Counter(id(c) for population in species.populations_at(0) for c in population)
        stats = species.migrate(0)
        after = Counter(id(c) for population in species.populations_at(0) for c in population)
        assert before == after
        assert stats['pooled'] == 18
        assert [len(p) for p in species.populations_at(0)] == [6, 6, 6]
        assert species.total_migrations == 1
        assert len(species.migration_log) == 1

    def test_island_sizes_preserved(self, context):
        """Test that unequal island sizes survive migration."""
        species = make_species(context, num_islands=2)
        species.seed_islands([
            uniform_population(context, [(1, 3)], size=2),
            uniform_population(context, [(2, 4)], size=5),
        ])
        species.migrate(0)
        assert [len(p) for p in species.populations_at(0)] == [2, 5]

    def test_migrated_populations_ranked(self):
        """Test that reshuffled populations are ready to evolve."""
        species = make_species()
        species.seed_islands()
        species.migrate(0)
        assert all(p.is_ranked for p in species.populations_at(0))
        assert all(p.generation == 0 for p in species.populations_at(0))


class TestEvolveStep:
    """Test single generation steps."""

    def test_step_adds_generation(self):
        """Test that a step fills generation g + 1 on every island."""
        species = make_species()
        species.seed_islands()
        assert species.evolve_step()
        assert species.current_generation == 1
        for island in species.islands:
            assert island.population(1).generation == 1
            assert 0 in island.generations

    def test_step_is_idempotent(self):
        """Test that existing generations are not recomputed."""
        species = make_species()
        species.seed_islands()
        existing = species.islands[0].population(0).evolve()
        species.islands[0].generations[1] = existing
        species.evolve_step()
        assert species.get_population(0, 1) is existing

    def test_step_migrates_homogeneous_islands(self, context):
        """Test that homogeneous generations are reshuffled first."""
        species = make_species(context)
        contacts = [(1, 3), (2, 4), (3, 5)]
        species.seed_islands([uniform_population(context, contacts) for _ in range(3)])
        species.evolve_step()
        assert species.total_migrations == 1
        assert species.migration_log[0]['generation'] == 0

    def test_cancelled_step(self):
        """Test the cancellation point at the top of a step."""
        species = make_species()
        species.seed_islands()
        cancel = threading.Event()
        cancel.set()
        assert not species.evolve_step(cancel)
        assert species.current_generation == 0
        assert species.evolve(cancel_event=cancel) is TerminationReason.CANCELLED

    def test_parallel_matches_sequential(self):
        """Test that worker threads do not change the outcome."""
        sequential = make_species(make_context(seed=17), max_workers=1)
        parallel = make_species(make_context(seed=17), max_workers=3)
        for species in (sequential, parallel):
            species.seed_islands()
            species.evolve_step()
            species.evolve_step()

        def snapshot(species):
            return [[c.contacts for c in p] for p in species.populations_at(2)]

        assert snapshot(sequential) == snapshot(parallel)

    def test_configured_criterion_every_generation(self):
        """Test that a configured criterion ranks every island and generation."""
        species = make_species(criterion=RankingCriterion.POWER2)
        species.seed_islands()
        species.evolve_step()
        species.evolve_step()
        criteria = {
            (island.island_id, generation): population.criterion
            for island in species.islands
            for generation, population in island.generations.items()
        }
        assert len(criteria) == 9
        assert set(criteria.values()) == {RankingCriterion.POWER2}


class TestEvolve:
    """Test the bounded evolution loops."""

    def test_homogeneous_start_stops_immediately(self, context):
        """Test that homogeneous islands end the loop before any step."""
        species = make_species(context)
        contacts = [(1, 3), (2, 4), (3, 5)]
        species.seed_islands([uniform_population(context, contacts) for _ in range(3)])
        assert species.evolve(final_generation=3) is TerminationReason.HOMOGENEOUS
        assert species.current_generation == 0

    def test_evolve_to_final_generation(self):
        """Test that the loop ends homogeneous or at the final generation."""
        species = make_species()
        species.seed_islands()
        seen = []
        reason = species.evolve(final_generation=3, callback=seen.append)
        assert reason in (TerminationReason.MAX_GENERATIONS, TerminationReason.HOMOGENEOUS)
        assert seen == list(range(1, species.current_generation + 1))
        if reason is TerminationReason.MAX_GENERATIONS:
            assert species.current_generation == 3
        else:
            assert species.homogeneous
            assert species.current_generation <= 3

    def test_converged_on_identical_candidates(self, context):
        """Test that zero error spread counts as converged."""
        species = make_species(context, num_islands=2)
        species.seed_islands([uniform_population(context, [(1, 3), (2, 4)]) for _ in range(2)])
        assert species.mean_error_stdev(0) == pytest.approx(0.0)
        assert species.is_less_than_threshold(0)
        assert species.evolve_until_converged() is TerminationReason.CONVERGED

    def test_convergence_loop_budget(self):
        """Test that an impossible threshold runs the full budget."""
        species = make_species(max_generations=2, convergence_threshold=-1.0)
        species.seed_islands()
        assert species.evolve_until_converged() is TerminationReason.MAX_GENERATIONS
        assert species.current_generation == 2

    def test_error_metric_validation(self, context):
        """Test unknown metrics and missing distance data."""
        species = make_species(context, num_islands=1)
        species.seed_islands([uniform_population(context, [(1, 3)])])
        with pytest.raises(ValueError):
            species.mean_error_stdev(0, 'rmsd')
        with pytest.raises(ValueError):
            species.mean_error_stdev(0, 'distance_map_error')


class TestReporting:
    """Test history, snapshots and clearing."""

    def test_history_frame(self):
        """Test one row per island and generation."""
        species = make_species()
        species.seed_islands()
        species.evolve_step()
        frame = species.history_frame()
        assert isinstance(frame, pd.DataFrame)
        assert len(frame) == 6
        assert set(frame['generation']) == {0, 1}
        assert {'island', 'size', 'criterion', 'kept_contacts', 'mean_native2'} <= set(frame.columns)

    def test_empty_history(self):
        """Test the history of an unseeded species."""
        frame = make_species().history_frame()
        assert frame.empty
        assert 'generation' in frame.columns

    def test_statistics_and_best(self):
        """Test generation statistics and the best candidate."""
        species = make_species()
        species.seed_islands()
        stats = species.get_population_statistics(0)
        assert stats['total_candidates'] == 18
        best = species.best_candidate(0)
        assert best.sensitivity2 == pytest.approx(stats['best_sensitivity2'])

    def test_clear(self):
        """Test that clearing drops the grid."""
        species = make_species()
        species.seed_islands()
        species.evolve_step()
        species.clear()
        assert species.current_generation == 0
        assert all(not island.generations for island in species.islands)
        with pytest.raises(NoSuchEntryError):
            species.populations_at(0)

    def test_to_dict(self):
        """Test the dictionary snapshot."""
        species = make_species()
        species.seed_islands()
        data = species.to_dict()
        assert data['protein_id'] == 'toy'
        assert data['num_islands'] == 3
        assert data['islands'][0]['generations'] == [0]


class TestFactory:
    """Test creating a species from configuration."""

    def test_from_config(self, context):
        """Test that configuration values are applied."""
        config = {
            'evolution': {
                'num_islands': 2,
                'population_size': 5,
                'target_contacts': 2,
                'max_generations': 7,
                'ranking': 'power3',
                'max_workers': 2,
            }
        }
        species = create_species_from_config(config, context)
        assert species.num_islands == 2
        assert species.population_size == 5
        assert species.max_generations == 7
        assert species.criterion is RankingCriterion.POWER3
        assert species.max_workers == 2

    def test_defaults(self, context):
        """Test defaults for an empty configuration."""
        species = create_species_from_config({}, context)
        assert species.num_islands == 4
        assert species.criterion is None
        assert species.homogeneity_fraction == 0.8
