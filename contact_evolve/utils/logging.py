"""
Logging utilities for contact_evolve.

This module provides:
- Standard logging setup with console, file and error-only handlers
- EvolutionLogger for structured JSON-lines records of populations,
  migrations and generation-wide metrics
"""

import json
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

ROOT_LOGGER_NAME = 'contact_evolve'

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


@dataclass
class GenerationLog:
    """Summary of one island population at one generation."""
    generation: int
    island_id: int
    size: int
    criterion: str
    elite: int
    kept_contacts: int
    statistics: Dict[str, float] = field(default_factory=dict)
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return asdict(self)


@dataclass
class MigrationLog:
    """Data class for logging migration events."""
    generation: int
    pooled: int
    island_sizes: List[int]
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return asdict(self)


class EvolutionLogger:
    """
    Structured logger for tracking evolution progress.

    Writes one JSON object per line to:
    - generations.jsonl: per (island, generation) population summaries
    - migrations.jsonl: migration events
    - metrics.jsonl: generation-wide metrics
    """

    def __init__(self, log_dir: Union[str, Path]):
        """
        Initialize the evolution logger.

        Args:
            log_dir: Directory to store log files
        """
        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.logger = logging.getLogger(f'{ROOT_LOGGER_NAME}.evolution')

        self.generation_log_file = self.log_dir / 'generations.jsonl'
        self.migration_log_file = self.log_dir / 'migrations.jsonl'
        self.metrics_log_file = self.log_dir / 'metrics.jsonl'

        self.total_generations = 0
        self.total_populations = 0
        self.total_migrations = 0
        self.best_sensitivity_per_generation: List[float] = []

        self.logger.info(f"EvolutionLogger initialized at {self.log_dir}")

    def _append(self, path: Path, record: Dict[str, Any]) -> None:
        with open(path, 'a') as f:
            f.write(json.dumps(record) + '\n')

    def log_population(self, generation_log: GenerationLog):
        """
        Log the summary of one island population.

        Args:
            generation_log: GenerationLog dataclass instance
        """
        self._append(self.generation_log_file, generation_log.to_dict())
        self.total_populations += 1

        self.logger.debug(
            f"Gen {generation_log.generation} Island {generation_log.island_id}: "
            f"size={generation_log.size} elite={generation_log.elite} "
            f"kept={generation_log.kept_contacts} ({generation_log.criterion})"
        )

    def log_migration(self, migration_log: MigrationLog):
        """
        Log a migration event.

        Args:
            migration_log: MigrationLog dataclass instance
        """
        self._append(self.migration_log_file, migration_log.to_dict())
        self.total_migrations += 1

        self.logger.info(
            f"Migration (Gen {migration_log.generation}): "
            f"{migration_log.pooled} individuals over {len(migration_log.island_sizes)} islands"
        )

    def log_metrics(self, generation: int, metrics: Dict[str, Any]):
        """
        Log generation-level metrics summary.

        Args:
            generation: Generation number
            metrics: Dictionary of metrics (mean_sensitivity2, best_sensitivity2, ...)
        """
        metrics_entry = {
            'generation': generation,
            'timestamp': datetime.now().isoformat(),
            **metrics
        }
        self._append(self.metrics_log_file, metrics_entry)

        self.total_generations = max(self.total_generations, generation)
        if 'best_sensitivity2' in metrics:
            self.best_sensitivity_per_generation.append(metrics['best_sensitivity2'])

        self.logger.info(
            f"Generation {generation} Summary: "
            f"Best S2={metrics.get('best_sensitivity2', 0):.3f} | "
            f"Mean S2={metrics.get('mean_sensitivity2', 0):.3f} | "
            f"Kept={metrics.get('mean_kept_contacts', 0):.1f}"
        )

    def log_error(self, error: Exception, context: str = ""):
        """
        Log an error with context.

        Args:
            error: Exception instance
            context: Additional context about where the error occurred
        """
        self.logger.error(f"Error in {context}: {str(error)}", exc_info=True)

    def get_generation_summary(self, generation: int) -> Optional[Dict[str, Any]]:
        """
        Aggregate the population records of one generation.

        Args:
            generation: Generation number to retrieve

        Returns:
            Dictionary with generation summary or None if not found
        """
        if not self.generation_log_file.exists():
            return None

        events = []
        with open(self.generation_log_file, 'r') as f:
            for line in f:
                event = json.loads(line.strip())
                if event.get('generation') == generation:
                    events.append(event)

        if not events:
            return None

        return {
            'generation': generation,
            'islands': len(set(e['island_id'] for e in events)),
            'total_candidates': sum(e['size'] for e in events),
            'mean_kept_contacts': sum(e['kept_contacts'] for e in events) / len(events),
        }

    def get_evolution_summary(self) -> Dict[str, Any]:
        """
        Get a summary of the entire evolution run.

        Returns:
            Dictionary with overall statistics
        """
        history = self.best_sensitivity_per_generation
        return {
            'total_generations': self.total_generations,
            'total_populations': self.total_populations,
            'total_migrations': self.total_migrations,
            'best_sensitivity_overall': max(history) if history else 0.0,
            'final_best_sensitivity': history[-1] if history else 0.0,
            'sensitivity_improvement': history[-1] - history[0] if len(history) > 1 else 0.0,
        }


def setup_logging(
    log_dir: Union[str, Path] = "results/logs",
    log_level: Union[str, int] = "INFO",
    log_to_file: bool = True,
    log_to_console: bool = True
) -> logging.Logger:
    """
    Set up standard logging configuration for contact_evolve.

    Args:
        log_dir: Directory to store log files
        log_level: Logging level as string ('DEBUG', 'INFO', ...) or int
        log_to_file: Whether to log to file
        log_to_console: Whether to log to console

    Returns:
        Configured logger instance
    """
    level_map = {
        'DEBUG': logging.DEBUG,
        'INFO': logging.INFO,
        'WARNING': logging.WARNING,
        'ERROR': logging.ERROR,
        'CRITICAL': logging.CRITICAL
    }
    if isinstance(log_level, int):
        log_level_int = log_level
    else:
        log_level_int = level_map.get(str(log_level).upper(), logging.INFO)

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(log_level_int)

    # Clear existing handlers
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    if log_to_console:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(log_level_int)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    if log_to_file:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_path / 'contact_evolve.log', mode='a')
        file_handler.setLevel(log_level_int)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

        # Error log file (separate file for errors only)
        error_handler = logging.FileHandler(log_path / 'errors.log', mode='a')
        error_handler.setLevel(logging.ERROR)
        error_handler.setFormatter(formatter)
        logger.addHandler(error_handler)

    logger.info(f"Logging initialized at level {log_level} to {log_dir}")

    return logger


def get_logger(name: str = ROOT_LOGGER_NAME) -> logging.Logger:
    """
    Get a logger instance by name.

    Args:
        name: Logger name (default: 'contact_evolve')

    Returns:
        Logger instance
    """
    return logging.getLogger(name)
