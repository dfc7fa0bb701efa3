"""
Utilities module for contact_evolve.

Logging setup and structured evolution records.
"""

from .logging import setup_logging, EvolutionLogger, GenerationLog, MigrationLog, get_logger

__all__ = [
    'setup_logging',
    'EvolutionLogger',
    'GenerationLog',
    'MigrationLog',
    'get_logger',
]
