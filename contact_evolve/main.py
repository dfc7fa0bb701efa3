#!/usr/bin/env python3
"""
contact_evolve: island-model evolution of sparse protein contact maps

Main entry point.

Usage:
    python -m contact_evolve.main
    python -m contact_evolve.main --config my_protein.yaml --generations 50 --seed 7
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .evolutionary.algorithm import ContactEvolve, RunResult

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).parent / "config" / "default_config.yaml"


def load_config(config_path: str) -> Dict[str, Any]:
    """
    Load configuration from YAML file, merged over the default configuration.

    Args:
        config_path: Path to configuration YAML file

    Returns:
        Configuration dictionary

    Raises:
        FileNotFoundError: If the file does not exist
    """
    config_file = Path(config_path)
    if not config_file.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    logger.info(f"Loading configuration from: {config_file}")

    with open(config_file, 'r') as f:
        config = yaml.safe_load(f) or {}

    if DEFAULT_CONFIG_PATH.exists() and config_file.resolve() != DEFAULT_CONFIG_PATH.resolve():
        with open(DEFAULT_CONFIG_PATH, 'r') as f:
            default_config = yaml.safe_load(f) or {}
        config = _deep_merge(default_config, config)

    return config


def _deep_merge(base: Dict, override: Dict) -> Dict:
    """
    Deep merge two dictionaries, with override taking precedence.

    Args:
        base: Base dictionary
        override: Dictionary with override values

    Returns:
        Merged dictionary
    """
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def parse_arguments(argv: Optional[list] = None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Returns:
        Parsed arguments namespace
    """
    parser = argparse.ArgumentParser(
        description="contact_evolve: island-model evolution of sparse protein contact maps",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run with the bundled example reference
  python -m contact_evolve.main

  # More generations, fixed seed, four worker threads
  python -m contact_evolve.main --config protein.yaml --generations 50 --seed 7 --workers 4
        """
    )

    parser.add_argument(
        "--config", "-c",
        type=str,
        default=str(DEFAULT_CONFIG_PATH),
        help="Path to configuration YAML file (default: the bundled default_config.yaml)"
    )
    parser.add_argument(
        "--generations", "-g",
        type=int,
        default=None,
        help="Maximum number of generations (overrides config file setting)"
    )
    parser.add_argument(
        "--islands", "-i",
        type=int,
        default=None,
        help="Number of islands (overrides config file setting)"
    )
    parser.add_argument(
        "--seed", "-s",
        type=int,
        default=None,
        help="Random seed for a reproducible run"
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Threads evolving islands in parallel"
    )
    parser.add_argument(
        "--output-dir", "-o",
        type=str,
        default=None,
        help="Directory for log files (overrides logging.directory)"
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level (default: from config)"
    )

    return parser.parse_args(argv)


def apply_overrides(config: Dict[str, Any], args: argparse.Namespace) -> Dict[str, Any]:
    """Override configuration values with command-line arguments."""
    overrides = {
        'evolution': {
            key: value for key, value in (
                ('max_generations', args.generations),
                ('num_islands', args.islands),
                ('seed', args.seed),
                ('max_workers', args.workers),
            ) if value is not None
        },
        'logging': {
            key: value for key, value in (
                ('directory', args.output_dir),
                ('level', args.log_level),
            ) if value is not None
        },
    }
    return _deep_merge(config, overrides)


def run_contact_evolve(args: argparse.Namespace) -> Optional[RunResult]:
    """
    Main execution function.

    Args:
        args: Parsed command-line arguments

    Returns:
        RunResult, or None if the run failed
    """
    try:
        config = apply_overrides(load_config(args.config), args)
    except (OSError, yaml.YAMLError) as e:
        logger.error(f"Failed to load configuration: {e}")
        return None

    try:
        run = ContactEvolve(config)
        result = run.run()
    except KeyboardInterrupt:
        logger.warning("Evolution interrupted by user")
        return None
    except Exception as e:
        logger.error(f"Evolution failed with error: {e}", exc_info=True)
        return None

    logger.info("=" * 60)
    logger.info("EVOLUTION SUMMARY")
    logger.info("=" * 60)
    logger.info(json.dumps(result.to_dict(), indent=2))
    return result


def main(argv: Optional[list] = None):
    """
    Main entry point.
    """
    args = parse_arguments(argv)
    result = run_contact_evolve(args)
    sys.exit(0 if result is not None else 1)


if __name__ == "__main__":
    main()
