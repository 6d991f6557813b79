#!/usr/bin/env python
"""CLI for running one emerging trends discovery cycle."""

import argparse
import logging
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from dotenv import load_dotenv

load_dotenv()

from data_models.discovery import DiscoveryOptions
from data_models.signals import Platform
from data_models.velocity_config import DEFAULT_VELOCITY_PRESET, VelocityPreset


def setup_logging(verbose: bool = False):
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def main():
    parser = argparse.ArgumentParser(description="Discover emerging trends in niche communities")
    parser.add_argument(
        "--platform",
        action="append",
        choices=[p.value for p in Platform],
        help="Platform to scrape (repeatable, default: reddit)",
    )
    parser.add_argument(
        "--preset",
        choices=[p.value for p in VelocityPreset],
        default=DEFAULT_VELOCITY_PRESET.value,
        help="Velocity threshold preset",
    )
    parser.add_argument("--max-signals", type=int, help="Cap on total signals scraped")
    parser.add_argument(
        "--no-evaluate",
        action="store_true",
        help="Scrape and score only, skip the viability evaluation",
    )
    parser.add_argument("--health", action="store_true", help="Print pipeline health and exit")
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose logging")
    args = parser.parse_args()

    setup_logging(args.verbose)

    from services.emerging_trends import check_emerging_trends_health, discover_emerging_trends

    if args.health:
        health = check_emerging_trends_health()
        print(health.model_dump_json(indent=2))
        sys.exit(0 if health.ready else 1)

    options = DiscoveryOptions(
        platforms=args.platform or [Platform.REDDIT],
        velocity_preset=args.preset,
        max_total_signals=args.max_signals,
        include_evaluations=not args.no_evaluate,
    )
    logging.info(f"Running discovery: {options.model_dump()}")

    result = discover_emerging_trends(options)
    print(result.model_dump_json(indent=2))

    for error in result.errors:
        logging.warning(error)

    sys.exit(0 if result.success else 1)


if __name__ == "__main__":
    main()
