#!/usr/bin/env python
"""Initialize the emerging trends database and seed communities."""

import logging
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from dotenv import load_dotenv

load_dotenv()


def main():
    """Create tables and insert the seed communities."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    from data_models.settings import get_settings
    from db.database import create_db_engine, create_session_factory, init_db
    from services.community_registry import CommunityRegistry

    settings = get_settings()
    print(f"Initializing database: {settings.database_url}")

    engine = create_db_engine(settings.database_url)
    init_db(engine)

    registry = CommunityRegistry(create_session_factory(engine), settings.seed_communities)
    inserted = registry.ensure_seeds()
    print(f"Seed communities inserted: {inserted}")

    print("\nDatabase initialization complete!")
    print("\nNext steps:")
    print("  1. Copy .env.example to .env and set SCRAPER_API_* and MISTRAL_API_KEY")
    print("  2. Run discovery: python scripts/run_discovery.py --platform reddit")
    print("  3. Start the API: python -m api.main")


if __name__ == "__main__":
    main()
