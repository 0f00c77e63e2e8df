#!/usr/bin/env python3
"""
Database Initialization Script
==============================

Create the regulatory-truth schema (pgvector extension and tables).

Usage:
    python scripts/init_database.py
    python scripts/init_database.py --drop
    python scripts/init_database.py --check

Version: 0.1.0
"""

import argparse
import asyncio
import sys

from services.regulatory_truth.storage.schema import create_schema, server_version
from shared.config import settings
from shared.database.postgres import PostgresClient
from shared.logging import get_logger, setup_logging


setup_logging(log_level="INFO", json_logs=False, service_name="init-db")
logger = get_logger(__name__)


async def main(args: argparse.Namespace) -> int:
    """Main initialization function."""
    client = PostgresClient(settings.postgres)

    try:
        version = await server_version(client)
        logger.info("postgres_connected", version=version[:50])

        if args.check:
            return 0

        if args.drop and settings.is_production:
            logger.error("schema_drop_refused", environment=settings.environment.value)
            return 1

        tables = await create_schema(client, drop_existing=args.drop)
        logger.info("database_initialized", table_count=len(tables))
        return 0

    except Exception as e:
        logger.error("database_initialization_failed", error=str(e))
        return 1

    finally:
        await client.close()


def parse_args() -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Initialize the regulatory-truth database",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--drop",
        action="store_true",
        help="Drop existing tables first (refused in production)",
    )
    parser.add_argument(
        "--check",
        action="store_true",
        help="Only verify the connection",
    )

    return parser.parse_args()


if __name__ == "__main__":
    args = parse_args()
    exit_code = asyncio.run(main(args))
    sys.exit(exit_code)
