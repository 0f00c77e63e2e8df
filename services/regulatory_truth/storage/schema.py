"""
Schema setup for the regulatory-truth tables.

The pgvector extension must exist before `source_pointers` can be
created, so it is enabled in the same transaction as the tables.
"""

from sqlalchemy import text

from services.regulatory_truth.storage import models  # noqa: F401  registers tables
from shared.database.postgres import Base, PostgresClient
from shared.logging import get_logger


logger = get_logger(__name__)


async def create_schema(client: PostgresClient, drop_existing: bool = False) -> list[str]:
    """
    Enable pgvector and create all tables.

    Returns:
        Names of the tables in the metadata, in creation order.
    """
    async with client.engine.begin() as conn:
        await conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
        if drop_existing:
            await conn.run_sync(Base.metadata.drop_all)
            logger.warning("regulatory_truth_schema_dropped")
        await conn.run_sync(Base.metadata.create_all)

    tables = [table.name for table in Base.metadata.sorted_tables]
    logger.info("regulatory_truth_schema_created", tables=tables)
    return tables


async def server_version(client: PostgresClient) -> str:
    async with client.engine.connect() as conn:
        result = await conn.execute(text("SELECT version()"))
        return str(result.scalar())
