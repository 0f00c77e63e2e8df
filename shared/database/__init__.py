"""
Database Module
===============

Async PostgreSQL client (asyncpg + SQLAlchemy) for relational and
pgvector nearest-neighbor storage.

Usage:
    from shared.database import PostgresClient

    client = PostgresClient(settings.postgres)
    async with client.session() as session:
        ...
    await client.close()
"""

from shared.database.postgres import Base, PostgresClient


__all__ = [
    "Base",
    "PostgresClient",
]
