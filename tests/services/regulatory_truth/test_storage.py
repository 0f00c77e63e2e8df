"""
Tests for Storage
=================

Tests for:
- pgvector column type
- Parsed document persistence gate
- Alert recording sink

Version: 0.1.0
"""

from contextlib import asynccontextmanager
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.dialects import postgresql
from sqlalchemy.schema import CreateTable

from services.regulatory_truth.alerting import AlertEvent, AlertType, InMemoryAlertSink
from services.regulatory_truth.errors import InvariantViolationError
from services.regulatory_truth.hashing import sha256_hex
from services.regulatory_truth.parser import (
    ContentArtifact,
    ContentClass,
    DocumentParser,
    ParseStatus,
)
from services.regulatory_truth.storage import (
    ParsedDocumentModel,
    ParsedDocumentRepository,
    RecordingAlertSink,
    SourcePointerModel,
    Vector,
    parse_vector_literal,
    to_vector_literal,
)
from services.regulatory_truth.storage.schema import create_schema


def fake_client(session: Any) -> MagicMock:
    @asynccontextmanager
    async def session_scope():
        yield session

    client = MagicMock()
    client.session = MagicMock(side_effect=session_scope)
    return client


def parsed(text: str = "Članak 1.\n(1) Porez se plaća.") -> Any:
    return DocumentParser().parse(
        "ev-1",
        ContentClass.TEXT,
        ContentArtifact(content=text, content_hash=sha256_hex(text), content_class=ContentClass.TEXT),
    )


# ============================================================================
# Vector Type Tests
# ============================================================================


class TestVectorType:
    """Tests for the pgvector column type."""

    def test_literal(self) -> None:
        assert to_vector_literal([0.5, 1, -2.25]) == "[0.5,1.0,-2.25]"
        assert parse_vector_literal("[0.5,1.0,-2.25]") == [0.5, 1.0, -2.25]
        assert parse_vector_literal("[]") == []

    def test_col_spec(self) -> None:
        assert Vector().get_col_spec() == "vector"
        assert Vector(768).get_col_spec() == "vector(768)"

    def test_processors(self) -> None:
        bind = Vector().bind_processor(postgresql.dialect())
        result = Vector().result_processor(postgresql.dialect(), None)

        assert bind([0.25, 0.5]) == "[0.25,0.5]"
        assert bind(None) is None
        assert result("[0.25,0.5]") == [0.25, 0.5]
        assert result(None) is None

    def test_embedding_column_ddl(self) -> None:
        ddl = str(CreateTable(SourcePointerModel.__table__).compile(dialect=postgresql.dialect()))

        assert "embedding vector" in ddl


# ============================================================================
# Repository Tests
# ============================================================================


class TestParsedDocumentRepository:
    """Tests for ParsedDocumentRepository.save."""

    @pytest.mark.asyncio
    async def test_failed_parse_never_touches_database(self) -> None:
        client = MagicMock()
        result = parsed().model_copy(update={"status": ParseStatus.FAILED})

        with pytest.raises(ValueError):
            await ParsedDocumentRepository(client).save(result)

        client.session.assert_not_called()

    @pytest.mark.asyncio
    async def test_invalid_nodes_never_touch_database(self) -> None:
        client = MagicMock()
        result = parsed()
        broken = result.nodes[1].model_copy(update={"raw_text": "something else"})
        result = result.model_copy(update={"nodes": [result.nodes[0], broken]})

        with pytest.raises(InvariantViolationError):
            await ParsedDocumentRepository(client).save(result)

        client.session.assert_not_called()

    @pytest.mark.asyncio
    async def test_saves_document_with_nodes(self) -> None:
        session = MagicMock()
        session.scalar = AsyncMock(return_value=None)
        session.execute = AsyncMock()

        def assign_id() -> None:
            session.add.call_args.args[0].id = "doc-1"

        session.flush = AsyncMock(side_effect=assign_id)
        result = parsed()

        document_id = await ParsedDocumentRepository(fake_client(session)).save(result)

        assert document_id == "doc-1"
        session.execute.assert_awaited_once()
        document = session.add.call_args.args[0]
        assert isinstance(document, ParsedDocumentModel)
        assert document.is_latest is True
        assert [n.node_path for n in document.nodes] == ["/clanak:1", "/clanak:1/stavak:1"]

    @pytest.mark.asyncio
    async def test_same_parser_version_returns_stored_document(self) -> None:
        """Test saving an (evidence, parser version) pair twice adds nothing."""
        session = MagicMock()
        session.scalar = AsyncMock(return_value="doc-0")
        session.execute = AsyncMock()
        session.flush = AsyncMock()

        document_id = await ParsedDocumentRepository(fake_client(session)).save(parsed())

        assert document_id == "doc-0"
        session.execute.assert_not_awaited()
        session.add.assert_not_called()
        session.flush.assert_not_awaited()

    def test_one_row_per_evidence_and_parser_version(self) -> None:
        ddl = str(CreateTable(ParsedDocumentModel.__table__).compile(dialect=postgresql.dialect()))

        assert "UNIQUE (evidence_id, parser_version)" in ddl


class TestRecordingAlertSink:
    """Tests for RecordingAlertSink."""

    @pytest.mark.asyncio
    async def test_records_then_forwards(self) -> None:
        repository = MagicMock()
        repository.record = AsyncMock()
        delegate = InMemoryAlertSink()
        event = AlertEvent(type=AlertType.CIRCUIT_BREAKER_OPEN, entity_id="hzzo.hr", message="x")

        await RecordingAlertSink(repository, delegate).send(event)

        repository.record.assert_awaited_once_with(event)
        assert delegate.events == [event]

    @pytest.mark.asyncio
    async def test_recovery_forwarded_only(self) -> None:
        repository = MagicMock()
        repository.record = AsyncMock()
        delegate = InMemoryAlertSink()
        event = AlertEvent(type=AlertType.ENDPOINT_RECOVERED, entity_id="e1", message="ok")

        await RecordingAlertSink(repository, delegate).send(event)

        repository.record.assert_not_awaited()
        assert delegate.events == [event]


class TestCreateSchema:
    """Tests for create_schema."""

    def _client(self, conn: MagicMock) -> MagicMock:
        @asynccontextmanager
        async def begin():
            yield conn

        client = MagicMock()
        client.engine.begin = MagicMock(side_effect=begin)
        return client

    @pytest.mark.asyncio
    async def test_enables_extension_then_creates_tables(self) -> None:
        conn = MagicMock()
        conn.execute = AsyncMock()
        conn.run_sync = AsyncMock()

        tables = await create_schema(self._client(conn))

        statement = conn.execute.await_args.args[0]
        assert "CREATE EXTENSION IF NOT EXISTS vector" in str(statement)
        assert conn.run_sync.await_count == 1
        assert "parsed_documents" in tables
        assert tables.index("parsed_documents") < tables.index("provision_nodes")

    @pytest.mark.asyncio
    async def test_drop_existing(self) -> None:
        conn = MagicMock()
        conn.execute = AsyncMock()
        conn.run_sync = AsyncMock()

        await create_schema(self._client(conn), drop_existing=True)

        assert conn.run_sync.await_count == 2
