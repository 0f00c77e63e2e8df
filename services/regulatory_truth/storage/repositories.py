"""
Repositories
============

Persistence for parse results, discovery checkpoints and watchdog alerts.

Parse results pass the invariant gate before any row is written. Writes
are append-only per (evidence, parser version): saving a pair that is
already stored returns the stored document, and a parse under a new parser
version adds a document and demotes the previous one's `is_latest` flag in
the same transaction.

Version: 0.1.0
"""

from collections.abc import Iterable, Sequence
from datetime import UTC, datetime

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert

from services.regulatory_truth.alerting import AlertEvent, AlertSink, AlertType
from services.regulatory_truth.discovery import DiscoveryCheckpoint
from services.regulatory_truth.parser import ParseResult, ProvisionNode, ensure_persistable
from services.regulatory_truth.storage.models import (
    DiscoveryCheckpointModel,
    ParsedDocumentModel,
    ProvisionNodeModel,
    WatchdogAlertModel,
)
from services.regulatory_truth.watchdog import OpenAlert
from shared.database.postgres import PostgresClient
from shared.logging import get_logger


logger = get_logger(__name__)


class ParsedDocumentRepository:
    """Stores parse results and their provision nodes."""

    def __init__(self, client: PostgresClient) -> None:
        self._client = client

    async def save(self, result: ParseResult) -> str:
        """
        Persist a parse result as the latest parse of its evidence.

        Returns:
            The new document id, or the id of the document already stored
            for this evidence and parser version.

        Raises:
            ValueError: the parse failed
            InvariantViolationError: the nodes break a structural invariant
        """
        ensure_persistable(result)

        async with self._client.session() as session:
            existing_id = await session.scalar(
                select(ParsedDocumentModel.id).where(
                    ParsedDocumentModel.evidence_id == result.evidence_id,
                    ParsedDocumentModel.parser_version == result.parser_version,
                )
            )
            if existing_id is not None:
                logger.info(
                    "parsed_document_exists",
                    document_id=existing_id,
                    evidence_id=result.evidence_id,
                    parser_version=result.parser_version,
                )
                return existing_id

            await session.execute(
                update(ParsedDocumentModel)
                .where(
                    ParsedDocumentModel.evidence_id == result.evidence_id,
                    ParsedDocumentModel.is_latest.is_(True),
                )
                .values(is_latest=False)
            )

            document = ParsedDocumentModel(
                evidence_id=result.evidence_id,
                content_class=result.content_class,
                status=result.status,
                parser_id=result.parser_id,
                parser_version=result.parser_version,
                parse_config_hash=result.parse_config_hash,
                clean_text=result.clean_text,
                clean_text_hash=result.clean_text_hash,
                doc_meta=result.doc_meta.model_dump(mode="json"),
                stats=result.stats.model_dump(mode="json"),
                warnings=[w.model_dump(mode="json") for w in result.warnings],
                is_latest=True,
            )
            document.nodes = [
                ProvisionNodeModel(
                    node_path=node.node_path,
                    node_type=node.node_type,
                    label=node.label,
                    order_index=node.order_index,
                    depth=node.depth,
                    start_offset=node.start_offset,
                    end_offset=node.end_offset,
                    raw_text=node.raw_text,
                    is_container=node.is_container,
                )
                for node in result.nodes
            ]
            session.add(document)
            await session.flush()
            document_id = document.id

        logger.info(
            "parsed_document_saved",
            document_id=document_id,
            evidence_id=result.evidence_id,
            node_count=len(result.nodes),
            parser_version=result.parser_version,
        )
        return document_id

    async def get_latest_nodes(self, evidence_id: str) -> list[ProvisionNode]:
        """Nodes of the latest parse of `evidence_id`, in document order."""
        query = (
            select(ProvisionNodeModel)
            .join(ParsedDocumentModel, ProvisionNodeModel.document_id == ParsedDocumentModel.id)
            .where(
                ParsedDocumentModel.evidence_id == evidence_id,
                ParsedDocumentModel.is_latest.is_(True),
            )
            .order_by(ProvisionNodeModel.start_offset, ProvisionNodeModel.depth)
        )
        async with self._client.session() as session:
            rows = (await session.execute(query)).scalars().all()

        return [
            ProvisionNode(
                node_path=row.node_path,
                node_type=row.node_type,
                label=row.label,
                order_index=row.order_index,
                depth=row.depth,
                start_offset=row.start_offset,
                end_offset=row.end_offset,
                raw_text=row.raw_text,
                is_container=row.is_container,
            )
            for row in rows
        ]


class SqlCheckpointStore:
    """Discovery checkpoint store backed by `discovery_checkpoints`."""

    def __init__(self, client: PostgresClient, source_slug: str) -> None:
        self._client = client
        self.source_slug = source_slug

    async def save(self, checkpoint: DiscoveryCheckpoint) -> None:
        values = {
            "last_completed_child_index": checkpoint.last_completed_child_index,
            "last_completed_child_url": checkpoint.last_completed_child_url,
            "urls_emitted_so_far": checkpoint.urls_emitted_so_far,
            "updated_at": datetime.now(UTC),
        }
        statement = (
            insert(DiscoveryCheckpointModel)
            .values(source_slug=self.source_slug, **values)
            .on_conflict_do_update(index_elements=["source_slug"], set_=values)
        )
        async with self._client.session() as session:
            await session.execute(statement)

    async def load(self) -> DiscoveryCheckpoint | None:
        async with self._client.session() as session:
            row = await session.get(DiscoveryCheckpointModel, self.source_slug)
            if row is None:
                return None
            return DiscoveryCheckpoint(
                last_completed_child_index=row.last_completed_child_index,
                last_completed_child_url=row.last_completed_child_url,
                urls_emitted_so_far=row.urls_emitted_so_far,
            )


class WatchdogAlertRepository:
    """Stored alerts, used to find open alerts and mark them resolved."""

    def __init__(self, client: PostgresClient) -> None:
        self._client = client

    async def record(self, event: AlertEvent) -> None:
        async with self._client.session() as session:
            session.add(
                WatchdogAlertModel(
                    id=event.alert_id,
                    type=event.type,
                    severity=event.severity,
                    entity_id=event.entity_id,
                    message=event.message,
                    details=event.details,
                    occurred_at=event.occurred_at,
                )
            )

    async def list_open(
        self,
        types: Iterable[AlertType],
        since: datetime,
        entity_ids: Sequence[str] | None = None,
    ) -> list[OpenAlert]:
        query = select(WatchdogAlertModel).where(
            WatchdogAlertModel.type.in_(list(types)),
            WatchdogAlertModel.resolved_at.is_(None),
            WatchdogAlertModel.occurred_at >= since,
        )
        if entity_ids is not None:
            query = query.where(WatchdogAlertModel.entity_id.in_(list(entity_ids)))

        async with self._client.session() as session:
            rows = (await session.execute(query)).scalars().all()

        return [
            OpenAlert(
                alert_id=row.id,
                type=row.type,
                entity_id=row.entity_id,
                occurred_at=row.occurred_at,
            )
            for row in rows
        ]

    async def resolve(self, alert_ids: Sequence[str], resolved_at: datetime | None = None) -> int:
        if not alert_ids:
            return 0
        async with self._client.session() as session:
            result = await session.execute(
                update(WatchdogAlertModel)
                .where(WatchdogAlertModel.id.in_(list(alert_ids)))
                .values(resolved_at=resolved_at or datetime.now(UTC))
            )
        logger.info("watchdog_alerts_resolved", count=result.rowcount)
        return result.rowcount


class RecordingAlertSink:
    """
    Stores every alert before forwarding it.

    Recovery notifications are forwarded only; they close alerts rather
    than open one.
    """

    def __init__(self, repository: WatchdogAlertRepository, delegate: AlertSink) -> None:
        self._repository = repository
        self._delegate = delegate

    async def send(self, event: AlertEvent) -> None:
        if event.type != AlertType.ENDPOINT_RECOVERED:
            await self._repository.record(event)
        await self._delegate.send(event)
