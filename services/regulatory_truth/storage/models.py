"""
Regulatory Truth Database Models
================================

SQLAlchemy ORM models for the extraction pipeline.

Tables:
- parsed_documents: one row per parse of an evidence artifact
- provision_nodes: addressable nodes of a parsed document
- source_pointers: quote-anchored facts with their embeddings
- regulatory_rules: versioned rule interpretations
- rule_source_pointers: rule to pointer citations
- discovery_checkpoints: resume markers per discovery source
- watchdog_alerts: operational alerts and their resolution

Version: 0.1.0
"""

import uuid
from datetime import UTC, datetime

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from services.regulatory_truth.alerting import AlertSeverity, AlertType
from services.regulatory_truth.parser.types import ContentClass, NodeType, ParseStatus
from services.regulatory_truth.storage.vector import Vector
from shared.database.postgres import Base
from shared.models.regulatory import RuleStatus, ValueType


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(UTC)


class ParsedDocumentModel(Base):
    """
    A single parse of an evidence artifact.

    One row per (evidence, parser version). Re-parsing with a new parser
    version appends a row; only the newest row per evidence has
    `is_latest` set.
    """

    __tablename__ = "parsed_documents"
    __table_args__ = (
        UniqueConstraint(
            "evidence_id", "parser_version", name="uq_parsed_documents_evidence_parser"
        ),
        Index("ix_parsed_documents_evidence_latest", "evidence_id", "is_latest"),
    )

    id = Column(UUID(as_uuid=False), primary_key=True, default=_new_id)
    evidence_id = Column(String(64), nullable=False)
    content_class = Column(SQLEnum(ContentClass), nullable=False)
    status = Column(SQLEnum(ParseStatus), nullable=False)

    # Parser identity
    parser_id = Column(String(100), nullable=False)
    parser_version = Column(String(20), nullable=False)
    parse_config_hash = Column(String(64), nullable=False)

    clean_text = Column(Text, nullable=False)
    clean_text_hash = Column(String(64), nullable=False)
    doc_meta = Column(JSON, default=dict)
    stats = Column(JSON, default=dict)
    warnings = Column(JSON, default=list)

    is_latest = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    nodes = relationship(
        "ProvisionNodeModel",
        back_populates="document",
        cascade="all, delete-orphan",
        order_by="ProvisionNodeModel.start_offset",
    )


class ProvisionNodeModel(Base):
    """An addressable node, unique by path within its document."""

    __tablename__ = "provision_nodes"
    __table_args__ = (
        UniqueConstraint("document_id", "node_path", name="uq_provision_nodes_document_path"),
    )

    id = Column(UUID(as_uuid=False), primary_key=True, default=_new_id)
    document_id = Column(
        UUID(as_uuid=False),
        ForeignKey("parsed_documents.id", ondelete="CASCADE"),
        nullable=False,
    )
    node_path = Column(String(500), nullable=False)
    node_type = Column(SQLEnum(NodeType), nullable=False)
    label = Column(Text, nullable=False)
    order_index = Column(Integer, nullable=False)
    depth = Column(Integer, nullable=False)

    # UTF-16 code unit offsets into the document's clean text
    start_offset = Column(Integer, nullable=False)
    end_offset = Column(Integer, nullable=False)
    raw_text = Column(Text)
    is_container = Column(Boolean, nullable=False, default=False)

    document = relationship("ParsedDocumentModel", back_populates="nodes")


class SourcePointerModel(Base):
    __tablename__ = "source_pointers"
    __table_args__ = (
        Index("ix_source_pointers_domain", "domain"),
        Index("ix_source_pointers_evidence", "evidence_id"),
    )

    id = Column(UUID(as_uuid=False), primary_key=True, default=_new_id)
    evidence_id = Column(String(64), nullable=False)
    domain = Column(String(100), nullable=False)
    value_type = Column(SQLEnum(ValueType), nullable=False, default=ValueType.TEXT)
    extracted_value = Column(Text)
    exact_quote = Column(Text, nullable=False)
    context_before = Column(Text)
    context_after = Column(Text)
    confidence = Column(Float, nullable=False, default=0.0)
    law_reference = Column(String(255))
    article_number = Column(String(50))
    node_path = Column(String(500))
    embedding = Column(Vector())

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    deleted_at = Column(DateTime(timezone=True))  # Soft delete


class RegulatoryRuleModel(Base):
    __tablename__ = "regulatory_rules"
    __table_args__ = (
        Index("ix_regulatory_rules_concept", "concept_slug"),
        Index("ix_regulatory_rules_effective", "effective_from", "effective_until"),
    )

    id = Column(UUID(as_uuid=False), primary_key=True, default=_new_id)
    concept_slug = Column(String(200), nullable=False)
    title = Column(String(500), nullable=False)
    status = Column(SQLEnum(RuleStatus), nullable=False, default=RuleStatus.DRAFT)
    risk_tier = Column(String(20))
    authority_level = Column(String(50))
    value = Column(Text)
    value_type = Column(SQLEnum(ValueType), nullable=False, default=ValueType.TEXT)

    effective_from = Column(Date, nullable=False)
    effective_until = Column(Date)
    superseded_by_id = Column(UUID(as_uuid=False), ForeignKey("regulatory_rules.id"))

    # Composition hashes
    inputs_hash = Column(String(64))
    evidence_hash = Column(String(64))
    hash_algo = Column(String(20))

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)


class RuleSourcePointerModel(Base):
    __tablename__ = "rule_source_pointers"

    rule_id = Column(
        UUID(as_uuid=False),
        ForeignKey("regulatory_rules.id", ondelete="CASCADE"),
        primary_key=True,
    )
    source_pointer_id = Column(
        UUID(as_uuid=False),
        ForeignKey("source_pointers.id", ondelete="CASCADE"),
        primary_key=True,
    )


class DiscoveryCheckpointModel(Base):
    """Latest resume marker for a discovery source."""

    __tablename__ = "discovery_checkpoints"

    source_slug = Column(String(100), primary_key=True)
    last_completed_child_index = Column(Integer, nullable=False, default=-1)
    last_completed_child_url = Column(Text)
    urls_emitted_so_far = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)


class WatchdogAlertModel(Base):
    __tablename__ = "watchdog_alerts"
    __table_args__ = (
        Index("ix_watchdog_alerts_open", "entity_id", "resolved_at"),
    )

    id = Column(UUID(as_uuid=False), primary_key=True)
    type = Column(SQLEnum(AlertType), nullable=False)
    severity = Column(SQLEnum(AlertSeverity), nullable=False)
    entity_id = Column(String(255))
    message = Column(Text, nullable=False)
    details = Column(JSON, default=dict)
    occurred_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    resolved_at = Column(DateTime(timezone=True))
