"""
Parser Types
============

Input and output shapes of the document parser.

Offsets on `ProvisionNode` are UTF-16 code units into `ParseResult.clean_text`.

Version: 0.1.0
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class ContentClass(str, Enum):
    """Detected format of a fetched artifact."""

    HTML = "HTML"
    TEXT = "TEXT"
    PDF_TEXT = "PDF_TEXT"
    PDF_SCANNED = "PDF_SCANNED"
    XML = "XML"
    DOCX = "DOCX"
    UNKNOWN = "UNKNOWN"


class NodeType(str, Enum):
    """Structural unit of a legal document."""

    DOC = "DOC"
    PART = "PART"  # Dio
    TITLE = "TITLE"
    CHAPTER = "CHAPTER"  # Glava
    SECTION = "SECTION"  # Odjeljak
    ANNEX = "ANNEX"  # Prilog
    CLANAK = "CLANAK"  # Članak (article)
    STAVAK = "STAVAK"  # Stavak (paragraph)
    TOCKA = "TOCKA"  # Točka (point)
    TABLE = "TABLE"  # Tablica
    ROW = "ROW"  # Redak (table row)


CONTAINER_TYPES = frozenset(
    {
        NodeType.DOC,
        NodeType.TITLE,
        NodeType.PART,
        NodeType.CHAPTER,
        NodeType.SECTION,
        NodeType.ANNEX,
    }
)


class ParseStatus(str, Enum):
    SUCCESS = "SUCCESS"
    PARTIAL = "PARTIAL"
    FAILED = "FAILED"


class InvariantId(str, Enum):
    """Structural invariants every stored parse must satisfy."""

    PATH_UNIQUE = "PATH_UNIQUE"
    OFFSET_ROUNDTRIP = "OFFSET_ROUNDTRIP"
    CONTAINMENT = "CONTAINMENT"
    SIBLING_ORDER_UNIQUE = "SIBLING_ORDER_UNIQUE"
    SIBLING_NO_OVERLAP = "SIBLING_NO_OVERLAP"
    OFFSET_RANGE = "OFFSET_RANGE"


class ContentArtifact(BaseModel):
    """Immutable raw content of a fetched document."""

    model_config = {"frozen": True}

    content: str
    content_hash: str
    content_class: ContentClass = ContentClass.UNKNOWN


class ProvisionNode(BaseModel):
    """An addressable node in a parsed document."""

    node_path: str
    node_type: NodeType
    label: str
    order_index: int
    depth: int
    start_offset: int
    end_offset: int
    raw_text: str | None = None
    is_container: bool = False


class InvariantViolation(BaseModel):
    """A structural defect in parser output."""

    invariant_id: InvariantId
    message: str
    node_path: str | None = None
    details: dict[str, Any] = Field(default_factory=dict)


class ParseWarning(BaseModel):
    code: str
    message: str
    node_path: str | None = None


class ParseStats(BaseModel):
    node_count: int = 0
    max_depth: int = 0
    by_type: dict[NodeType, int] = Field(default_factory=dict)
    coverage_chars: int = 0
    coverage_percent: float = 0.0


class DocMeta(BaseModel):
    title: str | None = None
    text_type: str | None = None


class ParseErrorInfo(BaseModel):
    """Why a parse could not be attempted."""

    code: str
    message: str


class ParseResult(BaseModel):
    """Outcome of parsing one evidence artifact."""

    evidence_id: str
    content_class: ContentClass
    status: ParseStatus
    clean_text: str = ""
    clean_text_hash: str = ""
    nodes: list[ProvisionNode] = Field(default_factory=list)
    stats: ParseStats = Field(default_factory=ParseStats)
    warnings: list[ParseWarning] = Field(default_factory=list)
    violations: list[InvariantViolation] = Field(default_factory=list)
    doc_meta: DocMeta = Field(default_factory=DocMeta)
    parser_id: str
    parser_version: str
    parse_config_hash: str
    error: ParseErrorInfo | None = None

    @property
    def is_persistable(self) -> bool:
        return self.status != ParseStatus.FAILED and not self.violations
