"""
Document Parser
===============

Entry point that turns a fetched artifact into clean text and a tree of
addressable provision nodes.

Unsupported content classes are not errors: they come back as a FAILED
result with error code UNSUPPORTED_CONTENT_CLASS so callers can reroute
(e.g. to OCR) without exception handling. Invariant violations are
reported on the result and downgrade it to PARTIAL; they block storage
through `ensure_persistable`.

Parsing is pure and synchronous, safe to run concurrently across
documents.

Version: 0.1.0
"""

from typing import Any

from pydantic import BaseModel

from services.regulatory_truth.hashing import canonical_json, sha256_hex
from services.regulatory_truth.parser.cleaner import (
    DEFAULT_BLOCK_SELECTOR,
    CleanedDocument,
    clean_html,
    clean_plain_text,
)
from services.regulatory_truth.parser.invariants import validate_invariants
from services.regulatory_truth.parser.offsets import utf16_length
from services.regulatory_truth.parser.structure import build_structure
from services.regulatory_truth.parser.types import (
    ContentArtifact,
    ContentClass,
    NodeType,
    ParseErrorInfo,
    ParseResult,
    ParseStats,
    ParseStatus,
    ParseWarning,
    ProvisionNode,
)
from shared.logging import get_logger


logger = get_logger(__name__)

PARSER_ID = "provision-tree-parser"
PARSER_VERSION = "1.0.0"

SUPPORTED_CONTENT_CLASSES = frozenset({ContentClass.HTML, ContentClass.TEXT, ContentClass.PDF_TEXT})


class ParserConfig(BaseModel):
    """Settings that influence parse output; hashed into every result."""

    model_config = {"frozen": True}

    block_selector: str = DEFAULT_BLOCK_SELECTOR
    detect_title: bool = True


def compute_stats(nodes: list[ProvisionNode], clean_text_length: int) -> ParseStats:
    by_type: dict[NodeType, int] = {}
    max_depth = 0
    intervals: list[tuple[int, int]] = []

    for node in nodes:
        by_type[node.node_type] = by_type.get(node.node_type, 0) + 1
        max_depth = max(max_depth, node.depth)
        if not node.is_container:
            intervals.append((node.start_offset, node.end_offset))

    coverage_chars = 0
    merged_end = -1
    merged_start = -1
    for start, end in sorted(intervals):
        if start > merged_end:
            coverage_chars += max(merged_end - merged_start, 0)
            merged_start, merged_end = start, end
        else:
            merged_end = max(merged_end, end)
    coverage_chars += max(merged_end - merged_start, 0)

    coverage_percent = coverage_chars / clean_text_length * 100 if clean_text_length else 0.0

    return ParseStats(
        node_count=len(nodes),
        max_depth=max_depth,
        by_type=by_type,
        coverage_chars=coverage_chars,
        coverage_percent=round(coverage_percent, 2),
    )


class DocumentParser:
    """Parses HTML and text artifacts into provision nodes."""

    parser_id = PARSER_ID
    parser_version = PARSER_VERSION

    def __init__(self, config: ParserConfig | None = None) -> None:
        self.config = config or ParserConfig()
        self.parse_config_hash = sha256_hex(canonical_json(self.config.model_dump(mode="json")))

    def _result(
        self,
        evidence_id: str,
        content_class: ContentClass,
        **fields: Any,
    ) -> ParseResult:
        return ParseResult(
            evidence_id=evidence_id,
            content_class=content_class,
            parser_id=self.parser_id,
            parser_version=self.parser_version,
            parse_config_hash=self.parse_config_hash,
            **fields,
        )

    def _clean(self, content_class: ContentClass, content: str) -> CleanedDocument:
        if content_class == ContentClass.HTML:
            return clean_html(content, self.config.block_selector)
        return clean_plain_text(content)

    def parse(
        self,
        evidence_id: str,
        content_class: ContentClass,
        artifact: ContentArtifact,
    ) -> ParseResult:
        """Parse one artifact. Never raises for unsupported content."""
        if content_class not in SUPPORTED_CONTENT_CLASSES:
            logger.info(
                "parse_unsupported_content_class",
                evidence_id=evidence_id,
                content_class=content_class.value,
            )
            return self._result(
                evidence_id,
                content_class,
                status=ParseStatus.FAILED,
                error=ParseErrorInfo(
                    code="UNSUPPORTED_CONTENT_CLASS",
                    message=f"Content class {content_class.value} is not supported by {PARSER_ID}",
                ),
            )

        cleaned = self._clean(content_class, artifact.content)
        title = cleaned.doc_meta.title if self.config.detect_title else None
        structure = build_structure(cleaned.clean_text, cleaned.blocks, title)

        nodes = structure.nodes
        warnings = list(structure.warnings)
        validation = validate_invariants(nodes, cleaned.clean_text)
        for violation in validation.violations:
            warnings.append(
                ParseWarning(
                    code=violation.invariant_id.value,
                    message=violation.message,
                    node_path=violation.node_path,
                )
            )

        status = ParseStatus.SUCCESS
        if validation.violations:
            status = ParseStatus.PARTIAL
        if not nodes:
            status = ParseStatus.PARTIAL
            warnings.append(
                ParseWarning(code="NO_STRUCTURE", message="No parseable structure found in document")
            )

        result = self._result(
            evidence_id,
            content_class,
            status=status,
            clean_text=cleaned.clean_text,
            clean_text_hash=sha256_hex(cleaned.clean_text),
            nodes=nodes,
            stats=compute_stats(nodes, utf16_length(cleaned.clean_text)),
            warnings=warnings,
            violations=validation.violations,
            doc_meta=cleaned.doc_meta,
        )

        logger.info(
            "document_parsed",
            evidence_id=evidence_id,
            content_class=content_class.value,
            status=status.value,
            node_count=result.stats.node_count,
            violations=len(validation.violations),
            warnings=len(warnings),
            coverage_percent=result.stats.coverage_percent,
        )
        return result
