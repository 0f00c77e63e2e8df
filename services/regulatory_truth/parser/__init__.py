"""
Document Parser
===============

Provision-tree parsing with offset invariants.
"""

from services.regulatory_truth.parser.invariants import (
    ValidationResult,
    ensure_persistable,
    validate_invariants,
)
from services.regulatory_truth.parser.node_path import (
    build_node_path,
    find_node_by_path,
    parent_path,
)
from services.regulatory_truth.parser.parser import (
    PARSER_ID,
    PARSER_VERSION,
    DocumentParser,
    ParserConfig,
)
from services.regulatory_truth.parser.types import (
    ContentArtifact,
    ContentClass,
    DocMeta,
    InvariantId,
    InvariantViolation,
    NodeType,
    ParseResult,
    ParseStats,
    ParseStatus,
    ParseWarning,
    ProvisionNode,
)

__all__ = [
    "PARSER_ID",
    "PARSER_VERSION",
    "ContentArtifact",
    "ContentClass",
    "DocMeta",
    "DocumentParser",
    "InvariantId",
    "InvariantViolation",
    "NodeType",
    "ParseResult",
    "ParseStats",
    "ParseStatus",
    "ParseWarning",
    "ParserConfig",
    "ProvisionNode",
    "ValidationResult",
    "build_node_path",
    "ensure_persistable",
    "find_node_by_path",
    "parent_path",
    "validate_invariants",
]
