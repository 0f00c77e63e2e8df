"""
Structural Invariants
=====================

Validator for provision nodes, independent of the parser that produced
them. Run in tests and as the gate before parsed output is persisted.

Checked:
- PATH_UNIQUE: node paths unique within a document
- OFFSET_ROUNDTRIP: slicing clean text by a node's offsets reproduces
  its raw text, wherever raw text is stored
- CONTAINMENT: a content node lies inside its parent's range
- SIBLING_ORDER_UNIQUE: order indexes unique among siblings
- SIBLING_NO_OVERLAP: content siblings never overlap
- OFFSET_RANGE: offsets are ordered and inside the clean text

Offsets are UTF-16 code units.

Version: 0.1.0
"""

from collections import defaultdict
from collections.abc import Sequence

from pydantic import BaseModel, Field

from services.regulatory_truth.errors import InvariantViolationError
from services.regulatory_truth.parser.node_path import parent_path
from services.regulatory_truth.parser.offsets import slice_utf16, utf16_length
from services.regulatory_truth.parser.types import (
    InvariantId,
    InvariantViolation,
    ParseResult,
    ParseStatus,
    ProvisionNode,
)


class ValidationResult(BaseModel):
    violations: list[InvariantViolation] = Field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.violations


def _check_ranges(nodes: Sequence[ProvisionNode], text_length: int) -> list[InvariantViolation]:
    violations = []
    for node in nodes:
        if not 0 <= node.start_offset <= node.end_offset <= text_length:
            violations.append(
                InvariantViolation(
                    invariant_id=InvariantId.OFFSET_RANGE,
                    message=(
                        f"Offsets [{node.start_offset}, {node.end_offset}) outside "
                        f"clean text of length {text_length}"
                    ),
                    node_path=node.node_path,
                    details={
                        "startOffset": node.start_offset,
                        "endOffset": node.end_offset,
                        "textLength": text_length,
                    },
                )
            )
    return violations


def _check_unique_paths(nodes: Sequence[ProvisionNode]) -> list[InvariantViolation]:
    counts: dict[str, int] = defaultdict(int)
    for node in nodes:
        counts[node.node_path] += 1
    return [
        InvariantViolation(
            invariant_id=InvariantId.PATH_UNIQUE,
            message=f"Node path {path} appears {count} times",
            node_path=path,
            details={"count": count},
        )
        for path, count in counts.items()
        if count > 1
    ]


def _check_roundtrip(nodes: Sequence[ProvisionNode], clean_text: str) -> list[InvariantViolation]:
    violations = []
    for node in nodes:
        if node.raw_text is None:
            continue
        actual = slice_utf16(clean_text, node.start_offset, node.end_offset)
        if actual != node.raw_text:
            violations.append(
                InvariantViolation(
                    invariant_id=InvariantId.OFFSET_ROUNDTRIP,
                    message="Clean text slice does not match stored raw text",
                    node_path=node.node_path,
                    details={
                        "expected": node.raw_text[:100],
                        "actual": actual[:100],
                        "startOffset": node.start_offset,
                        "endOffset": node.end_offset,
                    },
                )
            )
    return violations


def _check_containment(nodes: Sequence[ProvisionNode]) -> list[InvariantViolation]:
    by_path = {node.node_path: node for node in nodes}
    violations = []
    for node in nodes:
        if node.is_container:
            continue
        parent_key = parent_path(node.node_path)
        parent = by_path.get(parent_key) if parent_key else None
        if parent is None:
            continue
        if node.start_offset < parent.start_offset or node.end_offset > parent.end_offset:
            violations.append(
                InvariantViolation(
                    invariant_id=InvariantId.CONTAINMENT,
                    message=f"Node range escapes parent {parent.node_path}",
                    node_path=node.node_path,
                    details={
                        "node": [node.start_offset, node.end_offset],
                        "parent": [parent.start_offset, parent.end_offset],
                    },
                )
            )
    return violations


def _siblings(nodes: Sequence[ProvisionNode]) -> dict[str | None, list[ProvisionNode]]:
    groups: dict[str | None, list[ProvisionNode]] = defaultdict(list)
    for node in nodes:
        groups[parent_path(node.node_path)].append(node)
    return groups


def _check_sibling_order(nodes: Sequence[ProvisionNode]) -> list[InvariantViolation]:
    violations = []
    for parent_key, siblings in _siblings(nodes).items():
        seen: dict[int, str] = {}
        for node in siblings:
            if node.order_index in seen:
                violations.append(
                    InvariantViolation(
                        invariant_id=InvariantId.SIBLING_ORDER_UNIQUE,
                        message=(
                            f"Order index {node.order_index} shared with {seen[node.order_index]}"
                        ),
                        node_path=node.node_path,
                        details={"parentPath": parent_key, "orderIndex": node.order_index},
                    )
                )
            else:
                seen[node.order_index] = node.node_path
    return violations


def _check_sibling_overlap(nodes: Sequence[ProvisionNode]) -> list[InvariantViolation]:
    violations = []
    for parent_key, siblings in _siblings(nodes).items():
        content = sorted(
            (n for n in siblings if not n.is_container),
            key=lambda n: (n.start_offset, n.end_offset),
        )
        for previous, current in zip(content, content[1:], strict=False):
            if current.start_offset < previous.end_offset:
                violations.append(
                    InvariantViolation(
                        invariant_id=InvariantId.SIBLING_NO_OVERLAP,
                        message=f"Overlaps sibling {previous.node_path}",
                        node_path=current.node_path,
                        details={
                            "parentPath": parent_key,
                            "previous": [previous.start_offset, previous.end_offset],
                            "current": [current.start_offset, current.end_offset],
                        },
                    )
                )
    return violations


def validate_invariants(nodes: Sequence[ProvisionNode], clean_text: str) -> ValidationResult:
    """Check every structural invariant; returns all violations found."""
    violations = [
        *_check_ranges(nodes, utf16_length(clean_text)),
        *_check_unique_paths(nodes),
        *_check_roundtrip(nodes, clean_text),
        *_check_containment(nodes),
        *_check_sibling_order(nodes),
        *_check_sibling_overlap(nodes),
    ]
    return ValidationResult(violations=violations)


def ensure_persistable(result: ParseResult) -> None:
    """
    Pre-persistence gate.

    Re-validates independently of whatever the parser reported.

    Raises:
        ValueError: the parse failed and has nothing to store
        InvariantViolationError: the nodes break a structural invariant
    """
    if result.status == ParseStatus.FAILED:
        raise ValueError(f"Parse of evidence {result.evidence_id} failed; nothing to persist")

    validation = validate_invariants(result.nodes, result.clean_text)
    if not validation.valid:
        raise InvariantViolationError(validation.violations)
