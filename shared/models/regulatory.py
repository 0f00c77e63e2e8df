"""
Regulatory Truth Models
=======================

Models for evidence, source pointers and versioned regulatory rules.

Version: 0.1.0
"""

from datetime import UTC, date, datetime
from enum import Enum

from pydantic import BaseModel, Field


class RuleStatus(str, Enum):
    """Lifecycle of a regulatory rule."""

    DRAFT = "DRAFT"
    PENDING_REVIEW = "PENDING_REVIEW"
    APPROVED = "APPROVED"
    PUBLISHED = "PUBLISHED"
    DEPRECATED = "DEPRECATED"
    REJECTED = "REJECTED"


# Rules are never hard-deleted; terminal states have no outgoing edges.
RULE_STATUS_TRANSITIONS: dict[RuleStatus, frozenset[RuleStatus]] = {
    RuleStatus.DRAFT: frozenset({RuleStatus.PENDING_REVIEW, RuleStatus.REJECTED}),
    RuleStatus.PENDING_REVIEW: frozenset(
        {RuleStatus.APPROVED, RuleStatus.REJECTED, RuleStatus.DRAFT}
    ),
    RuleStatus.APPROVED: frozenset({RuleStatus.PUBLISHED, RuleStatus.REJECTED}),
    RuleStatus.PUBLISHED: frozenset({RuleStatus.DEPRECATED}),
    RuleStatus.DEPRECATED: frozenset(),
    RuleStatus.REJECTED: frozenset(),
}


def can_transition(current: RuleStatus, target: RuleStatus) -> bool:
    """Check whether a rule may move from `current` to `target`."""
    return target in RULE_STATUS_TRANSITIONS[current]


class ValueType(str, Enum):
    """Type of the value a source pointer asserts."""

    TEXT = "text"
    PERCENTAGE = "percentage"
    CURRENCY = "currency"
    COUNT = "count"
    DATE = "date"
    THRESHOLD = "threshold"


class SourcePointer(BaseModel):
    """A quote-anchored fact extracted from evidence."""

    id: str
    evidence_id: str
    domain: str
    value_type: ValueType = ValueType.TEXT
    extracted_value: str | None = None
    exact_quote: str
    context_before: str | None = None
    context_after: str | None = None
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    law_reference: str | None = None
    article_number: str | None = None
    node_path: str | None = None
    embedding: list[float] | None = None
    deleted_at: datetime | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def embedding_text(self) -> str:
        """Quote plus surrounding context, used as the embedding input."""
        parts = [self.context_before, self.exact_quote, self.context_after]
        return " ".join(p.strip() for p in parts if p and p.strip())


class RegulatoryRule(BaseModel):
    """A versioned, lifecycle-managed legal interpretation."""

    id: str
    concept_slug: str
    title: str
    status: RuleStatus = RuleStatus.DRAFT
    risk_tier: str | None = None
    authority_level: str | None = None
    value: str | None = None
    value_type: ValueType = ValueType.TEXT
    effective_from: date
    effective_until: date | None = None
    superseded_by_id: str | None = None
    inputs_hash: str | None = None
    evidence_hash: str | None = None
    hash_algo: str | None = None
    source_pointer_ids: list[str] = Field(default_factory=list)

    def is_effective_on(self, as_of: date) -> bool:
        """effective_from <= as_of <= effective_until (open-ended when unset)."""
        if self.effective_from > as_of:
            return False
        return self.effective_until is None or as_of <= self.effective_until
