"""
Shared Models
=============

Pydantic models shared across regulatory-truth services.

Models:
- Regulatory models (SourcePointer, RegulatoryRule, RuleStatus)
- Common response models (ErrorResponse, HealthResponse)
"""

from shared.models.common import ErrorResponse, HealthResponse
from shared.models.regulatory import (
    RULE_STATUS_TRANSITIONS,
    RegulatoryRule,
    RuleStatus,
    SourcePointer,
    ValueType,
    can_transition,
)

__all__ = [
    # Regulatory
    "RegulatoryRule",
    "RuleStatus",
    "RULE_STATUS_TRANSITIONS",
    "SourcePointer",
    "ValueType",
    "can_transition",
    # Common
    "ErrorResponse",
    "HealthResponse",
]
