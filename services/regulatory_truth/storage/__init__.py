"""
Storage
=======

ORM models and repositories for parse results, checkpoints and alerts.
"""

from services.regulatory_truth.storage.models import (
    DiscoveryCheckpointModel,
    ParsedDocumentModel,
    ProvisionNodeModel,
    RegulatoryRuleModel,
    RuleSourcePointerModel,
    SourcePointerModel,
    WatchdogAlertModel,
)
from services.regulatory_truth.storage.repositories import (
    ParsedDocumentRepository,
    RecordingAlertSink,
    SqlCheckpointStore,
    WatchdogAlertRepository,
)
from services.regulatory_truth.storage.vector import (
    Vector,
    parse_vector_literal,
    to_vector_literal,
)

__all__ = [
    # Models
    "DiscoveryCheckpointModel",
    "ParsedDocumentModel",
    "ProvisionNodeModel",
    "RegulatoryRuleModel",
    "RuleSourcePointerModel",
    "SourcePointerModel",
    "WatchdogAlertModel",
    # Repositories
    "ParsedDocumentRepository",
    "RecordingAlertSink",
    "SqlCheckpointStore",
    "WatchdogAlertRepository",
    # Vector
    "Vector",
    "parse_vector_literal",
    "to_vector_literal",
]
