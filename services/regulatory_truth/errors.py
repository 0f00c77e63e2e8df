"""
Error Taxonomy
==============

Exceptions raised by the regulatory-truth core.

Only conditions where a run cannot safely continue are exceptions here.
Unsupported content classes and idempotent no-op retries are typed
outcomes, not errors.

Version: 0.1.0
"""

from typing import TYPE_CHECKING, Any


if TYPE_CHECKING:
    from services.regulatory_truth.parser.types import InvariantViolation


class RegulatoryTruthError(Exception):
    """Base class for regulatory-truth errors."""


class StructuralLimitExceeded(RegulatoryTruthError):
    """
    A streaming-parser safety cap was hit.

    Fail-closed: propagated on first occurrence and never retried.
    """

    def __init__(self, limit_name: str, value: int, limit: int, source: str) -> None:
        self.limit_name = limit_name
        self.value = value
        self.limit = limit
        self.source = source
        super().__init__(f"{source}: {limit_name} exceeded ({value} > {limit})")


class SitemapParseError(RegulatoryTruthError):
    """Malformed sitemap XML. Transient at the child level."""

    def __init__(self, message: str, source: str) -> None:
        self.source = source
        super().__init__(f"{source}: {message}")


class TooManyChildFailures(RegulatoryTruthError):
    """The per-run child sitemap failure ceiling was exceeded."""

    def __init__(self, failed: int, ceiling: int) -> None:
        self.failed = failed
        self.ceiling = ceiling
        super().__init__(f"Too many child sitemap failures ({failed} > {ceiling})")


class FetchError(RegulatoryTruthError):
    """Non-success HTTP response while fetching a document."""

    def __init__(self, url: str, status_code: int, reason: str = "") -> None:
        self.url = url
        self.status_code = status_code
        super().__init__(f"HTTP {status_code}: {reason or 'request failed'} ({url})")


class CircuitOpenError(RegulatoryTruthError):
    """Requests to a domain fail fast while its circuit is open."""

    def __init__(self, domain: str, retry_in_seconds: float) -> None:
        self.domain = domain
        self.retry_in_seconds = retry_in_seconds
        minutes = round(retry_in_seconds / 60)
        super().__init__(f"Circuit breaker open for {domain}. Resets in {minutes} minutes")


class InvariantViolationError(RegulatoryTruthError):
    """Parser output broke a structural invariant and must not be persisted."""

    def __init__(self, violations: "list[InvariantViolation]") -> None:
        self.violations = violations
        ids = sorted({v.invariant_id for v in violations})
        super().__init__(f"{len(violations)} invariant violation(s): {', '.join(ids)}")

    def to_dict(self) -> dict[str, Any]:
        """Serialize for triage."""
        return {
            "error": "invariant_violation",
            "violations": [v.model_dump(mode="json") for v in self.violations],
        }


class EmbeddingError(RegulatoryTruthError):
    """The embedding capability failed or returned an unusable vector."""


class PointerNotFound(RegulatoryTruthError):
    """No live source pointer with the given id."""

    def __init__(self, pointer_id: str) -> None:
        self.pointer_id = pointer_id
        super().__init__(f"Source pointer {pointer_id} not found")
