"""
Route Dependencies
==================

Collaborators are built once in the application lifespan and stored on
`app.state`. Routes reach them through these functions so tests can
swap them with `app.dependency_overrides`.

Version: 0.1.0
"""

from fastapi import Request

from services.regulatory_truth.alerting import AlertSink
from services.regulatory_truth.parser import DocumentParser
from services.regulatory_truth.ratelimit import RateLimiterRegistry
from services.regulatory_truth.search import SemanticSearchService
from services.regulatory_truth.storage import ParsedDocumentRepository


def get_search_service(request: Request) -> SemanticSearchService:
    return request.app.state.search_service


def get_document_parser(request: Request) -> DocumentParser:
    return request.app.state.document_parser


def get_document_repository(request: Request) -> ParsedDocumentRepository:
    return request.app.state.document_repository


def get_rate_limiter_registry(request: Request) -> RateLimiterRegistry:
    return request.app.state.rate_limiter_registry


def get_alert_sink(request: Request) -> AlertSink:
    return request.app.state.alert_sink
