"""
Parse Routes
============

Parse an artifact into provision nodes, optionally storing the result.

Version: 0.1.0
"""

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from services.regulatory_truth.dependencies import (
    get_document_parser,
    get_document_repository,
)
from services.regulatory_truth.errors import InvariantViolationError
from services.regulatory_truth.hashing import sha256_hex
from services.regulatory_truth.parser import (
    ContentArtifact,
    ContentClass,
    DocumentParser,
    ParseResult,
    ParseStatus,
)
from services.regulatory_truth.storage import ParsedDocumentRepository
from shared.logging import get_logger


logger = get_logger(__name__)

router = APIRouter()


class ParseRequest(BaseModel):
    evidence_id: str = Field(..., min_length=1, max_length=64)
    content_class: ContentClass
    content: str
    persist: bool = False


class ParseResponse(BaseModel):
    result: ParseResult
    document_id: str | None = None


@router.post("", response_model=ParseResponse)
async def parse_artifact(
    request: ParseRequest,
    parser: DocumentParser = Depends(get_document_parser),
    repository: ParsedDocumentRepository = Depends(get_document_repository),
) -> ParseResponse:
    """
    Parse one artifact.

    Unsupported content classes return a FAILED result, not an error.
    With `persist`, a result that breaks an invariant is rejected with 422
    and nothing is written.
    """
    artifact = ContentArtifact(
        content=request.content,
        content_hash=sha256_hex(request.content),
        content_class=request.content_class,
    )
    result = parser.parse(request.evidence_id, request.content_class, artifact)

    document_id = None
    if request.persist and result.status != ParseStatus.FAILED:
        try:
            document_id = await repository.save(result)
        except InvariantViolationError as e:
            logger.warning(
                "parse_persist_rejected",
                evidence_id=request.evidence_id,
                violations=len(e.violations),
            )
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail=str(e),
            ) from e

    return ParseResponse(result=result, document_id=document_id)
