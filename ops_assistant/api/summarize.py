"""API endpoints for activity summaries."""

from fastapi import APIRouter, Depends, HTTPException, Query

from ops_assistant.api.deps import get_orchestrator
from ops_assistant.core.errors import ModelUnavailableError, StorageError
from ops_assistant.core.logging import get_logger
from ops_assistant.core.schemas_summary import (
    MultiSourceSummary,
    MultiSummarizeRequest,
    SummarizeRequest,
    SummaryResult,
)
from ops_assistant.services.summary_orchestrator import SummaryOrchestrator

logger = get_logger(__name__)

router = APIRouter()


@router.post("/summarize", response_model=MultiSourceSummary)
async def summarize_sources(
    body: MultiSummarizeRequest,
    orchestrator: SummaryOrchestrator = Depends(get_orchestrator),
):
    """Summarize several sources concurrently, plus a combined summary."""
    return await orchestrator.summarize_sources(body.batches)


# Registered before /summarize/{source} so "all" is not taken as a source
@router.post("/summarize/all", response_model=SummaryResult)
async def summarize_recent(
    limit: int = Query(10, ge=1, le=100),
    orchestrator: SummaryOrchestrator = Depends(get_orchestrator),
):
    """Combine the latest stored summary of every source."""
    try:
        return await orchestrator.summarize_recent(limit)
    except StorageError as e:
        logger.error(f"Error generating comprehensive summary: {e}")
        raise HTTPException(status_code=503, detail="Summary store unavailable") from e


@router.post("/summarize/{source}", response_model=SummaryResult)
async def summarize_source(
    source: str,
    body: SummarizeRequest,
    orchestrator: SummaryOrchestrator = Depends(get_orchestrator),
):
    """Summarize one source's records."""
    try:
        return await orchestrator.summarize_source(source, body.records)
    except ModelUnavailableError as e:
        logger.error(f"Model unavailable for {source} summary after {e.attempts} attempts")
        raise HTTPException(status_code=503, detail=str(e)) from e


@router.get("/summaries", response_model=list[SummaryResult])
async def list_summaries(
    limit: int = Query(20, ge=1, le=100),
    orchestrator: SummaryOrchestrator = Depends(get_orchestrator),
):
    """Most recent stored summaries."""
    try:
        return await orchestrator.list_recent_summaries(limit)
    except StorageError as e:
        logger.error(f"Error fetching summaries: {e}")
        raise HTTPException(status_code=503, detail="Summary store unavailable") from e
