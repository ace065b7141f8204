"""API router for v1 endpoints."""

from fastapi import APIRouter

from ops_assistant.api import context, feedback, summarize

router = APIRouter()

# Context resolution, cache admin and client records
router.include_router(context.router, tags=["context"])

# Operator verdicts and learned preferences
router.include_router(feedback.router, prefix="/feedback", tags=["feedback"])

# Per-source, multi-source and recent summaries
router.include_router(summarize.router, tags=["summarize"])
