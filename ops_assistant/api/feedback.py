"""API endpoints for operator feedback and learned preferences."""

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query

from ops_assistant.api.deps import get_learner
from ops_assistant.core.errors import ValidationError
from ops_assistant.core.feedback_learner import FeedbackLearner
from ops_assistant.core.logging import get_logger
from ops_assistant.core.schemas_feedback import (
    FeedbackCreate,
    FeedbackRecord,
    FeedbackStats,
    PreferenceProfile,
)

logger = get_logger(__name__)

router = APIRouter()


@router.post("", status_code=201)
def submit_feedback(
    body: FeedbackCreate,
    learner: FeedbackLearner = Depends(get_learner),
) -> dict[str, Any]:
    """Store an approved/edited/rejected verdict on a summary."""
    try:
        record = learner.store_feedback(
            body.summary_id,
            body.rating,
            comment=body.comment,
            user_id=body.user_id,
        )
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    if record is None:
        raise HTTPException(status_code=500, detail="Failed to store feedback")
    return {"success": True, "feedback": record.model_dump(mode="json")}


@router.get("", response_model=list[FeedbackRecord])
def feedback_history(
    summary_id: str = Query(..., description="Summary to list feedback for"),
    learner: FeedbackLearner = Depends(get_learner),
):
    """Feedback on a summary, newest first."""
    return learner.get_feedback_history(summary_id)


@router.get("/stats", response_model=FeedbackStats)
def feedback_stats(
    days: int = Query(30, ge=1, le=365),
    learner: FeedbackLearner = Depends(get_learner),
):
    """Verdict counts and rates over the trailing window."""
    return learner.get_feedback_stats(days)


@router.get("/preferences", response_model=PreferenceProfile)
def preferences(learner: FeedbackLearner = Depends(get_learner)):
    """Current learned preference profile."""
    return learner.get_preference_profile()
