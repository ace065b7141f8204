"""Pydantic schemas for operator feedback and learned preferences."""

from datetime import datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class Verdict(str, Enum):
    """Operator verdict on a model suggestion."""

    APPROVED = "approved"
    EDITED = "edited"
    REJECTED = "rejected"


class FeedbackRecord(BaseModel):
    """A stored verdict. Immutable once created."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str | None = None
    summary_id: str
    rating: Verdict
    comment: str = ""
    user_id: str | None = None
    created_at: datetime | None = None


class EditAnalysis(BaseModel):
    """Length/tone/style delta between a suggestion and the operator's edit."""

    model_config = ConfigDict(extra="ignore")

    summary_id: str
    original_length: int
    edited_length: int
    length_change_percent: float
    tone_change: str = "unchanged"
    style_change: str = "unchanged"
    created_at: datetime | None = None


class RejectionAnalysis(BaseModel):
    """Context note recorded when a suggestion is rejected."""

    summary_id: str
    source: str | None = None
    content: str = ""
    similar_rejections: int = 0
    created_at: datetime | None = None


class FeedbackStats(BaseModel):
    """Verdict counts and rates over a trailing window."""

    total: int = 0
    approved: int = 0
    edited: int = 0
    rejected: int = 0
    approval_rate: float = 0.0
    edit_rate: float = 0.0
    rejection_rate: float = 0.0
    sources: dict[str, int] = Field(default_factory=dict)
    time_distribution: dict[str, int] = Field(default_factory=dict)


class PreferenceProfile(BaseModel):
    """Learned tone/length/style preferences used to steer prompts."""

    model_config = ConfigDict(frozen=True)

    tone: str = "neutral"
    length: Literal["concise", "medium", "detailed"] = "medium"
    style: str = "professional"
    approval_rate: float = 0.0
    edit_rate: float = 0.0
    rejection_rate: float = 0.0
    sources: dict[str, int] = Field(default_factory=dict)
    time_distribution: dict[str, int] = Field(default_factory=dict)
    analyses_considered: int = 0
    computed_at: datetime | None = None


class FeedbackCreate(BaseModel):
    """Request body for submitting feedback."""

    summary_id: str = ""
    rating: str = Verdict.APPROVED.value
    comment: str | None = None
    user_id: str | None = None
