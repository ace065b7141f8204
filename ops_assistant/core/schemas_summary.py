"""Pydantic schemas for model summaries."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

DEFAULT_MESSAGE_CONFIDENCE = 0.5


def coerce_action_items(value: Any) -> list[str]:
    """Normalize model or stored action items to a list of strings."""
    if value is None:
        return []
    if isinstance(value, str):
        value = [value]
    items = []
    for item in value:
        if isinstance(item, dict):
            item = item.get("item") or item.get("description") or item.get("title") or ""
        text = str(item).strip()
        if text:
            items.append(text)
    return items


def coerce_suggested_messages(value: Any) -> list[Any]:
    """Accept bare strings as messages; drop entries that are not messages."""
    if not value:
        return []
    if isinstance(value, (str, dict)):
        value = [value]
    return [
        {"message": m} if isinstance(m, str) else m
        for m in value
        if isinstance(m, (str, dict, BaseModel))
    ]


class SuggestedMessage(BaseModel):
    """A reply the model suggests sending; queued for operator review."""

    model_config = ConfigDict(extra="ignore")

    recipient: str | None = None
    subject: str | None = None
    message: str = ""
    source: str | None = None
    confidence: float = Field(default=DEFAULT_MESSAGE_CONFIDENCE, ge=0.0, le=1.0)
    # Email replies may point back at the message they answer
    email_id: str | None = None
    thread_id: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _accept_body_alias(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("message") and data.get("body"):
            data = {**data, "message": data["body"]}
        return data

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, value: Any) -> float:
        if value is None:
            return DEFAULT_MESSAGE_CONFIDENCE
        try:
            value = float(value)
        except (TypeError, ValueError):
            return DEFAULT_MESSAGE_CONFIDENCE
        return min(1.0, max(0.0, value))


class ModelSummaryOutput(BaseModel):
    """Structured output the model is instructed to return."""

    summary: str
    action_items: list[str] = Field(default_factory=list)
    suggested_messages: list[SuggestedMessage] = Field(default_factory=list)

    @field_validator("action_items", mode="before")
    @classmethod
    def _coerce_action_items(cls, value: Any) -> list[str]:
        return coerce_action_items(value)

    @field_validator("suggested_messages", mode="before")
    @classmethod
    def _coerce_suggested_messages(cls, value: Any) -> list[Any]:
        return coerce_suggested_messages(value)


class SummaryResult(BaseModel):
    """Summary produced for one source (or the combined pass)."""

    id: str | None = None
    source: str
    summary: str = ""
    action_items: list[str] = Field(default_factory=list)
    suggested_messages: list[SuggestedMessage] = Field(default_factory=list)
    parse_degraded: bool = False
    created_at: datetime | None = None

    @field_validator("action_items", mode="before")
    @classmethod
    def _rows_action_items(cls, value: Any) -> list[str]:
        return coerce_action_items(value)

    @field_validator("suggested_messages", mode="before")
    @classmethod
    def _rows_suggested_messages(cls, value: Any) -> list[Any]:
        # Older rows store bare strings
        return coerce_suggested_messages(value)

    def to_row(self) -> dict[str, Any]:
        """Row shape for the summaries table."""
        return {
            "source": self.source,
            "summary": self.summary,
            "action_items": list(self.action_items),
            "suggested_messages": [
                m.model_dump(exclude_none=True) for m in self.suggested_messages
            ],
            "parse_degraded": self.parse_degraded,
        }


class MultiSourceSummary(BaseModel):
    """Per-source results plus the combined summary."""

    results: dict[str, SummaryResult] = Field(default_factory=dict)
    errors: dict[str, str] = Field(default_factory=dict)
    combined: SummaryResult | None = None


class SummarizeRequest(BaseModel):
    """Request body for a single-source summary."""

    records: list[dict[str, Any]] = Field(default_factory=list)


class MultiSummarizeRequest(BaseModel):
    """Request body for a multi-source summary."""

    batches: dict[str, list[dict[str, Any]]] = Field(default_factory=dict)
