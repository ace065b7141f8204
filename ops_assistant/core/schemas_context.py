"""Pydantic schemas for cached context entities (clients, projects)."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Entity(BaseModel):
    """A stored domain object referenced by source records."""

    model_config = ConfigDict(extra="ignore")

    id: str = Field(..., description="Opaque unique key")
    name: str = Field(..., description="Display name, unique within the store")
    profile: dict[str, Any] = Field(default_factory=dict, description="Free-form attributes")
    last_mentioned: datetime | None = Field(
        default=None, description="Last time a source record referenced this entity"
    )
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def recency(self) -> datetime | None:
        """Timestamp used to order cache eviction (None sorts oldest)."""
        return self.last_mentioned


class Client(Entity):
    """A client organization mentioned in ops activity."""


class Project(Entity):
    """A project belonging to a client."""

    client_id: str | None = None
    description: str | None = None
    status: str | None = None

    @property
    def recency(self) -> datetime | None:
        return self.last_mentioned or self.updated_at


class ContextBundle(BaseModel):
    """Entities relevant to a batch of source records."""

    names: list[str] = Field(default_factory=list, description="Extracted name candidates")
    clients: list[Client] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.clients

    def to_prompt_context(self) -> dict[str, Any]:
        """Context block embedded into model prompts."""
        return {
            "clients": [
                {"name": c.name, "profile": c.profile}
                for c in self.clients
            ]
        }


class ClientCreate(BaseModel):
    """Request body for creating a client."""

    name: str
    profile: dict[str, Any] = Field(default_factory=dict)


class ClientUpdate(BaseModel):
    """Request body for updating a client."""

    name: str | None = None
    profile: dict[str, Any] | None = None


class ResolveRequest(BaseModel):
    """Request body for context resolution."""

    records: list[dict[str, Any]] = Field(default_factory=list)
