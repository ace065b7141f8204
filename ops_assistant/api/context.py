"""API endpoints for context resolution, the entity cache and client records."""

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query

from ops_assistant.api.deps import get_resolver
from ops_assistant.core.context_resolver import ContextResolver
from ops_assistant.core.errors import ValidationError
from ops_assistant.core.logging import get_logger
from ops_assistant.core.schemas_context import (
    Client,
    ClientCreate,
    ClientUpdate,
    ContextBundle,
    Project,
    ResolveRequest,
)

logger = get_logger(__name__)

router = APIRouter()


@router.post("/context/resolve", response_model=ContextBundle)
async def resolve_context(
    body: ResolveRequest,
    resolver: ContextResolver = Depends(get_resolver),
):
    """Resolve the clients referenced by a batch of source records."""
    return await resolver.resolve(body.records)


@router.get("/context/cache")
def cache_stats(resolver: ContextResolver = Depends(get_resolver)) -> dict[str, Any]:
    """Per-pool cache statistics."""
    return resolver.cache.stats()


@router.delete("/context/cache")
def clear_cache(
    kind: str | None = Query(None, description="clients or projects; all pools when omitted"),
    resolver: ContextResolver = Depends(get_resolver),
) -> dict[str, Any]:
    """Clear one cache pool or all of them."""
    try:
        cleared = resolver.clear_cache(kind)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return {"success": True, "cleared": cleared}


@router.post("/context/cache/prune")
def prune_cache(resolver: ContextResolver = Depends(get_resolver)) -> dict[str, Any]:
    """Evict expired and over-capacity entries."""
    return {"success": True, "pruned": resolver.prune_cache()}


@router.post("/clients", response_model=Client, status_code=201)
async def create_client(
    body: ClientCreate,
    resolver: ContextResolver = Depends(get_resolver),
):
    """Create a client, or return the existing one with the same name."""
    try:
        client = await resolver.create_client(body.name, body.profile)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    if client is None:
        raise HTTPException(status_code=500, detail="Failed to create client")
    return client


@router.get("/clients/{client_id}", response_model=Client)
async def get_client(client_id: str, resolver: ContextResolver = Depends(get_resolver)):
    """Get a client by ID."""
    client = await resolver.get_client(client_id)
    if client is None:
        raise HTTPException(status_code=404, detail="Client not found")
    return client


@router.get("/clients/{client_id}/projects", response_model=list[Project])
async def list_client_projects(client_id: str, resolver: ContextResolver = Depends(get_resolver)):
    """List projects linked to a client."""
    return await resolver.get_projects_for_client(client_id)


@router.patch("/clients/{client_id}", response_model=Client)
async def update_client(
    client_id: str,
    body: ClientUpdate,
    resolver: ContextResolver = Depends(get_resolver),
):
    """Update a client's name or profile."""
    data = body.model_dump(exclude_none=True)
    if not data:
        raise HTTPException(status_code=400, detail="No fields to update")

    client = await resolver.update_client(client_id, data)
    if client is None:
        raise HTTPException(status_code=404, detail="Client not found or update failed")
    return client


@router.get("/projects/{project_id}", response_model=Project)
async def get_project(project_id: str, resolver: ContextResolver = Depends(get_resolver)):
    """Get a project by ID."""
    project = await resolver.get_project(project_id)
    if project is None:
        raise HTTPException(status_code=404, detail="Project not found")
    return project
