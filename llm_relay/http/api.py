"""FastAPI HTTP endpoints for relay telemetry and dry-run routing.

Mount the router returned by ``create_telemetry_router`` on any FastAPI
application that owns a RelayClient.
"""

from typing import Any, Dict, List

try:
    from fastapi import APIRouter, HTTPException
except ImportError:
    raise ImportError(
        "FastAPI is required for HTTP endpoints. "
        "Please install with: pip install llm-relay"
    )

from pydantic import BaseModel, Field

from ..api.client import RelayClient
from ..models.specs import CompletionRequest, RequestConstraints


class CandidateQuery(BaseModel):
    """Body of a dry-run routing request."""
    required_capabilities: List[str] = Field(default_factory=list)
    preferred_capabilities: List[str] = Field(default_factory=list)
    constraints: RequestConstraints = Field(default_factory=RequestConstraints)


def create_telemetry_router(client: RelayClient) -> APIRouter:
    """Build the telemetry router for ``client``."""
    router = APIRouter()

    @router.get("/providers")
    async def list_providers() -> Dict[str, Any]:
        """Telemetry for every known provider."""
        return {
            "providers": {
                name: telemetry.model_dump()
                for name, telemetry in client.telemetry().items()
            }
        }

    @router.get("/providers/{provider}")
    async def get_provider(provider: str) -> Dict[str, Any]:
        if provider not in client.telemetry():
            raise HTTPException(status_code=404, detail=f"Unknown provider: {provider}")
        return client.provider_telemetry(provider).model_dump()

    @router.post("/candidates")
    async def rank_candidates(query: CandidateQuery) -> Dict[str, Any]:
        """Rank routable models for a capability query without dispatching."""
        request = CompletionRequest(
            payload=None,
            required_capabilities=frozenset(query.required_capabilities),
            preferred_capabilities=frozenset(query.preferred_capabilities),
            constraints=query.constraints,
        )
        return {"candidates": [e.to_dict() for e in client.explain(request)]}

    return router
