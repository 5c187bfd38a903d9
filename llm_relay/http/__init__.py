"""HTTP endpoints (FastAPI)."""

from .api import CandidateQuery, create_telemetry_router

__all__ = ["CandidateQuery", "create_telemetry_router"]
