"""HTTP API routes."""

from linktrack.api.router import router

__all__ = ["router"]
