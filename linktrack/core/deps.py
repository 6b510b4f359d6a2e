"""Dependency injection utilities for FastAPI routes."""

from typing import Annotated

from fastapi import Depends, Request

from linktrack.services.geoip import GeoIPService, get_geoip_service
from linktrack.storage import LinkStore


def get_store(request: Request) -> LinkStore:
    """The link store attached to the application at startup."""
    return request.app.state.store


# Type aliases for dependency injection
StoreDep = Annotated[LinkStore, Depends(get_store)]
GeoIPDep = Annotated[GeoIPService, Depends(get_geoip_service)]
