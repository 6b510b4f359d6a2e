"""Link tracker business logic services."""

from linktrack.services.codes import generate_short_code, validate_custom_code
from linktrack.services.geoip import (
    GeoIPService,
    GeoLocation,
    close_geoip_service,
    get_geoip_service,
)

__all__ = [
    # Short codes
    "generate_short_code",
    "validate_custom_code",
    # GeoIP
    "GeoIPService",
    "GeoLocation",
    "get_geoip_service",
    "close_geoip_service",
]
