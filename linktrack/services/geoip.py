"""Best-effort IP geolocation for recorded clicks."""

import asyncio
import ipaddress
from dataclasses import dataclass
from pathlib import Path

import geoip2.database
import geoip2.errors
import httpx
import structlog

from linktrack.core.config import get_settings

settings = get_settings()
logger = structlog.get_logger()

IP_API_URL = "http://ip-api.com/json/{ip}"


@dataclass
class GeoLocation:
    """Where a click came from. Both fields are None when unknown."""

    country: str | None = None  # ISO 3166-1 alpha-2
    city: str | None = None


class GeoIPService:
    """Resolve client IPs to country and city.

    With ``geoip_database_path`` pointing at a MaxMind GeoLite2/GeoIP2 City
    database, lookups are local. Otherwise the free ip-api.com endpoint is
    queried (rate limited to 45 requests/minute, fine for development).

    A lookup never raises and never takes longer than ``timeout`` seconds:
    private, loopback and unparsable addresses, misses, errors and slow
    answers all give an empty GeoLocation.
    """

    def __init__(
        self,
        geoip_database_path: str | None = None,
        timeout: float | None = None,
        enabled: bool | None = None,
    ):
        self._enabled = settings.geoip_enabled if enabled is None else enabled
        self._timeout = settings.geoip_timeout if timeout is None else timeout
        self._reader: geoip2.database.Reader | None = None
        self._http: httpx.AsyncClient | None = None

        database_path = geoip_database_path or settings.geoip_database_path
        if self._enabled and database_path:
            self._reader = self._open_database(Path(database_path))

    @staticmethod
    def _open_database(path: Path) -> geoip2.database.Reader | None:
        if not path.exists():
            logger.warning("GeoIP database not found, using ip-api.com", path=str(path))
            return None
        try:
            reader = geoip2.database.Reader(str(path))
        except (OSError, ValueError) as e:
            logger.error("Failed to open GeoIP database", path=str(path), error=str(e))
            return None
        logger.info("GeoIP database loaded", path=str(path))
        return reader

    async def lookup(self, ip_address: str | None) -> GeoLocation:
        if not self._enabled or not ip_address or not is_public_ip(ip_address):
            return GeoLocation()

        try:
            return await asyncio.wait_for(self._lookup(ip_address), timeout=self._timeout)
        except asyncio.TimeoutError:
            logger.debug("GeoIP lookup timed out", ip=ip_address, timeout=self._timeout)
            return GeoLocation()

    async def _lookup(self, ip_address: str) -> GeoLocation:
        if self._reader is not None:
            return self._lookup_database(ip_address)
        return await self._lookup_ip_api(ip_address)

    def _lookup_database(self, ip_address: str) -> GeoLocation:
        try:
            response = self._reader.city(ip_address)
        except (geoip2.errors.GeoIP2Error, ValueError) as e:
            logger.debug("GeoIP database miss", ip=ip_address, error=str(e))
            return GeoLocation()
        return GeoLocation(country=response.country.iso_code, city=response.city.name)

    async def _lookup_ip_api(self, ip_address: str) -> GeoLocation:
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=self._timeout)

        try:
            response = await self._http.get(
                IP_API_URL.format(ip=ip_address),
                params={"fields": "status,countryCode,city"},
            )
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.debug("ip-api.com lookup failed", ip=ip_address, error=str(e))
            return GeoLocation()

        if data.get("status") != "success":
            return GeoLocation()
        return GeoLocation(
            country=data.get("countryCode") or None,
            city=data.get("city") or None,
        )

    async def close(self) -> None:
        if self._reader is not None:
            self._reader.close()
            self._reader = None
        if self._http is not None:
            await self._http.aclose()
            self._http = None


def is_public_ip(ip_address: str) -> bool:
    """True for globally routable addresses only."""
    try:
        return ipaddress.ip_address(ip_address).is_global
    except ValueError:
        return False


_geoip_service: GeoIPService | None = None


def get_geoip_service() -> GeoIPService:
    """Process-wide GeoIP service, created on first use."""
    global _geoip_service
    if _geoip_service is None:
        _geoip_service = GeoIPService()
    return _geoip_service


async def close_geoip_service() -> None:
    global _geoip_service
    if _geoip_service is not None:
        await _geoip_service.close()
        _geoip_service = None
