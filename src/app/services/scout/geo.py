"""
Geo Resolver for Scout.

Determines the caller's country from its public IP so searches default to the
matching localized results page.

Flow:
1. TTL cache (key = queried IP, or "current" for our own address)
2. Ordered providers, first success wins: ipapi.co -> ip-api.com -> ipify
3. All providers failed -> static default region (not cached)
"""

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import httpx

from .regions import get_region_mapping

logger = logging.getLogger(__name__)

CURRENT_IP_KEY = "current"
DEFAULT_CACHE_TTL_SECONDS = 60 * 60  # 1 hour
DEFAULT_LOOKUP_TIMEOUT_SECONDS = 10.0


@dataclass(frozen=True)
class GeoInfo:
    country_code: str
    country_name: str
    ip: str
    region: str | None = None
    city: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    timezone: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return self.__dict__.copy()


@dataclass(frozen=True)
class CachedGeoInfo:
    info: GeoInfo
    captured_at: float  # clock() seconds

    def is_fresh(self, now: float, ttl: float) -> bool:
        return now - self.captured_at < ttl


@dataclass(frozen=True)
class GeoProvider:
    """One lookup service and its response-shape adapter.

    ``ip_url`` is a template with ``{ip}``; None means the provider can only
    report the caller's own address.
    """

    name: str
    url: str
    parse: Callable[[dict[str, Any]], GeoInfo]
    ip_url: str | None = None

    def url_for(self, ip: str | None) -> str | None:
        if ip is None:
            return self.url
        if self.ip_url is None:
            return None
        return self.ip_url.format(ip=ip)


def _require(data: dict[str, Any], key: str) -> Any:
    value = data.get(key)
    if not value:
        raise ValueError(f"Missing '{key}' in geolocation response")
    return value


def parse_ipapi(data: dict[str, Any]) -> GeoInfo:
    if data.get("error"):
        raise ValueError(data.get("reason") or "ipapi.co returned an error")
    return GeoInfo(
        country_code=str(_require(data, "country")).upper(),
        country_name=data.get("country_name") or "",
        ip=data.get("ip") or "unknown",
        region=data.get("region"),
        city=data.get("city"),
        latitude=data.get("latitude"),
        longitude=data.get("longitude"),
        timezone=data.get("timezone"),
    )


def parse_ip_api(data: dict[str, Any]) -> GeoInfo:
    if data.get("status") == "fail":
        raise ValueError(data.get("message") or "ip-api.com returned status=fail")
    return GeoInfo(
        country_code=str(_require(data, "countryCode")).upper(),
        country_name=data.get("country") or "",
        ip=data.get("query") or "unknown",
        region=data.get("regionName") or data.get("region"),
        city=data.get("city"),
        latitude=data.get("lat"),
        longitude=data.get("lon"),
        timezone=data.get("timezone"),
    )


def parse_ipify(data: dict[str, Any]) -> GeoInfo:
    # ipify only knows the address; country is assumed
    return GeoInfo(country_code="US", country_name="United States", ip=_require(data, "ip"))


DEFAULT_PROVIDERS = (
    GeoProvider(
        name="ipapi.co",
        url="https://ipapi.co/json/",
        ip_url="https://ipapi.co/{ip}/json/",
        parse=parse_ipapi,
    ),
    GeoProvider(
        name="ip-api.com",
        url="http://ip-api.com/json/",
        ip_url="http://ip-api.com/json/{ip}",
        parse=parse_ip_api,
    ),
    GeoProvider(
        name="ipify",
        url="https://api.ipify.org?format=json",
        parse=parse_ipify,
    ),
)


class GeoResolver:
    """
    Resolves an IP (or our own) to a GeoInfo with caching and fallback.

    The cache is the only shared state; it is mutated under ``self._lock``.
    Lookups themselves run outside the lock.
    """

    def __init__(
        self,
        providers: tuple[GeoProvider, ...] | list[GeoProvider] | None = None,
        ttl: float = DEFAULT_CACHE_TTL_SECONDS,
        timeout: float = DEFAULT_LOOKUP_TIMEOUT_SECONDS,
        default_region: str = "US",
        client_factory: Callable[..., httpx.AsyncClient] = httpx.AsyncClient,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.providers = list(providers) if providers is not None else list(DEFAULT_PROVIDERS)
        self.ttl = ttl
        self.timeout = timeout
        self.default_region = default_region
        self._client_factory = client_factory
        self._clock = clock
        self._cache: dict[str, CachedGeoInfo] = {}
        self._lock = asyncio.Lock()

    async def resolve(self, ip: str | None = None) -> GeoInfo:
        """Geo info for ``ip`` (or the current public IP). Never raises."""
        key = ip or CURRENT_IP_KEY

        async with self._lock:
            cached = self._cache.get(key)
            if cached is not None and cached.is_fresh(self._clock(), self.ttl):
                logger.debug(f"Geo cache HIT for {key}")
                return cached.info

        logger.debug(f"Geo cache MISS for {key}")
        info = await self._lookup(ip)
        if info is None:
            fallback = self.fallback()
            logger.warning(f"All geolocation providers failed, using default location ({fallback.country_code})")
            return fallback

        async with self._lock:
            self._cache[key] = CachedGeoInfo(info=info, captured_at=self._clock())
        return info

    async def _lookup(self, ip: str | None) -> GeoInfo | None:
        async with self._client_factory(timeout=self.timeout) as client:
            for provider in self.providers:
                url = provider.url_for(ip)
                if url is None:
                    continue

                try:
                    logger.debug(f"Trying geolocation provider: {provider.name}")
                    response = await asyncio.wait_for(client.get(url), timeout=self.timeout)
                    response.raise_for_status()
                    info = provider.parse(response.json())
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    logger.warning(f"Geolocation provider {provider.name} failed: {type(e).__name__}: {e}")
                    continue

                logger.info(f"Detected location: {info.country_name} ({info.country_code}) via {provider.name}")
                return info

        return None

    def fallback(self) -> GeoInfo:
        mapping = get_region_mapping(self.default_region)
        return GeoInfo(country_code=mapping.country_code, country_name=mapping.country_name, ip="unknown")

    def clear_cache(self) -> None:
        self._cache.clear()
        logger.info("Geo location cache cleared")

    @property
    def cache_size(self) -> int:
        return len(self._cache)


__all__ = [
    "CachedGeoInfo",
    "DEFAULT_PROVIDERS",
    "GeoInfo",
    "GeoProvider",
    "GeoResolver",
    "parse_ip_api",
    "parse_ipapi",
    "parse_ipify",
]
