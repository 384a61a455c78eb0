"""Routing providers: OSRM over HTTP and a straight-line fallback."""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol

import httpx

from ...config import settings
from ...models.domain import Coordinate
from ..geospatial import haversine_m
from .models import COMPLETE, ProviderReply

logger = logging.getLogger(__name__)


class RoutingProvider(Protocol):
    async def search(self, origin: Coordinate, destination: Coordinate) -> ProviderReply:
        ...


class OSRMRoutingProvider:
    """Plans single legs against the OSRM ``route`` endpoint.

    Transport errors never escape ``search``: after the configured retries they
    are reported as a failed ``ProviderReply`` carrying the error text.
    """

    def __init__(
        self,
        base_url: str | None = None,
        profile: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        backoff_seconds: float | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = (base_url or settings.routing_base_url or "").rstrip("/")
        if not self.base_url:
            raise ValueError("Routing base URL is not configured.")
        self.profile = profile or settings.routing_profile
        self.max_retries = max_retries if max_retries is not None else settings.routing_max_retries
        self.backoff_seconds = backoff_seconds if backoff_seconds is not None else settings.routing_backoff_seconds
        self.timeout = timeout if timeout is not None else settings.routing_timeout_seconds
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(self.timeout, connect=10.0))

    async def aclose(self) -> None:
        await self._client.aclose()

    def _retry_delay(self, attempt: int) -> float:
        return self.backoff_seconds * (2 ** (attempt - 1))

    async def _get_route(self, url: str, params: dict) -> dict:
        """GET a route document, retrying transport failures with exponential backoff."""
        for attempt in range(1, self.max_retries + 2):
            final = attempt > self.max_retries
            try:
                response = await self._client.get(url, params=params)
                response.raise_for_status()
                payload = response.json()
            except (httpx.TimeoutException, httpx.NetworkError) as exc:
                if final:
                    raise ConnectionError(f"OSRM at {self.base_url} unreachable after {attempt} attempts: {exc}") from exc
                delay = self._retry_delay(attempt)
                logger.debug(f"OSRM transport error ({exc!r}), attempt {attempt}, next try in {delay:.1f}s")
                await asyncio.sleep(delay)
                continue
            except httpx.HTTPStatusError as exc:
                if final or exc.response.status_code < 500:
                    raise
                await asyncio.sleep(self._retry_delay(attempt))
                continue

            # OSRM reports routing failures (NoRoute, NoSegment) in the body
            if payload.get("code") != "Ok":
                raise ValueError(f"OSRM could not route: {payload.get('message') or payload.get('code')}")
            return payload
        raise AssertionError("retry loop ended without a response")

    async def search(self, origin: Coordinate, destination: Coordinate) -> ProviderReply:
        coordinate_str = f"{origin.lng},{origin.lat};{destination.lng},{destination.lat}"
        url = f"{self.base_url}/route/v1/{self.profile}/{coordinate_str}"
        params = {"overview": "full", "geometries": "polyline", "steps": "false"}
        try:
            data = await self._get_route(url, params)
        except (httpx.HTTPError, ConnectionError, ValueError) as exc:
            logger.error(f"OSRM leg {origin} -> {destination} failed: {exc}")
            return ProviderReply(status="error", result=str(exc))

        routes = data.get("routes") or []
        if not routes:
            return ProviderReply(status="no_data", result=data)
        route = routes[0]
        geometry = route.get("geometry")
        path = [[lon, lat] for lat, lon in decode_polyline(geometry)] if isinstance(geometry, str) else []
        return ProviderReply(
            status=COMPLETE,
            result={
                "routes": [
                    {
                        "distance": float(route.get("distance") or 0.0),
                        "time": float(route.get("duration") or 0.0),
                        "path": path,
                    }
                ]
            },
        )


class StraightLineProvider:
    """Fallback provider drawing a direct line between the two points."""

    def __init__(self, speed_kmh: float | None = None) -> None:
        self.speed_kmh = speed_kmh or settings.fallback_speed_kmh

    async def search(self, origin: Coordinate, destination: Coordinate) -> ProviderReply:
        distance = haversine_m(origin, destination)
        duration = distance / (self.speed_kmh / 3.6)
        return ProviderReply(
            status=COMPLETE,
            result={"routes": [{"distance": distance, "time": duration, "path": [origin.as_list(), destination.as_list()]}]},
        )


def build_routing_provider() -> RoutingProvider:
    if settings.routing_base_url:
        return OSRMRoutingProvider()
    logger.warning("Routing base URL not configured, using straight-line routing")
    return StraightLineProvider()


def _read_varint(encoded: str, index: int) -> tuple[int, int]:
    """Read one zig-zag encoded value; returns (value, next index)."""
    shift = 0
    value = 0
    while True:
        chunk = ord(encoded[index]) - 63
        index += 1
        value |= (chunk & 0x1F) << shift
        shift += 5
        if chunk < 0x20:
            break
    return (~(value >> 1) if value & 1 else value >> 1), index


def decode_polyline(encoded: str, precision: int = 5) -> list[tuple[float, float]]:
    """Expand an encoded polyline (OSRM ``geometries=polyline``) into (lat, lon) pairs."""
    factor = 10 ** precision
    points: list[tuple[float, float]] = []
    index = lat = lon = 0
    while index < len(encoded):
        d_lat, index = _read_varint(encoded, index)
        d_lon, index = _read_varint(encoded, index)
        lat += d_lat
        lon += d_lon
        points.append((lat / factor, lon / factor))
    return points


async def check_health(provider: RoutingProvider) -> bool:
    """Probe the provider with a short leg between two fixed campus points."""
    try:
        reply = await provider.search(
            Coordinate(118.823748, 31.890009),
            Coordinate(118.819181, 31.88836),
        )
    except Exception:
        logger.exception("Routing health probe raised")
        return False
    return reply.ok
