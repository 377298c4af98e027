"""
Geocode Service - OpenStreetMap Nominatim reverse geocoding
"""
import asyncio
import logging
import json
import time
from typing import Dict, Any, Optional
import httpx
import redis
from spotitnow.config import settings
from spotitnow.exceptions import GeocodeError

logger = logging.getLogger(__name__)


class GeocodeService:
    """
    Service for turning coordinates into a locality using OpenStreetMap Nominatim.

    Features:
    - Reverse geocoding: lat/lon -> city, state, country
    - Redis caching with configurable TTL (optional, failures are ignored)
    - Rate limiting (respects Nominatim usage policy)
    - Timeouts; failures surface at once as GeocodeError
    """

    def __init__(self):
        self._redis_client: Optional[redis.Redis] = None
        self._last_request_time: float = 0
        self._min_request_interval: float = 1.0  # Nominatim requires 1 request/sec max

    def _get_redis(self) -> Optional[redis.Redis]:
        """Get Redis client for caching"""
        if self._redis_client is None:
            try:
                self._redis_client = redis.from_url(
                    settings.REDIS_URL,
                    decode_responses=True
                )
                self._redis_client.ping()
            except redis.RedisError as e:
                logger.warning(f"Redis unavailable for geocode caching: {e}")
                self._redis_client = None
        return self._redis_client

    def _get_cache_key(self, lat: float, lng: float) -> str:
        # ~11m grid; finer precision only defeats the cache
        return f"revgeo:{lat:.4f}:{lng:.4f}"

    def _get_cached_result(self, lat: float, lng: float) -> Optional[Dict[str, Any]]:
        try:
            r = self._get_redis()
            if r:
                cached = r.get(self._get_cache_key(lat, lng))
                if cached:
                    return json.loads(cached)
        except (redis.RedisError, ValueError) as e:
            logger.warning(f"Cache read error: {e}")
        return None

    def _set_cached_result(self, lat: float, lng: float, result: Dict[str, Any]) -> None:
        try:
            r = self._get_redis()
            if r:
                r.setex(
                    self._get_cache_key(lat, lng),
                    settings.NOMINATIM_CACHE_TTL_SEC,
                    json.dumps(result)
                )
        except redis.RedisError as e:
            logger.warning(f"Cache write error: {e}")

    async def _rate_limit(self) -> None:
        """Enforce rate limiting for Nominatim API"""
        elapsed = time.time() - self._last_request_time
        if elapsed < self._min_request_interval:
            await asyncio.sleep(self._min_request_interval - elapsed)
        self._last_request_time = time.time()

    async def _make_nominatim_request(self, lat: float, lng: float) -> Dict[str, Any]:
        """Make a single reverse request to Nominatim API"""
        await self._rate_limit()

        headers = {
            "User-Agent": settings.NOMINATIM_USER_AGENT,
            "Accept": "application/json"
        }

        params = {
            "lat": lat,
            "lon": lng,
            "format": "json",
            "addressdetails": 1
        }

        async with httpx.AsyncClient(timeout=settings.NOMINATIM_TIMEOUT_SEC) as client:
            response = await client.get(
                f"{settings.NOMINATIM_URL}/reverse",
                params=params,
                headers=headers
            )
            response.raise_for_status()
            return response.json()

    @staticmethod
    def parse_address(address: Dict[str, Any]) -> Dict[str, Any]:
        """Pick city/state/country out of a Nominatim address block"""
        city = (
            address.get("city")
            or address.get("town")
            or address.get("village")
            or address.get("county")
            or "Unknown"
        )
        state = address.get("state") or address.get("region") or ""
        return {
            "city": city,
            "state": state,
            "country": address.get("country", ""),
        }

    async def reverse_geocode(self, lat: float, lng: float) -> Dict[str, Any]:
        """
        Reverse geocode coordinates to a locality.

        Args:
            lat: Latitude
            lng: Longitude

        Returns:
            Dict with city, state and country

        Raises:
            GeocodeError: Nominatim unreachable or no address for the point
        """
        cached = self._get_cached_result(lat, lng)
        if cached:
            logger.debug(f"Reverse geocode cache hit for ({lat}, {lng})")
            return cached

        try:
            data = await self._make_nominatim_request(lat, lng)
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Reverse geocoding failed for ({lat}, {lng}): {e}")
            raise GeocodeError(
                "Failed to determine location from coordinates",
                {"lat": lat, "lng": lng}
            ) from e

        address = (data or {}).get("address") or {}
        if not address:
            logger.info(f"No address for ({lat}, {lng})")
            raise GeocodeError(
                "No address found for coordinates",
                {"lat": lat, "lng": lng}
            )

        result = self.parse_address(address)
        self._set_cached_result(lat, lng, result)

        logger.info(f"Reverse geocoded ({lat}, {lng}) -> {result['city']}, {result['state']}")
        return result


# Singleton instance
geocode_service = GeocodeService()
