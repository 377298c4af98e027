"""
Region Service - resolves coordinates to a cached regional manifest

Lookup order for a point:
1. Exact region key derived from the reverse-geocoded city and state
2. Any stored region whose center lies within the proximity threshold
3. A freshly generated manifest stored under the derived key

Step 2 trades precision for cost: nearby points reuse an existing
manifest instead of paying for another LLM call.
"""
import logging
import re
from typing import Any, Dict, List, Optional, Tuple
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from spotitnow.config import settings
from spotitnow.db.models import Region
from spotitnow.exceptions import NotFoundError
from spotitnow.services.geocode_service import geocode_service
from spotitnow.services.manifest_service import manifest_service

logger = logging.getLogger(__name__)

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]")
_REPEATED_SEP_RE = re.compile(r"_+")


def _normalize_part(value: str) -> str:
    value = _NON_ALNUM_RE.sub("_", (value or "").lower())
    return _REPEATED_SEP_RE.sub("_", value).strip("_")


def generate_region_key(city: str, state: str) -> str:
    """Normalized, deterministic key for a (city, state) pair"""
    return _normalize_part(f"{_normalize_part(city)}_{_normalize_part(state)}")


def format_location(city: str, state: str) -> str:
    return f"{city}, {state}" if state else city


class ManifestStore:
    """Persisted cache of one probability manifest per region"""

    def get_by_key(self, db: Session, region_key: str) -> Optional[Region]:
        return db.query(Region).filter(Region.region_key == region_key).first()

    def find_nearby(
        self,
        db: Session,
        lat: float,
        lng: float,
        threshold: Optional[float] = None
    ) -> Optional[Region]:
        """Closest region whose center is within ``threshold`` degrees on both axes"""
        if threshold is None:
            threshold = settings.REGION_PROXIMITY_THRESHOLD_DEG

        return db.query(Region).filter(
            Region.center_latitude >= lat - threshold,
            Region.center_latitude <= lat + threshold,
            Region.center_longitude >= lng - threshold,
            Region.center_longitude <= lng + threshold
        ).order_by(
            func.abs(Region.center_latitude - lat) + func.abs(Region.center_longitude - lng),
            Region.id
        ).first()

    def create_if_absent(
        self,
        db: Session,
        region_key: str,
        location: str,
        lat: float,
        lng: float,
        manifest: List[Dict[str, Any]],
        raw_response: Optional[List[Any]] = None
    ) -> Region:
        """
        Insert a region unless one with the same key already exists.

        A concurrent request may win the insert between our lookup and our
        commit; the unique key turns that into an IntegrityError and the
        winner's row is returned instead.
        """
        region = Region(
            region_key=region_key,
            location=location,
            center_latitude=lat,
            center_longitude=lng,
            manifest=manifest,
            raw_response=raw_response
        )
        db.add(region)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            existing = self.get_by_key(db, region_key)
            if existing is None:
                raise
            logger.info(f"Region {region_key} was created concurrently, reusing it")
            return existing

        db.refresh(region)
        logger.info(f"New region created: {region_key} (id={region.id})")
        return region

    def delete_by_key(self, db: Session, region_key: str) -> bool:
        deleted = db.query(Region).filter(Region.region_key == region_key).delete()
        db.commit()
        return deleted > 0

    def delete_region(self, db: Session, region_id: int) -> Dict[str, Any]:
        region = db.query(Region).filter(Region.id == region_id).first()
        if not region:
            raise NotFoundError("Regional manifest not found", {"region_id": region_id})
        deleted = {"id": region.id, "region_key": region.region_key, "location": region.location}
        db.delete(region)
        db.commit()
        logger.info(f"Deleted region {deleted['region_key']} (id={region_id})")
        return deleted

    def clear_all(self, db: Session) -> int:
        deleted = db.query(Region).delete()
        db.commit()
        logger.info(f"Cleared {deleted} regional manifests")
        return deleted

    def list_regions(self, db: Session, limit: int = 100) -> List[Region]:
        return db.query(Region).order_by(Region.created_at.desc(), Region.id.desc()).limit(limit).all()


class RegionResolver:
    """Turns coordinates into a Region, generating a manifest only when needed"""

    def __init__(self, store=None, geocoder=None, manifests=None):
        self.store = store or manifest_store
        self.geocoder = geocoder or geocode_service
        self.manifests = manifests or manifest_service

    async def locate(self, lat: float, lng: float) -> Tuple[str, str]:
        """
        Reverse geocode a point.

        Returns:
            (region_key, "City, State")

        Raises:
            GeocodeError
        """
        place = await self.geocoder.reverse_geocode(lat, lng)
        city, state = place["city"], place["state"]
        return generate_region_key(city, state), format_location(city, state)

    async def _create(self, db: Session, region_key: str, location: str, lat: float, lng: float) -> Region:
        manifest, raw = await self.manifests.generate_manifest(db, location)
        return self.store.create_if_absent(db, region_key, location, lat, lng, manifest, raw)

    async def resolve(self, db: Session, lat: float, lng: float) -> Region:
        """Exact key, then proximity, then a fresh manifest"""
        region_key, location = await self.locate(lat, lng)
        return await self.resolve_located(db, lat, lng, region_key, location)

    async def resolve_located(
        self,
        db: Session,
        lat: float,
        lng: float,
        region_key: str,
        location: str
    ) -> Region:
        """``resolve`` for a point that has already been reverse geocoded"""
        logger.info(f"Resolving region {region_key} for ({lat}, {lng})")

        region = self.store.get_by_key(db, region_key)
        if region:
            return region

        region = self.store.find_nearby(db, lat, lng)
        if region:
            logger.info(f"Using nearby region {region.region_key} for requested {region_key}")
            return region

        logger.info(f"Creating new region with generated manifest: {region_key}")
        return await self._create(db, region_key, location, lat, lng)

    async def regenerate(self, db: Session, lat: float, lng: float) -> Region:
        """Drop the region stored under this point's key and build it again"""
        region_key, location = await self.locate(lat, lng)
        if self.store.delete_by_key(db, region_key):
            logger.info(f"Deleted region {region_key} for regeneration")
        return await self._create(db, region_key, location, lat, lng)


# Singleton instances
manifest_store = ManifestStore()
region_resolver = RegionResolver()
