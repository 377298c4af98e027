"""
Regional Challenges Router - region manifests, user challenges and progress

Endpoints:
- GET    /regional-challenges                preview selection for a point
- GET    /regional-challenges/user           get or create the caller's challenges
- GET    /regional-challenges/user/active    caller's active challenges, read-only
- POST   /regional-challenges/progress       record a sighting (internal)
- GET    /regional-challenges/manifest       full manifest for a point (admin)
- GET    /regional-challenges/all            list cached regions (admin)
- POST   /regional-challenges/regenerate     rebuild a region's manifest (admin)
- DELETE /regional-challenges/clear-all      drop every cached region (admin)
- DELETE /regional-challenges/{region_id}    drop one cached region (admin)
"""
import logging
from typing import Any, Dict, List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from spotitnow.db.models import User
from spotitnow.dependencies import get_current_user_id, get_db, verify_api_key
from spotitnow.exceptions import (
    ChallengeEngineError, GeocodeError, ManifestGenerationError, ManifestParseError, NotFoundError
)
from spotitnow.services.challenge_selector import select_daily, select_weekly
from spotitnow.services.progress_service import progress_tracker
from spotitnow.services.region_service import manifest_store, region_resolver
from spotitnow.services.user_challenge_service import (
    active_view, user_challenge_service, utcnow
)

logger = logging.getLogger(__name__)
router = APIRouter()


# ============================================================
# REQUEST/RESPONSE MODELS
# ============================================================

class Coordinates(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class ProgressEvent(BaseModel):
    user_id: int
    animal_name: str = Field(..., min_length=1)


class SelectedAnimal(BaseModel):
    name: str
    probability: int
    count: int


class RegionalChallengeResponse(BaseModel):
    region_key: str
    location: str
    daily: List[SelectedAnimal]
    weekly: List[SelectedAnimal]
    manifest_size: int


class ProgressResponse(BaseModel):
    updated: bool
    reason: Optional[str] = None
    daily_match: bool = False
    weekly_match: bool = False
    daily_complete: bool = False
    weekly_complete: bool = False


# ============================================================
# HELPERS
# ============================================================

def _to_http(error: ChallengeEngineError) -> HTTPException:
    if isinstance(error, NotFoundError):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(error, (GeocodeError, ManifestGenerationError, ManifestParseError)):
        code = status.HTTP_502_BAD_GATEWAY
    else:
        code = status.HTTP_500_INTERNAL_SERVER_ERROR
    logger.warning(f"{type(error).__name__}: {error.message} {error.details}")
    return HTTPException(status_code=code, detail=error.message)


def _region_summary(region) -> Dict[str, Any]:
    return {
        "id": region.id,
        "region_key": region.region_key,
        "location": region.location,
        "center": {"latitude": region.center_latitude, "longitude": region.center_longitude},
        "manifest_size": len(region.manifest or []),
        "high_probability_count": sum(1 for a in region.manifest or [] if a["probability"] >= 15),
        "created_at": region.created_at.isoformat() if region.created_at else None,
    }


# ============================================================
# REGIONS
# ============================================================

@router.get("", response_model=RegionalChallengeResponse)
async def get_regional_challenges(
    lat: float = Query(..., ge=-90, le=90, description="Latitude"),
    lng: float = Query(..., ge=-180, le=180, description="Longitude"),
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """
    Draw a daily and weekly selection for a point without saving it.

    Uses the cached regional manifest, generating one on first request.
    Use /user for persisted challenges.
    """
    try:
        result = await user_challenge_service.preview(db, lat, lng)
    except ChallengeEngineError as e:
        raise _to_http(e)

    region = result["region"]
    return RegionalChallengeResponse(
        region_key=region.region_key,
        location=region.location,
        daily=result["daily"],
        weekly=result["weekly"],
        manifest_size=len(region.manifest)
    )


@router.get("/manifest")
async def get_region_manifest(
    lat: float = Query(..., ge=-90, le=90),
    lng: float = Query(..., ge=-180, le=180),
    api_key: str = Depends(verify_api_key),
    db: Session = Depends(get_db)
):
    """Full probability manifest for the region covering a point"""
    try:
        region = await region_resolver.resolve(db, lat, lng)
    except ChallengeEngineError as e:
        raise _to_http(e)

    summary = _region_summary(region)
    summary["manifest"] = region.manifest
    return summary


@router.get("/all")
async def list_regional_manifests(
    limit: int = Query(100, ge=1, le=500),
    api_key: str = Depends(verify_api_key),
    db: Session = Depends(get_db)
):
    """Cached regions, newest first"""
    regions = manifest_store.list_regions(db, limit=limit)
    return {
        "count": len(regions),
        "regions": [_region_summary(region) for region in regions]
    }


@router.post("/regenerate", status_code=status.HTTP_201_CREATED, response_model=RegionalChallengeResponse)
async def regenerate_regional_manifest(
    request: Coordinates,
    api_key: str = Depends(verify_api_key),
    db: Session = Depends(get_db)
):
    """Delete the region stored for a point and rebuild its manifest"""
    try:
        region = await region_resolver.regenerate(db, request.lat, request.lng)
    except ChallengeEngineError as e:
        raise _to_http(e)

    return RegionalChallengeResponse(
        region_key=region.region_key,
        location=region.location,
        daily=select_daily(region.manifest),
        weekly=select_weekly(region.manifest),
        manifest_size=len(region.manifest)
    )


@router.delete("/clear-all")
async def clear_all_regional_manifests(
    api_key: str = Depends(verify_api_key),
    db: Session = Depends(get_db)
):
    """Delete every cached region"""
    deleted = manifest_store.clear_all(db)
    return {"deleted": deleted, "message": f"Cleared {deleted} regional manifests"}


# ============================================================
# USER CHALLENGES
# ============================================================

@router.get("/user")
async def get_user_challenges(
    lat: Optional[float] = Query(None, ge=-90, le=90),
    lng: Optional[float] = Query(None, ge=-180, le=180),
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """
    Get or create the caller's challenges for a point.

    Falls back to the location saved on the user's profile when lat/lng
    are not given. Challenges persist until they expire.
    """
    if lat is None or lng is None:
        user = db.query(User).filter(User.id == user_id).first()
        if user and user.latitude is not None and user.longitude is not None:
            lat, lng = user.latitude, user.longitude
        else:
            raise HTTPException(
                status_code=400,
                detail="Missing lat/lng coordinates. Please provide location or update your profile."
            )

    try:
        result = await user_challenge_service.get_or_create(db, user_id, lat, lng)
    except ChallengeEngineError as e:
        raise _to_http(e)

    user_challenge = result["user_challenge"]
    now = utcnow()
    response = {
        "region_key": user_challenge.region_key,
        "location": result["location"],
        "cached": result["cached"],
    }
    for kind in ("daily", "weekly"):
        view = active_view(user_challenge.get_instance(kind), now)
        if view is not None:
            response[kind] = view
    return response


@router.get("/user/active")
async def get_active_user_challenges(
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Caller's current challenges; never creates new ones"""
    challenges = user_challenge_service.get_active(db, user_id)
    if challenges is None:
        return {"active": False}
    return {"active": True, **challenges}


@router.post("/progress", response_model=ProgressResponse)
async def record_challenge_progress(
    event: ProgressEvent,
    api_key: str = Depends(verify_api_key),
    db: Session = Depends(get_db)
):
    """Apply a verified sighting to the user's active challenges"""
    return progress_tracker.record_sighting(db, event.user_id, event.animal_name)


@router.delete("/{region_id}")
async def delete_regional_manifest(
    region_id: int,
    api_key: str = Depends(verify_api_key),
    db: Session = Depends(get_db)
):
    """Delete one cached region"""
    try:
        deleted = manifest_store.delete_region(db, region_id)
    except NotFoundError as e:
        raise _to_http(e)
    return {"deleted": deleted["id"], "location": deleted["location"]}
