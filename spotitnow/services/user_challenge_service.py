"""
User Challenge Service - per-user, per-region daily and weekly challenges

Challenges are generated from the region's cached manifest and persisted
until they expire. Expiration is evaluated lazily on every read; nothing
sweeps expired rows in the background.

- Daily challenges expire at 23:59:59.999 local time on the day they were created
- Weekly challenges expire at 23:59:59.999 local time on the upcoming Sunday
  (a weekly created on a Sunday runs until the following Sunday)
"""
import copy
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple
from zoneinfo import ZoneInfo
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from spotitnow.config import settings
from spotitnow.db.models import ChallengeInstance, UserChallenge
from spotitnow.services.challenge_selector import (
    calculate_xp_potential, select_daily, select_weekly
)
from spotitnow.services.region_service import region_resolver

logger = logging.getLogger(__name__)


SELECTORS = {
    "daily": select_daily,
    "weekly": select_weekly,
}


def utcnow() -> datetime:
    """Current time as a naive UTC datetime, the storage convention"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _to_local(now: datetime, tz_name: Optional[str]) -> datetime:
    zone = ZoneInfo(tz_name or settings.CHALLENGE_TIMEZONE)
    return now.replace(tzinfo=timezone.utc).astimezone(zone)


def _end_of_day_utc(local: datetime) -> datetime:
    end = local.replace(hour=23, minute=59, second=59, microsecond=999000)
    return end.astimezone(timezone.utc).replace(tzinfo=None)


def daily_expiry(now: datetime, tz_name: Optional[str] = None) -> datetime:
    """End of the local calendar day containing ``now`` (naive UTC in and out)"""
    return _end_of_day_utc(_to_local(now, tz_name))


def weekly_expiry(now: datetime, tz_name: Optional[str] = None) -> datetime:
    """End of the upcoming local Sunday (naive UTC in and out)"""
    local = _to_local(now, tz_name)
    days_since_sunday = (local.weekday() + 1) % 7
    return _end_of_day_utc(local + timedelta(days=7 - days_since_sunday))


EXPIRY_RULES = {
    "daily": daily_expiry,
    "weekly": weekly_expiry,
}


def is_expired(instance: Optional[ChallengeInstance], now: datetime) -> bool:
    """Absent instances count as expired"""
    return instance is None or instance.expires_at is None or instance.expires_at < now


def serialize_instance(instance: Optional[ChallengeInstance]) -> Optional[Dict[str, Any]]:
    if instance is None:
        return None
    return {
        "animals": [dict(task) for task in instance.animals or []],
        "expires_at": instance.expires_at.isoformat() if instance.expires_at else None,
        "completed": bool(instance.completed),
        "completed_at": instance.completed_at.isoformat() if instance.completed_at else None,
        "xp_potential": instance.xp_potential or 0,
        "xp_awarded": instance.xp_awarded or 0,
    }


def build_tasks(selection: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [
        {
            "name": entry["name"],
            "probability": entry["probability"],
            "count": entry["count"],
            "progress": 0,
        }
        for entry in selection
    ]


class UserChallengeService:
    """Creates, refreshes and reads persisted user challenges"""

    def __init__(self, resolver=None, rng=None):
        self.resolver = resolver or region_resolver
        self.rng = rng

    def get_user_challenge(self, db: Session, user_id: int, region_key: str) -> Optional[UserChallenge]:
        return db.query(UserChallenge).filter(
            UserChallenge.user_id == user_id,
            UserChallenge.region_key == region_key
        ).first()

    def _upsert_user_challenge(
        self,
        db: Session,
        user_id: int,
        region_key: str,
        region_id: int,
        location: str
    ) -> Tuple[UserChallenge, bool]:
        """Returns the row and whether it was re-fetched after losing an insert race"""
        refetched = False
        user_challenge = self.get_user_challenge(db, user_id, region_key)
        if user_challenge is None:
            user_challenge = UserChallenge(
                user_id=user_id,
                region_key=region_key,
                region_id=region_id,
                location=location
            )
            db.add(user_challenge)
            try:
                db.flush()
            except IntegrityError:
                # Concurrent request created the row first
                db.rollback()
                user_challenge = self.get_user_challenge(db, user_id, region_key)
                if user_challenge is None:
                    raise
                refetched = True
        user_challenge.region_id = region_id
        user_challenge.location = location
        return user_challenge, refetched

    def _regenerate(
        self,
        db: Session,
        user_challenge: UserChallenge,
        kind: str,
        manifest: List[Dict[str, Any]],
        now: datetime
    ) -> ChallengeInstance:
        selection = SELECTORS[kind](manifest, self.rng)
        fields = {
            "animals": build_tasks(selection),
            "expires_at": EXPIRY_RULES[kind](now),
            "completed": False,
            "completed_at": None,
            "xp_potential": calculate_xp_potential(selection),
            "xp_awarded": 0,
        }

        instance = user_challenge.get_instance(kind)
        if instance is None:
            instance = ChallengeInstance(kind=kind, **fields)
            user_challenge.instances.append(instance)
        else:
            for name, value in fields.items():
                setattr(instance, name, value)

        logger.info(
            f"Generated new {kind} challenge for user {user_challenge.user_id}: "
            f"{[a['name'] for a in selection]} expires={fields['expires_at'].isoformat()} "
            f"xp_potential={fields['xp_potential']}"
        )
        return instance

    async def get_or_create(
        self,
        db: Session,
        user_id: int,
        lat: float,
        lng: float,
        now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """
        Return the user's challenges for the region at (lat, lng).

        Daily and weekly are regenerated independently, and only when
        absent or expired. When neither needs regenerating this is a pure
        read: no region resolution, no writes.

        Returns:
            Dict with user_challenge, location and cached flag
        """
        now = now or utcnow()
        region_key, location = await self.resolver.locate(lat, lng)

        user_challenge = self.get_user_challenge(db, user_id, region_key)
        stale = [
            kind for kind in ("daily", "weekly")
            if user_challenge is None or is_expired(user_challenge.get_instance(kind), now)
        ]

        if not stale:
            logger.info(f"Returning existing challenges for user {user_id} in {region_key}")
            return {"user_challenge": user_challenge, "location": location, "cached": True}

        region = await self.resolver.resolve_located(db, lat, lng, region_key, location)

        user_challenge, refetched = self._upsert_user_challenge(
            db, user_id, region_key, region.id, location
        )
        if refetched:
            # The winning request may already have generated fresh challenges
            stale = [
                kind for kind in stale
                if is_expired(user_challenge.get_instance(kind), now)
            ]
        for kind in stale:
            self._regenerate(db, user_challenge, kind, region.manifest, now)

        db.commit()
        db.refresh(user_challenge)

        return {"user_challenge": user_challenge, "location": location, "cached": not stale}

    def get_active(
        self,
        db: Session,
        user_id: int,
        now: Optional[datetime] = None
    ) -> Optional[Dict[str, Any]]:
        """
        The user's current challenges without creating anything.

        Expired daily/weekly parts come back as None; None overall when
        nothing is active.
        """
        now = now or utcnow()
        user_challenge = find_active_user_challenge(db, user_id, now)
        if user_challenge is None:
            return None

        return {
            "region_key": user_challenge.region_key,
            "location": user_challenge.location,
            "daily": active_view(user_challenge.daily, now),
            "weekly": active_view(user_challenge.weekly, now),
        }

    async def preview(self, db: Session, lat: float, lng: float) -> Dict[str, Any]:
        """Resolve the region and draw a selection without persisting it"""
        region = await self.resolver.resolve(db, lat, lng)
        daily = select_daily(region.manifest, self.rng)
        weekly = select_weekly(region.manifest, self.rng)
        return {"region": region, "daily": daily, "weekly": weekly}

    def recalculate_xp_potential(self, db: Session) -> int:
        """Backfill xp_potential on challenges stored without one"""
        instances = db.query(ChallengeInstance).filter(ChallengeInstance.xp_potential == 0).all()
        updated = 0
        for instance in instances:
            if not instance.animals:
                continue
            instance.xp_potential = calculate_xp_potential(instance.animals)
            updated += 1
        db.commit()
        logger.info(f"Recalculated xp_potential for {updated} challenges")
        return updated


def active_view(instance: Optional[ChallengeInstance], now: datetime) -> Optional[Dict[str, Any]]:
    if is_expired(instance, now):
        return None
    return serialize_instance(instance)


def find_active_user_challenge(db: Session, user_id: int, now: datetime) -> Optional[UserChallenge]:
    """Most recently refreshed user challenge with a non-expired daily or weekly"""
    return db.query(UserChallenge).join(ChallengeInstance).filter(
        UserChallenge.user_id == user_id,
        ChallengeInstance.expires_at >= now
    ).order_by(
        func.coalesce(ChallengeInstance.updated_at, ChallengeInstance.created_at).desc(),
        ChallengeInstance.id.desc()
    ).first()


def clone_tasks(instance: ChallengeInstance) -> List[Dict[str, Any]]:
    """Deep copy of the task list; JSON columns only persist on reassignment"""
    return copy.deepcopy(instance.animals or [])


# Singleton instance
user_challenge_service = UserChallengeService()
