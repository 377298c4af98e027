"""
Progress Service - applies "animal spotted" events to active challenges

Progress is recorded under a row lock on the user's challenge instances so
rapid sighting events cannot overwrite each other. Once every task in an
instance is done it is marked completed and committed before any reward is
dispatched; XP and badge failures are logged and never undo completion.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional
from sqlalchemy.orm import Session

from spotitnow.db.models import ChallengeInstance
from spotitnow.services.badge_service import badge_service
from spotitnow.services.challenge_selector import calculate_xp_potential
from spotitnow.services.experience_service import experience_service
from spotitnow.services.user_challenge_service import (
    clone_tasks, find_active_user_challenge, is_expired, utcnow
)

logger = logging.getLogger(__name__)


def advance_instance(instance: ChallengeInstance, animal_name: str, now: datetime) -> bool:
    """
    Count one sighting of ``animal_name`` against an instance.

    Returns:
        True when a task advanced
    """
    if instance is None or instance.completed or is_expired(instance, now):
        return False

    tasks = clone_tasks(instance)
    wanted = animal_name.strip().lower()
    for task in tasks:
        if task["name"].lower() == wanted and task.get("progress", 0) < task["count"]:
            task["progress"] = task.get("progress", 0) + 1
            break
    else:
        return False

    instance.animals = tasks
    if all(task.get("progress", 0) >= task["count"] for task in tasks):
        instance.completed = True
        instance.completed_at = now
    return True


class ProgressTracker:
    """Consumes sighting events and dispatches completion rewards"""

    def __init__(self, experience=None, badges=None):
        self.experience = experience or experience_service
        self.badges = badges or badge_service

    def _award_completion(self, db: Session, user_id: int, instance: ChallengeInstance) -> None:
        """Best-effort XP and badge dispatch for a freshly completed instance"""
        kind = instance.kind
        xp_amount = instance.xp_potential or calculate_xp_potential(instance.animals or [])

        try:
            result = self.experience.award_xp(db, user_id, xp_amount, f"{kind.title()} Challenge Completed")
            if result.get("success"):
                instance.xp_awarded = xp_amount
                db.commit()
                logger.info(
                    f"{kind.title()} challenge XP awarded to user {user_id}: {xp_amount} "
                    f"(leveled_up={result.get('leveled_up')}, new_level={result.get('new_level')})"
                )
            else:
                logger.warning(
                    f"{kind.title()} challenge XP not awarded to user {user_id}: {result.get('message')}"
                )
        except Exception as e:
            db.rollback()
            logger.warning(f"Failed to award {kind} challenge XP to user {user_id}: {e}")

        try:
            self.badges.increment_challenges_completed(db, user_id)
            new_badges = self.badges.check_badges_after_challenge(db, user_id)
            if new_badges:
                logger.info(f"Badges awarded to user {user_id} for {kind} challenge: {new_badges}")
        except Exception as e:
            db.rollback()
            logger.warning(f"Failed to check badges for user {user_id}: {e}")

    def record_sighting(
        self,
        db: Session,
        user_id: int,
        animal_name: str,
        now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """
        Record that ``user_id`` spotted ``animal_name``.

        Returns:
            Dict with updated, daily_match, weekly_match, daily_complete
            and weekly_complete, or updated=False with a reason
        """
        now = now or utcnow()

        user_challenge = find_active_user_challenge(db, user_id, now)
        if user_challenge is None:
            logger.info(f"No active challenges for user {user_id} (spotted {animal_name})")
            return {"updated": False, "reason": "no_active_challenges"}

        instances: List[ChallengeInstance] = db.query(ChallengeInstance).filter(
            ChallengeInstance.user_challenge_id == user_challenge.id
        ).with_for_update().populate_existing().all()
        by_kind = {instance.kind: instance for instance in instances}

        matched = {}
        newly_completed = []
        for kind in ("daily", "weekly"):
            instance = by_kind.get(kind)
            was_completed = bool(instance and instance.completed)
            matched[kind] = advance_instance(instance, animal_name, now)
            if matched[kind]:
                task = next(t for t in instance.animals if t["name"].lower() == animal_name.strip().lower())
                logger.info(
                    f"{kind.title()} challenge progress for user {user_id}: {task['name']} "
                    f"{task['progress']}/{task['count']} complete={instance.completed}"
                )
                if instance.completed and not was_completed:
                    newly_completed.append(instance)

        if not any(matched.values()):
            db.rollback()
            return {"updated": False, "reason": "animal_not_in_challenge"}

        # Completion is durable before rewards are attempted
        db.commit()

        for instance in newly_completed:
            self._award_completion(db, user_id, instance)

        daily, weekly = by_kind.get("daily"), by_kind.get("weekly")
        return {
            "updated": True,
            "daily_match": matched["daily"],
            "weekly_match": matched["weekly"],
            "daily_complete": bool(daily and daily.completed),
            "weekly_complete": bool(weekly and weekly.completed),
        }


# Singleton instance
progress_tracker = ProgressTracker()
