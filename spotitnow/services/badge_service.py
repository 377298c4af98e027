"""
Badge Service - challenge completion counters and achievement badges

Challenge badges:
- Challenge Accepted: 1 completed challenge
- Challenge Seeker: 5 completed challenges
- Challenge Hunter: 15 completed challenges
- Challenge Champion: 50 completed challenges
- Challenge Legend: 100 completed challenges
"""
import logging
from typing import List
from sqlalchemy.orm import Session

from spotitnow.db.models import User, UserBadge
from spotitnow.exceptions import NotFoundError

logger = logging.getLogger(__name__)


# ============================================================
# CONFIGURATION
# ============================================================

CHALLENGE_BADGES = [
    {"name": "Challenge Accepted", "threshold": 1},
    {"name": "Challenge Seeker", "threshold": 5},
    {"name": "Challenge Hunter", "threshold": 15},
    {"name": "Challenge Champion", "threshold": 50},
    {"name": "Challenge Legend", "threshold": 100},
]


class BadgeService:
    """Service for re-evaluating achievement badges"""

    def _get_user(self, db: Session, user_id: int) -> User:
        user = db.query(User).filter(User.id == user_id).first()
        if not user:
            raise NotFoundError("User not found", {"user_id": user_id})
        return user

    def increment_challenges_completed(self, db: Session, user_id: int) -> int:
        """Bump the user's completed-challenge counter; returns the new total"""
        self._get_user(db, user_id)
        db.query(User).filter(User.id == user_id).update(
            {User.challenges_completed: User.challenges_completed + 1},
            synchronize_session=False
        )
        db.commit()
        total = db.query(User.challenges_completed).filter(User.id == user_id).scalar()
        logger.debug(f"User {user_id} has completed {total} challenges")
        return total

    def check_badges_after_challenge(self, db: Session, user_id: int) -> List[str]:
        """
        Award every challenge badge the user now qualifies for.

        Returns:
            Names of newly awarded badges
        """
        user = self._get_user(db, user_id)
        completed = user.challenges_completed or 0

        earned = {
            row.badge_name
            for row in db.query(UserBadge.badge_name).filter(UserBadge.user_id == user_id).all()
        }

        new_badges = []
        for badge in CHALLENGE_BADGES:
            if completed >= badge["threshold"] and badge["name"] not in earned:
                db.add(UserBadge(user_id=user_id, badge_name=badge["name"], category="challenges"))
                new_badges.append(badge["name"])

        if new_badges:
            db.commit()
            logger.info(f"Awarded badges to user {user_id}: {new_badges}")

        return new_badges


# Singleton instance
badge_service = BadgeService()
