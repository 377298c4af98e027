"""
Experience Service - XP ledger and level calculation
"""
import logging
from typing import Dict, Any
from sqlalchemy.orm import Session

from spotitnow.db.models import User
from spotitnow.exceptions import NotFoundError

logger = logging.getLogger(__name__)


# XP required to reach each level (index 0 = level 1)
LEVEL_THRESHOLDS = [
    0, 100, 250, 500, 850, 1300, 1850, 2500, 3300, 4200,
    5300, 6500, 7900, 9500, 11300, 13400, 15800, 18500, 21600, 25000,
    29000, 33500, 38500, 44000, 50000,
]

LEVEL_TITLES = {
    1: "Novice Spotter",
    2: "Curious Observer",
    3: "Nature Watcher",
    4: "Trail Walker",
    5: "Wildlife Scout",
    6: "Nature Explorer",
    7: "Animal Tracker",
    8: "Wildlife Enthusiast",
    9: "Nature Guide",
    10: "Seasoned Spotter",
    11: "Wildlife Expert",
    12: "Nature Specialist",
    13: "Master Tracker",
    14: "Wildlife Veteran",
    15: "Nature Master",
    16: "Elite Spotter",
    17: "Wildlife Sage",
    18: "Nature Legend",
    19: "Grand Naturalist",
    20: "Master Naturalist",
    21: "Wildlife Champion",
    22: "Nature Guardian",
    23: "Elite Naturalist",
    24: "Wildlife Luminary",
    25: "Master Spotter",
}


class ExperienceService:
    """Service for awarding experience points"""

    def calculate_level(self, xp: int) -> int:
        """Calculate the level (1-25) for a total XP amount"""
        for index in range(len(LEVEL_THRESHOLDS) - 1, -1, -1):
            if xp >= LEVEL_THRESHOLDS[index]:
                return index + 1
        return 1

    def award_xp(
        self,
        db: Session,
        user_id: int,
        amount: int,
        reason: str = "Sighting"
    ) -> Dict[str, Any]:
        """
        Add XP to a user's ledger.

        Returns:
            Dict with success flag and before/after XP and level

        Raises:
            NotFoundError: user does not exist
        """
        if not amount or amount <= 0:
            return {"success": False, "message": "Invalid XP amount"}

        user = db.query(User).filter(User.id == user_id).first()
        if not user:
            raise NotFoundError("User not found", {"user_id": user_id})

        previous_xp = user.experience_points or 0
        previous_level = self.calculate_level(previous_xp)

        new_xp = previous_xp + amount
        user.experience_points = new_xp
        db.commit()

        new_level = self.calculate_level(new_xp)
        leveled_up = new_level > previous_level

        logger.info(
            f"Awarded {amount} XP to user {user_id} ({reason}): "
            f"{previous_xp} -> {new_xp}, level {previous_level} -> {new_level}"
        )

        return {
            "success": True,
            "xp_awarded": amount,
            "previous_xp": previous_xp,
            "new_xp": new_xp,
            "previous_level": previous_level,
            "new_level": new_level,
            "level_title": LEVEL_TITLES.get(new_level),
            "leveled_up": leveled_up,
            "reason": reason
        }


# Singleton instance
experience_service = ExperienceService()
