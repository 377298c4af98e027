"""
Progress tracking - sightings advance tasks, completion is durable, rewards are best-effort
"""
from datetime import datetime
from unittest.mock import MagicMock

import pytest

from spotitnow.db.models import ChallengeInstance, User, UserBadge, UserChallenge
from spotitnow.services.progress_service import ProgressTracker, advance_instance

NOW = datetime(2024, 6, 5, 12, 0)
END_OF_DAY = datetime(2024, 6, 5, 23, 59, 59, 999000)
END_OF_WEEK = datetime(2024, 6, 9, 23, 59, 59, 999000)


def task(name, probability, count=1, progress=0):
    return {"name": name, "probability": probability, "count": count, "progress": progress}


@pytest.fixture
def make_challenge(db, user):
    """Persist a user challenge with the given daily/weekly tasks"""
    def _make(daily=None, weekly=None, daily_expires=END_OF_DAY, weekly_expires=END_OF_WEEK,
              region_key="springfield_illinois"):
        user_challenge = UserChallenge(user_id=user.id, region_key=region_key, location="Springfield, Illinois")
        for kind, tasks, expires_at in (("daily", daily, daily_expires), ("weekly", weekly, weekly_expires)):
            if tasks is None:
                continue
            user_challenge.instances.append(ChallengeInstance(
                kind=kind,
                animals=tasks,
                expires_at=expires_at,
                completed=False,
                xp_potential=sum(abs(t["probability"] - 100) * 2 for t in tasks),
                xp_awarded=0
            ))
        db.add(user_challenge)
        db.commit()
        db.refresh(user_challenge)
        return user_challenge
    return _make


@pytest.fixture
def tracker():
    return ProgressTracker()


# ==================== INSTANCE UPDATES ====================

class TestAdvanceInstance:

    def make(self, tasks, completed=False, expires_at=END_OF_DAY):
        return ChallengeInstance(kind="daily", animals=tasks, expires_at=expires_at, completed=completed)

    def test_increments_first_unfinished_match_case_insensitively(self):
        instance = self.make([task("Blue Jay", 30, count=2), task("Rock Pigeon", 75)])

        assert advance_instance(instance, "  blue JAY ", NOW) is True
        assert instance.animals[0]["progress"] == 1
        assert instance.completed is False

    def test_final_task_completes_instance(self):
        instance = self.make([task("Blue Jay", 30, count=2, progress=1)])

        assert advance_instance(instance, "Blue Jay", NOW) is True
        assert instance.animals[0]["progress"] == 2
        assert instance.completed is True
        assert instance.completed_at == NOW

    def test_progress_is_capped_at_count(self):
        instance = self.make([task("Blue Jay", 30, count=1, progress=1), task("Rock Pigeon", 75)])

        assert advance_instance(instance, "Blue Jay", NOW) is False
        assert instance.animals[0]["progress"] == 1

    def test_completed_instance_is_left_alone(self):
        instance = self.make([task("Blue Jay", 30, progress=1)], completed=True)
        assert advance_instance(instance, "Blue Jay", NOW) is False

    def test_expired_instance_is_left_alone(self):
        instance = self.make([task("Blue Jay", 30)], expires_at=datetime(2024, 6, 4, 23, 59, 59))
        assert advance_instance(instance, "Blue Jay", NOW) is False
        assert instance.animals[0]["progress"] == 0

    def test_missing_instance(self):
        assert advance_instance(None, "Blue Jay", NOW) is False


# ==================== SIGHTINGS ====================

class TestRecordSighting:

    def test_no_active_challenges(self, db, user, tracker):
        result = tracker.record_sighting(db, user.id, "Blue Jay", now=NOW)
        assert result == {"updated": False, "reason": "no_active_challenges"}

    def test_animal_not_in_challenge(self, db, user, tracker, make_challenge):
        make_challenge(daily=[task("Rock Pigeon", 75)])

        result = tracker.record_sighting(db, user.id, "Polar Bear", now=NOW)
        assert result == {"updated": False, "reason": "animal_not_in_challenge"}

    def test_completion_trigger_awards_xp_and_badge(self, db, user, tracker, make_challenge):
        user_challenge = make_challenge(daily=[task("Blue Jay", 30, count=2, progress=1)])

        result = tracker.record_sighting(db, user.id, "blue jay", now=NOW)

        assert result == {
            "updated": True,
            "daily_match": True,
            "weekly_match": False,
            "daily_complete": True,
            "weekly_complete": False,
        }
        daily = db.query(ChallengeInstance).filter(ChallengeInstance.user_challenge_id == user_challenge.id).one()
        assert daily.animals[0]["progress"] == 2
        assert daily.completed is True
        assert daily.completed_at == NOW
        assert daily.xp_awarded == 140

        spotter = db.query(User).filter(User.id == user.id).one()
        assert spotter.experience_points == 140
        assert spotter.challenges_completed == 1
        assert [b.badge_name for b in db.query(UserBadge).all()] == ["Challenge Accepted"]

    def test_partial_progress_does_not_complete(self, db, user, tracker, make_challenge):
        make_challenge(daily=[task("Blue Jay", 30, count=2), task("Rock Pigeon", 75)])

        result = tracker.record_sighting(db, user.id, "Blue Jay", now=NOW)

        assert result["updated"] is True
        assert result["daily_complete"] is False
        assert db.query(User).filter(User.id == user.id).one().experience_points == 0

    def test_sighting_counts_toward_daily_and_weekly(self, db, user, tracker, make_challenge):
        make_challenge(
            daily=[task("Rock Pigeon", 75)],
            weekly=[task("Rock Pigeon", 75, count=3), task("Red Fox", 8)]
        )

        result = tracker.record_sighting(db, user.id, "Rock Pigeon", now=NOW)

        assert result["daily_match"] is True
        assert result["weekly_match"] is True
        assert result["daily_complete"] is True
        assert result["weekly_complete"] is False
        weekly = db.query(ChallengeInstance).filter(ChallengeInstance.kind == "weekly").one()
        assert weekly.animals[0]["progress"] == 1

    def test_expired_daily_only_weekly_advances(self, db, user, tracker, make_challenge):
        make_challenge(
            daily=[task("Rock Pigeon", 75)],
            weekly=[task("Rock Pigeon", 75, count=2)],
            daily_expires=datetime(2024, 6, 4, 23, 59, 59, 999000)
        )

        result = tracker.record_sighting(db, user.id, "Rock Pigeon", now=NOW)

        assert result["daily_match"] is False
        assert result["weekly_match"] is True
        daily = db.query(ChallengeInstance).filter(ChallengeInstance.kind == "daily").one()
        assert daily.animals[0]["progress"] == 0

    def test_progress_is_monotonic_and_completion_sticks(self, db, user, tracker, make_challenge):
        make_challenge(daily=[task("Blue Jay", 30)])

        tracker.record_sighting(db, user.id, "Blue Jay", now=NOW)
        second = tracker.record_sighting(db, user.id, "Blue Jay", now=NOW)

        assert second == {"updated": False, "reason": "animal_not_in_challenge"}
        daily = db.query(ChallengeInstance).one()
        assert daily.completed is True
        assert daily.animals[0]["progress"] == 1
        assert db.query(User).filter(User.id == user.id).one().challenges_completed == 1

    def test_reward_failures_never_undo_completion(self, db, user, make_challenge):
        experience = MagicMock()
        experience.award_xp.side_effect = RuntimeError("ledger unavailable")
        badges = MagicMock()
        badges.increment_challenges_completed.side_effect = RuntimeError("badges unavailable")
        tracker = ProgressTracker(experience=experience, badges=badges)
        make_challenge(daily=[task("Blue Jay", 30)])

        result = tracker.record_sighting(db, user.id, "Blue Jay", now=NOW)

        assert result["daily_complete"] is True
        daily = db.query(ChallengeInstance).one()
        assert daily.completed is True
        assert daily.xp_awarded == 0
        experience.award_xp.assert_called_once_with(db, user.id, 140, "Daily Challenge Completed")
        badges.check_badges_after_challenge.assert_not_called()

    def test_rejected_award_leaves_xp_unawarded(self, db, user, make_challenge):
        experience = MagicMock()
        experience.award_xp.return_value = {"success": False, "message": "Invalid XP amount"}
        tracker = ProgressTracker(experience=experience, badges=MagicMock())
        make_challenge(daily=[task("Blue Jay", 30)])

        tracker.record_sighting(db, user.id, "Blue Jay", now=NOW)

        assert db.query(ChallengeInstance).one().xp_awarded == 0

    def test_uses_most_recent_active_challenge(self, db, user, tracker, make_challenge):
        make_challenge(daily=[task("Blue Jay", 30)], region_key="springfield_illinois")
        latest = make_challenge(daily=[task("Blue Jay", 30)], region_key="shelbyville_illinois")

        tracker.record_sighting(db, user.id, "Blue Jay", now=NOW)

        completed = db.query(ChallengeInstance).filter(ChallengeInstance.completed.is_(True)).one()
        assert completed.user_challenge_id == latest.id
