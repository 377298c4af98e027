"""
SQLAlchemy ORM Models for the SpotItNow challenge service
"""
from sqlalchemy import (
    Column, Integer, String, Float, Boolean, DateTime,
    ForeignKey, JSON, UniqueConstraint, Index
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from spotitnow.db.database import Base


CHALLENGE_KINDS = ("daily", "weekly")


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(100), unique=True, nullable=False)
    latitude = Column(Float)
    longitude = Column(Float)
    experience_points = Column(Integer, default=0, nullable=False)
    challenges_completed = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, onupdate=func.now())

    # Relationships
    badges = relationship("UserBadge", back_populates="user")
    challenges = relationship("UserChallenge", back_populates="user")


class Animal(Base):
    """Canonical animal catalog; every manifest is validated against it"""
    __tablename__ = "animals"

    id = Column(Integer, primary_key=True, index=True)
    common_name = Column(String(150), unique=True, nullable=False)
    scientific_name = Column(String(200))
    category = Column(String(50))
    created_at = Column(DateTime, server_default=func.now())


class UserBadge(Base):
    __tablename__ = "user_badges"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    badge_name = Column(String(100), nullable=False)
    category = Column(String(50), default="challenges")
    earned_at = Column(DateTime, server_default=func.now())

    __table_args__ = (
        UniqueConstraint('user_id', 'badge_name', name='unique_user_badge'),
    )

    # Relationships
    user = relationship("User", back_populates="badges")


class Region(Base):
    """One cached animal-sighting probability manifest per locality"""
    __tablename__ = "regions"

    id = Column(Integer, primary_key=True, index=True)
    region_key = Column(String(200), unique=True, nullable=False, index=True)
    location = Column(String(255), nullable=False)
    center_latitude = Column(Float, nullable=False)
    center_longitude = Column(Float, nullable=False)
    manifest = Column(JSON, nullable=False)  # [{"name": str, "probability": int}, ...]
    raw_response = Column(JSON)
    created_at = Column(DateTime, server_default=func.now())

    __table_args__ = (
        Index('idx_region_center', 'center_latitude', 'center_longitude'),
    )

    # Relationships
    user_challenges = relationship("UserChallenge", back_populates="region")


class UserChallenge(Base):
    """Per-user, per-region challenge state"""
    __tablename__ = "user_challenges"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    region_id = Column(Integer, ForeignKey("regions.id", ondelete="SET NULL"))
    region_key = Column(String(200), nullable=False)
    location = Column(String(255), nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, onupdate=func.now())

    __table_args__ = (
        UniqueConstraint('user_id', 'region_key', name='unique_user_region_challenge'),
    )

    # Relationships
    user = relationship("User", back_populates="challenges")
    region = relationship("Region", back_populates="user_challenges")
    instances = relationship(
        "ChallengeInstance",
        back_populates="user_challenge",
        cascade="all, delete-orphan"
    )

    def get_instance(self, kind: str):
        for instance in self.instances:
            if instance.kind == kind:
                return instance
        return None

    @property
    def daily(self):
        return self.get_instance("daily")

    @property
    def weekly(self):
        return self.get_instance("weekly")


class ChallengeInstance(Base):
    """A daily or weekly set of animal tasks with expiration and completion state"""
    __tablename__ = "challenge_instances"

    id = Column(Integer, primary_key=True, index=True)
    user_challenge_id = Column(
        Integer, ForeignKey("user_challenges.id", ondelete="CASCADE"), nullable=False
    )
    kind = Column(String(10), nullable=False)  # daily, weekly
    # [{"name": str, "probability": int, "count": int, "progress": int}, ...]
    animals = Column(JSON, nullable=False, default=list)
    expires_at = Column(DateTime, nullable=False, index=True)
    completed = Column(Boolean, default=False, nullable=False)
    completed_at = Column(DateTime)
    xp_potential = Column(Integer, default=0, nullable=False)
    xp_awarded = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, onupdate=func.now())

    __table_args__ = (
        UniqueConstraint('user_challenge_id', 'kind', name='unique_challenge_instance_kind'),
    )

    # Relationships
    user_challenge = relationship("UserChallenge", back_populates="instances")
