"""
Test configuration and fixtures
"""
import os

# Must be set before spotitnow.config is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["API_KEY"] = "test-api-key"
os.environ["REDIS_URL"] = "redis://127.0.0.1:1/0"
os.environ["CHALLENGE_TIMEZONE"] = "UTC"

from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from spotitnow.db.database import Base
from spotitnow.db.models import Animal, Region, User
from spotitnow.exceptions import GeocodeError


CATALOG = [
    "Rock Pigeon",
    "American Robin",
    "Northern Cardinal",
    "Blue Jay",
    "Red-tailed Hawk",
    "Red Fox",
    "Black Bear",
    "Polar Bear",
]

MANIFEST = [
    {"name": "Rock Pigeon", "probability": 75},
    {"name": "American Robin", "probability": 55},
    {"name": "Northern Cardinal", "probability": 45},
    {"name": "Blue Jay", "probability": 30},
    {"name": "Red-tailed Hawk", "probability": 12},
    {"name": "Red Fox", "probability": 8},
    {"name": "Black Bear", "probability": 3},
    {"name": "Polar Bear", "probability": 0},
]

# latitude below 40.0 is Springfield, above is Shelbyville; 50.0+ has no address
PLACES = [
    (40.0, {"city": "Springfield", "state": "Illinois", "country": "United States"}),
    (50.0, {"city": "Shelbyville", "state": "Illinois", "country": "United States"}),
]


class ScriptedRandom:
    """Stand-in for random.Random that replays fixed values"""

    def __init__(self, values):
        self.values = list(values)

    def random(self):
        return self.values.pop(0)

    def choice(self, seq):
        return seq[0]

    def sample(self, seq, k):
        return list(seq[:k])


def fake_reverse_geocode(lat, lng):
    for limit, place in PLACES:
        if lat < limit:
            return dict(place)
    raise GeocodeError("No address found for coordinates", {"lat": lat, "lng": lng})


# ==================== DATABASE ====================

@pytest.fixture
def engine():
    """In-memory SQLite shared by every session in a test"""
    test_engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    Base.metadata.create_all(bind=test_engine)
    yield test_engine
    Base.metadata.drop_all(bind=test_engine)
    test_engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def catalog(db):
    """Seeded animal catalog; returns the names in catalog order"""
    for name in CATALOG:
        db.add(Animal(common_name=name, category="test"))
    db.commit()
    return list(CATALOG)


@pytest.fixture
def user(db):
    spotter = User(username="spotter", experience_points=0, challenges_completed=0)
    db.add(spotter)
    db.commit()
    db.refresh(spotter)
    return spotter


@pytest.fixture
def region(db):
    stored = Region(
        region_key="springfield_illinois",
        location="Springfield, Illinois",
        center_latitude=39.8,
        center_longitude=-89.6,
        manifest=[dict(entry) for entry in MANIFEST]
    )
    db.add(stored)
    db.commit()
    db.refresh(stored)
    return stored


# ==================== COLLABORATORS ====================

@pytest.fixture
def scripted_rng():
    return ScriptedRandom


@pytest.fixture
def geocoder():
    fake = MagicMock()
    fake.reverse_geocode = AsyncMock(side_effect=fake_reverse_geocode)
    return fake


@pytest.fixture
def manifests():
    """Manifest generator stub; every call returns a copy of MANIFEST"""
    fake = MagicMock()
    fake.generate_manifest = AsyncMock(
        side_effect=lambda db, location: ([dict(entry) for entry in MANIFEST], list(MANIFEST))
    )
    return fake
