#!/usr/bin/env python3
"""
Seed the canonical animal catalog

Every regional manifest is validated against this table, so it must be
populated before the first region is generated.

Usage:
    python scripts/seed_catalog.py
    python scripts/seed_catalog.py --file animals.json   # [{"common_name": ..., ...}]
    python scripts/seed_catalog.py --regenerate-at 37.77,-122.42
"""
import argparse
import json
import os
import sys

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from spotitnow.db.database import SessionLocal
from spotitnow.db.models import Animal

DEFAULT_ANIMALS = [
    ("American Robin", "Turdus migratorius", "bird"),
    ("Blue Jay", "Cyanocitta cristata", "bird"),
    ("Northern Cardinal", "Cardinalis cardinalis", "bird"),
    ("American Crow", "Corvus brachyrhynchos", "bird"),
    ("Mourning Dove", "Zenaida macroura", "bird"),
    ("House Sparrow", "Passer domesticus", "bird"),
    ("European Starling", "Sturnus vulgaris", "bird"),
    ("Rock Pigeon", "Columba livia", "bird"),
    ("Canada Goose", "Branta canadensis", "bird"),
    ("Mallard", "Anas platyrhynchos", "bird"),
    ("Red-tailed Hawk", "Buteo jamaicensis", "bird"),
    ("Great Blue Heron", "Ardea herodias", "bird"),
    ("Bald Eagle", "Haliaeetus leucocephalus", "bird"),
    ("Great Horned Owl", "Bubo virginianus", "bird"),
    ("Ruby-throated Hummingbird", "Archilochus colubris", "bird"),
    ("Downy Woodpecker", "Dryobates pubescens", "bird"),
    ("Eastern Gray Squirrel", "Sciurus carolinensis", "mammal"),
    ("Eastern Chipmunk", "Tamias striatus", "mammal"),
    ("Eastern Cottontail", "Sylvilagus floridanus", "mammal"),
    ("White-tailed Deer", "Odocoileus virginianus", "mammal"),
    ("Raccoon", "Procyon lotor", "mammal"),
    ("Virginia Opossum", "Didelphis virginiana", "mammal"),
    ("Striped Skunk", "Mephitis mephitis", "mammal"),
    ("Red Fox", "Vulpes vulpes", "mammal"),
    ("Coyote", "Canis latrans", "mammal"),
    ("Groundhog", "Marmota monax", "mammal"),
    ("Black Bear", "Ursus americanus", "mammal"),
    ("Bobcat", "Lynx rufus", "mammal"),
    ("Big Brown Bat", "Eptesicus fuscus", "mammal"),
    ("Monarch Butterfly", "Danaus plexippus", "insect"),
    ("Honey Bee", "Apis mellifera", "insect"),
    ("Eastern Tiger Swallowtail", "Papilio glaucus", "insect"),
    ("Common Eastern Firefly", "Photinus pyralis", "insect"),
    ("Green Darner", "Anax junius", "insect"),
    ("American Bullfrog", "Lithobates catesbeianus", "amphibian"),
    ("Eastern Garter Snake", "Thamnophis sirtalis", "reptile"),
    ("Painted Turtle", "Chrysemys picta", "reptile"),
    ("Snapping Turtle", "Chelydra serpentina", "reptile"),
]


def load_animals(path=None):
    if not path:
        return [
            {"common_name": name, "scientific_name": scientific, "category": category}
            for name, scientific, category in DEFAULT_ANIMALS
        ]
    with open(path) as f:
        return json.load(f)


def seed_catalog(db, animals):
    """Insert catalog animals that are not there yet; returns the number added"""
    existing = {name.lower() for (name,) in db.query(Animal.common_name).all()}
    added = 0
    for animal in animals:
        if animal["common_name"].lower() in existing:
            continue
        db.add(Animal(
            common_name=animal["common_name"],
            scientific_name=animal.get("scientific_name"),
            category=animal.get("category")
        ))
        existing.add(animal["common_name"].lower())
        added += 1
    db.commit()
    return added


def main():
    parser = argparse.ArgumentParser(description="Seed the animal catalog")
    parser.add_argument("--file", help="JSON file with catalog animals")
    parser.add_argument(
        "--regenerate-at",
        metavar="LAT,LNG",
        help="Queue a manifest regeneration for this point after seeding"
    )
    args = parser.parse_args()

    db = SessionLocal()
    try:
        added = seed_catalog(db, load_animals(args.file))
        print(f"Added {added} animals to the catalog")
    finally:
        db.close()

    if args.regenerate_at:
        from spotitnow.worker.celery_app import celery_app  # noqa: F401  binds shared tasks to the broker
        from spotitnow.worker.tasks import regenerate_region_manifest

        lat, lng = (float(part) for part in args.regenerate_at.split(","))
        task = regenerate_region_manifest.delay(lat, lng)
        print(f"Queued manifest regeneration for ({lat}, {lng}): task {task.id}")


if __name__ == "__main__":
    main()
