#!/usr/bin/env python3
"""
Create the challenge service tables

Creates (if missing):
- users, user_badges
- animals (canonical catalog)
- regions (cached regional manifests)
- user_challenges, challenge_instances

Usage:
    python scripts/create_tables.py
    python scripts/create_tables.py --drop   # drop and recreate everything
"""
import argparse
import os
import sys

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import inspect

from spotitnow.db.database import Base, engine
from spotitnow.db import models  # noqa: F401  registers the tables on Base


def main():
    parser = argparse.ArgumentParser(description="Create challenge service tables")
    parser.add_argument("--drop", action="store_true", help="Drop existing tables first")
    args = parser.parse_args()

    if args.drop:
        print("Dropping existing tables...")
        Base.metadata.drop_all(bind=engine)

    print("Creating tables...")
    Base.metadata.create_all(bind=engine)

    existing = inspect(engine).get_table_names()
    for table in Base.metadata.sorted_tables:
        marker = "✓" if table.name in existing else "✗"
        print(f"  {marker} {table.name}")
    print("Done.")


if __name__ == "__main__":
    main()
