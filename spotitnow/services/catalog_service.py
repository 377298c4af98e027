"""
Catalog Service - read-only access to the canonical animal catalog
"""
import logging
from typing import List
from sqlalchemy.orm import Session

from spotitnow.db.models import Animal

logger = logging.getLogger(__name__)


class CatalogService:
    """Lists the animal names every regional manifest must cover"""

    def list_catalog_names(self, db: Session) -> List[str]:
        names = [
            row.common_name
            for row in db.query(Animal.common_name).order_by(Animal.id).all()
        ]
        logger.debug(f"Loaded {len(names)} catalog animals")
        return names


# Singleton instance
catalog_service = CatalogService()
