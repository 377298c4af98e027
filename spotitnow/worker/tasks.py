"""
Celery tasks for work kept off the request path
"""
import asyncio
import logging
from celery import shared_task

from spotitnow.db.database import SessionLocal
from spotitnow.exceptions import GeocodeError, ManifestGenerationError, ManifestParseError

logger = logging.getLogger(__name__)


def get_db_session():
    """Get database session for tasks"""
    return SessionLocal()


@shared_task(bind=True, max_retries=3, default_retry_delay=60)
def regenerate_region_manifest(self, lat: float, lng: float):
    """
    Delete the region stored for a point and generate its manifest again.

    LLM failures are retried. Geocode failures and anything else fail the task.
    """
    from spotitnow.services.region_service import region_resolver

    db = get_db_session()
    loop = asyncio.new_event_loop()
    try:
        region = loop.run_until_complete(region_resolver.regenerate(db, lat, lng))
        result = {
            "region_id": region.id,
            "region_key": region.region_key,
            "location": region.location,
            "manifest_size": len(region.manifest or []),
        }
        logger.info(f"Region manifest regenerated: {result}")
        return result
    except GeocodeError as e:
        logger.error(f"Region manifest regeneration failed for ({lat}, {lng}): {e.message}")
        raise
    except (ManifestGenerationError, ManifestParseError) as e:
        logger.error(f"Region manifest regeneration failed for ({lat}, {lng}): {e.message}")
        raise self.retry(exc=e)
    finally:
        loop.close()
        db.close()


@shared_task
def recalculate_challenge_xp():
    """Backfill xp_potential on stored challenges that were saved without one"""
    from spotitnow.services.user_challenge_service import user_challenge_service

    db = get_db_session()
    try:
        updated = user_challenge_service.recalculate_xp_potential(db)
        return {"updated": updated}
    finally:
        db.close()
