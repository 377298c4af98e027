"""
Services package - Business logic layer
"""
from spotitnow.services.llm_service import llm_service
from spotitnow.services.geocode_service import geocode_service
from spotitnow.services.catalog_service import catalog_service
from spotitnow.services.experience_service import experience_service
from spotitnow.services.badge_service import badge_service
from spotitnow.services.manifest_service import manifest_service
from spotitnow.services.region_service import manifest_store, region_resolver
from spotitnow.services.user_challenge_service import user_challenge_service
from spotitnow.services.progress_service import progress_tracker

__all__ = [
    "llm_service",
    "geocode_service",
    "catalog_service",
    "experience_service",
    "badge_service",
    "manifest_service",
    "manifest_store",
    "region_resolver",
    "user_challenge_service",
    "progress_tracker",
]
