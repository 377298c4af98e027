"""
Main FastAPI application for the SpotItNow challenge service
"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging

from spotitnow.config import settings
from spotitnow.api import regional_challenges, system

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.APP_DEBUG else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    logger.info(
        f"Starting SpotItNow challenge service (env={settings.APP_ENV}, "
        f"llm_provider={settings.LLM_PROVIDER}, timezone={settings.CHALLENGE_TIMEZONE})"
    )
    yield
    logger.info("Shutting down SpotItNow challenge service...")


app = FastAPI(
    title="SpotItNow Challenge Service",
    description="Regional wildlife challenges: manifests, daily/weekly selection and progress",
    version="1.0.0",
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(system.router, tags=["System"])
app.include_router(
    regional_challenges.router,
    prefix="/regional-challenges",
    tags=["Regional Challenges"]
)


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "service": "SpotItNow Challenges",
        "version": "1.0.0",
        "status": "running"
    }
