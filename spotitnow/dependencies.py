"""
FastAPI dependencies for the SpotItNow challenge service
"""
from typing import Generator, Optional
from fastapi import Header, HTTPException, status
from sqlalchemy.orm import Session
from spotitnow.db.database import SessionLocal
from spotitnow.config import settings


def get_db() -> Generator[Session, None, None]:
    """Get database session"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


async def verify_api_key(x_api_key: Optional[str] = Header(None)) -> str:
    """Verify API key for internal and admin endpoints"""
    if not x_api_key or x_api_key != settings.API_KEY:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API key"
        )
    return x_api_key


async def get_current_user_id(x_user_id: Optional[int] = Header(None)) -> int:
    """User identity forwarded by the authenticating gateway"""
    if x_user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required"
        )
    return x_user_id
