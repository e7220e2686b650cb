# fastapi dependency injection
# provides get_current_user plus the store and rate limiter used by the reflection routes

import logging
from typing import Optional
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from journal_api.config import settings
from journal_api.errors import Unauthorized
from journal_api.services.auth_service import resolve_user
from journal_api.services.db import Database, get_db
from journal_api.services.journal_store import JournalStore
from journal_api.services.rate_limiter import MongoRateLimiter, memory_rate_limiter

logger = logging.getLogger(__name__)

# auto_error off so a missing header is a 401, not fastapi's default
security = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Database = Depends(get_db),
) -> dict:
    """extract and validate the current user from the jwt bearer token"""
    if credentials is None:
        raise _unauthorized("Unauthorized")

    try:
        return await resolve_user(db, credentials.credentials, "access")
    except Unauthorized as e:
        raise _unauthorized(str(e))


async def get_journal_store(db: Database = Depends(get_db)) -> JournalStore:
    return JournalStore(db)


async def get_rate_limiter(db: Database = Depends(get_db)):
    """memory limiter for one process, mongo limiter when several instances share traffic"""
    if settings.RATE_LIMIT_BACKEND == "mongo":
        return MongoRateLimiter(db)
    return memory_rate_limiter
