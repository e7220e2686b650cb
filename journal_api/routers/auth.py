# auth router - signup, login, refresh, me
# email/password accounts, jwt access + refresh tokens

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, status

from journal_api.dependencies import get_current_user
from journal_api.errors import Unauthorized
from journal_api.models.user import RefreshRequest, TokenResponse, UserCreate, UserLogin, UserResponse
from journal_api.services.auth_service import hash_password, issue_tokens, resolve_user, verify_password
from journal_api.services.db import Database, get_db

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/signup", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
async def signup(body: UserCreate, db: Database = Depends(get_db)):
    """register a new account and sign it in"""
    email = body.email.strip().lower()

    if await db.users.find_one({"email": email}):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Email already registered",
        )

    doc = {
        "email": email,
        "hashed_password": hash_password(body.password),
        "name": body.name,
        "created_at": datetime.now(timezone.utc).isoformat(),
    }
    result = await db.users.insert_one(doc)
    user_id = str(result.inserted_id)

    logger.info(f"User signed up: {user_id}")
    return TokenResponse(**issue_tokens(user_id))


@router.post("/login", response_model=TokenResponse)
async def login(body: UserLogin, db: Database = Depends(get_db)):
    user = await db.users.find_one({"email": body.email.strip().lower()})
    if not user or not verify_password(body.password, user.get("hashed_password", "")):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )

    logger.info(f"User logged in: {user['_id']}")
    return TokenResponse(**issue_tokens(str(user["_id"])))


@router.post("/refresh", response_model=TokenResponse)
async def refresh(body: RefreshRequest, db: Database = Depends(get_db)):
    """exchange a refresh token for a new token pair"""
    try:
        user = await resolve_user(db, body.refresh_token, "refresh")
    except Unauthorized as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(e))

    return TokenResponse(**issue_tokens(user["id"]))


@router.get("/me", response_model=UserResponse)
async def me(current_user: dict = Depends(get_current_user)):
    return UserResponse(
        id=current_user["id"],
        email=current_user.get("email", ""),
        name=current_user.get("name"),
        createdAt=current_user.get("created_at", ""),
    )
