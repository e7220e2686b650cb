# reflections router - submit an entry for reflection, edit it, browse history
# every route is owner-scoped: users only ever see and change their own entries

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status, Query

from journal_api.dependencies import get_current_user, get_journal_store, get_rate_limiter
from journal_api.errors import (
    Forbidden,
    GenerationFailure,
    NotFound,
    PersistenceFailure,
    RateLimited,
    SchemaViolation,
    ValidationError,
)
from journal_api.models.journal import (
    JournalResult,
    ReflectionCreate,
    ReflectionCreateResponse,
    ReflectionEdit,
    ReflectionEditResponse,
    validate_entry_text,
)
from journal_api.services.journal_store import JournalStore
from journal_api.services.reflection_service import ReflectionGenerator, get_reflection_generator

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/reflections", tags=["reflections"])

GENERATION_ERROR = "Unable to generate reflection. Please try again."
UPDATE_ERROR = "Unable to update reflection. Please try again."


@router.post(
    "",
    response_model=ReflectionCreateResponse,
    response_model_exclude_none=True,
    status_code=status.HTTP_201_CREATED,
)
async def submit_entry(
    body: ReflectionCreate,
    current_user: dict = Depends(get_current_user),
    store: JournalStore = Depends(get_journal_store),
    limiter=Depends(get_rate_limiter),
    generator: ReflectionGenerator = Depends(get_reflection_generator),
):
    """validate the entry, generate its reflection, and store both"""
    user_id = current_user["id"]

    # bounds are checked first so a rejected entry costs nothing
    try:
        entry_text = validate_entry_text(body.entry_text)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    try:
        await limiter.hit(user_id)
    except RateLimited as e:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=str(e),
            headers={"Retry-After": str(e.seconds_remaining)},
        )

    logger.info(f"Generating reflection for user {user_id} ({len(entry_text)} chars)")
    try:
        reflection = await generator.generate(entry_text)
        entry_id = await store.create_entry_with_output(user_id, entry_text, reflection)
    except (GenerationFailure, PersistenceFailure) as e:
        logger.exception(f"Reflection pipeline failed for user {user_id}: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=GENERATION_ERROR)

    return ReflectionCreateResponse(entryId=entry_id, reflection=reflection)


@router.patch("/{entry_id}", response_model=ReflectionEditResponse)
async def update_reflection(
    entry_id: str,
    body: ReflectionEdit,
    current_user: dict = Depends(get_current_user),
    store: JournalStore = Depends(get_journal_store),
):
    """overwrite the entry's reflection in place with the user's edits"""
    if body.reflection is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="reflection is required")

    try:
        await store.update_output(entry_id, current_user["id"], body.reflection)
    except SchemaViolation as e:
        logger.info(f"Rejected reflection edit for entry {entry_id}: {e}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid reflection data: {e}")
    except Forbidden:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
    except NotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except PersistenceFailure as e:
        logger.exception(f"Reflection update failed for entry {entry_id}: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=UPDATE_ERROR)

    return ReflectionEditResponse()


@router.get("", response_model=list[JournalResult])
async def list_history(
    limit: int = Query(50, ge=1, le=200),
    q: Optional[str] = Query(None, max_length=200, description="case-insensitive text search"),
    current_user: dict = Depends(get_current_user),
    store: JournalStore = Depends(get_journal_store),
):
    """the user's entries, newest first, each with its reflection if one exists"""
    history = await store.read_history(current_user["id"], limit=limit, search=q)
    return [JournalResult(entry=entry, reflection=reflection) for entry, reflection in history]


@router.get("/{entry_id}", response_model=JournalResult)
async def read_result(
    entry_id: str,
    current_user: dict = Depends(get_current_user),
    store: JournalStore = Depends(get_journal_store),
):
    """one entry and its reflection, always in the interactive shape"""
    try:
        entry, reflection = await store.read_result(entry_id, current_user["id"])
    except NotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except SchemaViolation as e:
        logger.error(f"Stored reflection for entry {entry_id} is unreadable: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Unable to load reflection")

    return JournalResult(entry=entry, reflection=reflection)
