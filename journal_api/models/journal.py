# journal models - entry submission, stored entries, and api responses
# entry text bounds are checked here before any model call is made

from typing import Any, Optional
from pydantic import BaseModel, Field

from journal_api.config import settings
from journal_api.errors import ValidationError
from journal_api.models.reflection import Reflection, InteractiveReflection


def validate_entry_text(entry_text: Any) -> str:
    """reject missing, blank, or over-long entry text, naming the bound"""
    if not isinstance(entry_text, str):
        raise ValidationError("entry_text is required and must be a string")
    if not entry_text.strip():
        raise ValidationError("entry_text cannot be empty")
    if len(entry_text) > settings.ENTRY_MAX_LENGTH:
        raise ValidationError(f"entry_text must be {settings.ENTRY_MAX_LENGTH} characters or less")
    return entry_text


class ReflectionCreate(BaseModel):
    """payload for a new journal entry - type and bounds are checked by validate_entry_text"""
    entry_text: Optional[Any] = Field(None, description="free-text journal entry")


class ReflectionEdit(BaseModel):
    """payload for an interactive reflection edit, validated by the journal store"""
    reflection: Optional[Any] = None


class JournalEntry(BaseModel):
    """one stored piece of user writing"""
    id: str
    user_id: str = Field(..., alias="userId")
    entry_text: str = Field(..., alias="entryText")
    created_at: str = Field(..., alias="createdAt")

    model_config = {"populate_by_name": True}


class ReflectionCreateResponse(BaseModel):
    entry_id: str = Field(..., alias="entryId")
    reflection: Reflection

    model_config = {"populate_by_name": True}


class ReflectionEditResponse(BaseModel):
    success: bool = True
    message: str = "Reflection updated successfully"


class JournalResult(BaseModel):
    """an entry with its reflection, null while generation is missing or failed"""
    entry: JournalEntry
    reflection: Optional[InteractiveReflection] = None
