# journal store - persists entries and their reflections as two linked documents
# journal_entries (immutable writing) <-> journal_outputs (exactly one reflection per entry)
#
# the output's user_id must equal the entry's user_id, checked on every mutation.
# a failed output write deletes the just-created entry. if that cleanup fails too,
# the orphan is logged with entry id and owner for manual reconciliation.

import hashlib
import logging
import re
from datetime import datetime, timezone
from typing import Any, Optional

from journal_api.errors import Forbidden, NotFound, PersistenceFailure, SchemaViolation
from journal_api.models.journal import JournalEntry
from journal_api.models.reflection import (
    FORMAT_INTERACTIVE,
    FORMAT_PLAIN,
    InteractiveReflection,
    Reflection,
    load_stored_output,
    reflection_to_document,
    validate_interactive_reflection,
)
from journal_api.services.db import Database

logger = logging.getLogger(__name__)


def _doc_to_entry(doc: dict) -> JournalEntry:
    created_at = doc.get("created_at", "")
    if created_at and not isinstance(created_at, str):
        created_at = created_at.isoformat()
    return JournalEntry(
        id=doc["entry_id"],
        userId=doc.get("user_id", ""),
        entryText=doc.get("entry_text", ""),
        createdAt=created_at,
    )


def _load_output(doc: dict) -> InteractiveReflection:
    return load_stored_output(doc.get("output"), doc.get("format_version"))


class JournalStore:
    """owner-scoped reads and writes over journal_entries / journal_outputs"""

    def __init__(self, db: Database):
        self.db = db

    async def create_entry_with_output(self, owner_id: str, entry_text: str, reflection: Reflection) -> str:
        """write the entry, then its reflection. returns the new entry id."""
        now = datetime.now(timezone.utc).isoformat()

        # entry_id as md5 hash of owner + text + timestamp
        raw = f"{owner_id}:{entry_text}:{now}"
        entry_id = hashlib.md5(raw.encode()).hexdigest()[:12]

        entry_doc = {
            "entry_id": entry_id,
            "user_id": owner_id,
            "entry_text": entry_text,
            "created_at": now,
        }
        try:
            await self.db.journal_entries.insert_one(entry_doc)
        except Exception as e:
            logger.error(f"Error saving journal entry for user {owner_id}: {e}")
            raise PersistenceFailure("Failed to save journal entry") from e

        output_doc = {
            "entry_id": entry_id,
            "user_id": owner_id,
            "output": reflection_to_document(reflection),
            "format_version": FORMAT_PLAIN,
            "created_at": now,
            "updated_at": now,
        }
        try:
            await self.db.journal_outputs.insert_one(output_doc)
        except Exception as e:
            logger.error(f"Error saving reflection output for entry {entry_id}: {e}")
            await self._discard_entry(entry_id, owner_id)
            raise PersistenceFailure("Failed to save reflection") from e

        logger.info(f"Journal entry {entry_id} saved with reflection for user {owner_id}")
        return entry_id

    async def _discard_entry(self, entry_id: str, owner_id: str) -> None:
        try:
            await self.db.journal_entries.delete_one({"entry_id": entry_id, "user_id": owner_id})
            logger.info(f"Rolled back journal entry {entry_id} after failed reflection write")
        except Exception as e:
            logger.error(
                f"Rollback failed - journal entry {entry_id} (user {owner_id}) "
                f"has no reflection and needs manual cleanup: {e}"
            )

    async def update_output(self, entry_id: str, requester_id: str, edited: Any) -> InteractiveReflection:
        """overwrite an entry's reflection with a client edit, owner only"""
        reflection = validate_interactive_reflection(edited)

        entry = await self.db.journal_entries.find_one({"entry_id": entry_id})
        if not entry:
            raise NotFound("Journal entry not found")

        owner_id = entry.get("user_id")
        if owner_id != requester_id:
            logger.warning(f"User {requester_id} tried to edit reflection for entry {entry_id} owned by {owner_id}")
            raise Forbidden("Forbidden")

        output = await self.db.journal_outputs.find_one({"entry_id": entry_id})
        if not output:
            raise NotFound("Reflection not found")
        if output.get("user_id") != owner_id:
            logger.error(f"Owner mismatch on journal output for entry {entry_id}")
            raise Forbidden("Forbidden")

        try:
            result = await self.db.journal_outputs.update_one(
                {"entry_id": entry_id, "user_id": requester_id},
                {"$set": {
                    "output": reflection_to_document(reflection),
                    "format_version": FORMAT_INTERACTIVE,
                    "updated_at": datetime.now(timezone.utc).isoformat(),
                }},
            )
        except Exception as e:
            logger.error(f"Error updating reflection for entry {entry_id}: {e}")
            raise PersistenceFailure("Failed to update reflection") from e

        if result.matched_count == 0:
            raise NotFound("Reflection not found")

        logger.info(f"Reflection updated for entry {entry_id} by user {requester_id}")
        return reflection

    async def read_history(
        self,
        owner_id: str,
        limit: int = 50,
        search: Optional[str] = None,
    ) -> list[tuple[JournalEntry, Optional[InteractiveReflection]]]:
        """owner's entries newest first, each with its reflection or none"""
        query: dict = {"user_id": owner_id}
        if search:
            query["entry_text"] = {"$regex": re.escape(search), "$options": "i"}

        cursor = self.db.journal_entries.find(query).sort("created_at", -1).limit(limit)
        entries = []
        async for doc in cursor:
            entries.append(doc)
        if not entries:
            return []

        outputs = {}
        cursor = self.db.journal_outputs.find({
            "entry_id": {"$in": [e["entry_id"] for e in entries]},
            "user_id": owner_id,
        })
        async for doc in cursor:
            outputs[doc["entry_id"]] = doc

        history = []
        for entry in entries:
            reflection = None
            output = outputs.get(entry["entry_id"])
            if output is not None:
                try:
                    reflection = _load_output(output)
                except SchemaViolation as e:
                    # shown as "no reflection" rather than failing the whole page
                    logger.warning(f"Stored reflection for entry {entry['entry_id']} is unreadable: {e}")
            history.append((_doc_to_entry(entry), reflection))
        return history

    async def read_output(self, entry_id: str, requester_id: Optional[str] = None) -> InteractiveReflection:
        query = {"entry_id": entry_id}
        if requester_id is not None:
            query["user_id"] = requester_id
        doc = await self.db.journal_outputs.find_one(query)
        if not doc:
            raise NotFound("Reflection not found")
        return _load_output(doc)

    async def read_result(
        self, entry_id: str, requester_id: str
    ) -> tuple[JournalEntry, Optional[InteractiveReflection]]:
        """one entry and its reflection. another user's entry reads as not found."""
        entry = await self.db.journal_entries.find_one({"entry_id": entry_id, "user_id": requester_id})
        if not entry:
            raise NotFound("Journal entry not found")
        try:
            reflection = await self.read_output(entry_id, requester_id)
        except NotFound:
            reflection = None
        return _doc_to_entry(entry), reflection
