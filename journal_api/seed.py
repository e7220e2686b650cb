# seed script - creates a demo user with one reflected journal entry
# lets the history and result views be tried without a gemini key
# run once: python -m journal_api.seed

import asyncio
import logging
import os

from journal_api.models.reflection import validate_reflection
from journal_api.services.auth_service import hash_password
from journal_api.services.db import Database, db
from journal_api.services.journal_store import JournalStore

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)

# seed password from env
DEFAULT_PASSWORD = os.getenv("SEED_PASSWORD", "journal-demo-123")

DEMO_EMAIL = "demo@reflective-journal.app"
DEMO_ENTRY = "I'm nervous about my exam tomorrow. I studied a lot but I keep thinking I'll blank out."

SAMPLE_REFLECTION = {
    "mood_tags": ["anxious", "hopeful", "determined"],
    "key_themes": ["academic pressure", "self-doubt", "growth mindset"],
    "reflection_prompts": [
        "What specific aspect of the exam are you most worried about?",
        "What strategies have helped you manage test anxiety in the past?",
        "How can you reframe this challenge as an opportunity to learn?",
    ],
    "micro_action": {
        "title": "Quick Breathing Exercise",
        "duration_minutes": 5,
        "steps": [
            "Find a quiet space and sit comfortably",
            "Breathe in slowly for 4 counts",
            "Hold for 4 counts",
            "Exhale for 6 counts",
            "Repeat 5 times",
        ],
    },
    "reframe": "This exam is one step in your learning journey, not a measure of your worth. "
               "You've prepared, and you're capable of doing your best.",
    "mantra": "I am prepared, I am capable, I trust myself.",
}


async def seed(database: Database) -> str:
    """create the demo user and its sample entry, skips if the user exists. returns the user id."""
    existing = await database.users.find_one({"email": DEMO_EMAIL})
    if existing:
        user_id = str(existing["_id"])
        logger.info(f"Demo user already exists: {DEMO_EMAIL} (id: {user_id})")
        return user_id

    result = await database.users.insert_one({
        "email": DEMO_EMAIL,
        "hashed_password": hash_password(DEFAULT_PASSWORD),
        "name": "Demo User",
        "created_at": "2025-01-01T00:00:00+00:00",
    })
    user_id = str(result.inserted_id)
    logger.info(f"Created demo user: {DEMO_EMAIL} (id: {user_id})")

    store = JournalStore(database)
    entry_id = await store.create_entry_with_output(user_id, DEMO_ENTRY, validate_reflection(SAMPLE_REFLECTION))
    logger.info(f"Created sample entry {entry_id}")

    logger.info("Seed complete!")
    return user_id


async def main():
    await db.connect()
    try:
        await seed(db)
    finally:
        await db.close()


if __name__ == "__main__":
    asyncio.run(main())
