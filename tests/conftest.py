# shared fixtures for journal api tests
# provides mock db, test users, a fake gemini model, and httpx test clients

import asyncio
import copy
import json
import re

import pytest
import pytest_asyncio
from unittest.mock import MagicMock
from bson import ObjectId
from pymongo.errors import DuplicateKeyError, PyMongoError

from httpx import AsyncClient, ASGITransport
from langchain_core.runnables import RunnableLambda

from journal_api.main import app
from journal_api.services.db import get_db
from journal_api.services.auth_service import hash_password
from journal_api.services.rate_limiter import InMemoryRateLimiter
from journal_api.services.reflection_service import ReflectionGenerator, get_reflection_generator
from journal_api.dependencies import get_current_user, get_rate_limiter


# test ids

USER_OID = ObjectId("64b7f0c2a1b2c3d4e5f60001")
OTHER_USER_OID = ObjectId("64b7f0c2a1b2c3d4e5f60002")
USER_ID = str(USER_OID)
OTHER_USER_ID = str(OTHER_USER_OID)


# test user documents (as they'd appear from mongodb)

USER_DOC = {
    "_id": USER_OID,
    "email": "alex.rivera@email.com",
    "hashed_password": hash_password("journal123"),
    "name": "Alex Rivera",
    "created_at": "2025-06-01T00:00:00+00:00",
}

OTHER_USER_DOC = {
    "_id": OTHER_USER_OID,
    "email": "jordan.kim@email.com",
    "hashed_password": hash_password("journal123"),
    "name": "Jordan Kim",
    "created_at": "2025-05-15T00:00:00+00:00",
}


# sample reflections

SAMPLE_REFLECTION = {
    "mood_tags": ["anxious", "hopeful"],
    "key_themes": ["academic pressure", "self-doubt"],
    "reflection_prompts": [
        "What specific part of the exam worries you most?",
        "What has helped you stay calm before past exams?",
        "What would you tell a friend in your position?",
    ],
    "micro_action": {
        "title": "Box breathing",
        "duration_minutes": 5,
        "steps": [
            "Sit comfortably and close your eyes",
            "Breathe in for 4 counts, hold for 4",
            "Breathe out for 4 counts, hold for 4",
        ],
    },
    "reframe": "Feeling nervous shows how much this matters to you. You have prepared, and you can take it one question at a time.",
    "mantra": "I am prepared and I am enough.",
}

INTERACTIVE_REFLECTION = {
    "mood_tags": ["tired", "relieved"],
    "key_themes": ["work", "rest"],
    "reflection_prompts": [
        "What drained your energy most today?",
        "What would real rest look like this weekend?",
    ],
    "micro_action": {
        "title": "Evening wind-down",
        "duration_minutes": 10,
        "steps": [
            {"text": "Put your phone in another room", "completed": True, "notes": "Harder than expected"},
            {"text": "Stretch for five minutes", "completed": False, "notes": ""},
        ],
    },
    "reframe": "A long week is not a failure of effort. Rest is part of doing good work.",
    "prompt_responses": {"0": "Back-to-back meetings"},
}


# sample journal data

SAMPLE_ENTRY = {
    "_id": ObjectId(),
    "entry_id": "abc123def456",
    "user_id": USER_ID,
    "entry_text": "I'm nervous about my exam tomorrow",
    "created_at": "2025-06-10T12:00:00+00:00",
}

SAMPLE_OUTPUT = {
    "_id": ObjectId(),
    "entry_id": "abc123def456",
    "user_id": USER_ID,
    "output": SAMPLE_REFLECTION,
    "format_version": 1,
    "created_at": "2025-06-10T12:00:00+00:00",
    "updated_at": "2025-06-10T12:00:00+00:00",
}

# written before outputs carried a format_version
LEGACY_ENTRY = {
    "_id": ObjectId(),
    "entry_id": "legacy000001",
    "user_id": USER_ID,
    "entry_text": "Long week at work, finally resting.",
    "created_at": "2025-06-12T09:30:00+00:00",
}

LEGACY_OUTPUT = {
    "_id": ObjectId(),
    "entry_id": "legacy000001",
    "user_id": USER_ID,
    "output": INTERACTIVE_REFLECTION,
}

# entry whose reflection write never happened
ORPHAN_ENTRY = {
    "_id": ObjectId(),
    "entry_id": "orphan000001",
    "user_id": USER_ID,
    "entry_text": "Couldn't sleep again.",
    "created_at": "2025-06-08T23:10:00+00:00",
}

OTHER_ENTRY = {
    "_id": ObjectId(),
    "entry_id": "other0000001",
    "user_id": OTHER_USER_ID,
    "entry_text": "Great day hiking with my sister.",
    "created_at": "2025-06-11T18:00:00+00:00",
}

OTHER_OUTPUT = {
    "_id": ObjectId(),
    "entry_id": "other0000001",
    "user_id": OTHER_USER_ID,
    "output": SAMPLE_REFLECTION,
    "format_version": 1,
}


# async cursor mock

class AsyncCursorMock:
    """mock for motor's async cursor - supports async for and chained methods"""

    def __init__(self, data=None):
        self._data = list(data or [])
        self._index = 0

    def sort(self, key, direction=1):
        self._data.sort(key=lambda d: d.get(key) or "", reverse=direction == -1)
        return self

    def skip(self, n):
        self._data = self._data[n:]
        return self

    def limit(self, n):
        self._data = self._data[:n]
        return self

    def __aiter__(self):
        self._index = 0
        return self

    async def __anext__(self):
        if self._index >= len(self._data):
            raise StopAsyncIteration
        item = self._data[self._index]
        self._index += 1
        return item

    async def to_list(self, length=None):
        if length is not None:
            return self._data[:length]
        return self._data


class MockCollection:
    """mock for a motor collection with async methods.
    add a method name to fail_on to make it raise like a dropped connection."""

    def __init__(self, data=None, unique_key=None):
        self._data = data or []
        self.inserted = []
        self.unique_key = unique_key
        self.fail_on = set()

    def _maybe_fail(self, method):
        if method in self.fail_on:
            raise PyMongoError(f"simulated {method} failure")

    def find(self, query=None, projection=None):
        self._maybe_fail("find")
        results = self._data
        if query:
            results = [d for d in results if self._matches(d, query)]
        return AsyncCursorMock(results)

    async def find_one(self, query=None, projection=None):
        self._maybe_fail("find_one")
        if not query:
            return self._data[0] if self._data else None
        for doc in self._data:
            if self._matches(doc, query):
                return doc
        return None

    async def insert_one(self, doc):
        self._maybe_fail("insert_one")
        if self.unique_key and any(d.get(self.unique_key) == doc.get(self.unique_key) for d in self._data):
            raise DuplicateKeyError(f"duplicate {self.unique_key}")
        oid = doc.get("_id", ObjectId())
        doc["_id"] = oid
        self._data.append(doc)
        self.inserted.append(doc)
        result = MagicMock()
        result.inserted_id = oid
        return result

    async def update_one(self, query, update, upsert=False):
        self._maybe_fail("update_one")
        result = MagicMock()
        result.matched_count = 0
        result.modified_count = 0
        for doc in self._data:
            if self._matches(doc, query):
                if "$set" in update:
                    doc.update(copy.deepcopy(update["$set"]))
                result.matched_count = 1
                result.modified_count = 1
                break
        return result

    async def find_one_and_update(self, query, update, upsert=False):
        self._maybe_fail("find_one_and_update")
        for doc in self._data:
            if self._matches(doc, query):
                before = dict(doc)
                doc.update(update.get("$set", {}))
                return before
        if upsert:
            new_doc = {k: v for k, v in query.items() if not isinstance(v, dict)}
            new_doc.update(update.get("$set", {}))
            await self.insert_one(new_doc)
        return None

    async def delete_one(self, query):
        self._maybe_fail("delete_one")
        result = MagicMock()
        result.deleted_count = 0
        for i, doc in enumerate(self._data):
            if self._matches(doc, query):
                del self._data[i]
                result.deleted_count = 1
                break
        return result

    async def count_documents(self, query=None):
        if not query:
            return len(self._data)
        return len([d for d in self._data if self._matches(d, query)])

    async def create_index(self, *args, **kwargs):
        return "mock_index"

    def _matches(self, doc, query):
        """basic mongodb query matching for tests"""
        for key, value in query.items():
            doc_val = doc.get(key)
            if isinstance(value, dict):
                if "$in" in value and doc_val not in value["$in"]:
                    return False
                if "$gte" in value and (doc_val is None or doc_val < value["$gte"]):
                    return False
                if "$lte" in value and (doc_val is None or doc_val > value["$lte"]):
                    return False
                if "$regex" in value:
                    flags = re.IGNORECASE if value.get("$options") == "i" else 0
                    if doc_val is None or not re.search(value["$regex"], str(doc_val), flags):
                        return False
            elif doc_val != value:
                return False
        return True


class MockDatabase:
    """mock database that mimics the Database class"""

    def __init__(self):
        self.users = MockCollection([
            copy.deepcopy(USER_DOC),
            copy.deepcopy(OTHER_USER_DOC),
        ], unique_key="email")
        self.journal_entries = MockCollection([
            copy.deepcopy(SAMPLE_ENTRY),
            copy.deepcopy(LEGACY_ENTRY),
            copy.deepcopy(ORPHAN_ENTRY),
            copy.deepcopy(OTHER_ENTRY),
        ], unique_key="entry_id")
        self.journal_outputs = MockCollection([
            copy.deepcopy(SAMPLE_OUTPUT),
            copy.deepcopy(LEGACY_OUTPUT),
            copy.deepcopy(OTHER_OUTPUT),
        ], unique_key="entry_id")
        self.rate_limits = MockCollection([], unique_key="user_id")

    async def connect(self):
        pass

    async def close(self):
        pass


# fake gemini model

class FakeChatModel:
    """stands in for gemini - replays canned responses in order and records every prompt.
    a response that is an exception is raised instead of returned."""

    def __init__(self, responses, delay=0.0):
        self.responses = list(responses)
        self.delay = delay
        self.calls = []

    async def _respond(self, prompt_value):
        self.calls.append(prompt_value.to_messages())
        if self.delay:
            await asyncio.sleep(self.delay)
        response = self.responses[min(len(self.calls), len(self.responses)) - 1]
        if isinstance(response, BaseException):
            raise response
        return response

    def as_runnable(self):
        return RunnableLambda(self._respond)


def valid_reflection_json(**overrides) -> str:
    data = copy.deepcopy(SAMPLE_REFLECTION)
    data.update(overrides)
    return json.dumps(data)


@pytest.fixture
def mock_db():
    """create a fresh mock database for each test"""
    return MockDatabase()


@pytest.fixture
def fake_llm():
    """model that always answers with a valid reflection"""
    return FakeChatModel([valid_reflection_json()])


@pytest.fixture
def rate_limiter():
    return InMemoryRateLimiter(window_seconds=60)


def _user_dict(doc):
    """return user dict as get_current_user would return"""
    user = copy.deepcopy(doc)
    user["id"] = str(user.pop("_id"))
    return user


def as_user(doc):
    """override get_current_user with the given user document"""
    async def override_get_current_user():
        return _user_dict(doc)

    app.dependency_overrides[get_current_user] = override_get_current_user


@pytest_asyncio.fixture
async def client(mock_db, fake_llm, rate_limiter):
    """httpx async test client with mocked db and model, no auth override"""

    async def override_get_db():
        return mock_db

    def override_get_reflection_generator():
        return ReflectionGenerator(llm=fake_llm.as_runnable(), timeout=5)

    async def override_get_rate_limiter():
        return rate_limiter

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_reflection_generator] = override_get_reflection_generator
    app.dependency_overrides[get_rate_limiter] = override_get_rate_limiter

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def user_client(client):
    """client authenticated as the test user"""
    as_user(USER_DOC)
    yield client
