"""
Pytest configuration and fixtures for the portal backend tests.
"""

import json
import os
from datetime import datetime, timedelta

import httpx
import pytest

# Set test environment before settings are loaded
os.environ["ENVIRONMENT"] = "testing"
os.environ["LOG_FORMAT"] = "text"
os.environ.setdefault("GATEWAY_API_KEY", "test-api-key")

from assist.gateway import ChatGateway  # noqa: E402
from portal.errors import DataFetchError  # noqa: E402


# ============================================================
# Storage Fakes
# ============================================================

class InMemoryStore:
    """PortalStore over plain lists of dicts, with the same filter semantics."""

    def __init__(self, tables=None, fail_on=(), error=None):
        self.tables = {name: [dict(row) for row in rows] for name, rows in (tables or {}).items()}
        self.fail_on = set(fail_on)
        self.error = error
        self.calls = []

    async def select(self, table, *, equals=None, not_equals=None, contains=None,
                     newest_first=False, limit=None):
        self.calls.append(table)
        if table in self.fail_on:
            raise self.error or DataFetchError(f"Failed to fetch {table}: connection refused")

        rows = list(self.tables.get(table, []))
        for column, value in (equals or {}).items():
            rows = [r for r in rows if r.get(column) == value]
        for column, value in (not_equals or {}).items():
            rows = [r for r in rows if r.get(column) != value]
        for column, value in (contains or {}).items():
            rows = [
                r for r in rows
                if r.get(column) is not None and value.lower() in str(r[column]).lower()
            ]
        if newest_first:
            rows.sort(key=lambda r: r.get("created_at") or datetime.min, reverse=True)
        if limit is not None:
            rows = rows[:limit]
        return [dict(r) for r in rows]

    async def get_one(self, table, **equals):
        rows = await self.select(table, equals=equals, limit=1)
        return rows[0] if rows else None


# ============================================================
# Gateway Fakes
# ============================================================

class FakeGateway(ChatGateway):
    """ChatGateway that records calls and returns a canned reply."""

    def __init__(self, reply="", error=None):
        super().__init__(api_key="test-api-key")
        self.reply = reply
        self.error = error
        self.calls = []

    async def complete(self, messages, *, temperature=None):
        self.calls.append({"messages": messages, "temperature": temperature})
        if self.error is not None:
            raise self.error
        return self.reply


def chat_response(content, status_code=200):
    """Build a chat-completions style httpx response."""
    return httpx.Response(
        status_code,
        json={"choices": [{"message": {"role": "assistant", "content": content}}]},
    )


def mock_gateway(handler):
    """Real ChatGateway whose HTTP traffic goes to `handler`."""
    return ChatGateway(
        url="https://gateway.test/v1/chat/completions",
        api_key="test-api-key",
        model="test-model",
        transport=httpx.MockTransport(handler),
    )


def scores_json(trials=(), researchers=(), questions=(), publications=()):
    return json.dumps({
        "trials": list(trials),
        "researchers": list(researchers),
        "questions": list(questions),
        "publications": list(publications),
    })


# ============================================================
# Sample Data
# ============================================================

BASE_TIME = datetime(2025, 3, 1, 12, 0, 0)


@pytest.fixture
def portal_tables():
    """Small but complete data set covering every table."""
    return {
        "clinical_trials": [
            {
                "id": "trial-1",
                "title": "Phase III Immunotherapy Trial",
                "description": "Checkpoint inhibitor for recurrent glioblastoma",
                "phase": "Phase III",
                "status": "Recruiting",
                "condition": "Glioblastoma",
                "location": "Boston, MA",
                "created_at": BASE_TIME,
            },
            {
                "id": "trial-2",
                "title": "Diet Study",
                "description": "Mediterranean diet and cardiovascular outcomes",
                "phase": "Phase II",
                "status": "Completed",
                "condition": "Heart disease",
                "location": None,
                "created_at": BASE_TIME + timedelta(days=1),
            },
        ],
        "researcher_profiles": [
            {
                "id": "res-1",
                "user_id": "user-r1",
                "name": "Dr. Ada Moreno",
                "specialty": "Glioblastoma immunology",
                "institution": "Harbor Neuro Institute",
                "location": "Boston, MA",
                "interests": "CAR-T, tumor microenvironment",
                "created_at": BASE_TIME,
            },
            {
                "id": "res-2",
                "user_id": "user-r2",
                "name": "Dr. Sam Okafor",
                "specialty": "Cardiology",
                "institution": "Lakeside Medical",
                "location": "Chicago, IL",
                "interests": "Preventive cardiology",
                "created_at": BASE_TIME + timedelta(days=2),
            },
        ],
        "forum_questions": [
            {
                "id": "q-1",
                "user_id": "user-p1",
                "title": "Glioblastoma immunotherapy side effects?",
                "content": "What should I expect during treatment?",
                "category": "Treatment",
                "created_at": BASE_TIME,
            },
        ],
        "publications": [
            {
                "id": "pub-1",
                "researcher_id": "res-1",
                "title": "PD-1 blockade in glioblastoma",
                "journal": "Neuro-Oncology",
                "year": 2024,
                "authors": "Moreno A, Lee J",
                "created_at": BASE_TIME,
            },
        ],
        "patient_profiles": [
            {
                "id": "pat-1",
                "user_id": "user-p1",
                "name": "Jordan",
                "condition": "glioblastoma",
                "location": "Boston, MA",
                "created_at": BASE_TIME,
            },
        ],
        "favorites": [
            {"id": "fav-1", "user_id": "user-p1", "item_type": "trial", "item_id": "trial-1"},
            {"id": "fav-2", "user_id": "user-p1", "item_type": "researcher", "item_id": "res-1"},
            {"id": "fav-3", "user_id": "user-p1", "item_type": "publication", "item_id": "pub-1"},
            {"id": "fav-4", "user_id": "user-p1", "item_type": "trial", "item_id": "trial-deleted"},
            {"id": "fav-5", "user_id": "user-p1", "item_type": "question", "item_id": "q-1"},
            {"id": "fav-6", "user_id": "user-p2", "item_type": "trial", "item_id": "trial-2"},
        ],
        "collaboration_requests": [
            {
                "id": "collab-1",
                "from_user_id": "user-r1",
                "to_user_id": "user-r2",
                "message": "Shared cohort?",
                "status": "pending",
                "created_at": BASE_TIME,
            },
        ],
    }


@pytest.fixture
def store(portal_tables):
    """In-memory store loaded with the sample data."""
    return InMemoryStore(portal_tables)
