"""
Tests for the patient and researcher assistant pipelines.
"""

import pytest

from portal.errors import DataFetchError, InvalidInputError
from portal.pipelines.assistant import (
    load_patient_context,
    load_researcher_context,
    patient_assistant_reply,
    researcher_assistant_reply,
)

from conftest import FakeGateway, InMemoryStore


class TestPatientAssistant:
    """Tests for HealthBot."""

    @pytest.mark.asyncio
    async def test_context_follows_condition(self, store, portal_tables):
        profile = portal_tables["patient_profiles"][0]

        context = await load_patient_context(store, profile)

        # Only recruiting trials for the condition
        assert [row["id"] for row in context["trials"]] == ["trial-1"]
        assert [row["id"] for row in context["researchers"]] == ["res-1"]
        assert [row["id"] for row in context["publications"]] == ["pub-1"]
        assert [row["id"] for row in context["questions"]] == ["q-1"]

    @pytest.mark.asyncio
    async def test_reply_with_history(self, store):
        gateway = FakeGateway(reply="There is one recruiting trial near you.")
        history = [
            {"role": "user", "content": "Hi"},
            {"role": "assistant", "content": "Hello! How can I help?"},
        ]

        reply = await patient_assistant_reply(
            store, gateway, user_id="user-p1", message="Any trials for me?", history=history,
        )

        assert reply.message == "There is one recruiting trial near you."
        assert set(reply.context) == {"trials", "researchers", "publications", "questions"}
        assert reply.context["trials"][0]["id"] == "trial-1"

        messages = gateway.calls[0]["messages"]
        assert [m["role"] for m in messages] == ["system", "user", "assistant", "user"]
        assert messages[-1]["content"] == "Any trials for me?"
        system_prompt = messages[0]["content"]
        assert "HealthBot" in system_prompt
        assert "- Name: Jordan" in system_prompt
        assert "- Condition: glioblastoma" in system_prompt
        assert "- 1 relevant clinical trials recruiting now" in system_prompt

    @pytest.mark.asyncio
    async def test_unknown_profile_uses_defaults(self, store):
        gateway = FakeGateway(reply="ok")

        await patient_assistant_reply(store, gateway, user_id="user-new", message="hello")

        system_prompt = gateway.calls[0]["messages"][0]["content"]
        assert "- Name: Unknown" in system_prompt
        assert "- Condition: Not specified" in system_prompt

    @pytest.mark.asyncio
    async def test_context_preview_is_trimmed(self, portal_tables):
        portal_tables["clinical_trials"] = [
            {"id": f"t{i}", "title": f"Glioblastoma trial {i}", "status": "Recruiting",
             "condition": "glioblastoma", "created_at": None}
            for i in range(8)
        ]
        gateway = FakeGateway(reply="ok")

        reply = await patient_assistant_reply(
            InMemoryStore(portal_tables), gateway, user_id="user-p1", message="trials?",
        )

        assert len(reply.context["trials"]) == 3
        assert "- 8 relevant clinical trials" in gateway.calls[0]["messages"][0]["content"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("message,user_id", [("", "user-p1"), ("  ", "user-p1"), ("hi", None)])
    async def test_requires_message_and_user(self, store, message, user_id):
        gateway = FakeGateway(reply="unused")

        with pytest.raises(InvalidInputError):
            await patient_assistant_reply(store, gateway, user_id=user_id, message=message)

        assert gateway.calls == []


class TestResearcherAssistant:
    """Tests for ResearchBot."""

    @pytest.mark.asyncio
    async def test_context_excludes_self(self, store):
        context = await load_researcher_context(store, "user-r1")

        assert [row["id"] for row in context["researchers"]] == ["res-2"]
        # Newest first
        assert [row["id"] for row in context["trials"]] == ["trial-2", "trial-1"]
        assert [row["id"] for row in context["collaborations"]] == ["collab-1"]

    @pytest.mark.asyncio
    async def test_reply(self, store):
        gateway = FakeGateway(reply="Dr. Okafor could be a good collaborator.")

        reply = await researcher_assistant_reply(
            store, gateway, user_id="user-r1", message="Who should I work with?",
        )

        assert reply.message == "Dr. Okafor could be a good collaborator."
        assert "collaborations" not in reply.context
        system_prompt = gateway.calls[0]["messages"][0]["content"]
        assert "ResearchBot" in system_prompt
        assert "- Specialty: Glioblastoma immunology" in system_prompt
        assert "- 1 collaboration requests sent" in system_prompt
        assert "- 1 other researchers in the network" in system_prompt

    @pytest.mark.asyncio
    async def test_storage_failure(self, portal_tables):
        store = InMemoryStore(portal_tables, fail_on={"collaboration_requests"})

        with pytest.raises(DataFetchError):
            await researcher_assistant_reply(
                store, FakeGateway(reply="unused"), user_id="user-r1", message="hi",
            )
