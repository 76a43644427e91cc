"""Assistant chat pipelines for patients and researchers.

Each turn loads the user's profile and a bounded slice of platform data,
builds a persona system prompt around it and forwards the conversation to the
gateway. The reply is returned with a short preview of the context used.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from assist.gateway import ChatGateway, Message
from assist.prompts import build_patient_assistant_prompt, build_researcher_assistant_prompt
from portal.config import settings
from portal.errors import InvalidInputError
from portal.store import PortalStore, Row

logger = logging.getLogger(__name__)

CONTEXT_KEYS = ("trials", "researchers", "publications", "questions")


@dataclass
class AssistantReply:
    """Assistant message plus the context preview shown alongside it."""
    message: str
    context: dict[str, list[Row]] = field(default_factory=dict)


async def load_patient_context(store: PortalStore, profile: Row | None) -> dict[str, list[Row]]:
    """Recruiting trials, specialists, publications and discussions for the patient's condition."""
    condition = (profile or {}).get("condition") or ""
    limit = settings.assistant.context_limit

    trials, researchers, publications, questions = await asyncio.gather(
        store.select(
            "clinical_trials",
            contains={"condition": condition},
            equals={"status": settings.assistant.recruiting_status},
            newest_first=True,
            limit=limit,
        ),
        store.select("researcher_profiles", contains={"specialty": condition}, limit=limit),
        store.select("publications", contains={"title": condition}, newest_first=True, limit=limit),
        store.select("forum_questions", contains={"title": condition}, newest_first=True, limit=limit),
    )
    return {
        "trials": trials,
        "researchers": researchers,
        "publications": publications,
        "questions": questions,
    }


async def load_researcher_context(store: PortalStore, user_id: str) -> dict[str, list[Row]]:
    """Peers, recent trials, publications, discussions and sent collaboration requests."""
    limit = settings.assistant.context_limit

    researchers, trials, publications, questions, collaborations = await asyncio.gather(
        store.select("researcher_profiles", not_equals={"user_id": user_id}, limit=limit),
        store.select("clinical_trials", newest_first=True, limit=limit),
        store.select("publications", newest_first=True, limit=limit),
        store.select("forum_questions", newest_first=True, limit=limit),
        store.select("collaboration_requests", equals={"from_user_id": user_id}, newest_first=True),
    )
    return {
        "researchers": researchers,
        "trials": trials,
        "publications": publications,
        "questions": questions,
        "collaborations": collaborations,
    }


def _validate(message: str | None, user_id: str | None) -> None:
    if not message or not message.strip():
        raise InvalidInputError("message is required")
    if not user_id:
        raise InvalidInputError("userId is required")


async def _reply(
    gateway: ChatGateway,
    system_prompt: str,
    history: list[Message] | None,
    message: str,
    context: dict[str, list[Row]],
) -> AssistantReply:
    messages: list[Message] = [{"role": "system", "content": system_prompt}]
    messages.extend(history or [])
    messages.append({"role": "user", "content": message})

    answer = await gateway.complete(messages)

    preview = settings.assistant.context_preview
    return AssistantReply(
        message=answer,
        context={key: context.get(key, [])[:preview] for key in CONTEXT_KEYS},
    )


async def patient_assistant_reply(
    store: PortalStore,
    gateway: ChatGateway,
    *,
    user_id: str | None,
    message: str | None,
    history: list[Message] | None = None,
) -> AssistantReply:
    """Answer a patient's chat message (HealthBot).

    Raises:
        InvalidInputError: If message or user id is missing
        DataFetchError: If context cannot be loaded
        ScoringOracleError: If the gateway call fails
    """
    _validate(message, user_id)

    profile = await store.get_one("patient_profiles", user_id=user_id)
    context = await load_patient_context(store, profile)
    counts = {key: len(rows) for key, rows in context.items()}
    logger.info(f"Patient assistant turn for user {user_id}: {counts}")

    system_prompt = build_patient_assistant_prompt(profile, counts)
    return await _reply(gateway, system_prompt, history, message, context)


async def researcher_assistant_reply(
    store: PortalStore,
    gateway: ChatGateway,
    *,
    user_id: str | None,
    message: str | None,
    history: list[Message] | None = None,
) -> AssistantReply:
    """Answer a researcher's chat message (ResearchBot)."""
    _validate(message, user_id)

    profile = await store.get_one("researcher_profiles", user_id=user_id)
    context = await load_researcher_context(store, user_id)
    counts = {key: len(rows) for key, rows in context.items()}
    logger.info(f"Researcher assistant turn for user {user_id}: {counts}")

    system_prompt = build_researcher_assistant_prompt(profile, counts)
    return await _reply(gateway, system_prompt, history, message, context)
