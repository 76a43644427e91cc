"""Prompt templates for the AI-assisted handlers.

Search scoring, favorites summaries and the two assistant personas.
"""
from __future__ import annotations

from typing import Any, Callable, Mapping

Row = Mapping[str, Any]

PATIENT_FOCUS = (
    "PATIENT FOCUS: Prefer practical information, plain patient-friendly language, "
    "local options and supportive resources. Favor trials the user can actually join, "
    "accessible explanations and community support."
)

RESEARCHER_FOCUS = (
    "RESEARCHER FOCUS: Prefer research quality, collaboration opportunities and "
    "scientific depth. Favor cutting-edge work, peer connections and professional "
    "advancement."
)

SCORING_FORMAT = """Return ONLY valid JSON with exactly this structure:
{
  "trials": [{"id": "uuid", "score": 95, "reason": "brief explanation"}],
  "researchers": [{"id": "uuid", "score": 90, "reason": "brief explanation"}],
  "questions": [{"id": "uuid", "score": 85, "reason": "brief explanation"}],
  "publications": [{"id": "uuid", "score": 80, "reason": "brief explanation"}]
}

Only include items with score >= {min_score}. Sort each array by score descending."""


def _optional(label: str, value: Any) -> str:
    return f", {label}: {value}" if value else ""


def _trial_line(t: Row) -> str:
    return (
        f"ID: {t.get('id')}, Title: {t.get('title')}, Description: {t.get('description')}, "
        f"Phase: {t.get('phase')}, Status: {t.get('status')}{_optional('Location', t.get('location'))}"
    )


def _researcher_line(r: Row) -> str:
    return (
        f"ID: {r.get('id')}, Name: {r.get('name')}, Specialty: {r.get('specialty')}, "
        f"Institution: {r.get('institution')}{_optional('Location', r.get('location'))}, "
        f"Interests: {r.get('interests')}"
    )


def _question_line(q: Row) -> str:
    return (
        f"ID: {q.get('id')}, Title: {q.get('title')}, Content: {q.get('content')}, "
        f"Category: {q.get('category')}"
    )


def _publication_line(p: Row) -> str:
    return (
        f"ID: {p.get('id')}, Title: {p.get('title')}, Journal: {p.get('journal')}, "
        f"Year: {p.get('year')}, Authors: {p.get('authors')}"
    )


CANDIDATE_SECTIONS: list[tuple[str, str, Callable[[Row], str]]] = [
    ("trials", "Clinical Trials", _trial_line),
    ("researchers", "Researchers", _researcher_line),
    ("questions", "Forum Questions", _question_line),
    ("publications", "Publications", _publication_line),
]


def build_search_system_prompt(
    user_type: str | None,
    location: str | None,
    *,
    min_score: int = 30,
    location_bonus: int = 20,
) -> str:
    """System instruction for relevance scoring, biased by requester role."""
    parts = [
        "You are a medical search relevance expert. Score the relevance of clinical trials, "
        "researchers, forum questions and publications on a scale of 0-100 based on the "
        "user's query, condition, user type and location.",
        PATIENT_FOCUS if user_type == "patient" else RESEARCHER_FOCUS,
    ]
    if location:
        parts.append(
            f"LOCATION PRIORITY: Add {location_bonus} points to items matching or near "
            f"location: {location}. For trials and researchers proximity matters most."
        )
    parts.append(SCORING_FORMAT.replace("{min_score}", str(min_score)))
    return "\n\n".join(parts)


def build_search_user_prompt(
    query: str,
    *,
    condition: str | None,
    user_type: str | None,
    location: str | None,
    candidates: Mapping[str, list[Row]],
) -> str:
    """User instruction embedding the request context and every candidate."""
    lines = [
        f"User type: {user_type or 'unknown'}",
        f'Query: "{query}"',
        f'Condition: "{condition or "unknown"}"',
    ]
    if location:
        lines.append(f'Location: "{location}"')

    for key, heading, render in CANDIDATE_SECTIONS:
        lines.append("")
        lines.append(f"{heading}:")
        lines.extend(render(row) for row in candidates.get(key, []))

    return "\n".join(lines)


FAVORITES_SYSTEM_PROMPT = """You are a medical research assistant. Write a clear, easy-to-understand summary of the user's saved favorites that they can discuss with their doctor. Cover:
- Key findings and why they are relevant
- Important considerations
- Questions to ask their doctor
Use clear sections with bullet points."""


def build_favorites_prompt(
    trials: list[Row],
    researchers: list[Row],
    publications: list[Row],
) -> str:
    lines = ["Create a summary of these saved items:", "", f"Clinical Trials ({len(trials)}):"]
    lines.extend(
        f"- {t.get('title')}: {t.get('description')} (Phase: {t.get('phase')}, Status: {t.get('status')})"
        for t in trials
    )
    lines += ["", f"Researchers ({len(researchers)}):"]
    lines.extend(
        f"- {r.get('name')}, {r.get('specialty')} at {r.get('institution')}" for r in researchers
    )
    lines += ["", f"Publications ({len(publications)}):"]
    lines.extend(
        f"- {p.get('title')} by {p.get('authors')} ({p.get('journal')}, {p.get('year')})"
        for p in publications
    )
    return "\n".join(lines)


def build_patient_assistant_prompt(profile: Row | None, counts: Mapping[str, int]) -> str:
    """System prompt for the patient-facing assistant (HealthBot)."""
    profile = profile or {}
    condition = profile.get("condition") or "Not specified"
    return f"""You are a compassionate AI health assistant for patients on a clinical trial discovery platform. Your name is HealthBot.

You help patients:
1. Discover clinical trials relevant to their condition
2. Understand medical research and publications in plain terms
3. Find researchers and institutions specializing in their condition
4. Learn about treatment options and how trial enrollment works
5. Join related forum discussions
6. Feel supported and encouraged

Current Patient Context:
- Name: {profile.get('name') or 'Unknown'}
- Condition: {condition}
- Location: {profile.get('location') or 'Not specified'}

Available Data:
- {counts.get('trials', 0)} relevant clinical trials recruiting now
- {counts.get('researchers', 0)} researchers specializing in {profile.get('condition') or 'this condition'}
- {counts.get('publications', 0)} recent research publications
- {counts.get('questions', 0)} related forum discussions

Guidelines:
- Be compassionate, clear and supportive
- Prefer simple, non-medical language and explain any medical terms you use
- Encourage patients to consult their healthcare providers for medical advice
- Offer hope and practical next steps
- Be honest about uncertainty in medical research"""


def build_researcher_assistant_prompt(profile: Row | None, counts: Mapping[str, int]) -> str:
    """System prompt for the researcher-facing assistant (ResearchBot)."""
    profile = profile or {}
    return f"""You are an AI assistant for researchers on a clinical trial collaboration platform. Your name is ResearchBot.

You help researchers:
1. Discover relevant researchers, institutions and clinical trials
2. Manage and update their profile
3. Find information about publications and trials
4. Connect with other researchers and signal collaboration availability
5. Follow trending publications and trials
6. Take part in field-specific discussions

Current User Context:
- Name: {profile.get('name') or 'Unknown'}
- Specialty: {profile.get('specialty') or 'Not specified'}
- Institution: {profile.get('institution') or 'Not specified'}
- Research Interests: {profile.get('interests') or 'Not specified'}

Available Data:
- {counts.get('researchers', 0)} other researchers in the network
- {counts.get('trials', 0)} active clinical trials
- {counts.get('publications', 0)} recent publications
- {counts.get('questions', 0)} forum discussions
- {counts.get('collaborations', 0)} collaboration requests sent

Be conversational and give actionable insights. When recommending researchers or trials, explain why they fit the user's specialty and interests."""
