"""Client for the language-model gateway (OpenAI-compatible chat completions).

Every AI-assisted handler goes through `ChatGateway.complete`. Calls are not
retried: a failed call surfaces immediately as ScoringOracleError.
"""
from __future__ import annotations

import logging

import httpx

from portal.config import settings
from portal.errors import ScoringOracleError

logger = logging.getLogger(__name__)

Message = dict[str, str]


class ChatGateway:
    """Thin async wrapper around a single chat-completions endpoint."""

    def __init__(
        self,
        *,
        url: str | None = None,
        api_key: str | None = None,
        model: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize gateway client.

        Args:
            url: Chat completions URL (default from config)
            api_key: Bearer token (default from config)
            model: Model identifier (default from config)
            timeout: Request timeout in seconds (default from config)
            transport: Optional httpx transport, used by tests
        """
        self.url = url or settings.gateway.url
        self.api_key = api_key if api_key is not None else settings.gateway.api_key
        self.model = model or settings.gateway.model
        self.timeout = timeout or settings.gateway.timeout_seconds
        self._transport = transport

    async def complete(
        self,
        messages: list[Message],
        *,
        temperature: float | None = None,
    ) -> str:
        """Send a chat transcript and return the assistant's reply text.

        Args:
            messages: Chat messages ({"role": ..., "content": ...})
            temperature: Sampling temperature; omitted from the payload if None

        Returns:
            Content of the first choice

        Raises:
            ScoringOracleError: On missing credentials, transport failure,
                non-success status or an unexpected response envelope
        """
        if not self.api_key:
            raise ScoringOracleError("AI gateway API key not configured")

        payload: dict = {"model": self.model, "messages": messages}
        if temperature is not None:
            payload["temperature"] = temperature

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        logger.info(f"Calling AI gateway ({self.model}, {len(messages)} messages)")

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.url, json=payload, headers=headers)
        except httpx.TimeoutException as e:
            logger.error(f"AI gateway timed out after {self.timeout}s: {e}")
            raise ScoringOracleError(f"AI API request timed out after {self.timeout}s") from e
        except httpx.HTTPError as e:
            logger.error(f"AI gateway request failed: {e}")
            raise ScoringOracleError(f"AI API request failed: {e}") from e

        if not response.is_success:
            logger.error(f"AI API error: {response.status_code} {response.text}")
            raise ScoringOracleError(f"AI API error: {response.status_code}")

        try:
            content = response.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            logger.error(f"Unexpected AI gateway response: {response.text[:500]}")
            raise ScoringOracleError("AI API returned an unexpected response") from e

        if not isinstance(content, str):
            raise ScoringOracleError("AI API returned an unexpected response")

        return content

    async def complete_chat(
        self,
        system: str,
        user: str,
        *,
        temperature: float | None = None,
    ) -> str:
        """Convenience wrapper for a single system + user exchange."""
        return await self.complete(
            [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            temperature=temperature,
        )


def get_gateway() -> ChatGateway:
    """FastAPI dependency returning a gateway configured from settings."""
    return ChatGateway()
