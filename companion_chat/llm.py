"""LLM client: HTTP connection to an OpenAI-compatible chat endpoint.

The chat session injects an LLM callable matching the protocol:

    async def __call__(self, messages: list[ChatTurn],
                       cancel_token: CancelToken | None = None) -> str: ...

Two implementations are provided:

    ChatLLM  : real HTTP client, POST {base_url}/chat/completions.
    EchoLLM  : returns the last user turn unchanged. Useful for smoke-testing
               the session wiring without a running model.

One request is in flight per chat turn. It is bounded by a fixed timeout
(30s by default) and can be abandoned early through a CancelToken tied to
a user "stop" action. No retries: a timed-out or cancelled request surfaces
as a single LLMError to the caller.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol

import httpx

from companion_chat.models import APIConfig, ChatTurn

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0
CONNECTION_TEST_TIMEOUT = 10.0


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class LLMError(RuntimeError):
    """Raised when the LLM backend cannot be reached or returns an error."""


class LLMCancelled(LLMError):
    """Raised when the caller cancels an in-flight request."""


# ---------------------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------------------

class CancelToken:
    """Cooperative cancellation flag for one outbound request."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()


# ---------------------------------------------------------------------------
# Protocol: every LLM implementation must match this signature
# ---------------------------------------------------------------------------

class LLM(Protocol):
    async def __call__(
        self, messages: list[ChatTurn], cancel_token: CancelToken | None = None
    ) -> str: ...


# ---------------------------------------------------------------------------
# ChatLLM: connects to a real backend
# ---------------------------------------------------------------------------

class ChatLLM:
    """Async HTTP client for OpenAI-compatible chat-completion backends.

    Request:  POST {base_url}/chat/completions
              {"model", "messages", "temperature", "max_tokens"}
    Response: {"choices": [{"message": {"content": "..."}}]}

    Args:
        config:  API configuration (base URL, key, model, sampling params).
        timeout: HTTP timeout in seconds. Defaults to 30.
    """

    def __init__(self, config: APIConfig, timeout: float = DEFAULT_TIMEOUT) -> None:
        self._config = config
        self._base_url = config.base_url.rstrip("/")
        self._timeout = timeout

    def _headers(self) -> dict[str, str]:
        headers: dict[str, str] = {"Content-Type": "application/json"}
        if self._config.api_key:
            headers["Authorization"] = f"Bearer {self._config.api_key}"
        return headers

    def _build_body(self, messages: list[ChatTurn]) -> dict[str, Any]:
        return {
            "model": self._config.model,
            "messages": [m.model_dump() for m in messages],
            "temperature": self._config.temperature,
            "max_tokens": self._config.max_tokens,
        }

    @staticmethod
    def _error_message(resp: httpx.Response) -> str:
        try:
            data = resp.json()
        except ValueError:
            data = None
        if isinstance(data, dict):
            err = data.get("error")
            if isinstance(err, dict) and err.get("message"):
                return str(err["message"])
        return f"LLM backend returned HTTP {resp.status_code}"

    @staticmethod
    def _parse_response(data: Any) -> str:
        choices = data.get("choices") if isinstance(data, dict) else None
        if not choices:
            raise LLMError("Unexpected response format: no choices")
        message = choices[0].get("message") or {}
        content = message.get("content")
        if not content:
            raise LLMError("Unexpected response format: empty message content")
        return content.strip()

    async def _post(self, body: dict[str, Any]) -> str:
        url = f"{self._base_url}/chat/completions"
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(url, json=body, headers=self._headers())
                resp.raise_for_status()
        except httpx.ConnectError as e:
            raise LLMError(f"Cannot connect to LLM backend at {self._base_url}") from e
        except httpx.HTTPStatusError as e:
            raise LLMError(self._error_message(e.response)) from e
        except httpx.TimeoutException as e:
            raise LLMError(f"LLM backend timed out after {self._timeout}s") from e
        return self._parse_response(resp.json())

    async def __call__(
        self, messages: list[ChatTurn], cancel_token: CancelToken | None = None
    ) -> str:
        if cancel_token is not None and cancel_token.cancelled:
            raise LLMCancelled("Request was cancelled")

        body = self._build_body(messages)
        logger.debug("llm call url=%s model=%s turns=%d",
                     self._base_url, self._config.model, len(messages))

        if cancel_token is None:
            text = await self._post(body)
        else:
            text = await self._race(self._post(body), cancel_token)

        logger.debug("llm response len=%d", len(text))
        return text

    @staticmethod
    async def _race(request_coro: Any, cancel_token: CancelToken) -> str:
        request = asyncio.ensure_future(request_coro)
        waiter = asyncio.ensure_future(cancel_token.wait())
        try:
            done, _ = await asyncio.wait(
                {request, waiter}, return_when=asyncio.FIRST_COMPLETED
            )
        except asyncio.CancelledError:
            request.cancel()
            raise
        finally:
            waiter.cancel()
        if request in done:
            return request.result()
        request.cancel()
        raise LLMCancelled("Request was cancelled")


async def check_connection(config: APIConfig) -> tuple[bool, str | None]:
    """Send a tiny completion request; returns (ok, error message)."""
    body = {
        "model": config.model or "gpt-3.5-turbo",
        "messages": [{"role": "user", "content": "Hello, this is a test message."}],
        "max_tokens": 10,
        "temperature": 0.1,
    }
    url = f"{config.base_url.rstrip('/')}/chat/completions"
    headers = {"Content-Type": "application/json"}
    if config.api_key:
        headers["Authorization"] = f"Bearer {config.api_key}"
    try:
        async with httpx.AsyncClient(timeout=CONNECTION_TEST_TIMEOUT) as client:
            resp = await client.post(url, json=body, headers=headers)
    except httpx.HTTPError as e:
        return False, str(e) or "Connection test failed"
    if resp.is_success:
        return True, None
    return False, ChatLLM._error_message(resp)


# ---------------------------------------------------------------------------
# EchoLLM: no network; echoes the last user turn
# ---------------------------------------------------------------------------

class EchoLLM:
    """Returns the last user turn as-is. No network calls."""

    async def __call__(
        self, messages: list[ChatTurn], cancel_token: CancelToken | None = None
    ) -> str:
        if cancel_token is not None and cancel_token.cancelled:
            raise LLMCancelled("Request was cancelled")
        logger.debug("EchoLLM turns=%d", len(messages))
        for turn in reversed(messages):
            if turn.role == "user":
                return turn.content
        return ""
