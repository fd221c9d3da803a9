from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol

import httpx

from carv_ai_bot.config import ProviderKind

logger = logging.getLogger(__name__)

ANTHROPIC_DEFAULT_BASE_URL = "https://api.anthropic.com"
ANTHROPIC_DEFAULT_MODEL = "claude-3-sonnet-20240229"
ANTHROPIC_API_VERSION = "2023-06-01"

_RETRYABLE_STATUS = {429, 500, 502, 503, 504}


class ChatReplyError(Exception):
    def __init__(self, user_message: str, *, status_code: int | None = None) -> None:
        super().__init__(user_message)
        self.user_message = user_message
        self.status_code = status_code


class ChatProvider(Protocol):
    name: str

    async def generate_reply(
        self,
        messages: list[dict[str, str]],
        *,
        model: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> str: ...


class OpenAIProvider:
    name = "openai"

    def __init__(
        self,
        *,
        api_key: str,
        model: str,
        http_client: httpx.AsyncClient,
        base_url: str,
        timeout_seconds: float,
        max_tokens: int,
        temperature: float,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._http_client = http_client
        self._base_url = base_url.rstrip("/")
        self._timeout_seconds = timeout_seconds
        self._max_tokens = max_tokens
        self._temperature = temperature

    async def generate_reply(
        self,
        messages: list[dict[str, str]],
        *,
        model: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> str:
        payload = {
            "model": model or self._model,
            "messages": messages,
            "max_tokens": max_tokens or self._max_tokens,
            "temperature": self._temperature if temperature is None else temperature,
        }
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }
        response = await _post_with_retries(
            self._http_client,
            f"{self._base_url}/chat/completions",
            payload=payload,
            headers=headers,
            timeout_seconds=self._timeout_seconds,
            provider=self.name,
        )
        return _extract_chat_completion_text(response)


class CustomProvider(OpenAIProvider):
    """Any endpoint speaking the OpenAI chat completions format."""

    name = "custom"


class AnthropicProvider:
    name = "anthropic"

    def __init__(
        self,
        *,
        api_key: str,
        model: str,
        http_client: httpx.AsyncClient,
        base_url: str = ANTHROPIC_DEFAULT_BASE_URL,
        timeout_seconds: float,
        max_tokens: int,
        temperature: float,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._http_client = http_client
        self._base_url = _anthropic_root(base_url)
        self._timeout_seconds = timeout_seconds
        self._max_tokens = max_tokens
        self._temperature = temperature

    async def generate_reply(
        self,
        messages: list[dict[str, str]],
        *,
        model: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> str:
        system_parts = [
            message["content"] for message in messages if message["role"] == "system"
        ]
        chat_messages = [
            {"role": message["role"], "content": message["content"]}
            for message in messages
            if message["role"] in {"user", "assistant"}
        ]

        payload: dict[str, Any] = {
            "model": model or self._model,
            "max_tokens": max_tokens or self._max_tokens,
            "temperature": self._temperature if temperature is None else temperature,
            "messages": chat_messages,
        }
        if system_parts:
            payload["system"] = "\n\n".join(system_parts)

        headers = {
            "x-api-key": self._api_key,
            "anthropic-version": ANTHROPIC_API_VERSION,
            "Content-Type": "application/json",
        }
        response = await _post_with_retries(
            self._http_client,
            f"{self._base_url}/v1/messages",
            payload=payload,
            headers=headers,
            timeout_seconds=self._timeout_seconds,
            provider=self.name,
        )
        return _extract_anthropic_text(response)


def detect_provider(base_url: str | None) -> ProviderKind:
    if not base_url:
        return "openai"

    normalized = base_url.strip().lower()
    if "anthropic" in normalized:
        return "anthropic"
    if "openai" in normalized:
        return "openai"
    return "custom"


def create_provider(
    kind: str,
    *,
    api_key: str,
    model: str,
    http_client: httpx.AsyncClient,
    base_url: str,
    timeout_seconds: float,
    max_tokens: int,
    temperature: float,
) -> ChatProvider:
    normalized = kind.strip().lower()
    if normalized == "openai":
        return OpenAIProvider(
            api_key=api_key,
            model=model,
            http_client=http_client,
            base_url=base_url,
            timeout_seconds=timeout_seconds,
            max_tokens=max_tokens,
            temperature=temperature,
        )
    if normalized == "custom":
        return CustomProvider(
            api_key=api_key,
            model=model,
            http_client=http_client,
            base_url=base_url,
            timeout_seconds=timeout_seconds,
            max_tokens=max_tokens,
            temperature=temperature,
        )
    if normalized == "anthropic":
        return AnthropicProvider(
            api_key=api_key,
            model=model,
            http_client=http_client,
            base_url=base_url,
            timeout_seconds=timeout_seconds,
            max_tokens=max_tokens,
            temperature=temperature,
        )

    raise ValueError(f"Unknown AI provider type: {kind}")


async def _post_with_retries(
    http_client: httpx.AsyncClient,
    url: str,
    *,
    payload: dict[str, Any],
    headers: dict[str, str],
    timeout_seconds: float,
    provider: str,
) -> httpx.Response:
    for attempt in range(3):
        try:
            response = await http_client.post(
                url,
                json=payload,
                headers=headers,
                timeout=timeout_seconds,
            )
        except (httpx.TimeoutException, httpx.NetworkError) as exc:
            if attempt == 2:
                raise ChatReplyError("Chat service timed out. Try again.") from exc
            await asyncio.sleep(0.5 * (attempt + 1))
            continue

        if response.status_code < 400:
            return response

        if response.status_code in _RETRYABLE_STATUS and attempt < 2:
            logger.info(
                "chat_provider_retry provider=%s status=%d attempt=%d",
                provider,
                response.status_code,
                attempt + 1,
            )
            await asyncio.sleep(0.5 * (attempt + 1))
            continue

        if response.status_code in {401, 403}:
            raise ChatReplyError(
                "Chat service authorization failed.",
                status_code=response.status_code,
            )

        detail = _extract_response_detail(response)
        logger.error(
            "chat_provider_error provider=%s status=%d detail=%s",
            provider,
            response.status_code,
            detail,
        )
        raise ChatReplyError(
            f"Chat reply failed: {detail}",
            status_code=response.status_code,
        )

    raise ChatReplyError("Chat service failed unexpectedly.")


def _response_json(response: httpx.Response) -> dict[str, Any]:
    try:
        payload = response.json()
    except ValueError as exc:
        raise ChatReplyError("Chat service returned invalid JSON.") from exc

    if not isinstance(payload, dict):
        raise ChatReplyError("Chat service returned an invalid response format.")
    return payload


def _extract_chat_completion_text(response: httpx.Response) -> str:
    payload = _response_json(response)

    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices:
        raise ChatReplyError("Chat service returned an empty reply.")

    first_choice = choices[0]
    if not isinstance(first_choice, dict):
        raise ChatReplyError("Chat service returned an invalid reply payload.")

    message = first_choice.get("message")
    if not isinstance(message, dict):
        raise ChatReplyError("Chat service returned an invalid message payload.")

    content = _content_text(message.get("content"))
    if not content:
        raise ChatReplyError("Chat service returned an empty reply.")
    return content


def _extract_anthropic_text(response: httpx.Response) -> str:
    payload = _response_json(response)
    content = _content_text(payload.get("content"))
    if not content:
        raise ChatReplyError("Chat service returned an empty reply.")
    return content


def _content_text(content: Any) -> str:
    if isinstance(content, str):
        return content.strip()

    if isinstance(content, list):
        parts: list[str] = []
        for item in content:
            if isinstance(item, dict):
                text = item.get("text")
                if isinstance(text, str) and text.strip():
                    parts.append(text.strip())
        return "\n".join(parts)

    return ""


def _extract_response_detail(response: httpx.Response) -> str:
    detail = ""
    try:
        payload = response.json()
        if isinstance(payload, dict):
            detail = str(
                payload.get("error")
                or payload.get("message")
                or payload.get("detail")
                or payload
            )
        else:
            detail = str(payload)
    except ValueError:
        detail = response.text

    detail = " ".join(detail.strip().split())
    if not detail:
        return "No error detail"
    if len(detail) > 240:
        return f"{detail[:240]}..."
    return detail


def _anthropic_root(base_url: str) -> str:
    root = base_url.rstrip("/")
    return root.removesuffix("/v1")
