from __future__ import annotations

from typing import Any

import httpx


class TelegramSendError(Exception):
    pass


class TelegramClient:
    def __init__(
        self,
        *,
        bot_token: str,
        http_client: httpx.AsyncClient,
        base_url: str = "https://api.telegram.org",
    ) -> None:
        self._http_client = http_client
        self._base_url = base_url.rstrip("/")
        self._bot_token = bot_token.strip()

    async def send_text(
        self,
        *,
        chat_id: str,
        text: str,
        parse_mode: str | None = None,
        disable_web_page_preview: bool = False,
    ) -> None:
        if not chat_id:
            raise TelegramSendError("Missing Telegram chat target.")

        payload: dict[str, object] = {"chat_id": chat_id, "text": text}
        if parse_mode:
            payload["parse_mode"] = parse_mode
        if disable_web_page_preview:
            payload["disable_web_page_preview"] = True
        await self._call(method="sendMessage", payload=payload)

    async def send_chat_action(self, *, chat_id: str, action: str = "typing") -> None:
        await self._call(
            method="sendChatAction",
            payload={"chat_id": chat_id, "action": action},
        )

    async def set_my_commands(self, commands: list[tuple[str, str]]) -> None:
        await self._call(
            method="setMyCommands",
            payload={
                "commands": [
                    {"command": command, "description": description}
                    for command, description in commands
                ]
            },
        )

    async def set_webhook(self, *, url: str, secret_token: str | None = None) -> None:
        payload: dict[str, object] = {
            "url": url,
            "allowed_updates": ["message"],
        }
        if secret_token:
            payload["secret_token"] = secret_token
        await self._call(method="setWebhook", payload=payload)

    async def _call(self, *, method: str, payload: dict[str, object]) -> Any:
        url = f"{self._base_url}/bot{self._bot_token}/{method}"
        try:
            response = await self._http_client.post(url, json=payload, timeout=30)
        except (httpx.TimeoutException, httpx.NetworkError) as exc:
            raise TelegramSendError(
                f"Telegram {method} failed due to network error."
            ) from exc

        _raise_for_telegram_error(method, response)
        return _result_of(response)


def _raise_for_telegram_error(method: str, response: httpx.Response) -> None:
    if response.status_code < 400:
        try:
            body = response.json()
        except ValueError:
            return
        if isinstance(body, dict) and body.get("ok") is False:
            detail = str(body.get("description") or "No error detail")
            raise TelegramSendError(f"Telegram API {method} rejected: {detail}")
        return

    detail = response.text.strip() or "No error detail"
    if len(detail) > 240:
        detail = f"{detail[:240]}..."
    raise TelegramSendError(
        f"Telegram API {method} failed ({response.status_code}): {detail}"
    )


def _result_of(response: httpx.Response) -> Any:
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict):
        return body.get("result")
    return None
