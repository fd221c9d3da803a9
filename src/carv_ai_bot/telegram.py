from __future__ import annotations

from typing import Any

from carv_ai_bot.types import IncomingMessage


def parse_telegram_update(payload: dict[str, Any]) -> IncomingMessage | None:
    update = _as_dict(payload)
    message = _as_dict(update.get("message"))
    if not message:
        return None

    from_data = _as_dict(message.get("from"))
    chat_data = _as_dict(message.get("chat"))
    user_id = _coerce_id(from_data.get("id"))
    chat_id = _coerce_id(chat_data.get("id"))
    if user_id is None or chat_id is None:
        return None

    return IncomingMessage(
        user_id=user_id,
        chat_id=chat_id,
        text=_first_non_empty_str(message, "text", "caption") or "",
        chat_type=_first_non_empty_str(chat_data, "type") or "private",
        display_name=_display_name(from_data),
        username=_normalize_username(_first_non_empty_str(from_data, "username")),
    )


def _display_name(from_data: dict[str, Any]) -> str | None:
    parts = [
        part.strip()
        for part in (
            _first_non_empty_str(from_data, "first_name"),
            _first_non_empty_str(from_data, "last_name"),
        )
        if part
    ]
    if parts:
        return " ".join(parts)
    username = _normalize_username(_first_non_empty_str(from_data, "username"))
    return f"@{username}" if username else None


def _as_dict(value: Any) -> dict[str, Any]:
    if isinstance(value, dict):
        return value
    return {}


def _first_non_empty_str(payload: dict[str, Any], *keys: str) -> str | None:
    for key in keys:
        value = payload.get(key)
        if isinstance(value, str) and value.strip():
            return value
    return None


def _coerce_id(value: object) -> str | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return str(value)
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _normalize_username(value: str | None) -> str | None:
    if value is None:
        return None
    normalized = value.strip().removeprefix("@")
    if not normalized:
        return None
    return normalized
