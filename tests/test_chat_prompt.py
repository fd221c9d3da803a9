from __future__ import annotations

import pytest

from carv_ai_bot.chat_prompt import (
    build_chat_messages,
    build_system_prompt,
    split_message,
)
from carv_ai_bot.conversation_store import ChatTurn


def test_build_chat_messages_includes_system_prompt_and_history() -> None:
    messages = build_chat_messages(
        system_prompt="system prompt",
        history=(
            ChatTurn(role="user", content="old question"),
            ChatTurn(role="assistant", content="old answer"),
        ),
        prompt="new question",
    )

    assert messages == [
        {"role": "system", "content": "system prompt"},
        {"role": "user", "content": "old question"},
        {"role": "assistant", "content": "old answer"},
        {"role": "user", "content": "new question"},
    ]


def test_system_prompt_names_bot_and_user() -> None:
    prompt = build_system_prompt(bot_name="CARV AI Bot", display_name="Ada")

    assert prompt.startswith("You are CARV AI Bot,")
    assert "User: Ada" in prompt
    assert "not financial advice" in prompt


def test_system_prompt_defaults_to_anonymous() -> None:
    assert "User: Anonymous" in build_system_prompt(bot_name="Bot", display_name=None)


def test_split_message_keeps_short_text() -> None:
    assert split_message("hello", max_length=10) == ["hello"]


def test_split_message_prefers_paragraph_breaks() -> None:
    text = "First paragraph here.\n\nSecond paragraph is here."

    assert split_message(text, max_length=30) == [
        "First paragraph here.",
        "Second paragraph is here.",
    ]


def test_split_message_packs_words_within_limit() -> None:
    text = " ".join(f"word{index}" for index in range(200))

    parts = split_message(text, max_length=50)

    assert len(parts) > 1
    assert all(len(part) <= 50 for part in parts)
    assert " ".join(parts) == text


def test_split_message_hard_splits_long_tokens() -> None:
    assert split_message("x" * 25, max_length=10) == ["x" * 10, "x" * 10, "x" * 5]


def test_split_message_rejects_non_positive_limit() -> None:
    with pytest.raises(ValueError):
        split_message("hello", max_length=0)
