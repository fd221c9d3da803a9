from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Literal

logger = logging.getLogger(__name__)

Role = Literal["user", "assistant"]


@dataclass(frozen=True)
class ChatTurn:
    role: Role
    content: str


@dataclass(frozen=True)
class ConversationStats:
    active_users: int
    total_turns: int


class ConversationStore:
    def __init__(self, *, max_exchanges: int) -> None:
        if max_exchanges < 1:
            raise ValueError("Conversation history must keep at least one exchange.")
        self._max_turns = max_exchanges * 2
        self._conversations: dict[str, list[ChatTurn]] = {}

    @property
    def max_turns(self) -> int:
        return self._max_turns

    def get_history(self, user_id: str) -> tuple[ChatTurn, ...]:
        turns = self._conversations.get(user_id)
        if not turns:
            return ()
        return tuple(turns[-self._max_turns :])

    def append_exchange(
        self,
        user_id: str,
        *,
        user_text: str,
        assistant_text: str,
    ) -> None:
        turns = self._conversations.setdefault(user_id, [])
        turns.extend(
            (
                ChatTurn(role="user", content=user_text),
                ChatTurn(role="assistant", content=assistant_text),
            )
        )

        overflow = len(turns) - self._max_turns
        if overflow > 0:
            del turns[:overflow]

    def clear(self, user_id: str) -> None:
        self._conversations.pop(user_id, None)
        logger.info("conversation_cleared user_id=%s", user_id)

    def get_stats(self) -> ConversationStats:
        return ConversationStats(
            active_users=len(self._conversations),
            total_turns=sum(len(turns) for turns in self._conversations.values()),
        )
