from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class IncomingMessage:
    user_id: str
    chat_id: str
    text: str
    chat_type: str = "private"
    display_name: str | None = None
    username: str | None = None

    @property
    def is_text(self) -> bool:
        return bool(self.text.strip())

    @property
    def is_command(self) -> bool:
        return self.text.lstrip().startswith("/")
