from __future__ import annotations

from carv_ai_bot.conversation_store import ChatTurn

TELEGRAM_MAX_MESSAGE_LENGTH = 4096

_SPLIT_SEPARATORS = ("\n\n", "\n", ". ", " ")


def build_system_prompt(*, bot_name: str, display_name: str | None) -> str:
    return f"""You are {bot_name}, an intelligent bot that gives investment insights based on cryptocurrency and blockchain news analysis.

CARV SVM Chain is a blockchain built on the SVM (Solana Virtual Machine) framework, enabling high-performance decentralized applications.

Key capabilities:
- Investment recommendations based on news sentiment analysis
- Market trend and opportunity analysis
- Buy, sell and hold recommendations for crypto assets
- Explanations of blockchain technology and DeFi concepts
- Educational content about crypto investing
- Latest cryptocurrency and blockchain news from the CARV news API

User: {display_name or "Anonymous"}

Always include a disclaimer that this is not financial advice and that users should do their own research. Focus on educational insights and market analysis rather than specific investment advice.

Current conversation context: this is a Telegram bot conversation."""


def build_chat_messages(
    *,
    system_prompt: str,
    history: tuple[ChatTurn, ...],
    prompt: str,
) -> list[dict[str, str]]:
    messages: list[dict[str, str]] = [{"role": "system", "content": system_prompt}]
    for turn in history:
        if turn.role in {"user", "assistant"} and turn.content:
            messages.append({"role": turn.role, "content": turn.content})

    messages.append({"role": "user", "content": prompt})
    return messages


def split_message(text: str, max_length: int = TELEGRAM_MAX_MESSAGE_LENGTH) -> list[str]:
    if max_length <= 0:
        raise ValueError("max_length must be positive.")
    if len(text) <= max_length:
        return [text]

    parts: list[str] = []
    current = ""
    for piece in _pieces(text, max_length, _SPLIT_SEPARATORS):
        if len(current) + len(piece) <= max_length:
            current += piece
            continue
        if current.strip():
            parts.append(current.strip())
        current = piece

    if current.strip():
        parts.append(current.strip())
    return parts


def _pieces(text: str, max_length: int, separators: tuple[str, ...]) -> list[str]:
    if len(text) <= max_length:
        return [text]

    for index, separator in enumerate(separators):
        if separator not in text:
            continue
        chunks = text.split(separator)
        pieces = [chunk + separator for chunk in chunks[:-1]] + [chunks[-1]]
        result: list[str] = []
        for piece in pieces:
            if piece:
                result.extend(_pieces(piece, max_length, separators[index + 1 :]))
        return result

    return [text[start : start + max_length] for start in range(0, len(text), max_length)]
