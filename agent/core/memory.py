"""Conversation history handling.

There is no server-side memory. The client owns the conversation and sends
it wholesale with every turn; the server only keeps the last N turns of what
it receives (older turns are dropped, not summarized).
"""

from __future__ import annotations

from typing import Iterable, List, Mapping, Optional

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage


DEFAULT_WINDOW = 20


def trim_history(history: Optional[Iterable[Mapping]], window: int = DEFAULT_WINDOW) -> List[Mapping]:
    turns = [item for item in (history or []) if (item.get("content") or "").strip()]
    if window <= 0:
        return []
    return turns[-window:]


def to_lc_messages(history: Optional[Iterable[Mapping]], window: int = DEFAULT_WINDOW) -> List[BaseMessage]:
    messages: List[BaseMessage] = []
    for item in trim_history(history, window):
        role = (item.get("role") or "").lower()
        content = item.get("content") or ""
        if role in ("assistant", "ai", "bot"):
            messages.append(AIMessage(content=content))
        else:
            # Unknown roles are treated as user input
            messages.append(HumanMessage(content=content))
    return messages


def build_messages(
    system_prompt: str,
    history: Optional[Iterable[Mapping]],
    user_message: str,
    window: int = DEFAULT_WINDOW,
) -> List[BaseMessage]:
    return [
        SystemMessage(content=system_prompt),
        *to_lc_messages(history, window),
        HumanMessage(content=user_message),
    ]
