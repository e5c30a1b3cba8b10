"""Conversation history truncation for follow-up requests."""

from __future__ import annotations

from dataclasses import dataclass

from siftdesk.config import settings
from siftdesk.models.message import Message, Sender


@dataclass(frozen=True)
class HistoryTurn:
    role: str  # "user" or "assistant"
    text: str


def truncate_history(messages: list[Message], max_recent_turns: int | None = None) -> list[HistoryTurn]:
    """Keep the opening query and first report, then only the recent exchanges.

    Error and still-loading messages are never sent back to the model.
    """
    turns = settings.max_recent_turns if max_recent_turns is None else max_recent_turns
    keep_recent = turns * 2

    first_user = next((m for m in messages if m.sender is Sender.USER), None)
    first_report = next(
        (m for m in messages if m.sender is Sender.ASSISTANT and m.is_initial_report), None
    )

    selected: list[Message] = []
    seen: set[str] = set()
    for essential in (first_user, first_report):
        if essential is not None and essential.id not in seen:
            selected.append(essential)
            seen.add(essential.id)

    anchor = first_report or first_user
    start = messages.index(anchor) + 1 if anchor is not None else 0
    later = messages[start:]
    recent = later[max(0, len(later) - keep_recent):] if keep_recent else []
    for message in recent:
        if message.id not in seen:
            selected.append(message)
            seen.add(message.id)

    return [
        HistoryTurn(role=m.sender.value, text=m.text)
        for m in selected
        if not m.is_error and not m.is_loading
    ]
