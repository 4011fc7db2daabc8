"""Conversation history windows used to build the ``context`` lines of a request."""

from __future__ import annotations

from dataclasses import dataclass
from typing import MutableSequence, Sequence


@dataclass(slots=True)
class MessageHistoryItem:
    sender: str
    content: str
    created_at: str = ""

    def as_line(self) -> str:
        return f"{self.sender}: {self.content}"

    def line_length(self) -> int:
        return len(self.sender or "") + 2 + len(self.content or "")


def append_with_sliding_window(
    history: MutableSequence[MessageHistoryItem],
    message: MessageHistoryItem,
    *,
    max_count: int = 50,
    max_chars: int = 8000,
) -> None:
    """Append ``message`` and prune the oldest entries in place.

    Entries are dropped first to satisfy ``max_count`` and then until the
    approximate character total of the remaining lines fits ``max_chars``.
    """

    history.append(message)
    while len(history) > max_count:
        del history[0]

    chars = 0
    keep_start = 0
    for idx in range(len(history) - 1, -1, -1):
        size = history[idx].line_length()
        if chars + size > max_chars:
            keep_start = idx + 1
            break
        chars += size
    if keep_start:
        del history[:keep_start]


def build_context_window(
    history: Sequence[MessageHistoryItem],
    *,
    max_messages: int = 12,
    max_chars: int = 1500,
) -> list[str]:
    """Return ``"sender: content"`` lines, oldest first, without touching ``history``.

    Lines are picked newest-first until either budget would be exceeded.
    """

    picked: list[str] = []
    chars = 0
    for item in reversed(history):
        if len(picked) >= max_messages:
            break
        line = item.as_line()
        if chars + len(line) > max_chars:
            break
        picked.append(line)
        chars += len(line)
    picked.reverse()
    return picked


__all__ = ["MessageHistoryItem", "append_with_sliding_window", "build_context_window"]
