from __future__ import annotations

from reply_flow.context import MessageHistoryItem, append_with_sliding_window, build_context_window


def _msg(sender: str, content: str) -> MessageHistoryItem:
    return MessageHistoryItem(sender=sender, content=content, created_at="2024-01-01T00:00:00Z")


def test_append_prunes_oldest_by_count():
    history: list[MessageHistoryItem] = []
    for i in range(5):
        append_with_sliding_window(history, _msg("user", f"m{i}"), max_count=3)
    assert [m.content for m in history] == ["m2", "m3", "m4"]


def test_append_prunes_by_character_budget():
    history = [_msg("guest", "a" * 10), _msg("user", "b" * 10)]
    # each line costs len(sender) + 2 + len(content)
    append_with_sliding_window(history, _msg("guest", "c" * 10), max_chars=35)
    assert [m.content[0] for m in history] == ["b", "c"]


def test_append_mutates_in_place():
    history: list[MessageHistoryItem] = []
    same = history
    append_with_sliding_window(history, _msg("user", "hi"))
    assert same is history and len(history) == 1


def test_context_window_is_oldest_first_and_read_only():
    history = [_msg("guest", "hello"), _msg("user", "hi there"), _msg("guest", "how are you?")]
    lines = build_context_window(history, max_messages=2)
    assert lines == ["user: hi there", "guest: how are you?"]
    assert len(history) == 3


def test_context_window_stops_at_character_budget():
    history = [_msg("guest", "x" * 50), _msg("user", "short")]
    assert build_context_window(history, max_chars=20) == ["user: short"]
    assert build_context_window([], max_chars=20) == []
