# tests/test_memory_journal.py

from __future__ import annotations

import pytest

from subconscious.memory.journal import MemoryJournal


def test_eleventh_entry_pushes_oldest_to_long_term() -> None:
    journal = MemoryJournal(10)

    for i in range(1, 12):
        journal.record(f"m{i}")

    snap = journal.snapshot()
    assert snap.short_term == tuple(f"m{i}" for i in range(2, 12))
    assert snap.long_term == ("m1",)
    assert len(journal) == 11


def test_no_entry_is_lost_or_duplicated() -> None:
    journal = MemoryJournal(3)
    entries = [f"e{i}" for i in range(20)]

    for entry in entries:
        journal.record(entry)

    snap = journal.snapshot()
    assert len(snap.short_term) == 3
    assert list(snap.long_term) + list(snap.short_term) == entries


def test_evict_if_full_only_acts_at_capacity() -> None:
    journal = MemoryJournal(2)
    journal.record("a")
    assert journal.evict_if_full() is None

    journal.record("b")
    assert journal.evict_if_full() == "a"
    assert journal.snapshot().short_term == ("b",)
    assert journal.snapshot().long_term == ("a",)


def test_render_shows_both_tiers() -> None:
    journal = MemoryJournal(1)
    journal.record("old")
    journal.record("new")

    text = journal.snapshot().render()
    assert "Short-term memory (1):" in text
    assert "  - new" in text
    assert "Long-term memory (1 total" in text
    assert "  - old" in text

    assert "(empty)" in MemoryJournal().snapshot().render()


def test_capacity_must_be_positive() -> None:
    with pytest.raises(ValueError):
        MemoryJournal(0)
