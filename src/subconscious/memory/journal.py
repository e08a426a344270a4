# src/subconscious/memory/journal.py

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass

logger = logging.getLogger(__name__)

DEFAULT_SHORT_TERM_CAPACITY = 10


@dataclass(slots=True, frozen=True)
class MemorySnapshot:
    short_term: tuple[str, ...]
    long_term: tuple[str, ...]

    def render(self, *, long_term_tail: int = 5) -> str:
        lines = [f"Short-term memory ({len(self.short_term)}):"]
        lines += [f"  - {entry}" for entry in self.short_term] or ["  (empty)"]
        lines.append(f"Long-term memory ({len(self.long_term)} total, last {long_term_tail}):")
        tail = self.long_term[-long_term_tail:] if long_term_tail > 0 else ()
        lines += [f"  - {entry}" for entry in tail] or ["  (empty)"]
        return "\n".join(lines)


class MemoryJournal:
    """
    Bounded short-term ring buffer with overflow into an unbounded long-term log.

    When short-term is full, its oldest entry moves to long-term before the new
    entry is added: nothing is dropped and nothing appears in both.
    """

    def __init__(self, short_term_capacity: int = DEFAULT_SHORT_TERM_CAPACITY) -> None:
        if short_term_capacity < 1:
            raise ValueError("short_term_capacity must be >= 1")
        self.capacity = int(short_term_capacity)
        # No maxlen: eviction is explicit so the evicted entry can be kept.
        self.short_term: deque[str] = deque()
        self.long_term: list[str] = []

    def __len__(self) -> int:
        return len(self.short_term) + len(self.long_term)

    def evict_if_full(self) -> str | None:
        if len(self.short_term) < self.capacity:
            return None
        evicted = self.short_term.popleft()
        self.long_term.append(evicted)
        logger.debug("Memory moved to long-term: %r", evicted)
        return evicted

    def record(self, entry: str) -> None:
        self.evict_if_full()
        self.short_term.append(entry)
        logger.debug("Memory recorded: %r", entry)

    def snapshot(self) -> MemorySnapshot:
        return MemorySnapshot(short_term=tuple(self.short_term), long_term=tuple(self.long_term))
