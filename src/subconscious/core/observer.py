# src/subconscious/core/observer.py

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)


class LoggingObserver:
    """Default StatusObserver: status reports at INFO, errors at ERROR."""

    def __init__(self, log: logging.Logger | None = None) -> None:
        self._log = log or logger

    def on_status_report(self, text: str) -> None:
        self._log.info("%s", text)

    def on_error(self, kind: str, detail: str) -> None:
        self._log.error("[%s] %s", kind, detail)
