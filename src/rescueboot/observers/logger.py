# src/rescueboot/observers/logger.py
from __future__ import annotations

import logging

from .events import ActionFailed, ActionRetry, BaseEvent, TargetFailed

# events an operator should see without --debug
_WARN = (ActionRetry, ActionFailed, TargetFailed)


class LoggerObserver:
    """Mirrors events into the run log; retries and failures at WARNING, the rest at DEBUG."""

    def __init__(self, logger: logging.Logger):
        self.logger = logger

    def notify(self, event: BaseEvent) -> None:
        fields = ", ".join(f"{k}={v}" for k, v in event.dict().items() if k not in ("ts", "run_id"))
        level = logging.WARNING if isinstance(event, _WARN) else logging.DEBUG
        self.logger.log(level, "[EVENT] %s: %s", type(event).__name__, fields)
