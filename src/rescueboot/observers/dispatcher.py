# src/rescueboot/observers/dispatcher.py
from __future__ import annotations
import logging
from typing import List
from .events import BaseEvent

log = logging.getLogger("rescueboot")


class EventBus:
    def __init__(self, observers: List = None):
        self._observers = observers or []

    def emit(self, event: BaseEvent) -> None:
        for ob in self._observers:
            try:
                ob.notify(event)
            except Exception:
                # observers must not break a bootstrap run
                log.warning(
                    "observer %s failed on %s",
                    ob.__class__.__name__,
                    event.__class__.__name__,
                    exc_info=True,
                )
