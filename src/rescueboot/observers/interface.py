# src/rescueboot/observers/interface.py
from __future__ import annotations

from typing import Protocol

from .events import BaseEvent


class Observer(Protocol):
    """
    Receives run and per-host events. `notify` is called from the host
    worker threads, so implementations that hold state must lock.
    Exceptions are logged by the EventBus and otherwise ignored.
    """

    def notify(self, event: BaseEvent) -> None: ...
