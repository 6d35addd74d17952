# src/rescueboot/observers/jsonfile.py
from __future__ import annotations

import json
import threading
from pathlib import Path

from .events import BaseEvent
from .interface import Observer


class JsonFileObserver(Observer):
    """
    One JSON object per line: {"type": <event class>, ...fields}. Host
    threads share one instance, so writes are serialized and flushed per
    event to keep lines whole if the run is killed.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path).expanduser()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def notify(self, event: BaseEvent) -> None:
        line = json.dumps({"type": type(event).__name__, **event.dict()}, default=str, sort_keys=True)
        with self._lock:
            with self.path.open("a", encoding="utf-8") as f:
                f.write(line + "\n")
                f.flush()
