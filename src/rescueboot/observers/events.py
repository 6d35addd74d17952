# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/rescueboot/observers/events.py

from __future__ import annotations
from dataclasses import dataclass, asdict
from typing import List, Dict, Any, Optional
from datetime import datetime, timezone
import uuid


# ---------------------------------------------------------------------
# Base context and helper
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class BaseEvent:
    ts: str           # ISO timestamp
    run_id: str       # correlates all events in a single bootstrap invocation

    def dict(self) -> Dict[str, Any]:
        return asdict(self)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def new_ctx(run_id: Optional[str] = None) -> Dict[str, Any]:
    return {
        "ts": _now(),
        "run_id": run_id or str(uuid.uuid4()),
    }


def stamp(run_ctx: Dict[str, Any]) -> Dict[str, Any]:
    """Same run, fresh timestamp."""
    return {**run_ctx, "ts": _now()}


# ---------------------------------------------------------------------
# Run lifecycle
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class RunStarted(BaseEvent):
    targets: List[str]
    cluster: bool

@dataclass(frozen=True)
class DiscoveryTokenAcquired(BaseEvent):
    discovery_token: str

@dataclass(frozen=True)
class ManagerPublished(BaseEvent):
    host: str
    address: str

@dataclass(frozen=True)
class RunCompleted(BaseEvent):
    ok: int
    failed: int
    discovery_token: str


# ---------------------------------------------------------------------
# Per-host action lifecycle
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class ActionStarted(BaseEvent):
    host: str
    action: str
    index: int
    phase: str = "START"

@dataclass(frozen=True)
class ActionFinished(BaseEvent):
    host: str
    action: str
    elapsed_s: float
    phase: str = "FINISHED"

@dataclass(frozen=True)
class ActionRecovered(BaseEvent):
    host: str
    action: str
    message: str

@dataclass(frozen=True)
class ActionRetry(BaseEvent):
    host: str
    operation: str
    attempt: int
    delay_s: float
    error: Optional[str] = None

@dataclass(frozen=True)
class ActionFailed(BaseEvent):
    host: str
    action: str
    kind: str
    error: str
    attempts: int = 0

@dataclass(frozen=True)
class TargetSucceeded(BaseEvent):
    host: str
    elapsed_s: float

@dataclass(frozen=True)
class TargetFailed(BaseEvent):
    host: str
    action: str
    kind: str
    error: str
