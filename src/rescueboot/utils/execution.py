# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import logging
import subprocess
import time
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional, Tuple

from rescueboot.observers.dispatcher import EventBus
from rescueboot.observers.events import new_ctx, stamp
from rescueboot.utils.network import Probe, is_reachable

if TYPE_CHECKING:
    from rescueboot.bootstrap.cluster import JoinHandoff
    from rescueboot.bootstrap.template_renderer import TemplateRenderer
    from rescueboot.config.models import BootstrapSettings
    from rescueboot.robot.client import ProvisioningApi
    from rescueboot.utils.known_hosts import KnownHosts
    from rescueboot.utils.ssh import RemoteChannel

LocalRunner = Callable[[str], Tuple[int, str]]


def run_local(cmd: str) -> Tuple[int, str]:
    """Run a shell command on the controller; returns (rc, combined output)."""
    cp = subprocess.run(cmd, shell=True, capture_output=True, text=True, check=False)
    return cp.returncode, cp.stdout + cp.stderr


@dataclass(frozen=True)
class ExecutionContext:
    """
    Everything one host's pipeline needs, handed in explicitly.
    The orchestrator builds one per host; nothing here is looked up globally.
    """

    api: "ProvisioningApi"
    channel: "RemoteChannel"
    known_hosts: "KnownHosts"
    renderer: "TemplateRenderer"
    settings: "BootstrapSettings"
    log: logging.LoggerAdapter
    discovery_token: str = ""
    handoff: Optional["JoinHandoff"] = None
    cluster: bool = False
    bus: EventBus = field(default_factory=EventBus)
    run_ctx: Dict[str, Any] = field(default_factory=new_ctx)
    probe: Probe = is_reachable
    sleep: Callable[[float], None] = time.sleep
    local_runner: LocalRunner = run_local

    def emit(self, event_cls, **fields) -> None:
        self.bus.emit(event_cls(**fields, **stamp(self.run_ctx)))

    def with_log(self, log: logging.LoggerAdapter) -> "ExecutionContext":
        return replace(self, log=log)
