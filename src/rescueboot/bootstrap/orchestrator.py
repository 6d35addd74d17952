# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/rescueboot/bootstrap/orchestrator.py

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Union

from rescueboot.bootstrap.cluster import JoinCredential, JoinHandoff, partition
from rescueboot.bootstrap.node.models import DEFAULT_ACTIONS, Action, Target, TargetOutcome, parse_actions
from rescueboot.bootstrap.node.pipeline import run_target
from rescueboot.bootstrap.template_renderer import TemplateRenderer
from rescueboot.config.models import BootstrapSettings, TargetConfig
from rescueboot.discovery import TokenSource
from rescueboot.errors import FatalRunError
from rescueboot.logging.log import host_logger
from rescueboot.observers.dispatcher import EventBus
from rescueboot.observers.events import DiscoveryTokenAcquired, RunCompleted, RunStarted, new_ctx, stamp
from rescueboot.robot.client import ProvisioningApi
from rescueboot.utils.execution import ExecutionContext, LocalRunner, run_local
from rescueboot.utils.known_hosts import KnownHosts
from rescueboot.utils.network import Probe, is_reachable
from rescueboot.utils.ssh import RemoteChannel

log = logging.getLogger("rescueboot")


@dataclass
class RunOptions:
    cluster: bool = False
    max_workers: Optional[int] = None   # default: one worker per target


@dataclass
class RunSummary:
    discovery_token: str
    outcomes: List[TargetOutcome] = field(default_factory=list)
    credential: Optional[JoinCredential] = None

    def add(self, outcome: TargetOutcome) -> None:
        self.outcomes.append(outcome)

    @property
    def succeeded(self) -> List[TargetOutcome]:
        return [o for o in self.outcomes if o.ok]

    @property
    def failed(self) -> List[TargetOutcome]:
        return [o for o in self.outcomes if not o.ok]

    def summary(self) -> str:
        return f"OK={len(self.succeeded)} FAILED={len(self.failed)}"


class Orchestrator:
    """
    Owns the target set for one run: fetches the discovery token once,
    runs the manager first in cluster mode, then fans out one thread per
    remaining host.
    """

    def __init__(
        self,
        *,
        api: ProvisioningApi,
        token_source: TokenSource,
        channel: RemoteChannel,
        known_hosts: Optional[KnownHosts] = None,
        renderer: Optional[TemplateRenderer] = None,
        settings: Optional[BootstrapSettings] = None,
        actions: Iterable[Union[str, Action]] = DEFAULT_ACTIONS,
        bus: Optional[EventBus] = None,
        logger: Optional[logging.Logger] = None,
        run_id: Optional[str] = None,
        probe: Probe = is_reachable,
        sleep=time.sleep,
        local_runner: LocalRunner = run_local,
    ):
        self.api = api
        self.token_source = token_source
        self.channel = channel
        self.known_hosts = known_hosts or KnownHosts()
        self.renderer = renderer or TemplateRenderer()
        self.settings = settings or BootstrapSettings()
        self.actions = tuple(parse_actions(actions))
        self.bus = bus or EventBus()
        self.logger = logger or log
        self.run_ctx = new_ctx(run_id)
        self.probe = probe
        self.sleep = sleep
        self.local_runner = local_runner

        self.targets: List[Target] = []
        self.discovery_token: Optional[str] = None

    # ------------------ targets ------------------

    def add_target(self, param: Union[Target, TargetConfig, Dict[str, Any]]) -> Target:
        if isinstance(param, Target):
            target = param
        elif isinstance(param, TargetConfig):
            target = param.to_target()
        else:
            target = TargetConfig.model_validate(param).to_target()
        self.targets.append(target)
        return target

    def __lshift__(self, param) -> "Orchestrator":
        self.add_target(param)
        return self

    # ------------------ helpers ------------------

    def _emit(self, event_cls, **fields) -> None:
        self.bus.emit(event_cls(**fields, **stamp(self.run_ctx)))

    def _acquire_discovery_token(self) -> str:
        if self.discovery_token is None:
            try:
                self.discovery_token = self.token_source.fetch_token()
            except FatalRunError:
                raise
            except Exception as e:
                raise FatalRunError(f"Could not acquire discovery token: {e}") from e
            self._emit(DiscoveryTokenAcquired, discovery_token=self.discovery_token)
        return self.discovery_token

    def _context_for(self, target: Target, *, handoff: Optional[JoinHandoff], cluster: bool) -> ExecutionContext:
        return ExecutionContext(
            api=self.api,
            channel=self.channel,
            known_hosts=self.known_hosts,
            renderer=self.renderer,
            settings=self.settings,
            log=host_logger(target.address, self.logger),
            discovery_token=self.discovery_token or "",
            handoff=handoff,
            cluster=cluster,
            bus=self.bus,
            run_ctx=self.run_ctx,
            probe=self.probe,
            sleep=self.sleep,
            local_runner=self.local_runner,
        )

    def _run_one(self, target: Target, handoff: Optional[JoinHandoff], cluster: bool) -> TargetOutcome:
        actions = target.actions if target.actions is not None else self.actions
        ctx = self._context_for(target, handoff=handoff, cluster=cluster)
        return run_target(target, actions, ctx)

    # ------------------ public API ------------------

    def run(self, options: Optional[RunOptions] = None) -> RunSummary:
        options = options or RunOptions()
        self.logger.info("%-20s", "START")
        self._emit(RunStarted, targets=[t.address for t in self.targets], cluster=options.cluster)

        token = self._acquire_discovery_token()
        summary = RunSummary(discovery_token=token)

        handoff = JoinHandoff() if options.cluster else None
        pending = list(self.targets)
        workers = options.max_workers or max(1, len(pending))

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="rescueboot") as pool:
            if options.cluster:
                manager, pending = partition(self.targets)
                self.logger.info(
                    "cluster mode: manager %s, workers %s",
                    manager.address,
                    ", ".join(t.address for t in pending) or "-",
                )

                # phase 1: the manager runs alone and to the end
                manager_outcome = pool.submit(self._run_one, manager, handoff, True).result()
                summary.add(manager_outcome)
                if not manager_outcome.ok:
                    raise FatalRunError(
                        f"manager {manager.address} failed at {manager_outcome.failed_action}: "
                        f"{manager_outcome.error}"
                    )
                if not handoff.published:
                    raise FatalRunError(f"manager {manager.address} finished without publishing a join credential")

                summary.credential = handoff.credential
                for worker in pending:
                    worker.join_token = summary.credential.token
                    worker.join_address = summary.credential.address

            # phase 2 (or the only phase): everyone else in parallel
            futures = [pool.submit(self._run_one, t, handoff, options.cluster) for t in pending]
            for future in futures:
                summary.add(future.result())

        for outcome in summary.failed:
            self.logger.error(
                "[%s] failed at %s: %s: %s",
                outcome.address,
                outcome.failed_action,
                outcome.error_kind,
                outcome.error,
            )
        self.logger.info("%-20s", "DONE!")
        self.logger.info("%-20s", f"Discovery token {token}")
        self._emit(RunCompleted, ok=len(summary.succeeded), failed=len(summary.failed), discovery_token=token)
        return summary
