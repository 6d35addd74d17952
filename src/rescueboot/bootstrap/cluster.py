# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/rescueboot/bootstrap/cluster.py

from __future__ import annotations

from concurrent.futures import Future, InvalidStateError
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from rescueboot.bootstrap.node.models import Target
from rescueboot.errors import ConfigurationError, TerminalConfigurationError


class ClusterJoinError(TerminalConfigurationError):
    pass


@dataclass(frozen=True)
class JoinCredential:
    token: str
    address: str


class JoinHandoff:
    """
    Write-once slot for the manager's join credential.

    The manager's cluster_join action publishes into it; the orchestrator
    reads it after the manager's pipeline has finished and hands it to the
    workers.
    """

    def __init__(self) -> None:
        self._future: Future = Future()

    def publish(self, credential: JoinCredential) -> None:
        try:
            self._future.set_result(credential)
        except InvalidStateError as e:
            raise ClusterJoinError("join credential has already been published") from e

    @property
    def published(self) -> bool:
        return self._future.done()

    @property
    def credential(self) -> JoinCredential:
        if not self._future.done():
            raise ClusterJoinError("join credential has not been published")
        return self._future.result()

    def wait(self, timeout: Optional[float] = None) -> JoinCredential:
        return self._future.result(timeout=timeout)


def partition(targets: Sequence[Target]) -> Tuple[Target, List[Target]]:
    """
    Split targets into (manager, workers).

    The flagged manager wins; with none flagged the first target is promoted.
    An empty set or more than one flagged manager is a configuration error.
    """
    if not targets:
        raise ConfigurationError("cluster mode needs at least one target")

    flagged = [t for t in targets if t.is_manager]
    if len(flagged) > 1:
        raise ConfigurationError(
            "more than one manager flagged: " + ", ".join(t.address for t in flagged)
        )

    manager = flagged[0] if flagged else targets[0]
    manager.is_manager = True
    workers = [t for t in targets if t is not manager]
    return manager, workers
