# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/rescueboot/utils/network.py

from __future__ import annotations

import logging
import socket
import time
from typing import Callable, Optional

log = logging.getLogger("rescueboot")

Probe = Callable[[str, int, float], bool]


def is_reachable(address: str, port: int = 22, timeout: float = 2.0) -> bool:
    """
    True if a TCP connection to address:port completes within `timeout`.
    Timeouts, refusals, unresolvable or malformed addresses all count as
    unreachable; this never raises.
    """
    try:
        with socket.create_connection((address, port), timeout=timeout):
            return True
    except (OSError, ValueError):
        return False


def wait_for_down(
    address: str,
    port: int = 22,
    *,
    interval: float = 2.0,
    timeout: float = 4.0,
    probe: Probe = is_reachable,
    sleep: Callable[[float], None] = time.sleep,
    logger: Optional[logging.LoggerAdapter] = None,
) -> None:
    """
    Block until the port stops accepting connections (reboot has begun).
    There is no overall deadline.
    """
    logger = logger or log
    while True:
        sleep(interval)
        if not probe(address, port, timeout):
            logger.debug("SSH down")
            return
        logger.debug("SSH up")


def wait_for_up(
    address: str,
    port: int = 22,
    *,
    interval: float = 2.0,
    timeout: float = 4.0,
    probe: Probe = is_reachable,
    sleep: Callable[[float], None] = time.sleep,
    logger: Optional[logging.LoggerAdapter] = None,
) -> None:
    """
    Block until the port accepts connections again. No overall deadline.
    """
    logger = logger or log
    while True:
        if probe(address, port, timeout):
            logger.debug("SSH up")
            return
        logger.debug("SSH down")
        sleep(interval)
