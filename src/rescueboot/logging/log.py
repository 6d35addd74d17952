# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

#src/rescueboot/logging/log.py

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

# paramiko logs every transport negotiation at INFO/DEBUG
_NOISY = ("paramiko", "paramiko.transport", "urllib3")


def init_logging(
    *,
    base_dir: Path | None = None,
    name: str = "rescueboot",
    verbose: bool = False,
    run_id: Optional[str] = None,
) -> tuple[logging.Logger, str, Path]:
    """
    Set up the run logger.

    The log file gets every record, tagged with the worker thread so
    interleaved hosts can be told apart; the console shows INFO (DEBUG
    with --debug). Returns (logger, run_id, log_path); observers reuse
    the run_id so events and log lines correlate.
    """
    run_id = run_id or str(uuid.uuid4())

    base_dir = Path(base_dir) if base_dir else Path.home() / ".rescueboot" / "logs"
    base_dir.mkdir(parents=True, exist_ok=True)

    ts = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
    log_path = base_dir / f"{name}-{ts}-{run_id}.log"

    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG)
    logger.handlers.clear()
    logger.propagate = False

    fh = logging.FileHandler(log_path)
    fh.setLevel(logging.DEBUG)
    fh.setFormatter(logging.Formatter(
        "%(asctime)s | %(levelname)-7s | %(threadName)-14s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))

    ch = logging.StreamHandler()
    ch.setLevel(logging.DEBUG if verbose else logging.INFO)
    ch.setFormatter(logging.Formatter("%(asctime)s | %(levelname)-7s | %(message)s", datefmt="%H:%M:%S"))

    logger.addHandler(fh)
    logger.addHandler(ch)

    for noisy in _NOISY:
        logging.getLogger(noisy).setLevel(logging.DEBUG if verbose else logging.WARNING)

    logger.info("run_id=%s log_file=%s", run_id, log_path)
    return logger, run_id, log_path


class HostLogAdapter(logging.LoggerAdapter):
    """Prefixes every record with the host address (and action, when set)."""

    def process(self, msg, kwargs):
        host = self.extra.get("host", "")
        action = self.extra.get("action")
        prefix = f"[{host:<15}]"
        if action:
            prefix += f"[{action}]"
        return f"{prefix} {msg}", kwargs

    def for_action(self, action: str) -> "HostLogAdapter":
        return HostLogAdapter(self.logger, {**self.extra, "action": action})


def host_logger(address: str, logger: Optional[logging.Logger] = None) -> HostLogAdapter:
    return HostLogAdapter(logger or logging.getLogger("rescueboot"), {"host": address})
