# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/rescueboot/utils/known_hosts.py

from __future__ import annotations

import logging
import subprocess
import threading
from pathlib import Path
from typing import Optional

import paramiko
from paramiko.hostkeys import HostKeyEntry, InvalidHostKey

from rescueboot.errors import TerminalTransportError

log = logging.getLogger("rescueboot")


class KnownHosts:
    """
    The controller's known_hosts file, usually the operator's own
    ~/.ssh/known_hosts. Never rewritten wholesale: entries are removed with
    `ssh-keygen -R` and added by appending one line. Shared by every host in
    a run, so writes go through one lock.
    """

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path).expanduser() if path else Path.home() / ".ssh" / "known_hosts"
        self._lock = threading.Lock()

    def load_into(self, client: paramiko.SSHClient) -> None:
        """
        Add every plain host key entry to the client. Comments, markers
        (@cert-authority, @revoked) and lines paramiko cannot parse are skipped.
        """
        with self._lock:
            if not self.path.is_file():
                return
            lines = self.path.read_text(encoding="utf-8", errors="replace").splitlines()

        host_keys = client.get_host_keys()
        for lineno, line in enumerate(lines, 1):
            line = line.strip()
            if not line or line.startswith("#") or line.startswith("@"):
                continue
            try:
                entry = HostKeyEntry.from_line(line, lineno)
            except (InvalidHostKey, paramiko.SSHException, ValueError) as e:
                log.debug("%s:%d: skipping unreadable entry: %s", self.path, lineno, e)
                continue
            if entry is None or entry.key is None:
                continue
            for name in entry.hostnames:
                host_keys.add(name, entry.key.get_name(), entry.key)

    def _keygen_remove(self, name: str) -> None:
        try:
            cp = subprocess.run(
                ["ssh-keygen", "-f", str(self.path), "-R", name],
                capture_output=True,
                text=True,
                check=False,
            )
        except OSError as e:
            raise TerminalTransportError(f"could not run ssh-keygen on {self.path}: {e}") from e
        log.debug("ssh-keygen -R %s rc=%s %s", name, cp.returncode, cp.stderr.strip())

    def forget(self, *names: str) -> None:
        """ssh-keygen -R for each name; a missing file means nothing to forget."""
        with self._lock:
            if not self.path.is_file():
                return
            for name in names:
                if name:
                    self._keygen_remove(name)

    def remember(self, hostname: str, key: paramiko.PKey) -> None:
        """Replace any entry for `hostname` with `key`, leaving the rest of the file alone."""
        with self._lock:
            if self.path.is_file():
                self._keygen_remove(hostname)
            else:
                self.path.parent.mkdir(parents=True, exist_ok=True)

            line = f"{hostname} {key.get_name()} {key.get_base64()}\n"
            existing = self.path.read_bytes() if self.path.is_file() else b""
            if existing and not existing.endswith(b"\n"):
                line = "\n" + line
            with self.path.open("a", encoding="utf-8") as f:
                f.write(line)
