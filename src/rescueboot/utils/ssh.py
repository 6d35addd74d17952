# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Iterator, Optional, Protocol, Tuple

import paramiko

from rescueboot.errors import TerminalTransportError

if TYPE_CHECKING:
    from rescueboot.utils.known_hosts import KnownHosts

log = logging.getLogger("rescueboot")


class HostKeyMismatchError(TerminalTransportError):
    """
    The host presented a key that differs from the one in known_hosts.
    Carries the new key so callers can record it.
    """

    def __init__(self, hostname: str, key: paramiko.PKey, expected: Optional[paramiko.PKey] = None):
        self.hostname = hostname
        self.key = key
        self.expected = expected
        super().__init__(f"Host key for {hostname} has changed")


class _RememberNewHostsPolicy(paramiko.MissingHostKeyPolicy):
    """Accept unknown hosts and write their key to known_hosts."""

    def __init__(self, known_hosts: "KnownHosts"):
        self.known_hosts = known_hosts

    def missing_host_key(self, client, hostname, key):
        client.get_host_keys().add(hostname, key.get_name(), key)
        self.known_hosts.remember(hostname, key)


class RemoteSession:
    def __init__(self, client: paramiko.SSHClient, *, address: str, command_timeout: Optional[float] = None):
        self.client = client
        self.address = address
        self.command_timeout = command_timeout

    def run(self, cmd: str) -> Tuple[int, str, str]:
        try:
            stdin, stdout, stderr = self.client.exec_command(cmd, timeout=self.command_timeout)
            out = stdout.read().decode("utf-8", errors="replace")
            err = stderr.read().decode("utf-8", errors="replace")
            rc = stdout.channel.recv_exit_status()
        except (paramiko.SSHException, OSError) as e:
            raise TerminalTransportError(f"{self.address}: `{cmd}` failed: {e}") from e
        return rc, out, err

    def exec(self, cmd: str, *, check: bool = True) -> str:
        """
        Run a command and return its stdout. With check=True a non-zero exit
        status raises TerminalTransportError.
        """
        rc, out, err = self.run(cmd)
        if check and rc != 0:
            raise TerminalTransportError(
                f"{self.address}: `{cmd}` exited with {rc}: {err.strip() or out.strip()}"
            )
        return out

    def put_text(self, remote_path: str, content: str) -> None:
        try:
            sftp = self.client.open_sftp()
            try:
                with sftp.open(remote_path, "w") as f:
                    f.write(content)
            finally:
                sftp.close()
        except (paramiko.SSHException, OSError) as e:
            raise TerminalTransportError(f"{self.address}: upload to {remote_path} failed: {e}") from e

    def close(self) -> None:
        self.client.close()


class RemoteChannel(Protocol):
    def session(self, address: str, login: str, password: Optional[str] = None):
        """Context manager yielding a RemoteSession; closes it on exit."""
        ...


class SshChannel:
    """
    paramiko-backed remote execution channel. One SSH connection per
    `session()` block.
    """

    def __init__(
        self,
        *,
        port: int = 22,
        connect_timeout: float = 30.0,
        command_timeout: Optional[float] = None,
        key_filename: Optional[Path] = None,
        known_hosts: Optional["KnownHosts"] = None,
    ):
        self.port = port
        self.connect_timeout = connect_timeout
        self.command_timeout = command_timeout
        self.key_filename = Path(key_filename).expanduser() if key_filename else None
        self.known_hosts = known_hosts

    def _client(self) -> paramiko.SSHClient:
        client = paramiko.SSHClient()
        if self.known_hosts is None:
            client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
            return client
        # unknown hosts get recorded, changed keys raise BadHostKeyException
        try:
            self.known_hosts.load_into(client)
        except OSError as e:
            client.close()
            raise TerminalTransportError(f"cannot read {self.known_hosts.path}: {e}") from e
        client.set_missing_host_key_policy(_RememberNewHostsPolicy(self.known_hosts))
        return client

    def connect(self, address: str, login: str, password: Optional[str] = None) -> RemoteSession:
        client = self._client()
        try:
            client.connect(
                hostname=address,
                port=self.port,
                username=login,
                password=password,
                key_filename=str(self.key_filename) if self.key_filename else None,
                look_for_keys=self.key_filename is None,
                allow_agent=True,
                timeout=self.connect_timeout,
            )
        except paramiko.BadHostKeyException as e:
            client.close()
            raise HostKeyMismatchError(e.hostname, e.key, e.expected_key) from e
        except (paramiko.SSHException, OSError) as e:
            client.close()
            raise TerminalTransportError(f"SSH to {login}@{address} failed: {e}") from e

        return RemoteSession(client, address=address, command_timeout=self.command_timeout)

    @contextmanager
    def session(self, address: str, login: str, password: Optional[str] = None) -> Iterator[RemoteSession]:
        remote = self.connect(address, login, password)
        try:
            yield remote
        finally:
            remote.close()
