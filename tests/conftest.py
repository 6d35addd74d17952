import threading
from contextlib import contextmanager

import pytest

from rescueboot.bootstrap.node.models import Target
from rescueboot.bootstrap.orchestrator import Orchestrator
from rescueboot.bootstrap.template_renderer import TemplateRenderer
from rescueboot.config.models import BootstrapSettings
from rescueboot.errors import TerminalTransportError
from rescueboot.logging.log import host_logger
from rescueboot.observers.dispatcher import EventBus
from rescueboot.robot.client import ApiResult
from rescueboot.utils.execution import ExecutionContext
from rescueboot.utils.ssh import HostKeyMismatchError

CLOUD_CONFIG = "hostname: {{ hostname }}\ndiscovery: {{ discovery_token }}\n"


# ----------------- Fakes -----------------

class Capture:
    def __init__(self): self.events = []
    def notify(self, ev): self.events.append(ev)


class FakeApi:
    """Robot API double; `rescue_failures` / `reset_failures` map address -> number of failing calls."""

    def __init__(self, rescue_failures=None, reset_failures=None):
        self.calls = []
        self.rescue_failures = dict(rescue_failures or {})
        self.reset_failures = dict(reset_failures or {})
        self._count = {}
        self._lock = threading.Lock()

    def _bump(self, op, address):
        with self._lock:
            n = self._count.get((op, address), 0) + 1
            self._count[(op, address)] = n
            return n

    def enable_rescue(self, address, os, arch):
        self.calls.append(("enable_rescue", address))
        n = self._bump("enable_rescue", address)
        if n <= self.rescue_failures.get(address, 0):
            return ApiResult(success=False, status=409, error="BOOT_ALREADY_ENABLED")
        return ApiResult(success=True, status=200, data={"rescue": {"password": f"pw-{n}"}})

    def disable_rescue(self, address):
        self.calls.append(("disable_rescue", address))
        return ApiResult(success=True, status=200)

    def reset(self, address, mode="hw"):
        self.calls.append(("reset", address))
        n = self._bump("reset", address)
        if n <= self.reset_failures.get(address, 0):
            return ApiResult(success=False, status=500, error="RESET_FAILED")
        return ApiResult(success=True, status=200, data={"reset": {"type": mode}})

    def calls_for(self, address):
        return [op for op, a in self.calls if a == address]


class FakeSession:
    def __init__(self, channel, address, login):
        self.channel = channel
        self.address = address
        self.login = login

    def exec(self, cmd, check=True):
        self.channel.log.append(("exec", self.address, self.login, cmd))
        fail = self.channel.fail_on.get(self.address)
        if fail and fail in cmd:
            raise TerminalTransportError(f"{self.address}: `{cmd}` exited with 1: boom")
        if cmd == "cat /etc/hostname":
            return self.channel.hostnames.get(self.address, "unknown") + "\n"
        if cmd == "docker swarm join-token worker -q":
            return self.channel.join_token + "\n"
        return ""

    def put_text(self, remote_path, content):
        self.channel.log.append(("put", self.address, remote_path, content))


class FakeChannel:
    def __init__(self, hostnames=None, fail_on=None, mismatch=None, join_token="SWMTKN-1-test"):
        self.log = []
        self.hostnames = dict(hostnames or {})
        self.fail_on = dict(fail_on or {})
        self.mismatch = set(mismatch or ())
        self.join_token = join_token

    @contextmanager
    def session(self, address, login, password=None):
        self.log.append(("connect", address, login, password))
        if address in self.mismatch:
            self.mismatch.discard(address)
            raise HostKeyMismatchError(address, "NEW-KEY")
        try:
            yield FakeSession(self, address, login)
        finally:
            self.log.append(("close", address))

    def commands(self, address):
        return [e[3] for e in self.log if e[0] == "exec" and e[1] == address]


class FakeKnownHosts:
    def __init__(self):
        self.forgotten = []
        self.remembered = []

    def forget(self, *names):
        self.forgotten.extend(names)

    def remember(self, hostname, key):
        self.remembered.append((hostname, key))


class ToggleProbe:
    """Alternates unreachable / reachable per address: down, up, down, up ..."""

    def __init__(self):
        self._state = {}
        self._lock = threading.Lock()

    def __call__(self, address, port, timeout):
        with self._lock:
            up = self._state.get(address, True)
            self._state[address] = not up
            return not up


class StaticTokenSource:
    def __init__(self, token="https://discovery.etcd.io/abc123"):
        self.token = token
        self.calls = 0

    def fetch_token(self):
        self.calls += 1
        return self.token


# ----------------- Fixtures -----------------

@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def make_target():
    def _make(address="10.0.0.1", hostname="node-1", **kw):
        kw.setdefault("cloud_config", CLOUD_CONFIG)
        return Target(address=address, hostname=hostname, **kw)
    return _make


@pytest.fixture
def make_ctx(sleeps):
    def _make(target, **kw):
        kw.setdefault("api", FakeApi())
        kw.setdefault("channel", FakeChannel(hostnames={target.address: target.hostname}))
        kw.setdefault("known_hosts", FakeKnownHosts())
        kw.setdefault("renderer", TemplateRenderer())
        kw.setdefault("settings", BootstrapSettings())
        kw.setdefault("log", host_logger(target.address))
        kw.setdefault("discovery_token", "https://discovery.etcd.io/abc123")
        kw.setdefault("probe", ToggleProbe())
        kw.setdefault("sleep", sleeps.append)
        kw.setdefault("local_runner", lambda cmd: (0, ""))
        return ExecutionContext(**kw)
    return _make


@pytest.fixture
def make_orchestrator(sleeps):
    def _make(**kw):
        cap = Capture()
        kw.setdefault("api", FakeApi())
        kw.setdefault("token_source", StaticTokenSource())
        kw.setdefault("channel", FakeChannel())
        kw.setdefault("known_hosts", FakeKnownHosts())
        kw.setdefault("bus", EventBus([cap]))
        kw.setdefault("probe", ToggleProbe())
        kw.setdefault("sleep", sleeps.append)
        kw.setdefault("local_runner", lambda cmd: (0, ""))
        return Orchestrator(**kw), cap
    return _make
