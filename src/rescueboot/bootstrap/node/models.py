# rescueboot/src/rescueboot/bootstrap/node/models.py

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, List, Optional, Tuple

from rescueboot.errors import ConfigurationError
from rescueboot.utils.retry import RetryCounter


class Action(str, Enum):
    """Every step a host pipeline knows how to run."""

    REMOVE_FROM_LOCAL_KNOWN_HOSTS = "remove_from_local_known_hosts"
    ENABLE_RESCUE_MODE = "enable_rescue_mode"
    RESET = "reset"
    WAIT_FOR_SSH_DOWN = "wait_for_ssh_down"
    WAIT_FOR_SSH_UP = "wait_for_ssh_up"
    UPDATE_LOCAL_KNOWN_HOSTS = "update_local_known_hosts"
    INSTALLIMAGE = "installimage"
    REBOOT = "reboot"
    VERIFY_INSTALLATION = "verify_installation"
    CONFIGURE_ROUTE = "configure_route"
    CLUSTER_JOIN = "cluster_join"
    POST_INSTALL = "post_install"
    POST_INSTALL_REMOTE = "post_install_remote"


DEFAULT_ACTIONS: Tuple[Action, ...] = (
    Action.REMOVE_FROM_LOCAL_KNOWN_HOSTS,
    Action.ENABLE_RESCUE_MODE,
    Action.RESET,
    Action.WAIT_FOR_SSH_DOWN,
    Action.WAIT_FOR_SSH_UP,
    Action.UPDATE_LOCAL_KNOWN_HOSTS,
    Action.INSTALLIMAGE,
    Action.REBOOT,
    Action.WAIT_FOR_SSH_DOWN,
    Action.WAIT_FOR_SSH_UP,
    Action.UPDATE_LOCAL_KNOWN_HOSTS,
    Action.REMOVE_FROM_LOCAL_KNOWN_HOSTS,
    Action.VERIFY_INSTALLATION,
    Action.CONFIGURE_ROUTE,
    Action.CLUSTER_JOIN,
    Action.POST_INSTALL,
    Action.POST_INSTALL_REMOTE,
)


def parse_actions(names: Iterable[str | Action]) -> List[Action]:
    """Validate a per-host action list against the Action enumeration."""
    actions: List[Action] = []
    unknown: List[str] = []
    for name in names:
        try:
            actions.append(Action(name))
        except ValueError:
            unknown.append(str(name))
    if unknown:
        valid = ", ".join(a.value for a in Action)
        raise ConfigurationError(f"Unknown actions: {', '.join(unknown)}. Valid actions: {valid}")
    return actions


@dataclass
class Target:
    """
    One bare-metal host being bootstrapped. Only its own pipeline mutates it.
    """
    address: str                  # IP the provider API and SSH use
    hostname: str                 # hostname the installed system must report
    cloud_config: str             # template text for the OS configuration document
    drive: str = "/dev/sda"
    channel: str = "stable"
    login: str = "root"
    password: Optional[str] = None          # filled in by enable_rescue_mode
    public_keys: List[str] = field(default_factory=list)
    rescue_os: str = "linux"
    rescue_os_bit: str = "64"
    is_manager: bool = False
    route_cmd: Optional[str] = None
    post_install: Optional[str] = None          # local command template
    post_install_remote: Optional[str] = None   # remote command lines template
    actions: Optional[List[Action]] = None      # None -> orchestrator default
    custom_install_cmd: Optional[str] = None    # replaces the coreos-install command line
    join_token: Optional[str] = None
    join_address: Optional[str] = None
    retries: RetryCounter = field(default_factory=RetryCounter, repr=False)

    def __post_init__(self) -> None:
        if self.actions is not None:
            self.actions = parse_actions(self.actions)

    @property
    def install_cmd(self) -> str:
        if self.custom_install_cmd:
            return self.custom_install_cmd
        return (
            f"export TERM=xterm; /tmp/coreos-install -d {self.drive} "
            f"-C {self.channel} -i /tmp/ignition.json"
        )


@dataclass
class TargetOutcome:
    address: str
    hostname: str
    status: str                       # "OK" | "FAILED"
    failed_action: Optional[str] = None
    error_kind: Optional[str] = None
    error: Optional[str] = None
    elapsed_s: float = 0.0
    completed: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status == "OK"
