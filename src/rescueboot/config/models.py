# src/rescueboot/config/models.py

from __future__ import annotations

from pathlib import Path
from typing import List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, PrivateAttr, field_validator, model_validator

from rescueboot.bootstrap.node.models import Action, Target
from rescueboot.discovery import DEFAULT_DISCOVERY_URL
from rescueboot.errors import ConfigurationError


class RobotSettings(BaseModel):
    """Credentials for the provider's robot webservice."""
    base_url: str = "https://robot-ws.your-server.de"
    username: str
    password: str
    timeout: float = 30.0


class DiscoverySettings(BaseModel):
    url: str = DEFAULT_DISCOVERY_URL
    timeout: float = 30.0


class SshSettings(BaseModel):
    port: int = 22
    connect_timeout: float = 30.0
    command_timeout: Optional[float] = None
    key_filename: Optional[Path] = None
    known_hosts_path: Optional[Path] = None


class WaitSettings(BaseModel):
    interval: float = 2.0        # seconds between reachability probes
    probe_timeout: float = 4.0   # per-probe connect timeout


class InstallSettings(BaseModel):
    coreos_install_url: str = "https://raw.githubusercontent.com/coreos/init/master/bin/coreos-install"
    ct_url: str = (
        "https://github.com/coreos/container-linux-config-transpiler/releases/download/"
        "v0.4.2/ct-v0.4.2-x86_64-unknown-linux-gnu"
    )
    install_login: str = "core"   # login used once the new OS is up


class BootstrapSettings(BaseModel):
    ssh: SshSettings = SshSettings()
    wait: WaitSettings = WaitSettings()
    install: InstallSettings = InstallSettings()


class TargetConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    address: str = Field(validation_alias=AliasChoices("address", "ip"))
    hostname: str
    cloud_config: Optional[str] = None
    cloud_config_file: Optional[Path] = None
    drive: str = "/dev/sda"
    channel: str = "stable"
    login: str = "root"                  # login on the rescue system
    rescue_os: str = "linux"
    rescue_os_bit: str = "64"
    install_cmd: Optional[str] = None    # replaces the coreos-install command line
    public_keys: List[str] = Field(default_factory=list)
    manager: bool = False
    route_cmd: Optional[str] = None
    post_install: Optional[str] = None
    post_install_remote: Optional[str] = None
    actions: Optional[List[Action]] = None

    @field_validator("public_keys", mode="before")
    @classmethod
    def _one_key_is_a_list(cls, v):
        if isinstance(v, str):
            return [v]
        return v

    @field_validator("rescue_os_bit", mode="before")
    @classmethod
    def _bits_as_text(cls, v):
        return str(v) if isinstance(v, int) else v

    @model_validator(mode="after")
    def _needs_cloud_config(self) -> "TargetConfig":
        if not self.cloud_config and not self.cloud_config_file:
            raise ValueError(f"target {self.address}: no cloud config provided")
        return self

    def cloud_config_path(self, base_dir: Optional[Path] = None) -> Optional[Path]:
        path = self.cloud_config_file
        if path is None:
            return None
        path = path.expanduser()
        if base_dir is not None and not path.is_absolute():
            path = base_dir / path
        return path

    def to_target(self, base_dir: Optional[Path] = None) -> Target:
        cloud_config = self.cloud_config
        if cloud_config is None:
            path = self.cloud_config_path(base_dir)
            try:
                cloud_config = path.read_text(encoding="utf-8")
            except OSError as e:
                raise ConfigurationError(f"target {self.address}: cannot read cloud config {path}: {e}") from e

        return Target(
            address=self.address,
            hostname=self.hostname,
            cloud_config=cloud_config,
            drive=self.drive,
            channel=self.channel,
            login=self.login,
            rescue_os=self.rescue_os,
            rescue_os_bit=self.rescue_os_bit,
            custom_install_cmd=self.install_cmd,
            public_keys=list(self.public_keys),
            is_manager=self.manager,
            route_cmd=self.route_cmd,
            post_install=self.post_install,
            post_install_remote=self.post_install_remote,
            actions=list(self.actions) if self.actions is not None else None,
        )


class BootstrapConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    robot: Optional[RobotSettings] = None
    discovery: DiscoverySettings = DiscoverySettings()
    ssh: SshSettings = SshSettings()
    wait: WaitSettings = WaitSettings()
    install: InstallSettings = InstallSettings()
    cluster: bool = False
    max_workers: Optional[int] = None
    actions: Optional[List[Action]] = None      # overrides the default sequence for every host
    targets: List[TargetConfig] = Field(min_length=1)

    _base_dir: Optional[Path] = PrivateAttr(default=None)

    @model_validator(mode="after")
    def _single_manager(self) -> "BootstrapConfig":
        managers = [t.address for t in self.targets if t.manager]
        if len(managers) > 1:
            raise ValueError(f"more than one manager flagged: {', '.join(managers)}")
        return self

    def settings(self) -> BootstrapSettings:
        return BootstrapSettings(ssh=self.ssh, wait=self.wait, install=self.install)

    def build_targets(self) -> List[Target]:
        return [t.to_target(self._base_dir) for t in self.targets]
