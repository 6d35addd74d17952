# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/rescueboot/config/loader.py

import logging
import os
from pathlib import Path
from typing import Optional

import yaml

from rescueboot.errors import ConfigurationError
from .models import BootstrapConfig

log = logging.getLogger("rescueboot")

SECRETS_ENV = "RESCUEBOOT_SECRETS_FILE"


def _merge_targets(targets: list, overrides: dict) -> None:
    """Secrets may carry per-host values keyed by address (or `ip`)."""
    for target in targets:
        if not isinstance(target, dict):
            continue
        extra = overrides.get(target.get("address") or target.get("ip"))
        if isinstance(extra, dict):
            _deep_merge(target, extra)


def _deep_merge(base: dict, override: dict) -> dict:
    """
    Merge *override* into *base* in place. Empty override values never
    replace configured ones; `targets` in the override is a mapping of
    address -> per-host values.
    """
    for key, value in override.items():
        if key == "targets" and isinstance(value, dict) and isinstance(base.get(key), list):
            _merge_targets(base[key], value)
        elif isinstance(base.get(key), dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        elif value not in (None, ""):
            base[key] = value
    return base


def _find_secrets_file(config_path: Path, explicit: Optional[Path] = None) -> Optional[Path]:
    """
    explicit argument > $RESCUEBOOT_SECRETS_FILE > secrets.yaml beside the config.
    A secrets file that was asked for by name must exist.
    """
    requested = explicit or os.environ.get(SECRETS_ENV)
    if requested:
        p = Path(requested).expanduser()
        if not p.is_file():
            raise ConfigurationError(f"secrets file {p} does not exist")
        return p

    p = config_path.parent / "secrets.yaml"
    return p if p.is_file() else None


def _load_yaml(path: Path) -> dict:
    """Read YAML with ${ENV_VAR} expansion; the document must be a mapping."""
    try:
        data = yaml.safe_load(os.path.expandvars(path.read_text(encoding="utf-8")))
    except yaml.YAMLError as e:
        raise ConfigurationError(f"{path}: invalid YAML: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"{path}: expected a mapping at the top level")
    return data


def _check_cloud_config_files(cfg: BootstrapConfig, base_dir: Path) -> None:
    for target in cfg.targets:
        path = target.cloud_config_path(base_dir)
        if path is not None and target.cloud_config is None and not path.is_file():
            raise ConfigurationError(f"target {target.address}: cloud_config_file {path} does not exist")


def load_config(path: str | Path, secrets_path: Optional[Path] = None) -> BootstrapConfig:
    """
    Load and validate a bootstrap YAML config.

    Robot credentials usually live in a secrets file merged over the config
    before validation. Relative ``cloud_config_file`` paths resolve against
    the config file's directory and must exist.

    Raises ConfigurationError for unreadable input and pydantic's
    ValidationError for a config that does not fit the schema.
    """
    path = Path(path)
    data = _load_yaml(path)

    found = _find_secrets_file(path, secrets_path)
    if found:
        log.debug("Merging secrets from %s", found)
        _deep_merge(data, _load_yaml(found))

    cfg = BootstrapConfig.model_validate(data)
    _check_cloud_config_files(cfg, path.parent)
    cfg._base_dir = path.parent
    return cfg
