# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/rescueboot/errors.py
from __future__ import annotations

from typing import Any


class BootstrapError(RuntimeError):
    """Base class for failures raised while bootstrapping a host."""

    kind = "bootstrap"


class TerminalProvisioningError(BootstrapError):
    """Raised when a provisioning API operation keeps failing."""

    kind = "provisioning"

    def __init__(self, operation: str, result: Any = None):
        self.operation = operation
        self.result = result
        super().__init__(f"{operation} failed: {result}")


class TerminalVerificationError(BootstrapError):
    """Raised when the installed system does not look like the one we asked for."""

    kind = "verification"

    def __init__(self, expected: str, observed: str):
        self.expected = expected
        self.observed = observed
        super().__init__(
            f"Hostnames do not match: assumed {expected!r} but received {observed!r}"
        )


class TerminalConfigurationError(BootstrapError):
    """Template rendering failed or per-host configuration is missing."""

    kind = "configuration"


class TerminalTransportError(BootstrapError):
    """SSH/SFTP failure, or a remote command that exited non-zero."""

    kind = "transport"


class LocalCommandError(BootstrapError):
    kind = "local-command"


class FatalRunError(BootstrapError):
    """Aborts the whole run before (or instead of) fanning out to targets."""

    kind = "fatal"


class ConfigurationError(ValueError):
    """Invalid target set or action list, detected before a run starts."""
