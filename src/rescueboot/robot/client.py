# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/rescueboot/robot/client.py

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol

import requests

log = logging.getLogger("rescueboot")


@dataclass
class ApiResult:
    success: bool
    status: int = 0
    data: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None

    def __str__(self) -> str:
        if self.success:
            return f"OK ({self.status})"
        return f"HTTP {self.status}: {self.error}"


class ProvisioningApi(Protocol):
    def enable_rescue(self, address: str, os: str, arch: str) -> ApiResult: ...

    def disable_rescue(self, address: str) -> ApiResult: ...

    def reset(self, address: str, mode: str = "hw") -> ApiResult: ...


class RobotClient:
    """
    Minimal Hetzner Robot webservice client:
      - activate / deactivate the rescue system
      - hardware reset

    HTTP and network failures come back as non-success ApiResults; deciding
    whether to retry is the caller's job.
    """

    def __init__(
        self,
        *,
        base_url: str = "https://robot-ws.your-server.de",
        username: str,
        password: str,
        timeout: float = 30.0,
    ):
        self.base_url = str(base_url).rstrip("/")
        self.timeout = timeout
        self.http = requests.Session()
        self.http.auth = (username, password)

    # -----------------------
    # HTTP helpers
    # -----------------------
    def _request(self, method: str, path: str, data: Optional[dict] = None) -> ApiResult:
        url = f"{self.base_url}{path}"
        try:
            r = self.http.request(method, url, data=data, timeout=self.timeout)
        except requests.RequestException as e:
            log.debug("%s %s failed: %s", method, url, e)
            return ApiResult(success=False, error=str(e))

        try:
            body = r.json() if r.content else {}
        except ValueError:
            body = {}

        if not r.ok:
            err = body.get("error", {}) if isinstance(body, dict) else {}
            message = err.get("message") if isinstance(err, dict) else None
            return ApiResult(success=False, status=r.status_code, data=body, error=message or r.text)

        return ApiResult(success=True, status=r.status_code, data=body)

    # -----------------------
    # Rescue system
    # -----------------------
    def enable_rescue(self, address: str, os: str = "linux", arch: str = "64") -> ApiResult:
        return self._request("POST", f"/boot/{address}/rescue", data={"os": os, "arch": arch})

    def disable_rescue(self, address: str) -> ApiResult:
        return self._request("DELETE", f"/boot/{address}/rescue")

    # -----------------------
    # Reset
    # -----------------------
    def reset(self, address: str, mode: str = "hw") -> ApiResult:
        return self._request("POST", f"/reset/{address}", data={"type": mode})
