# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

from typing import Protocol

import requests

from rescueboot.errors import FatalRunError

DEFAULT_DISCOVERY_URL = "https://discovery.etcd.io/new"


class TokenSource(Protocol):
    def fetch_token(self) -> str: ...


class DiscoveryTokenSource:
    """Asks the etcd discovery service for a fresh cluster token."""

    def __init__(self, url: str = DEFAULT_DISCOVERY_URL, timeout: float = 30.0):
        self.url = url
        self.timeout = timeout

    def fetch_token(self) -> str:
        try:
            r = requests.get(self.url, timeout=self.timeout)
        except requests.RequestException as e:
            raise FatalRunError(f"Could not fetch discovery token from {self.url}: {e}") from e
        if r.status_code != 200:
            raise FatalRunError(f"Discovery service {self.url} returned {r.status_code} {r.text}")
        token = r.text.strip()
        if not token:
            raise FatalRunError(f"Discovery service {self.url} returned an empty token")
        return token
