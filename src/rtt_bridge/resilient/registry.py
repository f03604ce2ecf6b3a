from __future__ import annotations

import threading
from typing import Any

from rtt_bridge.resilient.client import ResilientClient, ResilientClientConfig


class ResilientClientRegistry:
    """Share one ``ResilientClient`` per upstream service name.

    The application builds one registry at startup and hands it to every
    component that talks to an upstream, so unrelated call sites against the
    same service share one failure history. Tests build their own registry.
    """

    def __init__(self) -> None:
        self._clients: dict[str, ResilientClient] = {}
        self._lock = threading.Lock()

    def get_or_create(
        self,
        name: str,
        config: ResilientClientConfig | None = None,
        **client_kwargs: Any,
    ) -> ResilientClient:
        """Return the client for ``name``, creating it on first request.

        ``config`` and ``client_kwargs`` only apply when the client is created;
        later calls return the existing instance unchanged.
        """
        with self._lock:
            client = self._clients.get(name)
            if client is None:
                client = ResilientClient(name, config, **client_kwargs)
                self._clients[name] = client
            return client

    def get(self, name: str) -> ResilientClient | None:
        with self._lock:
            return self._clients.get(name)

    def names(self) -> tuple[str, ...]:
        with self._lock:
            return tuple(self._clients)

    def clear_all(self) -> None:
        """Drop every registered client. Intended for deterministic tests."""
        with self._lock:
            self._clients.clear()

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._clients

    def __len__(self) -> int:
        with self._lock:
            return len(self._clients)
