"""
chaosctl Admin API Sync
=======================
Pulls the engine's configuration once at startup and pushes the complete
edited configuration back on demand.

Status transitions:
  • pull:  Connecting → Ready | Server Error | Offline
  • push:  Unsaved → Syncing → Active (→ Ready after a short delay) | Error

Every network failure is caught here, logged and turned into a status
string on the shared ``ChaosState``; nothing propagates to the caller.
Pushes always carry the full snapshot (the engine does not accept partial
updates) and there is no version check, so concurrent clients are
last-write-wins.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, Optional

import requests

from chaosctl import __version__
from chaosctl.core.model import ProxyConfiguration, serialize
from chaosctl.core.state import (
    STATUS_CONNECTING,
    STATUS_CONNECTION_FAILED,
    STATUS_ERROR,
    STATUS_OFFLINE,
    STATUS_SERVER_ERROR,
    ChaosState,
    ConnectionStatus,
)

logger = logging.getLogger(__name__)

CONFIG_PATH = "/api/config"
DEFAULT_ADMIN_URL = "http://localhost:9000"


def is_success(response: requests.Response) -> bool:
    return 200 <= response.status_code < 300


def build_session() -> requests.Session:
    """HTTP session with the client's default headers."""
    session = requests.Session()
    session.headers.update({
        "User-Agent": f"chaosctl/{__version__}",
        "Accept": "application/json",
    })
    return session


class SyncClient:
    """Reconciles a ``ChaosState`` with the engine's ``/api/config``."""

    def __init__(
        self,
        state: ChaosState,
        origin: str = DEFAULT_ADMIN_URL,
        timeout: float = 5.0,
        revert_delay: float = 2.0,
        session: Optional[requests.Session] = None,
    ):
        """
        Args:
            state: Editing state to seed and read from.
            origin: Admin API origin, e.g. ``http://localhost:9000``.
            timeout: Per-request timeout in seconds.
            revert_delay: Seconds before ``Active`` reverts to ``Ready``.
            session: Optional pre-built ``requests.Session``.
        """
        self.state = state
        self.origin = origin.rstrip("/")
        self.timeout = timeout
        self.revert_delay = revert_delay
        self._session = session or build_session()
        self._seq_lock = threading.Lock()
        self._seq = 0
        self._revert_timer: Optional[threading.Timer] = None

    @property
    def config_url(self) -> str:
        return f"{self.origin}{CONFIG_PATH}"

    # ── Sequencing ───────────────────────────────────────────────────────

    def _next_seq(self) -> int:
        with self._seq_lock:
            self._seq += 1
            return self._seq

    def _is_current(self, seq: int) -> bool:
        with self._seq_lock:
            return seq == self._seq

    # ── Pull ─────────────────────────────────────────────────────────────

    def pull(self, reload: bool = False) -> Dict[str, Any]:
        """Fetch the engine configuration and merge it into the state.

        Args:
            reload: Merge onto fresh defaults instead of the current
                configuration, dropping unsaved local edits.

        Returns:
            Result dict with ``ok`` and the resulting ``status``.
        """
        seq = self._next_seq()
        _, _, generation = self.state.snapshot()
        self.state.set_connection(ConnectionStatus.CONNECTING, STATUS_CONNECTING)

        try:
            resp = self._session.get(self.config_url, timeout=self.timeout)
        except requests.RequestException as e:
            logger.warning(f"Admin API unreachable at {self.config_url}: {e}")
            return self._settle_pull(seq, ConnectionStatus.OFFLINE, STATUS_OFFLINE, str(e))

        if not is_success(resp):
            logger.warning(f"Config fetch rejected: HTTP {resp.status_code}")
            return self._settle_pull(
                seq, ConnectionStatus.SERVER_ERROR, STATUS_SERVER_ERROR,
                f"HTTP {resp.status_code}",
            )

        try:
            data = resp.json()
        except ValueError as e:
            logger.warning(f"Malformed config response: {e}")
            return self._settle_pull(seq, ConnectionStatus.OFFLINE, STATUS_OFFLINE, f"Malformed response: {e}")
        if not isinstance(data, dict):
            logger.warning(f"Config response is not an object: {type(data).__name__}")
            return self._settle_pull(seq, ConnectionStatus.OFFLINE, STATUS_OFFLINE, "Malformed response")

        if not self._is_current(seq):
            logger.info("Discarding config pull superseded by a newer request")
            return {"ok": False, "stale": True, "status": self.state.status}

        if self.state.generation != generation:
            # Local edits made while the pull was in flight win.
            logger.info("Keeping local edits made during config pull")
            self.state.set_connection(ConnectionStatus.READY, self.state.status)
            return {"ok": True, "status": self.state.status, "preset": self.state.preset, "merged": False}

        self.state.load(data, base=ProxyConfiguration() if reload else None)
        logger.info(f"Pulled configuration from {self.config_url} (preset: {self.state.preset})")
        return {"ok": True, "status": self.state.status, "preset": self.state.preset, "merged": True}

    def _settle_pull(self, seq: int, connection: ConnectionStatus, status: str, error: str) -> Dict[str, Any]:
        if self._is_current(seq):
            self.state.set_connection(connection, status)
        return {"ok": False, "status": status, "error": error}

    # ── Push ─────────────────────────────────────────────────────────────

    def push(self) -> Dict[str, Any]:
        """Send the complete current configuration to the engine.

        Returns:
            Result dict with ``ok``, ``status`` and the ``payload`` sent.
        """
        seq = self._next_seq()
        self._cancel_revert()
        config, routes_text, generation = self.state.snapshot()
        payload = serialize(config, routes_text)
        self.state.begin_sync()

        try:
            resp = self._session.post(self.config_url, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            logger.warning(f"Config push failed: {e}")
            if self._is_current(seq):
                self.state.fail_sync(STATUS_CONNECTION_FAILED)
            return {"ok": False, "status": STATUS_CONNECTION_FAILED, "error": str(e), "payload": payload}

        if not is_success(resp):
            logger.warning(f"Config push rejected: HTTP {resp.status_code}")
            if self._is_current(seq):
                self.state.fail_sync(STATUS_ERROR)
            return {
                "ok": False,
                "status": STATUS_ERROR,
                "status_code": resp.status_code,
                "error": f"HTTP {resp.status_code}",
                "payload": payload,
            }

        if not self._is_current(seq):
            logger.info("Config push succeeded but a newer request is pending")
            return {"ok": True, "stale": True, "status": self.state.status, "payload": payload}

        clean = self.state.finish_sync(generation)
        if clean:
            self._schedule_revert()
        logger.info(f"Pushed configuration to {self.config_url}")
        return {"ok": True, "status": self.state.status, "clean": clean, "payload": payload}

    # ── Transient Status ─────────────────────────────────────────────────

    def _schedule_revert(self) -> None:
        if self.revert_delay <= 0:
            self.state.revert_status()
            return
        timer = threading.Timer(self.revert_delay, self.state.revert_status)
        timer.daemon = True
        self._revert_timer = timer
        timer.start()

    def _cancel_revert(self) -> None:
        if self._revert_timer is not None:
            self._revert_timer.cancel()
            self._revert_timer = None

    # ── Lifecycle ────────────────────────────────────────────────────────

    def close(self) -> None:
        self._cancel_revert()
        self._session.close()

    def __enter__(self) -> "SyncClient":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()
