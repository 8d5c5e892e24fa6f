"""
chaosctl Traffic Feed
=====================
Background poller for the engine's ``/api/activity`` log.

The engine bounds the log; each successful poll simply replaces the local
buffer with whatever the engine returned. Failed polls are logged and
skipped without touching the buffer or the sync status, and polling keeps
going until ``stop()`` is called.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Mapping
from typing import Any, Callable, Dict, List, Optional

import requests

from chaosctl.core.model import TrafficLog
from chaosctl.core.sync import DEFAULT_ADMIN_URL, build_session, is_success

logger = logging.getLogger(__name__)

ACTIVITY_PATH = "/api/activity"


class TrafficFeedPoller:
    """Periodically refreshes the traffic log from the engine."""

    def __init__(
        self,
        origin: str = DEFAULT_ADMIN_URL,
        interval: float = 1.0,
        timeout: float = 5.0,
        session: Optional[requests.Session] = None,
    ):
        self.origin = origin.rstrip("/")
        self.interval = interval
        self.timeout = timeout
        self._session = session or build_session()
        self._logs: List[TrafficLog] = []
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._callbacks: List[Callable[[List[TrafficLog]], None]] = []
        self.polls: int = 0
        self.failures: int = 0  # consecutive
        self.last_poll: float = 0
        self.last_error: str = ""

    @property
    def activity_url(self) -> str:
        return f"{self.origin}{ACTIVITY_PATH}"

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # ── Lifecycle ────────────────────────────────────────────────────────

    def start(self) -> bool:
        """Start polling in a daemon thread. The first poll happens immediately."""
        if self.is_running:
            return False
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run,
            daemon=True,
            name="chaosctl-feed",
        )
        self._thread.start()
        logger.debug(f"Traffic feed polling {self.activity_url} every {self.interval}s")
        return True

    def stop(self, timeout: Optional[float] = None) -> None:
        """Cancel polling and wait for the worker thread to exit."""
        self._stop_event.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout if timeout is not None else self.timeout + self.interval)
        self._thread = None

    def close(self) -> None:
        self.stop()
        self._session.close()

    def _run(self) -> None:
        while not self._stop_event.is_set():
            self.poll_once()
            self._stop_event.wait(self.interval)

    # ── Polling ──────────────────────────────────────────────────────────

    def poll_once(self) -> bool:
        """Fetch the activity log once. Returns True when the buffer was replaced."""
        try:
            resp = self._session.get(self.activity_url, timeout=self.timeout)
            if not is_success(resp):
                self._record_failure(f"HTTP {resp.status_code}")
                return False
            data = resp.json()
        except (requests.RequestException, ValueError) as e:
            self._record_failure(str(e))
            return False

        if not isinstance(data, list):
            self._record_failure(f"Expected a list, got {type(data).__name__}")
            return False

        logs = [TrafficLog.from_dict(item) for item in data if isinstance(item, Mapping)]
        with self._lock:
            self._logs = logs
            self.polls += 1
            self.failures = 0
            self.last_error = ""
            self.last_poll = time.time()

        for cb in list(self._callbacks):
            try:
                cb(logs)
            except Exception as e:
                logger.debug(f"Feed callback error: {e}")
        return True

    def _record_failure(self, error: str) -> None:
        with self._lock:
            self.failures += 1
            self.last_error = error
            first = self.failures == 1
        if first:
            logger.warning(f"Traffic poll failed: {error}")
        else:
            logger.debug(f"Traffic poll failed ({self.failures} in a row): {error}")

    def on_update(self, callback: Callable[[List[TrafficLog]], None]) -> None:
        """Register a callback invoked with the new buffer after each successful poll."""
        self._callbacks.append(callback)

    # ── Access ───────────────────────────────────────────────────────────

    def get_logs(
        self,
        limit: Optional[int] = None,
        tampered_only: bool = False,
        method: Optional[str] = None,
    ) -> List[TrafficLog]:
        """Current buffer in engine order, optionally filtered."""
        with self._lock:
            logs = list(self._logs)
        if tampered_only:
            logs = [entry for entry in logs if entry.tampered]
        if method:
            logs = [entry for entry in logs if entry.method.upper() == method.upper()]
        if limit:
            logs = logs[:limit]
        return logs

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            logs = list(self._logs)
            total = len(logs)
            tamper_types: Dict[str, int] = {}
            status_codes: Dict[str, int] = {}
            total_duration = 0
            tampered = 0
            for entry in logs:
                if entry.tampered:
                    tampered += 1
                    label = entry.tamper_type or "TAMPERED"
                    tamper_types[label] = tamper_types.get(label, 0) + 1
                bucket = f"{entry.status // 100}xx" if entry.status else "pending"
                status_codes[bucket] = status_codes.get(bucket, 0) + 1
                total_duration += entry.duration

            return {
                "is_running": self.is_running,
                "total": total,
                "tampered": tampered,
                "tamper_types": tamper_types,
                "status_codes": status_codes,
                "avg_duration_ms": round(total_duration / total, 1) if total else 0,
                "polls": self.polls,
                "failures": self.failures,
                "last_error": self.last_error,
                "last_poll": self.last_poll,
            }
