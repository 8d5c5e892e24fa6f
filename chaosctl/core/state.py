"""
chaosctl Editable State
=======================
The single owned container for everything the user edits: the working
configuration, the chaos-route edit string, the detected preset, the dirty
flag and the connection / edit status shown in the UI.

Every user mutation goes through this class so the dirty flag and the
``Unsaved`` indicator can never drift from the configuration itself.
Access is serialized with a re-entrant lock because the traffic poller and
the status revert timer run on background threads.
"""

from __future__ import annotations

import threading
from dataclasses import replace
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from chaosctl.core.model import (
    THROTTLE_FIELDS,
    FailureMode,
    HeaderRules,
    MockRule,
    ProxyConfiguration,
    StatusRule,
    coerce_field,
    format_routes,
    merge,
    parse_routes,
    resolve_field,
    serialize,
    to_bool,
)
from chaosctl.core.presets import CUSTOM, classify, get_preset, preset_values
from chaosctl.core.rules import RuleListEditor


class ConnectionStatus(str, Enum):
    CONNECTING = "connecting"
    READY = "ready"
    SERVER_ERROR = "server_error"
    OFFLINE = "offline"


class EditStatus(str, Enum):
    SAVED = "saved"
    UNSAVED = "unsaved"
    SYNCING = "syncing"
    ERROR = "error"


STATUS_CONNECTING = "Connecting..."
STATUS_READY = "Ready"
STATUS_SERVER_ERROR = "Server Error"
STATUS_OFFLINE = "Offline (Is the proxy engine running?)"
STATUS_UNSAVED = "Unsaved"
STATUS_SYNCING = "Syncing..."
STATUS_ACTIVE = "Active"
STATUS_ERROR = "Error"
STATUS_CONNECTION_FAILED = "Connection Failed"

RULE_COMMANDS = {
    "status_rules": "/rule",
    "mock_rules": "/mock",
    "header_rules": "/header",
}


class ChaosState:
    """Owned, lock-guarded editing state for one engine connection."""

    def __init__(self, config: Optional[ProxyConfiguration] = None):
        self._lock = threading.RLock()
        self.config = (config or ProxyConfiguration()).copy()
        self.routes_text = format_routes(self.config.chaos_routes)
        self.preset = classify(self.config)
        self.dirty = False
        self.generation = 0
        self.connection = ConnectionStatus.CONNECTING
        self.edit = EditStatus.SAVED
        self.status = STATUS_CONNECTING

        self.status_rules: RuleListEditor[StatusRule] = RuleListEditor(
            StatusRule,
            lambda: self.config.status_rules,
            lambda rules: self._replace_rules("status_rules", rules),
        )
        self.mock_rules: RuleListEditor[MockRule] = RuleListEditor(
            MockRule,
            lambda: self.config.mock_rules,
            lambda rules: self._replace_rules("mock_rules", rules),
        )

    # ── Derived ──────────────────────────────────────────────────────────

    @property
    def can_apply(self) -> bool:
        return self.dirty

    @property
    def routes(self) -> List[str]:
        return parse_routes(self.routes_text)

    def snapshot(self) -> Tuple[ProxyConfiguration, str, int]:
        """Consistent copy of (config, routes edit string, edit generation)."""
        with self._lock:
            return self.config.copy(), self.routes_text, self.generation

    def to_wire(self) -> Dict[str, Any]:
        with self._lock:
            return serialize(self.config, self.routes_text)

    # ── User Mutations ───────────────────────────────────────────────────

    def _touch(self) -> None:
        """Record a user edit. Caller holds the lock."""
        self.dirty = True
        self.generation += 1
        if self.edit != EditStatus.SYNCING:
            self.edit = EditStatus.UNSAVED
            self.status = STATUS_UNSAVED

    def set_field(self, name: str, value: Any) -> Any:
        """Set one top-level field by wire key or attribute name.

        Returns the stored (coerced) value.
        """
        attr = resolve_field(name)
        if attr in RULE_COMMANDS:
            raise KeyError(f"{name} cannot be set directly; use {RULE_COMMANDS[attr]}")
        with self._lock:
            if attr == "chaos_routes":
                stored = value if isinstance(value, str) else format_routes(parse_routes(value))
                self.routes_text = stored
            else:
                stored = coerce_field(attr, value)
                setattr(self.config, attr, stored)
            if attr in THROTTLE_FIELDS:
                self.preset = CUSTOM
            self._touch()
            return stored

    def set_header_rule(self, name: str, enabled: Any) -> HeaderRules:
        attr = HeaderRules.resolve(name)
        with self._lock:
            self.config.header_rules = replace(self.config.header_rules, **{attr: to_bool(enabled)})
            self._touch()
            return self.config.header_rules

    def set_failure_mode(self, mode: str) -> FailureMode:
        """Select a failure mode; unlike ``set_field`` unknown names are rejected."""
        failure = FailureMode(str(mode).strip().lower())
        with self._lock:
            self.config.failure_mode = failure
            self._touch()
            return failure

    def apply_preset(self, preset_id: str) -> Dict[str, int]:
        """Copy a preset's throttle values into the configuration."""
        values = preset_values(preset_id)
        with self._lock:
            for attr, value in values.items():
                setattr(self.config, attr, value)
            self.preset = get_preset(preset_id)["id"]
            self._touch()
        return values

    def _replace_rules(self, attr: str, rules: List[Any]) -> None:
        with self._lock:
            setattr(self.config, attr, list(rules))
            self._touch()

    # ── Sync Transitions ─────────────────────────────────────────────────

    def load(self, raw: Any, base: Optional[ProxyConfiguration] = None) -> None:
        """Merge an engine configuration into local state (pull).

        Fields absent from ``raw`` keep their value from ``base``, which
        defaults to the current configuration.
        """
        with self._lock:
            self.config = merge(self.config if base is None else base, raw)
            self.routes_text = format_routes(self.config.chaos_routes)
            self.preset = classify(self.config)
            self.dirty = False
            self.edit = EditStatus.SAVED
            self.connection = ConnectionStatus.READY
            self.status = STATUS_READY

    def set_connection(self, connection: ConnectionStatus, status: str) -> None:
        with self._lock:
            self.connection = connection
            self.status = status

    def begin_sync(self) -> None:
        with self._lock:
            self.edit = EditStatus.SYNCING
            self.status = STATUS_SYNCING

    def finish_sync(self, generation: int) -> bool:
        """Mark a push as accepted.

        The dirty flag is only cleared when nothing was edited after the
        pushed snapshot was taken. Returns whether the state is now clean.
        """
        with self._lock:
            if generation == self.generation:
                self.dirty = False
                self.edit = EditStatus.SAVED
                self.status = STATUS_ACTIVE
                return True
            self.edit = EditStatus.UNSAVED
            self.status = STATUS_UNSAVED
            return False

    def fail_sync(self, status: str) -> None:
        with self._lock:
            self.edit = EditStatus.ERROR
            self.status = status

    def revert_status(self) -> bool:
        """Drop the transient ``Active`` confirmation back to ``Ready``."""
        with self._lock:
            if self.status == STATUS_ACTIVE:
                self.status = STATUS_READY
                return True
            return False

    # ── Display ──────────────────────────────────────────────────────────

    def to_dict(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "status": self.status,
                "connection": self.connection.value,
                "edit": self.edit.value,
                "dirty": self.dirty,
                "can_apply": self.can_apply,
                "preset": self.preset,
                "routes_text": self.routes_text,
                "config": serialize(self.config, self.routes_text),
            }
