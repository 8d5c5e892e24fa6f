"""
chaosctl Configuration Model
============================
Canonical schema of the engine's chaos configuration: field defaults,
wire-key mapping, permissive numeric coercion, route-list conversion and
the normalize/serialize pair used on every pull and push.

The engine's schema may grow independently of the client, so ``normalize``
never rejects input: absent or malformed fields fall back to defaults.
Numeric fields follow ``Number(x) || 0`` semantics (anything non-numeric
becomes 0) rather than strict validation.
"""

from __future__ import annotations

import json
import math
import threading
import time
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple, Type, TypeVar, Union

# ── Enums ────────────────────────────────────────────────────────────────────


class ProxyMode(str, Enum):
    """How the engine routes traffic to origins."""
    SPLIT = "split"
    UNIFIED = "unified"

    @classmethod
    def from_str(cls, value: Any) -> "ProxyMode":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.SPLIT


class FailureMode(str, Enum):
    """Mutually exclusive connection-level faults."""
    NORMAL = "normal"
    TIMEOUT = "timeout"
    HANG_BODY = "hang_body"
    CLOSE_BODY = "close_body"

    @classmethod
    def from_str(cls, value: Any) -> "FailureMode":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.NORMAL


# ── Field Table ──────────────────────────────────────────────────────────────

# attribute -> key written on the wire
WIRE_KEYS: Dict[str, str] = {
    "mode": "Mode",
    "target_frontend": "TargetFrontend",
    "target_backend": "TargetBackend",
    "target_unified": "TargetUnified",
    "chaos_routes": "ChaosRoutes",
    "request_delay_ms": "LagToReq",
    "response_delay_ms": "LagToResp",
    "bandwidth_up": "bandwidthUp",
    "bandwidth_down": "bandwidthDown",
    "jitter_ms": "jitter",
    "failure_mode": "failureMode",
    "header_rules": "headerRules",
    "status_rules": "statusRules",
    "mock_rules": "mockRules",
}

THROTTLE_FIELDS: Tuple[str, ...] = (
    "request_delay_ms",
    "response_delay_ms",
    "bandwidth_up",
    "bandwidth_down",
    "jitter_ms",
)

TARGET_FIELDS: Tuple[str, ...] = ("target_frontend", "target_backend", "target_unified")

# Lower-cased wire keys and attribute names both resolve to the attribute.
_FIELD_INDEX: Dict[str, str] = {}
for _attr, _key in WIRE_KEYS.items():
    _FIELD_INDEX[_key.lower()] = _attr
    _FIELD_INDEX[_attr.lower()] = _attr


def resolve_field(name: str) -> str:
    """Map a wire key or attribute name (any case) to the attribute name."""
    attr = _FIELD_INDEX.get(str(name).strip().lower())
    if attr is None:
        raise KeyError(f"Unknown configuration field: {name}")
    return attr


# ── Coercion ─────────────────────────────────────────────────────────────────

def to_number(value: Any) -> int:
    """Coerce anything to an int, ``Number(x) || 0`` style.

    None, empty or non-numeric strings, NaN and infinities all become 0.
    Fractions are truncated toward zero since the engine stores integers.
    """
    if value is None:
        return 0
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        number = value
    else:
        text = str(value).strip()
        if not text or "_" in text:
            return 0
        try:
            number = float(text)
        except ValueError:
            try:
                return int(text, 0)
            except ValueError:
                return 0
    if math.isnan(number) or math.isinf(number):
        return 0
    return int(number)


def non_negative(value: Any) -> int:
    return max(0, to_number(value))


def clamp_percent(value: Any) -> int:
    """Coerce to an int percentage within [0, 100]."""
    return min(100, max(0, to_number(value)))


_TRUE_STRINGS = {"1", "true", "yes", "on", "y"}


def to_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_STRINGS
    return bool(value)


# ── Routes ───────────────────────────────────────────────────────────────────

def parse_routes(value: Union[str, Iterable[Any], None]) -> List[str]:
    """Split the comma-separated edit form (or clean a list) into routes.

    Entries are trimmed and empty ones dropped. Order and duplicates are kept.
    """
    if value is None:
        return []
    if isinstance(value, str):
        parts: Iterable[Any] = value.split(",")
    else:
        parts = value
    routes = []
    for part in parts:
        if part is None:
            continue
        text = str(part).strip()
        if text:
            routes.append(text)
    return routes


def format_routes(routes: Union[str, Iterable[str], None]) -> str:
    """Join routes into the comma-separated edit form."""
    if isinstance(routes, str):
        return routes
    return ", ".join(routes or [])


def _dedupe(items: Iterable[str]) -> List[str]:
    seen = set()
    result = []
    for item in items:
        if item not in seen:
            seen.add(item)
            result.append(item)
    return result


# ── Rule IDs ─────────────────────────────────────────────────────────────────

_id_lock = threading.Lock()
_last_rule_id = 0


def new_rule_id() -> str:
    """Millisecond timestamp id, bumped so consecutive ids never collide."""
    global _last_rule_id
    with _id_lock:
        candidate = int(time.time() * 1000)
        if candidate <= _last_rule_id:
            candidate = _last_rule_id + 1
        _last_rule_id = candidate
        return str(candidate)


# ── Lookup Helpers ───────────────────────────────────────────────────────────

_MISSING = object()


def _index(raw: Mapping) -> Dict[str, Any]:
    return {str(k).lower(): v for k, v in raw.items()}


def _get(index: Dict[str, Any], *names: str) -> Any:
    """Case-insensitive lookup; JSON null counts as absent."""
    for name in names:
        value = index.get(name.lower(), _MISSING)
        if value is not _MISSING and value is not None:
            return value
    return _MISSING


# ── Data Models ──────────────────────────────────────────────────────────────

DEFAULT_MOCK_BODY = '{\n  "status": "ok",\n  "data": []\n}'


@dataclass(frozen=True)
class HeaderRules:
    """Independent header-tampering toggles."""
    strip_cors: bool = False
    strip_cache: bool = False
    corrupt_content_type: bool = False

    WIRE_KEYS = {
        "strip_cors": "stripCORS",
        "strip_cache": "stripCache",
        "corrupt_content_type": "corruptContentType",
    }

    @property
    def any_enabled(self) -> bool:
        return self.strip_cors or self.strip_cache or self.corrupt_content_type

    def to_dict(self) -> Dict[str, bool]:
        return {
            "stripCORS": bool(self.strip_cors),
            "stripCache": bool(self.strip_cache),
            "corruptContentType": bool(self.corrupt_content_type),
        }

    @classmethod
    def from_dict(cls, data: Any) -> "HeaderRules":
        if not isinstance(data, Mapping):
            return cls()
        index = _index(data)
        values = {}
        for attr, key in cls.WIRE_KEYS.items():
            value = _get(index, key, attr)
            if value is not _MISSING:
                values[attr] = to_bool(value)
        return cls(**values)

    @classmethod
    def resolve(cls, name: str) -> str:
        """Map ``stripCORS`` / ``strip_cors`` / ``cors`` style names to attributes."""
        wanted = str(name).strip().lower().replace("-", "_")
        for attr, key in cls.WIRE_KEYS.items():
            short = attr.replace("strip_", "").replace("corrupt_", "")
            if wanted in (attr, key.lower(), short):
                return attr
        raise KeyError(f"Unknown header rule: {name}")


@dataclass(frozen=True)
class StatusRule:
    """Probability-weighted status-code override for a path prefix."""
    id: str
    path_pattern: str = ""
    status_code: int = 500
    error_rate: int = 100

    WIRE_KEYS = {
        "id": "id",
        "path_pattern": "pathPattern",
        "status_code": "statusCode",
        "error_rate": "errorRate",
    }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "pathPattern": self.path_pattern,
            "statusCode": to_number(self.status_code),
            "errorRate": clamp_percent(self.error_rate),
        }

    @classmethod
    def create(cls) -> "StatusRule":
        return cls(id=new_rule_id())

    @classmethod
    def from_dict(cls, data: Mapping) -> "StatusRule":
        index = _index(data)
        rule_id = _get(index, "id")
        path = _get(index, "pathPattern", "path_pattern")
        code = _get(index, "statusCode", "status_code")
        rate = _get(index, "errorRate", "error_rate")
        return cls(
            id=str(rule_id) if rule_id is not _MISSING and str(rule_id) else new_rule_id(),
            path_pattern=str(path) if path is not _MISSING else "",
            status_code=to_number(code) if code is not _MISSING else 500,
            error_rate=clamp_percent(rate) if rate is not _MISSING else 100,
        )

    @staticmethod
    def coerce(attr: str, value: Any) -> Any:
        if attr == "status_code":
            return to_number(value)
        if attr == "error_rate":
            return clamp_percent(value)
        return "" if value is None else str(value)


@dataclass(frozen=True)
class MockRule:
    """Short-circuits proxying for a path prefix with a canned body."""
    id: str
    path_pattern: str = ""
    body: str = DEFAULT_MOCK_BODY
    active: bool = True

    WIRE_KEYS = {
        "id": "id",
        "path_pattern": "pathPattern",
        "body": "body",
        "active": "active",
    }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "pathPattern": self.path_pattern,
            "body": self.body,
            "active": bool(self.active),
        }

    @classmethod
    def create(cls) -> "MockRule":
        return cls(id=new_rule_id())

    @classmethod
    def from_dict(cls, data: Mapping) -> "MockRule":
        index = _index(data)
        rule_id = _get(index, "id")
        path = _get(index, "pathPattern", "path_pattern")
        body = _get(index, "body")
        active = _get(index, "active")
        return cls(
            id=str(rule_id) if rule_id is not _MISSING and str(rule_id) else new_rule_id(),
            path_pattern=str(path) if path is not _MISSING else "",
            body=cls.coerce("body", body) if body is not _MISSING else DEFAULT_MOCK_BODY,
            active=to_bool(active) if active is not _MISSING else True,
        )

    @staticmethod
    def coerce(attr: str, value: Any) -> Any:
        if attr == "active":
            return to_bool(value)
        if attr == "body" and isinstance(value, (dict, list)):
            return json.dumps(value, indent=2)
        return "" if value is None else str(value)


Rule = Union[StatusRule, MockRule]
R = TypeVar("R", StatusRule, MockRule)


def _parse_rules(value: Any, rule_cls: Type[R]) -> List[R]:
    """Parse a rule list, dropping junk entries and repairing duplicate ids."""
    if not isinstance(value, (list, tuple)):
        return []
    rules: List[R] = []
    seen = set()
    for item in value:
        if not isinstance(item, Mapping):
            continue
        rule = rule_cls.from_dict(item)
        if rule.id in seen:
            rule = replace(rule, id=new_rule_id())
        seen.add(rule.id)
        rules.append(rule)
    return rules


@dataclass(frozen=True)
class TrafficLog:
    """One proxied request as reported by the engine's activity log."""
    id: int
    method: str = "GET"
    path: str = ""
    status: int = 0
    duration: int = 0
    tampered: bool = False
    tamper_type: str = ""
    timestamp: str = ""

    @property
    def is_pending(self) -> bool:
        return self.status == 0

    @property
    def is_error(self) -> bool:
        return self.status >= 400 or self.status == 0

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "method": self.method,
            "path": self.path,
            "status": self.status,
            "duration": self.duration,
            "tampered": self.tampered,
            "timestamp": self.timestamp,
        }
        if self.tamper_type:
            data["tamperType"] = self.tamper_type
        return data

    @classmethod
    def from_dict(cls, data: Mapping) -> "TrafficLog":
        return cls(
            id=to_number(data.get("id", 0)),
            method=str(data.get("method") or "GET"),
            path=str(data.get("path") or ""),
            status=to_number(data.get("status", 0)),
            duration=to_number(data.get("duration", 0)),
            tampered=to_bool(data.get("tampered", False)),
            tamper_type=str(data.get("tamperType") or ""),
            timestamp=str(data.get("timestamp") or ""),
        )


@dataclass
class ProxyConfiguration:
    """The engine's chaos configuration with client-side defaults."""
    mode: ProxyMode = ProxyMode.SPLIT
    target_frontend: str = "http://localhost:3000"
    target_backend: str = "http://localhost:4000"
    target_unified: str = "http://localhost:80"
    chaos_routes: List[str] = field(default_factory=lambda: ["/api", "/graphql"])
    request_delay_ms: int = 0
    response_delay_ms: int = 0
    bandwidth_up: int = 0
    bandwidth_down: int = 0
    jitter_ms: int = 0
    failure_mode: FailureMode = FailureMode.NORMAL
    header_rules: HeaderRules = field(default_factory=HeaderRules)
    status_rules: List[StatusRule] = field(default_factory=list)
    mock_rules: List[MockRule] = field(default_factory=list)

    def copy(self) -> "ProxyConfiguration":
        """Copy with fresh lists; rules and header flags are immutable."""
        return replace(
            self,
            chaos_routes=list(self.chaos_routes),
            status_rules=list(self.status_rules),
            mock_rules=list(self.mock_rules),
        )

    def throttle_values(self) -> Dict[str, int]:
        return {name: to_number(getattr(self, name)) for name in THROTTLE_FIELDS}

    @property
    def active_target(self) -> str:
        if ProxyMode.from_str(self.mode) == ProxyMode.UNIFIED:
            return self.target_unified
        return self.target_backend


def coerce_field(attr: str, value: Any) -> Any:
    """Coerce a raw value for one top-level configuration attribute."""
    if attr == "mode":
        return ProxyMode.from_str(value)
    if attr == "failure_mode":
        return FailureMode.from_str(value)
    if attr in TARGET_FIELDS:
        return "" if value is None else str(value).strip()
    if attr == "chaos_routes":
        return parse_routes(value)
    if attr in THROTTLE_FIELDS:
        return non_negative(value)
    if attr == "header_rules":
        if isinstance(value, HeaderRules):
            return value
        return HeaderRules.from_dict(value)
    if attr == "status_rules":
        return _parse_rules(value, StatusRule)
    if attr == "mock_rules":
        return _parse_rules(value, MockRule)
    raise KeyError(f"Unknown configuration field: {attr}")


# ── Normalize / Serialize ────────────────────────────────────────────────────

def merge(base: ProxyConfiguration, raw: Any) -> ProxyConfiguration:
    """Overlay the fields present in ``raw`` onto a copy of ``base``.

    Keys are matched case-insensitively against both wire keys and attribute
    names. Absent or null fields keep the value from ``base``.
    """
    config = base.copy()
    if not isinstance(raw, Mapping):
        return config
    index = _index(raw)
    for attr, key in WIRE_KEYS.items():
        value = _get(index, key, attr)
        if value is _MISSING:
            continue
        setattr(config, attr, coerce_field(attr, value))
    return config


def normalize(raw: Any) -> ProxyConfiguration:
    """Build a fully typed configuration from a loosely typed mapping."""
    return merge(ProxyConfiguration(), raw)


def serialize(config: ProxyConfiguration, routes_text: Optional[str] = None) -> Dict[str, Any]:
    """Convert a configuration into the complete wire object.

    ``routes_text`` is the comma-separated edit form of the chaos routes;
    when omitted, ``config.chaos_routes`` is used.
    """
    source = routes_text if routes_text is not None else config.chaos_routes
    return {
        "Mode": ProxyMode.from_str(config.mode).value,
        "TargetFrontend": config.target_frontend or "",
        "TargetBackend": config.target_backend or "",
        "TargetUnified": config.target_unified or "",
        "ChaosRoutes": _dedupe(parse_routes(source)),
        "LagToReq": non_negative(config.request_delay_ms),
        "LagToResp": non_negative(config.response_delay_ms),
        "bandwidthUp": non_negative(config.bandwidth_up),
        "bandwidthDown": non_negative(config.bandwidth_down),
        "jitter": non_negative(config.jitter_ms),
        "failureMode": FailureMode.from_str(config.failure_mode).value,
        "headerRules": config.header_rules.to_dict(),
        "statusRules": [r.to_dict() for r in config.status_rules],
        "mockRules": [r.to_dict() for r in config.mock_rules],
    }
