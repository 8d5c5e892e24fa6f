"""
chaosctl Network Presets
========================
Named throttle profiles and the load-time classifier that maps a live
configuration onto one of them.

Classification only happens when the configuration is pulled from the
engine. Once the user edits any throttle field the state commits to
``custom`` and never snaps back onto a preset label on its own.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from chaosctl.core.model import (
    THROTTLE_FIELDS,
    FailureMode,
    ProxyConfiguration,
    to_number,
)

CUSTOM = "custom"
UNLIMITED = "unlimited"

# Checked top to bottom by classify().
NETWORK_PRESETS: List[Dict[str, Any]] = [
    {
        "id": "unlimited",
        "label": "Unlimited / Clear",
        "config": {
            "request_delay_ms": 0,
            "response_delay_ms": 0,
            "bandwidth_up": 0,
            "bandwidth_down": 0,
            "jitter_ms": 0,
        },
    },
    {
        "id": "fast4g",
        "label": "Fast 4G",
        "config": {
            "request_delay_ms": 50,
            "response_delay_ms": 80,
            "bandwidth_up": 750,
            "bandwidth_down": 2000,
            "jitter_ms": 30,
        },
    },
    {
        "id": "slow4g",
        "label": "Slow 4G",
        "config": {
            "request_delay_ms": 150,
            "response_delay_ms": 200,
            "bandwidth_up": 250,
            "bandwidth_down": 750,
            "jitter_ms": 120,
        },
    },
    {
        "id": "3g",
        "label": "3G",
        "config": {
            "request_delay_ms": 300,
            "response_delay_ms": 400,
            "bandwidth_up": 40,
            "bandwidth_down": 100,
            "jitter_ms": 200,
        },
    },
    {
        "id": "edge",
        "label": "EDGE",
        "config": {
            "request_delay_ms": 600,
            "response_delay_ms": 800,
            "bandwidth_up": 10,
            "bandwidth_down": 30,
            "jitter_ms": 500,
        },
    },
]

FAILURE_MODES: Dict[str, Tuple[str, str]] = {
    FailureMode.NORMAL.value: ("Normal", "No artificial errors."),
    FailureMode.TIMEOUT.value: ("Timeout", "Simulates 60s server hang."),
    FailureMode.HANG_BODY.value: ("Hang Body", "Headers sent, body hangs forever."),
    FailureMode.CLOSE_BODY.value: ("Disconnect", "Connection killed mid-stream."),
}


def get_preset(preset_id: str) -> Optional[Dict[str, Any]]:
    """Look up a preset by id (case-insensitive)."""
    wanted = str(preset_id).strip().lower()
    for preset in NETWORK_PRESETS:
        if preset["id"] == wanted:
            return preset
    return None


def preset_values(preset_id: str) -> Dict[str, int]:
    """Throttle values to apply when a preset is selected."""
    preset = get_preset(preset_id)
    if preset is None:
        raise KeyError(f"Unknown preset: {preset_id}")
    return dict(preset["config"])


def preset_label(preset_id: str) -> str:
    if preset_id == CUSTOM:
        return "Custom"
    preset = get_preset(preset_id)
    return preset["label"] if preset else preset_id


def classify(config: ProxyConfiguration) -> str:
    """Classify a freshly loaded configuration as a preset id or ``custom``.

    ``unlimited`` additionally requires the ``normal`` failure mode; the
    other presets are matched on the five throttle values alone.
    """
    values = {name: to_number(getattr(config, name, 0)) for name in THROTTLE_FIELDS}

    if not any(values.values()):
        if FailureMode.from_str(config.failure_mode) == FailureMode.NORMAL:
            return UNLIMITED
        return CUSTOM

    for preset in NETWORK_PRESETS:
        if preset["id"] == UNLIMITED:
            continue
        if all(values[name] == preset["config"][name] for name in THROTTLE_FIELDS):
            return preset["id"]
    return CUSTOM
