"""
chaosctl Client Settings
========================
Handles settings loading (admin API origin, timeouts, polling cadence, UI
options), platform-specific paths and logging setup.

These are settings of the client itself. The chaos configuration lives in
the engine and is never written to disk here.
"""

from __future__ import annotations

import copy
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict

import yaml
from platformdirs import user_config_dir, user_log_dir
from rich.console import Console
from rich.logging import RichHandler

APP_NAME = "chaosctl"

# ── paths ────────────────────────────────────────────────────────────────────

CONFIG_DIR = Path(user_config_dir(APP_NAME))
LOGS_DIR = Path(user_log_dir(APP_NAME))
CONFIG_FILE = CONFIG_DIR / "config.yaml"
HISTORY_FILE = CONFIG_DIR / "history"


def ensure_dirs() -> None:
    """Create all required directories."""
    for d in (CONFIG_DIR, LOGS_DIR):
        d.mkdir(parents=True, exist_ok=True)


# ── default config ───────────────────────────────────────────────────────────

DEFAULT_CONFIG: Dict[str, Any] = {
    "admin": {
        "url": "http://localhost:9000",
        "timeout": 5.0,
    },
    "feed": {
        "interval": 1.0,
        "display_limit": 20,
    },
    "ui": {
        "show_banner": True,
        "verbose": False,
        "revert_delay": 2.0,
    },
    "launcher": {
        "binary": "",
    },
}


@dataclass
class AdminConfig:
    url: str = "http://localhost:9000"
    timeout: float = 5.0


@dataclass
class FeedConfig:
    interval: float = 1.0
    display_limit: int = 20


@dataclass
class UIConfig:
    show_banner: bool = True
    verbose: bool = False
    revert_delay: float = 2.0


@dataclass
class LauncherConfig:
    binary: str = ""


@dataclass
class ChaosctlConfig:
    admin: AdminConfig = field(default_factory=AdminConfig)
    feed: FeedConfig = field(default_factory=FeedConfig)
    ui: UIConfig = field(default_factory=UIConfig)
    launcher: LauncherConfig = field(default_factory=LauncherConfig)


def load_config(path: Path = CONFIG_FILE) -> ChaosctlConfig:
    """Load settings from disk, env vars, and defaults."""
    raw: Dict[str, Any] = {}

    if path.exists():
        with open(path) as f:
            raw = yaml.safe_load(f) or {}

    merged = _deep_merge(copy.deepcopy(DEFAULT_CONFIG), raw)

    # Env-var overrides
    if os.environ.get("CHAOSCTL_ADMIN_URL"):
        merged["admin"]["url"] = os.environ["CHAOSCTL_ADMIN_URL"]
    if os.environ.get("CHAOSCTL_TIMEOUT"):
        merged["admin"]["timeout"] = _as_float(os.environ["CHAOSCTL_TIMEOUT"], merged["admin"]["timeout"])
    if os.environ.get("CHAOSCTL_POLL_INTERVAL"):
        merged["feed"]["interval"] = _as_float(os.environ["CHAOSCTL_POLL_INTERVAL"], merged["feed"]["interval"])
    if os.environ.get("CHAOSCTL_PROXY_BINARY"):
        merged["launcher"]["binary"] = os.environ["CHAOSCTL_PROXY_BINARY"]

    cfg = ChaosctlConfig(
        admin=AdminConfig(**merged.get("admin", {})),
        feed=FeedConfig(**merged.get("feed", {})),
        ui=UIConfig(**merged.get("ui", {})),
        launcher=LauncherConfig(**merged.get("launcher", {})),
    )
    return cfg


def save_config(cfg: ChaosctlConfig, path: Path = CONFIG_FILE) -> None:
    """Persist current settings to disk."""
    path.parent.mkdir(parents=True, exist_ok=True)
    data = {
        "admin": {
            "url": cfg.admin.url,
            "timeout": cfg.admin.timeout,
        },
        "feed": {
            "interval": cfg.feed.interval,
            "display_limit": cfg.feed.display_limit,
        },
        "ui": {
            "show_banner": cfg.ui.show_banner,
            "verbose": cfg.ui.verbose,
            "revert_delay": cfg.ui.revert_delay,
        },
        "launcher": {
            "binary": cfg.launcher.binary,
        },
    }
    with open(path, "w") as f:
        yaml.dump(data, f, default_flow_style=False, sort_keys=False)


def _deep_merge(base: dict, override: dict) -> dict:
    """Recursively merge override into base."""
    result = base.copy()
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


def _as_float(value: str, default: float) -> float:
    try:
        return float(value)
    except ValueError:
        return default


# ── logging ──────────────────────────────────────────────────────────────────

def setup_logging(verbose: bool = False) -> None:
    """Log everything to a file and warnings (or everything, if verbose) to stderr."""
    root = logging.getLogger(APP_NAME)
    root.setLevel(logging.DEBUG)
    root.handlers.clear()

    console_handler = RichHandler(console=Console(stderr=True), show_path=False, markup=False)
    console_handler.setLevel(logging.DEBUG if verbose else logging.WARNING)
    root.addHandler(console_handler)

    try:
        LOGS_DIR.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(LOGS_DIR / "chaosctl.log")
    except OSError as e:
        root.debug(f"File logging disabled: {e}")
        return
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    root.addHandler(file_handler)
