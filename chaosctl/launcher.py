"""
chaosctl Engine Launcher
========================
Starts the platform-specific chaos-proxy engine binary that ships next to
this package, forwarding command-line arguments unchanged and inheriting
stdin/stdout/stderr.
"""

from __future__ import annotations

import logging
import platform
import subprocess
from pathlib import Path
from typing import Optional, Sequence, Union

logger = logging.getLogger(__name__)

BINARY_NAME = "chaos-proxy"


def binary_name(system: Optional[str] = None) -> str:
    """Executable name for the given (or current) OS."""
    system = system or platform.system()
    if system == "Windows":
        return f"{BINARY_NAME}.exe"
    return BINARY_NAME


def resolve_binary(
    base_dir: Union[str, Path, None] = None,
    override: str = "",
) -> Path:
    """Locate the engine binary.

    Args:
        base_dir: Directory holding the binary (default: this package's directory).
        override: Explicit binary path; wins over ``base_dir``.

    Raises:
        FileNotFoundError: If the binary does not exist.
    """
    if override:
        path = Path(override).expanduser()
    else:
        directory = Path(base_dir) if base_dir else Path(__file__).resolve().parent
        path = directory / binary_name()
    if not path.is_file():
        raise FileNotFoundError(f"Proxy engine binary not found: {path}")
    return path


def launch(
    args: Sequence[str] = (),
    base_dir: Union[str, Path, None] = None,
    override: str = "",
) -> Optional[int]:
    """Run the engine in the foreground until it exits.

    Returns:
        The engine's exit code, or None when it was terminated by a signal
        and therefore has no exit code.
    """
    binary = resolve_binary(base_dir, override)
    cmd = [str(binary), *args]
    logger.info(f"Launching engine: {' '.join(cmd)}")

    proc = subprocess.Popen(cmd)
    try:
        code = proc.wait()
    except KeyboardInterrupt:
        # The terminal delivers SIGINT to the child as well; let it shut down.
        code = proc.wait()

    if code < 0:
        logger.info(f"Engine terminated by signal {-code}")
        return None
    return code
