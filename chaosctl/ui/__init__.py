"""
chaosctl Terminal UI
====================
Rich terminal rendering for the chaos configuration, rule lists, status
indicator and the live traffic feed. Cross-platform compatible.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table
from rich.theme import Theme

from chaosctl import __version__
from chaosctl.core.model import MockRule, StatusRule, TrafficLog, to_number
from chaosctl.core.presets import CUSTOM, FAILURE_MODES, NETWORK_PRESETS, preset_label
from chaosctl.core.state import (
    STATUS_ACTIVE,
    STATUS_READY,
    STATUS_SYNCING,
    STATUS_UNSAVED,
    ChaosState,
)

# ── Theme ────────────────────────────────────────────────────────────────────

CHAOS_THEME = Theme({
    "info": "cyan",
    "warning": "yellow",
    "error": "bold red",
    "success": "bold green",
    "title": "bold #f0a500",
    "subtitle": "dim",
    "prompt": "bold #f0a500",
    "tampered": "bold #f0a500",
    "get": "bold #61affe",
    "method": "bold #49cc90",
    "bad": "#ff6060",
    "dim": "dim white",
})

console = Console(theme=CHAOS_THEME)

# ── Banner ───────────────────────────────────────────────────────────────────

BANNER = (
    f"\n[title]  ⚡ chaosctl[/] [dim]v{__version__}[/]\n"
    "[dim]  Control client for the chaos-proxy engine[/]\n"
    "[dim]  ─────────────────────────────────────────────[/]\n"
)

BANNER_SMALL = f"[title]⚡ chaosctl[/] [dim]v{__version__}[/]"


def show_banner(small: bool = False) -> None:
    """Display the chaosctl banner."""
    console.print(BANNER_SMALL if small else BANNER)


# ── Messages ─────────────────────────────────────────────────────────────────

def print_info(text: str) -> None:
    console.print(f"[info]ℹ {text}[/]")


def print_success(text: str) -> None:
    console.print(f"[success]✅ {text}[/]")


def print_warning(text: str) -> None:
    console.print(f"[warning]⚠️  {text}[/]")


def print_error(text: str) -> None:
    console.print(f"[error]❌ {text}[/]")


# ── Status ───────────────────────────────────────────────────────────────────

def status_markup(status: str) -> str:
    if status in (STATUS_READY, STATUS_ACTIVE):
        icon = "✅ " if status == STATUS_ACTIVE else ""
        return f"[success]{icon}{status}[/]"
    if status in (STATUS_UNSAVED, STATUS_SYNCING):
        icon = "⚠️  " if status == STATUS_UNSAVED else ""
        return f"[warning]{icon}{status}[/]"
    if status.startswith("Connecting"):
        return f"[info]{status}[/]"
    return f"[error]❌ {status}[/]"


def show_status(state: ChaosState) -> None:
    """One-line status indicator with the Apply availability."""
    apply_hint = "[bold]APPLY available[/]" if state.can_apply else "[dim]no changes[/]"
    console.print(
        f"Status: {status_markup(state.status)} [dim]|[/] "
        f"Preset: [bold]{preset_label(state.preset)}[/] [dim]|[/] {apply_hint}"
    )


# ── Configuration ────────────────────────────────────────────────────────────

# (attribute, wire key, label, unit)
THROTTLE_ROWS = [
    ("request_delay_ms", "LagToReq", "Request lag (TTFB up)", "ms"),
    ("response_delay_ms", "LagToResp", "Response lag (TTFB down)", "ms"),
    ("bandwidth_up", "bandwidthUp", "Upload cap", "KB/s"),
    ("bandwidth_down", "bandwidthDown", "Download cap", "KB/s"),
    ("jitter_ms", "jitter", "Jitter (+/-)", "ms"),
]


def _on_off(flag: bool) -> str:
    return "[tampered]ON[/]" if flag else "[dim]off[/]"


def show_config(state: ChaosState) -> None:
    """Display the working configuration."""
    config, routes_text, _ = state.snapshot()

    setup = Table(show_header=False, box=None, padding=(0, 2))
    setup.add_column("Key", style="dim")
    setup.add_column("Value")
    setup.add_row("Mode", config.mode.value)
    if config.mode.value == "unified":
        setup.add_row("Target", escape(config.target_unified) or "[dim]unset[/]")
    else:
        setup.add_row("Frontend", escape(config.target_frontend) or "[dim]unset[/]")
        setup.add_row("Backend", escape(config.target_backend) or "[dim]unset[/]")
    setup.add_row("Chaos routes", escape(routes_text) or "[dim]none[/]")
    console.print(Panel(setup, title="[title]Setup[/]", border_style="#f0a500"))

    network = Table(show_header=True, box=None, padding=(0, 2))
    network.add_column("Field", style="bold")
    network.add_column("Control")
    network.add_column("Value", justify="right")
    for attr, key, label, unit in THROTTLE_ROWS:
        value = to_number(getattr(config, attr))
        shown = f"{value} {unit}" if value else f"[dim]0 {unit}[/]"
        if attr.startswith("bandwidth") and not value:
            shown = "[dim]unlimited[/]"
        network.add_row(key, label, shown)
    console.print(Panel(
        network,
        title=f"[title]Network[/] [dim]preset: {preset_label(state.preset)}[/]",
        border_style="#f0a500",
    ))

    label, desc = FAILURE_MODES.get(config.failure_mode.value, (config.failure_mode.value, ""))
    headers = config.header_rules
    chaos = Table(show_header=False, box=None, padding=(0, 2))
    chaos.add_column("Key", style="dim")
    chaos.add_column("Value")
    chaos.add_row("Failure mode", f"[bold]{label}[/] [dim]{desc}[/]")
    chaos.add_row("Strip CORS", _on_off(headers.strip_cors))
    chaos.add_row("Strip cache", _on_off(headers.strip_cache))
    chaos.add_row("Corrupt Content-Type", _on_off(headers.corrupt_content_type))
    chaos.add_row("Status rules", str(len(config.status_rules)))
    chaos.add_row("Mock rules", str(len(config.mock_rules)))
    console.print(Panel(chaos, title="[title]Failures & Tampering[/]", border_style="#f0a500"))

    show_status(state)


def show_presets(active: str = "") -> None:
    table = Table(title="Network Presets")
    table.add_column("ID", style="bold")
    table.add_column("Label")
    table.add_column("LagToReq", justify="right")
    table.add_column("LagToResp", justify="right")
    table.add_column("Up", justify="right")
    table.add_column("Down", justify="right")
    table.add_column("Jitter", justify="right")
    for preset in NETWORK_PRESETS:
        values = preset["config"]
        marker = " [success]◄ active[/]" if preset["id"] == active else ""
        table.add_row(
            preset["id"],
            f"{preset['label']}{marker}",
            str(values["request_delay_ms"]),
            str(values["response_delay_ms"]),
            str(values["bandwidth_up"]),
            str(values["bandwidth_down"]),
            str(values["jitter_ms"]),
        )
    console.print(table)
    if active == CUSTOM:
        console.print("[dim]Current throttle values are custom.[/]")


def show_failure_modes(active: str = "") -> None:
    table = Table(title="Failure Modes")
    table.add_column("ID", style="bold")
    table.add_column("Label")
    table.add_column("Effect", style="dim")
    for mode_id, (label, desc) in FAILURE_MODES.items():
        marker = " [success]◄[/]" if mode_id == active else ""
        table.add_row(mode_id, f"{label}{marker}", desc)
    console.print(table)


# ── Rules ────────────────────────────────────────────────────────────────────

def show_status_rules(rules: Sequence[StatusRule]) -> None:
    if not rules:
        console.print("[dim]No active injection rules.[/]")
        return
    table = Table(title="Status Code Injection")
    table.add_column("#", justify="right", style="dim")
    table.add_column("ID", style="dim")
    table.add_column("Path prefix")
    table.add_column("Code", justify="right")
    table.add_column("Rate %", justify="right")
    for i, rule in enumerate(rules, 1):
        table.add_row(
            str(i), rule.id, escape(rule.path_pattern) or "[dim](all)[/]",
            str(rule.status_code), str(rule.error_rate),
        )
    console.print(table)


def show_mock_rules(rules: Sequence[MockRule]) -> None:
    if not rules:
        console.print("[dim]No active mock rules.[/]")
        return
    table = Table(title="Mock Responses", show_lines=True)
    table.add_column("#", justify="right", style="dim")
    table.add_column("ID", style="dim")
    table.add_column("Path prefix")
    table.add_column("Active")
    table.add_column("Body")
    for i, rule in enumerate(rules, 1):
        body = rule.body if len(rule.body) <= 200 else rule.body[:200] + "..."
        table.add_row(
            str(i), rule.id, escape(rule.path_pattern) or "[dim](all)[/]",
            _on_off(rule.active), escape(body),
        )
    console.print(table)


# ── Traffic ──────────────────────────────────────────────────────────────────

def build_traffic_table(logs: List[TrafficLog], limit: Optional[int] = None) -> Table:
    """Traffic feed table, newest first as delivered by the engine."""
    shown = logs[:limit] if limit else logs
    table = Table(title=f"Live Traffic ({len(logs)})", expand=True)
    table.add_column("Time", style="dim", no_wrap=True)
    table.add_column("Method", no_wrap=True)
    table.add_column("Path")
    table.add_column("Status", justify="right", no_wrap=True)
    table.add_column("Duration", justify="right", no_wrap=True)
    table.add_column("Tampering", no_wrap=True)

    for entry in shown:
        method_style = "get" if entry.method == "GET" else "method"
        status = "PENDING" if entry.is_pending else str(entry.status)
        status_style = "bad" if entry.is_error else "bold"
        tamper = f"[tampered]{entry.tamper_type or 'TAMPERED'}[/]" if entry.tampered else ""
        table.add_row(
            escape(entry.timestamp),
            f"[{method_style}]{entry.method}[/]",
            escape(entry.path) if entry.tampered else f"[dim]{escape(entry.path)}[/]",
            f"[{status_style}]{status}[/]",
            f"{entry.duration}ms",
            tamper,
        )
    if not shown:
        table.add_row("", "", "[dim]Waiting for traffic...[/]", "", "", "")
    return table


def show_traffic(logs: List[TrafficLog], limit: Optional[int] = None) -> None:
    console.print(build_traffic_table(logs, limit))


def show_feed_stats(stats: Dict[str, Any]) -> None:
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Key", style="dim")
    table.add_column("Value")
    table.add_row("Polling", "running" if stats["is_running"] else "stopped")
    table.add_row("Requests", str(stats["total"]))
    table.add_row("Tampered", str(stats["tampered"]))
    table.add_row("Avg duration", f"{stats['avg_duration_ms']}ms")
    for label, count in sorted(stats["tamper_types"].items()):
        table.add_row(f"  {label}", str(count))
    for bucket, count in sorted(stats["status_codes"].items()):
        table.add_row(f"  {bucket}", str(count))
    if stats["failures"]:
        table.add_row("Poll failures", f"[error]{stats['failures']}[/] {escape(stats['last_error'])}")
    console.print(Panel(table, title="[title]Traffic Stats[/]", border_style="#f0a500"))


def show_explain(result: Dict[str, Any]) -> None:
    """Render a rule-evaluation preview for one path."""
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Key", style="dim")
    table.add_column("Value")
    table.add_row("Path", escape(result["path"]))
    table.add_row("Forwarded to", escape(result["target"]) or "[dim]unset[/]")
    table.add_row("Chaos route", "yes" if result["chaos_route"] else "no")
    if result["status_rule"]:
        table.add_row("Status rule", f"{result['status_rule']} ({result['probability']}% chance)")
    if result["mock_rule"]:
        table.add_row("Mock rule", result["mock_rule"])
    if result["tampered"]:
        table.add_row("Tampering", f"[tampered]{result['tamper_type']}[/]")
    else:
        table.add_row("Tampering", "[dim]none, passes through[/]")
    console.print(Panel(table, title="[title]Explain[/]", border_style="#f0a500"))


# ── Help ─────────────────────────────────────────────────────────────────────

def show_help() -> None:
    """Display help information."""
    help_text = """
[title]chaosctl Commands[/]

[bold]Configuration:[/]
  /show                       Show the working configuration
  /set <field> <value>        Set a field (LagToReq, jitter, Mode, ChaosRoutes, ...)
  /preset [id]                List presets or apply one (unlimited, fast4g, slow4g, 3g, edge)
  /failure [mode]             List failure modes or select one
  /header <flag> on|off       Toggle stripCORS, stripCache, corruptContentType

[bold]Rules:[/]
  /rule add|list              Status-code injection rules
  /rule set <#|id> <field> <value>
  /rule rm <#|id>
  /mock add|list              Mock response rules
  /mock set <#|id> <field> <value>
  /mock rm <#|id>

[bold]Engine:[/]
  /apply                      Push the full configuration to the engine
  /pull                       Reload the configuration from the engine
  /status                     Show sync status
  /traffic [n]                Show the live traffic feed
  /stats                      Traffic statistics
  /explain <path>             Predict what the engine does to a path

[bold]Other:[/]
  /help                       Show this help
  /quit                       Exit chaosctl
"""
    console.print(help_text)


# ── Progress ─────────────────────────────────────────────────────────────────

def create_spinner(text: str = "Syncing...") -> Progress:
    """Create a spinner for network operations. Use as a context manager."""
    progress = Progress(
        SpinnerColumn("dots"),
        TextColumn("[dim]{task.description}[/]"),
        console=console,
        transient=True,
    )
    progress.add_task(text, total=None)
    return progress
