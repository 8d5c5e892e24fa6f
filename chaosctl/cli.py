"""
chaosctl CLI
============
Command-line interface for the chaos-proxy engine: an interactive REPL for
editing and applying the chaos configuration, plus one-shot subcommands for
scripting.
"""

from __future__ import annotations

import random
import time
from typing import Any, Callable, Dict, Optional, Sequence, Tuple

import click
from dotenv import load_dotenv
from prompt_toolkit import PromptSession
from prompt_toolkit.auto_suggest import AutoSuggestFromHistory
from prompt_toolkit.history import FileHistory
from rich.live import Live
from rich.markup import escape

from chaosctl import __version__
from chaosctl.config import (
    CONFIG_FILE,
    HISTORY_FILE,
    ChaosctlConfig,
    ensure_dirs,
    load_config,
    save_config,
    setup_logging,
)
from chaosctl.core.evaluate import describe_tampering
from chaosctl.core.feed import TrafficFeedPoller
from chaosctl.core.model import MockRule, StatusRule
from chaosctl.core.presets import get_preset
from chaosctl.core.rules import RuleListEditor
from chaosctl.core.state import ChaosState
from chaosctl.core.sync import SyncClient
from chaosctl.launcher import launch as launch_engine
from chaosctl.ui import (
    build_traffic_table,
    console,
    create_spinner,
    print_error,
    print_info,
    print_success,
    print_warning,
    show_banner,
    show_config,
    show_explain,
    show_failure_modes,
    show_feed_stats,
    show_help,
    show_mock_rules,
    show_presets,
    show_status,
    show_status_rules,
    show_traffic,
)

load_dotenv()

# Positional fields accepted by "/rule add" and "/mock add", in order.
ADD_FIELDS: Dict[type, Tuple[str, ...]] = {
    StatusRule: ("path_pattern", "status_code", "error_rate"),
    MockRule: ("path_pattern", "body"),
}


def parse_assignment(text: str) -> Tuple[str, str]:
    """Split ``FIELD=VALUE`` or ``FIELD VALUE`` into its two halves."""
    text = text.strip()
    first = text.split(maxsplit=1)[0] if text else ""
    if "=" in first:
        name, _, value = text.partition("=")
    else:
        parts = text.split(maxsplit=1)
        name = parts[0] if parts else ""
        value = parts[1] if len(parts) > 1 else ""
    return name.strip(), value.strip()


class ChaosApp:
    """Interactive controller tying the editing state to the engine."""

    def __init__(self, config: ChaosctlConfig, state: Optional[ChaosState] = None):
        self.config = config
        self.state = state or ChaosState()
        self.sync = SyncClient(
            self.state,
            origin=config.admin.url,
            timeout=config.admin.timeout,
            revert_delay=config.ui.revert_delay,
        )
        self.feed = TrafficFeedPoller(
            origin=config.admin.url,
            interval=config.feed.interval,
            timeout=config.admin.timeout,
        )

    # ── Engine I/O ───────────────────────────────────────────────────────

    def connect(self, reload: bool = False) -> bool:
        """Pull the engine configuration. Returns whether it loaded."""
        with create_spinner(f"Connecting to {self.sync.config_url}..."):
            result = self.sync.pull(reload=reload)
        if result["ok"]:
            print_success(f"Connected to {self.config.admin.url}")
        else:
            print_error(f"{result['status']} ({escape(result.get('error', ''))})")
        return result["ok"]

    def close(self) -> None:
        self.feed.close()
        self.sync.close()

    # ── Command Handlers ─────────────────────────────────────────────────

    def handle_input(self, user_input: str) -> bool:
        """
        Process user input. Returns False to quit.
        """
        text = user_input.strip()
        if not text:
            return True
        if text.startswith("/"):
            return self._handle_command(text)
        print_info("Commands start with '/'. Type /help for available commands.")
        return True

    def _handle_command(self, text: str) -> bool:
        """Handle slash commands."""
        parts = text.split(maxsplit=1)
        cmd = parts[0].lower()
        args = parts[1] if len(parts) > 1 else ""

        commands: Dict[str, Callable[[], Any]] = {
            "/quit": lambda: False,
            "/exit": lambda: False,
            "/q": lambda: False,
            "/help": lambda: (show_help(), True)[1],
            "/show": lambda: (show_config(self.state), True)[1],
            "/status": lambda: self._show_status(),
            "/set": lambda: self._set_field(args),
            "/preset": lambda: self._preset(args),
            "/failure": lambda: self._failure(args),
            "/header": lambda: self._header(args),
            "/rule": lambda: self._handle_rules(self.state.status_rules, args, show_status_rules),
            "/mock": lambda: self._handle_rules(self.state.mock_rules, args, show_mock_rules),
            "/apply": lambda: self._apply(),
            "/pull": lambda: self._pull(),
            "/traffic": lambda: self._traffic(args),
            "/stats": lambda: (show_feed_stats(self.feed.get_stats()), True)[1],
            "/explain": lambda: self._explain(args),
        }

        handler = commands.get(cmd)
        if handler:
            result = handler()
            return result if result is not None else True
        print_error(f"Unknown command: {cmd}. Type /help for available commands.")
        return True

    # ── Editing ──────────────────────────────────────────────────────────

    def _set_field(self, args: str) -> bool:
        name, value = parse_assignment(args)
        if not name:
            print_error("Usage: /set <field> <value>  (e.g. /set LagToReq 150)")
            return True
        try:
            stored = self.state.set_field(name, value)
        except KeyError as e:
            print_error(str(e.args[0]))
            return True
        shown = stored.value if hasattr(stored, "value") else stored
        print_success(f"{escape(name)} = {escape(str(shown))}")
        show_status(self.state)
        return True

    def _preset(self, args: str) -> bool:
        preset_id = args.strip()
        if not preset_id:
            show_presets(self.state.preset)
            return True
        try:
            self.state.apply_preset(preset_id)
        except KeyError as e:
            print_error(str(e.args[0]))
            return True
        print_success(f"Preset applied: {get_preset(preset_id)['label']}")
        show_status(self.state)
        return True

    def _failure(self, args: str) -> bool:
        mode = args.strip()
        if not mode:
            show_failure_modes(self.state.config.failure_mode.value)
            return True
        try:
            failure = self.state.set_failure_mode(mode)
        except ValueError:
            print_error(f"Unknown failure mode: {mode}")
            show_failure_modes(self.state.config.failure_mode.value)
            return True
        print_success(f"Failure mode: {failure.value}")
        show_status(self.state)
        return True

    def _header(self, args: str) -> bool:
        parts = args.split()
        if len(parts) != 2:
            headers = self.state.config.header_rules.to_dict()
            for key, enabled in headers.items():
                console.print(f"  [bold]{key:<20}[/] {'ON' if enabled else 'off'}")
            if parts:
                print_error("Usage: /header <stripCORS|stripCache|corruptContentType> on|off")
            return True
        try:
            self.state.set_header_rule(parts[0], parts[1])
        except KeyError as e:
            print_error(str(e.args[0]))
            return True
        print_success(f"Header rule {parts[0]}: {parts[1]}")
        show_status(self.state)
        return True

    def _handle_rules(
        self,
        editor: RuleListEditor,
        args: str,
        show: Callable[[Sequence[Any]], None],
    ) -> bool:
        """Handle /rule and /mock subcommands."""
        parts = args.strip().split(maxsplit=1)
        subcmd = parts[0].lower() if parts else "list"
        sub_args = parts[1] if len(parts) > 1 else ""
        kind = "mock" if editor.rule_cls is MockRule else "rule"

        if subcmd in ("list", "ls"):
            show(editor.rules)

        elif subcmd == "add":
            rule = editor.add()
            fields = ADD_FIELDS[editor.rule_cls]
            values = sub_args.split(maxsplit=len(fields) - 1) if sub_args else []
            for attr, value in zip(fields, values):
                rule = editor.update(rule.id, attr, value) or rule
            print_success(f"Added {kind} #{len(editor)} (id {rule.id})")
            show(editor.rules)

        elif subcmd == "set":
            ref_parts = sub_args.split(maxsplit=2)
            if len(ref_parts) < 3:
                print_error(f"Usage: /{kind} set <#|id> <field> <value>")
                return True
            rule = editor.find(ref_parts[0])
            if rule is None:
                print_error(f"No {kind} matching '{ref_parts[0]}'")
                return True
            try:
                editor.update(rule.id, ref_parts[1], ref_parts[2])
            except (KeyError, ValueError) as e:
                print_error(str(e.args[0]))
                return True
            show(editor.rules)

        elif subcmd in ("rm", "remove", "del"):
            rule = editor.find(sub_args) if sub_args else None
            if rule is None:
                print_error(f"Usage: /{kind} rm <#|id>")
                return True
            editor.remove(rule.id)
            print_success(f"Removed {kind} {rule.id}")

        else:
            print_error(f"Unknown subcommand: {subcmd}. Use add, set, rm or list.")
            return True

        show_status(self.state)
        return True

    # ── Engine ───────────────────────────────────────────────────────────

    def _apply(self) -> bool:
        if not self.state.can_apply:
            print_info("Nothing to apply.")
            return True
        with create_spinner("Syncing..."):
            result = self.sync.push()
        if result["ok"]:
            print_success(f"Configuration applied ({result['status']})")
        else:
            print_error(f"{result['status']}: {escape(result.get('error', ''))}")
        return True

    def _pull(self) -> bool:
        if self.state.dirty:
            print_warning("Discarding unsaved changes.")
        self.connect(reload=True)
        show_status(self.state)
        return True

    def _show_status(self) -> bool:
        show_status(self.state)
        stats = self.feed.get_stats()
        print_info(
            f"Engine: {self.config.admin.url} | "
            f"Feed: {'polling' if stats['is_running'] else 'stopped'}, "
            f"{stats['total']} requests"
        )
        return True

    def _traffic(self, args: str) -> bool:
        arg = args.strip()
        limit = int(arg) if arg.isdigit() else self.config.feed.display_limit
        show_traffic(self.feed.get_logs(), limit)
        return True

    def _explain(self, args: str) -> bool:
        path = args.strip()
        if not path:
            print_error("Usage: /explain <path>  (e.g. /explain /api/users)")
            return True
        config, routes_text, _ = self.state.snapshot()
        show_explain(describe_tampering(config, path, routes_text))
        return True


def get_prompt(state: ChaosState) -> str:
    """Prompt string, marked while there are unapplied edits."""
    return "⚡ chaosctl*> " if state.dirty else "⚡ chaosctl> "


# ── Main CLI ─────────────────────────────────────────────────────────────────

@click.group(invoke_without_command=True)
@click.option("--url", "-u", default=None, help="Admin API origin (default http://localhost:9000)")
@click.option("--no-banner", is_flag=True, help="Skip banner display")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
@click.version_option(__version__, prog_name="chaosctl")
@click.pass_context
def main(ctx, url, no_banner, verbose):
    """chaosctl - control client for the chaos-proxy engine"""
    ctx.ensure_object(dict)

    config = load_config()
    if url:
        config.admin.url = url
    if verbose:
        config.ui.verbose = True
    if no_banner:
        config.ui.show_banner = False

    setup_logging(config.ui.verbose)
    ctx.obj["config"] = config

    if ctx.invoked_subcommand is None:
        _interactive_repl(config)


def _connected_app(ctx) -> ChaosApp:
    """App with the engine configuration loaded, or exit with status 1."""
    app = ChaosApp(ctx.obj["config"])
    ctx.call_on_close(app.close)
    if not app.connect():
        ctx.exit(1)
    return app


@main.command()
@click.pass_context
def show(ctx):
    """Show the engine's current chaos configuration."""
    app = _connected_app(ctx)
    show_config(app.state)


@main.command(name="set")
@click.argument("assignments", nargs=-1)
@click.option("--preset", "-p", default=None, help="Apply a network preset first")
@click.option("--failure", "-f", default=None, help="Select a failure mode")
@click.pass_context
def set_cmd(ctx, assignments, preset, failure):
    """Edit fields (FIELD=VALUE ...) and apply them to the engine."""
    if not (assignments or preset or failure):
        print_error("Nothing to set. Usage: chaosctl set LagToReq=150 jitter=50")
        ctx.exit(2)

    app = _connected_app(ctx)
    state = app.state
    try:
        if preset:
            state.apply_preset(preset)
        if failure:
            state.set_failure_mode(failure)
        for item in assignments:
            name, value = parse_assignment(item)
            state.set_field(name, value)
    except KeyError as e:
        print_error(str(e.args[0]))
        ctx.exit(2)
    except ValueError:
        print_error(f"Unknown failure mode: {failure}")
        ctx.exit(2)

    with create_spinner("Syncing..."):
        result = app.sync.push()
    if not result["ok"]:
        print_error(f"{result['status']}: {escape(result.get('error', ''))}")
        ctx.exit(1)
    print_success("Configuration applied")
    show_config(state)


@main.command()
def presets():
    """List network presets and failure modes."""
    show_presets()
    show_failure_modes()


@main.command()
@click.option("--limit", "-n", default=None, type=int, help="Rows to display")
@click.option("--tampered", is_flag=True, help="Only show tampered requests")
@click.pass_context
def watch(ctx, limit, tampered):
    """Follow the live traffic feed until Ctrl+C."""
    config: ChaosctlConfig = ctx.obj["config"]
    limit = limit or config.feed.display_limit
    poller = TrafficFeedPoller(
        origin=config.admin.url,
        interval=config.feed.interval,
        timeout=config.admin.timeout,
    )
    poller.start()
    print_info(f"Watching {poller.activity_url} (Ctrl+C to stop)")
    try:
        with Live(build_traffic_table([]), console=console, refresh_per_second=4) as live:
            while True:
                live.update(build_traffic_table(poller.get_logs(tampered_only=tampered), limit))
                time.sleep(config.feed.interval)
    except KeyboardInterrupt:
        pass
    finally:
        poller.close()


@main.command()
@click.argument("path")
@click.option("--sample", is_flag=True, help="Roll the error-rate dice once instead of the worst case")
@click.pass_context
def explain(ctx, path, sample):
    """Predict what the engine does to a request for PATH."""
    app = _connected_app(ctx)
    config, routes_text, _ = app.state.snapshot()
    rng = random.Random() if sample else None
    show_explain(describe_tampering(config, path, routes_text, rng=rng))


@main.command(context_settings={"ignore_unknown_options": True, "allow_extra_args": True})
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
@click.pass_context
def launch(ctx, args):
    """Run the bundled chaos-proxy engine, forwarding ARGS."""
    config: ChaosctlConfig = ctx.obj["config"]
    try:
        code = launch_engine(args, override=config.launcher.binary)
    except (FileNotFoundError, PermissionError) as e:
        print_error(str(e))
        print_info("Set the binary path with CHAOSCTL_PROXY_BINARY or launcher.binary in the config file.")
        ctx.exit(1)
    if code is not None:
        ctx.exit(code)


@main.command(name="config")
@click.option("--save", is_flag=True, help="Write the effective settings to the config file")
@click.pass_context
def config_cmd(ctx, save):
    """Show client settings."""
    cfg: ChaosctlConfig = ctx.obj["config"]
    console.print(f"[bold]Admin API:[/]      {cfg.admin.url} [dim](timeout {cfg.admin.timeout}s)[/]")
    console.print(f"[bold]Feed interval:[/]  {cfg.feed.interval}s [dim](show {cfg.feed.display_limit} rows)[/]")
    console.print(f"[bold]Status revert:[/]  {cfg.ui.revert_delay}s")
    console.print(f"[bold]Engine binary:[/]  {cfg.launcher.binary or '[dim]bundled[/]'}")
    if save:
        save_config(cfg)
        print_success(f"Saved to {CONFIG_FILE}")
    else:
        print_info(f"Config file: {CONFIG_FILE}")


# ── Interactive REPL ─────────────────────────────────────────────────────────

def _interactive_repl(config: ChaosctlConfig) -> None:
    """Main interactive REPL loop."""
    if config.ui.show_banner:
        show_banner()
        console.print("[dim]  Type /help for commands, /quit to exit[/]\n")

    app = ChaosApp(config)
    app.connect()
    app.feed.start()
    show_status(app.state)

    try:
        ensure_dirs()
        session: PromptSession = PromptSession(
            history=FileHistory(str(HISTORY_FILE)),
            auto_suggest=AutoSuggestFromHistory(),
        )
    except OSError:
        session = PromptSession()

    try:
        while True:
            try:
                user_input = session.prompt(get_prompt(app.state))
                if not app.handle_input(user_input):
                    break
            except KeyboardInterrupt:
                console.print("\n[dim]Press Ctrl+C again to quit, or type /quit[/]")
                try:
                    user_input = session.prompt(get_prompt(app.state))
                    if not app.handle_input(user_input):
                        break
                except (KeyboardInterrupt, EOFError):
                    break
            except EOFError:
                break
    finally:
        if app.state.dirty:
            print_warning("Exiting with unapplied changes.")
        app.close()

    console.print("\n[dim]Goodbye! 🌩️[/]\n")


if __name__ == "__main__":
    main()
