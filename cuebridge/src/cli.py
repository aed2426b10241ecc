import asyncio
import json
import logging
import signal
from pathlib import Path
from typing import Any, Optional

import typer
from rich import print
from rich.console import Console
from rich.table import Table

from .host import Host
from .services.config import get_config
from .services.plugins import PluginLoader, PluginLoadError
from .services.rules import DispatchResult, RuleLoader

logger = logging.getLogger(__name__)

APP_HELP = """
cuebridge: event-driven automation for live streams.

Platform adapters emit events (chat, gift, follow, ...). Rules written in
TOML, YAML or JSON map those events to actions, which plugins register.
Rule files are hot-reloaded while the host runs.

CORE WORKFLOW:
1. Drop rule files into the rules directory (CUEBRIDGE_RULES_DIR).
2. Run `cuebridge rules` to check they parse.
3. Run `cuebridge emit chat --data '{"comment": "hi"}'` to try one event.
4. Run `cuebridge run` to start the host. Ctrl+C stops it cleanly.
"""

app = typer.Typer(name="cuebridge", help=APP_HELP, no_args_is_help=True)


def _configure_logging(level: Optional[str] = None) -> None:
    logging.basicConfig(
        level=level or get_config().log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def _format_value(value: Any) -> str:
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    return str(value)


async def _serve(stop_event: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, stop_event.set)
        loop.add_signal_handler(signal.SIGTERM, stop_event.set)
    except NotImplementedError:
        # Windows event loops; KeyboardInterrupt still reaches run()
        pass

    host = Host()
    await host.start()
    try:
        await stop_event.wait()
        logger.info("Shutting down...")
    finally:
        await host.stop()


@app.command()
def run(
    log_level: Optional[str] = typer.Option(None, "--log-level", "-l", help="Override CUEBRIDGE_LOG_LEVEL"),
):
    """Start the host and process events until interrupted."""
    _configure_logging(log_level.upper() if log_level else None)
    config = get_config()
    logger.info(f"Rules: {config.rules_dir}  Plugins: {config.plugins_dir}  Data: {config.data_dir}")

    try:
        asyncio.run(_serve(asyncio.Event()))
    except KeyboardInterrupt:
        logger.info("Shutting down...")
    raise typer.Exit(code=0)


def _print_dispatch(result: DispatchResult) -> None:
    if not result.matched_rules:
        print(f"[yellow]No rules matched '{result.event.name}'[/yellow]")
        return

    table = Table(title=f"{result.event.name} (rule set generation {result.generation})")
    table.add_column("Rule", style="cyan")
    table.add_column("Action")
    table.add_column("Status")
    table.add_column("Result")
    for rule_result in result.results:
        if not rule_result.matched:
            continue
        for outcome in rule_result.actions:
            if not outcome.executed:
                status = "[dim]skipped[/dim]"
            elif outcome.ok:
                status = "[green]ok[/green]"
            else:
                status = f"[red]{outcome.error}[/red]"
            table.add_row(rule_result.rule.id, outcome.action, status, _format_value(outcome.result))
    Console().print(table)
    print(f"[dim]{result.total_time_ms:.1f}ms[/dim]")


@app.command()
def emit(
    event_name: str = typer.Argument(..., help="Event name, e.g. chat or gift"),
    data: Optional[str] = typer.Option(None, "--data", "-d", help="Event data as a JSON object"),
    file: Optional[Path] = typer.Option(None, "--file", "-f", help="JSON file holding the event data"),
    platform: Optional[str] = typer.Option(None, "--platform", "-p", help="Originating platform"),
):
    """Dispatch one event through plugins and rules, then exit."""
    _configure_logging()

    if data and file:
        print("[red]Use either --data or --file, not both[/red]")
        raise typer.Exit(code=1)

    try:
        if file:
            payload = json.loads(file.read_text(encoding="utf-8"))
        else:
            payload = json.loads(data) if data else {}
    except (OSError, json.JSONDecodeError) as e:
        print(f"[red]Cannot read event data: {e}[/red]")
        raise typer.Exit(code=1)

    if not isinstance(payload, dict):
        print("[red]Event data must be a JSON object[/red]")
        raise typer.Exit(code=1)

    async def do_emit() -> DispatchResult:
        async with Host() as host:
            result = await host.emulate_event(event_name, payload, platform=platform)
            await host.playlist.wait_for_idle(timeout=host.config.idle_timeout)
            return result

    _print_dispatch(asyncio.run(do_emit()))


@app.command()
def rules():
    """List the rules that currently load from the rules directory."""
    config = get_config()
    loader = RuleLoader(config.rules_dir)
    loaded = loader.load_all(skip_invalid=True)

    table = Table(title=f"Rules in {config.rules_dir}")
    table.add_column("ID", style="cyan")
    table.add_column("Event")
    table.add_column("Actions")
    table.add_column("Enabled")
    table.add_column("Source", style="dim")
    for rule in loaded:
        table.add_row(
            rule.id,
            rule.event_name,
            ", ".join(a.type for a in rule.actions),
            "yes" if rule.enabled else "[yellow]no[/yellow]",
            Path(rule.source_path).name if rule.source_path else "",
        )
    Console().print(table)

    for error in loader.errors:
        print(f"[red]{error}[/red]")
    if loader.errors:
        raise typer.Exit(code=1)


@app.command()
def plugins():
    """List plugins found in the plugins directory."""
    config = get_config()
    loader = PluginLoader(config.plugins_dir)

    table = Table(title=f"Plugins in {config.plugins_dir}")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Version")
    table.add_column("Requires")
    table.add_column("Entry", style="dim")

    failed = []
    for plugin_dir in loader.scan_plugins():
        try:
            manifest = loader.load_manifest(plugin_dir)
        except PluginLoadError as e:
            failed.append(str(e))
            continue
        table.add_row(manifest.id, manifest.name, manifest.version, ", ".join(manifest.requires), manifest.entry)
    Console().print(table)

    for error in failed:
        print(f"[red]{error}[/red]")


if __name__ == "__main__":
    app()
