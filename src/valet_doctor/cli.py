"""
Click-based CLI for valet-doctor.

This module only ORCHESTRATES. It never decides what a transition does.
- Loads settings
- Invokes the orchestrator
- Passes flags
- Formats output
"""

import contextlib
import logging
import time
from pathlib import Path

import click
import yaml
from rich.console import Console
from rich.logging import RichHandler

from valet_doctor import __version__
from valet_doctor.actions.reporters import BaseReporter, JsonReporter, RichReporter
from valet_doctor.config import ConfigManager, Settings
from valet_doctor.engine.exceptions import OrchestrationError
from valet_doctor.engine.orchestrator import Orchestrator
from valet_doctor.engine.startup import CheckContext, run_checks
from valet_doctor.engine.transitions import TransitionKind
from valet_doctor.model.transition import OutcomeReport

console = Console()

RESTART_TARGETS = {
    "php": TransitionKind.RESTART_PHP_FPM,
    "nginx": TransitionKind.RESTART_NGINX,
    "dnsmasq": TransitionKind.RESTART_DNSMASQ,
    "all": TransitionKind.RESTART_ALL,
}


@click.group()
@click.version_option(version=__version__, prog_name="valet-doctor")
@click.option("--config", "-c", type=click.Path(), help="Path to config directory")
@click.option("--verbose", "-v", is_flag=True, help="Debug logging and full step output")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def main(ctx: click.Context, config: str | None, verbose: bool, as_json: bool) -> None:
    """valet-doctor: keep a Homebrew PHP + Laravel Valet setup healthy.

    Switch PHP versions, restart services and repair a broken Valet.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )
    ctx.ensure_object(dict)
    ctx.obj["config_mgr"] = ConfigManager(Path(config) if config else None)
    ctx.obj["verbose"] = verbose
    ctx.obj["json"] = as_json


def _build_orchestrator(settings: Settings) -> Orchestrator:
    return Orchestrator.from_settings(settings)


def _settings(ctx: click.Context) -> Settings:
    if "settings" not in ctx.obj:
        try:
            ctx.obj["settings"] = ctx.obj["config_mgr"].load()
        except ValueError as e:
            console.print(f"[bold red]Invalid configuration:[/] {e}")
            ctx.exit(1)
    return ctx.obj["settings"]


def _orchestrator(ctx: click.Context) -> Orchestrator:
    """Build the orchestrator once per invocation."""
    if "orchestrator" not in ctx.obj:
        orchestrator = _build_orchestrator(_settings(ctx))
        ctx.obj["orchestrator"] = orchestrator
        ctx.call_on_close(orchestrator.shutdown)
    return ctx.obj["orchestrator"]


def _reporter(ctx: click.Context) -> BaseReporter:
    if ctx.obj["json"]:
        return JsonReporter(console)
    return RichReporter(console, verbose=ctx.obj["verbose"])


def _status(ctx: click.Context, message: str):
    """Spinner for rich output, nothing for JSON."""
    if ctx.obj["json"]:
        return contextlib.nullcontext()
    return console.status(message, spinner="dots")


def _refresh(ctx: click.Context) -> None:
    with _status(ctx, "[bold blue]Probing PHP installation...[/]"):
        _orchestrator(ctx).refresh()


def _run_transition(ctx: click.Context, kind: TransitionKind, **params) -> OutcomeReport:
    """Refresh, run one transition and wait for its report.

    Busy and unavailable transitions print an error and exit 1.
    """
    orchestrator = _orchestrator(ctx)
    report = None
    error = None
    try:
        _refresh(ctx)
        with _status(ctx, f"[bold blue]Running {kind.value}...[/]") as status:
            log_fn = status.update if status is not None else None
            report = orchestrator.run(kind, log_fn=log_fn, **params)
    except OrchestrationError as e:
        error = e

    if error is not None:
        console.print(f"[bold red]Error:[/] {error}")
        ctx.exit(1)
    return report


def _finish(ctx: click.Context, report: OutcomeReport) -> None:
    code = _reporter(ctx).report_outcome(report)
    if code:
        ctx.exit(code)


# =========================================================================
# Read-only commands
# =========================================================================


@main.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show the active PHP version and service states."""
    _refresh(ctx)
    _reporter(ctx).report_snapshot(_orchestrator(ctx).snapshot)


@main.command()
@click.pass_context
def extensions(ctx: click.Context) -> None:
    """List extensions found in the active version's ini files."""
    _refresh(ctx)
    _reporter(ctx).report_extensions(_orchestrator(ctx).snapshot)


@main.command()
@click.pass_context
def doctor(ctx: click.Context) -> None:
    """Check that Homebrew, PHP and Valet are set up correctly.

    Exits with code 1 if a critical check fails.
    """
    orchestrator = _orchestrator(ctx)
    _refresh(ctx)
    context = CheckContext(shell=orchestrator.shell, settings=orchestrator.settings, snapshot=orchestrator.snapshot)
    code = _reporter(ctx).report_checks(run_checks(context))
    if code:
        ctx.exit(code)


@main.command()
@click.option("--interval", "-i", type=int, default=None, help="Seconds between probes (default: refresh_interval)")
@click.option("--count", "-n", type=int, default=0, help="Stop after N probes (0 = until Ctrl+C)")
@click.pass_context
def watch(ctx: click.Context, interval: int | None, count: int) -> None:
    """Re-probe periodically and print the snapshot."""
    orchestrator = _orchestrator(ctx)
    interval = interval if interval is not None else _settings(ctx).refresh_interval
    reporter = _reporter(ctx)

    probes = 0
    try:
        while True:
            orchestrator.refresh()
            reporter.report_snapshot(orchestrator.snapshot)
            probes += 1
            if count and probes >= count:
                break
            time.sleep(interval)
    except KeyboardInterrupt:
        console.print("[dim]Stopped watching.[/]")


# =========================================================================
# Transitions
# =========================================================================


@main.command()
@click.argument("version")
@click.option("--yes", is_flag=True, help="Run Fix My Valet without asking if the switch does not stick")
@click.pass_context
def switch(ctx: click.Context, version: str, yes: bool) -> None:
    """Switch the linked PHP version (e.g. 8.2).

    Whenever PHP does not end up on the requested version, including after
    an aborted step, Fix My Valet is offered. Exits with code 2 when the
    steps ran but the state does not match, 1 when a step aborted.
    """
    report = _run_transition(ctx, TransitionKind.SWITCH_VERSION, version=version)
    code = _reporter(ctx).report_outcome(report)

    if report.verified is False and not ctx.obj["json"]:
        if yes or click.confirm("PHP did not end up as expected. Run Fix My Valet?", default=True):
            _reporter(ctx).report_outcome(_run_transition(ctx, TransitionKind.FIX_MY_VALET))
    if code:
        ctx.exit(code)


@main.command()
@click.option("--yes", is_flag=True, help="Skip confirmation prompt")
@click.pass_context
def fix(ctx: click.Context, yes: bool) -> None:
    """Fix My Valet: stop every PHP version and relink Homebrew's default.

    Also restarts dnsmasq, PHP-FPM and nginx.
    """
    if not yes:
        click.confirm(
            "This stops all PHP services, links Homebrew's default PHP and restarts dnsmasq, PHP and nginx. Continue?",
            abort=True,
        )
    _finish(ctx, _run_transition(ctx, TransitionKind.FIX_MY_VALET))


@main.command()
@click.argument("service", type=click.Choice(sorted(RESTART_TARGETS)), default="all")
@click.pass_context
def restart(ctx: click.Context, service: str) -> None:
    """Restart php (PHP-FPM), nginx, dnsmasq or all of them."""
    _finish(ctx, _run_transition(ctx, RESTART_TARGETS[service]))


@main.command()
@click.pass_context
def stop(ctx: click.Context) -> None:
    """Stop PHP-FPM, nginx and dnsmasq."""
    _finish(ctx, _run_transition(ctx, TransitionKind.STOP_ALL))


@main.command("fix-permissions")
@click.option("--yes", is_flag=True, help="Skip confirmation prompt")
@click.pass_context
def fix_permissions(ctx: click.Context, yes: bool) -> None:
    """Stop services and chown their Homebrew Cellar folders to you."""
    if not yes:
        click.confirm("This stops services and changes ownership of Cellar folders. Continue?", abort=True)
    _finish(ctx, _run_transition(ctx, TransitionKind.FIX_PERMISSIONS))


@main.command("composer-update")
@click.pass_context
def composer_update(ctx: click.Context) -> None:
    """Run `composer global update`."""
    _finish(ctx, _run_transition(ctx, TransitionKind.COMPOSER_UPDATE))


@main.command()
@click.option("--open/--no-open", "open_browser", default=True, help="Open the rendered page")
@click.pass_context
def phpinfo(ctx: click.Context, open_browser: bool) -> None:
    """Render phpinfo() for the active version to an HTML file."""
    report = _run_transition(ctx, TransitionKind.PHPINFO)
    _reporter(ctx).report_outcome(report)
    if not report.success:
        ctx.exit(1)
    if open_browser and "phpinfo" in report.artifacts:
        click.launch(report.artifacts["phpinfo"])


@main.command("toggle-extension")
@click.argument("name")
@click.pass_context
def toggle_extension(ctx: click.Context, name: str) -> None:
    """Enable or disable an extension, then restart PHP-FPM."""
    _finish(ctx, _run_transition(ctx, TransitionKind.TOGGLE_EXTENSION, name=name))


@main.command()
@click.pass_context
def refresh(ctx: click.Context) -> None:
    """Reload installation info and print it."""
    report = _run_transition(ctx, TransitionKind.RELOAD)
    if not report.success:
        _finish(ctx, report)
        return
    _reporter(ctx).report_snapshot(_orchestrator(ctx).snapshot)


# =========================================================================
# Web API
# =========================================================================


@main.command()
@click.option("--port", "-p", type=int, default=None, help="Port (default: web_port setting)")
@click.pass_context
def serve(ctx: click.Context, port: int | None) -> None:
    """Serve the local API on 127.0.0.1."""
    from valet_doctor.web.app import run_server

    port = port or _settings(ctx).web_port
    console.print(f"[bold green]Serving valet-doctor API at http://127.0.0.1:{port}/api/docs[/]")
    run_server(port=port, orchestrator=_orchestrator(ctx))


# =========================================================================
# Configuration
# =========================================================================


@main.group()
def config() -> None:
    """Show or change settings."""
    pass


@config.command("show")
@click.pass_context
def config_show(ctx: click.Context) -> None:
    """Print the effective settings."""
    settings = _settings(ctx)
    if ctx.obj["json"]:
        JsonReporter(console).dump(settings.to_dict())
        return
    console.print(f"[dim]# {ctx.obj['config_mgr'].config_file}[/]")
    console.print(yaml.safe_dump(settings.to_dict(), sort_keys=True).rstrip(), highlight=False)


@config.command("set")
@click.argument("key")
@click.argument("value")
@click.pass_context
def config_set(ctx: click.Context, key: str, value: str) -> None:
    """Persist a setting (e.g. `config set elevation osascript`)."""
    config_mgr = ctx.obj["config_mgr"]
    error = None
    try:
        config_mgr.set_value(key, value)
    except KeyError:
        error = f"Unknown setting '{key}'"
    except ValueError as e:
        error = str(e)

    if error is not None:
        console.print(f"[bold red]Error:[/] {error}")
        ctx.exit(1)
    console.print(f"[bold green]v Saved[/] {key} = {value}")


@config.command("unset")
@click.argument("key")
@click.pass_context
def config_unset(ctx: click.Context, key: str) -> None:
    """Remove a saved setting."""
    if ctx.obj["config_mgr"].unset_value(key):
        console.print(f"[bold green]v Removed[/] {key}")
    else:
        console.print(f"[dim]{key} was not set.[/]")


if __name__ == "__main__":
    main()
