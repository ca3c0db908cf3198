"""Rich Reporter Implementation."""

from rich.panel import Panel
from rich.table import Table

from valet_doctor.actions.reporters.base import BaseReporter, outcome_exit_code
from valet_doctor.engine.startup import CheckResult, Severity, environment_ok
from valet_doctor.model.environment import EnvironmentSnapshot, ServiceState
from valet_doctor.model.transition import OutcomeReport

_STATE_STYLE = {
    ServiceState.RUNNING: "green",
    ServiceState.STOPPED: "yellow",
    ServiceState.ERROR: "red",
    ServiceState.NOT_INSTALLED: "dim",
    ServiceState.UNKNOWN: "dim",
}


class RichReporter(BaseReporter):
    """Generates terminal output using Rich."""

    def report_snapshot(self, snapshot: EnvironmentSnapshot) -> None:
        active = snapshot.active
        if active.error or active.version is None:
            headline = "[red]PHP is broken or not linked[/]"
            border = "red"
        else:
            headline = f"[bold green]PHP {active.version.long}[/]"
            border = "green"

        grid = Table.grid(padding=(0, 2))
        grid.add_column(style="dim")
        grid.add_column()
        grid.add_row("Active", headline)
        grid.add_row("Homebrew default", snapshot.brew_php_version or "unknown")
        grid.add_row("Installed", ", ".join(snapshot.available_versions) or "none")
        if not active.error:
            limits = active.limits
            grid.add_row(
                "Limits",
                f"memory {limits.memory_limit} | post {limits.post_max_size} | upload {limits.upload_max_filesize}",
            )
            if not active.fpm_configured:
                grid.add_row("PHP-FPM", "[yellow]valet-fpm.conf missing[/]")

        self.console.print(Panel(grid, title="[bold]Valet environment[/]", border_style=border, title_align="left"))

        if snapshot.services:
            table = Table(title="Services", show_header=True, header_style="bold")
            table.add_column("Service")
            table.add_column("State")
            for name, state in snapshot.services.items():
                table.add_row(name, f"[{_STATE_STYLE[state]}]{state.value}[/]")
            self.console.print(table)

        self.console.print(f"[dim]Probed at {snapshot.probed_at:%H:%M:%S}[/]")

    def report_outcome(self, report: OutcomeReport) -> int:
        table = Table(title=f"Transition: {report.transition_id}", show_header=True, header_style="bold")
        table.add_column("#", justify="right")
        table.add_column("Command")
        table.add_column("Exit", justify="right")
        table.add_column("Time", justify="right")

        tolerated = {t.index for t in report.tolerated}
        for step in report.steps:
            if step.success:
                code = f"[green]{step.exit_code}[/]"
            elif step.index in tolerated:
                code = f"[yellow]{step.exit_code}[/]"
            else:
                code = f"[red]{step.exit_code}[/]"
            if step.timed_out:
                code += " [red](timeout)[/]"
            table.add_row(str(step.index), step.command, code, f"{step.duration:.1f}s")

        if report.steps:
            self.console.print(table)

        if self.verbose:
            for step in report.steps:
                output = (step.stdout + step.stderr).strip()
                if output:
                    self.console.print(Panel(output, title=f"step {step.index}", border_style="dim"))

        if report.error:
            self.console.print(f"[red]x Error:[/] {report.error}")
        elif report.failure:
            self.console.print(f"[red]x Aborted:[/] {report.failure}")
        elif report.needs_repair:
            self.console.print("[yellow]! Steps completed but the environment does not match:[/]")
            for mismatch in report.mismatches:
                self.console.print(f"   - {mismatch}")
        else:
            note = f" ({len(report.tolerated)} tolerated failures)" if report.tolerated else ""
            self.console.print(f"[green]v Done{note}[/]")

        for name, value in report.artifacts.items():
            self.console.print(f"   [dim]{name}:[/] {value}")

        return outcome_exit_code(report)

    def report_checks(self, results: list[CheckResult]) -> int:
        self.console.print("Environment Checks", style="bold underline")
        for result in results:
            if result.passed:
                icon, color = "v", "green"
            elif result.severity is Severity.CRITICAL:
                icon, color = "x", "red"
            else:
                icon, color = "!", "yellow"
            self.console.print(f"   [{color}]{icon} {result.name}[/] {result.message}")
        return 0 if environment_ok(results) else 1

    def report_extensions(self, snapshot: EnvironmentSnapshot) -> None:
        extensions = snapshot.active.extensions
        if not extensions:
            self.console.print("[dim]No extensions found in the loaded ini files.[/]")
            return

        table = Table(title=f"Extensions (PHP {snapshot.active.short_version})", show_header=True, header_style="bold")
        table.add_column("Extension")
        table.add_column("Enabled")
        table.add_column("File")
        for extension in extensions:
            enabled = "[green]yes[/]" if extension.enabled else "[dim]no[/]"
            table.add_row(extension.name, enabled, f"{extension.file_name_only}:{extension.line_number}")
        self.console.print(table)
