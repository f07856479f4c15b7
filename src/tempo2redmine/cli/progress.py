"""Modern CLI progress display using rich."""

from rich.console import Console
from rich.progress import (
    Progress,
    TextColumn,
    SpinnerColumn,
)
from rich.panel import Panel
from rich.text import Text
from rich.table import Table
from typing import Iterable, List, Optional
import time
from contextlib import contextmanager

from ..domain.models import (
    EntryState,
    FillReport,
    MissingEntry,
    ProjectMapping,
    ReconciliationResult,
)

STATE_STYLES = {
    EntryState.PENDING: ("…", "dim"),
    EntryState.CREATING: ("⏳", "yellow"),
    EntryState.CREATED: ("✅", "green"),
    EntryState.FAILED: ("❌", "red"),
}


class ModernCLI:
    """Minimal CLI interface with rich formatting."""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()
        self.start_time: Optional[float] = None

    def _format_hours(self, total_hours: float) -> str:
        """Format decimal hours into Jira-style duration (e.g., 2h 30m)."""
        if total_hours == 0:
            return "0m"

        hours = int(total_hours)
        minutes = round((total_hours - hours) * 60)
        if minutes == 60:
            hours, minutes = hours + 1, 0

        if hours == 0:
            return f"{minutes}m"
        elif minutes == 0:
            return f"{hours}h"
        else:
            return f"{hours}h {minutes}m"

    def show_banner(self) -> None:
        banner = Text("tempo2redmine", style="bold blue")
        banner.append(" • Tempo → Redmine reconciliation", style="dim")
        self.console.print(Panel(banner, border_style="blue"))

    def validate_config(self, errors: List[str]) -> bool:
        """Show configuration validation results."""
        if errors:
            self.console.print("❌ [red bold]Configuration Error[/red bold]")
            for error in errors:
                self.console.print(f"   • {error}", style="red")
            return False
        return True

    def start_run(self, period: str, strict: bool = False) -> None:
        self.start_time = time.time()
        mode_text = "[yellow]Comparing (strict)[/yellow]" if strict else "[blue]Comparing[/blue]"
        self.console.print(f"\n⏳ {mode_text} [cyan]{period}[/cyan]...")

    def show_summary(self, result: ReconciliationResult, period: str) -> None:
        """Show the reconciliation summary panel."""
        duration = time.time() - self.start_time if self.start_time else 0.0
        stats = result.stats

        if stats.missing == 0:
            missing_text = "[green]nothing missing[/green]"
        else:
            missing_text = (
                f"[yellow]{stats.missing} missing ({self._format_hours(stats.missing_hours)})[/yellow]"
            )

        summary = (
            f"[green bold]{duration:.2f}s[/green bold] • [cyan]{period}[/cyan] • "
            f"[white]Tempo {stats.tempo_total} ({self._format_hours(stats.tempo_hours)})[/white] • "
            f"[white]Redmine {stats.redmine_total} ({self._format_hours(stats.redmine_hours)})[/white] • "
            f"{stats.matched} matched • {missing_text} • "
            f"[blue]mapping {stats.mapping_rate:.1f}%[/blue]"
        )
        if result.discrepancies:
            summary += f" • [magenta]{len(result.discrepancies)} discrepancies[/magenta]"

        self.console.print(Panel(summary, border_style="green", title="Reconciliation Summary"))

    def show_missing_table(self, entries: Iterable[MissingEntry]) -> None:
        entries = list(entries)
        if not entries:
            return

        self.console.print("\n[yellow bold]Missing in Redmine:[/yellow bold]")
        table = Table(show_header=True, box=None, width=120)
        table.add_column("Date", width=10, style="cyan")
        table.add_column("Duration", width=9, justify="right", style="blue")
        table.add_column("Jira", width=10)
        table.add_column("Redmine", width=8, justify="right")
        table.add_column("Link", width=18, style="dim")
        table.add_column("Description", width=55, overflow="ellipsis", style="dim")

        for entry in entries:
            table.add_row(
                entry.date,
                self._format_hours(entry.hours),
                entry.jira_task or "-",
                f"#{entry.redmine_task}" if entry.redmine_task else "-",
                entry.mapping_status.value,
                (entry.description or "")[:55],
            )

        self.console.print(table)

    def on_entry_state_change(self, entry: MissingEntry, state: EntryState) -> None:
        """Print one line per state change of an entry being created."""
        if state == EntryState.PENDING:
            return
        icon, style = STATE_STYLES[state]
        line = f"{icon} {entry.date} {self._format_hours(entry.hours):>7} {entry.jira_task or '-'}"
        if state == EntryState.FAILED and entry.error:
            line += f" • {entry.error}"
        self.console.print(Text(line, style=style))

    def show_fill_report(self, report: FillReport) -> None:
        created_text = f"[green]{len(report.created)} created[/green]"
        failed_text = (
            f"[red]{len(report.failed)} failed[/red]" if report.failed else "[green]0 failed[/green]"
        )
        summary = (
            f"{created_text} • {failed_text} • "
            f"[blue]{self._format_hours(report.created_hours)} logged[/blue] • "
            f"{len(report.issues_created)} issues created"
        )
        self.console.print(Panel(summary, border_style="green" if not report.failed else "red", title="Gap Fill"))
        for error in report.errors:
            self.console.print(f"   • {error}", style="red")

    def show_mappings(self, mappings: Iterable[ProjectMapping]) -> None:
        table = Table(show_header=True, box=None)
        table.add_column("ID", style="dim")
        table.add_column("Jira URL", style="cyan")
        table.add_column("Redmine project", justify="right")
        table.add_column("Description", style="dim")
        for mapping in mappings:
            table.add_row(
                mapping.id, mapping.jira_url_prefix, mapping.ledger_project_id, mapping.description
            )
        self.console.print(table)

    def show_error(self, error: str) -> None:
        self.console.print(f"\n❌ [red bold]Error:[/red bold] {error}")

    def show_success(self, message: str) -> None:
        self.console.print(f"✅ [green]{message}[/green]")

    def ask_confirmation(self, message: str) -> bool:
        """Ask for user confirmation."""
        response = self.console.input(f"❓ {message} [y/N]: ")
        return response.lower().startswith("y")

    @contextmanager
    def progress_spinner(self, description: str):
        """Context manager for showing a spinner with description."""
        with Progress(
            SpinnerColumn(),
            TextColumn("{task.description}"),
            console=self.console,
            transient=True,
        ) as progress:
            task = progress.add_task(description, total=None)
            try:
                yield progress
            finally:
                progress.remove_task(task)
