"""Rich rendering of pane statuses and monitor diagnostics.

SECURITY: Pane titles and commands come from the terminal and are escaped
to prevent Rich markup injection.
"""

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from panewatch.core.models import MonitorStats, PaneSnapshot, WorkerStatus

STATUS_STYLES = {
    WorkerStatus.WORKING: "[blue]⟳ WORKING[/]",
    WorkerStatus.IDLE: "[yellow]○ IDLE[/]",
    WorkerStatus.DONE: "[green]✓ DONE[/]",
    WorkerStatus.BLOCKED: "[magenta]⏸ BLOCKED[/]",
    WorkerStatus.TERMINATED: "[red]✗ TERMINATED[/]",
    WorkerStatus.UNKNOWN: "[dim]? UNKNOWN[/]",
}


class StatusTableRenderer:
    """Renders pane statuses as a Rich table."""

    def __init__(self, console: Console | None = None):
        self.console = console or Console()

    def render_status_table(
        self,
        session: str,
        panes: list[PaneSnapshot],
        statuses: dict[str, WorkerStatus],
        rules: dict[str, str] | None = None,
    ) -> Table:
        table = Table(title=f"Session: {escape(session)}")

        table.add_column("Pane", style="cyan")
        table.add_column("Role", style="magenta")
        table.add_column("Command")
        table.add_column("Title", max_width=40)
        table.add_column("Status", justify="center")
        table.add_column("Rule", style="dim")

        for pane in panes:
            role = "operator" if pane.is_active else "worker"
            status = statuses.get(pane.id)
            status_text = STATUS_STYLES.get(status, "-") if status else "-"
            table.add_row(
                escape(pane.id),
                role,
                escape(pane.command or "-"),
                escape(pane.title or ""),
                status_text,
                escape((rules or {}).get(pane.id, "")),
            )
        return table

    def render_stats(self, stats: MonitorStats) -> Panel:
        counts = "  ".join(
            f"{status.label}: {stats.count(status)}"
            for status in WorkerStatus
            if stats.count(status)
        )
        return Panel(
            f"[bold]Panes:[/] {stats.total} ({stats.workers} workers, {stats.operator} operator)\n"
            f"[bold]Statuses:[/] {counts or '-'}\n"
            f"[bold]Cleared:[/] {stats.cleared}\n"
            f"[bold]Cycles:[/] {stats.cycles}",
            title="Monitor Diagnostics",
        )
