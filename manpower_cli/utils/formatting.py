"""Rich Formatting Utilities for CLI Output"""

from typing import Any

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

console = Console()

STATUS_STYLES = {
    "pending": "yellow",
    "processing": "cyan",
    "completed": "green",
    "failed": "red",
}

HEALTH_STYLES = {
    "healthy": "green",
    "warning": "yellow",
    "critical": "red",
}


def print_success(message: str):
    """Print success message with green styling"""
    console.print(f"[green]✓ {message}[/green]")


def print_error(message: str):
    """Print error message with red styling"""
    console.print(f"[red]✗ {message}[/red]")


def print_warning(message: str):
    """Print warning message with yellow styling"""
    console.print(f"[yellow]⚠ {message}[/yellow]")


def print_info(message: str):
    """Print info message with blue styling"""
    console.print(f"[blue]ℹ {message}[/blue]")


def _styled_status(status: str) -> str:
    style = STATUS_STYLES.get(status, "white")
    return f"[{style}]{status}[/{style}]"


def create_jobs_table(jobs: list[dict[str, Any]], title: str = "Jobs") -> Table:
    """Create a formatted table for a job list"""
    table = Table(title=title, box=box.ROUNDED)

    table.add_column("ID", justify="left", style="cyan", no_wrap=True)
    table.add_column("Employee", justify="left", style="white")
    table.add_column("Date", justify="center", style="magenta")
    table.add_column("Status", justify="center")
    table.add_column("Attempts", justify="center", style="yellow")
    table.add_column("Time (ms)", justify="right", style="blue")
    table.add_column("Error", justify="left", style="red")

    for job in jobs:
        employee = job.get("employee_name") or job.get("employee_id", "")
        error = job.get("error") or "-"
        processing_time = job.get("processing_time_ms")

        table.add_row(
            job.get("id", "")[:8],  # Short ID
            employee,
            job.get("date", ""),
            _styled_status(job.get("status", "")),
            f"{job.get('attempts', 0)}/{job.get('max_attempts', 0)}",
            str(processing_time) if processing_time is not None else "-",
            error[:60] + "..." if len(error) > 60 else error,
        )

    return table


def create_stats_panel(stats: dict[str, Any]) -> Panel:
    """Create formatted panel for daily queue statistics"""
    content = f"""
📊 [bold blue]Queue Statistics for {stats.get("date", "today")}[/bold blue]

• Enqueued: [blue]{stats.get("total_today", 0)}[/blue]
• Completed: [green]{stats.get("completed", 0)}[/green]
• Failed: [red]{stats.get("failed", 0)}[/red]
• Pending: [yellow]{stats.get("pending", 0)}[/yellow]
• Processing: [cyan]{stats.get("processing", 0)}[/cyan]
• Avg Processing Time: [yellow]{stats.get("avg_processing_time_ms", 0):.0f}ms[/yellow]
• Success Rate: [green]{stats.get("success_rate", 0):.1f}%[/green]
• Last Processed: [dim]{stats.get("last_processed_at") or "never"}[/dim]
"""

    return Panel(content, title="Queue Stats", border_style="green")


def create_processor_panel(status: dict[str, Any]) -> Panel:
    """Create formatted panel for processor status"""
    healthy = status.get("healthy", False)
    state_style = "green" if healthy else "red"

    content = (
        f"• State: [{state_style}]{status.get('state', 'unknown')}[/{state_style}]\n"
        f"• Processing: [cyan]{status.get('is_processing', False)}[/cyan]\n"
        f"• Stopping: [yellow]{status.get('should_stop', False)}[/yellow]\n"
        f"• Current Job: [blue]{status.get('current_job_id') or '-'}[/blue]\n"
        f"• Processed: [green]{status.get('processed', 0)}[/green]\n"
        f"• Failed: [red]{status.get('failed', 0)}[/red]\n"
        f"• Restarts: [yellow]{status.get('restarts', 0)}[/yellow]"
    )

    return Panel(
        content, title="Processor", border_style="green" if healthy else "red"
    )


def display_job(job: dict[str, Any]):
    """Display full details of a single job"""
    lines = [
        f"• ID: [cyan]{job.get('id')}[/cyan]",
        f"• Status: {_styled_status(job.get('status', ''))}",
        f"• Employee: [white]{job.get('employee_name') or '-'}[/white] "
        f"([dim]{job.get('employee_id')}[/dim])",
        f"• Device: [white]{job.get('device_name') or '-'}[/white] "
        f"([dim]{job.get('device_id')}[/dim])",
        f"• Date: [magenta]{job.get('date')}[/magenta]",
        f"• Attempts: [yellow]{job.get('attempts', 0)}/{job.get('max_attempts', 0)}[/yellow]",
        f"• Created: [dim]{job.get('created_at')}[/dim]",
    ]
    if job.get("processing_started_at"):
        lines.append(f"• Started: [dim]{job['processing_started_at']}[/dim]")
    if job.get("completed_at"):
        lines.append(f"• Finished: [dim]{job['completed_at']}[/dim]")
    if job.get("processing_time_ms") is not None:
        lines.append(f"• Processing Time: [blue]{job['processing_time_ms']}ms[/blue]")

    console.print(Panel("\n".join(lines), title="Job", border_style="blue"))

    if job.get("error"):
        console.print(Panel(f"[red]{job['error']}[/red]", title="Error"))
    if job.get("error_trace"):
        console.print(Panel(job["error_trace"], title="Trace", border_style="dim"))


def display_health(health: dict[str, Any]):
    """Display queue health with recommendations"""
    status = health.get("status", "unknown")
    style = HEALTH_STYLES.get(status, "white")

    console.print(
        Panel(
            f"[bold {style}]{status.upper()}[/bold {style}]",
            title="Queue Health",
            border_style=style,
        )
    )
    for recommendation in health.get("recommendations", []):
        console.print(f"  💡 {recommendation}")
