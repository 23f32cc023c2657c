"""Manpower Compute Queue CLI - Main Entry Point"""

from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel

from .client.endpoints import ComputeQueueClient, ComputeQueueError
from .commands import config, jobs, processor
from .utils.config_manager import config as config_manager
from .utils.formatting import print_error, print_info

console = Console()

app = typer.Typer(
    name="manpower-queue",
    help="⏱️ Manpower Compute Queue - operator CLI",
    rich_markup_mode="rich",
)

# Add command subapps
app.add_typer(jobs.app, name="jobs")
app.add_typer(processor.app, name="processor")
app.add_typer(config.app, name="config")


@app.command()
def status():
    """📊 Check API connectivity and processor state"""
    base_url = config_manager.get("api.base_url")
    print_info(f"Checking connection to: {base_url}")

    try:
        with ComputeQueueClient(base_url) as client:
            health = client.health_check()
    except ComputeQueueError as e:
        print_error(f"Failed to connect: {e}")
        console.print(
            Panel(
                f"🚫 [red]Connection Failed[/red]\n\n"
                f"Make sure the compute queue API is running at:\n"
                f"[blue]{base_url}[/blue]\n\n"
                f"You can update the API URL with:\n"
                f"[cyan]manpower-queue config set api.base_url <url>[/cyan]",
                title="Connection Error",
                border_style="red",
            )
        )
        raise typer.Exit(1) from None

    store = health.get("store") or {}
    processor_status = health.get("processor") or {}
    store_state = "[green]connected[/green]" if store.get("connected") else "[red]down[/red]"

    console.print(
        Panel(
            f"🚀 [green]Connected Successfully![/green]\n\n"
            f"• Version: [cyan]{health.get('version', 'unknown')}[/cyan]\n"
            f"• Environment: [yellow]{health.get('environment', 'unknown')}[/yellow]\n"
            f"• Store: {store_state}\n"
            f"• Processor: [cyan]{processor_status.get('state', 'unknown')}[/cyan]\n"
            f"• API URL: [blue]{base_url}[/blue]",
            title="System Status",
            border_style="green" if health.get("ok") else "yellow",
        )
    )


@app.command()
def version():
    """📎 Show CLI version information"""
    from . import __version__

    console.print(
        Panel(
            f"⏱️ [bold cyan]Manpower Compute Queue CLI[/bold cyan]\n\n"
            f"• Version: [green]{__version__}[/green]",
            title="Version Info",
            border_style="cyan",
        )
    )


@app.command()
def quickstart():
    """🚀 Quick start guide"""
    console.print(
        Panel(
            "⏱️ [bold cyan]Manpower Compute Queue Quick Start[/bold cyan]\n\n"
            "[bold]1. Check Status[/bold]\n"
            "   [dim]manpower-queue status[/dim]\n\n"
            "[bold]2. View Today's Stats[/bold]\n"
            "   [dim]manpower-queue jobs stats[/dim]\n\n"
            "[bold]3. Inspect Failures[/bold]\n"
            "   [dim]manpower-queue jobs list --status failed[/dim]\n\n"
            "[bold]4. Retry a Failed Job[/bold]\n"
            "   [dim]manpower-queue jobs retry <job-id>[/dim]\n\n"
            "[bold]5. Check the Processor[/bold]\n"
            "   [dim]manpower-queue processor status[/dim]\n\n"
            "[bold yellow]Tip:[/bold yellow] Use [cyan]--help[/cyan] with any command for more options!",
            title="Quick Start Guide",
            border_style="green",
        )
    )


def _version_callback(value: bool):
    if value:
        from . import __version__

        console.print(f"Manpower Compute Queue CLI v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit",
        callback=_version_callback,
        is_eager=True,
    ),
):
    """
    ⏱️ Manpower Compute Queue CLI

    Inspect queued timekeeping recomputes, retry failures and control the
    processor through the admin API.
    """


if __name__ == "__main__":
    app()
