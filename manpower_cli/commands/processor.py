"""Processor Commands - Control the queue processor"""

import typer
from rich.console import Console

from ..client.endpoints import ComputeQueueClient, ComputeQueueError
from ..utils.config_manager import config
from ..utils.formatting import (
    create_processor_panel,
    print_error,
    print_info,
    print_success,
)

console = Console()
app = typer.Typer(name="processor", help="Queue processor control")


@app.command("status")
def processor_status():
    """⚙️ Show processor state and counters"""
    try:
        with ComputeQueueClient(config.get("api.base_url")) as client:
            status = client.processor_status()
    except ComputeQueueError as e:
        print_error(f"Failed to fetch processor status: {e}")
        raise typer.Exit(1) from None

    console.print(create_processor_panel(status))


@app.command("trigger")
def trigger_processor():
    """▶️ Start the processor if it is not running"""
    try:
        with ComputeQueueClient(config.get("api.base_url")) as client:
            result = client.trigger_processor()
    except ComputeQueueError as e:
        print_error(f"Failed to trigger processor: {e}")
        raise typer.Exit(1) from None

    print_info(result.get("message", "Processor triggered"))


@app.command("sweep")
def sweep_stale():
    """🧹 Recover jobs orphaned in the processing list"""
    try:
        with ComputeQueueClient(config.get("api.base_url")) as client:
            result = client.sweep_stale()
    except ComputeQueueError as e:
        print_error(f"Failed to sweep stale jobs: {e}")
        raise typer.Exit(1) from None

    print_success(f"Recovered {result.get('count', 0)} stale jobs")
