"""Job Commands - Inspect and manage queued recompute jobs"""

import typer
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm

from ..client.endpoints import ComputeQueueClient, ComputeQueueError
from ..utils.config_manager import config
from ..utils.formatting import (
    create_jobs_table,
    create_stats_panel,
    display_health,
    display_job,
    print_error,
    print_info,
    print_success,
    print_warning,
)

console = Console()
app = typer.Typer(name="jobs", help="Compute job inspection and management")

JOB_STATUSES = ("pending", "processing", "completed", "failed")


@app.command("enqueue")
def enqueue_job(
    employee_id: str = typer.Argument(..., help="Employee to recompute"),
    device_id: str = typer.Argument(..., help="Device that recorded the clock-out"),
    date: str = typer.Argument(..., help="Day to recompute (YYYY-MM-DD)"),
    employee_name: str = typer.Option("", "--employee-name", help="Employee display name"),
    device_name: str = typer.Option("", "--device-name", help="Device display name"),
):
    """➕ Enqueue a recompute job manually"""
    try:
        with ComputeQueueClient(config.get("api.base_url")) as client:
            result = client.enqueue(
                employee_id,
                device_id,
                date,
                employee_name=employee_name,
                device_name=device_name,
            )
    except ComputeQueueError as e:
        print_error(f"Failed to enqueue job: {e}")
        raise typer.Exit(1) from None

    job = result.get("job", {})
    print_success(
        f"Enqueued job {job.get('id')} at position {result.get('queue_position')}"
    )


@app.command("stats")
def show_stats(
    date: str | None = typer.Option(None, "--date", "-d", help="Day (YYYY-MM-DD)"),
):
    """📊 Show daily queue statistics"""
    try:
        with ComputeQueueClient(config.get("api.base_url")) as client:
            stats = client.get_stats(date)
    except ComputeQueueError as e:
        print_error(f"Failed to fetch stats: {e}")
        raise typer.Exit(1) from None

    console.print(create_stats_panel(stats))


@app.command("list")
def list_jobs(
    status: str = typer.Option("pending", "--status", "-s", help="List to read"),
    date: str | None = typer.Option(
        None, "--date", "-d", help="Day of the completed list (YYYY-MM-DD)"
    ),
    limit: int = typer.Option(20, "--limit", "-l", help="Jobs to show"),
):
    """📋 List jobs by status"""
    if status not in JOB_STATUSES:
        print_error(f"Status must be one of: {', '.join(JOB_STATUSES)}")
        raise typer.Exit(1)

    try:
        with ComputeQueueClient(config.get("api.base_url")) as client:
            result = client.list_jobs(status, date=date, limit=limit)
    except ComputeQueueError as e:
        print_error(f"Failed to list jobs: {e}")
        raise typer.Exit(1) from None

    jobs = result.get("jobs", [])
    if not jobs:
        console.print(
            Panel(
                f"📭 [yellow]No {status} jobs[/yellow]",
                title="Empty Results",
                border_style="yellow",
            )
        )
        return

    console.print(create_jobs_table(jobs, title=f"{status.capitalize()} Jobs"))
    console.print(f"\n📊 Showing [cyan]{len(jobs)}[/cyan] jobs")


@app.command("show")
def show_job(
    job_id: str = typer.Argument(..., help="Job ID to show"),
):
    """🔍 Show full details of a job"""
    try:
        with ComputeQueueClient(config.get("api.base_url")) as client:
            job = client.get_job(job_id)
    except ComputeQueueError as e:
        print_error(f"Failed to fetch job: {e}")
        raise typer.Exit(1) from None

    display_job(job)


@app.command("position")
def show_position(
    job_id: str = typer.Argument(..., help="Job ID"),
):
    """🔢 Show a job's position in the pending list"""
    try:
        with ComputeQueueClient(config.get("api.base_url")) as client:
            result = client.get_position(job_id)
    except ComputeQueueError as e:
        print_error(f"Failed to fetch position: {e}")
        raise typer.Exit(1) from None

    position = result.get("position", 0)
    if position:
        print_info(f"Job {job_id} is at position {position}")
    else:
        print_warning(f"Job {job_id} is not pending")


@app.command("retry")
def retry_job(
    job_id: str = typer.Argument(..., help="Failed job ID"),
):
    """🔁 Retry a permanently failed job"""
    try:
        with ComputeQueueClient(config.get("api.base_url")) as client:
            result = client.retry_job(job_id)
    except ComputeQueueError as e:
        print_error(f"Failed to retry job: {e}")
        raise typer.Exit(1) from None

    print_success(result.get("message", f"Job {job_id} queued for retry"))


@app.command("delete")
def delete_job(
    job_id: str = typer.Argument(..., help="Failed job ID"),
):
    """🗑️ Delete a permanently failed job"""
    try:
        with ComputeQueueClient(config.get("api.base_url")) as client:
            result = client.delete_failed(job_id)
    except ComputeQueueError as e:
        print_error(f"Failed to delete job: {e}")
        raise typer.Exit(1) from None

    print_success(result.get("message", f"Job {job_id} deleted"))


@app.command("clear-failed")
def clear_failed(
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
):
    """🧹 Delete every permanently failed job"""
    if not yes and not Confirm.ask("⚠️ Delete ALL failed jobs?"):
        console.print("Operation cancelled.")
        return

    try:
        with ComputeQueueClient(config.get("api.base_url")) as client:
            result = client.clear_failed()
    except ComputeQueueError as e:
        print_error(f"Failed to clear failed jobs: {e}")
        raise typer.Exit(1) from None

    print_success(f"Cleared {result.get('count', 0)} failed jobs")


@app.command("health")
def show_health():
    """🩺 Show queue health and recommendations"""
    try:
        with ComputeQueueClient(config.get("api.base_url")) as client:
            health = client.queue_health()
    except ComputeQueueError as e:
        print_error(f"Failed to fetch health: {e}")
        raise typer.Exit(1) from None

    display_health(health)
    console.print(create_stats_panel(health.get("stats", {})))
