"""CLI entry-point: run generation jobs, inspect them, and drive the scheduled post checker."""

import logging
import mimetypes
import time
from datetime import timedelta
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from contentforge.errors import ContentForgeError
from contentforge.jobs.models import GenerationJob, JobProgress, JobStatus, utcnow
from contentforge.services import build_services

app = typer.Typer(help="ContentForge: batch social post generation and publishing")
console = Console()


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _print_job(job: GenerationJob) -> None:
    table = Table(title=f"Job {job.id}", show_header=False)
    table.add_row("Status", job.status.value)
    table.add_row("Mode", job.mode.value)
    table.add_row("Progress", f"{job.progress}/{job.count} ({job.percentage}%)")
    table.add_row("Language", job.language)
    if job.topic:
        table.add_row("Topic", job.topic)
    if job.image_urls:
        table.add_row("Images", "\n".join(job.image_urls))
    if job.error:
        table.add_row("Error", f"[red]{job.error}[/red] ({job.error_kind})")
    table.add_row("Articles", "\n".join(job.article_ids) or "-")
    console.print(table)


def _print_progress(job: GenerationJob) -> None:
    p = JobProgress.from_job(job)
    line = f"[{p.status.value}] {p.current}/{p.total} ({p.percentage}%)"
    if p.error:
        line += f" [red]{p.error}[/red]"
    console.print(line)


@app.command()
def generate(
    topic: str = typer.Argument(None, help="Topic (topics mode) or page URL (website mode)"),
    mode: str = typer.Option("topics", help="Generation mode: topics | website | image"),
    count: int = typer.Option(3, help="Number of posts (image mode: one per image)"),
    image: list[Path] = typer.Option([], "--image", help="Image file(s) for image mode"),
    language: str = typer.Option(None, help="Post language (default from the user's settings)"),
    user: str = typer.Option("local", envvar="CF_USER", help="Owner user id"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
):
    """Create a generation job and run it in this process, printing progress."""
    _setup_logging(verbose)
    services = build_services()
    client = services.job_client()

    if mode == "image":
        if not image:
            console.print("[red]Error: image mode needs at least one --image[/red]")
            raise typer.Exit(1)
        refs = []
        for path in image:
            if not path.exists():
                console.print(f"[red]Error: file not found: {path}[/red]")
                raise typer.Exit(1)
            mime = mimetypes.guess_type(path.name)[0]
            refs.append(services.media.save_upload(user, path.read_bytes(), mime, path.name))
        source = {"mode": "image", "image_urls": refs}
    elif mode == "website":
        source = {"mode": "website", "url": topic or ""}
    else:
        source = {"mode": "topics", "topic": topic or ""}

    try:
        processor = services.processor()
        job_id = client.create_job_from_settings(user, source, count=count, language=language)
        console.print(f"Created job [bold]{job_id}[/bold]")
        unsubscribe = client.subscribe(job_id, _print_progress)
        try:
            final = processor.process(job_id)
        finally:
            unsubscribe()
    except ContentForgeError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    if final is None:
        raise typer.Exit(1)
    _print_job(final)
    for article in services.articles.list_for_job(job_id):
        console.print(f"\n[bold]{article.title}[/bold]\n{article.content}\n[dim]{article.image_url}[/dim]")
    if final.status != JobStatus.COMPLETED:
        raise typer.Exit(1)


@app.command()
def job(
    job_id: str = typer.Argument(..., help="Job id"),
    follow: bool = typer.Option(False, "--follow", "-f", help="Print changes until the job ends"),
):
    """Show a job's status and progress."""
    services = build_services()
    client = services.job_client()
    try:
        current = client.get_job(job_id)
    except ContentForgeError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)
    if not follow or current.is_terminal:
        _print_job(current)
        return
    # Feed notifications are in-process, so follow by polling the store
    last_version = -1
    while True:
        current = client.get_job(job_id)
        if current.version != last_version:
            _print_progress(current)
            last_version = current.version
        if current.is_terminal:
            break
        time.sleep(2)


@app.command("jobs")
def list_jobs(
    user: str = typer.Option("local", envvar="CF_USER", help="Owner user id"),
    limit: int = typer.Option(20, help="Max jobs to list"),
):
    """List a user's most recent jobs."""
    services = build_services()
    table = Table("Job", "Mode", "Status", "Progress", "Created")
    for j in services.job_client().list_jobs(user, limit=limit):
        table.add_row(j.id, j.mode.value, j.status.value, f"{j.progress}/{j.count}", j.created_at.isoformat())
    console.print(table)


@app.command()
def cancel(job_id: str = typer.Argument(..., help="Job id")):
    """Cancel a pending or processing job."""
    services = build_services()
    try:
        cancelled = services.job_client().cancel(job_id)
    except ContentForgeError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)
    console.print(f"Cancelled job {job_id} at {cancelled.progress}/{cancelled.count}")


@app.command()
def resume(
    job_id: str = typer.Argument(..., help="Job id left in processing by a dead worker"),
    force: bool = typer.Option(
        False, "--force", help="Take over even if the job was written within the job time budget"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
):
    """Continue a processing job from its last recorded item."""
    _setup_logging(verbose)
    services = build_services()
    stale_before = None
    if not force:
        stale_before = utcnow() - timedelta(seconds=services.settings.cf_job_timeout_seconds)
    try:
        final = services.processor().resume(job_id, stale_before=stale_before)
    except ContentForgeError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)
    if final is None:
        console.print(f"[red]Error: job not found: {job_id}[/red]")
        raise typer.Exit(1)
    _print_job(final)


@app.command("check-scheduled")
def check_scheduled(verbose: bool = typer.Option(False, "--verbose", "-v")):
    """Publish scheduled articles that are due, once."""
    _setup_logging(verbose)
    summary = build_services().scheduled_checker().run_once()
    console.print(
        f"Posted {len(summary.posted)}, dropped {len(summary.dropped)}, failed {len(summary.failed)}"
    )


@app.command()
def scheduler(verbose: bool = typer.Option(False, "--verbose", "-v")):
    """Run the scheduled post checker until interrupted."""
    _setup_logging(verbose)
    checker = build_services().scheduled_checker()
    try:
        checker.run_forever()
    except KeyboardInterrupt:
        console.print("Stopped")


@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", help="Bind address"),
    port: int = typer.Option(None, help="Port (default from PORT)"),
):
    """Run the HTTP API."""
    import uvicorn

    from contentforge.config import get_settings

    uvicorn.run("backend.main:app", host=host, port=port or get_settings().port)


if __name__ == "__main__":
    app()
