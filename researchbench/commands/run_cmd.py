"""CLI handler for running a research job in-process."""

from __future__ import annotations

import asyncio

import click

from researchbench.commands._helpers import echo_job, get_context, report_to_markdown
from researchbench.errors import ResearchBenchError
from researchbench.models.job import JobPriority, JobStatus


def _run(coro):
    return asyncio.run(coro)


def _echo_progress(event) -> None:
    eta = (
        f", ~{event.estimated_time_remaining:.0f}s left"
        if event.estimated_time_remaining is not None else ""
    )
    click.echo(
        f"[{event.percentage:5.1f}%] {event.current_phase}: {event.message}{eta}",
        err=True,
    )


async def _stream_progress(queue: asyncio.Queue) -> None:
    while True:
        _echo_progress(await queue.get())


@click.command("run")
@click.argument("topic")
@click.option("--goal", "-g", default="", help="Research goal to steer query generation")
@click.option("--max-sources", type=int, default=None, help="Maximum sources to collect")
@click.option("--min-sources", type=int, default=None, help="Minimum sources for success")
@click.option("--max-iterations", type=int, default=None, help="Maximum link-following iterations")
@click.option("--no-follow-links", is_flag=True, help="Only analyse direct search results")
@click.option(
    "--priority",
    type=click.Choice([p.name.lower() for p in JobPriority], case_sensitive=False),
    default="normal",
    help="Queue priority",
)
@click.option("--owner", default="", help="Owner id recorded on the job")
@click.option("--quiet", "-q", is_flag=True, help="Do not stream progress")
def run_command(
    topic: str, goal: str, max_sources: int | None, min_sources: int | None,
    max_iterations: int | None, no_follow_links: bool, priority: str, owner: str, quiet: bool,
):
    """Research TOPIC and print the cited report."""

    overrides: dict = {}
    if goal:
        overrides["research_goal"] = goal
    if max_sources is not None:
        overrides["max_sources"] = max_sources
    if min_sources is not None:
        overrides["min_sources"] = min_sources
    if max_iterations is not None:
        overrides["max_iterations"] = max_iterations
    if no_follow_links:
        overrides["follow_links"] = False

    async def _research():
        ctx = await get_context()
        streamer = None
        events = None
        try:
            queue = ctx.job_queue
            # Queued but not dispatched until start(), so no event is missed.
            job = await queue.add_job(
                topic, overrides, priority=JobPriority[priority.upper()], owner_id=owner
            )
            if not quiet:
                events = ctx.progress_broadcaster.subscribe(job.id)
                streamer = asyncio.create_task(_stream_progress(events))
            queue.start()
            click.echo(f"Started job {job.id}", err=True)

            job = await queue.wait_for_job(job.id)
            if streamer is not None:
                streamer.cancel()
                while not events.empty():
                    _echo_progress(events.get_nowait())
            if job.status != JobStatus.COMPLETED:
                echo_job(job, verbose=True)
                research = queue.get_research_output(job.id)
                if research is not None:
                    click.echo(f"\nResearch collected {len(research.sources)} source(s):")
                    for source in research.sources:
                        click.echo(f"  - {source.title or source.url} ({source.url})")
                raise SystemExit(1)

            export = await queue.export_report(job.id)
            click.echo(report_to_markdown(export.report))
        except ResearchBenchError as e:
            click.echo(f"Error: {e}", err=True)
            raise SystemExit(1) from e
        finally:
            if streamer is not None:
                streamer.cancel()
                ctx.progress_broadcaster.unsubscribe(job.id, events)
            await ctx.close()

    _run(_research())
