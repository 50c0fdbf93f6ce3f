"""CLI handlers for inspecting persisted jobs."""

from __future__ import annotations

import asyncio

import click

from researchbench.commands._helpers import echo_job, get_context, report_to_markdown
from researchbench.models.job import JobStatus


def _run(coro):
    return asyncio.run(coro)


@click.group("jobs")
def jobs_group():
    """Inspect research jobs."""
    pass


@jobs_group.command("list")
@click.option("--owner", default=None, help="Only jobs of this owner")
@click.option(
    "--status",
    type=click.Choice([s.value for s in JobStatus], case_sensitive=False),
    default=None,
    help="Filter by status",
)
def jobs_list(owner: str | None, status: str | None):
    """List jobs, newest first."""

    async def _list():
        ctx = await get_context(require_db=True)
        try:
            status_filter = JobStatus(status) if status else None
            if owner is not None:
                jobs = await ctx.job_repo.list_by_owner(owner, status_filter)
            else:
                jobs = await ctx.job_repo.list_jobs(status_filter)
            if not jobs:
                click.echo("No jobs found.")
                return
            for job in jobs:
                echo_job(job)
        finally:
            await ctx.close()

    _run(_list())


@jobs_group.command("show")
@click.argument("job_id")
def jobs_show(job_id: str):
    """Show one job's status and progress."""

    async def _show():
        ctx = await get_context(require_db=True)
        try:
            job = await ctx.job_repo.find_by_id(job_id)
            if not job:
                click.echo(f"Job not found: {job_id}", err=True)
                return
            echo_job(job, verbose=True)
        finally:
            await ctx.close()

    _run(_show())


@jobs_group.command("report")
@click.argument("job_id")
def jobs_report(job_id: str):
    """Print the report of a completed job."""

    async def _report():
        ctx = await get_context(require_db=True)
        try:
            job = await ctx.job_repo.find_by_id(job_id)
            if not job:
                click.echo(f"Job not found: {job_id}", err=True)
                return
            if job.status != JobStatus.COMPLETED:
                click.echo(f"Job {job_id} is {job.status.value}; no report yet.", err=True)
                return
            report = await ctx.report_repo.find_by_id(job.report_id)
            if not report:
                click.echo(f"Report not found: {job.report_id}", err=True)
                return
            click.echo(report_to_markdown(report))
        finally:
            await ctx.close()

    _run(_report())
