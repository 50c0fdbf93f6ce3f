"""CLI helpers: context setup and plain-text rendering."""

from __future__ import annotations

import click

from researchbench.models.job import ResearchJob
from researchbench.models.report import Report


async def get_context(require_db: bool = False):
    """Create and initialize an AppContext. Exits if the database is required but off."""
    from researchbench.context import AppContext

    ctx = AppContext()
    if require_db and not ctx.config.mongodb.enabled:
        raise SystemExit("MongoDB is disabled in the config; no persisted jobs to show.")
    try:
        await ctx.initialize()
    except Exception as e:
        await ctx.close()
        raise SystemExit(f"Could not connect to MongoDB at {ctx.config.mongodb.uri}: {e}") from e
    return ctx


def echo_job(job: ResearchJob, verbose: bool = False) -> None:
    p = job.progress
    click.echo(f"{job.id}  [{job.status.value}]  {job.topic}")
    if not verbose:
        return
    click.echo(f"  Priority: {job.priority.name}")
    if job.owner_id:
        click.echo(f"  Owner: {job.owner_id}")
    click.echo(f"  Progress: {p.percentage:.0f}% ({p.current_phase or 'not started'})")
    click.echo(f"  URLs: {p.processed_urls}/{p.total_urls}, iteration {p.current_iteration}")
    click.echo(f"  Sources collected: {len(job.cursor.sources)}")
    click.echo(f"  Created: {job.created_at:%Y-%m-%d %H:%M:%S}")
    if job.completed_at:
        click.echo(f"  Finished: {job.completed_at:%Y-%m-%d %H:%M:%S}")
    if job.error_message:
        click.echo(f"  Error: {job.error_message}")
    if job.report_id:
        click.echo(f"  Report: {job.report_id}")


def report_to_markdown(report: Report) -> str:
    numbers = {sid: i for i, sid in enumerate(report.sources, start=1)}
    lines = [f"# {report.topic}", "", "## Executive Summary", "", report.executive_summary, ""]
    if report.key_findings:
        lines += ["## Key Findings", ""]
        lines += [f"- {finding}" for finding in report.key_findings]
        lines.append("")
    for section in report.sections:
        lines += [f"## {section.title}", "", section.content]
        cited = ", ".join(f"[{numbers[sid]}]" for sid in section.source_ids if sid in numbers)
        if cited:
            lines += ["", f"Sources: {cited}"]
        lines.append("")
    if report.quality:
        q = report.quality
        lines += [
            "## Research Quality",
            "",
            f"Overall: {q.overall}/100 ({q.rating})",
            f"Diversity {q.diversity}, quality {q.quality}, "
            f"completeness {q.completeness}, depth {q.depth}",
            "",
        ]
        lines += [f"- {rec}" for rec in q.recommendations]
        if q.recommendations:
            lines.append("")
    lines += ["## Sources", ""]
    for sid, source in report.sources.items():
        credibility = (
            f" (credibility {source.credibility_score})"
            if source.credibility_score is not None else ""
        )
        lines.append(f"{numbers[sid]}. {source.title or source.url} - {source.url}{credibility}")
    return "\n".join(lines)
