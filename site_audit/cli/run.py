"""CLI commands."""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import typer
import uvicorn
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from site_audit.checks.registry import check_registry
from site_audit.client.poller import AuditPoller, PollTimeoutError
from site_audit.config.settings import VERSION, settings
from site_audit.logger import configure_logging
from site_audit.pipeline.errors import AuditError
from site_audit.pipeline.models import AuditRecord
from site_audit.pipeline.service import AuditService
from site_audit.scoring.scorer import grade_for

app = typer.Typer(
    add_completion=False,
    help="Site Audit - Crawl a website and check SEO, technical health and AI readiness",
)
console = Console()

GRADE_COLORS = {"A": "green", "B": "blue", "C": "yellow", "D": "red", "F": "red"}
STATUS_COLORS = {"passed": "green", "warning": "yellow", "failed": "red"}


def _score_cell(value: int | None) -> str:
    if value is None:
        return "[dim]n/a[/dim]"
    grade = grade_for(value)
    color = GRADE_COLORS.get(grade, "white")
    return f"[{color}]{value}[/{color}] ({grade})"


def _render_report(report: dict[str, Any]) -> None:
    scores = report.get("scores") or {}

    table = Table(title="Scores", show_header=True, header_style="bold")
    table.add_column("Category")
    table.add_column("Score", justify="right")
    table.add_row("Overall", _score_cell(scores.get("overall")))
    table.add_row("SEO", _score_cell(scores.get("seo")))
    table.add_row("Technical", _score_cell(scores.get("technical")))
    table.add_row("AI readiness", _score_cell(scores.get("ai_readiness")))
    console.print(table)

    console.print(
        f"[green]{scores.get('passed_count', 0)} passed[/green], "
        f"[yellow]{scores.get('warning_count', 0)} warnings[/yellow], "
        f"[red]{scores.get('failed_count', 0)} failed[/red]"
    )

    issues = [r for r in report.get("check_results", []) if r["status"] != "passed"]
    if not issues:
        return

    issue_table = Table(title="Issues", show_header=True, header_style="bold")
    issue_table.add_column("Status")
    issue_table.add_column("Check")
    issue_table.add_column("Page")
    issue_table.add_column("Message", overflow="fold")
    for result in issues:
        color = STATUS_COLORS.get(result["status"], "white")
        issue_table.add_row(
            f"[{color}]{result['status']}[/{color}]",
            result["check_name"],
            "site-wide" if result["is_site_wide"] else (result["page_url"] or ""),
            result["details"].get("message", ""),
        )
    console.print(issue_table)


@app.command()
def run(
    target: str = typer.Argument(..., help="Seed URL of the site to audit"),
    pages: int | None = typer.Option(
        None,
        "--pages",
        "-p",
        help="Page budget (maximum pages to crawl)",
    ),
    output: str = typer.Option(
        "cli",
        "--output",
        "-o",
        help="Output format: cli, json",
    ),
    save: str | None = typer.Option(
        None,
        "--save",
        "-s",
        help="Save JSON report to file",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Show log output",
    ),
) -> None:
    """Run a full audit in-process, batch by batch.

    Examples:
        site-audit run https://example.com
        site-audit run https://example.com --pages 20 -o json
        site-audit run https://example.com -s report.json
    """
    if output not in ("cli", "json"):
        console.print(f"[red]Error:[/red] Invalid output format '{output}'. Use cli or json.")
        raise typer.Exit(1)

    configure_logging("DEBUG" if verbose else "WARNING")
    service = AuditService()

    if output == "cli":
        console.print(Panel.fit(
            f"[bold cyan]Site Audit[/bold cyan]\n[dim]Auditing:[/dim] {target}",
            border_style="cyan",
        ))

    try:
        audit = service.start_audit(target, pages)

        with console.status("[bold blue]Auditing...", spinner="dots") as spinner:
            def on_batch(record: AuditRecord) -> None:
                spinner.update(
                    f"[bold blue]Batch {record.batch_count}: {record.status.value}, "
                    f"{record.pages_crawled}/{record.page_budget} pages crawled, "
                    f"{record.cursor} checked"
                )

            audit = service.drive(audit.id, on_batch=on_batch)

        report = service.get_status(audit.id).to_dict()
    except AuditError as e:
        console.print(f"\n[red]Error:[/red] {e}")
        raise typer.Exit(1)

    if save:
        save_path = Path(save)
        save_path.write_text(json.dumps(report, indent=2), encoding="utf-8")
        console.print(f"\n[green]Report saved to:[/green] {save_path}")

    if output == "json":
        console.print(json.dumps(report, indent=2), markup=False)
    elif audit.status.value == "failed":
        console.print(f"\n[red]Audit failed:[/red] {audit.error}")
    else:
        console.print(f"\n[dim]{audit.pages_crawled} pages crawled[/dim]")
        _render_report(report)

    if audit.status.value == "failed":
        raise typer.Exit(1)
    grade = grade_for(audit.scores.overall if audit.scores else None)
    if grade in ("D", "F"):
        raise typer.Exit(1)


@app.command()
def watch(
    audit_id: str = typer.Argument(..., help="ID of an audit started through the API"),
    api: str = typer.Option(
        "http://localhost:8000/api/v1",
        "--api",
        help="Base URL of the audit API",
    ),
    timeout: float | None = typer.Option(
        None,
        "--timeout",
        help="Give up after this many seconds",
    ),
) -> None:
    """Follow a remote audit, continuing it between batches.

    Example:
        site-audit watch 0f8e... --api https://audit.example.com/api/v1
    """
    configure_logging("WARNING")
    poller = AuditPoller(api, timeout=timeout)

    try:
        with console.status("[bold blue]Waiting...", spinner="dots") as spinner:
            def on_progress(data: dict[str, Any]) -> None:
                spinner.update(
                    f"[bold blue]{data['status']}: {data['pages_crawled']}/"
                    f"{data['page_budget']} pages crawled, {data['pages_checked']} checked"
                )

            report = poller.poll(audit_id, on_progress=on_progress)
    except PollTimeoutError as e:
        console.print(f"[red]Timeout:[/red] {e}")
        raise typer.Exit(1)

    if report["status"] == "failed":
        console.print(f"[red]Audit failed:[/red] {report.get('error')}")
        raise typer.Exit(1)
    _render_report(report)


@app.command()
def checks(
    category: str | None = typer.Option(
        None,
        "--category",
        "-c",
        help="Only list checks in this category",
    ),
) -> None:
    """List the available checks."""
    selected = (
        check_registry.get_by_category(category) if category else check_registry.list_all()
    )

    table = Table(show_header=True, header_style="bold")
    table.add_column("Check")
    table.add_column("Category")
    table.add_column("Priority")
    table.add_column("Scope")
    for check in selected:
        table.add_row(check.name, check.category.value, check.priority.value, check.scope.value)
    console.print(table)


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Interface to bind"),
    port: int = typer.Option(8000, "--port", help="Port to listen on"),
) -> None:
    """Serve the audit API with uvicorn."""
    uvicorn.run("app.main:app", host=host, port=port, log_level=settings.logging.level.lower())


@app.command()
def version() -> None:
    """Show version information."""
    console.print(f"[bold]Site Audit[/bold] v{VERSION}")
    console.print("[dim]Website SEO, technical and AI-readiness auditor[/dim]")


if __name__ == "__main__":
    app()
