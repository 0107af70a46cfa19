"""
CivicDesk - CLI Interface

Command-line front end for submitting and triaging issues.
"""

import logging
import mimetypes
from pathlib import Path

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from . import __version__, config
from .analytics.aggregator import StatsAggregator
from .assignment import AssignmentResolver, YamlDirectory
from .export import summary_report, to_csv, to_json
from .issues import (
    CATEGORY_DISPLAY_NAMES,
    Actor,
    IssueError,
    IssueStatus,
    IssueStore,
    NotFoundError,
    Role,
    SQLiteStorage,
)
from .issues.manager import IssueManager
from .issues.store import parse_category
from .notifications import NotificationCenter, SlackNotifier
from .search import SearchFilters, filter_issues


console = Console()

STATUS_STYLES = {
    IssueStatus.PENDING: "yellow",
    IssueStatus.IN_PROGRESS: "cyan",
    IssueStatus.RESOLVED: "green",
    IssueStatus.REJECTED: "red",
}


def build_manager(db_path: str, directory_path: str) -> IssueManager:
    """Wire the store, directory, notifications and classifier from config."""
    resolver = AssignmentResolver(YamlDirectory(directory_path))
    store = IssueStore(SQLiteStorage(db_path), resolver)
    notifications = NotificationCenter(
        SQLiteStorage(db_path, table="notifications"),
        slack=SlackNotifier(config.SLACK_WEBHOOK_URL or None),
    )

    gateway = None
    if config.CLASSIFIER_ENABLED:
        from .classification.gateway import BedrockClassifier
        from .llm.bedrock import BedrockLLM

        gateway = BedrockClassifier(BedrockLLM(
            model_id=config.get_model_id(),
            region=config.AWS_REGION,
            timeout_seconds=config.CLASSIFIER_TIMEOUT_SECONDS,
        ))

    return IssueManager(
        store,
        notifications,
        gateway=gateway,
        classifier_timeout=config.CLASSIFIER_TIMEOUT_SECONDS,
    )


def resolve_issue_id(store: IssueStore, reference: str) -> str:
    """Accept a full id or the short reference shown to residents."""
    try:
        return store.get(reference).id
    except NotFoundError:
        pass

    matches = [i.id for i in store.list_issues() if i.id.upper().startswith(reference.upper())]
    if len(matches) == 1:
        return matches[0]
    if len(matches) > 1:
        raise NotFoundError(f"Reference {reference} is ambiguous ({len(matches)} matches)")
    raise NotFoundError(f"Issue {reference} not found", issue_id=reference)


def _fail(error: Exception):
    console.print(f"[red]Error: {error}[/red]")
    raise SystemExit(1)


def _print_issue(issue):
    style = STATUS_STYLES[issue.status]
    lines = [
        f"[bold]{issue.title}[/bold]",
        issue.description,
        "",
        f"Status: [{style}]{issue.status.value}[/{style}]   Priority: {issue.priority.value}",
        f"Category: {CATEGORY_DISPLAY_NAMES[issue.category]}   Department: "
        f"{CATEGORY_DISPLAY_NAMES[issue.department] if issue.department else '-'}",
        f"Assigned to: {issue.assigned_employee_name or 'Unassigned'}",
        f"Location: {issue.location or '-'}",
    ]
    if issue.has_coordinates():
        lines.append(f"Coordinates: {issue.latitude:.5f}, {issue.longitude:.5f}")
    lines.append(f"Reported by: {issue.reporter_name} on {issue.created_at:%Y-%m-%d %H:%M}")
    if issue.resident_feedback:
        lines.append(f"Resident feedback: {issue.resident_feedback}")
    console.print(Panel("\n".join(lines), title=issue.short_id()))

    history = Table(title="Status history")
    history.add_column("When")
    history.add_column("Status")
    history.add_column("By")
    history.add_column("Note")
    for entry in issue.status_history:
        history.add_row(
            f"{entry.changed_at:%Y-%m-%d %H:%M}", entry.status.value, entry.changed_by, entry.note or ""
        )
    console.print(history)


@click.group()
@click.version_option(version=__version__)
@click.option("--db", default=config.DB_PATH, show_default=True, help="SQLite database path")
@click.option("--directory", default=config.DIRECTORY_PATH, help="Employee directory YAML")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx, db: str, directory: str, verbose: bool):
    """CivicDesk - municipal issue reporting and triage."""
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(asctime)s %(name)s %(levelname)s %(message)s")
    ctx.obj = build_manager(db, directory)


@cli.command()
@click.option("--reporter-id", required=True, help="Resident id (or guest-... id)")
@click.option("--reporter-name", default="Anonymous Resident", help="Resident display name")
@click.option("--title", "-t", help="Short title (suggested from the photo if omitted)")
@click.option("--description", "-d", help="What is wrong (suggested from the photo if omitted)")
@click.option("--location", "-l", default="")
@click.option("--category", "-c", help="Category (suggested automatically if omitted)")
@click.option("--priority", "-p", help="Priority (category default if omitted)")
@click.option("--lat", type=float, help="Latitude")
@click.option("--lon", type=float, help="Longitude")
@click.option("--photo", "photo_path", type=click.Path(exists=True, dir_okay=False), help="Photo file, analysed to suggest the category and priority")
@click.pass_obj
def submit(manager: IssueManager, reporter_id, reporter_name, title, description, location,
           category, priority, lat, lon, photo_path):
    """Submit a new issue report."""
    if photo_path and (category or priority):
        raise click.UsageError("--category and --priority are suggested from the photo, drop them or --photo")

    reporter = Actor(id=reporter_id, name=reporter_name, role=Role.RESIDENT)
    try:
        with console.status("[bold green]Classifying report...[/bold green]"):
            if photo_path:
                photo = Path(photo_path)
                issue = manager.submit_image_report(
                    reporter,
                    image_bytes=photo.read_bytes(),
                    photo_ref=str(photo.resolve()),
                    media_type=mimetypes.guess_type(photo.name)[0] or "image/jpeg",
                    title=title,
                    description=description,
                    location=location,
                    latitude=lat,
                    longitude=lon,
                )
            else:
                issue = manager.submit_report(
                    reporter,
                    title=title,
                    description=description,
                    location=location,
                    category=category,
                    priority=priority,
                    latitude=lat,
                    longitude=lon,
                )
    except IssueError as e:
        _fail(e)

    console.print(
        f"[green]Submitted {issue.short_id()}[/green] "
        f"({issue.category.value}, {issue.priority.value}, "
        f"confidence {round((issue.ai_confidence or 0) * 100)}%)"
    )


@cli.command(name="list")
@click.option("--status", "-s", help="Filter by status")
@click.option("--category", "-c", help="Filter by category")
@click.option("--query", "-q", help="Search text")
@click.option("--assigned-to", help="Employee id, or 'unassigned'")
@click.pass_obj
def list_cmd(manager: IssueManager, status, category, query, assigned_to):
    """List issues, newest first."""
    issues = filter_issues(
        manager.store.list_issues(),
        SearchFilters(query=query, status=status, category=category, assigned_to=assigned_to),
    )

    table = Table(title=f"Issues ({len(issues)})")
    table.add_column("ID", style="bold")
    table.add_column("Title")
    table.add_column("Category")
    table.add_column("Priority")
    table.add_column("Status")
    table.add_column("Assigned")
    for issue in issues:
        style = STATUS_STYLES[issue.status]
        table.add_row(
            issue.short_id(),
            issue.title,
            issue.category.value,
            issue.priority.value,
            f"[{style}]{issue.status.value}[/{style}]",
            issue.assigned_employee_name or "-",
        )
    console.print(table)


@cli.command()
@click.argument("reference")
@click.pass_obj
def show(manager: IssueManager, reference):
    """Show an issue and its status history."""
    try:
        issue = manager.store.get(resolve_issue_id(manager.store, reference))
    except IssueError as e:
        _fail(e)
    _print_issue(issue)


@cli.command()
@click.argument("reference")
@click.argument("new_status", type=click.Choice([s.value for s in IssueStatus]))
@click.option("--actor-id", required=True)
@click.option("--actor-name", required=True)
@click.option("--role", type=click.Choice(["staff", "employee"]), default="staff", show_default=True)
@click.option("--note", "-n", help="History note")
@click.option("--staff-notes", help="Replace internal notes")
@click.pass_obj
def status(manager: IssueManager, reference, new_status, actor_id, actor_name, role, note, staff_notes):
    """Change an issue's status."""
    actor = Actor(id=actor_id, name=actor_name, role=Role(role))
    try:
        issue = manager.change_status(
            resolve_issue_id(manager.store, reference), new_status, actor,
            note=note, staff_notes=staff_notes,
        )
    except IssueError as e:
        _fail(e)
    console.print(f"[green]{issue.short_id()} is now {issue.status.value}[/green]")


@cli.command()
@click.argument("reference")
@click.option("--department", "-D", required=True)
@click.option("--employee", "-e", "employee_id", required=True, help="Employee id")
@click.option("--actor-id", required=True, help="Staff member id")
@click.option("--actor-name", required=True, help="Staff member name")
@click.option("--start", is_flag=True, help="Also move a pending issue to in-progress")
@click.pass_obj
def assign(manager: IssueManager, reference, department, employee_id, actor_id, actor_name, start):
    """Assign an issue to an employee of a department."""
    actor = Actor(id=actor_id, name=actor_name, role=Role.STAFF)
    try:
        issue = manager.assign_issue(
            resolve_issue_id(manager.store, reference), department, employee_id, actor,
            start_work=start,
        )
    except IssueError as e:
        _fail(e)
    console.print(
        f"[green]{issue.short_id()} assigned to {issue.assigned_employee_name} "
        f"({issue.department.value})[/green]"
    )


@cli.command()
@click.argument("reference")
@click.option("--resident-id", required=True)
@click.option("--resident-name", required=True)
@click.pass_obj
def confirm(manager: IssueManager, reference, resident_id, resident_name):
    """Confirm that a resolved issue is fixed."""
    resident = Actor(id=resident_id, name=resident_name, role=Role.RESIDENT)
    try:
        issue = manager.confirm_resolution(resolve_issue_id(manager.store, reference), resident)
    except IssueError as e:
        _fail(e)
    console.print(f"[green]Thanks! {issue.short_id()} confirmed as fixed.[/green]")


@cli.command()
@click.argument("reference")
@click.option("--resident-id", required=True)
@click.option("--resident-name", required=True)
@click.option("--feedback", "-f", required=True, help="What is still wrong")
@click.pass_obj
def reject(manager: IssueManager, reference, resident_id, resident_name, feedback):
    """Contest a resolution and reopen the issue."""
    resident = Actor(id=resident_id, name=resident_name, role=Role.RESIDENT)
    try:
        issue = manager.reject_resolution(
            resolve_issue_id(manager.store, reference), resident, feedback
        )
    except IssueError as e:
        _fail(e)
    console.print(f"[yellow]{issue.short_id()} reopened ({issue.status.value}).[/yellow]")


@cli.command()
@click.pass_obj
def stats(manager: IssueManager):
    """Show dashboard statistics."""
    aggregator = StatsAggregator()
    summary = aggregator.summary(manager.store.list_issues())

    table = Table(title="Overview")
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    table.add_row("Total", str(summary.total_reports))
    table.add_row("Pending", str(summary.pending_reports))
    table.add_row("In progress", str(summary.in_progress_reports))
    table.add_row("Resolved", str(summary.resolved_reports))
    table.add_row("Rejected", str(summary.rejected_reports))
    table.add_row("Avg resolution (days)", f"{summary.avg_resolution_days:.1f}")
    table.add_row("Avg confidence", f"{summary.avg_confidence:.0%}")
    console.print(table)

    categories = Table(title="By category")
    categories.add_column("Category")
    categories.add_column("Count", justify="right")
    categories.add_column("%", justify="right")
    for entry in summary.category_breakdown:
        categories.add_row(entry.category.value, str(entry.count), str(entry.percentage))
    console.print(categories)

    for insight in aggregator.generate_insights(summary):
        console.print(f"• {insight}")


@cli.command()
@click.option("--format", "-f", "fmt", type=click.Choice(["csv", "json", "summary"]), default="csv")
@click.option("--output", "-o", type=click.Path(dir_okay=False), help="Write to file instead of stdout")
@click.pass_obj
def export(manager: IssueManager, fmt, output):
    """Export all issues."""
    issues = manager.store.list_issues()
    renderers = {"csv": to_csv, "json": to_json, "summary": summary_report}
    content = renderers[fmt](issues)

    if output:
        Path(output).write_text(content, encoding="utf-8")
        console.print(f"[green]Exported {len(issues)} issues to {output}[/green]")
    else:
        click.echo(content, nl=False)


@cli.command()
@click.option("--department", "-D", help="Only this department")
@click.pass_obj
def employees(manager: IssueManager, department):
    """List employees eligible for assignment."""
    if department:
        try:
            pool = manager.store.resolver.candidates_for(parse_category(department, "department"))
        except IssueError as e:
            _fail(e)
    else:
        pool = manager.store.resolver.directory.list_employees()

    if not pool:
        console.print("[yellow]No employees available.[/yellow]")
        return

    table = Table(title="Employees")
    table.add_column("ID")
    table.add_column("Name")
    table.add_column("Department")
    for employee in pool:
        table.add_row(employee.id, employee.name, employee.department.value)
    console.print(table)


def main():
    """Entry point."""
    cli()


if __name__ == "__main__":
    main()
