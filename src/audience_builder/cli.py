"""Command-line interface for audience-builder."""

from pathlib import Path
from typing import Annotated

import typer
import yaml
from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.tree import Tree

from audience_builder.config import (
    Settings,
    load_catalogue,
    load_contacts,
    load_segments,
    save_segments,
)
from audience_builder.rules.catalogue import (
    FieldCatalogue,
    FieldType,
    requires_second_value,
    requires_value,
)
from audience_builder.rules.conditions import SegmentCondition, SegmentRuleGroup
from audience_builder.rules.errors import SegmentTypeError
from audience_builder.rules.evaluator import SegmentEvaluator
from audience_builder.rules.validation import IssueSeverity, validate_tree
from audience_builder.segments import (
    Segment,
    SegmentType,
    add_members,
    evaluate_segment,
    find_segment,
    new_segment,
    remove_members,
    with_contact_count,
)

app = typer.Typer(
    name="audience-builder",
    help="Build and evaluate rule-based contact segments",
    no_args_is_help=True,
)
console = Console()

segments_app = typer.Typer(help="Manage and evaluate segments")
app.add_typer(segments_app, name="segments")


def get_settings() -> Settings:
    """Load application settings."""
    return Settings()


def get_catalogue(settings: Settings) -> FieldCatalogue:
    """Load the configured field catalogue."""
    try:
        return load_catalogue(settings.catalogue_path)
    except (yaml.YAMLError, ValueError) as e:
        console.print(f"[red]Invalid field catalogue:[/red] {escape(str(e))}")
        raise typer.Exit(1)


def get_segments(settings: Settings) -> list[Segment]:
    """Load segment definitions, exiting on malformed files."""
    try:
        return load_segments(settings.segments_path)
    except (yaml.YAMLError, ValueError) as e:
        console.print(f"[red]Invalid segments file:[/red] {escape(str(e))}")
        raise typer.Exit(1)


def require_segment(segments: list[Segment], name: str) -> Segment:
    segment = find_segment(segments, name)
    if segment is None:
        console.print(f"[red]Segment not found:[/red] {name}")
        raise typer.Exit(1)
    return segment


def replace_segment(segments: list[Segment], updated: Segment) -> list[Segment]:
    return [updated if s.id == updated.id else s for s in segments]


def describe_condition(condition: SegmentCondition, catalogue: FieldCatalogue) -> str:
    """One-line, human-readable form of a condition."""
    definition = catalogue.field(condition.field)
    label = escape(definition.label if definition else f"{condition.field} (unknown field)")
    operator = getattr(condition.operator, "value", condition.operator)

    if not requires_value(condition.operator):
        return f"{label} {operator}"

    value = condition.value
    if isinstance(value, list):
        value = ", ".join(value)
    text = f"{label} {operator} [cyan]{escape(str(value))}[/cyan]"
    if requires_second_value(condition.operator) and condition.value2 not in (None, ""):
        text += f" and [cyan]{escape(str(condition.value2))}[/cyan]"
    return text


def build_rule_tree(group: SegmentRuleGroup, catalogue: FieldCatalogue, tree: Tree) -> Tree:
    """Render a rule group into a rich Tree."""
    for condition in group.conditions:
        tree.add(describe_condition(condition, catalogue))
    for sub_group in group.groups:
        branch = tree.add(f"[bold]{sub_group.operator.value}[/bold]")
        build_rule_tree(sub_group, catalogue, branch)
    if group.is_vacuous:
        tree.add("[dim](empty)[/dim]")
    return tree


@app.command()
def version() -> None:
    """Show version information."""
    from audience_builder import __version__

    console.print(f"audience-builder v{__version__}")


@app.command()
def init(
    config_dir: Annotated[
        Path | None,
        typer.Option("--config-dir", "-c", help="Configuration directory"),
    ] = None,
) -> None:
    """Initialize configuration directory with example files."""
    settings = get_settings()
    if config_dir:
        settings.config_dir = config_dir

    settings.ensure_config_dir()

    if not settings.segments_path.exists():
        example_segments = """# Audience Builder Segments
# Dynamic segments select contacts with AND/OR rule groups.
# Static segments list member e-mails explicitly.

segments:
  - name: "VIP customers"
    description: "Customers tagged vip or premium"
    type: dynamic
    rules:
      operator: AND
      conditions:
        - field: lifecycle_stage
          operator: equals
          value: customer
      groups:
        - operator: OR
          conditions:
            - field: tags
              operator: contains
              value: vip
            - field: tags
              operator: contains
              value: premium

  - name: "Recently active leads"
    description: "Leads updated in the last 30 days"
    type: dynamic
    rules:
      operator: AND
      conditions:
        - field: lifecycle_stage
          operator: equals
          value: lead
        - field: updated_at
          operator: in_last_days
          value: 30

  - name: "Beta testers"
    description: "Hand-picked contacts"
    type: static
    members:
      - ana@example.com
"""
        settings.segments_path.write_text(example_segments)
        console.print(f"[green]Created[/green] {settings.segments_path}")

    console.print(f"\n[bold]Configuration initialized at:[/bold] {settings.config_dir}")


@app.command()
def fields() -> None:
    """List the fields segment rules can test."""
    catalogue = get_catalogue(get_settings())

    table = Table(title="Contact Fields")
    table.add_column("Key", style="cyan")
    table.add_column("Label", style="green")
    table.add_column("Type", style="blue")
    table.add_column("Group", style="dim")
    table.add_column("Options")

    for group_fields in catalogue.grouped().values():
        for definition in group_fields:
            options = ", ".join(o.value for o in definition.options or ())
            table.add_row(
                definition.key,
                definition.label,
                definition.type.value,
                definition.group,
                options,
            )

    console.print(table)


@app.command()
def operators(
    field_type: Annotated[
        FieldType | None,
        typer.Argument(help="Only show operators for this field type"),
    ] = None,
) -> None:
    """List the operators allowed per field type."""
    catalogue = get_catalogue(get_settings())
    types = [field_type] if field_type else list(FieldType)

    table = Table(title="Operators")
    table.add_column("Type", style="blue")
    table.add_column("Operator", style="cyan")
    table.add_column("Value", width=8)

    for current in types:
        for operator in catalogue.operators_for_type(current):
            if not requires_value(operator):
                takes = ""
            elif requires_second_value(operator):
                takes = "2"
            else:
                takes = "1"
            table.add_row(current.value, operator.value, takes)

    console.print(table)


# === Segments Commands ===


@segments_app.command("list")
def segments_list() -> None:
    """List all configured segments."""
    settings = get_settings()
    segments = get_segments(settings)

    if not segments:
        console.print("[yellow]No segments configured[/yellow]")
        console.print("Run [bold]audience-builder init[/bold] to create example segments")
        return

    table = Table(title="Segments")
    table.add_column("Name", style="cyan")
    table.add_column("Type", style="blue")
    table.add_column("Contacts", justify="right")
    table.add_column("Updated", style="dim")
    table.add_column("Description", style="green", max_width=40)

    for segment in segments:
        table.add_row(
            segment.name,
            segment.type.value,
            str(segment.contact_count),
            segment.updated_at.strftime("%Y-%m-%d %H:%M"),
            segment.description,
        )

    console.print(table)


@segments_app.command("show")
def segments_show(
    name: Annotated[str, typer.Argument(help="Segment name or id")],
) -> None:
    """Show a segment and its rule tree."""
    settings = get_settings()
    catalogue = get_catalogue(settings)
    segment = require_segment(get_segments(settings), name)

    console.print(f"\n[bold]Segment:[/bold] {segment.name}")
    console.print(f"[bold]Type:[/bold] {segment.type.value}")
    console.print(f"[bold]Description:[/bold] {segment.description or '-'}")
    console.print(f"[bold]Contacts:[/bold] {segment.contact_count}\n")

    if segment.type == SegmentType.STATIC:
        for email in segment.members:
            console.print(f"  {email}")
        return

    if segment.rules is None:
        console.print("[yellow]No rules defined[/yellow]")
        return

    root = Tree(f"[bold]{segment.rules.operator.value}[/bold]")
    console.print(build_rule_tree(segment.rules, catalogue, root))


@segments_app.command("validate")
def segments_validate(
    name: Annotated[
        str | None,
        typer.Argument(help="Segment name or id (all if not specified)"),
    ] = None,
) -> None:
    """Check segment rules against the field catalogue."""
    settings = get_settings()
    catalogue = get_catalogue(settings)
    segments = get_segments(settings)
    if name:
        segments = [require_segment(segments, name)]

    has_errors = False
    for segment in segments:
        if segment.rules is None:
            continue
        issues = validate_tree(segment.rules, catalogue)
        if not issues:
            console.print(f"[green]✓[/green] {segment.name}")
            continue

        console.print(f"[bold]{segment.name}[/bold]")
        for issue in issues:
            color = "red" if issue.severity == IssueSeverity.ERROR else "yellow"
            console.print(f"  [{color}]{escape(str(issue))}[/{color}]")
            has_errors = has_errors or issue.severity == IssueSeverity.ERROR

    if has_errors:
        raise typer.Exit(1)


@segments_app.command("evaluate")
def segments_evaluate(
    name: Annotated[str, typer.Argument(help="Segment name or id")],
    contacts_file: Annotated[
        Path | None,
        typer.Option("--contacts", "-f", help="Contacts JSON/YAML file"),
    ] = None,
    limit: Annotated[int, typer.Option("--limit", "-n", help="E-mails to display")] = 20,
    save: Annotated[
        bool, typer.Option("--save", help="Store the resulting contact count")
    ] = False,
) -> None:
    """Resolve a segment against a contacts file."""
    from audience_builder.logging import get_segment_logger, setup_logging

    settings = get_settings()
    catalogue = get_catalogue(settings)
    segments = get_segments(settings)
    segment = require_segment(segments, name)

    setup_logging(settings)
    logger = get_segment_logger(segment.name)

    path = contacts_file or settings.contacts_path
    try:
        contacts = load_contacts(path)
    except (OSError, ValueError) as e:
        logger.error(f"Could not load contacts from {path}: {e}")
        console.print(f"[red]Error loading contacts:[/red] {e}")
        raise typer.Exit(1)

    result = evaluate_segment(segment, contacts, SegmentEvaluator(catalogue))
    logger.info(
        f"Matched {result.total_count} of {len(contacts)} contacts "
        f"in {result.execution_time_ms:.1f}ms"
    )
    for error in result.errors:
        logger.error(error)
        console.print(f"[red]{error}[/red]")

    table = Table(title=f"{segment.name}: {result.total_count} of {len(contacts)} contacts")
    table.add_column("E-mail", style="cyan")
    for email in result.emails[:limit]:
        table.add_row(email)
    console.print(table)

    if result.total_count > limit:
        console.print(f"[dim]... and {result.total_count - limit} more[/dim]")
    if result.skipped_without_email:
        console.print(
            f"[yellow]{result.skipped_without_email} matching contact(s) have no e-mail[/yellow]"
        )

    if save:
        save_segments(
            settings.segments_path,
            replace_segment(segments, with_contact_count(segment, result)),
        )
        console.print("[green]Contact count saved[/green]")


@segments_app.command("create")
def segments_create(
    name: Annotated[str, typer.Argument(help="Segment name")],
    description: Annotated[
        str, typer.Option("--description", "-d", help="Segment description")
    ] = "",
    static: Annotated[
        bool, typer.Option("--static", help="Create a static member list")
    ] = False,
) -> None:
    """Create a segment with a default rule tree (or an empty member list)."""
    settings = get_settings()
    catalogue = get_catalogue(settings)
    segments = get_segments(settings)

    if find_segment(segments, name) is not None:
        console.print(f"[red]Segment already exists:[/red] {name}")
        raise typer.Exit(1)

    segment_type = SegmentType.STATIC if static else SegmentType.DYNAMIC
    segment = new_segment(name, description, segment_type, catalogue)
    save_segments(settings.segments_path, [*segments, segment])
    console.print(f"[green]Created[/green] {segment_type.value} segment {name}")


@segments_app.command("add-members")
def segments_add_members(
    name: Annotated[str, typer.Argument(help="Static segment name or id")],
    emails: Annotated[list[str], typer.Argument(help="E-mail addresses to add")],
) -> None:
    """Add e-mails to a static segment."""
    settings = get_settings()
    segments = get_segments(settings)
    segment = require_segment(segments, name)

    try:
        updated = add_members(segment, emails)
    except SegmentTypeError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    save_segments(settings.segments_path, replace_segment(segments, updated))
    added = updated.contact_count - len(segment.members)
    console.print(f"[green]Added {added} member(s)[/green] ({updated.contact_count} total)")


@segments_app.command("remove-members")
def segments_remove_members(
    name: Annotated[str, typer.Argument(help="Static segment name or id")],
    emails: Annotated[list[str], typer.Argument(help="E-mail addresses to remove")],
) -> None:
    """Remove e-mails from a static segment."""
    settings = get_settings()
    segments = get_segments(settings)
    segment = require_segment(segments, name)

    try:
        updated = remove_members(segment, emails)
    except SegmentTypeError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    save_segments(settings.segments_path, replace_segment(segments, updated))
    removed = len(segment.members) - updated.contact_count
    console.print(f"[yellow]Removed {removed} member(s)[/yellow] ({updated.contact_count} total)")


if __name__ == "__main__":
    app()
