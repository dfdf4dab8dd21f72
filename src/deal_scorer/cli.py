"""CLI for the Deal Scoring Engine.

Scores deal snapshots, projects revenue targets and audits outcome data
from JSON exports of the deal store.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from .config import find_config_file, get_config, load_config, reset_config, save_default_config
from .engine import DealEngine, load_deals_file, load_targets_file, validate_deals_file
from .schema import PaceStatus, RevenueTargets, ScoredDeal, to_decimal
from .stages import stage_display_name

console = Console()

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _parse_as_of(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError as e:
        raise click.BadParameter(f"Expected an ISO date, got '{value}'") from e
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


@click.group()
@click.version_option(version="1.0.0", prog_name="deal-scorer")
@click.option(
    "--config",
    type=click.Path(exists=True, path_type=Path),
    help="Path to configuration YAML file"
)
@click.option(
    "--log-level",
    default="WARNING",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Logging level"
)
def main(config: Optional[Path], log_level: str):
    """Deal Scoring and Revenue Projection Engine.

    Scores deal confidence, tracks progress against revenue targets and
    validates lost/disqualified outcome data.
    """
    logging.basicConfig(level=getattr(logging, log_level.upper()), format=LOG_FORMAT)

    config_path = config or find_config_file()
    if config_path:
        try:
            load_config(config_path)
        except Exception as e:
            console.print(f"[red]Error: could not load config {config_path}: {escape(str(e))}[/red]")
            sys.exit(1)
    else:
        reset_config()


@main.command("score")
@click.option(
    "--deals", "-d",
    required=True,
    type=click.Path(exists=True),
    help="Path to deals JSON file"
)
@click.option(
    "--as-of",
    help="Reference date (ISO format, default: now)"
)
@click.option(
    "--verbose", "-v",
    is_flag=True,
    help="Show the rationale for each score"
)
@click.option(
    "--json-output", "-j",
    is_flag=True,
    help="Output raw JSON instead of formatted text"
)
def score_cmd(deals: str, as_of: Optional[str], verbose: bool, json_output: bool):
    """Score deal confidence from stage, age and value.

    Examples:
        deal-scorer score -d deals.json
        deal-scorer score -d deals.json --as-of 2024-06-30 -v
    """
    now = _parse_as_of(as_of)
    try:
        engine = DealEngine(get_config())
        scored = engine.score_pipeline(load_deals_file(deals), now)
    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)

    if json_output:
        click.echo(json.dumps([s.model_dump(mode="json") for s in scored], indent=2))
        return

    display_scores(scored, verbose)


@main.command("project")
@click.option(
    "--deals", "-d",
    required=True,
    type=click.Path(exists=True),
    help="Path to deals JSON file"
)
@click.option("--annual", help="Annual revenue target")
@click.option("--quarterly", help="Quarterly revenue target")
@click.option("--monthly", help="Monthly revenue target")
@click.option(
    "--targets", "-t",
    type=click.Path(exists=True),
    help="YAML file with annual_target / quarterly_target / monthly_target"
)
@click.option(
    "--as-of",
    help="Reference date (ISO format, default: now)"
)
@click.option(
    "--json-output", "-j",
    is_flag=True,
    help="Output raw JSON instead of formatted text"
)
def project_cmd(
    deals: str,
    annual: Optional[str],
    quarterly: Optional[str],
    monthly: Optional[str],
    targets: Optional[str],
    as_of: Optional[str],
    json_output: bool,
):
    """Show progress and run-rate against revenue targets.

    Command-line amounts override values from --targets.

    Examples:
        deal-scorer project -d deals.json --monthly 10000
        deal-scorer project -d deals.json -t targets.yaml
    """
    now = _parse_as_of(as_of)
    try:
        revenue_targets = load_targets_file(targets) if targets else RevenueTargets()
        overrides = {
            "annual_target": to_decimal(annual),
            "quarterly_target": to_decimal(quarterly),
            "monthly_target": to_decimal(monthly),
        }
        revenue_targets = revenue_targets.model_copy(
            update={k: v for k, v in overrides.items() if v is not None}
        )

        if not revenue_targets.has_any():
            console.print("[yellow]No revenue targets set; nothing to project.[/yellow]")
            return

        engine = DealEngine(get_config())
        progress = engine.project_targets(revenue_targets, load_deals_file(deals), now)
    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)

    if json_output:
        click.echo(json.dumps(
            {period.value: snap.model_dump(mode="json") for period, snap in progress.items()},
            indent=2,
        ))
        return

    status_style = {
        PaceStatus.AHEAD: ("green", "↑"),
        PaceStatus.ON_TRACK: ("cyan", "→"),
        PaceStatus.BEHIND: ("red", "↓"),
    }

    table = Table(show_header=True, header_style="bold", title="Revenue Targets")
    table.add_column("Period", style="cyan")
    table.add_column("Achieved", justify="right")
    table.add_column("Target", justify="right")
    table.add_column("Progress", justify="right")
    table.add_column("Run Rate", justify="right")
    table.add_column("Days", justify="right")
    table.add_column("Status")

    for period, snap in progress.items():
        color, arrow = status_style[snap.status]
        table.add_row(
            period.value.capitalize(),
            f"${snap.achieved:,.0f}",
            f"${snap.target:,.0f}",
            f"{snap.percentage:.1f}%",
            f"${snap.run_rate:,.0f}",
            f"{snap.days_elapsed}/{snap.total_days}",
            f"[{color}]{arrow} {snap.status.value}[/{color}]",
        )

    console.print(table)


@main.command("outcomes")
@click.option(
    "--deals", "-d",
    required=True,
    type=click.Path(exists=True),
    help="Path to deals JSON file"
)
@click.option(
    "--json-output", "-j",
    is_flag=True,
    help="Output raw JSON instead of formatted text"
)
def outcomes_cmd(deals: str, json_output: bool):
    """Audit lost/disqualified outcome data.

    Exits with status 1 when any deal violates the outcome rules.
    """
    try:
        engine = DealEngine(get_config())
        audits = engine.audit_outcomes(load_deals_file(deals))
    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)

    if json_output:
        click.echo(json.dumps([a.model_dump(mode="json") for a in audits], indent=2))
    elif not audits:
        console.print("[green]✓ All deal outcomes are valid[/green]")
    else:
        console.print(f"[red]✗ {len(audits)} deal(s) with invalid outcome data[/red]\n")
        for audit in audits:
            console.print(f"[bold]{audit.deal_id or 'unknown'}[/bold] ({audit.status})")
            for error in audit.errors:
                console.print(f"  - {error}")
            if audit.unified.outcome_reason_category:
                console.print(f"  [dim]Unified reason: {audit.unified.outcome_reason_category}[/dim]")

    sys.exit(1 if audits else 0)


@main.command("validate")
@click.option(
    "--deals", "-d",
    required=True,
    type=click.Path(),
    help="Path to deals JSON file"
)
def validate_cmd(deals: str):
    """Validate a deals file."""
    is_valid, issues = validate_deals_file(deals)
    if is_valid:
        console.print(f"[green]✓ Deals file valid: {deals}[/green]")
    else:
        console.print(f"[red]✗ Deals file invalid: {deals}[/red]")
        for issue in issues:
            console.print(f"  - {issue}")
    sys.exit(0 if is_valid else 1)


@main.command("stages")
@click.option(
    "--template", "-t",
    help="Only show this pipeline template"
)
def stages_cmd(template: Optional[str]):
    """List stage base scores per pipeline template."""
    stage_config = get_config().stage_scoring
    templates = stage_config.templates

    if template:
        if template not in templates:
            console.print(f"[red]Unknown template: {template}[/red]")
            console.print(f"Available: {', '.join(templates)}")
            sys.exit(1)
        templates = {template: templates[template]}

    for template_id, stages in templates.items():
        table = Table(show_header=True, header_style="bold", title=template_id)
        table.add_column("Stage", style="cyan", no_wrap=True)
        table.add_column("Name")
        table.add_column("Score", justify="right")
        for stage_id, score in stages.items():
            table.add_row(stage_id, stage_display_name(stage_id), str(score))
        console.print(table)

    console.print(f"\n[dim]Unmapped stages score {stage_config.default_stage_score}[/dim]")


@main.command("init-config")
@click.option(
    "--out", "-o",
    type=click.Path(path_type=Path),
    default="deal-scorer.yaml",
    help="Output path for the configuration file"
)
@click.option(
    "--force", "-f",
    is_flag=True,
    help="Overwrite existing config file"
)
def init_config(out: Path, force: bool):
    """Generate a default configuration file.

    Example:
        deal-scorer init-config --out my-config.yaml
    """
    if out.exists() and not force:
        console.print(f"[yellow]Config file already exists:[/yellow] {out}")
        console.print("Use --force to overwrite")
        sys.exit(1)

    try:
        save_default_config(out)
        console.print(f"[green]Created config file:[/green] {out}")
        console.print("\nThen use with: deal-scorer --config", str(out), "score -d deals.json")
    except Exception as e:
        console.print(f"[red]Error creating config:[/red] {e}")
        sys.exit(1)


def display_scores(scored: list[ScoredDeal], verbose: bool):
    """Display scored deals in formatted text."""
    if not scored:
        console.print("[yellow]No deals to score.[/yellow]")
        return

    average = sum(s.score for s in scored) / len(scored)
    console.print(Panel(
        f"Deals scored: [bold]{len(scored)}[/bold]\n"
        f"Average confidence: [bold cyan]{average:.0f}%[/bold cyan]",
        title="Pipeline Confidence",
    ))

    table = Table(show_header=True, header_style="bold")
    table.add_column("Deal", style="cyan", no_wrap=True)
    table.add_column("Stage")
    table.add_column("Value", justify="right")
    table.add_column("Stage", justify="right")
    table.add_column("Age", justify="right")
    table.add_column("Value+", justify="right")
    table.add_column("Score", justify="right", style="bold")

    for s in scored:
        b = s.breakdown
        table.add_row(
            (s.name or s.deal_id or "-")[:30],
            stage_display_name(s.stage),
            f"${s.value:,.0f}",
            str(b.stage_score),
            str(b.age_modifier),
            f"+{b.value_modifier}",
            f"{b.final_score}%",
        )

    console.print(table)

    if verbose:
        for s in scored:
            b = s.breakdown
            console.print(f"\n[bold]{s.name or s.deal_id or '-'}[/bold]: {b.final_score}%")
            console.print(f"  • {b.stage_reason}")
            console.print(f"  • {b.age_reason}")
            console.print(f"  • {b.value_reason}")


if __name__ == "__main__":
    main()
