"""autotriage CLI — all commands."""

import asyncio
import random
from pathlib import Path
from typing import Annotated

import typer
from pydantic import ValidationError
from rich import print as rprint
from rich.markup import escape
from rich.table import Table

from autotriage.batch import load_batch
from autotriage.log import setup_logging
from autotriage.models import ActionSet, Outcome
from autotriage.policy import PolicyError
from autotriage.runner import run_batch
from autotriage.settings import get_settings

app = typer.Typer(help="autotriage: apply issue classifications as labels and assignees", no_args_is_help=True)

ProfileOpt = Annotated[
    str | None,
    typer.Option("--profile", "-p", help="Profile name from ~/.config/autotriage/config.toml"),
]

_OUTCOME_STYLE = {
    Outcome.SKIPPED: "dim",
    Outcome.DIRECT_ASSIGNED: "green",
    Outcome.FALLBACK_ASSIGNED: "yellow",
    Outcome.UNASSIGNED: "red",
}


def _render_results(results: list[ActionSet]) -> Table:
    table = Table(title="Triage Results")
    table.add_column("Issue", style="cyan")
    table.add_column("Outcome")
    table.add_column("Assignee")
    table.add_column("Candidates", style="dim")
    table.add_column("Labels")
    table.add_column("Notes", style="dim")

    for r in results:
        style = _OUTCOME_STYLE[r.outcome]
        table.add_row(
            f"#{r.number}",
            f"[{style}]{r.outcome.value}[/{style}]",
            r.assignee or "—",
            ", ".join(r.candidates) or "—",
            ", ".join(r.labels) or "—",
            escape(r.error or r.skip_reason or ""),
        )
    return table


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command("apply")
def apply_cmd(
    profile: ProfileOpt = None,
    policy: Annotated[
        Path | None,
        typer.Option("--policy", help="Local policy file (.json or .toml) instead of config_path"),
    ] = None,
    labels_file: Annotated[
        Path | None,
        typer.Option("--labels-file", "-l", help="Classification batch JSON file"),
    ] = None,
    allow_labels: Annotated[
        str | None,
        typer.Option("--allow-labels", help="Pipe-delimited labels that do not block triage"),
    ] = None,
    diagnostic: Annotated[
        bool | None,
        typer.Option("--diagnostic/--no-diagnostic", help="Post confidence comments instead of assigning"),
    ] = None,
    seed: Annotated[int | None, typer.Option("--seed", help="Seed for random fallback selection")] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Debug logging")] = False,
) -> None:
    """Apply a classification batch to the repository's issues."""
    setup_logging(verbose)
    settings = get_settings(profile=profile)

    overrides: dict = {}
    if policy is not None:
        overrides["policy_file"] = policy
    if labels_file is not None:
        overrides["labels_file"] = labels_file
    if allow_labels is not None:
        overrides["allow_labels"] = allow_labels
    if diagnostic is not None:
        overrides["diagnostic"] = diagnostic
    if overrides:
        settings = settings.model_copy(update=overrides)

    rng = random.Random(seed) if seed is not None else None
    try:
        results = asyncio.run(run_batch(settings, rng=rng))
    except (PolicyError, ValidationError, OSError, RuntimeError) as exc:
        rprint(f"[red]{escape(str(exc))}[/red]")
        raise typer.Exit(1) from exc

    rprint(_render_results(results))


@app.command("show-batch")
def show_batch(
    labels_file: Annotated[Path, typer.Argument(help="Classification batch JSON file")] = Path("issue_labels.json"),
) -> None:
    """Show the classifications in a batch file without touching the tracker."""
    try:
        batch = load_batch(labels_file)
    except (ValidationError, OSError) as exc:
        rprint(f"[red]{escape(str(exc))}[/red]")
        raise typer.Exit(1) from exc

    table = Table(title=f"{labels_file} ({len(batch)} issues)")
    table.add_column("Issue", style="cyan")
    table.add_column("Area")
    table.add_column("Assignee")

    def cell(category: str, confidence: float, confident: bool) -> str:
        mark = "[green]✓[/green]" if confident else "[dim]✗[/dim]"
        return f"{mark} {category} ({confidence:.2f})"

    for c in batch:
        table.add_row(
            f"#{c.number}",
            cell(c.area.category, c.area.confidence, c.area.confident),
            cell(c.assignee.category, c.assignee.confidence, c.assignee.confident),
        )

    rprint(table)


@app.command("config-show")
def config_show(profile: ProfileOpt = None) -> None:
    """Show resolved configuration (masks credentials)."""
    settings = get_settings(profile=profile)

    def mask(val: str | None, prefix: str = "") -> str:
        if val is None:
            return "[dim](not set)[/dim]"
        if len(val) <= 5:
            return "***"
        return f"{prefix}...{val[-5:]}"

    def plain(val: object) -> str:
        return "[dim](not set)[/dim]" if val in (None, "") else str(val)

    table = Table(title="autotriage Configuration")
    table.add_column("Field", style="bold")
    table.add_column("Value")

    table.add_row(
        "github_token",
        mask(settings.github_token.get_secret_value() if settings.github_token else None, prefix="ghp_"),
    )
    table.add_row("github_auth", settings.github_auth)
    table.add_row("github_repo", plain(settings.github_repo))
    table.add_row("api_url", settings.api_url)
    table.add_row("config_path", plain(settings.config_path))
    table.add_row("policy_file", plain(settings.policy_file))
    table.add_row("labels_file", str(settings.labels_file))
    table.add_row("allow_labels", plain(settings.allow_labels))
    table.add_row("diagnostic", str(settings.diagnostic))
    table.add_row(
        "roster_connection_string",
        mask(
            settings.roster_connection_string.get_secret_value() if settings.roster_connection_string else None,
        ),
    )
    table.add_row("roster_database", plain(settings.roster_database))
    table.add_row("roster_collection", settings.roster_collection)
    table.add_row("telemetry_url", plain(settings.telemetry_url))

    rprint(table)
