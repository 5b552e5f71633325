"""Command-line interface for the quality scoring engine."""

from pathlib import Path
from typing import Optional, Tuple

import click
from rich.console import Console
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn
from rich.table import Table

from .config import config
from .exceptions import QualityGateError
from .logging_config import setup_logging
from .services.quality_service import QualityEstimationService
from .services.score_repository import ScoreRepository
from .services.store import TranslationStore
from .validation.icu_validator import validate_icu
from .validation.quality_scorer import QualityScorer

console = Console()

SEVERITY_STYLES = {"critical": "red", "major": "yellow", "minor": "dim"}


def _score_style(score: int) -> str:
    if score >= 80:
        return "green"
    if score >= 60:
        return "yellow"
    return "red"


def _load_service(data_path: str, scores_dir: Optional[str]) -> QualityEstimationService:
    try:
        store = TranslationStore.load(Path(data_path))
    except QualityGateError as e:
        console.print(f"[red]{e}[/red]")
        raise click.Abort()
    scores = ScoreRepository(Path(scores_dir) if scores_dir else config.data_dir)
    return QualityEstimationService(store, scores)


data_option = click.option(
    "--data", "-d",
    "data_path",
    required=True,
    type=click.Path(exists=True),
    help="Path to the translations JSON data file"
)
scores_option = click.option(
    "--scores-dir",
    type=click.Path(),
    default=None,
    help="Directory for stored scores (defaults to QUALITYGATE_DATA_DIR)"
)


@click.group()
@click.version_option(version="0.1.0")
@click.option("--log-level", default=None, help="Log level (DEBUG, INFO, WARNING)")
def cli(log_level: Optional[str]):
    """Translation quality scoring CLI."""
    setup_logging(log_level or "WARNING")


@cli.command()
@click.option("--source", "-s", required=True, help="Source text")
@click.option("--target", "-t", required=True, help="Translated text")
@click.option("--source-lang", default="en", help="Source language code")
@click.option("--target-lang", default="", help="Target language code")
def check(source: str, target: str, source_lang: str, target_lang: str):
    """Run the heuristic checks on an ad-hoc pair."""
    result = QualityScorer(pass_threshold=config.quality_pass_threshold).check(
        source, target, source_lang, target_lang
    )

    style = _score_style(result.score)
    console.print(
        Panel(
            f"[{style}]Score: {result.score}[/{style}]\n"
            f"Passed: {'yes' if result.passed else 'no'}\n"
            f"Needs AI evaluation: {'yes' if result.needs_ai_evaluation else 'no'}",
            title="Heuristic Check",
        )
    )

    if result.issues:
        table = Table(show_header=True)
        table.add_column("Check", style="cyan")
        table.add_column("Severity")
        table.add_column("Message")
        for issue in result.issues:
            severity = issue.severity.value
            table.add_row(
                issue.check or issue.type.value,
                f"[{SEVERITY_STYLES[severity]}]{severity}[/{SEVERITY_STYLES[severity]}]",
                issue.message,
            )
        console.print(table)


@cli.command()
@data_option
@scores_option
@click.option("--id", "translation_ids", multiple=True, help="Translation id to evaluate (repeatable)")
@click.option("--branch", "-b", default=None, help="Evaluate every translation of a branch")
@click.option("--force-ai", is_flag=True, help="Use AI evaluation even when heuristics pass")
def evaluate(
    data_path: str,
    scores_dir: Optional[str],
    translation_ids: Tuple[str, ...],
    branch: Optional[str],
    force_ai: bool,
):
    """Evaluate translations from a data file."""
    service = _load_service(data_path, scores_dir)

    ids = list(translation_ids)
    if branch:
        ids.extend(
            t.translation_id
            for t in service.store.translations_in_branch(branch)
            if t.value and t.language != service.store.source_language(t.key_id)
        )
    if not ids:
        console.print("[yellow]Nothing to evaluate. Pass --id or --branch.[/yellow]")
        return

    console.print(f"[blue]Evaluating:[/blue] {len(ids)} translations")

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        console=console,
    ) as progress:
        task = progress.add_task("Evaluating", total=len(ids))

        def update_progress(current, total, translation_id):
            progress.update(task, completed=current, description=f"{translation_id[:40]}")

        outcome = service.evaluate_batch(ids, force_ai=force_ai, progress_callback=update_progress)

    table = Table(title="Quality Scores")
    table.add_column("Translation", style="cyan", max_width=40)
    table.add_column("Score", justify="right")
    table.add_column("Type")
    table.add_column("Cached")
    table.add_column("Issues", justify="right")

    for translation_id, score in outcome.results.items():
        style = _score_style(score.score)
        kind = score.evaluation_type.value + (" (fallback)" if score.ai_fallback else "")
        table.add_row(
            translation_id,
            f"[{style}]{score.score}[/{style}]",
            kind,
            "yes" if score.cached else "",
            str(len(score.issues)),
        )
    console.print(table)

    for failure in outcome.failures:
        console.print(f"[red]Failed:[/red] {failure.translation_id}: {failure.error}")


@cli.command()
@data_option
@click.option("--key", "-k", "key_id", required=True, help="Key id")
@click.option("--target-lang", "-l", required=True, help="Target language code")
@click.option("--xml", "show_xml", is_flag=True, help="Print the structured XML context")
def context(data_path: str, key_id: str, target_lang: str, show_xml: bool):
    """Show the keys related to a key."""
    service = _load_service(data_path, None)

    try:
        ai_context = service.build_context(key_id, target_lang)
    except QualityGateError as e:
        console.print(f"[red]{e}[/red]")
        raise click.Abort()

    if not ai_context.related_translations:
        console.print("[yellow]No related keys with translations found[/yellow]")
        return

    table = Table(title=f"Related keys for {key_id}")
    table.add_column("Key", style="cyan", max_width=40)
    table.add_column("Relationship")
    table.add_column("Confidence", justify="right")
    table.add_column(target_lang, max_width=50)

    for related in ai_context.related_translations:
        table.add_row(
            related.key_name,
            related.relationship_type.value,
            f"{related.confidence:.2f}",
            related.translations.get(target_lang, ""),
        )
    console.print(table)

    if show_xml:
        console.print(ai_context.context_prompt, markup=False)


@cli.command()
@data_option
@scores_option
@click.option("--branch", "-b", required=True, help="Branch id")
def summary(data_path: str, scores_dir: Optional[str], branch: str):
    """Show the quality summary of a branch."""
    service = _load_service(data_path, scores_dir)
    result = service.get_branch_summary(branch)

    table = Table(title=f"Quality Summary for {branch}")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")

    average = "-" if result.average_score is None else f"{result.average_score:.1f}"
    table.add_row("Average score", average)
    table.add_row("Scored", f"{result.total_scored}/{result.total_translations}")
    table.add_row("[green]Excellent (80+)[/green]", str(result.excellent))
    table.add_row("[yellow]Good (60-79)[/yellow]", str(result.good))
    table.add_row("[red]Needs review (<60)[/red]", str(result.needs_review))
    for language, stats in result.by_language.items():
        table.add_row(f"  {language} average", f"{stats['average']:.1f} ({stats['count']})")

    console.print(table)


@cli.command("validate-icu")
@click.argument("text")
def validate_icu_command(text: str):
    """Check the ICU message syntax of TEXT."""
    result = validate_icu(text)
    if result.valid:
        arguments = ", ".join(result.arguments) or "none"
        console.print(f"[green]Valid[/green] (arguments: {arguments})")
    else:
        console.print(f"[red]Invalid:[/red] {result.error}")
        raise SystemExit(1)


if __name__ == "__main__":
    cli()
