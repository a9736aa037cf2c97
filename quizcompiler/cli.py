"""
CLI Interface
=============
Command-line interface for the quiz compiler.

Usage:
    python -m quizcompiler parse <input> [options]
    python -m quizcompiler tokens <input>
    python -m quizcompiler validate <json_path>

Use "-" as <input> to read from stdin.
"""

from __future__ import annotations

import json
import sys

import click
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from . import __version__
from .engine import ParserConfig, ParsingEngine
from .validator import ValidationEngine

console = Console()


@click.group()
@click.version_option(version=__version__, prog_name="quizcompiler")
def cli():
    """Quiz Compiler — turns loosely formatted quiz text into questions."""
    pass


@cli.command()
@click.argument("input_file", metavar="INPUT", type=click.File("r", encoding="utf-8"))
@click.option(
    "--output", "-o",
    default=None,
    type=click.Path(dir_okay=False, writable=True),
    help="Write the questions as JSON to this file",
)
@click.option(
    "--seed",
    default=None,
    type=int,
    help="Seed for rapid-fire option shuffling",
)
@click.option(
    "--no-rapid-fire",
    is_flag=True,
    default=False,
    help="Leave linear questions with a single option",
)
@click.option(
    "--json-output",
    is_flag=True,
    default=False,
    help="Output only JSON result to stdout (for programmatic use)",
)
@click.option(
    "--log-level",
    default="INFO",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]),
    help="Logging level",
)
@click.option(
    "--log-file",
    default=None,
    help="Path to log file",
)
def parse(
    input_file,
    output: str,
    seed: int,
    no_rapid_fire: bool,
    json_output: bool,
    log_level: str,
    log_file: str,
):
    """Parse a text file into structured questions."""

    if json_output:
        # Suppress console output for JSON mode
        log_level = "ERROR"

    config = ParserConfig(
        log_level=log_level,
        log_file=log_file,
        seed=seed,
        rapid_fire=not no_rapid_fire,
    )

    if not json_output:
        console.print()
        console.print(
            Panel.fit(
                f"[bold cyan]Quiz Compiler v{__version__}[/]\n"
                f"[dim]Parsing: {input_file.name}[/]",
                border_style="cyan",
            )
        )
        console.print()

    try:
        text = input_file.read()
        engine = ParsingEngine(config)
        result = engine.parse_result(text)
        payload = [q.model_dump() for q in result.questions]

        if output:
            with open(output, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2, ensure_ascii=False)

        if json_output:
            # Output clean JSON to stdout
            click.echo(json.dumps(payload, indent=2, ensure_ascii=False))
        else:
            _display_questions(result)
            report = ValidationEngine().validate(result)
            _display_validation_table(report.model_dump(mode="json"))
            if output:
                console.print(f"[green]Saved {len(payload)} questions to {output}[/]")

    except Exception as e:
        console.print(f"[red]Unexpected error:[/] {e}")
        if log_level == "DEBUG":
            console.print_exception()
        sys.exit(1)


@cli.command()
@click.argument("input_file", metavar="INPUT", type=click.File("r", encoding="utf-8"))
def tokens(input_file):
    """Print the token stream produced by the lexer."""

    engine = ParsingEngine(ParserConfig(log_level="WARNING"))
    stream = engine.tokenize(input_file.read())

    table = Table(title="Token Stream", border_style="cyan")
    table.add_column("Line", justify="right")
    table.add_column("Kind", style="bold")
    table.add_column("Value")

    for token in stream:
        table.add_row(
            str(token.line_number), token.kind.value, escape(token.value)
        )

    console.print(table)
    console.print(f"[dim]{len(stream)} tokens[/]")


@cli.command()
@click.argument("json_path", type=click.Path(exists=True, dir_okay=False))
def validate(json_path: str):
    """Validate a JSON array of questions."""

    with open(json_path, "r", encoding="utf-8") as f:
        text = f.read()

    console.print()
    console.print(
        Panel.fit(
            f"[bold cyan]Validation Report[/]\n"
            f"[dim]File: {json_path}[/]",
            border_style="cyan",
        )
    )

    engine = ParsingEngine(ParserConfig(log_level="WARNING", rapid_fire=False))
    result = engine.parse_result(text)
    report = ValidationEngine().validate(result)
    _display_validation_table(report.model_dump(mode="json"))

    if report.total_questions == 0:
        console.print("[red]Error:[/] no questions could be read")
        sys.exit(1)


# ─── Display Helpers ──────────────────────────────────────────────────────────


def _display_questions(result):
    """Display parsed questions in a formatted table."""
    table = Table(title="Questions", border_style="cyan")
    table.add_column("ID", justify="right", style="bold")
    table.add_column("Question")
    table.add_column("Options", justify="right")
    table.add_column("Answer", justify="center")
    table.add_column("Topic")

    for q in result.questions:
        question = q.question if len(q.question) <= 60 else q.question[:57] + "..."
        table.add_row(
            str(q.id),
            escape(question),
            str(len(q.options)),
            _answer_label(q),
            escape(q.topic or ""),
        )

    console.print(table)
    console.print()


def _answer_label(q) -> str:
    """Letter of the correct option, or "-" when the index is out of range."""
    if 0 <= q.correct_answer < len(q.options):
        return chr(ord("A") + q.correct_answer)
    return "-"


def _display_validation_table(validation: dict):
    """Display validation report as a rich table."""
    table = Table(title="Validation Report", border_style="green")
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_column("Status", justify="center")

    total = validation.get("total_questions", 0)
    rate = validation.get("success_rate", 0)

    # Status icons
    def status_icon(count, threshold=0):
        if count <= threshold:
            return "[green]✓[/]"
        return "[red]✗[/]"

    table.add_row("Parse Mode", validation.get("mode", ""), "")
    table.add_row(
        "Total Questions",
        f"{total} ({rate}%)",
        "[green]✓[/]" if total > 0 else "[red]✗[/]",
    )

    discarded = validation.get("discarded_candidates", 0)
    table.add_row(
        "Discarded Candidates",
        str(discarded),
        "[green]✓[/]" if discarded == 0 else "[yellow]⚠[/]",
    )

    table.add_row(
        "Linear Questions",
        str(len(validation.get("linear_questions", []))),
        "",
    )

    missing_exp = validation.get("questions_missing_explanation", [])
    table.add_row(
        "Questions Missing Explanation",
        str(len(missing_exp)),
        "[green]✓[/]" if not missing_exp else "[yellow]⚠[/]",
    )

    table.add_row(
        "Grouped Questions",
        str(len(validation.get("grouped_questions", []))),
        "",
    )

    violations = validation.get("invariant_violations", [])
    table.add_row(
        "Invariant Violations",
        str(len(violations)),
        status_icon(len(violations)),
    )

    console.print(table)
    console.print()

    breakdown = validation.get("topic_breakdown", {})
    if breakdown:
        topic_table = Table(title="Topic Breakdown", border_style="yellow")
        topic_table.add_column("Topic", style="bold")
        topic_table.add_column("Count", justify="right")

        for topic, count in sorted(breakdown.items()):
            topic_table.add_row(escape(topic), str(count))

        console.print(topic_table)
        console.print()


# ─── Entry point (for python -m quizcompiler.cli) ─────────────────────────────


if __name__ == "__main__":
    cli()
