"""
TOEIC Review: CLI for Part 5 spaced repetition review.

A Rich terminal interface over the review scheduler.

Commands:
- toeic-review study    - Run a review session over due questions
- toeic-review due      - List questions due for review
- toeic-review answer   - Record one answer from another quiz mode
- toeic-review stats    - Show review statistics
- toeic-review forget   - Drop the review state of one question
- toeic-review reset    - Clear all review state
"""
from __future__ import annotations

import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

import typer
from loguru import logger
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm, Prompt
from rich.table import Table

from config import Settings, get_settings

from .errors import InvalidArgumentError, StorageError
from .question_bank import Question, QuestionBank
from .scheduler import DRILL_POLICY, REVIEW_POLICY, SM2Config, SM2Scheduler
from .session import (
    ReviewAvailability,
    ReviewSession,
    SessionSummary,
    review_status,
    session_cap,
)
from .state_store import StateStore

# =============================================================================
# CLI Setup
# =============================================================================

app = typer.Typer(
    name="toeic-review",
    help="TOEIC Part 5 spaced repetition review",
    no_args_is_help=True,
)
console = Console()

POLICIES = {
    REVIEW_POLICY.name: REVIEW_POLICY,
    DRILL_POLICY.name: DRILL_POLICY,
}


def configure_logging(settings: Settings) -> None:
    """Route loguru output to stderr and the optional log file."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=settings.log_level,
        format="<level>{message}</level>",
    )
    if settings.log_file:
        logger.add(
            settings.log_file,
            level="DEBUG",
            rotation="1 MB",
            retention=5,
        )


def _make_scheduler(settings: Settings) -> SM2Scheduler:
    try:
        return SM2Scheduler(SM2Config.from_settings(settings))
    except InvalidArgumentError as exc:
        console.print(f"[red]Invalid SM-2 settings:[/red] {exc}")
        raise typer.Exit(1)


def _open_store(settings: Settings) -> StateStore:
    try:
        return StateStore.from_settings(settings)
    except StorageError as exc:
        console.print(f"[red]Cannot open review database:[/red] {exc}")
        raise typer.Exit(1)


# =============================================================================
# Display Helpers
# =============================================================================


def display_question(question: Question, index: int, total: int) -> None:
    """Display a question with lettered options."""
    header = f"Question {index}/{total}"
    if question.category:
        header += f"  |  {question.category}"

    content = question.question_text + "\n\n"
    for i, option in enumerate(question.options):
        content += f"  {chr(65 + i)}. {option}\n"

    console.print(Panel(content.rstrip(), title=header, title_align="left", border_style="cyan", padding=(1, 2)))


def display_feedback(question: Question, is_correct: bool) -> None:
    """Display the answer with the explanation."""
    icon = "[green]✓ Correct[/green]" if is_correct else "[red]✗ Incorrect[/red]"
    content = f"{icon}\n\nAnswer: {chr(65 + question.correct_answer_index)}. {question.correct_answer}"
    if question.explanation:
        content += f"\n\n[dim]{question.explanation}[/dim]"
    console.print(Panel(content, border_style="green" if is_correct else "red", padding=(1, 2)))


def _display_session_summary(summary: SessionSummary) -> None:
    body = (
        f"[bold]Session Complete![/bold]\n\n"
        f"Questions reviewed: {summary.answered}\n"
        f"Accuracy: {summary.accuracy_percent:.1f}%"
    )
    if summary.failed:
        body += f"\n[yellow]Not saved: {len(summary.failed)} (see log)[/yellow]"
    console.print(Panel(body, title="Summary", border_style="green"))


# =============================================================================
# Commands
# =============================================================================


@app.command()
def study(
    questions_dir: Optional[Path] = typer.Option(
        None,
        "--dir", "-d",
        help="Directory with course JSON files (default: TOEIC_REVIEW_QUESTIONS_DIR or the bundled data/courses)",
    ),
    limit: Optional[int] = typer.Option(
        None,
        "--limit", "-l",
        help="Maximum questions this session (default: free-tier cap unless premium)",
    ),
) -> None:
    """
    Start an interactive review session.

    Presents every question due today (up to the session cap), records
    each answer and reschedules it with SM-2.
    """
    settings = get_settings()
    bank = QuestionBank(questions_dir or settings.questions_dir)
    if bank.load() == 0:
        console.print("\n[red]No questions found![/red]")
        console.print(f"Looking in: {bank.data_dir.absolute()}")
        raise typer.Exit(1)

    store = _open_store(settings)
    session = ReviewSession(store, _make_scheduler(settings))
    cap = limit if limit is not None else session_cap(settings=settings)

    try:
        question_ids = session.prepare_session(datetime.now(), max_items=cap)
    except StorageError as exc:
        console.print(f"\n[red]Could not load due questions:[/red] {exc}")
        console.print("Please try again.")
        raise typer.Exit(1)
    except InvalidArgumentError as exc:
        raise typer.BadParameter(str(exc), param_hint="--limit")

    questions = bank.resolve(question_ids)
    unresolved = len(question_ids) - len(questions)
    if unresolved:
        logger.warning(f"{unresolved} due questions are missing from {bank.data_dir}")

    if not question_ids:
        session.finalize_session()
        console.print("\n[green]Nothing due for review![/green]")
        console.print("All caught up. Check back tomorrow.")
        raise typer.Exit(0)

    if not questions:
        session.finalize_session()
        console.print(f"\n[yellow]{unresolved} questions are due but none are in the question bank.[/yellow]")
        console.print(f"Looking in: {bank.data_dir.absolute()}")
        raise typer.Exit(1)

    if unresolved:
        console.print(f"[yellow]Skipping {unresolved} due questions not found in the question bank.[/yellow]")

    console.print(f"\n[bold]Review session: {len(questions)} questions[/bold]\n")

    with session:
        try:
            for i, question in enumerate(questions, 1):
                display_question(question, i, len(questions))
                letters = [chr(65 + n) for n in range(len(question.options))]
                choice = Prompt.ask(
                    "Your answer",
                    choices=letters + [letter.lower() for letter in letters],
                    show_choices=False,
                ).upper()
                is_correct = question.is_correct(ord(choice) - ord("A"))
                display_feedback(question, is_correct)
                session.record_answer(question.id, is_correct)
        except KeyboardInterrupt:
            console.print("\n\n[yellow]Session interrupted. Answers so far are saved.[/yellow]")

        summary = session.finalize_session()

    _display_session_summary(summary)


@app.command()
def due(
    limit: int = typer.Option(20, "--limit", "-l", help="Rows to show"),
) -> None:
    """List questions due for review."""
    settings = get_settings()
    store = _open_store(settings)
    now = datetime.now()

    try:
        records = store.get_due_records(now)
        status = review_status(store, now)
    except StorageError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1)

    if status.availability is ReviewAvailability.COMPLETED_TODAY:
        console.print("[green]Today's review session is done.[/green]")

    if not records:
        console.print("[green]Nothing due for review.[/green]")
        return

    table = Table(title=f"Due questions ({len(records)})")
    table.add_column("Question")
    table.add_column("Due")
    table.add_column("Overdue", justify="right")
    table.add_column("Reps", justify="right")
    table.add_column("EF", justify="right")

    for record in records[:limit]:
        table.add_row(
            record.question_id,
            f"{record.next_review:%Y-%m-%d}",
            str(record.days_overdue(now)),
            str(record.repetition_count),
            f"{record.ease_factor:.2f}",
        )

    console.print(table)


@app.command()
def answer(
    question_id: str = typer.Argument(..., help="Question identifier"),
    correct: Optional[bool] = typer.Option(
        None,
        "--correct/--wrong",
        help="Whether the answer was right",
    ),
    quality: Optional[int] = typer.Option(
        None,
        "--quality", "-q",
        help="SM-2 grade 0-5 (overrides --correct/--wrong)",
    ),
    weak: bool = typer.Option(
        False,
        "--weak",
        help="Mark the question as weak (grade 0, due again tomorrow)",
    ),
    mode: str = typer.Option(
        REVIEW_POLICY.name,
        "--mode", "-m",
        help="Quiz mode grading: review (4/1) or drill (5/0)",
    ),
) -> None:
    """Record a single answer and show the new schedule."""
    if quality is None and correct is None and not weak:
        raise typer.BadParameter("pass --correct/--wrong, --quality or --weak")
    policy = POLICIES.get(mode)
    if policy is None:
        raise typer.BadParameter(f"unknown mode {mode!r}", param_hint="--mode")

    settings = get_settings()
    store = _open_store(settings)
    session = ReviewSession(store, _make_scheduler(settings), policy=policy)

    try:
        first_review = not store.exists(question_id)
    except StorageError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1)

    with session:
        session.begin()
        try:
            if weak:
                record = session.mark_weak(question_id)
            elif quality is not None:
                record = session.record_quality(question_id, quality)
            else:
                record = session.record_answer(question_id, correct)
        except InvalidArgumentError as exc:
            raise typer.BadParameter(str(exc))

    if record is None:
        console.print(f"[red]Answer for {question_id} could not be saved.[/red]")
        raise typer.Exit(1)

    console.print(
        f"[green]{question_id}[/green]: next review {record.next_review:%Y-%m-%d} "
        f"(interval {record.interval_days:.1f}d, reps {record.repetition_count}, EF {record.ease_factor:.2f})"
        + (" [dim](first review)[/dim]" if first_review else "")
    )


@app.command()
def stats() -> None:
    """Show review statistics."""
    settings = get_settings()
    store = _open_store(settings)
    now = datetime.now()

    try:
        db_stats = store.get_stats(now)
        sessions = store.get_session_history(limit=5)
    except StorageError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1)

    console.print("\n[bold cyan]Review Statistics[/bold cyan]")
    console.print("=" * 40)

    table = Table(show_header=False, box=None)
    table.add_column("Metric", style="dim")
    table.add_column("Value", style="bold")

    table.add_row("Questions tracked", str(db_stats["total_tracked"]))
    table.add_row("Due today", str(db_stats["due_today"]))
    table.add_row("Learning", str(db_stats["learning"]))
    table.add_row("Mature (21d+)", str(db_stats["mature"]))
    table.add_row("Avg ease factor", f"{db_stats['avg_ease_factor']:.2f}")
    table.add_row("Sessions completed", str(db_stats["sessions_completed"]))

    console.print(table)

    if sessions:
        console.print("\n[bold]Recent Sessions[/bold]")
        session_table = Table()
        session_table.add_column("Date")
        session_table.add_column("Questions")
        session_table.add_column("Correct")
        session_table.add_column("Unsaved")

        for s in sessions:
            session_table.add_row(
                s.finished_at.strftime("%Y-%m-%d %H:%M"),
                str(s.items_answered),
                str(s.items_correct),
                f"[red]{s.items_failed}[/red]" if s.items_failed else "0",
            )

        console.print(session_table)


@app.command()
def forget(
    question_id: str = typer.Argument(..., help="Question identifier"),
) -> None:
    """Drop the review state of one question."""
    store = _open_store(get_settings())
    try:
        deleted = store.delete(question_id)
    except StorageError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1)

    if deleted:
        console.print(f"[green]Removed {question_id} from review.[/green]")
    else:
        console.print(f"[yellow]{question_id} has no review state.[/yellow]")


@app.command()
def reset(
    confirm: bool = typer.Option(
        False,
        "--yes", "-y",
        help="Skip confirmation",
    ),
) -> None:
    """Clear all review state for a fresh start."""
    if not confirm and not Confirm.ask("Reset ALL review state? This cannot be undone!", default=False):
        raise typer.Exit(0)

    store = _open_store(get_settings())
    try:
        count = store.reset()
    except StorageError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1)

    console.print(f"[green]Review state reset ({count} questions).[/green]")


# =============================================================================
# Entry Point
# =============================================================================


def main() -> None:
    """CLI entry point."""
    configure_logging(get_settings())
    app()


if __name__ == "__main__":
    main()
