"""
Tutor CLI.

Commands:
    tutor load-bank <file>  - Register questions from a JSON bank
    tutor next              - Show the next question for a subject
    tutor answer <id> <a>   - Record an answer to a question
    tutor practice          - Interactive practice session
    tutor stats             - Per-category dashboard
    tutor score             - Predicted score and monthly progress
    tutor review            - Queued re-reviews
    tutor reset             - Delete stored progress

Usage:
    tutor --help
    tutor load-bank data/sample_bank.json
    tutor practice --subject AR --count 10
    tutor --db /tmp/state.db stats
"""

from __future__ import annotations

import asyncio
import sys
import time
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path

import typer
from loguru import logger
from rich import print as rprint
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from config import get_settings
from src.adaptive.engine import AdaptiveEngine, AttemptOutcome
from src.adaptive.exceptions import AdaptiveEngineError, UnknownQuestionError
from src.adaptive.mastery_cycle import MasteryEvent
from src.adaptive.models import EngineConfig, MasteryPhase, QuestionDescriptor, QuestionId, Tier
from src.adaptive.text_match import is_answer_correct, normalize_text
from src.delivery.question_bank import QuestionBank
from src.delivery.refine_client import RefineClient
from src.delivery.state_store import ModelStore

console = Console()

app = typer.Typer(
    name="tutor",
    help="Adaptive tutor: practice, reviews, mastery and score estimation",
    no_args_is_help=True,
)

CHOICE_LETTERS = "ABCDEFGHIJ"


# ========================================
# Helpers
# ========================================


@app.callback()
def main_callback(
    ctx: typer.Context,
    db: Path | None = typer.Option(None, "--db", help="State database (default from settings)"),
) -> None:
    """Adaptive tutor CLI."""
    ctx.obj = {"db": db}


def _open_store(ctx: typer.Context) -> ModelStore:
    settings = get_settings()
    db = (ctx.obj or {}).get("db") or settings.state_db_path
    return ModelStore(db_path=Path(db), learner_id=settings.learner_id)


@contextmanager
def _session(ctx: typer.Context, mode: str = "practice") -> Iterator[tuple[ModelStore, AdaptiveEngine]]:
    """Load the model, hand out an engine, save on success and always close."""
    store = _open_store(ctx)
    try:
        model = store.load()
        engine = AdaptiveEngine(model, config=EngineConfig.from_settings(get_settings()), mode=mode)
        engine.prime_recent((a.category, a.correct) for a in store.attempts())
        yield store, engine
        store.save(engine.model)
    except AdaptiveEngineError as e:
        rprint(f"[red]Error:[/red] {e.message}")
        raise typer.Exit(code=1)
    finally:
        store.close()


def _tier_option(value: str | None) -> Tier | None:
    if value is None:
        return None
    try:
        return Tier.from_value(value)
    except ValueError:
        names = ", ".join(t.value for t in Tier.ordered())
        raise typer.BadParameter(f"unknown tier {value!r} (expected one of: {names})")


def _parse_question_id(raw: str, engine: AdaptiveEngine) -> QuestionId:
    """Question ids may be ints or strings; prefer whichever the pool knows."""
    if raw in engine.model.question_pool:
        return raw
    try:
        as_int = int(raw)
    except ValueError:
        return raw
    return as_int if as_int in engine.model.question_pool else raw


def _is_correct(question: QuestionDescriptor, given: str) -> bool:
    """Accept either the choice letter or the answer text, matched leniently."""
    given = given.strip()
    expected = str(question.answer).strip().lower()
    if len(given) == 1 and given.upper() in CHOICE_LETTERS[: len(question.choices)]:
        picked = question.choices[CHOICE_LETTERS.index(given.upper())]
        return str(picked).strip().lower() == expected

    # Typing out a listed distractor is wrong even when it resembles the answer
    typed = normalize_text(given)
    for choice in question.choices:
        if normalize_text(choice) == typed and str(choice).strip().lower() != expected:
            return False
    return is_answer_correct(question.answer, given)


def _render_question(question: QuestionDescriptor, is_recall: bool = False) -> None:
    content = Text()
    content.append(f"{question.text}\n\n", style="bold")
    for letter, choice in zip(CHOICE_LETTERS, question.choices):
        content.append(f"  {letter}) {choice}\n")

    title = f"[bold]{question.category}[/bold] #{question.id} ({question.tier.value})"
    if is_recall:
        title += " [magenta]RECALL[/magenta]"
    console.print(Panel(content, title=title, border_style="blue"))


def _render_outcome(question: QuestionDescriptor, outcome: AttemptOutcome) -> None:
    if outcome.correct:
        rprint("[green][OK] Correct[/green]")
    else:
        rprint(f"[red][X] Incorrect[/red] - answer: [bold]{question.answer}[/bold]")

    if outcome.mastery_event is MasteryEvent.CYCLE_TO_RECALL:
        rprint(f"[magenta]Formula {question.formula_id} ready for a recall check[/magenta]")
    elif outcome.mastery_event is MasteryEvent.RECALL_CORRECT:
        rprint(f"[bold green]Formula {question.formula_id} mastered![/bold green]")

    if outcome.tier_changed:
        rprint(f"[yellow]Question tier {outcome.tier_before.value} -> {outcome.tier_after.value}[/yellow]")
    if outcome.review_scheduled is not None and not outcome.correct:
        rprint("[dim]Queued for review[/dim]")


def _record(
    store: ModelStore,
    engine: AdaptiveEngine,
    question: QuestionDescriptor,
    correct: bool,
    time_ms: int,
    is_recall: bool = False,
) -> AttemptOutcome:
    # Log the tier the question was answered at, before any streak adjustment
    tier = question.tier
    outcome = engine.handle_post_attempt(question.id, correct, time_ms, is_recall=is_recall)
    # Persist per attempt so an interrupted session keeps model and log in step
    store.save(engine.model)
    store.log_attempt(question.id, question.category, question.formula_id, tier, correct, time_ms)
    return outcome


def _recall_question(engine: AdaptiveEngine, formula_id: str, last_id: QuestionId) -> QuestionDescriptor | None:
    """Another question on the same formula, or the same one if it stands alone."""
    same = [q for q in engine.model.question_pool.values() if q.formula_id == formula_id]
    others = [q for q in same if q.id != last_id]
    if others:
        return engine.selector.rng.choice(others)
    return same[0] if same else None


def _bar(value: float, width: int = 10) -> str:
    filled = int(max(0.0, min(100.0, value)) / 100 * width)
    return "#" * filled + "-" * (width - filled)


# ========================================
# Commands
# ========================================


@app.command("load-bank")
def load_bank(
    ctx: typer.Context,
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="JSON question bank"),
    refine: bool = typer.Option(False, "--refine", help="Send questions through the refine service"),
    heavy: bool = typer.Option(False, "--heavy", help="Use the thorough refine mode"),
) -> None:
    """Register questions from a JSON bank file."""
    bank = QuestionBank()
    loaded = bank.load(path)
    if loaded == 0:
        rprint(f"[red]Error:[/red] no usable questions in {path}")
        raise typer.Exit(code=1)

    questions = list(bank)
    settings = get_settings()
    if refine and not settings.has_refine_configured():
        rprint("[yellow]No refine service configured (REFINE_URL); loading questions as-is[/yellow]")
    elif refine:
        client = RefineClient(settings.refine_url, timeout_seconds=settings.refine_timeout_seconds)
        with console.status("Refining questions..."):
            questions = asyncio.run(
                client.refine_or_original(
                    questions,
                    timeout_ms=int(settings.refine_timeout_seconds * 1000),
                    heavy=heavy,
                )
            )

    with _session(ctx, mode="load") as (_, engine):
        added = engine.register_questions(questions)

    rprint(f"[green]Loaded {loaded} questions[/green] ({added} new, {bank.skipped} skipped)")
    rprint(f"  Categories: {', '.join(bank.categories)}")
    if bank.near_duplicates:
        rprint(f"  [yellow]{bank.near_duplicates} restated questions ignored[/yellow]")


@app.command("next")
def next_question(
    ctx: typer.Context,
    subject: str | None = typer.Option(None, "--subject", "-s", help="Category code, e.g. AR"),
    min_tier: str | None = typer.Option(None, "--min-tier", help="Never aim below this tier"),
    tier: str | None = typer.Option(None, "--tier", help="Force this tier"),
) -> None:
    """Show the next question for a subject."""
    tier_override, floor = _tier_option(tier), _tier_option(min_tier)
    with _session(ctx) as (_, engine):
        question = engine.next_question(subject, tier_override=tier_override, min_tier=floor)
        _render_question(question)


@app.command("answer")
def answer(
    ctx: typer.Context,
    question_id: str = typer.Argument(..., help="Question id"),
    response: str = typer.Argument(..., help="Choice letter or answer text"),
    time_ms: int = typer.Option(0, "--time-ms", help="Time taken in milliseconds"),
    recall: bool = typer.Option(False, "--recall", help="This answer is a recall check"),
) -> None:
    """Record an answer to a question."""
    with _session(ctx) as (store, engine):
        qid = _parse_question_id(question_id, engine)
        question = engine.model.question_pool.get(qid)
        if question is None:
            raise UnknownQuestionError(qid)
        outcome = _record(store, engine, question, _is_correct(question, response), time_ms, is_recall=recall)
        _render_outcome(question, outcome)


@app.command("practice")
def practice(
    ctx: typer.Context,
    subject: str | None = typer.Option(None, "--subject", "-s", help="Category code, e.g. AR"),
    count: int = typer.Option(10, "--count", "-n", min=1, help="Questions in the session"),
    min_tier: str | None = typer.Option(None, "--min-tier", help="Never aim below this tier"),
) -> None:
    """Run an interactive practice session."""
    floor = _tier_option(min_tier)
    seen: set[QuestionId] = set()
    correct_total = 0

    with _session(ctx) as (store, engine):
        pending_recall: QuestionDescriptor | None = None
        for index in range(count):
            if pending_recall is not None:
                question, is_recall = pending_recall, True
                pending_recall = None
            else:
                question = engine.next_question(subject, exclude_ids=seen, min_tier=floor)
                is_recall = False
            seen.add(question.id)

            rprint(f"\n[dim]Question {index + 1}/{count}[/dim]")
            _render_question(question, is_recall=is_recall)
            started = time.monotonic()
            response = typer.prompt("Answer")
            elapsed_ms = int((time.monotonic() - started) * 1000)

            correct = _is_correct(question, response)
            correct_total += 1 if correct else 0
            outcome = _record(store, engine, question, correct, elapsed_ms, is_recall=is_recall)
            _render_outcome(question, outcome)

            if outcome.mastery_state.phase is MasteryPhase.RECALL:
                pending_recall = _recall_question(engine, question.formula_id, question.id)

    accuracy = correct_total * 100 / count
    rprint(f"\n[bold]Session complete:[/bold] {correct_total}/{count} correct ({accuracy:.0f}%)")


@app.command("stats")
def stats(ctx: typer.Context) -> None:
    """Show the per-category dashboard."""
    with _session(ctx, mode="stats") as (_, engine):
        summary = engine.dashboard()

    if not summary["categories"]:
        rprint("[yellow]No attempts recorded yet.[/yellow]")
        return

    table = Table(title="Category Progress")
    table.add_column("Category", style="cyan")
    table.add_column("Attempts", justify="right")
    table.add_column("Accuracy", justify="right")
    table.add_column("Tier")
    table.add_column("Confidence")
    table.add_column("Next set", justify="right")

    for code, row in summary["categories"].items():
        table.add_row(
            code,
            str(row["attempts"]),
            f"{row['accuracy']:.1f}%",
            row["tier"],
            f"{_bar(row['confidence'])} {row['confidence']}",
            str(row["questions_per_topic"]),
        )
    console.print(table)
    rprint(
        f"Reviews due: [bold]{summary['due_reviews']}[/bold] "
        f"(queued {summary['queued_reviews']}) | Pool: {summary['pool_size']}"
    )


@app.command("score")
def score(
    ctx: typer.Context,
    months: int = typer.Option(6, "--months", min=1, help="Months of history to show"),
) -> None:
    """Show the predicted score and monthly progress."""
    with _session(ctx, mode="stats") as (store, engine):
        predicted = engine.predicted_score()
        level = store.user_difficulty()
        summaries = store.monthly_summaries(months=months)

    rprint(f"[bold]Predicted score:[/bold] {predicted} / 99")
    rprint(f"[bold]Working level:[/bold] {level}")

    table = Table(title="Monthly Progress")
    table.add_column("Month")
    table.add_column("Attempts", justify="right")
    table.add_column("Accuracy", justify="right")
    for summary in summaries:
        table.add_row(summary.month, str(summary.attempts), f"{summary.accuracy * 100:.0f}%")
    console.print(table)


@app.command("review")
def review(ctx: typer.Context) -> None:
    """List queued re-reviews, earliest first."""
    with _session(ctx, mode="stats") as (_, engine):
        queue = sorted(engine.model.review_queue, key=lambda item: item.due_at)
        now = engine.clock()

    if not queue:
        rprint("[green]No reviews queued.[/green]")
        return

    table = Table(title="Review Queue")
    table.add_column("Question")
    table.add_column("Reason")
    table.add_column("Due")
    table.add_column("Status")
    for item in queue:
        due = datetime.fromtimestamp(item.due_at / 1000, tz=timezone.utc).strftime("%Y-%m-%d %H:%M")
        status = "[red]due[/red]" if item.is_due(now) else "waiting"
        table.add_row(str(item.question_id), item.reason.value, due, status)
    console.print(table)


@app.command("reset")
def reset(
    ctx: typer.Context,
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt"),
) -> None:
    """Delete the stored model and attempt log."""
    if not yes and not typer.confirm("This deletes all recorded progress. Continue?"):
        rprint("Reset cancelled.")
        raise typer.Exit()

    store = _open_store(ctx)
    try:
        store.clear()
    finally:
        store.close()
    rprint("[green]Progress cleared.[/green]")


# ========================================
# Entry Point
# ========================================


def main() -> None:
    """CLI entry point."""
    settings = get_settings()

    # Configure logging
    logger.remove()
    logger.add(
        sys.stderr,
        level=settings.log_level,
        format="<level>{message}</level>",
    )
    if settings.log_file:
        logger.add(settings.log_file, level="DEBUG", rotation="10 MB", retention=5)

    app()


if __name__ == "__main__":
    main()
