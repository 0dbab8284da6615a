"""Command-line interface for OpCoder tutorials."""

import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .catalog import (
    TutorialCatalog,
    choose_starting_feature,
    load_builtin_catalog,
    load_catalog_from_yaml,
)
from .config import TutorialConfig, load_config
from .engine import TutorialEngine, TutorialSnapshot
from .errors import InvalidTutorialError, TutorialNotFoundError
from .help_topics import HelpWalker, load_help_topics
from .progress import JsonFileProgressStore
from .tutorial import Category, Tutorial

console = Console()

CONTEXT_SETTINGS = {"help_option_names": ["-h", "--help"]}

NAV_CHOICES = click.Choice(["n", "b", "s"], case_sensitive=False)
HELP_CHOICES = click.Choice(["n", "b", "q"], case_sensitive=False)


@click.group(context_settings=CONTEXT_SETTINGS)
@click.version_option(package_name="opcoder-tutorials")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(path_type=Path),
    default=None,
    help="Path to YAML configuration file (default: ~/.opcoder/config.yaml)",
)
@click.option(
    "--verbose",
    "-v",
    "verbosity",
    count=True,
    help="Verbose output (-v info, -vv debug)",
)
@click.pass_context
def main(ctx: click.Context, config_path: Path | None, verbosity: int) -> None:
    """OpCoder - guided tutorials for surgical CPT coding.

    \b
    Commands:
      tutorial    List, run and track tutorials
      help-topic  Page through per-screen help

    \b
    Quick Start:
      opcoder tutorial list               # See all tutorials
      opcoder tutorial start basics       # Take the basics tour
      opcoder tutorial progress           # What you've completed

    \b
    Environment Variables:
      OPCODER_TUTORIAL_DIR      Where progress files are stored
      OPCODER_TUTORIAL_CATALOG  Alternate tutorial catalog (YAML)
      OPCODER_USER_ID           User whose progress is tracked
      OPCODER_LOG_LEVEL         Logging level
    """
    try:
        config = load_config(config_path)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error loading config: {e}[/red]")
        sys.exit(1)

    if verbosity >= 2:
        level = logging.DEBUG
    elif verbosity == 1:
        level = logging.INFO
    else:
        level = getattr(logging, config.log_level)
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")

    ctx.obj = config


def _load_catalog(config: TutorialConfig) -> TutorialCatalog:
    if config.catalog_path is None:
        return load_builtin_catalog()
    try:
        return load_catalog_from_yaml(config.catalog_path)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error loading tutorial catalog: {e}[/red]")
        sys.exit(1)


def _build_engine(config: TutorialConfig) -> TutorialEngine:
    return TutorialEngine(
        store=JsonFileProgressStore(config.progress_dir),
        user_id=config.user_id,
        catalog=_load_catalog(config),
    )


def _render_step(snapshot: TutorialSnapshot | None) -> None:
    """Print the current step; registered as an engine state listener."""
    if snapshot is None:
        return

    step = snapshot.step
    body = [step.content]
    if step.callout_text:
        body.append(f"\n[bold]{step.callout_text}[/bold]")
    if step.tips:
        body.append("\n[bold]Quick Tips:[/bold]")
        body.extend(f"  - {tip}" for tip in step.tips)

    console.print()
    console.print(
        Panel(
            "\n".join(body),
            title=f"[bold]{step.title}[/bold]",
            subtitle=(
                f"Step {snapshot.index + 1} of {snapshot.total_steps} "
                f"({snapshot.progress_percent:.0f}%)"
            ),
            border_style="cyan",
        )
    )


def _run_tutorial(engine: TutorialEngine, tutorial: Tutorial | str) -> None:
    """Walk a user through a tutorial until it completes or is skipped."""
    unsubscribe = engine.subscribe(_render_step)
    try:
        try:
            snapshot = engine.start(tutorial)
        except TutorialNotFoundError as e:
            console.print(f"[red]Error: {e}[/red]")
            console.print("[dim]Run 'opcoder tutorial list' to see available tutorials[/dim]")
            sys.exit(1)
        except InvalidTutorialError as e:
            console.print(f"[red]Error: {e}[/red]")
            sys.exit(1)

        tutorial_id = snapshot.tutorial.id
        console.print(
            f"[bold]{snapshot.tutorial.title}[/bold] "
            f"[dim](~{snapshot.tutorial.estimated_minutes} min)[/dim]"
        )

        skipped = False
        while engine.is_running:
            current = engine.current()
            on_last = current is not None and current.is_last
            choice = click.prompt(
                "[n] finish, [b]ack, [s]kip" if on_last else "[n]ext, [b]ack, [s]kip",
                type=NAV_CHOICES,
                default="n",
                show_choices=False,
                show_default=False,
            ).lower()
            if choice == "n":
                engine.advance()
            elif choice == "b":
                if current is not None and current.is_first:
                    console.print("[dim]Already at the first step[/dim]")
                engine.retreat()
            else:
                engine.skip()
                skipped = True
    finally:
        unsubscribe()

    if skipped:
        console.print(
            "\n[yellow]Tutorial skipped. It will start from the beginning next time.[/yellow]"
        )
    else:
        console.print(f"\n[bold green]Tutorial '{tutorial_id}' complete![/bold green]")


@main.group(context_settings=CONTEXT_SETTINGS)
def tutorial() -> None:
    """List, run and track tutorials.

    \b
    Examples:
      opcoder tutorial list
      opcoder tutorial start search
      opcoder tutorial onboard -f rvu -f cases
    """


@tutorial.command("list", context_settings=CONTEXT_SETTINGS)
@click.option(
    "--category",
    type=click.Choice([c.value for c in Category]),
    default=None,
    help="Only show tutorials in this category",
)
@click.pass_obj
def list_tutorials(config: TutorialConfig, category: str | None) -> None:
    """List available tutorials."""
    engine = _build_engine(config)

    entries = engine.available_tutorials()
    if category:
        entries = [(t, done) for t, done in entries if t.category.value == category]

    if not entries:
        console.print("[yellow]No tutorials found matching criteria[/yellow]")
        return

    table = Table(title="Available Tutorials", show_header=True, header_style="bold")
    table.add_column("Tutorial ID", style="cyan", no_wrap=True)
    table.add_column("Title", style="bold")
    table.add_column("Category")
    table.add_column("Steps", justify="right")
    table.add_column("Time", justify="right")
    table.add_column("Done", justify="center")

    for t, done in entries:
        table.add_row(
            t.id,
            t.title,
            t.category.value,
            str(t.step_count),
            f"~{t.estimated_minutes} min",
            "[green]yes[/green]" if done else "",
        )

    console.print(table)
    console.print(f"\n[dim]Total: {len(entries)} tutorial(s)[/dim]")
    console.print("[dim]Use 'opcoder tutorial start <tutorial-id>' to begin[/dim]")


@tutorial.command("show", context_settings=CONTEXT_SETTINGS)
@click.argument("tutorial_id")
@click.pass_obj
def show_tutorial(config: TutorialConfig, tutorial_id: str) -> None:
    """Print every step of a tutorial without running it."""
    catalog = _load_catalog(config)
    try:
        t = catalog.get(tutorial_id)
    except TutorialNotFoundError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)

    console.print(f"[bold]{t.title}[/bold] - {t.description}")
    console.print(f"  Category: {t.category.value} | ~{t.estimated_minutes} min")
    if t.prerequisites:
        console.print(f"  Recommended first: {', '.join(t.prerequisites)}")
    for index in range(t.step_count):
        _render_step(TutorialSnapshot(tutorial=t, index=index))


@tutorial.command("start", context_settings=CONTEXT_SETTINGS)
@click.argument("tutorial_id")
@click.pass_obj
def start_tutorial(config: TutorialConfig, tutorial_id: str) -> None:
    """Run a tutorial interactively.

    Press Enter (or n) for the next step, b to go back, s to skip.
    Finishing the last step records the tutorial as completed.
    """
    _run_tutorial(_build_engine(config), tutorial_id)


@tutorial.command("progress", context_settings=CONTEXT_SETTINGS)
@click.pass_obj
def show_progress(config: TutorialConfig) -> None:
    """Show which tutorials have been completed."""
    engine = _build_engine(config)
    entries = engine.available_tutorials()

    table = Table(title=f"Tutorial Progress ({config.user_id})")
    table.add_column("Tutorial ID", style="cyan")
    table.add_column("Title")
    table.add_column("Status")

    for t, done in entries:
        status = "[green]completed[/green]" if done else "[dim]not started[/dim]"
        table.add_row(t.id, t.title, status)

    console.print(table)
    done_count = sum(1 for _, done in entries if done)
    console.print(f"\n[dim]{done_count} of {len(entries)} tutorial(s) completed[/dim]")


@tutorial.command("mark", context_settings=CONTEXT_SETTINGS)
@click.argument("tutorial_id")
@click.pass_obj
def mark_tutorial(config: TutorialConfig, tutorial_id: str) -> None:
    """Mark a tutorial as completed without running it."""
    engine = _build_engine(config)
    if tutorial_id not in engine.catalog:
        console.print(f"[red]Error: Tutorial '{tutorial_id}' not found[/red]")
        sys.exit(1)

    engine.mark_completed(tutorial_id)
    console.print(f"[green]Marked '{tutorial_id}' as completed.[/green]")


@tutorial.command("reset", context_settings=CONTEXT_SETTINGS)
@click.option(
    "--force",
    "-f",
    is_flag=True,
    help="Skip confirmation prompt",
)
@click.pass_obj
def reset_progress(config: TutorialConfig, force: bool) -> None:
    """Forget all completed tutorials for the current user."""
    engine = _build_engine(config)
    if not engine.completed:
        console.print("[green]No tutorial progress to reset.[/green]")
        return

    if not force:
        confirm = click.confirm(
            f"Reset {len(engine.completed)} completed tutorial(s)?", default=False
        )
        if not confirm:
            console.print("[yellow]Aborted.[/yellow]")
            return

    engine.reset_progress()
    console.print("[green]Tutorial progress reset.[/green]")


@tutorial.command("sequences", context_settings=CONTEXT_SETTINGS)
@click.pass_obj
def list_sequences(config: TutorialConfig) -> None:
    """Show the guided onboarding sequences and what to take next."""
    engine = _build_engine(config)
    names = engine.catalog.sequence_names()
    if not names:
        console.print("[yellow]No tutorial sequences defined[/yellow]")
        return

    for name in names:
        console.print(f"[bold]{name}[/bold]")
        for t in engine.catalog.sequence(name):
            mark = "[green]x[/green]" if engine.is_completed(t.id) else " "
            console.print(f"  [{mark}] [cyan]{t.id}[/cyan] - {t.title}")
        upcoming = engine.next_in_sequence(name)
        if upcoming is None:
            console.print("  [green]All done![/green]\n")
        else:
            console.print(f"  [dim]Next: opcoder tutorial start {upcoming.id}[/dim]\n")


@tutorial.command("onboard", context_settings=CONTEXT_SETTINGS)
@click.option(
    "--feature",
    "-f",
    "features",
    multiple=True,
    help="Feature to learn about (can be repeated)",
)
@click.pass_obj
def onboard(config: TutorialConfig, features: tuple[str, ...]) -> None:
    """Pick features to learn about and start with the best first tutorial.

    Without --feature, lists the features that can be selected.
    """
    engine = _build_engine(config)
    known = {feature.id: feature for feature in engine.catalog.features}

    if not features:
        console.print("[bold]What would you like to learn about?[/bold]\n")
        for feature in known.values():
            done = " [green](completed)[/green]" if engine.is_completed(feature.id) else ""
            console.print(f"  [cyan]{feature.id}[/cyan] - {feature.name}{done}")
            console.print(f"    [dim]{feature.description}[/dim]")
        console.print("\n[dim]Use 'opcoder tutorial onboard -f <feature>' to begin[/dim]")
        return

    unknown = [f for f in features if f not in known]
    if unknown:
        console.print(f"[red]Error: Unknown feature(s): {', '.join(unknown)}[/red]")
        sys.exit(1)

    chosen = choose_starting_feature(list(features))
    try:
        first = engine.catalog.tutorial_for_feature(chosen)
    except TutorialNotFoundError:
        console.print(f"[yellow]No tutorial is available for '{known[chosen].name}' yet.[/yellow]")
        return

    _run_tutorial(engine, first)


@main.command("help-topic", context_settings=CONTEXT_SETTINGS)
@click.argument("topic_id", required=False)
def help_topic(topic_id: str | None) -> None:
    """Page through a per-screen help topic.

    \b
    Examples:
      opcoder help-topic            # List help topics
      opcoder help-topic new-case   # Walk through new case help
    """
    topics = load_help_topics()

    if topic_id is None:
        console.print("[bold]Help Topics[/bold]\n")
        for topic in topics.values():
            console.print(f"  [cyan]{topic.id}[/cyan] - {topic.title}")
        return

    if topic_id not in topics:
        console.print(f"[red]Error: Help topic '{topic_id}' not found[/red]")
        sys.exit(1)

    walker = HelpWalker(topics[topic_id])
    walker.toggle()
    while walker.is_open:
        step = walker.step
        body = step.content
        if step.callout_text:
            body += f"\n\n[bold]{step.callout_text}[/bold]"
        if step.tips:
            body += "\n" + "\n".join(f"  - {tip}" for tip in step.tips)
        console.print(
            Panel(
                body,
                title=f"[bold]{step.title}[/bold]",
                subtitle=f"{walker.index + 1} / {len(walker.topic.steps)}",
            )
        )

        choice = click.prompt(
            "[n]ext, [b]ack, [q]uit",
            type=HELP_CHOICES,
            default="n",
            show_choices=False,
            show_default=False,
        ).lower()
        if choice == "n":
            walker.next()
        elif choice == "b":
            walker.previous()
        else:
            walker.toggle()


if __name__ == "__main__":
    main()
