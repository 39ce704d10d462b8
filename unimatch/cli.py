"""
Interactive terminal front end.

Runs the slot-filling dialogue with numbered quick replies, then quick or
full matching, and prints the matches as a rich table.

Usage:
    unimatch [--quick] [--verify] [--store-dir DIR] [--config PATH]
"""

import argparse
import asyncio
import sys
from typing import Optional, Sequence

from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table

from unimatch.coordinator import UniMatchCoordinator
from unimatch.models.university import MatchResult
from unimatch.utils.errors import UniMatchError

console = Console()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="unimatch", description="Find university matches through a short conversation."
    )
    parser.add_argument("--quick", action="store_true", help="knowledge-only matching")
    parser.add_argument("--verify", action="store_true", help="verify matches with web search")
    parser.add_argument("--store-dir", default="data/conversations", help="conversation store directory")
    parser.add_argument("--config", default=None, help="path to system_params.json")
    return parser


def ask(question: str, options: list[str]) -> str:
    """Prompt for one answer; a number picks the matching quick reply."""
    console.print(f"\n[bold cyan]{question}[/bold cyan]")
    for number, option in enumerate(options, start=1):
        console.print(f"  [dim]{number}.[/dim] {option}")

    while True:
        answer = Prompt.ask("[green]>[/green]").strip()
        if answer.isdigit() and options and 1 <= int(answer) <= len(options):
            return options[int(answer) - 1]
        if answer:
            return answer


def render_result(result: MatchResult) -> None:
    if result.matches:
        table = Table(title="University Matches", show_lines=True)
        table.add_column("#", justify="right")
        table.add_column("University")
        table.add_column("Program")
        table.add_column("Tuition")
        table.add_column("Category")
        table.add_column("Chance", justify="right")
        table.add_column("PR", justify="right")

        for match in result.matches:
            tuition = f"{match.tuition.currency} {match.tuition.amount:,.0f}"
            if match.tuition.verified:
                tuition += " [green](verified)[/green]"
            table.add_row(
                str(match.rank),
                f"{match.university}\n[dim]{match.city}, {match.country}[/dim]",
                match.program,
                tuition,
                match.category,
                f"{match.admission_chance}%",
                f"{match.pr_pathway.strength}%",
            )
        console.print(table)

    for insight in result.insights:
        console.print(f"- {insight}")
    if result.cached:
        console.print("[dim](cached result)[/dim]")
    console.print(Panel(result.disclaimer, style="yellow"))


async def run(args: argparse.Namespace) -> int:
    coordinator = UniMatchCoordinator.from_config(
        config_path=args.config, store_dir=args.store_dir
    )
    if args.verify:
        coordinator.set_verification_enabled(True)

    try:
        started = coordinator.start_conversation()
        message, options = started.message, started.options
        while True:
            answer = ask(message, options)
            turn = coordinator.send_message(started.conversation_id, answer)
            if turn.is_complete:
                console.print(f"\n[bold]{turn.assistant_message}[/bold]")
                break
            message, options = turn.assistant_message, turn.options

        with console.status("Finding matches..."):
            if args.quick:
                conversation = coordinator.get_conversation(started.conversation_id)
                result = await coordinator.find_matches_quick(
                    conversation["profileAccumulator"]
                )
            else:
                result = await coordinator.match_conversation(started.conversation_id)

        render_result(result)
        return 0

    except UniMatchError as e:
        console.print(f"[red][X] {e.message}[/red]")
        return 1

    finally:
        await coordinator.aclose()


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        console.print("\n[yellow]Cancelled[/yellow]")
        return 130


if __name__ == "__main__":
    sys.exit(main())
