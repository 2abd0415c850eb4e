"""Operator confirmation gate between interpretation and generation."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from rich.console import Console

    from rigsmith.intent.model import Intent


def render_intent(intent: Intent, console: Console) -> None:
    """Print the Intent as a panel plus a specification table."""
    from rich.panel import Panel
    from rich.table import Table

    console.print(Panel(
        f"[bold]{intent.summary}[/bold]\n\n"
        f"Environments: [cyan]{', '.join(intent.environments)}[/cyan]\n"
        f"Components:   [cyan]{', '.join(intent.components)}[/cyan]\n"
        f"Artifacts:    [cyan]{intent.family}[/cyan]",
        title="Understanding",
        border_style="blue",
    ))

    table = Table(title="Specifications", show_header=False, box=None, padding=(0, 1))
    table.add_column("component", style="cyan")
    table.add_column("specification")
    for component in intent.components:
        table.add_row(component, intent.specifications.get(component, ""))
    console.print(table)

    if intent.recommendations:
        console.print("\n[bold]Recommendations:[/bold]")
        for rec in intent.recommendations:
            console.print(f"  [dim]-[/dim] {rec}")
    console.print()


def confirm_intent(intent: Intent, console: Console, *, assume_yes: bool = False) -> bool:
    """Show the Intent and ask whether to proceed.

    Returns ``True`` without asking when *assume_yes* is set.
    """
    from rich.prompt import Confirm

    render_intent(intent, console)
    if assume_yes:
        return True
    return Confirm.ask(
        "Proceed with this configuration?",
        default=True,
        console=console,
    )
