"""
Rich rendering of model parameters and results.
"""

from typing import Dict, Any, Sequence

from rich.console import Console
from rich.table import Table

from ..hmm import DiscreteHMM

console = Console()


def format_sequence(values: Sequence[int]) -> str:
    return " ".join(str(int(v)) for v in values)


def print_parameters(model: DiscreteHMM, title: str) -> None:
    """Print initial, transition and emission probabilities as tables."""
    console.print(f"\n[bold]{title}[/bold]")

    initial_table = Table(title="Initial state probabilities")
    for state in range(model.n_states):
        initial_table.add_column(f"State {state}", justify="right")
    initial_table.add_row(*(f"{p:.4f}" for p in model.initial))
    console.print(initial_table)

    transition = model.transition
    transition_table = Table(title="State transition matrix (row: to, column: from)")
    transition_table.add_column("To \\ From", style="cyan")
    for state in range(model.n_states):
        transition_table.add_column(f"{state}", justify="right")
    for to_state in range(model.n_states):
        transition_table.add_row(
            f"{to_state}", *(f"{p:.4f}" for p in transition[to_state])
        )
    console.print(transition_table)

    emission_table = Table(title="Emission probabilities for each state")
    emission_table.add_column("State", style="cyan")
    for symbol in range(model.n_symbols):
        emission_table.add_column(f"Symbol {symbol}", justify="right")
    for state, distribution in enumerate(model.emission):
        emission_table.add_row(
            f"{state}", *(f"{p:.4f}" for p in distribution.probabilities)
        )
    console.print(emission_table)


def print_training_stats(stats: Dict[str, Any]) -> None:
    """Print a summary of a Baum-Welch run."""
    table = Table(title="Baum-Welch training")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")

    table.add_row("Converged", "yes" if stats['converged'] else "no")
    table.add_row("Iterations", str(stats['iterations']))
    table.add_row("Initial log-likelihood", f"{stats['initial_log_likelihood']:.6f}")
    table.add_row("Final log-likelihood", f"{stats['final_log_likelihood']:.6f}")

    console.print(table)
