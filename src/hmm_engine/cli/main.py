"""
Main CLI application for the HMM engine.

Runs the two-state discrete HMM demo and exposes decoding, scoring,
training and sampling on the configured model.
"""

import sys
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel

from ..config import load_config_file
from ..logger import configure_logging, set_log_level, enable_file_logging
from .display import console as display_console, format_sequence, print_parameters, print_training_stats
from .errors import handle_cli_error, ConfigurationError, EXIT_CODES
from .utils import parse_observations, build_model_from_config

console = Console()

app = typer.Typer(
    name="hmm-engine",
    help="Discrete Hidden Markov Models: Viterbi decoding, scoring and Baum-Welch training",
    add_completion=False,
    rich_markup_mode="rich",
    no_args_is_help=True
)

OBSERVATIONS_OPTION = typer.Option(
    None,
    "--observations",
    "-o",
    help="Comma separated observation symbols (default: from config)"
)


def _debug(ctx: typer.Context) -> bool:
    return ctx.meta.get("debug", False)


@app.command("demo")
def demo(
    ctx: typer.Context,
    observations: Optional[str] = OBSERVATIONS_OPTION,
    max_iterations: Optional[int] = typer.Option(
        None,
        "--max-iter",
        "-i",
        help="Maximum Baum-Welch iterations"
    ),
    tolerance: Optional[float] = typer.Option(
        None,
        "--tolerance",
        "-t",
        help="Convergence tolerance on the log-likelihood change"
    )
):
    """
    Build the configured HMM, decode and score the observations, then
    retrain it with Baum-Welch and show the updated parameters.
    """
    try:
        model = build_model_from_config()
        obs = parse_observations(observations)

        print_parameters(model, "Model parameters")

        console.print(f"\nObservation sequence: {format_sequence(obs)}")

        path = model.predict(obs)
        console.print(f"Predicted hidden states (Viterbi): {format_sequence(path)}")

        log_likelihood = model.log_likelihood(obs)
        console.print(f"Log-likelihood of observation sequence: {log_likelihood:.6f}")

        stats = model.train(
            [obs],
            max_iterations=max_iterations,
            tolerance=tolerance,
            verbose=ctx.meta.get("verbose", False)
        )
        print_training_stats(stats)
        print_parameters(model, "Parameters after Baum-Welch training")

    except Exception as e:
        handle_cli_error(e, "demo", _debug(ctx))


@app.command("decode")
def decode(ctx: typer.Context, observations: Optional[str] = OBSERVATIONS_OPTION):
    """Print the most likely hidden state path (Viterbi)."""
    try:
        model = build_model_from_config()
        obs = parse_observations(observations)

        path, log_probability = model.viterbi(obs)
        console.print(f"Predicted hidden states (Viterbi): {format_sequence(path)}")
        console.print(f"Log-probability of best path: {log_probability:.6f}")

    except Exception as e:
        handle_cli_error(e, "decode", _debug(ctx))


@app.command("score")
def score(ctx: typer.Context, observations: Optional[str] = OBSERVATIONS_OPTION):
    """Print the log-likelihood of the observations (forward algorithm)."""
    try:
        model = build_model_from_config()
        obs = parse_observations(observations)

        console.print(f"Log-likelihood of observation sequence: {model.log_likelihood(obs):.6f}")

    except Exception as e:
        handle_cli_error(e, "score", _debug(ctx))


@app.command("train")
def train(
    ctx: typer.Context,
    observations: Optional[str] = OBSERVATIONS_OPTION,
    max_iterations: Optional[int] = typer.Option(
        None,
        "--max-iter",
        "-i",
        help="Maximum Baum-Welch iterations"
    ),
    tolerance: Optional[float] = typer.Option(
        None,
        "--tolerance",
        "-t",
        help="Convergence tolerance on the log-likelihood change"
    ),
    n_jobs: Optional[int] = typer.Option(
        None,
        "--jobs",
        "-j",
        help="Parallel workers for the E-step"
    )
):
    """Retrain the configured model on the observations with Baum-Welch."""
    try:
        model = build_model_from_config()
        obs = parse_observations(observations)

        stats = model.train(
            [obs],
            max_iterations=max_iterations,
            tolerance=tolerance,
            n_jobs=n_jobs,
            verbose=ctx.meta.get("verbose", False)
        )
        print_training_stats(stats)
        print_parameters(model, "Parameters after Baum-Welch training")

    except Exception as e:
        handle_cli_error(e, "train", _debug(ctx))


@app.command("generate")
def generate(
    ctx: typer.Context,
    length: int = typer.Option(
        10,
        "--length",
        "-n",
        help="Number of time steps to sample"
    ),
    seed: Optional[int] = typer.Option(
        None,
        "--seed",
        "-s",
        help="Random seed for reproducible sampling"
    )
):
    """Sample an observation sequence and its hidden states from the model."""
    try:
        model = build_model_from_config()
        observations, states = model.generate(length, random_state=seed)

        console.print(f"Observations: {format_sequence(observations)}")
        console.print(f"Hidden states: {format_sequence(states)}")

    except Exception as e:
        handle_cli_error(e, "generate", _debug(ctx))


@app.command("version")
def show_version():
    """Show version information."""
    from .. import __version__

    console.print(Panel.fit(
        f"[bold]hmm-engine Version {__version__}[/bold]\n"
        f"Discrete Hidden Markov Models\n"
        f"Python {sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}",
        border_style="blue"
    ))


@app.callback()
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose logging and debug information"
    ),
    quiet: bool = typer.Option(
        False,
        "--quiet",
        "-q",
        help="Suppress all output except errors"
    ),
    debug: bool = typer.Option(
        False,
        "--debug",
        help="Enable debug mode with detailed error traces"
    ),
    config_file: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to JSON configuration file",
        exists=True,
        file_okay=True,
        dir_okay=False
    ),
    log_file: Optional[Path] = typer.Option(
        None,
        "--log-file",
        help="Also write log messages to this file"
    )
):
    """
    hmm-engine: discrete Hidden Markov Models

    \b
    Quick Start:
    1. Run the demo:       hmm-engine demo
    2. Decode a sequence:  hmm-engine decode -o 0,0,1,0,1,1
    3. Score a sequence:   hmm-engine score -o 0,0,1,0,1,1
    4. Retrain the model:  hmm-engine train -o 0,0,1,0,1,1 --max-iter 50
    """
    ctx.meta["verbose"] = verbose
    ctx.meta["quiet"] = quiet
    ctx.meta["debug"] = debug

    console.quiet = quiet
    display_console.quiet = quiet

    if config_file:
        try:
            load_config_file(str(config_file))
        except ValueError as e:
            handle_cli_error(
                ConfigurationError(str(e), suggestions=["Check that the file is valid JSON"]),
                "configuration loading",
                debug,
                help_command=""
            )
        configure_logging()

    # Command-line flags take precedence over the logging config section
    if quiet:
        set_log_level('ERROR')
    elif verbose or debug:
        set_log_level('DEBUG')

    if log_file:
        enable_file_logging(str(log_file))


def cli_main():
    """Main entry point for CLI."""
    try:
        app()
    except KeyboardInterrupt:
        console.print("\n[yellow]Operation cancelled by user[/yellow]")
        sys.exit(EXIT_CODES["general_error"])


if __name__ == "__main__":
    cli_main()
