"""
Error handling for CLI commands.

Defines CLI-specific exceptions and maps engine errors to exit codes and
suggestions for the user.
"""

import traceback
from typing import Optional
import logging

import typer
from rich.console import Console

from ..exceptions import (
    HMMEngineError,
    InvalidParametersError,
    EmptySequenceError,
    NumericInstabilityError
)

console = Console()
logger = logging.getLogger(__name__)


# Exit codes for different error types
EXIT_CODES = {
    "general_error": 1,
    "invalid_usage": 2,
    "invalid_parameters": 10,
    "empty_sequence": 11,
    "numeric_error": 12,
    "config_error": 13
}


class HMMEngineCLIError(Exception):
    """Base exception for CLI-specific errors."""

    def __init__(self, message: str, exit_code: int = 1, suggestions: Optional[list] = None):
        self.message = message
        self.exit_code = exit_code
        self.suggestions = suggestions or []
        super().__init__(message)


class InputError(HMMEngineCLIError):
    """Malformed command-line input."""

    def __init__(self, message: str, suggestions: Optional[list] = None):
        super().__init__(message, EXIT_CODES["invalid_usage"], suggestions)


class ConfigurationError(HMMEngineCLIError):
    """Configuration errors."""

    def __init__(self, message: str, suggestions: Optional[list] = None):
        super().__init__(message, EXIT_CODES["config_error"], suggestions)


def engine_error_details(error: HMMEngineError):
    """Exit code and suggestions for an engine error."""
    if isinstance(error, EmptySequenceError):
        return EXIT_CODES["empty_sequence"], [
            "Pass at least one symbol: --observations 0,1,0"
        ]
    if isinstance(error, InvalidParametersError):
        return EXIT_CODES["invalid_parameters"], [
            "Check that initial sums to 1, each transition column sums to 1 "
            "and each emission row sums to 1",
            "Observation symbols must lie in [0, n_symbols)"
        ]
    if isinstance(error, NumericInstabilityError):
        return EXIT_CODES["numeric_error"], [
            "The observations may be impossible under the model "
            "(a zero emission or transition probability)"
        ]
    return EXIT_CODES["general_error"], []


def format_error_message(error: Exception, operation: str, suggestions: list,
                         debug: bool = False) -> str:
    """Format error message with context and suggestions."""
    error_type = type(error).__name__

    message_parts = [
        f"[red]Error during {operation}:[/red]",
        f"[red]{error_type}: {error}[/red]"
    ]

    if suggestions:
        message_parts.append("")
        message_parts.append("[yellow]Suggestions:[/yellow]")
        for suggestion in suggestions:
            message_parts.append(f"  • {suggestion}")

    if debug:
        message_parts.append("")
        message_parts.append("[dim]Debug information:[/dim]")
        message_parts.append(f"[dim]{traceback.format_exc()}[/dim]")

    return "\n".join(message_parts)


def handle_cli_error(error: Exception, operation: str, debug: bool = False,
                     help_command: Optional[str] = None) -> None:
    """Display an error with rich formatting and exit with a matching code."""
    if help_command is None:
        help_command = operation.split()[0]

    if isinstance(error, HMMEngineCLIError):
        exit_code, suggestions = error.exit_code, error.suggestions
    elif isinstance(error, HMMEngineError):
        exit_code, suggestions = engine_error_details(error)
    else:
        exit_code, suggestions = EXIT_CODES["general_error"], []

    console.print(format_error_message(error, operation, suggestions, debug))
    help_target = f"hmm-engine {help_command}" if help_command else "hmm-engine"
    console.print(f"\n[dim]For more help, run: {help_target} --help[/dim]")

    logger.error(f"CLI error in {operation}: {error}", exc_info=debug)

    raise typer.Exit(exit_code)
