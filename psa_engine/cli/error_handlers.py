"""Error handling for CLI commands.

Engine errors are mapped to distinct exit codes by their ``code`` and
printed with their recovery hint.
"""

import sys
import traceback
from typing import Dict

import click
from pydantic import ValidationError

from psa_engine.cli.utils.formatters import format_error, format_warning
from psa_engine.exceptions import PsaEngineError

# Exit code 3 is reserved for "project cannot close"
EXIT_CLOSURE_BLOCKED = 3

EXIT_CODES: Dict[str, int] = {
    "INVALID_TRANSITION": 10,
    "NOT_SUBMITTED": 11,
    "NOT_EDITABLE": 12,
    "SELF_APPROVAL_FORBIDDEN": 13,
    "MISSING_REASON": 14,
    "ALREADY_INVOICED": 15,
    "ALREADY_FINALIZED": 16,
    "INVALID_STATE": 17,
    "NOT_FOUND": 18,
}

EXIT_ENGINE_ERROR = 19
EXIT_VALIDATION_ERROR = 2
EXIT_CANCELLED = 130
EXIT_UNEXPECTED = 255


def handle_cli_error(error: BaseException, debug: bool = False) -> int:
    """
    Print a user-friendly message for ``error`` and pick an exit code.

    Args:
        error: The exception that occurred
        debug: Whether to show full stack trace

    Returns:
        Exit code for the error type
    """
    if isinstance(error, PsaEngineError):
        click.echo(format_error(f"{error.code}: {error.message}"))
        if error.recovery_hint:
            click.echo(format_warning(f"Hint: {error.recovery_hint}"))
        if debug and error.context:
            click.echo(f"Context: {error.context}")
        return EXIT_CODES.get(error.code, EXIT_ENGINE_ERROR)

    if isinstance(error, ValidationError):
        click.echo(format_error(f"Invalid data: {error.error_count()} error(s)"))
        for detail in error.errors():
            location = ".".join(str(part) for part in detail["loc"])
            click.echo(f"  {location}: {detail['msg']}")
        return EXIT_VALIDATION_ERROR

    if isinstance(error, click.Abort):
        click.echo(format_warning("\nOperation cancelled by user"))
        return EXIT_CANCELLED

    click.echo(format_error(f"Unexpected Error: {type(error).__name__}"))
    click.echo(str(error))
    if debug:
        click.echo("\nFull stack trace:")
        click.echo(
            "".join(
                traceback.format_exception(type(error), error, error.__traceback__)
            )
        )
    else:
        click.echo(format_warning("\nRun with --debug flag for full stack trace"))
    return EXIT_UNEXPECTED


def with_error_handling(debug: bool = False):
    """
    Context manager adding standardized error handling to CLI commands.

    Exits already requested by the command pass through untouched.

    Args:
        debug: Whether to show full stack traces

    Example:
        @click.command()
        @click.option('--debug', is_flag=True)
        def my_command(debug):
            with with_error_handling(debug):
                # Command implementation
                pass
    """

    class ErrorHandler:
        """Context manager for error handling."""

        def __init__(self, show_debug: bool):
            self.show_debug = show_debug

        def __enter__(self):
            return self

        def __exit__(self, exc_type, exc_val, exc_tb):
            if exc_val is None or isinstance(
                exc_val, (SystemExit, click.exceptions.Exit)
            ):
                return False
            sys.exit(handle_cli_error(exc_val, self.show_debug))

    return ErrorHandler(debug)
