"""
Unified CLI Error Handling
==========================

Provides consistent error handling and exit codes across the CLI tools.
"""

import sys
import traceback
from enum import IntEnum
from typing import NoReturn

import click

from ferrite.errors import FerriteError
from ferrite.minirs.errors import MiniRSError


class ExitCode(IntEnum):
    """Standard exit codes for CLI tools."""
    SUCCESS = 0
    BUILD_ERROR = 1      # Lexical, syntax or code generation error
    INVALID_ARGS = 2     # Invalid arguments or unreadable input
    INTERNAL_ERROR = 3   # Unexpected internal error


def handle_cli_exception(error: Exception, verbose: bool = False) -> NoReturn:
    """
    Report ``error`` on stderr and exit with the matching exit code.

    Args:
        error: The exception that was raised
        verbose: If True, print the traceback of internal errors

    Raises:
        SystemExit: Always
    """
    if isinstance(error, MiniRSError):
        # Compiler errors carry their own "error:" prefix and source context
        click.echo(str(error), err=True)
        sys.exit(ExitCode.BUILD_ERROR)

    elif isinstance(error, FerriteError):
        click.echo(f"Error: {error}", err=True)
        sys.exit(ExitCode.BUILD_ERROR)

    elif isinstance(error, (FileNotFoundError, PermissionError, IsADirectoryError)):
        click.echo(f"Error: {error}", err=True)
        sys.exit(ExitCode.INVALID_ARGS)

    elif isinstance(error, UnicodeDecodeError):
        click.echo(f"Error: source is not valid UTF-8: {error}", err=True)
        sys.exit(ExitCode.INVALID_ARGS)

    else:
        click.echo(f"Internal error: {error}", err=True)
        if verbose:
            traceback.print_exc()
        sys.exit(ExitCode.INTERNAL_ERROR)
