"""
CLI Error Handling
==================

Maps the failures of a conversion run onto messages and exit codes for
the sbconv tool.

Exit Codes
----------
0  conversion succeeded (warnings may have been printed)
1  the sketch or block XML could not be converted, or validation failed
2  bad arguments, or an input file that cannot be read as text
3  unexpected internal error
"""

import sys
import traceback
from enum import IntEnum
from typing import NoReturn

import click

from sketchblocks.arduino.errors import (
    BlockStructureError,
    BlockXMLError,
    SketchError,
)
from sketchblocks.errors import SketchBlocksError


class ExitCode(IntEnum):
    """Exit codes shared by all sbconv commands."""
    SUCCESS = 0
    CONVERSION_ERROR = 1  # Unconvertible sketch or XML, validation errors
    INVALID_INPUT = 2     # Invalid arguments, unreadable or binary input
    INTERNAL_ERROR = 3    # Unexpected internal error


def classify_error(error: Exception, stage: str | None = None) -> tuple[str, ExitCode]:
    """
    Describe an exception raised while converting one input file.

    Args:
        error: The exception that was raised
        stage: Optional stage name used as a prefix ("Conversion", "Generation")

    Returns:
        (message, exit code)
    """
    prefix = f"{stage} error: " if stage else "Error: "

    if isinstance(error, BlockXMLError):
        return f"{prefix}{error.message}", ExitCode.CONVERSION_ERROR

    if isinstance(error, BlockStructureError):
        where = f" in block '{error.block_type}'" if error.block_type else ""
        return f"{prefix}malformed block program{where}: {error.message}", ExitCode.CONVERSION_ERROR

    if isinstance(error, SketchError):
        # Already formatted with location and "error:" prefix
        return str(error), ExitCode.CONVERSION_ERROR

    if isinstance(error, SketchBlocksError):
        return f"{prefix}{error}", ExitCode.CONVERSION_ERROR

    if isinstance(error, RecursionError):
        return f"{prefix}input is nested too deeply to convert", ExitCode.CONVERSION_ERROR

    if isinstance(error, UnicodeDecodeError):
        return (
            f"Error: input is not UTF-8 text (byte 0x{error.object[error.start]:02x} "
            f"at offset {error.start})",
            ExitCode.INVALID_INPUT,
        )

    if isinstance(error, (click.BadParameter, ValueError, OSError)):
        return f"Error: {error}", ExitCode.INVALID_INPUT

    return f"Internal error: {error}", ExitCode.INTERNAL_ERROR


def handle_cli_exception(
    error: Exception,
    verbose: bool = False,
    stage: str | None = None
) -> NoReturn:
    """
    Report an exception on stderr and exit with its exit code.

    In verbose mode internal errors also print their traceback.

    Raises:
        SystemExit: Always
    """
    message, exit_code = classify_error(error, stage)
    click.echo(message, err=True)
    if verbose and exit_code is ExitCode.INTERNAL_ERROR:
        traceback.print_exc()
    sys.exit(exit_code)
