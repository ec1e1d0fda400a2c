"""
sbconv - Sketch / Block Converter Command-Line Interface
========================================================

Converts Arduino sketches to block exchange XML and back, and runs the
validation and comparison tools from the command line.

Usage Examples
--------------
Sketch to blocks:
    $ sbconv blocks blink.ino -o blink.xml

Blocks to sketch:
    $ sbconv code blink.xml -o blink.ino --no-timestamp

Check a sketch:
    $ sbconv check blink.ino

Compare the grammar and heuristic parsers:
    $ sbconv diff blink.ino

Regenerate a sketch through blocks:
    $ sbconv roundtrip blink.ino

Verbose mode:
    $ sbconv -v blocks blink.ino
"""

from dataclasses import replace
from pathlib import Path
from typing import Optional
import logging
import sys

import click

from sketchblocks import __version__
from sketchblocks.config import SyncOptions
from sketchblocks.sync import SketchSync
from sketchblocks.arduino.ast import ASTPrinter
from sketchblocks.arduino.blockxml import workspace_to_xml
from sketchblocks.arduino.errors import format_report
from sketchblocks.arduino.heuristic import code_equals, parse_source_heuristic
from sketchblocks.arduino.lexer import tokenize
from sketchblocks.arduino.parser import parse_source
from sketchblocks.arduino.validator import validate_code
from sketchblocks.cli.errors import ExitCode, handle_cli_exception

logger = logging.getLogger(__name__)


# =============================================================================
# CLI Context
# =============================================================================

class Context:
    """
    Shared context for CLI commands.

    Stores verbosity and the sync options read from the environment.
    """

    def __init__(self) -> None:
        self.verbose: bool = False
        self.options: SyncOptions = SyncOptions()

    def setup_logging(self) -> None:
        """Configure logging based on verbosity."""
        level = logging.DEBUG if self.verbose else logging.INFO
        logging.basicConfig(
            level=level,
            format="%(levelname)s: %(message)s" if self.verbose else "%(message)s",
        )

    def sync_for(self, input_file: Path, **changes) -> SketchSync:
        """A SketchSync whose diagnostics name the given file."""
        return SketchSync(replace(self.options, filename=str(input_file), **changes))


pass_context = click.make_pass_decorator(Context, ensure=True)


def write_output(text: str, output: Optional[Path]) -> None:
    """Write to the output file, or stdout when none was given."""
    if output is None:
        click.echo(text, nl=not text.endswith("\n"))
    else:
        output.write_text(text, encoding="utf-8")
        click.echo(f"Wrote {output}", err=True)


# =============================================================================
# Main CLI Group
# =============================================================================

@click.group()
@click.option(
    "-v", "--verbose",
    is_flag=True,
    help="Enable verbose output",
)
@click.version_option(version=__version__, prog_name="sbconv")
@pass_context
def main(ctx: Context, verbose: bool) -> None:
    """
    Convert Arduino sketches to visual blocks and back.

    Sketches are read as C source text (.ino); blocks are exchanged as
    block editor XML.

    Options can also be set through SKETCHBLOCKS_INDENT,
    SKETCHBLOCKS_TIMESTAMP, SKETCHBLOCKS_HEURISTIC_FALLBACK and
    SKETCHBLOCKS_MAX_RECOVERY.
    """
    ctx.verbose = verbose
    ctx.options = SyncOptions.from_env()
    ctx.setup_logging()


# =============================================================================
# Blocks Command
# =============================================================================

@main.command()
@click.argument(
    "input_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)
@click.option(
    "-o", "--output",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Output XML file (default: stdout)",
)
@click.option(
    "--heuristic",
    is_flag=True,
    help="Use the pattern-based parser instead of the grammar parser",
)
@click.option(
    "--ast",
    is_flag=True,
    help="Print the AST and exit (for debugging)",
)
@click.option(
    "--tokens",
    is_flag=True,
    help="Print the token stream and exit (for debugging)",
)
@pass_context
def blocks(
    ctx: Context,
    input_file: Path,
    output: Optional[Path],
    heuristic: bool,
    ast: bool,
    tokens: bool,
) -> None:
    """
    Convert a sketch to block XML.

    INPUT_FILE is the sketch source (.ino) to convert.

    \b
    Examples:
        sbconv blocks blink.ino              # XML to stdout
        sbconv blocks blink.ino -o out.xml   # Write to a file
        sbconv blocks --ast blink.ino        # Show the parsed AST
    """
    try:
        source = input_file.read_text(encoding="utf-8")

        if tokens:
            for token in tokenize(source, str(input_file), keep_comments=False):
                click.echo(repr(token))
            return

        if ast:
            program = parse_source(source, str(input_file), ctx.options.max_recovery_attempts)
            click.echo(ASTPrinter().print(program))
            return

        if heuristic:
            write_output(workspace_to_xml(parse_source_heuristic(source)), output)
            return

        result = ctx.sync_for(input_file).sync_code_to_blocks(source)
        for error in result.parse_errors:
            click.echo(error, err=True)
        for warning in result.warnings:
            click.echo(f"warning: {warning}", err=True)

        if not result.success:
            click.echo(f"Error: {result.error}", err=True)
            sys.exit(ExitCode.CONVERSION_ERROR)

        write_output(result.xml, output)
        if ctx.verbose:
            click.echo(f"Converted {input_file}: {result.workspace.block_count()} blocks", err=True)

    except Exception as e:
        handle_cli_exception(e, ctx.verbose, "Conversion")


# =============================================================================
# Code Command
# =============================================================================

@main.command()
@click.argument(
    "input_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)
@click.option(
    "-o", "--output",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Output sketch file (default: stdout)",
)
@click.option(
    "--no-timestamp",
    is_flag=True,
    help="Omit the 'Generated at' header line",
)
@pass_context
def code(ctx: Context, input_file: Path, output: Optional[Path], no_timestamp: bool) -> None:
    """
    Generate a sketch from block XML.

    INPUT_FILE is the block XML to convert. Validation findings are
    printed to stderr; they never stop generation.
    """
    try:
        xml = input_file.read_text(encoding="utf-8")
        changes = {"include_timestamp": False} if no_timestamp else {}
        result = ctx.sync_for(input_file, **changes).sync_blocks_to_code(xml)

        if not result.success:
            click.echo(result.error, err=True)
            sys.exit(ExitCode.CONVERSION_ERROR)

        for diagnostic in result.diagnostics:
            click.echo(str(diagnostic), err=True)
        if result.validation is not None:
            for diagnostic in result.validation.diagnostics:
                click.echo(str(diagnostic), err=True)

        write_output(result.code, output)

    except Exception as e:
        handle_cli_exception(e, ctx.verbose, "Generation")


# =============================================================================
# Check Command
# =============================================================================

@main.command()
@click.argument(
    "input_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)
@pass_context
def check(ctx: Context, input_file: Path) -> None:
    """
    Validate a sketch.

    Exits with status 1 when any error is found; warnings alone pass.
    """
    try:
        result = validate_code(input_file.read_text(encoding="utf-8"), str(input_file))
        click.echo(format_report(result.diagnostics))

        if not result.is_valid:
            sys.exit(ExitCode.CONVERSION_ERROR)

    except Exception as e:
        handle_cli_exception(e, ctx.verbose)


# =============================================================================
# Diff Command
# =============================================================================

@main.command()
@click.argument(
    "input_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)
@pass_context
def diff(ctx: Context, input_file: Path) -> None:
    """
    Compare the grammar parser with the heuristic parser.

    Prints one line per position where the top-level block types of
    setup() or loop() differ.
    """
    try:
        diagnostics = ctx.sync_for(input_file).differential_check(input_file.read_text(encoding="utf-8"))
        if not diagnostics:
            click.echo("No differences between parsers")
            return
        for diagnostic in diagnostics:
            click.echo(str(diagnostic))
        click.echo(f"{len(diagnostics)} differences")

    except Exception as e:
        handle_cli_exception(e, ctx.verbose)


# =============================================================================
# Roundtrip Command
# =============================================================================

@main.command()
@click.argument(
    "input_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)
@pass_context
def roundtrip(ctx: Context, input_file: Path) -> None:
    """
    Regenerate a sketch through blocks.

    Prints the regenerated sketch and reports on stderr whether it equals
    the input once comments and whitespace are ignored.
    """
    try:
        source = input_file.read_text(encoding="utf-8")
        sync = ctx.sync_for(input_file, include_header=False, validate_output=False)
        regenerated = sync.round_trip(source)
        click.echo(regenerated, nl=False)

        if code_equals(source, regenerated):
            click.echo("Round trip: equal", err=True)
        else:
            validation = sync.compare_sources(source, regenerated)
            click.echo(
                f"Round trip: differs (similarity {validation.similarity:.1f}%)", err=True
            )
            for issue in validation.issues:
                click.echo(f"  {issue}", err=True)

    except Exception as e:
        handle_cli_exception(e, ctx.verbose)


# =============================================================================
# Entry Point
# =============================================================================

if __name__ == "__main__":
    main()
