"""
sketchblocks - Arduino Sketch / Visual Block Toolchain
======================================================

Converts Arduino C sketches into visual block programs and generates
sketch source back from blocks.

Main Components
---------------
- **arduino**: the toolchain stages
    lexer, parser, AST, block converter, code generator, validator,
    heuristic parser and block XML exchange

- **sync**: the facade combining the stages in both directions

- **cli**: the sbconv command-line tool

Quick Start
-----------
Sketch to blocks:
    >>> from sketchblocks.sync import sync_code_to_blocks
    >>> result = sync_code_to_blocks(open("blink.ino").read())
    >>> print(result.xml)

Blocks to sketch:
    >>> from sketchblocks.sync import sync_blocks_to_code
    >>> print(sync_blocks_to_code(result.xml).code)
"""

__version__ = "1.0.0"
__author__ = "sketchblocks contributors"

# =============================================================================
# Public API Exports
# =============================================================================

from sketchblocks.errors import SketchBlocksError, SourceLocation
from sketchblocks.config import SyncOptions
from sketchblocks.sync import (
    SketchSync,
    SyncResult,
    BlocksToCodeResult,
    SyncValidation,
    sync_code_to_blocks,
    sync_blocks_to_code,
    round_trip,
)

__all__ = [
    # Version info
    "__version__",
    "__author__",
    # Errors
    "SketchBlocksError",
    "SourceLocation",
    # Sync facade
    "SyncOptions",
    "SketchSync",
    "SyncResult",
    "BlocksToCodeResult",
    "SyncValidation",
    "sync_code_to_blocks",
    "sync_blocks_to_code",
    "round_trip",
]
