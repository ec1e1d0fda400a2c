"""
sketchblocks Error Hierarchy
============================

This module defines the root of the exception hierarchy for sketchblocks.
All exceptions raised by the toolchain inherit from SketchBlocksError, so
callers can catch every library error with a single except clause.

Exception Hierarchy
-------------------
SketchBlocksError (base)
└── SketchError (sketch toolchain, see sketchblocks.arduino.errors)
    ├── SketchSyntaxError - tokens that do not fit the grammar
    ├── ConversionError - AST that cannot be mapped to blocks
    ├── CodeGenError - block trees that cannot be turned into code
    └── BlockXMLError - malformed block exchange documents

Error messages follow this format:
    filename:line:column: error: description
        source_line_text
        ^ (pointer to error location)
    hint: suggestion for fixing (when available)
"""

from dataclasses import dataclass


# =============================================================================
# Base Exception Class
# =============================================================================

class SketchBlocksError(Exception):
    """
    Base exception for all sketchblocks errors.

        try:
            sync.sync_blocks_to_code(xml)
        except SketchBlocksError as e:
            print(f"Error: {e}")
    """
    pass


# =============================================================================
# Source Location Tracking
# =============================================================================

@dataclass(frozen=True)
class SourceLocation:
    """
    A position in sketch source text.

    Attributes:
        filename: Name of the source file (or "<sketch>" for string input)
        line: Line number (1-indexed)
        column: Column number (1-indexed)
    """
    filename: str
    line: int
    column: int

    def __str__(self) -> str:
        """Format as 'filename:line:column' for error messages."""
        return f"{self.filename}:{self.line}:{self.column}"
