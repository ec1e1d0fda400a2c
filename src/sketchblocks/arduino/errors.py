"""
Sketch Toolchain Errors and Diagnostics
=======================================

Exceptions and structured diagnostics for the Arduino sketch toolchain.

Exception Hierarchy
-------------------
SketchError (base for all toolchain errors)
├── SketchSyntaxError - parser syntax errors
│   ├── UnexpectedTokenError - token that cannot start the construct
│   ├── MissingTokenError - required token not present
│   └── NestingTooDeepError - nesting beyond the parser's depth limit
├── ConversionError - AST → block conversion failures
├── CodeGenError - block → code generation failures
│   └── BlockStructureError - malformed block descriptor
└── BlockXMLError - malformed block exchange XML

Syntax errors never escape the parser: they are caught at the nearest
recovery point and recorded as Diagnostic entries. CodeGenError and
BlockXMLError signal caller mistakes and propagate.

Diagnostics
-----------
A Diagnostic is the value form of a finding:

    sketch.ino:4:9: warning: line may be missing a semicolon

Parser, converter, generator and validator all return their findings as
lists of Diagnostic objects so callers can inspect them.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, List

from sketchblocks.errors import SketchBlocksError, SourceLocation


# =============================================================================
# Base Sketch Exception
# =============================================================================

class SketchError(SketchBlocksError):
    """
    Base exception for all sketch toolchain errors.

    Attributes:
        message: The error description
        location: Where in the source the error occurred
        hint: A suggestion for fixing the error
        source_line: The actual source text at the error location
    """

    def __init__(
        self,
        message: str,
        location: Optional[SourceLocation] = None,
        hint: Optional[str] = None,
        source_line: Optional[str] = None,
    ):
        self.message = message
        self.location = location
        self.hint = hint
        self.source_line = source_line
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """
        Format the error message with location, source context, and hint.

            blink.ino:5:12: error: expected ';'
                digitalWrite(13, HIGH)
                                      ^
            hint: found '}'
        """
        parts = []

        if self.location:
            parts.append(f"{self.location}: error: {self.message}")
        else:
            parts.append(f"error: {self.message}")

        if self.source_line is not None and self.location is not None:
            parts.append(f"    {self.source_line}")
            if self.location.column > 0:
                padding = " " * (4 + self.location.column - 1)
                parts.append(f"{padding}^")

        if self.hint:
            parts.append(f"hint: {self.hint}")

        return "\n".join(parts)


# =============================================================================
# Syntax Errors (Parser)
# =============================================================================

class SketchSyntaxError(SketchError):
    """
    Syntax error in sketch source.

    Raised by the parser when a construct does not match the grammar.
    Always caught by the parser's recovery logic.
    """
    pass


class UnexpectedTokenError(SketchSyntaxError):
    """
    Token that cannot start or continue the construct being parsed.
    """

    def __init__(
        self,
        found: str,
        expected: Optional[str] = None,
        location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
    ):
        self.found = found
        self.expected = expected

        hint = f"expected {expected}" if expected else None
        super().__init__(
            f"unexpected token '{found}'",
            location=location,
            hint=hint,
            source_line=source_line,
        )


class MissingTokenError(SketchSyntaxError):
    """
    Required token is missing.

    Carries the expected token kind, the token actually found and its line.
    """

    def __init__(
        self,
        expected: str,
        found: Optional[str] = None,
        location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
    ):
        self.expected = expected
        self.found = found
        hint = f"found {found}" if found else None
        super().__init__(
            f"expected {expected}",
            location=location,
            hint=hint,
            source_line=source_line,
        )


class NestingTooDeepError(SketchSyntaxError):
    """Expression or statement nesting beyond the parser's depth limit."""

    def __init__(
        self,
        limit: int,
        location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
    ):
        self.limit = limit
        super().__init__(
            f"nesting deeper than {limit} levels",
            location=location,
            hint="split the expression or statement into smaller parts",
            source_line=source_line,
        )


# =============================================================================
# Conversion and Generation Errors
# =============================================================================

class ConversionError(SketchError):
    """
    AST node that the block converter cannot handle at all.

    Unrecognized calls and operators are not errors (they become raw
    blocks); this is reserved for nodes outside the AST vocabulary.
    """
    pass


class CodeGenError(SketchError):
    """Error while generating sketch source from blocks."""
    pass


class BlockStructureError(CodeGenError):
    """
    Block descriptor with an impossible shape.

    Examples:
        - descriptor without a type
        - a statement list where a single value block is required
    """

    def __init__(self, message: str, block_type: Optional[str] = None):
        self.block_type = block_type
        hint = f"while generating '{block_type}'" if block_type else None
        super().__init__(message, hint=hint)


class BlockXMLError(SketchError):
    """Block exchange XML that cannot be read back into a workspace."""
    pass


# =============================================================================
# Structured Diagnostics
# =============================================================================

class Severity(Enum):
    """Severity of a diagnostic."""
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


@dataclass(frozen=True)
class Diagnostic:
    """
    A single finding reported by a toolchain stage.

    Attributes:
        severity: ERROR, WARNING or INFO
        message: Human readable description
        location: Source position, when the finding has one
        stage: Which component produced it (parser, converter, ...)
    """
    severity: Severity
    message: str
    location: Optional[SourceLocation] = None
    stage: str = ""

    @property
    def is_error(self) -> bool:
        return self.severity is Severity.ERROR

    def __str__(self) -> str:
        prefix = f"{self.location}: " if self.location else ""
        return f"{prefix}{self.severity.value}: {self.message}"


class DiagnosticCollector:
    """
    Collects diagnostics for batch reporting.

    The parser keeps going after a syntax error; each recovered error is
    recorded here so all problems are reported together.

    Example:
        collector = DiagnosticCollector(stage="parser")

        for decl in declarations:
            try:
                parse(decl)
            except SketchSyntaxError as e:
                collector.add(e)

        if collector.has_errors():
            print(format_report(collector.diagnostics))
    """

    def __init__(self, stage: str = ""):
        self.diagnostics: List[Diagnostic] = []
        self.stage = stage

    def add(self, error: SketchError) -> None:
        """Record an exception as an ERROR diagnostic."""
        self.diagnostics.append(
            Diagnostic(Severity.ERROR, error.message, error.location, self.stage)
        )

    def add_error(self, message: str, location: Optional[SourceLocation] = None) -> None:
        self.diagnostics.append(Diagnostic(Severity.ERROR, message, location, self.stage))

    def add_warning(self, message: str, location: Optional[SourceLocation] = None) -> None:
        self.diagnostics.append(Diagnostic(Severity.WARNING, message, location, self.stage))

    def add_info(self, message: str, location: Optional[SourceLocation] = None) -> None:
        self.diagnostics.append(Diagnostic(Severity.INFO, message, location, self.stage))

    @property
    def errors(self) -> List[Diagnostic]:
        return [d for d in self.diagnostics if d.severity is Severity.ERROR]

    @property
    def warnings(self) -> List[Diagnostic]:
        return [d for d in self.diagnostics if d.severity is Severity.WARNING]

    def has_errors(self) -> bool:
        """Return True if any errors have been collected."""
        return any(d.is_error for d in self.diagnostics)

    def clear(self) -> None:
        """Clear all collected diagnostics."""
        self.diagnostics.clear()


# =============================================================================
# Convenience Functions
# =============================================================================

def format_report(diagnostics: List[Diagnostic]) -> str:
    """
    Format diagnostics one per line, followed by an error/warning count.

        blink.ino:3:1: error: expected ';' after expression
        1 error, 0 warnings
    """
    lines = [str(d) for d in diagnostics]

    error_count = sum(1 for d in diagnostics if d.severity is Severity.ERROR)
    warning_count = sum(1 for d in diagnostics if d.severity is Severity.WARNING)
    error_word = "error" if error_count == 1 else "errors"
    warning_word = "warning" if warning_count == 1 else "warnings"
    lines.append(f"{error_count} {error_word}, {warning_count} {warning_word}")

    return "\n".join(lines)
