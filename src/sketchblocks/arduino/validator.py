"""
Advisory Sketch Validator
=========================

Lightweight textual checks on generated (or hand written) sketch source.
Validation never modifies the code; only errors make a sketch invalid.

Checks
------
| Check                                   | Severity |
|-----------------------------------------|----------|
| brace / parenthesis balance             | error    |
| void setup() and void loop() present    | error    |
| digitalWrite / pinMode argument count   | error    |
| unknown digitalWrite state / pin mode   | warning  |
| numeric pin outside 0-53                | warning  |
| numeric analogWrite value outside 0-255 | warning  |
| line probably missing a semicolon       | warning  |
| duplicate declaration in one scope      | warning  |

Comments and string literal contents are masked out before any check, so
a brace inside "text" or // a comment does not count.
"""

from dataclasses import dataclass, field
from typing import Optional
import logging
import re

from sketchblocks.errors import SourceLocation
from sketchblocks.arduino.errors import Diagnostic, DiagnosticCollector

logger = logging.getLogger(__name__)

MAX_PIN = 53
MAX_PWM = 255

DIGITAL_STATES = frozenset({"HIGH", "LOW", "0", "1", "true", "false"})
PIN_MODES = frozenset({"INPUT", "OUTPUT", "INPUT_PULLUP"})

_CALL = re.compile(r"\b(digitalWrite|pinMode|digitalRead|analogWrite)\s*\(")
_DECLARATION = re.compile(
    r"\b(?:unsigned\s+)?(?:int|float|double|boolean|bool|char|String|long|byte)\s+"
    r"([A-Za-z_]\w*)\s*(?=[=;,)])"
)
_INTEGER = re.compile(r"^[0-9]+$")
_CONSTANT_LIKE = re.compile(r"^[A-Z_][A-Z0-9_]*$")
_CONTINUATION_ENDINGS = (";", "{", "}", ",", "(", "&&", "||", "+", "-", "*", "/", "=", ":")
_CONTROL_HEADER = re.compile(r"^(?:if|else|for|while|do)\b")


@dataclass
class ValidationResult:
    """
    Outcome of validate_code().

    Attributes:
        is_valid: False when any error was found
        warnings: Warning messages
        errors: Error messages
        diagnostics: The same findings with severity and location
    """
    is_valid: bool
    warnings: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    diagnostics: list[Diagnostic] = field(default_factory=list)


@dataclass(frozen=True)
class CodeStats:
    """Line, function and brace-block counts of a sketch."""
    lines: int
    functions: int
    blocks: int


# =============================================================================
# Masking
# =============================================================================

def mask_code(code: str) -> str:
    """
    Blank out comments and string literal contents.

    The result has the same length and line structure as the input;
    masked characters become spaces and string delimiters are kept.
    """
    out = []
    i = 0
    length = len(code)
    while i < length:
        char = code[i]
        pair = code[i:i + 2]
        if pair == "//":
            while i < length and code[i] != "\n":
                out.append(" ")
                i += 1
        elif pair == "/*":
            end = code.find("*/", i + 2)
            end = length if end == -1 else end + 2
            out.extend("\n" if c == "\n" else " " for c in code[i:end])
            i = end
        elif char in "\"'":
            out.append(char)
            i += 1
            while i < length and code[i] != char and code[i] != "\n":
                if code[i] == "\\" and i + 1 < length:
                    out.append(" ")
                    i += 1
                out.append(" ")
                i += 1
            if i < length and code[i] == char:
                out.append(char)
                i += 1
        else:
            out.append(char)
            i += 1
    return "".join(out)


# =============================================================================
# Validator
# =============================================================================

class SketchValidator:
    """
    Runs the advisory checks over one sketch.

    Usage:
        result = SketchValidator(code).validate()
    """

    def __init__(self, code: str, filename: str = "<sketch>"):
        self.code = code
        self.filename = filename
        self.masked = mask_code(code)
        self._collector = DiagnosticCollector(stage="validator")

    def validate(self) -> ValidationResult:
        self._collector.clear()
        self._check_balance()
        self._check_entry_points()
        self._check_calls()
        self._check_semicolons()
        self._check_duplicates()

        errors = [d.message for d in self._collector.errors]
        warnings = [d.message for d in self._collector.warnings]
        logger.debug(f"Validation: {len(errors)} errors, {len(warnings)} warnings")
        return ValidationResult(
            is_valid=not errors,
            warnings=warnings,
            errors=errors,
            diagnostics=list(self._collector.diagnostics),
        )

    def _location(self, offset: int) -> SourceLocation:
        line = self.code.count("\n", 0, offset) + 1
        column = offset - (self.code.rfind("\n", 0, offset) + 1) + 1
        return SourceLocation(self.filename, line, column)

    # =========================================================================
    # Individual Checks
    # =========================================================================

    def _check_balance(self) -> None:
        for opener, closer, name in (("{", "}", "braces"), ("(", ")", "parentheses")):
            depth = 0
            for offset, char in enumerate(self.masked):
                if char == opener:
                    depth += 1
                elif char == closer:
                    depth -= 1
                    if depth < 0:
                        self._collector.add_error(f"unmatched '{closer}'", self._location(offset))
                        depth = 0
            if depth > 0:
                self._collector.add_error(f"unbalanced {name}: {depth} '{opener}' not closed")

    def _check_entry_points(self) -> None:
        for name in ("setup", "loop"):
            if not re.search(rf"\bvoid\s+{name}\s*\(\s*(?:void\s*)?\)", self.masked):
                self._collector.add_error(f"missing void {name}() function")

    def _check_calls(self) -> None:
        for match in _CALL.finditer(self.masked):
            name = match.group(1)
            args = _split_arguments(self.masked, match.end())
            if args is None:
                continue
            location = self._location(match.start())

            if name in ("digitalWrite", "pinMode") and len(args) != 2:
                self._collector.add_error(
                    f"{name} expects 2 arguments, got {len(args)}", location
                )
                continue

            if args and _INTEGER.match(args[0]) and int(args[0]) > MAX_PIN:
                self._collector.add_warning(
                    f"{name}: pin {args[0]} is outside 0-{MAX_PIN}", location
                )

            if name == "digitalWrite":
                state = args[1]
                if state not in DIGITAL_STATES and _CONSTANT_LIKE.match(state):
                    self._collector.add_warning(f"digitalWrite: unknown state '{state}'", location)
            elif name == "pinMode":
                if args[1] not in PIN_MODES:
                    self._collector.add_warning(f"pinMode: unknown mode '{args[1]}'", location)
            elif name == "analogWrite" and len(args) == 2:
                if _INTEGER.match(args[1]) and int(args[1]) > MAX_PWM:
                    self._collector.add_warning(
                        f"analogWrite: value {args[1]} is outside 0-{MAX_PWM}", location
                    )

    def _check_semicolons(self) -> None:
        for number, line in enumerate(self.masked.split("\n"), start=1):
            text = line.strip()
            if not text or text.startswith("#"):
                continue
            if "{" in text or "}" in text:
                continue
            if text.endswith(_CONTINUATION_ENDINGS) or _CONTROL_HEADER.match(text):
                continue
            self._collector.add_warning(
                f"line {number} may be missing a semicolon",
                SourceLocation(self.filename, number, 1),
            )

    def _check_duplicates(self) -> None:
        scopes, paren_depths = _scope_map(self.masked)
        seen: dict[tuple[int, str], int] = {}
        for match in _DECLARATION.finditer(self.masked):
            start = match.start()
            # Parameters and for-loop headers have their own scope
            if paren_depths[start] > 0:
                continue
            name = match.group(1)
            key = (scopes[start], name)
            if key in seen:
                self._collector.add_warning(
                    f"'{name}' is declared more than once in the same scope",
                    self._location(start),
                )
            else:
                seen[key] = start


def _split_arguments(masked: str, start: int) -> Optional[list[str]]:
    """Split the arguments of a call whose '(' ends just before start."""
    depth = 1
    args = []
    current = []
    for char in masked[start:]:
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
            if depth == 0:
                tail = "".join(current).strip()
                if tail or args:
                    args.append(tail)
                return args
        elif char == "," and depth == 1:
            args.append("".join(current).strip())
            current = []
            continue
        current.append(char)
    return None


def _scope_map(masked: str) -> tuple[list[int], list[int]]:
    """
    Scope id and parenthesis depth per character.

    Scope 0 is the global scope, n the n-th top-level brace block
    (function body); nested blocks share their function's id.
    """
    scopes = []
    parens = []
    depth = 0
    paren_depth = 0
    block = 0
    for char in masked:
        if char == "{":
            if depth == 0:
                block += 1
            depth += 1
        elif char == "(":
            paren_depth += 1
        elif char == ")":
            paren_depth = max(0, paren_depth - 1)
        scopes.append(block if depth > 0 else 0)
        parens.append(paren_depth)
        if char == "}":
            depth = max(0, depth - 1)
    return scopes, parens


# =============================================================================
# Convenience Functions
# =============================================================================

def validate_code(code: str, filename: str = "<sketch>") -> ValidationResult:
    """Run every advisory check over a sketch."""
    return SketchValidator(code, filename).validate()


def get_code_stats(code: str) -> CodeStats:
    """Count lines, void functions and '{' blocks."""
    return CodeStats(
        lines=len(code.split("\n")),
        functions=len(re.findall(r"void\s+\w+\s*\(", code)),
        blocks=code.count("{"),
    )
