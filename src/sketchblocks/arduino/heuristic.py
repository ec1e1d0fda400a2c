"""
Heuristic Sketch Parser
=======================

A regex and brace-counting reader for sketch source. It does not build an
AST; it cuts setup() and loop() bodies into statements and matches each one
against a fixed battery of patterns.

Role
----
- Fallback when the grammar-based parser produces nothing usable
  (SyncOptions.heuristic_fallback).
- Differential tester: sync.SketchSync.differential_check compares the
  block sequences of both paths.

Limitations
-----------
- Only the two entry-point bodies are read; globals are ignored.
- Expressions are split at the first operator found outside parentheses,
  which is not precedence-correct for mixed operators.
- Non-simple for loops are reduced to a controls_for block with numeric
  FROM/TO/BY.

Procedure
---------
1. Extract `void setup() {` / `void loop() {` bodies by brace counting.
2. Strip comments and squeeze whitespace, keeping line breaks.
3. Split into top-level statements in source order: at ';' outside
   parentheses and braces, at a '}' that returns to depth 0, and at line
   breaks at depth 0. Strings are respected.
4. Recognise if/for/while chunks structurally and everything else through
   the statement patterns.
"""

from typing import Optional
import logging
import re

from sketchblocks.arduino.blocks import BlockDescriptor, Workspace
from sketchblocks.arduino.sanitize import sanitize_number, sanitize_variable_name

logger = logging.getLogger(__name__)


# =============================================================================
# Patterns
# =============================================================================

_TYPE = r"(?:unsigned\s+)?(?:int|float|char|boolean|String|long|byte)"

DEFINE_PATTERN = re.compile(rf"^({_TYPE})\s+([A-Za-z_]\w*)\s*=(?!=)\s*(.+)$", re.S)
DECLARE_PATTERN = re.compile(rf"^({_TYPE})\s+([A-Za-z_]\w*)$")
ASSIGN_PATTERN = re.compile(r"^([A-Za-z_]\w*)\s*=(?!=)\s*(.+)$", re.S)
DIGITAL_WRITE_PATTERN = re.compile(r"^digitalWrite\s*\(\s*([^,]+?)\s*,\s*(\w+)\s*\)$")
DIGITAL_READ_PATTERN = re.compile(r"^digitalRead\s*\(\s*([^()]+?)\s*\)$")
PIN_MODE_PATTERN = re.compile(r"^pinMode\s*\(\s*([^,]+?)\s*,\s*(INPUT_PULLUP|INPUT|OUTPUT)\s*\)$")
ANALOG_WRITE_PATTERN = re.compile(r"^analogWrite\s*\(\s*([^,]+?)\s*,\s*(.+?)\s*\)$")
ANALOG_READ_PATTERN = re.compile(r"^analogRead\s*\(\s*([^()]+?)\s*\)$")
DELAY_PATTERN = re.compile(r"^(delay|delayMicroseconds)\s*\(\s*(.+?)\s*\)$")
SIMPLE_REPEAT_PATTERN = re.compile(
    rf"^(?:{_TYPE}\s+)?([A-Za-z_]\w*)\s*=\s*0\s*;\s*\1\s*<\s*(\w+)\s*;\s*\1\s*\+\+$"
)
FOR_INIT_PATTERN = re.compile(rf"^(?:{_TYPE}\s+)?([A-Za-z_]\w*)\s*=\s*(.+)$")
FOR_LIMIT_PATTERN = re.compile(r"^\w+\s*<=?\s*(.+)$")
FOR_STEP_PATTERN = re.compile(r"^\w+\s*\+=\s*(.+)$")

NUMBER_PATTERN = re.compile(r"^[0-9]+(?:\.[0-9]+)?$")
INTEGER_PATTERN = re.compile(r"^[0-9]+$")
IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z_]\w*$")
ANALOG_PIN_PATTERN = re.compile(r"^A[0-9]+$")
CALL_PATTERN = re.compile(r"^[A-Za-z_][\w.]*\s*\(.*\)$", re.S)
CONTROL_HEADER = re.compile(r"^(?:if|for|while)\s*\(")

ARDUINO_CONSTANTS = ("HIGH", "LOW", "INPUT", "OUTPUT", "INPUT_PULLUP")

ARITHMETIC_OPS = {"+": "ADD", "-": "MINUS", "*": "MULTIPLY", "/": "DIVIDE", "%": "MODULO"}
COMPARE_OPS = {"==": "EQ", "!=": "NEQ", "<=": "LTE", ">=": "GTE", "<": "LT", ">": "GT"}
LOGIC_OPS = {"&&": "AND", "||": "OR"}

# Nested blocks, conditions and values beyond this depth are kept as raw text
MAX_NESTING_DEPTH = 64


# =============================================================================
# Text Helpers
# =============================================================================

def strip_comments(code: str) -> str:
    code = re.sub(r"//[^\n]*", "", code)
    return re.sub(r"/\*.*?\*/", "", code, flags=re.S)


def normalize_code(code: str) -> str:
    """
    Strip comments and collapse all whitespace to single spaces.

    Idempotent: normalize_code(normalize_code(x)) == normalize_code(x).
    """
    return re.sub(r"\s+", " ", strip_comments(code)).strip()


def code_equals(first: str, second: str) -> bool:
    """Compare two sketches ignoring comments and whitespace layout."""
    return normalize_code(first) == normalize_code(second)


def is_valid_arduino_code(code: str) -> bool:
    """True when both void setup() and void loop() appear."""
    return "void setup()" in code and "void loop()" in code


def clean_code(code: str) -> str:
    """Strip comments and squeeze whitespace, keeping line structure."""
    code = strip_comments(code)
    code = re.sub(r"[ \t]*\n\s*", "\n", code)
    code = re.sub(r"[ \t]{2,}", " ", code)
    return code.strip()


def find_closing(text: str, start: int, opener: str = "{", closer: str = "}") -> int:
    """
    Index of the bracket closing the one at text[start], or -1.

    Quoted strings are skipped.
    """
    depth = 0
    quote = None
    index = start
    while index < len(text):
        char = text[index]
        if quote:
            if char == "\\":
                index += 1
            elif char == quote:
                quote = None
        elif char in "\"'":
            quote = char
        elif char == opener:
            depth += 1
        elif char == closer:
            depth -= 1
            if depth == 0:
                return index
        index += 1
    return -1


def extract_function_body(code: str, name: str) -> Optional[str]:
    """Return the text between the braces of `void name() { ... }`."""
    match = re.search(rf"void\s+{name}\s*\(\s*\)\s*\{{", code)
    if not match:
        return None
    end = find_closing(code, match.end() - 1)
    if end == -1:
        return None
    return code[match.end():end]


def split_statements(code: str) -> list[str]:
    """
    Split cleaned code into top-level statements in source order.

    A statement ends at ';' outside parentheses and braces, at the '}' that
    returns to depth 0, or at a line break at depth 0. An `else` chunk is
    glued back onto the `if` it belongs to, and a control header on its
    own line onto the block that follows.
    """
    chunks: list[str] = []
    current: list[str] = []
    braces = 0
    parens = 0
    quote = None

    def flush():
        text = "".join(current).strip()
        current.clear()
        if text:
            chunks.append(text)

    index = 0
    while index < len(code):
        char = code[index]
        current.append(char)
        if quote:
            if char == "\\" and index + 1 < len(code):
                index += 1
                current.append(code[index])
            elif char == quote:
                quote = None
        elif char in "\"'":
            quote = char
        elif char == "(":
            parens += 1
        elif char == ")":
            parens = max(0, parens - 1)
        elif char == "{":
            braces += 1
        elif char == "}":
            braces -= 1
            if braces <= 0:
                braces = 0
                flush()
        elif char == ";" and braces == 0 and parens == 0:
            flush()
        elif char == "\n" and braces == 0 and parens == 0:
            flush()
        index += 1
    flush()

    merged: list[str] = []
    for chunk in chunks:
        if merged and _continues(merged[-1], chunk):
            merged[-1] = f"{merged[-1]} {chunk}"
        else:
            merged.append(chunk)
    return merged


def _continues(previous: str, chunk: str) -> bool:
    if re.match(r"^else\b", chunk) and re.match(r"^(?:if|else)\b", previous):
        return True
    # Header whose body is on the following line(s)
    if CONTROL_HEADER.match(previous) and not previous.endswith((";", "}")):
        return True
    return previous.startswith("else") and not previous.endswith((";", "}"))


def split_binary(expr: str, operators: dict[str, str]) -> Optional[tuple[str, str, str]]:
    """
    Split at the first operator outside parentheses and quotes.

    Returns (left, operator, right) or None. Two-character operators are
    tried before single characters at each position; '++', '--' and
    compound assignments are never split.
    """
    depth = 0
    quote = None
    ordered = sorted(operators, key=len, reverse=True)
    index = 0
    while index < len(expr):
        char = expr[index]
        if quote:
            if char == "\\":
                index += 1
            elif char == quote:
                quote = None
        elif char in "\"'":
            quote = char
        elif char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
        elif depth == 0:
            for op in ordered:
                if not expr.startswith(op, index):
                    continue
                after = expr[index + len(op):index + len(op) + 1]
                before = expr[index - 1:index] if index else ""
                if len(op) == 1 and (after in (op, "=") or before == op):
                    break
                left = expr[:index].strip()
                right = expr[index + len(op):].strip()
                if left and right and not left.endswith(tuple("+-*/%<>=!&|")):
                    return left, op, right
                break
        index += 1
    return None


# =============================================================================
# Heuristic Parser
# =============================================================================

class HeuristicParser:
    """
    Pattern-based reader producing block workspaces.

    Usage:
        workspace = HeuristicParser().parse(code)
    """

    def __init__(self):
        self._depth = 0

    def parse(self, code: str) -> Workspace:
        setup_body = extract_function_body(code, "setup")
        loop_body = extract_function_body(code, "loop")
        if setup_body is None:
            logger.debug("No setup() body found")
        if loop_body is None:
            logger.debug("No loop() body found")

        workspace = Workspace(
            setup_blocks=self.parse_block(setup_body or ""),
            loop_blocks=self.parse_block(loop_body or ""),
            global_variables=[],
        )
        logger.debug(
            f"Heuristic parse: {len(workspace.setup_blocks)} setup, "
            f"{len(workspace.loop_blocks)} loop blocks"
        )
        return workspace

    def parse_block(self, text: str) -> list[BlockDescriptor]:
        """Parse a statement sequence (the text between two braces)."""
        if self._depth >= MAX_NESTING_DEPTH:
            text = clean_code(text)
            return [self._raw(text)] if text else []

        self._depth += 1
        try:
            blocks = []
            for chunk in split_statements(clean_code(text)):
                block = self.parse_chunk(chunk)
                if block is not None:
                    blocks.append(block)
            return blocks
        finally:
            self._depth -= 1

    def parse_chunk(self, chunk: str) -> Optional[BlockDescriptor]:
        if re.match(r"^if\s*\(", chunk):
            return self._parse_if(chunk)
        if re.match(r"^for\s*\(", chunk):
            return self._parse_for(chunk)
        if re.match(r"^while\s*\(", chunk):
            return self._parse_while(chunk)
        return self.parse_statement(chunk)

    # =========================================================================
    # Structured Statements
    # =========================================================================

    def _header_and_rest(self, chunk: str) -> Optional[tuple[str, str]]:
        """Split `keyword (header) rest` into its header and rest."""
        start = chunk.find("(")
        end = find_closing(chunk, start, "(", ")")
        if end == -1:
            return None
        return chunk[start + 1:end].strip(), chunk[end + 1:].strip()

    def _body_and_rest(self, text: str) -> tuple[str, str]:
        """Split a braced or single-statement body from what follows it."""
        if text.startswith("{"):
            end = find_closing(text, 0)
            if end == -1:
                return text[1:], ""
            return text[1:end], text[end + 1:].strip()
        parts = split_statements(text)
        if not parts:
            return "", ""
        return parts[0], " ".join(parts[1:])

    def _parse_if(self, chunk: str) -> BlockDescriptor:
        inputs = {}
        branch = 0
        text = chunk
        while True:
            parts = self._header_and_rest(text)
            if parts is None:
                return self._raw(chunk)
            condition, rest = parts
            body, after = self._body_and_rest(rest)
            inputs[f"IF{branch}"] = self.parse_condition(condition)
            inputs[f"DO{branch}"] = self.parse_block(body)

            if not re.match(r"^else\b", after):
                break
            else_text = after[4:].strip()
            if re.match(r"^if\s*\(", else_text):
                branch += 1
                text = else_text
                continue
            else_body, _ = self._body_and_rest(else_text)
            inputs["ELSE"] = self.parse_block(else_body)
            break

        return BlockDescriptor("controls_if", inputs=inputs)

    def _parse_for(self, chunk: str) -> BlockDescriptor:
        parts = self._header_and_rest(chunk)
        if parts is None:
            return self._raw(chunk)
        header, rest = parts
        body, _ = self._body_and_rest(rest)
        statements = self.parse_block(body)

        simple = SIMPLE_REPEAT_PATTERN.match(header)
        if simple:
            times = sanitize_number(simple.group(2), "10", 0)
            return BlockDescriptor(
                "controls_repeat_ext",
                inputs={
                    "TIMES": BlockDescriptor("math_number", fields={"NUM": times}),
                    "DO": statements,
                },
            )

        sections = [s.strip() for s in header.split(";")]
        init = FOR_INIT_PATTERN.match(sections[0]) if len(sections) == 3 else None
        if init is None:
            return BlockDescriptor(
                "arduino_raw_block",
                fields={"CODE": f"for ({header})"},
                inputs={"STATEMENTS": statements},
            )

        limit = FOR_LIMIT_PATTERN.match(sections[1])
        step = FOR_STEP_PATTERN.match(sections[2])
        return BlockDescriptor(
            "controls_for",
            fields={"VAR": sanitize_variable_name(init.group(1), "i")},
            inputs={
                "FROM": _number(sanitize_number(init.group(2), "1")),
                "TO": _number(sanitize_number(limit.group(1), "10") if limit else "10"),
                "BY": _number(sanitize_number(step.group(1), "1") if step else "1"),
                "DO": statements,
            },
        )

    def _parse_while(self, chunk: str) -> BlockDescriptor:
        parts = self._header_and_rest(chunk)
        if parts is None:
            return self._raw(chunk)
        condition, rest = parts
        body, _ = self._body_and_rest(rest)
        return BlockDescriptor(
            "controls_whileUntil",
            fields={"MODE": "WHILE"},
            inputs={
                "BOOL": self.parse_condition(condition),
                "DO": self.parse_block(body),
            },
        )

    # =========================================================================
    # Simple Statements
    # =========================================================================

    def parse_statement(self, statement: str) -> Optional[BlockDescriptor]:
        """Match one statement against the pattern battery, in order."""
        text = statement.strip()
        if text.endswith(";"):
            text = text[:-1].strip()
        if not text:
            return None

        match = DEFINE_PATTERN.match(text)
        if match:
            return BlockDescriptor(
                "variables_define",
                fields={
                    "TYPE": " ".join(match.group(1).split()),
                    "VAR": sanitize_variable_name(match.group(2)),
                },
                inputs={"VALUE": self.parse_value(match.group(3))},
            )

        match = DECLARE_PATTERN.match(text)
        if match:
            return BlockDescriptor(
                "variables_declare",
                fields={
                    "TYPE": " ".join(match.group(1).split()),
                    "VAR": sanitize_variable_name(match.group(2)),
                },
            )

        match = ASSIGN_PATTERN.match(text)
        if match:
            return BlockDescriptor(
                "variables_set",
                fields={"VAR": sanitize_variable_name(match.group(1))},
                inputs={"VALUE": self.parse_value(match.group(2))},
            )

        match = DIGITAL_WRITE_PATTERN.match(text)
        if match:
            state = {"1": "HIGH", "0": "LOW"}.get(match.group(2), match.group(2))
            if state in ("HIGH", "LOW"):
                return BlockDescriptor(
                    "arduino_digitalwrite",
                    fields={"STATE": state},
                    inputs={"PIN": self.parse_value(match.group(1))},
                )
            return self._raw(text)

        if DIGITAL_READ_PATTERN.match(text):
            return self._raw(text)

        match = PIN_MODE_PATTERN.match(text)
        if match:
            return BlockDescriptor(
                "arduino_pinmode",
                fields={"MODE": match.group(2)},
                inputs={"PIN": self.parse_value(match.group(1))},
            )

        match = ANALOG_WRITE_PATTERN.match(text)
        if match:
            return BlockDescriptor(
                "arduino_analogwrite",
                inputs={
                    "PIN": self.parse_value(match.group(1)),
                    "VALUE": self.parse_value(match.group(2)),
                },
            )

        if ANALOG_READ_PATTERN.match(text):
            return self._raw(text)

        match = DELAY_PATTERN.match(text)
        if match and INTEGER_PATTERN.match(match.group(2)):
            return BlockDescriptor(f"arduino_{match.group(1)}", fields={"TIME": match.group(2)})

        # Serial calls, other calls and anything unrecognised
        return self._raw(text)

    def _raw(self, text: str) -> BlockDescriptor:
        return BlockDescriptor("arduino_raw_statement", fields={"CODE": text.strip()})

    # =========================================================================
    # Values and Conditions
    # =========================================================================

    def parse_condition(self, condition: str) -> BlockDescriptor:
        """
        Parse an if/while condition: logical operators first, then
        comparisons, then the general value matcher.
        """
        text = condition.strip()
        if self._depth >= MAX_NESTING_DEPTH:
            return _raw_expression(text)

        self._depth += 1
        try:
            split = split_binary(text, LOGIC_OPS)
            if split:
                left, op, right = split
                return BlockDescriptor(
                    "logic_operation",
                    fields={"OP": LOGIC_OPS[op]},
                    inputs={"A": self.parse_condition(left), "B": self.parse_condition(right)},
                )
            split = split_binary(text, COMPARE_OPS)
            if split:
                left, op, right = split
                return BlockDescriptor(
                    "logic_compare",
                    fields={"OP": COMPARE_OPS[op]},
                    inputs={"A": self.parse_value(left), "B": self.parse_value(right)},
                )
            return self.parse_value(text)
        finally:
            self._depth -= 1

    def parse_value(self, expr: str) -> BlockDescriptor:
        """Parse a value expression with the ordered ad hoc matcher."""
        text = expr.strip()
        if self._depth >= MAX_NESTING_DEPTH:
            return _raw_expression(text)

        self._depth += 1
        try:
            return self._match_value(text)
        finally:
            self._depth -= 1

    def _match_value(self, text: str) -> BlockDescriptor:
        if NUMBER_PATTERN.match(text):
            return _number(text)
        if len(text) >= 2 and text[0] == text[-1] == "\"":
            return BlockDescriptor("text", fields={"TEXT": text[1:-1]})
        if text in ("true", "false"):
            return BlockDescriptor("logic_boolean", fields={"BOOL": text.upper()})
        if text in ARDUINO_CONSTANTS or ANALOG_PIN_PATTERN.match(text):
            return _raw_expression(text)

        match = DIGITAL_READ_PATTERN.match(text)
        if match:
            return BlockDescriptor(
                "arduino_digitalread", inputs={"PIN": self.parse_value(match.group(1))}
            )
        match = ANALOG_READ_PATTERN.match(text)
        if match:
            return BlockDescriptor(
                "arduino_analogread", inputs={"PIN": self.parse_value(match.group(1))}
            )

        for table, block_type in (
            (ARITHMETIC_OPS, "math_arithmetic"),
            (COMPARE_OPS, "logic_compare"),
            (LOGIC_OPS, "logic_operation"),
        ):
            split = split_binary(text, table)
            if split:
                left, op, right = split
                return BlockDescriptor(
                    block_type,
                    fields={"OP": table[op]},
                    inputs={"A": self.parse_value(left), "B": self.parse_value(right)},
                )

        if text.startswith("!") and not text.startswith("!="):
            return BlockDescriptor("logic_negate", inputs={"BOOL": self.parse_value(text[1:])})
        if IDENTIFIER_PATTERN.match(text):
            return BlockDescriptor("variables_get", fields={"VAR": sanitize_variable_name(text, "var")})
        if CALL_PATTERN.match(text):
            return _raw_expression(text)
        if text.startswith("(") and find_closing(text, 0, "(", ")") == len(text) - 1:
            return self.parse_value(text[1:-1])
        return _raw_expression(text)


def _number(text: str) -> BlockDescriptor:
    return BlockDescriptor("math_number", fields={"NUM": text})


def _raw_expression(text: str) -> BlockDescriptor:
    return BlockDescriptor("arduino_raw_expression", fields={"CODE": text})


# =============================================================================
# Convenience Functions
# =============================================================================

def parse_source_heuristic(code: str) -> Workspace:
    """Parse sketch text with the pattern-based reader."""
    return HeuristicParser().parse(code)
