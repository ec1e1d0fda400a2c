"""
Block to Sketch Code Generator
==============================

This module turns a block program back into Arduino sketch source.

Generation Strategy
-------------------
The generator walks blocks through the capability interface in
sketchblocks.arduino.blocks (type, fields, input targets, next block), so
it works on converter output and on any editor workspace offering the
same calls.

1. Global roots are generated first: declarations become global variable
   lines, raw blocks become function text.
2. The arduino_setup and arduino_loop roots are generated as statement
   chains, indented one level.
3. Side effects (includes, implied variable declarations) are collected in
   a GenerationContext created per call and passed down explicitly.
4. The program is assembled as:

       header comment
       #include lines
       variables
       functions
       void setup() { ... }
       void loop() { ... }

Expression Precedence
---------------------
Every value template reports the binding strength of its outermost
operator. Operands are parenthesised only when they bind looser than the
operator that consumes them (or equally, on the right of a
left-associative operator):

| Level | Operators            |
|-------|----------------------|
| 10    | literals, names      |
| 9     | calls, x++           |
| 8     | ! -x                 |
| 7     | * / %                |
| 6     | + -                  |
| 5     | < <= > >=            |
| 4     | == !=                |
| 3     | &&                   |
| 2     | ||                   |
| 0     | unknown raw text     |

Field Sanitizing
----------------
Numeric fields go through sanitize_number with per-template defaults and
ranges (pins 0-53, PWM 0-255, delays >= 0). Pins given as expressions
other than plain numbers are emitted verbatim. Variable names go through
sanitize_variable_name.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional, Union
import logging
import re

from sketchblocks.arduino.ast import is_analog_pin, join_prefix
from sketchblocks.arduino.blocks import (
    LOOP_BLOCK_TYPE,
    LOOP_INPUT,
    SETUP_BLOCK_TYPE,
    SETUP_INPUT,
    BlockProtocol,
    DescriptorWorkspace,
    Workspace,
    WorkspaceProtocol,
)
from sketchblocks.arduino.errors import BlockStructureError, Diagnostic, DiagnosticCollector
from sketchblocks.arduino.sanitize import sanitize_number, sanitize_variable_name

logger = logging.getLogger(__name__)


# =============================================================================
# Precedence Levels
# =============================================================================

ORDER_ATOMIC = 10
ORDER_POSTFIX = 9
ORDER_UNARY = 8
ORDER_MULTIPLICATIVE = 7
ORDER_ADDITIVE = 6
ORDER_RELATIONAL = 5
ORDER_EQUALITY = 4
ORDER_LOGICAL_AND = 3
ORDER_LOGICAL_OR = 2
ORDER_NONE = 0

ARITHMETIC = {
    "ADD": ("+", ORDER_ADDITIVE),
    "MINUS": ("-", ORDER_ADDITIVE),
    "MULTIPLY": ("*", ORDER_MULTIPLICATIVE),
    "DIVIDE": ("/", ORDER_MULTIPLICATIVE),
    "MODULO": ("%", ORDER_MULTIPLICATIVE),
}

COMPARISON = {
    "EQ": ("==", ORDER_EQUALITY),
    "NEQ": ("!=", ORDER_EQUALITY),
    "LT": ("<", ORDER_RELATIONAL),
    "LTE": ("<=", ORDER_RELATIONAL),
    "GT": (">", ORDER_RELATIONAL),
    "GTE": (">=", ORDER_RELATIONAL),
}

LOGICAL = {
    "AND": ("&&", ORDER_LOGICAL_AND),
    "OR": ("||", ORDER_LOGICAL_OR),
}

MATH_SINGLE = {
    "ROOT": "sqrt({})",
    "ABS": "abs({})",
    "LN": "log({})",
    "LOG10": "log10({})",
    "EXP": "exp({})",
    "POW10": "pow(10, {})",
}

MATH_CONSTANTS = {
    "PI": "M_PI",
    "E": "M_E",
    "GOLDEN_RATIO": "((1 + sqrt(5)) / 2)",
    "SQRT2": "M_SQRT2",
    "SQRT1_2": "M_SQRT1_2",
    "INFINITY": "INFINITY",
}

TRIG_FUNCTIONS = ("SIN", "COS", "TAN", "ASIN", "ACOS", "ATAN")

ALLOWED_TYPES = frozenset({
    "int", "float", "boolean", "char", "String", "long", "byte",
    "unsigned int", "unsigned long", "unsigned char",
})

PIN_MODES = ("INPUT", "OUTPUT", "INPUT_PULLUP")
LOOP_COUNTERS = ("i", "j", "k")

MAX_PIN = 53
MAX_PWM = 255

MATH_INCLUDE = "<math.h>"

_SIMPLE_ATOM = re.compile(r"^(?:[A-Za-z_]\w*|\d+\.?\d*|\.\d+|\"(?:[^\"\\]|\\.)*\"|'(?:[^'\\]|\\.)*')$")
_POSTFIX_STEP = re.compile(r"^[A-Za-z_]\w*(?:\+\+|--)$")
_NEWLINE_RUNS = re.compile(r"\n\s*\n\s*\n")
_C_ESCAPES = frozenset("\\\"'nrt0abfv?")


# =============================================================================
# Generation Results and Accumulator
# =============================================================================

@dataclass
class GenerationContext:
    """
    Per-call accumulator threaded through the generator.

    Attributes:
        indent: One indentation level
        includes: Ordered unique include targets ("<math.h>")
        variables: Ordered unique global declaration lines
        functions: Ordered unique function texts
        declared: Names declared by any declare/define block
        assigned: Names assigned by variables_set blocks
        loop_depth: Current repeat-block nesting, selects the counter name
    """
    indent: str = "  "
    includes: list[str] = field(default_factory=list)
    variables: list[str] = field(default_factory=list)
    functions: list[str] = field(default_factory=list)
    declared: set[str] = field(default_factory=set)
    assigned: list[str] = field(default_factory=list)
    loop_depth: int = 0
    collector: DiagnosticCollector = field(
        default_factory=lambda: DiagnosticCollector(stage="codegen")
    )

    def add_include(self, include: str) -> None:
        if include not in self.includes:
            self.includes.append(include)

    def add_variable(self, declaration: str) -> None:
        if declaration not in self.variables:
            self.variables.append(declaration)

    def add_function(self, text: str) -> None:
        if text not in self.functions:
            self.functions.append(text)

    def declare(self, name: str) -> None:
        self.declared.add(name)

    def assign(self, name: str) -> None:
        if name not in self.assigned:
            self.assigned.append(name)

    def pad(self, level: int) -> str:
        return self.indent * level


@dataclass
class GeneratedCode:
    """
    Result of generating a sketch.

    Attributes:
        code: Complete sketch source
        includes: Include targets used, in first-use order
        variables: Global declaration lines
        functions: Function texts
        diagnostics: Warnings about unsupported or odd blocks
        validation: Validator result when validation was requested
    """
    code: str
    includes: list[str] = field(default_factory=list)
    variables: list[str] = field(default_factory=list)
    functions: list[str] = field(default_factory=list)
    diagnostics: list[Diagnostic] = field(default_factory=list)
    validation: Optional[object] = None


# =============================================================================
# Code Generator
# =============================================================================

class CodeGenerator:
    """
    Generates sketch source from a block workspace.

    Example:
        generator = CodeGenerator(include_timestamp=False)
        result = generator.generate(workspace)
        print(result.code)

    Attributes:
        indent: One indentation level
        include_header: Emit the generated-by header comment
        include_timestamp: Add the generation time to the header
        validate_output: Run the validator on the result
    """

    def __init__(
        self,
        indent: str = "  ",
        include_header: bool = True,
        include_timestamp: bool = True,
        validate_output: bool = False,
    ):
        self.indent = indent
        self.include_header = include_header
        self.include_timestamp = include_timestamp
        self.validate_output = validate_output

        self._statement_handlers: dict[str, Callable[[BlockProtocol, GenerationContext, int], str]] = {
            "arduino_pinmode": self._gen_pinmode,
            "arduino_digitalwrite": self._gen_digitalwrite,
            "arduino_analogwrite": self._gen_analogwrite,
            "arduino_delay": self._gen_delay,
            "arduino_delayMicroseconds": self._gen_delay_microseconds,
            "arduino_serial_begin": self._gen_serial_begin,
            "arduino_serial_print": self._gen_serial_print,
            "arduino_random_seed": self._gen_random_seed,
            "variables_set": self._gen_variables_set,
            "variables_declare": self._gen_variables_declare,
            "variables_define": self._gen_variables_define,
            "controls_if": self._gen_if,
            "controls_repeat_ext": self._gen_repeat,
            "controls_whileUntil": self._gen_while_until,
            "controls_for": self._gen_for,
            "arduino_raw_statement": self._gen_raw_statement,
            "arduino_raw_block": self._gen_raw_block,
        }
        self._value_handlers: dict[str, Callable[[BlockProtocol, GenerationContext], tuple[str, int]]] = {
            "arduino_digitalread": self._val_digitalread,
            "arduino_analogread": self._val_analogread,
            "arduino_map": self._val_map,
            "arduino_constrain": self._val_constrain,
            "arduino_min": self._val_min,
            "arduino_max": self._val_max,
            "arduino_abs": self._val_abs,
            "arduino_pow": self._val_pow,
            "arduino_sqrt": self._val_sqrt,
            "arduino_millis": lambda block, ctx: ("millis()", ORDER_POSTFIX),
            "arduino_micros": lambda block, ctx: ("micros()", ORDER_POSTFIX),
            "arduino_random": self._val_random,
            "arduino_serial_available": lambda block, ctx: ("Serial.available()", ORDER_POSTFIX),
            "arduino_serial_read": lambda block, ctx: ("Serial.read()", ORDER_POSTFIX),
            "arduino_serial_read_string": lambda block, ctx: ("Serial.readString()", ORDER_POSTFIX),
            "arduino_pin": self._val_pin,
            "arduino_raw_expression": self._val_raw_expression,
            "variables_get": self._val_variables_get,
            "logic_compare": self._val_compare,
            "logic_operation": self._val_operation,
            "logic_negate": self._val_negate,
            "logic_boolean": self._val_boolean,
            "math_number": self._val_number,
            "math_arithmetic": self._val_arithmetic,
            "math_single": self._val_math_single,
            "math_trig": self._val_trig,
            "math_constant": self._val_constant,
            "text": self._val_text,
        }

    # =========================================================================
    # Entry Point
    # =========================================================================

    def generate(self, workspace: Union[Workspace, WorkspaceProtocol]) -> GeneratedCode:
        """
        Generate a complete sketch.

        Args:
            workspace: A Workspace, or any object offering the workspace
                capability interface

        Returns:
            GeneratedCode with the source text and collected side effects

        Raises:
            BlockStructureError: for structurally malformed blocks
        """
        if isinstance(workspace, Workspace):
            workspace = DescriptorWorkspace(workspace)
        ctx = GenerationContext(indent=self.indent)

        for root in workspace.get_top_blocks():
            if root.type in (SETUP_BLOCK_TYPE, LOOP_BLOCK_TYPE):
                continue
            self._generate_global(root, ctx)

        setup_code = self._generate_root(workspace, SETUP_BLOCK_TYPE, SETUP_INPUT, ctx)
        loop_code = self._generate_root(workspace, LOOP_BLOCK_TYPE, LOOP_INPUT, ctx)

        for name in ctx.assigned:
            if name not in ctx.declared:
                # Assigned but never declared: assume int
                ctx.add_variable(f"int {name};")

        code = self._assemble(setup_code, loop_code, ctx)
        result = GeneratedCode(
            code=code,
            includes=list(ctx.includes),
            variables=list(ctx.variables),
            functions=list(ctx.functions),
            diagnostics=list(ctx.collector.diagnostics),
        )

        if self.validate_output:
            from sketchblocks.arduino.validator import validate_code
            result.validation = validate_code(code)

        logger.debug(
            f"Generated {len(code.splitlines())} lines "
            f"({len(ctx.includes)} includes, {len(ctx.variables)} variables)"
        )
        return result

    def _generate_global(self, root: BlockProtocol, ctx: GenerationContext) -> None:
        if root.type in ("variables_declare", "variables_define"):
            ctx.add_variable(self._statement(root, ctx, 0))
        elif root.type in ("arduino_raw_statement", "arduino_raw_block"):
            ctx.add_function(self._statement(root, ctx, 0))
        else:
            ctx.collector.add_warning(f"top-level block '{root.type}' outside setup/loop ignored")
            logger.warning(f"Ignoring top-level block {root.type}")

    def _generate_root(
        self,
        workspace: WorkspaceProtocol,
        root_type: str,
        input_name: str,
        ctx: GenerationContext,
    ) -> str:
        roots = workspace.get_blocks_by_type(root_type)
        section = "setup" if root_type == SETUP_BLOCK_TYPE else "loop"
        if not roots:
            return f"{ctx.pad(1)}// add an {root_type} block"
        body = self._statements(roots[0].get_input_target_block(input_name), ctx, 1)
        return body or f"{ctx.pad(1)}// {section} code"

    def _assemble(self, setup_code: str, loop_code: str, ctx: GenerationContext) -> str:
        sections = []
        if self.include_header:
            header = ["// Arduino sketch", "// Generated by sketchblocks"]
            if self.include_timestamp:
                header.append(f"// Generated at: {datetime.now().isoformat(timespec='seconds')}")
            sections.append("\n".join(header))
        if ctx.includes:
            sections.append("\n".join(f"#include {include}" for include in ctx.includes))
        if ctx.variables:
            sections.append("\n".join(ctx.variables))
        if ctx.functions:
            sections.append("\n\n".join(ctx.functions))
        sections.append(f"void setup() {{\n{setup_code}\n}}")
        sections.append(f"void loop() {{\n{loop_code}\n}}")

        code = "\n\n".join(sections)
        return _NEWLINE_RUNS.sub("\n\n", code) + "\n"

    # =========================================================================
    # Statement Traversal
    # =========================================================================

    def _statements(self, block: Optional[BlockProtocol], ctx: GenerationContext, level: int) -> str:
        """Generate a statement chain following next-block links."""
        lines = []
        while block is not None:
            code = self._statement(block, ctx, level)
            if code:
                lines.append(code)
            block = block.get_next_block()
        return "\n".join(lines)

    def _statement(self, block: BlockProtocol, ctx: GenerationContext, level: int) -> str:
        block_type = getattr(block, "type", None)
        if not block_type:
            raise BlockStructureError("block has no type")

        handler = self._statement_handlers.get(block_type)
        if handler is not None:
            return handler(block, ctx, level)

        if block_type in self._value_handlers:
            code, _ = self._value_handlers[block_type](block, ctx)
            return f"{ctx.pad(level)}{code};"

        ctx.collector.add_warning(f"unsupported block: {block_type}")
        logger.warning(f"Unsupported block type {block_type}")
        return f"{ctx.pad(level)}// unsupported block: {block_type}"

    def _braced(self, header: str, body: str, ctx: GenerationContext, level: int) -> str:
        pad = ctx.pad(level)
        if body:
            return f"{pad}{header} {{\n{body}\n{pad}}}"
        return f"{pad}{header} {{\n{pad}}}"

    # =========================================================================
    # Value Traversal
    # =========================================================================

    def _expression(self, block: BlockProtocol, ctx: GenerationContext) -> tuple[str, int]:
        block_type = getattr(block, "type", None)
        if not block_type:
            raise BlockStructureError("block has no type")
        handler = self._value_handlers.get(block_type)
        if handler is None:
            if block_type in self._statement_handlers:
                raise BlockStructureError(
                    "statement block given where a value is expected", block_type
                )
            ctx.collector.add_warning(f"unsupported block: {block_type}")
            logger.warning(f"Unsupported value block type {block_type}")
            return f"/* unsupported block: {block_type} */", ORDER_ATOMIC
        return handler(block, ctx)

    def _input_target(self, block: BlockProtocol, name: str) -> Optional[BlockProtocol]:
        target = block.get_input_target_block(name)
        if target is not None and target.get_next_block() is not None:
            raise BlockStructureError(
                f"input {name} holds a statement sequence where a value is expected",
                block.type,
            )
        return target

    def _value(
        self,
        block: BlockProtocol,
        name: str,
        ctx: GenerationContext,
        default: str,
        order: int = ORDER_NONE,
    ) -> str:
        """
        Generate the value connected to an input.

        Args:
            order: Minimum binding strength; looser operands get parentheses
        """
        target = self._input_target(block, name)
        if target is None:
            return default
        code, precedence = self._expression(target, ctx)
        if precedence < order:
            return f"({code})"
        return code

    def _number_input(
        self,
        block: BlockProtocol,
        name: str,
        ctx: GenerationContext,
        default: str,
        minimum: Optional[float] = None,
        maximum: Optional[float] = None,
    ) -> str:
        """
        A numeric input or field: plain numbers are sanitized and clamped,
        any other connected expression is emitted verbatim.
        """
        target = self._input_target(block, name)
        if target is not None:
            if target.type == "math_number":
                return sanitize_number(target.get_field_value("NUM"), default, minimum, maximum)
            return self._expression(target, ctx)[0]
        return sanitize_number(block.get_field_value(name), default, minimum, maximum)

    def _pin(self, block: BlockProtocol, ctx: GenerationContext, default: str) -> str:
        """
        A pin given as a field, a number or a text block.

        Text pins ("A0", "7") are written bare; text that is neither an
        analog pin nor a number falls back to the default.
        """
        target = self._input_target(block, "PIN")
        if target is None:
            value = block.get_field_value("PIN")
        elif target.type == "text":
            value = target.get_field_value("TEXT") or ""
        else:
            return self._number_input(block, "PIN", ctx, default, 0, MAX_PIN)

        if value is not None and is_analog_pin(value.strip()):
            return value.strip()
        return sanitize_number(value, default, 0, MAX_PIN)

    # =========================================================================
    # Arduino Statement Templates
    # =========================================================================

    def _gen_pinmode(self, block, ctx, level):
        pin = self._pin(block, ctx, "13")
        mode = block.get_field_value("MODE")
        if mode not in PIN_MODES:
            mode = "OUTPUT"
        return f"{ctx.pad(level)}pinMode({pin}, {mode});"

    def _gen_digitalwrite(self, block, ctx, level):
        pin = self._pin(block, ctx, "13")
        state = block.get_field_value("STATE")
        state = {"1": "HIGH", "0": "LOW", "LOW": "LOW"}.get(state, "HIGH")
        return f"{ctx.pad(level)}digitalWrite({pin}, {state});"

    def _gen_analogwrite(self, block, ctx, level):
        pin = self._pin(block, ctx, "9")
        value = self._number_input(block, "VALUE", ctx, "128", 0, MAX_PWM)
        return f"{ctx.pad(level)}analogWrite({pin}, {value});"

    def _gen_delay(self, block, ctx, level):
        time = self._number_input(block, "TIME", ctx, "1000", 0)
        return f"{ctx.pad(level)}delay({time});"

    def _gen_delay_microseconds(self, block, ctx, level):
        time = self._number_input(block, "TIME", ctx, "100", 0)
        return f"{ctx.pad(level)}delayMicroseconds({time});"

    def _gen_serial_begin(self, block, ctx, level):
        baud = self._number_input(block, "BAUD", ctx, "9600", 0)
        return f"{ctx.pad(level)}Serial.begin({baud});"

    def _gen_serial_print(self, block, ctx, level):
        method = "println" if block.get_field_value("MODE") == "PRINTLN" else "print"
        text = self._value(block, "TEXT", ctx, '""')
        return f"{ctx.pad(level)}Serial.{method}({text});"

    def _gen_random_seed(self, block, ctx, level):
        seed = self._value(block, "SEED", ctx, "0")
        return f"{ctx.pad(level)}randomSeed({seed});"

    # =========================================================================
    # Variable Templates
    # =========================================================================

    def _variable_name(self, block: BlockProtocol) -> str:
        return sanitize_variable_name(block.get_field_value("VAR"))

    def _variable_type(self, block: BlockProtocol) -> str:
        data_type = " ".join((block.get_field_value("TYPE") or "").split())
        return data_type if data_type in ALLOWED_TYPES else "int"

    def _gen_variables_set(self, block, ctx, level):
        name = self._variable_name(block)
        ctx.assign(name)
        value = self._value(block, "VALUE", ctx, "0")
        return f"{ctx.pad(level)}{name} = {value};"

    def _gen_variables_declare(self, block, ctx, level):
        name = self._variable_name(block)
        ctx.declare(name)
        return f"{ctx.pad(level)}{self._variable_type(block)} {name};"

    def _gen_variables_define(self, block, ctx, level):
        name = self._variable_name(block)
        ctx.declare(name)
        value = self._value(block, "VALUE", ctx, "0")
        return f"{ctx.pad(level)}{self._variable_type(block)} {name} = {value};"

    def _val_variables_get(self, block, ctx):
        return self._variable_name(block), ORDER_ATOMIC

    # =========================================================================
    # Control Templates
    # =========================================================================

    def _gen_if(self, block, ctx, level):
        pad = ctx.pad(level)
        parts = []
        branch = 0
        while True:
            condition_block = self._input_target(block, f"IF{branch}")
            body_block = block.get_input_target_block(f"DO{branch}")
            if branch > 0 and condition_block is None and body_block is None:
                break
            condition = self._value(block, f"IF{branch}", ctx, "false")
            body = self._statements(body_block, ctx, level + 1)
            keyword = "if" if branch == 0 else "else if"
            parts.append((f"{keyword} ({condition})", body))
            branch += 1

        else_block = block.get_input_target_block("ELSE")
        if else_block is not None:
            parts.append(("else", self._statements(else_block, ctx, level + 1)))

        lines = []
        for index, (header, body) in enumerate(parts):
            opener = f"{pad}{header} {{" if index == 0 else f"{pad}}} {header} {{"
            lines.append(opener)
            if body:
                lines.append(body)
        lines.append(f"{pad}}}")
        return "\n".join(lines)

    def _gen_repeat(self, block, ctx, level):
        times = self._number_input(block, "TIMES", ctx, "10", 0)
        depth = ctx.loop_depth
        counter = LOOP_COUNTERS[depth] if depth < len(LOOP_COUNTERS) else f"i{depth}"
        ctx.loop_depth += 1
        try:
            body = self._statements(block.get_input_target_block("DO"), ctx, level + 1)
        finally:
            ctx.loop_depth -= 1
        header = f"for (int {counter} = 0; {counter} < {times}; {counter}++)"
        return self._braced(header, body, ctx, level)

    def _gen_while_until(self, block, ctx, level):
        if block.get_field_value("MODE") == "UNTIL":
            condition = f"!{self._value(block, 'BOOL', ctx, 'false', ORDER_UNARY)}"
        else:
            condition = self._value(block, "BOOL", ctx, "false")
        body = self._statements(block.get_input_target_block("DO"), ctx, level + 1)
        return self._braced(f"while ({condition})", body, ctx, level)

    def _gen_for(self, block, ctx, level):
        var = sanitize_variable_name(block.get_field_value("VAR"), "i")
        start = self._number_input(block, "FROM", ctx, "1")
        end = self._number_input(block, "TO", ctx, "10")
        step = self._number_input(block, "BY", ctx, "1")
        body = self._statements(block.get_input_target_block("DO"), ctx, level + 1)
        header = f"for (int {var} = {start}; {var} <= {end}; {var} += {step})"
        return self._braced(header, body, ctx, level)

    def _gen_raw_statement(self, block, ctx, level):
        code = (block.get_field_value("CODE") or "").strip()
        if not code:
            return ""
        if not code.endswith((";", "}")):
            code += ";"
        return f"{ctx.pad(level)}{code}"

    def _gen_raw_block(self, block, ctx, level):
        header = (block.get_field_value("CODE") or "").strip()
        body = self._statements(block.get_input_target_block("STATEMENTS"), ctx, level + 1)
        return self._braced(header, body, ctx, level)

    # =========================================================================
    # Arduino Value Templates
    # =========================================================================

    def _val_digitalread(self, block, ctx):
        return f"digitalRead({self._pin(block, ctx, '2')})", ORDER_POSTFIX

    def _val_analogread(self, block, ctx):
        return f"analogRead({self._pin(block, ctx, 'A0')})", ORDER_POSTFIX

    def _call(self, name: str, block, ctx, inputs: tuple[tuple[str, str], ...]) -> tuple[str, int]:
        args = ", ".join(self._value(block, input_name, ctx, default) for input_name, default in inputs)
        return f"{name}({args})", ORDER_POSTFIX

    def _val_map(self, block, ctx):
        return self._call("map", block, ctx, (
            ("VALUE", "0"), ("FROM_LOW", "0"), ("FROM_HIGH", "1023"),
            ("TO_LOW", "0"), ("TO_HIGH", "255"),
        ))

    def _val_constrain(self, block, ctx):
        return self._call("constrain", block, ctx, (("VALUE", "0"), ("MIN", "0"), ("MAX", "255")))

    def _val_min(self, block, ctx):
        return self._call("min", block, ctx, (("A", "0"), ("B", "0")))

    def _val_max(self, block, ctx):
        return self._call("max", block, ctx, (("A", "0"), ("B", "0")))

    def _val_abs(self, block, ctx):
        return self._call("abs", block, ctx, (("VALUE", "0"),))

    def _val_pow(self, block, ctx):
        ctx.add_include(MATH_INCLUDE)
        return self._call("pow", block, ctx, (("BASE", "0"), ("EXPONENT", "1")))

    def _val_sqrt(self, block, ctx):
        ctx.add_include(MATH_INCLUDE)
        return self._call("sqrt", block, ctx, (("VALUE", "0"),))

    def _val_random(self, block, ctx):
        return self._call("random", block, ctx, (("MIN", "0"), ("MAX", "100")))

    def _val_pin(self, block, ctx):
        value = (block.get_field_value("PIN") or "").strip()
        if is_analog_pin(value):
            return value, ORDER_ATOMIC
        return sanitize_number(value, "13", 0, MAX_PIN), ORDER_ATOMIC

    def _val_raw_expression(self, block, ctx):
        code = (block.get_field_value("CODE") or "").strip()
        if not code:
            return "0", ORDER_ATOMIC
        return code, raw_precedence(code)

    # =========================================================================
    # Logic and Math Templates
    # =========================================================================

    def _binary(self, block, ctx, symbol: str, order: int, default: str) -> tuple[str, int]:
        left = self._value(block, "A", ctx, default, order)
        right = self._value(block, "B", ctx, default, order + 1)
        return f"{left} {symbol} {right}", order

    def _val_compare(self, block, ctx):
        symbol, order = COMPARISON.get(block.get_field_value("OP"), COMPARISON["EQ"])
        return self._binary(block, ctx, symbol, order, "0")

    def _val_operation(self, block, ctx):
        symbol, order = LOGICAL.get(block.get_field_value("OP"), LOGICAL["AND"])
        return self._binary(block, ctx, symbol, order, "false")

    def _val_negate(self, block, ctx):
        return f"!{self._value(block, 'BOOL', ctx, 'true', ORDER_UNARY)}", ORDER_UNARY

    def _val_boolean(self, block, ctx):
        return ("true" if block.get_field_value("BOOL") == "TRUE" else "false"), ORDER_ATOMIC

    def _val_number(self, block, ctx):
        number = sanitize_number(block.get_field_value("NUM"), "0")
        return number, ORDER_UNARY if number[:1] in ("-", "+") else ORDER_ATOMIC

    def _val_arithmetic(self, block, ctx):
        op = block.get_field_value("OP")
        if op == "POWER":
            ctx.add_include(MATH_INCLUDE)
            base = self._value(block, "A", ctx, "0")
            exponent = self._value(block, "B", ctx, "0")
            return f"pow({base}, {exponent})", ORDER_POSTFIX
        symbol, order = ARITHMETIC.get(op, ARITHMETIC["ADD"])
        return self._binary(block, ctx, symbol, order, "0")

    def _val_math_single(self, block, ctx):
        ctx.add_include(MATH_INCLUDE)
        op = block.get_field_value("OP")
        if op == "NEG":
            return join_prefix("-", self._value(block, "NUM", ctx, "0", ORDER_UNARY)), ORDER_UNARY
        template = MATH_SINGLE.get(op, MATH_SINGLE["ROOT"])
        return template.format(self._value(block, "NUM", ctx, "0")), ORDER_POSTFIX

    def _val_trig(self, block, ctx):
        ctx.add_include(MATH_INCLUDE)
        op = block.get_field_value("OP")
        function = op.lower() if op in TRIG_FUNCTIONS else "sin"
        return f"{function}({self._value(block, 'NUM', ctx, '0')})", ORDER_POSTFIX

    def _val_constant(self, block, ctx):
        ctx.add_include(MATH_INCLUDE)
        constant = MATH_CONSTANTS.get(block.get_field_value("CONSTANT"), MATH_CONSTANTS["PI"])
        return constant, ORDER_ATOMIC

    def _val_text(self, block, ctx):
        return quote_text(block.get_field_value("TEXT") or ""), ORDER_ATOMIC

    # =========================================================================
    # Examples
    # =========================================================================

    @staticmethod
    def example_program() -> str:
        """The LED blink sketch."""
        return (
            "// Arduino example sketch\n"
            "// Generated by sketchblocks\n"
            "\n"
            "void setup() {\n"
            "  // LED pin as output\n"
            "  pinMode(13, OUTPUT);\n"
            "}\n"
            "\n"
            "void loop() {\n"
            "  // LED on\n"
            "  digitalWrite(13, HIGH);\n"
            "  delay(1000);\n"
            "\n"
            "  // LED off\n"
            "  digitalWrite(13, LOW);\n"
            "  delay(1000);\n"
            "}\n"
        )


# =============================================================================
# Helpers
# =============================================================================

def quote_text(text: str) -> str:
    """
    Quote text as a C string literal.

    Existing escape sequences are kept; a bare quote or backslash is
    escaped and raw line breaks become \\n.

    >>> quote_text('say "hi"')
    '"say \\\\"hi\\\\""'
    """
    out = []
    i = 0
    while i < len(text):
        char = text[i]
        if char == "\\" and i + 1 < len(text) and text[i + 1] in _C_ESCAPES:
            out.append(text[i:i + 2])
            i += 2
            continue
        if char in ("\\", '"'):
            out.append("\\" + char)
        elif char == "\n":
            out.append("\\n")
        elif char == "\r":
            out.append("\\r")
        else:
            out.append(char)
        i += 1
    return "\"" + "".join(out) + "\""


def raw_precedence(code: str) -> int:
    """
    Estimate the binding strength of raw expression text.

    Names, numbers and quoted literals are atomic, a single call or
    postfix step binds as postfix, a prefix operator applied to either
    binds as unary. Anything else is treated as unknown and gets
    parenthesised inside larger expressions.
    """
    if _SIMPLE_ATOM.match(code):
        return ORDER_ATOMIC
    if _POSTFIX_STEP.match(code) or _is_single_call(code):
        return ORDER_POSTFIX
    if code[0] in "!-+" and len(code) > 1 and code[1] not in "+-=":
        if raw_precedence(code[1:]) >= ORDER_POSTFIX:
            return ORDER_UNARY
    return ORDER_NONE


def _is_single_call(code: str) -> bool:
    """True for `name(...)` or `a.b(...)` whose first '(' closes at the end."""
    match = re.match(r"^[A-Za-z_][\w.]*\(", code)
    if not match or not code.endswith(")"):
        return False
    depth = 0
    quote = None
    for index in range(match.end() - 1, len(code)):
        char = code[index]
        if quote:
            if char == quote and code[index - 1] != "\\":
                quote = None
            continue
        if char in "\"'":
            quote = char
        elif char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
            if depth == 0:
                return index == len(code) - 1
    return False


# =============================================================================
# Convenience Functions
# =============================================================================

def generate_code(
    workspace: Union[Workspace, WorkspaceProtocol],
    indent: str = "  ",
    include_header: bool = True,
    include_timestamp: bool = True,
    validate_output: bool = False,
) -> GeneratedCode:
    """Generate sketch source from a workspace with a one-off CodeGenerator."""
    generator = CodeGenerator(
        indent=indent,
        include_header=include_header,
        include_timestamp=include_timestamp,
        validate_output=validate_output,
    )
    return generator.generate(workspace)
