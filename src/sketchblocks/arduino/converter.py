"""
AST to Block Converter
======================

Maps a parsed sketch (sketchblocks.arduino.ast) onto block descriptors.

Mapping Overview
----------------
- setup() and loop() bodies become the workspace setup/loop sequences.
- Top-level variable declarations become global blocks.
- Other functions are dropped with an INFO diagnostic.
- Recognised Arduino calls become their dedicated blocks; anything the
  block vocabulary cannot express becomes a raw block carrying the
  reconstructed source text, so no statement is lost.

Arduino constants (HIGH, LOW, INPUT, OUTPUT, INPUT_PULLUP) used as values
become raw expressions holding the constant name, so regenerating code
reproduces them exactly.
"""

from typing import Optional
import logging

from sketchblocks.arduino.ast import (
    ArduinoPin,
    AssignmentExpression,
    BinaryExpression,
    BlockStatement,
    CallExpression,
    Expression,
    ExpressionStatement,
    ForStatement,
    FunctionDeclaration,
    Identifier,
    IfStatement,
    Literal,
    MemberExpression,
    Program,
    ReturnStatement,
    Statement,
    UnaryExpression,
    VariableDeclaration,
    WhileStatement,
    expression_to_source,
)
from sketchblocks.arduino.blocks import BlockDescriptor, Workspace
from sketchblocks.arduino.errors import ConversionError, Diagnostic, DiagnosticCollector

logger = logging.getLogger(__name__)


# =============================================================================
# Mapping Tables
# =============================================================================

ARITHMETIC_OPS = {"+": "ADD", "-": "MINUS", "*": "MULTIPLY", "/": "DIVIDE", "%": "MODULO"}
COMPARE_OPS = {"==": "EQ", "!=": "NEQ", "<": "LT", "<=": "LTE", ">": "GT", ">=": "GTE"}
LOGIC_OPS = {"&&": "AND", "||": "OR"}

DIGITAL_STATES = ("HIGH", "LOW")
PIN_MODES = ("INPUT", "OUTPUT", "INPUT_PULLUP")
CONSTANT_NAMES = DIGITAL_STATES + PIN_MODES

# name -> (block type, argument input names)
VALUE_CALLS: dict[str, tuple[str, tuple[str, ...]]] = {
    "digitalRead": ("arduino_digitalread", ("PIN",)),
    "analogRead": ("arduino_analogread", ("PIN",)),
    "map": ("arduino_map", ("VALUE", "FROM_LOW", "FROM_HIGH", "TO_LOW", "TO_HIGH")),
    "constrain": ("arduino_constrain", ("VALUE", "MIN", "MAX")),
    "min": ("arduino_min", ("A", "B")),
    "max": ("arduino_max", ("A", "B")),
    "abs": ("arduino_abs", ("VALUE",)),
    "pow": ("arduino_pow", ("BASE", "EXPONENT")),
    "sqrt": ("arduino_sqrt", ("VALUE",)),
    "millis": ("arduino_millis", ()),
    "micros": ("arduino_micros", ()),
    "random": ("arduino_random", ("MIN", "MAX")),
}

# Calls that only make sense as statements
STATEMENT_CALLS: dict[str, tuple[str, tuple[str, ...]]] = {
    "analogWrite": ("arduino_analogwrite", ("PIN", "VALUE")),
    "randomSeed": ("arduino_random_seed", ("SEED",)),
}

# Pin reads used as statements stay raw
PIN_READS = ("digitalRead", "analogRead")

SERIAL_QUERIES = {
    "available": "arduino_serial_available",
    "read": "arduino_serial_read",
    "readString": "arduino_serial_read_string",
}


def raw_statement(code: str) -> BlockDescriptor:
    return BlockDescriptor("arduino_raw_statement", fields={"CODE": code})


def raw_expression(code: str) -> BlockDescriptor:
    return BlockDescriptor("arduino_raw_expression", fields={"CODE": code})


# =============================================================================
# Converter
# =============================================================================

class ASTToBlocksConverter:
    """
    Converts a Program into a Workspace.

    The converter is stateless apart from its diagnostics, which are
    reset by every convert_program() call.

    Usage:
        converter = ASTToBlocksConverter()
        workspace = converter.convert_program(program)
        for diag in converter.diagnostics:
            print(diag)
    """

    def __init__(self):
        self._collector = DiagnosticCollector(stage="converter")

    @property
    def diagnostics(self) -> list[Diagnostic]:
        return list(self._collector.diagnostics)

    def convert_program(self, program: Program) -> Workspace:
        self._collector.clear()
        setup_blocks: list[BlockDescriptor] = []
        loop_blocks: list[BlockDescriptor] = []
        global_variables: list[BlockDescriptor] = []

        for node in program.body:
            if isinstance(node, FunctionDeclaration):
                if node.name == "setup":
                    setup_blocks = self.convert_body(node.body)
                elif node.name == "loop":
                    loop_blocks = self.convert_body(node.body)
                else:
                    self._collector.add_info(
                        f"function '{node.name}' is not represented as blocks",
                        node.location,
                    )
            elif isinstance(node, VariableDeclaration):
                global_variables.append(self.convert_variable_declaration(node))

        workspace = Workspace(
            setup_blocks=setup_blocks,
            loop_blocks=loop_blocks,
            global_variables=global_variables,
        )
        logger.debug(
            f"Converted program: {len(setup_blocks)} setup, {len(loop_blocks)} loop, "
            f"{len(global_variables)} global blocks"
        )
        return workspace

    # =========================================================================
    # Statements
    # =========================================================================

    def convert_body(self, stmt: Optional[Statement]) -> list[BlockDescriptor]:
        """Convert a statement or block into a statement sequence."""
        if stmt is None:
            return []
        statements = stmt.body if isinstance(stmt, BlockStatement) else [stmt]
        blocks = []
        for item in statements:
            block = self.convert_statement(item)
            if block is not None:
                blocks.append(block)
        return blocks

    def convert_statement(self, stmt: Statement) -> Optional[BlockDescriptor]:
        """
        Convert one statement.

        Returns None for statements that have no block form (nested bare
        blocks and return statements).

        Raises:
            ConversionError: for nodes that are not statements at all
        """
        if isinstance(stmt, ExpressionStatement):
            return self._convert_expression_statement(stmt.expression)
        if isinstance(stmt, IfStatement):
            return self._convert_if(stmt)
        if isinstance(stmt, ForStatement):
            return self._convert_for(stmt)
        if isinstance(stmt, WhileStatement):
            return BlockDescriptor(
                "controls_whileUntil",
                fields={"MODE": "WHILE"},
                inputs={
                    "BOOL": self.convert_expression(stmt.test),
                    "DO": self.convert_body(stmt.body),
                },
            )
        if isinstance(stmt, VariableDeclaration):
            return self.convert_variable_declaration(stmt)
        if isinstance(stmt, (BlockStatement, ReturnStatement)):
            logger.debug(f"Skipping {type(stmt).__name__} at {stmt.location}")
            return None

        raise ConversionError(
            f"cannot convert {type(stmt).__name__} to a block",
            location=getattr(stmt, "location", None),
        )

    def convert_variable_declaration(self, decl: VariableDeclaration) -> BlockDescriptor:
        fields = {"TYPE": decl.data_type, "VAR": decl.name}
        if decl.initializer is not None:
            return BlockDescriptor(
                "variables_define",
                fields=fields,
                inputs={"VALUE": self.convert_expression(decl.initializer)},
            )
        return BlockDescriptor("variables_declare", fields=fields)

    def _convert_expression_statement(self, expr: Expression) -> BlockDescriptor:
        if isinstance(expr, CallExpression):
            return self._convert_call_statement(expr)
        if isinstance(expr, AssignmentExpression):
            if expr.operator == "=" and isinstance(expr.left, Identifier):
                return BlockDescriptor(
                    "variables_set",
                    fields={"VAR": expr.left.name},
                    inputs={"VALUE": self.convert_expression(expr.right)},
                )
        return raw_statement(expression_to_source(expr))

    def _convert_if(self, stmt: IfStatement) -> BlockDescriptor:
        # else-if chains become IF1/DO1, IF2/DO2, ...
        inputs = {}
        branch = 0
        current = stmt
        while True:
            inputs[f"IF{branch}"] = self.convert_expression(current.test)
            inputs[f"DO{branch}"] = self.convert_body(current.consequent)
            alternate = current.alternate
            if isinstance(alternate, IfStatement):
                branch += 1
                current = alternate
                continue
            if alternate is not None:
                inputs["ELSE"] = self.convert_body(alternate)
            break
        return BlockDescriptor("controls_if", inputs=inputs)

    def _convert_for(self, stmt: ForStatement) -> BlockDescriptor:
        if is_simple_repeat(stmt):
            times = stmt.test.right
            return BlockDescriptor(
                "controls_repeat_ext",
                inputs={
                    "TIMES": self.convert_expression(times) if times is not None
                    else BlockDescriptor("math_number", fields={"NUM": "10"}),
                    "DO": self.convert_body(stmt.body),
                },
            )

        header = (
            f"for ({expression_to_source(stmt.init)}; "
            f"{expression_to_source(stmt.test)}; "
            f"{expression_to_source(stmt.update)})"
        )
        return BlockDescriptor(
            "arduino_raw_block",
            fields={"CODE": header},
            inputs={"STATEMENTS": self.convert_body(stmt.body)},
        )

    # =========================================================================
    # Calls
    # =========================================================================

    def _convert_call_statement(self, call: CallExpression) -> BlockDescriptor:
        callee = call.callee
        args = call.arguments

        if isinstance(callee, Identifier):
            name = callee.name

            if name == "digitalWrite" and len(args) == 2:
                pin, state = args
                if _constant_value(state) in DIGITAL_STATES:
                    return BlockDescriptor(
                        "arduino_digitalwrite",
                        fields={"STATE": state.value},
                        inputs={"PIN": self.convert_expression(pin)},
                    )

            elif name == "pinMode" and len(args) == 2:
                pin, mode = args
                if _constant_value(mode) in PIN_MODES:
                    return BlockDescriptor(
                        "arduino_pinmode",
                        fields={"MODE": mode.value},
                        inputs={"PIN": self.convert_expression(pin)},
                    )

            elif name in ("delay", "delayMicroseconds") and len(args) == 1:
                time = args[0]
                if isinstance(time, Literal) and time.is_number:
                    return BlockDescriptor(f"arduino_{name}", fields={"TIME": time.raw})

            elif name in STATEMENT_CALLS or (name in VALUE_CALLS and name not in PIN_READS):
                block = self._convert_mapped_call(call)
                if block is not None:
                    return block

        elif _is_serial_call(callee):
            method = callee.property
            if method == "begin" and len(args) == 1:
                return BlockDescriptor(
                    "arduino_serial_begin",
                    inputs={"BAUD": self.convert_expression(args[0])},
                )
            if method in ("print", "println") and len(args) == 1:
                return BlockDescriptor(
                    "arduino_serial_print",
                    fields={"MODE": method.upper()},
                    inputs={"TEXT": self.convert_expression(args[0])},
                )
            if method in SERIAL_QUERIES and not args:
                return BlockDescriptor(SERIAL_QUERIES[method])

        return raw_statement(expression_to_source(call))

    def _convert_mapped_call(self, call: CallExpression) -> Optional[BlockDescriptor]:
        """Convert a table-driven call, or None when the arity does not match."""
        name = call.callee.name
        block_type, input_names = STATEMENT_CALLS.get(name) or VALUE_CALLS[name]
        if len(call.arguments) != len(input_names):
            return None
        inputs = {
            input_name: self.convert_expression(arg)
            for input_name, arg in zip(input_names, call.arguments)
        }
        return BlockDescriptor(block_type, inputs=inputs)

    # =========================================================================
    # Expressions
    # =========================================================================

    def convert_expression(self, expr: Optional[Expression]) -> Optional[BlockDescriptor]:
        """Convert an expression into a value block."""
        if expr is None:
            return None

        if isinstance(expr, Literal):
            return self._convert_literal(expr)

        if isinstance(expr, Identifier):
            return BlockDescriptor("variables_get", fields={"VAR": expr.name})

        if isinstance(expr, ArduinoPin):
            return raw_expression(expr.pin)

        if isinstance(expr, CallExpression):
            callee = expr.callee
            if isinstance(callee, Identifier) and callee.name in VALUE_CALLS:
                block = self._convert_mapped_call(expr)
                if block is not None:
                    return block
            elif _is_serial_call(callee) and callee.property in SERIAL_QUERIES and not expr.arguments:
                return BlockDescriptor(SERIAL_QUERIES[callee.property])
            return raw_expression(expression_to_source(expr))

        if isinstance(expr, BinaryExpression):
            for table, block_type in (
                (ARITHMETIC_OPS, "math_arithmetic"),
                (COMPARE_OPS, "logic_compare"),
                (LOGIC_OPS, "logic_operation"),
            ):
                if expr.operator in table:
                    return BlockDescriptor(
                        block_type,
                        fields={"OP": table[expr.operator]},
                        inputs={
                            "A": self.convert_expression(expr.left),
                            "B": self.convert_expression(expr.right),
                        },
                    )

        if isinstance(expr, UnaryExpression) and expr.operator == "!" and expr.prefix:
            return BlockDescriptor(
                "logic_negate",
                inputs={"BOOL": self.convert_expression(expr.argument)},
            )

        return raw_expression(expression_to_source(expr))

    def _convert_literal(self, literal: Literal) -> BlockDescriptor:
        if literal.is_number:
            return BlockDescriptor("math_number", fields={"NUM": literal.raw})
        if literal.value in ("true", "false"):
            return BlockDescriptor("logic_boolean", fields={"BOOL": literal.value.upper()})
        if literal.value in CONSTANT_NAMES:
            return raw_expression(literal.raw)
        if literal.raw.startswith("\""):
            return BlockDescriptor("text", fields={"TEXT": literal.value})
        return raw_expression(literal.raw)


# =============================================================================
# Helpers
# =============================================================================

def is_simple_repeat(stmt: ForStatement) -> bool:
    """
    True for `for (<type> v = 0; v < N; v++)` with one variable throughout.
    """
    init, test, update = stmt.init, stmt.test, stmt.update
    if not isinstance(init, VariableDeclaration):
        return False
    start = init.initializer
    if not (isinstance(start, Literal) and start.is_number and start.value == 0):
        return False
    if not (
        isinstance(test, BinaryExpression)
        and test.operator == "<"
        and isinstance(test.left, Identifier)
        and test.left.name == init.name
    ):
        return False
    return (
        isinstance(update, UnaryExpression)
        and update.operator == "++"
        and isinstance(update.argument, Identifier)
        and update.argument.name == init.name
    )


def _constant_value(expr: Expression) -> Optional[str]:
    if isinstance(expr, Literal) and not expr.is_number:
        return expr.value
    return None


def _is_serial_call(callee: Expression) -> bool:
    return (
        isinstance(callee, MemberExpression)
        and isinstance(callee.object, Identifier)
        and callee.object.name == "Serial"
    )


# =============================================================================
# Convenience Functions
# =============================================================================

def ast_to_workspace(program: Program) -> Workspace:
    """Convert a parsed program into a fresh Workspace."""
    return ASTToBlocksConverter().convert_program(program)
