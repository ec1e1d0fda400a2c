"""
Sketch Parser Tests
===================

Tests for the recursive descent parser and the AST utilities.

Test Organization
-----------------
- TestTopLevel: functions, globals, stray tokens
- TestStatements: if/else, for, while, return, blocks
- TestExpressions: precedence, calls, members, unary operators
- TestErrorRecovery: diagnostics, partial results, recovery bound
- TestDegradation: deep nesting and binary garbage
- TestASTUtilities: traversal, printer, source reconstruction
"""

import pytest

from sketchblocks.arduino.parser import (
    DEFAULT_MAX_RECOVERY_ATTEMPTS,
    MAX_NESTING_DEPTH,
    MAX_TREE_DEPTH,
    SketchParser,
    parse_source,
    parse_source_with_diagnostics,
)
from sketchblocks.arduino.lexer import tokenize
from sketchblocks.arduino.errors import Severity
from sketchblocks.arduino.ast import (
    ArduinoPin,
    AssignmentExpression,
    ASTPrinter,
    ASTVisitor,
    BinaryExpression,
    BlockStatement,
    CallExpression,
    ExpressionStatement,
    ForStatement,
    FunctionDeclaration,
    Identifier,
    IfStatement,
    Literal,
    MemberExpression,
    ReturnStatement,
    UnaryExpression,
    VariableDeclaration,
    WhileStatement,
    expression_to_source,
    find_nodes,
    join_prefix,
)


BLINK = """
// Blink
void setup() {
  pinMode(13, OUTPUT);
}

void loop() {
  digitalWrite(13, HIGH);
  delay(1000);
  digitalWrite(13, LOW);
  delay(1000);
}
"""


def loop_statements(body: str) -> list:
    program = parse_source(f"void loop() {{ {body} }}")
    return program.get_function("loop").body.body


def expression(text: str):
    stmt = loop_statements(f"{text};")[0]
    assert isinstance(stmt, ExpressionStatement)
    return stmt.expression


# =============================================================================
# Top-Level Declarations
# =============================================================================

class TestTopLevel:
    """Tests for top-level parsing."""

    def test_empty_program(self):
        """Empty source parses to an empty Program."""
        program = parse_source("")
        assert program.body == []

    def test_blink(self):
        """The blink sketch has setup and loop with their statements."""
        program = parse_source(BLINK)
        assert [f.name for f in program.functions] == ["setup", "loop"]
        assert len(program.get_function("setup").body.body) == 1
        assert len(program.get_function("loop").body.body) == 4

    def test_function_signature(self):
        """Return type and parameters are recorded."""
        program = parse_source("int add(int a, unsigned long b) { return a + b; }")
        func = program.body[0]
        assert isinstance(func, FunctionDeclaration)
        assert func.return_type == "int"
        assert [(p.data_type, p.name) for p in func.params] == [
            ("int", "a"), ("unsigned long", "b"),
        ]

    def test_void_parameter_list(self):
        """(void) is an empty parameter list."""
        func = parse_source("void setup(void) { }").body[0]
        assert func.params == []

    def test_global_variables(self):
        """Globals become VariableDeclaration nodes in source order."""
        program = parse_source("int led = 13;\nfloat ratio;\nvoid setup() { }")
        assert [(g.data_type, g.name) for g in program.globals] == [
            ("int", "led"), ("float", "ratio"),
        ]
        assert program.globals[0].initializer.raw == "13"
        assert program.globals[1].initializer is None

    def test_stray_semicolons_skipped(self):
        """Top-level ';' produce no nodes and no errors."""
        program, diagnostics = parse_source_with_diagnostics(";; void setup() { } ;")
        assert len(program.body) == 1
        assert diagnostics == []

    def test_unknown_top_level_tokens_skipped(self):
        """Tokens that cannot start a declaration are skipped one at a time."""
        program, diagnostics = parse_source_with_diagnostics("#include <Servo.h>\nvoid loop() { }")
        assert [f.name for f in program.functions] == ["loop"]
        assert diagnostics == []

    def test_get_function_missing(self):
        """get_function returns None for absent functions."""
        assert parse_source("void loop() { }").get_function("setup") is None

    def test_program_location(self):
        """The Program node is located at the start of the file."""
        program = parse_source("void loop() { }", filename="x.ino")
        assert str(program.location) == "x.ino:1:1"


# =============================================================================
# Statements
# =============================================================================

class TestStatements:
    """Tests for statement parsing."""

    def test_local_declaration(self):
        """Declarations inside functions are statements."""
        stmt = loop_statements("int value = analogRead(A0);")[0]
        assert isinstance(stmt, VariableDeclaration)
        assert stmt.name == "value"
        assert isinstance(stmt.initializer, CallExpression)

    def test_if_else(self):
        """if/else has a test, consequent and alternate."""
        stmt = loop_statements("if (x > 5) { a(); } else { b(); }")[0]
        assert isinstance(stmt, IfStatement)
        assert isinstance(stmt.test, BinaryExpression)
        assert isinstance(stmt.consequent, BlockStatement)
        assert isinstance(stmt.alternate, BlockStatement)

    def test_else_if_chain(self):
        """else if nests an IfStatement in the alternate."""
        stmt = loop_statements("if (a) { x(); } else if (b) { y(); } else { z(); }")[0]
        assert isinstance(stmt.alternate, IfStatement)
        assert isinstance(stmt.alternate.alternate, BlockStatement)

    def test_if_without_braces(self):
        """A single statement body is allowed."""
        stmt = loop_statements("if (x) y = 1;")[0]
        assert isinstance(stmt.consequent, ExpressionStatement)
        assert stmt.alternate is None

    def test_for_with_declaration(self):
        """for with a declaration initializer."""
        stmt = loop_statements("for (int i = 0; i < 10; i++) { f(); }")[0]
        assert isinstance(stmt, ForStatement)
        assert isinstance(stmt.init, VariableDeclaration)
        assert expression_to_source(stmt.test) == "i < 10"
        assert isinstance(stmt.update, UnaryExpression)
        assert stmt.update.prefix is False

    def test_for_with_empty_sections(self):
        """for (;;) has no init, test or update."""
        stmt = loop_statements("for (;;) { }")[0]
        assert stmt.init is None and stmt.test is None and stmt.update is None

    def test_while(self):
        """while has a test and body."""
        stmt = loop_statements("while (digitalRead(2) == HIGH) { delay(10); }")[0]
        assert isinstance(stmt, WhileStatement)
        assert expression_to_source(stmt.test) == "digitalRead(2) == HIGH"

    def test_return(self):
        """return with and without a value."""
        stmts = loop_statements("return; return 1;")
        assert isinstance(stmts[0], ReturnStatement) and stmts[0].argument is None
        assert stmts[1].argument.raw == "1"

    def test_nested_block(self):
        """A bare { } is a nested BlockStatement."""
        stmt = loop_statements("{ a(); b(); }")[0]
        assert isinstance(stmt, BlockStatement)
        assert len(stmt.body) == 2


# =============================================================================
# Expressions
# =============================================================================

class TestExpressions:
    """Tests for expression parsing."""

    def test_multiplication_binds_tighter(self):
        """a + b * c parses as a + (b * c)."""
        expr = expression("a + b * c")
        assert expr.operator == "+"
        assert expr.right.operator == "*"

    def test_left_associative(self):
        """a - b - c parses as (a - b) - c."""
        expr = expression("a - b - c")
        assert expr.operator == "-"
        assert isinstance(expr.left, BinaryExpression)
        assert expr.right.name == "c"

    def test_logical_precedence(self):
        """|| binds looser than &&."""
        expr = expression("a || b && c")
        assert expr.operator == "||"
        assert expr.right.operator == "&&"

    def test_parenthesized(self):
        """Parentheses override precedence."""
        expr = expression("(a + b) * c")
        assert expr.operator == "*"
        assert expr.left.operator == "+"

    def test_assignment_right_associative(self):
        """a = b = 1 assigns right to left."""
        expr = expression("a = b = 1")
        assert isinstance(expr, AssignmentExpression)
        assert isinstance(expr.right, AssignmentExpression)

    def test_plus_assign(self):
        """+= is an assignment operator."""
        expr = expression("total += 5")
        assert isinstance(expr, AssignmentExpression)
        assert expr.operator == "+="

    def test_member_call(self):
        """Serial.println("x") is a call on a member expression."""
        expr = expression('Serial.println("x")')
        assert isinstance(expr, CallExpression)
        assert isinstance(expr.callee, MemberExpression)
        assert expr.callee_name == "Serial.println"
        assert expr.arguments[0].value == "x"

    def test_constants_are_literals(self):
        """HIGH and true are literals with their spelling as value."""
        call = expression("digitalWrite(13, HIGH)")
        assert isinstance(call.arguments[1], Literal)
        assert call.arguments[1].value == "HIGH"

    def test_number_literal(self):
        """Numbers have a float value and keep their raw text."""
        literal = expression("x = 2.50").right
        assert literal.is_number
        assert literal.value == 2.5
        assert literal.raw == "2.50"

    def test_analog_pin(self):
        """A0 is an ArduinoPin, not an identifier."""
        call = expression("analogRead(A0)")
        assert isinstance(call.arguments[0], ArduinoPin)
        assert call.arguments[0].pin == "A0"

    def test_prefix_unary(self):
        """!x and -x are prefix unary expressions."""
        expr = expression("!done")
        assert isinstance(expr, UnaryExpression)
        assert expr.operator == "!" and expr.prefix

    def test_prefix_increment(self):
        """++i is a prefix increment."""
        expr = expression("++i")
        assert expr.operator == "++" and expr.prefix


# =============================================================================
# Error Recovery
# =============================================================================

class TestErrorRecovery:
    """Tests for error recovery and diagnostics."""

    def test_missing_semicolon_recorded(self):
        """A missing ';' is reported and parsing continues."""
        program, diagnostics = parse_source_with_diagnostics(
            "void loop() {\n  digitalWrite(13, HIGH)\n}\nvoid setup() { }"
        )
        assert [f.name for f in program.functions] == ["loop", "setup"]
        assert len(diagnostics) == 1
        assert diagnostics[0].severity is Severity.ERROR
        assert "expected ';' after expression" in diagnostics[0].message
        assert diagnostics[0].location.line == 3

    def test_statements_after_error_kept(self):
        """Statements following a bad one are still parsed."""
        program, diagnostics = parse_source_with_diagnostics(
            "void loop() { x = ; delay(10); }"
        )
        body = program.get_function("loop").body.body
        assert len(body) == 1
        assert expression_to_source(body[0].expression) == "delay(10)"
        assert len(diagnostics) == 1

    def test_unterminated_body(self):
        """A body cut off by end of input is kept with an error."""
        program, diagnostics = parse_source_with_diagnostics("void loop() { delay(5);")
        assert len(program.get_function("loop").body.body) == 1
        assert diagnostics[0].message == "expected '}' before end of input"

    def test_never_raises(self):
        """Garbage input produces a Program, not an exception."""
        for source in (")))", "void", "int x = ", "{ } } {", "void f( { ;", "if else for"):
            program, _ = parse_source_with_diagnostics(source)
            assert program is not None

    def test_recovery_bound(self):
        """Parsing stops after max_recovery_attempts recoveries."""
        source = "void loop() {" + " = ;" * 20 + "}"
        program, diagnostics = parse_source_with_diagnostics(source, max_recovery_attempts=5)
        errors = [d for d in diagnostics if d.is_error]
        assert errors[-1].message == "parsing abandoned after 6 recovered errors"
        assert len(errors) == 6

    def test_default_bound(self):
        """The default recovery bound is 100."""
        parser = SketchParser(tokenize(""))
        assert parser.max_recovery_attempts == DEFAULT_MAX_RECOVERY_ATTEMPTS == 100

    def test_diagnostic_has_filename(self):
        """Diagnostics carry the filename given to the parser."""
        _, diagnostics = parse_source_with_diagnostics("void loop() { x = ; }", "bad.ino")
        assert str(diagnostics[0]).startswith("bad.ino:1:")

    def test_comment_tokens_ignored(self):
        """The parser accepts token lists that still contain comments."""
        tokens = tokenize("void loop() { /* c */ delay(1); // end\n}")
        program = SketchParser(tokens).parse()
        assert len(program.get_function("loop").body.body) == 1


# =============================================================================
# AST Utilities
# =============================================================================

class TestASTUtilities:
    """Tests for traversal, printing and source reconstruction."""

    def test_find_nodes(self):
        """find_nodes collects every node of a class."""
        calls = find_nodes(parse_source(BLINK), CallExpression)
        assert [c.callee_name for c in calls] == [
            "pinMode", "digitalWrite", "delay", "digitalWrite", "delay",
        ]

    def test_visitor_dispatch(self):
        """ASTVisitor dispatches to visit_<ClassName>."""

        class IdentifierCollector(ASTVisitor):
            def __init__(self):
                self.names = []

            def visit_Identifier(self, node):
                self.names.append(node.name)

        collector = IdentifierCollector()
        collector.visit(parse_source("void loop() { x = y + z; }"))
        assert collector.names == ["x", "y", "z"]

    def test_printer_ignores_layout(self):
        """Equivalent sources print identically."""
        compact = "void loop(){digitalWrite(13,HIGH);delay(1000);}"
        spaced = "void loop() {\n  digitalWrite(13, HIGH);\n\n  delay(1000);\n}"
        printer = ASTPrinter()
        assert printer.print(parse_source(compact)) == printer.print(parse_source(spaced))

    def test_printer_outline(self):
        """The printer emits an indented outline."""
        text = ASTPrinter().print(parse_source("void loop() { if (x) { y(); } }"))
        assert text.splitlines() == [
            "Program",
            "  Function: void loop()",
            "    Block",
            "      If (x)",
            "        Block",
            "          Expr: y()",
        ]

    def test_locations_not_compared(self):
        """Nodes compare equal regardless of location."""
        first = parse_source("void loop() { a = 1; }")
        second = parse_source("\n\nvoid loop() {\n a = 1;\n}")
        assert first == second

    @pytest.mark.parametrize("source", [
        "a + b * c",
        "(a + b) * c",
        "a - (b - c)",
        "!(a && b)",
        "x = y = 3",
        "Serial.println(x + 1)",
        "i++",
        "x = - -y",
        "-(a - b)",
        "!!ready",
    ])
    def test_expression_to_source(self, source):
        """Reconstruction keeps exactly the necessary parentheses."""
        assert expression_to_source(expression(source)) == source

    @pytest.mark.parametrize("operator,operand,expected", [
        ("-", "-y", "- -y"),
        ("+", "+y", "+ +y"),
        ("-", "--y", "- --y"),
        ("-", "y", "-y"),
        ("-", "+y", "-+y"),
        ("!", "!y", "!!y"),
        ("++", "i", "++i"),
    ])
    def test_join_prefix(self, operator, operand, expected):
        """Signs that would fuse into ++ or -- are separated."""
        assert join_prefix(operator, operand) == expected


# =============================================================================
# Degradation
# =============================================================================

def nesting_errors(source: str) -> list:
    program, diagnostics = parse_source_with_diagnostics(source)
    assert program is not None
    return [d for d in diagnostics if d.is_error and "nesting deeper than" in d.message]


class TestDegradation:
    """Tests for hostile input: deep nesting and binary data."""

    def test_deep_parentheses(self):
        """80 nested parentheses are reported, not a crash."""
        source = "void loop() { x = " + "(" * 80 + "1" + ")" * 80 + "; delay(5); }"
        program, diagnostics = parse_source_with_diagnostics(source)
        errors = [d for d in diagnostics if d.is_error]
        assert len(errors) == 1
        assert errors[0].message == f"nesting deeper than {MAX_NESTING_DEPTH} levels"
        body = program.get_function("loop").body.body
        assert expression_to_source(body[-1].expression) == "delay(5)"

    def test_moderate_parentheses_accepted(self):
        """Nesting within the limit parses without diagnostics."""
        source = "void loop() { x = " + "(" * 20 + "1" + ")" * 20 + "; }"
        program, diagnostics = parse_source_with_diagnostics(source)
        assert diagnostics == []
        assert len(program.get_function("loop").body.body) == 1

    def test_long_prefix_chain(self):
        """2000 '!' operators are reported, not a crash."""
        assert nesting_errors("void loop() { x = " + "!" * 2000 + "y; }")

    def test_long_binary_chain(self):
        """A 2000-term sum exceeds the tree depth limit."""
        errors = nesting_errors("void loop() { x = " + " + ".join(["1"] * 2000) + "; }")
        assert errors[0].message == f"nesting deeper than {MAX_TREE_DEPTH} levels"

    def test_deep_blocks(self):
        """Deeply nested braces are reported, not a crash."""
        assert nesting_errors("void loop() " + "{" * 300 + "}" * 300)

    def test_deep_if_chain(self):
        """Nested if statements hit the statement nesting limit."""
        assert nesting_errors("void loop() { " + "if (a) " * 200 + "x = 1; }")

    def test_deep_call_arguments(self):
        """Nested call arguments hit the nesting limit."""
        assert nesting_errors("void loop() { " + "f(" * 100 + "1" + ")" * 100 + "; }")

    def test_binary_garbage(self):
        """Every byte value decoded as text parses to a Program."""
        program, _ = parse_source_with_diagnostics(bytes(range(256)).decode("latin-1"))
        assert program is not None

    def test_binary_garbage_in_body(self):
        """Garbage inside a function body leaves the function in place."""
        garbage = bytes(range(1, 128)).decode("ascii").replace("}", "")
        program, _ = parse_source_with_diagnostics("void loop() { " + garbage + " }")
        assert program is not None

    def test_limits_reset_between_parses(self):
        """A parser object can be reused after an over-deep input."""
        deep = "void loop() { x = " + "(" * 80 + "1" + ")" * 80 + "; }"
        parser = SketchParser(tokenize(deep))
        parser.parse()
        assert parser.diagnostics
        parser.tokens = [t for t in tokenize("void loop() { x = (((1))); }")]
        parser.parse()
        assert parser.diagnostics == []
