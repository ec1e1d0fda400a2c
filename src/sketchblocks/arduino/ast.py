"""
Sketch Abstract Syntax Tree (AST) Definitions
=============================================

This module defines the AST node types produced by the sketch parser,
together with the traversal helpers used by the block converter.

Node Hierarchy
--------------
ASTNode (base)
├── Program - root node containing top-level declarations
├── Declarations
│   ├── FunctionDeclaration - function definition
│   ├── Parameter - function parameter
│   └── VariableDeclaration - global or local variable
├── Statements
│   ├── BlockStatement - compound statement { ... }
│   ├── IfStatement - if/else statement
│   ├── ForStatement - for loop
│   ├── WhileStatement - while loop
│   ├── ReturnStatement - return statement
│   └── ExpressionStatement - expression as statement
└── Expressions
    ├── CallExpression - function or method call
    ├── BinaryExpression - binary operators
    ├── UnaryExpression - prefix and postfix unary operators
    ├── AssignmentExpression - = and +=
    ├── MemberExpression - object.property
    ├── Identifier - variable reference
    ├── Literal - number, string, boolean or Arduino constant
    └── ArduinoPin - analog pin name such as A0

Design Notes
------------
- Every node stores its source location; locations are excluded from
  equality so two parses of differently formatted code compare equal.
- Operators are kept as their source spelling ("+", "&&", "++").
- The tree is built once by the parser and only read afterwards.
"""

from dataclasses import dataclass, field
from typing import Callable, Iterator, Optional, Union
import re

from sketchblocks.errors import SourceLocation


# =============================================================================
# AST Node Base Classes
# =============================================================================

@dataclass
class ASTNode:
    """
    Base class for all AST nodes.

    Attributes:
        location: Source location where this node appears
    """
    location: SourceLocation = field(compare=False, repr=False)

    def children(self) -> Iterator["ASTNode"]:
        """Yield direct child nodes in source order."""
        for value in self.__dict__.values():
            if isinstance(value, ASTNode):
                yield value
            elif isinstance(value, list):
                for item in value:
                    if isinstance(item, ASTNode):
                        yield item


@dataclass
class Expression(ASTNode):
    """Base class for nodes that produce a value."""
    pass


@dataclass
class Statement(ASTNode):
    """Base class for nodes executed for their effect."""
    pass


# =============================================================================
# Program and Declarations
# =============================================================================

@dataclass
class Parameter(ASTNode):
    """
    Function parameter.

    Attributes:
        data_type: Declared type spelling ("int", "unsigned long", ...)
        name: Parameter name
    """
    data_type: str = "int"
    name: str = ""


@dataclass
class VariableDeclaration(Statement):
    """
    Variable declaration, global or local.

    Attributes:
        data_type: Declared type spelling
        name: Variable name
        initializer: Optional initial value
    """
    data_type: str = "int"
    name: str = ""
    initializer: Optional[Expression] = None


@dataclass
class BlockStatement(Statement):
    """Compound statement { ... }."""
    body: list[Statement] = field(default_factory=list)


@dataclass
class FunctionDeclaration(ASTNode):
    """
    Function definition.

    Attributes:
        name: Function name ("setup", "loop", or a user function)
        return_type: Declared return type spelling
        params: Parameter list
        body: Function body
    """
    name: str = ""
    return_type: str = "void"
    params: list[Parameter] = field(default_factory=list)
    body: BlockStatement = None


@dataclass
class Program(ASTNode):
    """
    Root node of a parsed sketch.

    Attributes:
        body: Top-level function and variable declarations in source order
    """
    body: list[Union[FunctionDeclaration, VariableDeclaration]] = field(default_factory=list)

    def get_function(self, name: str) -> Optional[FunctionDeclaration]:
        """Return the first function with the given name, if any."""
        for node in self.body:
            if isinstance(node, FunctionDeclaration) and node.name == name:
                return node
        return None

    @property
    def functions(self) -> list[FunctionDeclaration]:
        return [n for n in self.body if isinstance(n, FunctionDeclaration)]

    @property
    def globals(self) -> list[VariableDeclaration]:
        return [n for n in self.body if isinstance(n, VariableDeclaration)]


# =============================================================================
# Statement Nodes
# =============================================================================

@dataclass
class IfStatement(Statement):
    """
    If/else statement.

    Attributes:
        test: Condition expression
        consequent: Statement run when the condition holds
        alternate: Optional else statement (another IfStatement for else-if)
    """
    test: Expression = None
    consequent: Statement = None
    alternate: Optional[Statement] = None


@dataclass
class ForStatement(Statement):
    """
    For loop statement.

    Attributes:
        init: Declaration or expression run once, or None
        test: Loop condition, or None
        update: Expression run after each iteration, or None
        body: Loop body
    """
    init: Optional[Union[VariableDeclaration, Expression]] = None
    test: Optional[Expression] = None
    update: Optional[Expression] = None
    body: Statement = None


@dataclass
class WhileStatement(Statement):
    """While loop statement."""
    test: Expression = None
    body: Statement = None


@dataclass
class ReturnStatement(Statement):
    """Return statement with an optional value."""
    argument: Optional[Expression] = None


@dataclass
class ExpressionStatement(Statement):
    """Expression evaluated for its side effects."""
    expression: Expression = None


# =============================================================================
# Expression Nodes
# =============================================================================

@dataclass
class Identifier(Expression):
    """Reference to a variable or function name."""
    name: str = ""


@dataclass
class Literal(Expression):
    """
    Literal value.

    Numbers carry a float value, strings their unquoted text, and
    booleans and Arduino constants their spelling.

    Attributes:
        value: Interpreted value
        raw: Exact source text
    """
    value: Union[float, str] = ""
    raw: str = ""

    @property
    def is_number(self) -> bool:
        return isinstance(self.value, float)


@dataclass
class ArduinoPin(Expression):
    """
    Analog pin reference such as A0.

    Any identifier spelled A<digits> becomes a pin, so a variable with
    such a name cannot be referenced as a variable.
    """
    pin: str = ""
    is_analog: bool = True


@dataclass
class MemberExpression(Expression):
    """Member access object.property (Serial.begin)."""
    object: Expression = None
    property: str = ""


@dataclass
class CallExpression(Expression):
    """
    Function or method call.

    Attributes:
        callee: Identifier or MemberExpression being called
        arguments: Argument expressions
    """
    callee: Expression = None
    arguments: list[Expression] = field(default_factory=list)

    @property
    def callee_name(self) -> str:
        """Dotted name of the callee ("delay", "Serial.print")."""
        return expression_to_source(self.callee)


@dataclass
class BinaryExpression(Expression):
    """Binary operation such as a + b or a && b."""
    operator: str = ""
    left: Expression = None
    right: Expression = None


@dataclass
class UnaryExpression(Expression):
    """
    Unary operation.

    Attributes:
        operator: "!", "-", "+", "++" or "--"
        argument: Operand
        prefix: False for postfix i++ / i--
    """
    operator: str = ""
    argument: Expression = None
    prefix: bool = True


@dataclass
class AssignmentExpression(Expression):
    """Assignment target = value or target += value."""
    operator: str = "="
    left: Expression = None
    right: Expression = None


# =============================================================================
# Arduino Vocabulary
# =============================================================================

ANALOG_PIN_PATTERN = re.compile(r"^A\d+$")


def is_analog_pin(name: str) -> bool:
    """Return True for names spelled A<digits>."""
    return bool(ANALOG_PIN_PATTERN.match(name))


# =============================================================================
# Traversal Utilities
# =============================================================================

def traverse(
    node: ASTNode,
    visitor: Callable[[ASTNode, Optional[ASTNode]], None],
    parent: Optional[ASTNode] = None,
) -> None:
    """
    Walk the tree in pre-order, calling visitor(node, parent) for every node.
    """
    visitor(node, parent)
    for child in node.children():
        traverse(child, visitor, node)


def find_nodes(root: ASTNode, node_class: type) -> list:
    """Return every node under root (inclusive) that is an instance of node_class."""
    found = []

    def collect(node: ASTNode, parent: Optional[ASTNode]) -> None:
        if isinstance(node, node_class):
            found.append(node)

    traverse(root, collect)
    return found


class ASTVisitor:
    """
    Base class for AST visitors.

    Subclasses override visit_* methods for the node types they care
    about; everything else falls through to generic_visit, which visits
    the children.

    Usage:
        class CallCounter(ASTVisitor):
            def __init__(self):
                self.count = 0

            def visit_CallExpression(self, node):
                self.count += 1
                self.generic_visit(node)
    """

    def visit(self, node: ASTNode):
        method_name = f"visit_{node.__class__.__name__}"
        visitor = getattr(self, method_name, self.generic_visit)
        return visitor(node)

    def generic_visit(self, node: ASTNode) -> None:
        for child in node.children():
            self.visit(child)


# =============================================================================
# Source Reconstruction
# =============================================================================

# Binding strength, higher binds tighter
PRECEDENCE: dict[str, int] = {
    "=": 1, "+=": 1,
    "||": 2,
    "&&": 3,
    "==": 4, "!=": 4,
    "<": 5, "<=": 5, ">": 5, ">=": 5,
    "+": 6, "-": 6,
    "*": 7, "/": 7, "%": 7,
}
UNARY_PRECEDENCE = 8
POSTFIX_PRECEDENCE = 9
PRIMARY_PRECEDENCE = 10


def expression_precedence(expr: ASTNode) -> int:
    """Binding strength of the outermost operator of expr."""
    if isinstance(expr, (BinaryExpression, AssignmentExpression)):
        return PRECEDENCE.get(expr.operator, PRIMARY_PRECEDENCE)
    if isinstance(expr, UnaryExpression):
        return UNARY_PRECEDENCE if expr.prefix else POSTFIX_PRECEDENCE
    if isinstance(expr, (CallExpression, MemberExpression)):
        return POSTFIX_PRECEDENCE
    return PRIMARY_PRECEDENCE


def expression_to_source(expr: Optional[ASTNode]) -> str:
    """
    Reconstruct source text for an expression.

    Parentheses are inserted only where operator precedence requires
    them, so `(a + b) * c` survives while `a + b * c` stays bare.
    """
    if expr is None:
        return ""
    if isinstance(expr, Literal):
        return expr.raw
    if isinstance(expr, Identifier):
        return expr.name
    if isinstance(expr, ArduinoPin):
        return expr.pin
    if isinstance(expr, MemberExpression):
        return f"{_operand(expr.object, POSTFIX_PRECEDENCE)}.{expr.property}"
    if isinstance(expr, CallExpression):
        args = ", ".join(expression_to_source(a) for a in expr.arguments)
        return f"{_operand(expr.callee, POSTFIX_PRECEDENCE)}({args})"
    if isinstance(expr, UnaryExpression):
        if expr.prefix:
            return join_prefix(expr.operator, _operand(expr.argument, UNARY_PRECEDENCE))
        return f"{_operand(expr.argument, POSTFIX_PRECEDENCE)}{expr.operator}"
    if isinstance(expr, AssignmentExpression):
        # Right associative: only the left side needs a tighter operand
        level = PRECEDENCE[expr.operator]
        left = _operand(expr.left, level + 1)
        return f"{left} {expr.operator} {_operand(expr.right, level)}"
    if isinstance(expr, BinaryExpression):
        level = PRECEDENCE.get(expr.operator, PRIMARY_PRECEDENCE)
        left = _operand(expr.left, level)
        right = _operand(expr.right, level + 1)
        return f"{left} {expr.operator} {right}"
    if isinstance(expr, VariableDeclaration):
        init = f" = {expression_to_source(expr.initializer)}" if expr.initializer else ""
        return f"{expr.data_type} {expr.name}{init}"
    return f"<{type(expr).__name__}>"


def join_prefix(operator: str, operand: str) -> str:
    """
    Prefix an operand with a unary operator.

    A space separates signs that would otherwise fuse into ++ or --,
    so "- -y" does not become a decrement.
    """
    if operator[-1] in "+-" and operand[:1] == operator[-1]:
        return f"{operator} {operand}"
    return f"{operator}{operand}"


def _operand(expr: ASTNode, minimum: int) -> str:
    text = expression_to_source(expr)
    if expression_precedence(expr) < minimum:
        return f"({text})"
    return text


# =============================================================================
# AST Printer (for debugging and structural comparison)
# =============================================================================

class ASTPrinter(ASTVisitor):
    """
    Pretty-prints an AST as an indented outline.

    Locations are omitted, so the output of two parses of equivalent
    code is identical regardless of formatting.

    Usage:
        printer = ASTPrinter()
        print(printer.print(program))
    """

    def __init__(self, indent: str = "  "):
        self.indent_str = indent
        self.indent_level = 0
        self.output: list[str] = []

    def print(self, node: ASTNode) -> str:
        self.output = []
        self.indent_level = 0
        self.visit(node)
        return "\n".join(self.output)

    def _emit(self, text: str) -> None:
        self.output.append(self.indent_str * self.indent_level + text)

    def _indent(self) -> None:
        self.indent_level += 1

    def _dedent(self) -> None:
        self.indent_level = max(0, self.indent_level - 1)

    def _nested(self, node: Optional[ASTNode]) -> None:
        if node is None:
            return
        self._indent()
        self.visit(node)
        self._dedent()

    def visit_Program(self, node: Program):
        self._emit("Program")
        self._indent()
        for decl in node.body:
            self.visit(decl)
        self._dedent()

    def visit_FunctionDeclaration(self, node: FunctionDeclaration):
        params = ", ".join(f"{p.data_type} {p.name}" for p in node.params)
        self._emit(f"Function: {node.return_type} {node.name}({params})")
        self._nested(node.body)

    def visit_VariableDeclaration(self, node: VariableDeclaration):
        self._emit(f"Variable: {expression_to_source(node)}")

    def visit_BlockStatement(self, node: BlockStatement):
        self._emit("Block")
        self._indent()
        for stmt in node.body:
            self.visit(stmt)
        self._dedent()

    def visit_IfStatement(self, node: IfStatement):
        self._emit(f"If ({expression_to_source(node.test)})")
        self._nested(node.consequent)
        if node.alternate is not None:
            self._emit("Else")
            self._nested(node.alternate)

    def visit_ForStatement(self, node: ForStatement):
        init = expression_to_source(node.init)
        test = expression_to_source(node.test)
        update = expression_to_source(node.update)
        self._emit(f"For ({init}; {test}; {update})")
        self._nested(node.body)

    def visit_WhileStatement(self, node: WhileStatement):
        self._emit(f"While ({expression_to_source(node.test)})")
        self._nested(node.body)

    def visit_ReturnStatement(self, node: ReturnStatement):
        if node.argument is not None:
            self._emit(f"Return {expression_to_source(node.argument)}")
        else:
            self._emit("Return")

    def visit_ExpressionStatement(self, node: ExpressionStatement):
        self._emit(f"Expr: {expression_to_source(node.expression)}")

    def generic_visit(self, node: ASTNode):
        self._emit(f"{type(node).__name__}: {expression_to_source(node)}")
