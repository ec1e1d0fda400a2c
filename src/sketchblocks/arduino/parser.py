"""
Arduino Sketch Recursive Descent Parser
=======================================

This module implements a recursive descent parser for the Arduino sketch
subset. It takes the token stream from the lexer (comments removed) and
builds the AST defined in sketchblocks.arduino.ast.

Grammar (Simplified EBNF)
-------------------------
program         ::= (function_def | variable_decl | ';')*
function_def    ::= type_spec IDENTIFIER '(' params? ')' block
variable_decl   ::= type_spec IDENTIFIER ('=' expr)? ';'
type_spec       ::= 'unsigned'? ('void' | 'int' | 'float' | 'char' | 'boolean'
                  | 'String' | 'long' | 'byte')
params          ::= param (',' param)*
param           ::= type_spec IDENTIFIER

block           ::= '{' statement* '}'
statement       ::= if_stmt | for_stmt | while_stmt | return_stmt
                  | block | variable_decl | expr_stmt
if_stmt         ::= 'if' '(' expr ')' statement ('else' statement)?
for_stmt        ::= 'for' '(' (variable_decl | expr? ';') expr? ';' expr? ')' statement
while_stmt      ::= 'while' '(' expr ')' statement
return_stmt     ::= 'return' expr? ';'
expr_stmt       ::= expr ';'

Expression Precedence (lowest to highest)
-----------------------------------------
1.  assignment     = +=  (right associative)
2.  logical_or     ||
3.  logical_and    &&
4.  equality       == !=
5.  relational     < <= > >=
6.  additive       + -
7.  multiplicative * / %
8.  unary          ! - + ++ --
9.  postfix        () . ++ --
10. primary        NUMBER, STRING, IDENTIFIER, constants, '(' expr ')'

Error Recovery
--------------
The parser never raises on malformed input. A syntax error inside a
statement or top-level declaration is recorded as a diagnostic, tokens are
skipped up to the next ';' (consumed) or '}' (left in place), and parsing
resumes. After max_recovery_attempts recoveries the parser gives up and
returns the declarations completed so far.

Example Usage
-------------
>>> from sketchblocks.arduino.parser import parse_source
>>> program = parse_source("void setup() { pinMode(13, OUTPUT); }")
>>> program.body[0].name
'setup'
"""

from typing import Callable, Optional
import logging

from sketchblocks.errors import SourceLocation
from sketchblocks.arduino.errors import (
    Diagnostic,
    DiagnosticCollector,
    MissingTokenError,
    NestingTooDeepError,
    SketchSyntaxError,
    UnexpectedTokenError,
)
from sketchblocks.arduino.lexer import (
    CONSTANT_TOKENS,
    TYPE_TOKENS,
    SketchLexer,
    Token,
    TokenType,
)
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
    Parameter,
    Program,
    ReturnStatement,
    Statement,
    UnaryExpression,
    VariableDeclaration,
    WhileStatement,
    is_analog_pin,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_RECOVERY_ATTEMPTS = 100

# Parentheses, call arguments, prefix operators, assignments and nested
# statements each add a level
MAX_NESTING_DEPTH = 32
# Nesting levels plus binary operator chains, bounding the AST height
MAX_TREE_DEPTH = 100


class _ParsingAbandoned(Exception):
    """Raised internally once the recovery budget is exhausted."""
    pass


# =============================================================================
# Parser Class
# =============================================================================

class SketchParser:
    """
    Recursive descent parser for Arduino sketches.

    Attributes:
        tokens: Token list, COMMENT tokens are dropped on construction
        filename: Source filename for diagnostics
        max_recovery_attempts: Number of error recoveries before giving up
    """

    def __init__(
        self,
        tokens: list[Token],
        filename: str = "<sketch>",
        source_lines: Optional[list[str]] = None,
        max_recovery_attempts: int = DEFAULT_MAX_RECOVERY_ATTEMPTS,
    ):
        self.tokens = [t for t in tokens if t.type is not TokenType.COMMENT]
        if not self.tokens or self.tokens[-1].type is not TokenType.EOF:
            line = self.tokens[-1].line if self.tokens else 1
            self.tokens.append(Token(TokenType.EOF, "", 0, 0, line, 1, filename))
        self.filename = filename
        self.source_lines = source_lines or []
        self.max_recovery_attempts = max_recovery_attempts

        self._pos = 0
        self._recoveries = 0
        self._nesting = 0
        self._tree_depth = 0
        self._collector = DiagnosticCollector(stage="parser")

    @property
    def diagnostics(self) -> list[Diagnostic]:
        """Diagnostics recorded by the last parse()."""
        return list(self._collector.diagnostics)

    def parse(self) -> Program:
        """
        Parse the token stream into an AST.

        Returns:
            Program containing every declaration that parsed, in source order
        """
        self._pos = 0
        self._recoveries = 0
        self._nesting = 0
        self._tree_depth = 0
        self._collector.clear()
        body = []

        try:
            while not self._at_end():
                try:
                    node = self._parse_top_level()
                    if node is not None:
                        body.append(node)
                except SketchSyntaxError as e:
                    self._recover(e)
        except _ParsingAbandoned:
            self._collector.add_error(
                f"parsing abandoned after {self._recoveries} recovered errors",
                self._peek().location,
            )
            logger.warning(f"{self.filename}: parsing abandoned after {self._recoveries} errors")
        except RecursionError:
            # Depth limits normally stop well before this; the caller's own
            # stack may already be deep
            self._collector.add_error("parsing abandoned: input nested too deeply", self._peek().location)
            logger.warning(f"{self.filename}: parsing abandoned, recursion limit reached")

        logger.debug(
            f"Parsed {len(body)} top-level declarations from {self.filename} "
            f"({len(self._collector.errors)} errors)"
        )
        return Program(location=SourceLocation(self.filename, 1, 1), body=body)

    # =========================================================================
    # Token Access Methods
    # =========================================================================

    def _at_end(self) -> bool:
        return self._peek().type is TokenType.EOF

    def _peek(self, offset: int = 0) -> Token:
        pos = self._pos + offset
        if pos >= len(self.tokens):
            return self.tokens[-1]
        return self.tokens[pos]

    def _advance(self) -> Token:
        token = self._peek()
        if not self._at_end():
            self._pos += 1
        return token

    def _check(self, *types: TokenType) -> bool:
        return self._peek().type in types

    def _match(self, *types: TokenType) -> Optional[Token]:
        """Consume the current token if it has one of the given types."""
        if self._check(*types):
            return self._advance()
        return None

    def _expect(self, token_type: TokenType, message: str = None) -> Token:
        """
        Expect and consume a specific token type.

        Raises:
            MissingTokenError: naming what was expected and what was found
        """
        if self._check(token_type):
            return self._advance()

        current = self._peek()
        if message is None:
            message = token_type.name.lower()

        raise MissingTokenError(
            message,
            found=f"{current.type.name} '{current.value}'",
            location=current.location,
            source_line=self._get_source_line(current.line),
        )

    def _get_source_line(self, line: int) -> Optional[str]:
        if 0 < line <= len(self.source_lines):
            return self.source_lines[line - 1]
        return None

    def _descend(self) -> None:
        """
        Enter a nested construct; every call is paired with _ascend().

        Raises:
            NestingTooDeepError: when either depth limit would be exceeded
        """
        if self._nesting >= MAX_NESTING_DEPTH or self._tree_depth >= MAX_TREE_DEPTH:
            token = self._peek()
            limit = MAX_NESTING_DEPTH if self._nesting >= MAX_NESTING_DEPTH else MAX_TREE_DEPTH
            raise NestingTooDeepError(
                limit,
                location=token.location,
                source_line=self._get_source_line(token.line),
            )
        self._nesting += 1
        self._tree_depth += 1

    def _ascend(self) -> None:
        self._nesting -= 1
        self._tree_depth -= 1

    def _recover(self, error: SketchSyntaxError) -> None:
        """
        Record a syntax error and skip to the next statement boundary.

        Skips up to ';' (consumed) or '}' (left for the enclosing block).
        """
        self._recoveries += 1
        if self._recoveries > self.max_recovery_attempts:
            raise _ParsingAbandoned()

        self._collector.add(error)
        logger.warning(f"Recovered from syntax error: {error.message} at {error.location}")

        while not self._at_end() and not self._check(TokenType.SEMICOLON, TokenType.RIGHT_BRACE):
            self._advance()
        self._match(TokenType.SEMICOLON)

    # =========================================================================
    # Type Specifiers
    # =========================================================================

    def _type_length(self, offset: int = 0) -> int:
        """Number of tokens in the type specifier at offset, 0 if none."""
        token = self._peek(offset)
        if token.type is TokenType.UNSIGNED:
            return 2 if self._peek(offset + 1).type in TYPE_TOKENS else 1
        return 1 if token.type in TYPE_TOKENS else 0

    def _parse_type(self) -> str:
        """Parse a type specifier and return its spelling ("unsigned long")."""
        length = self._type_length()
        if length == 0:
            token = self._peek()
            raise UnexpectedTokenError(
                token.value or token.type.name,
                expected="type name",
                location=token.location,
                source_line=self._get_source_line(token.line),
            )
        return " ".join(self._advance().value for _ in range(length))

    # =========================================================================
    # Top-Level Declarations
    # =========================================================================

    def _parse_top_level(self):
        """
        Parse one top-level function or variable declaration.

        Stray semicolons and tokens that cannot start a declaration are
        skipped one at a time and produce None.
        """
        while self._match(TokenType.SEMICOLON):
            pass
        if self._at_end():
            return None

        length = self._type_length()
        if length and self._peek(length).type is TokenType.IDENTIFIER:
            if self._peek(length + 1).type is TokenType.LEFT_PAREN:
                return self._parse_function()
            return self._parse_variable_declaration()

        skipped = self._advance()
        logger.debug(f"Skipping top-level token {skipped!r}")
        return None

    def _parse_function(self) -> FunctionDeclaration:
        location = self._peek().location
        return_type = self._parse_type()
        name = self._expect(TokenType.IDENTIFIER, "function name").value
        self._expect(TokenType.LEFT_PAREN, "'(' after function name")

        params = []
        if self._check(TokenType.VOID) and self._peek(1).type is TokenType.RIGHT_PAREN:
            self._advance()
        elif not self._check(TokenType.RIGHT_PAREN):
            params.append(self._parse_parameter())
            while self._match(TokenType.COMMA):
                params.append(self._parse_parameter())

        self._expect(TokenType.RIGHT_PAREN, "')' after parameters")
        body = self._parse_block()

        return FunctionDeclaration(
            location=location,
            name=name,
            return_type=return_type,
            params=params,
            body=body,
        )

    def _parse_parameter(self) -> Parameter:
        location = self._peek().location
        data_type = self._parse_type()
        name = self._expect(TokenType.IDENTIFIER, "parameter name").value
        return Parameter(location=location, data_type=data_type, name=name)

    def _parse_variable_declaration(self) -> VariableDeclaration:
        """Parse `type name [= expr];`, consuming the semicolon."""
        location = self._peek().location
        data_type = self._parse_type()
        name = self._expect(TokenType.IDENTIFIER, "variable name").value

        initializer = None
        if self._match(TokenType.ASSIGN):
            initializer = self._parse_expression()

        self._expect(TokenType.SEMICOLON, "';' after variable declaration")

        return VariableDeclaration(
            location=location,
            data_type=data_type,
            name=name,
            initializer=initializer,
        )

    # =========================================================================
    # Statements
    # =========================================================================

    def _parse_block(self) -> BlockStatement:
        """Parse a block statement { ... }."""
        location = self._peek().location
        self._expect(TokenType.LEFT_BRACE, "'{'")

        body = []
        while not self._check(TokenType.RIGHT_BRACE) and not self._at_end():
            stmt = self._parse_statement()
            if stmt is not None:
                body.append(stmt)

        if self._at_end():
            # Keep what was parsed of a body cut off by end of input
            self._collector.add_error("expected '}' before end of input", self._peek().location)
        else:
            self._advance()

        return BlockStatement(location=location, body=body)

    def _parse_statement(self) -> Optional[Statement]:
        """Parse any statement, recovering locally from syntax errors."""
        try:
            self._descend()
            try:
                return self._parse_statement_kind()
            finally:
                self._ascend()
        except SketchSyntaxError as e:
            self._recover(e)
            return None

    def _parse_statement_kind(self) -> Statement:
        token = self._peek()

        if token.type is TokenType.IF:
            return self._parse_if_statement()
        if token.type is TokenType.FOR:
            return self._parse_for_statement()
        if token.type is TokenType.WHILE:
            return self._parse_while_statement()
        if token.type is TokenType.RETURN:
            return self._parse_return_statement()
        if token.type is TokenType.LEFT_BRACE:
            return self._parse_block()
        if self._type_length():
            return self._parse_variable_declaration()

        return self._parse_expression_statement()

    def _parse_if_statement(self) -> IfStatement:
        location = self._advance().location
        self._expect(TokenType.LEFT_PAREN, "'(' after 'if'")
        test = self._parse_expression()
        self._expect(TokenType.RIGHT_PAREN, "')' after if condition")

        consequent = self._parse_statement()
        alternate = None
        if self._match(TokenType.ELSE):
            alternate = self._parse_statement()

        return IfStatement(
            location=location,
            test=test,
            consequent=consequent,
            alternate=alternate,
        )

    def _parse_for_statement(self) -> ForStatement:
        location = self._advance().location
        self._expect(TokenType.LEFT_PAREN, "'(' after 'for'")

        init = None
        if self._type_length():
            # Declaration consumes its own semicolon
            init = self._parse_variable_declaration()
        else:
            if not self._check(TokenType.SEMICOLON):
                init = self._parse_expression()
            self._expect(TokenType.SEMICOLON, "';' after for-loop initializer")

        test = None
        if not self._check(TokenType.SEMICOLON):
            test = self._parse_expression()
        self._expect(TokenType.SEMICOLON, "';' after for-loop condition")

        update = None
        if not self._check(TokenType.RIGHT_PAREN):
            update = self._parse_expression()
        self._expect(TokenType.RIGHT_PAREN, "')' after for-loop")

        body = self._parse_statement()

        return ForStatement(
            location=location,
            init=init,
            test=test,
            update=update,
            body=body,
        )

    def _parse_while_statement(self) -> WhileStatement:
        location = self._advance().location
        self._expect(TokenType.LEFT_PAREN, "'(' after 'while'")
        test = self._parse_expression()
        self._expect(TokenType.RIGHT_PAREN, "')' after while condition")
        body = self._parse_statement()
        return WhileStatement(location=location, test=test, body=body)

    def _parse_return_statement(self) -> ReturnStatement:
        location = self._advance().location
        argument = None
        if not self._check(TokenType.SEMICOLON):
            argument = self._parse_expression()
        self._expect(TokenType.SEMICOLON, "';' after return")
        return ReturnStatement(location=location, argument=argument)

    def _parse_expression_statement(self) -> ExpressionStatement:
        location = self._peek().location
        expression = self._parse_expression()
        self._expect(TokenType.SEMICOLON, "';' after expression")
        return ExpressionStatement(location=location, expression=expression)

    # =========================================================================
    # Expressions
    # =========================================================================

    def _parse_expression(self) -> Expression:
        return self._parse_assignment()

    def _parse_assignment(self) -> Expression:
        """Parse assignment expression (right-associative)."""
        expr = self._parse_logical_or()

        op_token = self._match(TokenType.ASSIGN, TokenType.PLUS_ASSIGN)
        if op_token:
            self._descend()
            try:
                value = self._parse_assignment()
            finally:
                self._ascend()
            return AssignmentExpression(
                location=expr.location,
                operator=op_token.value,
                left=expr,
                right=value,
            )

        return expr

    def _parse_logical_or(self) -> Expression:
        return self._parse_binary(self._parse_logical_and, {TokenType.LOGICAL_OR})

    def _parse_logical_and(self) -> Expression:
        return self._parse_binary(self._parse_equality, {TokenType.LOGICAL_AND})

    def _parse_equality(self) -> Expression:
        return self._parse_binary(
            self._parse_relational,
            {TokenType.EQUAL, TokenType.NOT_EQUAL},
        )

    def _parse_relational(self) -> Expression:
        return self._parse_binary(
            self._parse_additive,
            {
                TokenType.LESS_THAN,
                TokenType.LESS_EQUAL,
                TokenType.GREATER_THAN,
                TokenType.GREATER_EQUAL,
            },
        )

    def _parse_additive(self) -> Expression:
        return self._parse_binary(
            self._parse_multiplicative,
            {TokenType.PLUS, TokenType.MINUS},
        )

    def _parse_multiplicative(self) -> Expression:
        return self._parse_binary(
            self._parse_unary,
            {TokenType.MULTIPLY, TokenType.DIVIDE, TokenType.MODULO},
        )

    def _parse_binary(
        self,
        operand_parser: Callable[[], Expression],
        operators: set[TokenType],
    ) -> Expression:
        """
        Generic left-associative binary expression parser.

        Args:
            operand_parser: Function to parse operands
            operators: Token types accepted at this level
        """
        expr = operand_parser()

        # Each operator in a chain deepens the left-leaning tree
        depth = self._tree_depth
        try:
            while self._peek().type in operators:
                op_token = self._advance()
                if self._tree_depth >= MAX_TREE_DEPTH:
                    raise NestingTooDeepError(
                        MAX_TREE_DEPTH,
                        location=op_token.location,
                        source_line=self._get_source_line(op_token.line),
                    )
                self._tree_depth += 1
                right = operand_parser()
                expr = BinaryExpression(
                    location=expr.location,
                    operator=op_token.value,
                    left=expr,
                    right=right,
                )
        finally:
            self._tree_depth = depth

        return expr

    def _parse_unary(self) -> Expression:
        """Parse prefix unary expression (! - + ++ --)."""
        op_token = self._match(
            TokenType.LOGICAL_NOT,
            TokenType.MINUS,
            TokenType.PLUS,
            TokenType.INCREMENT,
            TokenType.DECREMENT,
        )
        if op_token:
            self._descend()
            try:
                argument = self._parse_unary()
            finally:
                self._ascend()
            return UnaryExpression(
                location=op_token.location,
                operator=op_token.value,
                argument=argument,
                prefix=True,
            )
        return self._parse_postfix()

    def _parse_postfix(self) -> Expression:
        """Parse postfix expression (calls, member access, ++, --)."""
        expr = self._parse_primary()

        while True:
            if self._match(TokenType.LEFT_PAREN):
                expr = self._parse_call(expr)

            elif self._match(TokenType.DOT):
                member = self._expect(TokenType.IDENTIFIER, "member name")
                expr = MemberExpression(
                    location=expr.location,
                    object=expr,
                    property=member.value,
                )

            elif self._check(TokenType.INCREMENT, TokenType.DECREMENT):
                op_token = self._advance()
                expr = UnaryExpression(
                    location=expr.location,
                    operator=op_token.value,
                    argument=expr,
                    prefix=False,
                )

            else:
                break

        return expr

    def _parse_call(self, callee: Expression) -> CallExpression:
        """Parse call arguments after the opening parenthesis."""
        arguments = []
        self._descend()
        try:
            if not self._check(TokenType.RIGHT_PAREN):
                arguments.append(self._parse_expression())
                while self._match(TokenType.COMMA):
                    arguments.append(self._parse_expression())
        finally:
            self._ascend()

        self._expect(TokenType.RIGHT_PAREN, "')' after arguments")

        return CallExpression(
            location=callee.location,
            callee=callee,
            arguments=arguments,
        )

    def _parse_primary(self) -> Expression:
        """Parse primary expression (literals, names, parenthesized)."""
        token = self._peek()

        if token.type is TokenType.NUMBER:
            self._advance()
            return Literal(location=token.location, value=float(token.value), raw=token.value)

        if token.type is TokenType.STRING:
            self._advance()
            return Literal(location=token.location, value=_unquote(token.value), raw=token.value)

        if token.type is TokenType.BOOLEAN or token.type in CONSTANT_TOKENS:
            self._advance()
            return Literal(location=token.location, value=token.value, raw=token.value)

        if token.type is TokenType.IDENTIFIER:
            self._advance()
            if is_analog_pin(token.value):
                return ArduinoPin(location=token.location, pin=token.value, is_analog=True)
            return Identifier(location=token.location, name=token.value)

        if token.type is TokenType.LEFT_PAREN:
            self._advance()
            self._descend()
            try:
                expr = self._parse_expression()
            finally:
                self._ascend()
            self._expect(TokenType.RIGHT_PAREN, "')'")
            return expr

        raise UnexpectedTokenError(
            token.value or token.type.name,
            expected="expression",
            location=token.location,
            source_line=self._get_source_line(token.line),
        )


def _unquote(raw: str) -> str:
    """Strip the delimiters of a string token (unterminated strings keep their tail)."""
    quote = raw[:1]
    inner = raw[1:]
    if len(raw) >= 2 and inner.endswith(quote):
        inner = inner[:-1]
    return inner


# =============================================================================
# Convenience Functions
# =============================================================================

def parse_source_with_diagnostics(
    source: str,
    filename: str = "<sketch>",
    max_recovery_attempts: int = DEFAULT_MAX_RECOVERY_ATTEMPTS,
) -> tuple[Program, list[Diagnostic]]:
    """
    Parse sketch source and return the AST with the parser's diagnostics.

    Never raises on malformed input.
    """
    lexer = SketchLexer(source, filename, keep_comments=False)
    tokens = list(lexer.tokenize())
    parser = SketchParser(
        tokens,
        filename,
        source_lines=source.splitlines(),
        max_recovery_attempts=max_recovery_attempts,
    )
    program = parser.parse()
    return program, parser.diagnostics


def parse_source(
    source: str,
    filename: str = "<sketch>",
    max_recovery_attempts: int = DEFAULT_MAX_RECOVERY_ATTEMPTS,
) -> Program:
    """
    Parse sketch source into an AST.

    This is a convenience function that combines lexing and parsing.

    Args:
        source: The sketch source code
        filename: Source filename for diagnostics

    Returns:
        The root Program node (possibly partial for malformed input)
    """
    program, _ = parse_source_with_diagnostics(source, filename, max_recovery_attempts)
    return program
