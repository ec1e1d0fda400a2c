"""
Arduino Sketch Lexer (Tokenizer)
================================

This module implements a lexer for the subset of Arduino C that the block
toolchain understands. It converts source text into a flat stream of tokens
for the parser.

Token Categories
----------------
- Keywords: void, int, float, char, boolean, String, if, else, for, ...
- Arduino constants: HIGH, LOW, INPUT, OUTPUT, INPUT_PULLUP
- Identifiers: variable and function names (A0..An are plain identifiers)
- Numbers: digits with at most one decimal point
- Strings: "double quoted" or 'single quoted', quotes kept in the value
- Operators: + - * / % = += ++ -- == != < <= > >= && || !
- Delimiters: ( ) { } ; , .
- Comments: // line and /* block */, kept as COMMENT tokens

Fault Tolerance
---------------
The lexer never fails. A character it does not recognise is skipped
without producing a token, an unterminated string or block comment simply
runs to the end of the input.

Example Usage
-------------
>>> from sketchblocks.arduino.lexer import SketchLexer
>>> for token in SketchLexer("delay(1000);").tokenize():
...     print(token)
Token(IDENTIFIER, 'delay', 1:1)
Token(LEFT_PAREN, '(', 1:6)
Token(NUMBER, '1000', 1:7)
Token(RIGHT_PAREN, ')', 1:11)
Token(SEMICOLON, ';', 1:12)
Token(EOF, '', 1:13)
"""

from dataclasses import dataclass
from enum import Enum, auto
from typing import Iterator
import logging
import string

from sketchblocks.errors import SourceLocation

logger = logging.getLogger(__name__)


# =============================================================================
# Token Type Enumeration
# =============================================================================

class TokenType(Enum):
    """
    Token types for Arduino sketches.

    Arduino constants get their own token types so the parser can turn
    them into literals without consulting a symbol table.
    """

    # === Literals and Names ===
    NUMBER = auto()         # 13, 2.5
    STRING = auto()         # "text" or 'c'
    IDENTIFIER = auto()     # Variable/function names
    BOOLEAN = auto()        # true / false

    # === Keywords - Types ===
    VOID = auto()           # void
    INT = auto()            # int
    FLOAT = auto()          # float
    CHAR = auto()           # char
    BOOLEAN_TYPE = auto()   # boolean
    STRING_TYPE = auto()    # String
    LONG = auto()           # long
    BYTE = auto()           # byte
    UNSIGNED = auto()       # unsigned (prefix only)

    # === Keywords - Control Flow ===
    IF = auto()             # if
    ELSE = auto()           # else
    FOR = auto()            # for
    WHILE = auto()          # while
    RETURN = auto()         # return

    # === Arduino Constants ===
    HIGH = auto()           # HIGH
    LOW = auto()            # LOW
    INPUT = auto()          # INPUT
    OUTPUT = auto()         # OUTPUT
    INPUT_PULLUP = auto()   # INPUT_PULLUP

    # === Assignment Operators ===
    ASSIGN = auto()         # =
    PLUS_ASSIGN = auto()    # +=

    # === Arithmetic Operators ===
    PLUS = auto()           # +
    MINUS = auto()          # -
    MULTIPLY = auto()       # *
    DIVIDE = auto()         # /
    MODULO = auto()         # %
    INCREMENT = auto()      # ++
    DECREMENT = auto()      # --

    # === Comparison Operators ===
    EQUAL = auto()          # ==
    NOT_EQUAL = auto()      # !=
    LESS_THAN = auto()      # <
    LESS_EQUAL = auto()     # <=
    GREATER_THAN = auto()   # >
    GREATER_EQUAL = auto()  # >=

    # === Logical Operators ===
    LOGICAL_AND = auto()    # &&
    LOGICAL_OR = auto()     # ||
    LOGICAL_NOT = auto()    # !

    # === Delimiters ===
    SEMICOLON = auto()      # ;
    COMMA = auto()          # ,
    DOT = auto()            # .
    LEFT_PAREN = auto()     # (
    RIGHT_PAREN = auto()    # )
    LEFT_BRACE = auto()     # {
    RIGHT_BRACE = auto()    # }

    # === Trivia ===
    COMMENT = auto()        # // ... or /* ... */
    EOF = auto()            # End of input


# =============================================================================
# Keyword and Operator Tables
# =============================================================================

KEYWORDS: dict[str, TokenType] = {
    # Types
    "void": TokenType.VOID,
    "int": TokenType.INT,
    "float": TokenType.FLOAT,
    "char": TokenType.CHAR,
    "boolean": TokenType.BOOLEAN_TYPE,
    "String": TokenType.STRING_TYPE,
    "long": TokenType.LONG,
    "byte": TokenType.BYTE,
    "unsigned": TokenType.UNSIGNED,

    # Control flow
    "if": TokenType.IF,
    "else": TokenType.ELSE,
    "for": TokenType.FOR,
    "while": TokenType.WHILE,
    "return": TokenType.RETURN,

    # Literals and Arduino constants
    "true": TokenType.BOOLEAN,
    "false": TokenType.BOOLEAN,
    "HIGH": TokenType.HIGH,
    "LOW": TokenType.LOW,
    "INPUT": TokenType.INPUT,
    "OUTPUT": TokenType.OUTPUT,
    "INPUT_PULLUP": TokenType.INPUT_PULLUP,
}

TYPE_TOKENS = frozenset({
    TokenType.VOID,
    TokenType.INT,
    TokenType.FLOAT,
    TokenType.CHAR,
    TokenType.BOOLEAN_TYPE,
    TokenType.STRING_TYPE,
    TokenType.LONG,
    TokenType.BYTE,
})

CONSTANT_TOKENS = frozenset({
    TokenType.HIGH,
    TokenType.LOW,
    TokenType.INPUT,
    TokenType.OUTPUT,
    TokenType.INPUT_PULLUP,
})

# Two-character operators are matched before single characters
DOUBLE_CHAR_OPERATORS: dict[str, TokenType] = {
    "==": TokenType.EQUAL,
    "!=": TokenType.NOT_EQUAL,
    "<=": TokenType.LESS_EQUAL,
    ">=": TokenType.GREATER_EQUAL,
    "&&": TokenType.LOGICAL_AND,
    "||": TokenType.LOGICAL_OR,
    "++": TokenType.INCREMENT,
    "--": TokenType.DECREMENT,
    "+=": TokenType.PLUS_ASSIGN,
}

SINGLE_CHAR_OPERATORS: dict[str, TokenType] = {
    "=": TokenType.ASSIGN,
    "+": TokenType.PLUS,
    "-": TokenType.MINUS,
    "*": TokenType.MULTIPLY,
    "/": TokenType.DIVIDE,
    "%": TokenType.MODULO,
    "<": TokenType.LESS_THAN,
    ">": TokenType.GREATER_THAN,
    "!": TokenType.LOGICAL_NOT,
    ";": TokenType.SEMICOLON,
    ",": TokenType.COMMA,
    ".": TokenType.DOT,
    "(": TokenType.LEFT_PAREN,
    ")": TokenType.RIGHT_PAREN,
    "{": TokenType.LEFT_BRACE,
    "}": TokenType.RIGHT_BRACE,
}


# =============================================================================
# Token Data Class
# =============================================================================

@dataclass(frozen=True)
class Token:
    """
    A single token from sketch source.

    Attributes:
        type: The TokenType classification
        value: Exact source text of the token (quotes and comment markers kept)
        start: Offset of the first character
        end: Offset one past the last character
        line: Line number in source (1-indexed)
        column: Column number in source (1-indexed)
        filename: Name of the source file
    """
    type: TokenType
    value: str
    start: int
    end: int
    line: int
    column: int
    filename: str = "<sketch>"

    def __repr__(self) -> str:
        return f"Token({self.type.name}, {self.value!r}, {self.line}:{self.column})"

    @property
    def location(self) -> SourceLocation:
        """Return a SourceLocation for error reporting."""
        return SourceLocation(self.filename, self.line, self.column)

    def is_type_keyword(self) -> bool:
        """Return True if this token names a declaration type."""
        return self.type in TYPE_TOKENS or self.type is TokenType.UNSIGNED


# =============================================================================
# Lexer Implementation
# =============================================================================

class SketchLexer:
    """
    Tokenizes Arduino sketch source.

    Usage:
        lexer = SketchLexer(source_text, filename)
        tokens = list(lexer.tokenize())

    Attributes:
        source: The source code being tokenized
        filename: Name of the source file (for diagnostics)
        keep_comments: Emit COMMENT tokens (default True)
    """

    IDENT_START = string.ascii_letters + "_"
    IDENT_CHARS = string.ascii_letters + string.digits + "_"

    def __init__(
        self,
        source: str,
        filename: str = "<sketch>",
        keep_comments: bool = True,
    ):
        self.source = source
        self.filename = filename
        self.keep_comments = keep_comments

        self._pos = 0
        self._line = 1
        self._column = 1
        self._skipped = 0

    def tokenize(self) -> Iterator[Token]:
        """
        Generate tokens from the source code.

        Yields:
            Token objects, always ending with an EOF token
        """
        while True:
            self._skip_whitespace()
            if self._at_end():
                break

            token = self._scan_token()
            if token is None:
                continue
            if token.type is TokenType.COMMENT and not self.keep_comments:
                continue
            yield token

        if self._skipped:
            logger.debug(f"{self.filename}: skipped {self._skipped} unrecognised characters")

        yield Token(
            TokenType.EOF, "", self._pos, self._pos,
            self._line, self._column, self.filename,
        )

    # =========================================================================
    # Character Access Methods
    # =========================================================================

    def _at_end(self) -> bool:
        return self._pos >= len(self.source)

    def _peek(self, offset: int = 0) -> str:
        """Look ahead without consuming; empty string past the end."""
        pos = self._pos + offset
        if pos >= len(self.source):
            return ""
        return self.source[pos]

    def _advance(self) -> str:
        """Consume one character, keeping line and column current."""
        if self._at_end():
            return ""

        char = self.source[self._pos]
        self._pos += 1

        if char == "\n":
            self._line += 1
            self._column = 1
        else:
            self._column += 1

        return char

    def _skip_whitespace(self) -> None:
        while not self._at_end() and self._peek() in " \t\r\n\f\v":
            self._advance()

    # =========================================================================
    # Token Scanning
    # =========================================================================

    def _scan_token(self) -> Token | None:
        """
        Scan one token at the current position.

        Returns None when the character is not part of the language and
        was skipped.
        """
        start = self._pos
        line = self._line
        column = self._column
        char = self._peek()

        if char == "/" and self._peek(1) == "/":
            self._scan_line_comment()
            return self._token(TokenType.COMMENT, start, line, column)

        if char == "/" and self._peek(1) == "*":
            self._scan_block_comment()
            return self._token(TokenType.COMMENT, start, line, column)

        if char in "\"'":
            self._scan_string(char)
            return self._token(TokenType.STRING, start, line, column)

        if char in string.digits:
            self._scan_number()
            return self._token(TokenType.NUMBER, start, line, column)

        if char in self.IDENT_START:
            while not self._at_end() and self._peek() in self.IDENT_CHARS:
                self._advance()
            text = self.source[start:self._pos]
            token_type = KEYWORDS.get(text, TokenType.IDENTIFIER)
            return self._token(token_type, start, line, column)

        pair = char + self._peek(1)
        if pair in DOUBLE_CHAR_OPERATORS:
            self._advance()
            self._advance()
            return self._token(DOUBLE_CHAR_OPERATORS[pair], start, line, column)

        if char in SINGLE_CHAR_OPERATORS:
            self._advance()
            return self._token(SINGLE_CHAR_OPERATORS[char], start, line, column)

        # Unknown character: not an error, just dropped
        self._advance()
        self._skipped += 1
        return None

    def _token(self, token_type: TokenType, start: int, line: int, column: int) -> Token:
        return Token(
            type=token_type,
            value=self.source[start:self._pos],
            start=start,
            end=self._pos,
            line=line,
            column=column,
            filename=self.filename,
        )

    def _scan_line_comment(self) -> None:
        while not self._at_end() and self._peek() != "\n":
            self._advance()

    def _scan_block_comment(self) -> None:
        """Consume /* ... */; an unterminated comment runs to the end."""
        self._advance()
        self._advance()
        while not self._at_end():
            if self._peek() == "*" and self._peek(1) == "/":
                self._advance()
                self._advance()
                return
            self._advance()

    def _scan_string(self, quote: str) -> None:
        """
        Consume a quoted literal.

        A backslash copies the following character without interpretation.
        An unterminated literal runs to the end of the input.
        """
        self._advance()
        while not self._at_end():
            char = self._advance()
            if char == "\\":
                self._advance()
            elif char == quote:
                return

    def _scan_number(self) -> None:
        """Digits with at most one decimal point; a second '.' ends the number."""
        seen_dot = False
        while not self._at_end():
            char = self._peek()
            if char in string.digits:
                self._advance()
            elif char == "." and not seen_dot:
                seen_dot = True
                self._advance()
            else:
                break


# =============================================================================
# Convenience Functions
# =============================================================================

def tokenize(source: str, filename: str = "<sketch>", keep_comments: bool = True) -> list[Token]:
    """
    Tokenize sketch source into a list.

    Args:
        source: Sketch source text
        filename: Name used in token locations
        keep_comments: Emit COMMENT tokens

    Returns:
        List of tokens ending with EOF
    """
    return list(SketchLexer(source, filename, keep_comments).tokenize())
