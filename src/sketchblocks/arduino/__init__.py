"""
Arduino Sketch Toolchain
========================

The stages that turn sketch source into blocks and blocks back into
sketch source.

Pipeline
--------
    Source → Lexer → Parser → AST → Converter → Workspace (blocks)
    Workspace → Code Generator → Source → Validator

Alongside the grammar-based path, the heuristic module offers a
pattern-based reader used as an opt-in fallback and for differential
testing, and blockxml reads and writes the block editor's XML format.

Usage
-----
>>> from sketchblocks.arduino import parse_source, ast_to_workspace, generate_code
>>> workspace = ast_to_workspace(parse_source('void setup() { pinMode(13, OUTPUT); } void loop() { }'))
>>> print(generate_code(workspace, include_timestamp=False).code)

Supported Subset
----------------
- Global declarations and functions; setup() and loop() become blocks
- if/else, for, while, return
- Assignment, arithmetic, comparison, logical and unary operators
- Arduino I/O calls, timing, Serial and math helpers
- Anything else is carried verbatim in raw code blocks
"""

from sketchblocks.arduino.errors import (
    SketchError,
    SketchSyntaxError,
    UnexpectedTokenError,
    MissingTokenError,
    NestingTooDeepError,
    format_report,
    ConversionError,
    CodeGenError,
    BlockStructureError,
    BlockXMLError,
    Severity,
    Diagnostic,
    DiagnosticCollector,
)
from sketchblocks.arduino.lexer import SketchLexer, TokenType, Token, tokenize
from sketchblocks.arduino.parser import SketchParser, parse_source, parse_source_with_diagnostics
from sketchblocks.arduino.ast import (
    ASTNode,
    Program,
    FunctionDeclaration,
    Parameter,
    VariableDeclaration,
    BlockStatement,
    IfStatement,
    ForStatement,
    WhileStatement,
    ReturnStatement,
    ExpressionStatement,
    Identifier,
    Literal,
    ArduinoPin,
    MemberExpression,
    CallExpression,
    BinaryExpression,
    UnaryExpression,
    AssignmentExpression,
    ASTVisitor,
    ASTPrinter,
    traverse,
    find_nodes,
)
from sketchblocks.arduino.blocks import (
    BlockDescriptor,
    Workspace,
    BlockProtocol,
    WorkspaceProtocol,
    DescriptorBlock,
    DescriptorWorkspace,
)
from sketchblocks.arduino.converter import ASTToBlocksConverter, ast_to_workspace
from sketchblocks.arduino.codegen import CodeGenerator, GenerationContext, GeneratedCode, generate_code
from sketchblocks.arduino.validator import ValidationResult, CodeStats, validate_code, get_code_stats
from sketchblocks.arduino.heuristic import (
    HeuristicParser,
    parse_source_heuristic,
    is_valid_arduino_code,
    normalize_code,
    code_equals,
)
from sketchblocks.arduino.blockxml import workspace_to_xml, xml_to_workspace
from sketchblocks.arduino.sanitize import sanitize_number, sanitize_variable_name

__all__ = [
    # Errors and diagnostics
    "SketchError",
    "SketchSyntaxError",
    "UnexpectedTokenError",
    "MissingTokenError",
    "NestingTooDeepError",
    "format_report",
    "ConversionError",
    "CodeGenError",
    "BlockStructureError",
    "BlockXMLError",
    "Severity",
    "Diagnostic",
    "DiagnosticCollector",
    # Lexer
    "SketchLexer",
    "TokenType",
    "Token",
    "tokenize",
    # Parser
    "SketchParser",
    "parse_source",
    "parse_source_with_diagnostics",
    # AST
    "ASTNode",
    "Program",
    "FunctionDeclaration",
    "Parameter",
    "VariableDeclaration",
    "BlockStatement",
    "IfStatement",
    "ForStatement",
    "WhileStatement",
    "ReturnStatement",
    "ExpressionStatement",
    "Identifier",
    "Literal",
    "ArduinoPin",
    "MemberExpression",
    "CallExpression",
    "BinaryExpression",
    "UnaryExpression",
    "AssignmentExpression",
    "ASTVisitor",
    "ASTPrinter",
    "traverse",
    "find_nodes",
    # Blocks
    "BlockDescriptor",
    "Workspace",
    "BlockProtocol",
    "WorkspaceProtocol",
    "DescriptorBlock",
    "DescriptorWorkspace",
    # Conversion and generation
    "ASTToBlocksConverter",
    "ast_to_workspace",
    "CodeGenerator",
    "GenerationContext",
    "GeneratedCode",
    "generate_code",
    # Validation
    "ValidationResult",
    "CodeStats",
    "validate_code",
    "get_code_stats",
    # Heuristic parser
    "HeuristicParser",
    "parse_source_heuristic",
    "is_valid_arduino_code",
    "normalize_code",
    "code_equals",
    # XML exchange
    "workspace_to_xml",
    "xml_to_workspace",
    # Sanitizers
    "sanitize_number",
    "sanitize_variable_name",
]
