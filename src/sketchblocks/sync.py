"""
Sketch / Block Synchronisation
==============================

The facade that ties the toolchain stages together:

    Code → Lex → Parse → AST → Blocks → XML
    XML → Blocks → Code → Validate

Usage
-----
    >>> from sketchblocks.sync import SketchSync
    >>> result = SketchSync().sync_code_to_blocks(source)
    >>> result.success, result.workspace.block_count()

    >>> code = SketchSync().sync_blocks_to_code(result.xml).code

Besides the two directions the facade offers round-trip helpers:
compare_sources() measures structural similarity of two sketches, and
differential_check() compares the grammar-based and heuristic parsers
on the same input.

Error Handling
--------------
Malformed sketch text never raises: recovered syntax errors are returned
as diagnostics. Malformed XML or block structures are reported through
the result's error field. Anything else is a bug and propagates.
"""

from dataclasses import dataclass, field
from typing import Optional, Union
import logging

from sketchblocks.config import SyncOptions
from sketchblocks.arduino.ast import ASTPrinter
from sketchblocks.arduino.blockxml import workspace_to_xml, xml_to_workspace
from sketchblocks.arduino.blocks import Workspace
from sketchblocks.arduino.codegen import CodeGenerator
from sketchblocks.arduino.converter import ASTToBlocksConverter
from sketchblocks.arduino.errors import (
    BlockXMLError,
    CodeGenError,
    Diagnostic,
    DiagnosticCollector,
    Severity,
)
from sketchblocks.arduino.heuristic import parse_source_heuristic
from sketchblocks.arduino.parser import parse_source, parse_source_with_diagnostics
from sketchblocks.arduino.validator import ValidationResult

logger = logging.getLogger(__name__)

EMPTY_STRUCTURE_WARNING = "created empty Arduino structure"
PARSE_FAILURE = "unable to parse code"
MIN_XML_LENGTH = 50
SIMILARITY_THRESHOLD = 80.0


# =============================================================================
# Results
# =============================================================================

@dataclass
class SyncResult:
    """
    Result of converting sketch code to blocks.

    Attributes:
        success: True if a workspace was produced
        workspace: The block workspace (empty on failure)
        xml: The workspace as exchange XML
        error: Failure description when success is False
        parse_errors: Recovered syntax errors, formatted
        warnings: Non-fatal findings
        diagnostics: Every finding from the parser and converter
    """
    success: bool
    workspace: Workspace = field(default_factory=Workspace)
    xml: str = ""
    error: Optional[str] = None
    parse_errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    diagnostics: list[Diagnostic] = field(default_factory=list)


@dataclass
class BlocksToCodeResult:
    """
    Result of generating sketch code from blocks.

    Attributes:
        success: True if code was generated
        code: The generated sketch ("" on failure)
        error: Failure description when success is False
        validation: Advisory validator result, when validation ran
        diagnostics: Generator findings (unsupported blocks, ...)
    """
    success: bool
    code: str = ""
    error: Optional[str] = None
    validation: Optional[ValidationResult] = None
    diagnostics: list[Diagnostic] = field(default_factory=list)


@dataclass
class SyncValidation:
    """
    Structural comparison of two sketches.

    Attributes:
        similarity: Percentage (0-100) of matching AST structure
        issues: Differences worth reporting
        recommendations: Suggested follow-ups for each kind of issue
    """
    similarity: float
    issues: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)

    @property
    def is_equivalent(self) -> bool:
        return not self.issues


# =============================================================================
# Facade
# =============================================================================

class SketchSync:
    """
    Bidirectional sketch/block converter.

    Example:
        sync = SketchSync(SyncOptions(include_timestamp=False))
        blocks = sync.sync_code_to_blocks(code)
        regenerated = sync.sync_blocks_to_code(blocks.workspace).code
    """

    def __init__(self, options: Optional[SyncOptions] = None):
        self.options = options or SyncOptions()

    def _generator(self) -> CodeGenerator:
        return CodeGenerator(
            indent=self.options.indent,
            include_header=self.options.include_header,
            include_timestamp=self.options.include_timestamp,
            validate_output=self.options.validate_output,
        )

    # =========================================================================
    # Code → Blocks
    # =========================================================================

    def sync_code_to_blocks(self, code: str) -> SyncResult:
        """
        Convert sketch source into a block workspace and its XML.

        Args:
            code: Sketch source text

        Returns:
            SyncResult; never raises for malformed sketch text
        """
        if not code.strip():
            workspace = Workspace.empty()
            return SyncResult(
                success=True,
                workspace=workspace,
                xml=workspace_to_xml(workspace),
                warnings=[EMPTY_STRUCTURE_WARNING],
            )

        program, parse_diagnostics = parse_source_with_diagnostics(
            code,
            self.options.filename,
            self.options.max_recovery_attempts,
        )
        converter = ASTToBlocksConverter()
        workspace = converter.convert_program(program)
        diagnostics = list(parse_diagnostics) + converter.diagnostics
        warnings = [d.message for d in diagnostics if d.severity is Severity.WARNING]

        if (
            self.options.heuristic_fallback
            and not workspace.setup_blocks
            and not workspace.loop_blocks
        ):
            fallback = parse_source_heuristic(code)
            if fallback.setup_blocks or fallback.loop_blocks:
                logger.info("Grammar parser produced no blocks, using heuristic parser")
                warnings.append("used heuristic parser: grammar parser produced no blocks")
                workspace = fallback

        parse_errors = [str(d) for d in parse_diagnostics if d.is_error]

        if not program.body and workspace.is_empty:
            return SyncResult(
                success=False,
                workspace=Workspace.empty(),
                error=PARSE_FAILURE,
                parse_errors=parse_errors,
                warnings=warnings,
                diagnostics=diagnostics,
            )

        for name in ("setup", "loop"):
            if program.get_function(name) is None:
                warnings.append(f"no {name}() function found")

        xml = workspace_to_xml(workspace)
        if "<xml" not in xml or len(xml) < MIN_XML_LENGTH:
            return SyncResult(
                success=False,
                workspace=workspace,
                error="generated XML failed sanity check",
                parse_errors=parse_errors,
                warnings=warnings,
                diagnostics=diagnostics,
            )

        logger.info(
            f"Converted sketch to {workspace.block_count()} blocks "
            f"({len(parse_errors)} parse errors)"
        )
        return SyncResult(
            success=True,
            workspace=workspace,
            xml=xml,
            parse_errors=parse_errors,
            warnings=warnings,
            diagnostics=diagnostics,
        )

    # =========================================================================
    # Blocks → Code
    # =========================================================================

    def sync_blocks_to_code(self, blocks: Union[str, Workspace]) -> BlocksToCodeResult:
        """
        Generate sketch source from exchange XML or a Workspace.

        Returns:
            BlocksToCodeResult; malformed XML or block structure is
            reported through its error field
        """
        try:
            workspace = xml_to_workspace(blocks) if isinstance(blocks, str) else blocks
            generated = self._generator().generate(workspace)
        except (BlockXMLError, CodeGenError) as e:
            logger.warning(f"Block to code conversion failed: {e.message}")
            return BlocksToCodeResult(success=False, error=str(e))

        logger.info(f"Generated {len(generated.code.splitlines())} lines of sketch code")
        return BlocksToCodeResult(
            success=True,
            code=generated.code,
            validation=generated.validation,
            diagnostics=generated.diagnostics,
        )

    def round_trip(self, code: str) -> str:
        """Parse, convert to blocks and regenerate sketch source."""
        workspace = ASTToBlocksConverter().convert_program(
            parse_source(code, self.options.filename, self.options.max_recovery_attempts)
        )
        return self._generator().generate(workspace).code

    # =========================================================================
    # Comparison
    # =========================================================================

    def compare_sources(self, original: str, reconstructed: str) -> SyncValidation:
        """
        Compare two sketches by the structure of their ASTs.

        Similarity is the Levenshtein similarity of the location-free AST
        dumps, measured over dump lines.
        """
        first = parse_source(original, self.options.filename, self.options.max_recovery_attempts)
        second = parse_source(reconstructed, self.options.filename, self.options.max_recovery_attempts)
        first_dump = ASTPrinter().print(first).splitlines()
        second_dump = ASTPrinter().print(second).splitlines()

        similarity = similarity_percent(first_dump, second_dump)
        validation = SyncValidation(similarity=similarity)

        if similarity < SIMILARITY_THRESHOLD:
            validation.issues.append(
                f"structural similarity {similarity:.1f}% is below {SIMILARITY_THRESHOLD:.0f}%"
            )
            validation.recommendations.append(
                "check statements that were kept as raw code blocks"
            )

        if len(first.functions) != len(second.functions):
            validation.issues.append(
                f"function count differs: {len(first.functions)} vs {len(second.functions)}"
            )
            validation.recommendations.append(
                "functions other than setup() and loop() are not represented as blocks"
            )

        return validation

    def differential_check(self, code: str) -> list[Diagnostic]:
        """
        Compare the block sequences of the grammar and heuristic parsers.

        Each position where the top-level block types of setup or loop
        differ yields one INFO diagnostic.
        """
        program = parse_source(code, self.options.filename, self.options.max_recovery_attempts)
        grammar = ASTToBlocksConverter().convert_program(program)
        heuristic = parse_source_heuristic(code)

        collector = DiagnosticCollector(stage="differential")
        for region in ("setup", "loop"):
            first = [block.type for block in getattr(grammar, f"{region}_blocks")]
            second = [block.type for block in getattr(heuristic, f"{region}_blocks")]
            for index in range(max(len(first), len(second))):
                left = first[index] if index < len(first) else "none"
                right = second[index] if index < len(second) else "none"
                if left != right:
                    collector.add_info(
                        f"{region}[{index}]: grammar parser gives '{left}', "
                        f"heuristic parser gives '{right}'"
                    )

        logger.debug(f"Differential check: {len(collector.diagnostics)} divergences")
        return list(collector.diagnostics)


# =============================================================================
# Similarity
# =============================================================================

def levenshtein_distance(first, second) -> int:
    """Edit distance between two sequences (strings or lists)."""
    if len(first) < len(second):
        first, second = second, first
    previous = list(range(len(second) + 1))
    for i, item in enumerate(first, start=1):
        current = [i]
        for j, other in enumerate(second, start=1):
            cost = 0 if item == other else 1
            current.append(min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost))
        previous = current
    return previous[-1]


def similarity_percent(first, second) -> float:
    """
    Levenshtein similarity as a percentage.

    >>> similarity_percent("kitten", "kitten")
    100.0
    >>> similarity_percent("", "")
    100.0
    """
    longest = max(len(first), len(second))
    if longest == 0:
        return 100.0
    return (1 - levenshtein_distance(first, second) / longest) * 100


# =============================================================================
# Convenience Functions
# =============================================================================

def sync_code_to_blocks(code: str, options: Optional[SyncOptions] = None) -> SyncResult:
    """Convert sketch source to blocks with a one-off SketchSync."""
    return SketchSync(options).sync_code_to_blocks(code)


def sync_blocks_to_code(
    blocks: Union[str, Workspace], options: Optional[SyncOptions] = None
) -> BlocksToCodeResult:
    """Generate sketch source from XML or a Workspace with a one-off SketchSync."""
    return SketchSync(options).sync_blocks_to_code(blocks)


def round_trip(code: str, options: Optional[SyncOptions] = None) -> str:
    """Parse, convert and regenerate a sketch."""
    return SketchSync(options).round_trip(code)
