"""
Sync Facade Tests
=================

Tests for SketchSync: code to blocks, blocks to code, round trips and
parser comparisons.

Test Organization
-----------------
- TestCodeToBlocks: sync_code_to_blocks results and warnings
- TestHeuristicFallback: fallback to the pattern parser
- TestBlocksToCode: sync_blocks_to_code from XML and workspaces
- TestRoundTrip: round_trip and compare_sources
- TestDifferentialCheck: grammar versus heuristic parser
- TestSimilarity: Levenshtein helpers
"""

import pytest

from sketchblocks import SyncOptions, sync_blocks_to_code, sync_code_to_blocks
from sketchblocks.sync import (
    EMPTY_STRUCTURE_WARNING,
    PARSE_FAILURE,
    SketchSync,
    levenshtein_distance,
    round_trip,
    similarity_percent,
)
from sketchblocks.arduino.blocks import BlockDescriptor as B, Workspace
from sketchblocks.arduino.errors import Severity


BLINK = (
    "void setup() {\n"
    "  pinMode(13, OUTPUT);\n"
    "}\n"
    "\n"
    "void loop() {\n"
    "  digitalWrite(13, HIGH);\n"
    "  delay(1000);\n"
    "  digitalWrite(13, LOW);\n"
    "  delay(1000);\n"
    "}\n"
)

# Two broken declarations exhaust a recovery limit of 1 before setup() is reached
ABANDONED = (
    "int x = ;\n"
    "int y = ;\n"
    "void setup() {\n  pinMode(13, OUTPUT);\n}\n"
    "void loop() {\n  delay(1);\n}\n"
)


@pytest.fixture
def sync():
    return SketchSync(SyncOptions(include_timestamp=False))


# =============================================================================
# Code to Blocks
# =============================================================================

class TestCodeToBlocks:
    """Tests for sync_code_to_blocks."""

    def test_blink(self, sync):
        """A clean sketch converts without findings."""
        result = sync.sync_code_to_blocks(BLINK)
        assert result.success
        assert result.error is None
        assert result.parse_errors == []
        assert result.warnings == []
        assert [b.type for b in result.workspace.setup_blocks] == ["arduino_pinmode"]
        assert len(result.workspace.loop_blocks) == 4
        assert result.xml.startswith("<xml")

    def test_empty_input(self, sync):
        """Blank input gives an empty structure with a warning."""
        result = sync.sync_code_to_blocks("  \n\t")
        assert result.success
        assert result.workspace.is_empty
        assert result.warnings == [EMPTY_STRUCTURE_WARNING]
        assert "arduino_setup" in result.xml

    def test_unparseable_input(self, sync):
        """Text with no declarations fails."""
        result = sync.sync_code_to_blocks("this is not a sketch")
        assert not result.success
        assert result.error == PARSE_FAILURE
        assert result.xml == ""

    def test_missing_entry_points_warned(self, sync):
        """Missing setup()/loop() produce warnings, not failure."""
        result = sync.sync_code_to_blocks("int led = 13;")
        assert result.success
        assert result.warnings == ["no setup() function found", "no loop() function found"]
        assert len(result.workspace.global_variables) == 1

    def test_parse_errors_reported(self, sync):
        """Recovered syntax errors are returned alongside the workspace."""
        result = sync.sync_code_to_blocks("void setup() {\n  delay(1000)\n}\nvoid loop() {\n}\n")
        assert result.success
        assert len(result.parse_errors) == 1
        assert "error:" in result.parse_errors[0]
        assert result.parse_errors[0].startswith("<sketch>:3:1")

    def test_filename_in_diagnostics(self):
        """The configured filename appears in parse errors."""
        sync = SketchSync(SyncOptions(filename="blink.ino"))
        result = sync.sync_code_to_blocks("void setup() { delay(1) }")
        assert result.parse_errors[0].startswith("blink.ino:")

    def test_dropped_function_info(self, sync):
        """User functions appear as INFO diagnostics, not warnings."""
        result = sync.sync_code_to_blocks(BLINK + "void helper() {\n}\n")
        assert result.warnings == []
        infos = [d for d in result.diagnostics if d.severity is Severity.INFO]
        assert [d.message for d in infos] == ["function 'helper' is not represented as blocks"]

    def test_module_function(self):
        """The module-level helper uses default options."""
        assert sync_code_to_blocks(BLINK).success


# =============================================================================
# Heuristic Fallback
# =============================================================================

class TestHeuristicFallback:
    """Tests for falling back to the pattern parser."""

    def test_disabled_by_default(self):
        """Without the fallback an abandoned parse fails."""
        result = SketchSync(SyncOptions(max_recovery_attempts=1)).sync_code_to_blocks(ABANDONED)
        assert not result.success
        assert result.error == PARSE_FAILURE
        assert result.parse_errors[-1].endswith("parsing abandoned after 2 recovered errors")

    def test_fallback_used(self):
        """The pattern parser fills in when the grammar parser yields nothing."""
        options = SyncOptions(max_recovery_attempts=1, heuristic_fallback=True)
        result = SketchSync(options).sync_code_to_blocks(ABANDONED)
        assert result.success
        assert "used heuristic parser: grammar parser produced no blocks" in result.warnings
        assert [b.type for b in result.workspace.setup_blocks] == ["arduino_pinmode"]
        assert result.workspace.loop_blocks == [B("arduino_delay", fields={"TIME": "1"})]

    def test_not_used_when_grammar_succeeds(self):
        """A working grammar parse is never replaced."""
        result = SketchSync(SyncOptions(heuristic_fallback=True)).sync_code_to_blocks(BLINK)
        assert result.warnings == []


# =============================================================================
# Blocks to Code
# =============================================================================

class TestBlocksToCode:
    """Tests for sync_blocks_to_code."""

    def test_from_xml(self, sync):
        """XML produced by the facade converts back to code."""
        xml = sync.sync_code_to_blocks(BLINK).xml
        result = sync.sync_blocks_to_code(xml)
        assert result.success
        assert "  pinMode(13, OUTPUT);" in result.code
        assert "Generated at" not in result.code
        assert result.validation is not None
        assert result.validation.is_valid

    def test_from_workspace(self, sync):
        """A Workspace can be passed directly."""
        workspace = Workspace(loop_blocks=[B("arduino_delay", fields={"TIME": "20"})])
        assert "  delay(20);" in sync.sync_blocks_to_code(workspace).code

    def test_validation_can_be_disabled(self):
        """validate_output=False skips the validator."""
        result = SketchSync(SyncOptions(validate_output=False)).sync_blocks_to_code(Workspace())
        assert result.validation is None

    def test_invalid_xml(self, sync):
        """Malformed XML is reported, not raised."""
        result = sync.sync_blocks_to_code("<xml><block")
        assert not result.success
        assert result.code == ""
        assert "invalid block XML" in result.error

    def test_malformed_structure(self, sync):
        """A statement block in a value slot is reported, not raised."""
        block = B("variables_set", fields={"VAR": "x"}, inputs={"VALUE": B("arduino_delay")})
        result = sync.sync_blocks_to_code(Workspace(loop_blocks=[block]))
        assert not result.success
        assert "statement block given where a value is expected" in result.error

    def test_unsupported_block_diagnostic(self, sync):
        """Generator warnings are passed through."""
        result = sync.sync_blocks_to_code(Workspace(loop_blocks=[B("servo_write")]))
        assert result.success
        assert [d.message for d in result.diagnostics] == ["unsupported block: servo_write"]

    def test_module_function(self):
        """The module-level helper accepts options."""
        result = sync_blocks_to_code(Workspace(), SyncOptions(include_header=False))
        assert result.code.startswith("void setup() {")


# =============================================================================
# Round Trip
# =============================================================================

class TestRoundTrip:
    """Tests for round_trip and compare_sources."""

    def test_blink_round_trip(self):
        """Canonical sketches regenerate byte for byte."""
        assert round_trip(BLINK, SyncOptions(include_header=False)) == BLINK

    def test_identical_sources(self, sync):
        """Identical sketches are fully similar."""
        validation = sync.compare_sources(BLINK, BLINK)
        assert validation.similarity == 100.0
        assert validation.is_equivalent
        assert validation.recommendations == []

    def test_layout_ignored(self, sync):
        """Whitespace and comments do not affect similarity."""
        compact = "void setup(){pinMode(13,OUTPUT);} // led\nvoid loop(){digitalWrite(13,HIGH);delay(1000);digitalWrite(13,LOW);delay(1000);}"
        assert sync.compare_sources(BLINK, compact).similarity == 100.0

    def test_function_count_differs(self, sync):
        """A dropped function is reported as an issue."""
        validation = sync.compare_sources(BLINK + "void helper() {\n}\n", BLINK)
        assert "function count differs: 3 vs 2" in validation.issues
        assert not validation.is_equivalent

    def test_low_similarity(self, sync):
        """Very different sketches fall below the threshold."""
        other = "void setup() {\n}\nvoid loop() {\n  x = 1;\n}\n"
        validation = sync.compare_sources(BLINK, other)
        assert validation.similarity < 80
        assert validation.issues[0].startswith("structural similarity ")
        assert validation.issues[0].endswith("is below 80%")


# =============================================================================
# Differential Check
# =============================================================================

class TestDifferentialCheck:
    """Tests for comparing the two parsers."""

    def test_agreement(self, sync):
        """Both parsers agree on the blink sketch."""
        assert sync.differential_check(BLINK) == []

    def test_divergence(self, sync):
        """Serial calls are blocks for one parser and raw text for the other."""
        diagnostics = sync.differential_check('void setup() {\n}\nvoid loop() {\n  Serial.println("x");\n}\n')
        assert len(diagnostics) == 1
        diagnostic = diagnostics[0]
        assert diagnostic.severity is Severity.INFO
        assert diagnostic.stage == "differential"
        assert diagnostic.message == (
            "loop[0]: grammar parser gives 'arduino_serial_print', "
            "heuristic parser gives 'arduino_raw_statement'"
        )

    def test_length_mismatch(self, sync):
        """Missing positions are reported as 'none'."""
        # Grammar parser drops the return statement, the pattern parser keeps it raw
        diagnostics = sync.differential_check("void setup() {\n  return;\n}\nvoid loop() {\n}\n")
        assert [d.message for d in diagnostics] == [
            "setup[0]: grammar parser gives 'none', heuristic parser gives 'arduino_raw_statement'"
        ]


# =============================================================================
# Similarity
# =============================================================================

class TestSimilarity:
    """Tests for the edit-distance helpers."""

    def test_levenshtein(self):
        """Classic edit distance."""
        assert levenshtein_distance("kitten", "sitting") == 3
        assert levenshtein_distance("", "abc") == 3

    def test_levenshtein_lists(self):
        """Sequences of lines work like strings."""
        assert levenshtein_distance(["a", "b", "c"], ["a", "c"]) == 1

    def test_similarity(self):
        """Similarity is relative to the longer input."""
        assert similarity_percent("abcd", "abcx") == 75.0
        assert similarity_percent("", "") == 100.0
        assert similarity_percent("abc", "") == 0.0
