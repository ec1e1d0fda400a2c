"""
AST to Block Converter Tests
============================

Tests for mapping parsed sketches onto block descriptors.

Test Organization
-----------------
- TestProgramLayout: setup/loop/global regions, dropped functions
- TestArduinoCalls: dedicated Arduino blocks and raw fallbacks
- TestControlFlow: if/else chains, repeat, for, while
- TestValues: literals, constants, operators, pins
- TestBlockModel: descriptors, workspaces and the capability adapter
"""

import pytest

from sketchblocks.arduino.parser import parse_source
from sketchblocks.arduino.converter import ASTToBlocksConverter, ast_to_workspace
from sketchblocks.arduino.ast import Identifier
from sketchblocks.arduino.blocks import (
    BlockDescriptor,
    DescriptorBlock,
    DescriptorWorkspace,
    Workspace,
    chain_blocks,
)
from sketchblocks.arduino.errors import BlockStructureError, ConversionError, Severity


def convert(source: str) -> Workspace:
    return ast_to_workspace(parse_source(source))


def loop_blocks(body: str) -> list[BlockDescriptor]:
    return convert(f"void loop() {{ {body} }}").loop_blocks


def single(body: str) -> BlockDescriptor:
    blocks = loop_blocks(body)
    assert len(blocks) == 1
    return blocks[0]


def value(expr: str) -> BlockDescriptor:
    return single(f"x = {expr};").inputs["VALUE"]


# =============================================================================
# Program Layout
# =============================================================================

class TestProgramLayout:
    """Tests for the workspace regions."""

    def test_setup_and_loop(self):
        """setup() and loop() bodies fill their regions."""
        workspace = convert("void setup() { pinMode(13, OUTPUT); } void loop() { delay(5); }")
        assert [b.type for b in workspace.setup_blocks] == ["arduino_pinmode"]
        assert [b.type for b in workspace.loop_blocks] == ["arduino_delay"]

    def test_globals(self):
        """Top-level declarations become global blocks."""
        workspace = convert("int led = 13;\nlong count;\nvoid setup() { }")
        define, declare = workspace.global_variables
        assert define.type == "variables_define"
        assert define.fields == {"TYPE": "int", "VAR": "led"}
        assert define.inputs["VALUE"].fields == {"NUM": "13"}
        assert declare.type == "variables_declare"
        assert declare.fields == {"TYPE": "long", "VAR": "count"}

    def test_user_function_dropped_with_info(self):
        """Functions other than setup/loop produce an INFO diagnostic."""
        converter = ASTToBlocksConverter()
        converter.convert_program(parse_source("void blink() { } void loop() { }"))
        diagnostics = converter.diagnostics
        assert len(diagnostics) == 1
        assert diagnostics[0].severity is Severity.INFO
        assert diagnostics[0].message == "function 'blink' is not represented as blocks"

    def test_diagnostics_reset(self):
        """Each convert_program call starts with no diagnostics."""
        converter = ASTToBlocksConverter()
        converter.convert_program(parse_source("void helper() { }"))
        converter.convert_program(parse_source("void loop() { }"))
        assert converter.diagnostics == []

    def test_empty_program(self):
        """An empty program gives an empty workspace."""
        assert convert("").is_empty

    def test_return_and_nested_block_skipped(self):
        """return and bare nested blocks have no block form."""
        assert loop_blocks("return; { delay(1); }") == []

    def test_non_statement_rejected(self):
        """convert_statement refuses nodes that are not statements."""
        with pytest.raises(ConversionError):
            ASTToBlocksConverter().convert_statement(Identifier(location=None, name="x"))


# =============================================================================
# Arduino Calls
# =============================================================================

class TestArduinoCalls:
    """Tests for Arduino call statements."""

    def test_pinmode(self):
        """pinMode becomes arduino_pinmode with a PIN value."""
        block = single("pinMode(13, OUTPUT);")
        assert block.type == "arduino_pinmode"
        assert block.fields == {"MODE": "OUTPUT"}
        assert block.inputs["PIN"] == BlockDescriptor("math_number", fields={"NUM": "13"})

    def test_digitalwrite(self):
        """digitalWrite with HIGH/LOW becomes arduino_digitalwrite."""
        block = single("digitalWrite(led, LOW);")
        assert block.type == "arduino_digitalwrite"
        assert block.fields == {"STATE": "LOW"}
        assert block.inputs["PIN"] == BlockDescriptor("variables_get", fields={"VAR": "led"})

    def test_digitalwrite_variable_state_is_raw(self):
        """A non-constant state keeps the call as raw code."""
        block = single("digitalWrite(13, state);")
        assert block.type == "arduino_raw_statement"
        assert block.fields == {"CODE": "digitalWrite(13, state)"}

    def test_delay_literal(self):
        """A numeric delay stores its text in the TIME field."""
        block = single("delay(250);")
        assert block == BlockDescriptor("arduino_delay", fields={"TIME": "250"})

    def test_delay_expression_is_raw(self):
        """A computed delay stays raw."""
        assert single("delay(t * 2);").fields == {"CODE": "delay(t * 2)"}

    def test_delay_microseconds(self):
        """delayMicroseconds has its own block type."""
        assert single("delayMicroseconds(10);").type == "arduino_delayMicroseconds"

    def test_analogwrite(self):
        """analogWrite maps PIN and VALUE inputs."""
        block = single("analogWrite(9, level);")
        assert block.type == "arduino_analogwrite"
        assert set(block.inputs) == {"PIN", "VALUE"}

    def test_serial_begin(self):
        """Serial.begin becomes arduino_serial_begin with a BAUD input."""
        block = single("Serial.begin(9600);")
        assert block.type == "arduino_serial_begin"
        assert block.inputs["BAUD"].fields == {"NUM": "9600"}

    def test_serial_println(self):
        """Serial.println records the mode and converts the text."""
        block = single('Serial.println("hello");')
        assert block.type == "arduino_serial_print"
        assert block.fields == {"MODE": "PRINTLN"}
        assert block.inputs["TEXT"] == BlockDescriptor("text", fields={"TEXT": "hello"})

    def test_pin_read_statement_is_raw(self):
        """digitalRead used as a statement stays raw."""
        assert single("digitalRead(2);").type == "arduino_raw_statement"

    def test_value_call_as_statement(self):
        """A value call used as a statement keeps its block type."""
        assert single("millis();").type == "arduino_millis"

    def test_unknown_call_is_raw(self):
        """Unrecognised calls are kept verbatim."""
        block = single("tone(8, 440, 100);")
        assert block == BlockDescriptor("arduino_raw_statement", fields={"CODE": "tone(8, 440, 100)"})

    def test_wrong_arity_is_raw(self):
        """A known call with the wrong number of arguments stays raw."""
        assert single("analogWrite(9);").type == "arduino_raw_statement"


# =============================================================================
# Control Flow
# =============================================================================

class TestControlFlow:
    """Tests for control structures."""

    def test_if_else(self):
        """if/else becomes controls_if with IF0/DO0/ELSE."""
        block = single("if (x > 5) { a(); } else { b(); }")
        assert block.type == "controls_if"
        assert set(block.inputs) == {"IF0", "DO0", "ELSE"}
        assert block.inputs["IF0"].type == "logic_compare"
        assert block.inputs["IF0"].fields == {"OP": "GT"}

    def test_else_if_flattened(self):
        """else-if chains are flattened into IF1/DO1."""
        block = single("if (a) { x(); } else if (b) { y(); } else { z(); }")
        assert set(block.inputs) == {"IF0", "DO0", "IF1", "DO1", "ELSE"}
        assert [b.fields["CODE"] for b in block.inputs["DO1"]] == ["y()"]

    def test_single_statement_body(self):
        """A braceless body becomes a one-block sequence."""
        block = single("if (ready) go();")
        assert len(block.inputs["DO0"]) == 1

    def test_simple_repeat(self):
        """for (int i = 0; i < N; i++) becomes controls_repeat_ext."""
        block = single("for (int i = 0; i < 5; i++) { blink(); }")
        assert block.type == "controls_repeat_ext"
        assert block.inputs["TIMES"].fields == {"NUM": "5"}
        assert len(block.inputs["DO"]) == 1

    def test_repeat_with_variable_count(self):
        """The repeat count may be any expression."""
        block = single("for (int i = 0; i < count; i++) { }")
        assert block.inputs["TIMES"] == BlockDescriptor("variables_get", fields={"VAR": "count"})

    def test_other_for_is_raw_block(self):
        """Other for loops keep their header and convert their body."""
        block = single("for (int i = 10; i > 0; i--) { delay(i); }")
        assert block.type == "arduino_raw_block"
        assert block.fields == {"CODE": "for (int i = 10; i > 0; i--)"}
        assert block.inputs["STATEMENTS"][0].type == "arduino_raw_statement"

    def test_mismatched_counter_not_simple(self):
        """Using a different variable in the test is not a simple repeat."""
        assert single("for (int i = 0; j < 5; i++) { }").type == "arduino_raw_block"

    def test_while(self):
        """while becomes controls_whileUntil in WHILE mode."""
        block = single("while (digitalRead(2) == LOW) { }")
        assert block.type == "controls_whileUntil"
        assert block.fields == {"MODE": "WHILE"}
        compare = block.inputs["BOOL"]
        assert compare.inputs["A"].type == "arduino_digitalread"
        assert compare.inputs["B"] == BlockDescriptor("arduino_raw_expression", fields={"CODE": "LOW"})
        assert block.inputs["DO"] == []

    def test_local_declaration(self):
        """Local declarations become define/declare blocks."""
        blocks = loop_blocks("int v = analogRead(A0); float f;")
        assert [b.type for b in blocks] == ["variables_define", "variables_declare"]
        assert blocks[0].inputs["VALUE"].type == "arduino_analogread"

    def test_compound_assignment_is_raw(self):
        """+= and postfix updates stay raw."""
        assert [b.fields["CODE"] for b in loop_blocks("x += 2; i++;")] == ["x += 2", "i++"]


# =============================================================================
# Values
# =============================================================================

class TestValues:
    """Tests for expression conversion."""

    def test_number(self):
        """Numbers keep their source text."""
        assert value("2.50") == BlockDescriptor("math_number", fields={"NUM": "2.50"})

    def test_boolean(self):
        """true/false become logic_boolean."""
        assert value("true") == BlockDescriptor("logic_boolean", fields={"BOOL": "TRUE"})

    def test_constant_is_raw(self):
        """Arduino constants become raw expressions."""
        assert value("HIGH") == BlockDescriptor("arduino_raw_expression", fields={"CODE": "HIGH"})

    def test_string(self):
        """Double-quoted strings become text blocks without quotes."""
        assert value('"hi"') == BlockDescriptor("text", fields={"TEXT": "hi"})

    def test_char_literal_is_raw(self):
        """Character literals stay raw."""
        assert value("'a'") == BlockDescriptor("arduino_raw_expression", fields={"CODE": "'a'"})

    def test_analog_pin(self):
        """A0 is kept as raw text."""
        assert value("A0") == BlockDescriptor("arduino_raw_expression", fields={"CODE": "A0"})

    def test_arithmetic(self):
        """Arithmetic operators map to math_arithmetic OP names."""
        block = value("a % 2")
        assert block.type == "math_arithmetic"
        assert block.fields == {"OP": "MODULO"}

    def test_logic(self):
        """&& maps to logic_operation AND."""
        block = value("a && !b")
        assert block.fields == {"OP": "AND"}
        assert block.inputs["B"].type == "logic_negate"

    def test_map_call(self):
        """map() gets one input per argument."""
        block = value("map(v, 0, 1023, 0, 255)")
        assert block.type == "arduino_map"
        assert list(block.inputs) == ["VALUE", "FROM_LOW", "FROM_HIGH", "TO_LOW", "TO_HIGH"]

    def test_serial_query(self):
        """Serial.available() is a dedicated value block."""
        assert value("Serial.available()").type == "arduino_serial_available"

    def test_unknown_value_call_is_raw(self):
        """Unknown calls in value position stay raw."""
        assert value("readSensor(3)").fields == {"CODE": "readSensor(3)"}

    def test_unary_minus_is_raw(self):
        """Negation of numbers has no block and stays raw."""
        assert value("-x").fields == {"CODE": "-x"}


# =============================================================================
# Block Model
# =============================================================================

class TestBlockModel:
    """Tests for descriptors, workspaces and the adapters."""

    def test_dict_round_trip(self):
        """to_dict/from_dict preserve a descriptor tree."""
        block = single("if (a > 1) { delay(5); }")
        assert BlockDescriptor.from_dict(block.to_dict()) == block

    def test_from_dict_requires_type(self):
        """A dict without a type is rejected."""
        with pytest.raises(BlockStructureError):
            BlockDescriptor.from_dict({"fields": {}})

    def test_block_count(self):
        """block_count includes nested blocks."""
        workspace = convert("int a = 1; void loop() { if (x) { delay(1); } }")
        # define + number, if + variable + delay
        assert workspace.block_count() == 5

    def test_workspace_replace(self):
        """replace returns a modified copy."""
        workspace = Workspace.empty()
        changed = workspace.replace(loop_blocks=[BlockDescriptor("arduino_millis")])
        assert workspace.is_empty
        assert not changed.is_empty

    def test_chain(self):
        """chain_blocks links statements through get_next_block."""
        head = chain_blocks([BlockDescriptor("a"), BlockDescriptor("b")])
        assert head.type == "a"
        assert head.get_next_block().type == "b"
        assert head.get_next_block().get_next_block() is None

    def test_field_values_as_text(self):
        """Field values are exposed as strings; booleans as TRUE/FALSE."""
        block = DescriptorBlock(BlockDescriptor("x", fields={"N": 5, "B": False}))
        assert block.get_field_value("N") == "5"
        assert block.get_field_value("B") == "FALSE"
        assert block.get_field_value("missing") is None

    def test_adapter_rejects_non_descriptor(self):
        """DescriptorBlock refuses anything but a descriptor."""
        with pytest.raises(BlockStructureError):
            DescriptorBlock({"type": "x"})

    def test_workspace_roots(self):
        """DescriptorWorkspace synthesises setup and loop roots."""
        workspace = DescriptorWorkspace(convert("int a; void loop() { delay(1); }"))
        assert [b.type for b in workspace.get_top_blocks()] == [
            "arduino_setup", "arduino_loop", "variables_declare",
        ]
        loop_root = workspace.get_blocks_by_type("arduino_loop")[0]
        assert loop_root.get_input_target_block("LOOP_CODE").type == "arduino_delay"
