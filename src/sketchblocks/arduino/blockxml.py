"""
Block Exchange XML
==================

Reads and writes workspaces in the block editor's XML exchange format.

Format
------
    <xml xmlns="https://developers.google.com/blockly/xml">
      <block type="arduino_setup" x="50" y="50">
        <statement name="SETUP_CODE">
          <block type="arduino_pinmode">
            <field name="MODE">OUTPUT</field>
            <value name="PIN">
              <block type="math_number"><field name="NUM">13</field></block>
            </value>
          </block>
        </statement>
      </block>
      <block type="arduino_loop" x="50" y="300">...</block>
    </xml>

Statement sequences nest through <next>. controls_if carries a
<mutation elseif="n" else="1"/> describing its extra branches.

Reading accepts the namespaced and the bare form. Top-level blocks other
than arduino_setup / arduino_loop become global entries. The round trip
keeps structure, not bytes.
"""

from typing import Optional
from xml.etree import ElementTree as ET
import logging
import re

from sketchblocks.arduino.blocks import (
    BlockDescriptor, Workspace,
    SETUP_BLOCK_TYPE, LOOP_BLOCK_TYPE, SETUP_INPUT, LOOP_INPUT,
)
from sketchblocks.arduino.errors import BlockXMLError

logger = logging.getLogger(__name__)

BLOCKLY_NAMESPACE = "https://developers.google.com/blockly/xml"

SETUP_POSITION = (50, 50)
LOOP_POSITION = (50, 300)
GLOBALS_X = 400
GLOBALS_Y = 50
GLOBALS_STEP = 80

_ELSE_IF_INPUT = re.compile(r"^IF([1-9][0-9]*)$")


# =============================================================================
# Writing
# =============================================================================

def _field_text(value) -> str:
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    return str(value)


def _block_element(descriptor: BlockDescriptor) -> ET.Element:
    element = ET.Element("block", {"type": descriptor.type})

    if descriptor.type == "controls_if":
        else_ifs = sum(1 for name in descriptor.inputs if _ELSE_IF_INPUT.match(name))
        has_else = descriptor.inputs.get("ELSE") is not None
        if else_ifs or has_else:
            mutation = ET.SubElement(element, "mutation")
            if else_ifs:
                mutation.set("elseif", str(else_ifs))
            if has_else:
                mutation.set("else", "1")

    for name, value in descriptor.fields.items():
        field_element = ET.SubElement(element, "field", {"name": name})
        field_element.text = _field_text(value)

    for name, value in descriptor.inputs.items():
        if value is None:
            continue
        if isinstance(value, list):
            statement = ET.SubElement(element, "statement", {"name": name})
            chain = _chain_element(value)
            if chain is not None:
                statement.append(chain)
        else:
            value_element = ET.SubElement(element, "value", {"name": name})
            value_element.append(_block_element(value))

    return element


def _chain_element(descriptors: list[BlockDescriptor]) -> Optional[ET.Element]:
    """Build a <block> chain linked through <next> elements."""
    head = None
    for descriptor in reversed(descriptors):
        element = _block_element(descriptor)
        if head is not None:
            ET.SubElement(element, "next").append(head)
        head = element
    return head


def _root_block(block_type: str, input_name: str, blocks: list, position: tuple[int, int]) -> ET.Element:
    element = ET.Element("block", {"type": block_type, "x": str(position[0]), "y": str(position[1])})
    statement = ET.SubElement(element, "statement", {"name": input_name})
    chain = _chain_element(blocks)
    if chain is not None:
        statement.append(chain)
    return element


def workspace_to_xml(workspace: Workspace) -> str:
    """
    Serialize a workspace to exchange XML.

    Args:
        workspace: The workspace to write

    Returns:
        Indented XML text
    """
    root = ET.Element("xml", {"xmlns": BLOCKLY_NAMESPACE})
    root.append(_root_block(SETUP_BLOCK_TYPE, SETUP_INPUT, workspace.setup_blocks, SETUP_POSITION))
    root.append(_root_block(LOOP_BLOCK_TYPE, LOOP_INPUT, workspace.loop_blocks, LOOP_POSITION))

    for index, descriptor in enumerate(workspace.global_variables):
        element = _block_element(descriptor)
        element.set("x", str(GLOBALS_X))
        element.set("y", str(GLOBALS_Y + index * GLOBALS_STEP))
        root.append(element)

    ET.indent(root)
    return ET.tostring(root, encoding="unicode")


# =============================================================================
# Reading
# =============================================================================

def _local_name(tag: str) -> str:
    """Tag without its {namespace} prefix."""
    return tag.rsplit("}", 1)[-1]


def _children(element: ET.Element, name: str) -> list[ET.Element]:
    return [child for child in element if _local_name(child.tag) == name]


def _first_block(container: ET.Element) -> Optional[ET.Element]:
    """The block held by a value/statement/next element; shadows as fallback."""
    blocks = _children(container, "block")
    if blocks:
        return blocks[0]
    shadows = _children(container, "shadow")
    return shadows[0] if shadows else None


def _read_block(element: ET.Element) -> BlockDescriptor:
    block_type = element.get("type")
    if not block_type:
        raise BlockXMLError(f"<{_local_name(element.tag)}> element has no type attribute")

    descriptor = BlockDescriptor(block_type)
    for child in element:
        kind = _local_name(child.tag)
        name = child.get("name")
        if kind in ("field", "value", "statement") and not name:
            raise BlockXMLError(f"<{kind}> in '{block_type}' has no name attribute")

        if kind == "field":
            descriptor.fields[name] = child.text or ""
        elif kind == "value":
            target = _first_block(child)
            descriptor.inputs[name] = _read_block(target) if target is not None else None
        elif kind == "statement":
            target = _first_block(child)
            descriptor.inputs[name] = _read_chain(target) if target is not None else []
    return descriptor


def _read_chain(element: ET.Element) -> list[BlockDescriptor]:
    """Flatten a <block> and its <next> successors into a list."""
    blocks = []
    current: Optional[ET.Element] = element
    while current is not None:
        blocks.append(_read_block(current))
        following = _children(current, "next")
        current = _first_block(following[0]) if following else None
    return blocks


def xml_to_workspace(xml: str) -> Workspace:
    """
    Parse exchange XML back into a workspace.

    Raises:
        BlockXMLError: on unparseable XML, a root other than <xml>, or
            blocks without a type
    """
    try:
        root = ET.fromstring(xml)
    except ET.ParseError as exc:
        raise BlockXMLError(f"invalid block XML: {exc}") from exc

    if _local_name(root.tag) != "xml":
        raise BlockXMLError(f"expected <xml> root element, found <{_local_name(root.tag)}>")

    setup_blocks: Optional[list] = None
    loop_blocks: Optional[list] = None
    global_variables = []

    for element in _children(root, "block"):
        block_type = element.get("type")
        if block_type == SETUP_BLOCK_TYPE and setup_blocks is None:
            setup_blocks = _read_root_statement(element, SETUP_INPUT)
        elif block_type == LOOP_BLOCK_TYPE and loop_blocks is None:
            loop_blocks = _read_root_statement(element, LOOP_INPUT)
        elif block_type in (SETUP_BLOCK_TYPE, LOOP_BLOCK_TYPE):
            logger.warning(f"Ignoring duplicate {block_type} block")
        else:
            global_variables.extend(_read_chain(element))

    workspace = Workspace(
        setup_blocks=setup_blocks or [],
        loop_blocks=loop_blocks or [],
        global_variables=global_variables,
    )
    logger.debug(f"Read {workspace.block_count()} blocks from XML")
    return workspace


def _read_root_statement(element: ET.Element, input_name: str) -> list[BlockDescriptor]:
    for statement in _children(element, "statement"):
        if statement.get("name") == input_name:
            target = _first_block(statement)
            return _read_chain(target) if target is not None else []
    return []
