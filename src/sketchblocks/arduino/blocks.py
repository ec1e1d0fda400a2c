"""
Block Model
===========

Plain data types for visual block programs and the capability interface
the code generator consumes.

Data Types
----------
BlockDescriptor
    One block: a type name, scalar fields, and named inputs. A value
    input holds a single descriptor, a statement input holds a list
    executed in order.

Workspace
    The three regions of a sketch: setup body, loop body and global
    declarations. Workspaces are immutable; use replace() to derive a
    modified copy.

Capability Interface
--------------------
The generator never looks at descriptors directly. It talks to blocks
through BlockProtocol, the same four calls an editor-hosted block object
offers:

    block.type
    block.get_field_value(name)
    block.get_input_target_block(name)
    block.get_next_block()

DescriptorBlock adapts a descriptor to this interface and
DescriptorWorkspace adapts a Workspace, synthesising the arduino_setup
and arduino_loop root blocks an editor workspace would contain.
"""

from dataclasses import dataclass, field, replace as dataclass_replace
from typing import Any, Optional, Protocol, Union

from sketchblocks.arduino.errors import BlockStructureError


FieldValue = Union[str, int, float, bool]

SETUP_BLOCK_TYPE = "arduino_setup"
LOOP_BLOCK_TYPE = "arduino_loop"
SETUP_INPUT = "SETUP_CODE"
LOOP_INPUT = "LOOP_CODE"


# =============================================================================
# Block Descriptor
# =============================================================================

@dataclass
class BlockDescriptor:
    """
    A single block.

    Attributes:
        type: Block type name ("arduino_digitalwrite", "controls_if", ...)
        fields: Scalar field values keyed by field name
        inputs: Value inputs (a descriptor) and statement inputs (a list)
    """
    type: str
    fields: dict[str, FieldValue] = field(default_factory=dict)
    inputs: dict[str, Union["BlockDescriptor", list["BlockDescriptor"], None]] = field(
        default_factory=dict
    )

    def walk(self):
        """Yield this descriptor and every descriptor nested in its inputs."""
        yield self
        for value in self.inputs.values():
            if isinstance(value, BlockDescriptor):
                yield from value.walk()
            elif isinstance(value, list):
                for item in value:
                    yield from item.walk()

    def to_dict(self) -> dict[str, Any]:
        """Plain dict form, used for JSON output and comparisons."""
        inputs = {}
        for name, value in self.inputs.items():
            if isinstance(value, list):
                inputs[name] = [item.to_dict() for item in value]
            elif value is not None:
                inputs[name] = value.to_dict()
            else:
                inputs[name] = None
        return {"type": self.type, "fields": dict(self.fields), "inputs": inputs}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BlockDescriptor":
        """
        Build a descriptor from its dict form.

        Raises:
            BlockStructureError: if the dict has no block type
        """
        block_type = data.get("type")
        if not block_type:
            raise BlockStructureError("block descriptor has no type")

        inputs = {}
        for name, value in (data.get("inputs") or {}).items():
            if isinstance(value, list):
                inputs[name] = [cls.from_dict(item) for item in value]
            elif value is not None:
                inputs[name] = cls.from_dict(value)
            else:
                inputs[name] = None

        return cls(type=block_type, fields=dict(data.get("fields") or {}), inputs=inputs)


# =============================================================================
# Workspace
# =============================================================================

@dataclass(frozen=True)
class Workspace:
    """
    A block program split into its setup, loop and global regions.

    Attributes:
        setup_blocks: Statement sequence run once
        loop_blocks: Statement sequence run repeatedly
        global_variables: Top-level declaration blocks
    """
    setup_blocks: list[BlockDescriptor] = field(default_factory=list)
    loop_blocks: list[BlockDescriptor] = field(default_factory=list)
    global_variables: list[BlockDescriptor] = field(default_factory=list)

    @classmethod
    def empty(cls) -> "Workspace":
        return cls()

    def replace(self, **changes) -> "Workspace":
        """Return a copy with the given regions replaced."""
        return dataclass_replace(self, **changes)

    @property
    def is_empty(self) -> bool:
        return not (self.setup_blocks or self.loop_blocks or self.global_variables)

    def block_count(self) -> int:
        """Total number of blocks, nested ones included."""
        regions = (self.setup_blocks, self.loop_blocks, self.global_variables)
        return sum(1 for region in regions for top in region for _ in top.walk())


# =============================================================================
# Capability Interface
# =============================================================================

class BlockProtocol(Protocol):
    """
    Protocol defining what the code generator needs from a block.
    """
    type: str

    def get_field_value(self, name: str) -> Optional[str]:
        """Return a field value as text, or None if absent."""
        ...

    def get_input_target_block(self, name: str) -> Optional["BlockProtocol"]:
        """Return the block connected to an input (first of a sequence)."""
        ...

    def get_next_block(self) -> Optional["BlockProtocol"]:
        """Return the following block in a statement sequence."""
        ...


class WorkspaceProtocol(Protocol):
    """
    Protocol defining what the code generator needs from a workspace.
    """

    def get_blocks_by_type(self, block_type: str) -> list[BlockProtocol]:
        """Return top-level blocks of the given type."""
        ...

    def get_top_blocks(self) -> list[BlockProtocol]:
        """Return every top-level block."""
        ...


class DescriptorBlock:
    """
    BlockProtocol adapter over a BlockDescriptor.

    Statement inputs are exposed as linked chains: the input yields the
    first block and each block knows its successor.
    """

    def __init__(self, descriptor: BlockDescriptor, next_block: Optional["DescriptorBlock"] = None):
        if not isinstance(descriptor, BlockDescriptor):
            raise BlockStructureError(
                f"expected a block descriptor, got {type(descriptor).__name__}"
            )
        self.descriptor = descriptor
        self._next = next_block

    @property
    def type(self) -> str:
        return self.descriptor.type

    def get_field_value(self, name: str) -> Optional[str]:
        value = self.descriptor.fields.get(name)
        if value is None:
            return None
        if isinstance(value, bool):
            return "TRUE" if value else "FALSE"
        return str(value)

    def get_input_target_block(self, name: str) -> Optional["DescriptorBlock"]:
        value = self.descriptor.inputs.get(name)
        if isinstance(value, list):
            return chain_blocks(value)
        if value is None:
            return None
        return DescriptorBlock(value)

    def get_next_block(self) -> Optional["DescriptorBlock"]:
        return self._next

    def __repr__(self) -> str:
        return f"DescriptorBlock({self.type!r})"


def chain_blocks(descriptors: list[BlockDescriptor]) -> Optional[DescriptorBlock]:
    """Link a statement sequence and return its first block."""
    head = None
    for descriptor in reversed(descriptors):
        head = DescriptorBlock(descriptor, head)
    return head


class DescriptorWorkspace:
    """
    WorkspaceProtocol adapter over a Workspace.

    The setup and loop regions appear as arduino_setup / arduino_loop root
    blocks with SETUP_CODE / LOOP_CODE statement inputs. Global blocks are
    additional roots.
    """

    def __init__(self, workspace: Workspace):
        self.workspace = workspace

    def _roots(self) -> list[DescriptorBlock]:
        setup = BlockDescriptor(SETUP_BLOCK_TYPE, inputs={SETUP_INPUT: list(self.workspace.setup_blocks)})
        loop = BlockDescriptor(LOOP_BLOCK_TYPE, inputs={LOOP_INPUT: list(self.workspace.loop_blocks)})
        roots = [DescriptorBlock(setup), DescriptorBlock(loop)]
        roots.extend(DescriptorBlock(d) for d in self.workspace.global_variables)
        return roots

    def get_blocks_by_type(self, block_type: str) -> list[DescriptorBlock]:
        return [block for block in self._roots() if block.type == block_type]

    def get_top_blocks(self) -> list[DescriptorBlock]:
        return self._roots()
