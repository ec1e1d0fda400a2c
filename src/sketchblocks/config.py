"""
sketchblocks Configuration
==========================

Options shared by the sync facade and the sbconv CLI.

Environment Variables
---------------------
SKETCHBLOCKS_INDENT              Spaces per indent level, or "tab"
SKETCHBLOCKS_TIMESTAMP           Include a "Generated at" header line (0/1)
SKETCHBLOCKS_HEURISTIC_FALLBACK  Fall back to the pattern parser (0/1)
SKETCHBLOCKS_MAX_RECOVERY        Recovered parse errors before giving up

Invalid values are ignored and the default is kept.
"""

from dataclasses import dataclass
from typing import Optional
import os

from sketchblocks.arduino.parser import DEFAULT_MAX_RECOVERY_ATTEMPTS

_TRUE_VALUES = ("1", "true", "yes", "on")
_FALSE_VALUES = ("0", "false", "no", "off")


def _parse_flag(value: str) -> Optional[bool]:
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    return None


@dataclass
class SyncOptions:
    """
    Configuration for code <-> block synchronisation.

    Attributes:
        indent: Indent unit for generated code
        include_header: Emit the "// Arduino sketch" comment header
        include_timestamp: Add a "Generated at" line to the header.
                           Turn off for reproducible output.
        validate_output: Run the advisory validator on generated code
        heuristic_fallback: Use the pattern parser when the grammar
                            parser yields no setup/loop blocks
        max_recovery_attempts: Recovered syntax errors before the parser
                               abandons the input
        filename: Name used in diagnostics for string input
    """
    indent: str = "  "
    include_header: bool = True
    include_timestamp: bool = True
    validate_output: bool = True
    heuristic_fallback: bool = False
    max_recovery_attempts: int = DEFAULT_MAX_RECOVERY_ATTEMPTS
    filename: str = "<sketch>"

    def __post_init__(self):
        if not self.indent or self.indent.strip(" \t"):
            raise ValueError(f"indent must be spaces or tabs, got {self.indent!r}")
        if self.max_recovery_attempts < 1:
            raise ValueError(
                f"max_recovery_attempts must be at least 1, got {self.max_recovery_attempts}"
            )

    @classmethod
    def from_env(cls) -> "SyncOptions":
        """
        Create SyncOptions from environment variables.

        Returns:
            SyncOptions with defaults overridden by any valid variables
        """
        config = cls()

        if indent := os.environ.get("SKETCHBLOCKS_INDENT"):
            if indent.strip().lower() == "tab":
                config.indent = "\t"
            else:
                try:
                    width = int(indent)
                    if 1 <= width <= 8:
                        config.indent = " " * width
                except ValueError:
                    pass  # Ignore invalid values

        if timestamp := os.environ.get("SKETCHBLOCKS_TIMESTAMP"):
            flag = _parse_flag(timestamp)
            if flag is not None:
                config.include_timestamp = flag

        if fallback := os.environ.get("SKETCHBLOCKS_HEURISTIC_FALLBACK"):
            flag = _parse_flag(fallback)
            if flag is not None:
                config.heuristic_fallback = flag

        if recovery := os.environ.get("SKETCHBLOCKS_MAX_RECOVERY"):
            try:
                attempts = int(recovery)
                if attempts >= 1:
                    config.max_recovery_attempts = attempts
            except ValueError:
                pass

        return config
