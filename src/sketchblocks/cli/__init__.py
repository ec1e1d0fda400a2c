"""
sketchblocks Command-Line Interface
===================================

- **sbconv**: sketch ↔ block converter

The tool is a Click-based CLI application with per-command help and
uniform error reporting (see cli.errors).
"""

__all__ = ["sbconv"]
