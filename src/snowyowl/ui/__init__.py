"""
snowyowl — user interface

File: src/snowyowl/ui/__init__.py

Purpose
- argparse command router and plain-text rendering of run results.
"""

from snowyowl.ui.cli import CLIError, build_parser, run_cli
from snowyowl.ui.render import CLIRenderer, create_renderer

__all__ = ["CLIError", "CLIRenderer", "build_parser", "create_renderer", "run_cli"]
