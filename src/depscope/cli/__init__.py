"""
CLI module for depscope - command-line interface and terminal output.
"""

from depscope.cli import ui
from depscope.cli.commands import main

__all__ = ["main", "ui"]
