"""
This module initializes the console package, exposing command execution,
manifest loading, verbose logging toggling and help printing.
"""

from .process import execute_command
from .handler import load_manifest, state, toggle_verbose_logging, print_help

__all__ = ["execute_command", "load_manifest", "state", "toggle_verbose_logging", "print_help"]
