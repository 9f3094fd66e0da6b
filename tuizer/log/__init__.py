"""
Logging module for tuizer.
This module sets up console logging and the SQLite log database.
"""

from .setup import setup_logging

__all__ = ["setup_logging"]
