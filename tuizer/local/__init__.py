"""
Local package for tuizer.

This package provides the effective configuration plus the pieces that sit
around the process supervisor: manifest discovery, the commands service and
the interactive console.
"""

from .config import effective_settings

__all__ = ["effective_settings"]
