"""
tuizer runs the commands declared in manifest files as supervised child
processes, relaying their standard streams and recording what they exchange.
"""

__version__ = "0.1.0"
