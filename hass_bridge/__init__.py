"""
Home Assistant API bridge.

Emulates the parts of the Home Assistant HTTP API a wall display needs to log
in, then redirects it to a configured visualization URL.
"""

__version__ = "0.3.0"
