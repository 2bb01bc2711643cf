"""Pump.fun survivor scanner: graduation discovery, holder filtering, webhook hand-off."""

__version__ = "1.0.0"
