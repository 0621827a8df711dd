"""
Command-line interface for the HMM engine.
"""

from .main import app, cli_main

__all__ = [
    "app",
    "cli_main"
]
