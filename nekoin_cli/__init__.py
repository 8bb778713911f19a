"""
Command line interface for the Nekoin SDK.
"""
from .main import main

__all__ = ["main"]
