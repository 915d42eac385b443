"""
Ferrite Command-Line Interface
==============================

This package provides the command-line tools for Ferrite:

- **frc**: MiniRS compiler

Each tool is implemented as a Click-based CLI application.
"""

__all__ = ["frc"]
