"""
Ferrite - A MiniRS Compiler for AArch64
=======================================

This package compiles MiniRS, a small C/Rust-flavoured language with
integers, pointers, arrays, functions and a single I/O primitive, into
assembly for the Apple arm64 ABI (Mach-O, ``arm64-apple-darwin``).

Main Components
---------------
- **minirs**: the compiler proper (lexer, parser, AST, code generator)
- **cli**: the ``frc`` command-line driver

Quick Start
-----------
    >>> from ferrite.minirs import compile_minirs
    >>> asm = compile_minirs("fn main() { return 42; }")

Or from the shell:
    $ frc fib.rs > fib.s
    $ clang -o fib fib.s && ./fib; echo $?
"""

__version__ = "0.1.0"

from ferrite.errors import FerriteError, SourceLocation

__all__ = [
    "__version__",
    "FerriteError",
    "SourceLocation",
]
