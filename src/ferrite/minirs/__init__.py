"""
Ferrite MiniRS Compiler
=======================

This package implements a compiler for MiniRS, a small language with
C-like semantics and Rust-flavoured syntax, targeting AArch64 on macOS.

Pipeline
--------
    Source → Lexer → Parser (+ symbol allocation) → AST → Code Generator → Assembly

The generated assembly is assembled and linked with the system
toolchain, e.g. ``clang -o prog prog.s``.

Usage
-----
>>> from ferrite.minirs import compile_minirs
>>> source = '''
... fn fib(n: i32) -> i32 {
...     if (n < 2) return n;
...     return fib(n - 1) + fib(n - 2);
... }
... fn main() -> i32 { return fib(10); }
... '''
>>> asm_output = compile_minirs(source)

Language Summary
----------------
- One type: 64-bit integers (``i32`` annotations are accepted and ignored)
- Operators: + - * / == != < <= > >= = and unary - + * &
- Control flow: if/else, while, for, return
- Arrays: ``let a = [1, 2, 3];`` and ``a[i]``
- Functions: up to eight parameters, recursion
- I/O: ``write("text")`` writes a string to stdout

Memory Model
------------
- Every variable is an 8-byte slot below the frame pointer
- Expressions are evaluated on the machine stack
- Return values in x0
"""

__version__ = "0.1.0"

from ferrite.minirs.compiler import (
    CompilerOptions,
    CompilerResult,
    MiniRSCompiler,
    compile_file,
    compile_minirs,
)
from ferrite.minirs.errors import (
    CodeGenError,
    DuplicateDeclarationError,
    LexError,
    MiniRSError,
    MissingTokenError,
    ParseError,
)
from ferrite.minirs.lexer import Lexer, Token, TokenKind, TokenStream, tokenize
from ferrite.minirs.parser import Parser, parse_source
from ferrite.minirs.codegen import CodeGenerator, frame_size
from ferrite.minirs.symbols import SymbolEnvironment
from ferrite.minirs.ast import (
    Addr,
    ArrayAssign,
    Assign,
    BinaryOp,
    BinaryOperator,
    Call,
    Deref,
    For,
    Function,
    If,
    Node,
    Num,
    Return,
    Seq,
    StringLiteral,
    Syscall,
    Var,
    While,
)

__all__ = [
    # Version
    "__version__",
    # Main API
    "MiniRSCompiler",
    "CompilerOptions",
    "CompilerResult",
    "compile_minirs",
    "compile_file",
    # Errors
    "MiniRSError",
    "ParseError",
    "LexError",
    "MissingTokenError",
    "DuplicateDeclarationError",
    "CodeGenError",
    # Lexer
    "Lexer",
    "Token",
    "TokenKind",
    "TokenStream",
    "tokenize",
    # Parser
    "Parser",
    "parse_source",
    "SymbolEnvironment",
    # Code Generator
    "CodeGenerator",
    "frame_size",
    # AST Nodes
    "Node",
    "Seq",
    "Num",
    "StringLiteral",
    "Var",
    "Function",
    "Call",
    "Syscall",
    "Assign",
    "BinaryOp",
    "BinaryOperator",
    "Return",
    "If",
    "While",
    "For",
    "Deref",
    "Addr",
    "ArrayAssign",
]
