"""
MiniRS Compiler Main Module
===========================

This module provides the main compiler interface for MiniRS. It
orchestrates the complete compilation process:

    Source → Lex → Parse → Generate → Assembly

Usage
-----
Command line:
    $ frc fib.rs > fib.s

Programmatic:
    >>> from ferrite.minirs import compile_minirs
    >>> asm = compile_minirs('fn main() { return 0; }')

Compilation Pipeline
--------------------
1. **Lexical Analysis**: Convert source to tokens
2. **Parsing**: Build the AST, resolving variables to frame offsets
3. **Code Generation**: Convert the AST to AArch64 assembly

Error Handling
--------------
The first error aborts compilation. It propagates to the caller as a
MiniRSError subclass; no partial assembly is returned.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ferrite.minirs.ast import Function, Node, iter_children
from ferrite.minirs.codegen import CodeGenerator
from ferrite.minirs.lexer import TokenStream, tokenize
from ferrite.minirs.parser import Parser


logger = logging.getLogger(__name__)


@dataclass
class CompilerOptions:
    """
    Compiler configuration options.

    Attributes:
        emit_comments: Annotate the assembly with // comments naming
            functions and control-flow constructs
    """
    emit_comments: bool = True


@dataclass
class CompilerResult:
    """
    Result of a compilation.

    Attributes:
        filename: Source filename
        success: True if compilation succeeded
        assembly: Generated assembly code
        ast: Abstract syntax tree
        token_count: Number of tokens lexed, EOF included
    """
    filename: str = ""
    success: bool = False
    assembly: str = ""
    ast: Optional[Node] = None
    token_count: int = 0


class MiniRSCompiler:
    """
    MiniRS compiler for arm64-apple-darwin.

    Example:
        compiler = MiniRSCompiler()
        result = compiler.compile_file("fib.rs")
        print(result.assembly)
    """

    def __init__(self, options: Optional[CompilerOptions] = None):
        self.options = options or CompilerOptions()

    def compile_source(self, source: str, filename: str = "<input>") -> CompilerResult:
        """
        Compile MiniRS source code to assembly.

        Raises:
            MiniRSError: On the first lexical, syntax or code generation error
        """
        result = CompilerResult(filename=filename)

        tokens = self._lex(source, filename)
        result.token_count = len(tokens)
        logger.debug("%s: %d tokens", filename, result.token_count)

        ast = self._parse(tokens, source, filename)
        result.ast = ast
        logger.debug("%s: parsed %d function(s)", filename, count_functions(ast))

        result.assembly = self._generate(ast)
        result.success = True
        logger.debug("%s: generated %d lines of assembly",
                     filename, result.assembly.count("\n"))

        return result

    def compile_file(self, filepath: str) -> CompilerResult:
        """
        Compile a MiniRS source file to assembly.

        Raises:
            MiniRSError: If compilation fails
            FileNotFoundError: If the source file does not exist
        """
        path = Path(filepath)
        if not path.exists():
            raise FileNotFoundError(f"Source file not found: {filepath}")

        source = path.read_text(encoding="utf-8")
        return self.compile_source(source, str(filepath))

    def _lex(self, source: str, filename: str) -> TokenStream:
        return tokenize(source, filename)

    def _parse(self, tokens: TokenStream, source: str, filename: str) -> Node:
        return Parser(tokens, source, filename).parse()

    def _generate(self, ast: Node) -> str:
        generator = CodeGenerator(emit_comments=self.options.emit_comments)
        return generator.generate(ast)


def count_functions(node: Node) -> int:
    """Count the Function nodes at the top of a program tree."""
    if isinstance(node, Function):
        return 1
    return sum(count_functions(child) for child in iter_children(node))


# =============================================================================
# Convenience Functions
# =============================================================================

def compile_minirs(source: str, filename: str = "<input>") -> str:
    """
    Compile MiniRS source code to AArch64 assembly.

    Example:
        >>> asm = compile_minirs('''
        ... fn main() {
        ...     write("hello\\n");
        ...     return 0;
        ... }
        ... ''')
    """
    return MiniRSCompiler().compile_source(source, filename).assembly


def compile_file(filepath: str, output_path: Optional[str] = None) -> str:
    """
    Compile a MiniRS source file, optionally writing the assembly to disk.

    Example:
        >>> asm = compile_file("fib.rs", "fib.s")
    """
    result = MiniRSCompiler().compile_file(filepath)

    if output_path:
        Path(output_path).write_text(result.assembly, encoding="utf-8")

    return result.assembly
