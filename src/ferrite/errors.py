"""
Ferrite Error Hierarchy
=======================

This module defines the root of the exception hierarchy for the Ferrite
toolchain. All exceptions inherit from FerriteError, allowing callers to
catch every toolchain error with a single except clause.

Exception Hierarchy
-------------------
FerriteError (base)
└── MiniRSError (compiler errors, see ferrite.minirs.errors)
    ├── ParseError - lexical and syntactic errors
    └── CodeGenError - malformed trees reaching the code generator

Source Positions
----------------
The lexer records positions as UTF-8 byte offsets into the source text.
SourceLocation turns such an offset into the familiar line/column pair
so that diagnostics read like any other compiler's:

    prog.rs:3:13: error: expected ';'
        let x = 1
                 ^
"""

from dataclasses import dataclass


# =============================================================================
# Base Exception Class
# =============================================================================

class FerriteError(Exception):
    """
    Base exception for all Ferrite errors.

        try:
            compile_minirs(source)
        except FerriteError as e:
            print(f"Error: {e}")
    """
    pass


# =============================================================================
# Source Location Tracking
# =============================================================================

@dataclass(frozen=True)
class SourceLocation:
    """
    Represents a location in source code for error reporting.

    Attributes:
        filename: Name of the source file (or "<input>" for string input)
        line: Line number (1-indexed)
        column: Column number (1-indexed, counted in characters)
        offset: Byte offset into the UTF-8 encoded source
    """
    filename: str
    line: int
    column: int
    offset: int = 0

    def __str__(self) -> str:
        """Format as 'filename:line:column' for error messages."""
        return f"{self.filename}:{self.line}:{self.column}"

    @classmethod
    def from_offset(
        cls,
        source: str,
        offset: int,
        filename: str = "<input>",
    ) -> "SourceLocation":
        """
        Build a location from a byte offset into ``source``.

        Offsets past the end of the source are clamped to the end, which
        is where the lexer places the EOF token.
        """
        encoded = source.encode("utf-8")
        offset = max(0, min(offset, len(encoded)))
        prefix = encoded[:offset].decode("utf-8", errors="ignore")
        line = prefix.count("\n") + 1
        line_start = prefix.rfind("\n") + 1
        column = len(prefix) - line_start + 1
        return cls(filename, line, column, offset)


def source_line_at(source: str, offset: int) -> str:
    """Return the text of the line containing byte ``offset``."""
    encoded = source.encode("utf-8")
    offset = max(0, min(offset, len(encoded)))
    start = encoded.rfind(b"\n", 0, offset) + 1
    end = encoded.find(b"\n", offset)
    if end == -1:
        end = len(encoded)
    return encoded[start:end].decode("utf-8", errors="replace").rstrip("\r")
