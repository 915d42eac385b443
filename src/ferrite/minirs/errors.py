"""
MiniRS Compiler Error Hierarchy
===============================

This module defines the exception hierarchy for the MiniRS compiler.
All exceptions inherit from MiniRSError, which itself inherits from
FerriteError for consistent error handling across the toolchain.

Exception Hierarchy
-------------------
MiniRSError (base for all MiniRS errors)
├── ParseError - lexer and parser errors, positioned by byte offset
│   ├── UnterminatedStringError - missing closing quote
│   ├── UnterminatedCommentError - missing closing */
│   ├── InvalidCharacterError - character that starts no token
│   ├── IntegerOverflowError - literal wider than 64 bits
│   ├── MissingTokenError - required token not found
│   └── DuplicateDeclarationError - `let` of an already bound name
└── CodeGenError - tree the code generator cannot lower
    ├── InvalidAssignmentError - assignment to a non-lvalue
    ├── NotAddressableError - `&` applied to a non-lvalue
    └── UnknownSyscallError - system call other than `write`

Compilation stops at the first error; there is no recovery. Errors are
raised by the stage that detects them and formatted only by the caller.

Error Message Format
--------------------
    fib.rs:4:18: error: expected ';'
        return fib(n-1)
                       ^
    hint: statements end with ';'
"""

from typing import Optional

from ferrite.errors import FerriteError, SourceLocation


# =============================================================================
# Base MiniRS Exception
# =============================================================================

class MiniRSError(FerriteError):
    """
    Base exception for all MiniRS compiler errors.

    Attributes:
        message: The error description
        location: Where in the source the error occurred
        hint: A suggestion for fixing the error
        source_line: The actual source text at the error location
    """

    def __init__(
        self,
        message: str,
        location: Optional[SourceLocation] = None,
        hint: Optional[str] = None,
        source_line: Optional[str] = None,
    ):
        self.message = message
        self.location = location
        self.hint = hint
        self.source_line = source_line
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """
        Format the error message with location, source context, and hint.

            fib.rs:4:18: error: expected ';'
                return fib(n-1)
                               ^
            hint: statements end with ';'
        """
        parts = []

        if self.location:
            parts.append(f"{self.location}: error: {self.message}")
        else:
            parts.append(f"error: {self.message}")

        if self.source_line is not None and self.location is not None:
            parts.append(f"    {self.source_line}")
            if self.location.column > 0:
                padding = " " * (4 + self.location.column - 1)
                parts.append(f"{padding}^")

        if self.hint:
            parts.append(f"hint: {self.hint}")

        return "\n".join(parts)


# =============================================================================
# Parse Errors (Lexer and Parser)
# =============================================================================

class ParseError(MiniRSError):
    """
    Lexical or syntactic error in MiniRS source.

    Every parse error is anchored at a byte offset into the source; the
    offset of the offending token, or of the opening delimiter for
    unterminated strings and comments.
    """

    @property
    def offset(self) -> int:
        """Byte offset of the error, 0 when no location is known."""
        return self.location.offset if self.location else 0


# The lexer and parser share one error type.
LexError = ParseError


class UnterminatedStringError(ParseError):
    """
    Unterminated string literal.

    Example:
        write("hello);    // Missing closing quote
    """

    def __init__(
        self,
        location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
    ):
        super().__init__(
            "unterminated string literal",
            location=location,
            hint="add closing '\"' to complete the string",
            source_line=source_line,
        )


class UnterminatedCommentError(ParseError):
    """Block comment still open at end of input."""

    def __init__(
        self,
        location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
    ):
        super().__init__(
            "unterminated block comment",
            location=location,
            hint="add closing */ to terminate the comment",
            source_line=source_line,
        )


class InvalidCharacterError(ParseError):
    """
    Character that cannot start any token.

    The offending character is kept in ``char`` and named in the hint.
    """

    def __init__(
        self,
        char: str,
        location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
    ):
        self.char = char
        super().__init__(
            "invalid character",
            location=location,
            hint=f"'{char}' (U+{ord(char):04X}) is not part of the language",
            source_line=source_line,
        )


class IntegerOverflowError(ParseError):
    """Integer literal that does not fit in 64 unsigned bits."""

    def __init__(
        self,
        literal: str,
        location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
    ):
        self.literal = literal
        super().__init__(
            "integer literal too large",
            location=location,
            hint="literals must be at most 18446744073709551615",
            source_line=source_line,
        )


class MissingTokenError(ParseError):
    """
    Required token is missing.

    ``expected`` is either a token lexeme such as ``;`` (quoted in the
    message) or a token category such as ``identifier`` (left bare).
    """

    def __init__(
        self,
        expected: str,
        location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
        quoted: bool = True,
        hint: Optional[str] = None,
    ):
        self.expected = expected
        text = f"'{expected}'" if quoted else expected
        super().__init__(
            f"expected {text}",
            location=location,
            hint=hint,
            source_line=source_line,
        )


class DuplicateDeclarationError(ParseError):
    """`let` binding a name that is already bound in the environment."""

    def __init__(
        self,
        identifier: str,
        location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
    ):
        self.identifier = identifier
        super().__init__(
            f"redeclaration of '{identifier}'",
            location=location,
            hint=f"assign to '{identifier}' without 'let', or pick a new name",
            source_line=source_line,
        )


# =============================================================================
# Code Generation Errors
# =============================================================================

class CodeGenError(MiniRSError):
    """
    Error during code generation.

    The tree carries no source positions, so these errors have no
    location. They indicate a construct that parses but has no
    meaning, such as assigning to a literal.
    """
    pass


class InvalidAssignmentError(CodeGenError):
    """Left-hand side of an assignment is not a variable or dereference."""

    def __init__(self, target: str):
        self.target = target
        super().__init__(
            f"cannot assign to {target}",
            hint="the left side of '=' must be a variable, 'a[i]' or '*p'",
        )


class NotAddressableError(CodeGenError):
    """Operand of '&' has no address."""

    def __init__(self, operand: str):
        self.operand = operand
        super().__init__(
            f"cannot take the address of {operand}",
            hint="'&' applies to variables and dereferences only",
        )


class UnknownSyscallError(CodeGenError):
    """System call the code generator does not know how to issue."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"unknown system call '{name}'")
