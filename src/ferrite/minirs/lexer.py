"""
MiniRS Lexer (Tokenizer)
========================

This module converts MiniRS source text into a stream of tokens for
the parser.

Token Categories
----------------
- Keywords: return, if, else, while, for, fn, let, i32
- Identifiers: an ASCII letter followed by letters and digits
- Numbers: unsigned decimal literals up to 2**64 - 1
- Strings: "double quoted", contents kept verbatim (no escapes)
- Operators: + - * / == != < <= > >= = & ->
- Delimiters: ( ) { } [ ] ; , :

Comments
--------
- Single-line: // comment
- Multi-line: /* comment */ (an unclosed comment is an error)

Positions
---------
Every token records the UTF-8 byte offset of its first character.
Line and column are derived on demand when an error is reported, see
SourceLocation.from_offset.

Example Usage
-------------
>>> from ferrite.minirs.lexer import tokenize
>>> stream = tokenize("fn main() { return 42; }")
>>> stream.advance()
Token(FN, 'fn', @0)
"""

from dataclasses import dataclass
from enum import Enum, auto
from typing import Iterator
import string

from ferrite.errors import SourceLocation, source_line_at
from ferrite.minirs.errors import (
    IntegerOverflowError,
    InvalidCharacterError,
    UnterminatedCommentError,
    UnterminatedStringError,
)


# Largest value an integer literal may have.
MAX_INTEGER = 2**64 - 1


# =============================================================================
# Token Kind Enumeration
# =============================================================================

class TokenKind(Enum):
    """Token kinds for the MiniRS language."""

    # Literals
    NUMBER = auto()         # 42
    STRING = auto()         # "hello"
    IDENT = auto()          # foo

    # Keywords
    RETURN = auto()         # return
    IF = auto()             # if
    ELSE = auto()           # else
    WHILE = auto()          # while
    FOR = auto()            # for
    FN = auto()             # fn
    LET = auto()            # let
    I32 = auto()            # i32

    # Arithmetic operators
    PLUS = auto()           # +
    MINUS = auto()          # -
    STAR = auto()           # *
    SLASH = auto()          # /

    # Comparison operators
    EQ = auto()             # ==
    NE = auto()             # !=
    LT = auto()             # <
    LE = auto()             # <=
    GT = auto()             # >
    GE = auto()             # >=

    # Other operators
    ASSIGN = auto()         # =
    AMPERSAND = auto()      # &
    ARROW = auto()          # ->

    # Delimiters
    SEMICOLON = auto()      # ;
    COMMA = auto()          # ,
    COLON = auto()          # :
    LPAREN = auto()         # (
    RPAREN = auto()         # )
    LBRACE = auto()         # {
    RBRACE = auto()         # }
    LBRACKET = auto()       # [
    RBRACKET = auto()       # ]

    EOF = auto()


# Keyword lookup table
KEYWORDS: dict[str, TokenKind] = {
    "return": TokenKind.RETURN,
    "if": TokenKind.IF,
    "else": TokenKind.ELSE,
    "while": TokenKind.WHILE,
    "for": TokenKind.FOR,
    "fn": TokenKind.FN,
    "let": TokenKind.LET,
    "i32": TokenKind.I32,
}

# Operators and delimiters, longest lexeme first so that "<=" wins over "<".
OPERATORS: tuple[tuple[str, TokenKind], ...] = (
    ("==", TokenKind.EQ),
    ("!=", TokenKind.NE),
    ("<=", TokenKind.LE),
    (">=", TokenKind.GE),
    ("->", TokenKind.ARROW),
    ("+", TokenKind.PLUS),
    ("-", TokenKind.MINUS),
    ("*", TokenKind.STAR),
    ("/", TokenKind.SLASH),
    ("<", TokenKind.LT),
    (">", TokenKind.GT),
    ("=", TokenKind.ASSIGN),
    ("&", TokenKind.AMPERSAND),
    (";", TokenKind.SEMICOLON),
    (",", TokenKind.COMMA),
    (":", TokenKind.COLON),
    ("(", TokenKind.LPAREN),
    (")", TokenKind.RPAREN),
    ("{", TokenKind.LBRACE),
    ("}", TokenKind.RBRACE),
    ("[", TokenKind.LBRACKET),
    ("]", TokenKind.RBRACKET),
)

# Lexeme for each fixed-spelling token kind, used in parser diagnostics.
LEXEMES: dict[TokenKind, str] = {
    **{kind: text for text, kind in KEYWORDS.items()},
    **{kind: text for text, kind in OPERATORS},
}


# =============================================================================
# Token Data Class
# =============================================================================

@dataclass(frozen=True)
class Token:
    """
    A single token from MiniRS source code.

    Attributes:
        kind: The TokenKind classification
        value: int for numbers, str for identifiers, strings and
            fixed-spelling tokens, None for EOF
        offset: Byte offset of the token's first character
    """
    kind: TokenKind
    value: str | int | None
    offset: int

    def __repr__(self) -> str:
        if self.value is None:
            return f"Token({self.kind.name}, @{self.offset})"
        return f"Token({self.kind.name}, {self.value!r}, @{self.offset})"


# =============================================================================
# Token Stream
# =============================================================================

class TokenStream:
    """
    Forward-only token sequence with one token of lookahead.

    Once the final EOF token is reached, peek() and advance() keep
    returning it, so the parser never runs off the end.
    """

    def __init__(self, tokens: list[Token]):
        if not tokens or tokens[-1].kind is not TokenKind.EOF:
            raise ValueError("token stream must end with an EOF token")
        self._tokens = tokens
        self._pos = 0

    def __len__(self) -> int:
        """Total number of tokens, EOF included."""
        return len(self._tokens)

    def peek(self) -> Token:
        """Return the next token without consuming it."""
        return self._tokens[self._pos]

    def advance(self) -> Token:
        """Consume and return the next token."""
        token = self._tokens[self._pos]
        if self._pos < len(self._tokens) - 1:
            self._pos += 1
        return token

    def at_end(self) -> bool:
        """True once only the EOF token remains."""
        return self.peek().kind is TokenKind.EOF


# =============================================================================
# Lexer Implementation
# =============================================================================

class Lexer:
    """
    Tokenizes MiniRS source code.

    Usage:
        lexer = Lexer(source_text, filename)
        tokens = list(lexer.tokenize())

    The lexer tracks both a character index (for reading the text) and
    a byte offset (for positions), since tokens are positioned in bytes.
    """

    IDENT_START = string.ascii_letters
    IDENT_CHARS = string.ascii_letters + string.digits

    def __init__(self, source: str, filename: str = "<input>"):
        self.source = source
        self.filename = filename

        self._pos = 0
        self._offset = 0

    def tokenize(self) -> Iterator[Token]:
        """
        Generate tokens from the source code, ending with EOF.

        Raises:
            ParseError: On the first invalid construct
        """
        while True:
            self._skip_whitespace_and_comments()
            if self._at_end():
                break
            yield self._scan_token()

        yield Token(TokenKind.EOF, None, self._offset)

    # =========================================================================
    # Character Access Methods
    # =========================================================================

    def _at_end(self) -> bool:
        return self._pos >= len(self.source)

    def _peek(self, offset: int = 0) -> str:
        """Look ahead without advancing; empty string past the end."""
        pos = self._pos + offset
        if pos >= len(self.source):
            return ""
        return self.source[pos]

    def _advance(self) -> str:
        """Consume and return the current character."""
        if self._at_end():
            return ""
        char = self.source[self._pos]
        self._pos += 1
        self._offset += len(char.encode("utf-8"))
        return char

    def _location(self, offset: int) -> SourceLocation:
        return SourceLocation.from_offset(self.source, offset, self.filename)

    # =========================================================================
    # Whitespace and Comment Handling
    # =========================================================================

    def _skip_whitespace_and_comments(self) -> None:
        while not self._at_end():
            char = self._peek()

            if char.isspace():
                self._advance()
                continue

            if char == "/" and self._peek(1) == "/":
                while not self._at_end() and self._peek() != "\n":
                    self._advance()
                continue

            if char == "/" and self._peek(1) == "*":
                self._skip_block_comment()
                continue

            break

    def _skip_block_comment(self) -> None:
        """
        Skip a block comment (/* ... */). Comments do not nest.

        Raises:
            UnterminatedCommentError: If the input ends inside the comment
        """
        start = self._offset

        self._advance()
        self._advance()

        while not self._at_end():
            if self._peek() == "*" and self._peek(1) == "/":
                self._advance()
                self._advance()
                return
            self._advance()

        raise UnterminatedCommentError(
            self._location(start),
            source_line=source_line_at(self.source, start),
        )

    # =========================================================================
    # Token Scanning
    # =========================================================================

    def _scan_token(self) -> Token:
        char = self._peek()

        if char in string.digits:
            return self._scan_number()

        if char in self.IDENT_START:
            return self._scan_identifier()

        if char == '"':
            return self._scan_string()

        return self._scan_operator()

    def _scan_number(self) -> Token:
        start = self._offset
        digits = []
        while self._peek() and self._peek() in string.digits:
            digits.append(self._advance())

        text = "".join(digits)
        value = int(text)
        if value > MAX_INTEGER:
            raise IntegerOverflowError(
                text,
                self._location(start),
                source_line=source_line_at(self.source, start),
            )
        return Token(TokenKind.NUMBER, value, start)

    def _scan_identifier(self) -> Token:
        start = self._offset
        chars = []
        while self._peek() and self._peek() in self.IDENT_CHARS:
            chars.append(self._advance())

        name = "".join(chars)
        kind = KEYWORDS.get(name, TokenKind.IDENT)
        return Token(kind, name, start)

    def _scan_string(self) -> Token:
        """Scan a string literal; the contents are taken verbatim."""
        start = self._offset
        self._advance()  # opening quote

        chars = []
        while not self._at_end() and self._peek() != '"':
            chars.append(self._advance())

        if self._at_end():
            raise UnterminatedStringError(
                self._location(start),
                source_line=source_line_at(self.source, start),
            )

        self._advance()  # closing quote
        return Token(TokenKind.STRING, "".join(chars), start)

    def _scan_operator(self) -> Token:
        start = self._offset
        for text, kind in OPERATORS:
            if self.source.startswith(text, self._pos):
                for _ in text:
                    self._advance()
                return Token(kind, text, start)

        raise InvalidCharacterError(
            self._peek(),
            self._location(start),
            source_line=source_line_at(self.source, start),
        )


# =============================================================================
# Convenience Function
# =============================================================================

def tokenize(source: str, filename: str = "<input>") -> TokenStream:
    """
    Tokenize a complete source text.

    The whole input is lexed before the stream is returned, so lexical
    errors surface before any parsing starts.
    """
    return TokenStream(list(Lexer(source, filename).tokenize()))
