"""
MiniRS Parser
=============

This module implements a recursive descent parser for MiniRS. It turns
the token stream from the lexer into the tree defined in ast.py.

Variables are resolved while parsing: each name is mapped to a frame
offset through a SymbolEnvironment as soon as it is seen, so the tree
holds offsets rather than names.

Grammar (EBNF)
--------------
    program        = function { function } ;
    function       = "fn" IDENT "(" [ param { "," param } ] ")"
                     [ "->" "i32" ] "{" { stmt } "}" ;
    param          = IDENT ":" "i32" ;
    stmt           = "return" expr ";"
                   | "{" { stmt } "}"
                   | "if" "(" expr ")" stmt [ "else" stmt ]
                   | "while" "(" expr ")" stmt
                   | "for" "(" expr ";" expr ";" expr ")" stmt
                   | "let" IDENT "=" ( array_init | expr ) ";"
                   | expr ";" ;
    array_init     = "[" [ expr { "," expr } ] "]" ;
    expr           = assign ;
    assign         = equality [ "=" assign ] ;
    equality       = relational { ( "==" | "!=" ) relational } ;
    relational     = additive { ( "<" | ">" | "<=" | ">=" ) additive } ;
    additive       = multiplicative { ( "+" | "-" ) multiplicative } ;
    multiplicative = unary { ( "*" | "/" ) unary } ;
    unary          = [ "+" | "-" ] primary | ( "*" | "&" ) unary ;
    primary        = NUMBER | STRING
                   | IDENT "[" expr "]"
                   | IDENT "(" [ expr { "," expr } ] ")"
                   | IDENT
                   | "(" expr ")" ;

Desugaring
----------
| Source     | Tree                                              |
|------------|---------------------------------------------------|
| -x         | BinaryOp(SUB, Num(0), x)                          |
| a[i]       | Deref(BinaryOp(SUB, Addr(Var(a)), BinaryOp(MUL, i, Num(8)))) |
| write(s)   | Syscall("write", (s,))                            |
| a; b; c    | Seq(Seq(a, b), c)                                 |
| {}         | Num(0)                                            |

Errors
------
The first error is fatal. There is no recovery or resynchronization.
"""

from typing import Callable, Optional

from ferrite.errors import SourceLocation, source_line_at
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
    StringLiteral,
    Syscall,
    Var,
    While,
    fold_seq,
)
from ferrite.minirs.errors import (
    DuplicateDeclarationError,
    MissingTokenError,
    ParseError,
)
from ferrite.minirs.lexer import LEXEMES, Token, TokenKind, TokenStream, tokenize
from ferrite.minirs.symbols import SLOT_SIZE, SymbolEnvironment


# Calls with these names are lowered to system calls.
SYSCALL_NAMES = frozenset({"write"})


class Parser:
    """
    Recursive descent parser for MiniRS.

    Usage:
        parser = Parser(tokenize(source), source, "prog.rs")
        program = parser.parse()

    Attributes:
        tokens: The token stream being consumed
        source: Original source text (used for error context only)
        filename: Name of the source file
        symbols: Environment mapping names to frame offsets, shared by
            every function of the compilation unit
    """

    def __init__(
        self,
        tokens: TokenStream,
        source: str = "",
        filename: str = "<input>",
        symbols: Optional[SymbolEnvironment] = None,
    ):
        self.tokens = tokens
        self.source = source
        self.filename = filename
        self.symbols = symbols if symbols is not None else SymbolEnvironment()

    def parse(self) -> Node:
        """
        Parse a complete program.

        Returns:
            A single Function, or the functions folded into Seq nodes

        Raises:
            ParseError: On the first syntax error
        """
        functions = [self._parse_function()]
        while not self.tokens.at_end():
            functions.append(self._parse_function())
        return fold_seq(functions)

    # Single statements and expressions can also be parsed in isolation.
    def parse_statement(self) -> Node:
        return self._parse_statement()

    def parse_expression(self) -> Node:
        return self._parse_expression()

    # =========================================================================
    # Token Helpers
    # =========================================================================

    def _peek(self) -> Token:
        return self.tokens.peek()

    def _advance(self) -> Token:
        return self.tokens.advance()

    def _check(self, *kinds: TokenKind) -> bool:
        return self._peek().kind in kinds

    def _match(self, *kinds: TokenKind) -> Optional[Token]:
        """Consume the current token if it is one of ``kinds``."""
        if self._check(*kinds):
            return self._advance()
        return None

    def _expect(self, kind: TokenKind) -> Token:
        """
        Expect and consume a token of the given kind.

        Raises:
            MissingTokenError: If the current token is of another kind
        """
        if self._check(kind):
            return self._advance()

        token = self._peek()
        if kind in LEXEMES:
            raise MissingTokenError(
                LEXEMES[kind],
                self._location(token),
                self._source_line(token),
            )
        raise MissingTokenError(
            kind.name.lower() if kind is not TokenKind.IDENT else "identifier",
            self._location(token),
            self._source_line(token),
            quoted=False,
        )

    def _location(self, token: Token) -> SourceLocation:
        return SourceLocation.from_offset(self.source, token.offset, self.filename)

    def _source_line(self, token: Token) -> Optional[str]:
        if not self.source:
            return None
        return source_line_at(self.source, token.offset)

    def _error(self, message: str, token: Token, hint: Optional[str] = None) -> ParseError:
        return ParseError(
            message,
            self._location(token),
            hint=hint,
            source_line=self._source_line(token),
        )

    # =========================================================================
    # Functions
    # =========================================================================

    def _parse_function(self) -> Function:
        """Parse: fn name(param: i32, ...) [-> i32] { stmt* }"""
        self._expect(TokenKind.FN)
        name = self._expect(TokenKind.IDENT).value
        self._expect(TokenKind.LPAREN)

        args = []
        if not self._check(TokenKind.RPAREN):
            args.append(self._parse_param())
            while self._match(TokenKind.COMMA):
                args.append(self._parse_param())
        self._expect(TokenKind.RPAREN)

        if self._match(TokenKind.ARROW):
            self._expect(TokenKind.I32)

        body = self._parse_block()
        return Function(name, tuple(args), body)

    def _parse_param(self) -> Var:
        name = self._expect(TokenKind.IDENT).value
        self._expect(TokenKind.COLON)
        self._expect(TokenKind.I32)
        return Var(self.symbols.resolve(name))

    def _parse_block(self) -> Node:
        """Parse { stmt* }; an empty block is Num(0)."""
        self._expect(TokenKind.LBRACE)
        statements = []
        while not self._check(TokenKind.RBRACE):
            statements.append(self._parse_statement())
        self._expect(TokenKind.RBRACE)

        if not statements:
            return Num(0)
        return fold_seq(statements)

    # =========================================================================
    # Statements
    # =========================================================================

    def _parse_statement(self) -> Node:
        token = self._peek()

        if token.kind is TokenKind.EOF:
            raise self._error("expected statement", token)
        if token.kind is TokenKind.RETURN:
            return self._parse_return_statement()
        if token.kind is TokenKind.LBRACE:
            return self._parse_block()
        if token.kind is TokenKind.IF:
            return self._parse_if_statement()
        if token.kind is TokenKind.WHILE:
            return self._parse_while_statement()
        if token.kind is TokenKind.FOR:
            return self._parse_for_statement()
        if token.kind is TokenKind.LET:
            return self._parse_let_statement()

        expr = self._parse_expression()
        self._expect(TokenKind.SEMICOLON)
        return expr

    def _parse_return_statement(self) -> Return:
        self._expect(TokenKind.RETURN)
        expr = self._parse_expression()
        self._expect(TokenKind.SEMICOLON)
        return Return(expr)

    def _parse_if_statement(self) -> If:
        self._expect(TokenKind.IF)
        self._expect(TokenKind.LPAREN)
        cond = self._parse_expression()
        self._expect(TokenKind.RPAREN)
        then_stmt = self._parse_statement()

        else_stmt = None
        if self._match(TokenKind.ELSE):
            else_stmt = self._parse_statement()

        return If(cond, then_stmt, else_stmt)

    def _parse_while_statement(self) -> While:
        self._expect(TokenKind.WHILE)
        self._expect(TokenKind.LPAREN)
        cond = self._parse_expression()
        self._expect(TokenKind.RPAREN)
        body = self._parse_statement()
        return While(cond, body)

    def _parse_for_statement(self) -> For:
        """Parse: for (init; cond; update) stmt. All three clauses are required."""
        self._expect(TokenKind.FOR)
        self._expect(TokenKind.LPAREN)
        init = self._parse_expression()
        self._expect(TokenKind.SEMICOLON)
        cond = self._parse_expression()
        self._expect(TokenKind.SEMICOLON)
        update = self._parse_expression()
        self._expect(TokenKind.RPAREN)
        body = self._parse_statement()
        return For(init, cond, update, body)

    def _parse_let_statement(self) -> Node:
        """
        Parse: let name = expr;  or  let name = [e0, e1, ...];

        The initializer is parsed before ``name`` is bound, so it cannot
        refer to the variable being declared.
        """
        self._expect(TokenKind.LET)
        name_token = self._expect(TokenKind.IDENT)
        name = name_token.value
        self._expect(TokenKind.ASSIGN)

        if self._match(TokenKind.LBRACKET):
            elements = []
            if not self._check(TokenKind.RBRACKET):
                elements.append(self._parse_expression())
                while self._match(TokenKind.COMMA):
                    elements.append(self._parse_expression())
            self._expect(TokenKind.RBRACKET)
            self._expect(TokenKind.SEMICOLON)

            self._check_not_bound(name_token)
            offset = self.symbols.declare_array(name, len(elements))
            return ArrayAssign(offset, tuple(elements))

        value = self._parse_expression()
        self._expect(TokenKind.SEMICOLON)

        self._check_not_bound(name_token)
        return Assign(Var(self.symbols.declare(name)), value)

    def _check_not_bound(self, token: Token) -> None:
        if token.value in self.symbols:
            raise DuplicateDeclarationError(
                token.value,
                self._location(token),
                self._source_line(token),
            )

    # =========================================================================
    # Expressions
    # =========================================================================

    def _parse_expression(self) -> Node:
        return self._parse_assignment()

    def _parse_assignment(self) -> Node:
        """Assignment is right-associative: a = b = c is a = (b = c)."""
        lhs = self._parse_equality()
        if self._match(TokenKind.ASSIGN):
            return Assign(lhs, self._parse_assignment())
        return lhs

    def _parse_equality(self) -> Node:
        return self._parse_binary(self._parse_relational, {
            TokenKind.EQ: BinaryOperator.EQ,
            TokenKind.NE: BinaryOperator.NE,
        })

    def _parse_relational(self) -> Node:
        return self._parse_binary(self._parse_additive, {
            TokenKind.LT: BinaryOperator.LT,
            TokenKind.GT: BinaryOperator.GT,
            TokenKind.LE: BinaryOperator.LE,
            TokenKind.GE: BinaryOperator.GE,
        })

    def _parse_additive(self) -> Node:
        return self._parse_binary(self._parse_multiplicative, {
            TokenKind.PLUS: BinaryOperator.ADD,
            TokenKind.MINUS: BinaryOperator.SUB,
        })

    def _parse_multiplicative(self) -> Node:
        return self._parse_binary(self._parse_unary, {
            TokenKind.STAR: BinaryOperator.MUL,
            TokenKind.SLASH: BinaryOperator.DIV,
        })

    def _parse_binary(
        self,
        operand_parser: Callable[[], Node],
        operators: dict[TokenKind, BinaryOperator],
    ) -> Node:
        """
        Generic left-associative binary expression parser.

        Args:
            operand_parser: Function to parse operands
            operators: Map of token kinds to binary operators
        """
        expr = operand_parser()

        while self._peek().kind in operators:
            op_token = self._advance()
            rhs = operand_parser()
            expr = BinaryOp(operators[op_token.kind], expr, rhs)

        return expr

    def _parse_unary(self) -> Node:
        """Parse unary +, -, * and &. Sign operators apply to a primary only."""
        if self._match(TokenKind.PLUS):
            return self._parse_primary()
        if self._match(TokenKind.MINUS):
            return BinaryOp(BinaryOperator.SUB, Num(0), self._parse_primary())
        if self._match(TokenKind.STAR):
            return Deref(self._parse_unary())
        if self._match(TokenKind.AMPERSAND):
            return Addr(self._parse_unary())
        return self._parse_primary()

    def _parse_primary(self) -> Node:
        token = self._peek()

        if token.kind is TokenKind.NUMBER:
            self._advance()
            return Num(token.value)

        if token.kind is TokenKind.STRING:
            self._advance()
            return StringLiteral(token.value)

        if token.kind is TokenKind.IDENT:
            self._advance()
            if self._match(TokenKind.LBRACKET):
                return self._parse_subscript(token.value)
            if self._match(TokenKind.LPAREN):
                return self._parse_call(token.value)
            return Var(self.symbols.resolve(token.value))

        if token.kind is TokenKind.LPAREN:
            self._advance()
            expr = self._parse_expression()
            self._expect(TokenKind.RPAREN)
            return expr

        raise self._error("expected expression", token)

    def _parse_subscript(self, name: str) -> Deref:
        """
        Parse the rest of name[index] after the '['.

        The index is parsed before the array name is resolved.
        """
        index = self._parse_expression()
        self._expect(TokenKind.RBRACKET)
        base = Addr(Var(self.symbols.resolve(name)))
        scaled = BinaryOp(BinaryOperator.MUL, index, Num(SLOT_SIZE))
        return Deref(BinaryOp(BinaryOperator.SUB, base, scaled))

    def _parse_call(self, name: str) -> Node:
        """Parse the rest of name(args) after the '('."""
        args = []
        if not self._check(TokenKind.RPAREN):
            args.append(self._parse_expression())
            while self._match(TokenKind.COMMA):
                args.append(self._parse_expression())
        self._expect(TokenKind.RPAREN)

        if name in SYSCALL_NAMES:
            return Syscall(name, tuple(args))
        return Call(name, tuple(args))


# =============================================================================
# Convenience Function
# =============================================================================

def parse_source(source: str, filename: str = "<input>") -> Node:
    """Tokenize and parse ``source`` in one step."""
    return Parser(tokenize(source, filename), source, filename).parse()
