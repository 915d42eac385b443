"""
MiniRS Abstract Syntax Tree (AST) Definitions
=============================================

This module defines the tagged tree the parser builds and the code
generator walks.

Node Hierarchy
--------------
Node (base)
├── Seq - two statements (or functions) in order
├── Function - function definition, parameters as Var nodes
├── Statements
│   ├── Return - return from the enclosing function
│   ├── If - if/else, else branch optional
│   ├── While - while loop
│   ├── For - for loop with init/cond/update
│   └── ArrayAssign - array initializer bound to a slot run
└── Expressions
    ├── Num - unsigned 64-bit constant
    ├── StringLiteral - string constant (evaluates to its address)
    ├── Var - local slot, identified by frame offset
    ├── BinaryOp - arithmetic and comparison
    ├── Assign - store, evaluates to the stored value
    ├── Deref - load through an address
    ├── Addr - address of an lvalue
    ├── Call - user function call
    └── Syscall - operating system call (only `write`)

Design Notes
------------
- Nodes are frozen dataclasses; the tree is never mutated after parsing
- Variables carry only their frame offset, names are gone after parsing
- Sequences of children (arguments, array elements) are tuples
- Nodes carry no source positions; errors past parsing have no location
"""

from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, Iterator, Optional, Sequence


# =============================================================================
# AST Node Base Class
# =============================================================================

@dataclass(frozen=True)
class Node:
    """Base class for all AST nodes."""
    pass


class BinaryOperator(Enum):
    """Binary operator types."""
    # Arithmetic
    ADD = auto()    # +
    SUB = auto()    # -
    MUL = auto()    # *
    DIV = auto()    # /

    # Comparison
    EQ = auto()     # ==
    NE = auto()     # !=
    LT = auto()     # <
    GT = auto()     # >
    LE = auto()     # <=
    GE = auto()     # >=

    @property
    def is_comparison(self) -> bool:
        return self not in (
            BinaryOperator.ADD,
            BinaryOperator.SUB,
            BinaryOperator.MUL,
            BinaryOperator.DIV,
        )


# =============================================================================
# Structural Nodes
# =============================================================================

@dataclass(frozen=True)
class Seq(Node):
    """
    Two nodes evaluated in order.

    Longer sequences nest to the left: ``a; b; c`` is
    ``Seq(Seq(a, b), c)``. At the top level the halves are functions.
    """
    first: Node
    second: Node


@dataclass(frozen=True)
class Function(Node):
    """
    Function definition.

    Attributes:
        name: Function name (emitted with a leading underscore)
        args: Parameters, in order, as Var nodes
        body: Function body; ``Num(0)`` when the body is empty
    """
    name: str
    args: tuple[Node, ...]
    body: Node


# =============================================================================
# Statement Nodes
# =============================================================================

@dataclass(frozen=True)
class Return(Node):
    expr: Node


@dataclass(frozen=True)
class If(Node):
    cond: Node
    then_stmt: Node
    else_stmt: Optional[Node] = None


@dataclass(frozen=True)
class While(Node):
    cond: Node
    body: Node


@dataclass(frozen=True)
class For(Node):
    """
    For loop. Runs ``init`` once, then ``body`` and ``update`` for as long
    as ``cond`` is nonzero.
    """
    init: Node
    cond: Node
    update: Node
    body: Node


@dataclass(frozen=True)
class ArrayAssign(Node):
    """
    Array initializer.

    Element ``i`` is stored in the slot at ``offset + i * 8``, so the
    array occupies ``len(elements)`` consecutive slots from ``offset``.
    """
    offset: int
    elements: tuple[Node, ...]


# =============================================================================
# Expression Nodes
# =============================================================================

@dataclass(frozen=True)
class Num(Node):
    value: int


@dataclass(frozen=True)
class StringLiteral(Node):
    value: str


@dataclass(frozen=True)
class Var(Node):
    """Local variable; lives at ``frame_pointer - offset``."""
    offset: int


@dataclass(frozen=True)
class BinaryOp(Node):
    """Binary operation; ``lhs`` is evaluated before ``rhs``."""
    op: BinaryOperator
    lhs: Node
    rhs: Node


@dataclass(frozen=True)
class Assign(Node):
    lhs: Node
    rhs: Node


@dataclass(frozen=True)
class Deref(Node):
    expr: Node


@dataclass(frozen=True)
class Addr(Node):
    expr: Node


@dataclass(frozen=True)
class Call(Node):
    name: str
    args: tuple[Node, ...]


@dataclass(frozen=True)
class Syscall(Node):
    name: str
    args: tuple[Node, ...]


# =============================================================================
# Tree Helpers
# =============================================================================

def iter_children(node: Node) -> Iterator[Node]:
    """Yield the direct children of ``node`` in field order."""
    for value in node.__dict__.values():
        if isinstance(value, Node):
            yield value
        elif isinstance(value, tuple):
            for item in value:
                if isinstance(item, Node):
                    yield item


def fold_seq(nodes: Sequence[Node]) -> Node:
    """
    Fold a non-empty list of nodes into left-nested Seq nodes.

    >>> fold_seq([Num(1), Num(2), Num(3)])
    Seq(first=Seq(first=Num(value=1), second=Num(value=2)), second=Num(value=3))
    """
    if not nodes:
        raise ValueError("cannot fold an empty sequence")
    result = nodes[0]
    for node in nodes[1:]:
        result = Seq(result, node)
    return result


# =============================================================================
# AST Visitor
# =============================================================================

class ASTVisitor:
    """
    Base class for AST visitors.

    Subclasses override visit_* methods for the node types they care
    about; everything else falls through to generic_visit, which visits
    the children.

    Usage:
        class CallCounter(ASTVisitor):
            def __init__(self):
                self.calls = 0

            def visit_Call(self, node):
                self.calls += 1
                self.generic_visit(node)
    """

    def visit(self, node: Node) -> Any:
        method_name = f"visit_{node.__class__.__name__}"
        visitor = getattr(self, method_name, self.generic_visit)
        return visitor(node)

    def generic_visit(self, node: Node) -> None:
        for child in iter_children(node):
            self.visit(child)
