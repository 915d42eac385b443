"""
AArch64 Code Generator for MiniRS
=================================

This module generates Apple arm64 assembly (Mach-O, as accepted by
``clang -c``) from the MiniRS AST.

Code Generation Strategy
------------------------
The generator uses a pure stack machine. There is no register
allocation; every value round-trips through memory:

1. Every expression leaves exactly one 8-byte value on the operand stack
2. Operands are pushed with ``str x0, [sp, #-16]!`` and popped with
   ``ldr xN, [sp], #16``, which keeps sp 16-byte aligned at all times
3. Statements that produce no useful value (loops, ``if`` without
   ``else``, array initializers) push a filler 0 so that the sequence
   rule "pop between statements" always balances
4. The last value a function body leaves is its implicit return value

Register Usage
--------------
| Register | Usage                                      |
|----------|--------------------------------------------|
| x0       | Expression result, return value, arg 0     |
| x1-x7    | Second operand, arguments 1-7              |
| x9, x10  | Scratch for addresses and large immediates |
| x16      | System call number                         |
| x29      | Frame pointer                              |
| x30      | Link register                              |

Stack Frame Layout
------------------
    +------------------+ <- sp on entry
    | saved x29, x30   |
    +------------------+ <- x29
    | slot at offset 8 |  x29 - 8
    | slot at offset 16|  x29 - 16
    | ...              |
    +------------------+ <- sp after prologue (x29 - frame size)
    | operand stack    |
    +------------------+

The frame is sized from the largest slot offset the function touches,
rounded up to 16 bytes, with a 48-byte minimum.

Usage
-----
>>> from ferrite.minirs.parser import parse_source
>>> from ferrite.minirs.codegen import CodeGenerator
>>> asm = CodeGenerator().generate(parse_source('fn main() { return 42; }'))
"""

import logging
from typing import Optional

from ferrite.minirs.ast import (
    Addr,
    ArrayAssign,
    Assign,
    ASTVisitor,
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
from ferrite.minirs.errors import (
    CodeGenError,
    InvalidAssignmentError,
    NotAddressableError,
    UnknownSyscallError,
)
from ferrite.minirs.symbols import SLOT_SIZE


logger = logging.getLogger(__name__)


# Registers used to pass arguments.
MAX_REGISTER_ARGS = 8

MIN_FRAME_SIZE = 48
STACK_ALIGNMENT = 16

# Largest offset usable as an add/sub immediate.
MAX_ADD_IMMEDIATE = 4095

# Darwin system call numbers
SYS_WRITE = 4
STDOUT_FD = 1

ARITHMETIC_MNEMONICS = {
    BinaryOperator.ADD: "add",
    BinaryOperator.SUB: "sub",
    BinaryOperator.MUL: "mul",
    BinaryOperator.DIV: "sdiv",
}

CONDITION_CODES = {
    BinaryOperator.EQ: "eq",
    BinaryOperator.NE: "ne",
    BinaryOperator.LT: "lt",
    BinaryOperator.GT: "gt",
    BinaryOperator.LE: "le",
    BinaryOperator.GE: "ge",
}


# =============================================================================
# Frame Sizing
# =============================================================================

class _FrameExtent(ASTVisitor):
    """Finds the deepest slot offset referenced in a subtree."""

    def __init__(self):
        self.deepest = 0

    def visit_Var(self, node: Var) -> None:
        self.deepest = max(self.deepest, node.offset)

    def visit_ArrayAssign(self, node: ArrayAssign) -> None:
        last = node.offset + max(len(node.elements) - 1, 0) * SLOT_SIZE
        self.deepest = max(self.deepest, last)
        self.generic_visit(node)


def frame_size(function: Function) -> int:
    """
    Return the number of bytes to reserve below the frame pointer.

    Covers every slot referenced by the function's parameters and body,
    array extents included, rounded up to 16 with a 48-byte minimum.
    """
    extent = _FrameExtent()
    extent.visit(function)
    size = -(-extent.deepest // STACK_ALIGNMENT) * STACK_ALIGNMENT
    return max(size, MIN_FRAME_SIZE)


# =============================================================================
# Code Generator
# =============================================================================

class CodeGenerator:
    """
    Generates AArch64 assembly from a MiniRS AST.

    The label counter belongs to the instance and is reset by every call
    to generate(), so one generator can be reused and separate
    generators never share state.

    Attributes:
        emit_comments: Annotate the output with // comments
    """

    def __init__(self, emit_comments: bool = True):
        self.emit_comments = emit_comments

        self._output: list[str] = []
        self._label_counter: int = 0

        # String literal pool: (label, value)
        self._strings: list[tuple[str, str]] = []

        # Return label of the function being generated
        self._return_label: Optional[str] = None

    def generate(self, program: Node) -> str:
        """
        Generate assembly for a whole program.

        Args:
            program: A Function, or functions folded into Seq nodes

        Returns:
            Complete assembly source, newline terminated

        Raises:
            CodeGenError: If the tree contains a construct with no lowering
        """
        self._output = []
        self._strings = []
        self._label_counter = 0
        self._return_label = None

        self._emit_header()
        self._generate_top_level(program)
        self._emit_strings()

        return "\n".join(self._output) + "\n"

    # =========================================================================
    # Assembly Output Methods
    # =========================================================================

    def _emit(self, line: str = "") -> None:
        self._output.append(line)

    def _emit_comment(self, comment: str) -> None:
        if self.emit_comments:
            self._emit(f"        // {comment}")

    def _emit_label(self, label: str) -> None:
        self._emit(f"{label}:")

    def _emit_instruction(self, mnemonic: str, operand: str = "") -> None:
        if operand:
            self._emit(f"        {mnemonic:<7} {operand}")
        else:
            self._emit(f"        {mnemonic}")

    def _new_label_id(self) -> int:
        """Return a fresh id; all labels of one construct share it."""
        self._label_counter += 1
        return self._label_counter

    def _push(self, register: str = "x0") -> None:
        self._emit_instruction("str", f"{register}, [sp, #-16]!")

    def _pop(self, register: str = "x0") -> None:
        self._emit_instruction("ldr", f"{register}, [sp], #16")

    def _push_filler(self) -> None:
        self._emit_instruction("mov", "x0, #0")
        self._push()

    def _load_immediate(self, register: str, value: int) -> None:
        """Materialize any unsigned 64-bit value with mov or movz/movk."""
        if value < 0x10000:
            self._emit_instruction("mov", f"{register}, #{value}")
            return

        first = True
        for shift in range(0, 64, 16):
            chunk = (value >> shift) & 0xFFFF
            if chunk == 0:
                continue
            mnemonic = "movz" if first else "movk"
            self._emit_instruction(mnemonic, f"{register}, #{chunk}, lsl #{shift}")
            first = False

    def _emit_slot_address(self, offset: int, register: str = "x9") -> None:
        """Compute x29 - offset into ``register``."""
        if offset <= MAX_ADD_IMMEDIATE:
            self._emit_instruction("sub", f"{register}, x29, #{offset}")
        else:
            self._load_immediate("x10", offset)
            self._emit_instruction("sub", f"{register}, x29, x10")

    # =========================================================================
    # Header and String Pool
    # =========================================================================

    def _emit_header(self) -> None:
        if self.emit_comments:
            self._emit("// Generated by frc, the Ferrite MiniRS compiler")
            self._emit("// Target: arm64-apple-darwin")
            self._emit("")
        self._emit_instruction(".section", "__TEXT,__text,regular,pure_instructions")

    def _emit_strings(self) -> None:
        """
        Emit the string literal pool.

        Literal contents are emitted as written, so backslash escapes in
        the source are interpreted by the assembler.
        """
        if not self._strings:
            return

        self._emit("")
        self._emit_instruction(".section", "__TEXT,__cstring,cstring_literals")
        for label, value in self._strings:
            text = value.replace("\r", "\\r").replace("\n", "\\n")
            self._emit_label(label)
            self._emit_instruction(".asciz", f'"{text}"')

    def _add_string(self, value: str) -> str:
        label = f"Lstr{len(self._strings)}"
        self._strings.append((label, value))
        return label

    # =========================================================================
    # Functions
    # =========================================================================

    def _generate_top_level(self, node: Node) -> None:
        if isinstance(node, Seq):
            self._generate_top_level(node.first)
            self._generate_top_level(node.second)
        elif isinstance(node, Function):
            self._generate_function(node)
        else:
            raise CodeGenError(
                f"expected a function at top level, found {type(node).__name__}"
            )

    def _generate_function(self, func: Function) -> None:
        if len(func.args) > MAX_REGISTER_ARGS:
            raise CodeGenError(
                f"function '{func.name}' has {len(func.args)} parameters",
                hint=f"at most {MAX_REGISTER_ARGS} parameters are supported",
            )

        size = frame_size(func)
        logger.debug("Function %s: frame size %d bytes", func.name, size)

        self._return_label = f"Lreturn{self._new_label_id()}"

        self._emit("")
        self._emit_comment(f"fn {func.name}")
        self._emit_instruction(".globl", f"_{func.name}")
        self._emit_instruction(".p2align", "2")
        self._emit_label(f"_{func.name}")

        # Prologue
        self._emit_instruction("stp", "x29, x30, [sp, #-16]!")
        self._emit_instruction("mov", "x29, sp")
        self._load_immediate("x9", size)
        self._emit_instruction("sub", "sp, sp, x9")

        for index, param in enumerate(func.args):
            if not isinstance(param, Var):
                raise CodeGenError(
                    f"parameter {index} of '{func.name}' is not a variable"
                )
            self._emit_slot_address(param.offset)
            self._emit_instruction("str", f"x{index}, [x9]")

        self._generate(func.body)
        self._pop()

        # Epilogue
        self._emit_label(self._return_label)
        self._emit_instruction("mov", "sp, x29")
        self._emit_instruction("ldp", "x29, x30, [sp], #16")
        self._emit_instruction("ret")

        self._return_label = None

    # =========================================================================
    # Dispatch
    # =========================================================================

    def _generate(self, node: Node) -> None:
        """Generate code for ``node``, leaving one value on the stack."""
        if isinstance(node, Num):
            self._load_immediate("x0", node.value)
            self._push()
        elif isinstance(node, StringLiteral):
            self._generate_string(node)
        elif isinstance(node, Var):
            self._emit_slot_address(node.offset)
            self._emit_instruction("ldr", "x0, [x9]")
            self._push()
        elif isinstance(node, Seq):
            self._generate(node.first)
            self._pop()
            self._generate(node.second)
        elif isinstance(node, BinaryOp):
            self._generate_binary(node)
        elif isinstance(node, Assign):
            self._generate_assignment(node)
        elif isinstance(node, Deref):
            self._generate(node.expr)
            self._pop()
            self._emit_instruction("ldr", "x0, [x0]")
            self._push()
        elif isinstance(node, Addr):
            self._generate_address(node.expr)
        elif isinstance(node, Return):
            self._generate_return(node)
        elif isinstance(node, If):
            self._generate_if(node)
        elif isinstance(node, While):
            self._generate_while(node)
        elif isinstance(node, For):
            self._generate_for(node)
        elif isinstance(node, ArrayAssign):
            self._generate_array_assign(node)
        elif isinstance(node, Call):
            self._generate_call(node)
        elif isinstance(node, Syscall):
            self._generate_syscall(node)
        elif isinstance(node, Function):
            raise CodeGenError(f"nested function '{node.name}'")
        else:
            raise CodeGenError(f"unsupported node {type(node).__name__}")

    # =========================================================================
    # Statements
    # =========================================================================

    def _generate_return(self, stmt: Return) -> None:
        if self._return_label is None:
            raise CodeGenError("return outside of a function")
        self._emit_comment("return")
        self._generate(stmt.expr)
        self._pop()
        self._emit_instruction("b", self._return_label)

    def _generate_if(self, stmt: If) -> None:
        label_id = self._new_label_id()
        else_label = f"Lelse{label_id}"
        end_label = f"Lend{label_id}"

        self._emit_comment("if")
        self._generate(stmt.cond)
        self._pop()
        self._emit_instruction("cbz", f"x0, {else_label}")

        self._generate(stmt.then_stmt)
        self._emit_instruction("b", end_label)

        self._emit_label(else_label)
        if stmt.else_stmt is not None:
            self._generate(stmt.else_stmt)
        else:
            self._push_filler()
        self._emit_label(end_label)

    def _generate_while(self, stmt: While) -> None:
        label_id = self._new_label_id()
        loop_label = f"Lloop{label_id}"
        end_label = f"Lend{label_id}"

        self._emit_comment("while")
        self._emit_label(loop_label)
        self._generate(stmt.cond)
        self._pop()
        self._emit_instruction("cbz", f"x0, {end_label}")

        self._generate(stmt.body)
        self._pop()
        self._emit_instruction("b", loop_label)

        self._emit_label(end_label)
        self._push_filler()

    def _generate_for(self, stmt: For) -> None:
        """
        Generate a for loop with the condition at the bottom:

            init
            b Lcond
        Lbody:
            body; update
        Lcond:
            cond; cbnz Lbody
        Lend:
        """
        label_id = self._new_label_id()
        body_label = f"Lbody{label_id}"
        cond_label = f"Lcond{label_id}"
        end_label = f"Lend{label_id}"

        self._emit_comment("for")
        self._generate(stmt.init)
        self._pop()
        self._emit_instruction("b", cond_label)

        self._emit_label(body_label)
        self._generate(stmt.body)
        self._pop()
        self._generate(stmt.update)
        self._pop()

        self._emit_label(cond_label)
        self._generate(stmt.cond)
        self._pop()
        self._emit_instruction("cbnz", f"x0, {body_label}")

        self._emit_label(end_label)
        self._push_filler()

    def _generate_array_assign(self, stmt: ArrayAssign) -> None:
        self._emit_comment(f"array of {len(stmt.elements)} at offset {stmt.offset}")
        for index, element in enumerate(stmt.elements):
            self._generate(element)
            self._pop()
            self._emit_slot_address(stmt.offset + index * SLOT_SIZE)
            self._emit_instruction("str", "x0, [x9]")
        self._push_filler()

    # =========================================================================
    # Expressions
    # =========================================================================

    def _generate_string(self, expr: StringLiteral) -> None:
        label = self._add_string(expr.value)
        self._emit_instruction("adrp", f"x0, {label}@PAGE")
        self._emit_instruction("add", f"x0, x0, {label}@PAGEOFF")
        self._push()

    def _generate_binary(self, expr: BinaryOp) -> None:
        self._generate(expr.lhs)
        self._generate(expr.rhs)
        self._pop("x1")
        self._pop("x0")

        if not expr.op.is_comparison:
            self._emit_instruction(ARITHMETIC_MNEMONICS[expr.op], "x0, x0, x1")
        else:
            self._emit_instruction("cmp", "x0, x1")
            self._emit_instruction("cset", f"x0, {CONDITION_CODES[expr.op]}")

        self._push()

    def _generate_address(self, operand: Node) -> None:
        """Push the address of ``operand``, which must be an lvalue."""
        if isinstance(operand, Var):
            self._emit_slot_address(operand.offset, "x0")
            self._push()
        elif isinstance(operand, Deref):
            self._generate(operand.expr)
        else:
            raise NotAddressableError(type(operand).__name__)

    def _generate_assignment(self, expr: Assign) -> None:
        """
        Store the right-hand side into a variable or through a pointer.

        The right-hand side is evaluated before the target address. The
        stored value is left on the stack as the assignment's value.
        """
        if isinstance(expr.lhs, Var):
            self._generate(expr.rhs)
            self._pop()
            self._emit_slot_address(expr.lhs.offset)
            self._emit_instruction("str", "x0, [x9]")
        elif isinstance(expr.lhs, Deref):
            self._generate(expr.rhs)
            self._generate(expr.lhs.expr)
            self._pop("x1")
            self._pop()
            self._emit_instruction("str", "x0, [x1]")
        else:
            raise InvalidAssignmentError(type(expr.lhs).__name__)

        self._push()

    def _generate_call(self, expr: Call) -> None:
        count = len(expr.args)
        if count > MAX_REGISTER_ARGS:
            raise CodeGenError(
                f"call to '{expr.name}' passes {count} arguments",
                hint=f"at most {MAX_REGISTER_ARGS} arguments are supported",
            )

        self._emit_comment(f"call {expr.name}")
        for arg in expr.args:
            self._generate(arg)
        for index in reversed(range(count)):
            self._pop(f"x{index}")

        self._emit_instruction("stp", "x29, x30, [sp, #-16]!")
        self._emit_instruction("bl", f"_{expr.name}")
        self._emit_instruction("ldp", "x29, x30, [sp], #16")
        self._push()

    def _generate_syscall(self, expr: Syscall) -> None:
        """
        Generate ``write(str)``: write a NUL-terminated string to stdout.

        The length is found with an inline byte scan, then SYS_write is
        issued with svc. The call's result (bytes written) is pushed.
        """
        if expr.name != "write":
            raise UnknownSyscallError(expr.name)
        if len(expr.args) != 1:
            raise CodeGenError(
                f"write takes exactly one argument, got {len(expr.args)}"
            )

        label_id = self._new_label_id()
        loop_label = f"Lstrlen{label_id}"
        done_label = f"Lstrlen_end{label_id}"

        self._emit_comment("write")
        self._generate(expr.args[0])
        self._pop("x1")

        self._emit_instruction("mov", "x2, #0")
        self._emit_label(loop_label)
        self._emit_instruction("ldrb", "w3, [x1, x2]")
        self._emit_instruction("cbz", f"w3, {done_label}")
        self._emit_instruction("add", "x2, x2, #1")
        self._emit_instruction("b", loop_label)
        self._emit_label(done_label)

        self._emit_instruction("mov", f"x0, #{STDOUT_FD}")
        self._emit_instruction("mov", f"x16, #{SYS_WRITE}")
        self._emit_instruction("svc", "#0x80")
        self._push()


# =============================================================================
# Convenience Function
# =============================================================================

def generate(program: Node, emit_comments: bool = True) -> str:
    """Generate assembly for ``program`` with a fresh generator."""
    return CodeGenerator(emit_comments=emit_comments).generate(program)
