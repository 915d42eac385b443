"""
AArch64 Code Generator Tests
============================

Tests for the assembly emitted from MiniRS trees: function layout,
frame sizing, stack discipline, labels, immediates, and code
generation errors.

Assembly is compared after whitespace normalization, so
``"        str     x0, [sp, #-16]!"`` is checked as ``"str x0, [sp, #-16]!"``.
"""

import logging
from collections import Counter

import pytest

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
    Num,
    Return,
    Seq,
    StringLiteral,
    Syscall,
    Var,
    While,
)
from ferrite.minirs.codegen import CodeGenerator, frame_size, generate
from ferrite.minirs.errors import (
    CodeGenError,
    InvalidAssignmentError,
    NotAddressableError,
    UnknownSyscallError,
)
from ferrite.minirs.parser import parse_source


PUSH = "str x0, [sp, #-16]!"


def normalize(asm: str) -> list[str]:
    """Collapse whitespace and drop blank lines and comments."""
    lines = []
    for line in asm.splitlines():
        text = " ".join(line.split())
        if text and not text.startswith("//"):
            lines.append(text)
    return lines


def compile_main(body) -> list[str]:
    return normalize(generate(Function("main", (), body)))


def compile_text(source: str) -> list[str]:
    return normalize(generate(parse_source(source)))


def labels(lines: list[str]) -> list[str]:
    return [line[:-1] for line in lines if line.endswith(":")]


def pops(lines: list[str]) -> int:
    return sum(1 for line in lines if line.startswith("ldr x") and line.endswith("[sp], #16"))


# =============================================================================
# Function Layout
# =============================================================================

class TestFunctionLayout:
    """Tests for sections, symbols, prologue and epilogue."""

    def test_text_section_first(self):
        lines = compile_main(Num(0))
        assert lines[0] == ".section __TEXT,__text,regular,pure_instructions"

    def test_global_symbol(self):
        lines = compile_main(Num(0))
        index = lines.index(".globl _main")
        assert lines[index + 1] == ".p2align 2"
        assert lines[index + 2] == "_main:"

    def test_directives_keep_operand_separator(self):
        asm = generate(Function("main", (), StringLiteral("hi"))).splitlines()
        assert "        .section __TEXT,__text,regular,pure_instructions" in asm
        assert "        .section __TEXT,__cstring,cstring_literals" in asm
        assert "        .p2align 2" in asm
        assert "        .globl  _main" in asm

    def test_every_mnemonic_separated_from_operand(self):
        source = """
        fn main() {
            let a = [1, 2];
            for (i = 0; i < 2; i = i + 1) write("x");
            return a[1];
        }
        """
        for line in generate(parse_source(source)).splitlines():
            if line.startswith("        ") and not line.lstrip().startswith("//"):
                mnemonic = line.split()[0]
                operand = line.strip()[len(mnemonic):]
                assert operand == "" or operand.startswith(" "), line

    def test_prologue(self):
        lines = compile_main(Num(0))
        start = lines.index("_main:")
        assert lines[start + 1:start + 5] == [
            "stp x29, x30, [sp, #-16]!",
            "mov x29, sp",
            "mov x9, #48",
            "sub sp, sp, x9",
        ]

    def test_epilogue(self):
        lines = compile_main(Num(7))
        assert lines[-5:] == [
            "ldr x0, [sp], #16",
            "Lreturn1:",
            "mov sp, x29",
            "ldp x29, x30, [sp], #16",
            "ret",
        ]

    def test_body_value_is_returned(self):
        lines = compile_main(Num(7))
        index = lines.index("Lreturn1:")
        assert lines[index - 3:index] == ["mov x0, #7", PUSH, "ldr x0, [sp], #16"]

    def test_return_branches_to_epilogue(self):
        lines = compile_main(Return(Num(3)))
        assert "b Lreturn1" in lines

    def test_parameters_stored(self):
        lines = normalize(generate(Function("f", (Var(8), Var(16)), Num(0))))
        start = lines.index("sub sp, sp, x9")
        assert lines[start + 1:start + 5] == [
            "sub x9, x29, #8",
            "str x0, [x9]",
            "sub x9, x29, #16",
            "str x1, [x9]",
        ]

    def test_multiple_functions(self):
        lines = compile_text("fn f() { return 1; } fn main() { return f(); }")
        assert lines.index("_f:") < lines.index("_main:")
        assert "Lreturn1:" in lines
        assert "Lreturn2:" in lines

    def test_output_ends_with_newline(self):
        assert generate(Function("main", (), Num(0))).endswith("ret\n")

    def test_comments_optional(self):
        asm = CodeGenerator(emit_comments=False).generate(
            parse_source("fn main() { while (0) 1; return 0; }")
        )
        assert "//" not in asm

    def test_comments_name_functions(self):
        asm = CodeGenerator(emit_comments=True).generate(Function("main", (), Num(0)))
        assert "// fn main" in asm


# =============================================================================
# Frame Sizing
# =============================================================================

class TestFrameSize:
    """Tests for the frame size computation."""

    def test_minimum(self):
        assert frame_size(Function("main", (), Num(0))) == 48

    def test_small_frame_uses_minimum(self):
        assert frame_size(Function("main", (), Var(40))) == 48

    def test_rounded_to_16(self):
        assert frame_size(Function("main", (), Var(56))) == 64
        assert frame_size(Function("main", (), Var(64))) == 64

    def test_parameters_counted(self):
        assert frame_size(Function("f", (Var(72),), Num(0))) == 80

    def test_array_extent_counted(self):
        array = ArrayAssign(8, tuple(Num(i) for i in range(10)))
        assert frame_size(Function("main", (), array)) == 80

    def test_nested_reference(self):
        body = If(Num(1), Return(Deref(Addr(Var(96)))))
        assert frame_size(Function("main", (), body)) == 96

    def test_large_frame(self):
        lines = compile_main(Var(5000))
        assert "mov x9, #5008" in lines
        assert "mov x10, #5000" in lines
        assert "sub x9, x29, x10" in lines

    def test_frame_size_logged(self, caplog):
        caplog.set_level(logging.DEBUG, logger="ferrite.minirs.codegen")
        generate(Function("main", (), Num(0)))
        assert "frame size 48 bytes" in caplog.text


# =============================================================================
# Expressions
# =============================================================================

class TestExpressions:
    """Tests for expression lowering."""

    def test_small_immediate(self):
        assert compile_main(Num(65535))[8] == "mov x0, #65535"

    def test_wide_immediate(self):
        lines = compile_main(Num(65536))
        assert "movz x0, #1, lsl #16" in lines

    def test_max_immediate(self):
        lines = compile_main(Num(2**64 - 1))
        assert lines[8:12] == [
            "movz x0, #65535, lsl #0",
            "movk x0, #65535, lsl #16",
            "movk x0, #65535, lsl #32",
            "movk x0, #65535, lsl #48",
        ]

    def test_sparse_immediate(self):
        lines = compile_main(Num(0x0001_0000_0000_0002))
        assert lines[8:10] == [
            "movz x0, #2, lsl #0",
            "movk x0, #1, lsl #48",
        ]

    def test_variable_load(self):
        lines = compile_main(Var(8))
        assert lines[8:11] == ["sub x9, x29, #8", "ldr x0, [x9]", PUSH]

    def test_binary_operand_order(self):
        lines = compile_main(BinaryOp(BinaryOperator.SUB, Num(5), Num(3)))
        assert lines[8:16] == [
            "mov x0, #5", PUSH,
            "mov x0, #3", PUSH,
            "ldr x1, [sp], #16",
            "ldr x0, [sp], #16",
            "sub x0, x0, x1",
            PUSH,
        ]

    @pytest.mark.parametrize("op,mnemonic", [
        (BinaryOperator.ADD, "add x0, x0, x1"),
        (BinaryOperator.MUL, "mul x0, x0, x1"),
        (BinaryOperator.DIV, "sdiv x0, x0, x1"),
    ])
    def test_arithmetic(self, op, mnemonic):
        assert mnemonic in compile_main(BinaryOp(op, Num(1), Num(2)))

    @pytest.mark.parametrize("op,condition", [
        (BinaryOperator.EQ, "eq"),
        (BinaryOperator.NE, "ne"),
        (BinaryOperator.LT, "lt"),
        (BinaryOperator.GT, "gt"),
        (BinaryOperator.LE, "le"),
        (BinaryOperator.GE, "ge"),
    ])
    def test_comparison(self, op, condition):
        lines = compile_main(BinaryOp(op, Num(1), Num(2)))
        index = lines.index("cmp x0, x1")
        assert lines[index + 1] == f"cset x0, {condition}"

    def test_address_of_variable(self):
        lines = compile_main(Addr(Var(24)))
        assert lines[8:10] == ["sub x0, x29, #24", PUSH]

    def test_address_of_deref_is_operand(self):
        assert compile_main(Addr(Deref(Var(8)))) == compile_main(Var(8))

    def test_deref(self):
        lines = compile_main(Deref(Var(8)))
        assert lines[11:14] == ["ldr x0, [sp], #16", "ldr x0, [x0]", PUSH]

    def test_assign_to_variable(self):
        lines = compile_main(Assign(Var(16), Num(4)))
        assert lines[8:13] == [
            "mov x0, #4", PUSH,
            "ldr x0, [sp], #16",
            "sub x9, x29, #16",
            "str x0, [x9]",
        ]
        assert lines[13] == PUSH

    def test_assign_through_pointer(self):
        lines = compile_main(Assign(Deref(Var(8)), Num(1)))
        assert "str x0, [x1]" in lines

    def test_string_literal(self):
        lines = compile_main(StringLiteral("hi"))
        assert "adrp x0, Lstr0@PAGE" in lines
        assert "add x0, x0, Lstr0@PAGEOFF" in lines
        assert lines[-2:] == ["Lstr0:", '.asciz "hi"']
        assert ".section __TEXT,__cstring,cstring_literals" in lines

    def test_string_pool_order(self):
        lines = compile_main(Seq(StringLiteral("a"), StringLiteral("b")))
        assert lines[-4:] == ["Lstr0:", '.asciz "a"', "Lstr1:", '.asciz "b"']

    def test_raw_newline_escaped(self):
        asm = generate(Function("main", (), StringLiteral("a\nb")))
        assert '.asciz "a\\nb"' in normalize(asm)

    def test_call(self):
        lines = compile_main(Call("add", (Num(1), Num(2))))
        index = lines.index("bl _add")
        assert lines[index - 3:index + 3] == [
            "ldr x1, [sp], #16",
            "ldr x0, [sp], #16",
            "stp x29, x30, [sp, #-16]!",
            "bl _add",
            "ldp x29, x30, [sp], #16",
            PUSH,
        ]

    def test_write_syscall(self):
        lines = compile_main(Syscall("write", (StringLiteral("hi\\n"),)))
        assert "ldrb w3, [x1, x2]" in lines
        assert "cbz w3, Lstrlen_end2" in lines
        index = lines.index("svc #0x80")
        assert lines[index - 2:index + 2] == [
            "mov x0, #1", "mov x16, #4", "svc #0x80", PUSH,
        ]
        assert '.asciz "hi\\n"' in lines


# =============================================================================
# Control Flow
# =============================================================================

class TestControlFlow:
    """Tests for labels and stack balance of control flow."""

    def test_if_else(self):
        lines = compile_main(If(Num(1), Num(2), Num(3)))
        assert "cbz x0, Lelse2" in lines
        assert "b Lend2" in lines
        assert lines.index("Lelse2:") < lines.index("Lend2:")

    def test_if_without_else_pushes_filler(self):
        lines = compile_main(If(Num(1), Num(2)))
        index = lines.index("Lelse2:")
        assert lines[index + 1:index + 4] == ["mov x0, #0", PUSH, "Lend2:"]

    def test_while(self):
        lines = compile_main(While(Num(0), Num(1)))
        index = lines.index("Lloop2:")
        assert "cbz x0, Lend2" in lines[index:]
        assert "b Lloop2" in lines
        end = lines.index("Lend2:")
        assert lines[end + 1:end + 3] == ["mov x0, #0", PUSH]

    def test_for_condition_at_bottom(self):
        loop = For(Assign(Var(8), Num(0)), Num(0), Num(1), Num(2))
        lines = compile_main(loop)
        assert lines.index("b Lcond2") < lines.index("Lbody2:")
        assert lines.index("Lbody2:") < lines.index("Lcond2:")
        assert "cbnz x0, Lbody2" in lines
        assert "Lend2:" in lines

    def test_nested_loops_have_unique_labels(self):
        lines = compile_text("""
            fn main() {
                for (i = 0; i < 3; i = i + 1)
                    for (j = 0; j < 3; j = j + 1)
                        while (0) if (1) 2; else 3;
                for (k = 0; k < 3; k = k + 1) write("x");
                return 0;
            }
        """)
        counts = Counter(labels(lines))
        assert all(count == 1 for count in counts.values())
        assert {"Lbody2", "Lbody3", "Lbody6"} <= set(counts)

    def test_straight_line_stack_balance(self):
        """Without branches every push is matched by a pop."""
        lines = compile_text("fn main() { let a = 1; let b = a + 2; *&b = b * 3; b; }")
        assert lines.count(PUSH) == pops(lines)

    def test_generate_is_repeatable(self):
        program = parse_source("fn main() { if (1) 2; while (0) 3; return 4; }")
        generator = CodeGenerator()
        first = generator.generate(program)
        second = generator.generate(program)
        assert first == second
        assert first == CodeGenerator().generate(program)


# =============================================================================
# Code Generation Errors
# =============================================================================

class TestCodeGenErrors:
    """Tests for trees that cannot be lowered."""

    def test_assign_to_literal(self):
        with pytest.raises(InvalidAssignmentError) as exc_info:
            compile_main(Assign(Num(1), Num(2)))
        assert exc_info.value.message == "cannot assign to Num"

    def test_assign_to_literal_from_source(self):
        with pytest.raises(InvalidAssignmentError):
            compile_text("fn main() { 1 = 2; }")

    def test_address_of_literal(self):
        with pytest.raises(NotAddressableError):
            compile_text("fn main() { return &5; }")

    def test_unknown_syscall(self):
        with pytest.raises(UnknownSyscallError) as exc_info:
            compile_main(Syscall("read", (Num(0),)))
        assert exc_info.value.name == "read"

    def test_write_arity(self):
        with pytest.raises(CodeGenError):
            compile_text('fn main() { write("a", "b"); }')

    def test_too_many_arguments(self):
        with pytest.raises(CodeGenError):
            compile_main(Call("f", tuple(Num(i) for i in range(9))))

    def test_eight_arguments_allowed(self):
        lines = compile_main(Call("f", tuple(Num(i) for i in range(8))))
        assert "ldr x7, [sp], #16" in lines

    def test_too_many_parameters(self):
        params = tuple(Var(8 * (i + 1)) for i in range(9))
        with pytest.raises(CodeGenError):
            generate(Function("f", params, Num(0)))

    def test_top_level_must_be_function(self):
        with pytest.raises(CodeGenError):
            generate(Num(1))

    def test_errors_have_no_location(self):
        with pytest.raises(CodeGenError) as exc_info:
            compile_main(Addr(Num(1)))
        assert exc_info.value.location is None
        assert str(exc_info.value).startswith("error: cannot take the address of Num")
