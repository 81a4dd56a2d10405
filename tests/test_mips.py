import pytest

from simmachine.mips import (
    Instruction,
    OpCode,
    merge_load_left,
    merge_load_right,
    merge_store_left,
    merge_store_right,
    mult,
    to_signed32,
)


def encode_i(op, rs, rt, imm):
    return (op << 26) | (rs << 21) | (rt << 16) | (imm & 0xFFFF)


def encode_r(funct, rs=0, rt=0, rd=0, shamt=0):
    return (rs << 21) | (rt << 16) | (rd << 11) | (shamt << 6) | funct


def test_to_signed32_all_ones_is_minus_one():
    assert to_signed32(0xFFFFFFFF) == -1


@pytest.mark.parametrize("value", [0, 1, 0x7FFFFFFF, -1, -0x80000000, 12345, -987])
def test_to_signed32_round_trip(value):
    assert to_signed32(value & 0xFFFFFFFF) == value


def test_to_signed32_ignores_high_bits():
    assert to_signed32((1 << 40) | 5) == 5


def test_decode_syscall():
    instr = Instruction.decode(encode_r(12))
    assert instr.op_code is OpCode.SYSCALL
    assert instr.disassemble() == "SYSCALL"


def test_decode_addiu_sign_extends_immediate():
    instr = Instruction.decode(encode_i(9, 4, 2, -8))
    assert instr.op_code is OpCode.ADDIU
    assert instr.rs == 4
    assert instr.rt == 2
    assert instr.extra == -8
    assert instr.disassemble() == "ADDIU r2,r4,-8"


def test_decode_positive_immediate_is_kept():
    instr = Instruction.decode(encode_i(13, 3, 5, 0x1234))
    assert instr.op_code is OpCode.ORI
    assert instr.extra == 0x1234


def test_decode_accepts_negative_word():
    word = encode_i(35, 29, 8, 16)
    assert Instruction.decode(to_signed32(word)) == Instruction.decode(word)


def test_decode_lw_disassembly():
    instr = Instruction.decode(encode_i(35, 29, 8, 16))
    assert instr.op_code is OpCode.LW
    assert instr.disassemble() == "LW r8,16(r29)"


def test_decode_special_add():
    instr = Instruction.decode(encode_r(32, rs=1, rt=2, rd=3))
    assert instr.op_code is OpCode.ADD
    assert (instr.rd, instr.rs, instr.rt) == (3, 1, 2)
    assert instr.disassemble() == "ADD r3,r1,r2"


def test_decode_shift_amount_in_extra():
    instr = Instruction.decode(encode_r(0, rt=6, rd=7, shamt=9))
    assert instr.op_code is OpCode.SLL
    assert instr.extra == 9
    assert instr.disassemble() == "SLL r7,r6,9"


def test_decode_jump_target():
    target = 0x0123456
    instr = Instruction.decode((2 << 26) | target)
    assert instr.op_code is OpCode.J
    assert instr.extra == target


@pytest.mark.parametrize(
    "rt, expected",
    [
        (0x00, OpCode.BLTZ),
        (0x01, OpCode.BGEZ),
        (0x10, OpCode.BLTZAL),
        (0x11, OpCode.BGEZAL),
        (0x02, OpCode.UNIMP),
    ],
)
def test_decode_bcond(rt, expected):
    instr = Instruction.decode(encode_i(1, 5, rt, 4))
    assert instr.op_code is expected


def test_decode_reserved_and_unimplemented():
    assert Instruction.decode(20 << 26).op_code is OpCode.RES
    assert Instruction.decode(16 << 26).op_code is OpCode.UNIMP
    assert Instruction.decode(encode_r(1)).op_code is OpCode.RES
    assert Instruction.decode(20 << 26).disassemble() == "Reserved"
    assert Instruction.decode(16 << 26).disassemble() == "Unimplemented"


def test_every_word_decodes_to_a_disassemblable_op():
    for top in range(64):
        for funct in range(64):
            instr = Instruction.decode((top << 26) | funct)
            assert isinstance(instr.disassemble(), str)
            assert instr.op_code in OpCode


@pytest.mark.parametrize(
    "a, b",
    [(3, 7), (-3, 7), (-3, -7), (0x7FFFFFFF, 0x7FFFFFFF), (-0x80000000, -0x80000000),
     (-0x80000000, 5), (0, -9), (123456, 0)],
)
def test_mult_signed_matches_product(a, b):
    hi, lo = mult(a, b, True)
    combined = ((hi & 0xFFFFFFFF) << 32) | (lo & 0xFFFFFFFF)
    assert combined == (a * b) & ((1 << 64) - 1)


@pytest.mark.parametrize("a, b", [(-1, -1), (-1, 2), (0x80000000, 3), (10, 20)])
def test_mult_unsigned_matches_product(a, b):
    hi, lo = mult(a, b, False)
    combined = ((hi & 0xFFFFFFFF) << 32) | (lo & 0xFFFFFFFF)
    assert combined == (a & 0xFFFFFFFF) * (b & 0xFFFFFFFF)


def test_mult_zero():
    assert mult(0, -5, True) == (0, 0)
    assert mult(-5, 0, False) == (0, 0)


def test_mult_results_are_signed_words():
    hi, lo = mult(-1, 1, True)
    assert hi == -1
    assert lo == -1


@pytest.mark.parametrize("fn", [merge_load_left, merge_load_right, merge_store_left, merge_store_right])
@pytest.mark.parametrize("offset", [-1, 4])
def test_merge_rejects_bad_offset(fn, offset):
    with pytest.raises(ValueError):
        fn(0, 0, offset)


def test_merge_full_word_cases_take_new_value():
    old = 0x11223344
    value = to_signed32(0xAABBCCDD)
    assert merge_load_left(old, value, 0) == value
    assert merge_load_right(old, value, 3) == value
    assert merge_store_left(old, value, 0) == value
    assert merge_store_right(old, value, 3) == value


@pytest.mark.parametrize("offset, keep_mask", [(1, 0xFF), (2, 0xFFFF), (3, 0xFFFFFF)])
def test_merge_load_left_keeps_low_bytes(offset, keep_mask):
    old = 0x11223344
    value = to_signed32(0xAABBCCDD)
    result = merge_load_left(old, value, offset)
    assert result & keep_mask == old & keep_mask
    assert (result & 0xFFFFFFFF) >> (8 * offset) == (value << (8 * offset) & 0xFFFFFFFF) >> (8 * offset)


@pytest.mark.parametrize("offset, keep_mask", [(0, 0xFFFFFF00), (1, 0xFFFF0000), (2, 0xFF000000)])
def test_merge_load_right_keeps_high_bytes(offset, keep_mask):
    old = to_signed32(0x11223344)
    value = to_signed32(0xAABBCCDD)
    result = merge_load_right(old, value, offset)
    assert result & keep_mask == old & keep_mask


@pytest.mark.parametrize("offset, keep_mask", [(1, 0xFF000000), (2, 0xFFFF0000), (3, 0xFFFFFF00)])
def test_merge_store_left_keeps_high_bytes(offset, keep_mask):
    old = to_signed32(0x11223344)
    value = to_signed32(0xAABBCCDD)
    result = merge_store_left(old, value, offset)
    assert result & keep_mask == old & keep_mask


@pytest.mark.parametrize("offset, keep_mask", [(0, 0xFFFFFF), (1, 0xFFFF), (2, 0xFF)])
def test_merge_store_right_keeps_low_bytes(offset, keep_mask):
    old = 0x11223344
    value = 0x55667788
    result = merge_store_right(old, value, offset)
    assert result & keep_mask == old & keep_mask
    shift = {0: 24, 1: 16, 2: 8}[offset]
    assert (result & 0xFFFFFFFF) >> shift == (value << shift & 0xFFFFFFFF) >> shift