"""Decoding and arithmetic helpers for the simulated MIPS R2000/R3000 CPU."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum

SIGN_BIT = 0x80000000
R31 = 31
_MASK32 = 0xFFFFFFFF
_MASK64 = (1 << 64) - 1


class OpCode(IntEnum):
    """Operations of the simulator (not the raw opcode field).

    UNIMP marks a legal instruction the simulator does not implement;
    RES marks an opcode the architecture reserves.
    """

    ADD = 1
    ADDI = 2
    ADDIU = 3
    ADDU = 4
    AND = 5
    ANDI = 6
    BEQ = 7
    BGEZ = 8
    BGEZAL = 9
    BGTZ = 10
    BLEZ = 11
    BLTZ = 12
    BLTZAL = 13
    BNE = 14
    DIV = 16
    DIVU = 17
    J = 18
    JAL = 19
    JALR = 20
    JR = 21
    LB = 22
    LBU = 23
    LH = 24
    LHU = 25
    LUI = 26
    LW = 27
    LWL = 28
    LWR = 29
    MFHI = 31
    MFLO = 32
    MTHI = 34
    MTLO = 35
    MULT = 36
    MULTU = 37
    NOR = 38
    OR = 39
    ORI = 40
    RFE = 41
    SB = 42
    SH = 43
    SLL = 44
    SLLV = 45
    SLT = 46
    SLTI = 47
    SLTIU = 48
    SLTU = 49
    SRA = 50
    SRAV = 51
    SRL = 52
    SRLV = 53
    SUB = 54
    SUBU = 55
    SW = 56
    SWL = 57
    SWR = 58
    XOR = 59
    XORI = 60
    SYSCALL = 61
    UNIMP = 62
    RES = 63


class _Format(IntEnum):
    I = 1  # noqa: E741
    J = 2
    R = 3


# Markers in the primary table that need a second decoding step.
_SPECIAL = "special"
_BCOND = "bcond"

_O = OpCode
_F = _Format

# Bits 31:26 of an instruction -> (operation, instruction format).
_OP_TABLE: tuple[tuple[OpCode | str, _Format], ...] = (
    (_SPECIAL, _F.R), (_BCOND, _F.I), (_O.J, _F.J), (_O.JAL, _F.J),
    (_O.BEQ, _F.I), (_O.BNE, _F.I), (_O.BLEZ, _F.I), (_O.BGTZ, _F.I),
    (_O.ADDI, _F.I), (_O.ADDIU, _F.I), (_O.SLTI, _F.I), (_O.SLTIU, _F.I),
    (_O.ANDI, _F.I), (_O.ORI, _F.I), (_O.XORI, _F.I), (_O.LUI, _F.I),
    (_O.UNIMP, _F.I), (_O.UNIMP, _F.I), (_O.UNIMP, _F.I), (_O.UNIMP, _F.I),
    (_O.RES, _F.I), (_O.RES, _F.I), (_O.RES, _F.I), (_O.RES, _F.I),
    (_O.RES, _F.I), (_O.RES, _F.I), (_O.RES, _F.I), (_O.RES, _F.I),
    (_O.RES, _F.I), (_O.RES, _F.I), (_O.RES, _F.I), (_O.RES, _F.I),
    (_O.LB, _F.I), (_O.LH, _F.I), (_O.LWL, _F.I), (_O.LW, _F.I),
    (_O.LBU, _F.I), (_O.LHU, _F.I), (_O.LWR, _F.I), (_O.RES, _F.I),
    (_O.SB, _F.I), (_O.SH, _F.I), (_O.SWL, _F.I), (_O.SW, _F.I),
    (_O.RES, _F.I), (_O.RES, _F.I), (_O.SWR, _F.I), (_O.RES, _F.I),
    (_O.UNIMP, _F.I), (_O.UNIMP, _F.I), (_O.UNIMP, _F.I), (_O.UNIMP, _F.I),
    (_O.RES, _F.I), (_O.RES, _F.I), (_O.RES, _F.I), (_O.RES, _F.I),
    (_O.UNIMP, _F.I), (_O.UNIMP, _F.I), (_O.UNIMP, _F.I), (_O.UNIMP, _F.I),
    (_O.RES, _F.I), (_O.RES, _F.I), (_O.RES, _F.I), (_O.RES, _F.I),
)

# The "funct" field (bits 5:0) of SPECIAL instructions -> operation.
_SPECIAL_TABLE: tuple[OpCode, ...] = (
    _O.SLL, _O.RES, _O.SRL, _O.SRA, _O.SLLV, _O.RES, _O.SRLV, _O.SRAV,
    _O.JR, _O.JALR, _O.RES, _O.RES, _O.SYSCALL, _O.UNIMP, _O.RES, _O.RES,
    _O.MFHI, _O.MTHI, _O.MFLO, _O.MTLO, _O.RES, _O.RES, _O.RES, _O.RES,
    _O.MULT, _O.MULTU, _O.DIV, _O.DIVU, _O.RES, _O.RES, _O.RES, _O.RES,
    _O.ADD, _O.ADDU, _O.SUB, _O.SUBU, _O.AND, _O.OR, _O.XOR, _O.NOR,
    _O.RES, _O.RES, _O.SLT, _O.SLTU, _O.RES, _O.RES, _O.RES, _O.RES,
    _O.RES, _O.RES, _O.RES, _O.RES, _O.RES, _O.RES, _O.RES, _O.RES,
    _O.RES, _O.RES, _O.RES, _O.RES, _O.RES, _O.RES, _O.RES, _O.RES,
)

# Bits 20:16 of a BCOND instruction -> branch operation.
_BCOND_TABLE = {
    0x00: _O.BLTZ,
    0x01: _O.BGEZ,
    0x10: _O.BLTZAL,
    0x11: _O.BGEZAL,
}

_RD_RS_RT = ("rd", "rs", "rt")
_RT_RS_EX = ("rt", "rs", "extra")
_RS_EX = ("rs", "extra")
_RT_EX_RS = ("rt", "extra", "rs")
_RD_RT_EX = ("rd", "rt", "extra")
_RD_RT_RS = ("rd", "rt", "rs")

_OP_STRINGS: dict[OpCode, tuple[str, tuple[str, ...]]] = {
    _O.ADD: ("ADD r%d,r%d,r%d", _RD_RS_RT),
    _O.ADDI: ("ADDI r%d,r%d,%d", _RT_RS_EX),
    _O.ADDIU: ("ADDIU r%d,r%d,%d", _RT_RS_EX),
    _O.ADDU: ("ADDU r%d,r%d,r%d", _RD_RS_RT),
    _O.AND: ("AND r%d,r%d,r%d", _RD_RS_RT),
    _O.ANDI: ("ANDI r%d,r%d,%d", _RT_RS_EX),
    _O.BEQ: ("BEQ r%d,r%d,%d", ("rs", "rt", "extra")),
    _O.BGEZ: ("BGEZ r%d,%d", _RS_EX),
    _O.BGEZAL: ("BGEZAL r%d,%d", _RS_EX),
    _O.BGTZ: ("BGTZ r%d,%d", _RS_EX),
    _O.BLEZ: ("BLEZ r%d,%d", _RS_EX),
    _O.BLTZ: ("BLTZ r%d,%d", _RS_EX),
    _O.BLTZAL: ("BLTZAL r%d,%d", _RS_EX),
    _O.BNE: ("BNE r%d,r%d,%d", ("rs", "rt", "extra")),
    _O.DIV: ("DIV r%d,r%d", ("rs", "rt")),
    _O.DIVU: ("DIVU r%d,r%d", ("rs", "rt")),
    _O.J: ("J %d", ("extra",)),
    _O.JAL: ("JAL %d", ("extra",)),
    _O.JALR: ("JALR r%d,r%d", ("rd", "rs")),
    _O.JR: ("JR r%d,r%d", ("rd", "rs")),
    _O.LB: ("LB r%d,%d(r%d)", _RT_EX_RS),
    _O.LBU: ("LBU r%d,%d(r%d)", _RT_EX_RS),
    _O.LH: ("LH r%d,%d(r%d)", _RT_EX_RS),
    _O.LHU: ("LHU r%d,%d(r%d)", _RT_EX_RS),
    _O.LUI: ("LUI r%d,%d", ("rt", "extra")),
    _O.LW: ("LW r%d,%d(r%d)", _RT_EX_RS),
    _O.LWL: ("LWL r%d,%d(r%d)", _RT_EX_RS),
    _O.LWR: ("LWR r%d,%d(r%d)", _RT_EX_RS),
    _O.MFHI: ("MFHI r%d", ("rd",)),
    _O.MFLO: ("MFLO r%d", ("rd",)),
    _O.MTHI: ("MTHI r%d", ("rs",)),
    _O.MTLO: ("MTLO r%d", ("rs",)),
    _O.MULT: ("MULT r%d,r%d", ("rs", "rt")),
    _O.MULTU: ("MULTU r%d,r%d", ("rs", "rt")),
    _O.NOR: ("NOR r%d,r%d,r%d", _RD_RS_RT),
    _O.OR: ("OR r%d,r%d,r%d", _RD_RS_RT),
    _O.ORI: ("ORI r%d,r%d,%d", _RT_RS_EX),
    _O.RFE: ("RFE", ()),
    _O.SB: ("SB r%d,%d(r%d)", _RT_EX_RS),
    _O.SH: ("SH r%d,%d(r%d)", _RT_EX_RS),
    _O.SLL: ("SLL r%d,r%d,%d", _RD_RT_EX),
    _O.SLLV: ("SLLV r%d,r%d,r%d", _RD_RT_RS),
    _O.SLT: ("SLT r%d,r%d,r%d", _RD_RS_RT),
    _O.SLTI: ("SLTI r%d,r%d,%d", _RT_RS_EX),
    _O.SLTIU: ("SLTIU r%d,r%d,%d", _RT_RS_EX),
    _O.SLTU: ("SLTU r%d,r%d,r%d", _RD_RS_RT),
    _O.SRA: ("SRA r%d,r%d,%d", _RD_RT_EX),
    _O.SRAV: ("SRAV r%d,r%d,r%d", _RD_RT_RS),
    _O.SRL: ("SRL r%d,r%d,%d", _RD_RT_EX),
    _O.SRLV: ("SRLV r%d,r%d,r%d", _RD_RT_RS),
    _O.SUB: ("SUB r%d,r%d,r%d", _RD_RS_RT),
    _O.SUBU: ("SUBU r%d,r%d,r%d", _RD_RS_RT),
    _O.SW: ("SW r%d,%d(r%d)", _RT_EX_RS),
    _O.SWL: ("SWL r%d,%d(r%d)", _RT_EX_RS),
    _O.SWR: ("SWR r%d,%d(r%d)", _RT_EX_RS),
    _O.XOR: ("XOR r%d,r%d,r%d", _RD_RS_RT),
    _O.XORI: ("XORI r%d,r%d,%d", _RT_RS_EX),
    _O.SYSCALL: ("SYSCALL", ()),
    _O.UNIMP: ("Unimplemented", ()),
    _O.RES: ("Reserved", ()),
}


def to_signed32(value: int) -> int:
    """Interpret the low 32 bits of ``value`` as a two's-complement integer."""
    return ((value & _MASK32) ^ SIGN_BIT) - SIGN_BIT


@dataclass(frozen=True)
class Instruction:
    """A decoded instruction: operation, three register fields and ``extra``.

    ``extra`` holds the sign-extended immediate (I format), the shift
    amount (R format) or the jump target (J format).
    """

    value: int
    op_code: OpCode
    rs: int
    rt: int
    rd: int
    extra: int

    @classmethod
    def decode(cls, value: int) -> Instruction:
        """Decode a 32-bit instruction word."""
        value &= _MASK32
        rs = (value >> 21) & 0x1F
        rt = (value >> 16) & 0x1F
        rd = (value >> 11) & 0x1F
        op, fmt = _OP_TABLE[(value >> 26) & 0x3F]

        if fmt is _Format.I:
            extra = value & 0xFFFF
            if extra & 0x8000:
                extra -= 0x10000
        elif fmt is _Format.R:
            extra = (value >> 6) & 0x1F
        else:
            extra = value & 0x3FFFFFF

        if op == _SPECIAL:
            op_code = _SPECIAL_TABLE[value & 0x3F]
        elif op == _BCOND:
            op_code = _BCOND_TABLE.get((value >> 16) & 0x1F, OpCode.UNIMP)
        else:
            op_code = OpCode(op)
        return cls(value, op_code, rs, rt, rd, extra)

    def disassemble(self) -> str:
        """Return a one-line textual form of the instruction."""
        template, fields = _OP_STRINGS[self.op_code]
        return template % tuple(getattr(self, name) for name in fields)


def mult(a: int, b: int, signed: bool) -> tuple[int, int]:
    """Multiply two 32-bit words; return the (hi, lo) words of the product.

    Both halves are returned as signed 32-bit values.
    """
    if signed:
        product = to_signed32(a) * to_signed32(b)
    else:
        product = (a & _MASK32) * (b & _MASK32)
    product &= _MASK64
    return to_signed32(product >> 32), to_signed32(product)


def _check_offset(offset: int) -> None:
    if offset not in (0, 1, 2, 3):
        raise ValueError(f"byte offset must be 0 to 3, got {offset}")


def merge_load_left(old: int, value: int, offset: int) -> int:
    """Combine a register with a loaded word as LWL does."""
    _check_offset(offset)
    if offset == 0:
        merged = value
    elif offset == 1:
        merged = (old & 0xFF) | (value << 8)
    elif offset == 2:
        merged = (old & 0xFFFF) | (value << 16)
    else:
        merged = (old & 0xFFFFFF) | (value << 24)
    return to_signed32(merged)


def merge_load_right(old: int, value: int, offset: int) -> int:
    """Combine a register with a loaded word as LWR does."""
    _check_offset(offset)
    if offset == 0:
        merged = (old & 0xFFFFFF00) | ((value >> 24) & 0xFF)
    elif offset == 1:
        merged = (old & 0xFFFF0000) | ((value >> 16) & 0xFFFF)
    elif offset == 2:
        merged = (old & 0xFF000000) | ((value >> 8) & 0xFFFFFF)
    else:
        merged = value
    return to_signed32(merged)


def merge_store_left(old: int, value: int, offset: int) -> int:
    """Combine a memory word with a register as SWL does."""
    _check_offset(offset)
    if offset == 0:
        merged = value
    elif offset == 1:
        merged = (old & 0xFF000000) | ((value >> 8) & 0xFFFFFF)
    elif offset == 2:
        merged = (old & 0xFFFF0000) | ((value >> 16) & 0xFFFF)
    else:
        merged = (old & 0xFFFFFF00) | ((value >> 24) & 0xFF)
    return to_signed32(merged)


def merge_store_right(old: int, value: int, offset: int) -> int:
    """Combine a memory word with a register as SWR does."""
    _check_offset(offset)
    if offset == 0:
        merged = (old & 0xFFFFFF) | (value << 24)
    elif offset == 1:
        merged = (old & 0xFFFF) | (value << 16)
    elif offset == 2:
        merged = (old & 0xFF) | (value << 8)
    else:
        merged = value
    return to_signed32(merged)