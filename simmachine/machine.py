"""Execution of user programs on the simulated MIPS CPU."""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass
from typing import Callable, TextIO

from .interrupt import Interrupt, MachineStatus
from .memory import (
    AddressTranslationError,
    ExceptionType,
    MemoryUnit,
    TranslationEntry,
)
from .mips import (
    R31,
    SIGN_BIT,
    Instruction,
    OpCode,
    merge_load_left,
    merge_load_right,
    merge_store_left,
    merge_store_right,
    mult,
    to_signed32,
)
from .registers import (
    HELP_TEXT,
    NUM_TOTAL_REGS,
    DebugAction,
    Register,
    format_registers,
    parse_debug_command,
)
from .stats import Statistics

_log = logging.getLogger(__name__)

_MASK32 = 0xFFFFFFFF

ExceptionHandler = Callable[["Machine", ExceptionType], None]


class _Aborted(Exception):
    """The current instruction trapped to the kernel and must be restarted."""


@dataclass
class _Step:
    """Effects of one instruction applied once it completes."""

    pc_after: int
    load_reg: int = 0
    load_value: int = 0


def _c_div(a: int, b: int) -> tuple[int, int]:
    quotient = abs(a) // abs(b)
    if (a < 0) != (b < 0):
        quotient = -quotient
    return to_signed32(quotient), to_signed32(a - quotient * b)


class Machine:
    """The CPU registers and main memory seen by user programs.

    ``exception_handler(machine, which)`` is the kernel entry point called
    on system calls and on every other trap.
    """

    def __init__(
        self,
        interrupt: Interrupt,
        stats: Statistics | None = None,
        exception_handler: ExceptionHandler | None = None,
        single_step: bool = False,
        use_tlb: bool = False,
        out: TextIO | None = None,
    ) -> None:
        self.interrupt = interrupt
        self.stats = stats if stats is not None else interrupt.stats
        self.exception_handler = exception_handler
        self.single_step = single_step
        self.run_until_time = 0
        self._out = out
        self.registers = [0] * NUM_TOTAL_REGS
        self.memory = MemoryUnit(use_tlb)
        # Any pending delayed load must land before an interrupt handler runs.
        self.interrupt.delayed_load = self.delayed_load

    @property
    def out(self) -> TextIO:
        return sys.stdout if self._out is None else self._out

    @property
    def main_memory(self) -> bytearray:
        return self.memory.main_memory

    @property
    def tlb(self) -> list[TranslationEntry] | None:
        return self.memory.tlb

    @property
    def page_table(self) -> list[TranslationEntry] | None:
        return self.memory.page_table

    @page_table.setter
    def page_table(self, table: list[TranslationEntry] | None) -> None:
        self.memory.page_table = table

    # ------------------------------------------------------------------
    # Registers

    def read_register(self, num: int) -> int:
        """Return the contents of register ``num``."""
        if not 0 <= num < NUM_TOTAL_REGS:
            raise IndexError(f"no register {num}")
        return self.registers[num]

    def write_register(self, num: int, value: int) -> None:
        """Store ``value`` (as a 32-bit word) into register ``num``."""
        if not 0 <= num < NUM_TOTAL_REGS:
            raise IndexError(f"no register {num}")
        self.registers[num] = to_signed32(value)

    def _set(self, num: int, value: int) -> None:
        self.registers[num] = to_signed32(value)

    # ------------------------------------------------------------------
    # Memory

    def _translate(self, addr: int, size: int, writing: bool) -> int:
        if size not in (1, 2, 4):
            raise ValueError(f"invalid access size {size}")
        try:
            return self.memory.translate(addr, size, writing)
        except AddressTranslationError as exc:
            self.raise_exception(exc.kind, addr)
            raise

    def read_mem(self, addr: int, size: int) -> int:
        """Read 1, 2 or 4 bytes of virtual memory at ``addr``.

        If the address cannot be translated the trap is delivered to the
        kernel and AddressTranslationError is raised to the caller.
        """
        phys = self._translate(addr, size, False)
        value = self.memory.read_physical(phys, size)
        _log.debug("value read = %08x", value & _MASK32)
        return value

    def write_mem(self, addr: int, size: int, value: int) -> None:
        """Write the low 1, 2 or 4 bytes of ``value`` at virtual ``addr``.

        Translation failures trap to the kernel and raise
        AddressTranslationError.
        """
        _log.debug(
            "Writing VA 0x%x, size %d, value 0x%x", addr & _MASK32, size, value & _MASK32
        )
        phys = self._translate(addr, size, True)
        self.memory.write_physical(phys, size, value)

    # ------------------------------------------------------------------
    # Traps

    def raise_exception(self, which: ExceptionType, bad_vaddr: int) -> None:
        """Trap into the kernel because of ``which``."""
        which = ExceptionType(which)
        _log.debug("Exception: %s", which.description)
        if self.exception_handler is None:
            raise RuntimeError(f"no handler for exception: {which.description}")
        self._set(Register.BAD_VADDR, bad_vaddr)
        self.delayed_load(0, 0)
        self.interrupt.status = MachineStatus.SYSTEM
        self.exception_handler(self, which)
        self.interrupt.status = MachineStatus.USER

    def _trap(self, which: ExceptionType, bad_vaddr: int) -> None:
        self.raise_exception(which, bad_vaddr)
        raise _Aborted

    # ------------------------------------------------------------------
    # Execution

    def run(self) -> None:
        """Run user code until something stops the machine."""
        _log.debug("Starting user program at time %d", self.stats.total_ticks)
        self.interrupt.status = MachineStatus.USER
        while True:
            self.one_instruction()
            self.interrupt.one_tick()
            if self.single_step and self.run_until_time <= self.stats.total_ticks:
                self.debugger()

    def delayed_load(self, next_reg: int, next_value: int) -> None:
        """Finish the pending delayed load and record the next one."""
        regs = self.registers
        regs[regs[Register.LOAD]] = regs[Register.LOAD_VALUE]
        regs[Register.LOAD] = next_reg
        regs[Register.LOAD_VALUE] = to_signed32(next_value)
        regs[0] = 0  # register 0 is always zero

    def one_instruction(self) -> None:
        """Fetch, decode and execute one user instruction.

        On a trap the kernel is entered and the program counters are left
        unchanged, so the instruction is retried (a system call handler
        must advance the PC itself).
        """
        regs = self.registers
        try:
            raw = self.read_mem(regs[Register.PC], 4)
        except AddressTranslationError:
            return
        instr = Instruction.decode(raw)
        if _log.isEnabledFor(logging.DEBUG):
            _log.debug(
                "At PC = 0x%x: %s", regs[Register.PC] & _MASK32, instr.disassemble()
            )

        handler = _DISPATCH.get(instr.op_code)
        if handler is None:
            raise RuntimeError(f"cannot execute {instr.op_code.name}")
        step = _Step(to_signed32(regs[Register.NEXT_PC] + 4))
        try:
            handler(self, instr, step)
        except (_Aborted, AddressTranslationError):
            return

        self.delayed_load(step.load_reg, step.load_value)
        regs[Register.PREV_PC] = regs[Register.PC]
        regs[Register.PC] = regs[Register.NEXT_PC]
        regs[Register.NEXT_PC] = step.pc_after

    # Arithmetic and logic -------------------------------------------------

    def _add(self, i: Instruction, step: _Step) -> None:
        a, b = self.registers[i.rs], self.registers[i.rt]
        total = to_signed32(a + b)
        if not ((a ^ b) & SIGN_BIT) and ((a ^ total) & SIGN_BIT):
            self._trap(ExceptionType.OVERFLOW, 0)
        self._set(i.rd, total)

    def _addi(self, i: Instruction, step: _Step) -> None:
        a = self.registers[i.rs]
        total = to_signed32(a + i.extra)
        if not ((a ^ i.extra) & SIGN_BIT) and ((i.extra ^ total) & SIGN_BIT):
            self._trap(ExceptionType.OVERFLOW, 0)
        self._set(i.rt, total)

    def _addiu(self, i: Instruction, step: _Step) -> None:
        self._set(i.rt, self.registers[i.rs] + i.extra)

    def _addu(self, i: Instruction, step: _Step) -> None:
        self._set(i.rd, self.registers[i.rs] + self.registers[i.rt])

    def _sub(self, i: Instruction, step: _Step) -> None:
        a, b = self.registers[i.rs], self.registers[i.rt]
        diff = to_signed32(a - b)
        if ((a ^ b) & SIGN_BIT) and ((a ^ diff) & SIGN_BIT):
            self._trap(ExceptionType.OVERFLOW, 0)
        self._set(i.rd, diff)

    def _subu(self, i: Instruction, step: _Step) -> None:
        self._set(i.rd, self.registers[i.rs] - self.registers[i.rt])

    def _and(self, i: Instruction, step: _Step) -> None:
        self._set(i.rd, self.registers[i.rs] & self.registers[i.rt])

    def _andi(self, i: Instruction, step: _Step) -> None:
        self._set(i.rt, self.registers[i.rs] & (i.extra & 0xFFFF))

    def _or(self, i: Instruction, step: _Step) -> None:
        self._set(i.rd, self.registers[i.rs] | self.registers[i.rt])

    def _ori(self, i: Instruction, step: _Step) -> None:
        self._set(i.rt, self.registers[i.rs] | (i.extra & 0xFFFF))

    def _xor(self, i: Instruction, step: _Step) -> None:
        self._set(i.rd, self.registers[i.rs] ^ self.registers[i.rt])

    def _xori(self, i: Instruction, step: _Step) -> None:
        self._set(i.rt, self.registers[i.rs] ^ (i.extra & 0xFFFF))

    def _nor(self, i: Instruction, step: _Step) -> None:
        self._set(i.rd, ~(self.registers[i.rs] | self.registers[i.rt]))

    def _lui(self, i: Instruction, step: _Step) -> None:
        self._set(i.rt, i.extra << 16)

    def _slt(self, i: Instruction, step: _Step) -> None:
        self._set(i.rd, int(self.registers[i.rs] < self.registers[i.rt]))

    def _slti(self, i: Instruction, step: _Step) -> None:
        self._set(i.rt, int(self.registers[i.rs] < i.extra))

    def _sltiu(self, i: Instruction, step: _Step) -> None:
        self._set(i.rt, int((self.registers[i.rs] & _MASK32) < (i.extra & _MASK32)))

    def _sltu(self, i: Instruction, step: _Step) -> None:
        rs = self.registers[i.rs] & _MASK32
        rt = self.registers[i.rt] & _MASK32
        self._set(i.rd, int(rs < rt))

    def _sll(self, i: Instruction, step: _Step) -> None:
        self._set(i.rd, self.registers[i.rt] << i.extra)

    def _sllv(self, i: Instruction, step: _Step) -> None:
        self._set(i.rd, self.registers[i.rt] << (self.registers[i.rs] & 0x1F))

    def _sra(self, i: Instruction, step: _Step) -> None:
        self._set(i.rd, self.registers[i.rt] >> i.extra)

    def _srav(self, i: Instruction, step: _Step) -> None:
        self._set(i.rd, self.registers[i.rt] >> (self.registers[i.rs] & 0x1F))

    def _srl(self, i: Instruction, step: _Step) -> None:
        self._set(i.rd, (self.registers[i.rt] & _MASK32) >> i.extra)

    def _srlv(self, i: Instruction, step: _Step) -> None:
        shift = self.registers[i.rs] & 0x1F
        self._set(i.rd, (self.registers[i.rt] & _MASK32) >> shift)

    # Multiply and divide ---------------------------------------------------

    def _mult(self, i: Instruction, step: _Step) -> None:
        hi, lo = mult(
            self.registers[i.rs], self.registers[i.rt], i.op_code is OpCode.MULT
        )
        self._set(Register.HI, hi)
        self._set(Register.LO, lo)

    def _div(self, i: Instruction, step: _Step) -> None:
        a, b = self.registers[i.rs], self.registers[i.rt]
        if b == 0:
            quotient, remainder = 0, 0
        else:
            quotient, remainder = _c_div(a, b)
        self._set(Register.LO, quotient)
        self._set(Register.HI, remainder)

    def _divu(self, i: Instruction, step: _Step) -> None:
        a = self.registers[i.rs] & _MASK32
        b = self.registers[i.rt] & _MASK32
        quotient, remainder = divmod(a, b) if b else (0, 0)
        self._set(Register.LO, quotient)
        self._set(Register.HI, remainder)

    def _mfhi(self, i: Instruction, step: _Step) -> None:
        self._set(i.rd, self.registers[Register.HI])

    def _mflo(self, i: Instruction, step: _Step) -> None:
        self._set(i.rd, self.registers[Register.LO])

    def _mthi(self, i: Instruction, step: _Step) -> None:
        self._set(Register.HI, self.registers[i.rs])

    def _mtlo(self, i: Instruction, step: _Step) -> None:
        self._set(Register.LO, self.registers[i.rs])

    # Branches and jumps ----------------------------------------------------

    def _branch_if(self, taken: bool, i: Instruction, step: _Step) -> None:
        if taken:
            step.pc_after = to_signed32(
                self.registers[Register.NEXT_PC] + (i.extra << 2)
            )

    def _link(self, reg: int) -> None:
        self._set(reg, self.registers[Register.NEXT_PC] + 4)

    def _beq(self, i: Instruction, step: _Step) -> None:
        self._branch_if(self.registers[i.rs] == self.registers[i.rt], i, step)

    def _bne(self, i: Instruction, step: _Step) -> None:
        self._branch_if(self.registers[i.rs] != self.registers[i.rt], i, step)

    def _bgez(self, i: Instruction, step: _Step) -> None:
        self._branch_if(not self.registers[i.rs] & SIGN_BIT, i, step)

    def _bgezal(self, i: Instruction, step: _Step) -> None:
        self._link(R31)
        self._bgez(i, step)

    def _bltz(self, i: Instruction, step: _Step) -> None:
        self._branch_if(bool(self.registers[i.rs] & SIGN_BIT), i, step)

    def _bltzal(self, i: Instruction, step: _Step) -> None:
        self._link(R31)
        self._bltz(i, step)

    def _bgtz(self, i: Instruction, step: _Step) -> None:
        self._branch_if(self.registers[i.rs] > 0, i, step)

    def _blez(self, i: Instruction, step: _Step) -> None:
        self._branch_if(self.registers[i.rs] <= 0, i, step)

    def _j(self, i: Instruction, step: _Step) -> None:
        step.pc_after = to_signed32((step.pc_after & 0xF0000000) | (i.extra << 2))

    def _jal(self, i: Instruction, step: _Step) -> None:
        self._link(R31)
        self._j(i, step)

    def _jr(self, i: Instruction, step: _Step) -> None:
        step.pc_after = self.registers[i.rs]

    def _jalr(self, i: Instruction, step: _Step) -> None:
        self._link(i.rd)
        self._jr(i, step)

    # Loads and stores ------------------------------------------------------

    def _address(self, i: Instruction) -> int:
        return to_signed32(self.registers[i.rs] + i.extra)

    def _delay(self, step: _Step, reg: int, value: int) -> None:
        step.load_reg = reg
        step.load_value = to_signed32(value)

    def _lb(self, i: Instruction, step: _Step) -> None:
        value = self.read_mem(self._address(i), 1)
        if i.op_code is OpCode.LBU:
            value &= 0xFF
        self._delay(step, i.rt, value)

    def _lh(self, i: Instruction, step: _Step) -> None:
        addr = self._address(i)
        if addr & 0x1:
            self._trap(ExceptionType.ADDRESS_ERROR, addr)
        value = self.read_mem(addr, 2)
        if value & 0x8000 and i.op_code is OpCode.LH:
            value -= 0x10000
        else:
            value &= 0xFFFF
        self._delay(step, i.rt, value)

    def _lw(self, i: Instruction, step: _Step) -> None:
        addr = self._address(i)
        if addr & 0x3:
            self._trap(ExceptionType.ADDRESS_ERROR, addr)
        self._delay(step, i.rt, self.read_mem(addr, 4))

    def _aligned(self, i: Instruction) -> int:
        addr = self._address(i)
        if addr & 0x3:
            raise RuntimeError(
                f"{i.op_code.name} at unaligned address {addr & _MASK32:#x}"
            )
        return addr

    def _pending_value(self, reg: int) -> int:
        regs = self.registers
        if regs[Register.LOAD] == reg:
            return regs[Register.LOAD_VALUE]
        return regs[reg]

    def _lwl(self, i: Instruction, step: _Step) -> None:
        addr = self._aligned(i)
        value = self.read_mem(addr, 4)
        old = self._pending_value(i.rt)
        self._delay(step, i.rt, merge_load_left(old, value, addr & 0x3))

    def _lwr(self, i: Instruction, step: _Step) -> None:
        addr = self._aligned(i)
        value = self.read_mem(addr, 4)
        old = self._pending_value(i.rt)
        self._delay(step, i.rt, merge_load_right(old, value, addr & 0x3))

    def _store(self, i: Instruction, size: int) -> None:
        self.write_mem(self._address(i), size, self.registers[i.rt])

    def _sb(self, i: Instruction, step: _Step) -> None:
        self._store(i, 1)

    def _sh(self, i: Instruction, step: _Step) -> None:
        self._store(i, 2)

    def _sw(self, i: Instruction, step: _Step) -> None:
        self._store(i, 4)

    def _swl(self, i: Instruction, step: _Step) -> None:
        addr = self._aligned(i)
        word = addr & ~0x3
        old = self.read_mem(word, 4)
        self.write_mem(
            word, 4, merge_store_left(old, self.registers[i.rt], addr & 0x3)
        )

    def _swr(self, i: Instruction, step: _Step) -> None:
        addr = self._aligned(i)
        word = addr & ~0x3
        old = self.read_mem(word, 4)
        self.write_mem(
            word, 4, merge_store_right(old, self.registers[i.rt], addr & 0x3)
        )

    # Traps -----------------------------------------------------------------

    def _syscall(self, i: Instruction, step: _Step) -> None:
        self._trap(ExceptionType.SYSCALL, 0)

    def _illegal(self, i: Instruction, step: _Step) -> None:
        self._trap(ExceptionType.ILLEGAL_INSTR, 0)

    # ------------------------------------------------------------------
    # Debugging

    def debugger(self, line: str | None = None) -> DebugAction:
        """Show the machine state and act on one debugger command.

        ``line`` is the command typed by the user; when omitted it is read
        from standard input.
        """
        self.interrupt.dump_state()
        self.dump_state()
        out = self.out
        out.write(f"{self.stats.total_ticks}> ")
        out.flush()
        if line is None:
            line = sys.stdin.readline()
        action = parse_debug_command(line)
        self.run_until_time = action.run_until_time
        if action.continue_running:
            self.single_step = False
        if action.show_help:
            out.write(HELP_TEXT)
        return action

    def dump_state(self) -> None:
        """Print the user program's CPU registers."""
        self.out.write(format_registers(self.registers))


_M = Machine
_O = OpCode

_DISPATCH: dict[OpCode, Callable[[Machine, Instruction, _Step], None]] = {
    _O.ADD: _M._add,
    _O.ADDI: _M._addi,
    _O.ADDIU: _M._addiu,
    _O.ADDU: _M._addu,
    _O.AND: _M._and,
    _O.ANDI: _M._andi,
    _O.BEQ: _M._beq,
    _O.BGEZ: _M._bgez,
    _O.BGEZAL: _M._bgezal,
    _O.BGTZ: _M._bgtz,
    _O.BLEZ: _M._blez,
    _O.BLTZ: _M._bltz,
    _O.BLTZAL: _M._bltzal,
    _O.BNE: _M._bne,
    _O.DIV: _M._div,
    _O.DIVU: _M._divu,
    _O.J: _M._j,
    _O.JAL: _M._jal,
    _O.JALR: _M._jalr,
    _O.JR: _M._jr,
    _O.LB: _M._lb,
    _O.LBU: _M._lb,
    _O.LH: _M._lh,
    _O.LHU: _M._lh,
    _O.LUI: _M._lui,
    _O.LW: _M._lw,
    _O.LWL: _M._lwl,
    _O.LWR: _M._lwr,
    _O.MFHI: _M._mfhi,
    _O.MFLO: _M._mflo,
    _O.MTHI: _M._mthi,
    _O.MTLO: _M._mtlo,
    _O.MULT: _M._mult,
    _O.MULTU: _M._mult,
    _O.NOR: _M._nor,
    _O.OR: _M._or,
    _O.ORI: _M._ori,
    _O.SB: _M._sb,
    _O.SH: _M._sh,
    _O.SLL: _M._sll,
    _O.SLLV: _M._sllv,
    _O.SLT: _M._slt,
    _O.SLTI: _M._slti,
    _O.SLTIU: _M._sltiu,
    _O.SLTU: _M._sltu,
    _O.SRA: _M._sra,
    _O.SRAV: _M._srav,
    _O.SRL: _M._srl,
    _O.SRLV: _M._srlv,
    _O.SUB: _M._sub,
    _O.SUBU: _M._subu,
    _O.SW: _M._sw,
    _O.SWL: _M._swl,
    _O.SWR: _M._swr,
    _O.SYSCALL: _M._syscall,
    _O.XOR: _M._xor,
    _O.XORI: _M._xori,
    _O.RES: _M._illegal,
    _O.UNIMP: _M._illegal,
}