"""CPU register numbering, register dumps and debugger commands."""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import IntEnum
from typing import Sequence

NUM_GP_REGS = 32  # general purpose registers
NUM_TOTAL_REGS = 40


class Register(IntEnum):
    """Numbers of the registers with a special role."""

    STACK = 29  # user's stack pointer
    RET_ADDR = 31  # return address of procedure calls
    HI = 32  # high word of a multiply result
    LO = 33
    PC = 34  # current program counter
    NEXT_PC = 35  # next program counter, for branch delay
    PREV_PC = 36  # previous program counter, for debugging
    LOAD = 37  # target register of a delayed load
    LOAD_VALUE = 38  # value to be loaded by a delayed load
    BAD_VADDR = 39  # failing virtual address on an exception


HELP_TEXT = (
    "Machine commands:\n"
    "    <return>  execute one instruction\n"
    "    <number>  run until the given timer tick\n"
    "    c         run until completion\n"
    "    ?         print help message\n"
)

_NUMBER = re.compile(r"\s*([+-]?\d+)")


@dataclass(frozen=True)
class DebugAction:
    """What the user asked the single-step debugger to do."""

    run_until_time: int = 0
    continue_running: bool = False
    show_help: bool = False


def _hex(value: int) -> str:
    return f"0x{value & 0xFFFFFFFF:x}"


def format_registers(registers: Sequence[int]) -> str:
    """Return the register dump printed by the debugger."""
    if len(registers) != NUM_TOTAL_REGS:
        raise ValueError(
            f"expected {NUM_TOTAL_REGS} registers, got {len(registers)}"
        )
    parts = ["Machine registers:\n"]
    for number, value in enumerate(registers[:NUM_GP_REGS]):
        if number == Register.STACK:
            label = f"SP({number})"
        elif number == Register.RET_ADDR:
            label = f"RA({number})"
        else:
            label = str(number)
        end = "\n" if number % 4 == 3 else ""
        parts.append(f"\t{label}:\t{_hex(value)}{end}")
    parts.append(f"\tHi:\t{_hex(registers[Register.HI])}")
    parts.append(f"\tLo:\t{_hex(registers[Register.LO])}\n")
    parts.append(f"\tPC:\t{_hex(registers[Register.PC])}")
    parts.append(f"\tNextPC:\t{_hex(registers[Register.NEXT_PC])}")
    parts.append(f"\tPrevPC:\t{_hex(registers[Register.PREV_PC])}\n")
    parts.append(f"\tLoad:\t{_hex(registers[Register.LOAD])}")
    parts.append(f"\tLoadV:\t{_hex(registers[Register.LOAD_VALUE])}\n")
    parts.append("\n")
    return "".join(parts)


def parse_debug_command(line: str) -> DebugAction:
    """Interpret one line typed at the debugger prompt.

    A number means run until that tick; ``c`` means run to completion;
    ``?`` asks for help; anything else executes one instruction.
    """
    match = _NUMBER.match(line)
    if match:
        return DebugAction(run_until_time=int(match.group(1)))
    first = line[:1]
    if first == "c":
        return DebugAction(continue_running=True)
    if first == "?":
        return DebugAction(show_help=True)
    return DebugAction()