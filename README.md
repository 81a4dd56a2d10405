# simmachine

`simmachine` simulates the hardware of a small MIPS R2000/R3000 workstation,
the kind of machine a teaching operating-system kernel runs on. It is a
library: the kernel that drives it is yours to supply.

## Modules

- **`simmachine.stats`** – `Statistics`, the tick and I/O counters of the
  machine, with a printable summary (`report()` returns it as text,
  `print(file)` writes it, to standard output by default). The timing
  constants (`USER_TICK`, `SYSTEM_TICK`, `NETWORK_TIME`, `TIMER_TICKS`, ...)
  live here too.
- **`simmachine.memory`** – `MemoryUnit`, 32 pages of 128-byte physical main
  memory with address translation through either a linear page table or a
  four-entry software-managed TLB of `TranslationEntry` records.
  `translate` raises `AddressTranslationError`, which carries the trap cause
  as an `ExceptionType`; `read_physical` and `write_physical` access memory
  little-endian.
- **`simmachine.interrupt`** – `Interrupt`, the interrupt controller and the
  keeper of simulated time. Devices `schedule` a `PendingInterrupt` a number
  of ticks ahead; time advances when interrupts are re-enabled
  (`set_level`, `enable`), on every `one_tick`, and in `idle`, which jumps the
  clock to the next pending interrupt. `halt` prints the statistics and
  raises `MachineHalted`; `idle` halts too when nothing is left to happen.
  `dump_state` prints the clock and the pending interrupts.
- **`simmachine.timer`** – `Timer`, which calls a handler every `TIMER_TICKS`
  ticks, or after random delays from 1 to twice that when `randomize` is set.
- **`simmachine.network`** – `Network`, an ordered, unreliable, fixed-size
  packet device. Each machine binds a UNIX datagram socket named
  `SOCKET_<address>` in a chosen directory; packets of up to 64 bytes on the
  wire start with a `PacketHeader` (`pack` / `unpack`). Packets are dropped at
  random according to the reliability given. `Network` is a context manager
  that removes its socket file on close.
- **`simmachine.registers`** – `Register` numbers for the special registers
  among the 40, `format_registers` for a register dump, and
  `parse_debug_command`, which turns a debugger command line into a
  `DebugAction`.
- **`simmachine.mips`** – `Instruction.decode` and `disassemble` for
  instruction words, the `OpCode` enumeration, and the helpers `mult`,
  `to_signed32` and the unaligned load/store merges (`merge_load_left`,
  `merge_load_right`, `merge_store_left`, `merge_store_right`).
- **`simmachine.machine`** – `Machine`, which fetches, decodes and executes
  user instructions one at a time, with delayed loads, branch delay slots and
  traps into an exception handler you supply. `debugger(line)` shows the state
  and acts on one single-step command.

There are no dependencies outside the standard library. The network device
needs UNIX domain sockets, so it works only on POSIX systems.

## Decoding an instruction

```python
from simmachine.mips import Instruction

instr = Instruction.decode(0x27BDFFE8)
print(instr.disassemble())   # ADDIU r29,r29,-24
```

## Running a few instructions

The exception handler is called as `handler(machine, which)` for system calls
and every other trap. On a trap the program counters are left as they were,
so a system call handler that wants to go on must advance them itself.
`Machine.run` loops until something raises.

```python
from simmachine.interrupt import Interrupt
from simmachine.machine import Machine
from simmachine.memory import NUM_PHYS_PAGES, ExceptionType, TranslationEntry
from simmachine.registers import Register


class ProgramExited(Exception):
    pass


def kernel(machine, which):
    if which is ExceptionType.SYSCALL:
        raise ProgramExited(machine.read_register(2))
    raise RuntimeError(which.description)


machine = Machine(Interrupt(), exception_handler=kernel)
machine.page_table = [
    TranslationEntry(virtual_page=n, physical_page=n, valid=True)
    for n in range(NUM_PHYS_PAGES)
]
machine.write_mem(0, 4, 0x24020005)  # ADDIU r2,r0,5
machine.write_mem(4, 4, 0x0000000C)  # SYSCALL
machine.write_register(Register.PC, 0)
machine.write_register(Register.NEXT_PC, 4)

try:
    machine.run()
except ProgramExited as exc:
    print(exc.args[0])  # 5
```

## Collecting statistics

```python
import sys
from simmachine.stats import Statistics

stats = Statistics()
stats.print(sys.stdout)
```

## Timing model

A tick is the unit of simulated time. Each user instruction costs one tick,
each re-enabling of interrupts in kernel mode costs ten, and devices take a
fixed number of ticks per operation: a network packet 100 (the constants for
a console character, 100, and a disk rotation or seek, 500, are defined as
well). The timer fires every 100 ticks, or at random delays averaging about
that.

Interrupts are delivered only at the points where simulated time advances, so
code that is incorrectly synchronised may still appear to work here; that is a
property of the simulation, not a guarantee about real hardware.

## What the package does not do

- It has no command-line program; it is used from Python code.
- It does not load executable files into memory: you place instruction words
  in memory yourself and set the program counters.
- It has no kernel: system calls, page faults and other traps go to the
  exception handler you pass to `Machine`, and thread switching on a timer
  slice goes to the `on_yield` callback of `Interrupt`.
- It has no disk or console device, only the timing constants for them.