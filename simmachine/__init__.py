"""A simulated MIPS workstation: CPU, memory translation, interrupts, timer and network."""

__version__ = "0.1.0"

__all__ = [
    "interrupt",
    "machine",
    "memory",
    "mips",
    "network",
    "registers",
    "stats",
    "timer",
]