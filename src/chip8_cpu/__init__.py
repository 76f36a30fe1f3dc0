"""CHIP8-CPU: Virtual CPU for the CHIP-8 instruction set.

This package implements the interpreter core of a CHIP-8 machine: a
4 KB byte-addressable memory, sixteen 8-bit registers V0-VF (VF doubling
as the flag register), a 16-bit index register, a 16-deep call stack, a
64x32 monochrome display, a 16-key keypad and two 60 Hz timers.

Architecture:
    MEMORY -> FETCH -> DECODE -> KEY -> REGISTRY -> EXECUTE -> STATE
               |         |        |        |           |
           [PC += 2] [nibbles] [OP_*]  [Verified]  [Owned by CPU]
                                       Primitives

Modules:
    state: MachineState with bounds-checked memory, registers and stack
    display: Framebuffer with XOR sprite compositing
    decode: Pure opcode decoder and disassembler
    registry: Verified instruction primitives (OP_DRW, OP_ADD_REG, etc.)
    cpu: Main Chip8CPU orchestrator
    assembler: Two-pass assembler for mnemonic source
    keypad: QWERTY to hex keypad mapping
    errors: Fatal error taxonomy
"""

__version__ = "0.1.0"
__author__ = "CHIP8-CPU Project"

from .errors import (
    Chip8Error, UnimplementedOpcode, StackOverflow, StackUnderflow,
    MemoryOutOfBounds, LoadTooLarge, InvalidKey, MachineHalted, AssemblerError,
)
from .state import MachineState
from .display import Framebuffer
from .decode import DecodeResult, decode, disassemble
from .registry import InstructionRegistry
from .assembler import assemble
from .cpu import Chip8CPU, ExecutionTraceEntry

__all__ = [
    "Chip8CPU", "ExecutionTraceEntry", "MachineState", "Framebuffer",
    "DecodeResult", "decode", "disassemble", "InstructionRegistry", "assemble",
    "Chip8Error", "UnimplementedOpcode", "StackOverflow", "StackUnderflow",
    "MemoryOutOfBounds", "LoadTooLarge", "InvalidKey", "MachineHalted",
    "AssemblerError",
]
