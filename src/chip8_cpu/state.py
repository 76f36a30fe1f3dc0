"""MachineState: complete state of one CHIP-8 virtual machine.

State Components:
    - Memory: 4096 bytes, hex font at 0x000-0x04F, programs from 0x200
    - Registers: V0-VF (16 x 8-bit), VF doubles as the flag register
    - I: 16-bit index register
    - PC: Program counter
    - Stack: 16 return addresses plus depth (sp)
    - Keyboard: 16 pressed/released flags
    - Timers: delay and sound, 8-bit
    - Display: 64x32 Framebuffer
    - Halted: set when a fatal error escapes a step
    - Cycle count: Total executed instructions

Every container has a fixed size. Accessors check bounds explicitly and
raise instead of growing or truncating.
"""

from dataclasses import dataclass, field
from typing import Dict, List

from .display import SCREEN_CELLS, Framebuffer
from .errors import MemoryOutOfBounds, StackOverflow, StackUnderflow

MEMORY_SIZE = 4096
PROGRAM_START = 0x200
MAX_PROGRAM_SIZE = MEMORY_SIZE - PROGRAM_START
REGISTER_COUNT = 16
STACK_DEPTH = 16
KEY_COUNT = 16
FLAG_REGISTER = 0xF
FONT_GLYPH_SIZE = 5

FONTSET = bytes([
    0xF0, 0x90, 0x90, 0x90, 0xF0,  # 0
    0x20, 0x60, 0x20, 0x20, 0x70,  # 1
    0xF0, 0x10, 0xF0, 0x80, 0xF0,  # 2
    0xF0, 0x10, 0xF0, 0x10, 0xF0,  # 3
    0x90, 0x90, 0xF0, 0x10, 0x10,  # 4
    0xF0, 0x80, 0xF0, 0x10, 0xF0,  # 5
    0xF0, 0x80, 0xF0, 0x90, 0xF0,  # 6
    0xF0, 0x10, 0x20, 0x40, 0x40,  # 7
    0xF0, 0x90, 0xF0, 0x90, 0xF0,  # 8
    0xF0, 0x90, 0xF0, 0x10, 0xF0,  # 9
    0xF0, 0x90, 0xF0, 0x90, 0x90,  # A
    0xE0, 0x90, 0xE0, 0x90, 0xE0,  # B
    0xF0, 0x80, 0x80, 0x80, 0xF0,  # C
    0xE0, 0x90, 0x90, 0x90, 0xE0,  # D
    0xF0, 0x80, 0xF0, 0x80, 0xF0,  # E
    0xF0, 0x80, 0xF0, 0x80, 0x80,  # F
])


@dataclass
class MachineState:
    """Mutable machine state, owned by exactly one Chip8CPU.

    Attributes:
        memory: 4096-byte address space
        v: General-purpose registers V0-VF
        i: Index register (16-bit)
        pc: Program counter (address of the next instruction)
        stack: Fixed array of return addresses
        sp: Current stack depth
        keyboard: Pressed flag per key 0x0-0xF
        delay_timer: Delay timer (8-bit)
        sound_timer: Sound timer (8-bit)
        display: Framebuffer
        halted: Whether a fatal error stopped execution
        cycle_count: Number of instructions executed
    """
    memory: bytearray = field(default_factory=lambda: bytearray(MEMORY_SIZE))
    v: bytearray = field(default_factory=lambda: bytearray(REGISTER_COUNT))
    i: int = 0
    pc: int = PROGRAM_START
    stack: List[int] = field(default_factory=lambda: [0] * STACK_DEPTH)
    sp: int = 0
    keyboard: List[bool] = field(default_factory=lambda: [False] * KEY_COUNT)
    delay_timer: int = 0
    sound_timer: int = 0
    display: Framebuffer = field(default_factory=Framebuffer)
    halted: bool = False
    cycle_count: int = 0

    # =========================================================================
    # Memory
    # =========================================================================

    def _check_range(self, address: int, length: int) -> None:
        if address < 0 or length < 0 or address + length > MEMORY_SIZE:
            raise MemoryOutOfBounds(address, max(length, 1))

    def read_byte(self, address: int) -> int:
        self._check_range(address, 1)
        return self.memory[address]

    def write_byte(self, address: int, value: int) -> None:
        self._check_range(address, 1)
        self.memory[address] = value & 0xFF

    def read_range(self, address: int, length: int) -> bytes:
        """Read `length` bytes starting at `address`.

        Raises:
            MemoryOutOfBounds: If any byte of the range is outside memory
        """
        self._check_range(address, length)
        return bytes(self.memory[address:address + length])

    def write_range(self, address: int, data: bytes) -> None:
        """Write `data` starting at `address`; the whole range is checked first.

        Raises:
            MemoryOutOfBounds: If any byte of the range is outside memory
        """
        self._check_range(address, len(data))
        self.memory[address:address + len(data)] = data

    def fetch(self) -> int:
        """Read the big-endian word at PC and advance PC by 2.

        Returns:
            16-bit opcode
        """
        hi, lo = self.read_range(self.pc, 2)
        self.pc = (self.pc + 2) & 0xFFFF
        return (hi << 8) | lo

    # =========================================================================
    # Registers
    # =========================================================================

    def get_register(self, index: int) -> int:
        """Get value of register V[index].

        Raises:
            IndexError: If index is not in 0x0-0xF
        """
        if not 0 <= index < REGISTER_COUNT:
            raise IndexError(f"Invalid register: V{index:X}")
        return self.v[index]

    def set_register(self, index: int, value: int) -> None:
        """Set V[index], keeping only the low 8 bits of value."""
        if not 0 <= index < REGISTER_COUNT:
            raise IndexError(f"Invalid register: V{index:X}")
        self.v[index] = value & 0xFF

    def set_flag(self, value: bool) -> None:
        """Write the flag register VF as 1 or 0."""
        self.v[FLAG_REGISTER] = 1 if value else 0

    def dump_registers(self) -> Dict[str, int]:
        """Get a copy of all register values keyed V0-VF."""
        return {f"V{idx:X}": value for idx, value in enumerate(self.v)}

    # =========================================================================
    # Stack
    # =========================================================================

    def push(self, address: int) -> None:
        """Push a return address.

        Raises:
            StackOverflow: If the stack already holds STACK_DEPTH entries
        """
        if self.sp >= STACK_DEPTH:
            raise StackOverflow(f"Call stack overflow (depth {STACK_DEPTH})")
        self.stack[self.sp] = address
        self.sp += 1

    def pop(self) -> int:
        """Pop the most recent return address.

        Raises:
            StackUnderflow: If the stack is empty
        """
        if self.sp == 0:
            raise StackUnderflow("Return with empty call stack")
        self.sp -= 1
        return self.stack[self.sp]

    # =========================================================================
    # Introspection
    # =========================================================================

    def snapshot(self, full: bool = False) -> dict:
        """Create a detached copy of the state for tracing.

        Args:
            full: Also include memory and display (expensive)

        Returns:
            Dictionary of plain values; mutating it never affects the state
        """
        snap = {
            "registers": list(self.v),
            "i": self.i,
            "pc": self.pc,
            "stack": list(self.stack[:self.sp]),
            "delay_timer": self.delay_timer,
            "sound_timer": self.sound_timer,
            "keyboard": list(self.keyboard),
            "halted": self.halted,
            "cycle_count": self.cycle_count,
        }
        if full:
            snap["memory"] = bytes(self.memory)
            snap["display"] = self.display.snapshot()
        return snap

    def validate(self) -> bool:
        """Validate state integrity.

        Checks:
            - Containers have their fixed sizes
            - I and PC fit in 16 bits, timers in 8 bits
            - Stack depth is within 0..STACK_DEPTH

        Returns:
            True if state is valid, False otherwise
        """
        if len(self.memory) != MEMORY_SIZE or len(self.v) != REGISTER_COUNT:
            return False
        if len(self.stack) != STACK_DEPTH or len(self.keyboard) != KEY_COUNT:
            return False
        if len(self.display.cells) != SCREEN_CELLS:
            return False
        if not (0 <= self.i <= 0xFFFF and 0 <= self.pc <= 0xFFFF):
            return False
        if not (0 <= self.delay_timer <= 0xFF and 0 <= self.sound_timer <= 0xFF):
            return False
        if not 0 <= self.sp <= STACK_DEPTH:
            return False
        return self.cycle_count >= 0

    def __str__(self) -> str:
        regs = " ".join(f"V{idx:X}={value:02X}" for idx, value in enumerate(self.v))
        return (
            f"[Cycle {self.cycle_count}] PC={self.pc:03X} I={self.i:03X} {regs} "
            f"SP={self.sp} DT={self.delay_timer} ST={self.sound_timer}"
            f"{' HALTED' if self.halted else ''}"
        )


def create_initial_state() -> MachineState:
    """Create a freshly powered-on machine state with the font loaded.

    Returns:
        MachineState with zeroed registers, PC at PROGRAM_START
    """
    state = MachineState()
    state.memory[:len(FONTSET)] = FONTSET
    return state
