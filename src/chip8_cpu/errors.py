"""Exception taxonomy for CHIP8-CPU.

Every error raised while the machine executes derives from Chip8Error.
All of them are fatal to the current execution session: the CPU marks
itself halted and the caller must reset() before stepping again.
"""

from typing import Optional


class Chip8Error(RuntimeError):
    """Base class for fatal machine errors."""


class UnimplementedOpcode(Chip8Error):
    """Decoded word matches no defined instruction."""

    def __init__(self, opcode: int, address: Optional[int] = None):
        self.opcode = opcode
        self.address = address
        where = f" at 0x{address:03X}" if address is not None else ""
        super().__init__(f"Unimplemented opcode 0x{opcode:04X}{where}")


class StackOverflow(Chip8Error):
    """CALL executed with the call stack already full."""


class StackUnderflow(Chip8Error):
    """RET executed with an empty call stack."""


class MemoryOutOfBounds(Chip8Error, IndexError):
    """Memory access outside the 4 KB address space."""

    def __init__(self, address: int, length: int = 1):
        self.address = address
        self.length = length
        super().__init__(
            f"Memory access out of bounds: 0x{address:04X}..0x{address + length - 1:04X}"
        )


class LoadTooLarge(Chip8Error, ValueError):
    """Program image does not fit between 0x200 and the end of memory."""

    def __init__(self, size: int, capacity: int):
        self.size = size
        self.capacity = capacity
        super().__init__(f"Program of {size} bytes exceeds capacity of {capacity} bytes")


class InvalidKey(Chip8Error, IndexError):
    """Keypad index outside 0x0..0xF."""


class MachineHalted(Chip8Error):
    """step() called after a fatal error without an intervening reset()."""


class AssemblerError(ValueError):
    """Assembly source could not be translated.

    Attributes:
        line: 1-based source line number (None if not tied to a line)
    """

    def __init__(self, message: str, line: Optional[int] = None):
        self.line = line
        if line is not None:
            message = f"line {line}: {message}"
        super().__init__(message)
