"""Two-pass assembler for CHIP-8 mnemonic source.

Accepts the syntax produced by decode.disassemble():

    start:
        LD V0, 0x0A      ; glyph to draw
        LD F, V0
        DRW V1, V2, 5
    halt: JP halt
    sprite:
        DB 0b11110000, 0x90

Handles:
    - Labels (name:), alone or before an instruction on the same line
    - Comments (starting with ; or #)
    - Numbers in decimal, 0x hex or 0b binary
    - DB (bytes) and DW (big-endian words) data directives

The image is assembled for loading at PROGRAM_START.
"""

import re
from typing import Callable, Dict, List, Tuple

from .errors import AssemblerError
from .state import MAX_PROGRAM_SIZE, PROGRAM_START

_LABEL_RE = re.compile(r'^([A-Za-z_][A-Za-z0-9_]*)\s*:\s*(.*)$')
_REGISTER_RE = re.compile(r'^V([0-9A-F])$')

# Fx instructions of the form "LD <special>, Vx"
_LD_FROM_VX: Dict[str, int] = {
    "DT": 0xF015,
    "ST": 0xF018,
    "F": 0xF029,
    "B": 0xF033,
    "[I]": 0xF055,
}

# 8xyN instructions of the form "OP Vx, Vy"
_ALU_OPS: Dict[str, int] = {
    "OR": 0x1,
    "AND": 0x2,
    "XOR": 0x3,
    "SUB": 0x5,
    "SUBN": 0x7,
}


def parse_source(source: str) -> List[Tuple[int, str]]:
    """Strip comments and blank lines.

    Returns:
        List of (line number, text) pairs, labels still attached
    """
    lines = []
    for number, line in enumerate(source.split("\n"), start=1):
        line = re.sub(r'[;#].*$', '', line).strip()
        if line:
            lines.append((number, line))
    return lines


def parse_immediate(value: str) -> int:
    """Parse a number (decimal, hex, or binary).

    Raises:
        ValueError: If value cannot be parsed
    """
    value = value.strip().upper()

    # Hex: 0x prefix
    if value.startswith("0X"):
        return int(value, 16)

    # Binary: 0b prefix
    if value.startswith("0B"):
        return int(value, 2)

    return int(value)


def _split_statement(text: str) -> Tuple[str, List[str]]:
    parts = text.split(None, 1)
    mnemonic = parts[0].upper()
    if len(parts) == 1:
        return mnemonic, []
    return mnemonic, [op.strip() for op in parts[1].split(",")]


def _statement_size(mnemonic: str, operands: List[str]) -> int:
    if mnemonic == "DB":
        return len(operands)
    if mnemonic == "DW":
        return 2 * len(operands)
    return 2


class _Encoder:
    """Encodes one statement, resolving labels through `labels`."""

    def __init__(self, labels: Dict[str, int], line: int):
        self.labels = labels
        self.line = line

    def error(self, message: str) -> AssemblerError:
        return AssemblerError(message, self.line)

    # --- operand parsers ---

    def register(self, operand: str) -> int:
        match = _REGISTER_RE.match(operand.upper())
        if not match:
            raise self.error(f"Expected register V0-VF, got {operand!r}")
        return int(match.group(1), 16)

    def is_register(self, operand: str) -> bool:
        return bool(_REGISTER_RE.match(operand.upper()))

    def number(self, operand: str, limit: int, what: str) -> int:
        try:
            value = parse_immediate(operand)
        except ValueError:
            if operand.upper() in self.labels:
                value = self.labels[operand.upper()]
            else:
                raise self.error(f"Unknown {what} or label: {operand!r}")
        if not 0 <= value <= limit:
            raise self.error(f"{what.capitalize()} out of range: {operand}")
        return value

    def addr(self, operand: str) -> int:
        return self.number(operand, 0xFFF, "address")

    def byte(self, operand: str) -> int:
        return self.number(operand, 0xFF, "byte")

    def nibble(self, operand: str) -> int:
        return self.number(operand, 0xF, "nibble")

    def expect(self, operands: List[str], *counts: int) -> None:
        if len(operands) not in counts:
            expected = " or ".join(str(c) for c in counts)
            raise self.error(f"Expected {expected} operand(s), got {len(operands)}")

    # --- statements ---

    def encode(self, mnemonic: str, ops: List[str]) -> bytes:
        if mnemonic == "DB":
            return bytes(self.byte(op) for op in ops)
        if mnemonic == "DW":
            return b"".join(
                self.number(op, 0xFFFF, "word").to_bytes(2, "big") for op in ops
            )
        handler: Callable[[List[str]], int] = getattr(self, f"_enc_{mnemonic.lower()}", None)
        if handler is None:
            raise self.error(f"Unknown instruction: {mnemonic}")
        return handler(ops).to_bytes(2, "big")

    def _enc_nop(self, ops):
        self.expect(ops, 0)
        return 0x0000

    def _enc_cls(self, ops):
        self.expect(ops, 0)
        return 0x00E0

    def _enc_ret(self, ops):
        self.expect(ops, 0)
        return 0x00EE

    def _enc_jp(self, ops):
        self.expect(ops, 1, 2)
        if len(ops) == 2:
            if self.register(ops[0]) != 0:
                raise self.error("Indexed jump must use V0")
            return 0xB000 | self.addr(ops[1])
        return 0x1000 | self.addr(ops[0])

    def _enc_call(self, ops):
        self.expect(ops, 1)
        return 0x2000 | self.addr(ops[0])

    def _enc_se(self, ops):
        self.expect(ops, 2)
        x = self.register(ops[0])
        if self.is_register(ops[1]):
            return 0x5000 | x << 8 | self.register(ops[1]) << 4
        return 0x3000 | x << 8 | self.byte(ops[1])

    def _enc_sne(self, ops):
        self.expect(ops, 2)
        x = self.register(ops[0])
        if self.is_register(ops[1]):
            return 0x9000 | x << 8 | self.register(ops[1]) << 4
        return 0x4000 | x << 8 | self.byte(ops[1])

    def _enc_ld(self, ops):
        self.expect(ops, 2)
        dst, src = ops[0].upper(), ops[1].upper()
        if dst == "I":
            return 0xA000 | self.addr(ops[1])
        if dst in _LD_FROM_VX:
            return _LD_FROM_VX[dst] | self.register(src) << 8
        x = self.register(dst)
        if src == "DT":
            return 0xF007 | x << 8
        if src == "K":
            return 0xF00A | x << 8
        if src == "[I]":
            return 0xF065 | x << 8
        if self.is_register(src):
            return 0x8000 | x << 8 | self.register(src) << 4
        return 0x6000 | x << 8 | self.byte(ops[1])

    def _enc_add(self, ops):
        self.expect(ops, 2)
        if ops[0].upper() == "I":
            return 0xF01E | self.register(ops[1]) << 8
        x = self.register(ops[0])
        if self.is_register(ops[1]):
            return 0x8004 | x << 8 | self.register(ops[1]) << 4
        return 0x7000 | x << 8 | self.byte(ops[1])

    def _alu(self, ops, n):
        self.expect(ops, 2)
        return 0x8000 | self.register(ops[0]) << 8 | self.register(ops[1]) << 4 | n

    def _enc_or(self, ops):
        return self._alu(ops, _ALU_OPS["OR"])

    def _enc_and(self, ops):
        return self._alu(ops, _ALU_OPS["AND"])

    def _enc_xor(self, ops):
        return self._alu(ops, _ALU_OPS["XOR"])

    def _enc_sub(self, ops):
        return self._alu(ops, _ALU_OPS["SUB"])

    def _enc_subn(self, ops):
        return self._alu(ops, _ALU_OPS["SUBN"])

    def _shift(self, ops, n):
        self.expect(ops, 1, 2)
        y = self.register(ops[1]) if len(ops) == 2 else 0
        return 0x8000 | self.register(ops[0]) << 8 | y << 4 | n

    def _enc_shr(self, ops):
        return self._shift(ops, 0x6)

    def _enc_shl(self, ops):
        return self._shift(ops, 0xE)

    def _enc_rnd(self, ops):
        self.expect(ops, 2)
        return 0xC000 | self.register(ops[0]) << 8 | self.byte(ops[1])

    def _enc_drw(self, ops):
        self.expect(ops, 3)
        return (0xD000 | self.register(ops[0]) << 8 | self.register(ops[1]) << 4
                | self.nibble(ops[2]))

    def _enc_skp(self, ops):
        self.expect(ops, 1)
        return 0xE09E | self.register(ops[0]) << 8

    def _enc_sknp(self, ops):
        self.expect(ops, 1)
        return 0xE0A1 | self.register(ops[0]) << 8


def assemble(source: str, origin: int = PROGRAM_START) -> bytes:
    """Assemble source code into a program image.

    Args:
        source: Assembly source code
        origin: Address the image will be loaded at (for label values)

    Returns:
        Program bytes

    Raises:
        AssemblerError: On syntax errors, unknown labels, out-of-range
            operands, or an image larger than MAX_PROGRAM_SIZE
    """
    # Pass 1: collect labels and statement addresses
    labels: Dict[str, int] = {}
    statements: List[Tuple[int, str, List[str]]] = []
    address = origin
    for number, text in parse_source(source):
        match = _LABEL_RE.match(text)
        if match:
            label = match.group(1).upper()
            if label in labels:
                raise AssemblerError(f"Duplicate label: {match.group(1)}", number)
            labels[label] = address
            text = match.group(2).strip()
            if not text:
                continue
        mnemonic, operands = _split_statement(text)
        statements.append((number, mnemonic, operands))
        address += _statement_size(mnemonic, operands)

    # Pass 2: encode
    image = bytearray()
    for number, mnemonic, operands in statements:
        image += _Encoder(labels, number).encode(mnemonic, operands)

    if len(image) > MAX_PROGRAM_SIZE:
        raise AssemblerError(f"Program of {len(image)} bytes exceeds {MAX_PROGRAM_SIZE} bytes")
    return bytes(image)
