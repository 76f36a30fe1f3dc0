"""Instruction decoder for CHIP8-CPU.

Decoding is a pure function of the 16-bit word:

    opcode -> split fields -> dispatch on (group, x, y, n) -> registry key

    0xD125  ->  group=D x=1 y=2 n=5 nn=0x25 nnn=0x125  ->  "OP_DRW"

The registry key names a verified primitive in registry.py. Words that
match no defined instruction decode to OP_INVALID with valid=False.
"""

from dataclasses import dataclass
from typing import Dict, Optional, Set


@dataclass(frozen=True)
class DecodeResult:
    """Result of instruction decode operation.

    Attributes:
        key: Operation key (e.g., "OP_DRW")
        opcode: The raw 16-bit instruction word
        group: Top nibble (operation group)
        x: Second nibble (register index)
        y: Third nibble (register index)
        n: Low nibble
        nn: Low byte
        nnn: Low 12 bits (address)
        valid: Whether decode succeeded
        error: Error message if decode failed
    """
    key: str
    opcode: int
    group: int
    x: int
    y: int
    n: int
    nn: int
    nnn: int
    valid: bool = True
    error: Optional[str] = None

    @property
    def mnemonic(self) -> str:
        return format_instruction(self)


# Valid operation keys that can be emitted
VALID_KEYS: Set[str] = {
    "OP_NOP", "OP_CLS", "OP_RET", "OP_JP", "OP_CALL",
    "OP_SE_BYTE", "OP_SNE_BYTE", "OP_SE_REG", "OP_LD_BYTE", "OP_ADD_BYTE",
    "OP_LD_REG", "OP_OR", "OP_AND", "OP_XOR", "OP_ADD_REG", "OP_SUB",
    "OP_SHR", "OP_SUBN", "OP_SHL", "OP_SNE_REG", "OP_LD_I", "OP_JP_V0",
    "OP_RND", "OP_DRW", "OP_SKP", "OP_SKNP",
    "OP_LD_VX_DT", "OP_LD_VX_K", "OP_LD_DT_VX", "OP_LD_ST_VX", "OP_ADD_I_VX",
    "OP_LD_F_VX", "OP_LD_B_VX", "OP_LD_MEM_VX", "OP_LD_VX_MEM",
    "OP_INVALID",
}

# Groups decided by the top nibble alone
_GROUP_KEYS: Dict[int, str] = {
    0x1: "OP_JP",
    0x2: "OP_CALL",
    0x3: "OP_SE_BYTE",
    0x4: "OP_SNE_BYTE",
    0x6: "OP_LD_BYTE",
    0x7: "OP_ADD_BYTE",
    0xA: "OP_LD_I",
    0xB: "OP_JP_V0",
    0xC: "OP_RND",
    0xD: "OP_DRW",
}

# 8xyN, keyed by n
_ALU_KEYS: Dict[int, str] = {
    0x0: "OP_LD_REG",
    0x1: "OP_OR",
    0x2: "OP_AND",
    0x3: "OP_XOR",
    0x4: "OP_ADD_REG",
    0x5: "OP_SUB",
    0x6: "OP_SHR",
    0x7: "OP_SUBN",
    0xE: "OP_SHL",
}

# ExNN, keyed by nn
_KEY_KEYS: Dict[int, str] = {
    0x9E: "OP_SKP",
    0xA1: "OP_SKNP",
}

# FxNN, keyed by nn
_MISC_KEYS: Dict[int, str] = {
    0x07: "OP_LD_VX_DT",
    0x0A: "OP_LD_VX_K",
    0x15: "OP_LD_DT_VX",
    0x18: "OP_LD_ST_VX",
    0x1E: "OP_ADD_I_VX",
    0x29: "OP_LD_F_VX",
    0x33: "OP_LD_B_VX",
    0x55: "OP_LD_MEM_VX",
    0x65: "OP_LD_VX_MEM",
}

_SYSTEM_KEYS: Dict[int, str] = {
    0x0000: "OP_NOP",
    0x00E0: "OP_CLS",
    0x00EE: "OP_RET",
}


def split_fields(opcode: int) -> Dict[str, int]:
    """Split an instruction word into its decode fields.

    Args:
        opcode: 16-bit instruction word

    Returns:
        Dictionary with group, x, y, n, nn, nnn
    """
    return {
        "group": (opcode & 0xF000) >> 12,
        "x": (opcode & 0x0F00) >> 8,
        "y": (opcode & 0x00F0) >> 4,
        "n": opcode & 0x000F,
        "nn": opcode & 0x00FF,
        "nnn": opcode & 0x0FFF,
    }


def _lookup_key(opcode: int, group: int, n: int, nn: int) -> Optional[str]:
    if group == 0x0:
        return _SYSTEM_KEYS.get(opcode)
    if group in _GROUP_KEYS:
        return _GROUP_KEYS[group]
    if group == 0x5:
        return "OP_SE_REG" if n == 0 else None
    if group == 0x9:
        return "OP_SNE_REG" if n == 0 else None
    if group == 0x8:
        return _ALU_KEYS.get(n)
    if group == 0xE:
        return _KEY_KEYS.get(nn)
    return _MISC_KEYS.get(nn)


def decode(opcode: int) -> DecodeResult:
    """Decode an instruction word to an operation key and fields.

    Args:
        opcode: 16-bit instruction word

    Returns:
        DecodeResult; valid=False with key OP_INVALID for undefined words

    Raises:
        ValueError: If opcode does not fit in 16 bits
    """
    if not 0 <= opcode <= 0xFFFF:
        raise ValueError(f"Opcode out of range: {opcode}")

    fields = split_fields(opcode)
    key = _lookup_key(opcode, fields["group"], fields["n"], fields["nn"])
    if key is None:
        return DecodeResult(
            "OP_INVALID",
            opcode,
            valid=False,
            error=f"Unknown instruction: 0x{opcode:04X}",
            **fields
        )
    return DecodeResult(key, opcode, **fields)


# =============================================================================
# Disassembly
# =============================================================================

_MNEMONICS: Dict[str, str] = {
    "OP_NOP": "NOP",
    "OP_CLS": "CLS",
    "OP_RET": "RET",
    "OP_JP": "JP 0x{nnn:03X}",
    "OP_CALL": "CALL 0x{nnn:03X}",
    "OP_SE_BYTE": "SE V{x:X}, 0x{nn:02X}",
    "OP_SNE_BYTE": "SNE V{x:X}, 0x{nn:02X}",
    "OP_SE_REG": "SE V{x:X}, V{y:X}",
    "OP_LD_BYTE": "LD V{x:X}, 0x{nn:02X}",
    "OP_ADD_BYTE": "ADD V{x:X}, 0x{nn:02X}",
    "OP_LD_REG": "LD V{x:X}, V{y:X}",
    "OP_OR": "OR V{x:X}, V{y:X}",
    "OP_AND": "AND V{x:X}, V{y:X}",
    "OP_XOR": "XOR V{x:X}, V{y:X}",
    "OP_ADD_REG": "ADD V{x:X}, V{y:X}",
    "OP_SUB": "SUB V{x:X}, V{y:X}",
    "OP_SHR": "SHR V{x:X}, V{y:X}",
    "OP_SUBN": "SUBN V{x:X}, V{y:X}",
    "OP_SHL": "SHL V{x:X}, V{y:X}",
    "OP_SNE_REG": "SNE V{x:X}, V{y:X}",
    "OP_LD_I": "LD I, 0x{nnn:03X}",
    "OP_JP_V0": "JP V0, 0x{nnn:03X}",
    "OP_RND": "RND V{x:X}, 0x{nn:02X}",
    "OP_DRW": "DRW V{x:X}, V{y:X}, {n}",
    "OP_SKP": "SKP V{x:X}",
    "OP_SKNP": "SKNP V{x:X}",
    "OP_LD_VX_DT": "LD V{x:X}, DT",
    "OP_LD_VX_K": "LD V{x:X}, K",
    "OP_LD_DT_VX": "LD DT, V{x:X}",
    "OP_LD_ST_VX": "LD ST, V{x:X}",
    "OP_ADD_I_VX": "ADD I, V{x:X}",
    "OP_LD_F_VX": "LD F, V{x:X}",
    "OP_LD_B_VX": "LD B, V{x:X}",
    "OP_LD_MEM_VX": "LD [I], V{x:X}",
    "OP_LD_VX_MEM": "LD V{x:X}, [I]",
    "OP_INVALID": "DW 0x{opcode:04X}",
}


def format_instruction(result: DecodeResult) -> str:
    """Render a decoded instruction as assembly text."""
    return _MNEMONICS[result.key].format(
        opcode=result.opcode, x=result.x, y=result.y,
        n=result.n, nn=result.nn, nnn=result.nnn,
    )


def disassemble(opcode: int) -> str:
    """Disassemble one instruction word, e.g. 0x6A2B -> "LD VA, 0x2B"."""
    return format_instruction(decode(opcode))
