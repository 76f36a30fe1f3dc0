"""InstructionRegistry: Verified instruction primitives for CHIP8-CPU.

This module implements the registry pattern for machine operations:
each decoded key maps to exactly one frozen primitive that applies the
instruction's semantics to a MachineState.

Each primitive has the signature (state, instruction, rng) -> None and
mutates the state in place. PC has already been advanced past the
instruction when a primitive runs, so "skip" means one more +2.

All register writes keep the low 8 bits. Operations that report a flag
write VF last, so the flag wins when VF is also the destination.
"""

import random
from typing import Callable, Dict, Optional

from .decode import DecodeResult
from .errors import InvalidKey, UnimplementedOpcode
from .state import FONT_GLYPH_SIZE, KEY_COUNT, MachineState

Primitive = Callable[[MachineState, DecodeResult, random.Random], None]


class InstructionRegistry:
    """Verified registry of instruction primitives.

    The registry is frozen after initialization to ensure
    no runtime modifications can occur.

    Attributes:
        _primitives: Dictionary mapping operation keys to handler functions
        _frozen: Whether the registry is locked against modifications
    """

    def __init__(self):
        """Initialize registry with all instruction primitives."""
        self._primitives: Dict[str, Primitive] = {}
        self._frozen = False
        self._register_all_primitives()
        self.freeze()

    def _register_all_primitives(self) -> None:
        """Register all instruction primitives."""
        # System and flow control
        self.register("OP_NOP", self._op_nop)
        self.register("OP_CLS", self._op_cls)
        self.register("OP_RET", self._op_ret)
        self.register("OP_JP", self._op_jp)
        self.register("OP_CALL", self._op_call)
        self.register("OP_JP_V0", self._op_jp_v0)

        # Conditional skips
        self.register("OP_SE_BYTE", self._op_se_byte)
        self.register("OP_SNE_BYTE", self._op_sne_byte)
        self.register("OP_SE_REG", self._op_se_reg)
        self.register("OP_SNE_REG", self._op_sne_reg)
        self.register("OP_SKP", self._op_skp)
        self.register("OP_SKNP", self._op_sknp)

        # Register loads and arithmetic
        self.register("OP_LD_BYTE", self._op_ld_byte)
        self.register("OP_ADD_BYTE", self._op_add_byte)
        self.register("OP_LD_REG", self._op_ld_reg)
        self.register("OP_OR", self._op_or)
        self.register("OP_AND", self._op_and)
        self.register("OP_XOR", self._op_xor)
        self.register("OP_ADD_REG", self._op_add_reg)
        self.register("OP_SUB", self._op_sub)
        self.register("OP_SHR", self._op_shr)
        self.register("OP_SUBN", self._op_subn)
        self.register("OP_SHL", self._op_shl)
        self.register("OP_RND", self._op_rnd)

        # Index register and memory
        self.register("OP_LD_I", self._op_ld_i)
        self.register("OP_ADD_I_VX", self._op_add_i_vx)
        self.register("OP_LD_F_VX", self._op_ld_f_vx)
        self.register("OP_LD_B_VX", self._op_ld_b_vx)
        self.register("OP_LD_MEM_VX", self._op_ld_mem_vx)
        self.register("OP_LD_VX_MEM", self._op_ld_vx_mem)

        # Display
        self.register("OP_DRW", self._op_drw)

        # Timers and keypad
        self.register("OP_LD_VX_DT", self._op_ld_vx_dt)
        self.register("OP_LD_DT_VX", self._op_ld_dt_vx)
        self.register("OP_LD_ST_VX", self._op_ld_st_vx)
        self.register("OP_LD_VX_K", self._op_ld_vx_k)

        # Special
        self.register("OP_INVALID", self._op_invalid)

    def register(self, key: str, handler: Primitive) -> None:
        """Register a primitive operation.

        Args:
            key: Operation key (e.g., "OP_DRW")
            handler: Function that takes (state, instruction, rng)

        Raises:
            RuntimeError: If registry is frozen
            ValueError: If key already registered
        """
        if self._frozen:
            raise RuntimeError("Cannot register primitives: registry is frozen")
        if key in self._primitives:
            raise ValueError(f"Primitive already registered: {key}")
        self._primitives[key] = handler

    def freeze(self) -> None:
        """Freeze the registry to prevent further modifications."""
        self._frozen = True

    def is_frozen(self) -> bool:
        """Check if registry is frozen."""
        return self._frozen

    def get_valid_keys(self) -> set:
        """Get set of all valid operation keys."""
        return set(self._primitives.keys())

    def execute(self, state: MachineState, instruction: DecodeResult,
                rng: random.Random) -> None:
        """Execute a registered primitive.

        Args:
            state: Machine state to mutate
            instruction: Decoded instruction
            rng: Random source for OP_RND

        Raises:
            KeyError: If key not in registry
            Chip8Error: Whatever fatal condition the primitive reports
        """
        if instruction.key not in self._primitives:
            raise KeyError(f"Unknown operation key: {instruction.key}")

        self._primitives[instruction.key](state, instruction, rng)

        # Only instructions that complete are counted
        state.cycle_count += 1

    # =========================================================================
    # System and Flow Control
    # =========================================================================

    def _op_nop(self, state, ins, rng):
        """0000 - No operation."""

    def _op_cls(self, state, ins, rng):
        """00E0 - Clear the display."""
        state.display.clear()

    def _op_ret(self, state, ins, rng):
        """00EE - Return from subroutine.

        Raises:
            StackUnderflow: If the stack is empty
        """
        state.pc = state.pop()

    def _op_jp(self, state, ins, rng):
        """1nnn - Jump to nnn."""
        state.pc = ins.nnn

    def _op_call(self, state, ins, rng):
        """2nnn - Call subroutine at nnn.

        Raises:
            StackOverflow: If the stack is full
        """
        state.push(state.pc)
        state.pc = ins.nnn

    def _op_jp_v0(self, state, ins, rng):
        """Bnnn - Jump to nnn + V0."""
        state.pc = ins.nnn + state.v[0]

    # =========================================================================
    # Conditional Skips
    # =========================================================================

    def _op_se_byte(self, state, ins, rng):
        """3xnn - Skip next instruction if Vx == nn."""
        if state.v[ins.x] == ins.nn:
            self._skip(state)

    def _op_sne_byte(self, state, ins, rng):
        """4xnn - Skip next instruction if Vx != nn."""
        if state.v[ins.x] != ins.nn:
            self._skip(state)

    def _op_se_reg(self, state, ins, rng):
        """5xy0 - Skip next instruction if Vx == Vy."""
        if state.v[ins.x] == state.v[ins.y]:
            self._skip(state)

    def _op_sne_reg(self, state, ins, rng):
        """9xy0 - Skip next instruction if Vx != Vy."""
        if state.v[ins.x] != state.v[ins.y]:
            self._skip(state)

    def _op_skp(self, state, ins, rng):
        """Ex9E - Skip next instruction if key Vx is pressed."""
        if state.keyboard[self._key_index(state, ins.x)]:
            self._skip(state)

    def _op_sknp(self, state, ins, rng):
        """ExA1 - Skip next instruction if key Vx is not pressed."""
        if not state.keyboard[self._key_index(state, ins.x)]:
            self._skip(state)

    # =========================================================================
    # Register Loads and Arithmetic
    # =========================================================================

    def _op_ld_byte(self, state, ins, rng):
        """6xnn - Vx = nn."""
        state.v[ins.x] = ins.nn

    def _op_add_byte(self, state, ins, rng):
        """7xnn - Vx = Vx + nn, wrapping. VF is not touched."""
        state.set_register(ins.x, state.v[ins.x] + ins.nn)

    def _op_ld_reg(self, state, ins, rng):
        """8xy0 - Vx = Vy."""
        state.v[ins.x] = state.v[ins.y]

    def _op_or(self, state, ins, rng):
        """8xy1 - Vx |= Vy."""
        state.v[ins.x] |= state.v[ins.y]

    def _op_and(self, state, ins, rng):
        """8xy2 - Vx &= Vy."""
        state.v[ins.x] &= state.v[ins.y]

    def _op_xor(self, state, ins, rng):
        """8xy3 - Vx ^= Vy."""
        state.v[ins.x] ^= state.v[ins.y]

    def _op_add_reg(self, state, ins, rng):
        """8xy4 - Vx = Vx + Vy, VF = carry."""
        total = state.v[ins.x] + state.v[ins.y]
        state.set_register(ins.x, total)
        state.set_flag(total > 0xFF)

    def _op_sub(self, state, ins, rng):
        """8xy5 - Vx = Vx - Vy, VF = NOT borrow."""
        vx, vy = state.v[ins.x], state.v[ins.y]
        state.set_register(ins.x, vx - vy)
        state.set_flag(vx >= vy)

    def _op_shr(self, state, ins, rng):
        """8xy6 - Vx >>= 1, VF = bit shifted out."""
        vx = state.v[ins.x]
        state.v[ins.x] = vx >> 1
        state.set_flag(vx & 0x01)

    def _op_subn(self, state, ins, rng):
        """8xy7 - Vy = Vy - Vx, VF = NOT borrow.

        The result lands in Vy, not Vx.
        """
        vx, vy = state.v[ins.x], state.v[ins.y]
        state.set_register(ins.y, vy - vx)
        state.set_flag(vy >= vx)

    def _op_shl(self, state, ins, rng):
        """8xyE - Vx <<= 1 (wrapping), VF = bit shifted out."""
        vx = state.v[ins.x]
        state.set_register(ins.x, vx << 1)
        state.set_flag((vx >> 7) & 0x01)

    def _op_rnd(self, state, ins, rng):
        """Cxnn - Vx = random byte AND nn."""
        state.v[ins.x] = rng.randrange(256) & ins.nn

    # =========================================================================
    # Index Register and Memory
    # =========================================================================

    def _op_ld_i(self, state, ins, rng):
        """Annn - I = nnn."""
        state.i = ins.nnn

    def _op_add_i_vx(self, state, ins, rng):
        """Fx1E - I = I + Vx, wrapping at 16 bits."""
        state.i = (state.i + state.v[ins.x]) & 0xFFFF

    def _op_ld_f_vx(self, state, ins, rng):
        """Fx29 - I = address of the font glyph for Vx."""
        state.i = state.v[ins.x] * FONT_GLYPH_SIZE

    def _op_ld_b_vx(self, state, ins, rng):
        """Fx33 - Store BCD of Vx at I, I+1, I+2.

        Raises:
            MemoryOutOfBounds: If I..I+2 is outside memory
        """
        value = state.v[ins.x]
        state.write_range(state.i, bytes([value // 100, (value // 10) % 10, value % 10]))

    def _op_ld_mem_vx(self, state, ins, rng):
        """Fx55 - Store V0..Vx at I..I+x. I is unchanged.

        Raises:
            MemoryOutOfBounds: If I..I+x is outside memory
        """
        state.write_range(state.i, bytes(state.v[:ins.x + 1]))

    def _op_ld_vx_mem(self, state, ins, rng):
        """Fx65 - Load V0..Vx from I..I+x. I is unchanged.

        Raises:
            MemoryOutOfBounds: If I..I+x is outside memory
        """
        state.v[:ins.x + 1] = state.read_range(state.i, ins.x + 1)

    # =========================================================================
    # Display
    # =========================================================================

    def _op_drw(self, state, ins, rng):
        """Dxyn - Draw n-row sprite from memory[I] at (Vx, Vy), VF = collision.

        Raises:
            MemoryOutOfBounds: If I..I+n-1 is outside memory
        """
        rows = state.read_range(state.i, ins.n)
        x, y = state.v[ins.x], state.v[ins.y]
        state.set_flag(False)
        state.set_flag(state.display.draw_sprite(x, y, rows))

    # =========================================================================
    # Timers and Keypad
    # =========================================================================

    def _op_ld_vx_dt(self, state, ins, rng):
        """Fx07 - Vx = delay timer."""
        state.v[ins.x] = state.delay_timer

    def _op_ld_dt_vx(self, state, ins, rng):
        """Fx15 - delay timer = Vx."""
        state.delay_timer = state.v[ins.x]

    def _op_ld_st_vx(self, state, ins, rng):
        """Fx18 - sound timer = Vx."""
        state.sound_timer = state.v[ins.x]

    def _op_ld_vx_k(self, state, ins, rng):
        """Fx0A - Wait for a key press, store its index in Vx.

        Keys are scanned in ascending order and the first pressed one
        wins. With no key pressed PC is rewound onto this instruction,
        so the next step executes it again.
        """
        for idx, pressed in enumerate(state.keyboard):
            if pressed:
                state.v[ins.x] = idx
                return
        state.pc = (state.pc - 2) & 0xFFFF

    # =========================================================================
    # Special
    # =========================================================================

    def _op_invalid(self, state, ins, rng):
        """Undefined instruction word.

        Raises:
            UnimplementedOpcode: Always
        """
        raise UnimplementedOpcode(ins.opcode, (state.pc - 2) & 0xFFFF)

    # =========================================================================
    # Helper Methods
    # =========================================================================

    def _skip(self, state: MachineState) -> None:
        """Skip the instruction following the current one."""
        state.pc = (state.pc + 2) & 0xFFFF

    def _key_index(self, state: MachineState, reg: int) -> int:
        """Key index held in V[reg].

        Raises:
            InvalidKey: If the register value is not a keypad index
        """
        key = state.v[reg]
        if key >= KEY_COUNT:
            raise InvalidKey(f"Key index 0x{key:02X} in V{reg:X} is out of range")
        return key


# Singleton registry instance
_registry: Optional[InstructionRegistry] = None


def get_registry() -> InstructionRegistry:
    """Get the singleton instruction registry instance.

    Returns:
        The frozen InstructionRegistry instance
    """
    global _registry
    if _registry is None:
        _registry = InstructionRegistry()
    return _registry
