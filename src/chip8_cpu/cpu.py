"""Chip8CPU: Main orchestrator for the CHIP-8 virtual machine.

This module implements the full execution pipeline:
    MEMORY -> FETCH -> DECODE -> KEY -> REGISTRY -> EXECUTE -> STATE

The CPU owns all machine state. Callers drive it: several step() calls
per rendered frame, then one tick_timers() call per frame at a fixed
external rate (conventionally 60 Hz). The core has no clock of its own.
"""

import logging
import random
from collections import deque
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Deque, Dict, List, Optional, Tuple, Union

from .assembler import assemble
from .decode import DecodeResult, decode
from .errors import Chip8Error, InvalidKey, LoadTooLarge, MachineHalted
from .registry import InstructionRegistry, get_registry
from .state import (
    KEY_COUNT, MAX_PROGRAM_SIZE, PROGRAM_START, MachineState, create_initial_state,
)

logger = logging.getLogger(__name__)

DEFAULT_STEPS_PER_FRAME = 5
DEFAULT_MAX_TRACE = 1000


@dataclass
class ExecutionTraceEntry:
    """Single entry in the execution trace.

    Captures complete state of one fetch-decode-execute cycle
    for auditability and debugging.

    Attributes:
        cycle: Cycle count after the instruction completed
        address: Address the instruction was fetched from
        opcode: Raw instruction word (None if the fetch itself failed)
        decode_result: Result from the decoder (None if the fetch failed)
        pre_state: State snapshot before execution (None when tracing is off)
        post_state: State snapshot after execution (None when tracing is off)
        error: Error message if execution failed
    """
    cycle: int
    address: int
    opcode: Optional[int]
    decode_result: Optional[DecodeResult]
    pre_state: Optional[dict]
    post_state: Optional[dict]
    error: Optional[str] = None

    @property
    def mnemonic(self) -> str:
        if self.decode_result is None:
            return "<FETCH FAILED>"
        return self.decode_result.mnemonic


class Chip8CPU:
    """CHIP-8 virtual CPU.

    Attributes:
        registry: InstructionRegistry with verified primitives
        rng: Random source used by the RND instruction
        trace_enabled: Whether step() records trace entries
        trace: Bounded list of recorded trace entries
        on_sound_end: Called when the sound timer ticks from 1 to 0
    """

    def __init__(
        self,
        rng: Optional[random.Random] = None,
        seed: Optional[int] = None,
        trace: bool = False,
        max_trace: int = DEFAULT_MAX_TRACE,
        on_sound_end: Optional[Callable[[], None]] = None,
    ):
        """Initialize the CPU in its power-on state.

        Args:
            rng: Random generator for RND (takes precedence over seed)
            seed: Seed for a private random generator
            trace: Record an ExecutionTraceEntry for every step
            max_trace: Maximum number of trace entries kept
            on_sound_end: Hook invoked when the sound timer reaches 0
        """
        self.registry: InstructionRegistry = get_registry()
        self.rng = rng if rng is not None else random.Random(seed)
        self.trace_enabled = trace
        self.trace: Deque[ExecutionTraceEntry] = deque(maxlen=max_trace)
        self.on_sound_end = on_sound_end
        self._state: MachineState = create_initial_state()

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def reset(self) -> None:
        """Return the machine to its freshly constructed state."""
        self._state = create_initial_state()
        self.trace.clear()
        logger.debug("Machine reset")

    def load(self, data: Union[bytes, bytearray, List[int]]) -> None:
        """Copy a program image into memory at PROGRAM_START.

        PC and registers are left untouched.

        Args:
            data: Raw program bytes

        Raises:
            LoadTooLarge: If data exceeds MAX_PROGRAM_SIZE (nothing is written)
        """
        data = bytes(data)
        if len(data) > MAX_PROGRAM_SIZE:
            raise LoadTooLarge(len(data), MAX_PROGRAM_SIZE)
        self._state.write_range(PROGRAM_START, data)
        logger.debug("Loaded %d bytes at 0x%03X", len(data), PROGRAM_START)

    def load_program(self, source: str) -> bytes:
        """Assemble source code and load the result.

        Args:
            source: Assembly source code

        Returns:
            The assembled program image
        """
        image = assemble(source)
        self.load(image)
        return image

    def load_rom(self, path: Union[str, Path]) -> int:
        """Load a ROM file.

        Returns:
            Number of bytes loaded
        """
        data = Path(path).read_bytes()
        self.load(data)
        return len(data)

    # =========================================================================
    # Input and Timers
    # =========================================================================

    def set_key(self, index: int, pressed: bool) -> None:
        """Set the pressed state of keypad key `index`.

        Raises:
            InvalidKey: If index is not in 0x0-0xF
        """
        if not isinstance(index, int) or not 0 <= index < KEY_COUNT:
            raise InvalidKey(f"Keyboard index must be in 0..{KEY_COUNT - 1}, got {index!r}")
        self._state.keyboard[index] = bool(pressed)

    def tick_timers(self) -> None:
        """Decrement the delay and sound timers by one, flooring at zero."""
        state = self._state
        if state.delay_timer > 0:
            state.delay_timer -= 1
        if state.sound_timer > 0:
            state.sound_timer -= 1
            if state.sound_timer == 0:
                logger.debug("Sound timer expired")
                if self.on_sound_end is not None:
                    self.on_sound_end()

    # =========================================================================
    # Execution
    # =========================================================================

    def step(self) -> ExecutionTraceEntry:
        """Execute a single instruction cycle.

        Performs: FETCH -> DECODE -> EXECUTE

        Returns:
            ExecutionTraceEntry with full cycle information

        Raises:
            MachineHalted: If a previous step failed and no reset() followed
            Chip8Error: Any fatal condition met while executing; the
                machine is halted before the error propagates
        """
        state = self._state
        if state.halted:
            raise MachineHalted("CPU is halted; reset() before stepping again")

        address = state.pc
        pre_state = state.snapshot() if self.trace_enabled else None
        opcode = None
        decode_result = None
        try:
            # FETCH
            opcode = state.fetch()
            # DECODE
            decode_result = decode(opcode)
            # EXECUTE
            self.registry.execute(state, decode_result, self.rng)
        except Chip8Error as e:
            state.halted = True
            logger.error("Fatal error at 0x%03X: %s", address, e)
            self._record(ExecutionTraceEntry(
                cycle=state.cycle_count,
                address=address,
                opcode=opcode,
                decode_result=decode_result,
                pre_state=pre_state,
                post_state=self._post_snapshot(),
                error=str(e),
            ))
            raise

        logger.debug("0x%03X: %04X  %s", address, opcode, decode_result.mnemonic)
        return self._record(ExecutionTraceEntry(
            cycle=state.cycle_count,
            address=address,
            opcode=opcode,
            decode_result=decode_result,
            pre_state=pre_state,
            post_state=self._post_snapshot(),
        ))

    def run(self, cycles: int) -> List[ExecutionTraceEntry]:
        """Execute exactly `cycles` instructions.

        Returns:
            Trace entries of the executed instructions
        """
        return [self.step() for _ in range(cycles)]

    def run_frames(self, frames: int, steps_per_frame: int = DEFAULT_STEPS_PER_FRAME) -> None:
        """Drive the machine for a number of frames.

        Each frame executes `steps_per_frame` instructions followed by one
        timer tick. No rate limiting is applied.
        """
        for _ in range(frames):
            for _ in range(steps_per_frame):
                self.step()
            self.tick_timers()

    def _post_snapshot(self) -> Optional[dict]:
        return self._state.snapshot() if self.trace_enabled else None

    def _record(self, entry: ExecutionTraceEntry) -> ExecutionTraceEntry:
        if self.trace_enabled:
            self.trace.append(entry)
        return entry

    # =========================================================================
    # Read-only Accessors
    # =========================================================================

    def get_display(self) -> Tuple[bool, ...]:
        """Get an immutable snapshot of the 64x32 framebuffer (row-major)."""
        return self._state.display.snapshot()

    def render_display(self, on: str = "#", off: str = ".") -> str:
        """Render the framebuffer as text, one line per row."""
        return self._state.display.render(on=on, off=off)

    def get_register(self, index: int) -> int:
        """Get value of register V[index]."""
        return self._state.get_register(index)

    def dump_registers(self) -> Dict[str, int]:
        """Get all register values keyed V0-VF."""
        return self._state.dump_registers()

    def get_pc(self) -> int:
        return self._state.pc

    def get_index(self) -> int:
        return self._state.i

    def get_stack(self) -> List[int]:
        """Get the active return addresses, oldest first."""
        return list(self._state.stack[:self._state.sp])

    def get_delay_timer(self) -> int:
        return self._state.delay_timer

    def get_sound_timer(self) -> int:
        return self._state.sound_timer

    def get_keys(self) -> Tuple[bool, ...]:
        return tuple(self._state.keyboard)

    def read_memory(self, address: int, length: int = 1) -> bytes:
        """Read a copy of `length` bytes of memory starting at `address`.

        Raises:
            MemoryOutOfBounds: If the range is outside memory
        """
        return self._state.read_range(address, length)

    def get_cycle_count(self) -> int:
        return self._state.cycle_count

    def is_halted(self) -> bool:
        return self._state.halted

    def is_sound_active(self) -> bool:
        """True while the sound timer is non-zero."""
        return self._state.sound_timer > 0

    def snapshot(self, full: bool = False) -> dict:
        """Detached snapshot of the machine state.

        Args:
            full: Also include memory and display
        """
        return self._state.snapshot(full=full)

    # =========================================================================
    # Reporting
    # =========================================================================

    def print_trace(self) -> None:
        """Print execution trace in human-readable format."""
        print("=" * 70)
        print("CHIP8-CPU EXECUTION TRACE")
        print("=" * 70)

        for entry in self.trace:
            status = "OK" if not entry.error else f"ERROR: {entry.error}"
            opcode = f"{entry.opcode:04X}" if entry.opcode is not None else "----"
            print(f"\n[Cycle {entry.cycle}] 0x{entry.address:03X}: {opcode}  {entry.mnemonic}  {status}")

            # Show register changes
            pre_regs = entry.pre_state["registers"]
            post_regs = entry.post_state["registers"]
            changes = [
                f"V{idx:X}: {pre:02X} -> {post:02X}"
                for idx, (pre, post) in enumerate(zip(pre_regs, post_regs))
                if pre != post
            ]
            if entry.pre_state["i"] != entry.post_state["i"]:
                changes.append(f"I: {entry.pre_state['i']:03X} -> {entry.post_state['i']:03X}")
            if changes:
                print(f"  Changes: {', '.join(changes)}")

            # Show non-sequential PC change
            post_pc = entry.post_state["pc"]
            if post_pc != entry.address + 2:
                print(f"  PC: {entry.address:03X} -> {post_pc:03X}")

        print("\n" + "=" * 70)
        print("FINAL STATE")
        print("=" * 70)
        print(f"  {self._state}")

    def get_summary(self) -> Dict:
        """Get execution summary.

        Returns:
            Dictionary with execution statistics and final state
        """
        return {
            "cycles": self.get_cycle_count(),
            "halted": self.is_halted(),
            "registers": self.dump_registers(),
            "i": self.get_index(),
            "pc": self.get_pc(),
            "stack": self.get_stack(),
            "delay_timer": self.get_delay_timer(),
            "sound_timer": self.get_sound_timer(),
            "trace_length": len(self.trace),
            "errors": [e.error for e in self.trace if e.error],
        }
