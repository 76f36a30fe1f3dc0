"""Tests for the Chip8CPU orchestrator."""

import random
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest
from chip8_cpu import (
    Chip8CPU, InvalidKey, LoadTooLarge, MachineHalted, MemoryOutOfBounds,
    StackOverflow, StackUnderflow, UnimplementedOpcode,
)
from chip8_cpu.state import FONTSET, MAX_PROGRAM_SIZE


def words(*opcodes):
    """Program image from instruction words."""
    return b"".join(op.to_bytes(2, "big") for op in opcodes)


@pytest.fixture
def cpu():
    return Chip8CPU(seed=0)


class TestLifecycle:
    """Test construction, reset and load."""

    def test_power_on_state(self, cpu):
        assert cpu.get_pc() == 0x200
        assert cpu.get_index() == 0
        assert cpu.get_stack() == []
        assert all(v == 0 for v in cpu.dump_registers().values())
        assert cpu.read_memory(0, 80) == FONTSET
        assert cpu.get_display() == (False,) * 2048
        assert cpu.get_keys() == (False,) * 16
        assert cpu.is_halted() is False

    def test_reset_then_load_equals_fresh_load(self, cpu):
        rom = words(0x6012, 0xA000, 0xD015, 0x2300)
        cpu.load(rom)
        cpu.set_key(4, True)
        cpu.run(4)
        cpu.tick_timers()
        cpu.reset()
        cpu.load(rom)

        fresh = Chip8CPU()
        fresh.load(rom)
        assert cpu.snapshot(full=True) == fresh.snapshot(full=True)

    def test_reset_equals_construction(self, cpu):
        cpu.load(words(0x6005, 0xF015))
        cpu.run(2)
        cpu.reset()
        assert cpu.snapshot(full=True) == Chip8CPU().snapshot(full=True)

    def test_load_does_not_touch_pc_or_registers(self, cpu):
        cpu.load(words(0x6042, 0x1300))
        cpu.run(2)
        cpu.load(words(0x00E0))
        assert cpu.get_pc() == 0x300
        assert cpu.get_register(0) == 0x42

    def test_load_maximum_size(self, cpu):
        cpu.load(bytes([0xAB]) * MAX_PROGRAM_SIZE)
        assert cpu.read_memory(0xFFF) == b"\xAB"

    def test_load_too_large_writes_nothing(self, cpu):
        with pytest.raises(LoadTooLarge):
            cpu.load(bytes([0xAB]) * (MAX_PROGRAM_SIZE + 1))
        assert cpu.read_memory(0x200, 4) == bytes(4)
        assert cpu.is_halted() is False

    def test_load_too_large_is_value_error(self, cpu):
        with pytest.raises(ValueError):
            cpu.load(bytes(4096))

    def test_load_rom(self, cpu, tmp_path):
        rom_path = tmp_path / "test.ch8"
        rom_path.write_bytes(words(0x6A07))
        assert cpu.load_rom(rom_path) == 2
        cpu.step()
        assert cpu.get_register(0xA) == 7

    def test_load_program(self, cpu):
        image = cpu.load_program("LD V1, 0x20\nADD V1, 2")
        assert image == words(0x6120, 0x7102)
        cpu.run(2)
        assert cpu.get_register(1) == 0x22


class TestKeys:
    """Test key injection."""

    def test_set_and_release_key(self, cpu):
        cpu.set_key(0xF, True)
        assert cpu.get_keys()[0xF] is True
        cpu.set_key(0xF, False)
        assert cpu.get_keys()[0xF] is False

    @pytest.mark.parametrize("index", [-1, 16, 255])
    def test_invalid_key_index(self, cpu, index):
        with pytest.raises(InvalidKey):
            cpu.set_key(index, True)

    def test_skip_if_pressed_sees_key(self, cpu):
        cpu.load(words(0x6005, 0xE09E, 0x6101, 0x6202))
        cpu.set_key(5, True)
        cpu.run(3)
        assert cpu.get_register(1) == 0
        assert cpu.get_register(2) == 2

    def test_wait_for_key_blocks_until_pressed(self, cpu):
        """LD Vx, K re-executes until a key is supplied between steps."""
        cpu.load(words(0xF30A, 0x6101))
        for _ in range(5):
            cpu.step()
            assert cpu.get_pc() == 0x200
        cpu.set_key(9, True)
        cpu.step()
        assert cpu.get_register(3) == 9
        assert cpu.get_pc() == 0x202
        cpu.step()
        assert cpu.get_register(1) == 1


class TestTimers:
    """Test the timer subsystem."""

    def test_delay_timer_counts_down(self, cpu):
        cpu.load(words(0x6003, 0xF015, 0xF118))
        cpu.run(3)
        assert cpu.get_delay_timer() == 3
        cpu.tick_timers()
        assert cpu.get_delay_timer() == 2

    def test_timers_floor_at_zero(self, cpu):
        cpu.load(words(0x6002, 0xF015, 0xF018))
        cpu.run(3)
        for _ in range(10):
            cpu.tick_timers()
        assert cpu.get_delay_timer() == 0
        assert cpu.get_sound_timer() == 0

    def test_sound_end_hook(self):
        calls = []
        cpu = Chip8CPU(on_sound_end=lambda: calls.append(True))
        cpu.load(words(0x6002, 0xF018))
        cpu.run(2)
        assert cpu.is_sound_active() is True
        cpu.tick_timers()
        assert calls == []
        cpu.tick_timers()
        assert calls == [True]
        assert cpu.is_sound_active() is False
        cpu.tick_timers()
        assert calls == [True]

    def test_step_does_not_tick_timers(self, cpu):
        cpu.load(words(0x6009, 0xF015, 0x1204))
        cpu.run(10)
        assert cpu.get_delay_timer() == 9

    def test_run_frames(self, cpu):
        cpu.load(words(0x600A, 0xF015, 0x1204))
        cpu.run_frames(4, steps_per_frame=3)
        assert cpu.get_cycle_count() == 12
        assert cpu.get_delay_timer() == 6


class TestErrors:
    """Test fatal error propagation."""

    def test_unimplemented_opcode_halts(self, cpu):
        cpu.load(words(0x6001, 0x5121))
        cpu.step()
        with pytest.raises(UnimplementedOpcode) as info:
            cpu.step()
        assert info.value.address == 0x202
        assert cpu.is_halted() is True
        with pytest.raises(MachineHalted):
            cpu.step()

    def test_reset_clears_halt(self, cpu):
        cpu.load(words(0xFFFF))
        with pytest.raises(UnimplementedOpcode):
            cpu.step()
        cpu.reset()
        assert cpu.is_halted() is False
        cpu.load(words(0x6001))
        cpu.step()
        assert cpu.get_register(0) == 1

    def test_stack_overflow(self, cpu):
        cpu.load(words(0x2200))
        cpu.run(16)
        assert len(cpu.get_stack()) == 16
        with pytest.raises(StackOverflow):
            cpu.step()

    def test_stack_underflow(self, cpu):
        cpu.load(words(0x00EE))
        with pytest.raises(StackUnderflow):
            cpu.step()

    def test_fetch_past_end_of_memory(self, cpu):
        cpu.load(words(0x1FFF))
        cpu.step()
        with pytest.raises(MemoryOutOfBounds):
            cpu.step()
        assert cpu.is_halted() is True

    def test_errors_are_runtime_errors(self, cpu):
        cpu.load(words(0x00EE))
        with pytest.raises(RuntimeError):
            cpu.step()

    def test_error_recorded_in_trace(self):
        cpu = Chip8CPU(trace=True)
        cpu.load(words(0x6001, 0x00EE))
        cpu.step()
        with pytest.raises(StackUnderflow):
            cpu.step()
        assert len(cpu.trace) == 2
        assert cpu.trace[-1].error is not None
        assert cpu.get_summary()["errors"] == [cpu.trace[-1].error]


class TestDisplayAccess:
    """Test read-only display exposure."""

    def test_get_display_is_snapshot(self, cpu):
        cpu.load(words(0xA000, 0xD015))
        cpu.run(2)
        display = cpu.get_display()
        assert isinstance(display, tuple)
        assert display[0] is True
        with pytest.raises(TypeError):
            display[0] = False
        assert cpu.get_display()[0] is True

    def test_draw_twice_collision(self, cpu):
        cpu.load(words(0xA000, 0xD015, 0xD015))
        cpu.run(2)
        assert cpu.get_register(0xF) == 0
        cpu.step()
        assert cpu.get_register(0xF) == 1
        assert not any(cpu.get_display())

    def test_read_memory_returns_copy(self, cpu):
        data = cpu.read_memory(0, 5)
        assert isinstance(data, bytes)

    def test_render_display(self, cpu):
        cpu.load(words(0xA000, 0xD015))
        cpu.run(2)
        assert cpu.render_display().split("\n")[0].startswith("####.")


class TestRandomness:
    """Test injected random source."""

    def test_same_seed_same_values(self):
        program = words(0xC0FF, 0xC1FF, 0xC2FF)
        a, b = Chip8CPU(seed=42), Chip8CPU(seed=42)
        for cpu in (a, b):
            cpu.load(program)
            cpu.run(3)
        assert a.dump_registers() == b.dump_registers()

    def test_injected_generator(self):
        rng = random.Random(3)
        expected = random.Random(3).randrange(256) & 0xF0
        cpu = Chip8CPU(rng=rng)
        cpu.load(words(0xC5F0))
        cpu.step()
        assert cpu.get_register(5) == expected


class TestExecutionTrace:
    """Test execution trace functionality."""

    def test_step_returns_entry(self):
        cpu = Chip8CPU(trace=True)
        cpu.load(words(0x6A2B))
        entry = cpu.step()
        assert entry.address == 0x200
        assert entry.opcode == 0x6A2B
        assert entry.mnemonic == "LD VA, 0x2B"
        assert entry.pre_state["registers"][0xA] == 0
        assert entry.post_state["registers"][0xA] == 0x2B
        assert entry.cycle == 1

    def test_trace_disabled_by_default(self, cpu):
        cpu.load(words(0x6001))
        cpu.step()
        assert len(cpu.trace) == 0

    def test_untraced_step_skips_snapshots(self, cpu):
        """Without tracing, entries carry no state snapshots."""
        cpu.load(words(0x6A2B))
        entry = cpu.step()
        assert entry.mnemonic == "LD VA, 0x2B"
        assert entry.cycle == 1
        assert entry.pre_state is None
        assert entry.post_state is None

    def test_untraced_error_skips_snapshots(self, cpu):
        cpu.load(words(0x00EE))
        with pytest.raises(StackUnderflow):
            cpu.step()
        assert cpu.is_halted() is True
        assert len(cpu.trace) == 0

    def test_trace_is_bounded(self):
        cpu = Chip8CPU(trace=True, max_trace=5)
        cpu.load(words(0x1200))
        cpu.run(20)
        assert len(cpu.trace) == 5
        assert cpu.trace[-1].cycle == 20

    def test_print_trace(self, capsys):
        cpu = Chip8CPU(trace=True)
        cpu.load(words(0x6001, 0x1200))
        cpu.run(2)
        cpu.print_trace()
        out = capsys.readouterr().out
        assert "LD V0, 0x01" in out
        assert "V0: 00 -> 01" in out
        assert "FINAL STATE" in out

    def test_summary(self, cpu):
        cpu.load(words(0x6001, 0xA123))
        cpu.run(2)
        summary = cpu.get_summary()
        assert summary["cycles"] == 2
        assert summary["halted"] is False
        assert summary["registers"]["V0"] == 1
        assert summary["i"] == 0x123
        assert summary["pc"] == 0x204
