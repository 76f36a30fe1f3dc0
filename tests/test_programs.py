"""Integration tests for example programs."""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest
from chip8_cpu import Chip8CPU, assemble
from chip8_cpu.state import FONTSET

PROGRAMS_DIR = Path(__file__).parent.parent / "programs"


def load_example(cpu, name):
    source = (PROGRAMS_DIR / f"{name}.asm").read_text()
    return cpu.load_program(source)


@pytest.fixture
def cpu():
    return Chip8CPU(seed=0)


class TestHexDigitsProgram:
    """Test hex_digits.asm - draws all 16 font glyphs."""

    def test_all_glyph_pixels_lit(self, cpu):
        """Glyphs do not overlap, so every font bit becomes one lit pixel."""
        load_example(cpu, "hex_digits")
        cpu.run(200)
        expected = sum(bin(byte).count("1") for byte in FONTSET)
        assert sum(cpu.get_display()) == expected
        assert cpu.get_register(0xF) == 0

    def test_glyph_positions(self, cpu):
        load_example(cpu, "hex_digits")
        cpu.run(200)
        display = cpu.get_display()
        # Glyph 0 top row 0xF0 at (0, 0); glyph 8 top row 0xF0 at (0, 8)
        assert display[0:5] == (True, True, True, True, False)
        assert display[8 * 64:8 * 64 + 4] == (True,) * 4
        # Glyph 1 top row is 0x20
        assert display[8:12] == (False, False, True, False)

    def test_ends_in_idle_loop(self, cpu):
        load_example(cpu, "hex_digits")
        cpu.run(200)
        pc = cpu.get_pc()
        cpu.run(4)
        assert cpu.get_pc() == pc
        assert cpu.get_register(0) == 16


class TestBcdProgram:
    """Test bcd.asm - BCD conversion of 234."""

    def test_digits_in_memory(self, cpu):
        load_example(cpu, "bcd")
        cpu.run(20)
        assert cpu.read_memory(0x21E, 3) == bytes([2, 3, 4])

    def test_digits_loaded_into_registers(self, cpu):
        load_example(cpu, "bcd")
        cpu.run(20)
        regs = cpu.dump_registers()
        assert (regs["V0"], regs["V1"], regs["V2"]) == (2, 3, 4)
        assert regs["V4"] == 20
        # Last LD F, V2 points I at glyph 4
        assert cpu.get_index() == 4 * 5

    def test_digit_glyphs_drawn(self, cpu):
        load_example(cpu, "bcd")
        cpu.run(20)
        display = cpu.get_display()
        # Top rows: "2" is 0xF0, "3" is 0xF0, "4" is 0x90
        assert display[10 * 64 + 10:10 * 64 + 14] == (True,) * 4
        assert display[10 * 64 + 15:10 * 64 + 19] == (True,) * 4
        assert display[10 * 64 + 20:10 * 64 + 24] == (True, False, False, True)


class TestSubroutineProgram:
    """Test subroutine.asm - nested CALL/RET."""

    def test_doubling(self, cpu):
        load_example(cpu, "subroutine")
        cpu.run(20)
        assert cpu.get_register(0) == 8
        assert cpu.get_stack() == []

    def test_call_pushes_return_address(self, cpu):
        load_example(cpu, "subroutine")
        cpu.run(2)
        assert cpu.get_stack() == [0x204]


class TestKeyWaitProgram:
    """Test keywait.asm - blocking key input."""

    def test_blocks_without_key(self, cpu):
        load_example(cpu, "keywait")
        cpu.run(50)
        assert cpu.get_pc() == 0x200
        assert not any(cpu.get_display())

    def test_draws_pressed_key(self, cpu):
        load_example(cpu, "keywait")
        cpu.run(10)
        cpu.set_key(0xB, True)
        cpu.run(10)
        assert cpu.get_register(0) == 0xB
        display = cpu.get_display()
        # Glyph B top row is 0xE0
        assert display[12 * 64 + 28:12 * 64 + 32] == (True, True, True, False)


class TestCountdownProgram:
    """Test countdown.asm - delay timer driven by frames."""

    def test_timer_after_ten_frames(self, cpu):
        load_example(cpu, "countdown")
        cpu.run_frames(10)
        assert cpu.get_delay_timer() == 20
        assert cpu.get_register(2) == 0

    def test_completes_after_timer_expires(self, cpu):
        load_example(cpu, "countdown")
        cpu.run_frames(40)
        assert cpu.get_delay_timer() == 0
        assert cpu.get_register(2) == 0xFF


class TestWrapProgram:
    """Test wrap.asm - sprite wraparound at the screen edges."""

    def test_bar_wraps_to_all_corners(self, cpu):
        load_example(cpu, "wrap")
        cpu.run(10)
        display = cpu.get_display()
        assert sum(display) == 16
        for y in (31, 0):
            for x in (60, 61, 62, 63, 0, 1, 2, 3):
                assert display[y * 64 + x] is True
        assert cpu.get_register(0xF) == 0


class TestRomFiles:
    """Test loading assembled programs from ROM files."""

    def test_rom_matches_source(self, cpu, tmp_path):
        source = (PROGRAMS_DIR / "subroutine.asm").read_text()
        rom_path = tmp_path / "subroutine.ch8"
        rom_path.write_bytes(assemble(source))

        assert cpu.load_rom(rom_path) == len(assemble(source))
        cpu.run(20)
        assert cpu.get_register(0) == 8

    @pytest.mark.parametrize("name", sorted(p.stem for p in PROGRAMS_DIR.glob("*.asm")))
    def test_every_example_assembles(self, name):
        image = assemble((PROGRAMS_DIR / f"{name}.asm").read_text())
        assert 0 < len(image) <= 3584
