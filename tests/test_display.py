"""Tests for Framebuffer sprite compositing."""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest
from chip8_cpu.display import SCREEN_CELLS, SCREEN_HEIGHT, SCREEN_WIDTH, Framebuffer


@pytest.fixture
def fb():
    return Framebuffer()


class TestDrawSprite:
    """Test XOR blit and collision detection."""

    def test_draw_on_blank_no_collision(self, fb):
        """Drawing once on a blank region reports no collision."""
        assert fb.draw_sprite(10, 5, [0xF0]) is False
        assert [fb.get_pixel(x, 5) for x in range(10, 14)] == [True] * 4
        assert fb.get_pixel(14, 5) is False

    def test_draw_twice_erases_and_collides(self, fb):
        """Drawing the same sprite twice turns it off and reports collision."""
        sprite = [0xF0, 0x90, 0x90, 0x90, 0xF0]
        fb.draw_sprite(3, 7, sprite)
        assert fb.lit_count() == 14
        assert fb.draw_sprite(3, 7, sprite) is True
        assert fb.lit_count() == 0

    def test_partial_overlap(self, fb):
        """Only overlapping set bits toggle off; others turn on."""
        fb.draw_sprite(0, 0, [0x80])
        assert fb.draw_sprite(0, 0, [0xC0]) is True
        assert fb.get_pixel(0, 0) is False
        assert fb.get_pixel(1, 0) is True

    def test_zero_bits_do_not_touch_cells(self, fb):
        fb.draw_sprite(0, 0, [0xFF])
        assert fb.draw_sprite(0, 0, [0x00]) is False
        assert fb.lit_count() == 8

    def test_msb_is_leftmost(self, fb):
        fb.draw_sprite(20, 0, [0x01])
        assert fb.get_pixel(27, 0) is True
        assert fb.get_pixel(20, 0) is False

    def test_horizontal_wraparound(self, fb):
        """A row drawn at x=60 spills into columns 0-3."""
        fb.draw_sprite(60, 0, [0xFF])
        for x in (60, 61, 62, 63, 0, 1, 2, 3):
            assert fb.get_pixel(x, 0) is True
        assert fb.get_pixel(4, 0) is False
        assert fb.get_pixel(59, 0) is False

    def test_vertical_wraparound(self, fb):
        fb.draw_sprite(0, 30, [0x80, 0x80, 0x80, 0x80])
        assert [fb.get_pixel(0, y) for y in (30, 31, 0, 1)] == [True] * 4
        assert fb.get_pixel(0, 2) is False

    def test_coordinates_beyond_screen_wrap(self, fb):
        """Starting coordinates larger than the screen wrap as well."""
        fb.draw_sprite(64 + 5, 32 + 2, [0x80])
        assert fb.get_pixel(5, 2) is True

    def test_row_major_layout(self, fb):
        fb.draw_sprite(3, 2, [0x80])
        assert fb.cells[3 + SCREEN_WIDTH * 2] is True


class TestFramebufferAccess:
    """Test clear, snapshot and rendering."""

    def test_clear_is_idempotent(self, fb):
        fb.draw_sprite(0, 0, [0xFF, 0xFF])
        fb.clear()
        assert fb.lit_count() == 0
        fb.clear()
        assert fb.snapshot() == (False,) * SCREEN_CELLS

    def test_snapshot_is_immutable_copy(self, fb):
        snap = fb.snapshot()
        assert isinstance(snap, tuple)
        assert len(snap) == SCREEN_CELLS
        with pytest.raises(TypeError):
            snap[0] = True
        fb.draw_sprite(0, 0, [0x80])
        assert snap[0] is False

    def test_get_pixel_off_screen(self, fb):
        with pytest.raises(IndexError):
            fb.get_pixel(SCREEN_WIDTH, 0)
        with pytest.raises(IndexError):
            fb.get_pixel(0, SCREEN_HEIGHT)

    def test_render(self, fb):
        fb.draw_sprite(0, 0, [0xC0])
        lines = fb.render().split("\n")
        assert len(lines) == SCREEN_HEIGHT
        assert all(len(line) == SCREEN_WIDTH for line in lines)
        assert lines[0].startswith("##.")
        assert set(lines[1]) == {"."}
