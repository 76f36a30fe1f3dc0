"""Framebuffer: 64x32 monochrome display with XOR sprite compositing.

Cells are stored row-major (index = x + WIDTH * y). The only mutations
are clear() and draw_sprite(); callers read the grid through snapshot(),
which returns an immutable tuple.
"""

from dataclasses import dataclass, field
from typing import Iterable, List, Tuple

SCREEN_WIDTH = 64
SCREEN_HEIGHT = 32
SCREEN_CELLS = SCREEN_WIDTH * SCREEN_HEIGHT


@dataclass
class Framebuffer:
    """Monochrome pixel grid.

    Attributes:
        cells: SCREEN_CELLS booleans, row-major
    """
    cells: List[bool] = field(default_factory=lambda: [False] * SCREEN_CELLS)

    def clear(self) -> None:
        """Turn every cell off."""
        self.cells = [False] * SCREEN_CELLS

    def get_pixel(self, x: int, y: int) -> bool:
        """Return the cell at (x, y); coordinates must be on screen.

        Raises:
            IndexError: If (x, y) lies outside the display
        """
        if not (0 <= x < SCREEN_WIDTH and 0 <= y < SCREEN_HEIGHT):
            raise IndexError(f"Pixel ({x}, {y}) is off screen")
        return self.cells[x + SCREEN_WIDTH * y]

    def draw_sprite(self, x: int, y: int, rows: Iterable[int]) -> bool:
        """XOR a sprite onto the display.

        Each row byte is drawn most-significant bit first. Coordinates of
        every set bit wrap around both display edges.

        Args:
            x: Column of the sprite's left edge
            y: Row of the sprite's top edge
            rows: Sprite bytes, one per row

        Returns:
            True if any set cell was turned off (collision)
        """
        collision = False
        for j, row in enumerate(rows):
            for k in range(8):
                if row & (0x80 >> k):
                    idx = (x + k) % SCREEN_WIDTH + SCREEN_WIDTH * ((y + j) % SCREEN_HEIGHT)
                    collision |= self.cells[idx]
                    self.cells[idx] = not self.cells[idx]
        return collision

    def snapshot(self) -> Tuple[bool, ...]:
        """Immutable copy of all cells."""
        return tuple(self.cells)

    def lit_count(self) -> int:
        return sum(self.cells)

    def render(self, on: str = "#", off: str = ".") -> str:
        return render_cells(self.cells, on=on, off=off)


def render_cells(cells, on: str = "#", off: str = ".") -> str:
    """Render a row-major cell sequence as text, one line per display row."""
    lines = []
    for row in range(SCREEN_HEIGHT):
        start = row * SCREEN_WIDTH
        lines.append("".join(on if c else off for c in cells[start:start + SCREEN_WIDTH]))
    return "\n".join(lines)
