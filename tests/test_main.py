"""Tests for the command line interface."""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest
from main import main

SHOW_KEY = "LD V0, K | LD F, V0 | DRW V1, V1, 5 | halt: JP halt"


def display_rows(out):
    return out.strip("\n").split("\n")[:5]


class TestArguments:
    """Test argument validation."""

    @pytest.mark.parametrize("argv", [
        ["--inline", "CLS", "--frames", "-1"],
        ["--inline", "CLS", "--steps-per-frame", "-3"],
        ["--inline", "CLS", "--keys", "G"],
        ["--inline", "CLS", "--keys", "p", "--qwerty"],
        ["--frames", "1"],
    ])
    def test_rejected(self, argv):
        with pytest.raises(SystemExit) as info:
            main(argv)
        assert info.value.code == 2

    def test_zero_frames(self, capsys):
        assert main(["--inline", "CLS", "--frames", "0", "--quiet"]) == 0
        assert set("".join(display_rows(capsys.readouterr().out))) == {"."}


class TestRun:
    """Test headless runs."""

    def test_hex_keys(self, capsys):
        assert main(["--inline", SHOW_KEY, "--keys", "7", "--frames", "2", "--quiet"]) == 0
        rows = display_rows(capsys.readouterr().out)
        # Glyph 7: 0xF0, 0x10
        assert rows[0].startswith("####.")
        assert rows[1].startswith("...#.")

    def test_qwerty_keys(self, capsys):
        """Keyboard "a" drives keypad 7."""
        assert main(["--inline", SHOW_KEY, "--keys", "a", "--qwerty",
                     "--frames", "2", "--quiet"]) == 0
        rows = display_rows(capsys.readouterr().out)
        assert rows[1].startswith("...#.")

    def test_execution_error_exit_code(self, capsys):
        assert main(["--inline", "DW 0x5121", "--quiet"]) == 1
        assert "Unimplemented opcode 0x5121" in capsys.readouterr().out

    def test_missing_rom(self, tmp_path, capsys):
        assert main(["--rom", str(tmp_path / "missing.ch8")]) == 1
        assert "not found" in capsys.readouterr().out
