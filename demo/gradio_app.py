"""CHIP8-CPU Interactive Demo.

A Gradio web interface for running and visualizing CHIP8-CPU execution.

Usage:
    cd /path/to/chip8-cpu
    python demo/gradio_app.py

Features:
    - Write assembly programs or upload a ROM image
    - Hold any of the 16 keypad keys (QWERTY layout) during the run
    - See the framebuffer after N frames
    - Step-by-step execution trace with disassembly
    - Final register and timer state
"""

import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import gradio as gr
from chip8_cpu import Chip8CPU, Chip8Error, AssemblerError
from chip8_cpu.keypad import KEYMAP, keys_from_string


PROGRAMS_DIR = Path(__file__).parent.parent / "programs"

# =============================================================================
# Example Programs
# =============================================================================

EXAMPLE_PROGRAMS = {
    path.stem.replace("_", " ").title(): path.read_text()
    for path in sorted(PROGRAMS_DIR.glob("*.asm"))
}
EXAMPLE_PROGRAMS["Custom"] = ""

# (label, value) pairs: keyboard key shown with the keypad key it drives
KEYPAD_CHOICES = [(f"{name.upper()} ({key:X})", name) for name, key in KEYMAP.items()]


# =============================================================================
# Execution Functions
# =============================================================================

def run_program(program: str, rom_bytes, held_keys: list, frames: int,
                steps_per_frame: int, seed: float) -> tuple:
    """Execute a program and return results.

    Args:
        program: Assembly source code (ignored when a ROM is uploaded)
        rom_bytes: Uploaded ROM contents, or None
        held_keys: Keyboard key names (see KEYMAP) held during the run
        frames: Frames to run
        steps_per_frame: Instructions per frame
        seed: Seed for the RND instruction

    Returns:
        Tuple of (display_text, summary_text, trace_text, registers_text)
    """
    if not rom_bytes and not program.strip():
        return "", "Error: No program provided", "", ""

    frames = int(frames)
    steps_per_frame = int(steps_per_frame)
    cpu = Chip8CPU(seed=int(seed or 0), trace=True, max_trace=frames * steps_per_frame)

    try:
        if rom_bytes:
            cpu.load(rom_bytes)
        else:
            cpu.load_program(program)
    except (AssemblerError, Chip8Error) as e:
        return "", f"Load error: {e}", "", ""

    for key in keys_from_string(",".join(held_keys or []), qwerty=True):
        cpu.set_key(key, True)

    try:
        cpu.run_frames(frames, steps_per_frame=steps_per_frame)
    except Chip8Error as e:
        error_msg = str(e)
    else:
        error_msg = None

    # Format summary
    summary = cpu.get_summary()
    summary_lines = [
        "EXECUTION SUMMARY",
        "=" * 40,
        f"Cycles: {summary['cycles']}",
        f"Halted: {'Yes' if summary['halted'] else 'No'}",
        f"Sound:  {'On' if cpu.is_sound_active() else 'Off'}",
    ]
    if error_msg:
        summary_lines.append(f"\nRuntime: {error_msg}")
    summary_text = "\n".join(summary_lines)

    # Format trace
    trace = list(cpu.trace)
    trace_lines = [
        "EXECUTION TRACE",
        "=" * 60,
    ]
    for entry in trace[-200:]:  # Limit to the last 200 entries
        opcode = f"{entry.opcode:04X}" if entry.opcode is not None else "----"
        line = f"[{entry.cycle:>6}] {entry.address:03X}: {opcode}  {entry.mnemonic}"
        if entry.error:
            line += f"   !! {entry.error}"
        trace_lines.append(line)
    if len(trace) > 200:
        trace_lines.insert(2, f"... ({len(trace) - 200} earlier entries)")
    trace_text = "\n".join(trace_lines)

    # Format registers
    reg_lines = [
        "FINAL REGISTERS",
        "=" * 30,
    ]
    for reg, value in summary["registers"].items():
        marker = " *" if value != 0 else ""
        reg_lines.append(f"  {reg}: 0x{value:02X} ({value:>3}){marker}")
    reg_lines.append("")
    reg_lines.append(f"  I:  0x{summary['i']:03X}")
    reg_lines.append(f"  PC: 0x{summary['pc']:03X}")
    reg_lines.append(f"  Stack: {' '.join(f'{a:03X}' for a in summary['stack']) or '-'}")
    reg_lines.append(f"  DT: {summary['delay_timer']}  ST: {summary['sound_timer']}")
    registers_text = "\n".join(reg_lines)

    display_text = cpu.render_display(on="█", off=" ")
    return display_text, summary_text, trace_text, registers_text


def load_example(example_name: str) -> str:
    """Load an example program."""
    return EXAMPLE_PROGRAMS.get(example_name, "")


# =============================================================================
# Gradio Interface
# =============================================================================

def create_demo():
    """Create and return the Gradio demo interface."""

    first_example = next(iter(EXAMPLE_PROGRAMS))

    with gr.Blocks(title="CHIP8-CPU Demo", theme=gr.themes.Soft()) as demo:
        gr.Markdown("""
        # CHIP8-CPU: CHIP-8 Virtual CPU

        Assemble a program (or upload a ROM), hold some keys, and run it for a
        number of frames. Each frame executes a fixed number of instructions
        followed by one 60 Hz timer tick.

        **Pipeline**: `fetch -> decode -> key -> verified_execute -> state`
        """)

        with gr.Row():
            with gr.Column(scale=2):
                # Program input
                gr.Markdown("### Program")

                example_dropdown = gr.Dropdown(
                    choices=list(EXAMPLE_PROGRAMS.keys()),
                    value=first_example,
                    label="Load Example"
                )

                program_input = gr.Textbox(
                    value=EXAMPLE_PROGRAMS[first_example],
                    label="Assembly Source",
                    lines=15,
                    placeholder="Enter assembly code here..."
                )

                rom_input = gr.File(
                    label="ROM Image (overrides source)",
                    type="binary"
                )

                # Settings
                gr.Markdown("### Settings")

                held_keys = gr.CheckboxGroup(
                    choices=KEYPAD_CHOICES,
                    label="Held Keys"
                )

                with gr.Row():
                    frames = gr.Slider(
                        minimum=1,
                        maximum=600,
                        value=60,
                        step=1,
                        label="Frames"
                    )
                    steps_per_frame = gr.Slider(
                        minimum=1,
                        maximum=50,
                        value=5,
                        step=1,
                        label="Steps per Frame"
                    )
                    seed = gr.Number(value=0, label="RND Seed", precision=0)

                run_button = gr.Button("Run Program", variant="primary")

            with gr.Column(scale=3):
                # Results
                display_output = gr.Textbox(
                    label="Display (64x32)",
                    lines=32,
                    max_lines=32,
                    interactive=False
                )
                with gr.Row():
                    summary_output = gr.Textbox(
                        label="Summary",
                        lines=8,
                        interactive=False
                    )
                    registers_output = gr.Textbox(
                        label="Final Registers",
                        lines=8,
                        interactive=False
                    )

                trace_output = gr.Textbox(
                    label="Execution Trace",
                    lines=20,
                    interactive=False
                )

        # ISA Reference
        with gr.Accordion("ISA Reference", open=False):
            gr.Markdown("""
            | Instruction | Opcode | Description |
            |-------------|--------|-------------|
            | `CLS` | `00E0` | Clear display |
            | `RET` | `00EE` | Return from subroutine |
            | `JP addr` | `1nnn` | Jump |
            | `CALL addr` | `2nnn` | Call subroutine |
            | `SE Vx, byte` / `SNE Vx, byte` | `3xnn` / `4xnn` | Skip if equal / not equal |
            | `SE Vx, Vy` / `SNE Vx, Vy` | `5xy0` / `9xy0` | Skip if registers equal / not equal |
            | `LD Vx, byte` / `ADD Vx, byte` | `6xnn` / `7xnn` | Load / add immediate |
            | `LD`/`OR`/`AND`/`XOR Vx, Vy` | `8xy0-3` | Register copy and logic |
            | `ADD Vx, Vy` / `SUB Vx, Vy` | `8xy4` / `8xy5` | Add with carry / subtract with borrow |
            | `SHR Vx` / `SHL Vx` | `8xy6` / `8xyE` | Shift, VF = bit shifted out |
            | `SUBN Vx, Vy` | `8xy7` | Vy = Vy - Vx |
            | `LD I, addr` / `JP V0, addr` | `Annn` / `Bnnn` | Set index / indexed jump |
            | `RND Vx, byte` | `Cxnn` | Random AND byte |
            | `DRW Vx, Vy, n` | `Dxyn` | XOR sprite, VF = collision |
            | `SKP Vx` / `SKNP Vx` | `Ex9E` / `ExA1` | Skip if key pressed / not pressed |
            | `LD Vx, DT` / `LD DT, Vx` / `LD ST, Vx` | `Fx07` / `Fx15` / `Fx18` | Timers |
            | `LD Vx, K` | `Fx0A` | Wait for key |
            | `ADD I, Vx` / `LD F, Vx` / `LD B, Vx` | `Fx1E` / `Fx29` / `Fx33` | Index arithmetic, glyph, BCD |
            | `LD [I], Vx` / `LD Vx, [I]` | `Fx55` / `Fx65` | Store / load V0..Vx |

            **Data**: `DB byte, ...` and `DW word, ...`. **Labels**: `name:`.
            **Comments**: `;` or `#`.
            """)

        # Event handlers
        example_dropdown.change(
            fn=load_example,
            inputs=[example_dropdown],
            outputs=[program_input]
        )

        run_button.click(
            fn=run_program,
            inputs=[program_input, rom_input, held_keys, frames, steps_per_frame, seed],
            outputs=[display_output, summary_output, trace_output, registers_output]
        )

    return demo


# =============================================================================
# Main
# =============================================================================

if __name__ == "__main__":
    demo = create_demo()
    demo.launch(
        share=False,
        server_name="0.0.0.0",
        server_port=7861,
        show_error=True
    )
