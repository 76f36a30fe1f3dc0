#!/usr/bin/env python3
"""CHIP8-CPU Command Line Interface.

Run CHIP-8 programs headless and print the resulting display.

Usage:
    python main.py --rom roms/IBM.ch8 --frames 120
    python main.py --inline "LD V0, 0xA | LD F, V0 | DRW V1, V1, 5"
"""

import argparse
import logging
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent / "src"))

from chip8_cpu import Chip8CPU, Chip8Error, AssemblerError
from chip8_cpu.keypad import keys_from_string


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="CHIP8-CPU: CHIP-8 Virtual CPU",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Run a ROM for two seconds of emulated time
    python main.py --rom roms/IBM.ch8 --frames 120

    # Run with full trace output
    python main.py --rom roms/IBM.ch8 --frames 10 --trace

    # Hold keys 1 and A down for the whole run
    python main.py --rom roms/keypad.ch8 --keys 1,A

    # Same keys named by their QWERTY position
    python main.py --rom roms/keypad.ch8 --keys 1,z --qwerty

    # Run inline assembly (separate lines with |)
    python main.py --inline "LD V0, 0xA | LD F, V0 | DRW V1, V1, 5 | loop: JP loop"
        """
    )

    parser.add_argument(
        "--rom", "-r",
        type=str,
        help="Path to ROM image (raw bytes loaded at 0x200)"
    )
    parser.add_argument(
        "--inline", "-i",
        type=str,
        help="Inline assembly (separate lines with |)"
    )
    parser.add_argument(
        "--frames", "-f",
        type=int,
        default=60,
        help="Frames to run; each frame is N steps plus one timer tick. Default: 60"
    )
    parser.add_argument(
        "--steps-per-frame",
        type=int,
        default=5,
        help="Instructions executed per frame. Default: 5"
    )
    parser.add_argument(
        "--keys", "-k",
        type=str,
        default="",
        help="Comma-separated hex keys held down during the run (e.g. 1,A)"
    )
    parser.add_argument(
        "--qwerty",
        action="store_true",
        help="Read --keys as keyboard keys (1234/QWER/ASDF/ZXCV layout)"
    )
    parser.add_argument(
        "--seed",
        type=int,
        help="Seed for the RND instruction"
    )
    parser.add_argument(
        "--trace", "-t",
        action="store_true",
        help="Print full execution trace"
    )
    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Minimal output (display only)"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging"
    )

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="[%(levelname)s] %(name)s: %(message)s",
    )

    # Validate arguments
    if not args.rom and not args.inline:
        parser.error("Either --rom or --inline is required")

    if args.frames < 0:
        parser.error("--frames must be 0 or greater")
    if args.steps_per_frame < 0:
        parser.error("--steps-per-frame must be 0 or greater")

    try:
        held_keys = keys_from_string(args.keys, qwerty=args.qwerty)
    except ValueError as e:
        parser.error(str(e))

    cpu = Chip8CPU(seed=args.seed, trace=args.trace, max_trace=args.frames * args.steps_per_frame)

    # Load program
    try:
        if args.rom:
            rom_path = Path(args.rom)
            if not rom_path.exists():
                print(f"Error: ROM file not found: {args.rom}")
                return 1
            size = cpu.load_rom(rom_path)
            if not args.quiet:
                print(f"Loaded ROM: {args.rom} ({size} bytes)")
        else:
            image = cpu.load_program(args.inline.replace("|", "\n"))
            if not args.quiet:
                print(f"Assembled inline program ({len(image)} bytes)")
    except (AssemblerError, Chip8Error) as e:
        print(f"Load error: {e}")
        return 1

    for key in held_keys:
        cpu.set_key(key, True)

    # Run
    if not args.quiet:
        print("-" * 64)
        print("Executing...")
        print("-" * 64)

    exit_code = 0
    try:
        cpu.run_frames(args.frames, steps_per_frame=args.steps_per_frame)
    except Chip8Error as e:
        print(f"Execution error: {e}")
        exit_code = 1

    # Output
    if args.trace:
        cpu.print_trace()
    print(cpu.render_display())
    if not args.quiet:
        print()
        summary = cpu.get_summary()
        print(f"Cycles: {summary['cycles']}")
        print(f"Halted: {summary['halted']}")
        print(f"PC: 0x{summary['pc']:03X}  I: 0x{summary['i']:03X}")
        print("Registers: " + " ".join(f"{k}={v:02X}" for k, v in summary["registers"].items()))
        print(f"Timers: DT={summary['delay_timer']} ST={summary['sound_timer']}")

    return exit_code


if __name__ == "__main__":
    sys.exit(main())
