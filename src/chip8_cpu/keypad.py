"""Keypad mapping between a QWERTY keyboard and the 16-key hex keypad.

    Keyboard        Keypad
    1 2 3 4         1 2 3 C
    Q W E R   ->    4 5 6 D
    A S D F         7 8 9 E
    Z X C V         A 0 B F
"""

from typing import Dict, List, Optional

KEYMAP: Dict[str, int] = {
    "1": 0x1, "2": 0x2, "3": 0x3, "4": 0xC,
    "q": 0x4, "w": 0x5, "e": 0x6, "r": 0xD,
    "a": 0x7, "s": 0x8, "d": 0x9, "f": 0xE,
    "z": 0xA, "x": 0x0, "c": 0xB, "v": 0xF,
}


def convert_key(name: str) -> Optional[int]:
    """Keypad index for a keyboard key name, or None if unmapped."""
    return KEYMAP.get(name.lower())


def keys_from_string(text: str, qwerty: bool = False) -> List[int]:
    """Parse a comma-separated list of keys.

    By default entries are hex keypad indices, e.g. "1,a,F". With
    qwerty=True entries are keyboard key names looked up in KEYMAP,
    e.g. "q,w" for keypad 4 and 5.

    Raises:
        ValueError: If an entry is not a single hex digit (or mapped key)
    """
    keys = []
    for part in text.split(","):
        part = part.strip()
        if not part:
            continue
        if qwerty:
            key = convert_key(part)
            if key is None:
                raise ValueError(f"Unmapped keyboard key: {part!r}")
            keys.append(key)
        elif len(part) != 1 or part.upper() not in "0123456789ABCDEF":
            raise ValueError(f"Invalid keypad key: {part!r}")
        else:
            keys.append(int(part, 16))
    return keys
