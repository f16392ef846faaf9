"""Scan-code decoding and a buffered keyboard input queue."""

from __future__ import annotations

from collections import deque
from enum import IntEnum

UPPERCASE_FLAG = 0x8000
EXTENDED_PREFIX = 0xE0
HISTORY_SIZE = 56
DEFAULT_CAPACITY = 2048


def _down_up(name: str) -> list[str]:
    return [f"{name}_DOWN", f"{name}_UP"]


_CONTROLS = [
    "ESC", "BACKSPACE", "TAB", "CAPS_LOCK", "ENTER", "SHIFT",
    "CTRL", "LEFT", "RIGHT", "UP", "DOWN",
]
_DIGITS = [f"DIGIT_{d}" for d in "0123456789"]
_LETTERS = list("ABCDEFGHIJKLMNOPQRSTUVWXYZ")
_SYMBOLS = [
    ("TILDE", "~"), ("BACKTICK", "`"), ("BANG", "!"), ("AT", "@"),
    ("HASH", "#"), ("DOLLAR", "$"), ("MOD", "%"), ("CARET", "^"),
    ("AND", "&"), ("STAR", "*"), ("LEFT_PARENTHESIS", "("),
    ("RIGHT_PARENTHESIS", ")"), ("UNDERSCORE", "_"), ("SUB", "-"),
    ("ADD", "+"), ("EQU", "="), ("LEFT_CURLY_BRACE", "{"),
    ("LEFT_SQUARE_BRACKET", "["), ("RIGHT_CURLY_BRACE", "}"),
    ("RIGHT_SQUARE_BRACKET", "]"), ("OR", "|"), ("BACKSLASH", "\\"),
    ("COLON", ":"), ("SEMICOLON", ";"), ("DOUBLE_QUOTATION", '"'),
    ("SINGLE_QUOTATION", "'"), ("COMMA", ","), ("LESS", "<"),
    ("DOT", "."), ("GREAT", ">"), ("QUESTION", "?"),
    ("FORWARD_SLASH", "/"),
]


def _key_names() -> list[str]:
    names: list[str] = []
    for control in _CONTROLS:
        names += _down_up(control)
    names += [f"{d}_DOWN" for d in _DIGITS] + [f"{d}_UP" for d in _DIGITS]
    names += [f"{c}_DOWN" for c in _LETTERS] + [f"{c}_UP" for c in _LETTERS]
    names += _down_up("SPACE")
    for symbol, _ in _SYMBOLS:
        names += _down_up(symbol)
    names += ["CTRL_BEGIN", "CTRL_Z", "CTRL_C", "CTRL_L", "CTRL_U", "CTRL_END"]
    return names


KeyCode = IntEnum(  # type: ignore[misc]
    "KeyCode", [(name, value) for value, name in enumerate(_key_names())]
)
KeyCode.__doc__ = "Key codes: press and release events and control combinations."

# Scan codes of the key presses; releases are the same code with bit 7 set.
_PRESS_TABLE: dict[int, tuple[str, str]] = {
    0x01: ("ESC", "ESC"),
    0x02: ("DIGIT_1", "BANG"),
    0x03: ("DIGIT_2", "AT"),
    0x04: ("DIGIT_3", "HASH"),
    0x05: ("DIGIT_4", "DOLLAR"),
    0x06: ("DIGIT_5", "MOD"),
    0x07: ("DIGIT_6", "CARET"),
    0x08: ("DIGIT_7", "AND"),
    0x09: ("DIGIT_8", "STAR"),
    0x0A: ("DIGIT_9", "LEFT_PARENTHESIS"),
    0x0B: ("DIGIT_0", "RIGHT_PARENTHESIS"),
    0x0C: ("SUB", "UNDERSCORE"),
    0x0D: ("EQU", "ADD"),
    0x0E: ("BACKSPACE", "BACKSPACE"),
    0x0F: ("TAB", "TAB"),
    0x1A: ("LEFT_SQUARE_BRACKET", "LEFT_CURLY_BRACE"),
    0x1B: ("RIGHT_SQUARE_BRACKET", "RIGHT_CURLY_BRACE"),
    0x1C: ("ENTER", "ENTER"),
    0x1D: ("CTRL", "CTRL"),
    0x27: ("SEMICOLON", "COLON"),
    0x28: ("SINGLE_QUOTATION", "DOUBLE_QUOTATION"),
    0x29: ("BACKTICK", "TILDE"),
    0x2A: ("SHIFT", "SHIFT"),
    0x2B: ("BACKSLASH", "OR"),
    0x33: ("COMMA", "LESS"),
    0x34: ("DOT", "GREAT"),
    0x35: ("FORWARD_SLASH", "QUESTION"),
    0x36: ("SHIFT", "SHIFT"),
    0x39: ("SPACE", "SPACE"),
    0x3A: ("CAPS_LOCK", "CAPS_LOCK"),
}
for _start, _row in ((0x10, "QWERTYUIOP"), (0x1E, "ASDFGHJKL"), (0x2C, "ZXCVBNM")):
    for _offset, _letter in enumerate(_row):
        _PRESS_TABLE[_start + _offset] = (_letter, _letter)


def _build_table() -> dict[int, tuple[int, int]]:
    table: dict[int, tuple[int, int]] = {}
    for scancode, (normal, shifted) in _PRESS_TABLE.items():
        table[scancode] = (KeyCode[f"{normal}_DOWN"], KeyCode[f"{shifted}_DOWN"])
        table[scancode | 0x80] = (KeyCode[f"{normal}_UP"], KeyCode[f"{shifted}_UP"])
    return table


_SCANCODE_TABLE = _build_table()

_EXTENDED_TABLE = {
    0x46: KeyCode.L_DOWN,
    0xC6: KeyCode.L_UP,
    0x4D: KeyCode.R_DOWN,
    0xCD: KeyCode.R_UP,
    0x48: KeyCode.UP_DOWN,
    0xC8: KeyCode.UP_UP,
    0x50: KeyCode.DOWN_DOWN,
    0xD0: KeyCode.DOWN_UP,
}

_CHARACTERS = {KeyCode[f"{name}_DOWN"]: char for name, char in _SYMBOLS}
_CHARACTERS[KeyCode.SPACE_DOWN] = " "
_CHARACTERS[KeyCode.ENTER_DOWN] = "\n"
_CHARACTERS[KeyCode.BACKSPACE_DOWN] = "\b"

_CTRL_COMBINATIONS = {
    KeyCode.Z_DOWN: KeyCode.CTRL_Z,
    KeyCode.C_DOWN: KeyCode.CTRL_C,
    KeyCode.L_DOWN: KeyCode.CTRL_L,
    KeyCode.U_DOWN: KeyCode.CTRL_U,
}


def translate_scancode(scancode: int, shift: bool = False) -> int | None:
    """Look a plain scan code up; None when the code has no key."""
    if not 0 <= scancode <= 0xFF:
        raise ValueError(f"scan code {scancode} is not a byte")
    entry = _SCANCODE_TABLE.get(scancode)
    if entry is None:
        return None
    return entry[1 if shift else 0]


def is_function_key(key: int) -> bool:
    """Whether ``key`` is a control combination such as Ctrl+C."""
    return KeyCode.CTRL_BEGIN < key < KeyCode.CTRL_END


def combine_keys(code0: int | None, code1: int) -> int:
    """Combine a held modifier with a key into a function key, if one exists."""
    if code0 is None:
        return code1
    if code0 == KeyCode.CTRL_DOWN and code1 in _CTRL_COMBINATIONS:
        return _CTRL_COMBINATIONS[code1]
    return code1


def convert_key(code: int) -> int | None:
    """Turn a key code into a byte of input; None for releases and silent keys."""
    if is_function_key(code):
        return int(code)
    base = code & ~UPPERCASE_FLAG
    if KeyCode.A_DOWN <= base <= KeyCode.Z_DOWN:
        first = "A" if code & UPPERCASE_FLAG else "a"
        return ord(first) + base - KeyCode.A_DOWN
    if KeyCode.DIGIT_0_DOWN <= code <= KeyCode.DIGIT_9_DOWN:
        return ord("0") + code - KeyCode.DIGIT_0_DOWN
    char = _CHARACTERS.get(code)
    return ord(char) if char is not None else None


class Keyboard:
    """Decodes scan codes into key codes and buffers them for readers."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self.shift = False
        self.caps_lock = False
        self.ctrl = False
        self._extended = False
        self.history: deque[int] = deque(maxlen=HISTORY_SIZE)
        self._queue: deque[int] = deque()

    def __len__(self) -> int:
        return len(self._queue)

    def feed(self, scancode: int) -> int | None:
        """Process one scan code; return the decoded key code, if any."""
        if not 0 <= scancode <= 0xFF:
            raise ValueError(f"scan code {scancode} is not a byte")
        if scancode == EXTENDED_PREFIX:
            self._extended = True
            return None
        if self._extended:
            self._extended = False
            decoded = _EXTENDED_TABLE.get(scancode)
        else:
            decoded = translate_scancode(scancode, self.shift)
        if decoded is None:
            return None
        decoded = int(decoded)

        if decoded == KeyCode.SHIFT_DOWN:
            self.shift = True
        elif decoded == KeyCode.SHIFT_UP:
            self.shift = False
        if decoded == KeyCode.CAPS_LOCK_DOWN:
            self.caps_lock = not self.caps_lock
        if decoded == KeyCode.CTRL_DOWN:
            self.ctrl = True
        elif decoded == KeyCode.CTRL_UP:
            self.ctrl = False
        if (self.shift or self.caps_lock) and (
            KeyCode.A_DOWN <= decoded <= KeyCode.Z_DOWN
        ):
            decoded |= UPPERCASE_FLAG

        self.history.append(decoded)
        code = combine_keys(KeyCode.CTRL_DOWN if self.ctrl else None, decoded)
        if len(self._queue) < self.capacity:
            self._queue.append(int(code))
        return decoded

    def get(self) -> int:
        """Take the next raw key code; raises IndexError when none is buffered."""
        if not self._queue:
            raise IndexError("keyboard queue is empty")
        return self._queue.popleft()

    def read(self, count: int) -> bytes:
        """Read ``count`` converted bytes, skipping keys that produce none."""
        out = bytearray()
        while len(out) < count:
            byte = convert_key(self.get())
            if byte is not None:
                out.append(byte)
        return bytes(out)