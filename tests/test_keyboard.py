import pytest

from mmzzfs.keyboard import (
    HISTORY_SIZE,
    Keyboard,
    KeyCode,
    combine_keys,
    convert_key,
    is_function_key,
    translate_scancode,
)


def press(kb, *codes):
    for code in codes:
        kb.feed(code)


def test_translate_plain_and_shifted():
    assert translate_scancode(0x1E) == KeyCode.A_DOWN
    assert translate_scancode(0x9E) == KeyCode.A_UP
    assert translate_scancode(0x02) == KeyCode.DIGIT_1_DOWN
    assert translate_scancode(0x02, True) == KeyCode.BANG_DOWN
    assert translate_scancode(0x82, True) == KeyCode.BANG_UP


def test_translate_unknown_and_invalid():
    assert translate_scancode(0x00) is None
    assert translate_scancode(0x3B) is None
    with pytest.raises(ValueError):
        translate_scancode(0x100)


def test_convert_letters_and_digits():
    assert convert_key(KeyCode.Q_DOWN) == ord("q")
    assert convert_key(KeyCode.Q_DOWN | 0x8000) == ord("Q")
    assert convert_key(KeyCode.DIGIT_7_DOWN) == ord("7")
    assert convert_key(KeyCode.ENTER_DOWN) == ord("\n")
    assert convert_key(KeyCode.BACKSPACE_DOWN) == ord("\b")
    assert convert_key(KeyCode.BACKSLASH_DOWN) == ord("\\")


def test_convert_releases_and_silent_keys():
    assert convert_key(KeyCode.Q_UP) is None
    assert convert_key(KeyCode.CTRL_DOWN) is None
    assert convert_key(KeyCode.ESC_DOWN) is None


def test_function_keys():
    assert is_function_key(KeyCode.CTRL_C)
    assert not is_function_key(KeyCode.CTRL_BEGIN)
    assert not is_function_key(KeyCode.CTRL_END)
    assert convert_key(KeyCode.CTRL_C) == KeyCode.CTRL_C


def test_combine_keys():
    assert combine_keys(None, KeyCode.C_DOWN) == KeyCode.C_DOWN
    assert combine_keys(KeyCode.CTRL_DOWN, KeyCode.C_DOWN) == KeyCode.CTRL_C
    assert combine_keys(KeyCode.CTRL_DOWN, KeyCode.U_DOWN) == KeyCode.CTRL_U
    assert combine_keys(KeyCode.CTRL_DOWN, KeyCode.A_DOWN) == KeyCode.A_DOWN


def test_shift_makes_uppercase_and_symbols():
    kb = Keyboard()
    press(kb, 0x2A, 0x1E, 0x9E, 0x02, 0x82, 0xAA, 0x1E)
    assert kb.read(3) == b"A!a"
    assert kb.shift is False


def test_caps_lock_toggles():
    kb = Keyboard()
    press(kb, 0x3A, 0xBA, 0x1E)
    assert kb.caps_lock is True
    press(kb, 0x3A, 0xBA, 0x1E)
    assert kb.caps_lock is False
    assert kb.read(2) == b"Aa"


def test_ctrl_combination_queued():
    kb = Keyboard()
    press(kb, 0x1D, 0x2E)
    assert kb.ctrl is True
    assert kb.get() == KeyCode.CTRL_DOWN
    assert kb.get() == KeyCode.CTRL_C
    press(kb, 0x9D)
    assert kb.ctrl is False


def test_unknown_scancode_is_ignored():
    kb = Keyboard()
    assert kb.feed(0x3B) is None
    assert len(kb) == 0
    with pytest.raises(ValueError):
        kb.feed(-1)


def test_get_empty_raises():
    kb = Keyboard()
    with pytest.raises(IndexError):
        kb.get()


def test_capacity_drops_extra_keys():
    kb = Keyboard(capacity=2)
    press(kb, 0x1E, 0x30, 0x2E)
    assert len(kb) == 2
    assert kb.read(2) == b"ab"


def test_history_is_bounded():
    kb = Keyboard()
    for _ in range(HISTORY_SIZE + 10):
        kb.feed(0x1E)
    assert len(kb.history) == HISTORY_SIZE
    assert all(code == KeyCode.A_DOWN for code in kb.history)


def test_invalid_capacity():
    with pytest.raises(ValueError):
        Keyboard(capacity=0)