"""
Keybinding parsing.

A keybinding is a space separated sequence of chords; a chord is a set of
keys joined with `+` that are held down together, e.g. "ctrl+k ctrl+s".
"""
from typing import List

PLAYWRIGHT_KEYS = {
    "cmd": "Meta",
    "ctrl": "Control",
    "shift": "Shift",
    "enter": "Enter",
    "escape": "Escape",
    "esc": "Escape",
    "right": "ArrowRight",
    "up": "ArrowUp",
    "down": "ArrowDown",
    "left": "ArrowLeft",
    "home": "Home",
}


def to_playwright_key(key: str) -> str:
    return PLAYWRIGHT_KEYS.get(key, key)


def parse_keybinding(keybinding: str) -> List[List[str]]:
    """Split a keybinding into chords of Playwright key names."""
    return [
        [to_playwright_key(key) for key in chord.split("+")]
        for chord in keybinding.split(" ")
        if chord
    ]
