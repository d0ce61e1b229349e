#!/usr/bin/env python3
# keyboard.py - Keyboard definitions and the switcher between them

import logging
from dataclasses import dataclass

from key_action import SHIFT_MASK

logger = logging.getLogger(__name__)

DEFAULT_KEYBOARD = 'default'
ASCII_KEYBOARD = '.ascii'


@dataclass
class Keyboard:
    """
    State of one keyboard (soft layout).

    ascii_mode is what the theme declares; current_ascii_mode follows the
    engine's ascii_mode option while this keyboard is active.
    """
    name: str = DEFAULT_KEYBOARD
    ascii_mode: bool = False
    reset_ascii_mode: bool = False
    current_ascii_mode: bool = False
    modifier: int = 0

    @property
    def is_shifted(self):
        return bool(self.modifier & SHIFT_MASK)

    @property
    def is_only_shift_on(self):
        return self.modifier == SHIFT_MASK


class KeyboardSwitcher:
    """
    Keeps the list of keyboards from the theme and the current one.
    テーマのキーボード一覧と現在のキーボードを保持する。

    Special targets:
        None / "" / ".default"  → the first keyboard ("default")
        ".ascii"                → the ascii keyboard if declared, else the
                                  default keyboard in ascii mode
        ".next" / ".prior"      → cycle through the declared keyboards
        ".last"                 → the previously active keyboard
    """

    def __init__(self, preset_keyboards=None):
        self._keyboards = {}
        if isinstance(preset_keyboards, dict):
            for name, data in preset_keyboards.items():
                if not isinstance(data, dict):
                    logger.warning(f'Keyboard "{name}" is not an object; skipping')
                    continue
                ascii_mode = bool(data.get('ascii_mode', False))
                self._keyboards[name] = Keyboard(
                    name=name,
                    ascii_mode=ascii_mode,
                    reset_ascii_mode=bool(data.get('reset_ascii_mode', False)),
                    current_ascii_mode=ascii_mode)
        if DEFAULT_KEYBOARD not in self._keyboards:
            self._keyboards = {DEFAULT_KEYBOARD: Keyboard(), **self._keyboards}
        self._names = list(self._keyboards)
        self._current = self._keyboards[DEFAULT_KEYBOARD]
        self._last = self._current

    @property
    def current_keyboard(self):
        return self._current

    @property
    def names(self):
        return list(self._names)

    def switch_keyboard(self, name=None):
        target = self._resolve(name)
        if target is not self._current:
            self._last = self._current
        self._current = target
        logger.debug(f'switch_keyboard({name!r}) -> {target.name}')
        return target

    def _resolve(self, name):
        if not name or name == '.default':
            return self._keyboards[DEFAULT_KEYBOARD]
        if name in self._keyboards:
            return self._keyboards[name]
        index = self._names.index(self._current.name)
        if name == '.next':
            return self._keyboards[self._names[(index + 1) % len(self._names)]]
        if name == '.prior':
            return self._keyboards[self._names[(index - 1) % len(self._names)]]
        if name == '.last':
            return self._last
        if name == ASCII_KEYBOARD:
            keyboard = self._keyboards[DEFAULT_KEYBOARD]
            keyboard.current_ascii_mode = True
            return keyboard
        logger.warning(f'Unknown keyboard "{name}"; using "{DEFAULT_KEYBOARD}"')
        return self._keyboards[DEFAULT_KEYBOARD]
