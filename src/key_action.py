#!/usr/bin/env python3
"""
key_action.py - Key actions bound to buttons and keys
ボタンやキーに割り当てられるキーアクション

A key action is what a soft key or a window button "does": send a key,
commit a literal string, type a sequence, toggle an engine option, switch
the keyboard, run a command, ...

Actions are declared in the theme under "preset_keys":

    "preset_keys": {
      "Page_Down":   {"label": "▶", "send": "Page_Down"},
      "Mode_switch": {"label": "中", "send": "Mode_switch", "toggle": "ascii_mode",
                      "states": ["中", "英"]},
      "Keyboard_number": {"label": "123", "send": "Eisu_toggle", "select": "number"},
      "Smile": {"label": "☺", "commit": "☺"}
    }

Names that are not presets are parsed as keys: "a", "space", "{Control+a}".
プリセットにない名前はキーとして解釈される。

Modifier masks use the same bit values as IBus.ModifierType so that states
coming from IBus can be passed through unchanged.
"""

import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)

SHIFT_MASK = 1 << 0
LOCK_MASK = 1 << 1
CONTROL_MASK = 1 << 2
MOD1_MASK = 1 << 3       # Alt
MOD2_MASK = 1 << 4       # NumLock
SUPER_MASK = 1 << 26
RELEASE_MASK = 1 << 30

MODIFIER_NAMES = {
    'Shift': SHIFT_MASK,
    'Lock': LOCK_MASK,
    'Control': CONTROL_MASK,
    'Alt': MOD1_MASK,
    'Super': SUPER_MASK,
}

# "send" values with a meaning beyond a plain key press
KEY_SWITCH_CHARSET = 'Mode_switch'      # toggle an engine option
KEY_EISU = 'Eisu_toggle'                # switch keyboard
KEY_LANGUAGE_SWITCH = 'LANGUAGE_SWITCH' # switch input method
KEY_FUNCTION = 'function'               # run a command
KEY_SETTINGS = 'SETTINGS'               # open a settings dialog
KEY_MENU = 'Menu'                       # open the schema menu


@dataclass(frozen=True)
class KeyAction:
    name: str = ''
    code: str = ''
    mask: int = 0
    label: str = ''
    shift_label: str = ''
    text: str = ''
    commit: str = ''
    toggle: str = ''
    states: tuple = ()
    select: str = ''
    command: str = ''
    option: str = ''

    def get_label(self, keyboard=None, option_lookup=None):
        """
        Return the label to show for this action on the given keyboard.
        指定されたキーボードで表示するラベルを返す。

        Toggle actions with "states" show the state of their option; shifted
        keyboards prefer shift_label; otherwise label, then the key name.

        Args:
            keyboard: keyboard.Keyboard or None
            option_lookup: callable(option_name) -> bool, used for toggles

        Returns:
            str
        """
        if self.toggle and len(self.states) >= 2 and option_lookup is not None:
            return self.states[1 if option_lookup(self.toggle) else 0]
        if keyboard is not None and keyboard.is_shifted and self.shift_label:
            return self.shift_label
        if self.label:
            return self.label
        return self.code or self.name

    def get_text(self, keyboard=None):
        if keyboard is not None and keyboard.is_shifted and self.text and self.text.islower():
            return self.text.upper()
        return self.text


def parse_key(name):
    """
    Parse a key expression into (code, mask).

        "a"              → ("a", 0)
        "{Control+a}"    → ("a", CONTROL_MASK)
        "Shift+Tab"      → ("Tab", SHIFT_MASK)
    """
    expr = name.strip()
    if len(expr) > 2 and expr.startswith('{') and expr.endswith('}'):
        expr = expr[1:-1]
    if len(expr) <= 1 or '+' not in expr:
        return expr, 0
    *modifiers, code = expr.split('+')
    mask = 0
    for modifier in modifiers:
        if modifier not in MODIFIER_NAMES:
            logger.debug(f'Unknown modifier "{modifier}" in key "{name}"; treating as plain key')
            return expr, 0
        mask |= MODIFIER_NAMES[modifier]
    return code, mask


class KeyActionRegistry:
    """
    Resolves action names (from window buttons, options, text) to KeyAction.
    アクション名から KeyAction を解決する。
    """

    def __init__(self, preset_keys=None):
        self._presets = preset_keys if isinstance(preset_keys, dict) else {}
        self._cache = {}

    def get(self, name):
        if name in self._cache:
            return self._cache[name]
        preset = self._presets.get(name)
        if isinstance(preset, dict):
            action = self._from_preset(name, preset)
        else:
            if preset is not None:
                logger.warning(f'Preset key "{name}" is not an object; parsing it as a key')
            code, mask = parse_key(name)
            action = KeyAction(name=name, code=code, mask=mask, label=code)
        self._cache[name] = action
        return action

    @staticmethod
    def _from_preset(name, preset):
        code, mask = parse_key(str(preset.get('send', '')))
        states = preset.get('states', ())
        if not isinstance(states, (list, tuple)):
            states = ()
        return KeyAction(
            name=name,
            code=code,
            mask=mask,
            label=str(preset.get('label', '')),
            shift_label=str(preset.get('shift_label', '')),
            text=str(preset.get('text', '')),
            commit=str(preset.get('commit', '')),
            toggle=str(preset.get('toggle', '')),
            states=tuple(str(s) for s in states),
            select=str(preset.get('select', '')),
            command=str(preset.get('command', '')),
            option=str(preset.get('option', '')))
