#!/usr/bin/env python3
"""
input_router.py - Routes key, text and candidate events between the
keyboard, the input engine, the composition window and the host
キーボード・入力エンジン・編集ウィンドウ・ホストの間でイベントを振り分ける

================================================================================
WHERE EVENTS GO / イベントの行き先
================================================================================

    ┌────────────┐  on_event / on_key   ┌──────────────┐
    │  keyboard  │ ───────────────────► │              │ ──► InputEngine
    └────────────┘                      │              │     (process_key,
    ┌────────────┐  on_region_clicked   │ InputRouter  │      select_candidate)
    │  window    │ ───────────────────► │              │
    │ (Layout-   │ ◄─────────────────── │              │ ──► InputHost
    │  Engine)   │      update()        └──────┬───────┘     (commit_text,
    └────────────┘                             │              switch IME,
                                               │              dialogs, ...)
                        notifications          │
          InputEngine ─────────────────────────┘
          (schema changed / option changed)

Every path that changes the engine state ends in update_composing(), which
takes a fresh snapshot, re-renders the window and hands the result to the
host.

エンジンの状態を変える処理はすべて update_composing() で終わる。これは新しい
スナップショットを取り、ウィンドウを再描画し、結果をホストに渡す。

================================================================================
KEY ACTIONS / キーアクション
================================================================================

on_event() looks at what an action declares, in this order:
on_event() はアクションの宣言を以下の順で調べる:

    commit           → commit the literal text / 文字列を直接確定
    text             → on_text() (may contain {keys})
    Mode_switch      → toggle an engine option / オプション切替
    Eisu_toggle      → switch keyboard / キーボード切替
    LANGUAGE_SWITCH  → switch input method / 入力メソッド切替
    function         → run a command / コマンド実行
    SETTINGS         → open a dialog / ダイアログを開く
    Menu             → open the schema menu / スキーマメニュー
    anything else    → on_key()
================================================================================
"""

import enum
import logging
import re
from dataclasses import dataclass
from typing import Protocol

from document import CandidateClick, KeyClick
from key_action import (
    KEY_EISU,
    KEY_FUNCTION,
    KEY_LANGUAGE_SWITCH,
    KEY_MENU,
    KEY_SETTINGS,
    KEY_SWITCH_CHARSET,
    CONTROL_MASK,
    MOD1_MASK,
    MOD2_MASK,
    RELEASE_MASK,
    SHIFT_MASK,
    SUPER_MASK,
)
from notification import OptionNotification, SchemaNotification

logger = logging.getLogger(__name__)

# Symbols on the candidate strip
PAGE_UP_BUTTON = '◀'
PAGE_DOWN_BUTTON = '▶'
PAGE_EX_BUTTON = '▼'

# {Control+a}, {Escape}, ... at the start of the text
DELIMITER_PROPERTY_GROUP = re.compile(r'^(\{[^{}]+\}).*$')
# a run of plain characters, optionally introduced by {Escape}
DELIMITER_PROPERTY_KEY = re.compile(r'^((\{Escape\})?[^{}]+).*$')
# %s / %1$s ... %4$s in command arguments
ACTIVE_TEXT_ARG = re.compile(r'%(\d*)\$s')

DIGIT_KEYS = frozenset('0123456789')
SHIFT_SYMBOL_KEYS = frozenset((
    'grave', 'minus', 'equal', 'bracketleft', 'bracketright', 'backslash',
    'semicolon', 'apostrophe', 'slash', 'comma', 'period',
))

# physical modifier keys and the mask each one holds down
MODIFIER_KEYS = {
    'Shift_L': SHIFT_MASK, 'Shift_R': SHIFT_MASK,
    'Control_L': CONTROL_MASK, 'Control_R': CONTROL_MASK,
    'Alt_L': MOD1_MASK, 'Alt_R': MOD1_MASK,
    'Super_L': SUPER_MASK, 'Super_R': SUPER_MASK,
}
HELD_MODIFIERS = SHIFT_MASK | CONTROL_MASK | MOD1_MASK | SUPER_MASK


class InputPurpose(enum.Enum):
    """Purpose of the focused edit field (mirrors IBus.InputPurpose)."""
    FREE_FORM = 'free_form'
    ALPHA = 'alpha'
    DIGITS = 'digits'
    NUMBER = 'number'
    PHONE = 'phone'
    URL = 'url'
    EMAIL = 'email'
    NAME = 'name'
    PASSWORD = 'password'
    PIN = 'pin'
    TERMINAL = 'terminal'


NUMBER_PURPOSES = frozenset((InputPurpose.DIGITS, InputPurpose.NUMBER, InputPurpose.PHONE))
ASCII_PURPOSES = frozenset((InputPurpose.EMAIL, InputPurpose.PASSWORD, InputPurpose.PIN))


class InputEngine(Protocol):
    """The input engine as seen by the router (see dictionary_engine.py)."""
    notifications: object
    raw_input: str
    is_composing: bool
    is_ascii_mode: bool

    def get_context_snapshot(self): ...
    def process_key(self, code, mask): ...
    def get_commit_text(self): ...
    def commit_composition(self): ...
    def clear_composition(self): ...
    def move_cursor(self, position): ...
    def select_candidate(self, index): ...
    def delete_candidate(self, index): ...
    def toggle_option(self, name): ...
    def set_option(self, name, value): ...
    def get_option(self, name): ...
    def toggle_switch_option(self, index): ...
    def simulate_key_sequence(self, text): ...


class InputHost(Protocol):
    """The UI shell hosting the router (see engine.py)."""

    def commit_text(self, text): ...
    def send_key_event(self, code, mask): ...
    def show_composition(self, document, snapshot, primary_count): ...
    def set_candidates_view_shown(self, shown): ...
    def select_liquid_keyboard(self, target): ...
    def recreate_input_view(self): ...
    def switch_to_next_ime(self): ...
    def switch_to_prev_ime(self): ...
    def show_ime_picker(self): ...
    def show_dialog(self, name): ...
    def launch_settings(self): ...
    def key_press_feedback(self, code): ...
    def paste_by_char(self): ...
    def set_color_scheme(self, name): ...
    def call_command(self, command, arg): ...
    def get_active_text(self, mode): ...
    def get_last_committed_text(self): ...


@dataclass
class RouterPreferences:
    hook_candidate: bool = False
    hook_candidate_commit: bool = False
    hook_shift_space: bool = False
    hook_shift_num: bool = False
    hook_shift_symbol: bool = False
    soft_cursor: bool = True
    reset_ascii_mode: bool = True
    horizontal: bool = True

    @classmethod
    def from_config(cls, config, horizontal=True):
        section = config.get('keyboard', {}) if isinstance(config, dict) else {}
        if not isinstance(section, dict):
            logger.warning('"keyboard" preferences are not an object; using defaults')
            section = {}
        values = {}
        for name in cls.__dataclass_fields__:
            if name in section:
                if isinstance(section[name], bool):
                    values[name] = section[name]
                else:
                    logger.warning(f'Preference "keyboard.{name}" should be a boolean; ignoring')
        values['horizontal'] = horizontal
        return cls(**values)


class InputRouter:
    """
    Event hub between keyboard, input engine, composition window and host.
    キーボード・入力エンジン・編集ウィンドウ・ホストの間のイベントハブ。

    ============================================================================
    ATTRIBUTES / 属性
    ============================================================================

    need_send_up_key : bool
        True when the last key press went to the engine, so the matching
        release should go there too.
        直前のキー押下がエンジンに渡った場合 True（対応するリリースも渡す）。

    is_composable : bool
        Whether the focused field accepts composed text.
        フォーカス中の入力欄が変換入力を受け付けるか。

    should_update_option : bool
        When True, the next engine-handled release pushes soft_cursors and
        _horizontal to the engine. Cleared while a "_key_" option fires.
    ============================================================================
    """

    def __init__(self, host, engine, layout, key_actions, keyboards, preferences=None):
        self._host = host
        self._engine = engine
        self._layout = layout
        self._key_actions = key_actions
        self._keyboards = keyboards
        self._prefs = preferences or RouterPreferences()
        self._subscription = None
        self.need_send_up_key = False
        self.is_composable = False
        self.should_update_option = True
        self.schema_id = ''

        layout.on_region_click = self.on_region_clicked
        layout.on_refresh = self.update_composing

    @property
    def layout(self):
        return self._layout

    @property
    def preferences(self):
        return self._prefs

    # ─── Lifecycle ──────────────────────────────────────────────────────

    def on_create(self):
        """Subscribe to engine notifications; a second call is a no-op."""
        if self._subscription is not None:
            return
        self._subscription = self._engine.notifications.subscribe(self.handle_notification)
        logger.debug('on_create(): subscribed to engine notifications')

    def on_destroy(self):
        if self._subscription is None:
            return
        self._subscription.cancel()
        self._subscription = None
        logger.debug('on_destroy(): unsubscribed from engine notifications')

    def on_start_input(self, purpose, restarting=False, force_ascii=False):
        """
        Prepare for a newly focused edit field.
        新しくフォーカスされた入力欄の準備をする。

        Args:
            purpose: InputPurpose of the field, or None if unknown
            restarting: True if the same field is being re-focused
            force_ascii: True if the field asks for ASCII input only
        """
        self._host.select_liquid_keyboard(-1)
        if restarting:
            self._engine.clear_composition()
        self.is_composable = False

        if force_ascii:
            keyboard_type, force_ascii_mode = '.ascii', True
        elif purpose is None:
            logger.debug('on_start_input(): unknown input purpose, keeping the keyboard')
            return
        elif purpose in NUMBER_PURPOSES:
            keyboard_type, force_ascii_mode = 'number', True
        elif purpose in ASCII_PURPOSES:
            logger.info(f'on_start_input(): ascii-only purpose {purpose.value}')
            keyboard_type, force_ascii_mode = '.ascii', True
        else:
            keyboard_type, force_ascii_mode = None, False
            self.is_composable = True

        keyboard = self._keyboards.switch_keyboard(keyboard_type)
        if force_ascii_mode:
            if not self._engine.is_ascii_mode:
                self._engine.set_option('ascii_mode', True)
        elif self._prefs.reset_ascii_mode:
            if keyboard.reset_ascii_mode:
                if self._engine.is_ascii_mode != keyboard.ascii_mode:
                    self._engine.set_option('ascii_mode', keyboard.ascii_mode)
            elif self._engine.is_ascii_mode:
                self._engine.set_option('ascii_mode', False)
        self.update_composing()

    # ─── Rendering ──────────────────────────────────────────────────────

    def update_composing(self):
        """
        Re-render the window from a fresh engine snapshot and show it.

        Returns:
            int: the number of candidates shown in the window
        """
        snapshot = self._engine.get_context_snapshot()
        primary_count = self._layout.update(snapshot)
        document = self._layout.document if snapshot.is_composing else None
        self._host.show_composition(document, snapshot, primary_count)
        return primary_count

    def _commit_engine_text(self):
        text = self._engine.get_commit_text()
        if not text:
            return False
        self._host.commit_text(text)
        return True

    # ─── Notifications ──────────────────────────────────────────────────

    def handle_notification(self, notification):
        if isinstance(notification, SchemaNotification):
            logger.info(f'schema changed: {notification.schema_id}')
            self.schema_id = notification.schema_id
            self._host.recreate_input_view()
        elif isinstance(notification, OptionNotification):
            self._handle_option(notification.option, notification.value)
        else:
            logger.warning(f'Unknown notification: {notification!r}')
            return
        self.update_composing()

    def _handle_option(self, option, value):
        logger.debug(f'option changed: {option}={value}')
        if option == 'ascii_mode':
            self._keyboards.current_keyboard.current_ascii_mode = value
        elif option in ('_hide_bar', '_hide_candidate'):
            self._host.set_candidates_view_shown(self.is_composable and not value)
        elif option == '_hide_comment':
            self._layout.show_comment = not value
        elif option == '_liquid_keyboard':
            self._host.select_liquid_keyboard(0)
        elif option.startswith('_keyboard_') and len(option) > 10 and value:
            self._keyboards.switch_keyboard(option[10:])
        elif option.startswith('_key_') and len(option) > 5 and value:
            # the action may itself set options; don't push ours meanwhile
            self.should_update_option = False
            self.on_event(self._key_actions.get(option[5:]))
            self.should_update_option = True

    # ─── Keys ───────────────────────────────────────────────────────────

    def on_press(self, code):
        self._host.key_press_feedback(code)

    def on_release(self, code, mask=0):
        logger.debug(f'on_release({code}) need_send_up_key={self.need_send_up_key}')
        if not self.need_send_up_key:
            return
        if self.should_update_option:
            self._engine.set_option('soft_cursors', self._prefs.soft_cursor)
            self._engine.set_option('_horizontal', self._prefs.horizontal)
            self.should_update_option = False
        self._engine.process_key(code, mask | RELEASE_MASK)
        self._commit_engine_text()

    def _handle_key(self, code, mask):
        if not self._engine.process_key(code, mask):
            return False
        self.need_send_up_key = True
        self._commit_engine_text()
        self.update_composing()
        return True

    def on_hardware_key(self, code, mask=0):
        """
        A physical key press. Only the engine may consume it; otherwise the
        application receives the key unchanged.

        Returns:
            bool: True if the engine consumed the key
        """
        self.track_modifiers(code, mask)
        return self._handle_key(code, mask)

    def track_modifiers(self, code, mask, released=False):
        """
        Mirror the physical modifier state onto the current keyboard, so that
        window buttons clicked while Shift is held act as shifted keys.
        物理キーの修飾状態を現在のキーボードに反映する。

        mask is the state reported with the event, which does not yet include
        a modifier key's own press (or still includes its release).
        """
        held = mask & HELD_MODIFIERS
        bit = MODIFIER_KEYS.get(code, 0)
        if released:
            held &= ~bit
        else:
            held |= bit
        keyboard = self._keyboards.current_keyboard
        if keyboard.modifier != held:
            logger.debug(f'modifier state: {keyboard.modifier:#x} -> {held:#x}')
            keyboard.modifier = held

    def on_key(self, code, mask=0):
        """
        A soft key press (code is a key name such as "a", "space", "KP_1").
        ソフトキーの押下（code は "a"、"space"、"KP_1" などのキー名）。
        """
        if self._handle_key(code, mask):
            return
        self.need_send_up_key = False

        if mask in (0, SHIFT_MASK) and len(code) == 1 and code.isprintable():
            self._host.commit_text(code)
            return
        if code.startswith('KP_'):
            self._host.send_key_event(code, mask | MOD2_MASK)
            return
        self._host.send_key_event(code, mask)

    def on_event(self, action):
        if action is None:
            return
        keyboard = self._keyboards.current_keyboard
        if action.commit:
            self._host.commit_text(action.commit)
            return
        text = action.get_text(keyboard)
        if text:
            self.on_text(text)
            return

        code = action.code
        if code == KEY_SWITCH_CHARSET:
            self._engine.toggle_option(action.toggle)
            self._commit_engine_text()
        elif code == KEY_EISU:
            keyboard = self._keyboards.switch_keyboard(action.select)
            if self._engine.is_ascii_mode != keyboard.current_ascii_mode:
                self._engine.set_option('ascii_mode', keyboard.current_ascii_mode)
            self.update_composing()
        elif code == KEY_LANGUAGE_SWITCH:
            if action.select == '.next':
                self._host.switch_to_next_ime()
            elif action.select:
                self._host.switch_to_prev_ime()
            else:
                self._host.show_ime_picker()
        elif code == KEY_FUNCTION:
            self._run_command(action.command, action.option)
        elif code == KEY_SETTINGS:
            if action.option in ('theme', 'color', 'schema', 'sound'):
                self._host.show_dialog(action.option)
            else:
                self._host.launch_settings()
        elif code == KEY_MENU:
            self._host.show_dialog('enabled_schemas')
        else:
            self._on_plain_key(action, keyboard)

    def _on_plain_key(self, action, keyboard):
        code = action.code
        if action.mask == 0 and keyboard.is_only_shift_on:
            if code == 'space' and self._prefs.hook_shift_space:
                self.on_key(code, 0)
                return
            if code in DIGIT_KEYS and self._prefs.hook_shift_num:
                self.on_key(code, 0)
                return
            if code in SHIFT_SYMBOL_KEYS and self._prefs.hook_shift_symbol:
                self.on_key(code, 0)
                return
        self.on_key(code, keyboard.modifier if action.mask == 0 else action.mask)

    def _expand_command_arg(self, arg):
        """
        Expand the placeholders of a command argument:
            %s / %1$s  last committed text   直前に確定した文字列
            %2$s       raw input             入力中のコード
            %3$s       text before the caret (n chars, n from the first %N$s)
            %4$s       the same
        """
        if '%' not in arg:
            return arg
        match = ACTIVE_TEXT_ARG.search(arg)
        if match is None and '%s' not in arg:
            return arg
        mode = max(int(match.group(1) or 1), 1) if match else 1
        active_text = self._host.get_active_text(mode) or ''
        values = {
            '1': self._host.get_last_committed_text() or '',
            '2': self._engine.raw_input or '',
            '3': active_text,
            '4': active_text,
        }
        expanded = ACTIVE_TEXT_ARG.sub(lambda m: values.get(m.group(1) or '1', ''), arg)
        return expanded.replace('%s', values['1'])

    def _run_command(self, command, arg):
        arg = self._expand_command_arg(arg or '')
        logger.debug(f'_run_command({command!r}, {arg!r})')
        if command == 'liquid_keyboard':
            self._host.select_liquid_keyboard(arg)
        elif command == 'paste_by_char':
            self._host.paste_by_char()
        elif command == 'set_color_scheme':
            self._host.set_color_scheme(arg)
        else:
            result = self._host.call_command(command, arg)
            if result:
                self._host.commit_text(result)
                self.update_composing()

    def on_text(self, text):
        """
        Type a piece of text: plain runs go through the engine as key
        sequences, {property} groups are resolved as key actions.
        テキストを入力する。通常の文字列はキー列としてエンジンへ、{...} は
        キーアクションとして処理する。
        """
        if not text:
            return
        if not text[0].isascii() and self._engine.is_composing:
            self._engine.commit_composition()
            self._commit_engine_text()

        remaining = text
        while remaining:
            key_match = DELIMITER_PROPERTY_KEY.fullmatch(remaining)
            group_match = DELIMITER_PROPERTY_GROUP.fullmatch(remaining)
            if key_match:
                target = key_match.group(1)
                self._engine.simulate_key_sequence(target)
                if not self._commit_engine_text() and not self._engine.is_composing:
                    self._host.commit_text(target)
                self.update_composing()
            elif group_match:
                target = group_match.group(1)
                self.on_event(self._key_actions.get(target[1:-1]))
            else:
                target = remaining[0]
                self.on_event(self._key_actions.get(target))
            remaining = remaining[len(target):]
        self.need_send_up_key = False

    # ─── Candidates ─────────────────────────────────────────────────────

    def on_candidate_pressed(self, index):
        """
        Commit the pressed candidate.
        押された候補を確定する。

        When nothing is being composed, the candidate list shows the schema
        switches, so the index toggles a switch instead.
        変換中でない時、候補一覧はスキーマのスイッチを表示しているので、
        index はスイッチの切替になる。
        """
        self.on_press('')
        if not self._engine.is_composing:
            if index >= 0:
                self._engine.toggle_switch_option(index)
                self.update_composing()
        elif self._prefs.hook_candidate or index > 9:
            if self._engine.select_candidate(index):
                # selecting may leave a partial composition behind
                if self._prefs.hook_candidate_commit and self._engine.is_composing:
                    self._engine.commit_composition()
                self._commit_engine_text()
                self.update_composing()
        elif index == 9:
            self._handle_key('0', 0)
        else:
            self._handle_key(str(index + 1), 0)

    def on_candidate_long_clicked(self, index):
        self._engine.delete_candidate(index)
        self.update_composing()

    def on_candidate_symbol_pressed(self, arrow):
        if arrow == PAGE_UP_BUTTON:
            self.on_key('Page_Up', 0)
        elif arrow == PAGE_DOWN_BUTTON:
            self.on_key('Page_Down', 0)
        elif arrow == PAGE_EX_BUTTON:
            self._host.select_liquid_keyboard('candidate')
        else:
            logger.warning(f'Unknown candidate symbol {arrow!r}')

    def on_region_clicked(self, action):
        """Dispatch a click on a window region (candidate or button)."""
        match action:
            case CandidateClick(index=index):
                self.on_candidate_pressed(index)
            case KeyClick(action=key_action):
                self.on_press(key_action.code)
                self.on_event(key_action)
            case _:
                logger.debug(f'on_region_clicked(): nothing to do for {action!r}')
