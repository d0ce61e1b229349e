from composition import CARET_MARKER, LayoutEngine
from dictionary_engine import DictionaryInputEngine
from input_router import (
    PAGE_DOWN_BUTTON,
    PAGE_UP_BUTTON,
    InputPurpose,
    InputRouter,
    RouterPreferences,
)
from key_action import KeyActionRegistry, RELEASE_MASK
from keyboard import KeyboardSwitcher
from notification import OptionNotification, SchemaNotification
from theme import parse_theme
import util

import logging
import os
import time

import gi
gi.require_version('IBus', '1.0')
gi.require_version('Gtk', '3.0')
from gi.repository import Gio, GLib, Gtk, IBus
# http://lazka.github.io/pgi-docs/IBus-1.0/index.html

logger = logging.getLogger(__name__)

NAME_TO_LOGGING_LEVEL = {
    'DEBUG': logging.DEBUG,
    'INFO': logging.INFO,
    'WARNING': logging.WARNING,
    'ERROR': logging.ERROR,
    'CRITICAL': logging.CRITICAL,
}

INPUT_MODE_SYMBOLS = {False: '候', True: 'A'}

# IBus.InputPurpose → InputPurpose (same member names)
IBUS_PURPOSES = {getattr(IBus.InputPurpose, p.name): p for p in InputPurpose
                 if hasattr(IBus.InputPurpose, p.name)}


def load_logging_level(config):
    '''
    This function sets the logging level
    which can be obtained from the config.json
    When the value is not present (or incorrect) in config.json,
    warning is used as default.
    '''
    level = 'WARNING'
    if isinstance(config, dict) and 'logging_level' in config:
        level = config['logging_level']
    if level not in NAME_TO_LOGGING_LEVEL:
        logger.warning(f'Specified logging level {level} is not recognized. Using the default WARNING level.')
        level = 'WARNING'
    logger.info(f'logging_level: {level}')
    logging.getLogger().setLevel(NAME_TO_LOGGING_LEVEL[level])
    return level


class CursorWindow:
    '''
    Where the candidate window is shown. IBus places its panel at the
    cursor location; a drag moves the window away from it until the
    cursor moves again.
    '''

    def __init__(self):
        self.cursor = (0, 0, 0, 0)
        self.position = None

    def set_cursor_location(self, x, y, w, h):
        if (x, y, w, h) != self.cursor:
            self.position = None
        self.cursor = (x, y, w, h)

    def get_location_on_screen(self):
        if self.position is not None:
            return self.position
        x, y, w, h = self.cursor
        return x, y + h

    def update_popup_window(self, x, y):
        self.position = (x, y)


class EngineHost:
    '''
    The IBus side of the input router: commits, forwarded keys, the preedit,
    the auxiliary text and the lookup table all go through EngineKouho.
    '''

    def __init__(self, engine):
        self._engine = engine
        self.last_committed_text = ''
        self.color_scheme = ''

    def commit_text(self, text):
        logger.debug(f'commit_text("{text}")')
        self.last_committed_text = text
        self._engine.commit_text(IBus.Text.new_from_string(text))

    def send_key_event(self, code, mask):
        keyval = IBus.keyval_from_name(code)
        if keyval == IBus.KEY_VoidSymbol:
            logger.warning(f'send_key_event(): unknown key name "{code}"')
            return
        self._engine.forward_key_event(keyval, 0, mask)
        if not mask & RELEASE_MASK:
            self._engine.forward_key_event(keyval, 0, mask | RELEASE_MASK)

    def show_composition(self, document, snapshot, primary_count):
        self._engine.show_composition(document, snapshot, primary_count)

    def set_candidates_view_shown(self, shown):
        self._engine.set_candidates_shown(shown)

    def select_liquid_keyboard(self, target):
        logger.debug(f'select_liquid_keyboard({target!r}): no symbol board under IBus')

    def recreate_input_view(self):
        self._engine.update_input_mode()

    def switch_to_next_ime(self):
        logger.info('switch_to_next_ime(): left to the IBus hotkey')

    def switch_to_prev_ime(self):
        logger.info('switch_to_prev_ime(): left to the IBus hotkey')

    def show_ime_picker(self):
        logger.info('show_ime_picker(): left to the IBus panel')

    def show_dialog(self, name):
        logger.info(f'show_dialog("{name}")')
        self.launch_settings()

    def launch_settings(self):
        uri = 'file://' + util.get_user_config_dir()
        try:
            Gio.AppInfo.launch_default_for_uri(uri, None)
        except GLib.Error as e:
            logger.error(f'Failed to open {uri}: {e}')

    def key_press_feedback(self, code):
        pass

    def paste_by_char(self):
        logger.debug('paste_by_char(): not supported under IBus')

    def set_color_scheme(self, name):
        logger.info(f'set_color_scheme("{name}")')
        self.color_scheme = name

    def call_command(self, command, arg):
        '''
        Commands returning text to commit.
            date  : time.strftime(arg), e.g. "%Y-%m-%d"
        '''
        if command == 'date':
            return time.strftime(arg or '%Y-%m-%d')
        logger.warning(f'Unknown command "{command}"')
        return None

    def get_active_text(self, mode):
        text, cursor_pos, _ = self._engine.get_surrounding_text()
        if text is None:
            return ''
        before = text.get_text()[:cursor_pos]
        return before[-mode:] if mode > 0 else ''

    def get_last_committed_text(self):
        return self.last_committed_text


class EngineKouho(IBus.Engine):
    '''
    http://lazka.github.io/pgi-docs/IBus-1.0/classes/Engine.html
    '''
    __gtype_name__ = 'EngineKouho'

    def __init__(self):
        super().__init__()
        self._config, _ = util.get_config_data()
        self._logging_level = load_logging_level(self._config)

        theme_name, theme_data = util.get_theme_data(self._config)
        self._theme = parse_theme(theme_data, theme_name)
        self._key_actions = KeyActionRegistry(self._theme.preset_keys)
        self._keyboards = KeyboardSwitcher(self._theme.preset_keyboards)

        self._input_engine = DictionaryInputEngine(
            dictionary_files=util.get_dictionary_files(self._config),
            page_size=self._config.get('page_size', 5),
            select_keys=self._config.get('select_keys', '1234567890'))
        self._window = CursorWindow()
        self._layout = LayoutEngine(
            self._theme.layout,
            engine=self._input_engine,
            window=self._window,
            key_actions=self._key_actions,
            keyboards=self._keyboards)
        self._host = EngineHost(self)
        self._router = InputRouter(
            self._host, self._input_engine, self._layout, self._key_actions, self._keyboards,
            RouterPreferences.from_config(self._config, horizontal=self._theme.layout.horizontal))
        self._router.on_create()
        self._subscription = self._input_engine.notifications.subscribe(self._notification_cb)

        self._purpose = InputPurpose.FREE_FORM
        self._candidates_shown = True
        self._primary_count = 0
        self._lookup_table = IBus.LookupTable.new(self._input_engine.page_size, 0, True, False)
        self._lookup_table.set_orientation(
            IBus.Orientation.HORIZONTAL if self._theme.layout.horizontal else IBus.Orientation.VERTICAL)
        self._about_dialog = None

        self._init_props()
        self.connect('set-cursor-location', self.set_cursor_location_cb)
        logger.debug(f'Engine init -- theme: {self._theme.name}')

    @property
    def router(self):
        return self._router

    def _init_props(self):
        '''
        Creates the GUI menu list (typically top-right corner).

        http://lazka.github.io/pgi-docs/IBus-1.0/classes/PropList.html
        '''
        self._prop_list = IBus.PropList()
        symbol = INPUT_MODE_SYMBOLS[self._input_engine.is_ascii_mode]
        self._input_mode_prop = IBus.Property(
            key='InputMode',
            prop_type=IBus.PropType.NORMAL,
            symbol=IBus.Text.new_from_string(symbol),
            label=IBus.Text.new_from_string(f'Input mode ({symbol})'),
            icon=None,
            tooltip=None,
            sensitive=True,
            visible=True,
            state=IBus.PropState.UNCHECKED,
            sub_props=None)
        self._prop_list.append(self._input_mode_prop)
        self._prop_list.append(IBus.Property(
            key='About',
            prop_type=IBus.PropType.NORMAL,
            label=IBus.Text.new_from_string('About Kouho...'),
            icon=None,
            tooltip=None,
            sensitive=True,
            visible=True,
            state=IBus.PropState.UNCHECKED,
            sub_props=None))

    def update_input_mode(self):
        symbol = INPUT_MODE_SYMBOLS[self._input_engine.is_ascii_mode]
        schema = self._router.schema_id
        label = f'Input mode ({symbol})' if not schema else f'Input mode ({symbol}, {schema})'
        self._input_mode_prop.set_symbol(IBus.Text.new_from_string(symbol))
        self._input_mode_prop.set_label(IBus.Text.new_from_string(label))
        self.update_property(self._input_mode_prop)

    def _notification_cb(self, notification):
        if isinstance(notification, OptionNotification) and notification.option == 'ascii_mode':
            self.update_input_mode()
        elif isinstance(notification, SchemaNotification):
            self.update_input_mode()

    # ─── Presentation ───────────────────────────────────────────────────

    def set_candidates_shown(self, shown):
        self._candidates_shown = shown
        if not shown:
            self.hide_lookup_table()

    def show_composition(self, document, snapshot, primary_count):
        '''
        Present one rendering: the preedit inline, the window document as
        auxiliary text and the remaining candidates in the lookup table.
        '''
        self._primary_count = primary_count
        if not snapshot.is_composing:
            self.hide_preedit_text()
            self.hide_auxiliary_text()
            self._lookup_table.clear()
            self.hide_lookup_table()
            return

        composition = snapshot.composition
        preedit = composition.preedit.replace(CARET_MARKER, '')
        marker = composition.preedit.find(CARET_MARKER)
        cursor = marker if marker >= 0 else len(preedit)
        text = IBus.Text.new_from_string(preedit)
        attrs = IBus.AttrList()
        attrs.append(IBus.Attribute.new(IBus.AttrType.UNDERLINE, IBus.AttrUnderline.SINGLE, 0, len(preedit)))
        text.set_attributes(attrs)
        self.update_preedit_text(text, cursor, True)

        if document is not None and len(document):
            aux = ' '.join(line for line in document.lines() if line.strip())
            self.update_auxiliary_text(IBus.Text.new_from_string(aux), True)
        else:
            self.hide_auxiliary_text()

        self._lookup_table.clear()
        rest = snapshot.candidates[primary_count:]
        for candidate in rest:
            label = candidate.text + (candidate.comment if candidate.comment and self._layout.show_comment else '')
            self._lookup_table.append_candidate(IBus.Text.new_from_string(label))
        for i, select_label in enumerate(snapshot.select_labels[primary_count:]):
            self._lookup_table.set_label(i, IBus.Text.new_from_string(select_label))
        highlighted = snapshot.highlighted_index - primary_count
        if 0 <= highlighted < len(rest):
            self._lookup_table.set_cursor_pos(highlighted)
        self.update_lookup_table(self._lookup_table, self._candidates_shown and bool(rest))

    # ─── IBus callbacks ─────────────────────────────────────────────────

    def do_process_key_event(self, keyval, keycode, state):
        name = IBus.keyval_name(keyval)
        if not name:
            return False
        if state & IBus.ModifierType.RELEASE_MASK:
            consumed = self._router.need_send_up_key
            self._router.track_modifiers(name, int(state) & ~RELEASE_MASK, released=True)
            self._router.on_release(name, int(state) & ~RELEASE_MASK)
            self._router.need_send_up_key = False
            return consumed
        return self._router.on_hardware_key(name, int(state))

    def do_candidate_clicked(self, index, button, state):
        absolute = self._primary_count + index
        logger.debug(f'candidate_clicked({index}, {button}) -> {absolute}')
        if button == 3:
            self._router.on_candidate_long_clicked(absolute)
        else:
            self._router.on_candidate_pressed(absolute)

    def do_page_up(self):
        self._router.on_candidate_symbol_pressed(PAGE_UP_BUTTON)
        return True

    def do_page_down(self):
        self._router.on_candidate_symbol_pressed(PAGE_DOWN_BUTTON)
        return True

    def do_cursor_up(self):
        self._router.on_key('Up', 0)
        return True

    def do_cursor_down(self):
        self._router.on_key('Down', 0)
        return True

    def do_focus_in(self):
        self.register_properties(self._prop_list)
        self._router.on_start_input(self._purpose)
        # Request the initial surrounding-text for command arguments.
        self.get_surrounding_text()

    def do_focus_out(self):
        self._input_engine.clear_composition()
        self._router.update_composing()

    def do_reset(self):
        self._input_engine.clear_composition()
        self._router.update_composing()

    def do_set_content_type(self, purpose, hints):
        self._purpose = IBUS_PURPOSES.get(purpose, InputPurpose.FREE_FORM)
        logger.debug(f'set_content_type({purpose}, {hints}) -> {self._purpose}')
        self._router.on_start_input(self._purpose, restarting=True)

    def do_property_activate(self, prop_name, state):
        logger.info(f'property_activate({prop_name}, {state})')
        if prop_name == 'InputMode':
            self._input_engine.toggle_option('ascii_mode')
        elif prop_name == 'About':
            if self._about_dialog:
                self._about_dialog.present()
                return
            dialog = Gtk.AboutDialog()
            dialog.set_program_name('Kouho')
            dialog.set_logo_icon_name(util.get_package_name())
            dialog.set_version(util.get_version())
            dialog.set_comments('config files location : ' + os.path.join('${HOME}', '.config', util.get_package_name()))
            dialog.connect('response', self.about_response_callback)
            self._about_dialog = dialog
            dialog.show()

    def about_response_callback(self, dialog, response):
        dialog.destroy()
        self._about_dialog = None

    def set_cursor_location_cb(self, engine, x, y, w, h):
        logger.debug(f'set_cursor_location_cb({x}, {y}, {w}, {h})')
        self._window.set_cursor_location(x, y, w, h)

    def do_destroy(self):
        self._subscription.cancel()
        self._router.on_destroy()
        IBus.Engine.do_destroy(self)
