#!/usr/bin/env python3
# tests/test_engine.py - Unit tests for the IBus side of engine.py

import logging
import os
import sys
import time
from unittest.mock import MagicMock

import pytest

# Add src directory to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

pytest.importorskip('gi')

try:
    import engine
    from gi.repository import IBus
except (ImportError, ValueError) as e:
    pytest.skip(f'IBus / Gtk typelibs are not available: {e}', allow_module_level=True)

from key_action import RELEASE_MASK, SHIFT_MASK


class TestLoadLoggingLevel:
    """Test suite for load_logging_level()"""

    @pytest.fixture(autouse=True)
    def restore_level(self):
        root = logging.getLogger()
        level = root.level
        yield
        root.setLevel(level)

    def test_known_level(self):
        """A recognized name sets the root logger level"""
        assert engine.load_logging_level({'logging_level': 'DEBUG'}) == 'DEBUG'
        assert logging.getLogger().level == logging.DEBUG

    def test_unknown_level_falls_back_to_warning(self):
        """Unknown names and missing keys give WARNING"""
        assert engine.load_logging_level({'logging_level': 'LOUD'}) == 'WARNING'
        assert engine.load_logging_level({}) == 'WARNING'
        assert logging.getLogger().level == logging.WARNING


class TestCursorWindow:
    """Test suite for CursorWindow"""

    def test_window_follows_cursor(self):
        """Without a drag the window sits below the cursor"""
        window = engine.CursorWindow()
        window.set_cursor_location(100, 200, 2, 18)
        assert window.get_location_on_screen() == (100, 218)

    def test_drag_is_kept_until_cursor_moves(self):
        """A dragged position stays until the cursor location changes"""
        window = engine.CursorWindow()
        window.set_cursor_location(100, 200, 2, 18)
        window.update_popup_window(300, 400)
        window.set_cursor_location(100, 200, 2, 18)
        assert window.get_location_on_screen() == (300, 400)
        window.set_cursor_location(120, 200, 2, 18)
        assert window.get_location_on_screen() == (120, 218)


class TestEngineHost:
    """Test suite for EngineHost with a mocked IBus engine"""

    @pytest.fixture
    def ibus_engine(self):
        return MagicMock()

    @pytest.fixture
    def host(self, ibus_engine):
        return engine.EngineHost(ibus_engine)

    def test_commit_text(self, host, ibus_engine):
        """Commits go to IBus and are remembered"""
        host.commit_text('日本')
        ibus_engine.commit_text.assert_called_once()
        assert ibus_engine.commit_text.call_args[0][0].get_text() == '日本'
        assert host.get_last_committed_text() == '日本'

    def test_send_key_event_press_and_release(self, host, ibus_engine):
        """A press is forwarded together with its release"""
        host.send_key_event('Left', SHIFT_MASK)
        keyval = IBus.keyval_from_name('Left')
        assert [c.args for c in ibus_engine.forward_key_event.call_args_list] == [
            (keyval, 0, SHIFT_MASK), (keyval, 0, SHIFT_MASK | RELEASE_MASK)]

    def test_send_key_event_release_only(self, host, ibus_engine):
        """A release is forwarded once"""
        host.send_key_event('Left', RELEASE_MASK)
        assert ibus_engine.forward_key_event.call_count == 1

    def test_send_unknown_key(self, host, ibus_engine):
        """Unknown key names are not forwarded"""
        host.send_key_event('NoSuchKeyName', 0)
        ibus_engine.forward_key_event.assert_not_called()

    def test_call_command_date(self, host):
        """The date command formats the current time"""
        assert host.call_command('date', '%Y') == time.strftime('%Y')

    def test_call_command_unknown(self, host):
        """Unknown commands return None"""
        assert host.call_command('rm', '-rf') is None

    def test_get_active_text(self, host, ibus_engine):
        """The last characters before the cursor are returned"""
        text = MagicMock()
        text.get_text.return_value = 'hello world'
        ibus_engine.get_surrounding_text.return_value = (text, 5, 5)
        assert host.get_active_text(3) == 'llo'
        assert host.get_active_text(0) == ''

    def test_color_scheme(self, host):
        """set_color_scheme() records the scheme name"""
        host.set_color_scheme('dark')
        assert host.color_scheme == 'dark'
