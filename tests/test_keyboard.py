#!/usr/bin/env python3
# tests/test_keyboard.py - Unit tests for keyboard.py

import os
import sys

import pytest

# Add src directory to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from key_action import CONTROL_MASK, SHIFT_MASK
from keyboard import Keyboard, KeyboardSwitcher


class TestKeyboard:
    """Test suite for Keyboard modifier helpers"""

    def test_shift(self):
        """is_shifted / is_only_shift_on"""
        assert Keyboard(modifier=SHIFT_MASK).is_only_shift_on
        assert Keyboard(modifier=SHIFT_MASK | CONTROL_MASK).is_shifted
        assert not Keyboard(modifier=SHIFT_MASK | CONTROL_MASK).is_only_shift_on
        assert not Keyboard().is_shifted


class TestKeyboardSwitcher:
    """Test suite for KeyboardSwitcher.switch_keyboard()"""

    @pytest.fixture
    def switcher(self):
        return KeyboardSwitcher({
            'default': {'ascii_mode': False, 'reset_ascii_mode': True},
            'number': {'ascii_mode': True},
            'symbol': {},
            'broken': 3,
        })

    def test_initial_keyboard_is_default(self, switcher):
        """The switcher starts on "default" and skips invalid entries"""
        assert switcher.current_keyboard.name == 'default'
        assert switcher.names == ['default', 'number', 'symbol']

    def test_default_is_added_when_missing(self):
        """A theme without "default" still has one"""
        switcher = KeyboardSwitcher({'number': {}})
        assert switcher.names[0] == 'default'
        assert KeyboardSwitcher(None).current_keyboard.name == 'default'

    def test_switch_by_name(self, switcher):
        """A declared name selects that keyboard"""
        keyboard = switcher.switch_keyboard('number')
        assert keyboard.name == 'number'
        assert keyboard.ascii_mode is True
        assert switcher.current_keyboard is keyboard

    @pytest.mark.parametrize('target', [None, '', '.default'])
    def test_switch_to_default(self, switcher, target):
        """None, "" and ".default" select the default keyboard"""
        switcher.switch_keyboard('number')
        assert switcher.switch_keyboard(target).name == 'default'

    def test_next_and_prior_cycle(self, switcher):
        """.next / .prior walk through the declared order and wrap"""
        assert switcher.switch_keyboard('.next').name == 'number'
        assert switcher.switch_keyboard('.next').name == 'symbol'
        assert switcher.switch_keyboard('.next').name == 'default'
        assert switcher.switch_keyboard('.prior').name == 'symbol'

    def test_last(self, switcher):
        """.last returns to the previously active keyboard"""
        switcher.switch_keyboard('number')
        switcher.switch_keyboard('symbol')
        assert switcher.switch_keyboard('.last').name == 'number'

    def test_ascii(self, switcher):
        """.ascii is the default keyboard in ascii mode"""
        keyboard = switcher.switch_keyboard('.ascii')
        assert keyboard.name == 'default'
        assert keyboard.current_ascii_mode is True

    def test_unknown_name(self, switcher):
        """An unknown name falls back to the default keyboard"""
        switcher.switch_keyboard('number')
        assert switcher.switch_keyboard('nope').name == 'default'
