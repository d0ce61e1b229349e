#!/usr/bin/env python3
# tests/test_util.py - Unit tests for util.py

import pytest
import json
import os
import tempfile
import shutil
from unittest.mock import patch
import sys

# Add src directory to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

pytest.importorskip('gi')

import util


@pytest.fixture
def temp_dirs():
    """Create temporary directories for testing"""
    temp_home = tempfile.mkdtemp()
    temp_data = tempfile.mkdtemp()

    yield {
        'home': temp_home,
        'data': temp_data,
        'config_dir': os.path.join(temp_home, '.config', 'ibus-kouho'),
        'config_file': os.path.join(temp_home, '.config', 'ibus-kouho', 'config.json'),
        'default_config': os.path.join(temp_data, 'config.json')
    }

    # Cleanup
    shutil.rmtree(temp_home, ignore_errors=True)
    shutil.rmtree(temp_data, ignore_errors=True)


def write_json(path, data):
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(data, f, ensure_ascii=False)


class TestPaths:
    """Test suite for the installation path helpers"""

    def test_datadir_from_environment(self, temp_dirs):
        """IBUS_KOUHO_DATADIR overrides the data directory"""
        with patch.dict(os.environ, {'IBUS_KOUHO_DATADIR': temp_dirs['data']}):
            assert util.get_datadir() == temp_dirs['data']
            assert util.get_default_config_path() == temp_dirs['default_config']

    def test_default_datadir(self):
        """Without the variable the data directory is /opt/ibus-kouho"""
        with patch.dict(os.environ, clear=False):
            os.environ.pop('IBUS_KOUHO_DATADIR', None)
            assert util.get_datadir() == '/opt/ibus-kouho'

    def test_user_config_dir(self):
        """The user config directory is named after the package"""
        assert os.path.basename(util.get_user_config_dir()) == util.get_package_name()


class TestGetConfigData:
    """Test suite for get_config_data() function"""

    @pytest.fixture
    def default_config_data(self):
        """Sample default configuration"""
        return {
            "theme": "default",
            "dictionaries": ["system.json"],
            "page_size": 5,
            "select_keys": "1234567890",
            "logging_level": "WARNING",
            "keyboard": {
                "hook_candidate": False,
                "soft_cursor": True,
                "reset_ascii_mode": True
            }
        }

    def load(self, temp_dirs):
        with patch('util.get_user_config_dir', return_value=temp_dirs['config_dir']):
            with patch('util.get_default_config_path', return_value=temp_dirs['default_config']):
                return util.get_config_data()

    def test_no_warnings_when_config_exists_and_valid(self, temp_dirs, default_config_data):
        """Test that no warnings are returned when config exists and is valid"""
        write_json(temp_dirs['default_config'], default_config_data)
        write_json(temp_dirs['config_file'], default_config_data)

        config, warnings = self.load(temp_dirs)

        assert warnings == ""
        assert config == default_config_data

    def test_warning_when_config_not_found(self, temp_dirs, default_config_data):
        """Test that the default is copied when config.json does not exist"""
        write_json(temp_dirs['default_config'], default_config_data)

        config, warnings = self.load(temp_dirs)

        assert "config.json is not found" in warnings
        assert config == default_config_data
        with open(temp_dirs['config_file'], encoding='utf-8') as f:
            assert json.load(f) == default_config_data

    def test_warning_when_key_missing(self, temp_dirs, default_config_data):
        """Test that a missing key is filled from the default"""
        write_json(temp_dirs['default_config'], default_config_data)
        user_config = dict(default_config_data)
        del user_config['page_size']
        write_json(temp_dirs['config_file'], user_config)

        config, warnings = self.load(temp_dirs)

        assert 'The key "page_size" was not found' in warnings
        assert config['page_size'] == 5

    def test_warning_when_type_mismatch(self, temp_dirs, default_config_data):
        """Test that a value of the wrong type is replaced"""
        write_json(temp_dirs['default_config'], default_config_data)
        user_config = dict(default_config_data, theme=42)
        write_json(temp_dirs['config_file'], user_config)

        config, warnings = self.load(temp_dirs)

        assert 'Type mismatch found for the key "theme"' in warnings
        assert config['theme'] == 'default'

    def test_keyboard_preferences_are_validated(self, temp_dirs, default_config_data):
        """Nested keyboard preferences are filled and type checked"""
        write_json(temp_dirs['default_config'], default_config_data)
        user_config = dict(default_config_data, keyboard={"hook_candidate": "yes"})
        write_json(temp_dirs['config_file'], user_config)

        config, warnings = self.load(temp_dirs)

        assert config['keyboard'] == default_config_data['keyboard']
        assert 'keyboard.hook_candidate' in warnings
        assert 'keyboard.soft_cursor' in warnings

    def test_non_positive_page_size(self, temp_dirs, default_config_data):
        """page_size below 1 falls back to the default"""
        write_json(temp_dirs['default_config'], default_config_data)
        write_json(temp_dirs['config_file'], dict(default_config_data, page_size=0))

        config, warnings = self.load(temp_dirs)

        assert config['page_size'] == 5
        assert '"page_size" must be at least 1' in warnings

    def test_multiple_warnings(self, temp_dirs, default_config_data):
        """Test that several problems are reported on separate lines"""
        write_json(temp_dirs['default_config'], default_config_data)
        user_config = dict(default_config_data, theme=1)
        del user_config['select_keys']
        write_json(temp_dirs['config_file'], user_config)

        config, warnings = self.load(temp_dirs)

        assert len(warnings.split('\n')) == 2

    def test_json_decode_error_returns_default_config(self, temp_dirs, default_config_data):
        """Test that a broken config.json gives the default config"""
        write_json(temp_dirs['default_config'], default_config_data)
        os.makedirs(temp_dirs['config_dir'], exist_ok=True)
        with open(temp_dirs['config_file'], 'w', encoding='utf-8') as f:
            f.write('{ invalid json')

        config, warnings = self.load(temp_dirs)

        assert config == default_config_data
        assert warnings == ""


class TestSaveConfigData:
    """Test suite for save_config_data() function"""

    def test_save_config_creates_directory(self, temp_dirs):
        """Test that the config directory is created"""
        with patch('util.get_user_config_dir', return_value=temp_dirs['config_dir']):
            assert util.save_config_data({"theme": "default"}) is True
        assert os.path.exists(temp_dirs['config_file'])

    def test_save_config_preserves_unicode(self, temp_dirs):
        """Test that non-ASCII values are written as is"""
        with patch('util.get_user_config_dir', return_value=temp_dirs['config_dir']):
            util.save_config_data({"theme": "候補"})
        with open(temp_dirs['config_file'], encoding='utf-8') as f:
            content = f.read()
        assert '候補' in content

    def test_save_config_handles_permission_error(self, temp_dirs):
        """Test that a write error is reported as False"""
        with patch('util.get_user_config_dir', return_value=temp_dirs['config_dir']):
            with patch('builtins.open', side_effect=PermissionError('denied')):
                assert util.save_config_data({"theme": "default"}) is False


class TestGetThemeData:
    """Test suite for get_theme_path() / get_theme_data()"""

    def paths(self, temp_dirs):
        return (patch('util.get_user_config_dir', return_value=temp_dirs['config_dir']),
                patch('util.get_datadir', return_value=temp_dirs['data']))

    def test_user_theme_wins(self, temp_dirs):
        """A theme in the user directory is preferred"""
        write_json(os.path.join(temp_dirs['config_dir'], 'themes', 'dark.json'), {'colors': {'a': 1}})
        write_json(os.path.join(temp_dirs['data'], 'themes', 'dark.json'), {'colors': {'a': 2}})
        user, data = self.paths(temp_dirs)
        with user, data:
            name, theme = util.get_theme_data({'theme': 'dark'})
        assert name == 'dark'
        assert theme == {'colors': {'a': 1}}

    def test_unknown_theme_falls_back_to_default(self, temp_dirs):
        """An unknown theme name loads the default theme"""
        write_json(os.path.join(temp_dirs['data'], 'themes', 'default.json'), {'colors': {}})
        user, data = self.paths(temp_dirs)
        with user, data:
            name, theme = util.get_theme_data({'theme': 'nope'})
        assert theme == {'colors': {}}

    def test_unreadable_theme(self, temp_dirs):
        """A broken theme file gives None"""
        path = os.path.join(temp_dirs['data'], 'themes', 'default.json')
        os.makedirs(os.path.dirname(path))
        with open(path, 'w', encoding='utf-8') as f:
            f.write('{oops')
        user, data = self.paths(temp_dirs)
        with user, data:
            assert util.get_theme_data({}) == ('default', None)


class TestGetDictionaryFiles:
    """Test suite for get_dictionary_files()"""

    def test_lookup_order(self, temp_dirs):
        """User dictionaries first, then the data directory; missing names are skipped"""
        user_dict = os.path.join(temp_dirs['config_dir'], 'dictionaries', 'a.json')
        data_dict = os.path.join(temp_dirs['data'], 'dictionaries', 'b.json')
        absolute = os.path.join(temp_dirs['home'], 'c.json')
        for path in (user_dict, data_dict, absolute):
            write_json(path, {})
        with patch('util.get_user_config_dir', return_value=temp_dirs['config_dir']):
            with patch('util.get_datadir', return_value=temp_dirs['data']):
                files = util.get_dictionary_files(
                    {'dictionaries': ['a.json', 'b.json', absolute, 'missing.json', 3]})
        assert files == [user_dict, data_dict, absolute]

    def test_not_a_list(self):
        """A non-list setting gives no dictionaries"""
        assert util.get_dictionary_files({'dictionaries': 'a.json'}) == []
        assert util.get_dictionary_files(None) == []
