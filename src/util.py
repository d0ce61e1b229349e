import codecs
import json
import os
from gi.repository import GLib
import logging

logger = logging.getLogger(__name__)

DEFAULT_THEME_NAME = 'default'


def get_package_name():
    '''
    returns 'ibus-kouho'
    '''
    return 'ibus-kouho'


def get_version():
    return '0.1.0'


def get_datadir():
    '''
    Return the path to the data directory under user-independent (central)
    location (= not under the HOME)
    '''
    return os.environ.get('IBUS_KOUHO_DATADIR', '/opt/ibus-kouho')


def get_default_config_path():
    '''
    Return the path to the default config file in the system installation.
    This is the config.json that gets copied to user's home on first run.
    '''
    return os.path.join(get_datadir(), 'config.json')


def get_user_config_dir():
    '''
    Return the path to the config directory under $HOME.
    Typically, it would be $HOME/.config/ibus-kouho
    '''
    return os.path.join(GLib.get_user_config_dir(), get_package_name())


def _append_warning(warnings, warning_msg):
    logger.warning(warning_msg)
    return warnings + ("\n" if warnings else "") + warning_msg


def get_config_data():
    '''
    This function is to load the config JSON file from the HOME/.config/ibus-kouho
    When the file is not present (e.g., after initial installation), it will copy
    the default config.json from the central location.

    Returns:
        tuple: (config_data, warnings_string) where warnings_string is empty if no warnings
    '''
    configfile_path = os.path.join(get_user_config_dir(), 'config.json')
    default_config_path = get_default_config_path()
    default_config = json.load(codecs.open(default_config_path, encoding='utf-8'))
    warnings = ""

    if not os.path.exists(configfile_path):
        warning_msg = f'config.json is not found under {get_user_config_dir()} . Copying the default config.json from {default_config_path} ..'
        warnings = _append_warning(warnings, warning_msg)
        os.makedirs(get_user_config_dir(), exist_ok=True)
        with open(configfile_path, 'w', encoding='utf-8') as f:
            json.dump(default_config, f, ensure_ascii=False)
        return default_config, warnings
    try:
        config_data = json.load(codecs.open(configfile_path, encoding='utf-8'))
    except json.decoder.JSONDecodeError as e:
        logger.error(f'Error loading the config.json under {get_user_config_dir()}')
        logger.error(e)
        logger.error(f'Using (but not copying) the default config.json from {default_config_path} ..')
        return get_default_config_data(), warnings

    if not isinstance(config_data, dict):
        logger.error(f'config.json under {get_user_config_dir()} is not a JSON object; using the default config.json')
        return get_default_config_data(), warnings

    for k in default_config:
        if k not in config_data:
            warning_msg = f'The key "{k}" was not found in the config.json under {get_user_config_dir()} . Copying the default key-value'
            warnings = _append_warning(warnings, warning_msg)
            config_data[k] = default_config[k]
        if type(config_data[k]) != type(default_config[k]):
            warning_msg = f'Type mismatch found for the key "{k}" between config.json under {get_user_config_dir()} and default config.json. Replacing the value of this key with the value in default config.json'
            warnings = _append_warning(warnings, warning_msg)
            config_data[k] = default_config[k]

    # Keyboard preferences are validated one level deeper
    default_keyboard = default_config.get('keyboard', {})
    keyboard = config_data.get('keyboard')
    if isinstance(keyboard, dict) and isinstance(default_keyboard, dict):
        for k, default_value in default_keyboard.items():
            if k not in keyboard:
                warning_msg = f'The key "keyboard.{k}" was not found in the config.json. Copying the default key-value'
                warnings = _append_warning(warnings, warning_msg)
                keyboard[k] = default_value
            elif type(keyboard[k]) != type(default_value):
                warning_msg = f'Type mismatch found for the key "keyboard.{k}". Replacing the value of this key with the default value'
                warnings = _append_warning(warnings, warning_msg)
                keyboard[k] = default_value

    if isinstance(config_data.get('page_size'), int) and config_data['page_size'] < 1:
        warning_msg = f'"page_size" must be at least 1 (got {config_data["page_size"]}). Using {default_config["page_size"]}'
        warnings = _append_warning(warnings, warning_msg)
        config_data['page_size'] = default_config['page_size']

    return config_data, warnings


def save_config_data(config_data):
    '''
    Save config data to the user config directory.

    Args:
        config_data: Dictionary containing configuration data to save

    Returns:
        bool: True if save was successful, False otherwise
    '''
    configfile_path = os.path.join(get_user_config_dir(), 'config.json')

    try:
        os.makedirs(get_user_config_dir(), exist_ok=True)
        with open(configfile_path, 'w', encoding='utf-8') as f:
            json.dump(config_data, f, ensure_ascii=False, indent=2)
        logger.info(f'Configuration saved successfully to {configfile_path}')
        return True
    except (OSError, TypeError) as e:
        logger.error(f'Error saving config.json to {configfile_path}')
        logger.error(e)
        return False


def get_default_config_data():
    default_config_path = get_default_config_path()
    if not os.path.exists(default_config_path):
        logger.error(f'config.json is not found under {get_default_config_path()}. Please check that installation was done without problem!')
        return None
    default_config = json.load(codecs.open(default_config_path, encoding='utf-8'))
    return default_config


def get_theme_path(theme_name):
    '''
    Find themes/<name>.json, looking under the user config directory first
    and then under the data directory. Falls back to the default theme of
    the data directory.
    '''
    file_name = theme_name if theme_name.endswith('.json') else theme_name + '.json'
    user_path = os.path.join(get_user_config_dir(), 'themes', file_name)
    if os.path.exists(user_path):
        return user_path
    data_path = os.path.join(get_datadir(), 'themes', file_name)
    if os.path.exists(data_path):
        return data_path
    logger.warning(f'Theme "{theme_name}" not found; using "{DEFAULT_THEME_NAME}"')
    return os.path.join(get_datadir(), 'themes', DEFAULT_THEME_NAME + '.json')


def get_theme_data(config):
    '''
    Load the theme named by config["theme"].

    Returns:
        tuple: (theme_name, theme_data) where theme_data is None when the
               theme could not be loaded (the caller uses the built-in one)
    '''
    theme_name = config.get('theme', DEFAULT_THEME_NAME) if isinstance(config, dict) else DEFAULT_THEME_NAME
    if not isinstance(theme_name, str) or not theme_name:
        theme_name = DEFAULT_THEME_NAME
    theme_file_path = get_theme_path(theme_name)
    try:
        with open(theme_file_path, encoding='utf-8') as theme_json:
            return theme_name, json.load(theme_json)
    except (OSError, json.decoder.JSONDecodeError) as e:
        logger.error(f'Error in loading theme file: {theme_file_path}')
        logger.error(e)
    return theme_name, None


def get_dictionary_files(config=None):
    """
    Obtain the list of JSON dictionary file paths used by the input engine.

    Each entry of config["dictionaries"] is either an absolute path or a
    file name looked up under $HOME/.config/ibus-kouho/dictionaries/ and
    then under <datadir>/dictionaries/.

    Args:
        config: Configuration dictionary.

    Returns:
        list: List of absolute paths to JSON dictionary files that exist.
              Returns empty list if no dictionaries are found.
    """
    names = config.get('dictionaries', []) if isinstance(config, dict) else []
    if not isinstance(names, list):
        logger.warning('"dictionaries" should be a list of file names')
        names = []

    dictionary_files = []
    search_dirs = [
        os.path.join(get_user_config_dir(), 'dictionaries'),
        os.path.join(get_datadir(), 'dictionaries'),
    ]
    for name in names:
        if not isinstance(name, str) or not name:
            continue
        candidates = [name] if os.path.isabs(name) else [os.path.join(d, name) for d in search_dirs]
        for path in candidates:
            if os.path.exists(path):
                dictionary_files.append(path)
                logger.debug(f'Found dictionary: {path}')
                break
        else:
            logger.debug(f'Dictionary not found: {name}')

    logger.info(f'Dictionary files to use: {len(dictionary_files)} file(s)')
    return dictionary_files
