#!/usr/bin/env python3
"""
theme.py - Window templates and layout settings read from the theme JSON
テーマJSONから読み込むウィンドウテンプレートとレイアウト設定

================================================================================
THEME FORMAT / テーマ形式
================================================================================

    {
      "style": {
        "candidate_use_cursor": true,
        "horizontal": true,
        "layout": {
          "max_entries": 5,       // max candidates in the window / 最大候補数
          "max_length": 14,       // line length before wrapping / 折り返し長
          "min_length": 2,        // shorter candidates go to the strip
          "min_check": 1,         // how many leading candidates to check
          "sticky_lines": 0,      // leading candidates on their own line
          "sticky_lines_land": 0, // same, in landscape orientation
          "all_phrases": false,
          "movable": "once"       // "true" / "false" / "once" / ALWAYS ...
        },
        "window": [
          {"move": "↔"},
          {"start": "", "composition": "%s", "end": "\\n"},
          {"candidate": "%s", "label": "%s.", "comment": " %s", "sep": " "},
          {"click": "Page_Down", "when": "paging", "label": "▶"}
        ]
      },
      "colors": {"text_color": "#000000", ...},
      "preset_keys": {...},
      "preset_keyboards": {...}
    }

Every window entry becomes one WindowComponent ("slot"). The kind of a slot
is decided by the first non-blank field among move / composition / click /
candidate.

ウィンドウの各要素は一つの WindowComponent（スロット）になる。スロットの種類は
move / composition / click / candidate のうち最初の空でないフィールドで決まる。
================================================================================
"""

import enum
import logging
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

# Fallback when the theme does not set (or sets a non-positive) max_entries.
MAX_CANDIDATE_COUNT = 30


class Movable(enum.Enum):
    """Whether the window may be dragged by its handle."""
    ALWAYS = 'ALWAYS'
    NEVER = 'NEVER'
    ONCE = 'ONCE'

    @classmethod
    def from_string(cls, string):
        """
        Parse the theme's movable value; anything unknown means NEVER.
        テーマの movable 値を解析。不明な値は NEVER。
        """
        if isinstance(string, bool):
            return cls.ALWAYS if string else cls.NEVER
        if not isinstance(string, str):
            logger.warning(f'Unknown movable value {string!r}; using NEVER')
            return cls.NEVER
        mapping = {'true': cls.ALWAYS, 'false': cls.NEVER, 'once': cls.ONCE}
        if string in mapping:
            return mapping[string]
        try:
            return cls[string]
        except KeyError:
            logger.warning(f'Unknown movable value {string!r}; using NEVER')
            return cls.NEVER


@dataclass(frozen=True)
class WindowComponent:
    move: str = ''
    composition: str = ''
    click: str = ''
    candidate: str = ''
    when: str = ''
    align: str = ''
    start: str = ''
    end: str = ''
    sep: str = ' '
    label: str = ''
    comment: str = ''
    letter_spacing: float = 0.0

    @classmethod
    def from_dict(cls, data):
        if not isinstance(data, dict):
            logger.warning(f'Ignoring window component that is not an object: {data!r}')
            return None
        kwargs = {}
        for name in cls.__dataclass_fields__:
            if name not in data or data[name] is None:
                continue
            value = data[name]
            if name == 'letter_spacing':
                try:
                    value = float(value)
                except (TypeError, ValueError):
                    logger.warning(f'Invalid letter_spacing {value!r}; ignoring')
                    continue
            else:
                value = str(value)
            kwargs[name] = value
        return cls(**kwargs)

    @property
    def kind(self):
        for name in ('move', 'composition', 'click', 'candidate'):
            if getattr(self, name).strip():
                return name
        return None


@dataclass(frozen=True)
class LayoutConfig:
    window: tuple = ()
    all_phrases: bool = False
    max_count: int = MAX_CANDIDATE_COUNT
    max_length: int = 14
    min_length: int = 0
    min_check: int = 1
    sticky_lines: int = 0
    sticky_lines_land: int = 0
    candidate_use_cursor: bool = True
    movable: Movable = Movable.NEVER
    horizontal: bool = True


@dataclass(frozen=True)
class Theme:
    name: str = 'default'
    layout: LayoutConfig = LayoutConfig()
    colors: dict = field(default_factory=dict)
    preset_keys: dict = field(default_factory=dict)
    preset_keyboards: dict = field(default_factory=dict)


DEFAULT_WINDOW = (
    {'move': '↔', 'end': ' '},
    {'composition': '%s', 'end': '\n'},
    {'candidate': '%s', 'label': '%s.', 'comment': ' %s', 'sep': ' '},
)


def _int_value(layout, key, default):
    value = layout.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int):
        logger.warning(f'Layout value "{key}" should be an integer, got {value!r}; using {default}')
        return default
    return value


def _bool_value(data, key, default):
    value = data.get(key, default)
    if not isinstance(value, bool):
        logger.warning(f'Value "{key}" should be a boolean, got {value!r}; using {default}')
        return default
    return value


def parse_layout(style):
    """
    Build a LayoutConfig from the "style" section of a theme.

    Values of the wrong type are replaced with defaults (and logged), so a
    half-broken theme still yields a usable window.
    """
    if not isinstance(style, dict):
        style = {}
    layout = style.get('layout', {})
    if not isinstance(layout, dict):
        logger.warning('"style.layout" is not an object; using defaults')
        layout = {}

    window_data = style.get('window', DEFAULT_WINDOW)
    if not isinstance(window_data, (list, tuple)):
        logger.warning('"style.window" is not a list; using the default window')
        window_data = DEFAULT_WINDOW
    window = tuple(c for c in (WindowComponent.from_dict(d) for d in window_data) if c is not None)

    max_entries = _int_value(layout, 'max_entries', MAX_CANDIDATE_COUNT)
    return LayoutConfig(
        window=window,
        all_phrases=_bool_value(layout, 'all_phrases', False),
        max_count=max_entries if max_entries > 0 else MAX_CANDIDATE_COUNT,
        max_length=_int_value(layout, 'max_length', 14),
        min_length=max(0, _int_value(layout, 'min_length', 0)),
        min_check=max(0, _int_value(layout, 'min_check', 1)),
        sticky_lines=_int_value(layout, 'sticky_lines', 0),
        sticky_lines_land=_int_value(layout, 'sticky_lines_land', 0),
        candidate_use_cursor=_bool_value(style, 'candidate_use_cursor', True),
        movable=Movable.from_string(layout.get('movable', 'false')),
        horizontal=_bool_value(style, 'horizontal', True))


def parse_theme(theme_data, name='default'):
    if not isinstance(theme_data, dict):
        logger.error(f'Theme "{name}" is not a JSON object; using the built-in default')
        theme_data = {}

    def section(key):
        value = theme_data.get(key, {})
        if not isinstance(value, dict):
            logger.warning(f'Theme section "{key}" is not an object; ignoring it')
            return {}
        return value

    return Theme(
        name=name,
        layout=parse_layout(theme_data.get('style', {})),
        colors=section('colors'),
        preset_keys=section('preset_keys'),
        preset_keyboards=section('preset_keyboards'))
