#!/usr/bin/env python3
"""
dictionary_engine.py - Dictionary based input engine
辞書による入力エンジン

A small input engine that turns typed romaji/codes into candidates looked up
in JSON dictionaries. It is the engine behind the router in the IBus shell.
入力されたコードを JSON 辞書で引いて候補を作る小さな入力エンジン。

Dictionary format (JSON):
    {
        "reading": {"candidate1": count1, "candidate2": count2, ...},
        ...
    }
where a higher count means a better candidate. The legacy format
{"candidate": {"POS": "品詞", "cost": cost}} is also accepted; lower cost is
better and the cost is negated into a count.

Candidates for the raw input are:
    1. exact matches, best count first
    2. completions of longer readings, commented with the rest of the
       reading ("~" + rest), shorter readings first
入力に対する候補は、完全一致（頻度順）の後に、より長い読みの補完
（コメントは "~" + 残りの読み）が続く。

Candidate indices used by select_candidate() / delete_candidate() are
relative to the current page, like the labels shown next to them.
"""

import logging
import os
import re

import orjson

from context import CandidateItem, CompositionState, ContextSnapshot
from key_action import CONTROL_MASK, MOD1_MASK, RELEASE_MASK, SUPER_MASK, parse_key
from notification import NotificationStream, OptionNotification, SchemaNotification

logger = logging.getLogger(__name__)

CARET_MARKER = '‸'
MAX_COMPLETIONS = 50
DEFAULT_SELECT_KEYS = '1234567890'

# {Key} groups and single characters in a simulated key sequence
KEY_SEQUENCE_TOKEN = re.compile(r'\{([^{}]+)\}|(.)', re.DOTALL)

COMPOSING_KEYS = frozenset('abcdefghijklmnopqrstuvwxyz\'')


def load_dictionaries(dictionary_files):
    """
    Load and merge multiple dictionary files.

    Missing or broken files are skipped with a log message; for a candidate
    found in several files the higher count is kept.

    Args:
        dictionary_files: List of paths to dictionary JSON files (may be empty)

    Returns:
        dict: {reading: {candidate: count}}
    """
    dictionary = {}
    loaded = 0
    for file_path in dictionary_files or []:
        if not os.path.exists(file_path):
            logger.warning(f'Dictionary file not found: {file_path}')
            continue
        try:
            with open(file_path, 'rb') as f:
                data = orjson.loads(f.read())
        except orjson.JSONDecodeError as e:
            logger.error(f'Failed to parse dictionary JSON: {file_path} - {e}')
            continue
        except OSError as e:
            logger.error(f'Failed to load dictionary: {file_path} - {e}')
            continue

        if not isinstance(data, dict):
            logger.warning(f'Invalid dictionary format (expected dict): {file_path}')
            continue

        entries_added = 0
        for reading, candidates in data.items():
            if not isinstance(candidates, dict):
                continue
            merged = dictionary.setdefault(reading, {})
            for candidate, entry in candidates.items():
                if isinstance(entry, dict):
                    count = -entry.get('cost', 0)
                else:
                    count = entry if isinstance(entry, (int, float)) else 1
                if candidate not in merged or count > merged[candidate]:
                    merged[candidate] = count
                entries_added += 1
        loaded += 1
        logger.info(f'Loaded dictionary: {file_path} ({entries_added} candidate entries)')

    if loaded == 0:
        logger.warning('No dictionaries loaded - input will be committed as typed')
    return dictionary


class DictionaryInputEngine:
    """
    Input engine over a reading → candidate dictionary.
    読み→候補の辞書による入力エンジン。

    ============================================================================
    STATE / 状態
    ============================================================================

    raw_input : str
        What has been typed so far. 入力中のコード。

    caret : int
        Position of the caret in raw_input. raw_input 中のカーソル位置。

    page / highlighted : int
        Current candidate page and the highlighted candidate (absolute).
        現在の候補ページと強調中の候補（絶対位置）。

    Options are plain booleans. Every set_option() emits an
    OptionNotification, every select_schema() a SchemaNotification, both
    through the `notifications` stream.
    オプションは単純な真偽値。set_option() のたびに OptionNotification が、
    select_schema() のたびに SchemaNotification が通知される。
    ============================================================================
    """

    def __init__(self, dictionary_files=None, dictionary=None, page_size=5,
                 select_keys=DEFAULT_SELECT_KEYS, switches=None):
        self._dictionary = dictionary if dictionary is not None else load_dictionaries(dictionary_files)
        self._readings = sorted(self._dictionary)
        self.page_size = max(1, int(page_size))
        self.select_keys = select_keys or DEFAULT_SELECT_KEYS
        self.switches = list(switches or ['ascii_mode'])
        self.notifications = NotificationStream()
        self.schema_id = 'default'
        self.schema_name = ''

        self._options = {}
        self._raw_input = ''
        self._caret = 0
        self._candidates = []
        self._page = 0
        self._highlighted = 0
        self._commit_text = ''

    # ─── Properties ─────────────────────────────────────────────────────

    @property
    def raw_input(self):
        return self._raw_input

    @property
    def caret(self):
        return self._caret

    @property
    def is_composing(self):
        return bool(self._raw_input)

    @property
    def is_ascii_mode(self):
        return self.get_option('ascii_mode')

    @property
    def candidates(self):
        return list(self._candidates)

    # ─── Lookup ─────────────────────────────────────────────────────────

    def _lookup(self, reading):
        if not reading:
            return []
        candidates = []
        seen = set()
        exact = self._dictionary.get(reading, {})
        for text, _ in sorted(exact.items(), key=lambda item: -item[1]):
            candidates.append(CandidateItem(text=text))
            seen.add(text)

        completions = []
        for other in self._readings:
            if other != reading and other.startswith(reading):
                for text, count in self._dictionary[other].items():
                    completions.append((len(other), -count, text, '~' + other[len(reading):]))
        completions.sort()
        for _, _, text, comment in completions[:MAX_COMPLETIONS]:
            if text not in seen:
                candidates.append(CandidateItem(text=text, comment=comment))
                seen.add(text)

        if not candidates:
            candidates.append(CandidateItem(text=reading))
        return [CandidateItem(text=c.text, comment=c.comment, index=i) for i, c in enumerate(candidates)]

    def _refresh(self):
        self._candidates = self._lookup(self._raw_input)
        self._page = 0
        self._highlighted = 0

    def _page_start(self):
        return self._page * self.page_size

    def _page_candidates(self):
        start = self._page_start()
        return self._candidates[start:start + self.page_size]

    # ─── Snapshot ───────────────────────────────────────────────────────

    def get_context_snapshot(self):
        if not self.is_composing:
            return ContextSnapshot()
        preedit = self._raw_input
        if self.get_option('soft_cursors') and self._caret < len(preedit):
            preedit = preedit[:self._caret] + CARET_MARKER + preedit[self._caret:]
        page = self._page_candidates()
        start = self._page_start()
        return ContextSnapshot(
            composition=CompositionState(preedit=preedit, sel_start=0, sel_end=self._caret),
            candidates=tuple(CandidateItem(text=c.text, comment=c.comment, index=i)
                             for i, c in enumerate(page)),
            select_labels=tuple(self.select_keys[:len(page)]),
            highlighted_index=self._highlighted - start,
            has_more_pages=start + self.page_size < len(self._candidates),
            has_menu=bool(page),
            is_composing=True)

    # ─── Keys ───────────────────────────────────────────────────────────

    def process_key(self, code, mask=0):
        """
        Process one key (an X keysym name such as "a", "BackSpace", "Page_Down").
        キーを一つ処理する。

        Returns:
            bool: True if the key was consumed by the engine
        """
        if mask & RELEASE_MASK:
            return False
        if mask & (CONTROL_MASK | MOD1_MASK | SUPER_MASK):
            return False
        if self.is_ascii_mode:
            return False

        if code in COMPOSING_KEYS:
            self._raw_input = self._raw_input[:self._caret] + code + self._raw_input[self._caret:]
            self._caret += 1
            self._refresh()
            return True
        if not self.is_composing:
            return False

        if code == 'BackSpace':
            if self._caret > 0:
                self._raw_input = self._raw_input[:self._caret - 1] + self._raw_input[self._caret:]
                self._caret -= 1
                self._refresh()
        elif code == 'Delete':
            if self._caret < len(self._raw_input):
                self._raw_input = self._raw_input[:self._caret] + self._raw_input[self._caret + 1:]
                self._refresh()
        elif code == 'Left':
            self._caret = max(0, self._caret - 1)
        elif code == 'Right':
            self._caret = min(len(self._raw_input), self._caret + 1)
        elif code == 'Home':
            self._caret = 0
        elif code == 'End':
            self._caret = len(self._raw_input)
        elif code == 'Escape':
            self.clear_composition()
        elif code == 'Return':
            self._commit(self._raw_input)
        elif code == 'space':
            self.commit_composition()
        elif code in ('Page_Down', 'Page_Up'):
            self._change_page(1 if code == 'Page_Down' else -1)
        elif code in ('Down', 'Up'):
            self._move_highlight(1 if code == 'Down' else -1)
        elif len(code) == 1 and code in self.select_keys:
            return self.select_candidate(self.select_keys.index(code))
        else:
            return False
        return True

    def _change_page(self, step):
        pages = (len(self._candidates) + self.page_size - 1) // self.page_size
        page = min(max(0, self._page + step), max(0, pages - 1))
        if page != self._page:
            self._page = page
            self._highlighted = self._page_start()

    def _move_highlight(self, step):
        if not self._candidates:
            return
        self._highlighted = min(max(0, self._highlighted + step), len(self._candidates) - 1)
        self._page = self._highlighted // self.page_size

    def simulate_key_sequence(self, text):
        """
        Type a key sequence: {Key} groups are keys, other characters are
        typed one by one. Characters the engine does not take are committed.
        キー列を入力する。{Key} はキー、それ以外は一文字ずつ入力する。

        Returns:
            bool: True if at least one key was consumed
        """
        handled = False
        for match in KEY_SEQUENCE_TOKEN.finditer(text):
            if match.group(1) is not None:
                code, mask = parse_key('{' + match.group(1) + '}')
                if self.process_key(code, mask):
                    handled = True
                continue
            char = match.group(2)
            code = 'space' if char == ' ' else char
            if self.process_key(code, 0):
                handled = True
            else:
                if self.is_composing:
                    self.commit_composition()
                self._commit_text += char
        return handled

    # ─── Candidates ─────────────────────────────────────────────────────

    def select_candidate(self, index):
        """Commit the index-th candidate of the current page."""
        absolute = self._page_start() + index
        if index < 0 or index >= self.page_size or absolute >= len(self._candidates):
            logger.debug(f'select_candidate({index}): no such candidate')
            return False
        self._commit(self._candidates[absolute].text)
        return True

    def delete_candidate(self, index):
        """Forget the index-th candidate of the current page."""
        absolute = self._page_start() + index
        if index < 0 or index >= self.page_size or absolute >= len(self._candidates):
            return False
        text = self._candidates[absolute].text
        removed = False
        for entries in self._dictionary.values():
            if entries.pop(text, None) is not None:
                removed = True
        if removed:
            self._dictionary = {k: v for k, v in self._dictionary.items() if v}
            self._readings = sorted(self._dictionary)
        logger.info(f'delete_candidate({index}): removed "{text}"')
        page = self._page
        self._candidates = self._lookup(self._raw_input)
        self._page = min(page, max(0, (len(self._candidates) - 1) // self.page_size))
        self._highlighted = min(self._highlighted, max(0, len(self._candidates) - 1))
        return removed

    # ─── Composition ────────────────────────────────────────────────────

    def move_cursor(self, position):
        self._caret = min(max(0, position), len(self._raw_input))

    def _commit(self, text):
        self._commit_text += text
        self._raw_input = ''
        self._caret = 0
        self._refresh()

    def commit_composition(self):
        if not self.is_composing:
            return False
        if 0 <= self._highlighted < len(self._candidates):
            self._commit(self._candidates[self._highlighted].text)
        else:
            self._commit(self._raw_input)
        return True

    def clear_composition(self):
        self._raw_input = ''
        self._caret = 0
        self._refresh()

    def get_commit_text(self):
        """Return and clear the text committed since the last call."""
        text, self._commit_text = self._commit_text, ''
        return text

    # ─── Options / schema ───────────────────────────────────────────────

    def get_option(self, name):
        return self._options.get(name, False)

    def set_option(self, name, value):
        value = bool(value)
        if name == 'ascii_mode' and value and self.is_composing:
            self._commit(self._raw_input)
        self._options[name] = value
        self.notifications.emit(OptionNotification(name, value))

    def toggle_option(self, name):
        if not name:
            return
        self.set_option(name, not self.get_option(name))

    def toggle_switch_option(self, index):
        if not 0 <= index < len(self.switches):
            logger.debug(f'toggle_switch_option({index}): no such switch')
            return
        self.toggle_option(self.switches[index])

    def select_schema(self, schema_id, schema_name=''):
        self.clear_composition()
        self.schema_id = schema_id
        self.schema_name = schema_name
        self.notifications.emit(SchemaNotification(schema_id, schema_name))
