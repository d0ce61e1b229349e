#!/usr/bin/env python3
"""
document.py - Rendered document model for the composition window
編集ウィンドウの描画ドキュメントモデル

================================================================================
RUNS AND REGIONS / ランとリージョン
================================================================================

The composition window is one piece of rich text. Instead of toolkit specific
"spans" layered on top of a string, the window is described as an ordered list
of RUNS (text + style roles) plus a REGISTRY of interactive regions.

編集ウィンドウは一つのリッチテキスト。ツールキット固有の「スパン」の代わりに、
ラン（テキスト＋スタイル役割）の順序付きリストと、操作可能なリージョンの
レジストリで表現する。

    text:    ">" "ni hao" "1." "你好" "2." "拟好" "~"
              │     │       └──┬───┘  └──┬───┘
              │     │       region 0   region 1
              │     └─ preedit_range
              └─ drag_range

    regions: {0: CandidateClick(0), 1: CandidateClick(1)}

A backend (IBus, Pango, ...) translates the role names of each run into its
own colour/font primitives.

================================================================================
"""

import enum
from dataclasses import dataclass, field


class Alignment(enum.Enum):
    START = 'start'
    CENTER = 'center'
    END = 'end'

    @classmethod
    def from_string(cls, string):
        """
        Map a theme alignment string to an Alignment.

        "right" and "opposite" → END, "center" → CENTER, anything else
        ("left", "normal", typos) → START.
        """
        if string in ('right', 'opposite'):
            return cls.END
        if string == 'center':
            return cls.CENTER
        return cls.START


class SizeRole(enum.Enum):
    KEY = 'key_text_size'
    LABEL = 'label_text_size'
    CANDIDATE = 'candidate_text_size'
    COMMENT = 'comment_text_size'
    TEXT = 'text_size'


@dataclass(frozen=True)
class TextRange:
    """Half-open character interval [start, end) in the document."""
    start: int = 0
    end: int = 0

    def __len__(self):
        return max(0, self.end - self.start)

    def contains(self, offset, inclusive_end=False):
        if inclusive_end:
            return self.start <= offset <= self.end
        return self.start <= offset < self.end


@dataclass(frozen=True)
class CandidateClick:
    index: int


@dataclass(frozen=True)
class KeyClick:
    action: object  # key_action.KeyAction


@dataclass(frozen=True)
class StyledRun:
    """
    One contiguous piece of text sharing a single style.

    color / background / font hold theme keys (e.g. 'hilited_label_color',
    'candidate_font'); None means "inherit the window default".
    """
    text: str
    start: int
    align: Alignment = Alignment.START
    size: SizeRole = None
    color: str = None
    background: str = None
    font: str = None
    underline: bool = False
    letter_spacing: float = None
    highlighted: bool = False
    region: int = None

    @property
    def end(self):
        return self.start + len(self.text)


@dataclass(frozen=True)
class RenderedDocument:
    runs: tuple = ()
    regions: dict = field(default_factory=dict)
    preedit_range: TextRange = None
    drag_range: TextRange = TextRange()
    selection_range: TextRange = TextRange()
    single_line: bool = True
    primary_count: int = 0

    def in_preedit(self, offset):
        """True if offset touches the preedit; False when no composition slot was rendered."""
        return self.preedit_range is not None and self.preedit_range.contains(offset, inclusive_end=True)

    def in_drag_handle(self, offset):
        return len(self.drag_range) > 0 and self.drag_range.contains(offset, inclusive_end=True)

    @property
    def text(self):
        return ''.join(run.text for run in self.runs)

    def __len__(self):
        return self.runs[-1].end if self.runs else 0

    def run_at(self, offset):
        """Return the run covering offset, or None."""
        for run in self.runs:
            if run.start <= offset < run.end:
                return run
        return None

    def region_at(self, offset):
        """Return the RegionAction registered under offset, or None."""
        run = self.run_at(offset)
        if run is None or run.region is None:
            return None
        return self.regions.get(run.region)

    def runs_for_region(self, region_id):
        return [run for run in self.runs if run.region == region_id]

    def lines(self):
        return self.text.split('\n')


class DocumentBuilder:
    """
    Mutable accumulator used while one update() is running.
    update() 実行中のみ使われる可変ビルダー。

    Runs are appended in order; the builder keeps track of the current
    length so callers can record ranges before/after appending.
    """

    def __init__(self):
        self._runs = []
        self._regions = {}
        self._length = 0
        self.preedit_range = None
        self.drag_range = TextRange()
        self.selection_range = TextRange()

    def __len__(self):
        return self._length

    def append(self, text, **style):
        if not text:
            return None
        run = StyledRun(text=text, start=self._length, **style)
        self._runs.append(run)
        self._length += len(text)
        return run

    def register_region(self, action):
        region_id = len(self._regions)
        self._regions[region_id] = action
        return region_id

    def build(self, single_line, primary_count):
        return RenderedDocument(
            runs=tuple(self._runs),
            regions=dict(self._regions),
            preedit_range=self.preedit_range,
            drag_range=self.drag_range,
            selection_range=self.selection_range,
            single_line=single_line,
            primary_count=primary_count)
