#!/usr/bin/env python3
"""
composition.py - Layout engine for the composition / candidate window
編集・候補ウィンドウのレイアウトエンジン

================================================================================
WHAT THIS FILE DOES / このファイルの役割
================================================================================

The composition window shows, in ONE piece of rich text:

編集ウィンドウは、一つのリッチテキストの中に以下を表示する:

    ┌──────────────────────────────────────────────┐
    │ ↔ ni hao‸                                    │  ← drag handle + preedit
    │ 1.你好 2.拟好 3.你                            │  ← primary candidates
    │ 4.尼 ▶                                        │  ← wrapped line + button
    └──────────────────────────────────────────────┘

LayoutEngine.update() takes a snapshot of the input engine (preedit,
selection, ranked candidates, select labels) and the window template from
the theme, and produces a RenderedDocument (see document.py).

LayoutEngine.update() は入力エンジンのスナップショットとテーマのウィンドウ
テンプレートから RenderedDocument を生成する。

================================================================================
PRIMARY vs OVERFLOW / 主候補とあふれ候補
================================================================================

Only the first few candidates are shown in the window; the candidate strip
below the window starts where the window stops. calculate_offset() decides
that cut point: short candidates (fewer than min_length characters) are left
to the strip.

ウィンドウには先頭の数個の候補だけを表示し、候補バーはウィンドウが表示を
止めた位置から始まる。その区切りを calculate_offset() が決める。短い候補
（min_length 未満）は候補バーに任せる。

    candidates:  "ab"  "c"  "def"  "gh"  "i"      (min_length = 2)
                  0     1
                  └─ window   └─ strip starts here → offset = 1

================================================================================
LINE WRAPPING / 折り返し
================================================================================

    i == 0                               → slot prefix ("start")
    i <= sticky_lines                    → newline (own line)
    line_length + len(text) > max_length → newline
    otherwise                            → slot separator ("sep")

Labels never count towards the line length; candidate text and comments do.
ラベルは行の長さに数えない。候補テキストとコメントは数える。

================================================================================
TOUCH / タッチ操作
================================================================================

    UP   inside the preedit → move the engine caret (counted from the RIGHT)
    DOWN inside the handle  → remember where the window is
    MOVE inside the handle  → move the window with the finger

The caret is placed counting from the right end of the preedit, so that
changes on the left side of the rendering (e.g. a prefix) don't shift it.
キャレットはプリエディットの右端から数えて配置する。
================================================================================
"""

import enum
import logging
from dataclasses import dataclass

from document import (
    Alignment,
    CandidateClick,
    DocumentBuilder,
    KeyClick,
    SizeRole,
    TextRange,
)
from theme import Movable

logger = logging.getLogger(__name__)

# Marker the engine inserts into the preedit at the caret position
CARET_MARKER = '‸'


class TouchAction(enum.Enum):
    DOWN = 'down'
    MOVE = 'move'
    UP = 'up'


@dataclass(frozen=True)
class TouchEvent:
    """
    x / y are relative to the window, raw_x / raw_y relative to the screen.
    """
    action: TouchAction
    x: float
    y: float
    raw_x: float = 0.0
    raw_y: float = 0.0


class HitKind(enum.Enum):
    PREEDIT = 'preedit'
    DRAG = 'drag'
    CANDIDATE = 'candidate'
    KEY = 'key'
    NONE = 'none'


@dataclass(frozen=True)
class HitResult:
    kind: HitKind
    offset: int = -1
    action: object = None


class GridTextLayout:
    """
    Maps window coordinates to text offsets on a fixed cell grid.

    Every character occupies char_width × line_height; a position maps to
    the nearest caret position on its line, like a text view does.
    """

    def __init__(self, char_width=1.0, line_height=1.0):
        self.char_width = char_width
        self.line_height = line_height

    def offset_for_position(self, text, x, y):
        lines = text.split('\n')
        line = min(max(int(y // self.line_height), 0), len(lines) - 1)
        column = min(max(int(round(x / self.char_width)), 0), len(lines[line]))
        return sum(len(l) + 1 for l in lines[:line]) + column

    def position_for_offset(self, text, offset):
        offset = min(max(offset, 0), len(text))
        before = text[:offset]
        line = before.count('\n')
        column = offset - (before.rfind('\n') + 1)
        return column * self.char_width, (line + 0.5) * self.line_height


def _apply_format(fmt, value):
    if not fmt:
        return ''
    try:
        return fmt % value
    except (TypeError, ValueError) as error:
        logger.debug(f'Format string {fmt!r} not applicable ({error}); using it literally')
        return fmt


class LayoutEngine:
    """
    Builds the composition window document and handles touches on it.
    編集ウィンドウのドキュメントを生成し、その上のタッチを処理する。

    ============================================================================
    COLLABORATORS / 協調オブジェクト
    ============================================================================

    engine : InputEngine
        Only move_cursor(), raw_input and get_option() are used here.
        ここでは move_cursor()、raw_input、get_option() のみ使う。

    window : object with get_location_on_screen() and update_popup_window(x, y)
        The popup window hosting the document (for dragging).
        ドキュメントを表示するポップアップウィンドウ（ドラッグ用）。

    key_actions : KeyActionRegistry
        Resolves the "click" field of button slots.

    keyboards : KeyboardSwitcher
        Button labels may depend on the current keyboard.

    text_layout : object with offset_for_position(text, x, y)
        Defaults to GridTextLayout().

    on_region_click : callable(action)
        Called by click() with CandidateClick / KeyClick.

    on_refresh : callable()
        Called after the caret was moved by a touch, to re-render.

    ============================================================================
    STATE / 状態
    ============================================================================

    document : RenderedDocument or None
        The result of the last update(); replaced wholesale on every update.
        最後の update() の結果。update ごとに丸ごと置き換えられる。
    """

    def __init__(self, layout_config, engine=None, window=None, key_actions=None,
                 keyboards=None, text_layout=None, on_region_click=None,
                 on_refresh=None, show_comment=True):
        self._config = layout_config
        self._engine = engine
        self._window = window
        self._key_actions = key_actions
        self._keyboards = keyboards
        self._text_layout = text_layout or GridTextLayout()
        self.on_region_click = on_region_click
        self.on_refresh = on_refresh
        self.show_comment = show_comment
        self.visible = True
        self.landscape = False
        self._document = None

        self._first_move = True
        self._anchor = (0, 0)
        self._drag_offset = (0.0, 0.0)

    @property
    def config(self):
        return self._config

    @property
    def document(self):
        return self._document

    @property
    def sticky_lines(self):
        if self.landscape:
            return self._config.sticky_lines_land
        return self._config.sticky_lines

    # ─── Pagination ─────────────────────────────────────────────────────

    def calculate_offset(self, candidates):
        """
        Decide how many leading candidates belong in the window.
        ウィンドウに表示する先頭候補の数を決める。

        Starting from the min_check-th candidate, walk back to the first
        candidate that is long enough, then walk forward and stop at the
        first candidate shorter than min_length.

        Args:
            candidates: Sequence of CandidateItem (may be empty)

        Returns:
            int in [0, min(max_count, len(candidates))]
        """
        if not candidates:
            return 0
        config = self._config
        end = min(config.max_count, len(candidates))
        j = max(min(config.min_check, len(candidates), config.max_count) - 1, 0)
        while j > 0:
            if len(candidates[j].text) >= config.min_length:
                break
            j -= 1
        while j < end:
            if len(candidates[j].text) < config.min_length:
                return j
            j += 1
        return j

    # ─── Run builders ───────────────────────────────────────────────────

    def _build_composition(self, builder, component, composition):
        align = Alignment.from_string(component.align)
        preedit = composition.preedit
        spacing = component.letter_spacing if component.letter_spacing > 0 else None

        builder.append(component.start, align=align)
        start = len(builder)
        sel_start = min(max(composition.sel_start, 0), len(preedit))
        sel_end = min(max(composition.sel_end, sel_start), len(preedit))
        pieces = (
            (preedit[:sel_start], False),
            (preedit[sel_start:sel_end], True),
            (preedit[sel_end:], False),
        )
        for text, highlighted in pieces:
            builder.append(
                text,
                align=align,
                size=SizeRole.TEXT,
                color='hilited_text_color' if highlighted else 'text_color',
                background='hilited_back_color' if highlighted else 'back_color',
                font='text_font',
                underline=True,
                letter_spacing=spacing,
                highlighted=highlighted)
        builder.preedit_range = TextRange(start, len(builder))
        builder.selection_range = TextRange(start + sel_start, start + sel_end)
        builder.append(component.end, align=align)

    def _build_candidates(self, builder, component, candidates, select_labels, offset, highlight_index):
        if not candidates:
            return
        config = self._config
        align = Alignment.from_string(component.align)
        sticky_lines = self.sticky_lines
        line_length = 0

        for i, candidate in enumerate(candidates):
            if i >= config.max_count:
                break
            if not config.all_phrases and i >= offset:
                break
            text = _apply_format(component.candidate, candidate.text)
            if config.all_phrases and len(text) < config.min_length:
                continue
            label = _apply_format(component.label, select_labels[i] if i < len(select_labels) else '')

            if i == 0:
                separator = component.start
            elif i <= sticky_lines or line_length + len(text) > config.max_length:
                separator = '\n'
                line_length = 0
            else:
                separator = component.sep
            builder.append(separator, align=align)

            region = builder.register_region(CandidateClick(i))
            highlighted = i == highlight_index
            background = 'hilited_candidate_back_color' if highlighted else None
            builder.append(
                label, align=align, size=SizeRole.LABEL, font='label_font',
                color='hilited_label_color' if highlighted else 'label_color',
                background=background, highlighted=highlighted, region=region)
            builder.append(
                text, align=align, size=SizeRole.CANDIDATE, font='candidate_font',
                color='hilited_candidate_text_color' if highlighted else 'candidate_text_color',
                background=background, highlighted=highlighted, region=region)
            line_length += len(text)

            if self.show_comment:
                comment = _apply_format(component.comment, candidate.comment or '')
                builder.append(
                    comment, align=align, size=SizeRole.COMMENT, font='comment_font',
                    color='hilited_comment_text_color' if highlighted else 'comment_text_color',
                    background=background, highlighted=highlighted, region=region)
                line_length += len(comment)

        builder.append(component.end, align=align)

    def _build_button(self, builder, component, snapshot):
        if component.when == 'paging' and not snapshot.has_more_pages:
            return
        if component.when == 'has_menu' and not snapshot.has_menu:
            return
        if self._key_actions is None:
            logger.warning(f'No key action registry; cannot render button "{component.click}"')
            return
        align = Alignment.from_string(component.align)
        action = self._key_actions.get(component.click)
        label = component.label
        if not label.strip():
            keyboard = self._keyboards.current_keyboard if self._keyboards else None
            option_lookup = self._engine.get_option if self._engine is not None else None
            label = action.get_label(keyboard, option_lookup)

        builder.append(component.start, align=align)
        region = builder.register_region(KeyClick(action))
        builder.append(
            label, align=align, size=SizeRole.KEY,
            color='key_text_color', background='key_back_color', region=region)
        builder.append(component.end, align=align)

    def _build_move(self, builder, component):
        align = Alignment.from_string(component.align)
        builder.append(component.start, align=align)
        start = len(builder)
        builder.append(component.move, align=align, size=SizeRole.KEY, color='key_text_color')
        builder.drag_range = TextRange(start, len(builder))
        builder.append(component.end, align=align)

    # ─── Orchestration ──────────────────────────────────────────────────

    def update(self, snapshot):
        """
        Re-render the window for the given engine snapshot.
        エンジンのスナップショットに従ってウィンドウを再描画する。

        Args:
            snapshot: context.ContextSnapshot

        Returns:
            int: number of candidates shown in the window; the candidate
                 strip should start at this index. 0 when nothing is shown.
                 ウィンドウに表示した候補数。候補バーはこの位置から始める。
        """
        if not self.visible:
            return 0
        composition = snapshot.composition
        if composition is None or not composition.preedit or not composition.preedit.strip():
            return 0

        candidates = tuple(snapshot.candidates or ())
        select_labels = tuple(snapshot.select_labels or ())
        offset = self.calculate_offset(candidates)
        highlight_index = snapshot.highlighted_index if self._config.candidate_use_cursor else -1

        builder = DocumentBuilder()
        for component in self._config.window:
            kind = component.kind
            if kind == 'move':
                self._build_move(builder, component)
            elif kind == 'composition':
                self._build_composition(builder, component, composition)
            elif kind == 'click':
                self._build_button(builder, component, snapshot)
            elif kind == 'candidate':
                self._build_candidates(builder, component, candidates, select_labels, offset, highlight_index)

        self._document = builder.build(single_line=offset == 0, primary_count=offset)
        logger.debug(f'update(): {len(candidates)} candidates, offset={offset}, {len(self._document)} chars')
        return offset

    # ─── Hit testing ────────────────────────────────────────────────────

    def _offset_for(self, x, y):
        return self._text_layout.offset_for_position(self._document.text, x, y)

    def hit_test(self, x, y):
        """
        Tell what is under the window position (x, y).

        Returns:
            HitResult with kind PREEDIT / DRAG / CANDIDATE / KEY / NONE
        """
        if self._document is None:
            return HitResult(HitKind.NONE)
        document = self._document
        offset = self._offset_for(x, y)
        if document.in_preedit(offset):
            return HitResult(HitKind.PREEDIT, offset)
        if document.in_drag_handle(offset):
            return HitResult(HitKind.DRAG, offset)
        action = document.region_at(offset)
        if isinstance(action, CandidateClick):
            return HitResult(HitKind.CANDIDATE, offset, action)
        if isinstance(action, KeyClick):
            return HitResult(HitKind.KEY, offset, action)
        return HitResult(HitKind.NONE, offset)

    def click(self, x, y):
        """Dispatch a click on a candidate or button region; True if handled."""
        if self._document is None:
            return False
        action = self._document.region_at(self._offset_for(x, y))
        if action is None or self.on_region_click is None:
            return False
        self.on_region_click(action)
        return True

    def on_touch_event(self, event):
        """
        Handle one touch event on the window.
        ウィンドウ上のタッチイベントを一つ処理する。

        Returns:
            bool: True if consumed; False lets the caller apply its default
                  handling (e.g. click()).
                  処理した場合 True。False なら呼び出し側の既定処理に任せる。
        """
        document = self._document
        if document is None:
            return False
        offset = self._offset_for(event.x, event.y)

        if event.action is TouchAction.UP:
            if document.in_preedit(offset):
                self._place_caret(document, offset)
                return True
            return False

        movable = self._config.movable
        if movable is Movable.NEVER or self._window is None:
            return False
        if not document.in_drag_handle(offset):
            return False

        if event.action is TouchAction.DOWN:
            if self._first_move or movable is Movable.ONCE:
                self._first_move = False
                self._anchor = tuple(self._window.get_location_on_screen())
            self._drag_offset = (self._anchor[0] - event.raw_x, self._anchor[1] - event.raw_y)
        else:
            self._anchor = (int(event.raw_x + self._drag_offset[0]),
                            int(event.raw_y + self._drag_offset[1]))
            self._window.update_popup_window(*self._anchor)
        return True

    def _place_caret(self, document, offset):
        # count visible raw characters right of the touch point
        tail = document.text[offset:document.preedit_range.end]
        tail = tail.replace(' ', '').replace(CARET_MARKER, '')
        raw_input = (self._engine.raw_input if self._engine is not None else '') or ''
        position = max(0, len(raw_input) - len(tail))
        logger.debug(f'touch in preedit at {offset}: caret -> {position}')
        if self._engine is not None:
            self._engine.move_cursor(position)
        if self.on_refresh is not None:
            self.on_refresh()
