#!/usr/bin/env python3
# context.py - Read-only snapshot of the input engine state

from dataclasses import dataclass


@dataclass(frozen=True)
class CompositionState:
    """
    The preedit (raw input being composed) and the selected segment in it.

    preedit may contain the caret marker '‸' and spaces between syllables;
    sel_start / sel_end are offsets into preedit, not into the raw input.
    """
    preedit: str = ''
    sel_start: int = 0
    sel_end: int = 0


@dataclass(frozen=True)
class CandidateItem:
    text: str
    comment: str = ''
    index: int = 0


@dataclass(frozen=True)
class ContextSnapshot:
    """
    Everything the layout engine needs for one render.
    一回の描画に必要な入力エンジンの状態。
    """
    composition: CompositionState = CompositionState()
    candidates: tuple = ()
    select_labels: tuple = ()
    highlighted_index: int = -1
    has_more_pages: bool = False
    has_menu: bool = False
    is_composing: bool = False


def make_candidates(texts, comments=None):
    """
    Build a tuple of CandidateItem from plain strings.

    Args:
        texts: Candidate texts in rank order
        comments: Optional comments aligned with texts

    Returns:
        tuple of CandidateItem with index set to the rank position
    """
    comments = comments or []
    items = []
    for i, text in enumerate(texts):
        comment = comments[i] if i < len(comments) and comments[i] else ''
        items.append(CandidateItem(text=text, comment=comment, index=i))
    return tuple(items)
