"""Word-level timing estimation and normalisation."""

from __future__ import annotations

from typing import Iterable, Tuple

from .plan import WordTimestamp

DEFAULT_WORD_GAP = 0.05


def estimate_word_timestamps(
    text: str,
    start: float,
    end: float,
    *,
    gap: float = DEFAULT_WORD_GAP,
) -> Tuple[WordTimestamp, ...]:
    """Spread the words of ``text`` over ``[start, end]`` by character length.

    Words are separated by ``gap`` seconds unless the gaps would take more than
    half of the span, in which case they shrink to fit. The last word always
    ends exactly at ``end``.
    """

    words = text.split()
    span = end - start
    if not words or span <= 0:
        return ()

    count = len(words)
    if count > 1 and gap * (count - 1) > span / 2:
        gap = (span / 2) / (count - 1)
    elif count == 1:
        gap = 0.0
    speaking_time = span - gap * (count - 1)
    total_chars = sum(len(word) for word in words)

    stamps = []
    cursor = start
    for index, word in enumerate(words):
        length = speaking_time * len(word) / total_chars
        word_end = end if index == count - 1 else min(cursor + length, end)
        stamps.append(WordTimestamp(word=word, start=cursor, end=word_end))
        cursor = min(word_end + gap, end)
    return tuple(stamps)


def shift_word_timestamps(
    stamps: Iterable[WordTimestamp], offset: float
) -> Tuple[WordTimestamp, ...]:
    """Move ``stamps`` by ``offset`` seconds and make them non-overlapping."""

    shifted = []
    previous_end = offset
    for stamp in sorted(stamps, key=lambda item: (item.start, item.end)):
        start = max(stamp.start + offset, previous_end)
        end = max(stamp.end + offset, start)
        shifted.append(WordTimestamp(word=stamp.word, start=start, end=end))
        previous_end = end
    return tuple(shifted)


__all__ = ["DEFAULT_WORD_GAP", "estimate_word_timestamps", "shift_word_timestamps"]
