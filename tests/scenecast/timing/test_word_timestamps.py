from __future__ import annotations

import pytest

from scenecast.timing import WordTimestamp, estimate_word_timestamps, shift_word_timestamps


def test_estimate_spreads_words_by_length_and_ends_exactly() -> None:
    stamps = estimate_word_timestamps("a bbbb cc", 1.0, 3.0)

    assert [stamp.word for stamp in stamps] == ["a", "bbbb", "cc"]
    assert stamps[0].start == pytest.approx(1.0)
    assert stamps[-1].end == 3.0
    first_length = stamps[0].end - stamps[0].start
    second_length = stamps[1].end - stamps[1].start
    assert second_length == pytest.approx(first_length * 4)
    assert stamps[1].start == pytest.approx(stamps[0].end + 0.05)


def test_gaps_shrink_when_span_is_short() -> None:
    stamps = estimate_word_timestamps("one two three four five", 0.0, 0.1)

    gaps = [after.start - before.end for before, after in zip(stamps, stamps[1:])]
    assert sum(gaps) <= 0.05 + 1e-9
    assert stamps[-1].end == 0.1


def test_estimate_handles_empty_input() -> None:
    assert estimate_word_timestamps("   ", 0.0, 2.0) == ()
    assert estimate_word_timestamps("word", 2.0, 2.0) == ()


def test_shift_moves_into_scene_time_and_removes_overlap() -> None:
    stamps = (
        WordTimestamp("world", 0.4, 0.9),
        WordTimestamp("hello", 0.0, 0.5),
    )

    shifted = shift_word_timestamps(stamps, 0.5)

    assert [stamp.word for stamp in shifted] == ["hello", "world"]
    assert shifted[0].start == pytest.approx(0.5)
    assert shifted[1].start == pytest.approx(1.0)
    assert shifted[1].end == pytest.approx(1.4)
