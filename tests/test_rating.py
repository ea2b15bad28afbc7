from __future__ import annotations

import pytest

from chunisim.rating import (
    calculate_rating,
    find_min_score_for_rating,
    max_rating,
    next_grade_boundary,
    score_cap,
    should_release_score_limit,
)


@pytest.mark.light
def test_calculate_rating_golden_cases():
    cases = [
        (1_010_000, 14.0, 16.15),
        (1_009_000, 14.0, 16.15),
        (1_007_500, 14.0, 16.0),
        (1_005_000, 14.0, 15.5),
        (1_000_000, 14.0, 15.0),
        (999_999, 14.0, 14.99),
        (990_000, 14.0, 14.6),
        (975_000, 14.0, 14.0),
        (950_000, 14.0, 12.5),
        (925_000, 14.0, 11.0),
        (900_000, 14.0, 9.0),
        (800_000, 14.0, 4.5),
        (799_999, 14.0, 0.0),
        (0, 14.0, 0.0),
    ]

    for score, const, expected in cases:
        assert calculate_rating(score, const) == pytest.approx(expected), score


@pytest.mark.light
def test_calculate_rating_without_constant_is_zero():
    assert calculate_rating(1_009_000, None) == 0.0
    assert calculate_rating(1_009_000, 0) == 0.0


@pytest.mark.light
def test_calculate_rating_never_negative():
    assert calculate_rating(900_000, 1.0) == 0.0


@pytest.mark.light
def test_calculate_rating_is_monotonic_in_score():
    previous = 0.0
    for score in range(800_000, 1_010_001, 250):
        rating = calculate_rating(score, 13.7)
        assert rating >= previous
        previous = rating


@pytest.mark.light
def test_score_cap_and_max_rating():
    assert score_cap(False) == 1_009_000
    assert score_cap(True) == 1_010_000
    assert max_rating(14.0) == pytest.approx(16.15)
    assert max_rating(14.0, released=True) == pytest.approx(16.15)


@pytest.mark.light
def test_next_grade_boundary():
    assert next_grade_boundary(0) == 975_000
    assert next_grade_boundary(900_000) == 975_000
    assert next_grade_boundary(975_000) == 1_000_000
    assert next_grade_boundary(1_000_000) == 1_005_000
    assert next_grade_boundary(1_007_499) == 1_007_500
    assert next_grade_boundary(1_008_000) == 1_009_000
    assert next_grade_boundary(1_009_000) is None


@pytest.mark.light
def test_find_min_score_for_rating_binary_search(make_song):
    song = make_song("a", 14.0, 990_000)

    result = find_min_score_for_rating(song, 15.0)

    assert result.possible
    assert result.score == 1_000_000
    assert result.rating == pytest.approx(15.0)


@pytest.mark.light
def test_find_min_score_for_rating_already_met(make_song):
    song = make_song("a", 14.0, 1_000_000)

    result = find_min_score_for_rating(song, 14.5)

    assert result.possible
    assert result.score == 1_000_000


@pytest.mark.light
def test_find_min_score_for_rating_impossible(make_song):
    song = make_song("a", 14.0, 990_000)

    result = find_min_score_for_rating(song, 16.2)

    assert not result.possible
    assert result.score == 1_009_000


@pytest.mark.light
def test_find_min_score_for_unplayed_song_starts_from_one(make_song):
    song = make_song("a", 14.0, 0)

    result = find_min_score_for_rating(song, 4.5)

    assert result.possible
    assert result.score == 800_000


@pytest.mark.light
def test_should_release_score_limit():
    assert should_release_score_limit(16.0, 16.5)
    assert not should_release_score_limit(16.0, 16.1)
    assert not should_release_score_limit(None, 16.5)
