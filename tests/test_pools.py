from __future__ import annotations

import pytest

from chunisim.models import LIST_B30, LIST_N20
from chunisim.pools import CandidateUniverse, build_universe, candidate_pool, weakest_rating


@pytest.mark.light
def test_build_universe_splits_best_and_new(make_entry, make_play):
    catalog = [
        make_entry("o1", "Old One", 14.0),
        make_entry("o2", "Old Unknown", None, level="N/A"),
        make_entry("n1", "New One", 14.0),
        make_entry("n2", "New Unplayed", 14.0),
    ]
    history = [make_play("n1", 1_000_000), make_play("o1", 990_000)]

    universe = build_universe(catalog, history, ["New One", "New Unplayed"])

    assert [s.key for s in universe.best] == [("o1", "MAS")]
    assert universe.best[0].current_score == 990_000
    assert [s.key for s in universe.new] == [("n1", "MAS")]


@pytest.mark.light
def test_build_universe_keeps_unplayed_old_songs(make_entry):
    universe = build_universe([make_entry("o1", "Old One", 13.5)], [], [])

    assert universe.best[0].current_score == 0
    assert universe.best[0].current_rating == 0.0
    assert universe.source(LIST_N20) == ()


@pytest.mark.light
def test_candidate_pool_excludes_own_and_other_list(make_song):
    a = make_song("a", 14.0, 990_000)
    b = make_song("b", 14.5, 990_000)
    c = make_song("c", 13.0, 990_000)
    universe = CandidateUniverse(best=(a, b, c), new=())

    pool = candidate_pool(universe, LIST_B30, own=[a], exclude=[c])

    assert [s.id for s in pool] == ["b"]


@pytest.mark.light
def test_candidate_pool_threshold_uses_max_rating(make_song):
    high = make_song("high", 14.0, 0)  # 上限で 16.15
    low = make_song("low", 12.0, 0)  # 上限で 14.15
    universe = CandidateUniverse(best=(high, low), new=())

    pool = candidate_pool(universe, LIST_B30, own=[], threshold=15.0)

    assert [s.id for s in pool] == ["high"]


@pytest.mark.light
def test_weakest_rating(make_song):
    assert weakest_rating([]) == 0.0
    assert weakest_rating([make_song("a", 14.0, 1_000_000), make_song("b", 14.0, 990_000)]) == pytest.approx(14.6)
