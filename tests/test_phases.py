"""単一リスト探索(leap / fine-tune / replace)のテスト。"""

from __future__ import annotations

import pytest

from chunisim.aggregate import average_rating, lists_overall
from chunisim.models import LIST_B30, LIST_N20, PREFERENCE_FLOOR, PREFERENCE_PEAK
from chunisim.phases import (
    can_improve,
    fine_tune_song,
    is_high_constant,
    order_candidates,
    run_single_list,
    step_list,
    try_leap,
    try_replace,
)
from chunisim.pools import CandidateUniverse, build_universe


@pytest.mark.light
def test_can_improve(make_song):
    assert can_improve(make_song("a", 14.0, 1_000_000), released=False)
    assert not can_improve(make_song("a", 14.0, 1_009_000), released=False)
    assert not can_improve(make_song("a", None, 1_000_000), released=False)
    # 限界突破時でも 1,009,000 以上はレーティングが増えない
    assert not can_improve(make_song("a", 14.0, 1_009_000), released=True)


@pytest.mark.light
def test_is_high_constant(make_song):
    assert is_high_constant(make_song("a", 13.5, 1_000_000), 15.0)
    assert not is_high_constant(make_song("a", 13.0, 1_000_000), 15.0)
    assert not is_high_constant(make_song("a", 13.5, 1_000_000), None)


@pytest.mark.light
def test_order_candidates_floor_and_peak(make_song):
    low = make_song("low", 12.0, 990_000)
    high = make_song("high", 14.0, 990_000)

    assert [s.id for s in order_candidates([high, low], PREFERENCE_FLOOR, 13.6)] == ["low", "high"]
    assert [s.id for s in order_candidates([low, high], PREFERENCE_PEAK, 13.6)] == ["high", "low"]


@pytest.mark.light
def test_try_leap_moves_to_next_boundary(make_song, make_ctx):
    song = make_song("a", 14.0, 990_000)
    ctx = make_ctx()

    result = try_leap([song], song, ctx, "B30")

    assert result.changed
    assert result.after.target_score == 1_000_000
    assert result.after.target_rating == pytest.approx(15.0)
    assert result.after.current_score == 990_000
    assert "[B30_LEAP]" in ctx.trace[-1]


@pytest.mark.light
def test_try_leap_at_cap_is_noop(make_song, make_ctx):
    song = make_song("a", 14.0, 1_009_000)

    result = try_leap([song], song, make_ctx(), "B30")

    assert not result.changed
    assert result.songs == [song]


@pytest.mark.light
def test_fine_tune_song_uses_minimum_score(make_song, make_ctx):
    tuned = fine_tune_song(make_song("a", 14.0, 1_000_000), make_ctx())

    assert tuned is not None
    assert tuned.target_score == 1_000_100
    assert tuned.target_rating == pytest.approx(15.01)


@pytest.mark.light
def test_step_list_floor_and_peak_pick_different_songs(make_song, make_ctx):
    low = make_song("low", 12.0, 990_000)
    high = make_song("high", 14.0, 990_000)

    floor = step_list([high, low], LIST_B30, make_ctx(preference=PREFERENCE_FLOOR))
    peak = step_list([high, low], LIST_B30, make_ctx(preference=PREFERENCE_PEAK))

    assert floor.action == peak.action == "leap"
    assert floor.before.id == "low"
    assert peak.before.id == "high"


def _replace_universe(make_song) -> CandidateUniverse:
    played = make_song("played", 14.0, 1_000_000)
    unplayed = make_song("unplayed", 15.0, 0)
    return CandidateUniverse(best=(played, unplayed), new=())


@pytest.mark.light
def test_try_replace_prefers_least_effort(make_song, make_ctx):
    weak = make_song("weak", 13.0, 1_000_000)
    strong = make_song("strong", 14.0, 1_005_000)
    ctx = make_ctx(_replace_universe(make_song))

    result = try_replace([strong, weak], LIST_B30, ctx)

    assert result.changed
    assert result.action == "replace"
    assert result.before.id == "weak"
    assert result.after.id == "played"
    assert result.after.target_score == 1_000_000
    assert {s.id for s in result.songs} == {"strong", "played"}


@pytest.mark.light
def test_try_replace_penalizes_unplayed_but_uses_it_when_needed(make_song, make_ctx):
    weak = make_song("weak", 13.0, 1_000_000)
    universe = _replace_universe(make_song)
    ctx = make_ctx(universe)

    result = try_replace([weak], LIST_B30, ctx, exclude=[universe.best[0]])

    assert result.after.id == "unplayed"
    assert result.after.target_score == 975_000


@pytest.mark.light
def test_try_replace_without_candidates_is_stuck(make_song, make_ctx):
    song = make_song("a", 14.0, 1_009_000)

    result = try_replace([song], LIST_B30, make_ctx())

    assert result.stuck
    assert result.songs == [song]


@pytest.mark.light
def test_try_replace_adds_to_short_new_list(make_song, make_ctx):
    current = make_song("n1", 13.0, 1_000_000)
    candidate = make_song("n2", 14.0, 1_000_000)
    ctx = make_ctx(CandidateUniverse(best=(), new=(candidate,)))

    result = try_replace([current], LIST_N20, ctx)

    assert result.action == "add"
    assert [s.id for s in result.songs] == ["n2", "n1"]
    assert any("[N20_REPLACE_ADD]" in line for line in ctx.trace)


@pytest.mark.light
def test_run_single_list_reaches_target(make_songs, make_ctx):
    best = make_songs("b", 30, 14.0, 1_000_000)

    outcome = run_single_list(best, [], LIST_B30, 15.02, make_ctx(), 200)

    assert outcome.reached
    assert outcome.iterations == 2
    assert len(outcome.best_songs) == 30
    assert all(s.target_score >= s.current_score for s in outcome.best_songs)


@pytest.mark.light
def test_run_single_list_stuck(make_song, make_ctx):
    ctx = make_ctx()

    outcome = run_single_list([make_song("a", 14.0, 1_009_000)], [], LIST_B30, 20.0, ctx, 200)

    assert outcome.stuck
    assert outcome.iterations == 1
    assert any("[B30_STUCK]" in line for line in ctx.trace)


@pytest.mark.light
def test_run_single_list_budget(make_songs, make_ctx):
    outcome = run_single_list(make_songs("b", 30, 14.0, 1_000_000), [], LIST_B30, 16.0, make_ctx(), 2)

    assert outcome.budget_exhausted
    assert outcome.iterations == 2


def _assert_not_lowered(before, after):
    previous = {s.key: s for s in before}
    for song in after:
        old = previous.get(song.key)
        if old is None:
            continue
        assert song.target_score >= old.target_score
        assert song.target_rating >= old.target_rating


@pytest.mark.light
def test_step_list_b30_never_lowers_targets(make_entry, make_play, make_ctx):
    catalog = [
        make_entry("a", "A", 14.0),
        make_entry("b", "B", 13.0, level="13"),
        make_entry("c", "C", 12.0, level="12"),
        make_entry("d", "D", 14.5),
        make_entry("e", "E", 13.5, level="13"),
    ]
    history = [make_play("a", 990_000), make_play("b", 975_000), make_play("c", 1_000_000), make_play("d", 950_000)]
    universe = build_universe(catalog, history, [])
    ctx = make_ctx(universe)
    songs = [s for s in universe.best if s.id in ("a", "b", "c")]

    for _ in range(200):
        result = step_list(songs, LIST_B30, ctx)
        if result.stuck:
            break
        _assert_not_lowered(songs, result.songs)
        assert len(result.songs) == len(songs)
        assert average_rating(result.songs, 30) >= average_rating(songs, 30)
        songs = result.songs
    else:
        pytest.fail("step_list did not settle")

    # c → d、b → e の順に入れ替わり、全曲が上限に達して止まる
    assert {s.id for s in songs} == {"a", "d", "e"}
    assert all(s.target_score == 1_009_000 for s in songs)


@pytest.mark.light
def test_step_list_n20_never_lowers_targets(make_songs, make_entry, make_play, make_ctx):
    best = make_songs("b", 30, 14.0, 1_000_000)
    catalog = [make_entry("n1", "New One", 13.0, level="13"), make_entry("n2", "New Two", 14.5)]
    history = [make_play("n1", 1_000_000), make_play("n2", 950_000)]
    universe = build_universe(catalog, history, ["New One", "New Two"])
    ctx = make_ctx(universe)
    new = [s for s in universe.new if s.id == "n1"]

    for _ in range(200):
        result = step_list(new, LIST_N20, ctx)
        if result.stuck:
            break
        _assert_not_lowered(new, result.songs)
        assert len(result.songs) >= len(new)
        # 追加は現在スコアのまま入るので全体が下がることがある
        if len(result.songs) == len(new):
            assert lists_overall(best, result.songs) >= lists_overall(best, new)
        new = result.songs
    else:
        pytest.fail("step_list did not settle")

    assert {s.id for s in new} == {"n1", "n2"}
    assert any(line.startswith("[N20_REPLACE_ADD] Added") for line in ctx.trace)
