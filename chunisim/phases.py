"""
単一リストに対する探索ステップ(leap → fine-tune → replace)。

1回の step_list 呼び出しで、優先順に各状態を試し、最初に変更が起きた時点で返す。
どの状態でも変更できなかった場合は changed=False(=stuck) とし、リストは元のまま返す。

候補の並び順はヒューリスティック(floor / peak)で決まる:
- floor: 高定数でない曲を先に、定数昇順 → target_rating 昇順 → target_score 昇順
- peak: target_rating 降順 → target_score 降順
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, replace
from typing import List, Optional, Sequence, Tuple

from chunisim.aggregate import average_rating, lists_overall
from chunisim.mapper import sort_songs
from chunisim.models import LIST_N20, PREFERENCE_FLOOR, Song, list_capacity
from chunisim.pools import RATING_EPSILON, CandidateUniverse, candidate_pool, weakest_rating
from chunisim.rating import (
    calculate_rating,
    find_min_score_for_rating,
    max_rating,
    next_grade_boundary,
    score_cap,
)

logger = logging.getLogger(__name__)

FINE_TUNE_STEP = 0.0001
UNPLAYED_PENALTY = 1_000_000
HIGH_CONSTANT_MARGIN = 1.8


@dataclass
class SearchContext:
    """
    1回のシミュレーションで共有する探索設定とトレースログ。

    Attributes:
        preference: floor / peak。
        released: スコア上限を 1,010,000 とするかどうか。
        universe: 入れ替え候補の母集団。
        trace: 状態遷移を記録する文字列ログ。
    """

    preference: str
    released: bool
    universe: CandidateUniverse
    trace: List[str] = field(default_factory=list)

    @property
    def cap(self) -> int:
        return score_cap(self.released)

    def log(self, message: str) -> None:
        self.trace.append(message)
        logger.debug(message)


@dataclass
class PhaseResult:
    """1ステップの結果。songs は変更後(変更なしなら元と同じ内容)のリスト。"""

    songs: List[Song]
    changed: bool = False
    action: Optional[str] = None
    before: Optional[Song] = None
    after: Optional[Song] = None

    @property
    def stuck(self) -> bool:
        return not self.changed


def can_improve(song: Song, released: bool) -> bool:
    """譜面定数があり、スコア上限未満で、まだレーティングを上げられる曲かどうか。"""
    if song.chart_constant is None or song.chart_constant <= 0:
        return False
    if song.target_score >= score_cap(released):
        return False
    return max_rating(song.chart_constant, released) - song.target_rating > RATING_EPSILON


def is_high_constant(song: Song, list_average: Optional[float]) -> bool:
    """floor 戦略で後回しにする高定数曲かどうか。閾値は (平均 - 1.8) を小数第1位で切り捨てた値。"""
    if not song.chart_constant or list_average is None:
        return False
    threshold = math.floor((list_average - HIGH_CONSTANT_MARGIN) * 10) / 10
    return song.chart_constant > threshold


def heuristic_key(song: Song, preference: str, list_average: Optional[float]) -> Tuple:
    """候補の並び替えキーを返す。"""
    if preference == PREFERENCE_FLOOR:
        return (
            is_high_constant(song, list_average),
            song.chart_constant,
            song.target_rating,
            song.target_score,
        )
    return (-song.target_rating, -song.target_score)


def order_candidates(songs: Sequence[Song], preference: str, list_average: Optional[float]) -> List[Song]:
    """ヒューリスティックに従って候補を並べ替えた新しいリストを返す。"""
    return sorted(songs, key=lambda s: heuristic_key(s, preference, list_average))


def _swap(songs: Sequence[Song], old: Song, new: Song) -> List[Song]:
    updated = [new if s.key == old.key else s for s in songs]
    return sort_songs(updated, use_target=True)


def try_leap(songs: Sequence[Song], song: Song, ctx: SearchContext, label: str) -> PhaseResult:
    """
    song を次の境界スコアまで引き上げる。

    レーティングが RATING_EPSILON より大きく上がる場合のみ確定する。
    """
    boundary = next_grade_boundary(song.target_score)
    if boundary is None or boundary > ctx.cap or song.target_score >= boundary:
        ctx.log(f"[{label}_LEAP] {song.title} ({song.diff}) cannot leap further.")
        return PhaseResult(list(songs))

    leaped_rating = calculate_rating(boundary, song.chart_constant)
    if leaped_rating <= song.target_rating + RATING_EPSILON:
        ctx.log(f"[{label}_LEAP] Leap for {song.title} ({song.diff}) gives no rating gain.")
        return PhaseResult(list(songs))

    leaped = replace(song, target_score=boundary, target_rating=leaped_rating)
    ctx.log(
        f"[{label}_LEAP] Leaped {song.title} ({song.diff}) "
        f"{song.target_score} -> {boundary}, rating {song.target_rating:.4f} -> {leaped_rating:.4f}"
    )
    return PhaseResult(_swap(songs, song, leaped), True, "leap", song, leaped)


def fine_tune_song(song: Song, ctx: SearchContext) -> Optional[Song]:
    """song のレーティングを FINE_TUNE_STEP 以上上げる最小スコアを適用した値を返す。不可能なら None。"""
    result = find_min_score_for_rating(song, song.target_rating + FINE_TUNE_STEP, ctx.released)
    if not result.possible or result.score <= song.target_score or result.score > ctx.cap:
        return None
    return replace(song, target_score=result.score, target_rating=result.rating)


def try_fine_tune(songs: Sequence[Song], candidates: Sequence[Song], ctx: SearchContext, label: str) -> PhaseResult:
    """候補を順に調べ、最初に微調整できた1曲だけを確定する。"""
    for song in candidates:
        tuned = fine_tune_song(song, ctx)
        if tuned is None:
            continue
        ctx.log(
            f"[{label}_FINETUNE] Tuned {song.title} ({song.diff}) "
            f"{song.target_score} -> {tuned.target_score}, rating {tuned.target_rating:.4f}"
        )
        return PhaseResult(_swap(songs, song, tuned), True, "fine_tune", song, tuned)

    ctx.log(f"[{label}_FINETUNE] No songs were fine-tuned in this pass.")
    return PhaseResult(list(songs))


def _replacement_key(effort: int, candidate: Song, rating: float, preference: str) -> Tuple:
    if preference == PREFERENCE_FLOOR:
        return (effort, candidate.chart_constant)
    return (effort, -rating, -(candidate.chart_constant or 0))


def _try_add(
    songs: Sequence[Song],
    list_kind: str,
    ctx: SearchContext,
    exclude: Sequence[Song],
    label: str,
) -> PhaseResult:
    pool = candidate_pool(
        ctx.universe, list_kind, songs, exclude, weakest_rating(songs), ctx.released
    )
    if not pool:
        ctx.log(f"[{label}_REPLACE_ADD] List not full, but no more songs in pool to add.")
        return PhaseResult(list(songs))

    added = sort_songs(pool)[0]
    added = replace(added, target_score=added.current_score, target_rating=added.current_rating)
    updated = sort_songs([*songs, added], use_target=True)[: list_capacity(list_kind)]
    ctx.log(f"[{label}_REPLACE_ADD] Added {added.title} ({added.diff}). New count: {len(updated)}")
    return PhaseResult(updated, True, "add", None, added)


def try_replace(
    songs: Sequence[Song],
    list_kind: str,
    ctx: SearchContext,
    exclude: Sequence[Song] = (),
) -> PhaseResult:
    """
    最弱曲を、最小の追加スコアでそれを上回れる候補と入れ替える。

    New20 が上限未満の場合は、まずプール内で最もレーティングの高い候補の追加を試みる。
    労力は (必要スコア - 現在スコア)。未プレイ曲は必要スコア + 1,000,000 として後回しにする。
    同じ労力の候補は floor なら低定数、peak なら高レーティング → 高定数を優先する。

    Args:
        songs: 対象リスト。
        list_kind: "b30" または "n20"。
        ctx: 探索コンテキスト。
        exclude: 候補から除外する曲(ハイブリッド時のもう一方のリスト)。
    """
    label = list_kind.upper()
    capacity = list_capacity(list_kind)

    if list_kind == LIST_N20 and len(songs) < capacity:
        added = _try_add(songs, list_kind, ctx, exclude, label)
        if added.changed:
            return added

    if not songs:
        ctx.log(f"[{label}_REPLACE] No song to replace (list is empty).")
        return PhaseResult([])

    evicted = sort_songs(songs, use_target=True)[-1]
    required = evicted.target_rating + FINE_TUNE_STEP
    pool = candidate_pool(
        ctx.universe, list_kind, songs, exclude, evicted.target_rating, ctx.released
    )
    ctx.log(
        f"[{label}_REPLACE] Attempting to replace {evicted.title} ({evicted.diff}) "
        f"rating {evicted.target_rating:.4f}; {len(pool)} candidates."
    )

    best: Optional[Tuple[Tuple, Song]] = None
    for candidate in pool:
        result = find_min_score_for_rating(candidate, required, ctx.released)
        if not result.possible:
            continue
        if candidate.current_score > 0:
            effort = result.score - candidate.current_score
        else:
            effort = result.score + UNPLAYED_PENALTY
        key = _replacement_key(effort, candidate, result.rating, ctx.preference)
        if best is None or key < best[0]:
            best = (key, replace(candidate, target_score=result.score, target_rating=result.rating))

    if best is None:
        ctx.log(f"[{label}_REPLACE] No suitable replacement candidate for {evicted.title} ({evicted.diff}).")
        return PhaseResult(list(songs))

    incoming = best[1]
    remaining = [s for s in songs if s.key != evicted.key]
    updated = sort_songs([*remaining, incoming], use_target=True)[:capacity]
    ctx.log(
        f"[{label}_REPLACE] Replaced {evicted.title} ({evicted.diff}) with {incoming.title} ({incoming.diff}) "
        f"score {incoming.target_score}, rating {incoming.target_rating:.4f}"
    )
    return PhaseResult(updated, True, "replace", evicted, incoming)


def improvable_candidates(songs: Sequence[Song], ctx: SearchContext, list_average: Optional[float]) -> List[Song]:
    """改善可能な曲をヒューリスティック順に返す。"""
    updatable = [s for s in songs if can_improve(s, ctx.released)]
    return order_candidates(updatable, ctx.preference, list_average)


def step_list(
    songs: Sequence[Song],
    list_kind: str,
    ctx: SearchContext,
    exclude: Sequence[Song] = (),
) -> PhaseResult:
    """
    1リストに対して leap → fine-tune → replace の順に1回だけ変更を試みる。

    Returns:
        最初に成功した状態の PhaseResult。どれも失敗した場合 changed=False。
    """
    label = list_kind.upper()
    average = average_rating(songs, list_capacity(list_kind))
    candidates = improvable_candidates(songs, ctx, average)

    if candidates:
        leap = try_leap(songs, candidates[0], ctx, label)
        if leap.changed:
            return leap
        tuned = try_fine_tune(songs, candidates, ctx, label)
        if tuned.changed:
            return tuned
    else:
        ctx.log(f"[{label}_PHASE] No updatable songs.")

    return try_replace(songs, list_kind, ctx, exclude)


@dataclass
class SearchOutcome:
    """探索ループの終了状態。"""

    best_songs: List[Song]
    new_songs: List[Song]
    reached: bool = False
    stuck: bool = False
    budget_exhausted: bool = False
    iterations: int = 0


def run_single_list(
    best_songs: Sequence[Song],
    new_songs: Sequence[Song],
    list_kind: str,
    target_rating: float,
    ctx: SearchContext,
    max_iterations: int,
) -> SearchOutcome:
    """
    一方のリストだけを step_list で繰り返し改善する。もう一方のリストは固定する。

    目標到達、stuck、反復上限のいずれかで終了する。
    """
    label = list_kind.upper()
    focus = sort_songs(best_songs if list_kind != LIST_N20 else new_songs, use_target=True)
    other = list(new_songs if list_kind != LIST_N20 else best_songs)

    def _pair(songs: List[Song]) -> Tuple[List[Song], List[Song]]:
        return (other, songs) if list_kind == LIST_N20 else (songs, other)

    for iteration in range(1, max_iterations + 1):
        previous = lists_overall(*_pair(focus))
        ctx.log(f"[{label}_ITERATION {iteration}] Overall: {previous:.4f}")

        result = step_list(focus, list_kind, ctx)
        if result.stuck:
            ctx.log(f"[{label}_STUCK] {label} simulation could not make further progress.")
            return SearchOutcome(*_pair(focus), stuck=True, iterations=iteration)

        focus = result.songs
        current = lists_overall(*_pair(focus))
        ctx.log(f"[{label}_{result.action.upper()}_RESULT] Overall: {previous:.4f} -> {current:.4f}")
        if current >= target_rating:
            return SearchOutcome(*_pair(focus), reached=True, iterations=iteration)

    ctx.log(f"[{label}_BUDGET] Reached max {label} iterations ({max_iterations}).")
    return SearchOutcome(*_pair(focus), budget_exhausted=True, iterations=max_iterations)
