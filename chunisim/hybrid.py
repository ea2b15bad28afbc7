"""
Best30 と New20 を同時に扱うハイブリッド探索。

各反復で両リストの改善可能な曲を1つの候補列にまとめ、ヒューリスティック順で先頭の1曲に
leap(失敗時は fine-tune)を適用する。変更できない、または全体レーティングが
ほぼ動かなかった反復では、両リストそれぞれで入れ替えを試みる。
入れ替えはもう一方のリストに載っている曲を候補から除外する。
"""

from __future__ import annotations

from typing import List, Sequence, Tuple

from chunisim.aggregate import average_rating, lists_overall
from chunisim.mapper import sort_songs
from chunisim.models import BEST_COUNT, LIST_B30, LIST_N20, NEW_COUNT, Song
from chunisim.phases import (
    SearchContext,
    SearchOutcome,
    can_improve,
    heuristic_key,
    try_fine_tune,
    try_leap,
    try_replace,
)

PROGRESS_EPSILON = 0.00001


def _tagged_candidates(
    best_songs: Sequence[Song],
    new_songs: Sequence[Song],
    ctx: SearchContext,
) -> List[Tuple[Song, str]]:
    """両リストの改善可能な曲をリスト種別付きでヒューリスティック順に並べる。"""
    averages = {
        LIST_B30: average_rating(best_songs, BEST_COUNT),
        LIST_N20: average_rating(new_songs, NEW_COUNT),
    }
    tagged = [(s, LIST_B30) for s in best_songs if can_improve(s, ctx.released)]
    tagged += [(s, LIST_N20) for s in new_songs if can_improve(s, ctx.released)]
    return sorted(tagged, key=lambda item: heuristic_key(item[0], ctx.preference, averages[item[1]]))


def _truncate(best_songs: Sequence[Song], new_songs: Sequence[Song]) -> Tuple[List[Song], List[Song]]:
    # 目標スコア基準で並べ直して上限を超えた分を落とす
    return (
        sort_songs(best_songs, use_target=True)[:BEST_COUNT],
        sort_songs(new_songs, use_target=True)[:NEW_COUNT],
    )


def run_hybrid(
    best_songs: Sequence[Song],
    new_songs: Sequence[Song],
    target_rating: float,
    ctx: SearchContext,
    max_iterations: int,
) -> SearchOutcome:
    """
    ハイブリッド探索を実行する。

    Args:
        best_songs: Best30 の作業用リスト。
        new_songs: New20 の作業用リスト。
        target_rating: 目標の全体レーティング。
        ctx: 探索コンテキスト。
        max_iterations: 反復上限。

    Returns:
        SearchOutcome。目標到達で reached、入れ替えもできなければ stuck、
        上限到達で budget_exhausted を立てる。
    """
    best, new = _truncate(best_songs, new_songs)

    for iteration in range(1, max_iterations + 1):
        before = lists_overall(best, new)
        ctx.log(f"[HYBRID_ITERATION {iteration}] Overall: {before:.4f}")

        changed = False
        candidates = _tagged_candidates(best, new, ctx)
        if candidates:
            song, list_kind = candidates[0]
            own = best if list_kind == LIST_B30 else new
            label = list_kind.upper()
            result = try_leap(own, song, ctx, label)
            if not result.changed:
                result = try_fine_tune(own, [song], ctx, label)
            if result.changed:
                changed = True
                if list_kind == LIST_B30:
                    best = result.songs
                else:
                    new = result.songs
        else:
            ctx.log("[HYBRID] No updatable songs in either list.")

        best, new = _truncate(best, new)
        after = lists_overall(best, new)
        if after >= target_rating:
            ctx.log(f"[HYBRID_REACHED] Overall: {after:.4f}")
            return SearchOutcome(best, new, reached=True, iterations=iteration)

        if changed and abs(after - before) >= PROGRESS_EPSILON:
            continue

        ctx.log("[HYBRID_REPLACEMENT_CHECK] No progress from tuning. Attempting replacement on both lists.")
        best_result = try_replace(best, LIST_B30, ctx, exclude=new)
        if best_result.changed:
            best = best_result.songs
            if lists_overall(best, new) >= target_rating:
                return SearchOutcome(best, new, reached=True, iterations=iteration)

        new_result = try_replace(new, LIST_N20, ctx, exclude=best)
        if new_result.changed:
            new = new_result.songs
            if lists_overall(best, new) >= target_rating:
                return SearchOutcome(best, new, reached=True, iterations=iteration)

        if not best_result.changed and not new_result.changed:
            ctx.log("[HYBRID_STUCK] Neither list can be improved further.")
            return SearchOutcome(best, new, stuck=True, iterations=iteration)

    ctx.log(f"[HYBRID_BUDGET] Reached max hybrid iterations ({max_iterations}).")
    return SearchOutcome(best, new, budget_exhausted=True, iterations=max_iterations)
