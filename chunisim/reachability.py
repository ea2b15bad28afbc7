"""
目標到達可能性の事前判定。

b30_only / n20_only で探索を始める前に、対象リストの全曲と全候補を上限スコアにした
理論上の最大レーティングを求める。目標がこれを超える場合は探索せずに終了する。
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import List, Optional, Sequence

from chunisim.aggregate import lists_overall
from chunisim.mapper import sort_songs
from chunisim.models import LIST_N20, Song, list_capacity
from chunisim.pools import CandidateUniverse, candidate_pool
from chunisim.rating import calculate_rating, score_cap


@dataclass(frozen=True)
class Ceiling:
    """
    理論上の最大値。

    Attributes:
        songs: 対象リストを上限スコアにした場合の上位曲。
        overall: そのときの全体レーティング。
    """

    songs: List[Song]
    overall: float


def _maxed_union(
    songs: Sequence[Song],
    list_kind: str,
    universe: CandidateUniverse,
    released: bool,
) -> List[Song]:
    cap = score_cap(released)
    pool = candidate_pool(universe, list_kind, songs, released=released)

    # 定数の無い曲は伸ばせないので現在値のまま残す
    maxed = [
        replace(s, target_score=cap, target_rating=calculate_rating(cap, s.chart_constant))
        if s.chart_constant
        else s
        for s in [*songs, *pool]
    ]
    return sort_songs(maxed, use_target=True)


def maxed_list(
    songs: Sequence[Song],
    list_kind: str,
    universe: CandidateUniverse,
    released: bool = False,
) -> List[Song]:
    """対象リストの曲と全候補を上限スコアにし、上位 capacity 曲を返す。"""
    return _maxed_union(songs, list_kind, universe, released)[: list_capacity(list_kind)]


def compute_ceiling(
    best_songs: Sequence[Song],
    new_songs: Sequence[Song],
    list_kind: str,
    universe: CandidateUniverse,
    released: bool = False,
) -> Ceiling:
    """
    一方のリストを固定したまま、もう一方を最大化した場合の全体レーティングを求める。

    対象リストの曲数は現在の曲数から capacity までの各長さを試し、
    全体レーティングが最大になる長さを採用する。

    Args:
        best_songs: 現在の Best30。
        new_songs: 現在の New20。
        list_kind: 最大化するリスト("b30" / "n20")。
        universe: 候補母集団。
        released: スコア上限を 1,010,000 とするかどうか。
    """
    focus = new_songs if list_kind == LIST_N20 else best_songs
    union = _maxed_union(focus, list_kind, universe, released)
    capacity = list_capacity(list_kind)

    best: Optional[Ceiling] = None
    for length in range(min(len(focus), capacity), min(len(union), capacity) + 1):
        songs = union[:length]
        if list_kind == LIST_N20:
            overall = lists_overall(best_songs, songs)
        else:
            overall = lists_overall(songs, new_songs)
        if best is None or overall > best.overall:
            best = Ceiling(songs, overall)
    return best
