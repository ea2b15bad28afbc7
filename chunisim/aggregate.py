"""
リスト単位のレーティング集計。

Best30 / New20 の平均と、2つの平均を曲数で重み付けした全体レーティングを計算する。
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence

from chunisim.models import BEST_COUNT, NEW_COUNT, Song
from chunisim.rating import SCORE_MAX


def average_rating(songs: Sequence[Song], capacity: int, use_target: bool = True) -> Optional[float]:
    """
    上位 capacity 曲の平均レーティングを返す。

    Args:
        songs: 対象の曲。
        capacity: 平均に含める最大曲数。
        use_target: True なら target_rating、False なら current_rating を使う。

    Returns:
        小数第4位で丸めた平均。曲が無い場合は None。
    """
    if not songs:
        return None

    values = sorted(
        (s.target_rating if use_target else s.current_rating for s in songs),
        reverse=True,
    )[:capacity]
    return round(sum(values) / len(values), 4)


def overall_rating(
    avg_b30: Optional[float],
    avg_n20: Optional[float],
    count_b30: int,
    count_n20: int,
) -> float:
    """
    Best30 平均と New20 平均を曲数で重み付けした全体レーティングを返す。

    曲数はそれぞれ 30 / 20 を上限とし、平均が None のリストは重み 0 として扱う。
    """
    weight_b30 = min(count_b30, BEST_COUNT) if avg_b30 is not None else 0
    weight_n20 = min(count_n20, NEW_COUNT) if avg_n20 is not None else 0
    total = weight_b30 + weight_n20
    if total <= 0:
        return 0.0

    weighted = (avg_b30 or 0.0) * weight_b30 + (avg_n20 or 0.0) * weight_n20
    return round(weighted / total, 4)


def lists_overall(best_songs: Sequence[Song], new_songs: Sequence[Song], use_target: bool = True) -> float:
    """2つのリストから直接全体レーティングを計算する。"""
    return overall_rating(
        average_rating(best_songs, BEST_COUNT, use_target),
        average_rating(new_songs, NEW_COUNT, use_target),
        len(best_songs),
        len(new_songs),
    )


@dataclass(frozen=True)
class UpdatableSplit:
    """
    Best30 を更新可能/不可能に分けた結果。

    Attributes:
        non_updatable: スコアが 1,009,000 以上でこれ以上伸ばせない曲。
        updatable: まだスコアを伸ばせる曲。
        updatable_average: updatable の現在レーティング平均(小数第2位)。
        group_a: updatable のうち平均以下の曲をレーティング昇順に並べたもの。
    """

    non_updatable: List[Song]
    updatable: List[Song]
    updatable_average: Optional[float]
    group_a: List[Song]


def classify_updatable(best_songs: Sequence[Song]) -> UpdatableSplit:
    """Best30 を更新可能/不可能に分類し、平均以下のグループAを抽出する。"""
    non_updatable = [s for s in best_songs if s.current_score >= SCORE_MAX]
    updatable = [s for s in best_songs if s.current_score < SCORE_MAX]

    if not updatable:
        return UpdatableSplit(non_updatable, updatable, None, [])

    average = round(sum(s.current_rating for s in updatable) / len(updatable), 2)
    group_a = sorted(
        (s for s in updatable if s.current_rating <= average),
        key=lambda s: s.current_rating,
    )
    return UpdatableSplit(non_updatable, updatable, average, group_a)
