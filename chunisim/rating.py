"""
単曲レーティング計算モジュール。

スコアと譜面定数から単曲レーティングを求める計算式と、
ランク境界スコアの参照、目標レーティングに必要な最小スコアの探索を提供する。

計算式の方針:
- 境界スコア(SSS+/SSS/SS+/SS/S/AA/A/BBB)ごとに帯を分け、帯ごとの傾きと上限で補間する
- 800,000 未満は 0
- 譜面定数が無い(または 0 以下)場合は常に 0
- 結果は小数第4位で丸める
"""

from __future__ import annotations

import math
from typing import NamedTuple, Optional

from chunisim.models import Song

SCORE_MAX = 1_009_000
SCORE_MAX_RELEASED = 1_010_000
MIN_PLAYED_SCORE = 800_000

# leap で使う境界。これより下の帯は 975,000 へ直接ジャンプする。
GRADE_BOUNDARIES = (975_000, 1_000_000, 1_005_000, 1_007_500, 1_009_000)

DIFFICULTY_ORDER = {
    "ULT": 5,
    "MAS": 4,
    "EXP": 3,
    "ADV": 2,
    "BAS": 1,
}


class MinScoreResult(NamedTuple):
    """最小スコア探索の結果。possible が False の場合 score は上限スコア。"""

    score: int
    rating: float
    possible: bool


def score_cap(released: bool) -> int:
    """スコア上限を返す。限界突破時は 1,010,000、通常は 1,009,000。"""
    return SCORE_MAX_RELEASED if released else SCORE_MAX


def difficulty_rank(diff: Optional[str]) -> int:
    """難易度の序列(ULT=5 ... BAS=1)を返す。不明な難易度は 0。"""
    return DIFFICULTY_ORDER.get((diff or "").upper(), 0)


def _band_bonus(score: int, base: int, step: int) -> float:
    return math.floor(max(0, score - base) / step) * 0.01


def calculate_rating(score: int, chart_constant: Optional[float]) -> float:
    """
    スコアと譜面定数から単曲レーティングを計算する。

    Args:
        score: スコア(0〜1,010,000)。
        chart_constant: 譜面定数。None または 0 以下なら 0 を返す。

    Returns:
        小数第4位で丸めた単曲レーティング(0以上)。
    """
    if chart_constant is None or chart_constant <= 0:
        return 0.0

    c = float(chart_constant)

    if score >= 1_009_000:
        value = c + 2.15
    elif score >= 1_007_500:
        value = min(c + 2.15, c + 2.00 + _band_bonus(score, 1_007_500, 100))
    elif score >= 1_005_000:
        value = min(c + 2.00, c + 1.50 + _band_bonus(score, 1_005_000, 50))
    elif score >= 1_000_000:
        value = min(c + 1.50, c + 1.00 + _band_bonus(score, 1_000_000, 100))
    elif score >= 975_000:
        value = min(c + 1.00, c + _band_bonus(score, 975_000, 250))
    elif score >= 950_000:
        value = c - 1.50
    elif score >= 925_000:
        value = c - 3.00
    elif score >= 900_000:
        value = c - 5.00
    elif score >= MIN_PLAYED_SCORE:
        value = (c - 5.00) / 2.0
    else:
        value = 0.0

    return max(0.0, round(value, 4))


def max_rating(chart_constant: Optional[float], released: bool = False) -> float:
    """上限スコアで得られる単曲レーティングを返す。"""
    return calculate_rating(score_cap(released), chart_constant)


def next_grade_boundary(score: int) -> Optional[int]:
    """
    現在スコアより上にある最も近い境界スコアを返す。

    1,009,000 以上の場合はこれ以上の境界が無いため None。
    """
    for boundary in GRADE_BOUNDARIES:
        if score < boundary:
            return boundary
    return None


def find_min_score_for_rating(
    song: Song,
    target_rating: float,
    released: bool = False,
) -> MinScoreResult:
    """
    目標レーティングに届く最小スコアを探索する。

    現在スコア+1(未プレイなら1)から上限スコアまでを対象とする。
    計算式はスコアに対して単調非減少なので二分探索で求める。

    Args:
        song: 対象の曲。current_score を探索の起点にする。
        target_rating: 到達したい単曲レーティング。
        released: スコア上限を 1,010,000 にするかどうか。

    Returns:
        MinScoreResult。上限スコアでも届かない場合 possible=False。
    """
    constant = song.chart_constant
    if constant is None or constant <= 0:
        return MinScoreResult(song.current_score, song.current_rating, False)

    cap = score_cap(released)

    if song.current_rating >= target_rating and song.current_score > 0:
        return MinScoreResult(song.current_score, song.current_rating, True)

    low = song.current_score + 1 if song.current_score > 0 else 1
    rating_at_cap = calculate_rating(cap, constant)
    if low > cap or rating_at_cap < target_rating:
        return MinScoreResult(cap, rating_at_cap, False)

    high = cap
    while low < high:
        mid = (low + high) // 2
        if calculate_rating(mid, constant) >= target_rating:
            high = mid
        else:
            low = mid + 1

    return MinScoreResult(low, calculate_rating(low, constant), True)


def should_release_score_limit(current_rating: Optional[float], target_rating: Optional[float]) -> bool:
    """
    スコア上限を限界突破扱いにするかを判定する。

    目標との差を 50 倍した値が 10 を超える(差が 0.2 を超える)場合に True。
    どちらかが None の場合は False。
    """
    if current_rating is None or target_rating is None:
        return False
    return (target_rating - current_rating) * 50 > 10
