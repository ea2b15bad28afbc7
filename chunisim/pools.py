"""
入れ替え候補プールの構築。

シミュレーション開始時に全曲マスタとプレイ履歴から候補の母集団(CandidateUniverse)を1度だけ作り、
入れ替えのたびに現在のリスト内容に応じて絞り込む。

- Best30 の母集団: 新曲以外で譜面定数が決まる全譜面(未プレイはスコア0)
- New20 の母集団: スコア 800,000 以上でプレイ済みの新曲譜面
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Mapping, Optional, Sequence, Tuple

from chunisim.mapper import history_index, is_new_song, played_new_songs, song_from_catalog
from chunisim.models import LIST_B30, CatalogEntry, PlayRecord, Song, SongKey
from chunisim.normalize import title_set
from chunisim.rating import max_rating

RATING_EPSILON = 0.00005


@dataclass(frozen=True)
class CandidateUniverse:
    """Best30 / New20 それぞれの候補母集団。"""

    best: Tuple[Song, ...]
    new: Tuple[Song, ...]

    def source(self, list_kind: str) -> Tuple[Song, ...]:
        return self.best if list_kind == LIST_B30 else self.new


def build_universe(
    catalog: Iterable[CatalogEntry],
    history: Iterable[PlayRecord],
    new_song_titles: Iterable[str],
    overrides: Optional[Mapping[SongKey, float]] = None,
) -> CandidateUniverse:
    """
    候補母集団を構築する。

    Args:
        catalog: 全曲マスタ。
        history: プレイ履歴。
        new_song_titles: 新曲の曲名リスト。
        overrides: (id, diff) ごとの譜面定数上書き。

    Returns:
        CandidateUniverse。
    """
    catalog = list(catalog)
    history = list(history)
    new_song_titles = list(new_song_titles)
    overrides = overrides or {}

    titles = title_set(new_song_titles)
    plays = history_index(history)

    best: List[Song] = []
    seen: set = set()
    for entry in catalog:
        if entry.key in seen or is_new_song(entry.title, titles):
            continue
        song = song_from_catalog(entry, plays.get(entry.key), overrides.get(entry.key))
        if song.chart_constant is None:
            continue
        seen.add(entry.key)
        best.append(song)

    new = played_new_songs(catalog, history, new_song_titles, overrides)
    return CandidateUniverse(best=tuple(best), new=tuple(new))


def weakest_rating(songs: Sequence[Song]) -> float:
    """リスト内の最小 target_rating を返す。空なら 0。"""
    if not songs:
        return 0.0
    return min(s.target_rating for s in songs)


def candidate_pool(
    universe: CandidateUniverse,
    list_kind: str,
    own: Sequence[Song],
    exclude: Sequence[Song] = (),
    threshold: Optional[float] = None,
    released: bool = False,
) -> List[Song]:
    """
    リストへ入れられる候補を返す。

    Args:
        universe: 候補母集団。
        list_kind: "b30" または "n20"。
        own: 対象リストの現在の曲。これらは候補から除外する。
        exclude: 追加で除外する曲(ハイブリッド時のもう一方のリスト)。
        threshold: 指定時、上限スコアでのレーティングがこの値を
            RATING_EPSILON より大きく上回る候補だけを残す。
        released: スコア上限を 1,010,000 とするかどうか。

    Returns:
        (id, diff) が重複しない候補 Song のリスト。
    """
    blocked = {s.key for s in own}
    blocked.update(s.key for s in exclude)

    pool: List[Song] = []
    for song in universe.source(list_kind):
        if song.key in blocked:
            continue
        if song.chart_constant is None or song.chart_constant <= 0:
            continue
        if threshold is not None and max_rating(song.chart_constant, released) - threshold <= RATING_EPSILON:
            continue
        blocked.add(song.key)
        pool.append(song)
    return pool
