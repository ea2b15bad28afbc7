"""
API レコードから内部モデルへの変換処理。

chunirec の rating_data / music showall / records showall の各レコードを
Song・CatalogEntry・PlayRecord に正規化する。譜面定数の決定ルールと
ランキング用の並び順もここで定義する。

例外方針:
- 1レコード単位の変換関数は不正なレコードに対して ValidationError を送出する
- load_* 系の一括変換関数は ValidationError を捕捉して警告ログを出し、そのレコードを除外する
"""

from __future__ import annotations

import logging
import math
import re
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from chunisim.errors import ValidationError
from chunisim.models import NEW_COUNT, CatalogEntry, PlayRecord, Song, SongKey
from chunisim.normalize import normalize_diff, normalize_title, title_set
from chunisim.rating import MIN_PLAYED_SCORE, calculate_rating, difficulty_rank

logger = logging.getLogger(__name__)

_LEVEL_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)")


def _required_str(record: Mapping[str, Any], name: str) -> str:
    value = record.get(name)
    if value is None or str(value).strip() == "":
        raise ValidationError(f"{name} is missing: {record!r}")
    return str(value).strip()


def _optional_float(value: Any, name: str) -> Optional[float]:
    """数値または数値文字列を float に変換する。None はそのまま返す。"""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        if math.isnan(value):
            return None
        return float(value)
    text = str(value).strip()
    if text == "":
        return None
    try:
        return float(text)
    except ValueError as e:
        raise ValidationError(f"Invalid {name}: {value!r}") from e


def _score(value: Any) -> int:
    number = _optional_float(value, "score")
    if number is None:
        return 0
    if number < 0:
        raise ValidationError(f"Invalid score: {value!r}")
    return int(number)


def _optional_bool(value: Any) -> Optional[bool]:
    if value is None:
        return None
    return bool(value)


def parse_level(level: Any) -> Optional[float]:
    """
    表示レベルを数値として解釈する。

    "14+" のような表記は先頭の数値部分(14)として扱う。
    解釈できない場合や 0 以下の場合は None。
    """
    if level is None or isinstance(level, bool):
        return None
    if isinstance(level, (int, float)):
        return float(level) if level > 0 else None
    match = _LEVEL_RE.match(str(level))
    if not match:
        return None
    parsed = float(match.group(1))
    return parsed if parsed > 0 else None


def resolve_chart_constant(
    const: Optional[float],
    level: Any,
    is_const_unknown: bool = False,
    override: Optional[float] = None,
) -> Optional[float]:
    """
    譜面定数を決定する。

    優先順位:
    1. 上書き値(正の数)
    2. レコード上の譜面定数(正の数)
    3. 譜面定数がちょうど 0 の場合、レベルが整数または .5 のときだけレベルを採用
    4. それ以外で定数未確定フラグが立っている場合、正のレベルを採用

    Returns:
        譜面定数。決まらない場合は None。
    """
    if override is not None and override > 0:
        return float(override)

    if const is not None and const > 0:
        return float(const)

    parsed_level = parse_level(level)
    if const == 0:
        if parsed_level is None:
            return None
        # x.3 のような中間レベルは定数として信用しない
        if parsed_level % 1 == 0 or abs((parsed_level * 10) % 10 - 5) < 1e-9:
            return parsed_level
        return None

    if is_const_unknown and parsed_level is not None:
        return parsed_level

    return None


def compute_current_rating(score: int, chart_constant: Optional[float], provided: Optional[float]) -> float:
    """定数とスコアがあれば計算式で、無ければ提供値(無ければ0)で現在レーティングを決める。"""
    if chart_constant is not None and chart_constant > 0 and score > 0:
        return calculate_rating(score, chart_constant)
    if provided is not None:
        return round(provided, 4)
    return 0.0


def song_from_record(record: Mapping[str, Any], override: Optional[float] = None) -> Song:
    """
    rating_data / showall 形式の1レコードを Song に変換する。

    Raises:
        ValidationError: id/diff/title の欠落、数値項目の変換失敗。
    """
    song_id = _required_str(record, "id")
    diff = normalize_diff(_required_str(record, "diff"))
    title = _required_str(record, "title")

    score = _score(record.get("score"))
    const = _optional_float(record.get("const"), "const")
    level = record.get("level")
    is_const_unknown = bool(record.get("is_const_unknown", False))
    chart_constant = resolve_chart_constant(const, level, is_const_unknown, override)
    rating = compute_current_rating(score, chart_constant, _optional_float(record.get("rating"), "rating"))

    return Song(
        id=song_id,
        diff=diff,
        title=title,
        chart_constant=chart_constant,
        current_score=score,
        current_rating=rating,
        target_score=score,
        target_rating=rating,
        genre=record.get("genre"),
        level=None if level is None else str(level),
        release=record.get("release"),
        is_played=_optional_bool(record.get("is_played")),
        is_clear=_optional_bool(record.get("is_clear")),
        is_fullcombo=_optional_bool(record.get("is_fullcombo")),
        is_alljustice=_optional_bool(record.get("is_alljustice")),
        is_const_unknown=_optional_bool(record.get("is_const_unknown")),
    )


def catalog_entry_from_record(record: Mapping[str, Any]) -> CatalogEntry:
    """
    全曲マスタ(平坦化済み)の1レコードを CatalogEntry に変換する。

    Raises:
        ValidationError: id/diff/title の欠落、const の変換失敗。
    """
    level = record.get("level")
    return CatalogEntry(
        id=_required_str(record, "id"),
        title=_required_str(record, "title"),
        diff=normalize_diff(_required_str(record, "diff")),
        level=None if level is None else str(level),
        const=_optional_float(record.get("const"), "const"),
        is_const_unknown=bool(record.get("is_const_unknown", False)),
        release=record.get("release"),
        genre=record.get("genre"),
    )


def play_record_from_record(record: Mapping[str, Any]) -> PlayRecord:
    """
    プレイ履歴の1レコードを PlayRecord に変換する。

    Raises:
        ValidationError: id/diff の欠落、score/rating の変換失敗。
    """
    return PlayRecord(
        id=_required_str(record, "id"),
        diff=normalize_diff(_required_str(record, "diff")),
        score=_score(record.get("score")),
        rating=_optional_float(record.get("rating"), "rating"),
        is_clear=_optional_bool(record.get("is_clear")),
        is_fullcombo=_optional_bool(record.get("is_fullcombo")),
        is_alljustice=_optional_bool(record.get("is_alljustice")),
    )


def song_from_catalog(
    entry: CatalogEntry,
    play: Optional[PlayRecord] = None,
    override: Optional[float] = None,
) -> Song:
    """
    全曲マスタの譜面とプレイ結果を組み合わせて Song を作る。

    プレイ結果が無い譜面はスコア0・レーティング0(未プレイ)として扱う。
    """
    chart_constant = resolve_chart_constant(entry.const, entry.level, entry.is_const_unknown, override)
    score = play.score if play else 0
    provided = play.rating if play else None
    rating = compute_current_rating(score, chart_constant, provided) if play else 0.0

    return Song(
        id=entry.id,
        diff=entry.diff,
        title=entry.title,
        chart_constant=chart_constant,
        current_score=score,
        current_rating=rating,
        target_score=score,
        target_rating=rating,
        genre=entry.genre,
        level=entry.level,
        release=entry.release,
        is_played=play is not None and play.score > 0,
        is_clear=play.is_clear if play else None,
        is_fullcombo=play.is_fullcombo if play else None,
        is_alljustice=play.is_alljustice if play else None,
        is_const_unknown=entry.is_const_unknown,
    )


def sort_songs(songs: Iterable[Song], use_target: bool = False) -> List[Song]:
    """
    ランキング順(レーティング降順 → スコア降順 → 難易度降順)に並べた新しいリストを返す。

    Args:
        songs: 対象の曲。
        use_target: True なら target_rating/target_score、False なら current_* で並べる。
    """
    if use_target:
        return sorted(
            songs,
            key=lambda s: (-s.target_rating, -s.target_score, -difficulty_rank(s.diff)),
        )
    return sorted(
        songs,
        key=lambda s: (-s.current_rating, -s.current_score, -difficulty_rank(s.diff)),
    )


def flatten_music_showall(payload: Any) -> List[Dict[str, Any]]:
    """
    music/showall のレスポンスを譜面単位の平坦なレコード列に変換する。

    対応する形:
    - [{"meta": {...}, "data": {"MAS": {...}, ...}}, ...]
    - {"records": [...]} (上記または平坦なレコードのリスト)
    - 平坦なレコードのリスト
    """
    if isinstance(payload, Mapping):
        raw = payload.get("records") or []
    elif isinstance(payload, list):
        raw = payload
    else:
        return []

    flattened: List[Dict[str, Any]] = []
    for item in raw:
        if not isinstance(item, Mapping):
            continue
        meta = item.get("meta")
        data = item.get("data")
        if not isinstance(meta, Mapping) or not isinstance(data, Mapping):
            flattened.append(dict(item))
            continue

        for diff_key, diff_data in data.items():
            if not isinstance(diff_data, Mapping) or not meta.get("id") or not meta.get("title"):
                continue
            flattened.append(
                {
                    "id": str(meta["id"]),
                    "title": str(meta["title"]),
                    "genre": str(meta.get("genre") or "N/A"),
                    "release": str(meta.get("release") or ""),
                    "diff": str(diff_key).upper(),
                    "level": str(diff_data.get("level") or "N/A"),
                    "const": diff_data.get("const"),
                    "is_const_unknown": diff_data.get("is_const_unknown") is True,
                }
            )
    return flattened


def load_catalog(records: Iterable[Mapping[str, Any]]) -> List[CatalogEntry]:
    """全曲マスタを一括変換する。不正なレコードは警告ログを出して除外する。"""
    entries: List[CatalogEntry] = []
    seen: set = set()
    for record in records:
        try:
            entry = catalog_entry_from_record(record)
        except ValidationError as e:
            logger.warning("Skipping invalid catalog record: %s", e)
            continue
        if entry.key in seen:
            continue
        seen.add(entry.key)
        entries.append(entry)
    return entries


def load_history(records: Iterable[Mapping[str, Any]]) -> List[PlayRecord]:
    """プレイ履歴を一括変換する。不正なレコードは警告ログを出して除外する。"""
    plays: List[PlayRecord] = []
    for record in records:
        try:
            plays.append(play_record_from_record(record))
        except ValidationError as e:
            logger.warning("Skipping invalid play record: %s", e)
    return plays


def history_index(history: Iterable[PlayRecord]) -> Dict[SongKey, PlayRecord]:
    """プレイ履歴を (id, diff) で引ける辞書にする。同一キーは最高スコアを残す。"""
    index: Dict[SongKey, PlayRecord] = {}
    for play in history:
        existing = index.get(play.key)
        if existing is None or play.score > existing.score:
            index[play.key] = play
    return index


def best_songs_from_rating_data(
    payload: Any,
    overrides: Optional[Mapping[SongKey, float]] = None,
) -> List[Song]:
    """
    rating_data のレスポンスから開始時点の Best30 を作る。

    best.entries のうち score を持ち、rating か const のどちらかがあるものを対象とする。
    """
    overrides = overrides or {}
    best = payload.get("best") if isinstance(payload, Mapping) else None
    entries = best.get("entries") if isinstance(best, Mapping) else None

    songs: List[Song] = []
    seen: set = set()
    for record in entries or []:
        if not isinstance(record, Mapping):
            continue
        if record.get("rating") is None and record.get("const") is None:
            logger.warning("Skipping rating entry without rating/const: %r", record.get("title"))
            continue
        try:
            key = (str(record.get("id", "")).strip(), normalize_diff(record.get("diff")))
            song = song_from_record(record, overrides.get(key))
        except ValidationError as e:
            logger.warning("Skipping invalid rating entry: %s", e)
            continue
        if song.key in seen:
            continue
        seen.add(song.key)
        songs.append(song)
    return sort_songs(songs)


def is_new_song(title: str, new_titles: Iterable[str]) -> bool:
    """曲名が新曲リストに含まれるかを判定する。new_titles は正規化済み集合を想定する。"""
    return normalize_title(title) in new_titles


def played_new_songs(
    catalog: Iterable[CatalogEntry],
    history: Iterable[PlayRecord],
    new_song_titles: Iterable[str],
    overrides: Optional[Mapping[SongKey, float]] = None,
) -> List[Song]:
    """
    新曲のうちスコア 800,000 以上でプレイ済みの譜面を返す。

    低定数でレーティングが 0 の譜面も伸ばす余地があるので候補として残す。

    Returns:
        ランキング順に並べた Song のリスト(上限なし)。
    """
    overrides = overrides or {}
    titles = title_set(new_song_titles)
    plays = history_index(history)

    songs: List[Song] = []
    for entry in catalog:
        if normalize_title(entry.title) not in titles:
            continue
        play = plays.get(entry.key)
        if play is None or play.score < MIN_PLAYED_SCORE:
            continue
        songs.append(song_from_catalog(entry, play, overrides.get(entry.key)))
    return sort_songs(songs)


def new_songs_from_history(
    catalog: Iterable[CatalogEntry],
    history: Iterable[PlayRecord],
    new_song_titles: Sequence[str],
    overrides: Optional[Mapping[SongKey, float]] = None,
) -> List[Song]:
    """開始時点の New20 (レーティングが付くプレイ済み新曲の上位20譜面) を作る。"""
    songs = played_new_songs(catalog, history, new_song_titles, overrides)
    return [s for s in songs if s.current_rating > 0][:NEW_COUNT]
