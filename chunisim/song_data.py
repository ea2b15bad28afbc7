"""
ローカル JSON データ(新曲リスト・譜面定数上書き)の読み込み。
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Union

from chunisim.errors import ConfigError
from chunisim.models import SongKey
from chunisim.normalize import normalize_diff

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def _read_json(path: PathLike) -> Any:
    try:
        with Path(path).open("r", encoding="utf-8") as f:
            return json.load(f)
    except OSError as e:
        raise ConfigError(f"Cannot read data file: {path} ({e})") from e
    except ValueError as e:
        raise ConfigError(f"Invalid JSON in data file: {path} ({e})") from e


def load_new_song_titles(path: PathLike) -> List[str]:
    """
    新曲の曲名リストを読み込む。

    {"titles": {"verse": [...]}} 形式と、曲名の配列そのものの両方を受け付ける。

    Raises:
        ConfigError: ファイルが読めない、または形式が不正な場合。
    """
    data = _read_json(path)
    if isinstance(data, dict):
        titles = (data.get("titles") or {}).get("verse")
    else:
        titles = data

    if not isinstance(titles, list):
        raise ConfigError(f"New song list must be a list of titles: {path}")
    return [str(t) for t in titles if str(t).strip()]


def load_const_overrides(path: PathLike) -> Dict[SongKey, float]:
    """
    譜面定数の上書き値を読み込む。

    キーは "<id>_<DIFF>"、値は譜面定数。正の数でない値は警告を出して無視する。

    Raises:
        ConfigError: ファイルが読めない、または形式が不正な場合。
    """
    data = _read_json(path)
    if not isinstance(data, dict):
        raise ConfigError(f"Constant overrides must be a JSON object: {path}")

    overrides: Dict[SongKey, float] = {}
    for raw_key, raw_value in data.items():
        song_id, sep, diff = str(raw_key).rpartition("_")
        try:
            value = float(raw_value)
        except (TypeError, ValueError):
            value = 0.0
        if not sep or not song_id or value <= 0:
            logger.warning("Ignoring invalid constant override: %s=%r", raw_key, raw_value)
            continue
        overrides[(song_id, normalize_diff(diff))] = value
    return overrides
