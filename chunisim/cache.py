"""
API レスポンスの JSON ファイルキャッシュ。

1キー1ファイルで {"timestamp": <UNIX秒>, "data": ...} を保存する。
期限切れや壊れたファイルは削除し、キャッシュミスとして扱う。
"""

from __future__ import annotations

import json
import logging
import re
import time
from pathlib import Path
from typing import Any, Optional, Union

logger = logging.getLogger(__name__)

_UNSAFE_RE = re.compile(r"[^0-9A-Za-z._-]+")

PathLike = Union[str, Path]


def cache_path(cache_dir: PathLike, key: str) -> Path:
    """キーに対応するキャッシュファイルのパスを返す。ファイル名に使えない文字は _ に置き換える。"""
    return Path(cache_dir) / f"{_UNSAFE_RE.sub('_', key)}.json"


def get_cached(cache_dir: PathLike, key: str, expiry_seconds: float, now: Optional[float] = None) -> Optional[Any]:
    """
    キャッシュを読み出す。

    Args:
        cache_dir: キャッシュディレクトリ。
        key: キャッシュキー。
        expiry_seconds: 有効期間(秒)。
        now: 現在時刻(UNIX秒)。省略時は time.time()。

    Returns:
        保存されていた data。無い・期限切れ・破損の場合は None。
    """
    path = cache_path(cache_dir, key)
    if not path.exists():
        return None

    now = time.time() if now is None else now
    try:
        with path.open("r", encoding="utf-8") as f:
            cached = json.load(f)
        timestamp = float(cached["timestamp"])
        data = cached["data"]
    except (OSError, ValueError, KeyError, TypeError) as e:
        logger.warning("Removing corrupted cache entry %s: %s", key, e)
        path.unlink(missing_ok=True)
        return None

    if now - timestamp > expiry_seconds:
        logger.info("Cache expired and removed for key: %s", key)
        path.unlink(missing_ok=True)
        return None

    logger.debug("Cache hit for key: %s", key)
    return data


def set_cached(cache_dir: PathLike, key: str, data: Any, now: Optional[float] = None) -> Path:
    """
    data をタイムスタンプ付きで保存する。

    Returns:
        書き込んだファイルのパス。
    """
    path = cache_path(cache_dir, key)
    path.parent.mkdir(parents=True, exist_ok=True)
    item = {"timestamp": time.time() if now is None else now, "data": data}
    with path.open("w", encoding="utf-8") as f:
        json.dump(item, f, ensure_ascii=False)
    logger.debug("Data cached for key: %s", key)
    return path
