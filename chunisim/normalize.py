"""
曲名・難易度の正規化ユーティリティ。

新曲リストと全曲マスタの曲名照合、および (id, diff) キーの生成に利用する。
照合は「前後空白と大文字小文字の違いを無視する」ことを基本とし、
全角英数や記号の表記揺れは NFKC で吸収する。
"""

from __future__ import annotations

import re
import unicodedata
from typing import Iterable, Optional, Set

_QUOTE_MAP = {
    "“": '"',
    "”": '"',
    "’": "'",
    "‘": "'",
}


def normalize_title(s: Optional[str]) -> str:
    """
    曲名を照合用に正規化して返す。

    正規化内容:
    - Unicode正規化 (NFKC)
    - 引用符の統一
    - 連続空白を単一化して trim
    - 小文字化

    Args:
        s: 曲名。

    Returns:
        正規化済み文字列。None の場合は空文字。
    """
    if s is None:
        return ""

    s = unicodedata.normalize("NFKC", s)
    for k, v in _QUOTE_MAP.items():
        s = s.replace(k, v)
    s = re.sub(r"\s+", " ", s).strip()
    return s.lower()


def normalize_diff(diff: Optional[str]) -> str:
    """難易度表記を大文字・trim 済みに揃える。"""
    return (diff or "").strip().upper()


def title_set(titles: Iterable[str]) -> Set[str]:
    """曲名リストを正規化済み集合に変換する。空文字は除外する。"""
    return {t for t in (normalize_title(x) for x in titles) if t}
