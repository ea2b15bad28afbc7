"""
chunirec API クライアント。

プロフィール、レーティング対象曲、全曲マスタ、ユーザーの全譜面記録を取得する。
レスポンスの解釈は mapper.py 側で行い、本モジュールは通信のみを担当する。

例外方針:
- requests 由来の例外と JSON 解析失敗は FetchError に変換して上位へ伝播する。
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import requests

from chunisim.config import ChunirecConfig
from chunisim.errors import FetchError

logger = logging.getLogger(__name__)

RATE_LIMIT_HEADERS = ("X-Rate-Limit-Limit", "X-Rate-Limit-Remaining", "X-Rate-Limit-Reset")


class ChunirecClient:
    """
    chunirec API 2.0 への GET リクエストを行う。

    Attributes:
        config: 接続設定。
        token: API トークン。
    """

    def __init__(self, config: ChunirecConfig, token: str):
        self.config = config
        self.token = token

    def _get(self, endpoint: str, params: Optional[Dict[str, str]] = None) -> Any:
        url = f"{self.config.base_url}/{endpoint}"
        query = {"region": self.config.region, "token": self.token}
        query.update(params or {})
        try:
            r = requests.get(url, params=query, timeout=self.config.timeout)
            r.raise_for_status()
        except requests.RequestException as e:
            raise FetchError(f"HTTP fetch failed: {endpoint} ({e})") from e

        limits = {h: r.headers.get(h) for h in RATE_LIMIT_HEADERS if r.headers.get(h)}
        if limits:
            logger.debug("Rate limit for %s: %s", endpoint, limits)

        try:
            return r.json()
        except ValueError as e:
            raise FetchError(f"Invalid JSON response: {endpoint} ({e})") from e

    def fetch_profile(self, user_name: str) -> Any:
        """records/profile.json を取得する。"""
        return self._get("records/profile.json", {"user_name": user_name})

    def fetch_rating_data(self, user_name: str) -> Any:
        """records/rating_data.json (Best 枠) を取得する。"""
        return self._get("records/rating_data.json", {"user_name": user_name})

    def fetch_music_showall(self) -> Any:
        """music/showall.json (全曲マスタ) を取得する。"""
        return self._get("music/showall.json")

    def fetch_user_showall(self, user_name: str) -> Any:
        """records/showall.json (ユーザーの全譜面記録) を取得する。"""
        return self._get("records/showall.json", {"user_name": user_name})
