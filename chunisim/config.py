"""
設定ファイル(settings.yaml)の読み込み処理を提供するモジュール。

settings.yaml から API 接続・キャッシュ・シミュレーションの各種設定を読み込み、
アプリ内で扱いやすい dataclass に変換する。API トークンは設定ファイルには置かず、
環境変数 CHUNIREC_API_TOKEN から取得する。
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Mapping, Optional

import yaml

from chunisim.errors import ConfigError
from chunisim.models import PREFERENCE_FLOOR, PREFERENCES, SCOPE_HYBRID, SCOPES

TOKEN_ENV = "CHUNIREC_API_TOKEN"


@dataclass(frozen=True)
class ChunirecConfig:
    """
    chunirec API 接続設定。

    Attributes:
        base_url: API のベースURL。
        region: region パラメータ。
        timeout: requests に渡すタイムアウト秒。
    """

    base_url: str
    region: str
    timeout: int


@dataclass(frozen=True)
class CacheConfig:
    """
    API レスポンスのファイルキャッシュ設定。

    Attributes:
        enabled: キャッシュを使うかどうか。
        directory: キャッシュファイルの保存先。
        user_expiry_seconds: ユーザーデータの有効期間。
        music_expiry_seconds: 全曲マスタの有効期間。
    """

    enabled: bool
    directory: str
    user_expiry_seconds: int
    music_expiry_seconds: int


@dataclass(frozen=True)
class SimulationConfig:
    """
    シミュレーションの既定値。

    Attributes:
        scope: 既定の探索範囲。
        preference: 既定のヒューリスティック。
        max_iterations_single: 単一リスト探索の反復上限。
        max_iterations_hybrid: ハイブリッド探索の反復上限。
        new_songs_path: 新曲リスト JSON のパス。
        const_overrides_path: 譜面定数上書き JSON のパス(任意)。
    """

    scope: str
    preference: str
    max_iterations_single: int
    max_iterations_hybrid: int
    new_songs_path: str
    const_overrides_path: Optional[str]


@dataclass(frozen=True)
class Settings:
    """
    アプリケーション全体設定。

    Attributes:
        chunirec: API 接続設定。
        cache: キャッシュ設定。
        simulation: シミュレーション設定。
    """

    chunirec: ChunirecConfig
    cache: CacheConfig
    simulation: SimulationConfig


def _section(data: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    section = data.get(name) or {}
    if not isinstance(section, Mapping):
        raise ConfigError(f"settings.{name} must be a mapping")
    return section


def _positive_int(section: Mapping[str, Any], name: str, default: int) -> int:
    try:
        value = int(section.get(name, default))
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{name} must be an integer: {section.get(name)!r}") from e
    if value <= 0:
        raise ConfigError(f"{name} must be positive: {value}")
    return value


def load_settings(path: str) -> Settings:
    """
    settings.yaml を読み込み Settings に変換する。

    省略されたキーは既定値で補う。

    Args:
        path: settings.yaml のファイルパス。

    Returns:
        Settingsオブジェクト。

    Raises:
        ConfigError: ファイルが読めない、YAML が不正、値が不正な場合。
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except OSError as e:
        raise ConfigError(f"Cannot read settings file: {path} ({e})") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in settings file: {path} ({e})") from e

    if not isinstance(data, Mapping):
        raise ConfigError(f"Settings root must be a mapping: {path}")

    api = _section(data, "chunirec")
    cache = _section(data, "cache")
    sim = _section(data, "simulation")

    scope = str(sim.get("scope", SCOPE_HYBRID))
    if scope not in SCOPES:
        raise ConfigError(f"Unknown simulation.scope: {scope}")
    preference = str(sim.get("preference", PREFERENCE_FLOOR))
    if preference not in PREFERENCES:
        raise ConfigError(f"Unknown simulation.preference: {preference}")

    overrides_path = sim.get("const_overrides_path")

    return Settings(
        chunirec=ChunirecConfig(
            base_url=str(api.get("base_url", "https://api.chunirec.net/2.0")).rstrip("/"),
            region=str(api.get("region", "jp2")),
            timeout=_positive_int(api, "timeout", 30),
        ),
        cache=CacheConfig(
            enabled=bool(cache.get("enabled", True)),
            directory=str(cache.get("directory", ".cache")),
            user_expiry_seconds=_positive_int(cache, "user_expiry_seconds", 7 * 24 * 60 * 60),
            music_expiry_seconds=_positive_int(cache, "music_expiry_seconds", 7 * 24 * 60 * 60),
        ),
        simulation=SimulationConfig(
            scope=scope,
            preference=preference,
            max_iterations_single=_positive_int(sim, "max_iterations_single", 200),
            max_iterations_hybrid=_positive_int(sim, "max_iterations_hybrid", 400),
            new_songs_path=str(sim.get("new_songs_path", "data/new_songs.json")),
            const_overrides_path=str(overrides_path) if overrides_path else None,
        ),
    )


def get_api_token() -> str:
    """
    環境変数から chunirec API トークンを取得する。

    Raises:
        ConfigError: 未設定または空の場合。
    """
    token = os.environ.get(TOKEN_ENV, "").strip()
    if not token:
        raise ConfigError(f"{TOKEN_ENV} is not set")
    return token
