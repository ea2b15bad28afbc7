"""
データモデル定義モジュール。

API レコードを正規化した曲情報(Song)・譜面マスタ(CatalogEntry)・プレイ履歴(PlayRecord)と、
シミュレーション1回分の入力(SimulationInput)・結果(SimulationResult)を定義する。

Song は frozen dataclass とし、目標スコアの更新は dataclasses.replace で
新しい値を作って行う。呼び出し元のリストが書き換わることはない。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

BEST_COUNT = 30
NEW_COUNT = 20

SCOPE_B30_ONLY = "b30_only"
SCOPE_N20_ONLY = "n20_only"
SCOPE_HYBRID = "hybrid"
SCOPES = (SCOPE_B30_ONLY, SCOPE_N20_ONLY, SCOPE_HYBRID)

PREFERENCE_FLOOR = "floor"
PREFERENCE_PEAK = "peak"
PREFERENCES = (PREFERENCE_FLOOR, PREFERENCE_PEAK)

LIST_B30 = "b30"
LIST_N20 = "n20"

OUTCOME_TARGET_REACHED = "target_reached"
OUTCOME_TARGET_UNREACHABLE = "target_unreachable"
OUTCOME_STUCK_B30 = "stuck_b30"
OUTCOME_STUCK_N20 = "stuck_n20"
OUTCOME_STUCK_BOTH = "stuck_both"
OUTCOME_ERROR = "error_simulation_logic"

SongKey = Tuple[str, str]


def list_capacity(list_kind: str) -> int:
    """リスト種別(b30/n20)の上限曲数を返す。"""
    return BEST_COUNT if list_kind == LIST_B30 else NEW_COUNT


@dataclass(frozen=True)
class Song:
    """
    シミュレーション対象の1譜面。

    - current_* は実際のプレイ結果で、1回のシミュレーション中は変化しない
    - target_* はシミュレーション上の仮定値で、単調非減少に更新される
    - chart_constant が None の譜面はシミュレーションで改善できない

    同一性は (id, diff) で判定する。同じ曲でも難易度が違えば別エントリ。
    """

    id: str
    diff: str
    title: str
    chart_constant: Optional[float]
    current_score: int
    current_rating: float
    target_score: int
    target_rating: float

    genre: Optional[str] = None
    level: Optional[str] = None
    release: Optional[str] = None
    is_played: Optional[bool] = None
    is_clear: Optional[bool] = None
    is_fullcombo: Optional[bool] = None
    is_alljustice: Optional[bool] = None
    is_const_unknown: Optional[bool] = None

    @property
    def key(self) -> SongKey:
        """(id, diff) の同一性キー。"""
        return (self.id, self.diff)


@dataclass(frozen=True)
class CatalogEntry:
    """
    全曲マスタの1譜面分の情報。

    Attributes:
        id: chunirec の曲ID。
        title: 曲名。
        diff: 難易度(ULT/MAS/EXP/ADV/BAS)。
        level: 表示レベル文字列("14", "14+", "14.5" など)。
        const: 譜面定数。未設定の場合は None、未確定の場合は 0 のことがある。
        is_const_unknown: 譜面定数が未確定であることを示すフラグ。
        release: 配信日。
        genre: ジャンル。
    """

    id: str
    title: str
    diff: str
    level: Optional[str]
    const: Optional[float]
    is_const_unknown: bool = False
    release: Optional[str] = None
    genre: Optional[str] = None

    @property
    def key(self) -> SongKey:
        return (self.id, self.diff)


@dataclass(frozen=True)
class PlayRecord:
    """ユーザーの1譜面分のプレイ結果。"""

    id: str
    diff: str
    score: int
    rating: Optional[float] = None
    is_clear: Optional[bool] = None
    is_fullcombo: Optional[bool] = None
    is_alljustice: Optional[bool] = None

    @property
    def key(self) -> SongKey:
        return (self.id, self.diff)


@dataclass(frozen=True)
class SimulationInput:
    """
    シミュレーション1回分の入力。

    Attributes:
        best_songs: 開始時点の Best30 リスト。
        new_songs: 開始時点の New20 リスト。
        catalog: 全曲マスタ。
        history: ユーザーのプレイ履歴。
        new_song_titles: 新曲判定に使う曲名リスト。
        target_rating: 目標レーティング。
        current_rating: 現在のレーティング(表示用、計算には使わない)。
        scope: b30_only / n20_only / hybrid。
        preference: floor / peak。
        score_limit_released: True の場合スコア上限を 1,010,000 とする。
        phase_transition_point: 参考値。現在は計算に使わない。
        const_overrides: (id, diff) ごとの譜面定数上書き。
        max_iterations_single: 単一リストモードの反復上限。
        max_iterations_hybrid: ハイブリッドモードの反復上限。
    """

    best_songs: Sequence[Song]
    new_songs: Sequence[Song]
    catalog: Sequence[CatalogEntry]
    history: Sequence[PlayRecord]
    new_song_titles: Sequence[str]
    target_rating: float
    current_rating: Optional[float] = None
    scope: str = SCOPE_HYBRID
    preference: str = PREFERENCE_FLOOR
    score_limit_released: bool = False
    phase_transition_point: Optional[float] = None
    const_overrides: Dict[SongKey, float] = field(default_factory=dict)
    max_iterations_single: int = 200
    max_iterations_hybrid: int = 400


@dataclass
class SimulationResult:
    """シミュレーション1回分の結果。"""

    best_songs: List[Song]
    new_songs: List[Song]
    final_average_b30: Optional[float]
    final_average_n20: Optional[float]
    final_overall: float
    outcome: str
    trace: List[str]
    iterations: int = 0
    budget_exhausted: bool = False
    error: Optional[str] = None
    unreachable_message: Optional[str] = None
    ceiling: Optional[float] = None
