from __future__ import annotations

import sys
from pathlib import Path
from typing import Callable, List, Optional

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from chunisim.models import PREFERENCE_FLOOR, CatalogEntry, PlayRecord, Song
from chunisim.phases import SearchContext
from chunisim.pools import CandidateUniverse
from chunisim.rating import calculate_rating


def _make_song(
    song_id: str,
    const: Optional[float],
    score: int,
    diff: str = "MAS",
    title: Optional[str] = None,
) -> Song:
    rating = calculate_rating(score, const) if score > 0 else 0.0
    return Song(
        id=song_id,
        diff=diff,
        title=title or f"Song {song_id}",
        chart_constant=const,
        current_score=score,
        current_rating=rating,
        target_score=score,
        target_rating=rating,
    )


@pytest.fixture
def make_song() -> Callable[..., Song]:
    """current = target の Song を作るファクトリ。"""
    return _make_song


@pytest.fixture
def make_songs() -> Callable[..., List[Song]]:
    """同じ定数・スコアの曲を count 件作るファクトリ。"""

    def _factory(prefix: str, count: int, const: float, score: int) -> List[Song]:
        return [_make_song(f"{prefix}{i}", const, score) for i in range(count)]

    return _factory


@pytest.fixture
def make_entry() -> Callable[..., CatalogEntry]:
    def _factory(song_id: str, title: str, const: Optional[float], diff: str = "MAS", level: str = "14"):
        return CatalogEntry(id=song_id, title=title, diff=diff, level=level, const=const)

    return _factory


@pytest.fixture
def make_play() -> Callable[..., PlayRecord]:
    def _factory(song_id: str, score: int, diff: str = "MAS", rating: Optional[float] = None):
        return PlayRecord(id=song_id, diff=diff, score=score, rating=rating)

    return _factory


@pytest.fixture
def empty_universe() -> CandidateUniverse:
    return CandidateUniverse(best=(), new=())


@pytest.fixture
def make_ctx() -> Callable[..., SearchContext]:
    def _factory(
        universe: Optional[CandidateUniverse] = None,
        preference: str = PREFERENCE_FLOOR,
        released: bool = False,
    ) -> SearchContext:
        return SearchContext(
            preference=preference,
            released=released,
            universe=universe or CandidateUniverse(best=(), new=()),
        )

    return _factory
