import argparse
import logging
import sys
from pathlib import Path
from typing import Any, Callable, List, Optional

from chunisim.aggregate import classify_updatable
from chunisim.cache import get_cached, set_cached
from chunisim.chunirec_client import ChunirecClient
from chunisim.config import Settings, get_api_token, load_settings
from chunisim.errors import ChuniSimError
from chunisim.mapper import (
    best_songs_from_rating_data,
    flatten_music_showall,
    load_catalog,
    load_history,
    new_songs_from_history,
)
from chunisim.models import PREFERENCES, SCOPES, SimulationInput, SimulationResult, Song
from chunisim.rating import should_release_score_limit
from chunisim.simulator import run_simulation
from chunisim.song_data import load_const_overrides, load_new_song_titles

logger = logging.getLogger(__name__)

TRACE_TAIL = 15
DEFAULT_SETTINGS = Path(__file__).resolve().parent / "settings.yaml"


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="CHUNITHM rating target simulator")
    parser.add_argument("--user", required=True, help="chunirec user name")
    parser.add_argument("--target", type=float, required=True, help="target overall rating")
    parser.add_argument("--current", type=float, default=None, help="current rating (default: from profile)")
    parser.add_argument("--scope", choices=SCOPES, default=None)
    parser.add_argument("--preference", choices=PREFERENCES, default=None)
    parser.add_argument("--settings", default=str(DEFAULT_SETTINGS))
    parser.add_argument(
        "--release-limit",
        dest="release_limit",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="use 1,010,000 as the score cap (default: decided from current/target)",
    )
    parser.add_argument("--no-cache", action="store_true", help="always fetch from the API")
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser.parse_args(argv)


def _cached_fetch(settings: Settings, use_cache: bool, key: str, expiry: int, fetch: Callable[[], Any]) -> Any:
    """キャッシュが有効ならキャッシュを優先し、無ければ API から取得して保存する。"""
    if use_cache:
        data = get_cached(settings.cache.directory, key, expiry)
        if data is not None:
            return data

    data = fetch()
    if use_cache:
        set_cached(settings.cache.directory, key, data)
    return data


def build_input(
    client: ChunirecClient,
    settings: Settings,
    user: str,
    target: float,
    current: Optional[float] = None,
    scope: Optional[str] = None,
    preference: Optional[str] = None,
    release_limit: Optional[bool] = None,
    use_cache: bool = True,
) -> SimulationInput:
    """
    API とローカルデータからシミュレーション入力を組み立てる。

    Raises:
        FetchError: API 取得に失敗した場合。
        ConfigError: ローカルデータの読み込みに失敗した場合。
    """
    use_cache = use_cache and settings.cache.enabled
    user_expiry = settings.cache.user_expiry_seconds

    profile = _cached_fetch(settings, use_cache, f"profile_{user}", user_expiry, lambda: client.fetch_profile(user))
    rating_data = _cached_fetch(
        settings, use_cache, f"rating_data_{user}", user_expiry, lambda: client.fetch_rating_data(user)
    )
    user_showall = _cached_fetch(
        settings, use_cache, f"user_showall_{user}", user_expiry, lambda: client.fetch_user_showall(user)
    )
    music = _cached_fetch(
        settings, use_cache, "music_showall", settings.cache.music_expiry_seconds, client.fetch_music_showall
    )

    sim = settings.simulation
    titles = load_new_song_titles(sim.new_songs_path)
    overrides = load_const_overrides(sim.const_overrides_path) if sim.const_overrides_path else {}

    catalog = load_catalog(flatten_music_showall(music))
    records = user_showall.get("records") if isinstance(user_showall, dict) else user_showall
    history = load_history(records or [])

    if current is None and isinstance(profile, dict) and profile.get("rating") is not None:
        current = float(profile["rating"])
    if release_limit is None:
        release_limit = should_release_score_limit(current, target)

    best = best_songs_from_rating_data(rating_data, overrides)
    new = new_songs_from_history(catalog, history, titles, overrides)
    logger.info("Loaded %d best songs, %d new songs, %d catalog charts", len(best), len(new), len(catalog))

    return SimulationInput(
        best_songs=best,
        new_songs=new,
        catalog=catalog,
        history=history,
        new_song_titles=titles,
        target_rating=target,
        current_rating=current,
        scope=scope or sim.scope,
        preference=preference or sim.preference,
        score_limit_released=release_limit,
        const_overrides=overrides,
        max_iterations_single=sim.max_iterations_single,
        max_iterations_hybrid=sim.max_iterations_hybrid,
    )


def _format_song(song: Song) -> str:
    mark = "*" if song.target_score != song.current_score else " "
    return (
        f"{mark} {song.title} [{song.diff}] const={song.chart_constant} "
        f"{song.current_score} -> {song.target_score} ({song.current_rating:.2f} -> {song.target_rating:.2f})"
    )


def print_summary(result: SimulationResult) -> None:
    print(f"outcome: {result.outcome}")
    print(f"overall: {result.final_overall:.4f}")
    print(f"b30 avg: {result.final_average_b30}, n20 avg: {result.final_average_n20}")
    print(f"iterations: {result.iterations} (budget exhausted: {result.budget_exhausted})")
    if result.unreachable_message:
        print(result.unreachable_message)
    if result.error:
        print(f"error: {result.error}", file=sys.stderr)

    split = classify_updatable(result.best_songs)
    print(f"updatable: {len(split.updatable)} (avg {split.updatable_average}), group A: {len(split.group_a)}")

    print("--- Best30 ---")
    for song in result.best_songs:
        print(_format_song(song))
    print("--- New20 ---")
    for song in result.new_songs:
        print(_format_song(song))

    print("--- trace (tail) ---")
    for line in result.trace[-TRACE_TAIL:]:
        print(line)


def main(argv: Optional[List[str]] = None) -> int:
    """
    chunirec からデータを取得してシミュレーションを1回実行し、結果を表示する。

    環境変数の要件:
    - CHUNIREC_API_TOKEN: chunirec API トークン

    Returns:
        終了コード。取得失敗・設定不備の場合は 1。
    """
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        settings = load_settings(args.settings)
        client = ChunirecClient(settings.chunirec, get_api_token())
        sim_input = build_input(
            client,
            settings,
            user=args.user,
            target=args.target,
            current=args.current,
            scope=args.scope,
            preference=args.preference,
            release_limit=args.release_limit,
            use_cache=not args.no_cache,
        )
    except ChuniSimError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    result = run_simulation(sim_input)
    print_summary(result)
    return 0


if __name__ == "__main__":
    sys.exit(main())
