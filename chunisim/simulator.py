"""
レーティング目標シミュレーションの実行入口。

SimulationInput を受け取り、初期状態の確認 → (b30_only/n20_only のみ)到達可能性の事前判定
→ 単一リスト探索またはハイブリッド探索、の順に処理して SimulationResult を返す。

例外方針:
- 目標到達不能や stuck は例外ではなく outcome として返す
- 探索中に発生した想定外の例外は捕捉し、outcome=error_simulation_logic として返す
"""

from __future__ import annotations

import logging
from typing import List, Optional

from chunisim.aggregate import average_rating, lists_overall
from chunisim.errors import SimulationError
from chunisim.hybrid import run_hybrid
from chunisim.mapper import sort_songs
from chunisim.models import (
    BEST_COUNT,
    LIST_B30,
    LIST_N20,
    NEW_COUNT,
    OUTCOME_ERROR,
    OUTCOME_STUCK_B30,
    OUTCOME_STUCK_BOTH,
    OUTCOME_STUCK_N20,
    OUTCOME_TARGET_REACHED,
    OUTCOME_TARGET_UNREACHABLE,
    PREFERENCES,
    SCOPE_B30_ONLY,
    SCOPE_HYBRID,
    SCOPE_N20_ONLY,
    SCOPES,
    SimulationInput,
    SimulationResult,
    Song,
)
from chunisim.phases import SearchContext, SearchOutcome, run_single_list
from chunisim.pools import build_universe
from chunisim.rating import score_cap
from chunisim.reachability import compute_ceiling

logger = logging.getLogger(__name__)

_STUCK_OUTCOMES = {
    SCOPE_B30_ONLY: OUTCOME_STUCK_B30,
    SCOPE_N20_ONLY: OUTCOME_STUCK_N20,
    SCOPE_HYBRID: OUTCOME_STUCK_BOTH,
}


def _fmt(value: Optional[float]) -> str:
    return "N/A" if value is None else f"{value:.4f}"


def _validate(sim_input: SimulationInput) -> None:
    if sim_input.scope not in SCOPES:
        raise SimulationError(f"Unknown simulation scope: {sim_input.scope}")
    if sim_input.preference not in PREFERENCES:
        raise SimulationError(f"Unknown algorithm preference: {sim_input.preference}")
    if sim_input.max_iterations_single <= 0 or sim_input.max_iterations_hybrid <= 0:
        raise SimulationError("Iteration budgets must be positive")


def _build_result(
    best_songs: List[Song],
    new_songs: List[Song],
    outcome: str,
    trace: List[str],
    **extra,
) -> SimulationResult:
    return SimulationResult(
        best_songs=best_songs,
        new_songs=new_songs,
        final_average_b30=average_rating(best_songs, BEST_COUNT),
        final_average_n20=average_rating(new_songs, NEW_COUNT),
        final_overall=lists_overall(best_songs, new_songs),
        outcome=outcome,
        trace=trace,
        **extra,
    )


def _run(sim_input: SimulationInput, best: List[Song], new: List[Song], trace: List[str]) -> SimulationResult:
    target = sim_input.target_rating
    released = sim_input.score_limit_released
    universe = build_universe(
        sim_input.catalog,
        sim_input.history,
        sim_input.new_song_titles,
        sim_input.const_overrides,
    )
    ctx = SearchContext(
        preference=sim_input.preference,
        released=released,
        universe=universe,
        trace=trace,
    )

    ctx.log(
        f"[RUN_SIMULATION] Started. Target: {target:.4f}, Scope: {sim_input.scope}, "
        f"Preference: {sim_input.preference}, Score cap: {score_cap(released)}"
    )
    initial = lists_overall(best, new)
    ctx.log(
        f"[INITIAL_STATE] B30 Avg: {_fmt(average_rating(best, BEST_COUNT))}, "
        f"N20 Avg: {_fmt(average_rating(new, NEW_COUNT))}, Overall: {initial:.4f}"
    )
    if initial >= target:
        ctx.log("[RUN_SIMULATION] Target already reached.")
        return _build_result(best, new, OUTCOME_TARGET_REACHED, trace)

    if sim_input.scope == SCOPE_HYBRID:
        outcome = run_hybrid(best, new, target, ctx, sim_input.max_iterations_hybrid)
    else:
        list_kind = LIST_B30 if sim_input.scope == SCOPE_B30_ONLY else LIST_N20
        ceiling = compute_ceiling(best, new, list_kind, universe, released)
        ctx.log(f"[REACHABILITY] Ceiling for {sim_input.scope}: {ceiling.overall:.4f}")
        if target > ceiling.overall:
            message = (
                f"Target {target:.4f} exceeds the reachable maximum "
                f"{ceiling.overall:.4f} for {sim_input.scope}."
            )
            ctx.log(f"[REACHABILITY] {message}")
            if list_kind == LIST_B30:
                best = ceiling.songs
            else:
                new = ceiling.songs
            return _build_result(
                best,
                new,
                OUTCOME_TARGET_UNREACHABLE,
                trace,
                unreachable_message=message,
                ceiling=ceiling.overall,
            )
        outcome = run_single_list(best, new, list_kind, target, ctx, sim_input.max_iterations_single)

    return _finish(sim_input, outcome, ctx)


def _finish(sim_input: SimulationInput, outcome: SearchOutcome, ctx: SearchContext) -> SimulationResult:
    if outcome.reached:
        tag = OUTCOME_TARGET_REACHED
    else:
        tag = _STUCK_OUTCOMES[sim_input.scope]
        if outcome.budget_exhausted:
            ctx.log("[RUN_SIMULATION] Iteration budget exhausted before reaching the target.")

    result = _build_result(
        outcome.best_songs,
        outcome.new_songs,
        tag,
        ctx.trace,
        iterations=outcome.iterations,
        budget_exhausted=outcome.budget_exhausted,
    )
    ctx.log(f"[RUN_SIMULATION] Finished. Final Phase: {tag}. Overall Rating: {result.final_overall:.4f}")
    return result


def _raw_list(songs) -> List[Song]:
    try:
        return list(songs or [])
    except TypeError:
        return []


def run_simulation(sim_input: SimulationInput) -> SimulationResult:
    """
    シミュレーションを1回実行する。

    入力のリストはコピーして扱い、呼び出し元のデータは変更しない。
    想定外の例外(不正な入力を含む)は送出せず outcome=error_simulation_logic の結果として返す。

    Args:
        sim_input: シミュレーション入力。

    Returns:
        SimulationResult。
    """
    trace: List[str] = []
    best: Optional[List[Song]] = None
    new: Optional[List[Song]] = None

    try:
        best = sort_songs(sim_input.best_songs, use_target=True)
        new = sort_songs(sim_input.new_songs, use_target=True)
        _validate(sim_input)
        return _run(sim_input, best, new, trace)
    except Exception as e:  # pylint: disable=broad-exception-caught
        logger.exception("Simulation failed")
        trace.append(f"[ERROR] {type(e).__name__}: {e}")
        return SimulationResult(
            best_songs=best if best is not None else _raw_list(sim_input.best_songs),
            new_songs=new if new is not None else _raw_list(sim_input.new_songs),
            final_average_b30=None,
            final_average_n20=None,
            final_overall=0.0,
            outcome=OUTCOME_ERROR,
            trace=trace,
            error=str(e),
        )
