import logging
import math

import numpy as np

from models.registry import get_model_class, optimizable_models, resolve_model_id
from optimization.grid_optimizer import (
    PARAMETER_GRIDS, run_grid_search, get_top_results, summarize_results, calculate_standard_deviation
)
from utils.ai_config import DEFAULT_SEASONAL_PERIOD

logger = logging.getLogger(__name__)

TOP_FRACTION = 0.2


# ----------------------------------------------------------
# RANGE ANALYSIS
# ----------------------------------------------------------
def analyze_promising_ranges(results) -> dict:
    """
    For each model, take the best 20% (at least one) of the successful runs
    and record min/max/avg of every numeric parameter, plus the values seen
    for non-numeric ones.
    """
    groups = {}
    for r in results:
        if r["success"]:
            groups.setdefault(r["modelType"], []).append(r)

    ranges = {}
    for model_id, runs in groups.items():
        runs = sorted(runs, key=lambda r: r["accuracy"], reverse=True)
        top = runs[:max(1, math.floor(len(runs) * TOP_FRACTION))]
        params = {}
        for name, first in top[0]["parameters"].items():
            values = [r["parameters"].get(name) for r in top if name in r["parameters"]]
            if isinstance(first, (int, float)) and not isinstance(first, bool):
                params[name] = {
                    "min": min(values),
                    "max": max(values),
                    "avg": sum(values) / len(values),
                    "integer": all(isinstance(v, int) for v in values),
                }
            else:
                params[name] = {"values": list(dict.fromkeys(values))}
        ranges[model_id] = params
    return ranges


def _clamp(value, bounds):
    if bounds is None:
        return value
    return min(max(value, bounds[0]), bounds[1])


def build_focused_grids(promising_ranges: dict) -> dict:
    """Five evenly spaced values between each numeric parameter's min and max."""
    grids = {}
    for model_id, params in promising_ranges.items():
        bounds = get_model_class(model_id).parameter_ranges
        original = PARAMETER_GRIDS.get(model_id)
        if isinstance(original, list):
            # explicit configuration lists are refined by keeping the winners only
            grids[model_id] = [dict(zip(params.keys(), combo)) for combo in _winner_combos(params)]
            continue

        grid = {}
        for name, info in params.items():
            if "values" in info:
                grid[name] = info["values"]
                continue
            step = (info["max"] - info["min"]) / 4 or 0.1
            raw = [info["min"] + k * step for k in range(4)] + [info["max"]]
            if info["integer"]:
                points = sorted({int(round(_clamp(v, bounds.get(name)))) for v in raw})
            else:
                points = sorted({round(_clamp(v, bounds.get(name)), 4) for v in raw})
            grid[name] = points
        grids[model_id] = grid
    return grids


def _winner_combos(params):
    """Distinct winning configurations recovered from min/max/values records."""
    combos = [[]]
    for info in params.values():
        options = info["values"] if "values" in info else sorted({info["min"], info["max"]})
        combos = [c + [o] for c in combos for o in options]
    return combos


# ----------------------------------------------------------
# INSIGHTS
# ----------------------------------------------------------
def calculate_ai_confidence(results) -> float:
    accuracies = [r["accuracy"] for r in results if r["success"]]
    if not accuracies:
        return 0.0
    mean = float(np.mean(accuracies))
    if mean == 0:
        return 5.0
    consistency = 1 - calculate_standard_deviation(accuracies) / mean
    return float(min(95.0, max(5.0, (consistency * 0.6 + mean / 100 * 0.4) * 100)))


def get_model_breakdown(results) -> dict:
    breakdown = {}
    for r in results:
        if not r["success"]:
            continue
        entry = breakdown.setdefault(r["modelType"], {"count": 0, "bestAccuracy": 0.0, "accuracies": []})
        entry["count"] += 1
        entry["accuracies"].append(r["accuracy"])
        entry["bestAccuracy"] = max(entry["bestAccuracy"], r["accuracy"])
    for entry in breakdown.values():
        entry["avgAccuracy"] = float(np.mean(entry.pop("accuracies")))
    return breakdown


# ----------------------------------------------------------
# TWO-PHASE OPTIMIZATION
# ----------------------------------------------------------
def run_ai_optimization(values, model_ids=None, seasonal_period: int = DEFAULT_SEASONAL_PERIOD,
                        progress_callback=None):
    model_ids = [resolve_model_id(m) for m in (model_ids or optimizable_models())]

    def phase(name, lo, hi):
        if progress_callback is None:
            return None

        def cb(progress):
            pct = lo + (hi - lo) * progress["percentage"] / 100
            progress_callback({**progress, "phase": name, "percentage": int(round(pct))})
        return cb

    quick = run_grid_search(values, model_ids, seasonal_period, phase("analysis", 0, 50))
    promising = analyze_promising_ranges(quick["results"])
    focused_grids = build_focused_grids(promising)
    logger.info(f"Refining {len(focused_grids)} models over promising ranges")

    refined_results = []
    if focused_grids:
        refined = run_grid_search(values, list(focused_grids.keys()), seasonal_period,
                                  phase("refinement", 50, 100), grids=focused_grids)
        refined_results = refined["results"]

    # models that could not be refined keep their first-phase results
    refined_models = {r["modelType"] for r in refined_results}
    results = refined_results + [r for r in quick["results"] if r["modelType"] not in refined_models]
    results.sort(key=lambda r: r["accuracy"], reverse=True)
    successful = [r for r in results if r["success"]]

    if progress_callback:
        progress_callback({"completed": 1, "total": 1, "percentage": 100, "phase": "refinement"})

    return {
        "type": "ai",
        "results": results,
        "bestResult": successful[0] if successful else None,
        "summary": summarize_results(results),
        "topResults": get_top_results(results, 5),
        "modelBreakdown": get_model_breakdown(results),
        "aiInsights": {
            "promisingRanges": promising,
            "confidence": calculate_ai_confidence(results),
        },
    }
