import pytest

from optimization.ai_optimizer import (
    analyze_promising_ranges, build_focused_grids, calculate_ai_confidence, get_model_breakdown,
    run_ai_optimization,
)


def _result(model, accuracy, success=True, **params):
    return {"modelType": model, "accuracy": accuracy, "success": success, "parameters": params}


def test_analyze_promising_ranges_uses_top_fifth():
    results = [_result("simple_exponential_smoothing", 100 - i, alpha=round(0.1 * (i + 1), 1)) for i in range(10)]
    results.append(_result("simple_exponential_smoothing", 0.0, success=False, alpha=0.9))
    ranges = analyze_promising_ranges(results)
    alpha = ranges["simple_exponential_smoothing"]["alpha"]
    assert alpha["min"] == 0.1
    assert alpha["max"] == 0.2
    assert alpha["avg"] == pytest.approx(0.15)
    assert alpha["integer"] is False


def test_analyze_promising_ranges_keeps_non_numeric_values():
    results = [
        _result("holt_winters", 90, alpha=0.2, beta=0.1, gamma=0.1, type="additive"),
        _result("holt_winters", 80, alpha=0.3, beta=0.1, gamma=0.1, type="multiplicative"),
    ]
    ranges = analyze_promising_ranges(results)
    assert ranges["holt_winters"]["type"] == {"values": ["additive"]}


def test_build_focused_grids_spreads_five_values():
    grids = build_focused_grids({
        "simple_exponential_smoothing": {"alpha": {"min": 0.1, "max": 0.5, "avg": 0.3, "integer": False}},
    })
    assert grids["simple_exponential_smoothing"]["alpha"] == [0.1, 0.2, 0.3, 0.4, 0.5]


def test_build_focused_grids_zero_width_steps_and_clamps():
    grids = build_focused_grids({
        "simple_exponential_smoothing": {"alpha": {"min": 0.95, "max": 0.95, "avg": 0.95, "integer": False}},
    })
    # step 0.1 past the upper bound clamps to 0.99
    assert grids["simple_exponential_smoothing"]["alpha"] == [0.95, 0.99]


def test_build_focused_grids_rounds_integers():
    grids = build_focused_grids({
        "moving_average": {"window": {"min": 2, "max": 4, "avg": 3, "integer": True}},
    })
    assert grids["moving_average"]["window"] == [2, 3, 4]


def test_calculate_ai_confidence():
    assert calculate_ai_confidence([]) == 0.0
    consistent = [_result("m", 90), _result("m", 90)]
    # consistency 1 -> (0.6 + 0.36) * 100 capped at 95
    assert calculate_ai_confidence(consistent) == 95.0
    spread = [_result("m", 10), _result("m", 90)]
    # mean 50, std 40 -> (0.2 * 0.6 + 0.5 * 0.4) * 100
    assert calculate_ai_confidence(spread) == pytest.approx(32.0)


def test_get_model_breakdown():
    breakdown = get_model_breakdown([
        _result("a", 80), _result("a", 60), _result("b", 50), _result("b", 0, success=False),
    ])
    assert breakdown["a"] == {"count": 2, "bestAccuracy": 80, "avgAccuracy": 70.0}
    assert breakdown["b"]["count"] == 1


def test_run_ai_optimization(short_series):
    progress = []
    result = run_ai_optimization(short_series, ["simple_exponential_smoothing", "linear_trend"],
                                 progress_callback=progress.append)

    assert result["type"] == "ai"
    assert result["bestResult"] is not None
    assert len(result["topResults"]) <= 5
    assert set(result["modelBreakdown"]) == {"simple_exponential_smoothing", "linear_trend"}
    assert "simple_exponential_smoothing" in result["aiInsights"]["promisingRanges"]
    assert 5.0 <= result["aiInsights"]["confidence"] <= 95.0

    percentages = [p["percentage"] for p in progress]
    assert percentages == sorted(percentages)
    assert progress[-1]["percentage"] == 100
    assert {p["phase"] for p in progress} == {"analysis", "refinement"}
