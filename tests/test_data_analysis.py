from datetime import date

import pytest

from utils.data_analysis import analyze_dataset, autocorrelation, count_gaps, detect_trend, find_correlations
from utils.date_utils import add_months


def _rows(sku, values, start=date(2022, 1, 1)):
    return [{"sku_code": sku, "date": add_months(start, i), "value": v} for i, v in enumerate(values)]


def test_detect_trend():
    assert detect_trend([10, 10, 10, 20, 20, 20]) == "increasing"
    assert detect_trend([20, 20, 20, 10, 10, 10]) == "decreasing"
    assert detect_trend([10, 10.2, 10, 10.1, 10, 10.3]) == "stable"
    assert detect_trend([0, 0, 0, 5, 5, 5]) == "increasing"
    assert detect_trend([1, 2]) == "stable"


def test_autocorrelation(seasonal_series):
    assert autocorrelation(seasonal_series, 12) > 0.3
    assert autocorrelation([1, 2, 3], 5) == 0.0
    assert autocorrelation([4, 4, 4, 4], 1) == 0.0


def test_count_gaps():
    dates = [date(2022, 1, 1), date(2022, 2, 1), date(2022, 5, 1)]
    assert count_gaps(dates, 30) == 2
    assert count_gaps(dates[:2], 30) == 0


def test_analyze_dataset(seasonal_series):
    rows = _rows("A", seasonal_series) + _rows("B", [10, 0, 10, 10, 0, 10])
    result = analyze_dataset(rows)

    a = result["skus"]["A"]
    assert a["count"] == 36
    assert a["trend"] == "increasing"
    assert a["seasonality"]["detected"] is True
    assert a["seasonality"]["period"] == 12
    assert a["gaps"] == 0
    assert a["completeness"] == 100.0

    b = result["skus"]["B"]
    assert b["zeros"] == 2
    assert b["min"] == 0.0
    assert b["volatility"] == pytest.approx(b["std"] / b["mean"], rel=1e-3)

    totals = result["totals"]
    assert totals["skuCount"] == 2
    assert totals["records"] == 42
    assert totals["frequency"] == "monthly"
    assert totals["zeros"] == 2


def test_analyze_dataset_empty():
    result = analyze_dataset([])
    assert result["skus"] == {}
    assert result["totals"]["skuCount"] == 0


def test_find_correlations():
    dates = [add_months(date(2022, 1, 1), i) for i in range(6)]
    series = {
        "A": (dates, [1, 2, 3, 4, 5, 6]),
        "B": (dates, [2, 4, 6, 8, 10, 12]),
        "C": (dates, [6, 5, 4, 3, 2, 1]),
        "D": (dates, [1, 5, 2, 5, 1, 4]),
    }
    pairs = find_correlations(series)
    found = {(p["skuA"], p["skuB"]): p["correlation"] for p in pairs}
    assert found[("A", "B")] == pytest.approx(1.0)
    assert found[("A", "C")] == pytest.approx(-1.0)
    assert ("A", "D") not in found
