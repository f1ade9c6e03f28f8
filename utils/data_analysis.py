import logging

import numpy as np
import pandas as pd

from utils.date_utils import detect_date_frequency, to_date

logger = logging.getLogger(__name__)

TREND_THRESHOLD = 0.05
SEASONALITY_THRESHOLD = 0.3
CORRELATION_THRESHOLD = 0.7


# ----------------------------------------------------------
# PER-SKU STATISTICS
# ----------------------------------------------------------
def detect_trend(values) -> str:
    """Growth from the mean of the first third to the mean of the last third."""
    if len(values) < 3:
        return "stable"
    third = len(values) // 3
    first = float(np.mean(values[:third]))
    last = float(np.mean(values[-third:]))
    if first == 0:
        return "increasing" if last > 0 else "stable"
    growth = (last - first) / abs(first)
    if growth > TREND_THRESHOLD:
        return "increasing"
    if growth < -TREND_THRESHOLD:
        return "decreasing"
    return "stable"


def autocorrelation(values, lag: int) -> float:
    if lag <= 0 or len(values) <= lag:
        return 0.0
    series = np.asarray(values, dtype=float)
    mean = series.mean()
    denom = float(((series - mean) ** 2).sum())
    if denom == 0:
        return 0.0
    num = float(((series[lag:] - mean) * (series[:-lag] - mean)).sum())
    return num / denom


def count_gaps(dates, interval_days: int) -> int:
    """Missing periods between consecutive dates, allowing 50% slack on the interval."""
    parsed = sorted(d for d in (to_date(x) for x in dates) if d is not None)
    gaps = 0
    for prev, cur in zip(parsed, parsed[1:]):
        diff = (cur - prev).days
        if diff > interval_days * 1.5:
            gaps += int(round(diff / interval_days)) - 1
    return gaps


def analyze_series(dates, values, seasonal_period: int, interval_days: int) -> dict:
    series = pd.Series(values, dtype=float)
    present = series.dropna()
    n = len(series)
    mean = float(present.mean()) if len(present) else 0.0
    std = float(present.std(ddof=0)) if len(present) else 0.0
    acf = autocorrelation(present.tolist(), seasonal_period)

    return {
        "count": n,
        "mean": round(mean, 4),
        "std": round(std, 4),
        "min": float(present.min()) if len(present) else 0.0,
        "max": float(present.max()) if len(present) else 0.0,
        "zeros": int((present == 0).sum()),
        "missing": int(series.isna().sum()),
        "completeness": round(len(present) / n * 100, 2) if n else 0.0,
        "trend": detect_trend(present.tolist()),
        "volatility": round(std / mean, 4) if mean else 0.0,
        "seasonality": {
            "detected": acf > SEASONALITY_THRESHOLD,
            "autocorrelation": round(acf, 4),
            "period": seasonal_period,
        },
        "gaps": count_gaps(dates, interval_days),
        "dateRange": [str(dates[0]), str(dates[-1])] if n else ["N/A", "N/A"],
    }


# ----------------------------------------------------------
# CORRELATIONS
# ----------------------------------------------------------
def find_correlations(series: dict, threshold: float = CORRELATION_THRESHOLD):
    """series: sku -> (dates, values). Pearson r over shared dates."""
    frame = pd.DataFrame({
        sku: pd.Series(values, index=[str(d) for d in dates], dtype=float)
        for sku, (dates, values) in series.items()
    })
    skus = list(frame.columns)
    pairs = []
    for i, a in enumerate(skus):
        for b in skus[i + 1:]:
            both = frame[[a, b]].dropna()
            if len(both) < 3 or both[a].std() == 0 or both[b].std() == 0:
                continue
            r = float(both[a].corr(both[b]))
            if abs(r) >= threshold:
                pairs.append({"skuA": a, "skuB": b, "correlation": round(r, 4), "points": len(both)})
    pairs.sort(key=lambda p: abs(p["correlation"]), reverse=True)
    return pairs


# ----------------------------------------------------------
# DATASET ANALYSIS
# ----------------------------------------------------------
def analyze_dataset(rows) -> dict:
    """
    rows: long-format records (sku_code, date, value) or the equivalent DataFrame.
    """
    df = rows if isinstance(rows, pd.DataFrame) else pd.DataFrame(list(rows))
    if df.empty:
        return {"skus": {}, "totals": {"skuCount": 0, "records": 0, "totalSales": 0.0}, "correlations": []}

    df = df.sort_values(["sku_code", "date"])
    frequency = detect_date_frequency(df["date"].unique().tolist())
    interval, period = frequency["interval"], frequency["seasonalPeriod"]

    series = {
        str(sku): (grp["date"].tolist(), grp["value"].tolist())
        for sku, grp in df.groupby("sku_code", sort=True)
    }
    skus = {sku: analyze_series(dates, values, period, interval) for sku, (dates, values) in series.items()}

    values = pd.to_numeric(df["value"], errors="coerce")
    totals = {
        "skuCount": len(skus),
        "records": int(len(df)),
        "totalSales": round(float(values.sum()), 2),
        "zeros": int((values == 0).sum()),
        "missing": int(values.isna().sum()),
        "frequency": frequency["type"],
        "seasonalPeriod": period,
        "trends": {t: sum(1 for s in skus.values() if s["trend"] == t) for t in ("increasing", "decreasing", "stable")},
        "seasonalSkus": sum(1 for s in skus.values() if s["seasonality"]["detected"]),
    }
    logger.info(f"Analyzed {totals['skuCount']} SKUs ({totals['records']} records)")
    return {"skus": skus, "totals": totals, "correlations": find_correlations(series)}
