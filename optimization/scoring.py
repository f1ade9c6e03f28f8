import hashlib
import json
import math

from utils.ai_config import DEFAULT_METRIC_WEIGHTS

ERROR_METRICS = ("mape", "rmse", "mae")

REASON_PRIORITIES = {
    "dataset_upload": 1,
    "initial_import": 1,
    "setup": 1,
    "data_cleaning": 2,
    "settings_change": 2,
}
DEFAULT_PRIORITY = 3


def get_priority_from_reason(reason: str | None) -> int:
    return REASON_PRIORITIES.get((reason or "").lower(), DEFAULT_PRIORITY)


def _metric(result, name):
    value = result.get(name)
    if value is None:
        return None
    try:
        value = float(value)
    except (TypeError, ValueError):
        return None
    return value if math.isfinite(value) else None


def metric_maxima(results) -> dict:
    """Per error metric, the largest finite value across results (at least 1)."""
    maxima = {}
    for name in ERROR_METRICS:
        values = [v for v in (_metric(r, name) for r in results) if v is not None]
        maxima[name] = max([1.0] + values)
    return maxima


def composite_score(result: dict, maxima: dict, weights: dict | None = None) -> float:
    """
    Weighted score in [0, 1]; error metrics normalize to 1 - metric/max,
    missing error metrics count as the max, missing accuracy as 0.
    """
    weights = weights or DEFAULT_METRIC_WEIGHTS
    score = 0.0
    for name in ERROR_METRICS:
        top = maxima.get(name, 1.0)
        value = _metric(result, name)
        value = top if value is None else min(value, top)
        score += weights.get(name, 0.0) * (1 - value / top)
    accuracy = _metric(result, "accuracy")
    score += weights.get("accuracy", 0.0) * ((accuracy or 0.0) / 100.0)
    return score


def select_best_result(results, weights: dict | None = None):
    candidates = [r for r in results if r.get("success", True)]
    if not candidates:
        return None
    maxima = metric_maxima(candidates)
    return max(candidates, key=lambda r: composite_score(r, maxima, weights))


def _canonical(obj) -> str:
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), default=str)


def data_hash(values) -> str:
    return hashlib.sha256(_canonical([float(v) for v in values]).encode("utf-8")).hexdigest()


def optimization_hash(sku, model_id, method, data_hash_value, parameters=None, metric_weights=None) -> str:
    payload = {
        "sku": str(sku),
        "modelId": model_id,
        "method": method,
        "dataHash": data_hash_value,
        "parameters": parameters or {},
        "metricWeights": metric_weights or DEFAULT_METRIC_WEIGHTS,
    }
    return hashlib.sha256(_canonical(payload).encode("utf-8")).hexdigest()
