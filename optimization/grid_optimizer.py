import itertools
import logging
import math

import numpy as np

from models.registry import create_model, optimizable_models, resolve_model_id
from utils.ai_config import VALIDATION_RATIO, DEFAULT_SEASONAL_PERIOD
from utils.errors import ForecastAIError, OptimizationError

logger = logging.getLogger(__name__)

HOLT_WINTERS_STEPS = [0.1, 0.2, 0.3, 0.4, 0.5]

PARAMETER_GRIDS = {
    "simple_exponential_smoothing": {
        "alpha": [0.1, 0.2, 0.3, 0.4, 0.5, 0.6, 0.7, 0.8, 0.9],
    },
    "double_exponential_smoothing": {
        "alpha": [0.1, 0.2, 0.3, 0.4, 0.5, 0.6, 0.7, 0.8, 0.9],
        "beta": [0.05, 0.1, 0.15, 0.2, 0.25, 0.3, 0.35, 0.4],
    },
    "moving_average": {
        "window": [2, 3, 4, 5, 6, 7, 8, 9, 10, 12, 15, 20],
    },
    "holt_winters": {
        "alpha": HOLT_WINTERS_STEPS,
        "beta": HOLT_WINTERS_STEPS,
        "gamma": HOLT_WINTERS_STEPS,
        "type": ["additive", "multiplicative"],
    },
    "seasonal_naive": {},
    "seasonal_moving_average": {
        "window": [2, 3, 4],
    },
    "linear_trend": {},
    # explicit configurations
    "arima": [
        {"auto": True},
        {"auto": False, "p": 1, "d": 1, "q": 1},
        {"auto": False, "p": 2, "d": 1, "q": 2},
        {"auto": False, "p": 1, "d": 0, "q": 1},
        {"auto": False, "p": 2, "d": 0, "q": 2},
        {"auto": False, "p": 0, "d": 1, "q": 1},
        {"auto": False, "p": 1, "d": 1, "q": 0},
    ],
    "sarima": [
        {"p": 1, "d": 1, "q": 1, "P": 1, "D": 1, "Q": 1},
        {"p": 1, "d": 1, "q": 1, "P": 1, "D": 0, "Q": 0},
        {"p": 0, "d": 1, "q": 1, "P": 0, "D": 1, "Q": 1},
    ],
}


# ----------------------------------------------------------
# GRID HELPERS
# ----------------------------------------------------------
def generate_parameter_combinations(model_id: str, grids: dict | None = None):
    grids = PARAMETER_GRIDS if grids is None else grids
    if model_id not in grids:
        raise OptimizationError(f"No parameter grid defined for model type: {model_id}")

    grid = grids[model_id]
    if isinstance(grid, list):
        return [dict(c) for c in grid]
    if not grid:
        return [{}]

    keys = list(grid.keys())
    return [dict(zip(keys, combo)) for combo in itertools.product(*(grid[k] for k in keys))]


def split_data(values, validation_ratio: float = VALIDATION_RATIO):
    split = math.floor(len(values) * (1 - validation_ratio))
    return list(values[:split]), list(values[split:])


def calculate_standard_deviation(values) -> float:
    if not values:
        return 0.0
    return float(np.std(values))


def evaluate_model(model_id, parameters, training, validation, seasonal_period=DEFAULT_SEASONAL_PERIOD):
    try:
        model = create_model(model_id, parameters, seasonal_period)
        model.train(training)
        scores = model.validate(validation)
        return {
            "modelType": model_id,
            "parameters": model.fitted_parameters(),
            "accuracy": scores["accuracy"],
            "mape": scores["mape"],
            "rmse": scores["rmse"],
            "mae": scores["mae"],
            "success": True,
            "error": None,
        }
    except (ForecastAIError, ValueError, ArithmeticError, np.linalg.LinAlgError) as e:
        return {
            "modelType": model_id,
            "parameters": parameters,
            "accuracy": 0.0,
            "mape": math.inf,
            "rmse": math.inf,
            "mae": math.inf,
            "success": False,
            "error": str(e),
        }


def summarize_results(results) -> dict:
    accuracies = [r["accuracy"] for r in results if r["success"]]
    return {
        "totalModels": len(results),
        "successfulModels": len(accuracies),
        "averageAccuracy": float(np.mean(accuracies)) if accuracies else 0.0,
        "bestAccuracy": max(accuracies) if accuracies else 0.0,
        "worstAccuracy": min(accuracies) if accuracies else 0.0,
        "accuracyStdDev": calculate_standard_deviation(accuracies),
    }


def get_top_results(results, n: int = 10):
    return [r for r in results if r["success"]][:n]


# ----------------------------------------------------------
# GRID SEARCH
# ----------------------------------------------------------
def run_grid_search(values, model_ids=None, seasonal_period: int = DEFAULT_SEASONAL_PERIOD,
                    progress_callback=None, grids: dict | None = None,
                    validation_ratio: float = VALIDATION_RATIO):
    """
    Evaluate every parameter combination of every requested model on an
    80/20 train/validation split.
    Returns {type, results (accuracy desc), bestResult, summary, topResults}.
    """
    if values is None or len(values) == 0:
        raise OptimizationError("Data cannot be empty for grid search")

    model_ids = [resolve_model_id(m) for m in (model_ids or optimizable_models())]
    training, validation = split_data(values, validation_ratio)
    if not validation:
        raise OptimizationError("Not enough data to hold out a validation set")

    active_grids = PARAMETER_GRIDS if grids is None else grids
    jobs = []
    for model_id in model_ids:
        if model_id not in active_grids:
            continue
        for params in generate_parameter_combinations(model_id, active_grids):
            jobs.append((model_id, params))

    total = len(jobs)
    logger.info(f"Grid search over {total} configurations for {len(model_ids)} models")

    results = []
    for i, (model_id, params) in enumerate(jobs, start=1):
        results.append(evaluate_model(model_id, params, training, validation, seasonal_period))
        if progress_callback:
            progress_callback({
                "completed": i,
                "total": total,
                "percentage": int(round(i / total * 100)),
                "modelType": model_id,
            })

    results.sort(key=lambda r: r["accuracy"], reverse=True)
    successful = [r for r in results if r["success"]]

    return {
        "type": "grid",
        "results": results,
        "bestResult": successful[0] if successful else None,
        "summary": summarize_results(results),
        "topResults": get_top_results(results),
    }
