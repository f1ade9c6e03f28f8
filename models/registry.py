import math

from models.arima_model import ARIMAModel, SARIMAModel
from models.exponential_smoothing import SimpleExponentialSmoothing, HoltLinearTrend, HoltWinters
from models.moving_average import MovingAverage, SeasonalMovingAverage
from models.prophet_model import ProphetModel
from models.trend_models import LinearTrend, SeasonalNaive
from utils.ai_config import VALIDATION_RATIO, DEFAULT_SEASONAL_PERIOD
from utils.errors import UnknownModelError

MODEL_CLASSES = {
    cls.model_id: cls for cls in (
        SimpleExponentialSmoothing,
        HoltLinearTrend,
        MovingAverage,
        HoltWinters,
        LinearTrend,
        SeasonalNaive,
        SeasonalMovingAverage,
        ARIMAModel,
        SARIMAModel,
        ProphetModel,
    )
}

# hyphenated ids used by older clients
MODEL_ALIASES = {
    "simple-exponential-smoothing": "simple_exponential_smoothing",
    "holt-linear-trend": "double_exponential_smoothing",
    "holt_linear_trend": "double_exponential_smoothing",
    "moving-average": "moving_average",
    "holt-winters": "holt_winters",
    "linear-trend": "linear_trend",
    "seasonal-naive": "seasonal_naive",
    "seasonal-moving-average": "seasonal_moving_average",
}


def resolve_model_id(model_id: str) -> str:
    resolved = MODEL_ALIASES.get(model_id, model_id)
    if resolved not in MODEL_CLASSES:
        raise UnknownModelError(f"Unknown model: {model_id}")
    return resolved


def get_model_class(model_id: str):
    return MODEL_CLASSES[resolve_model_id(model_id)]


def create_model(model_id: str, parameters=None, seasonal_period: int = DEFAULT_SEASONAL_PERIOD):
    return get_model_class(model_id)(parameters, seasonal_period)


def available_models():
    return list(MODEL_CLASSES.keys())


def optimizable_models():
    return [mid for mid, cls in MODEL_CLASSES.items() if cls.grid_search]


def get_model_metadata(seasonal_period: int = DEFAULT_SEASONAL_PERIOD):
    return [cls.metadata(seasonal_period) for cls in MODEL_CLASSES.values()]


def required_total_points(model_id: str, seasonal_period: int = DEFAULT_SEASONAL_PERIOD,
                          validation_ratio: float = VALIDATION_RATIO) -> int:
    """Points needed so that the training split still meets the model minimum."""
    minimum = get_model_class(model_id).min_observations(seasonal_period)
    return math.ceil(round(minimum / (1 - validation_ratio), 9))


def is_model_eligible(model_id: str, data_length: int, seasonal_period: int = DEFAULT_SEASONAL_PERIOD,
                      validation_ratio: float = VALIDATION_RATIO) -> bool:
    return data_length >= required_total_points(model_id, seasonal_period, validation_ratio)


def get_data_requirements(seasonal_period: int = DEFAULT_SEASONAL_PERIOD,
                          validation_ratio: float = VALIDATION_RATIO):
    return {
        mid: {
            "minObservations": cls.min_observations(seasonal_period),
            "requiredTotal": required_total_points(mid, seasonal_period, validation_ratio),
            "isSeasonal": cls.is_seasonal,
        }
        for mid, cls in MODEL_CLASSES.items()
    }


def check_compatibility(data_length: int, seasonal_period: int = DEFAULT_SEASONAL_PERIOD):
    compatible, incompatible = [], []
    for mid in MODEL_CLASSES:
        required = required_total_points(mid, seasonal_period)
        entry = {"id": mid, "requiredTotal": required}
        if data_length >= required:
            compatible.append(entry)
        else:
            incompatible.append({**entry, "reason": f"needs {required} points, has {data_length}"})
    return {"dataLength": data_length, "compatible": compatible, "incompatible": incompatible}
