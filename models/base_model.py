import math

import numpy as np

from utils.errors import InsufficientDataError, ModelNotTrainedError, ParameterValidationError


# ----------------------------------------------------------
# ERROR METRICS
# ----------------------------------------------------------
def calculate_mape(actual, predicted) -> float:
    """MAPE in percent; zero actuals are skipped, all-zero actuals give 0."""
    pairs = [(a, p) for a, p in zip(actual, predicted) if a != 0]
    if not pairs:
        return 0.0
    return float(sum(abs((a - p) / a) for a, p in pairs) / len(pairs) * 100)


def calculate_rmse(actual, predicted) -> float:
    n = min(len(actual), len(predicted))
    if n == 0:
        return 0.0
    return float(math.sqrt(sum((actual[i] - predicted[i]) ** 2 for i in range(n)) / n))


def calculate_mae(actual, predicted) -> float:
    n = min(len(actual), len(predicted))
    if n == 0:
        return 0.0
    return float(sum(abs(actual[i] - predicted[i]) for i in range(n)) / n)


def build_metrics(actual, predicted) -> dict:
    mape = calculate_mape(actual, predicted)
    return {
        "mape": mape,
        "rmse": calculate_rmse(actual, predicted),
        "mae": calculate_mae(actual, predicted),
        "accuracy": max(0.0, 100.0 - mape),
        "predictions": [float(p) for p in predicted],
        "actual": [float(a) for a in actual],
    }


# ----------------------------------------------------------
# BASE MODEL
# ----------------------------------------------------------
class BaseModel:
    model_id = None
    display_name = None
    category = None
    description = ""
    is_seasonal = False
    grid_search = True
    default_parameters = {}
    # parameter name -> (min, max)
    parameter_ranges = {}

    def __init__(self, parameters=None, seasonal_period: int = 12):
        self.parameters = {**self.default_parameters, **(parameters or {})}
        self.seasonal_period = int(seasonal_period or 12)
        self.trained = False
        self.history = None
        self.validate_parameters()

    @classmethod
    def min_observations(cls, seasonal_period: int = 12) -> int:
        return 2

    def validate_parameters(self):
        for name, (low, high) in self.parameter_ranges.items():
            value = self.parameters.get(name)
            if value is None:
                continue
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ParameterValidationError(f"{self.model_id}: parameter '{name}' must be numeric")
            if value < low or value > high:
                raise ParameterValidationError(
                    f"{self.model_id}: parameter '{name}'={value} outside [{low}, {high}]"
                )

    def _prepare(self, values):
        data = np.asarray([float(v) for v in values], dtype=float)
        if not np.all(np.isfinite(data)):
            raise InsufficientDataError(f"{self.model_id}: training data contains invalid numbers")
        minimum = self.min_observations(self.seasonal_period)
        if len(data) < minimum:
            raise InsufficientDataError(
                f"{self.model_id}: needs at least {minimum} observations, got {len(data)}"
            )
        return data

    def train(self, values):
        self.history = self._prepare(values)
        self._fit(self.history)
        self.trained = True
        return self

    def predict(self, periods: int):
        if not self.trained:
            raise ModelNotTrainedError("Model must be trained before making predictions")
        return [float(v) for v in self._forecast(int(periods))]

    def validate(self, test_values):
        if not self.trained:
            raise ModelNotTrainedError("Model must be trained before validation")
        actual = [float(v) for v in test_values]
        predicted = self.predict(len(actual))
        return build_metrics(actual, predicted)

    def fitted_parameters(self) -> dict:
        return dict(self.parameters)

    def _fit(self, data):
        raise NotImplementedError

    def _forecast(self, periods: int):
        raise NotImplementedError

    @classmethod
    def metadata(cls, seasonal_period: int = 12) -> dict:
        return {
            "id": cls.model_id,
            "displayName": cls.display_name,
            "category": cls.category,
            "description": cls.description,
            "isSeasonal": cls.is_seasonal,
            "gridSearch": cls.grid_search,
            "defaultParameters": dict(cls.default_parameters),
            "parameterRanges": {k: list(v) for k, v in cls.parameter_ranges.items()},
            "minObservations": cls.min_observations(seasonal_period),
        }
