import numpy as np

from models.base_model import BaseModel, build_metrics
from utils.errors import InsufficientDataError, ModelNotTrainedError


class MovingAverage(BaseModel):
    model_id = "moving_average"
    display_name = "Moving Average"
    category = "Basic Models"
    description = "Mean of the last `window` observations, rolled forward recursively."
    default_parameters = {"window": 3}
    parameter_ranges = {"window": (2, 50)}

    def validate_parameters(self):
        super().validate_parameters()
        self.parameters["window"] = int(self.parameters["window"])

    def _fit(self, data):
        window = self.parameters["window"]
        if len(data) < window:
            raise InsufficientDataError(
                f"moving_average: window {window} larger than history ({len(data)})"
            )

    def _forecast(self, periods):
        window = self.parameters["window"]
        buffer = list(self.history[-window:])
        out = []
        for _ in range(periods):
            value = float(np.mean(buffer[-window:]))
            out.append(value)
            buffer.append(value)
        return out

    def validate(self, test_values):
        """One-step-ahead: each prediction uses the actual values seen so far."""
        if not self.trained:
            raise ModelNotTrainedError("Model must be trained before validation")
        window = self.parameters["window"]
        actual = [float(v) for v in test_values]
        buffer = list(self.history)
        predicted = []
        for value in actual:
            predicted.append(float(np.mean(buffer[-window:])))
            buffer.append(value)
        return build_metrics(actual, predicted)


class SeasonalMovingAverage(BaseModel):
    model_id = "seasonal_moving_average"
    display_name = "Seasonal Moving Average"
    category = "Seasonal Models"
    description = "Moving average on deseasonalized data, reseasonalized with per-position indices."
    is_seasonal = True
    default_parameters = {"window": 3}
    parameter_ranges = {"window": (2, 20)}

    @classmethod
    def min_observations(cls, seasonal_period=12):
        return int(seasonal_period)

    def validate_parameters(self):
        super().validate_parameters()
        self.parameters["window"] = int(self.parameters["window"])

    def _fit(self, data):
        m = self.seasonal_period
        overall = float(np.mean(data))
        indices = []
        for pos in range(m):
            position_values = data[pos::m]
            mean = float(np.mean(position_values)) if len(position_values) else overall
            indices.append(mean / overall if overall != 0 else 1.0)
        self.indices = indices
        self.deseasonalized = [
            v / indices[t % m] if indices[t % m] != 0 else v for t, v in enumerate(data)
        ]

    def _forecast(self, periods):
        m = self.seasonal_period
        window = self.parameters["window"]
        buffer = list(self.deseasonalized)
        n = len(buffer)
        out = []
        for h in range(periods):
            base = float(np.mean(buffer[-window:]))
            buffer.append(base)
            out.append(max(0.0, base * self.indices[(n + h) % m]))
        return out
