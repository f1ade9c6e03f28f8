import numpy as np

from models.base_model import BaseModel
from utils.errors import ParameterValidationError

SMOOTHING_RANGE = (0.01, 0.99)


# ----------------------------------------------------------
# SIMPLE EXPONENTIAL SMOOTHING
# ----------------------------------------------------------
class SimpleExponentialSmoothing(BaseModel):
    model_id = "simple_exponential_smoothing"
    display_name = "Simple Exponential Smoothing"
    category = "Basic Models"
    description = "Weighted average of past observations, flat forecast."
    default_parameters = {"alpha": 0.3}
    parameter_ranges = {"alpha": SMOOTHING_RANGE}

    def _fit(self, data):
        alpha = self.parameters["alpha"]
        level = data[0]
        for value in data[1:]:
            level = alpha * value + (1 - alpha) * level
        self.level = level

    def _forecast(self, periods):
        return [self.level] * periods


# ----------------------------------------------------------
# HOLT LINEAR TREND (double exponential smoothing)
# ----------------------------------------------------------
class HoltLinearTrend(BaseModel):
    model_id = "double_exponential_smoothing"
    display_name = "Holt's Linear Trend"
    category = "Trend Models"
    description = "Exponential smoothing with an additive trend component."
    default_parameters = {"alpha": 0.3, "beta": 0.1}
    parameter_ranges = {"alpha": SMOOTHING_RANGE, "beta": SMOOTHING_RANGE}

    def _fit(self, data):
        alpha, beta = self.parameters["alpha"], self.parameters["beta"]
        level = data[0]
        trend = data[1] - data[0]
        for value in data[1:]:
            prev_level = level
            level = alpha * value + (1 - alpha) * (level + trend)
            trend = beta * (level - prev_level) + (1 - beta) * trend
        self.level, self.trend = level, trend

    def _forecast(self, periods):
        return [self.level + (i + 1) * self.trend for i in range(periods)]


# ----------------------------------------------------------
# HOLT-WINTERS (triple exponential smoothing)
# ----------------------------------------------------------
class HoltWinters(BaseModel):
    model_id = "holt_winters"
    display_name = "Holt-Winters (Triple Exponential Smoothing)"
    category = "Seasonal Models"
    description = "Level, trend and seasonal smoothing; additive or multiplicative seasonality."
    is_seasonal = True
    default_parameters = {"alpha": 0.3, "beta": 0.1, "gamma": 0.1, "type": "additive"}
    parameter_ranges = {"alpha": SMOOTHING_RANGE, "beta": SMOOTHING_RANGE, "gamma": SMOOTHING_RANGE}

    @classmethod
    def min_observations(cls, seasonal_period=12):
        return 2 * int(seasonal_period)

    def validate_parameters(self):
        super().validate_parameters()
        if self.parameters.get("type") not in ("additive", "multiplicative"):
            raise ParameterValidationError("holt_winters: type must be 'additive' or 'multiplicative'")

    def _initial_seasonals(self, data, m, multiplicative):
        n_seasons = len(data) // m
        season_avgs = [float(np.mean(data[j * m:(j + 1) * m])) for j in range(n_seasons)]
        seasonals = []
        for i in range(m):
            total = 0.0
            for j in range(n_seasons):
                value = data[j * m + i]
                if multiplicative:
                    total += value / season_avgs[j] if season_avgs[j] != 0 else 1.0
                else:
                    total += value - season_avgs[j]
            seasonals.append(total / n_seasons)
        return seasonals

    def _fit(self, data):
        m = self.seasonal_period
        alpha, beta, gamma = self.parameters["alpha"], self.parameters["beta"], self.parameters["gamma"]
        multiplicative = self.parameters["type"] == "multiplicative"

        level = float(np.mean(data[:m]))
        trend = float(sum(data[i + m] - data[i] for i in range(m)) / (m * m))
        seasonals = self._initial_seasonals(data, m, multiplicative)

        for t, value in enumerate(data):
            s = seasonals[t % m]
            prev_level = level
            if multiplicative:
                s_safe = s if s != 0 else 1.0
                level = alpha * (value / s_safe) + (1 - alpha) * (level + trend)
                trend = beta * (level - prev_level) + (1 - beta) * trend
                seasonals[t % m] = gamma * (value / level if level != 0 else 1.0) + (1 - gamma) * s
            else:
                level = alpha * (value - s) + (1 - alpha) * (level + trend)
                trend = beta * (level - prev_level) + (1 - beta) * trend
                seasonals[t % m] = gamma * (value - level) + (1 - gamma) * s

        self.level, self.trend, self.seasonals = level, trend, seasonals
        self.n_obs = len(data)

    def _forecast(self, periods):
        m = self.seasonal_period
        multiplicative = self.parameters["type"] == "multiplicative"
        out = []
        for h in range(1, periods + 1):
            s = self.seasonals[(self.n_obs + h - 1) % m]
            base = self.level + h * self.trend
            value = base * s if multiplicative else base + s
            out.append(max(0.0, value))
        return out
