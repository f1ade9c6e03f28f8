import numpy as np

from models.base_model import BaseModel


class LinearTrend(BaseModel):
    model_id = "linear_trend"
    display_name = "Linear Trend"
    category = "Trend Models"
    description = "Least-squares line over the observation index."

    def _fit(self, data):
        x = np.arange(len(data), dtype=float)
        self.slope, self.intercept = (float(c) for c in np.polyfit(x, data, 1))

    def _forecast(self, periods):
        n = len(self.history)
        return [max(0.0, self.intercept + self.slope * (n + i)) for i in range(periods)]


class SeasonalNaive(BaseModel):
    model_id = "seasonal_naive"
    display_name = "Seasonal Naive"
    category = "Seasonal Models"
    description = "Repeats the last observed season."
    is_seasonal = True

    @classmethod
    def min_observations(cls, seasonal_period=12):
        return int(seasonal_period)

    def _fit(self, data):
        self.last_season = list(data[-self.seasonal_period:])

    def _forecast(self, periods):
        m = len(self.last_season)
        return [self.last_season[i % m] for i in range(periods)]
