import itertools
import logging
import warnings

import numpy as np
from statsmodels.tools.sm_exceptions import ConvergenceWarning
from statsmodels.tsa.statespace.sarimax import SARIMAX

from models.base_model import BaseModel
from utils.errors import ModelFitError

logger = logging.getLogger(__name__)

AUTO_P = range(0, 3)
AUTO_D = range(0, 2)
AUTO_Q = range(0, 3)


def _fit_sarimax(data, order, seasonal_order=(0, 0, 0, 0)):
    trend = "c" if order[1] == 0 and seasonal_order[1] == 0 else "n"
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", ConvergenceWarning)
        warnings.simplefilter("ignore", UserWarning)
        warnings.simplefilter("ignore", RuntimeWarning)
        model = SARIMAX(
            data,
            order=order,
            seasonal_order=seasonal_order,
            trend=trend,
            enforce_stationarity=False,
            enforce_invertibility=False,
        )
        return model.fit(disp=False)


class ARIMAModel(BaseModel):
    model_id = "arima"
    display_name = "ARIMA (Autoregressive Integrated Moving Average)"
    category = "Advanced Trend Models"
    description = "Non-seasonal ARIMA; with auto=True the order is chosen by AIC."
    default_parameters = {"auto": True, "p": 1, "d": 1, "q": 1}
    parameter_ranges = {"p": (0, 5), "d": (0, 2), "q": (0, 5)}

    @classmethod
    def min_observations(cls, seasonal_period=12):
        return 10

    def _fit(self, data):
        if self.parameters.get("auto"):
            self.result, self.order = self._auto_fit(data)
        else:
            self.order = (int(self.parameters["p"]), int(self.parameters["d"]), int(self.parameters["q"]))
            try:
                self.result = _fit_sarimax(data, self.order)
            except (ValueError, np.linalg.LinAlgError) as e:
                raise ModelFitError(f"ARIMA{self.order} training failed: {e}") from e

    def _auto_fit(self, data):
        best = None
        for order in itertools.product(AUTO_P, AUTO_D, AUTO_Q):
            try:
                res = _fit_sarimax(data, order)
            except (ValueError, np.linalg.LinAlgError) as e:
                logger.debug(f"ARIMA{order} skipped: {e}")
                continue
            if not np.isfinite(res.aic):
                continue
            if best is None or res.aic < best[0].aic:
                best = (res, order)
        if best is None:
            raise ModelFitError("Auto ARIMA could not fit any order")
        return best

    def _forecast(self, periods):
        return list(np.asarray(self.result.forecast(steps=periods), dtype=float))

    def fitted_parameters(self):
        p, d, q = self.order
        return {**self.parameters, "p": p, "d": d, "q": q}


class SARIMAModel(BaseModel):
    model_id = "sarima"
    display_name = "SARIMA (Seasonal ARIMA)"
    category = "Advanced Seasonal Models"
    description = "ARIMA with a seasonal (P, D, Q, m) component."
    is_seasonal = True
    default_parameters = {"p": 1, "d": 1, "q": 1, "P": 1, "D": 0, "Q": 0}
    parameter_ranges = {"p": (0, 3), "d": (0, 1), "q": (0, 3), "P": (0, 2), "D": (0, 1), "Q": (0, 2)}

    @classmethod
    def min_observations(cls, seasonal_period=12):
        return 2 * int(seasonal_period)

    def _fit(self, data):
        p = self.parameters
        self.order = (int(p["p"]), int(p["d"]), int(p["q"]))
        self.seasonal_order = (int(p["P"]), int(p["D"]), int(p["Q"]), self.seasonal_period)
        try:
            self.result = _fit_sarimax(data, self.order, self.seasonal_order)
        except (ValueError, np.linalg.LinAlgError) as e:
            raise ModelFitError(f"SARIMA{self.order}{self.seasonal_order} training failed: {e}") from e

    def _forecast(self, periods):
        return list(np.asarray(self.result.forecast(steps=periods), dtype=float))
