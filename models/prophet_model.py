import hashlib
import json
import logging
import os

import joblib
import pandas as pd
from prophet import Prophet

from config import config
from models.base_model import BaseModel

logger = logging.getLogger(__name__)

MODELS_DIR = config.MODELS_DIR

PERIOD_FREQ = {7: "D", 52: "W-MON", 12: "MS", 4: "QS", 1: "YS"}


def _model_path(key: str) -> str:
    return os.path.join(MODELS_DIR, f"prophet_{key}.pkl")


def _load_or_train(df: pd.DataFrame, model_path: str, seasonal_period: int) -> Prophet:
    model = None
    if os.path.exists(model_path):
        try:
            model = joblib.load(model_path)
        except (OSError, EOFError, ValueError) as e:
            logger.warning(f"Discarding unreadable cached Prophet model {model_path}: {e}")
            model = None
    if model is None:
        model = Prophet(
            yearly_seasonality=seasonal_period in (12, 4, 52),
            weekly_seasonality=seasonal_period == 7,
            daily_seasonality=False,
        )
        model.fit(df)
        os.makedirs(MODELS_DIR, exist_ok=True)
        joblib.dump(model, model_path)
    return model


class ProphetModel(BaseModel):
    model_id = "prophet"
    display_name = "Prophet"
    category = "Advanced Seasonal Models"
    description = "Additive regression with trend and yearly/weekly seasonality; fitted models are cached."
    is_seasonal = True
    grid_search = False

    def _frame(self, data):
        freq = PERIOD_FREQ.get(self.seasonal_period, "MS")
        ds = pd.date_range(start="2000-01-01", periods=len(data), freq=freq)
        return pd.DataFrame({"ds": ds, "y": data}), freq

    def _fit(self, data):
        df, self.freq = self._frame(data)
        key = hashlib.sha256(
            json.dumps({"y": [float(v) for v in data], "m": self.seasonal_period}).encode("utf-8")
        ).hexdigest()[:32]
        self.model = _load_or_train(df, _model_path(key), self.seasonal_period)

    def _forecast(self, periods):
        future = self.model.make_future_dataframe(periods=periods, freq=self.freq)
        forecast = self.model.predict(future)
        # only the future horizon (last N)
        return [max(0.0, float(v)) for v in forecast.tail(periods)["yhat"]]
