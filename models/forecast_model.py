import logging

from db.queries import load_series_frame, series_by_sku
from models.base_model import build_metrics
from models.registry import available_models, create_model, get_model_class, is_model_eligible, resolve_model_id
from utils.ai_config import MODEL_VERSION, DEFAULT_FORECAST_PERIODS, MIN_TS_POINTS, ACCURACY_HOLDOUT_POINTS
from utils.date_utils import detect_date_frequency, generate_forecast_dates, seasonal_period_from_frequency
from utils.errors import ForecastAIError

logger = logging.getLogger(__name__)


def default_forecast_models():
    return [mid for mid in available_models() if mid != "prophet"]


def holdout_accuracy(model_id, parameters, values, seasonal_period):
    """Accuracy on the last (up to 10) actuals when trained on the points before them."""
    holdout = min(ACCURACY_HOLDOUT_POINTS, len(values) // 2)
    if holdout < 1:
        return None
    model = create_model(model_id, parameters, seasonal_period)
    model.train(values[:-holdout])
    return build_metrics(values[-holdout:], model.predict(holdout))["accuracy"]


def forecast_series(values, dates, model_id, periods, seasonal_period, frequency, parameters=None):
    model = create_model(model_id, parameters, seasonal_period).train(values)
    predictions = model.predict(periods)
    forecast_dates = generate_forecast_dates(dates[-1], periods, frequency)
    return [(d, round(max(0.0, p), 2)) for d, p in zip(forecast_dates, predictions)]


def generate_forecasts(company_id: int, dataset_id: int, model_ids=None, periods: int = DEFAULT_FORECAST_PERIODS,
                       sku: str | None = None, parameters: dict | None = None, frequency: str | None = None):
    """
    Trains each requested model on every SKU of a dataset and forecasts `periods` ahead.
    `parameters` maps model id -> parameter dict (e.g. the optimized ones).
    Without `frequency`, each SKU's frequency is detected from its dates.
    Returns list of dict rows to upsert into forecast_results.
    """
    df = load_series_frame(company_id, dataset_id, sku)
    if df.empty:
        return []

    model_ids = [resolve_model_id(m) for m in (model_ids or default_forecast_models())]
    parameters = parameters or {}

    results = []
    for sku_code, (dates, values) in series_by_sku(df).items():
        # Require enough points
        if len(values) < MIN_TS_POINTS:
            continue

        sku_frequency = frequency or detect_date_frequency(dates)["type"]
        seasonal_period = seasonal_period_from_frequency(sku_frequency)

        for model_id in model_ids:
            if len(values) < get_model_class(model_id).min_observations(seasonal_period):
                continue
            params = parameters.get(model_id)
            try:
                forecast = forecast_series(values, dates, model_id, periods, seasonal_period, sku_frequency, params)
            except ForecastAIError as e:
                logger.warning(f"Skipping {model_id} for SKU {sku_code}: {e}")
                continue

            accuracy = None
            if is_model_eligible(model_id, len(values), seasonal_period):
                try:
                    accuracy = holdout_accuracy(model_id, params, values, seasonal_period)
                except ForecastAIError as e:
                    logger.info(f"No holdout accuracy for {model_id}/{sku_code}: {e}")

            for forecast_date, value in forecast:
                results.append({
                    "company_id": company_id,
                    "dataset_id": dataset_id,
                    "sku_code": sku_code,
                    "model_id": model_id,
                    "forecast_date": forecast_date,
                    "predicted_value": value,
                    "accuracy": round(accuracy, 2) if accuracy is not None else None,
                    "model_version": MODEL_VERSION,
                })

    return results
