from datetime import datetime

from db.connection import upsert
from db.models import CompanySetting
from utils.ai_config import DEFAULT_SETTINGS
from utils.date_utils import FREQUENCY_INTERVALS, seasonal_period_from_frequency
from utils.errors import ParameterValidationError


def load_settings(db, company_id: int) -> dict:
    """Defaults merged with the company's stored values."""
    settings = {k: (dict(v) if isinstance(v, dict) else v) for k, v in DEFAULT_SETTINGS.items()}
    rows = db.query(CompanySetting).filter(CompanySetting.company_id == company_id).all()
    for row in rows:
        settings[row.key] = row.value
    return settings


def validate_settings(values: dict) -> dict:
    unknown = [k for k in values if k not in DEFAULT_SETTINGS]
    if unknown:
        raise ParameterValidationError(f"Unknown setting(s): {', '.join(sorted(unknown))}")

    values = dict(values)
    frequency = values.get("global_frequency")
    if frequency is not None:
        if frequency not in FREQUENCY_INTERVALS:
            raise ParameterValidationError(f"Invalid frequency: {frequency}")
        values["global_seasonalPeriods"] = seasonal_period_from_frequency(frequency)

    for key in ("global_seasonalPeriods", "global_forecastPeriods"):
        if key in values:
            try:
                values[key] = int(values[key])
            except (TypeError, ValueError):
                raise ParameterValidationError(f"{key} must be an integer")
            if values[key] < 1:
                raise ParameterValidationError(f"{key} must be positive")

    weights = values.get("global_metricWeights")
    if weights is not None:
        if not isinstance(weights, dict) or not all(isinstance(v, (int, float)) for v in weights.values()):
            raise ParameterValidationError("global_metricWeights must map metric -> number")
    return values


def save_settings(db, company_id: int, values: dict) -> dict:
    """Validates and upserts; caller commits. Returns the stored values."""
    values = validate_settings(values)
    if not values:
        return values
    rows = [
        {"company_id": company_id, "key": k, "value": v, "updated_at": datetime.utcnow()}
        for k, v in values.items()
    ]
    stmt = upsert(CompanySetting, rows, ["company_id", "key"], {"value": "excluded", "updated_at": "excluded"})
    db.execute(stmt)
    return values
