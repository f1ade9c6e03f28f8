MODEL_VERSION = "v1.0"
APP_VERSION = "1.0.0"
DEFAULT_FORECAST_PERIODS = 12
MIN_TS_POINTS = 3
ACCURACY_HOLDOUT_POINTS = 10

VALIDATION_RATIO = 0.2
DEFAULT_SEASONAL_PERIOD = 12
DEFAULT_Z_THRESHOLD = 2.5

DEFAULT_METRIC_WEIGHTS = {"mape": 0.4, "rmse": 0.3, "mae": 0.2, "accuracy": 0.1}

JOB_STATUSES = ("pending", "running", "completed", "failed", "cancelled", "skipped")
FINISHED_STATUSES = ("completed", "failed", "cancelled", "skipped")
OPTIMIZATION_METHODS = ("grid", "ai")

DEFAULT_SETTINGS = {
    "global_frequency": "monthly",
    "global_seasonalPeriods": 12,
    "global_autoDetectFrequency": True,
    "global_csvSeparator": ",",
    "global_forecastPeriods": DEFAULT_FORECAST_PERIODS,
    "global_metricWeights": DEFAULT_METRIC_WEIGHTS,
}
