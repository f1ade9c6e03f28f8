class ForecastAIError(Exception):
    """Base class for errors raised by the forecasting service."""


class InsufficientDataError(ForecastAIError):
    pass


class ParameterValidationError(ForecastAIError):
    pass


class ModelNotTrainedError(ForecastAIError):
    pass


class UnknownModelError(ForecastAIError):
    pass


class OptimizationError(ForecastAIError):
    pass


class JobStateError(ForecastAIError):
    pass


class JobInterrupted(ForecastAIError):
    """Raised inside the worker when a running job was cancelled or paused."""


class ImportValidationError(ForecastAIError):
    pass


class GrokError(ForecastAIError):
    pass


class ModelFitError(ForecastAIError):
    pass


class NotFoundError(ForecastAIError):
    pass
