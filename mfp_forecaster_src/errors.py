# mfp_forecaster_src/errors.py

"""
Error taxonomy for the forecasting pipeline.

- ConfigurationError: out-of-range base period, breakpoint or horizon, or bad settings
- DataError: unreadable workbook, missing values inside a fit window, too few observations
- EstimationError: a statsmodels fit or forecast that failed or did not converge

None of these are recovered automatically; they propagate to main() and end the run.
"""

from config import ConfigurationError


class ForecastPipelineError(Exception):
    """Base class for data and estimation failures raised by the pipeline."""


class DataError(ForecastPipelineError):
    """Input data cannot support the requested operation."""


class EstimationError(ForecastPipelineError):
    """Model fitting or forecasting failed inside the estimator."""


__all__ = ["ConfigurationError", "ForecastPipelineError", "DataError", "EstimationError"]
