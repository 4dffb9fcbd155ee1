# mfp_forecaster_src/__init__.py

"""
MFP Forecaster - Staged Multifactor Productivity Forecasting Package

This package loads the ABS market sector productivity indexes, checks the
target series for a unit root, fits a piecewise-trend regression and two
regressions with ARIMA(1,1,0) errors, and forecasts multifactor productivity
recursively from forecast labour and capital inputs.

Key Components
--------------
- config_utils: Configuration management and CLI override support
- data_utils: Workbook loading, 'na' handling and base-period rescaling
- transform_utils: Piecewise-linear trend basis and unit-root test wrappers
- diagnostics_utils: Stationarity reports and Ljung-Box residual checks
- forecasting_utils: OLS and ARIMA-error fitting, recursive forecasting
- plotting_utils: Index, fit, residual and forecast charts
- parsing_utils: Command-line argument validation
- file_utils: Forecast CSV export and markdown report
- errors: Exception hierarchy shared by every stage
- main: Main entry point and stage orchestration

Usage
-----
    # Command-line usage
    python -m mfp_forecaster_src.main --workbook data/5260055002DO001_201617.xlsx

    # Programmatic usage
    from mfp_forecaster_src import load_productivity_table, fit_ar_error_model, recursive_forecast
"""

__version__ = "1.0.0"
__author__ = "MFP Forecaster Development Team"

from .config_utils import initialize_config, get_config_value
from .data_utils import load_productivity_table
from .diagnostics_utils import run_stationarity_diagnostics, check_residuals
from .errors import ConfigurationError, DataError, EstimationError, ForecastPipelineError
from .forecasting_utils import (
    ModelVariant, fit_trend_regression, fit_ar_error_model, forecast_model, recursive_forecast
)
from .transform_utils import build_trend_basis, extend_trend_basis
from .main import main, run_pipeline

__all__ = [
    # Core functionality
    "main",
    "run_pipeline",
    "initialize_config",
    "get_config_value",
    "load_productivity_table",
    "build_trend_basis",
    "extend_trend_basis",
    "run_stationarity_diagnostics",
    "check_residuals",
    "ModelVariant",
    "fit_trend_regression",
    "fit_ar_error_model",
    "forecast_model",
    "recursive_forecast",
    # Errors
    "ConfigurationError",
    "DataError",
    "EstimationError",
    "ForecastPipelineError",
    # Version info
    "__version__",
    "__author__",
]
