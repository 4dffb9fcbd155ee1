# mfp_forecaster_src/main.py

"""
Multifactor productivity forecasting from the ABS productivity indexes (1973-2016).

This is the main entry point. Each stage takes the previous stage's output as
an explicit argument and returns a new object; nothing is shared through
module state.

Purpose
-------
- Load the fixed block of the productivity workbook, transpose it, drop the
  null multifactor column, convert 'na' cells and rescale every series to the
  2003-04 base (= 100)
- Run ADF, KPSS and the differencing-order heuristic on the target series
- Fit the OLS piecewise-trend baseline and two regressions with ARIMA(1,1,0)
  errors (with and without the trend basis) and check their residuals
- Carry the configured variant forward and forecast the target recursively:
  regressors first, then the target on the forecast regressors
- Save figures, a forecast CSV and a short markdown report

Data Source
-----------
Australian Bureau of Statistics, Estimates of Industry Multifactor
Productivity (cat. 5260.0.55.002), market sector indexes. 'na' marks values
the ABS does not publish.

Configuration-Driven Workflow
-----------------------------
Workbook addressing, series names, breakpoints, ARIMA order and horizon live
in config/settings.yaml. CLI arguments override configuration values.
"""

import argparse
import logging
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional, Tuple

import pandas as pd

from helpers.temporal import financial_year_label
from .config_utils import get_config_value, initialize_config, require_config_value
from .data_utils import SERIES_NAMES, load_productivity_table, select_window
from .diagnostics_utils import (
    DiagnosticResult, StationarityReport, check_residuals, run_stationarity_diagnostics,
    save_residual_diagnostics, summarize_models
)
from .errors import ConfigurationError, DataError, ForecastPipelineError
from .file_utils import ensure_dir, export_forecast_csv, resolve_path, write_run_report
from .forecasting_utils import (
    FittedModel, ModelVariant, RecursiveForecast, fit_ar_error_model, fit_trend_regression,
    recursive_forecast
)
from .parsing_utils import (
    parse_int_list, parse_intervals_arg, validate_fit_window, validate_horizon, validate_log_level,
    validate_model_series, validate_series_names
)

logger = logging.getLogger(__name__)

BASE_DIR = Path(__file__).resolve().parent.parent


@dataclass(frozen=True)
class PipelineSettings:
    """Every setting the pipeline reads, resolved once from config and CLI."""

    workbook: Path
    sheet_name: object = "Table 1"
    skip_rows: int = 9
    n_rows: int = 6
    start_year: int = 1973
    na_token: str = "na"
    base_year: Optional[int] = 2003
    base_row: Optional[int] = None
    target: str = "MultifactorQA"
    regressors: Tuple[str, ...] = ("LabourQA", "Capital")
    breakpoints: Tuple[int, ...] = (1987, 2003)
    order: Tuple[int, int, int] = (1, 1, 0)
    fit_start: Optional[int] = None
    fit_end: Optional[int] = None
    target_variant: ModelVariant = ModelVariant.REGRESSORS_ONLY
    require_convergence: bool = True
    maxiter: int = 200
    horizon: int = 5
    coverage_levels: Tuple[int, ...] = (80, 95)
    alpha: float = 0.05
    max_d: int = 2
    figures_dir: Optional[Path] = None
    forecast_csv: Optional[Path] = None
    make_plots: bool = True

    @property
    def fit_kwargs(self) -> Dict:
        return {"maxiter": self.maxiter}


@dataclass(frozen=True)
class PipelineResult:
    """Outputs of one run, in stage order."""

    table: pd.DataFrame = field(repr=False)
    stationarity: StationarityReport
    ols_model: FittedModel
    ols_check: DiagnosticResult
    variant_models: Dict[ModelVariant, FittedModel]
    variant_checks: Dict[ModelVariant, DiagnosticResult]
    selected_variant: ModelVariant
    forecast: RecursiveForecast
    model_summary: pd.DataFrame = field(repr=False)
    narrative: str = ""

    @property
    def selected_model(self) -> FittedModel:
        return self.variant_models[self.selected_variant]


def resolve_settings(args: Optional[argparse.Namespace] = None, base_dir: Path = BASE_DIR) -> PipelineSettings:
    """Combine CLI arguments, config/settings.yaml and defaults into PipelineSettings."""
    workbook = resolve_path(str(require_config_value("data.workbook", args, "workbook")), base_dir)

    # A base period given on the command line replaces both configured selectors.
    cli_row = getattr(args, "base_row", None) if args is not None else None
    cli_year = getattr(args, "base_year", None) if args is not None else None
    if cli_row is not None:
        base_row, base_year = cli_row, None
    elif cli_year is not None:
        base_row, base_year = None, cli_year
    else:
        base_row = get_config_value("data.base_row", None)
        base_year = get_config_value("data.base_year", 2003)

    horizon = validate_horizon(get_config_value("forecast.horizon", 5, args, "horizon"))
    levels_arg = getattr(args, "intervals", None) if args is not None else None
    coverage = parse_intervals_arg(levels_arg, get_config_value("forecast.coverage_levels", [80, 95]))

    regressors = tuple(get_config_value("model.regressors", ["LabourQA", "Capital"]))
    target = get_config_value("model.target", "MultifactorQA", args, "target")
    validate_series_names([target, *regressors], SERIES_NAMES)
    validate_model_series(target, regressors)
    fit_start, fit_end = validate_fit_window(get_config_value("model.fit_start", None, args, "fit_start"),
                                             get_config_value("model.fit_end", None, args, "fit_end"))

    breakpoints_arg = getattr(args, "breakpoints", None) if args is not None else None
    breakpoints = tuple(parse_int_list(breakpoints_arg, get_config_value("model.breakpoints", [1987, 2003])))

    figures_dir = resolve_path(str(get_config_value("output.figures_dir", "figures", args, "figures_dir")), base_dir)
    forecast_csv = get_config_value("output.forecast_csv", None, args, "output_csv")

    return PipelineSettings(
        workbook=workbook,
        sheet_name=get_config_value("data.sheet_name", "Table 1", args, "sheet"),
        skip_rows=int(get_config_value("data.skip_rows", 9)),
        n_rows=int(get_config_value("data.n_rows", 6)),
        start_year=int(get_config_value("data.start_year", 1973)),
        na_token=str(get_config_value("data.na_token", "na")),
        base_year=int(base_year) if base_year is not None else None,
        base_row=int(base_row) if base_row is not None else None,
        target=target,
        regressors=regressors,
        breakpoints=breakpoints,
        fit_start=fit_start,
        fit_end=fit_end,
        order=tuple(int(x) for x in get_config_value("model.order", [1, 1, 0])),
        target_variant=ModelVariant.parse(
            get_config_value("model.target_variant", "regressors_only", args, "target_variant")),
        require_convergence=bool(get_config_value("model.require_convergence", True)),
        maxiter=int(get_config_value("model.fit.maxiter", 200)),
        horizon=horizon,
        coverage_levels=tuple(coverage),
        alpha=float(get_config_value("diagnostics.alpha", 0.05)),
        max_d=int(get_config_value("diagnostics.max_d", 2)),
        figures_dir=figures_dir,
        forecast_csv=resolve_path(str(forecast_csv), base_dir) if forecast_csv else None,
        make_plots=not bool(getattr(args, "no_plots", False)) if args is not None else True,
    )


def forecast_narrative(target: str, forecast) -> str:
    """One sentence reporting the horizon-end point forecast, rounded to two decimals."""
    if len(forecast) == 0:
        return f"No forecast was requested for {target} (horizon 0)."
    last = forecast.index[-1]
    value = round(float(forecast.mean.iloc[-1]), 2)
    return (f"The forecast {target} index for {financial_year_label(last.year)} "
            f"is {value:.2f} ({len(forecast)} years ahead of the last observation).")


def run_pipeline(settings: PipelineSettings) -> PipelineResult:
    """
    Run the five stages in order and return every intermediate result.

    Stage composition
    -----------------
    load -> stationarity diagnostics -> OLS trend baseline -> AR-error model
    with trend -> AR-error model without trend -> accept the configured variant
    -> recursive forecast -> figures, CSV, report
    """
    logger.info("Starting MFP pipeline with workbook: %s", settings.workbook)

    # 1) Loader/Normalizer
    table = load_productivity_table(
        settings.workbook, settings.sheet_name, settings.skip_rows, settings.n_rows,
        settings.start_year, base_year=settings.base_year, base_row=settings.base_row,
        na_token=settings.na_token,
    )

    plots = settings.make_plots and settings.figures_dir is not None
    if plots:
        from .plotting_utils import plot_index_panel
        ensure_dir(settings.figures_dir)
        plot_index_panel(table, settings.figures_dir / "Index_Panel.png")

    window = {"fit_start": settings.fit_start, "fit_end": settings.fit_end}
    history = select_window(table, [settings.target], settings.fit_start, settings.fit_end)[settings.target]
    if history.empty:
        raise DataError(f"Fit window {settings.fit_start}..{settings.fit_end} holds no observations")
    if settings.fit_start is not None or settings.fit_end is not None:
        logger.info("Fit window %s..%s", history.index[0], history.index[-1])

    # 2) Stationarity diagnostics (advisory)
    stationarity = run_stationarity_diagnostics(history, alpha=settings.alpha, max_d=settings.max_d)

    # 3) OLS piecewise-trend baseline
    ols_model = fit_trend_regression(table, settings.target, settings.regressors, settings.breakpoints, **window)

    # 4) AR-error refits: with trend (a), then regressors only (b)
    variant_models: Dict[ModelVariant, FittedModel] = {}
    for variant in (ModelVariant.WITH_TREND, ModelVariant.REGRESSORS_ONLY):
        variant_models[variant] = fit_ar_error_model(
            table, settings.target, settings.regressors, variant, settings.breakpoints,
            settings.order, settings.require_convergence, settings.fit_kwargs,
            **window,
        )

    all_models = [ols_model] + list(variant_models.values())
    if plots:
        from .plotting_utils import plot_fitted_vs_actual
        plot_fitted_vs_actual(ols_model, history, settings.figures_dir / "OLS_Fitted.png")
        checks = {m.name: save_residual_diagnostics(m, settings.figures_dir, alpha=settings.alpha)
                  for m in all_models}
    else:
        checks = {m.name: check_residuals(m, alpha=settings.alpha) for m in all_models}
    model_summary = summarize_models(all_models, alpha=settings.alpha, checks=checks)
    logger.info("Model comparison:\n%s", model_summary.to_string(index=False))

    selected = settings.target_variant
    rejected = [v for v in variant_models if v is not selected]
    logger.info("Carrying forward %s (configured); %s kept for comparison only",
                variant_models[selected].name, ", ".join(variant_models[v].name for v in rejected))
    if checks[variant_models[selected].name].is_significant:
        logger.warning("Selected model %s still shows residual autocorrelation", variant_models[selected].name)

    # 5) Recursive forecast
    forecast = recursive_forecast(
        variant_models[selected], table, settings.horizon, settings.breakpoints, settings.order,
        settings.coverage_levels, settings.require_convergence, settings.fit_kwargs,
        show_progress=logger.isEnabledFor(logging.INFO),
        **window,
    )

    narrative = forecast_narrative(settings.target, forecast.target)
    logger.info("%s", narrative)

    if plots:
        from .plotting_utils import plot_forecast, plot_regressor_forecasts
        plot_forecast(history, forecast.target, settings.figures_dir / "Forecast_Target.png")
        plot_regressor_forecasts(table, forecast.regressors, settings.figures_dir / "Forecast_Regressors.png")
    export_forecast_csv(settings.forecast_csv, forecast.target, forecast.regressors)
    if settings.figures_dir is not None:
        write_run_report(settings.figures_dir / "report.md", narrative, model_summary)

    return PipelineResult(
        table=table,
        stationarity=stationarity,
        ols_model=ols_model,
        ols_check=checks[ols_model.name],
        variant_models=variant_models,
        variant_checks={v: checks[m.name] for v, m in variant_models.items()},
        selected_variant=selected,
        forecast=forecast,
        model_summary=model_summary,
        narrative=narrative,
    )


def setup_cli_parser() -> argparse.ArgumentParser:
    """
    Set up the command-line argument parser.

    Every option defaults to None so that config/settings.yaml supplies the value.
    """
    parser = argparse.ArgumentParser(
        description="Forecast market sector multifactor productivity from the ABS productivity indexes."
    )
    parser.add_argument(
        "--workbook", type=str, default=None,
        help="Path to the productivity workbook (relative to the project root if not absolute)."
    )
    parser.add_argument("--sheet", type=str, default=None, help="Worksheet holding the index block.")
    parser.add_argument(
        "--figures-dir", type=str, default=None,
        help="Directory for figures, residual diagnostics and the markdown report."
    )
    parser.add_argument("--output-csv", type=str, default=None, help="Write all forecasts to this CSV.")
    parser.add_argument("--horizon", type=int, default=None, help="Forecast horizon in years.")
    parser.add_argument("--base-year", type=int, default=None,
                        help="Calendar year rescaled to 100; replaces a configured base row.")
    parser.add_argument(
        "--base-row", type=int, default=None,
        help="1-based row of the base period (row 31 is 2003-04 in the published table)."
    )
    parser.add_argument("--target", type=str, default=None, choices=SERIES_NAMES, help="Series to forecast.")
    parser.add_argument("--fit-start", type=int, default=None, help="First year of the fit window.")
    parser.add_argument("--fit-end", type=int, default=None, help="Last year of the fit window.")
    parser.add_argument(
        "--target-variant", type=str, default=None, choices=[v.value for v in ModelVariant],
        help="Regressor set carried forward for the target model."
    )
    parser.add_argument("--breakpoints", type=str, default=None, help="Comma-separated trend knot years.")
    parser.add_argument("--intervals", type=str, default=None, help="Prediction interval coverages, e.g. '80,95'.")
    parser.add_argument("--no-plots", action="store_true", default=False, help="Skip figure rendering.")
    parser.add_argument(
        "--log-level", type=str, default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging verbosity level."
    )
    return parser


def setup_logging(log_level: str) -> None:
    """
    Configure logging with specified level and warning filters.
    """
    level = validate_log_level(log_level)
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
        datefmt="%H:%M:%S",
    )

    if level == "DEBUG":
        warnings.resetwarnings()
        warnings.filterwarnings("default")
    else:
        from statsmodels.tools.sm_exceptions import ConvergenceWarning
        warnings.filterwarnings("ignore", category=ConvergenceWarning)
        warnings.filterwarnings("ignore", category=FutureWarning)
        warnings.filterwarnings("ignore", category=UserWarning, module="statsmodels")


def main(argv=None) -> None:
    """
    Main entry point for the MFP forecasting application.

    Errors are not recovered: they are logged and the process exits with status 1.
    """
    parser = setup_cli_parser()
    args = parser.parse_args(argv)
    setup_logging(args.log_level)

    try:
        initialize_config()
        settings = resolve_settings(args)
        result = run_pipeline(settings)
    except ConfigurationError as e:
        logger.error("Configuration error: %s", e)
        raise SystemExit(1)
    except ForecastPipelineError as e:
        logger.error("%s: %s", type(e).__name__, e)
        raise SystemExit(1)

    print(result.narrative)


if __name__ == "__main__":
    main()
