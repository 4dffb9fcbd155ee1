# mfp_forecaster_src/forecasting_utils.py

import hashlib
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
import statsmodels.api as sm
from statsmodels.tsa.statespace.sarimax import SARIMAX
from tqdm.auto import tqdm

from helpers.temporal import future_annual_index
from .data_utils import select_window
from .errors import ConfigurationError, DataError, EstimationError
from .transform_utils import DEFAULT_BREAKPOINTS, build_trend_basis, extend_trend_basis, trend_columns

logger = logging.getLogger(__name__)

DEFAULT_ORDER = (1, 1, 0)
DEFAULT_COVERAGE = (80, 95)


class ModelVariant(Enum):
    """Regressor set for the AR-error model of the target series."""
    WITH_TREND = "with_trend"
    REGRESSORS_ONLY = "regressors_only"

    @classmethod
    def parse(cls, value: Union[str, "ModelVariant"]) -> "ModelVariant":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            valid = [v.value for v in cls]
            raise ConfigurationError(f"Unknown model variant '{value}'. Must be one of: {valid}") from None


@dataclass(frozen=True)
class FittedModel:
    """A fitted model bound to its target, regressors and error structure."""

    name: str
    target: str
    exog_columns: Tuple[str, ...]
    error_structure: str
    results: Any = field(repr=False)
    order: Optional[Tuple[int, int, int]] = None
    breakpoints: Tuple[int, ...] = ()

    @property
    def includes_trend(self) -> bool:
        return "t" in self.exog_columns

    @property
    def regressors(self) -> Tuple[str, ...]:
        trend = set(trend_columns(self.breakpoints)) if self.breakpoints else {"t"}
        return tuple(c for c in self.exog_columns if c not in trend and c != "const")

    @property
    def residuals(self) -> pd.Series:
        """In-sample residuals; burn-in residuals of differenced models are excluded."""
        resid = pd.Series(self.results.resid)
        burn = int(getattr(self.results, "loglikelihood_burn", 0) or 0)
        return resid.iloc[burn:]

    @property
    def fitted_values(self) -> pd.Series:
        return pd.Series(self.results.fittedvalues)

    @property
    def n_params(self) -> int:
        """Estimated coefficients, excluding the error variance."""
        names = list(getattr(self.results.model, "param_names", None) or self.results.params.index)
        return len([n for n in names if n != "sigma2"])

    @property
    def aic(self) -> float:
        return float(self.results.aic)

    @property
    def bic(self) -> float:
        return float(self.results.bic)

    @property
    def first_period(self) -> pd.Period:
        return self.results.model.data.row_labels[0]

    @property
    def last_period(self) -> pd.Period:
        return self.results.model.data.row_labels[-1]


@dataclass(frozen=True)
class ForecastResult:
    """Point forecasts and prediction intervals for one series over a horizon."""

    name: str
    mean: pd.Series
    intervals: Mapping[int, pd.DataFrame] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.mean)

    @property
    def horizon(self) -> int:
        return len(self.mean)

    @property
    def index(self) -> pd.PeriodIndex:
        return self.mean.index

    def to_frame(self) -> pd.DataFrame:
        """Mean and interval bounds as columns, e.g. 'mean', 'lower_80', 'upper_80'."""
        out = pd.DataFrame({"mean": self.mean})
        for lvl in sorted(self.intervals):
            out[f"lower_{lvl}"] = self.intervals[lvl]["lower"]
            out[f"upper_{lvl}"] = self.intervals[lvl]["upper"]
        return out


@dataclass(frozen=True)
class RecursiveForecast:
    """Target forecast plus the intermediate regressor forecasts that fed it."""

    target: ForecastResult
    regressors: Mapping[str, ForecastResult]
    regressor_models: Mapping[str, FittedModel] = field(default_factory=dict)
    future_exog: Optional[pd.DataFrame] = field(default=None, repr=False)


def _require_complete(frame: pd.DataFrame, what: str, min_obs: int) -> None:
    if frame.isna().any().any():
        bad = frame.columns[frame.isna().any()].tolist()
        raise DataError(
            f"Missing values in {what} for columns {bad}; "
            f"{int(frame.isna().sum().sum())} cells inside the fit window"
        )
    if len(frame) < min_obs:
        raise DataError(f"Insufficient observations for {what}: {len(frame)} < {min_obs}")


def _design(table: pd.DataFrame,
            target: str,
            regressors: Sequence[str],
            include_trend: bool,
            breakpoints: Sequence[int],
            fit_start: Optional[int] = None,
            fit_end: Optional[int] = None) -> Tuple[pd.Series, pd.DataFrame]:
    """Target series and exogenous design (trend basis first, then regressors) over the fit window."""
    regressors = list(regressors)
    if target in regressors:
        raise ConfigurationError(f"Target '{target}' cannot also be one of its regressors {regressors}")
    if len(set(regressors)) != len(regressors):
        raise ConfigurationError(f"Duplicate regressors in {regressors}")
    data = select_window(table, [target] + regressors, start=fit_start, end=fit_end)
    parts = []
    if include_trend:
        parts.append(build_trend_basis(data.index, breakpoints))
    if regressors:
        parts.append(data[list(regressors)])
    exog = pd.concat(parts, axis=1) if parts else pd.DataFrame(index=data.index)
    return data[target], exog


def fit_trend_regression(table: pd.DataFrame,
                         target: str,
                         regressors: Sequence[str],
                         breakpoints: Sequence[int] = DEFAULT_BREAKPOINTS,
                         fit_start: Optional[int] = None,
                         fit_end: Optional[int] = None) -> FittedModel:
    """
    OLS of the target on the piecewise trend basis plus the regressor series.

    This is the comparison baseline: its residuals are expected to keep
    significant autocorrelation.

    Parameters
    ----------
    table : pd.DataFrame
        Time series table from the loader.
    target : str
        Series to explain.
    regressors : Sequence[str]
        Contemporaneous regressor series.
    breakpoints : Sequence[int], default=(1987, 2003)
        Knot years of the trend basis.
    fit_start, fit_end : Optional[int]
        Inclusive first and last calendar year of the fit window; the full
        table when omitted.

    Returns
    -------
    FittedModel
        error_structure 'ols'; residuals and fitted values are inspectable.

    Raises
    ------
    DataError
        If a used column has missing values or there are too few observations.
    EstimationError
        If statsmodels fails to fit.
    """
    endog, exog = _design(table, target, regressors, True, breakpoints, fit_start, fit_end)
    design = sm.add_constant(exog, has_constant="add")
    _require_complete(pd.concat([endog, design], axis=1), f"OLS fit of {target}", design.shape[1] + 2)

    try:
        res = sm.OLS(endog, design).fit()
    except (ValueError, np.linalg.LinAlgError) as e:
        raise EstimationError(f"OLS fit of {target} failed: {e}") from e

    logger.info("OLS %s ~ %s: R^2=%.4f, AIC=%.3f", target, " + ".join(exog.columns), res.rsquared, res.aic)
    return FittedModel(
        name=f"OLS_{target}_trend",
        target=target,
        exog_columns=tuple(design.columns),
        error_structure="ols",
        results=res,
        breakpoints=tuple(int(b) for b in breakpoints),
    )


def _fit_sarimax(endog: pd.Series,
                 exog: Optional[pd.DataFrame],
                 order: Tuple[int, int, int],
                 label: str,
                 require_convergence: bool,
                 fit_kwargs: Optional[Dict] = None):
    kwargs = {"disp": False, "maxiter": 200}
    if fit_kwargs:
        kwargs.update(fit_kwargs)
    try:
        model = SARIMAX(
            endog,
            exog if exog is not None and exog.shape[1] > 0 else None,
            order=tuple(order),
            simple_differencing=False,
        )
        res = model.fit(**kwargs)
    except (ValueError, np.linalg.LinAlgError) as e:
        raise EstimationError(f"ARIMA{tuple(order)} fit of {label} failed: {e}") from e

    retvals = getattr(res, "mle_retvals", None) or {}
    if not retvals.get("converged", True):
        if require_convergence:
            raise EstimationError(f"ARIMA{tuple(order)} fit of {label} did not converge")
        logger.warning("ARIMA%s fit of %s did not converge; continuing", tuple(order), label)
    return res


def fit_ar_error_model(table: pd.DataFrame,
                       target: str,
                       regressors: Sequence[str],
                       variant: Union[str, ModelVariant] = ModelVariant.REGRESSORS_ONLY,
                       breakpoints: Sequence[int] = DEFAULT_BREAKPOINTS,
                       order: Tuple[int, int, int] = DEFAULT_ORDER,
                       require_convergence: bool = True,
                       fit_kwargs: Optional[Dict] = None,
                       fit_start: Optional[int] = None,
                       fit_end: Optional[int] = None) -> FittedModel:
    """
    Regression with ARIMA(1,1,0) errors for the target series.

    Parameters
    ----------
    table : pd.DataFrame
        Time series table from the loader.
    target : str
        Series to explain.
    regressors : Sequence[str]
        The two regressor series.
    variant : Union[str, ModelVariant]
        WITH_TREND adds the trend basis to the regressors; REGRESSORS_ONLY
        uses the regressors alone.
    breakpoints : Sequence[int], default=(1987, 2003)
        Knot years of the trend basis (used by WITH_TREND).
    order : Tuple[int, int, int], default=(1, 1, 0)
        ARIMA order of the error process.
    require_convergence : bool, default=True
        Treat optimizer non-convergence as an EstimationError.
    fit_kwargs : Optional[Dict]
        Extra keyword arguments for SARIMAXResults.fit.
    fit_start, fit_end : Optional[int]
        Inclusive year window of the fit; years outside it (such as
        unpublished early years) are ignored.

    Returns
    -------
    FittedModel
        error_structure 'arima'.

    Raises
    ------
    DataError
        If a used column has missing values or there are too few observations.
    EstimationError
        If the fit fails or (with require_convergence) does not converge.
    """
    variant = ModelVariant.parse(variant)
    include_trend = variant is ModelVariant.WITH_TREND
    endog, exog = _design(table, target, regressors, include_trend, breakpoints, fit_start, fit_end)
    _require_complete(pd.concat([endog, exog], axis=1), f"ARIMA fit of {target}",
                      exog.shape[1] + sum(order) + 3)

    res = _fit_sarimax(endog, exog, order, target, require_convergence, fit_kwargs)
    name = f"ARIMA{''.join(map(str, order))}_{target}_{variant.value}"
    logger.info("Fitted %s: AIC=%.3f, params=%s", name, res.aic,
                ", ".join(f"{k}={v:.4f}" for k, v in res.params.items()))
    return FittedModel(
        name=name,
        target=target,
        exog_columns=tuple(exog.columns),
        error_structure="arima",
        results=res,
        order=tuple(order),
        breakpoints=tuple(int(b) for b in breakpoints),
    )


def fit_regressor_model(table: pd.DataFrame,
                        name: str,
                        breakpoints: Sequence[int] = DEFAULT_BREAKPOINTS,
                        order: Tuple[int, int, int] = DEFAULT_ORDER,
                        require_convergence: bool = True,
                        fit_kwargs: Optional[Dict] = None,
                        fit_start: Optional[int] = None,
                        fit_end: Optional[int] = None) -> FittedModel:
    """Trend basis plus ARIMA(1,1,0) errors for one regressor series (no further regressors)."""
    return fit_ar_error_model(table, name, [], ModelVariant.WITH_TREND, breakpoints, order,
                              require_convergence, fit_kwargs, fit_start, fit_end)


def _validate_horizon(horizon: int) -> int:
    try:
        h = int(horizon)
    except (TypeError, ValueError):
        raise ConfigurationError(f"Forecast horizon must be an integer, got {horizon!r}") from None
    if h < 0 or h != horizon:
        raise ConfigurationError(f"Forecast horizon must be a non-negative integer, got {horizon!r}")
    return h


def _empty_forecast(name: str, model: FittedModel, coverage_levels: Sequence[int]) -> ForecastResult:
    index = future_annual_index(pd.PeriodIndex([model.last_period]), 0)
    mean = pd.Series([], index=index, dtype=float, name=name)
    intervals = {int(lvl): pd.DataFrame({"lower": [], "upper": []}, index=index, dtype=float)
                 for lvl in coverage_levels}
    return ForecastResult(name=name, mean=mean, intervals=intervals)


def forecast_model(model: FittedModel,
                   horizon: int,
                   future_exog: Optional[pd.DataFrame] = None,
                   coverage_levels: Sequence[int] = DEFAULT_COVERAGE) -> ForecastResult:
    """
    Forecast an ARIMA-error model `horizon` periods ahead.

    Parameters
    ----------
    model : FittedModel
        Model from fit_ar_error_model or fit_regressor_model.
    horizon : int
        Number of periods; 0 returns an empty result without calling the estimator.
    future_exog : Optional[pd.DataFrame]
        Future values of the model's exogenous columns, one row per period.
    coverage_levels : Sequence[int], default=(80, 95)
        Prediction-interval coverages in percent.

    Returns
    -------
    ForecastResult

    Raises
    ------
    ConfigurationError
        If the horizon is negative or the future exog does not match the model.
    EstimationError
        If the estimator fails to produce the forecast.
    """
    h = _validate_horizon(horizon)
    if model.error_structure != "arima":
        raise ConfigurationError(f"Model {model.name} is a {model.error_structure} baseline and is not forecast")
    if h == 0:
        logger.debug("Horizon 0 for %s: returning an empty forecast", model.name)
        return _empty_forecast(model.target, model, coverage_levels)

    exog_arr = None
    if model.exog_columns:
        if future_exog is None:
            raise ConfigurationError(f"Model {model.name} needs future values for {list(model.exog_columns)}")
        missing = [c for c in model.exog_columns if c not in future_exog.columns]
        if missing or len(future_exog) != h:
            raise ConfigurationError(
                f"Future regressors for {model.name} must have {h} rows and columns "
                f"{list(model.exog_columns)}; got {len(future_exog)} rows, missing {missing}"
            )
        if future_exog[list(model.exog_columns)].isna().any().any():
            raise DataError(f"Future regressors for {model.name} contain missing values")
        exog_arr = future_exog[list(model.exog_columns)]

    try:
        fc = model.results.get_forecast(steps=h, exog=exog_arr)
        mean = pd.Series(np.asarray(fc.predicted_mean, dtype=float), name=model.target)
        intervals = {}
        for lvl in coverage_levels:
            ci = fc.conf_int(alpha=1.0 - lvl / 100.0)
            intervals[int(lvl)] = pd.DataFrame({
                "lower": np.asarray(ci.iloc[:, 0], dtype=float),
                "upper": np.asarray(ci.iloc[:, 1], dtype=float),
            })
    except (ValueError, np.linalg.LinAlgError) as e:
        raise EstimationError(f"Forecast of {model.name} failed: {e}") from e

    if not np.all(np.isfinite(mean.values)):
        raise EstimationError(f"Forecast of {model.name} produced non-finite values")

    index = future_annual_index(pd.PeriodIndex([model.last_period]), h)
    mean.index = index
    for frame in intervals.values():
        frame.index = index
    logger.info("Forecast %s for %s..%s: %s (hash %s)", model.target, index[0], index[-1],
                ", ".join(f"{v:.2f}" for v in mean.values), hash_forecast(mean.values))
    return ForecastResult(name=model.target, mean=mean, intervals=intervals)


def build_future_exog(model: FittedModel,
                      horizon: int,
                      regressor_forecasts: Mapping[str, ForecastResult]) -> pd.DataFrame:
    """
    Assemble future exogenous values for `model`, aligned by forecast period.

    The trend basis is extended from the model's breakpoints when the model
    includes trend; regressor columns take the point forecasts.
    """
    h = _validate_horizon(horizon)
    index = future_annual_index(pd.PeriodIndex([model.last_period]), h)
    parts = []
    if model.includes_trend:
        hist_index = pd.PeriodIndex(model.results.model.data.row_labels)
        basis = build_trend_basis(hist_index, model.breakpoints)
        parts.append(extend_trend_basis(basis, h, model.breakpoints))
    for name in model.regressors:
        if name not in regressor_forecasts:
            raise ConfigurationError(f"No forecast supplied for regressor '{name}' of {model.name}")
        fc = regressor_forecasts[name]
        if len(fc) != h:
            raise ConfigurationError(f"Forecast for '{name}' has {len(fc)} periods, expected {h}")
        parts.append(pd.DataFrame({name: fc.mean.values}, index=index))
    exog = pd.concat(parts, axis=1) if parts else pd.DataFrame(index=index)
    return exog[list(model.exog_columns)]


def recursive_forecast(target_model: FittedModel,
                       table: pd.DataFrame,
                       horizon: int = 5,
                       breakpoints: Optional[Sequence[int]] = None,
                       order: Optional[Tuple[int, int, int]] = None,
                       coverage_levels: Sequence[int] = DEFAULT_COVERAGE,
                       require_convergence: bool = True,
                       fit_kwargs: Optional[Dict] = None,
                       show_progress: bool = False,
                       fit_start: Optional[int] = None,
                       fit_end: Optional[int] = None) -> RecursiveForecast:
    """
    Forecast the target by first forecasting each of its regressors.

    Steps
    -----
    1. Extend the trend basis `horizon` periods with the same breakpoints.
    2. Fit trend + ARIMA(1,1,0) to each regressor and forecast it.
    3. Assemble the regressor point forecasts by period.
    4. Forecast the target with `target_model` on the assembled regressors.

    A failure in any regressor model propagates as EstimationError; there is
    no fallback forecast.

    Regressor models are fitted over `fit_start`..`fit_end`, which default to
    the first and last year of the target model's own sample.

    Returns
    -------
    RecursiveForecast
        The target forecast, regressor forecasts and regressor models. A zero
        horizon gives empty forecasts without fitting anything.
    """
    h = _validate_horizon(horizon)
    breakpoints = tuple(breakpoints if breakpoints is not None else target_model.breakpoints or DEFAULT_BREAKPOINTS)
    order = tuple(order if order is not None else target_model.order or DEFAULT_ORDER)
    regressors = list(target_model.regressors)
    fit_start = int(fit_start) if fit_start is not None else int(target_model.first_period.year)
    fit_end = int(fit_end) if fit_end is not None else int(target_model.last_period.year)

    if h == 0:
        return RecursiveForecast(
            target=_empty_forecast(target_model.target, target_model, coverage_levels),
            regressors={name: _empty_forecast(name, target_model, coverage_levels) for name in regressors},
        )

    models: Dict[str, FittedModel] = {}
    forecasts: Dict[str, ForecastResult] = {}
    for name in tqdm(regressors, desc="Forecasting regressors", disable=not show_progress):
        reg_model = fit_regressor_model(table, name, breakpoints, order, require_convergence, fit_kwargs,
                                        fit_start, fit_end)
        hist_index = pd.PeriodIndex(reg_model.results.model.data.row_labels)
        future_trend = extend_trend_basis(build_trend_basis(hist_index, breakpoints), h, breakpoints)
        models[name] = reg_model
        forecasts[name] = forecast_model(reg_model, h, future_trend, coverage_levels)

    future_exog = build_future_exog(target_model, h, forecasts)
    target_fc = forecast_model(target_model, h, future_exog, coverage_levels)
    return RecursiveForecast(target=target_fc, regressors=forecasts,
                             regressor_models=models, future_exog=future_exog)


def hash_forecast(seq: Union[List[float], np.ndarray, pd.Series]) -> str:
    """
    16-character SHA-1 fingerprint of a forecast sequence.

    Identical forecasts give identical fingerprints, which makes repeated
    runs easy to compare in the logs.
    """
    arr = np.ascontiguousarray(np.asarray(seq, dtype=np.float64))
    return hashlib.sha1(arr.tobytes()).hexdigest()[:16]
