# mfp_forecaster_src/transform_utils.py

import logging
import warnings
from typing import Sequence, Tuple

import numpy as np
import pandas as pd

from helpers.temporal import future_annual_index
from .errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_BREAKPOINTS = (1987, 2003)


def trend_columns(breakpoints: Sequence[int]) -> list:
    """Column names of the trend basis: 't' followed by one ramp per breakpoint."""
    return ["t"] + [f"t{i}" for i in range(1, len(breakpoints) + 1)]


def _trend_frame(index: pd.PeriodIndex, breakpoints: Sequence[int]) -> pd.DataFrame:
    years = np.array([p.year for p in index], dtype=float)
    data = {"t": years}
    for i, knot in enumerate(breakpoints, start=1):
        data[f"t{i}"] = np.maximum(0.0, years - float(knot))
    return pd.DataFrame(data, index=index, columns=trend_columns(breakpoints))


def build_trend_basis(index: pd.PeriodIndex,
                      breakpoints: Sequence[int] = DEFAULT_BREAKPOINTS) -> pd.DataFrame:
    """
    Build the piecewise-linear trend basis over an annual index.

    The basis has a linear time term `t` (the calendar year) and one ramp per
    breakpoint, ``t_k = max(0, t - breakpoint_k)``: zero up to and including
    the knot, then rising by one per year.

    Parameters
    ----------
    index : pd.PeriodIndex
        Annual index of the observations.
    breakpoints : Sequence[int], default=(1987, 2003)
        Knot years, strictly increasing.

    Returns
    -------
    pd.DataFrame
        Columns ['t', 't1', ..., 'tk'] aligned to `index`.

    Raises
    ------
    ConfigurationError
        If the index is empty, breakpoints are not strictly increasing, or a
        breakpoint lies outside the index's year range.
    """
    if len(index) == 0:
        raise ConfigurationError("Cannot build a trend basis over an empty index")
    knots = [int(b) for b in breakpoints]
    if any(b2 <= b1 for b1, b2 in zip(knots, knots[1:])):
        raise ConfigurationError(f"Breakpoints must be strictly increasing, got {knots}")

    first, last = int(index[0].year), int(index[-1].year)
    outside = [b for b in knots if b < first or b > last]
    if outside:
        raise ConfigurationError(
            f"Breakpoints {outside} lie outside the observed years {first}..{last}"
        )
    return _trend_frame(index, knots)


def extend_trend_basis(basis: pd.DataFrame,
                       horizon: int,
                       breakpoints: Sequence[int] = DEFAULT_BREAKPOINTS) -> pd.DataFrame:
    """
    Extend a trend basis `horizon` periods past its last observation.

    The ramps continue from the same definition (no reset at the forecast
    origin), so the extension matches a basis built over the longer index.

    Raises
    ------
    ConfigurationError
        If `horizon` is negative or the basis columns do not match `breakpoints`.
    """
    horizon = int(horizon)
    if horizon < 0:
        raise ConfigurationError(f"Forecast horizon must be non-negative, got {horizon}")
    if list(basis.columns) != trend_columns(breakpoints):
        raise ConfigurationError(
            f"Trend basis columns {list(basis.columns)} do not match breakpoints {list(breakpoints)}"
        )
    future = future_annual_index(basis.index, horizon)
    return _trend_frame(future, [int(b) for b in breakpoints])


def safe_adf(series: pd.Series) -> Tuple[float, float]:
    """
    Augmented Dickey-Fuller test (H0: unit root) with error handling.

    Returns
    -------
    Tuple[float, float]
        (statistic, p_value), or NaNs if fewer than 10 observations or the test fails.
    """
    from statsmodels.tsa.stattools import adfuller

    s = pd.Series(series).dropna()
    if len(s) < 10:
        return float("nan"), float("nan")
    try:
        res = adfuller(s.values, autolag="AIC")
        return float(res[0]), float(res[1])
    except (ValueError, np.linalg.LinAlgError) as e:
        logger.debug("ADF test failed: %s", e)
        return float("nan"), float("nan")


def safe_kpss(series: pd.Series) -> Tuple[float, float]:
    """
    KPSS test (H0: level stationarity) with error handling.

    The p-value is interpolated from a table bounded to [0.01, 0.1]; the
    out-of-range InterpolationWarning is silenced.
    """
    from statsmodels.tsa.stattools import kpss

    s = pd.Series(series).dropna()
    if len(s) < 10:
        return float("nan"), float("nan")
    try:
        with warnings.catch_warnings():
            warnings.simplefilter("ignore")
            stat, pval, _, _ = kpss(s.values, regression="c", nlags="auto")
        return float(stat), float(pval)
    except (ValueError, np.linalg.LinAlgError) as e:
        logger.debug("KPSS test failed: %s", e)
        return float("nan"), float("nan")


def kpss_select_d(series: pd.Series, alpha: float = 0.05, max_d: int = 2) -> int:
    """
    Suggest how many first differences make a series stationary.

    Differences the series while the KPSS test rejects stationarity at `alpha`,
    stopping at `max_d`. A test that cannot run stops the search.

    Returns
    -------
    int
        Suggested differencing order in 0..max_d.
    """
    s = pd.Series(series).dropna()
    d = 0
    while d < max_d:
        _, p = safe_kpss(s)
        if not np.isfinite(p) or p >= alpha:
            break
        s = s.diff().dropna()
        d += 1
    return d
