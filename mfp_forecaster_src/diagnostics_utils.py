# mfp_forecaster_src/diagnostics_utils.py

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Mapping, Optional

import numpy as np
import pandas as pd

from .transform_utils import kpss_select_d, safe_adf, safe_kpss

logger = logging.getLogger(__name__)


def ensure_dir(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


@dataclass(frozen=True)
class StationarityReport:
    """Unit-root, stationarity and differencing-order results for one series."""

    series_name: str
    n_obs: int
    adf_statistic: float
    adf_pvalue: float
    kpss_statistic: float
    kpss_pvalue: float
    suggested_d: int
    alpha: float = 0.05

    @property
    def adf_rejects_unit_root(self) -> bool:
        return bool(np.isfinite(self.adf_pvalue) and self.adf_pvalue < self.alpha)

    @property
    def kpss_rejects_stationarity(self) -> bool:
        return bool(np.isfinite(self.kpss_pvalue) and self.kpss_pvalue < self.alpha)

    @property
    def suggests_integrated_of_order_one(self) -> bool:
        """ADF keeps the unit root, KPSS rejects stationarity and one difference is suggested."""
        return (not self.adf_rejects_unit_root) and self.kpss_rejects_stationarity and self.suggested_d == 1

    @property
    def interpretation(self) -> str:
        if self.suggests_integrated_of_order_one:
            return (f"{self.series_name} looks integrated of order 1: "
                    "a first-differenced AR error structure is consistent with the tests")
        if self.suggested_d == 0 and self.adf_rejects_unit_root:
            return f"{self.series_name} looks stationary in levels"
        return (f"{self.series_name}: tests are not mutually consistent "
                f"(suggested differences={self.suggested_d}); review before choosing a model")


@dataclass(frozen=True)
class DiagnosticResult:
    """Ljung-Box residual-autocorrelation check for one fitted model."""

    model_name: str
    test_statistic: float
    p_value: float
    lags: int
    model_df: int
    n_residuals: int
    acf: np.ndarray = field(repr=False, default_factory=lambda: np.array([]))
    significance_level: float = 0.05

    @property
    def is_significant(self) -> bool:
        """True when the test rejects 'no residual autocorrelation'."""
        return bool(np.isfinite(self.p_value) and self.p_value < self.significance_level)

    @property
    def interpretation(self) -> str:
        if self.is_significant:
            return "Serial correlation detected in residuals"
        return "No significant serial correlation in residuals"


def run_stationarity_diagnostics(series: pd.Series,
                                 alpha: float = 0.05,
                                 max_d: int = 2) -> StationarityReport:
    """
    Run the ADF unit-root test, the KPSS stationarity test and the differencing heuristic.

    The report is advisory: it is logged for the analyst and never changes
    which model the pipeline fits.

    Parameters
    ----------
    series : pd.Series
        Series to test; NaNs are dropped.
    alpha : float, default=0.05
        Significance level used to read both tests.
    max_d : int, default=2
        Upper bound for the suggested number of differences.

    Returns
    -------
    StationarityReport
    """
    s = pd.Series(series).dropna()
    adf_stat, adf_p = safe_adf(s)
    kpss_stat, kpss_p = safe_kpss(s)
    d = kpss_select_d(s, alpha=alpha, max_d=max_d)

    report = StationarityReport(
        series_name=str(series.name or "series"),
        n_obs=len(s),
        adf_statistic=adf_stat,
        adf_pvalue=adf_p,
        kpss_statistic=kpss_stat,
        kpss_pvalue=kpss_p,
        suggested_d=d,
        alpha=alpha,
    )
    logger.info("ADF on %s: statistic=%.3f, p-value=%.3f", report.series_name, adf_stat, adf_p)
    logger.info("KPSS on %s: statistic=%.3f, p-value=%.3f", report.series_name, kpss_stat, kpss_p)
    logger.info("Suggested differences for %s: %d", report.series_name, d)
    logger.info("%s", report.interpretation)
    return report


def default_ljungbox_lags(n_obs: int, n_params: int) -> int:
    """Lag count for annual data: min(10, n/5), raised to at least n_params + 3."""
    lags = min(10, int(round(n_obs / 5.0)))
    return max(n_params + 3, lags)


def check_residuals(model, lags: Optional[int] = None, alpha: float = 0.05) -> DiagnosticResult:
    """
    Ljung-Box check for autocorrelation left in a fitted model's residuals.

    Parameters
    ----------
    model : FittedModel
        Fitted model exposing `residuals`, `n_params` and `name`.
    lags : Optional[int]
        Number of lags; defaults to default_ljungbox_lags.
    alpha : float, default=0.05
        Significance level.

    Returns
    -------
    DiagnosticResult
        Statistic and p-value at `lags` with `model_df = n_params` degrees
        of freedom removed, plus the residual ACF up to `lags`.
    """
    from statsmodels.stats.diagnostic import acorr_ljungbox
    from statsmodels.tsa.stattools import acf

    resid = pd.Series(model.residuals).dropna()
    n_params = int(model.n_params)
    if lags is None:
        lags = default_ljungbox_lags(len(resid), n_params)
    lags = int(min(lags, max(1, len(resid) - 1)))
    model_df = n_params if n_params < lags else 0

    lb = acorr_ljungbox(resid, lags=[lags], model_df=model_df, return_df=True)
    stat = float(lb["lb_stat"].iloc[-1])
    pval = float(lb["lb_pvalue"].iloc[-1])
    acf_vals = acf(resid, nlags=lags, fft=False)

    result = DiagnosticResult(
        model_name=model.name,
        test_statistic=stat,
        p_value=pval,
        lags=lags,
        model_df=model_df,
        n_residuals=len(resid),
        acf=np.asarray(acf_vals),
        significance_level=alpha,
    )
    logger.info("Ljung-Box on %s residuals: Q*=%.3f, df=%d, p-value=%.4f -> %s",
                model.name, stat, lags - model_df, pval, result.interpretation)
    return result


def summarize_models(models: Iterable, alpha: float = 0.05,
                     checks: Optional[Mapping[str, DiagnosticResult]] = None) -> pd.DataFrame:
    """
    Tabulate fit statistics and residual checks for a set of fitted models.

    Residual checks already computed can be passed in `checks`, keyed by model name.

    Returns
    -------
    pd.DataFrame
        One row per model: model, error_structure, n_params, AIC, BIC,
        lb_stat, lb_pvalue, white_noise.
    """
    rows = []
    for model in models:
        check = (checks or {}).get(model.name) or check_residuals(model, alpha=alpha)
        rows.append({
            "model": model.name,
            "error_structure": model.error_structure,
            "n_params": model.n_params,
            "AIC": model.aic,
            "BIC": model.bic,
            "lb_stat": check.test_statistic,
            "lb_pvalue": check.p_value,
            "white_noise": not check.is_significant,
        })
    return pd.DataFrame(rows, columns=["model", "error_structure", "n_params", "AIC", "BIC",
                                       "lb_stat", "lb_pvalue", "white_noise"])


def save_residual_diagnostics(model, out_dir: Path, fname_prefix: Optional[str] = None,
                              alpha: float = 0.05, plot: bool = True) -> DiagnosticResult:
    """
    Run check_residuals and write its artifacts.

    Creates
    -------
    - {prefix}_LjungBox.csv: statistic, p-value, lags and degrees of freedom
    - {prefix}_Residuals.png: residual time plot, ACF and histogram (when `plot`)
    """
    ensure_dir(out_dir)
    prefix = fname_prefix or model.name
    result = check_residuals(model, alpha=alpha)

    pd.DataFrame([{
        "model": result.model_name,
        "lb_stat": result.test_statistic,
        "lb_pvalue": result.p_value,
        "lags": result.lags,
        "model_df": result.model_df,
        "n_residuals": result.n_residuals,
    }]).to_csv(out_dir / f"{prefix}_LjungBox.csv", index=False)

    if plot:
        from .plotting_utils import plot_residual_panel
        plot_residual_panel(model, result, out_dir / f"{prefix}_Residuals.png")
    return result
