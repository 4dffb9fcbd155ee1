import types
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

from helpers.temporal import annual_index
from mfp_forecaster_src.diagnostics_utils import (
    check_residuals, default_ljungbox_lags, run_stationarity_diagnostics, save_residual_diagnostics,
    summarize_models
)
from mfp_forecaster_src.transform_utils import kpss_select_d, safe_adf, safe_kpss


def _random_walk(n=300, seed=11):
    rng = np.random.default_rng(seed)
    return pd.Series(np.cumsum(rng.normal(0.0, 1.0, n)), name="walk")


def _ar1(n=200, phi=0.9, seed=5):
    rng = np.random.default_rng(seed)
    e = rng.normal(0.0, 1.0, n)
    x = np.zeros(n)
    for t in range(1, n):
        x[t] = phi * x[t - 1] + e[t]
    return pd.Series(x, index=annual_index(1800, n))


def _stub_model(resid: pd.Series, n_params: int = 0, name: str = "stub"):
    return types.SimpleNamespace(name=name, residuals=resid, n_params=n_params,
                                 error_structure="arima", aic=0.0, bic=0.0)


def test_random_walk_needs_differencing():
    walk = _random_walk()
    _, kpss_p = safe_kpss(walk)
    assert kpss_p < 0.05
    assert kpss_select_d(walk, alpha=0.05, max_d=2) >= 1


def test_differencing_order_respects_cap():
    walk = _random_walk()
    assert kpss_select_d(walk, max_d=0) == 0
    assert kpss_select_d(walk, max_d=1) <= 1


def test_stationarity_report_on_random_walk():
    report = run_stationarity_diagnostics(_random_walk(), alpha=0.05)
    assert report.n_obs == 300
    assert report.kpss_rejects_stationarity
    assert report.suggested_d >= 1
    assert isinstance(report.interpretation, str)


def test_short_series_gives_nan_tests():
    short = pd.Series([1.0, 2.0, 3.0, 4.0])
    stat, p = safe_adf(short)
    assert np.isnan(stat) and np.isnan(p)
    stat, p = safe_kpss(short)
    assert np.isnan(stat) and np.isnan(p)
    assert kpss_select_d(short) == 0


def test_ljungbox_lag_rule():
    assert default_ljungbox_lags(44, 4) == 9
    assert default_ljungbox_lags(300, 1) == 10
    assert default_ljungbox_lags(20, 5) == 8


def test_autocorrelated_residuals_are_flagged():
    result = check_residuals(_stub_model(_ar1(), n_params=1, name="ar1"))
    assert result.is_significant
    assert result.lags == 10
    assert result.model_df == 1
    assert result.n_residuals == 200
    assert len(result.acf) == result.lags + 1
    assert result.acf[1] > 0.5
    assert "Serial correlation" in result.interpretation


def test_white_noise_residuals_pass():
    rng = np.random.default_rng(2024)
    resid = pd.Series(rng.normal(0.0, 1.0, 200), index=annual_index(1800, 200))
    result = check_residuals(_stub_model(resid))
    assert result.p_value > 0.001
    assert abs(result.acf[1]) < 0.3


def test_summarize_and_save(tmp_path: Path):
    models = [_stub_model(_ar1(), 1, "ar1"), _stub_model(_ar1(phi=0.0, seed=9), 0, "flat")]
    summary = summarize_models(models)
    assert list(summary["model"]) == ["ar1", "flat"]
    assert list(summary.columns) == ["model", "error_structure", "n_params", "AIC", "BIC",
                                     "lb_stat", "lb_pvalue", "white_noise"]
    assert not summary.loc[0, "white_noise"]

    result = save_residual_diagnostics(models[0], tmp_path, plot=False)
    saved = pd.read_csv(tmp_path / "ar1_LjungBox.csv")
    assert saved.loc[0, "lags"] == result.lags
    assert saved.loc[0, "lb_pvalue"] == pytest.approx(result.p_value)
