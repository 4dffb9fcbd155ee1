# mfp_forecaster_src/plotting_utils.py

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
from pathlib import Path
from typing import Mapping, Optional
import logging

logger = logging.getLogger(__name__)


def ensure_dir(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


def _years(index) -> np.ndarray:
    return np.array([p.year for p in index], dtype=int)


def plot_index_panel(table: pd.DataFrame, out_path: Path, base_label: str = "2003-04 = 100") -> None:
    """
    Render all index series on one chart and as small multiples.

    Parameters
    ----------
    table : pd.DataFrame
        Time series table (annual PeriodIndex, one column per series)
    out_path : Path
        PNG path; parents are created if missing
    base_label : str
        Base-period note for the y-axis
    """
    ensure_dir(out_path.parent)
    years = _years(table.index)
    n = len(table.columns)
    ncols = 2
    nrows = int(np.ceil(n / ncols)) + 1
    fig = plt.figure(figsize=(11, 3 * nrows), dpi=150)

    ax_all = fig.add_subplot(nrows, 1, 1)
    for col in table.columns:
        ax_all.plot(years, table[col].values, linewidth=1.2, label=col)
    ax_all.axhline(100, color="gray", linestyle=":", linewidth=0.8)
    ax_all.set_ylabel(f"Index ({base_label})")
    ax_all.set_title("Market sector productivity indexes")
    ax_all.legend(fontsize=7, ncol=min(n, 5))

    for i, col in enumerate(table.columns):
        ax = fig.add_subplot(nrows, ncols, ncols + i + 1)
        ax.plot(years, table[col].values, color="black", linewidth=1)
        ax.set_title(col, fontsize=9)
        ax.spines["top"].set_alpha(0)
        ax.tick_params(labelsize=6)

    fig.tight_layout()
    fig.savefig(out_path, dpi=300)
    plt.close(fig)


def plot_fitted_vs_actual(model, actual: pd.Series, out_path: Path, title: Optional[str] = None) -> None:
    """Overlay a model's in-sample fitted values on the observed target."""
    ensure_dir(out_path.parent)
    fitted = model.fitted_values
    if model.error_structure == "arima":
        # First fitted values of a differenced model are diffuse-initialised
        fitted = fitted.iloc[len(fitted) - len(model.residuals):]

    fig, ax = plt.subplots(figsize=(8, 4))
    ax.plot(_years(actual.index), actual.values, color="black", linewidth=1.5, label="actual")
    ax.plot(_years(fitted.index), fitted.values, color="tab:red", linestyle="--", label="fitted")
    ax.set_ylabel(actual.name or "value")
    ax.set_title(title or f"{model.name}: fitted vs actual")
    ax.legend()
    plt.tight_layout()
    fig.savefig(out_path, dpi=300)
    plt.close(fig)


def plot_residual_panel(model, check, out_path: Path) -> None:
    """
    Residual time plot, ACF with approximate 95% bounds, and histogram.

    Parameters
    ----------
    model : FittedModel
        Model whose residuals are shown
    check : DiagnosticResult
        Ljung-Box result for the same model (ACF values and p-value)
    out_path : Path
        PNG path
    """
    ensure_dir(out_path.parent)
    resid = model.residuals.dropna()
    n = len(resid)

    fig = plt.figure(figsize=(9, 6), dpi=150)
    ax_ts = fig.add_subplot(2, 1, 1)
    ax_ts.plot(_years(resid.index), resid.values, color="tab:blue", marker="o", markersize=3, linewidth=1)
    ax_ts.axhline(0, color="red", linestyle="--", alpha=0.5)
    ax_ts.set_title(f"Residuals from {model.name} (Ljung-Box p={check.p_value:.4f})")

    ax_acf = fig.add_subplot(2, 2, 3)
    lags = np.arange(1, len(check.acf))
    ax_acf.vlines(lags, 0, check.acf[1:], color="tab:blue")
    bound = 1.96 / np.sqrt(max(n, 1))
    ax_acf.axhline(bound, color="gray", linestyle="--", linewidth=1)
    ax_acf.axhline(-bound, color="gray", linestyle="--", linewidth=1)
    ax_acf.axhline(0, color="black", linewidth=0.8)
    ax_acf.set_xlabel("lag")
    ax_acf.set_title("ACF")

    ax_hist = fig.add_subplot(2, 2, 4)
    ax_hist.hist(resid.values, bins=max(5, n // 4), color="tab:gray", alpha=0.8)
    ax_hist.set_title("Residual distribution")

    fig.tight_layout()
    fig.savefig(out_path, dpi=300)
    plt.close(fig)


def plot_forecast(history: pd.Series, forecast, out_path: Path, title: Optional[str] = None) -> None:
    """
    Fan chart: observed history, point forecast and prediction intervals.

    Wider coverage levels are drawn lighter underneath narrower ones.
    """
    ensure_dir(out_path.parent)
    fig, ax = plt.subplots(figsize=(8, 4))
    ax.plot(_years(history.index), history.values, color="black", linewidth=1.5, label="observed")

    if len(forecast) > 0:
        years = _years(forecast.index)
        for lvl in sorted(forecast.intervals, reverse=True):
            band = forecast.intervals[lvl]
            alpha = 0.2 if lvl >= 90 else 0.35
            ax.fill_between(years, band["lower"].values, band["upper"].values,
                            color="tab:blue", alpha=alpha, linewidth=0, label=f"{lvl}% interval")
        # join the forecast line to the last observation
        x = np.concatenate([[int(history.index[-1].year)], years])
        y = np.concatenate([[float(history.iloc[-1])], forecast.mean.values])
        ax.plot(x, y, color="tab:blue", linewidth=1.5, label="forecast")

    ax.set_ylabel(history.name or "value")
    ax.set_title(title or f"Forecast of {history.name}")
    ax.legend(fontsize=8)
    plt.tight_layout()
    fig.savefig(out_path, dpi=300)
    plt.close(fig)


def plot_regressor_forecasts(table: pd.DataFrame, forecasts: Mapping, out_path: Path) -> None:
    """One fan chart panel per regressor forecast used by the recursive forecaster."""
    if not forecasts:
        logger.warning("No regressor forecasts to plot")
        return
    ensure_dir(out_path.parent)
    names = list(forecasts)
    fig, axes = plt.subplots(nrows=len(names), ncols=1, figsize=(8, 3 * len(names)), squeeze=False)
    for ax, name in zip(axes[:, 0], names):
        hist = table[name].dropna()
        fc = forecasts[name]
        ax.plot(_years(hist.index), hist.values, color="black", linewidth=1.2)
        if len(fc) > 0:
            years = _years(fc.index)
            for lvl in sorted(fc.intervals, reverse=True):
                band = fc.intervals[lvl]
                ax.fill_between(years, band["lower"].values, band["upper"].values,
                                color="tab:green", alpha=0.2 if lvl >= 90 else 0.35, linewidth=0)
            ax.plot(years, fc.mean.values, color="tab:green", linewidth=1.5)
        ax.set_title(name, fontsize=9)
    fig.tight_layout()
    fig.savefig(out_path, dpi=300)
    plt.close(fig)
