import numpy as np
import pandas as pd
import pytest

from helpers.temporal import annual_index

START_YEAR = 1973
N_YEARS = 44  # 1973..2016
SKIP_ROWS = 9

ROW_LABELS = [
    "Hours worked ;",
    "Quality adjusted hours worked ;",
    "Capital services ;",
    "Multifactor productivity (null) ;",
    "Multifactor productivity, hours worked basis ;",
    "Multifactor productivity, quality adjusted hours worked basis ;",
]


def _synthetic_panel(seed: int = 7) -> pd.DataFrame:
    """Trending annual inputs and a target driven by them plus integrated AR(1) noise."""
    rng = np.random.default_rng(seed)
    labour_hw = 70.0 + np.cumsum(0.6 + rng.normal(0.0, 0.8, N_YEARS))
    labour_qa = 65.0 + np.cumsum(0.9 + rng.normal(0.0, 0.8, N_YEARS))
    capital = 50.0 + np.cumsum(1.6 + rng.normal(0.0, 0.9, N_YEARS))

    e = np.zeros(N_YEARS)
    shocks = rng.normal(0.0, 0.5, N_YEARS)
    for t in range(1, N_YEARS):
        e[t] = 0.4 * e[t - 1] + shocks[t]
    noise = np.cumsum(e)

    mfp_qa = 40.0 + 0.35 * labour_qa + 0.25 * capital + noise
    mfp_hw = mfp_qa + rng.normal(0.0, 0.3, N_YEARS)
    return pd.DataFrame(
        {
            "LabourHW": labour_hw,
            "LabourQA": labour_qa,
            "Capital": capital,
            "MultifactorHW": mfp_hw,
            "MultifactorQA": mfp_qa,
        },
        index=annual_index(START_YEAR, N_YEARS),
    )


@pytest.fixture
def synthetic_table() -> pd.DataFrame:
    return _synthetic_panel()


def write_workbook(path, panel: pd.DataFrame, overrides=None) -> None:
    """
    Write `panel` as a variable-per-row block under SKIP_ROWS rows of sheet notes.

    `overrides` maps (raw variable, year) to a cell value, e.g. ("LabourHW", 1973): "na".
    """
    raw_order = ["LabourHW", "LabourQA", "Capital", "MultifactorNull", "MultifactorHW", "MultifactorQA"]
    years = [p.year for p in panel.index]
    rows = []
    for i in range(SKIP_ROWS):
        rows.append([f"Note line {i + 1}"] + [None] * len(years))
    for label, name in zip(ROW_LABELS, raw_order):
        if name == "MultifactorNull":
            cells = ["na"] * len(years)
        else:
            cells = [float(v) for v in panel[name].values]
        for (var, year), value in (overrides or {}).items():
            if var == name:
                cells[years.index(year)] = value
        rows.append([label] + cells)
    pd.DataFrame(rows).to_excel(path, sheet_name="Table 1", header=False, index=False)


@pytest.fixture
def synthetic_workbook(tmp_path):
    path = tmp_path / "productivity.xlsx"
    write_workbook(path, _synthetic_panel(), overrides={
        ("LabourHW", 1973): "na",
        ("MultifactorHW", 1975): "n.y.a.",
    })
    return path


@pytest.fixture
def workbook_factory(tmp_path):
    """Write a synthetic workbook with the given cell overrides and return its path."""
    def _make(overrides=None, name="custom.xlsx"):
        path = tmp_path / name
        write_workbook(path, _synthetic_panel(), overrides=overrides)
        return path
    return _make


def _residual_contrast_panel(seed: int = 3) -> pd.DataFrame:
    """
    Target whose differenced errors carry a jump every eight years (1990, 1998, 2006, ...).

    Over 1982..2013 the regressors-only model's residual check covers lags 1-6,
    where the jumps leave little correlation, while the trend variant has more
    parameters and so is checked out to lag 9, which reaches the lag-8 echo.
    """
    rng = np.random.default_rng(seed)
    years = np.arange(START_YEAR, START_YEAR + N_YEARS)
    labour_qa = 65.0 + np.cumsum(0.9 + rng.normal(0.0, 0.8, N_YEARS))
    capital = 50.0 + np.cumsum(1.6 + rng.normal(0.0, 0.9, N_YEARS))

    e = np.zeros(N_YEARS)
    shocks = rng.normal(0.0, 0.2, N_YEARS)
    for t in range(1, N_YEARS):
        e[t] = 0.3 * e[t - 1] + shocks[t]
    jumps = np.where((years - 1990) % 8 == 0, 6.0, 0.0)
    noise = np.cumsum(e + jumps)

    mfp_qa = 40.0 + 0.35 * labour_qa + 0.25 * capital + noise
    return pd.DataFrame(
        {
            "LabourHW": labour_qa + rng.normal(0.0, 0.5, N_YEARS),
            "LabourQA": labour_qa,
            "Capital": capital,
            "MultifactorHW": mfp_qa + rng.normal(0.0, 0.3, N_YEARS),
            "MultifactorQA": mfp_qa,
        },
        index=annual_index(START_YEAR, N_YEARS),
    )


@pytest.fixture
def residual_contrast_table() -> pd.DataFrame:
    return _residual_contrast_panel()
