import numpy as np
import pandas as pd
import pytest

from helpers.temporal import annual_index
from mfp_forecaster_src.errors import ConfigurationError
from mfp_forecaster_src.transform_utils import build_trend_basis, extend_trend_basis, trend_columns


@pytest.fixture
def history():
    return annual_index(1973, 44)


def test_basis_columns_and_ramps(history):
    basis = build_trend_basis(history, (1987, 2003))
    assert list(basis.columns) == ["t", "t1", "t2"]
    assert list(basis["t"]) == list(range(1973, 2017))

    by_year = basis.set_index(basis["t"].astype(int))
    assert by_year.loc[1987, "t1"] == 0.0
    assert by_year.loc[1988, "t1"] == 1.0
    assert by_year.loc[2003, "t2"] == 0.0
    assert by_year.loc[2016, "t2"] == 13.0
    assert (by_year.loc[:1987, "t1"] == 0.0).all()
    assert (basis[["t1", "t2"]] >= 0).all().all()


def test_ramps_are_continuous_and_piecewise_linear(history):
    basis = build_trend_basis(history)
    steps = basis.diff().dropna()
    # each column rises by 0 or 1 per year, never jumps
    assert steps.isin([0.0, 1.0]).all().all()


def test_extension_matches_basis_over_longer_index(history):
    basis = build_trend_basis(history)
    extended = extend_trend_basis(basis, 5, (1987, 2003))

    longer = build_trend_basis(annual_index(1973, 49))
    pd.testing.assert_frame_equal(extended, longer.iloc[-5:])
    assert list(extended["t"]) == [2017.0, 2018.0, 2019.0, 2020.0, 2021.0]
    assert list(extended["t2"]) == [14.0, 15.0, 16.0, 17.0, 18.0]


def test_extension_zero_horizon_is_empty(history):
    extended = extend_trend_basis(build_trend_basis(history), 0)
    assert extended.empty
    assert list(extended.columns) == trend_columns((1987, 2003))


def test_extension_negative_horizon_raises(history):
    with pytest.raises(ConfigurationError):
        extend_trend_basis(build_trend_basis(history), -1)


def test_extension_with_mismatched_breakpoints_raises(history):
    with pytest.raises(ConfigurationError):
        extend_trend_basis(build_trend_basis(history), 3, (1987,))


@pytest.mark.parametrize("breakpoints", [(2003, 1987), (1987, 1987), (1960, 2003), (1987, 2030)])
def test_bad_breakpoints_raise(history, breakpoints):
    with pytest.raises(ConfigurationError):
        build_trend_basis(history, breakpoints)


def test_empty_index_raises():
    with pytest.raises(ConfigurationError):
        build_trend_basis(annual_index(1973, 0))


def test_single_breakpoint():
    basis = build_trend_basis(annual_index(1990, 10), (1995,))
    assert list(basis.columns) == ["t", "t1"]
    np.testing.assert_array_equal(basis["t1"].values, [0, 0, 0, 0, 0, 0, 1, 2, 3, 4])
