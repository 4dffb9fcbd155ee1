# -*- coding: utf-8 -*-
"""
Temporal utilities for annual (financial-year) productivity series.

Functions
---------
- annual_index(start_year, periods): contiguous annual PeriodIndex named 'year'.
- financial_year_label(year): '2003-04' style label for the year starting in `year`.
- parse_financial_year(label): inverse of financial_year_label.
- future_annual_index(index, horizon): the `horizon` periods following `index`.
"""

from __future__ import annotations

import re

import pandas as pd

_FY_PATTERN = re.compile(r"^\s*(\d{4})\s*[-/]\s*(\d{2}|\d{4})\s*$")


def annual_index(start_year: int, periods: int) -> pd.PeriodIndex:
    """
    Build an annual PeriodIndex starting at `start_year` with unit step.

    Parameters
    ----------
    start_year : int
        First calendar year (the year a financial year starts in).
    periods : int
        Number of entries; zero gives an empty index.

    Returns
    -------
    pd.PeriodIndex
        Annual index with freq 'Y', named 'year'.
    """
    if periods < 0:
        raise ValueError("periods must be non-negative")
    return pd.period_range(start=str(int(start_year)), periods=int(periods), freq="Y", name="year")


def future_annual_index(index: pd.PeriodIndex, horizon: int) -> pd.PeriodIndex:
    """Return the `horizon` annual periods immediately after the last entry of `index`."""
    if len(index) == 0:
        raise ValueError("Cannot extend an empty index")
    return annual_index(int(index[-1].year) + 1, horizon)


def financial_year_label(year: int) -> str:
    """
    Label the financial year starting in `year`.

    >>> financial_year_label(2003)
    '2003-04'
    >>> financial_year_label(1999)
    '1999-00'
    """
    year = int(year)
    return f"{year}-{(year + 1) % 100:02d}"


def parse_financial_year(label: str) -> int:
    """
    Return the starting calendar year of a financial-year label.

    Accepts '2003-04', '2003/04' and '2003-2004'; a bare year passes through.
    """
    text = str(label).strip()
    if text.isdigit() and len(text) == 4:
        return int(text)
    m = _FY_PATTERN.match(text)
    if not m:
        raise ValueError(f"Unrecognised financial year label: {label!r}")
    start = int(m.group(1))
    end = m.group(2)
    end_year = int(end) if len(end) == 4 else (start // 100) * 100 + int(end)
    if end_year < start:
        end_year += 100
    if end_year != start + 1:
        raise ValueError(f"Financial year {label!r} does not span consecutive years")
    return start
