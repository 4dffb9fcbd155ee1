# mfp_forecaster_src/data_utils.py

import hashlib
import logging
import zipfile
from pathlib import Path
from typing import Iterable, Optional, Union

import numpy as np
import pandas as pd

from helpers.temporal import annual_index
from .errors import ConfigurationError, DataError

logger = logging.getLogger(__name__)

# Positional names for the six variable rows of the source block.
RAW_SERIES_NAMES = [
    "LabourHW",
    "LabourQA",
    "Capital",
    "MultifactorNull",
    "MultifactorHW",
    "MultifactorQA",
]

# The fourth raw variable carries no information for the models and is dropped at load time.
DISCARDED_SERIES = "MultifactorNull"

SERIES_NAMES = [name for name in RAW_SERIES_NAMES if name != DISCARDED_SERIES]

NA_TOKEN = "na"


def read_raw_block(workbook_path: Union[str, Path],
                   sheet_name: Union[str, int],
                   skip_rows: int,
                   n_rows: int) -> pd.DataFrame:
    """
    Read the rectangular block of cells that holds the productivity indexes.

    Parameters
    ----------
    workbook_path : Union[str, Path]
        Spreadsheet file (.xlsx read through openpyxl).
    sheet_name : Union[str, int]
        Worksheet name or position.
    skip_rows : int
        Number of leading rows to skip before the block.
    n_rows : int
        Number of rows in the block (one variable per row, first cell is the label).

    Returns
    -------
    pd.DataFrame
        Raw cells with integer row/column labels and no header.

    Raises
    ------
    DataError
        If the workbook does not exist, is not a readable workbook,
        lacks the sheet, or the block is empty.
    """
    path = Path(workbook_path)
    if not path.is_file():
        raise DataError(f"Workbook not found: {path}")

    logger.info("Reading %d rows from sheet '%s' of %s (skipping %d)", n_rows, sheet_name, path, skip_rows)
    try:
        raw = pd.read_excel(path, sheet_name=sheet_name, header=None, skiprows=skip_rows, nrows=n_rows)
    except (ValueError, KeyError, OSError, zipfile.BadZipFile) as e:
        raise DataError(f"Cannot read sheet '{sheet_name}' of {path}: {e}") from e
    if raw.empty:
        raise DataError(f"No cells found in sheet '{sheet_name}' of {path} at the configured block")
    return raw


def normalize_block(raw: pd.DataFrame,
                    start_year: int,
                    base_year: Optional[int] = None,
                    base_row: Optional[int] = None,
                    na_token: str = NA_TOKEN) -> pd.DataFrame:
    """
    Turn the raw variable-per-row block into an annual table of base=100 indexes.

    Steps: transpose, name the columns positionally, drop the label row and the
    discarded null variable, convert the sentinel token and unparseable cells to
    NaN, rescale each series to its base period, attach the annual index.

    Parameters
    ----------
    raw : pd.DataFrame
        Block as returned by read_raw_block; not modified.
    start_year : int
        Calendar year of the first observation.
    base_year : Optional[int]
        Calendar year whose value becomes 100 (used when base_row is None).
    base_row : Optional[int]
        1-based row position of the base period; overrides base_year.
    na_token : str, default="na"
        Sentinel the statistical agency uses for "not available".

    Returns
    -------
    pd.DataFrame
        Columns SERIES_NAMES, annual PeriodIndex named 'year'.
    """
    block = raw.copy().T
    if block.shape[1] != len(RAW_SERIES_NAMES):
        raise DataError(
            f"Expected {len(RAW_SERIES_NAMES)} variable rows in the source block, found {block.shape[1]}"
        )
    block.columns = RAW_SERIES_NAMES

    # The first transposed row holds the row labels of the source sheet.
    block = block.iloc[1:].drop(columns=[DISCARDED_SERIES])

    sentinel = str(na_token).strip().lower()
    block = block.apply(lambda col: col.map(lambda v: np.nan if _is_sentinel(v, sentinel) else v))
    block = block.apply(pd.to_numeric, errors="coerce").astype(float)

    n_missing = int(block.isna().sum().sum())
    if n_missing:
        logger.info("Table has %d missing cells after sentinel/coercion: %s",
                    n_missing, block.isna().sum().to_dict())

    block.index = annual_index(start_year, len(block))
    return rescale_to_base(block, base_year=base_year, base_row=base_row)


def _is_sentinel(value, sentinel: str) -> bool:
    return isinstance(value, str) and value.strip().lower() == sentinel


def rescale_to_base(frame: pd.DataFrame,
                    base_year: Optional[int] = None,
                    base_row: Optional[int] = None) -> pd.DataFrame:
    """
    Rescale every column so its value at the base period equals 100.

    Parameters
    ----------
    frame : pd.DataFrame
        Annual table with a PeriodIndex.
    base_year : Optional[int]
        Calendar year of the base period.
    base_row : Optional[int]
        1-based row position of the base period; takes precedence over base_year.

    Returns
    -------
    pd.DataFrame
        New frame; the input is left untouched.

    Raises
    ------
    ConfigurationError
        If neither selector is given, the base period is outside the table,
        or a series has no usable (missing or zero) value at the base period.
    """
    if base_row is not None:
        pos = int(base_row) - 1
        if pos < 0 or pos >= len(frame):
            raise ConfigurationError(
                f"Base row {base_row} is outside the loaded table (1..{len(frame)})"
            )
    elif base_year is not None:
        years = [int(p.year) for p in frame.index]
        if int(base_year) not in years:
            raise ConfigurationError(
                f"Base year {base_year} is outside the loaded table ({years[0] if years else '-'}"
                f"..{years[-1] if years else '-'})"
            )
        pos = years.index(int(base_year))
    else:
        raise ConfigurationError("A base year or base row is required to rescale the table")

    base_values = frame.iloc[pos]
    unusable = [col for col in frame.columns if not np.isfinite(base_values[col]) or base_values[col] == 0]
    if unusable:
        raise ConfigurationError(
            f"Base period {frame.index[pos]} has no usable value for: {', '.join(unusable)}"
        )

    logger.debug("Rescaling to base period %s", frame.index[pos])
    return frame / base_values * 100


def load_productivity_table(workbook_path: Union[str, Path],
                            sheet_name: Union[str, int],
                            skip_rows: int,
                            n_rows: int,
                            start_year: int,
                            base_year: Optional[int] = None,
                            base_row: Optional[int] = None,
                            na_token: str = NA_TOKEN) -> pd.DataFrame:
    """
    Load the productivity workbook into an annual, base=100 time series table.

    This is read_raw_block followed by normalize_block; see those for details.
    """
    raw = read_raw_block(workbook_path, sheet_name, skip_rows, n_rows)
    table = normalize_block(raw, start_year, base_year=base_year, base_row=base_row, na_token=na_token)
    logger.info("Loaded table %s..%s with %d rows and series %s (fingerprint %s)",
                table.index[0], table.index[-1], len(table), list(table.columns), table_fingerprint(table))
    return table


def select_window(table: pd.DataFrame,
                  columns: Iterable[str],
                  start: Optional[int] = None,
                  end: Optional[int] = None) -> pd.DataFrame:
    """
    Return a copy of `columns` restricted to the inclusive year window [start, end].

    Raises
    ------
    DataError
        If a requested column is not in the table.
    ConfigurationError
        If `start` is after `end`.
    """
    columns = list(columns)
    if start is not None and end is not None and int(start) > int(end):
        raise ConfigurationError(f"Window start {start} is after window end {end}")
    missing = [c for c in columns if c not in table.columns]
    if missing:
        raise DataError(f"Series not in table: {missing}; available: {list(table.columns)}")

    years = np.array([p.year for p in table.index])
    mask = np.ones(len(table), dtype=bool)
    if start is not None:
        mask &= years >= int(start)
    if end is not None:
        mask &= years <= int(end)
    return table.loc[mask, columns].copy()


def table_fingerprint(table: pd.DataFrame) -> str:
    """
    SHA-256 fingerprint (first 16 hex chars) of a table's values, columns and index.

    Two loads of the same workbook with the same settings must give the same fingerprint.
    """
    values = np.ascontiguousarray(table.to_numpy(dtype=np.float64))
    content = values.tobytes()
    content += "|".join(map(str, table.columns)).encode("utf-8")
    content += "|".join(map(str, table.index)).encode("utf-8")
    return hashlib.sha256(content).hexdigest()[:16]
