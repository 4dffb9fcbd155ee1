# mfp_forecaster_src/file_utils.py

from pathlib import Path
from typing import List, Mapping, Optional
import logging

import pandas as pd

from helpers.temporal import financial_year_label

logger = logging.getLogger(__name__)


def ensure_dir(path: Path) -> None:
    """
    Create directory if it doesn't exist, including all parent directories.

    No error is raised if the directory already exists.
    """
    path.mkdir(parents=True, exist_ok=True)


def resolve_path(path_str: str, base_dir: Path) -> Path:
    """
    Resolve a path string relative to a base directory if not absolute.

    Examples
    --------
    >>> resolve_path("data/file.xlsx", Path("/project"))
    PosixPath('/project/data/file.xlsx')
    >>> resolve_path("/absolute/path.csv", Path("/project"))
    PosixPath('/absolute/path.csv')
    """
    path = Path(path_str)
    return path if path.is_absolute() else (base_dir / path)


def forecast_table(target_forecast, regressor_forecasts: Optional[Mapping] = None) -> pd.DataFrame:
    """
    Long-format table of every forecast produced by one run.

    Columns: series, year, financial_year, step, mean, then lower_/upper_ bounds per coverage level.
    """
    frames: List[pd.DataFrame] = []
    for fc in [target_forecast] + list((regressor_forecasts or {}).values()):
        frame = fc.to_frame()
        years = [int(p.year) for p in frame.index]
        frame.insert(0, "step", range(1, len(frame) + 1))
        frame.insert(0, "financial_year", [financial_year_label(y) for y in years])
        frame.insert(0, "year", years)
        frame.insert(0, "series", fc.name)
        frames.append(frame.reset_index(drop=True))
    if not frames:
        return pd.DataFrame()
    return pd.concat(frames, ignore_index=True)


def export_forecast_csv(csv_path: Optional[Path], target_forecast, regressor_forecasts=None) -> Optional[Path]:
    """
    Write forecast_table to CSV (parents created). Returns the path, or None when no path is given.
    """
    if csv_path is None:
        return None
    ensure_dir(csv_path.parent)
    forecast_table(target_forecast, regressor_forecasts).to_csv(csv_path, index=False, float_format="%.4f")
    logger.info("Saved forecasts to %s", csv_path)
    return csv_path


def md_table_from_df(df: pd.DataFrame, float_fmt: str = "{:.4f}") -> str:
    """Render a DataFrame as a markdown table (floats formatted with `float_fmt`)."""
    cols = list(df.columns)
    if not cols:
        return ""
    header = "| " + " | ".join(str(c) for c in cols) + " |"
    separator = "| " + " | ".join("---" for _ in cols) + " |"
    rows = []
    for _, row in df.iterrows():
        vals = [float_fmt.format(v) if isinstance(v, float) else str(v) for v in row.values]
        rows.append("| " + " | ".join(vals) + " |")
    return "\n".join([header, separator] + rows)


def write_run_report(md_path: Optional[Path], narrative: str, model_summary: pd.DataFrame) -> Optional[Path]:
    """Write the narrative sentence and model comparison table to a markdown report."""
    if md_path is None:
        return None
    ensure_dir(md_path.parent)
    body = ["# Multifactor productivity forecast", "", narrative, "", "## Model comparison", "",
            md_table_from_df(model_summary), ""]
    md_path.write_text("\n".join(body), encoding="utf-8")
    logger.info("Saved run report to %s", md_path)
    return md_path
