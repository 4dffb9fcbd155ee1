# mfp_forecaster_src/parsing_utils.py

from typing import List, Optional, Sequence, Tuple
import logging

from .errors import ConfigurationError

logger = logging.getLogger(__name__)


def parse_int_list(s: Optional[str], default: Sequence[int]) -> List[int]:
    """
    Parse a comma-separated list of integers such as '1987,2003'.

    Examples
    --------
    >>> parse_int_list("1987,2003", [])
    [1987, 2003]
    >>> parse_int_list(None, [80, 95])
    [80, 95]
    """
    if s is None or not str(s).strip():
        return list(default)
    try:
        return [int(x.strip()) for x in str(s).split(",") if x.strip() != ""]
    except ValueError:
        raise ConfigurationError(f"Expected a comma-separated list of integers, got '{s}'") from None


def parse_intervals_arg(s: Optional[str], default: Sequence[int] = (80, 95)) -> List[int]:
    """
    Parse prediction-interval coverages like '80,95' into sorted unique levels in 1..99.

    Examples
    --------
    >>> parse_intervals_arg("95,80")
    [80, 95]
    """
    vals = sorted(set(parse_int_list(s, default)))
    bad = [v for v in vals if not 1 <= v < 100]
    if bad:
        raise ConfigurationError(f"Coverage levels must lie in 1..99, got {bad}")
    return vals


def validate_horizon(horizon) -> int:
    """
    Validate a forecast horizon (non-negative integer).

    >>> validate_horizon("5")
    5
    """
    try:
        h = int(horizon)
    except (TypeError, ValueError):
        raise ConfigurationError(f"Forecast horizon must be an integer, got {horizon!r}") from None
    if h < 0:
        raise ConfigurationError(f"Forecast horizon must be non-negative, got {h}")
    return h


def validate_series_names(names: Sequence[str], available: Sequence[str]) -> List[str]:
    """Check that every requested series is a known column name."""
    unknown = [n for n in names if n not in available]
    if unknown:
        raise ConfigurationError(f"Unknown series {unknown}. Must be among: {list(available)}")
    return list(names)


def validate_log_level(log_level: str) -> str:
    """
    Validate and normalize a logging level name.

    Raises
    ------
    ValueError
        If the logging level is not supported
    """
    valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
    level_upper = log_level.upper()
    if level_upper not in valid_levels:
        raise ValueError(f"Invalid log level '{log_level}'. Must be one of: {valid_levels}")
    return level_upper


def validate_model_series(target: str, regressors: Sequence[str]) -> List[str]:
    """
    Check the regressor set of the target model: non-empty, no duplicates, target not among them.
    """
    regressors = list(regressors)
    if not regressors:
        raise ConfigurationError("At least one regressor series is required")
    dupes = sorted({r for r in regressors if regressors.count(r) > 1})
    if dupes:
        raise ConfigurationError(f"Duplicate regressor series: {dupes}")
    if target in regressors:
        raise ConfigurationError(f"Target '{target}' cannot also be one of its regressors {regressors}")
    return regressors


def validate_fit_window(start: Optional[int], end: Optional[int]) -> Tuple[Optional[int], Optional[int]]:
    """
    Validate an inclusive fit window of calendar years; either bound may be None.

    >>> validate_fit_window("1978", None)
    (1978, None)
    """
    try:
        start = int(start) if start is not None else None
        end = int(end) if end is not None else None
    except (TypeError, ValueError):
        raise ConfigurationError(f"Fit window bounds must be years, got {start!r}..{end!r}") from None
    if start is not None and end is not None and start > end:
        raise ConfigurationError(f"Fit window start {start} is after its end {end}")
    return start, end
