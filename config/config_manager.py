"""YAML configuration manager for the MFP forecaster.

Settings live in ``config/*.yaml`` next to this module. Every file is loaded
into one merged tree keyed by file stem, with the ``settings`` file also
mounted at the root so that ``get("model.order")`` works without a prefix.
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

logger = logging.getLogger(__name__)

_CONFIG_DIR = Path(__file__).resolve().parent

_manager = None


class ConfigurationError(Exception):
    """Raised for unreadable configuration or out-of-range settings."""


class ConfigurationManager:
    """Load, query and validate the project's YAML configuration."""

    ROOT_FILE = "settings"

    def __init__(self, config_dir: Optional[Path] = None):
        self.config_dir = Path(config_dir) if config_dir is not None else _CONFIG_DIR
        self._configs: Dict[str, Dict[str, Any]] = {}
        self._load_all()

    def _load_all(self) -> None:
        if not self.config_dir.is_dir():
            raise ConfigurationError(f"Configuration directory not found: {self.config_dir}")

        for path in sorted(self.config_dir.glob("*.yaml")):
            try:
                with open(path, "r", encoding="utf-8") as fh:
                    data = yaml.safe_load(fh) or {}
            except yaml.YAMLError as e:
                raise ConfigurationError(f"Malformed YAML in {path}: {e}") from e
            if not isinstance(data, dict):
                raise ConfigurationError(f"Top level of {path} must be a mapping")
            self._configs[path.stem] = data
            logger.debug("Loaded configuration %s from %s", path.stem, path)

    def get(self, key_path: str, default: Any = None) -> Any:
        """Look up a dot-separated key, e.g. ``"forecast.horizon"``.

        Keys are first resolved against ``settings.yaml``, then against the
        tree of all files keyed by stem (``"settings.forecast.horizon"``).
        """
        for root in (self._configs.get(self.ROOT_FILE, {}), self._configs):
            node: Any = root
            found = True
            for part in key_path.split("."):
                if isinstance(node, dict) and part in node:
                    node = node[part]
                else:
                    found = False
                    break
            if found:
                return node
        return default

    def validate_configuration(self) -> Dict[str, List[str]]:
        """Return a mapping of section name to validation problems (empty when valid)."""
        errors: Dict[str, List[str]] = {}

        def _add(section: str, message: str) -> None:
            errors.setdefault(section, []).append(message)

        horizon = self.get("forecast.horizon")
        if horizon is not None and (not isinstance(horizon, int) or horizon < 0):
            _add("forecast", f"horizon must be a non-negative integer, got {horizon!r}")

        levels = self.get("forecast.coverage_levels", [])
        for lvl in levels or []:
            if not isinstance(lvl, int) or not 1 <= lvl < 100:
                _add("forecast", f"coverage level {lvl!r} outside 1..99")

        breakpoints = self.get("model.breakpoints", [])
        if list(breakpoints) != sorted(set(breakpoints)):
            _add("model", "breakpoints must be strictly increasing")

        fit_start, fit_end = self.get("model.fit_start"), self.get("model.fit_end")
        if fit_start is not None and fit_end is not None and fit_start > fit_end:
            _add("model", f"fit_start {fit_start} is after fit_end {fit_end}")

        order = self.get("model.order")
        if order is not None and len(order) != 3:
            _add("model", f"order must have three entries (p, d, q), got {order!r}")

        variant = self.get("model.target_variant")
        if variant is not None and variant not in ("with_trend", "regressors_only"):
            _add("model", f"unknown target_variant {variant!r}")

        regressors = self.get("model.regressors", [])
        if regressors is not None and len(regressors) != 2:
            _add("model", "exactly two regressor series are expected")
        if regressors and self.get("model.target") in regressors:
            _add("model", "the target series cannot also be a regressor")

        return errors

    def get_configuration_summary(self) -> Dict[str, Any]:
        return {
            "config_dir": str(self.config_dir),
            "loaded_configs": sorted(self._configs),
            "target": self.get("model.target"),
            "regressors": self.get("model.regressors"),
            "horizon": self.get("forecast.horizon"),
        }


def get_config(reload: bool = False) -> ConfigurationManager:
    """Return the process-wide configuration manager, loading it on first use."""
    global _manager
    if _manager is None or reload:
        _manager = ConfigurationManager()
    return _manager
