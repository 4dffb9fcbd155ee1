from pathlib import Path

import pandas as pd
import pytest

from mfp_forecaster_src.data_utils import SERIES_NAMES
from mfp_forecaster_src.errors import ConfigurationError, DataError
from mfp_forecaster_src.file_utils import forecast_table, md_table_from_df
from mfp_forecaster_src.forecasting_utils import ModelVariant
from mfp_forecaster_src.main import (
    PipelineSettings, forecast_narrative, main, resolve_settings, run_pipeline, setup_cli_parser
)

REAL_WORKBOOK = Path(__file__).resolve().parent.parent / "data" / "5260055002DO001_201617.xlsx"


def _settings(workbook: Path, out_dir: Path, **kwargs) -> PipelineSettings:
    params = dict(
        workbook=workbook,
        horizon=3,
        require_convergence=False,
        figures_dir=out_dir,
        forecast_csv=out_dir / "forecast.csv",
    )
    params.update(kwargs)
    return PipelineSettings(**params)


def test_pipeline_on_synthetic_workbook(synthetic_workbook, tmp_path: Path):
    out_dir = tmp_path / "figures"
    result = run_pipeline(_settings(synthetic_workbook, out_dir))

    assert list(result.table.columns) == SERIES_NAMES
    assert result.stationarity.series_name == "MultifactorQA"
    assert result.ols_model.error_structure == "ols"
    assert set(result.variant_models) == {ModelVariant.WITH_TREND, ModelVariant.REGRESSORS_ONLY}
    assert result.selected_variant is ModelVariant.REGRESSORS_ONLY
    assert result.selected_model.exog_columns == ("LabourQA", "Capital")
    assert len(result.model_summary) == 3

    assert len(result.forecast.target) == 3
    assert "2019-20" in result.narrative

    for name in ["Index_Panel.png", "OLS_Fitted.png", "Forecast_Target.png", "Forecast_Regressors.png",
                 f"{result.selected_model.name}_LjungBox.csv", f"{result.selected_model.name}_Residuals.png"]:
        assert (out_dir / name).exists(), name

    csv = pd.read_csv(out_dir / "forecast.csv")
    assert len(csv) == 9  # target and two regressors, three years each
    assert set(csv["series"]) == {"MultifactorQA", "LabourQA", "Capital"}
    assert list(csv.columns[:5]) == ["series", "year", "financial_year", "step", "mean"]

    report = (out_dir / "report.md").read_text(encoding="utf-8")
    assert result.narrative in report
    assert "| model |" in report


def test_pipeline_without_plots_writes_no_figures(synthetic_workbook, tmp_path: Path):
    out_dir = tmp_path / "figures"
    result = run_pipeline(_settings(synthetic_workbook, out_dir, make_plots=False,
                                    target_variant=ModelVariant.WITH_TREND, horizon=0))
    assert result.selected_variant is ModelVariant.WITH_TREND
    assert len(result.forecast.target) == 0
    assert "No forecast" in result.narrative
    assert not list(out_dir.glob("*.png"))


def test_forecast_narrative_rounds_to_two_decimals():
    mean = pd.Series([101.234, 102.3456], index=pd.period_range("2017", periods=2, freq="Y"))
    fc = type("FC", (), {"mean": mean, "index": mean.index, "__len__": lambda self: 2})()
    text = forecast_narrative("MultifactorQA", fc)
    assert "2018-19" in text
    assert "102.35" in text


def test_forecast_table_and_markdown_helpers(synthetic_table):
    from mfp_forecaster_src.forecasting_utils import fit_regressor_model, forecast_model, build_future_exog

    model = fit_regressor_model(synthetic_table, "LabourQA", require_convergence=False)
    fc = forecast_model(model, 2, build_future_exog(model, 2, {}))
    table = forecast_table(fc)
    assert list(table["financial_year"]) == ["2017-18", "2018-19"]
    assert list(table["step"]) == [1, 2]

    md = md_table_from_df(pd.DataFrame({"a": [1.5], "b": ["x"]}), float_fmt="{:.1f}")
    assert md.splitlines() == ["| a | b |", "| --- | --- |", "| 1.5 | x |"]


def test_cli_overrides_reach_settings(tmp_path: Path):
    from mfp_forecaster_src.config_utils import initialize_config

    initialize_config(reload=True)
    args = setup_cli_parser().parse_args([
        "--workbook", str(tmp_path / "book.xlsx"),
        "--horizon", "7",
        "--base-row", "31",
        "--target-variant", "with_trend",
        "--intervals", "95,50",
        "--no-plots",
    ])
    settings = resolve_settings(args)
    assert settings.workbook == tmp_path / "book.xlsx"
    assert settings.horizon == 7
    assert settings.base_row == 31 and settings.base_year is None
    assert settings.target_variant is ModelVariant.WITH_TREND
    assert settings.coverage_levels == (50, 95)
    assert settings.breakpoints == (1987, 2003)
    assert settings.order == (1, 1, 0)
    assert not settings.make_plots


def test_main_exits_nonzero_on_missing_workbook(tmp_path: Path):
    with pytest.raises(SystemExit) as excinfo:
        main(["--workbook", str(tmp_path / "absent.xlsx"), "--figures-dir", str(tmp_path), "--no-plots"])
    assert excinfo.value.code == 1


@pytest.mark.skipif(not REAL_WORKBOOK.exists(), reason="ABS productivity workbook not present under data/")
def test_published_workbook_residual_checks(tmp_path: Path):
    result = run_pipeline(_settings(REAL_WORKBOOK, tmp_path, make_plots=False, horizon=5,
                                    require_convergence=True))
    assert len(result.table) == 44
    assert result.ols_check.is_significant
    assert result.variant_checks[ModelVariant.WITH_TREND].is_significant
    assert not result.variant_checks[ModelVariant.REGRESSORS_ONLY].is_significant
    assert len(result.forecast.target) == 5


def test_fit_window_excludes_unpublished_leading_years(workbook_factory, tmp_path: Path):
    workbook = workbook_factory({("LabourQA", 1973): "na", ("LabourQA", 1974): "na", ("LabourQA", 1975): "na"},
                                name="late_labour.xlsx")
    result = run_pipeline(_settings(workbook, tmp_path, make_plots=False, fit_start=1976))

    assert result.table["LabourQA"].isna().sum() == 3
    assert result.selected_model.first_period == pd.Period("1976", freq="Y")
    assert result.ols_model.first_period == pd.Period("1976", freq="Y")
    assert result.forecast.regressor_models["LabourQA"].first_period == pd.Period("1976", freq="Y")
    assert len(result.forecast.target) == 3


def test_missing_years_inside_fit_window_fail(workbook_factory, tmp_path: Path):
    workbook = workbook_factory({("LabourQA", 1973): "na", ("LabourQA", 1974): "na", ("LabourQA", 1975): "na"},
                                name="late_labour.xlsx")
    with pytest.raises(DataError, match="LabourQA"):
        run_pipeline(_settings(workbook, tmp_path, make_plots=False))


def test_cli_fit_window_reaches_settings(tmp_path: Path):
    from mfp_forecaster_src.config_utils import initialize_config

    initialize_config(reload=True)
    args = setup_cli_parser().parse_args([
        "--workbook", str(tmp_path / "book.xlsx"), "--fit-start", "1976", "--fit-end", "2014"])
    settings = resolve_settings(args)
    assert (settings.fit_start, settings.fit_end) == (1976, 2014)

    args = setup_cli_parser().parse_args([
        "--workbook", str(tmp_path / "book.xlsx"), "--fit-start", "2014", "--fit-end", "1976"])
    with pytest.raises(ConfigurationError):
        resolve_settings(args)


@pytest.mark.parametrize("argv", [["--target", "Capital"], ["--target", "LabourQA"]])
def test_target_listed_as_regressor_is_rejected(argv, tmp_path: Path):
    from mfp_forecaster_src.config_utils import initialize_config

    initialize_config(reload=True)
    args = setup_cli_parser().parse_args(["--workbook", str(tmp_path / "book.xlsx"), *argv])
    with pytest.raises(ConfigurationError, match="regressor"):
        resolve_settings(args)


def _config_with_base_row(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    from config import ConfigurationManager
    from mfp_forecaster_src import config_utils

    config_dir = tmp_path / "config"
    config_dir.mkdir()
    (config_dir / "settings.yaml").write_text(
        f"data:\n  workbook: {tmp_path / 'book.xlsx'}\n  base_year: 2003\n  base_row: 31\n", encoding="utf-8")
    monkeypatch.setattr(config_utils, "config_manager", ConfigurationManager(config_dir))


def test_cli_base_year_replaces_configured_base_row(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    _config_with_base_row(tmp_path, monkeypatch)

    settings = resolve_settings(setup_cli_parser().parse_args(["--base-year", "1990"]))
    assert settings.base_year == 1990
    assert settings.base_row is None

    settings = resolve_settings(setup_cli_parser().parse_args([]))
    assert settings.base_row == 31


def test_main_exits_nonzero_on_target_regressor_clash(tmp_path: Path):
    with pytest.raises(SystemExit) as excinfo:
        main(["--workbook", str(tmp_path / "absent.xlsx"), "--target", "Capital", "--no-plots"])
    assert excinfo.value.code == 1
