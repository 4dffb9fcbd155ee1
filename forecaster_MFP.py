#!/usr/bin/env python3
"""
Multifactor productivity forecasting on the ABS market sector indexes (1973-2016).

Usage
-----
    python forecaster_MFP.py --help
    python forecaster_MFP.py --workbook data/5260055002DO001_201617.xlsx
    python forecaster_MFP.py --horizon 10 --target-variant with_trend --no-plots

Structure
---------
The code is organized in mfp_forecaster_src/:
- config_utils.py: Configuration management
- data_utils.py: Workbook loading and base-period rescaling
- transform_utils.py: Trend basis and unit-root test wrappers
- diagnostics_utils.py: Stationarity and residual diagnostics
- forecasting_utils.py: OLS, ARIMA-error models and recursive forecasting
- plotting_utils.py: Visualization functions
- parsing_utils.py: CLI argument validation
- file_utils.py: File operations
- main.py: Main entry point
"""

from mfp_forecaster_src.main import main


if __name__ == "__main__":
    main()
