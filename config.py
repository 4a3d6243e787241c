"""
Configuration constants and settings
Centralizes hardcoded values for easier maintenance

This file contains all configuration variables for the screening engine.
Indicator windows, ranking parameters and scan template thresholds are defined
here, making it easy to adjust parameters without modifying the calculators.
"""
from pathlib import Path

# ============================================================================
# FILE PATH CONFIGURATION
# ============================================================================

DEFAULT_ENV_PATH = ".env"
# Purpose: Path to environment variables file
# Used by: run_scan.py (SCAN_LOG_LEVEL, SCAN_CACHE_FILE overrides)

DEFAULT_LOG_DIR = "logs"
# Purpose: Directory where log files are stored
# Used by: logger_config.setup_logging

DEFAULT_LOG_FILE = "stock_screener.log"
# Purpose: Default log file name
# Used by: logger_config.setup_logging

HISTORY_CACHE_FILE = Path("data/quotation_history.json")
# Purpose: JSON cache of instruments and their OHLCV history
# Used by: history_store.py, run_scan.py

SCAN_RESULTS_DIR = Path("reports")
# Purpose: Directory for template evaluation results
# Used by: run_scan.py

SCAN_RESULTS_LATEST = SCAN_RESULTS_DIR / "scan_results_latest.json"
# Purpose: Result of the most recent template evaluation
# Used by: run_scan.py

# ============================================================================
# LOGGING CONFIGURATION
# ============================================================================

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
# Purpose: Format string for log messages
# Used by: Python logging module

LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
# Purpose: Date/time format in log messages
# Used by: Python logging module

LOG_MAX_BYTES = 10 * 1024 * 1024  # 10MB
# Purpose: Maximum size of a single log file before rotation
# Used by: RotatingFileHandler

LOG_BACKUP_COUNT = 5
# Purpose: Number of backup log files to keep
# Used by: RotatingFileHandler

# ============================================================================
# INPUT VALIDATION CONFIGURATION
# ============================================================================

MAX_SYMBOL_LENGTH = 20
# Purpose: Maximum allowed length for instrument symbols
# Used by: validators.sanitize_symbol

ALLOWED_SYMBOL_CHARS = set("ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789._-^")
# Purpose: Valid characters allowed in instrument symbols
# Used by: validators.sanitize_symbol

START_DATE_FORMAT = "%Y-%m-%d"
# Purpose: Format of the optional start date passed to template evaluation
# Used by: validators.parse_start_date

# ============================================================================
# ROUNDING CONFIGURATION
# ============================================================================

AVERAGE_PRICE_DECIMALS = 3
# Purpose: Precision of stored moving averages and ratio / composite prices
# Used by: indicator_calculation.py, ratio_calculator.py

STANDARD_DEVIATION_DECIMALS = 4
# Purpose: Precision of the population standard deviation
# Used by: bollinger_calculator.standard_deviation

PERCENT_DECIMALS = 2
# Purpose: Precision of every percent value (performance, band width, %K, distances)
# Used by: all calculators

PERFORMANCE_QUOTIENT_DECIMALS = 4
# Purpose: Precision of the close/close quotient before it is turned into a percent
# Used by: performance_calculator.performance

# ============================================================================
# INDICATOR CONFIGURATION
# ============================================================================

# Moving averages (historical pass)
SMA_PERIODS = (10, 20, 50, 150, 200)
EMA_PERIODS = (10, 21)
SMA_VOLUME_PERIOD = 30
MIN_QUOTATIONS_FOR_MOVING_AVERAGES = 10
# Purpose: MovingAverageData is only attached once this many quotations exist at/before target
# Used by: indicator_calculation.calculate_indicators

# Bollinger Bands
BOLLINGER_PERIOD = 10
BOLLINGER_STD_MULTIPLIER = 2
BOLLINGER_THRESHOLD_PERCENTILE = 25
# Purpose: Low-end percentile of historical band widths marking a volatility squeeze
# Used by: indicator_calculation.calculate_indicators

# Stochastic
STOCHASTIC_PERIOD = 14
STOCHASTIC_SMOOTHING_PERIOD = 3

# 52 week range
TRADING_DAYS_52_WEEKS = 252
# Purpose: Number of trading days treated as one year
# Used by: indicator_calculator distance / base length functions

# Volume and accumulation
VOLUME_DIFFERENTIAL_LONG_DAYS = 30
VOLUME_DIFFERENTIAL_SHORT_DAYS = 5
UP_DOWN_VOLUME_DAYS = 50
ACC_DIS_RATIO_SHORT_DAYS = 30
ACC_DIS_RATIO_LONG_DAYS = 63

# Performance, liquidity, volatility
PERFORMANCE_DAYS = 5
LIQUIDITY_DAYS = 20
ATRP_DAYS = 20

PENCE_QUOTED_EXCHANGES = ("LSE",)
# Purpose: Exchanges whose prices are quoted in pence; liquidity is converted to pounds
# Used by: indicator_calculator.liquidity

# ============================================================================
# RELATIVE STRENGTH CONFIGURATION
# ============================================================================

MOMENTUM_HORIZON_MONTHS = (3, 3, 6, 9, 12)
# Purpose: Horizons of the weighted momentum score; 3 months counted twice
# Used by: performance_calculator.weighted_momentum_score

MIN_PERCENTILE_RANK = 1
MAX_PERCENTILE_RANK = 100
# Purpose: Bounds of every RS number
# Used by: relative_strength_calculator.calculate_percentile_ranks

# ============================================================================
# SCAN TEMPLATE CONFIGURATION
# ============================================================================

THREE_WEEKS_TIGHT_WEEKS = 3
THREE_WEEKS_TIGHT_TOLERANCE_PCT = 1.5
# Purpose: Weekly closes must stay within +/- this percent of the latest weekly close
# Used by: scan_templates.ThreeWeeksTightRefiner

WEEKLY_RESAMPLE_RULE = "W"
# Purpose: pandas resample rule for weekly bars (weeks ending Sunday)
# Used by: quotation_series.QuotationSeries.weekly

HIGH_TIGHT_FLAG_LOOKBACK_DAYS = 14 * 5
HIGH_TIGHT_FLAG_MIN_PERFORMANCE_PCT = 75.0
# Purpose: Minimum advance over the lookback window for a high tight flag
# Used by: scan_templates.HighTightFlagRefiner

SWING_SMA_PERIODS = (10, 20)
# Purpose: Both averages must be rising day over day
# Used by: scan_templates.SwingTradingEnvironmentRefiner

BUYABLE_BASE_EMA_PERIOD = 21
BUYABLE_BASE_ATRP_MULTIPLIER = 1.5
# Purpose: Maximum extension above EMA(21), in multiples of ATRP(20)
# Used by: scan_templates.BuyableBaseRefiner

MA_CONVERGENCE_ATRP_MULTIPLIER = 2.0
# Purpose: Maximum spread of close, EMA(21) and SMA(50), in multiples of ATRP(20)
# Used by: scan_templates.MovingAveragePriceConvergenceRefiner

RS_LINE_MAX_DISTANCE_TO_HIGH_PCT = -5.0
# Purpose: RS line versus industry group must be within 5% of its 52 week high
# Used by: scan_templates.RsNearHighIndustryGroupRefiner

REFINEMENT_FAILURE_POLICY = "abort"
# Purpose: "abort" fails the whole template on a history error, "skip" drops the instrument
# Used by: scan_template_engine.ScanTemplateEngine
