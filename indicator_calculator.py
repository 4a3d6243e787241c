"""
Auxiliary indicators of the full pass: 52 week distances, base length, volume
statistics, liquidity and ATRP. Same windowing rules as the other calculators:
the N most recent quotations at/before target, neutral 0 if fewer exist.
"""
from typing import Optional

import numpy as np
import pandas as pd

from bollinger_calculator import bollinger_band_width
from config import PENCE_QUOTED_EXCHANGES, PERCENT_DECIMALS, TRADING_DAYS_52_WEEKS
from moving_average_calculator import simple_moving_average_volume
from number_utils import round_half_up
from quotation_series import QuotationSeries, Target


def distance_to_52_week_high(target: Target, series: QuotationSeries) -> float:
    """Percent distance of the close from the highest high of the last 52 weeks (<= 0)."""
    year = series.frame_until(target, TRADING_DAYS_52_WEEKS)
    if year.empty:
        return 0.0
    highest = float(year["High"].max())
    if highest <= 0:
        return 0.0
    close = float(year["Close"].iloc[-1])
    return round_half_up((close - highest) / highest * 100, PERCENT_DECIMALS)


def distance_to_52_week_low(target: Target, series: QuotationSeries) -> float:
    """Percent distance of the close from the lowest low of the last 52 weeks (>= 0)."""
    year = series.frame_until(target, TRADING_DAYS_52_WEEKS)
    if year.empty:
        return 0.0
    lowest = float(year["Low"].min())
    if lowest <= 0:
        return 0.0
    close = float(year["Close"].iloc[-1])
    return round_half_up((close - lowest) / lowest * 100, PERCENT_DECIMALS)


def base_length_weeks(target: Target, series: QuotationSeries) -> int:
    """Calendar weeks between the most recent 52 week high and target."""
    year = series.frame_until(target, TRADING_DAYS_52_WEEKS)
    if year.empty:
        return 0
    highs = year["High"]
    # Latest occurrence of the maximum
    high_date = highs[highs == highs.max()].index[-1]
    return int((year.index[-1] - high_date).days // 7)


def liquidity(days: int, target: Target, series: QuotationSeries, exchange: Optional[str] = None) -> float:
    """
    Average daily traded value (close * volume) over `days`.
    Exchanges quoting in pence are converted to the main currency unit.
    """
    window = series.frame_window(days, target)
    if window.empty:
        return 0.0
    traded_value = float((window["Close"] * window["Volume"]).mean())
    if exchange and exchange.upper() in PENCE_QUOTED_EXCHANGES:
        traded_value /= 100
    return round_half_up(traded_value, PERCENT_DECIMALS)


def average_true_range_percent(days: int, target: Target, series: QuotationSeries) -> float:
    """
    ATRP: mean true range over `days`, in percent of the close.
    True range needs the previous close, so days + 1 quotations are required.
    """
    window = series.frame_window(days + 1, target)
    if window.empty:
        return 0.0
    previous_close = window["Close"].shift(1)
    true_range = pd.concat(
        [
            window["High"] - window["Low"],
            (window["High"] - previous_close).abs(),
            (window["Low"] - previous_close).abs(),
        ],
        axis=1,
    ).max(axis=1).iloc[1:]
    close = float(window["Close"].iloc[-1])
    if close <= 0:
        return 0.0
    return round_half_up(float(true_range.mean()) / close * 100, PERCENT_DECIMALS)


def _day_direction(days: int, target: Target, series: QuotationSeries) -> Optional[pd.DataFrame]:
    """Window of `days` quotations with the change of close and volume against the day before."""
    window = series.frame_window(days + 1, target)
    if window.empty:
        return None
    changes = pd.DataFrame({
        "Volume": window["Volume"],
        "CloseChange": window["Close"].diff(),
        "VolumeChange": window["Volume"].diff(),
    }).iloc[1:]
    return changes


def up_down_volume_ratio(days: int, target: Target, series: QuotationSeries) -> float:
    """Total volume on up days divided by total volume on down days; 0 without down volume."""
    changes = _day_direction(days, target, series)
    if changes is None:
        return 0.0
    up_volume = float(changes.loc[changes["CloseChange"] > 0, "Volume"].sum())
    down_volume = float(changes.loc[changes["CloseChange"] < 0, "Volume"].sum())
    if down_volume == 0:
        return 0.0
    return round_half_up(up_volume / down_volume, PERCENT_DECIMALS)


def accumulation_distribution_ratio(days: int, target: Target, series: QuotationSeries) -> float:
    """
    Accumulation days (up on rising volume) divided by distribution days
    (down on rising volume); 0 without distribution days.
    """
    changes = _day_direction(days, target, series)
    if changes is None:
        return 0.0
    rising_volume = changes["VolumeChange"] > 0
    accumulation = int(np.sum((changes["CloseChange"] > 0) & rising_volume))
    distribution = int(np.sum((changes["CloseChange"] < 0) & rising_volume))
    if distribution == 0:
        return 0.0
    return round_half_up(accumulation / distribution, PERCENT_DECIMALS)


def volume_differential(long_days: int, short_days: int, target: Target, series: QuotationSeries) -> float:
    """Percent difference of the short-term average volume against the long-term average volume."""
    long_average = simple_moving_average_volume(long_days, target, series)
    short_average = simple_moving_average_volume(short_days, target, series)
    if long_average == 0 or short_average == 0:
        return 0.0
    return round_half_up((short_average / long_average - 1) * 100, PERCENT_DECIMALS)


def bollinger_band_width_weekly(days: int, std_multiplier: float, target: Target, series: QuotationSeries) -> float:
    """Band width over `days` weekly bars ending with the week of target."""
    weekly = series.weekly(target)
    if not len(weekly):
        return 0.0
    return bollinger_band_width(days, std_multiplier, weekly.newest, weekly)
