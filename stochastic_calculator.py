"""Stochastic oscillator (%K) and its smoothed variant (%D)."""
from config import PERCENT_DECIMALS
from number_utils import round_half_up
from quotation_series import QuotationSeries, Target


def stochastic(days: int, target: Target, series: QuotationSeries) -> float:
    """
    %K = (close - lowest low) / (highest high - lowest low) * 100 over `days`.

    Returns 0 for insufficient history and for a flat window (highest high == lowest low).
    """
    window = series.frame_window(days, target)
    if window.empty:
        return 0.0
    highest_high = float(window["High"].max())
    lowest_low = float(window["Low"].min())
    if highest_high == lowest_low:
        return 0.0
    close = float(window["Close"].iloc[-1])
    return round_half_up((close - lowest_low) / (highest_high - lowest_low) * 100, PERCENT_DECIMALS)


def slow_stochastic(days: int, smoothing_days: int, target: Target, series: QuotationSeries) -> float:
    """
    %D: mean of the last `smoothing_days` %K values ending at target.
    Needs days + smoothing_days quotations at/before target, else 0.
    """
    position = series.position_of(target)
    if smoothing_days <= 0 or position + 1 < days + smoothing_days:
        return 0.0
    values = [
        stochastic(days, series[index], series)
        for index in range(position - smoothing_days + 1, position + 1)
    ]
    return round_half_up(sum(values) / smoothing_days, PERCENT_DECIMALS)
