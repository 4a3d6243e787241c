"""
Bollinger Bands: standard deviation, band width and the band-width percentile
threshold used to spot a volatility squeeze.
"""
from typing import Iterable, List, Optional

import numpy as np

from config import PERCENT_DECIMALS, STANDARD_DEVIATION_DECIMALS
from number_utils import round_half_up
from quotation_series import QuotationSeries, Target


def standard_deviation(values: Iterable[float]) -> float:
    """Population standard deviation (divides by N), rounded to 4 decimals. Empty input gives 0."""
    arr = np.asarray(list(values), dtype=float)
    if arr.size == 0:
        return 0.0
    return round_half_up(float(np.std(arr, ddof=0)), STANDARD_DEVIATION_DECIMALS)


def bollinger_band_width(days: int, std_multiplier: float, target: Target, series: QuotationSeries) -> float:
    """
    (upper band - lower band) / middle band * 100.

    Middle band is the SMA of the window, bands are middle +/- std_multiplier * stddev.
    Returns 0 for insufficient history, a flat window or a zero average.
    """
    window = series.frame_window(days, target)
    if window.empty:
        return 0.0
    closes = window["Close"].to_numpy(dtype=float)
    deviation = standard_deviation(closes)
    middle = float(closes.mean())
    if deviation == 0 or middle == 0:
        return 0.0
    upper = middle + std_multiplier * deviation
    lower = middle - std_multiplier * deviation
    return round_half_up((upper - lower) / middle * 100, PERCENT_DECIMALS)


def bollinger_band_width_threshold(
    days: int,
    std_multiplier: float,
    percentile: int,
    target: Target,
    series: QuotationSeries,
    lookback_days: Optional[int] = None,
) -> float:
    """
    Band width at the given low-end percentile of all daily band widths up to target.

    Every quotation at/before target with a full `days` window contributes one width
    (zero widths are ignored). With lookback_days only the most recent widths count;
    shorter histories use whatever is available. Returns 0 without any width.
    """
    position = series.position_of(target)
    if position + 1 < days:
        return 0.0
    first = days - 1
    if lookback_days is not None:
        first = max(first, position - lookback_days + 1)

    widths: List[float] = []
    for index in range(position, first - 1, -1):
        width = bollinger_band_width(days, std_multiplier, series[index], series)
        if width > 0:
            widths.append(width)
    if not widths:
        return 0.0

    widths.sort(reverse=True)
    count = len(widths)
    threshold_index = count - (count * percentile // 100) - 1
    threshold_index = min(max(threshold_index, 0), count - 1)
    return widths[threshold_index]
