"""
Simple and exponential moving averages of price and volume.
All functions return 0 when fewer than `days` quotations exist at or before target.
"""
from quotation_series import QuotationSeries, Target
from number_utils import round_half_up_int


def simple_moving_average(days: int, target: Target, series: QuotationSeries) -> float:
    """Mean close of the `days` most recent quotations at/before target."""
    window = series.frame_window(days, target)
    if window.empty:
        return 0.0
    return float(window["Close"].mean())


def exponential_moving_average(days: int, target: Target, series: QuotationSeries) -> float:
    """
    EMA with smoothing factor 2 / (days + 1).

    Seeded with the simple average of the oldest `days`-window of the history and
    recursed forward to target.
    """
    closes = series.frame_until(target)["Close"]
    if days <= 0 or len(closes) < days:
        return 0.0
    seeded = closes.iloc[days - 1:].copy()
    seeded.iloc[0] = closes.iloc[:days].mean()
    ema = seeded.ewm(alpha=2.0 / (days + 1), adjust=False).mean()
    return float(ema.iloc[-1])


def simple_moving_average_volume(days: int, target: Target, series: QuotationSeries) -> int:
    """Mean volume of the `days` most recent quotations at/before target, rounded to an integer."""
    window = series.frame_window(days, target)
    if window.empty:
        return 0
    return round_half_up_int(float(window["Volume"].mean()))
