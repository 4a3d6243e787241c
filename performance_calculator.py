"""
Price performance: single comparisons, N-day performance, the weighted momentum
score used for relative strength, and average performance on up / down days.
"""
from typing import List, Optional

import pandas as pd

from config import MOMENTUM_HORIZON_MONTHS, PERCENT_DECIMALS, PERFORMANCE_QUOTIENT_DECIMALS
from models import Quotation
from number_utils import round_half_up
from quotation_series import QuotationSeries, Target


def performance(quotation: Quotation, reference: Quotation) -> float:
    """
    Percent change from reference.close to quotation.close, signed.
    performance(close=1.36, close=1.46) == -6.85
    """
    if not reference.close:
        return 0.0
    quotient = round_half_up(quotation.close / reference.close, PERFORMANCE_QUOTIENT_DECIMALS)
    return round_half_up((quotient - 1) * 100, PERCENT_DECIMALS)


def price_performance_for_days(days: int, target: Target, series: QuotationSeries) -> float:
    """Performance of target against the quotation `days` trading days earlier; 0 if unavailable."""
    current = series.quotation_at_or_before(target)
    reference = series.offset(target, days)
    if current is None or reference is None or days <= 0:
        return 0.0
    return performance(current, reference)


def momentum_reference(target: Target, series: QuotationSeries, months: int) -> Optional[Quotation]:
    """Newest quotation dated at least `months` calendar months before target."""
    current = series.quotation_at_or_before(target)
    if current is None:
        return None
    cutoff = (pd.Timestamp(current.date) - pd.DateOffset(months=months)).date()
    return series.quotation_at_or_before(cutoff)


def weighted_momentum_score(target: Target, series: QuotationSeries) -> float:
    """
    Sum of performances over the 3, 3, 6, 9 and 12 month horizons.

    A horizon without a quotation far enough back is left out of the sum, so
    instruments with short histories are still scored.
    """
    current = series.quotation_at_or_before(target)
    if current is None:
        return 0.0
    total = 0.0
    for months in MOMENTUM_HORIZON_MONTHS:
        reference = momentum_reference(current, series, months)
        if reference is None:
            continue
        total += performance(current, reference)
    return round_half_up(total, PERCENT_DECIMALS)


def _daily_performances(target: Target, series: QuotationSeries, min_days: int, max_days: int) -> List[float]:
    """Day-over-day performances of the quotations min_days..max_days trading days before target."""
    position = series.position_of(target)
    if min_days < 0 or max_days < min_days or position - max_days - 1 < 0:
        return []
    return [
        performance(series[position - offset], series[position - offset - 1])
        for offset in range(min_days, max_days + 1)
    ]


def average_performance_up_days(target: Target, series: QuotationSeries, min_days: int, max_days: int) -> float:
    """Mean performance of the positive days in the window; 0 without up days."""
    ups = [p for p in _daily_performances(target, series, min_days, max_days) if p > 0]
    if not ups:
        return 0.0
    return round_half_up(sum(ups) / len(ups), PERCENT_DECIMALS)


def average_performance_down_days(target: Target, series: QuotationSeries, min_days: int, max_days: int) -> float:
    """Mean performance of the negative days in the window; 0 without down days."""
    downs = [p for p in _daily_performances(target, series, min_days, max_days) if p < 0]
    if not downs:
        return 0.0
    return round_half_up(sum(downs) / len(downs), PERCENT_DECIMALS)
