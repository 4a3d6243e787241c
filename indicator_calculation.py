"""
Indicator computation entry point.

calculate_indicators() attaches every derived record to one target quotation of an
instrument. The most recent quotation gets the full pass (Indicator and momentum
score); historical quotations only get their moving averages. calculate_universe()
runs the full pass over many instruments and then ranks each instrument type as one
universe.
"""
from collections import defaultdict
from typing import Dict, Iterable, List, Optional

from bollinger_calculator import bollinger_band_width, bollinger_band_width_threshold
from config import (
    ACC_DIS_RATIO_LONG_DAYS,
    ACC_DIS_RATIO_SHORT_DAYS,
    ATRP_DAYS,
    AVERAGE_PRICE_DECIMALS,
    BOLLINGER_PERIOD,
    BOLLINGER_STD_MULTIPLIER,
    BOLLINGER_THRESHOLD_PERCENTILE,
    EMA_PERIODS,
    LIQUIDITY_DAYS,
    MIN_QUOTATIONS_FOR_MOVING_AVERAGES,
    PERFORMANCE_DAYS,
    SMA_PERIODS,
    SMA_VOLUME_PERIOD,
    STOCHASTIC_PERIOD,
    STOCHASTIC_SMOOTHING_PERIOD,
    UP_DOWN_VOLUME_DAYS,
    VOLUME_DIFFERENTIAL_LONG_DAYS,
    VOLUME_DIFFERENTIAL_SHORT_DAYS,
)
from indicator_calculator import (
    accumulation_distribution_ratio,
    average_true_range_percent,
    base_length_weeks,
    bollinger_band_width_weekly,
    distance_to_52_week_high,
    distance_to_52_week_low,
    liquidity,
    up_down_volume_ratio,
    volume_differential,
)
from logger_config import get_logger
from models import Indicator, Instrument, InstrumentType, MovingAverageData, Quotation, RelativeStrengthData
from moving_average_calculator import (
    exponential_moving_average,
    simple_moving_average,
    simple_moving_average_volume,
)
from number_utils import round_half_up
from performance_calculator import price_performance_for_days, weighted_momentum_score
from quotation_series import QuotationSeries
from relative_strength_calculator import rank_universe
from stochastic_calculator import slow_stochastic

logger = get_logger(__name__)


def calculate_moving_average_data(quotation: Quotation, series: QuotationSeries) -> MovingAverageData:
    """SMA 10/20/50/150/200, EMA 10/21 and SMA(30) volume at quotation."""
    values = {}
    for days in SMA_PERIODS:
        values[f"sma_{days}"] = round_half_up(
            simple_moving_average(days, quotation, series), AVERAGE_PRICE_DECIMALS)
    for days in EMA_PERIODS:
        values[f"ema_{days}"] = round_half_up(
            exponential_moving_average(days, quotation, series), AVERAGE_PRICE_DECIMALS)
    values[f"sma_{SMA_VOLUME_PERIOD}_volume"] = simple_moving_average_volume(SMA_VOLUME_PERIOD, quotation, series)
    return MovingAverageData(**values)


def calculate_full_indicator(instrument: Instrument, quotation: Quotation, series: QuotationSeries) -> Indicator:
    """Indicator record of the most recent quotation."""
    return Indicator(
        distance_to_52_week_high=distance_to_52_week_high(quotation, series),
        distance_to_52_week_low=distance_to_52_week_low(quotation, series),
        bollinger_band_width_10_days=bollinger_band_width(
            BOLLINGER_PERIOD, BOLLINGER_STD_MULTIPLIER, quotation, series),
        bollinger_band_width_10_weeks=bollinger_band_width_weekly(
            BOLLINGER_PERIOD, BOLLINGER_STD_MULTIPLIER, quotation, series),
        bbw_10_days_threshold_25=bollinger_band_width_threshold(
            BOLLINGER_PERIOD, BOLLINGER_STD_MULTIPLIER, BOLLINGER_THRESHOLD_PERCENTILE, quotation, series),
        volume_differential_5_days=volume_differential(
            VOLUME_DIFFERENTIAL_LONG_DAYS, VOLUME_DIFFERENTIAL_SHORT_DAYS, quotation, series),
        base_length_weeks=base_length_weeks(quotation, series),
        up_down_volume_ratio=up_down_volume_ratio(UP_DOWN_VOLUME_DAYS, quotation, series),
        acc_dis_ratio_30_days=accumulation_distribution_ratio(ACC_DIS_RATIO_SHORT_DAYS, quotation, series),
        acc_dis_ratio_63_days=accumulation_distribution_ratio(ACC_DIS_RATIO_LONG_DAYS, quotation, series),
        performance_5_days=price_performance_for_days(PERFORMANCE_DAYS, quotation, series),
        liquidity_20_days=liquidity(LIQUIDITY_DAYS, quotation, series, instrument.exchange),
        atrp_20_days=average_true_range_percent(ATRP_DAYS, quotation, series),
        slow_stochastic_14_days=slow_stochastic(
            STOCHASTIC_PERIOD, STOCHASTIC_SMOOTHING_PERIOD, quotation, series),
    )


def calculate_indicators(
    instrument: Instrument,
    series: QuotationSeries,
    quotation: Quotation,
    most_recent: bool = True,
) -> Quotation:
    """
    Compute and attach the derived records of one quotation.

    Args:
        instrument: Instrument the series belongs to
        series: Full sorted history of the instrument
        quotation: Target quotation (must be part of series)
        most_recent: Full recompute (Indicator + momentum score) instead of the
            lighter historical pass (moving averages only)

    Returns:
        The same quotation, with its records replaced
    """
    if series.position_of(quotation) < 0:
        raise ValueError(f"{quotation!r} is not covered by the history of {instrument!r}")

    if most_recent:
        quotation.indicator = calculate_full_indicator(instrument, quotation, series)
        quotation.relative_strength_data = RelativeStrengthData(
            rs_percent_sum=weighted_momentum_score(quotation, series))

    if series.count_until(quotation) >= MIN_QUOTATIONS_FOR_MOVING_AVERAGES:
        quotation.moving_average_data = calculate_moving_average_data(quotation, series)
    else:
        logger.debug("%s: not enough history for moving averages at %s", instrument, quotation.date)
    return quotation


def calculate_series(series: QuotationSeries, include_history: bool = False) -> Optional[Quotation]:
    """
    Full pass for the newest quotation of series; with include_history every older
    quotation also gets the historical pass. Returns the newest quotation.
    """
    newest = series.newest
    if newest is None:
        return None
    if include_history:
        for quotation in series[:-1]:
            calculate_indicators(series.instrument, series, quotation, most_recent=False)
    return calculate_indicators(series.instrument, series, newest, most_recent=True)


def calculate_universe(
    histories: Iterable[QuotationSeries],
    include_history: bool = False,
) -> Dict[InstrumentType, List[Quotation]]:
    """
    Compute indicators of every instrument, then rank each instrument type separately.

    Ranking only starts after all instruments are computed. Returns the ranked most
    recent quotations grouped by instrument type.
    """
    by_type: Dict[InstrumentType, List[Quotation]] = defaultdict(list)
    for series in histories:
        newest = calculate_series(series, include_history=include_history)
        if newest is None:
            logger.warning("Skipping %s: no quotations", series.instrument)
            continue
        by_type[series.instrument.type].append(newest)

    for instrument_type, quotations in by_type.items():
        rank_universe(quotations)
        logger.info("Ranked %d %s quotations", len(quotations), instrument_type.value)
    return dict(by_type)
