"""
Synthetic series: the ratio of two instruments (e.g. the RS line of a stock against
its industry group) and the average of several instruments (sector / industry-group
composites).
"""
from typing import Iterable, List, Optional

import pandas as pd

from config import AVERAGE_PRICE_DECIMALS
from logger_config import get_logger
from models import Instrument, InstrumentType, Quotation, to_date
from number_utils import round_half_up, round_half_up_int
from quotation_series import OHLCV_COLUMNS, QuotationSeries

logger = get_logger(__name__)


class RatioCalculationError(Exception):
    """Raised when a ratio cannot be built from the given series."""


def calculate_ratio_series(
    dividend: QuotationSeries,
    divisor: QuotationSeries,
    instrument: Optional[Instrument] = None,
) -> QuotationSeries:
    """
    Divide each dividend quotation's prices by the divisor quotation of the same date.

    Dates without a divisor quotation are skipped. Prices are rounded to 3 decimals;
    a ratio carries no volume.

    Raises:
        RatioCalculationError: divisor has no quotations
    """
    if not len(divisor):
        raise RatioCalculationError("Divisor has no quotations")
    if instrument is None:
        instrument = Instrument(
            id=f"{getattr(dividend.instrument, 'id', '?')}/{getattr(divisor.instrument, 'id', '?')}",
            type=InstrumentType.RATIO,
            dividend=dividend.instrument,
            divisor=divisor.instrument,
        )

    ratios: List[Quotation] = []
    for quotation in dividend:
        reference = divisor.quotation_of_date(quotation.date)
        if reference is None or not reference.close:
            continue
        ratios.append(Quotation(
            instrument=instrument,
            date=quotation.date,
            open=_ratio(quotation.open, reference.open),
            high=_ratio(quotation.high, reference.high),
            low=_ratio(quotation.low, reference.low),
            close=_ratio(quotation.close, reference.close),
            volume=0,
        ))
    logger.debug("Ratio %s: %d of %d dates", instrument, len(ratios), len(dividend))
    return QuotationSeries(ratios, instrument)


def _ratio(value: float, reference: float) -> float:
    if not reference:
        return 0.0
    return round_half_up(value / reference, AVERAGE_PRICE_DECIMALS)


def composite_series(members: Iterable[QuotationSeries], instrument: Instrument) -> QuotationSeries:
    """
    Average the members' OHLC prices (3 decimals) and volumes (integer) per date.
    Each date averages only the members quoted on that date.
    """
    frames = [member.frame for member in members if len(member)]
    if not frames:
        return QuotationSeries([], instrument)
    averaged = pd.concat(frames).groupby(level=0)[OHLCV_COLUMNS].mean().sort_index()
    quotations = [
        Quotation(
            instrument=instrument,
            date=to_date(ts),
            open=round_half_up(row["Open"], AVERAGE_PRICE_DECIMALS),
            high=round_half_up(row["High"], AVERAGE_PRICE_DECIMALS),
            low=round_half_up(row["Low"], AVERAGE_PRICE_DECIMALS),
            close=round_half_up(row["Close"], AVERAGE_PRICE_DECIMALS),
            volume=round_half_up_int(row["Volume"]),
        )
        for ts, row in averaged.iterrows()
    ]
    return QuotationSeries(quotations, instrument)
