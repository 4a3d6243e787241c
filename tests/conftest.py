"""Shared fixtures: instruments and quotation series built from plain price lists."""
from typing import List, Optional, Sequence

import pandas as pd
import pytest

from models import Instrument, InstrumentType, Quotation
from quotation_series import QuotationSeries


def build_instrument(instrument_id="1", symbol="TEST", instrument_type=InstrumentType.STOCK, **kwargs) -> Instrument:
    return Instrument(id=instrument_id, type=instrument_type, symbol=symbol, exchange="NYSE", **kwargs)


def build_series(
    closes: Sequence[float],
    instrument: Optional[Instrument] = None,
    start: str = "2024-01-01",
    freq: str = "B",
    highs: Optional[Sequence[float]] = None,
    lows: Optional[Sequence[float]] = None,
    volumes: Optional[Sequence[int]] = None,
    dates: Optional[Sequence[str]] = None,
) -> QuotationSeries:
    """Series with one quotation per close; business days from start unless dates are given."""
    instrument = instrument or build_instrument()
    if dates is None:
        dates = pd.date_range(start=start, periods=len(closes), freq=freq)
    quotations: List[Quotation] = []
    for i, close in enumerate(closes):
        quotations.append(Quotation(
            instrument=instrument,
            date=dates[i],
            open=close,
            high=highs[i] if highs is not None else close,
            low=lows[i] if lows is not None else close,
            close=close,
            volume=volumes[i] if volumes is not None else 1000,
        ))
    return QuotationSeries(quotations, instrument)


@pytest.fixture
def make_instrument():
    return build_instrument


@pytest.fixture
def make_series():
    return build_series
