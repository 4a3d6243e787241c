"""
Domain model: instruments, quotations and the indicator records computed for them.

Indicator, MovingAverageData and RelativeStrengthData are derived attachments of a
Quotation. They are always (re)computed by the calculators; numeric fields default
to a neutral zero when not enough history exists.
"""
from dataclasses import dataclass, replace
from datetime import date, datetime
from enum import Enum
from typing import Optional, Union

import pandas as pd

InstrumentId = Union[int, str]


class InstrumentType(Enum):
    """Kind of tradable or synthetic instrument."""
    STOCK = "STOCK"
    ETF = "ETF"
    SECTOR = "SECTOR"
    IND_GROUP = "IND_GROUP"
    RATIO = "RATIO"


@dataclass(eq=False)
class Instrument:
    """
    A tradable instrument or a synthetic ratio of two instruments.

    Non-RATIO instruments are identified by symbol and exchange. RATIO instruments
    reference a dividend and a divisor instead. Use validators.validate_instrument()
    for the type-dependent rules.
    """
    id: InstrumentId
    type: InstrumentType
    symbol: Optional[str] = None
    exchange: Optional[str] = None
    name: Optional[str] = None
    sector: Optional["Instrument"] = None
    industry_group: Optional["Instrument"] = None
    dividend: Optional["Instrument"] = None
    divisor: Optional["Instrument"] = None

    def __repr__(self) -> str:
        label = self.symbol or self.name or self.id
        return f"Instrument({self.type.value}:{label})"


@dataclass
class MovingAverageData:
    """Moving averages of one quotation (historical pass)."""
    sma_10: float = 0.0
    sma_20: float = 0.0
    sma_50: float = 0.0
    sma_150: float = 0.0
    sma_200: float = 0.0
    ema_10: float = 0.0
    ema_21: float = 0.0
    sma_30_volume: int = 0


@dataclass
class RelativeStrengthData:
    """
    Momentum score and the percentile ranks (RS numbers) derived from it and other metrics.

    rs_percent_sum stays None until a momentum score is computed; such quotations are
    left out of momentum ranking.
    """
    rs_percent_sum: Optional[float] = None
    rs_number: int = 0
    rs_number_distance_52_week_high: int = 0
    rs_number_acc_dis_ratio: int = 0
    rs_number_up_down_volume_ratio: int = 0
    rs_number_sector: int = 0
    rs_number_industry_group: int = 0


@dataclass
class Indicator:
    """Indicators of the most recent quotation of an instrument (full pass)."""
    distance_to_52_week_high: float = 0.0
    distance_to_52_week_low: float = 0.0
    bollinger_band_width_10_days: float = 0.0
    bollinger_band_width_10_weeks: float = 0.0
    bbw_10_days_threshold_25: float = 0.0
    volume_differential_5_days: float = 0.0
    base_length_weeks: int = 0
    up_down_volume_ratio: float = 0.0
    acc_dis_ratio_30_days: float = 0.0
    acc_dis_ratio_63_days: float = 0.0
    performance_5_days: float = 0.0
    liquidity_20_days: float = 0.0
    atrp_20_days: float = 0.0
    slow_stochastic_14_days: float = 0.0


def to_date(value) -> date:
    """Normalize a date, datetime, pandas Timestamp or ISO string to a date."""
    if isinstance(value, pd.Timestamp):
        return value.date()
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return pd.Timestamp(value).date()


@dataclass(eq=False)
class Quotation:
    """One instrument's OHLCV record for a single trading date."""
    instrument: Instrument
    date: date
    open: float
    high: float
    low: float
    close: float
    volume: int
    id: Optional[InstrumentId] = None
    indicator: Optional[Indicator] = None
    moving_average_data: Optional[MovingAverageData] = None
    relative_strength_data: Optional[RelativeStrengthData] = None

    def __post_init__(self):
        self.date = to_date(self.date)
        self.volume = int(self.volume)

    def detached_copy(self) -> "Quotation":
        """Copy whose indicator and relative strength records can be changed without touching this one."""
        return replace(
            self,
            indicator=replace(self.indicator) if self.indicator is not None else None,
            relative_strength_data=(
                replace(self.relative_strength_data) if self.relative_strength_data is not None else None
            ),
        )

    def __repr__(self) -> str:
        return f"Quotation({self.instrument!r}, {self.date.isoformat()}, close={self.close})"
