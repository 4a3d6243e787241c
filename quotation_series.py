"""
Date-sorted view over one instrument's quotations.

The series is the input window of every calculator. Quotations are kept oldest
first; a "window of N days at target" is the N most recent quotations at or before
the target date, inclusive. The OHLCV DataFrame is built lazily and cached.
"""
from bisect import bisect_left, bisect_right
from datetime import date
from typing import Iterable, Iterator, List, Optional, Union

import pandas as pd

from config import WEEKLY_RESAMPLE_RULE
from models import Instrument, Quotation, to_date
from validators import ValidationError

OHLCV_COLUMNS = ["Open", "High", "Low", "Close", "Volume"]

Target = Union[Quotation, date]


class QuotationSeries:
    """Read-mostly, date-sorted materialization of one instrument's history."""

    def __init__(self, quotations: Iterable[Quotation], instrument: Optional[Instrument] = None):
        self._quotations: List[Quotation] = sorted(quotations, key=lambda q: q.date)
        self._dates: List[date] = [q.date for q in self._quotations]
        for previous, current in zip(self._dates, self._dates[1:]):
            if previous == current:
                raise ValidationError(f"Duplicate quotation date {current.isoformat()}")
        if instrument is None and self._quotations:
            instrument = self._quotations[0].instrument
        self.instrument = instrument
        self._frame: Optional[pd.DataFrame] = None

    @classmethod
    def from_dataframe(cls, instrument: Instrument, df: pd.DataFrame) -> "QuotationSeries":
        """
        Build a series from an OHLCV DataFrame with a DatetimeIndex
        (columns Open, High, Low, Close, Volume).
        """
        quotations = []
        if df is not None and not df.empty:
            clean = df.dropna(subset=["Close"])
            for ts, row in clean.iterrows():
                quotations.append(Quotation(
                    instrument=instrument,
                    date=to_date(ts),
                    open=float(row["Open"]),
                    high=float(row["High"]),
                    low=float(row["Low"]),
                    close=float(row["Close"]),
                    volume=int(row["Volume"]) if pd.notna(row["Volume"]) else 0,
                ))
        return cls(quotations, instrument)

    def __len__(self) -> int:
        return len(self._quotations)

    def __iter__(self) -> Iterator[Quotation]:
        return iter(self._quotations)

    def __getitem__(self, item):
        return self._quotations[item]

    @property
    def quotations(self) -> List[Quotation]:
        return list(self._quotations)

    @property
    def newest(self) -> Optional[Quotation]:
        return self._quotations[-1] if self._quotations else None

    @property
    def oldest(self) -> Optional[Quotation]:
        return self._quotations[0] if self._quotations else None

    @property
    def frame(self) -> pd.DataFrame:
        """OHLCV DataFrame indexed by trading date (oldest first)."""
        if self._frame is None:
            self._frame = pd.DataFrame(
                {
                    "Open": [q.open for q in self._quotations],
                    "High": [q.high for q in self._quotations],
                    "Low": [q.low for q in self._quotations],
                    "Close": [q.close for q in self._quotations],
                    "Volume": [q.volume for q in self._quotations],
                },
                index=pd.DatetimeIndex(pd.to_datetime(self._dates), name="Date"),
                columns=OHLCV_COLUMNS,
            )
        return self._frame

    def position_of(self, target: Target) -> int:
        """Index of the newest quotation at or before target; -1 if there is none."""
        target_date = target.date if isinstance(target, Quotation) else to_date(target)
        return bisect_right(self._dates, target_date) - 1

    def count_until(self, target: Target) -> int:
        """Number of quotations at or before target."""
        return self.position_of(target) + 1

    def quotation_at_or_before(self, target: Target) -> Optional[Quotation]:
        position = self.position_of(target)
        return self._quotations[position] if position >= 0 else None

    def quotation_of_date(self, day) -> Optional[Quotation]:
        """Quotation with exactly this trading date, if any."""
        day = to_date(day)
        position = bisect_left(self._dates, day)
        if position < len(self._dates) and self._dates[position] == day:
            return self._quotations[position]
        return None

    def first_at_or_after(self, day) -> Optional[Quotation]:
        """Oldest quotation dated on or after day, if any."""
        position = bisect_left(self._dates, to_date(day))
        return self._quotations[position] if position < len(self._quotations) else None

    def offset(self, target: Target, days_back: int) -> Optional[Quotation]:
        """Quotation `days_back` trading days before target (0 = target itself)."""
        position = self.position_of(target) - days_back
        if days_back < 0 or position < 0:
            return None
        return self._quotations[position]

    def window(self, days: int, target: Target) -> List[Quotation]:
        """The `days` most recent quotations at or before target; empty if fewer exist."""
        position = self.position_of(target)
        if days <= 0 or position + 1 < days:
            return []
        return self._quotations[position - days + 1:position + 1]

    def frame_window(self, days: int, target: Target) -> pd.DataFrame:
        """DataFrame rows of window(days, target); empty frame if fewer exist."""
        position = self.position_of(target)
        if days <= 0 or position + 1 < days:
            return self.frame.iloc[0:0]
        return self.frame.iloc[position - days + 1:position + 1]

    def frame_until(self, target: Target, max_days: Optional[int] = None) -> pd.DataFrame:
        """All rows at or before target, optionally limited to the last max_days rows."""
        position = self.position_of(target)
        start = 0 if max_days is None else max(0, position + 1 - max_days)
        return self.frame.iloc[start:position + 1]

    def until(self, target: Target) -> "QuotationSeries":
        """New series holding the quotations at or before target."""
        return QuotationSeries(self._quotations[:self.position_of(target) + 1], self.instrument)

    def weekly(self, target: Optional[Target] = None) -> "QuotationSeries":
        """
        Weekly bars up to target (default: all). Open first, High max, Low min,
        Close last, Volume sum; each bar is dated on the last trading day of its week.
        """
        frame = self.frame if target is None else self.frame_until(target)
        if frame.empty:
            return QuotationSeries([], self.instrument)
        with_dates = frame.assign(TradeDate=frame.index)
        weekly = with_dates.resample(WEEKLY_RESAMPLE_RULE).agg({
            "Open": "first",
            "High": "max",
            "Low": "min",
            "Close": "last",
            "Volume": "sum",
            "TradeDate": "last",
        }).dropna(subset=["Close"])
        quotations = [
            Quotation(
                instrument=self.instrument,
                date=to_date(row["TradeDate"]),
                open=float(row["Open"]),
                high=float(row["High"]),
                low=float(row["Low"]),
                close=float(row["Close"]),
                volume=int(row["Volume"]),
            )
            for _, row in weekly.iterrows()
        ]
        return QuotationSeries(quotations, self.instrument)
