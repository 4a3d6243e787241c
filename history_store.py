"""
JSON cache of instruments and their quotation histories, and the provider the scan
engine reads from.

Cache layout (data/quotation_history.json):
{
  "metadata": {...},
  "instruments": {
    "<id>": {
      "symbol": "AAPL", "exchange": "NYSE", "type": "STOCK", "name": "...",
      "sector_id": "<id>", "industry_group_id": "<id>",      # optional
      "dividend_id": "<id>", "divisor_id": "<id>",            # RATIO only
      "historical_data": {"index": ["2024-01-02", ...], "data": [{"Open": ..., "Close": ...}, ...]}
    }
  }
}
"""
import json
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import pandas as pd

from config import HISTORY_CACHE_FILE
from logger_config import get_logger
from models import Instrument, InstrumentType, Quotation
from quotation_series import OHLCV_COLUMNS, QuotationSeries
from validators import ValidationError, validate_instrument

logger = get_logger(__name__)

REFERENCE_FIELDS = {
    "sector_id": "sector",
    "industry_group_id": "industry_group",
    "dividend_id": "dividend",
    "divisor_id": "divisor",
}


def load_history_cache(path: Optional[Path] = None) -> Optional[Dict[str, Any]]:
    """
    Load the history cache.
    Returns None if the file is missing or invalid; otherwise the dict with 'instruments' and 'metadata'.
    """
    path = Path(path) if path is not None else HISTORY_CACHE_FILE
    if not path.exists():
        return None
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            logger.debug("Cache file content is not a dict")
            return None
        return data
    except Exception as e:
        logger.debug("Failed to load cache from %s: %s", path, e, exc_info=True)
        return None


def save_history_cache(data: Dict[str, Any], path: Optional[Path] = None) -> None:
    """Write the history cache. Raises on write error."""
    path = Path(path) if path is not None else HISTORY_CACHE_FILE
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, default=str)


def convert_cached_data_to_dataframe(cached_instrument: Dict) -> Optional[pd.DataFrame]:
    """Convert one cached 'historical_data' block to an OHLCV DataFrame; None if unusable."""
    try:
        hist_dict = cached_instrument.get("historical_data", {})
        if not hist_dict or "data" not in hist_dict:
            return None
        df = pd.DataFrame(hist_dict["data"])
        if "index" in hist_dict and hist_dict["index"]:
            df.index = pd.to_datetime(hist_dict["index"])
        elif "Date" in df.columns:
            df.index = pd.to_datetime(df["Date"])
            df = df.drop("Date", axis=1)
        else:
            return None
        df.columns = [col.capitalize() if col.lower() in ["open", "high", "low", "close", "volume"] else col
                      for col in df.columns]
        if any(c not in df.columns for c in OHLCV_COLUMNS):
            return None
        return df[OHLCV_COLUMNS].sort_index()
    except Exception as e:
        logger.debug("Convert cached to DataFrame failed: %s", e)
        return None


def series_to_cache_entry(series: QuotationSeries) -> Dict[str, Any]:
    """'historical_data' block for a series (inverse of convert_cached_data_to_dataframe)."""
    return {
        "index": [q.date.isoformat() for q in series],
        "data": [
            {"Open": q.open, "High": q.high, "Low": q.low, "Close": q.close, "Volume": q.volume}
            for q in series
        ],
    }


def build_instruments(cached_instruments: Dict[str, Dict]) -> Dict[str, Instrument]:
    """
    Create Instrument objects and resolve their references.
    Instruments failing validation are logged and left out.
    """
    instruments: Dict[str, Instrument] = {}
    for instrument_id, entry in cached_instruments.items():
        try:
            instrument_type = InstrumentType(str(entry.get("type", "STOCK")).upper())
        except ValueError:
            logger.warning("Instrument %s: unknown type %r", instrument_id, entry.get("type"))
            continue
        instruments[instrument_id] = Instrument(
            id=instrument_id,
            type=instrument_type,
            symbol=entry.get("symbol"),
            exchange=entry.get("exchange"),
            name=entry.get("name"),
        )

    for instrument_id, instrument in list(instruments.items()):
        entry = cached_instruments[instrument_id]
        for key, attribute in REFERENCE_FIELDS.items():
            reference_id = entry.get(key)
            if reference_id is None:
                continue
            reference = instruments.get(str(reference_id))
            if reference is None:
                logger.warning("Instrument %s: unknown %s %s", instrument_id, attribute, reference_id)
                continue
            setattr(instrument, attribute, reference)

    valid: Dict[str, Instrument] = {}
    for instrument_id, instrument in instruments.items():
        try:
            validate_instrument(instrument)
        except ValidationError as e:
            logger.warning("Instrument %s invalid: %s", instrument_id, e)
            continue
        valid[instrument_id] = instrument
    return valid


class CachedHistoryProvider:
    """
    History and recent-quotation provider backed by the JSON cache.

    Series are materialized once, so indicator records attached to their quotations
    (e.g. by indicator_calculation.calculate_universe) are visible to later callers.
    """

    def __init__(self, cached_instruments: Dict[str, Dict]):
        self.cached_instruments = cached_instruments
        self.instruments = build_instruments(cached_instruments)
        self._series: Dict[str, QuotationSeries] = {}

    @classmethod
    def from_file(cls, path: Optional[Path] = None) -> Optional["CachedHistoryProvider"]:
        data = load_history_cache(path)
        if not data or not data.get("instruments"):
            return None
        return cls(data["instruments"])

    def get_history(self, instrument) -> QuotationSeries:
        """Full history of an instrument (or instrument id). Raises KeyError if unknown."""
        instrument_id = str(getattr(instrument, "id", instrument))
        if instrument_id not in self.instruments:
            raise KeyError(f"No history for instrument {instrument_id}")
        if instrument_id not in self._series:
            df = convert_cached_data_to_dataframe(self.cached_instruments[instrument_id])
            self._series[instrument_id] = QuotationSeries.from_dataframe(self.instruments[instrument_id], df)
        return self._series[instrument_id]

    def all_series(self, instrument_type: Optional[InstrumentType] = None) -> List[QuotationSeries]:
        return [
            self.get_history(instrument)
            for instrument in self.instruments.values()
            if instrument_type is None or instrument.type == instrument_type
        ]

    def get_recent_quotations(
        self,
        instrument_type: Optional[InstrumentType] = None,
        instrument_ids: Optional[Iterable] = None,
        template=None,
    ) -> List[Quotation]:
        """
        Most recent quotation per instrument, for one instrument type or an explicit set.
        The cache applies no template pre-filter; every instrument with history is returned.
        """
        if instrument_ids is not None:
            wanted = [str(i) for i in instrument_ids]
            selected = [self.instruments[i] for i in wanted if i in self.instruments]
        else:
            selected = [i for i in self.instruments.values()
                        if instrument_type is None or i.type == instrument_type]
        recent = []
        for instrument in selected:
            newest = self.get_history(instrument).newest
            if newest is not None:
                recent.append(newest)
        return recent
