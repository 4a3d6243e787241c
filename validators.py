"""
Input validation: instrument definitions, symbols and scan parameters.
"""
from datetime import date, datetime
from typing import Optional

from config import ALLOWED_SYMBOL_CHARS, MAX_SYMBOL_LENGTH, START_DATE_FORMAT
from models import Instrument, InstrumentType


class ValidationError(ValueError):
    """Raised when an instrument or a scan parameter is invalid."""


def sanitize_symbol(symbol) -> str:
    """Strip and upper-case a symbol; raise ValidationError if it is not usable."""
    if not isinstance(symbol, str):
        raise ValidationError(f"Symbol must be a string, got {type(symbol).__name__}")
    cleaned = symbol.strip().upper()
    if not cleaned:
        raise ValidationError("Symbol cannot be empty")
    if len(cleaned) > MAX_SYMBOL_LENGTH:
        raise ValidationError(f"Symbol too long (max {MAX_SYMBOL_LENGTH}): {cleaned}")
    if any(c not in ALLOWED_SYMBOL_CHARS for c in cleaned):
        raise ValidationError(f"Symbol contains invalid characters: {cleaned}")
    return cleaned


def validate_instrument(instrument: Instrument) -> None:
    """
    Check the type-dependent rules of an instrument definition.

    - STOCK, ETF, SECTOR and IND_GROUP need symbol and exchange.
    - RATIO needs dividend and divisor and must not define an exchange.
    - Sector / industry-group references must point to the matching type and are
      forbidden on a sector / industry group itself.

    Raises:
        ValidationError: first violated rule
    """
    if instrument.type is None:
        raise ValidationError("Instrument type must be set")

    if instrument.type == InstrumentType.RATIO:
        if instrument.exchange:
            raise ValidationError("Exchange must not be defined on instrument of type RATIO")
        if instrument.dividend is None:
            raise ValidationError("Dividend must be defined on instrument of type RATIO")
        if instrument.divisor is None:
            raise ValidationError("Divisor must be defined on instrument of type RATIO")
        if instrument.dividend is instrument.divisor or instrument.dividend.id == instrument.divisor.id:
            raise ValidationError("Dividend and divisor must be different instruments")
    else:
        if not instrument.symbol:
            raise ValidationError(f"Symbol must be defined on instrument of type {instrument.type.value}")
        sanitize_symbol(instrument.symbol)
        if not instrument.exchange:
            raise ValidationError(f"Exchange must be defined on instrument of type {instrument.type.value}")
        if instrument.dividend is not None or instrument.divisor is not None:
            raise ValidationError("Dividend and divisor may only be defined on instrument of type RATIO")

    if instrument.sector is not None:
        if instrument.type == InstrumentType.SECTOR:
            raise ValidationError("A sector cannot reference another sector")
        if instrument.sector.type != InstrumentType.SECTOR:
            raise ValidationError("Sector reference must point to an instrument of type SECTOR")

    if instrument.industry_group is not None:
        if instrument.type == InstrumentType.IND_GROUP:
            raise ValidationError("An industry group cannot reference another industry group")
        if instrument.industry_group.type != InstrumentType.IND_GROUP:
            raise ValidationError("Industry group reference must point to an instrument of type IND_GROUP")


def parse_start_date(value: Optional[str]) -> Optional[date]:
    """Parse an optional 'yyyy-MM-dd' start date. None and empty strings give None."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        return datetime.strptime(text, START_DATE_FORMAT).date()
    except ValueError as e:
        raise ValidationError(f"Start date must have format yyyy-MM-dd: {value!r}") from e
