"""
Scan templates and their refiners.

Candidates arrive pre-filtered by coarse indicator thresholds (one most recent
quotation per instrument). A template may register a refiner that applies the finer,
pattern-specific rules, often on the instrument's full history. Templates without a
refiner pass their candidates through unchanged.

Refiners never mutate the candidate sequence they receive; each returns a
RefinementResult holding a new tuple.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

from config import (
    BUYABLE_BASE_ATRP_MULTIPLIER,
    HIGH_TIGHT_FLAG_LOOKBACK_DAYS,
    HIGH_TIGHT_FLAG_MIN_PERFORMANCE_PCT,
    MA_CONVERGENCE_ATRP_MULTIPLIER,
    REFINEMENT_FAILURE_POLICY,
    RS_LINE_MAX_DISTANCE_TO_HIGH_PCT,
    SWING_SMA_PERIODS,
    THREE_WEEKS_TIGHT_TOLERANCE_PCT,
    THREE_WEEKS_TIGHT_WEEKS,
)
from indicator_calculator import distance_to_52_week_high
from logger_config import get_logger
from models import Quotation, RelativeStrengthData
from moving_average_calculator import simple_moving_average
from performance_calculator import performance
from quotation_series import QuotationSeries
from ratio_calculator import calculate_ratio_series
from relative_strength_calculator import rank_universe
from validators import ValidationError

logger = get_logger(__name__)

FAILURE_POLICY_ABORT = "abort"
FAILURE_POLICY_SKIP = "skip"
FAILURE_POLICIES = (FAILURE_POLICY_ABORT, FAILURE_POLICY_SKIP)


class ScanTemplate(Enum):
    """Named rule sets for trading setups."""
    ALL = "ALL"
    MINERVINI_TREND_TEMPLATE = "MINERVINI_TREND_TEMPLATE"
    CONSOLIDATION_10_WEEKS = "CONSOLIDATION_10_WEEKS"
    CONSOLIDATION_10_DAYS = "CONSOLIDATION_10_DAYS"
    BREAKOUT_CANDIDATES = "BREAKOUT_CANDIDATES"
    UP_ON_VOLUME = "UP_ON_VOLUME"
    DOWN_ON_VOLUME = "DOWN_ON_VOLUME"
    NEAR_52_WEEK_HIGH = "NEAR_52_WEEK_HIGH"
    NEAR_52_WEEK_LOW = "NEAR_52_WEEK_LOW"
    RS_SINCE_DATE = "RS_SINCE_DATE"
    THREE_WEEKS_TIGHT = "THREE_WEEKS_TIGHT"
    HIGH_TIGHT_FLAG = "HIGH_TIGHT_FLAG"
    SWING_TRADING_ENVIRONMENT = "SWING_TRADING_ENVIRONMENT"
    RS_NEAR_HIGH_IG = "RS_NEAR_HIGH_IG"
    BUYABLE_BASE = "BUYABLE_BASE"
    MA_PRICE_CONVERGENCE = "MA_PRICE_CONVERGENCE"

    @classmethod
    def from_name(cls, name) -> "ScanTemplate":
        """Look up a template by name (case-insensitive); raise ValidationError if unknown."""
        if isinstance(name, cls):
            return name
        try:
            return cls[str(name).strip().upper()]
        except KeyError:
            raise ValidationError(f"Unknown scan template: {name!r}") from None


class RefinementStatus(Enum):
    PASS_THROUGH = "PASS_THROUGH"  # no refiner registered
    REFINED = "REFINED"
    FAILED = "FAILED"


@dataclass(frozen=True)
class RefinementResult:
    """Outcome of one template refinement."""
    status: RefinementStatus
    candidates: Tuple[Quotation, ...] = ()
    skipped: Tuple[object, ...] = ()
    error: Optional[BaseException] = None

    @classmethod
    def pass_through(cls, candidates: Sequence[Quotation]) -> "RefinementResult":
        return cls(RefinementStatus.PASS_THROUGH, tuple(candidates))

    @classmethod
    def refined(cls, candidates: Sequence[Quotation], skipped: Sequence[object] = ()) -> "RefinementResult":
        return cls(RefinementStatus.REFINED, tuple(candidates), tuple(skipped))

    @classmethod
    def failed(cls, error: BaseException, skipped: Sequence[object] = ()) -> "RefinementResult":
        return cls(RefinementStatus.FAILED, (), tuple(skipped), error)

    @property
    def ok(self) -> bool:
        return self.status != RefinementStatus.FAILED


class RefinementFailure(Exception):
    """A template refinement could not be completed; the evaluation is aborted."""

    def __init__(self, template: "ScanTemplate", message: str):
        super().__init__(f"{template.value}: {message}")
        self.template = template


@dataclass
class ScanContext:
    """
    Parameters shared by the refiners of one evaluation.

    history_provider must offer get_history(instrument) -> QuotationSeries with the
    instrument's full chronological history; it may raise on retrieval errors.
    """
    history_provider: object
    start_date: Optional[date] = None
    failure_policy: str = REFINEMENT_FAILURE_POLICY

    def __post_init__(self):
        if self.failure_policy not in FAILURE_POLICIES:
            raise ValidationError(f"Unknown refinement failure policy: {self.failure_policy!r}")

    def history(self, instrument) -> QuotationSeries:
        return self.history_provider.get_history(instrument)


class TemplateRefiner(ABC):
    """
    Base strategy: refine(candidates, context) -> RefinementResult.

    Subclasses needing the full history implement accepts(candidate, series, context).
    Retrieval or evaluation errors for one candidate either fail the whole refinement
    or skip that candidate, depending on context.failure_policy.
    """
    template: ScanTemplate = None

    def refine(self, candidates: Sequence[Quotation], context: ScanContext) -> RefinementResult:
        kept: List[Quotation] = []
        skipped: List[object] = []
        for candidate in candidates:
            try:
                series = context.history(candidate.instrument)
                accepted = self.accepts(candidate, series, context)
            except Exception as e:
                if context.failure_policy == FAILURE_POLICY_SKIP:
                    logger.warning("%s: skipping %s: %s", self.template.value, candidate.instrument, e)
                    skipped.append(candidate.instrument.id)
                    continue
                logger.error("%s: refinement failed for %s", self.template.value,
                             candidate.instrument, exc_info=True)
                return RefinementResult.failed(e, skipped)
            if accepted:
                kept.append(candidate)
        return self.finish(kept, skipped, context)

    @abstractmethod
    def accepts(self, candidate: Quotation, series: QuotationSeries, context: ScanContext) -> bool:
        """True if candidate matches the template, given its full history up to now."""

    def finish(self, kept: List[Quotation], skipped: List[object], context: ScanContext) -> RefinementResult:
        return RefinementResult.refined(kept, skipped)


class IndicatorFilterRefiner(TemplateRefiner):
    """Refiner working only on the candidates' attached indicator data (no history fetch)."""

    def refine(self, candidates: Sequence[Quotation], context: ScanContext) -> RefinementResult:
        return RefinementResult.refined([c for c in candidates if self.keep(c)])

    def accepts(self, candidate: Quotation, series: QuotationSeries, context: ScanContext) -> bool:
        return self.keep(candidate)

    @abstractmethod
    def keep(self, candidate: Quotation) -> bool:
        """True if candidate passes the filter."""


# ============================================================================
# REGISTRY
# ============================================================================

TEMPLATE_REFINERS: Dict[ScanTemplate, TemplateRefiner] = {}


def register_refiner(cls):
    """Class decorator: register one instance of cls for cls.template."""
    TEMPLATE_REFINERS[cls.template] = cls()
    return cls


def get_refiner(template: ScanTemplate) -> Optional[TemplateRefiner]:
    return TEMPLATE_REFINERS.get(template)


def refine_candidates(
    template: ScanTemplate,
    candidates: Sequence[Quotation],
    context: ScanContext,
) -> RefinementResult:
    """Dispatch to the registered refiner; templates without one pass through."""
    refiner = get_refiner(template)
    if refiner is None:
        return RefinementResult.pass_through(candidates)
    return refiner.refine(candidates, context)


# ============================================================================
# REFINERS
# ============================================================================

def _newest_at(candidate: Quotation, series: QuotationSeries) -> Optional[Quotation]:
    return series.quotation_at_or_before(candidate.date)


@register_refiner
class RankSinceDateRefiner(TemplateRefiner):
    """Momentum = performance since the start date; candidates are re-ranked against each other."""
    template = ScanTemplate.RS_SINCE_DATE

    def refine(self, candidates: Sequence[Quotation], context: ScanContext) -> RefinementResult:
        if context.start_date is None:
            raise ValidationError("Start date is required for template RS_SINCE_DATE")
        return super().refine(candidates, context)

    def accepts(self, candidate: Quotation, series: QuotationSeries, context: ScanContext) -> bool:
        start = series.first_at_or_after(context.start_date)
        current = _newest_at(candidate, series)
        if start is None or current is None:
            raise LookupError(f"No quotation of {candidate.instrument} on or after {context.start_date}")
        if candidate.relative_strength_data is None:
            candidate.relative_strength_data = RelativeStrengthData()
        candidate.relative_strength_data.rs_percent_sum = performance(current, start)
        return True

    def finish(self, kept: List[Quotation], skipped: List[object], context: ScanContext) -> RefinementResult:
        rank_universe(kept)
        return RefinementResult.refined(kept, skipped)


@register_refiner
class ThreeWeeksTightRefiner(TemplateRefiner):
    """Last 3 weekly closes within +/-1.5% of the most recent weekly close."""
    template = ScanTemplate.THREE_WEEKS_TIGHT

    def accepts(self, candidate: Quotation, series: QuotationSeries, context: ScanContext) -> bool:
        weekly = series.weekly(candidate.date)
        if len(weekly) < THREE_WEEKS_TIGHT_WEEKS:
            return False
        return is_three_weeks_tight([q.close for q in weekly[-THREE_WEEKS_TIGHT_WEEKS:]])


def is_three_weeks_tight(weekly_closes: Sequence[float]) -> bool:
    """weekly_closes oldest first; all must lie in [close0 * 0.985, close0 * 1.015], close0 = newest."""
    if len(weekly_closes) < THREE_WEEKS_TIGHT_WEEKS:
        return False
    newest = weekly_closes[-1]
    lower = newest * (1 - THREE_WEEKS_TIGHT_TOLERANCE_PCT / 100)
    upper = newest * (1 + THREE_WEEKS_TIGHT_TOLERANCE_PCT / 100)
    return all(lower <= close <= upper for close in weekly_closes[-THREE_WEEKS_TIGHT_WEEKS:])


@register_refiner
class HighTightFlagRefiner(TemplateRefiner):
    """Advance of at least 75% over the last 70 trading days."""
    template = ScanTemplate.HIGH_TIGHT_FLAG

    def accepts(self, candidate: Quotation, series: QuotationSeries, context: ScanContext) -> bool:
        if series.count_until(candidate.date) < HIGH_TIGHT_FLAG_LOOKBACK_DAYS + 1:
            return False
        current = _newest_at(candidate, series)
        reference = series.offset(candidate.date, HIGH_TIGHT_FLAG_LOOKBACK_DAYS)
        return performance(current, reference) >= HIGH_TIGHT_FLAG_MIN_PERFORMANCE_PCT


@register_refiner
class SwingTradingEnvironmentRefiner(TemplateRefiner):
    """SMA(10) and SMA(20) both higher than one trading day earlier."""
    template = ScanTemplate.SWING_TRADING_ENVIRONMENT

    def accepts(self, candidate: Quotation, series: QuotationSeries, context: ScanContext) -> bool:
        current = _newest_at(candidate, series)
        previous = series.offset(candidate.date, 1)
        if current is None or previous is None:
            return False
        for days in SWING_SMA_PERIODS:
            previous_sma = simple_moving_average(days, previous, series)
            if previous_sma == 0:
                return False
            if simple_moving_average(days, current, series) <= previous_sma:
                return False
        return True


@register_refiner
class RsNearHighIndustryGroupRefiner(TemplateRefiner):
    """RS line of the stock against its industry group within 5% of its 52 week high."""
    template = ScanTemplate.RS_NEAR_HIGH_IG

    def accepts(self, candidate: Quotation, series: QuotationSeries, context: ScanContext) -> bool:
        industry_group = candidate.instrument.industry_group
        if industry_group is None:
            raise LookupError(f"{candidate.instrument} has no industry group")
        rs_line = calculate_ratio_series(series, context.history(industry_group))
        current = rs_line.quotation_at_or_before(candidate.date)
        if current is None:
            return False
        return distance_to_52_week_high(current, rs_line) >= RS_LINE_MAX_DISTANCE_TO_HIGH_PCT


def _ema_21(candidate: Quotation) -> float:
    return candidate.moving_average_data.ema_21 if candidate.moving_average_data else 0.0


def _sma_50(candidate: Quotation) -> float:
    return candidate.moving_average_data.sma_50 if candidate.moving_average_data else 0.0


def _atrp_20(candidate: Quotation) -> float:
    return candidate.indicator.atrp_20_days if candidate.indicator else 0.0


@register_refiner
class BuyableBaseRefiner(IndicatorFilterRefiner):
    """Drop candidates extended above EMA(21) by more than 1.5 ATRP."""
    template = ScanTemplate.BUYABLE_BASE

    def keep(self, candidate: Quotation) -> bool:
        limit = _ema_21(candidate) * (1 + BUYABLE_BASE_ATRP_MULTIPLIER * _atrp_20(candidate) / 100)
        return candidate.close < limit


@register_refiner
class MovingAveragePriceConvergenceRefiner(IndicatorFilterRefiner):
    """Close, EMA(21) and SMA(50) within 2 ATRP of each other."""
    template = ScanTemplate.MA_PRICE_CONVERGENCE

    def keep(self, candidate: Quotation) -> bool:
        values = (candidate.close, _ema_21(candidate), _sma_50(candidate))
        lowest, highest = min(values), max(values)
        if lowest <= 0 or highest <= 0:
            return False
        spread_pct = (highest / lowest - 1) * 100
        return spread_pct <= MA_CONVERGENCE_ATRP_MULTIPLIER * _atrp_20(candidate)
