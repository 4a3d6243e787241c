"""
Template evaluation entry point.

Pipeline (strictly ordered) over a candidate set of most recent quotations:
1. liquidity filter (skipped without a minimum),
2. composite enrichment of STOCK candidates with same-day sector / industry-group ranks,
3. template-specific refinement via the refiner registry.

Each step returns a new list. Enrichment and re-ranking work on detached copies of the
candidates, so neither the caller's quotations nor a provider's cached ones change and
one evaluation never sees the ranks written by another.
"""
from typing import Iterable, List, Optional, Sequence

from config import REFINEMENT_FAILURE_POLICY
from logger_config import get_logger
from models import InstrumentType, Quotation
from relative_strength_calculator import enrich_composite_ranks
from scan_templates import (
    RefinementFailure,
    RefinementResult,
    RefinementStatus,
    ScanContext,
    ScanTemplate,
    refine_candidates,
)
from validators import ValidationError, parse_start_date

logger = get_logger(__name__)


def filter_by_liquidity(candidates: Sequence[Quotation], min_liquidity: Optional[float]) -> List[Quotation]:
    """Candidates whose 20 day liquidity reaches min_liquidity; all of them if min_liquidity is None."""
    if min_liquidity is None:
        return list(candidates)
    return [
        c for c in candidates
        if c.indicator is not None and c.indicator.liquidity_20_days >= min_liquidity
    ]


class ScanTemplateEngine:
    """
    Applies scan templates to candidate sets.

    Args:
        history_provider: get_history(instrument) -> QuotationSeries
        quotation_provider: get_recent_quotations(instrument_type, instrument_ids, template)
            -> most recent quotation per instrument, with indicator data attached.
            Required for evaluate() and for fetching sector / industry-group quotations.
        failure_policy: "abort" or "skip" (see scan_templates.ScanContext)
    """

    def __init__(self, history_provider, quotation_provider=None, failure_policy: str = REFINEMENT_FAILURE_POLICY):
        self.history_provider = history_provider
        self.quotation_provider = quotation_provider
        self.failure_policy = failure_policy

    def evaluate(
        self,
        template,
        instrument_type: InstrumentType = InstrumentType.STOCK,
        start_date: Optional[str] = None,
        min_liquidity: Optional[float] = None,
        instrument_ids: Optional[Iterable] = None,
    ) -> List[Quotation]:
        """
        Evaluate a template against the provider's candidates.

        Args:
            template: ScanTemplate or its name
            instrument_type: Type of instruments to scan
            start_date: Optional 'yyyy-MM-dd' (required by RS_SINCE_DATE)
            min_liquidity: Optional minimum 20 day liquidity
            instrument_ids: Optional explicit instrument set instead of all of a type

        Returns:
            The filtered / re-ranked candidates

        Raises:
            ValidationError: unknown template, malformed or missing start date
            RefinementFailure: refinement aborted under the "abort" policy
        """
        template = ScanTemplate.from_name(template)
        start = self._validate_start_date(template, start_date)
        if self.quotation_provider is None:
            raise ValidationError("A quotation provider is required to evaluate templates")
        candidates = self.quotation_provider.get_recent_quotations(
            instrument_type, instrument_ids=instrument_ids, template=template)
        logger.info("%s: %d candidates of type %s", template.value, len(candidates), instrument_type.value)
        return self.refine(template, candidates, instrument_type, start, min_liquidity)

    def refine(
        self,
        template,
        candidates: Sequence[Quotation],
        instrument_type: InstrumentType = InstrumentType.STOCK,
        start_date=None,
        min_liquidity: Optional[float] = None,
        sector_quotations: Optional[Sequence[Quotation]] = None,
        industry_group_quotations: Optional[Sequence[Quotation]] = None,
    ) -> List[Quotation]:
        """Run the pipeline on an explicit candidate set and return the remaining candidates."""
        result = self.refine_result(
            template, candidates, instrument_type, start_date, min_liquidity,
            sector_quotations, industry_group_quotations,
        )
        return list(result.candidates)

    def refine_result(
        self,
        template,
        candidates: Sequence[Quotation],
        instrument_type: InstrumentType = InstrumentType.STOCK,
        start_date=None,
        min_liquidity: Optional[float] = None,
        sector_quotations: Optional[Sequence[Quotation]] = None,
        industry_group_quotations: Optional[Sequence[Quotation]] = None,
    ) -> RefinementResult:
        """
        Same as refine() but returns the RefinementResult (status, skipped instruments).
        A FAILED refinement is raised as RefinementFailure, chained to its cause.
        """
        template = ScanTemplate.from_name(template)
        start = self._validate_start_date(template, start_date)

        remaining = [q.detached_copy() for q in filter_by_liquidity(candidates, min_liquidity)]
        if min_liquidity is not None:
            logger.info("%s: %d of %d candidates pass liquidity >= %s",
                        template.value, len(remaining), len(candidates), min_liquidity)

        if instrument_type == InstrumentType.STOCK:
            if sector_quotations is None:
                sector_quotations = self._recent(InstrumentType.SECTOR)
            if industry_group_quotations is None:
                industry_group_quotations = self._recent(InstrumentType.IND_GROUP)
            enrich_composite_ranks(remaining, sector_quotations, industry_group_quotations)

        context = ScanContext(self.history_provider, start, self.failure_policy)
        result = refine_candidates(template, remaining, context)
        if result.status == RefinementStatus.FAILED:
            raise RefinementFailure(template, str(result.error)) from result.error
        if result.skipped:
            logger.warning("%s: skipped %d instruments: %s", template.value, len(result.skipped),
                           ", ".join(str(i) for i in result.skipped))
        logger.info("%s: %s, %d candidates remain", template.value, result.status.value, len(result.candidates))
        return result

    def _recent(self, instrument_type: InstrumentType) -> List[Quotation]:
        if self.quotation_provider is None:
            return []
        return self.quotation_provider.get_recent_quotations(instrument_type)

    @staticmethod
    def _validate_start_date(template: ScanTemplate, start_date):
        start = parse_start_date(start_date)
        if template == ScanTemplate.RS_SINCE_DATE and start is None:
            raise ValidationError("Start date is required for template RS_SINCE_DATE")
        return start
