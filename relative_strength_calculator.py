"""
Relative strength: percentile ranking of a universe of quotations by one scalar metric,
and propagation of sector / industry-group ranks to their member stocks.

Ranking needs a complete snapshot of the universe. Run it only after the indicators of
every member have been computed.
"""
from collections import defaultdict
from decimal import Decimal
from typing import Callable, Dict, Iterable, List, Optional

from config import MAX_PERCENTILE_RANK, MIN_PERCENTILE_RANK
from logger_config import get_logger
from models import InstrumentType, Quotation, RelativeStrengthData
from number_utils import round_half_up_int

logger = get_logger(__name__)

MetricGetter = Callable[[Quotation], Optional[float]]
RankSetter = Callable[[Quotation, int], None]


def percentile_for_position(position: int, count: int) -> int:
    """
    Percentile of the member at 1-based descending position out of count members:
    round((count - position + 1) / count * 100), HALF_UP, kept within [1, 100].
    """
    value = round_half_up_int(Decimal(count - position + 1) * 100 / Decimal(count))
    return max(MIN_PERCENTILE_RANK, min(MAX_PERCENTILE_RANK, value))


def calculate_percentile_ranks(
    quotations: Iterable[Quotation],
    metric: MetricGetter,
    assign: RankSetter,
) -> List[Quotation]:
    """
    Rank quotations descending by metric and assign each its percentile.

    Quotations whose metric is None are left out. Equal metrics keep their incoming
    order (stable sort). Returns the ranked quotations, highest first.
    """
    ranked = [q for q in quotations if metric(q) is not None]
    ranked.sort(key=metric, reverse=True)
    count = len(ranked)
    for position, quotation in enumerate(ranked, start=1):
        assign(quotation, percentile_for_position(position, count))
    return ranked


def _rs_data(quotation: Quotation) -> RelativeStrengthData:
    if quotation.relative_strength_data is None:
        quotation.relative_strength_data = RelativeStrengthData()
    return quotation.relative_strength_data


def _momentum(quotation: Quotation) -> Optional[float]:
    rs_data = quotation.relative_strength_data
    return None if rs_data is None else rs_data.rs_percent_sum


def _indicator_metric(name: str) -> MetricGetter:
    def getter(quotation: Quotation) -> Optional[float]:
        if quotation.indicator is None:
            return None
        return getattr(quotation.indicator, name)
    return getter


def _rank_setter(name: str) -> RankSetter:
    def setter(quotation: Quotation, rank: int) -> None:
        setattr(_rs_data(quotation), name, rank)
    return setter


# metric name -> (value getter, RS number field)
RANKING_METRICS: Dict[str, tuple] = {
    "momentum": (_momentum, "rs_number"),
    "distance_to_52_week_high": (_indicator_metric("distance_to_52_week_high"), "rs_number_distance_52_week_high"),
    "acc_dis_ratio": (_indicator_metric("acc_dis_ratio_63_days"), "rs_number_acc_dis_ratio"),
    "up_down_volume_ratio": (_indicator_metric("up_down_volume_ratio"), "rs_number_up_down_volume_ratio"),
}


def rank_by_metric(quotations: Iterable[Quotation], metric_name: str) -> List[Quotation]:
    """Rank quotations by one of RANKING_METRICS."""
    getter, field_name = RANKING_METRICS[metric_name]
    return calculate_percentile_ranks(quotations, getter, _rank_setter(field_name))


def rank_universe(quotations: Iterable[Quotation]) -> None:
    """Run every ranking metric over one universe (e.g. all stocks, or all sectors)."""
    universe = list(quotations)
    for metric_name in RANKING_METRICS:
        rank_by_metric(universe, metric_name)
    logger.debug("Ranked universe of %d quotations", len(universe))


def _index_by_instrument(quotations: Iterable[Quotation]) -> Dict[object, List[Quotation]]:
    grouped: Dict[object, List[Quotation]] = defaultdict(list)
    for quotation in quotations:
        grouped[quotation.instrument.id].append(quotation)
    return grouped


def _composite_rank(quotation: Quotation, reference, candidates: Dict[object, List[Quotation]]) -> Optional[int]:
    """RS number of the only same-day quotation of reference; None if missing or ambiguous."""
    if reference is None:
        return None
    matches = candidates.get(reference.id, [])
    if len(matches) != 1:
        return None
    match = matches[0]
    if match.date != quotation.date or match.relative_strength_data is None:
        return None
    return match.relative_strength_data.rs_number


def enrich_composite_ranks(
    quotations: Iterable[Quotation],
    sector_quotations: Iterable[Quotation],
    industry_group_quotations: Iterable[Quotation],
) -> None:
    """
    Copy the RS number of each stock's sector and industry group onto the stock.

    Only done when exactly one quotation of the sector / group is present and it has
    the same date as the stock quotation; otherwise the field is left unchanged.
    """
    sectors = _index_by_instrument(sector_quotations)
    industry_groups = _index_by_instrument(industry_group_quotations)
    for quotation in quotations:
        if quotation.instrument.type != InstrumentType.STOCK:
            continue
        sector_rank = _composite_rank(quotation, quotation.instrument.sector, sectors)
        if sector_rank is not None:
            _rs_data(quotation).rs_number_sector = sector_rank
        group_rank = _composite_rank(quotation, quotation.instrument.industry_group, industry_groups)
        if group_rank is not None:
            _rs_data(quotation).rs_number_industry_group = group_rank
