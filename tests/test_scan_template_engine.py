"""Tests for ScanTemplateEngine (pipeline order, liquidity filter, enrichment, failures)."""
from unittest.mock import MagicMock

import pandas as pd
import pytest

from history_store import CachedHistoryProvider
from indicator_calculation import calculate_universe
from models import Indicator, InstrumentType, Quotation, RelativeStrengthData
from scan_template_engine import ScanTemplateEngine, filter_by_liquidity
from scan_templates import RefinementFailure, RefinementStatus, ScanTemplate
from validators import ValidationError


def _candidate(make_instrument, instrument_id, liquidity=1_000_000.0, day="2024-03-01", **instrument_kwargs):
    q = Quotation(instrument=make_instrument(instrument_id, f"S{instrument_id}", **instrument_kwargs),
                  date=day, open=10.0, high=10.0, low=10.0, close=10.0, volume=100)
    q.indicator = Indicator(liquidity_20_days=liquidity)
    q.relative_strength_data = RelativeStrengthData(rs_percent_sum=1.0)
    return q


def test_filter_by_liquidity_without_minimum_keeps_all(make_instrument):
    candidates = [_candidate(make_instrument, "1", 10.0)]
    result = filter_by_liquidity(candidates, None)
    assert result == candidates
    assert result is not candidates


def test_filter_by_liquidity_drops_illiquid(make_instrument):
    liquid = _candidate(make_instrument, "1", 5_000_000.0)
    illiquid = _candidate(make_instrument, "2", 10_000.0)
    unknown = _candidate(make_instrument, "3")
    unknown.indicator = None
    assert filter_by_liquidity([liquid, illiquid, unknown], 1_000_000) == [liquid]


def test_refine_applies_liquidity_before_template(make_instrument):
    liquid = _candidate(make_instrument, "1", 5_000_000.0)
    illiquid = _candidate(make_instrument, "2", 10_000.0)
    engine = ScanTemplateEngine(MagicMock())
    candidates = [liquid, illiquid]
    result = engine.refine(ScanTemplate.ALL, candidates, InstrumentType.ETF, min_liquidity=1_000_000)
    assert [q.instrument.id for q in result] == ["1"]
    assert candidates == [liquid, illiquid]


def test_refine_enriches_stocks_with_composite_ranks(make_instrument):
    sector = make_instrument("S", "SEC", InstrumentType.SECTOR)
    group = make_instrument("G", "GRP", InstrumentType.IND_GROUP)
    stock = _candidate(make_instrument, "1", sector=sector, industry_group=group)
    sector_quotation = _candidate(make_instrument, "S", instrument_type=InstrumentType.SECTOR)
    sector_quotation.instrument = sector
    sector_quotation.relative_strength_data.rs_number = 88
    group_quotation = _candidate(make_instrument, "G", instrument_type=InstrumentType.IND_GROUP)
    group_quotation.instrument = group
    group_quotation.relative_strength_data.rs_number = 12

    quotation_provider = MagicMock()
    quotation_provider.get_recent_quotations.side_effect = lambda instrument_type, *args, **kwargs: {
        InstrumentType.SECTOR: [sector_quotation],
        InstrumentType.IND_GROUP: [group_quotation],
    }[instrument_type]
    engine = ScanTemplateEngine(MagicMock(), quotation_provider)
    result = engine.refine(ScanTemplate.ALL, [stock], InstrumentType.STOCK)
    assert [q.instrument.id for q in result] == ["1"]
    assert result[0].relative_strength_data.rs_number_sector == 88
    assert result[0].relative_strength_data.rs_number_industry_group == 12
    # the caller's quotation is not enriched in place
    assert stock.relative_strength_data.rs_number_sector == 0


def test_refine_abort_raises_refinement_failure(make_instrument):
    history_provider = MagicMock()
    history_provider.get_history.side_effect = ConnectionError("down")
    engine = ScanTemplateEngine(history_provider, failure_policy="abort")
    with pytest.raises(RefinementFailure) as excinfo:
        engine.refine(ScanTemplate.THREE_WEEKS_TIGHT, [_candidate(make_instrument, "1")],
                      sector_quotations=[], industry_group_quotations=[])
    assert isinstance(excinfo.value.__cause__, ConnectionError)
    assert excinfo.value.template == ScanTemplate.THREE_WEEKS_TIGHT


def test_refine_result_skip_policy_reports_skipped(make_instrument):
    history_provider = MagicMock()
    history_provider.get_history.side_effect = ConnectionError("down")
    engine = ScanTemplateEngine(history_provider, failure_policy="skip")
    result = engine.refine_result(ScanTemplate.HIGH_TIGHT_FLAG, [_candidate(make_instrument, "1")],
                                  sector_quotations=[], industry_group_quotations=[])
    assert result.status == RefinementStatus.REFINED
    assert result.candidates == ()
    assert result.skipped == ("1",)


def test_evaluate_fetches_candidates_and_passes_through(make_instrument):
    candidates = [_candidate(make_instrument, "1"), _candidate(make_instrument, "2")]
    quotation_provider = MagicMock()
    quotation_provider.get_recent_quotations.return_value = candidates
    engine = ScanTemplateEngine(MagicMock(), quotation_provider)
    result = engine.evaluate("NEAR_52_WEEK_HIGH", InstrumentType.ETF)
    assert [q.instrument.id for q in result] == ["1", "2"]
    assert result[0] is not candidates[0]
    quotation_provider.get_recent_quotations.assert_called_once_with(
        InstrumentType.ETF, instrument_ids=None, template=ScanTemplate.NEAR_52_WEEK_HIGH)


def test_evaluate_rank_since_date_requires_start_date():
    quotation_provider = MagicMock()
    engine = ScanTemplateEngine(MagicMock(), quotation_provider)
    with pytest.raises(ValidationError, match="Start date"):
        engine.evaluate(ScanTemplate.RS_SINCE_DATE, InstrumentType.STOCK)
    quotation_provider.get_recent_quotations.assert_not_called()


def test_evaluate_rejects_malformed_start_date():
    engine = ScanTemplateEngine(MagicMock(), MagicMock())
    with pytest.raises(ValidationError, match="yyyy-MM-dd"):
        engine.evaluate(ScanTemplate.RS_SINCE_DATE, InstrumentType.STOCK, start_date="01.02.2024")


def test_evaluate_unknown_template():
    engine = ScanTemplateEngine(MagicMock(), MagicMock())
    with pytest.raises(ValidationError, match="Unknown scan template"):
        engine.evaluate("NOT_A_TEMPLATE")


def test_evaluate_without_quotation_provider():
    engine = ScanTemplateEngine(MagicMock())
    with pytest.raises(ValidationError):
        engine.evaluate(ScanTemplate.ALL)


def test_evaluate_rank_since_date(make_series, make_instrument):
    a = make_series([100.0, 100.0, 110.0, 120.0], instrument=make_instrument("1", "A"))
    b = make_series([100.0, 100.0, 100.0, 105.0], instrument=make_instrument("2", "B"))
    histories = {"1": a, "2": b}
    history_provider = MagicMock()
    history_provider.get_history.side_effect = lambda instrument: histories[instrument.id]
    quotation_provider = MagicMock()
    quotation_provider.get_recent_quotations.side_effect = (
        lambda instrument_type, **kwargs: [a.newest, b.newest] if instrument_type == InstrumentType.STOCK else []
    )
    engine = ScanTemplateEngine(history_provider, quotation_provider)
    result = engine.evaluate(ScanTemplate.RS_SINCE_DATE, InstrumentType.STOCK, start_date="2024-01-02")
    assert [q.instrument.id for q in result] == ["1", "2"]
    assert [q.relative_strength_data.rs_number for q in result] == [100, 50]
    assert [q.relative_strength_data.rs_percent_sum for q in result] == [20.0, 5.0]
    assert a.newest.relative_strength_data is None


def _cached_history(closes):
    dates = pd.date_range("2024-01-01", periods=len(closes), freq="B")
    return {
        "index": [d.strftime("%Y-%m-%d") for d in dates],
        "data": [{"Open": c, "High": c, "Low": c, "Close": c, "Volume": 10_000} for c in closes],
    }


def test_rank_since_date_does_not_change_later_evaluations():
    closes = {
        "0": [100.0 + i for i in range(100)],
        "1": [100.0] * 100,
        "2": [200.0 - i for i in range(100)],
    }
    provider = CachedHistoryProvider({
        instrument_id: {"symbol": f"S{instrument_id}", "exchange": "NYSE", "type": "STOCK",
                        "historical_data": _cached_history(values)}
        for instrument_id, values in closes.items()
    })
    calculate_universe(provider.all_series())
    engine = ScanTemplateEngine(provider, provider)

    def universe_ranks():
        return {q.instrument.id: q.relative_strength_data.rs_number for q in engine.evaluate(ScanTemplate.ALL)}

    before = universe_ranks()
    assert before == {"0": 100, "1": 67, "2": 33}

    subset = engine.evaluate(ScanTemplate.RS_SINCE_DATE, start_date="2024-01-01", instrument_ids=["0", "2"])
    assert {q.instrument.id: q.relative_strength_data.rs_number for q in subset} == {"0": 100, "2": 50}

    assert universe_ranks() == before
    assert provider.get_history("2").newest.relative_strength_data.rs_number == 33
