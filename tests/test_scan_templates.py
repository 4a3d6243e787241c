"""Tests for scan template refiners, the refiner registry and the failure policies."""
from datetime import date
from unittest.mock import MagicMock

import pytest

from models import Indicator, InstrumentType, MovingAverageData, Quotation, RelativeStrengthData
from scan_templates import (
    IndicatorFilterRefiner,
    RefinementStatus,
    ScanContext,
    ScanTemplate,
    TEMPLATE_REFINERS,
    TemplateRefiner,
    is_three_weeks_tight,
    refine_candidates,
)
from validators import ValidationError


def _provider(histories):
    """MagicMock history provider serving series by instrument id."""
    provider = MagicMock()

    def get_history(instrument):
        return histories[instrument.id]

    provider.get_history.side_effect = get_history
    return provider


def _context(histories, **kwargs):
    return ScanContext(_provider(histories), **kwargs)


def test_registry_covers_refining_templates():
    assert set(TEMPLATE_REFINERS) == {
        ScanTemplate.RS_SINCE_DATE,
        ScanTemplate.THREE_WEEKS_TIGHT,
        ScanTemplate.HIGH_TIGHT_FLAG,
        ScanTemplate.SWING_TRADING_ENVIRONMENT,
        ScanTemplate.RS_NEAR_HIGH_IG,
        ScanTemplate.BUYABLE_BASE,
        ScanTemplate.MA_PRICE_CONVERGENCE,
    }


def test_template_without_refiner_passes_through(make_series):
    series = make_series([10.0, 11.0])
    provider = MagicMock()
    result = refine_candidates(ScanTemplate.ALL, [series.newest], ScanContext(provider))
    assert result.status == RefinementStatus.PASS_THROUGH
    assert result.candidates == (series.newest,)
    provider.get_history.assert_not_called()


def test_from_name():
    assert ScanTemplate.from_name("three_weeks_tight") == ScanTemplate.THREE_WEEKS_TIGHT
    assert ScanTemplate.from_name(ScanTemplate.ALL) == ScanTemplate.ALL
    with pytest.raises(ValidationError, match="Unknown scan template"):
        ScanTemplate.from_name("CUP_WITH_HANDLE")


def test_refiner_without_rule_cannot_be_created():
    class MissingAccepts(TemplateRefiner):
        template = ScanTemplate.ALL

    class MissingKeep(IndicatorFilterRefiner):
        template = ScanTemplate.ALL

    with pytest.raises(TypeError):
        MissingAccepts()
    with pytest.raises(TypeError):
        MissingKeep()


def test_unknown_failure_policy_rejected():
    with pytest.raises(ValidationError):
        ScanContext(MagicMock(), failure_policy="retry")


# ----------------------------------------------------------------------------
# Three weeks tight
# ----------------------------------------------------------------------------

def test_is_three_weeks_tight_bounds():
    assert is_three_weeks_tight([100.0, 101.4, 100.0]) is True
    assert is_three_weeks_tight([99.0, 101.0, 100.0]) is True
    assert is_three_weeks_tight([98.4, 100.0, 100.0]) is False
    assert is_three_weeks_tight([100.0, 101.6, 100.0]) is False
    assert is_three_weeks_tight([100.0, 100.0]) is False


def test_three_weeks_tight_refiner(make_series, make_instrument):
    tight = make_series([100.0] * 15, instrument=make_instrument("1", "TIGHT"))
    loose = make_series([100.0] * 5 + [90.0] * 5 + [100.0] * 5, instrument=make_instrument("2", "LOOSE"))
    short = make_series([100.0] * 10, instrument=make_instrument("3", "SHORT"))
    context = _context({"1": tight, "2": loose, "3": short})
    result = refine_candidates(ScanTemplate.THREE_WEEKS_TIGHT, [tight.newest, loose.newest, short.newest], context)
    assert result.status == RefinementStatus.REFINED
    assert result.candidates == (tight.newest,)


# ----------------------------------------------------------------------------
# High tight flag
# ----------------------------------------------------------------------------

def test_high_tight_flag(make_series, make_instrument):
    flag_closes = [100.0] * 70 + [180.0]
    flag = make_series(flag_closes, instrument=make_instrument("1", "FLAG"))
    slow = make_series([100.0] * 70 + [170.0], instrument=make_instrument("2", "SLOW"))
    short = make_series([100.0] * 69 + [190.0], instrument=make_instrument("3", "SHORT"))
    context = _context({"1": flag, "2": slow, "3": short})
    result = refine_candidates(ScanTemplate.HIGH_TIGHT_FLAG, [flag.newest, slow.newest, short.newest], context)
    assert result.candidates == (flag.newest,)


# ----------------------------------------------------------------------------
# Swing trading environment
# ----------------------------------------------------------------------------

def test_swing_trading_environment(make_series, make_instrument):
    rising = make_series([100.0 + i for i in range(25)], instrument=make_instrument("1", "UP"))
    falling = make_series([100.0 - i for i in range(25)], instrument=make_instrument("2", "DOWN"))
    mixed = make_series([100.0 + i for i in range(24)] + [50.0], instrument=make_instrument("3", "MIX"))
    short = make_series([100.0 + i for i in range(20)], instrument=make_instrument("4", "SHORT"))
    context = _context({"1": rising, "2": falling, "3": mixed, "4": short})
    candidates = [rising.newest, falling.newest, mixed.newest, short.newest]
    result = refine_candidates(ScanTemplate.SWING_TRADING_ENVIRONMENT, candidates, context)
    assert result.candidates == (rising.newest,)


# ----------------------------------------------------------------------------
# Buyable base / MA price convergence
# ----------------------------------------------------------------------------

def _with_indicators(make_instrument, instrument_id, close, ema_21, sma_50, atrp):
    q = Quotation(instrument=make_instrument(instrument_id, f"S{instrument_id}"), date="2024-03-01",
                  open=close, high=close, low=close, close=close, volume=100)
    q.moving_average_data = MovingAverageData(ema_21=ema_21, sma_50=sma_50)
    q.indicator = Indicator(atrp_20_days=atrp)
    return q


def test_buyable_base(make_instrument):
    """EMA21 100, ATRP 2 -> limit 103."""
    inside = _with_indicators(make_instrument, "1", 102.0, 100.0, 95.0, 2.0)
    extended = _with_indicators(make_instrument, "2", 104.0, 100.0, 95.0, 2.0)
    no_average = _with_indicators(make_instrument, "3", 50.0, 0.0, 0.0, 2.0)
    provider = MagicMock()
    result = refine_candidates(ScanTemplate.BUYABLE_BASE, [inside, extended, no_average], ScanContext(provider))
    assert result.candidates == (inside,)
    provider.get_history.assert_not_called()


def test_ma_price_convergence(make_instrument):
    """Spread of 101 / 99 is 2.02%."""
    tight = _with_indicators(make_instrument, "1", 100.0, 101.0, 99.0, 1.5)
    wide = _with_indicators(make_instrument, "2", 100.0, 101.0, 99.0, 1.0)
    missing = _with_indicators(make_instrument, "3", 100.0, 0.0, 99.0, 5.0)
    result = refine_candidates(ScanTemplate.MA_PRICE_CONVERGENCE, [tight, wide, missing], ScanContext(MagicMock()))
    assert result.candidates == (tight,)


def test_indicator_refiners_do_not_mutate_input(make_instrument):
    candidates = [
        _with_indicators(make_instrument, "1", 102.0, 100.0, 95.0, 2.0),
        _with_indicators(make_instrument, "2", 150.0, 100.0, 95.0, 2.0),
    ]
    snapshot = list(candidates)
    refine_candidates(ScanTemplate.BUYABLE_BASE, candidates, ScanContext(MagicMock()))
    assert candidates == snapshot


# ----------------------------------------------------------------------------
# Rank since date
# ----------------------------------------------------------------------------

def test_rank_since_date_reranks_candidates(make_series, make_instrument):
    a = make_series([100.0, 100.0, 110.0, 120.0], instrument=make_instrument("1", "A"))
    b = make_series([100.0, 100.0, 100.0, 105.0], instrument=make_instrument("2", "B"))
    a.newest.relative_strength_data = RelativeStrengthData(rs_percent_sum=-50.0)
    b.newest.relative_strength_data = RelativeStrengthData(rs_percent_sum=50.0)
    context = _context({"1": a, "2": b}, start_date=date(2024, 1, 2))
    result = refine_candidates(ScanTemplate.RS_SINCE_DATE, [b.newest, a.newest], context)
    assert result.candidates == (b.newest, a.newest)
    assert a.newest.relative_strength_data.rs_percent_sum == 20.0
    assert b.newest.relative_strength_data.rs_percent_sum == 5.0
    assert a.newest.relative_strength_data.rs_number == 100
    assert b.newest.relative_strength_data.rs_number == 50


def test_rank_since_date_requires_start_date(make_series):
    series = make_series([100.0, 101.0])
    with pytest.raises(ValidationError, match="Start date"):
        refine_candidates(ScanTemplate.RS_SINCE_DATE, [series.newest], _context({"1": series}))


def test_rank_since_date_start_after_history_fails(make_series):
    series = make_series([100.0, 101.0])
    context = _context({"1": series}, start_date=date(2025, 1, 1))
    result = refine_candidates(ScanTemplate.RS_SINCE_DATE, [series.newest], context)
    assert result.status == RefinementStatus.FAILED
    assert isinstance(result.error, LookupError)


# ----------------------------------------------------------------------------
# RS line near high vs. industry group
# ----------------------------------------------------------------------------

def test_rs_near_high_industry_group(make_series, make_instrument):
    group_instrument = make_instrument("G", "GRP", InstrumentType.IND_GROUP)
    group = make_series([50.0 + i for i in range(30)], instrument=group_instrument)
    leader = make_series([100.0 + 2 * i for i in range(30)],
                         instrument=make_instrument("1", "LEAD", industry_group=group_instrument))
    laggard = make_series([100.0] * 30, instrument=make_instrument("2", "LAG", industry_group=group_instrument))
    context = _context({"G": group, "1": leader, "2": laggard})
    result = refine_candidates(ScanTemplate.RS_NEAR_HIGH_IG, [leader.newest, laggard.newest], context)
    assert result.candidates == (leader.newest,)


def test_rs_near_high_without_industry_group_fails(make_series):
    series = make_series([100.0] * 5)
    result = refine_candidates(ScanTemplate.RS_NEAR_HIGH_IG, [series.newest], _context({"1": series}))
    assert result.status == RefinementStatus.FAILED
    assert not result.ok


# ----------------------------------------------------------------------------
# Failure policies
# ----------------------------------------------------------------------------

def _failing_provider(good_series):
    provider = MagicMock()

    def get_history(instrument):
        if instrument.id == "bad":
            raise ConnectionError("history unavailable")
        return good_series

    provider.get_history.side_effect = get_history
    return provider


def test_abort_policy_fails_whole_refinement(make_series, make_instrument):
    good = make_series([100.0] * 15, instrument=make_instrument("1", "GOOD"))
    bad = make_series([100.0] * 15, instrument=make_instrument("bad", "BAD"))
    context = ScanContext(_failing_provider(good), failure_policy="abort")
    result = refine_candidates(ScanTemplate.THREE_WEEKS_TIGHT, [good.newest, bad.newest], context)
    assert result.status == RefinementStatus.FAILED
    assert result.candidates == ()
    assert isinstance(result.error, ConnectionError)


def test_skip_policy_drops_failing_instrument(make_series, make_instrument, caplog):
    good = make_series([100.0] * 15, instrument=make_instrument("1", "GOOD"))
    bad = make_series([100.0] * 15, instrument=make_instrument("bad", "BAD"))
    context = ScanContext(_failing_provider(good), failure_policy="skip")
    result = refine_candidates(ScanTemplate.THREE_WEEKS_TIGHT, [good.newest, bad.newest], context)
    assert result.status == RefinementStatus.REFINED
    assert result.candidates == (good.newest,)
    assert result.skipped == ("bad",)
    assert "skipping" in caplog.text
