"""
Run a scan template over the cached quotation histories.

Reads data/quotation_history.json, computes indicators of every instrument, ranks each
instrument type, evaluates the requested template and writes
reports/scan_results_latest.json.

Usage:
    python run_scan.py --template THREE_WEEKS_TIGHT
    python run_scan.py --template RS_SINCE_DATE --start-date 2024-01-02 --min-liquidity 5000000
"""
import argparse
import json
import os
import sys
from dataclasses import asdict
from datetime import datetime
from pathlib import Path
from typing import Dict, List

from dotenv import load_dotenv

from config import DEFAULT_ENV_PATH, HISTORY_CACHE_FILE, REFINEMENT_FAILURE_POLICY, SCAN_RESULTS_LATEST
from history_store import CachedHistoryProvider
from indicator_calculation import calculate_universe
from logger_config import setup_logging, get_logger
from models import InstrumentType, Quotation
from scan_template_engine import ScanTemplateEngine
from scan_templates import FAILURE_POLICIES, RefinementFailure, ScanTemplate
from validators import ValidationError

logger = get_logger(__name__)


def quotation_to_dict(quotation: Quotation) -> Dict:
    """JSON-serializable view of a result quotation."""
    instrument = quotation.instrument
    return {
        "instrument_id": instrument.id,
        "symbol": instrument.symbol,
        "name": instrument.name,
        "type": instrument.type.value,
        "date": quotation.date.isoformat(),
        "close": quotation.close,
        "volume": quotation.volume,
        "indicator": asdict(quotation.indicator) if quotation.indicator else None,
        "moving_average_data": asdict(quotation.moving_average_data) if quotation.moving_average_data else None,
        "relative_strength_data": (
            asdict(quotation.relative_strength_data) if quotation.relative_strength_data else None
        ),
    }


def sort_by_rs_number(quotations: List[Quotation]) -> List[Quotation]:
    """Highest RS number first; unranked quotations last."""
    def key(q: Quotation):
        return q.relative_strength_data.rs_number if q.relative_strength_data else -1
    return sorted(quotations, key=key, reverse=True)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Evaluate a scan template over cached quotation histories")
    parser.add_argument("--template", required=True, type=str,
                        help="Template name: " + ", ".join(t.value for t in ScanTemplate))
    parser.add_argument("--type", default=InstrumentType.STOCK.value, type=str,
                        choices=[t.value for t in InstrumentType], help="Instrument type to scan")
    parser.add_argument("--start-date", type=str, help="yyyy-MM-dd (RS_SINCE_DATE)")
    parser.add_argument("--min-liquidity", type=float, help="Minimum 20 day average traded value")
    parser.add_argument("--ids", type=str, help="Comma-separated instrument ids instead of all of --type")
    parser.add_argument("--failure-policy", default=None, choices=FAILURE_POLICIES,
                        help=f"On history errors: abort the scan or skip the instrument (default {REFINEMENT_FAILURE_POLICY})")
    parser.add_argument("--cache-file", type=str, help="History cache JSON")
    parser.add_argument("--output", type=str, help=f"Result JSON (default {SCAN_RESULTS_LATEST})")
    parser.add_argument("--log-level", type=str, help="DEBUG, INFO, WARNING, ERROR")
    return parser


def main(argv=None) -> int:
    load_dotenv(Path(DEFAULT_ENV_PATH))
    args = build_parser().parse_args(argv)
    setup_logging(log_level=args.log_level or os.getenv("SCAN_LOG_LEVEL", "INFO"), log_to_file=True)

    cache_file = Path(args.cache_file or os.getenv("SCAN_CACHE_FILE") or HISTORY_CACHE_FILE)
    provider = CachedHistoryProvider.from_file(cache_file)
    if provider is None:
        logger.error("No usable history cache at %s", cache_file)
        return 1

    universe = calculate_universe(provider.all_series())
    print(f"Indicators computed for {sum(len(q) for q in universe.values())} instruments")

    engine = ScanTemplateEngine(provider, provider, args.failure_policy or REFINEMENT_FAILURE_POLICY)
    instrument_ids = [i.strip() for i in args.ids.split(",") if i.strip()] if args.ids else None
    try:
        results = engine.evaluate(
            args.template,
            InstrumentType(args.type),
            start_date=args.start_date,
            min_liquidity=args.min_liquidity,
            instrument_ids=instrument_ids,
        )
    except ValidationError as e:
        logger.error("Invalid scan parameters: %s", e)
        return 2
    except RefinementFailure as e:
        logger.error("Scan aborted: %s", e, exc_info=True)
        return 1

    results = sort_by_rs_number(results)
    output = Path(args.output) if args.output else SCAN_RESULTS_LATEST
    output.parent.mkdir(parents=True, exist_ok=True)
    payload = {
        "template": ScanTemplate.from_name(args.template).value,
        "instrument_type": args.type,
        "start_date": args.start_date,
        "min_liquidity": args.min_liquidity,
        "generated_at": datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
        "results": [quotation_to_dict(q) for q in results],
    }
    with open(output, "w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2, ensure_ascii=False, default=str)
    logger.info("Wrote %s", output)
    print(f"Scan complete: {len(results)} results -> {output}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
