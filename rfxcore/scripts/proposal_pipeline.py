#!/usr/bin/env python3
# CUI // SP-PROPIN
"""RFX proposal pipeline CLI.

Runs one RFP through extraction, matching, pricing, risk, compliance and
strategy synthesis, printing progress as it goes.

Usage examples:
  # Default config (args/proposal_config.yaml, args/llm_config.yaml)
  python -m rfxcore.scripts.proposal_pipeline --rfp rfp.json --catalog catalog.json

  # Price buyer-mandated tests from a separate file as well as extracted ones
  python -m rfxcore.scripts.proposal_pipeline \\
    --rfp rfp.json --catalog catalog.json --tests tests.json

  # Reproducible competitor simulation, EUR display currency
  python -m rfxcore.scripts.proposal_pipeline \\
    --rfp rfp.json --catalog catalog.json --seed 42 --currency EUR

  # Allow inferred placeholder items for thin excerpts, record an audit trail
  python -m rfxcore.scripts.proposal_pipeline \\
    --rfp rfp.json --catalog catalog.json --mode infer --audit-db data/rfx_audit.db

  # Full bundle as JSON
  python -m rfxcore.scripts.proposal_pipeline --rfp rfp.json --catalog catalog.json --json
"""

import argparse
import json
import logging
import random
import sys
from dataclasses import replace
from pathlib import Path

from rfxcore.errors import RFXError
from rfxcore.llm.router import LLMRouter
from rfxcore.rfx.catalog import load_catalog, load_tests
from rfxcore.rfx.events import EventLevel, ProgressChannel, ProgressEvent
from rfxcore.rfx.extraction import ExtractionGateway, ExtractionMode
from rfxcore.rfx.models import RFP
from rfxcore.rfx.pipeline import run_pipeline
from rfxcore.rfx.settings import load_config

# Windows cp1252 console can't render Unicode, force UTF-8 output
if hasattr(sys.stdout, "reconfigure"):
    sys.stdout.reconfigure(encoding="utf-8", errors="replace")
if hasattr(sys.stderr, "reconfigure"):
    sys.stderr.reconfigure(encoding="utf-8", errors="replace")

GREEN  = "\033[32m"
RED    = "\033[31m"
YELLOW = "\033[33m"
CYAN   = "\033[36m"
DIM    = "\033[2m"
RESET  = "\033[0m"
BOLD   = "\033[1m"


def _ok(msg):   print(f"{GREEN}  ✓{RESET} {msg}")
def _warn(msg): print(f"{YELLOW}  ⚠{RESET} {msg}")
def _err(msg):  print(f"{RED}  ✗{RESET} {msg}")
def _info(msg): print(f"{CYAN}  →{RESET} {msg}")
def _dim(msg):  print(f"{DIM}  … {msg}{RESET}")


_PRINTERS = {
    EventLevel.SUCCESS: _ok,
    EventLevel.WARNING: _warn,
    EventLevel.ERROR: _err,
    EventLevel.INFO: _info,
    EventLevel.THINKING: _dim,
}


def print_event(event: ProgressEvent):
    _PRINTERS[event.level](f"[{event.component.value}] {event.message}")


def load_rfp(path) -> RFP:
    with open(Path(path), "r", encoding="utf-8") as fh:
        data = json.load(fh)
    if not isinstance(data, dict):
        raise ValueError(f"{path}: RFP file must hold a JSON object")
    return RFP.from_dict(data)


def print_summary(bundle):
    cost = bundle.cost
    print(f"\n{BOLD}Bill of Materials{RESET}")
    for line in cost.lines:
        print(f"  {line.item_no:<8} {line.model_name:<28} "
              f"{line.qty:>8g} x {line.unit_price:>12,.2f}  "
              f"{line.line_total:>14,.2f}  {line.notes}")
    print(f"  {'Subtotal':<40} {cost.subtotal:>30,.2f}")
    print(f"  {'Logistics':<40} {cost.logistics:>30,.2f}")
    print(f"  {'Contingency':<40} {cost.contingency:>30,.2f}")
    print(f"  {'Taxes':<40} {cost.taxes:>30,.2f}")
    print(f"  {BOLD}{'Grand total (' + cost.currency + ')':<40} {cost.grand_total:>30,.2f}{RESET}")

    print(f"\n{BOLD}Risk{RESET}: {bundle.risk.level.value} (score {bundle.risk.score:g})")
    for factor in bundle.risk.factors:
        print(f"  - {factor}")
    print(f"  {bundle.risk.mitigation}")
    print(f"{BOLD}Compliance{RESET}: {bundle.compliance.status.value}. "
          f"{bundle.compliance.details}")
    print(f"{BOLD}Win probability{RESET}: {bundle.win_probability}% "
          f"({bundle.competitor.position.value})")
    if bundle.extraction_inferred:
        _warn("Line items were inferred by the extraction service.")
    print(f"\n{bundle.executive_summary}")


def main():
    parser = argparse.ArgumentParser(
        description="RFX pipeline: RFP + catalog -> priced, risk-scored proposal",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--rfp", required=True, help="RFP JSON (title, excerpt, dueDate, ...)")
    parser.add_argument("--catalog", required=True,
                        help='Catalog JSON: a list of SKUs or {"skus": [...]}')
    parser.add_argument("--tests", default=None,
                        help='Test requirements JSON: a list or {"tests": [...]}')
    parser.add_argument("--seed", type=int, default=None,
                        help="Seed for the competitor simulation")
    parser.add_argument("--mode", choices=[m.value for m in ExtractionMode], default=None,
                        help="Extraction mode (default: from config, else strict)")
    parser.add_argument("--currency", default=None, help="Display currency override")
    parser.add_argument("--config", default=None, help="Path to proposal_config.yaml")
    parser.add_argument("--llm-config", default=None, help="Path to llm_config.yaml")
    parser.add_argument("--audit-db", default=None,
                        help="Record progress events in this SQLite audit trail")
    parser.add_argument("--json", action="store_true", dest="json_output",
                        help="Print the proposal bundle as JSON")
    parser.add_argument("--verbose", "-v", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = load_config(args.config)
        if args.currency:
            config = config.with_currency(args.currency)
        extraction = config.extraction
        if args.mode:
            extraction = replace(extraction, mode=ExtractionMode(args.mode))

        rfp = load_rfp(args.rfp)
        catalog = load_catalog(args.catalog)
        tests = load_tests(args.tests) if args.tests else []

        channel = ProgressChannel()
        if not args.json_output:
            print(f"\n{BOLD}RFX Proposal Pipeline{RESET}")
            print(f"  RFP     : {rfp.title}")
            print(f"  Catalog : {len(catalog)} SKUs")
            if tests:
                print(f"  Tests   : {len(tests)} supplied")
            print(f"  Mode    : {extraction.mode.value}\n")
            channel.subscribe(print_event)
        if args.audit_db:
            from rfxcore.audit.audit_logger import AuditSink
            AuditSink(args.audit_db, rfp_id=rfp.rfp_id).attach(channel)

        gateway = ExtractionGateway(
            router=LLMRouter(args.llm_config),
            policy=extraction.policy(),
            mode=extraction.mode,
        )
        rng = random.Random(args.seed) if args.seed is not None else None
        bundle = run_pipeline(rfp, gateway, catalog, config=config,
                              channel=channel, rng=rng, tests=tests)
    except (RFXError, ValueError, OSError) as exc:
        if args.json_output:
            payload = {"error": str(exc)}
            if isinstance(exc, RFXError):
                payload.update(type=exc.error_type.value, details=exc.details)
            print(json.dumps(payload, indent=2, default=str))
        else:
            print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)

    if args.json_output:
        print(json.dumps(bundle.to_dict(), indent=2))
    else:
        print_summary(bundle)


if __name__ == "__main__":
    main()
