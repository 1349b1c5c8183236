#!/usr/bin/env python3
# CUI // SP-PROPIN
"""Bill-of-materials pricer.

Turns match results into priced lines and the cost roll-up:

    line_total  = unit_price * qty + test costs
    subtotal    = sum(line_total)
    logistics   = subtotal * logistics_rate           (0.05)
    contingency = subtotal * contingency_rate         (0.03)
    taxes       = (subtotal + logistics + contingency) * tax_rate   (0.10)
    grand_total = subtotal + logistics + contingency + taxes

Test costs per line: per_unit_test_fee * qty for every per-unit test plus
per_lot_test_fee for every per-lot test. Currency is carried through
untouched. No randomness: identical inputs give identical breakdowns.
"""

import logging
from dataclasses import dataclass
from typing import List, Sequence

from rfxcore.errors import PricingError
from rfxcore.rfx.models import (
    MANUAL_SOURCING_MODEL,
    CatalogItem,
    CostBreakdown,
    MatchResult,
    PricingLine,
    Requirement,
    TestRequirement,
)
from rfxcore.rfx.spec_matcher import match_requirements

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PricingConfig:
    currency: str = "USD"
    logistics_rate: float = 0.05
    contingency_rate: float = 0.03
    tax_rate: float = 0.10
    per_unit_test_fee: float = 500.0
    per_lot_test_fee: float = 1000.0
    mto_note: str = "MTO: 4-6 Weeks"
    stock_note: str = "Ex-Stock: 1-2 Weeks"
    manual_note: str = "Requires manual sourcing"

    def __post_init__(self):
        for name in ("logistics_rate", "contingency_rate", "tax_rate",
                     "per_unit_test_fee", "per_lot_test_fee"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be >= 0, got {getattr(self, name)}")


def line_test_costs(qty: float, tests: Sequence[TestRequirement],
                    config: PricingConfig) -> float:
    """Test charges for one line of `qty` units."""
    cost = 0.0
    for test in tests:
        if test.per_unit:
            cost += config.per_unit_test_fee * qty
        if test.per_lot:
            cost += config.per_lot_test_fee
    return cost


def price_line(match: MatchResult, tests: Sequence[TestRequirement],
               config: PricingConfig) -> PricingLine:
    """Price a single match result."""
    selected = match.selected
    if selected is None:
        return PricingLine(
            item_no=match.item_no,
            model_name=MANUAL_SOURCING_MODEL,
            unit_price=0.0,
            qty=match.requested_qty,
            product_total=0.0,
            test_costs=0.0,
            line_total=0.0,
            notes=config.manual_note,
            requires_manual_sourcing=True,
        )

    qty = match.requested_qty
    unit_price = selected.item.unit_price
    product_total = unit_price * qty
    test_costs = line_test_costs(qty, tests, config)
    return PricingLine(
        item_no=match.item_no,
        model_name=selected.item.model_name,
        unit_price=unit_price,
        qty=qty,
        product_total=product_total,
        test_costs=test_costs,
        line_total=product_total + test_costs,
        notes=config.mto_note if match.is_mto else config.stock_note,
    )


def price_matches(matches: Sequence[MatchResult],
                  tests: Sequence[TestRequirement],
                  config: PricingConfig = PricingConfig()) -> CostBreakdown:
    """Price already-matched requirements and roll up the surcharges."""
    lines: List[PricingLine] = [price_line(m, tests, config) for m in matches]
    subtotal = sum(line.line_total for line in lines)
    logistics = subtotal * config.logistics_rate
    contingency = subtotal * config.contingency_rate
    taxes = (subtotal + logistics + contingency) * config.tax_rate
    grand_total = subtotal + logistics + contingency + taxes

    manual = [line.item_no for line in lines if line.requires_manual_sourcing]
    if manual:
        logger.warning("Lines requiring manual sourcing: %s", ", ".join(manual))
    logger.info("BOM priced: %d lines, grand total %s %.2f",
                len(lines), config.currency, grand_total)

    return CostBreakdown(
        lines=tuple(lines),
        subtotal=subtotal,
        logistics=logistics,
        contingency=contingency,
        taxes=taxes,
        grand_total=grand_total,
        currency=config.currency,
    )


def price_requirements(requirements: Sequence[Requirement],
                       catalog: Sequence[CatalogItem],
                       tests: Sequence[TestRequirement],
                       config: PricingConfig = PricingConfig()) -> CostBreakdown:
    """Match and price requirements against the catalog.

    Runs its own matching pass so pricing does not wait on the matcher task.

    Raises:
        PricingError: the catalog is empty.
    """
    if not catalog:
        raise PricingError(
            "Cannot price without a catalog",
            {"requirements": [r.item_no for r in requirements]},
        )
    return price_matches(match_requirements(requirements, catalog), tests, config)
