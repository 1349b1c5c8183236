#!/usr/bin/env python3
# CUI // SP-PROPIN
# Controlled by: RFX Proposal Engine
# CUI Category: PROPIN
# Distribution: D
# POC: RFX Proposal Engine Administrator
"""Strategy synthesizer: competitive positioning and win probability.

Fuses the matcher, pricer, risk and compliance outputs into one estimate.

Competitor band (simulated):
    market_avg  = our_price * (1 + variance),  variance in [-5%, +15%]
    market_high = market_avg * 1.15
    market_low  = market_avg * 0.85

Price position:
    our_price < market_low   Low-Cost     price score 100
    our_price > market_high  Premium      price score 40
    otherwise                Competitive  price score 75

Win probability (percent, integer, clamped to [1, 99]):
    round(tech * 0.35 + price * 0.45 + (100 - risk) * 0.10 + compliance * 0.10)
    compliance = 100 for Pass, else 50

The variance source is an injectable random.Random so runs are
reproducible: pass random.Random(seed), or a fixed `variance`.
"""

import logging
import math
import random
from dataclasses import dataclass, field
from typing import Dict, Optional, Sequence

from rfxcore.rfx.models import (
    ComplianceResult,
    ComplianceStatus,
    CompetitorSnapshot,
    CostBreakdown,
    MatchResult,
    PricePosition,
    RiskAssessment,
    StrategyResult,
)

logger = logging.getLogger(__name__)

PRICE_SCORES = {
    PricePosition.LOW_COST: 100,
    PricePosition.COMPETITIVE: 75,
    PricePosition.PREMIUM: 40,
}

DEFAULT_WEIGHTS = {
    "technical": 0.35,
    "price": 0.45,
    "risk": 0.10,
    "compliance": 0.10,
}

# (exclusive lower bound, label) checked in order
ALIGNMENT_LABELS = ((80, "strong"), (50, "moderate"))

WIN_PROBABILITY_FLOOR = 1
WIN_PROBABILITY_CEILING = 99


@dataclass(frozen=True)
class StrategyConfig:
    variance_low: float = -0.05
    variance_high: float = 0.15
    band_spread: float = 0.15
    compliance_pass_score: float = 100
    compliance_other_score: float = 50
    weights: Dict[str, float] = field(default_factory=lambda: dict(DEFAULT_WEIGHTS))

    def __post_init__(self):
        if self.variance_low > self.variance_high:
            raise ValueError("variance_low must not exceed variance_high")
        if not 0 <= self.band_spread < 1:
            raise ValueError("band_spread must be in [0, 1)")
        unknown = set(self.weights) - set(DEFAULT_WEIGHTS)
        if unknown:
            raise ValueError(f"Unknown strategy weights: {', '.join(sorted(unknown))}")
        merged = dict(DEFAULT_WEIGHTS)
        merged.update(self.weights)
        object.__setattr__(self, "weights", merged)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def draw_variance(rng: random.Random, config: StrategyConfig = StrategyConfig()) -> float:
    """Draw a market variance factor uniformly from the configured range."""
    return rng.uniform(config.variance_low, config.variance_high)


def simulate_competitor_band(our_price: float, variance: float,
                             config: StrategyConfig = StrategyConfig()) -> CompetitorSnapshot:
    """Build the simulated market band around our price and classify us in it."""
    market_avg = our_price * (1 + variance)
    market_high = market_avg * (1 + config.band_spread)
    market_low = market_avg * (1 - config.band_spread)
    if our_price < market_low:
        position = PricePosition.LOW_COST
    elif our_price > market_high:
        position = PricePosition.PREMIUM
    else:
        position = PricePosition.COMPETITIVE
    return CompetitorSnapshot(
        our_price=our_price,
        market_avg=market_avg,
        market_high=market_high,
        market_low=market_low,
        position=position,
    )


def price_position(snapshot: CompetitorSnapshot) -> int:
    """Price score for the snapshot's position."""
    return PRICE_SCORES[snapshot.position]


def average_technical_score(matches: Sequence[MatchResult]) -> float:
    """Mean of each requirement's top match score; 0 with no requirements."""
    if not matches:
        return 0.0
    return sum(m.top_score for m in matches) / len(matches)


def alignment_descriptor(technical_score: float) -> str:
    for bound, label in ALIGNMENT_LABELS:
        if technical_score > bound:
            return label
    return "weak"


def win_probability(technical_score: float, price_score: float, risk_score: float,
                    compliance_status: ComplianceStatus,
                    config: StrategyConfig = StrategyConfig()) -> int:
    """Weighted blend of the four signals, rounded and clamped to [1, 99]."""
    compliance_score = (config.compliance_pass_score
                        if compliance_status is ComplianceStatus.PASS
                        else config.compliance_other_score)
    w = config.weights
    raw = (technical_score * w["technical"]
           + price_score * w["price"]
           + (100 - risk_score) * w["risk"]
           + compliance_score * w["compliance"])
    return min(WIN_PROBABILITY_CEILING, max(WIN_PROBABILITY_FLOOR, _round_half_up(raw)))


def executive_summary(position: PricePosition, probability: int,
                      technical_score: float, risk: RiskAssessment) -> str:
    return (
        f"Proposal Strategy: {position.value} Positioning. "
        f"Win probability calculated at {probability}% based on "
        f"{alignment_descriptor(technical_score)} technical alignment "
        f"({technical_score:.0f}%) and {risk.level.value.lower()} risk profile."
    )


def synthesize_strategy(matches: Sequence[MatchResult],
                        cost: CostBreakdown,
                        risk: RiskAssessment,
                        compliance: ComplianceResult,
                        rng: Optional[random.Random] = None,
                        variance: Optional[float] = None,
                        config: Optional[StrategyConfig] = None) -> StrategyResult:
    """Fuse technical, price, risk and compliance signals.

    Args:
        matches: Matcher output (one per requirement).
        cost: Pricer output; grand_total is our price.
        risk: Risk assessor output.
        compliance: Compliance checker output.
        rng: Variance source; a fresh random.Random() when omitted.
        variance: Fixed variance factor, bypassing rng.
        config: Weights, variance range and band spread.

    Returns:
        StrategyResult with win probability, competitor snapshot and summary.
    """
    config = config or StrategyConfig()
    if variance is None:
        variance = draw_variance(rng or random.Random(), config)

    snapshot = simulate_competitor_band(cost.grand_total, variance, config)
    price_score = price_position(snapshot)
    technical = average_technical_score(matches)
    probability = win_probability(technical, price_score, risk.score,
                                  compliance.status, config)
    summary = executive_summary(snapshot.position, probability, technical, risk)

    logger.info("Strategy: position=%s win_probability=%d%% technical=%.1f variance=%+.3f",
                snapshot.position.value, probability, technical, variance)
    return StrategyResult(
        win_probability=probability,
        competitor=snapshot,
        technical_score=technical,
        price_score=price_score,
        summary=summary,
    )
