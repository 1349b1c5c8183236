#!/usr/bin/env python3
# CUI // SP-PROPIN
"""Risk assessor: supply, timeline and technical risk for one proposal.

Score starts at base_score and accrues fixed penalties:
    supply chain   any made-to-order item                    +30
    timeline       submission due in fewer than N days       +15
    technical      any item whose best match is under 80%    +10

Level bands: > 70 High, > 40 Medium, else Low.
"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import List, Optional, Sequence

from rfxcore.rfx.models import RFP, MatchResult, RiskAssessment, RiskLevel

logger = logging.getLogger(__name__)

MITIGATIONS = {
    RiskLevel.HIGH: "Recommendation: Request 2 week extension and add liability cap clause.",
    RiskLevel.MEDIUM: ("Recommendation: Confirm lead times with suppliers; "
                       "standard warranty terms apply."),
    RiskLevel.LOW: "Recommendation: Standard warranty terms apply.",
}


@dataclass(frozen=True)
class RiskConfig:
    base_score: float = 20
    mto_penalty: float = 30
    timeline_penalty: float = 15
    timeline_days: int = 5
    low_confidence_penalty: float = 10
    confidence_threshold: float = 80.0
    high_threshold: float = 70
    medium_threshold: float = 40


def risk_level(score: float, config: RiskConfig = RiskConfig()) -> RiskLevel:
    if score > config.high_threshold:
        return RiskLevel.HIGH
    if score > config.medium_threshold:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def assess_risk(rfp: RFP, matches: Sequence[MatchResult],
                config: RiskConfig = RiskConfig(),
                today: Optional[date] = None) -> RiskAssessment:
    """Aggregate supply, timeline and technical risk into a RiskAssessment."""
    today = today or date.today()
    factors: List[str] = []
    score = config.base_score

    mto_count = sum(1 for m in matches if m.is_mto)
    if mto_count:
        factors.append(
            f"Supply Chain: {mto_count} items are Made-To-Order (Lead time risk)."
        )
        score += config.mto_penalty

    if rfp.due_date is not None and (rfp.due_date - today).days < config.timeline_days:
        factors.append(f"Timeline: Submission due in < {config.timeline_days} days.")
        score += config.timeline_penalty

    if config.low_confidence_penalty:
        weak = [m.item_no for m in matches if m.top_score < config.confidence_threshold]
        if weak:
            factors.append(
                f"Technical: {len(weak)} items below "
                f"{config.confidence_threshold:g}% match confidence."
            )
            score += config.low_confidence_penalty

    level = risk_level(score, config)
    logger.info("Risk assessed for %s: score=%s level=%s factors=%d",
                rfp.rfp_id or rfp.title, score, level.value, len(factors))
    return RiskAssessment(
        score=score,
        level=level,
        factors=tuple(factors),
        mitigation=MITIGATIONS[level],
    )
