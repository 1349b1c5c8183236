#!/usr/bin/env python3
# CUI // SP-PROPIN
# Controlled by: RFX Proposal Engine
# CUI Category: PROPIN
# Distribution: D
# POC: RFX Proposal Engine Administrator
"""RFX proposal pipeline: extraction -> parallel analysis -> strategy.

Phase 1  Extraction gateway (the only call that crosses the retry layer).
         Failure aborts the run before any analysis task is created.
         Tests supplied to the pipeline are priced alongside the extracted
         ones; on a name clash the supplied test wins.
Phase 2  Matching, pricing, risk and compliance run concurrently, each a
         pure function executed in a worker thread. The first failure
         cancels the sibling tasks and aborts the run; a worker thread
         already computing keeps going, and its result is discarded.
Phase 3  Strategy synthesis over all four completed results.

Each run opens the progress channel on entry and closes it on exit,
whether the run succeeds or not.

Usage:
    pipeline = ProposalPipeline(ExtractionGateway(), load_catalog("catalog.json"))
    bundle = asyncio.run(pipeline.run(rfp))
"""

import asyncio
import logging
import random
from datetime import date, datetime, timezone
from typing import Dict, List, Optional, Sequence

from rfxcore.competitive.strategy import synthesize_strategy
from rfxcore.errors import PipelineError
from rfxcore.rfx.bom_pricer import price_requirements
from rfxcore.rfx.compliance import check_compliance
from rfxcore.rfx.events import Component, EventLevel, ProgressChannel
from rfxcore.rfx.models import (
    RFP,
    CatalogItem,
    ComplianceResult,
    ComplianceStatus,
    CostBreakdown,
    MatchResult,
    ProposalBundle,
    Requirement,
    RiskAssessment,
    RiskLevel,
    TestRequirement,
)
from rfxcore.rfx.risk import assess_risk
from rfxcore.rfx.settings import ProposalConfig
from rfxcore.rfx.spec_matcher import match_requirements

logger = logging.getLogger(__name__)

ANALYSIS_PHASES = ("matching", "pricing", "risk", "compliance")


def _merge_tests(supplied: Sequence[TestRequirement],
                 extracted: Sequence[TestRequirement]) -> List[TestRequirement]:
    """Supplied tests first; an extracted test with the same name is dropped."""
    names = {t.test_name.strip().lower() for t in supplied}
    return list(supplied) + [t for t in extracted
                             if t.test_name.strip().lower() not in names]


class ProposalPipeline:
    """Runs one RFP through extraction, analysis and strategy synthesis."""

    def __init__(self, gateway, catalog: Sequence[CatalogItem],
                 config: Optional[ProposalConfig] = None,
                 channel: Optional[ProgressChannel] = None,
                 rng: Optional[random.Random] = None,
                 today: Optional[date] = None,
                 tests: Sequence[TestRequirement] = ()):
        self.gateway = gateway
        self.catalog = tuple(catalog)
        self.tests = tuple(tests)
        self.config = config or ProposalConfig()
        self.channel = channel or ProgressChannel()
        self.rng = rng
        self.today = today

    def _emit(self, component: Component, message: str,
              level: EventLevel = EventLevel.INFO):
        self.channel.emit(component, message, level)

    # ------------------------------------------------------------------
    # Phase 2 tasks
    # ------------------------------------------------------------------

    async def _matching(self, requirements: Sequence[Requirement]) -> List[MatchResult]:
        self._emit(Component.TECHNICAL,
                   f"Comparing {len(requirements)} extracted specs against "
                   f"{len(self.catalog)} catalog items...", EventLevel.THINKING)
        matches = await asyncio.to_thread(match_requirements, requirements, self.catalog)

        threshold = self.config.risk.confidence_threshold
        for m in matches:
            top = m.top_candidate
            if top is None:
                self._emit(Component.TECHNICAL,
                           f"No catalog match for Item {m.item_no}; manual sourcing required.",
                           EventLevel.WARNING)
            elif top.score < threshold:
                self._emit(Component.TECHNICAL,
                           f"Low Confidence Match ({top.score:.1f}%) for Item {m.item_no}.",
                           EventLevel.WARNING)
            else:
                self._emit(Component.TECHNICAL,
                           f'Match: "{top.item.model_name}" (Score: {top.score:.1f}%) '
                           f"for Item {m.item_no}.", EventLevel.SUCCESS)
        return matches

    async def _pricing(self, requirements: Sequence[Requirement],
                       tests: Sequence[TestRequirement]) -> CostBreakdown:
        pricing = self.config.pricing
        self._emit(Component.PRICING,
                   f"Initiating market cost analysis in {pricing.currency}...",
                   EventLevel.THINKING)
        cost = await asyncio.to_thread(
            price_requirements, requirements, self.catalog, tests, pricing,
        )
        manual = sum(1 for line in cost.lines if line.requires_manual_sourcing)
        if manual:
            self._emit(Component.PRICING,
                       f"{manual} line(s) priced at zero pending manual sourcing.",
                       EventLevel.WARNING)
        self._emit(Component.PRICING,
                   f"Bill of Materials Generated. Gross Total: "
                   f"{cost.currency} {cost.grand_total:,.2f}", EventLevel.SUCCESS)
        return cost

    def _assess_risk(self, rfp: RFP, requirements: Sequence[Requirement]) -> RiskAssessment:
        matches = match_requirements(requirements, self.catalog)
        return assess_risk(rfp, matches, self.config.risk, today=self.today)

    async def _risk(self, rfp: RFP, requirements: Sequence[Requirement]) -> RiskAssessment:
        self._emit(Component.RISK, "Scanning commercial terms and stock liabilities...",
                   EventLevel.THINKING)
        risk = await asyncio.to_thread(self._assess_risk, rfp, requirements)
        self._emit(Component.RISK,
                   f"Risk Assessment Complete. Level: {risk.level.value} (Score: {risk.score:g})",
                   EventLevel.WARNING if risk.level is RiskLevel.HIGH else EventLevel.SUCCESS)
        return risk

    async def _compliance(self, rfp: RFP) -> ComplianceResult:
        settings = self.config.compliance
        self._emit(Component.COMPLIANCE, "Verifying ISO/IEC/ASTM standard alignment...",
                   EventLevel.THINKING)
        result = await asyncio.to_thread(
            check_compliance, rfp, settings.checklist, settings.terms_evaluated,
        )
        self._emit(Component.COMPLIANCE,
                   f"Compliance Scan: {result.status.value}. "
                   f"Evaluated {result.terms_evaluated} statutory terms.",
                   EventLevel.SUCCESS if result.status is ComplianceStatus.PASS
                   else EventLevel.WARNING)
        return result

    async def _fan_out(self, rfp: RFP, requirements, tests) -> Dict[str, object]:
        coros = {
            "matching": self._matching(requirements),
            "pricing": self._pricing(requirements, tests),
            "risk": self._risk(rfp, requirements),
            "compliance": self._compliance(rfp),
        }
        tasks = {name: asyncio.create_task(coro, name=f"rfx-{name}")
                 for name, coro in coros.items()}
        try:
            done, pending = await asyncio.wait(
                tasks.values(), return_when=asyncio.FIRST_EXCEPTION,
            )
            failed = [name for name in ANALYSIS_PHASES
                      if tasks[name] in done and tasks[name].exception() is not None]
            if failed:
                for task in pending:
                    task.cancel()
                await asyncio.gather(*pending, return_exceptions=True)
                phase = failed[0]
                exc = tasks[phase].exception()
                logger.error("Analysis phase %s failed: %s (cancelled %d sibling tasks)",
                             phase, exc, len(pending))
                self._emit(Component.MAIN,
                           f"{phase.capitalize()} failed: {exc}. Proposal aborted.",
                           EventLevel.ERROR)
                raise PipelineError(phase, exc) from exc
        finally:
            for task in tasks.values():
                if not task.done():
                    task.cancel()
        return {name: task.result() for name, task in tasks.items()}

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    async def run(self, rfp: RFP) -> ProposalBundle:
        """Produce a ProposalBundle for one RFP.

        Raises:
            PipelineError: a phase failed; .phase names it ("extraction",
                "matching", "pricing", "risk", "compliance" or "strategy")
                and the cause is chained.
        """
        self.channel.open()
        try:
            return await self._run(rfp)
        finally:
            self.channel.close()

    async def _run(self, rfp: RFP) -> ProposalBundle:
        self._emit(Component.MAIN, f'Reading RFP: "{rfp.title}"', EventLevel.THINKING)

        # Phase 1
        try:
            extraction = await self.gateway.extract(rfp, channel=self.channel)
        except Exception as exc:
            self._emit(Component.MAIN, f"Extraction Failed: {exc}", EventLevel.ERROR)
            raise PipelineError("extraction", exc) from exc

        requirements = list(extraction.requirements)
        tests = _merge_tests(self.tests, extraction.tests)
        self._emit(Component.MAIN,
                   f"Extraction success: Found {len(requirements)} items.",
                   EventLevel.SUCCESS)
        if extraction.inferred:
            self._emit(Component.MAIN,
                       "Requirements were inferred by the extraction service rather than "
                       "read from the RFP text. Verify before submission.",
                       EventLevel.WARNING)

        # Phase 2
        results = await self._fan_out(rfp, requirements, tests)
        matches = results["matching"]
        cost = results["pricing"]
        risk = results["risk"]
        compliance = results["compliance"]

        # Phase 3
        self._emit(Component.STRATEGY,
                   "Synthesizing Tech, Price, Risk & Compliance signals...",
                   EventLevel.THINKING)
        try:
            strategy = synthesize_strategy(matches, cost, risk, compliance,
                                           rng=self.rng, config=self.config.strategy)
        except Exception as exc:
            self._emit(Component.STRATEGY, f"Strategy synthesis failed: {exc}",
                       EventLevel.ERROR)
            raise PipelineError("strategy", exc) from exc
        self._emit(Component.STRATEGY,
                   f"Win Probability: {strategy.win_probability}%. "
                   f"Strategy: {strategy.competitor.position.value}", EventLevel.SUCCESS)

        self._emit(Component.RESPONSE,
                   "Compiling technical sheets, BOM, and Strategic Executive Summary...",
                   EventLevel.THINKING)
        bundle = ProposalBundle(
            rfp_id=rfp.rfp_id,
            cost=cost,
            risk=risk,
            compliance=compliance,
            competitor=strategy.competitor,
            win_probability=strategy.win_probability,
            executive_summary=strategy.summary,
            matches=tuple(matches),
            generated_at=datetime.now(timezone.utc).isoformat(),
            extraction_inferred=extraction.inferred,
        )
        self._emit(Component.RESPONSE, "Final Proposal Package Generated.", EventLevel.SUCCESS)
        logger.info("Proposal for %s: %s %.2f, win probability %d%%",
                    rfp.rfp_id or rfp.title, cost.currency, cost.grand_total,
                    strategy.win_probability)
        return bundle


def run_pipeline(rfp: RFP, gateway, catalog: Sequence[CatalogItem],
                 config: Optional[ProposalConfig] = None,
                 channel: Optional[ProgressChannel] = None,
                 rng: Optional[random.Random] = None,
                 today: Optional[date] = None,
                 tests: Sequence[TestRequirement] = ()) -> ProposalBundle:
    """Synchronous entry point: run the pipeline in a fresh event loop."""
    pipeline = ProposalPipeline(gateway, catalog, config=config, channel=channel,
                                rng=rng, today=today, tests=tests)
    return asyncio.run(pipeline.run(rfp))
