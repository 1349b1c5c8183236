#!/usr/bin/env python3
# CUI // SP-PROPIN
"""RFX compliance checker: standards checklist against the RFP text.

Each checklist item names a standard and the phrases that count as a
reference to it. Missing references make the proposal Conditional; the
terms-evaluated count is reported as-is and feeds no computation.

Default checklist:
  ISO 9001 QMS  - "iso", "international organization for standardization"
"""

import logging
import re
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence, Tuple

from rfxcore.rfx.models import RFP, ComplianceResult, ComplianceStatus

logger = logging.getLogger(__name__)

QMS_STANDARD = "ISO 9001 QMS"
DEFAULT_TERMS_EVALUATED = 14


@dataclass(frozen=True)
class ChecklistItem:
    name: str
    patterns: Tuple[str, ...]

    def present_in(self, text: str) -> bool:
        # Whole words only: "iso" must not match "isolator".
        return any(re.search(rf"\b{re.escape(p.lower())}\b", text)
                   for p in self.patterns)


DEFAULT_CHECKLIST: Tuple[ChecklistItem, ...] = (
    ChecklistItem(QMS_STANDARD,
                  ("iso", "international organization for standardization")),
)


def build_checklist(entries: Iterable[dict]) -> Tuple[ChecklistItem, ...]:
    """Build checklist items from config entries ({name, patterns})."""
    items = []
    for i, entry in enumerate(entries):
        name = str(entry.get("name", "")).strip()
        patterns = entry.get("patterns") or []
        if not name or not patterns:
            raise ValueError(f"compliance checklist entry {i} needs a name and patterns")
        items.append(ChecklistItem(name, tuple(str(p) for p in patterns)))
    return tuple(items)


def _details(missing: Sequence[str]) -> str:
    if not missing:
        return "All standard regulatory clauses identified."
    if list(missing) == [QMS_STANDARD]:
        return "Explicit QMS requirement not found in summary text."
    return f"Required references not found: {', '.join(missing)}."


def check_compliance(rfp: RFP,
                     checklist: Optional[Sequence[ChecklistItem]] = None,
                     terms_evaluated: int = DEFAULT_TERMS_EVALUATED) -> ComplianceResult:
    """Evaluate the RFP text (title + excerpt) against the checklist."""
    checklist = DEFAULT_CHECKLIST if checklist is None else checklist
    text = f"{rfp.title}\n{rfp.excerpt or ''}".lower()

    missing = tuple(item.name for item in checklist if not item.present_in(text))
    status = ComplianceStatus.CONDITIONAL if missing else ComplianceStatus.PASS

    logger.info("Compliance scan for %s: %s (%d missing, %d terms evaluated)",
                rfp.rfp_id or rfp.title, status.value, len(missing), terms_evaluated)
    return ComplianceResult(
        status=status,
        missing_standards=missing,
        terms_evaluated=terms_evaluated,
        details=_details(missing),
    )
