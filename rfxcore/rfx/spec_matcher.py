#!/usr/bin/env python3
# CUI // SP-PROPIN
# Controlled by: RFX Proposal Engine
# CUI Category: PROPIN (Proprietary Business Information)
# Distribution: D
# POC: RFX Proposal Engine Administrator
"""Deterministic specification matcher: requirements x catalog items.

Every requirement is scored against every catalog item, parameter by
parameter, and the per-parameter scores (0-1) are averaged into a match
score (0-100). Only parameters with a non-empty requested value count.

Parameter rules, first applicable wins:
    range      requirement "min-max", catalog numeric v
               1 inside the interval, else max(0, 1 - distance / width)
    numeric    both numeric
               max(0, 1 - |cat - req| / (|req| + EPSILON))
    text       case-insensitive trimmed equality -> 1,
               substring containment either way -> PARTIAL_TEXT_SCORE, else 0
    absent     spec key missing on the catalog item -> 0

Candidates are ranked with a stable sort, so exact ties keep catalog order.
The top candidate is selected; a requirement is made-to-order (MTO) when the
selected item's stock cannot cover the requested quantity, or when there is
no catalog at all. Pure functions, no I/O.
"""

import re
from typing import Iterable, List, Mapping, Optional, Sequence, Tuple

from rfxcore.rfx.models import (
    CatalogItem,
    MatchResult,
    ParamValue,
    RawValue,
    Requirement,
    ScoredCandidate,
)

EPSILON = 1e-5
PARTIAL_TEXT_SCORE = 0.5
TOP_N = 3

_NON_ALNUM = re.compile(r"[^a-z0-9]")


def _normalise_key(key: str) -> str:
    return _NON_ALNUM.sub("", str(key).lower())


def _is_empty(value: Optional[RawValue]) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def find_spec_value(specs: Mapping[str, RawValue], key: str) -> Optional[RawValue]:
    """Look up a requirement parameter on a catalog item's specs.

    Exact key first, then normalised-key equality ("Rated Voltage" ==
    "rated_voltage"), then normalised containment in catalog order.
    Returns None when nothing usable is found.
    """
    if key in specs and not _is_empty(specs[key]):
        return specs[key]
    wanted = _normalise_key(key)
    if not wanted:
        return None
    for spec_key, value in specs.items():
        if _normalise_key(spec_key) == wanted and not _is_empty(value):
            return value
    for spec_key, value in specs.items():
        norm = _normalise_key(spec_key)
        if norm and (wanted in norm or norm in wanted) and not _is_empty(value):
            return value
    return None


def _text_score(requested: ParamValue, offered: ParamValue) -> float:
    want = str(requested.raw).strip().lower()
    have = str(offered.raw).strip().lower()
    if want == have:
        return 1.0
    if want and have and (want in have or have in want):
        return PARTIAL_TEXT_SCORE
    return 0.0


def score_parameter(requested: RawValue, offered: Optional[RawValue]) -> float:
    """Score one requested parameter value against a catalog value (0-1)."""
    want = ParamValue.parse(requested)
    have = ParamValue.parse(offered)
    if want is None or have is None:
        return 0.0

    if want.is_range and have.is_numeric:
        v = have.number
        if want.low <= v <= want.high:
            return 1.0
        distance = want.low - v if v < want.low else v - want.high
        width = want.high - want.low or 1.0
        return max(0.0, 1.0 - distance / width)

    if want.is_numeric and have.is_numeric:
        diff = abs(have.number - want.number)
        return max(0.0, 1.0 - diff / (abs(want.number) + EPSILON))

    return _text_score(want, have)


def score_item(requirement: Requirement, item: CatalogItem) -> ScoredCandidate:
    """Score one catalog item against a requirement."""
    breakdown = {}
    total = 0.0
    for name, value in requirement.params.items():
        if _is_empty(value):
            continue
        score = score_parameter(value, find_spec_value(item.specs, name))
        breakdown[name] = score
        total += score
    param_count = len(breakdown)
    match_score = (total / param_count) * 100 if param_count else 0.0
    return ScoredCandidate(item=item, score=match_score, breakdown=breakdown)


def rank_candidates(requirement: Requirement,
                    catalog: Iterable[CatalogItem]) -> List[ScoredCandidate]:
    """All catalog items scored and sorted descending (stable on ties)."""
    scored = [score_item(requirement, item) for item in catalog]
    return sorted(scored, key=lambda c: c.score, reverse=True)


def match_requirement(requirement: Requirement,
                      catalog: Sequence[CatalogItem],
                      top_n: int = TOP_N) -> MatchResult:
    """Build the MatchResult (top candidates, selection, MTO flag) for one requirement."""
    ranked = rank_candidates(requirement, catalog)
    top: Tuple[ScoredCandidate, ...] = tuple(ranked[:top_n])
    if not top:
        return MatchResult(
            item_no=requirement.item_no,
            requested_params=dict(requirement.params),
            candidates=(),
            selected_sku_id=None,
            is_mto=True,
            requested_qty=requirement.qty,
        )
    selected = top[0]
    return MatchResult(
        item_no=requirement.item_no,
        requested_params=dict(requirement.params),
        candidates=top,
        selected_sku_id=selected.item.sku_id,
        is_mto=selected.item.stock_qty < requirement.qty,
        requested_qty=requirement.qty,
    )


def match_requirements(requirements: Sequence[Requirement],
                       catalog: Sequence[CatalogItem]) -> List[MatchResult]:
    """Match every requirement against the catalog, in requirement order."""
    catalog = list(catalog)
    return [match_requirement(req, catalog) for req in requirements]
