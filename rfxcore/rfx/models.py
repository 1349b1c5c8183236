#!/usr/bin/env python3
# CUI // SP-PROPIN
"""Data records exchanged between the RFX pipeline components.

Requirement, TestRequirement, CatalogItem and RFP are immutable inputs.
ScoredCandidate / MatchResult come out of the spec matcher, PricingLine /
CostBreakdown out of the BOM pricer, and ProposalBundle is the frozen result
of one pipeline run. Every record has to_dict() for JSON output.
"""

import math
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple, Union

RawValue = Union[str, int, float]

MANUAL_SOURCING_MODEL = "Manual Source Req"


class RiskLevel(Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


class ComplianceStatus(Enum):
    PASS = "Pass"
    CONDITIONAL = "Conditional"
    FAIL = "Fail"


class PricePosition(Enum):
    PREMIUM = "Premium"
    COMPETITIVE = "Competitive"
    LOW_COST = "Low-Cost"


# ---------------------------------------------------------------------------
# Parameter values
# ---------------------------------------------------------------------------

_NUM = r"-?\d+(?:\.\d+)?|-?\.\d+"
_RANGE_RE = re.compile(rf"^\s*({_NUM})\s*-\s*({_NUM})\s*$")
_QUANTITY_RE = re.compile(rf"^\s*({_NUM})\s*([A-Za-z%Ω]*)\s*$")
_THOUSANDS_RE = re.compile(r"(?<=\d),(?=\d{3}(?!\d))")

SI_PREFIXES = {"k": 1e3, "K": 1e3, "M": 1e6}
# Units an SI prefix may scale; "kg", "mm" and friends are left alone.
PREFIXABLE_UNITS = {"", "v", "va", "var", "vah", "w", "wh", "hz", "a"}


def _parse_quantity(text: str) -> Optional[float]:
    """Parse '11000', '1,000', '11kV', '500 kVA', '3C' into a float (None if not numeric)."""
    m = _QUANTITY_RE.match(_THOUSANDS_RE.sub("", text))
    if not m:
        return None
    number = float(m.group(1))
    unit = m.group(2)
    if unit and unit[0] in SI_PREFIXES and unit[1:].lower() in PREFIXABLE_UNITS:
        number *= SI_PREFIXES[unit[0]]
    return number if math.isfinite(number) else None


@dataclass(frozen=True)
class ParamValue:
    """A parameter value tagged as numeric, range or text.

    Parsing happens once, when a value is scored; the raw value is kept for
    display and for the categorical fallback.
    """
    kind: str
    raw: RawValue
    text: str
    number: Optional[float] = None
    low: Optional[float] = None
    high: Optional[float] = None

    NUMERIC = "numeric"
    RANGE = "range"
    TEXT = "text"

    @classmethod
    def parse(cls, raw: Any) -> Optional["ParamValue"]:
        """Return the tagged value, or None for an empty value."""
        if raw is None:
            return None
        if isinstance(raw, bool):
            return cls(cls.TEXT, raw, str(raw).lower())
        if isinstance(raw, (int, float)):
            if not math.isfinite(raw):
                return cls(cls.TEXT, raw, str(raw).lower())
            return cls(cls.NUMERIC, raw, str(raw), number=float(raw))

        text = str(raw).strip()
        if not text:
            return None
        norm = text.lower()

        m = _RANGE_RE.match(_THOUSANDS_RE.sub("", text))
        if m:
            low, high = float(m.group(1)), float(m.group(2))
            if low > high:
                low, high = high, low
            return cls(cls.RANGE, raw, norm, low=low, high=high)

        number = _parse_quantity(text)
        if number is not None:
            return cls(cls.NUMERIC, raw, norm, number=number)
        return cls(cls.TEXT, raw, norm)

    @property
    def is_numeric(self) -> bool:
        return self.kind == self.NUMERIC

    @property
    def is_range(self) -> bool:
        return self.kind == self.RANGE


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------

def _require(data: Mapping, *keys: str, default: Any = None) -> Any:
    """Return the first present key (snake_case or camelCase alias)."""
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


def _number(value: Any, name: str) -> float:
    if isinstance(value, bool):
        raise ValueError(f"{name} must be a number, got {value!r}")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValueError(f"{name} must be a number, got {value!r}") from None
    if not math.isfinite(number):
        raise ValueError(f"{name} must be finite, got {value!r}")
    return number


@dataclass(frozen=True)
class Requirement:
    """One structured line item extracted from an RFP."""
    item_no: str
    description: str
    qty: float
    unit: str = ""
    params: Mapping[str, RawValue] = field(default_factory=dict)

    def __post_init__(self):
        # Freeze the parameter order as given.
        object.__setattr__(self, "params", dict(self.params))
        if not math.isfinite(self.qty) or self.qty < 0:
            raise ValueError(f"Requirement {self.item_no}: qty must be finite and >= 0")

    @classmethod
    def from_dict(cls, data: Mapping) -> "Requirement":
        return cls(
            item_no=str(_require(data, "item_no", "itemNo", default="")),
            description=str(_require(data, "description", default="")),
            qty=_number(_require(data, "qty", default=0), "qty"),
            unit=str(_require(data, "unit", default="")),
            params=dict(_require(data, "params", default={})),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "item_no": self.item_no,
            "description": self.description,
            "qty": self.qty,
            "unit": self.unit,
            "params": dict(self.params),
        }


@dataclass(frozen=True)
class TestRequirement:
    """A test the buyer requires, charged per unit and/or per lot."""
    __test__ = False  # not a pytest test class

    test_id: str
    test_name: str
    scope: str = ""
    per_unit: bool = False
    per_lot: bool = False
    remarks: str = ""

    @classmethod
    def from_dict(cls, data: Mapping) -> "TestRequirement":
        return cls(
            test_id=str(_require(data, "test_id", "id", default="")),
            test_name=str(_require(data, "test_name", "testName", default="")),
            scope=str(_require(data, "scope", default="")),
            per_unit=bool(_require(data, "per_unit", "perUnit", default=False)),
            per_lot=bool(_require(data, "per_lot", "perLot", default=False)),
            remarks=str(_require(data, "remarks", default="")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "test_id": self.test_id,
            "test_name": self.test_name,
            "scope": self.scope,
            "per_unit": self.per_unit,
            "per_lot": self.per_lot,
            "remarks": self.remarks,
        }


@dataclass(frozen=True)
class CatalogItem:
    """A SKU from the external inventory subsystem."""
    sku_id: str
    model_name: str
    manufacturer: str = ""
    specs: Mapping[str, RawValue] = field(default_factory=dict)
    unit_price: float = 0.0
    stock_qty: float = 0.0
    min_stock_threshold: float = 0.0

    def __post_init__(self):
        object.__setattr__(self, "specs", dict(self.specs))

    @classmethod
    def from_dict(cls, data: Mapping) -> "CatalogItem":
        sku_id = _require(data, "sku_id", "id")
        if sku_id in (None, ""):
            raise ValueError("catalog item is missing an id")
        return cls(
            sku_id=str(sku_id),
            model_name=str(_require(data, "model_name", "modelName", default="")),
            manufacturer=str(_require(data, "manufacturer", default="")),
            specs=dict(_require(data, "specs", default={})),
            unit_price=_number(_require(data, "unit_price", "unitPrice", default=0), "unit_price"),
            stock_qty=_number(_require(data, "stock_qty", "stockQty", default=0), "stock_qty"),
            min_stock_threshold=_number(
                _require(data, "min_stock_threshold", "minStockThreshold", default=0),
                "min_stock_threshold",
            ),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sku_id": self.sku_id,
            "model_name": self.model_name,
            "manufacturer": self.manufacturer,
            "specs": dict(self.specs),
            "unit_price": self.unit_price,
            "stock_qty": self.stock_qty,
            "min_stock_threshold": self.min_stock_threshold,
        }


def parse_due_date(value: Any) -> Optional[date]:
    """Parse an ISO date or datetime; None/'' means no due date."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        raise ValueError(f"Unparseable due date: {value!r}") from None


@dataclass(frozen=True)
class RFP:
    """The procurement request being answered."""
    rfp_id: str
    title: str
    excerpt: str = ""
    client: str = ""
    due_date: Optional[date] = None
    url: str = ""

    @classmethod
    def from_dict(cls, data: Mapping) -> "RFP":
        title = _require(data, "title", default="")
        if not str(title).strip():
            raise ValueError("RFP title is required")
        return cls(
            rfp_id=str(_require(data, "rfp_id", "id", default="")),
            title=str(title),
            excerpt=str(_require(data, "excerpt", default="")),
            client=str(_require(data, "client", default="")),
            due_date=parse_due_date(_require(data, "due_date", "dueDate")),
            url=str(_require(data, "url", default="")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rfp_id": self.rfp_id,
            "title": self.title,
            "client": self.client,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "url": self.url,
            "excerpt": self.excerpt,
        }


# ---------------------------------------------------------------------------
# Matching
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ScoredCandidate:
    item: CatalogItem
    score: float
    breakdown: Mapping[str, float] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sku_id": self.item.sku_id,
            "model_name": self.item.model_name,
            "manufacturer": self.item.manufacturer,
            "score": round(self.score, 2),
            "breakdown": {k: round(v, 4) for k, v in self.breakdown.items()},
        }


@dataclass(frozen=True)
class MatchResult:
    """Top candidates for one requirement."""
    item_no: str
    requested_params: Mapping[str, RawValue]
    candidates: Tuple[ScoredCandidate, ...]
    selected_sku_id: Optional[str]
    is_mto: bool
    requested_qty: float

    @property
    def top_candidate(self) -> Optional[ScoredCandidate]:
        return self.candidates[0] if self.candidates else None

    @property
    def top_score(self) -> float:
        return self.candidates[0].score if self.candidates else 0.0

    @property
    def selected(self) -> Optional[ScoredCandidate]:
        for candidate in self.candidates:
            if candidate.item.sku_id == self.selected_sku_id:
                return candidate
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "item_no": self.item_no,
            "requested_params": dict(self.requested_params),
            "candidates": [c.to_dict() for c in self.candidates],
            "selected_sku_id": self.selected_sku_id,
            "is_mto": self.is_mto,
            "requested_qty": self.requested_qty,
        }


# ---------------------------------------------------------------------------
# Pricing
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PricingLine:
    item_no: str
    model_name: str
    unit_price: float
    qty: float
    product_total: float
    test_costs: float
    line_total: float
    notes: str
    requires_manual_sourcing: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "item_no": self.item_no,
            "model_name": self.model_name,
            "unit_price": self.unit_price,
            "qty": self.qty,
            "product_total": self.product_total,
            "test_costs": self.test_costs,
            "line_total": self.line_total,
            "notes": self.notes,
            "requires_manual_sourcing": self.requires_manual_sourcing,
        }


@dataclass(frozen=True)
class CostBreakdown:
    lines: Tuple[PricingLine, ...]
    subtotal: float
    logistics: float
    contingency: float
    taxes: float
    grand_total: float
    currency: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "lines": [line.to_dict() for line in self.lines],
            "subtotal": self.subtotal,
            "logistics": self.logistics,
            "contingency": self.contingency,
            "taxes": self.taxes,
            "grand_total": self.grand_total,
            "currency": self.currency,
        }


# ---------------------------------------------------------------------------
# Risk, compliance, strategy
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RiskAssessment:
    score: float
    level: RiskLevel
    factors: Tuple[str, ...]
    mitigation: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "score": self.score,
            "level": self.level.value,
            "factors": list(self.factors),
            "mitigation": self.mitigation,
        }


@dataclass(frozen=True)
class ComplianceResult:
    status: ComplianceStatus
    missing_standards: Tuple[str, ...]
    terms_evaluated: int
    details: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "missing_standards": list(self.missing_standards),
            "terms_evaluated": self.terms_evaluated,
            "details": self.details,
        }


@dataclass(frozen=True)
class CompetitorSnapshot:
    our_price: float
    market_avg: float
    market_high: float
    market_low: float
    position: PricePosition

    def to_dict(self) -> Dict[str, Any]:
        return {
            "our_price": round(self.our_price, 2),
            "market_avg": round(self.market_avg, 2),
            "market_high": round(self.market_high, 2),
            "market_low": round(self.market_low, 2),
            "position": self.position.value,
        }


@dataclass(frozen=True)
class StrategyResult:
    win_probability: int
    competitor: CompetitorSnapshot
    technical_score: float
    price_score: float
    summary: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "win_probability": self.win_probability,
            "competitor": self.competitor.to_dict(),
            "technical_score": round(self.technical_score, 2),
            "price_score": self.price_score,
            "summary": self.summary,
        }


@dataclass(frozen=True)
class ProposalBundle:
    """Everything produced by one pipeline run, handed to the renderer."""
    rfp_id: str
    cost: CostBreakdown
    risk: RiskAssessment
    compliance: ComplianceResult
    competitor: CompetitorSnapshot
    win_probability: int
    executive_summary: str
    matches: Tuple[MatchResult, ...] = ()
    generated_at: str = ""
    extraction_inferred: bool = False

    @property
    def lines(self) -> Tuple[PricingLine, ...]:
        return self.cost.lines

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rfp_id": self.rfp_id,
            "generated_at": self.generated_at,
            "pricing_table": [line.to_dict() for line in self.cost.lines],
            "subtotal": self.cost.subtotal,
            "logistics": self.cost.logistics,
            "contingency": self.cost.contingency,
            "taxes": self.cost.taxes,
            "grand_total": self.cost.grand_total,
            "currency": self.cost.currency,
            "risk_analysis": self.risk.to_dict(),
            "compliance_check": self.compliance.to_dict(),
            "competitor_analysis": self.competitor.to_dict(),
            "win_probability": self.win_probability,
            "executive_summary": self.executive_summary,
            "matches": [m.to_dict() for m in self.matches],
            "extraction_inferred": self.extraction_inferred,
        }
