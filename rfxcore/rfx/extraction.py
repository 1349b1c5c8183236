#!/usr/bin/env python3
# CUI // SP-PROPIN
# Controlled by: RFX Proposal Engine
# CUI Category: PROPIN
# Distribution: D
# POC: RFX Proposal Engine Administrator
"""Extraction gateway: RFP text -> structured requirements and tests.

The only component that talks to the generative extraction service. The
call goes through the LLM router (args/llm_config.yaml, function
"requirement_extraction") and the resilience wrapper's RetryPolicy.

Contract: extract() either returns at least one Requirement or raises
ExtractionError. Malformed payloads are fatal and not retried; transient
failures are retried and surface as ExtractionError once the budget is
spent.

Modes:
    STRICT  the service is told not to invent items (default)
    INFER   the service may propose placeholder items for thin excerpts
            and must flag them with "inferred": true; the flag is carried
            on the result so downstream output can say so
"""

import json
import logging
import math
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from rfxcore.errors import ExtractionError, LLMUnavailableError, RFXError
from rfxcore.llm.provider import LLMRequest
from rfxcore.resilience.retry import RetryPolicy
from rfxcore.rfx.events import Component, EventLevel, ProgressChannel
from rfxcore.rfx.models import RFP, Requirement, TestRequirement

logger = logging.getLogger(__name__)

EXTRACTION_FUNCTION = "requirement_extraction"
MIN_EXTRACTION_RETRIES = 2
DEFAULT_EXTRACTION_POLICY = RetryPolicy(
    max_retries=2, base_delay=2.0, timeout_seconds=30.0, total_budget_seconds=90.0,
)


class ExtractionMode(Enum):
    STRICT = "strict"
    INFER = "infer"


EXTRACTION_SCHEMA = {
    "type": "object",
    "properties": {
        "inferred": {"type": "boolean"},
        "products": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "itemNo": {"type": "string"},
                    "description": {"type": "string"},
                    "qty": {"type": "number"},
                    "unit": {"type": "string"},
                    "technical_specifications": {
                        "type": "array",
                        "items": {
                            "type": "object",
                            "properties": {
                                "param_name": {"type": "string"},
                                "param_value": {"type": "string"},
                            },
                            "required": ["param_name", "param_value"],
                        },
                    },
                },
                "required": ["itemNo", "description", "qty", "unit"],
            },
        },
        "tests": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "id": {"type": "string"},
                    "testName": {"type": "string"},
                    "scope": {"type": "string"},
                    "perUnit": {"type": "boolean"},
                    "perLot": {"type": "boolean"},
                    "remarks": {"type": "string"},
                },
                "required": ["testName", "perUnit", "perLot"],
            },
        },
    },
    "required": ["products"],
}

SYSTEM_PROMPT = (
    "You are an expert technical presales engineer. You read procurement "
    "requests and answer with a single JSON object matching this schema:\n"
    "{schema}"
)

_MODE_INSTRUCTIONS = {
    ExtractionMode.STRICT: (
        "4. Only extract items the text actually names. If it names none, "
        "return an empty products list. Do not invent items."
    ),
    ExtractionMode.INFER: (
        "4. If the excerpt is too thin to name concrete items, propose plausible "
        "placeholder items typical for this scope and set \"inferred\": true "
        "at the top level of the JSON object. Otherwise set \"inferred\": false."
    ),
}

USER_PROMPT = """Analyze the following RFP information to extract product requirements.

RFP Title: "{title}"
RFP Excerpt: "{excerpt}"

CRITICAL INSTRUCTION:
1. FILTER FOR ELECTRICAL / MEP SCOPE.
2. Extract 1-5 main Product Items.
3. Extract ANY and ALL technical parameters as param_name / param_value pairs.
{mode_instruction}
5. List required tests with perUnit / perLot flags."""

_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.DOTALL | re.IGNORECASE)


@dataclass(frozen=True)
class ExtractionResult:
    requirements: Tuple[Requirement, ...]
    tests: Tuple[TestRequirement, ...]
    inferred: bool = False
    model_id: str = ""
    provider: str = ""


def build_request(rfp: RFP, mode: ExtractionMode = ExtractionMode.STRICT) -> LLMRequest:
    """Build the JSON-mode extraction request for one RFP."""
    prompt = USER_PROMPT.format(
        title=rfp.title,
        excerpt=rfp.excerpt,
        mode_instruction=_MODE_INSTRUCTIONS[mode],
    )
    return LLMRequest(
        messages=[{"role": "user", "content": prompt}],
        system_prompt=SYSTEM_PROMPT.format(schema=json.dumps(EXTRACTION_SCHEMA)),
        temperature=0.1,
        output_schema=EXTRACTION_SCHEMA,
        rfp_id=rfp.rfp_id,
    )


# ---------------------------------------------------------------------------
# Payload parsing
# ---------------------------------------------------------------------------

def decode_payload(text: str) -> Dict[str, Any]:
    """Decode the service's answer into a JSON object (fenced blocks allowed)."""
    if not isinstance(text, str) or not text.strip():
        raise ExtractionError("Extraction service returned an empty response")
    body = text.strip()
    fenced = _FENCE_RE.search(body)
    if fenced:
        body = fenced.group(1)
    try:
        data = json.loads(body)
    except json.JSONDecodeError as exc:
        raise ExtractionError(
            f"Extraction payload is not valid JSON: {exc.msg}",
            {"position": exc.pos, "excerpt": body[:200]},
        ) from None
    if not isinstance(data, dict):
        raise ExtractionError(
            f"Extraction payload must be a JSON object, got {type(data).__name__}"
        )
    return data


def _scalar_param(index: int, name: str, value: Any) -> Any:
    if isinstance(value, str):
        return value
    if (isinstance(value, (int, float)) and not isinstance(value, bool)
            and math.isfinite(value)):
        return value
    raise ExtractionError(
        f"product {index}: parameter {name!r} must be a string or finite number, "
        f"got {type(value).__name__}",
        {"product_index": index, "param_name": name},
    )


def _product_params(index: int, product: Mapping) -> Dict[str, Any]:
    params: Dict[str, Any] = {}
    plain = product.get("params")
    if plain is not None:
        if not isinstance(plain, dict):
            raise ExtractionError(f"product {index}: params must be an object",
                                  {"product_index": index})
        for key, value in plain.items():
            if str(key).strip() and value not in (None, ""):
                params[str(key)] = _scalar_param(index, str(key), value)

    specs = product.get("technical_specifications") or []
    if not isinstance(specs, list):
        raise ExtractionError(f"product {index}: technical_specifications must be a list",
                              {"product_index": index})
    for spec in specs:
        if not isinstance(spec, dict):
            continue
        name = str(spec.get("param_name") or "").strip()
        value = spec.get("param_value")
        if name and value not in (None, ""):
            params[name] = _scalar_param(index, name, value)
    return params


def _parse_product(index: int, product: Any) -> Requirement:
    if not isinstance(product, dict):
        raise ExtractionError(f"product {index}: expected an object",
                              {"product_index": index})

    item_no = str(product.get("itemNo") or product.get("item_no") or "").strip()
    description = str(product.get("description") or "").strip()
    if not item_no:
        raise ExtractionError(f"product {index}: missing itemNo", {"product_index": index})
    if not description:
        raise ExtractionError(f"product {index} ({item_no}): missing description",
                              {"product_index": index, "item_no": item_no})

    qty = product.get("qty")
    if (isinstance(qty, bool) or not isinstance(qty, (int, float))
            or not math.isfinite(qty) or qty < 0):
        raise ExtractionError(
            f"product {index} ({item_no}): qty must be a finite non-negative number, got {qty!r}",
            {"product_index": index, "item_no": item_no},
        )
    unit = product.get("unit")
    if not isinstance(unit, str):
        raise ExtractionError(f"product {index} ({item_no}): unit must be a string",
                              {"product_index": index, "item_no": item_no})

    return Requirement(
        item_no=item_no,
        description=description,
        qty=float(qty),
        unit=unit.strip(),
        params=_product_params(index, product),
    )


def _parse_test(index: int, test: Any) -> TestRequirement:
    if not isinstance(test, dict):
        raise ExtractionError(f"test {index}: expected an object", {"test_index": index})
    name = str(test.get("testName") or "").strip()
    if not name:
        raise ExtractionError(f"test {index}: missing testName", {"test_index": index})
    for flag in ("perUnit", "perLot"):
        if not isinstance(test.get(flag), bool):
            raise ExtractionError(f"test {index} ({name}): {flag} must be a boolean",
                                  {"test_index": index})
    return TestRequirement(
        test_id=str(test.get("id") or f"T{index + 1}"),
        test_name=name,
        scope=str(test.get("scope") or ""),
        per_unit=test["perUnit"],
        per_lot=test["perLot"],
        remarks=str(test.get("remarks") or ""),
    )


def requirements_from_payload(
    data: Mapping,
) -> Tuple[List[Requirement], List[TestRequirement]]:
    """Validate a decoded payload into requirements and tests."""
    products = data.get("products")
    if products is None:
        products = []
    if not isinstance(products, list):
        raise ExtractionError("Extraction payload 'products' must be a list")
    requirements = [_parse_product(i, p) for i, p in enumerate(products)]
    if not requirements:
        raise ExtractionError("no requirements extracted")

    tests = data.get("tests")
    if tests is None:
        tests = []
    if not isinstance(tests, list):
        raise ExtractionError("Extraction payload 'tests' must be a list")
    return requirements, [_parse_test(i, t) for i, t in enumerate(tests)]


def parse_extraction_payload(text: str) -> Tuple[List[Requirement], List[TestRequirement]]:
    """Parse the raw service answer. Raises ExtractionError on any violation."""
    return requirements_from_payload(decode_payload(text))


# ---------------------------------------------------------------------------
# Gateway
# ---------------------------------------------------------------------------

class ExtractionGateway:
    """Calls the extraction service through the retry policy and validates the answer."""

    def __init__(self, router=None, policy: Optional[RetryPolicy] = None,
                 mode: ExtractionMode = ExtractionMode.STRICT,
                 function: str = EXTRACTION_FUNCTION,
                 channel: Optional[ProgressChannel] = None):
        self.policy = policy or DEFAULT_EXTRACTION_POLICY
        if self.policy.max_retries < MIN_EXTRACTION_RETRIES:
            raise ValueError(
                f"Extraction needs at least {MIN_EXTRACTION_RETRIES} retries, "
                f"got {self.policy.max_retries}"
            )
        self.mode = mode
        self.function = function
        self.channel = channel
        self._router = router

    @property
    def router(self):
        if self._router is None:
            from rfxcore.llm.router import LLMRouter
            self._router = LLMRouter()
        return self._router

    def _emit(self, channel, message: str, level: EventLevel = EventLevel.INFO):
        if channel is not None and channel.is_open:
            channel.emit(Component.MAIN, message, level)

    async def extract(self, rfp: RFP,
                      channel: Optional[ProgressChannel] = None) -> ExtractionResult:
        """Extract requirements and tests from one RFP.

        Raises:
            ExtractionError: no provider, malformed or empty payload, or the
                retry/timeout budget was exhausted. The underlying failure is
                chained as __cause__.
        """
        channel = channel or self.channel
        label = f"extraction[{rfp.rfp_id or rfp.title[:40]}]"

        try:
            provider, model_id, model_cfg = self.router.get_provider_for_function(self.function)
        except LLMUnavailableError as exc:
            raise ExtractionError(f"No extraction service available: {exc.message}",
                                  exc.details) from exc

        request = build_request(rfp, self.mode)
        self._emit(channel, "Identifying key deliverables and technical standards...")

        def on_retry(attempt: int, delay: float, exc: BaseException):
            self._emit(channel,
                       f"Extraction attempt {attempt} failed ({exc}). Retrying in {delay:g}s...",
                       EventLevel.WARNING)

        try:
            response = await self.policy.run(
                lambda: provider.ainvoke(request, model_id, model_cfg),
                label=label, on_retry=on_retry,
            )
        except ExtractionError:
            raise
        except RFXError as exc:
            raise ExtractionError(f"Extraction failed: {exc.message}", exc.details) from exc
        except Exception as exc:
            raise ExtractionError(
                f"Extraction service error: {exc}",
                {"operation": label, "error_type": type(exc).__name__},
            ) from exc

        data = decode_payload(response.content)
        requirements, tests = requirements_from_payload(data)
        inferred = self.mode is ExtractionMode.INFER and data.get("inferred") is True

        logger.info("Extracted %d requirements and %d tests for %s via %s/%s%s",
                    len(requirements), len(tests), rfp.rfp_id or rfp.title,
                    response.provider or provider.provider_name, model_id,
                    " (inferred)" if inferred else "")
        return ExtractionResult(
            requirements=tuple(requirements),
            tests=tuple(tests),
            inferred=inferred,
            model_id=model_id,
            provider=response.provider or provider.provider_name,
        )
