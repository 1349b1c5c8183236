#!/usr/bin/env python3
# CUI // SP-PROPIN
"""Shared test fixtures for the RFX engine test suite."""

import json
import sys
from datetime import date
from pathlib import Path

import pytest

# Add project root to path
BASE_DIR = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(BASE_DIR))

from rfxcore.llm.provider import LLMProvider, LLMRequest, LLMResponse  # noqa: E402
from rfxcore.rfx.models import RFP, CatalogItem  # noqa: E402


class ScriptedProvider(LLMProvider):
    """LLM provider that replays a script of responses and exceptions."""

    def __init__(self, script):
        self.script = list(script)
        self.requests = []

    @property
    def provider_name(self) -> str:
        return "scripted"

    def invoke(self, request: LLMRequest, model_id: str, model_config: dict) -> LLMResponse:
        self.requests.append(request)
        step = self.script.pop(0) if len(self.script) > 1 else self.script[0]
        if isinstance(step, BaseException):
            raise step
        return LLMResponse(content=step, model_id=model_id, provider=self.provider_name)

    def check_availability(self, model_id: str) -> bool:
        return True


class StaticRouter:
    """Router stand-in that always resolves to one provider."""

    def __init__(self, provider, model_id="test-model"):
        self.provider = provider
        self.model_id = model_id
        self.functions = []

    def get_provider_for_function(self, function):
        self.functions.append(function)
        return self.provider, self.model_id, {"model_id": self.model_id}


@pytest.fixture
def today():
    return date(2024, 5, 1)


@pytest.fixture
def sample_rfp():
    return RFP(
        rfp_id="RFP-2024-001",
        title="Supply of 11kV Distribution Transformers",
        excerpt=("Supply, testing and commissioning of ONAN distribution "
                 "transformers. Bidder must hold ISO 9001 certification."),
        client="Metro Power Utility",
        due_date=date(2024, 6, 1),
    )


@pytest.fixture
def transformer_catalog():
    return [
        CatalogItem(sku_id="TX-500", model_name="PowerCore 500kVA",
                    manufacturer="Voltek",
                    specs={"voltage": 11000, "cooling": "ONAN"},
                    unit_price=1000.0, stock_qty=20),
        CatalogItem(sku_id="TX-500F", model_name="PowerCore 500kVA Fan",
                    manufacturer="Voltek",
                    specs={"voltage": 11000, "cooling": "ONAF"},
                    unit_price=900.0, stock_qty=5),
        CatalogItem(sku_id="TX-33", model_name="GridMaster 33kV",
                    manufacturer="Ampere",
                    specs={"voltage": 33000, "cooling": "ONAN"},
                    unit_price=1500.0, stock_qty=50),
    ]


@pytest.fixture
def extraction_payload():
    return json.dumps({
        "products": [{
            "itemNo": "1",
            "description": "11kV distribution transformer",
            "qty": 10,
            "unit": "Nos",
            "technical_specifications": [
                {"param_name": "voltage", "param_value": "11000"},
                {"param_name": "cooling", "param_value": "ONAN"},
            ],
        }],
        "tests": [],
    })


@pytest.fixture
def make_router():
    """Build a StaticRouter around a ScriptedProvider."""
    def _make(*script):
        return StaticRouter(ScriptedProvider(script))
    return _make


@pytest.fixture
def no_sleep():
    """Injectable sleep that records delays instead of waiting."""
    delays = []

    async def _sleep(seconds):
        delays.append(seconds)

    _sleep.delays = delays
    return _sleep
