#!/usr/bin/env python3
# CUI // SP-PROPIN
# Controlled by: RFX Proposal Engine
# CUI Category: PROPIN
# Distribution: D
# POC: RFX Proposal Engine Administrator
"""Vendor-agnostic LLM provider base classes and data types.

Providers are deliberately thin: they make one call and let errors
propagate. Retrying and timeouts belong to rfxcore.resilience.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class LLMRequest:
    """Vendor-agnostic LLM invocation request."""
    messages: List[Dict[str, Any]] = field(default_factory=list)
    system_prompt: str = ""
    max_tokens: int = 4096
    temperature: float = 0.1
    output_schema: Optional[Dict] = None
    stop_sequences: Optional[List[str]] = None
    rfp_id: str = ""
    classification: str = "CUI // SP-PROPIN"


@dataclass
class LLMResponse:
    """Vendor-agnostic LLM invocation response."""
    content: str = ""
    model_id: str = ""
    provider: str = ""
    input_tokens: int = 0
    output_tokens: int = 0
    duration_ms: int = 0
    stop_reason: str = ""
    classification: str = "CUI // SP-PROPIN"


class LLMProvider(ABC):
    """Abstract base class for LLM providers."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider identifier."""

    @abstractmethod
    def invoke(self, request: LLMRequest, model_id: str, model_config: dict) -> LLMResponse:
        """Invoke the LLM synchronously."""

    async def ainvoke(self, request: LLMRequest, model_id: str,
                      model_config: dict) -> LLMResponse:
        """Invoke without blocking the event loop. Default: run invoke() in a thread."""
        return await asyncio.to_thread(self.invoke, request, model_id, model_config)

    @abstractmethod
    def check_availability(self, model_id: str) -> bool:
        """Check if a specific model is available."""
