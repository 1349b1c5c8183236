#!/usr/bin/env python3
# CUI // SP-PROPIN
"""OpenAI-compatible LLM provider.

Supports any OpenAI-compatible API: OpenAI, Ollama, vLLM, LM Studio, etc.
API errors (rate limits, 5xx, timeouts) are raised unchanged so the retry
layer can tell transient failures from fatal ones.
"""

import logging
import time
from typing import Dict, List

from openai import AsyncOpenAI, OpenAI, OpenAIError

from rfxcore.llm.provider import LLMProvider, LLMRequest, LLMResponse

logger = logging.getLogger(__name__)


class OpenAICompatibleProvider(LLMProvider):
    """Provider for OpenAI-compatible REST APIs."""

    def __init__(self, api_key: str = "", base_url: str = "https://api.openai.com/v1",
                 provider_label: str = "openai"):
        self._api_key = api_key or "unset"
        self._base_url = base_url.rstrip("/")
        self._label = provider_label
        # The SDK does its own retrying; that is disabled here.
        self._client = OpenAI(api_key=self._api_key, base_url=self._base_url,
                              max_retries=0)
        self._async_client = AsyncOpenAI(api_key=self._api_key,
                                         base_url=self._base_url, max_retries=0)

    @property
    def provider_name(self) -> str:
        return self._label

    def _messages(self, request: LLMRequest) -> List[Dict]:
        messages = list(request.messages)
        if request.system_prompt and not any(m.get("role") == "system" for m in messages):
            messages = [{"role": "system", "content": request.system_prompt}] + messages
        return messages

    def _create_kwargs(self, request: LLMRequest, model_id: str) -> Dict:
        kwargs = {
            "model": model_id,
            "messages": self._messages(request),
            "max_tokens": request.max_tokens,
            "temperature": request.temperature,
        }
        if request.stop_sequences:
            kwargs["stop"] = request.stop_sequences
        if request.output_schema is not None:
            kwargs["response_format"] = {"type": "json_object"}
        return kwargs

    def _to_response(self, resp, model_id: str, start: float) -> LLMResponse:
        choice = resp.choices[0]
        return LLMResponse(
            content=choice.message.content or "",
            model_id=model_id,
            provider=self._label,
            input_tokens=getattr(resp.usage, "prompt_tokens", 0) or 0,
            output_tokens=getattr(resp.usage, "completion_tokens", 0) or 0,
            duration_ms=int((time.time() - start) * 1000),
            stop_reason=str(choice.finish_reason),
        )

    def invoke(self, request: LLMRequest, model_id: str, model_config: dict) -> LLMResponse:
        start = time.time()
        resp = self._client.chat.completions.create(**self._create_kwargs(request, model_id))
        return self._to_response(resp, model_id, start)

    async def ainvoke(self, request: LLMRequest, model_id: str,
                      model_config: dict) -> LLMResponse:
        start = time.time()
        resp = await self._async_client.chat.completions.create(
            **self._create_kwargs(request, model_id)
        )
        response = self._to_response(resp, model_id, start)
        logger.debug("%s/%s answered in %d ms (%d in, %d out)", self._label, model_id,
                     response.duration_ms, response.input_tokens, response.output_tokens)
        return response

    def check_availability(self, model_id: str) -> bool:
        try:
            models = self._client.models.list()
            return model_id in [m.id for m in models.data]
        except OpenAIError as exc:
            logger.debug("Availability probe for %s failed: %s", model_id, exc)
            return False
