"""
Completion Client
------------------
All chat-completion work bookworm asks of the hosted language model:

  answer()           -- grounded answer from the reconstructed context
  summarize()        -- one abstractive summary per post (summary collections)
  extract_entities() -- proper nouns in the query, used as a search filter

Mistral's chat endpoint is OpenAI-compatible, so the openai SDK is the
transport.  API failures propagate after tenacity's retries.
"""
from __future__ import annotations

import json
from typing import Optional

from langsmith import traceable
from loguru import logger
from openai import AsyncOpenAI
from tenacity import retry, stop_after_attempt, wait_exponential

from bookworm.config import LLMSettings
from bookworm.generation.prompts import (
    ANSWER_PROMPT,
    ENTITY_EXAMPLE_RESPONSE,
    ENTITY_INSTRUCTION,
    ENTITY_QUERY,
    SUMMARY_PROMPT,
)
from bookworm.utils.helpers import truncate_text


def parse_entities(raw: str) -> list[str]:
    """
    Parse the entity model's JSON output.

    Accepts a bare list or an object wrapping one list; anything else yields
    no entities rather than failing the query.
    """
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning(f"[Generator] Entity output is not JSON: {truncate_text(raw)!r}")
        return []

    if isinstance(parsed, dict):
        parsed = next((v for v in parsed.values() if isinstance(v, list)), [])
    if not isinstance(parsed, list):
        return []

    entities: list[str] = []
    for item in parsed:
        if isinstance(item, str) and item.strip() and item.strip() not in entities:
            entities.append(item.strip())
    return entities


class Generator:
    """Chat completions against the configured answer / summary / entity models."""

    def __init__(
        self,
        settings: Optional[LLMSettings] = None,
        client: Optional[AsyncOpenAI] = None,
    ) -> None:
        settings = settings or LLMSettings()
        self.answer_model = settings.answer_model
        self.summary_model = settings.summary_model
        self.entity_model = settings.entity_model
        self._client = client or AsyncOpenAI(api_key=settings.api_key, base_url=settings.base_url)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=30),
        reraise=True,
    )
    async def _chat(self, messages: list[dict], model: str, json_mode: bool = False) -> str:
        kwargs: dict = {"model": model, "messages": messages}
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        response = await self._client.chat.completions.create(**kwargs)
        return response.choices[0].message.content or ""

    async def complete(self, prompt: str, model: Optional[str] = None) -> str:
        """Single-turn completion of `prompt` (defaults to the answer model)."""
        return await self._chat([{"role": "user", "content": prompt}], model or self.answer_model)

    @traceable(name="generate_answer", run_type="llm")
    async def answer(self, query: str, context: str) -> str:
        logger.debug(
            f"[Generator] {self.answer_model} | {len(context)} context chars | "
            f"query={truncate_text(query, 60)!r}"
        )
        answer = await self.complete(ANSWER_PROMPT.format(context=context, query=query))
        logger.info(f"[Generator] Answer ready | {len(answer)} chars")
        return answer

    async def summarize(self, message: str) -> str:
        summary = await self.complete(SUMMARY_PROMPT.format(message=message), self.summary_model)
        logger.debug(f"[Generator] Summary: {truncate_text(summary)!r}")
        return summary

    @traceable(name="extract_entities", run_type="llm")
    async def extract_entities(self, query: str) -> list[str]:
        messages = [
            {"role": "user", "content": ENTITY_INSTRUCTION},
            {"role": "assistant", "content": ENTITY_EXAMPLE_RESPONSE},
            {"role": "user", "content": ENTITY_QUERY.format(query=query)},
        ]
        raw = await self._chat(messages, self.entity_model, json_mode=True)
        entities = parse_entities(raw)
        logger.info(f"[Generator] Entities: {entities}")
        return entities
