# =============================================================================
# RepairIQ - Component Explanation Resolver
# =============================================================================
# Turns a predicted label into a beginner-friendly explanation.  The text is
# generated by an OpenAI chat model when one is configured; otherwise, or on
# any provider failure, the static text from scanner/fallback_data.py is used.
# The result always says which of the two branches produced it.
# =============================================================================

import asyncio
import logging
import os
from dataclasses import dataclass
from typing import Optional

from openai import AsyncOpenAI

from scanner.fallback_data import fallback_text

logger = logging.getLogger(__name__)

GENERATED = "generated"
FALLBACK = "fallback"

SYSTEM_PROMPT = """\
You are an expert hardware repair technician and instructor.

Explain the computer component you are given to a beginner student. \
Answer in plain text (no markdown, no HTML) with these sections:

What is it? - a simple, clear definition.
Function - what it does in the computer.
Common Faults - 2-3 common symptoms of failure.
Troubleshooting Steps - numbered steps to diagnose or fix it.
Safety Tips - important warnings (ESD, power off, stored charge).

Keep the tone educational, encouraging and easy to understand.
"""


@dataclass(frozen=True)
class Explanation:
    """Descriptive text for one label and the branch that produced it."""

    label: str
    text: str
    source: str

    @property
    def is_generated(self) -> bool:
        return self.source == GENERATED


class ExplanationResolver:
    """
    Resolve labels to explanations, never failing.

    Args:
        model:   Chat model used for generation.
        timeout: Seconds to wait for the provider before falling back.
        client:  Pre-built AsyncOpenAI client (tests, custom endpoints).
        api_key: API key; defaults to the OPENAI_API_KEY environment variable.
    """

    def __init__(
        self,
        model: str = "gpt-4o-mini",
        timeout: float = 10.0,
        client: Optional[AsyncOpenAI] = None,
        api_key: Optional[str] = None,
    ):
        self._model = model
        self._timeout = timeout
        self._client = client
        self._api_key = api_key

    def _get_client(self) -> Optional[AsyncOpenAI]:
        """Return the OpenAI client, or None when no provider is configured."""
        if self._client is None:
            api_key = self._api_key or os.environ.get("OPENAI_API_KEY")
            if not api_key:
                return None
            self._client = AsyncOpenAI(api_key=api_key, timeout=self._timeout)
        return self._client

    async def resolve(self, label: str) -> Explanation:
        """
        Produce an explanation for ``label``.

        Returns:
            Explanation with source GENERATED, or FALLBACK when generation
            was unavailable or failed.
        """
        text = await self._generate(label)
        if text:
            return Explanation(label=label, text=text, source=GENERATED)
        return Explanation(label=label, text=fallback_text(label), source=FALLBACK)

    async def _generate(self, label: str) -> Optional[str]:
        client = self._get_client()
        if client is None:
            logger.info("No explanation provider configured; using fallback for %s", label)
            return None

        try:
            response = await asyncio.wait_for(
                client.chat.completions.create(
                    model=self._model,
                    max_tokens=600,
                    temperature=0.3,
                    messages=[
                        {"role": "system", "content": SYSTEM_PROMPT},
                        {"role": "user", "content": f'Component: "{label}"'},
                    ],
                ),
                timeout=self._timeout,
            )
            text = (response.choices[0].message.content or "").strip()
        except Exception:
            logger.warning("AI generation failed for %s, using fallback", label, exc_info=True)
            return None

        if not text:
            logger.warning("AI generation returned no text for %s, using fallback", label)
            return None
        return text
