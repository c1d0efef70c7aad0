"""
LLM client for generating replacement copy.

This module wraps the Anthropic Claude API behind a single
``generate(prompt)`` call. Output is untrusted and not repeatable across
calls; callers validate it before building edit directives.
"""

import logging
import os
from typing import Optional, Protocol

import anthropic
import httpx

from .config import DEFAULT_MODEL
from .errors import LLMClientError

logger = logging.getLogger(__name__)


# System prompt shared by every generation request
SEO_SYSTEM_PROMPT = """You are an expert SEO copywriter improving pages of a marketing website.

CRITICAL RULES - MUST FOLLOW:
1. Use the target keyword as a COMPLETE PHRASE - never split or reorder it
2. Do not invent facts, prices, statistics or claims about the business
3. Keep the copy natural and readable - avoid keyword stuffing
4. Respect every length limit given in the request

OUTPUT FORMAT:
- Return ONLY the requested text or HTML fragment
- Do NOT include explanations, labels or commentary
- Do NOT wrap the answer in quotes or markdown code fences unless asked"""


class TextGenerator(Protocol):
    """Anything that turns a prompt into text."""

    def generate(self, prompt: str, max_tokens: int = 400) -> str:
        ...


class LLMClient:
    """
    Client for LLM-based copy generation.

    Supports Anthropic Claude API.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = DEFAULT_MODEL,
        temperature: float = 0.7,
        timeout: float = 60.0,
    ):
        """
        Initialize the LLM client.

        Args:
            api_key: API key for the LLM provider. If None, reads from ANTHROPIC_API_KEY env var.
            model: Model identifier to use.
            temperature: Sampling temperature.
            timeout: Request timeout in seconds.
        """
        self.api_key = api_key or os.environ.get("ANTHROPIC_API_KEY")
        self.model = model
        self.temperature = temperature

        if not self.api_key:
            raise LLMClientError(
                "No API key provided. Set ANTHROPIC_API_KEY environment variable "
                "or pass api_key parameter."
            )

        # Explicit timeouts so one slow call cannot stall a cycle
        http_client = httpx.Client(
            timeout=httpx.Timeout(timeout, connect=30.0),
            follow_redirects=True,
        )
        self.client = anthropic.Anthropic(
            api_key=self.api_key,
            http_client=http_client,
        )

    def generate(
        self,
        prompt: str,
        max_tokens: int = 400,
        system: str = SEO_SYSTEM_PROMPT,
    ) -> str:
        """
        Generate text for a prompt.

        Args:
            prompt: User prompt.
            max_tokens: Maximum tokens in response.
            system: System prompt.

        Returns:
            Generated text, stripped of surrounding whitespace.

        Raises:
            LLMClientError: If the API call fails or returns no text.
        """
        try:
            response = self.client.messages.create(
                model=self.model,
                max_tokens=max_tokens,
                temperature=self.temperature,
                system=system,
                messages=[{"role": "user", "content": prompt}],
            )
        except anthropic.APIError as e:
            logger.error(f"LLM API call failed: {e}")
            raise LLMClientError(f"LLM API call failed: {e}") from e
        except httpx.HTTPError as e:
            logger.error(f"LLM transport error: {e}")
            raise LLMClientError(f"LLM transport error: {e}") from e

        text_parts = [
            block.text for block in response.content
            if getattr(block, "type", None) == "text"
        ]
        if not text_parts:
            raise LLMClientError("LLM response contained no text")
        return "".join(text_parts).strip()


def create_llm_client(
    api_key: Optional[str] = None,
    model: str = DEFAULT_MODEL,
) -> LLMClient:
    """
    Factory function to create an LLM client.

    Args:
        api_key: Optional API key. If None, uses environment variable.
        model: Model to use.

    Returns:
        Configured LLMClient instance.
    """
    return LLMClient(api_key=api_key, model=model)
