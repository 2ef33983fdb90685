"""
LLM Client — interface for talking to the language model.

Key concepts:
    - One client object per process, built at startup and passed to whoever
      needs it (analyzer, scraper). No module-level singleton.
    - Temperature: 0 = deterministic, 1 = creative. Opportunity analysis pins 0
      so repeated runs over the same reviews converge on similar structure.
    - Structured output: JSON mode, so the response parses as one object.
    - Embeddings: same endpoint, different model. Used to cluster apps.
"""

import logging
from typing import Optional

from openai import OpenAI, OpenAIError

from niche_finder.config import (
    LLM_API_KEY, LLM_BASE_URL, LLM_MODEL, EMBEDDING_MODEL, LLM_TIMEOUT_SECONDS,
)
from niche_finder.errors import LLMError

logger = logging.getLogger(__name__)


class LLMClient:
    """Thin wrapper around an OpenAI-compatible chat + embeddings endpoint."""

    def __init__(self, api_key: str = LLM_API_KEY, base_url: str = LLM_BASE_URL,
                 model: str = LLM_MODEL, embedding_model: str = EMBEDDING_MODEL,
                 timeout: float = LLM_TIMEOUT_SECONDS, client: Optional[OpenAI] = None):
        self.model = model
        self.embedding_model = embedding_model
        self._client = client or OpenAI(api_key=api_key, base_url=base_url, timeout=timeout)

    def generate_structured(self, prompt: str, temperature: float = 0,
                            force_json: bool = True,
                            system_prompt: Optional[str] = None) -> str:
        """
        Send a prompt and return the raw response text.

        Parsing is left to the caller. The response is expected to be JSON
        when force_json=True, but models don't always comply.

        Raises:
            LLMError: the API call failed or came back empty.
        """
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        kwargs = {}
        if force_json:
            kwargs["response_format"] = {"type": "json_object"}

        try:
            response = self._client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=temperature,
                **kwargs,
            )
        except OpenAIError as e:
            raise LLMError(f"LLM request failed: {e}") from e

        if not response.choices or not response.choices[0].message.content:
            raise LLMError("LLM returned an empty response")

        return response.choices[0].message.content

    def embed(self, text: str) -> list[float]:
        """
        Embed text into a vector.

        Raises:
            LLMError: the API call failed or returned no vector.
        """
        try:
            response = self._client.embeddings.create(model=self.embedding_model, input=text)
        except OpenAIError as e:
            raise LLMError(f"Embedding request failed: {e}") from e

        if not response.data:
            raise LLMError("Embedding endpoint returned no data")
        return list(response.data[0].embedding)
