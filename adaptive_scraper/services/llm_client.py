"""
LLM Client - Appels Claude pour l'inférence de sélecteurs et l'extraction de fiches.
"""
import json
import re
from typing import Optional, Dict, Any

import anthropic
from loguru import logger

from adaptive_scraper.core.config import ANTHROPIC_API_KEY, LLM_MODEL, LLM_MAX_TOKENS, LLM_TEMPERATURE
from adaptive_scraper.core.exceptions import InferenceError, JSONParseError

_FENCE_START = re.compile(r"^```(?:json)?\s*\n?", re.IGNORECASE)
_FENCE_END = re.compile(r"\n?```\s*$")
_JSON_BLOCK = re.compile(r"\{[\s\S]*\}")


def parse_json_response(text: str) -> Dict[str, Any]:
    """
    Décode la réponse du modèle de façon tolérante:
    fences markdown retirées, puis premier bloc {...} en dernier recours.
    """
    cleaned = _FENCE_END.sub("", _FENCE_START.sub("", (text or "").strip())).strip()
    try:
        data = json.loads(cleaned)
    except ValueError:
        match = _JSON_BLOCK.search(cleaned)
        if not match:
            raise JSONParseError("No JSON object in model response", source="llm")
        try:
            data = json.loads(match.group(0))
        except ValueError as e:
            raise JSONParseError(f"Invalid JSON in model response: {e}", source="llm") from e

    if not isinstance(data, dict):
        raise JSONParseError("Model response is not a JSON object", source="llm")
    return data


class LLMClient:

    def __init__(
        self,
        api_key: Optional[str] = ANTHROPIC_API_KEY,
        model: str = LLM_MODEL,
        client: Optional[anthropic.Anthropic] = None,
    ):
        self.model = model
        self._api_key = api_key
        self._client = client

    @property
    def client(self) -> anthropic.Anthropic:
        if self._client is None:
            if not self._api_key:
                raise InferenceError("ANTHROPIC_API_KEY is not configured", source="llm")
            self._client = anthropic.Anthropic(api_key=self._api_key)
        return self._client

    def complete(
        self,
        prompt: str,
        system: Optional[str] = None,
        max_tokens: int = LLM_MAX_TOKENS,
        temperature: float = LLM_TEMPERATURE,
    ) -> str:
        """Texte brut de la réponse. Lève InferenceError si l'appel échoue."""
        kwargs = {
            "model": self.model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system:
            kwargs["system"] = system

        try:
            response = self.client.messages.create(**kwargs)
        except anthropic.APIError as e:
            logger.warning(f"LLM call failed: {e}")
            raise InferenceError(f"LLM call failed: {e}", source="llm") from e

        if not response.content:
            raise InferenceError("Empty LLM response", source="llm")
        text = response.content[0].text.strip()
        if not text:
            raise InferenceError("Empty LLM response", source="llm")

        logger.debug(f"LLM response ({len(text)} chars, prompt {len(prompt)} chars)")
        return text

    def complete_json(self, prompt: str, system: Optional[str] = None, **kwargs) -> Dict[str, Any]:
        return parse_json_response(self.complete(prompt, system=system, **kwargs))


_llm_client: Optional[LLMClient] = None


def get_llm_client() -> LLMClient:
    global _llm_client
    if _llm_client is None:
        _llm_client = LLMClient()
    return _llm_client
