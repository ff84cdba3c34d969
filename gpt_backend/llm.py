"""
LLM client adapters.

Every vendor sits behind the same two calls:

    generate(system_prompt, user_prompt, max_tokens) -> text
    stream(system_prompt, user_prompt, max_tokens)   -> iterator of text deltas

so prompt, parsing and validation code never sees a vendor request shape.
SDK clients are built lazily on first use; a missing key only fails the
request that needs it.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, Iterator, Optional, Protocol

import google.generativeai as genai
from openai import OpenAI

from gpt_backend.config import Settings
from gpt_backend.errors import GenerationError

logger = logging.getLogger(__name__)

JSON_HINT = "Provide your response in JSON format."

_FENCE_RE = re.compile(r"```(?:json)?\s*(\{.*\})\s*```", re.DOTALL)


class LLMClient(Protocol):
    name: str
    model: str

    def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int,
        *,
        temperature: float = 0.7,
        json_mode: bool = False,
    ) -> str: ...

    def stream(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int,
        *,
        temperature: float = 0.7,
    ) -> Iterator[str]: ...


# -----------------------------
# Google Generative AI
# -----------------------------
class GeminiClient:
    name = "gemini"

    def __init__(self, api_key: str, model: str = "gemini-1.5-flash"):
        self.api_key = api_key
        self.model = model
        self._model: Optional[Any] = None

    def _get_model(self) -> Any:
        if not self.api_key:
            raise GenerationError("GEMINI_API_KEY not set.")
        if self._model is None:
            genai.configure(api_key=self.api_key)
            self._model = genai.GenerativeModel(self.model)
        return self._model

    @staticmethod
    def _join(system_prompt: str, user_prompt: str, json_mode: bool) -> str:
        # Gemini has no system turn here, so both prompts go in one user message.
        parts = [system_prompt, user_prompt]
        if json_mode:
            parts.append(JSON_HINT)
        return "\n\n".join(p for p in parts if p)

    def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int,
        *,
        temperature: float = 0.7,
        json_mode: bool = False,
    ) -> str:
        model = self._get_model()
        config: Dict[str, Any] = {"temperature": temperature, "max_output_tokens": max_tokens}
        if json_mode:
            config["response_mime_type"] = "application/json"

        try:
            response = model.generate_content(
                self._join(system_prompt, user_prompt, json_mode),
                generation_config=genai.types.GenerationConfig(**config),
            )
            text = (response.text or "").strip()
        except Exception as e:
            logger.error("Gemini API error", exc_info=True)
            raise GenerationError(f"Failed to generate content: {e}") from e

        if not text:
            raise GenerationError("Empty response received")
        return text

    def stream(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int,
        *,
        temperature: float = 0.7,
    ) -> Iterator[str]:
        model = self._get_model()
        try:
            response = model.generate_content(
                self._join(system_prompt, user_prompt, False),
                generation_config=genai.types.GenerationConfig(
                    temperature=temperature,
                    max_output_tokens=max_tokens,
                ),
                stream=True,
            )
            for chunk in response:
                text = getattr(chunk, "text", "") or ""
                if text:
                    yield text
        except Exception as e:
            logger.error("Gemini streaming error", exc_info=True)
            raise GenerationError(f"Failed to generate content: {e}") from e


# -----------------------------
# OpenAI
# -----------------------------
class OpenAIClient:
    name = "openai"

    def __init__(self, api_key: str, model: str = "gpt-3.5-turbo"):
        self.api_key = api_key
        self.model = model
        self._client: Optional[OpenAI] = None

    def _get_client(self) -> OpenAI:
        if not self.api_key:
            raise GenerationError("OPENAI_API_KEY not set.")
        if self._client is None:
            self._client = OpenAI(api_key=self.api_key)
        return self._client

    @staticmethod
    def _messages(system_prompt: str, user_prompt: str):
        messages = [{"role": "user", "content": user_prompt}]
        if system_prompt:
            messages.insert(0, {"role": "system", "content": system_prompt})
        return messages

    def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int,
        *,
        temperature: float = 0.7,
        json_mode: bool = False,
    ) -> str:
        client = self._get_client()
        kwargs: Dict[str, Any] = {}
        if json_mode:
            # Ask the model to return strict JSON.
            kwargs["response_format"] = {"type": "json_object"}

        try:
            resp = client.chat.completions.create(
                model=self.model,
                messages=self._messages(system_prompt, user_prompt),
                temperature=temperature,
                max_tokens=max_tokens,
                **kwargs,
            )
        except Exception as e:
            # Network issues, auth issues, model issues, etc.
            logger.error("OpenAI request failed", exc_info=True)
            raise GenerationError(f"OpenAI request failed: {e}") from e

        content = (resp.choices[0].message.content or "").strip() if resp.choices else ""
        if not content:
            raise GenerationError("Empty response received")
        return content

    def stream(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int,
        *,
        temperature: float = 0.7,
    ) -> Iterator[str]:
        client = self._get_client()
        try:
            stream = client.chat.completions.create(
                model=self.model,
                messages=self._messages(system_prompt, user_prompt),
                temperature=temperature,
                max_tokens=max_tokens,
                stream=True,
            )
            for chunk in stream:
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta.content or ""
                if delta:
                    yield delta
        except Exception as e:
            logger.error("OpenAI streaming failed", exc_info=True)
            raise GenerationError(f"OpenAI request failed: {e}") from e


def build_client(settings: Settings) -> LLMClient:
    if settings.llm_provider == "openai":
        return OpenAIClient(settings.openai_api_key, settings.openai_model)
    return GeminiClient(settings.gemini_api_key, settings.gemini_model)


def extract_json_object(text: str) -> Dict[str, Any]:
    """
    Parse the model's JSON object, tolerating a markdown code fence around it.
    """
    match = _FENCE_RE.search(text)
    candidate = match.group(1) if match else text.strip()
    try:
        data = json.loads(candidate)
    except json.JSONDecodeError as e:
        logger.debug("Raw content: %s", text)
        raise GenerationError(f"Invalid JSON response: {e}") from e
    if not isinstance(data, dict):
        raise GenerationError("Invalid response structure")
    return data
