"""
Provider-agnostic generation client for RACE.

Supports Anthropic, OpenAI, and Google Gemini behind the generation port:
the assembled context is embedded verbatim in the system message.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, List, Optional, Sequence

from .schemas import ChatMessage

logger = logging.getLogger("race.common.llm_client")

PERSONAL_ASSISTANT_PROMPT = (
    "You are a personal AI assistant with access to the user's health, location, "
    "and voice data. Use the following context from the user's personal data to "
    "answer their question:\n\n{context}\n\nProvide helpful, accurate answers based "
    "on this data. If the data doesn't contain enough information to answer the "
    "question, say so clearly."
)

# Same instructions, for callers that extend the prompt before the context is attached
DEFAULT_SYSTEM_PROMPT = (
    "You are a personal AI assistant with access to the user's health, location, "
    "and voice data. Provide helpful, accurate answers based on this data. If the "
    "data doesn't contain enough information to answer the question, say so clearly."
)


def build_system_message(context: str, system_prompt: Optional[str] = None) -> str:
    """Compose the system message that carries the retrieval context."""
    if system_prompt:
        return f"{system_prompt}\n\nContext from data:\n\n{context}"
    return PERSONAL_ASSISTANT_PROMPT.format(context=context)


class LLMClient:
    """Unified chat completion client across LLM providers."""

    def __init__(
        self,
        provider: str = "openai",
        model: str = "",
        anthropic_api_key: Optional[str] = None,
        openai_api_key: Optional[str] = None,
        google_api_key: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 500,
    ) -> None:
        self.provider = (provider or "openai").lower()
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self._client = None

        if self.provider == "anthropic":
            if not anthropic_api_key:
                logger.info("%s API key not provided, LLM client unavailable", self.provider)
                return
            import anthropic

            self._client = anthropic.Anthropic(api_key=anthropic_api_key)
            return

        if self.provider == "openai":
            if not openai_api_key:
                logger.info("%s API key not provided, LLM client unavailable", self.provider)
                return
            from openai import OpenAI

            self._client = OpenAI(api_key=openai_api_key)
            return

        if self.provider == "google":
            if not google_api_key:
                logger.info("%s API key not provided, LLM client unavailable", self.provider)
                return
            import google.generativeai as genai

            genai.configure(api_key=google_api_key)
            self._client = genai  # Store the module, not a model instance
            return

        logger.warning("Unsupported LLM provider: %s", self.provider)

    @property
    def is_available(self) -> bool:
        return self._client is not None

    async def complete(
        self,
        messages: Sequence[ChatMessage],
        context: str,
        system_prompt: Optional[str] = None,
        *,
        user_id: str = "",
        endpoint: str = "",
    ) -> str:
        """Generate a reply to `messages` grounded in `context`."""
        if not self.is_available:
            raise RuntimeError("LLM client is not available")

        system = build_system_message(context, system_prompt)
        logger.debug("Generation call user=%s endpoint=%s provider=%s", user_id, endpoint, self.provider)
        return await asyncio.to_thread(self._generate, system, list(messages))

    def _generate(self, system: str, messages: List[ChatMessage]) -> str:
        if self.provider == "anthropic":
            # Anthropic takes system text separately; fold any history system turns into it
            extra_system = [m.content for m in messages if m.role == "system"]
            if extra_system:
                system = "\n\n".join([system, *extra_system])
            response = self._client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                system=system,
                messages=[
                    {"role": m.role, "content": m.content}
                    for m in messages if m.role != "system"
                ],
            )
            return response.content[0].text.strip()

        if self.provider == "openai":
            formatted: List[Dict[str, str]] = [{"role": "system", "content": system}]
            formatted.extend({"role": m.role, "content": m.content} for m in messages)
            response = self._client.chat.completions.create(
                model=self.model,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                messages=formatted,
            )
            return (response.choices[0].message.content or "").strip()

        if self.provider == "google":
            model = self._client.GenerativeModel(model_name=self.model, system_instruction=system)
            contents = [
                {"role": "model" if m.role == "assistant" else "user", "parts": [m.content]}
                for m in messages if m.role != "system"
            ]
            response = model.generate_content(
                contents,
                generation_config={
                    "max_output_tokens": self.max_tokens,
                    "temperature": self.temperature,
                },
            )
            return response.text.strip()

        raise RuntimeError(f"Unsupported LLM provider: {self.provider}")


def create_llm_client(llm_config) -> LLMClient:
    """Build an LLMClient from an LLMConfig section."""
    models = {
        "anthropic": llm_config.anthropic_model,
        "openai": llm_config.openai_model,
        "google": llm_config.google_model,
    }
    return LLMClient(
        provider=llm_config.provider,
        model=models.get((llm_config.provider or "").lower(), ""),
        anthropic_api_key=llm_config.anthropic_api_key or None,
        openai_api_key=llm_config.openai_api_key or None,
        google_api_key=llm_config.google_api_key or None,
        temperature=llm_config.temperature,
        max_tokens=llm_config.max_tokens,
    )
