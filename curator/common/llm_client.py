"""
Provider-agnostic LLM client for Curator agents.

Supports Anthropic, OpenAI, and Google Gemini with a shared text-generation
interface. Structured calls pass a JSON schema; each provider is asked for a
JSON-only reply in its own way, and the caller validates the result.
"""

from __future__ import annotations

import hashlib
import json
import logging
from typing import Any, Dict, Optional

logger = logging.getLogger("curator.common.llm_client")

SUPPORTED_PROVIDERS = ("anthropic", "openai", "google")


class LLMClient:
    """Unified text generation client across LLM providers."""

    def __init__(
        self,
        provider: str = "anthropic",
        model: str = "",
        anthropic_api_key: Optional[str] = None,
        openai_api_key: Optional[str] = None,
        google_api_key: Optional[str] = None,
    ) -> None:
        self.provider = (provider or "anthropic").lower()
        self.model = model
        self._client = None
        self._google_models: Dict[str, Any] = {}

        if self.provider not in SUPPORTED_PROVIDERS:
            logger.warning("Unsupported LLM provider: %s", self.provider)
            return

        if self.provider == "anthropic":
            if not anthropic_api_key:
                logger.info("%s API key not provided, LLM client unavailable", self.provider)
                return
            try:
                import anthropic

                self._client = anthropic.Anthropic(api_key=anthropic_api_key)
            except ImportError:
                logger.warning("anthropic package not installed")
            except Exception as e:
                logger.warning("Failed to initialize Anthropic client: %s", e)
            return

        if self.provider == "openai":
            if not openai_api_key:
                logger.info("%s API key not provided, LLM client unavailable", self.provider)
                return
            try:
                from openai import OpenAI

                self._client = OpenAI(api_key=openai_api_key)
            except ImportError:
                logger.warning("openai package not installed")
            except Exception as e:
                logger.warning("Failed to initialize OpenAI client: %s", e)
            return

        if not google_api_key:
            logger.info("%s API key not provided, LLM client unavailable", self.provider)
            return
        try:
            import google.generativeai as genai

            genai.configure(api_key=google_api_key)
            self._client = genai  # Store the module, not a model instance
        except ImportError:
            logger.warning("google-generativeai package not installed")
        except Exception as e:
            logger.warning("Failed to initialize Gemini client: %s", e)

    @property
    def is_available(self) -> bool:
        return self._client is not None

    def describe(self) -> str:
        return f"{self.provider}:{self.model or 'default'}"

    def generate(
        self,
        prompt: str,
        *,
        system: Optional[str] = None,
        max_tokens: int = 1024,
        timeout: float = 60.0,
        json_schema: Optional[Dict[str, Any]] = None,
    ) -> str:
        """
        Generate a completion.

        Args:
            prompt: User message
            system: Optional system instruction
            max_tokens: Output token cap
            timeout: Per-request timeout in seconds
            json_schema: When given, request a JSON object matching this schema

        Returns:
            Stripped reply text (may be empty)
        """
        if not self.is_available:
            raise RuntimeError("LLM client is not available")

        if self.provider == "anthropic":
            if json_schema is not None:
                system = _with_schema_instruction(system, json_schema)
            kwargs: Dict[str, Any] = {
                "model": self.model,
                "max_tokens": max_tokens,
                "messages": [{"role": "user", "content": prompt}],
                "timeout": timeout,
            }
            if system:
                kwargs["system"] = system
            response = self._client.messages.create(**kwargs)
            if not response.content:
                return ""
            return (getattr(response.content[0], "text", "") or "").strip()

        if self.provider == "openai":
            messages = []
            if system:
                messages.append({"role": "system", "content": system})
            messages.append({"role": "user", "content": prompt})
            kwargs = {
                "model": self.model,
                "max_tokens": max_tokens,
                "messages": messages,
                "timeout": timeout,
            }
            if json_schema is not None:
                kwargs["response_format"] = {
                    "type": "json_schema",
                    "json_schema": {
                        "name": str(json_schema.get("title") or "response"),
                        "schema": json_schema,
                        "strict": False,
                    },
                }
            response = self._client.chat.completions.create(**kwargs)
            return (response.choices[0].message.content or "").strip()

        if self.provider == "google":
            if json_schema is not None:
                system = _with_schema_instruction(system, json_schema)
            cache_key = hashlib.md5((system or "").encode()).hexdigest()
            if cache_key not in self._google_models:
                kwargs = {"model_name": self.model}
                if system:
                    kwargs["system_instruction"] = system
                self._google_models[cache_key] = self._client.GenerativeModel(**kwargs)
            model = self._google_models[cache_key]
            generation_config: Dict[str, Any] = {"max_output_tokens": max_tokens}
            if json_schema is not None:
                generation_config["response_mime_type"] = "application/json"
            response = model.generate_content(
                prompt,
                generation_config=generation_config,
                request_options={"timeout": timeout},
            )
            return (response.text or "").strip()

        raise RuntimeError(f"Unsupported LLM provider: {self.provider}")


def _with_schema_instruction(system: Optional[str], json_schema: Dict[str, Any]) -> str:
    instruction = (
        "Respond with a single JSON object only, no prose and no code fences. "
        "It must match this JSON schema:\n" + json.dumps(json_schema, indent=2)
    )
    if system:
        return f"{system}\n\n{instruction}"
    return instruction
