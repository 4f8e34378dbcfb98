"""
Inference Gateway

Uniform, retrying access to the three model capabilities Curator uses:
free-form reasoning, schema-constrained structuring, and text embedding.

Every operation returns an ``InferenceResult``; exhausting retries is a
normal outcome for callers to branch on, never an exception.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, List, Optional, Type, TypeVar

from pydantic import BaseModel

from .config import CuratorConfig
from .embedding_service import EmbeddingService
from .errors import RetryExhausted
from .llm_client import LLMClient
from .llm_utils import parse_llm_json
from .retry import RetryPolicy, retry_async

logger = logging.getLogger("curator.common.inference")

T = TypeVar("T")
M = TypeVar("M", bound=BaseModel)


@dataclass
class InferenceResult(Generic[T]):
    """Tagged outcome of a gateway call"""
    ok: bool
    data: Optional[T] = None
    error: Optional[str] = None
    attempts: int = 0

    @classmethod
    def success(cls, data: T, attempts: int) -> "InferenceResult[T]":
        return cls(ok=True, data=data, attempts=attempts)

    @classmethod
    def failure(cls, error: str, attempts: int = 0) -> "InferenceResult[T]":
        return cls(ok=False, error=error, attempts=attempts)


class InferenceGateway:
    """
    Reasoning, structuring and embedding behind one retry policy.

    Reasoning and structuring use separate clients so that a terse or
    failing reasoning model does not stop format-compliant structuring.
    """

    def __init__(
        self,
        reasoning_client: LLMClient,
        structuring_client: LLMClient,
        embedder: EmbeddingService,
        policy: Optional[RetryPolicy] = None,
        *,
        reasoning_max_tokens: int = 2048,
        structuring_max_tokens: int = 2048,
        request_timeout: float = 60.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.reasoning_client = reasoning_client
        self.structuring_client = structuring_client
        self.embedder = embedder
        self.policy = policy or RetryPolicy()
        self.reasoning_max_tokens = reasoning_max_tokens
        self.structuring_max_tokens = structuring_max_tokens
        self.request_timeout = request_timeout
        self._sleep = sleep

    @classmethod
    def from_config(cls, config: CuratorConfig) -> "InferenceGateway":
        llm = config.llm
        keys = {
            "anthropic_api_key": llm.anthropic_api_key,
            "openai_api_key": llm.openai_api_key,
            "google_api_key": llm.google_api_key,
        }
        reasoning_client = LLMClient(provider=llm.reasoning_provider, model=llm.reasoning_model, **keys)
        structuring_client = LLMClient(provider=llm.structuring_provider, model=llm.structuring_model, **keys)
        logger.info(
            "Inference gateway: reasoning=%s structuring=%s embedding=%s",
            reasoning_client.describe(), structuring_client.describe(), config.embedding.model,
        )
        return cls(
            reasoning_client=reasoning_client,
            structuring_client=structuring_client,
            embedder=EmbeddingService(model=config.embedding.model),
            policy=RetryPolicy(
                max_attempts=config.inference.retries,
                backoff_base=config.inference.backoff_base,
            ),
            reasoning_max_tokens=config.inference.reasoning_max_tokens,
            structuring_max_tokens=config.inference.structuring_max_tokens,
            request_timeout=config.inference.request_timeout,
        )

    async def _run(self, operation, retries: Optional[int], label: str) -> InferenceResult:
        policy = self.policy.with_attempts(retries)
        attempts = 0

        async def attempt():
            nonlocal attempts
            attempts += 1
            return await operation()

        try:
            data = await retry_async(attempt, policy, label=label, sleep=self._sleep)
        except RetryExhausted as e:
            logger.error("%s", e)
            return InferenceResult.failure(str(e), attempts=e.attempts)
        return InferenceResult.success(data, attempts=attempts)

    async def reason(
        self, system_prompt: str, content: str, retries: Optional[int] = None
    ) -> InferenceResult[str]:
        """Free-form completion. Empty output counts as a failed attempt."""
        if not self.reasoning_client.is_available:
            return InferenceResult.failure("Reasoning model is not configured")

        async def operation() -> str:
            text = await asyncio.to_thread(
                self.reasoning_client.generate,
                content,
                system=system_prompt,
                max_tokens=self.reasoning_max_tokens,
                timeout=self.request_timeout,
            )
            text = (text or "").strip()
            if not text:
                raise ValueError("Reasoning model returned empty output")
            return text

        return await self._run(operation, retries, "Reasoning model")

    async def structure(
        self,
        system_prompt: str,
        content: str,
        schema: Type[M],
        retries: Optional[int] = None,
    ) -> InferenceResult[M]:
        """
        Schema-constrained completion validated into ``schema``.

        Unparsable replies and replies that fail validation are retried
        like transport errors.
        """
        if not self.structuring_client.is_available:
            return InferenceResult.failure("Structuring model is not configured")

        json_schema: dict[str, Any] = schema.model_json_schema(by_alias=True)

        async def operation() -> M:
            raw = await asyncio.to_thread(
                self.structuring_client.generate,
                content,
                system=system_prompt,
                max_tokens=self.structuring_max_tokens,
                timeout=self.request_timeout,
                json_schema=json_schema,
            )
            payload = parse_llm_json(raw or "")
            if not payload:
                raise ValueError("Structuring model returned no JSON object")
            return schema.model_validate(payload)

        return await self._run(operation, retries, "Structured generation")

    async def embed(self, text: str, retries: Optional[int] = None) -> InferenceResult[List[float]]:
        """Embedding vector for ``text``. An empty vector counts as a failed attempt."""
        if not text or not text.strip():
            return InferenceResult.failure("Cannot embed empty text")
        if not self.embedder.is_available:
            return InferenceResult.failure("Embedding model is not available")

        async def operation() -> List[float]:
            vector = await asyncio.to_thread(self.embedder.embed_single, text)
            if not vector:
                raise ValueError("Embedding model returned an empty vector")
            return list(vector)

        return await self._run(operation, retries, "Embedding generation")
