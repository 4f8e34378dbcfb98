"""
Shared fixtures: scripted model clients, a keyword embedder, and a
file-backed SQLite store per test.
"""

import json
import re
from typing import Any, Callable, List, Optional, Union

import pytest
import pytest_asyncio


# ============================================================================
# Fake model clients
# ============================================================================

Reply = Union[str, Exception, Callable[[str, Optional[str]], str]]


class ScriptedLLM:
    """Stands in for LLMClient; replies are consumed in order, then ``default``."""

    def __init__(self, replies: Optional[List[Reply]] = None, default: Reply = "", available: bool = True):
        self.replies = list(replies or [])
        self.default = default
        self.available = available
        self.calls: List[dict] = []

    @property
    def is_available(self) -> bool:
        return self.available

    def generate(self, prompt, *, system=None, max_tokens=1024, timeout=60.0, json_schema=None):
        self.calls.append({"prompt": prompt, "system": system, "json_schema": json_schema})
        reply = self.replies.pop(0) if self.replies else self.default
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            return reply(prompt, system)
        return reply


VOCABULARY = [
    "ai", "agent", "trend", "model", "llm", "python", "rust", "security",
    "database", "cooking", "travel", "music", "finance", "climate",
]


class KeywordEmbedder:
    """Bag-of-words over a fixed vocabulary; words match by prefix."""

    def __init__(self, available: bool = True, fail_times: int = 0):
        self.available = available
        self.fail_times = fail_times
        self.calls = 0

    @property
    def is_available(self) -> bool:
        return self.available

    def embed_single(self, text: str) -> List[float]:
        self.calls += 1
        if self.fail_times > 0:
            self.fail_times -= 1
            raise RuntimeError("embedding backend unavailable")
        words = re.findall(r"[a-z]+", text.lower())
        vector = [float(sum(1 for w in words if w.startswith(v))) for v in VOCABULARY]
        vector.append(0.05)
        return vector


async def no_sleep(seconds: float) -> None:
    return None


def answer_json(
    cited: List[int],
    confidence: int = 82,
    body: str = "Agents are the main trend [ID: 1].",
    follow_ups: Optional[List[str]] = None,
) -> str:
    return json.dumps({
        "thinkingProcess": "Read the retrieved articles and compared their claims.",
        "answerBody": body,
        "confidenceScore": confidence,
        "citedRecordIds": cited,
        "followUpSuggestions": follow_ups or [
            "Which agent frameworks are mentioned?",
            "How do the articles rate model safety?",
            "What changed since last year?",
        ],
    })


def analysis_json(score: int, confidence: float, label: str = "Low ROI: generic listicle", reasoning: str = "Thin, derivative content") -> str:
    return json.dumps({
        "score": score,
        "qualityLabel": label,
        "confidence": confidence,
        "reasoning": reasoning,
    })


def make_gateway(
    reasoning: Optional[ScriptedLLM] = None,
    structuring: Optional[ScriptedLLM] = None,
    embedder: Optional[KeywordEmbedder] = None,
    retries: int = 3,
):
    from curator.common.inference import InferenceGateway
    from curator.common.retry import RetryPolicy

    return InferenceGateway(
        reasoning_client=reasoning or ScriptedLLM(default="draft"),
        structuring_client=structuring or ScriptedLLM(default="{}"),
        embedder=embedder or KeywordEmbedder(),
        policy=RetryPolicy(max_attempts=retries, backoff_base=0.0),
        sleep=no_sleep,
    )


# ============================================================================
# Fixtures
# ============================================================================

@pytest_asyncio.fixture
async def store(tmp_path):
    from curator.common.store import SQLRecordStore

    record_store = SQLRecordStore.from_url(f"sqlite+aiosqlite:///{tmp_path / 'curator.db'}")
    await record_store.init_schema()
    yield record_store
    await record_store.close()


@pytest.fixture
def index():
    from curator.common.vector_index import InMemoryVectorIndex

    return InMemoryVectorIndex()


async def seed_articles(store, articles: List[dict]) -> List[Any]:
    """Create articles from dicts with ``url`` plus optional fields and ``tags``."""
    records = []
    for fields in articles:
        fields = dict(fields)
        tags = fields.pop("tags", [])
        record = await store.create_record(fields.pop("url"), **fields)
        if tags:
            tag_ids = []
            for name in tags:
                tag, _ = await store.create_tag(name)
                tag_ids.append(tag.id)
            await store.link_tags(record.id, tag_ids)
            record = await store.get_record(record.id)
        records.append(record)
    return records
