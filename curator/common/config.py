"""
Configuration Management for Curator Agents

Loads configuration from ~/.curator/config.json and environment variables.
"""

import os
import json
import logging
from pathlib import Path
from dataclasses import dataclass, field

from .embedding_service import DEFAULT_EMBEDDING_MODEL

logger = logging.getLogger("curator.common.config")

# Default config paths
CONFIG_DIR = Path.home() / ".curator"
CONFIG_PATH = CONFIG_DIR / "config.json"
DEFAULT_DATABASE_URL = f"sqlite+aiosqlite:///{CONFIG_DIR / 'curator.db'}"
REVIEW_QUEUE_PATH = CONFIG_DIR / "review_queue.json"

_API_KEY_FIELDS = ("anthropic_api_key", "openai_api_key", "google_api_key")


@dataclass
class LLMConfig:
    """Reasoning and structuring clients are configured independently"""
    reasoning_provider: str = "anthropic"
    reasoning_model: str = "claude-sonnet-4-20250514"
    structuring_provider: str = "anthropic"
    structuring_model: str = "claude-haiku-4-5-20251001"
    anthropic_api_key: str = ""
    openai_api_key: str = ""
    google_api_key: str = ""


@dataclass
class EmbeddingConfig:
    """Embedding model configuration (fastembed, on-device)"""
    model: str = DEFAULT_EMBEDDING_MODEL


@dataclass
class InferenceConfig:
    """Retry and request limits shared by all gateway operations"""
    retries: int = 3
    backoff_base: float = 1.0
    request_timeout: float = 60.0
    reasoning_max_tokens: int = 2048
    structuring_max_tokens: int = 2048


@dataclass
class StoreConfig:
    """Structured record store"""
    database_url: str = DEFAULT_DATABASE_URL


@dataclass
class RetrieverConfig:
    """Question answering configuration"""
    default_limit: int = 10
    max_limit: int = 50
    query_timeout: float = 0.0  # 0 disables the overall timeout


@dataclass
class EvaluatorConfig:
    """Quality re-evaluation configuration"""
    review_threshold: float = 0.7
    batch_limit: int = 10
    review_queue_enabled: bool = True


@dataclass
class CuratorConfig:
    """Main Curator configuration"""
    llm: LLMConfig = field(default_factory=LLMConfig)
    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    inference: InferenceConfig = field(default_factory=InferenceConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    retriever: RetrieverConfig = field(default_factory=RetrieverConfig)
    evaluator: EvaluatorConfig = field(default_factory=EvaluatorConfig)
    _env_sourced_keys: set = field(default_factory=set, repr=False)


def _parse_section(cls, data: dict, name: str):
    """Build a dataclass section from ``data[name]``, ignoring unknown keys"""
    section = data.get(name) or {}
    defaults = cls()
    kwargs = {}
    for key in defaults.__dataclass_fields__:
        if key in section:
            kwargs[key] = type(getattr(defaults, key))(section[key])
    return cls(**kwargs)


def load_config() -> CuratorConfig:
    """
    Load configuration from file and environment variables.

    Priority (highest to lowest):
    1. Environment variables
    2. Config file (~/.curator/config.json)
    3. Default values
    """
    config = CuratorConfig()

    if CONFIG_PATH.exists():
        try:
            with open(CONFIG_PATH) as f:
                data = json.load(f)

            config.llm = _parse_section(LLMConfig, data, "llm")
            config.embedding = _parse_section(EmbeddingConfig, data, "embedding")
            config.inference = _parse_section(InferenceConfig, data, "inference")
            config.store = _parse_section(StoreConfig, data, "store")
            config.retriever = _parse_section(RetrieverConfig, data, "retriever")
            config.evaluator = _parse_section(EvaluatorConfig, data, "evaluator")
        except (json.JSONDecodeError, IOError, TypeError, ValueError) as e:
            logger.warning("Failed to load config file %s: %s", CONFIG_PATH, e)

    # LLM env var overrides (track env-sourced keys so they are never persisted)
    _env_llm_map = {
        "ANTHROPIC_API_KEY": "anthropic_api_key",
        "OPENAI_API_KEY": "openai_api_key",
        "GOOGLE_API_KEY": "google_api_key",
        "GEMINI_API_KEY": "google_api_key",
        "CURATOR_REASONING_PROVIDER": "reasoning_provider",
        "CURATOR_REASONING_MODEL": "reasoning_model",
        "CURATOR_STRUCTURING_PROVIDER": "structuring_provider",
        "CURATOR_STRUCTURING_MODEL": "structuring_model",
    }
    for env_var, attr in _env_llm_map.items():
        val = os.getenv(env_var)
        if val:
            setattr(config.llm, attr, val)
            config._env_sourced_keys.add(attr)

    if os.getenv("EMBEDDING_MODEL"):
        config.embedding.model = os.getenv("EMBEDDING_MODEL")
    if os.getenv("CURATOR_DATABASE_URL"):
        config.store.database_url = os.getenv("CURATOR_DATABASE_URL")

    try:
        if os.getenv("CURATOR_INFERENCE_RETRIES"):
            config.inference.retries = int(os.getenv("CURATOR_INFERENCE_RETRIES"))
        if os.getenv("CURATOR_BACKOFF_BASE"):
            config.inference.backoff_base = float(os.getenv("CURATOR_BACKOFF_BASE"))
    except ValueError as e:
        logger.warning("Ignoring invalid inference override: %s", e)

    return config


def save_config(config: CuratorConfig) -> None:
    """Save configuration to file.

    API key fields that were sourced from environment variables are written
    as empty strings so that secrets are not persisted to disk.
    """
    CONFIG_PATH.parent.mkdir(parents=True, exist_ok=True)

    env_sourced = getattr(config, "_env_sourced_keys", set())

    llm_section = dict(vars(config.llm))
    for key in _API_KEY_FIELDS:
        if key in env_sourced:
            llm_section[key] = ""

    data = {
        "llm": llm_section,
        "embedding": dict(vars(config.embedding)),
        "inference": dict(vars(config.inference)),
        "store": dict(vars(config.store)),
        "retriever": dict(vars(config.retriever)),
        "evaluator": dict(vars(config.evaluator)),
    }

    with open(CONFIG_PATH, "w") as f:
        json.dump(data, f, indent=2)

    # Set secure permissions
    CONFIG_PATH.chmod(0o600)
