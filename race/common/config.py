"""
Configuration Management for RACE

Loads configuration from ~/.race/config.json and environment variables.
"""

import os
import json
import logging
from pathlib import Path
from dataclasses import dataclass, field

from dotenv import load_dotenv

logger = logging.getLogger("race.common.config")

# Default config paths
CONFIG_DIR = Path.home() / ".race"
CONFIG_PATH = CONFIG_DIR / "config.json"


@dataclass
class EmbeddingConfig:
    """Embedding model configuration"""
    mode: str = "femb"  # fastembed (on-device) or "openai"
    model: str = "sentence-transformers/paraphrase-multilingual-MiniLM-L12-v2"
    openai_api_key: str = ""


@dataclass
class LLMConfig:
    """Generation provider configuration"""
    provider: str = "openai"
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-20250514"
    openai_api_key: str = ""
    openai_model: str = "gpt-4o"
    google_api_key: str = ""
    google_model: str = "gemini-2.0-flash-exp"
    temperature: float = 0.7
    max_tokens: int = 500


@dataclass
class RetrieverConfig:
    """Retrieval and context assembly configuration"""
    topk: int = 10
    activity_topk: int = 20
    circle_topk: int = 20
    count_topk: int = 50
    max_context_length: int = 8000
    event_limit: int = 50
    timezone: str = "UTC"
    use_query_hints: bool = True


@dataclass
class TimeoutConfig:
    """Per-port timeouts in seconds"""
    embedding: float = 10.0
    vector_index: float = 10.0
    event_store: float = 5.0
    circle_lookup: float = 5.0
    profile_lookup: float = 3.0
    generation: float = 60.0


@dataclass
class RaceConfig:
    """Main RACE configuration"""
    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)
    retriever: RetrieverConfig = field(default_factory=RetrieverConfig)
    timeouts: TimeoutConfig = field(default_factory=TimeoutConfig)
    _env_sourced_keys: set = field(default_factory=set, repr=False)


def _parse_embedding_config(data: dict) -> EmbeddingConfig:
    """Parse embedding section from config dict"""
    embedding_data = data.get("embedding", {})
    return EmbeddingConfig(
        mode=embedding_data.get("mode", "femb"),
        model=embedding_data.get("model", "sentence-transformers/paraphrase-multilingual-MiniLM-L12-v2"),
        openai_api_key=embedding_data.get("openai_api_key", ""),
    )


def _parse_llm_config(data: dict) -> LLMConfig:
    """Parse llm section from config dict"""
    llm_data = data.get("llm", {})
    return LLMConfig(
        provider=llm_data.get("provider", "openai"),
        anthropic_api_key=llm_data.get("anthropic_api_key", ""),
        anthropic_model=llm_data.get("anthropic_model", "claude-sonnet-4-20250514"),
        openai_api_key=llm_data.get("openai_api_key", ""),
        openai_model=llm_data.get("openai_model", "gpt-4o"),
        google_api_key=llm_data.get("google_api_key", ""),
        google_model=llm_data.get("google_model", "gemini-2.0-flash-exp"),
        temperature=float(llm_data.get("temperature", 0.7)),
        max_tokens=int(llm_data.get("max_tokens", 500)),
    )


def _parse_retriever_config(data: dict) -> RetrieverConfig:
    """Parse retriever section from config dict"""
    retriever_data = data.get("retriever", {})
    return RetrieverConfig(
        topk=retriever_data.get("topk", 10),
        activity_topk=retriever_data.get("activity_topk", 20),
        circle_topk=retriever_data.get("circle_topk", 20),
        count_topk=retriever_data.get("count_topk", 50),
        max_context_length=retriever_data.get("max_context_length", 8000),
        event_limit=retriever_data.get("event_limit", 50),
        timezone=retriever_data.get("timezone", "UTC"),
        use_query_hints=retriever_data.get("use_query_hints", True),
    )


def _parse_timeout_config(data: dict) -> TimeoutConfig:
    """Parse timeouts section from config dict"""
    timeout_data = data.get("timeouts", {})
    defaults = TimeoutConfig()
    return TimeoutConfig(
        embedding=float(timeout_data.get("embedding", defaults.embedding)),
        vector_index=float(timeout_data.get("vector_index", defaults.vector_index)),
        event_store=float(timeout_data.get("event_store", defaults.event_store)),
        circle_lookup=float(timeout_data.get("circle_lookup", defaults.circle_lookup)),
        profile_lookup=float(timeout_data.get("profile_lookup", defaults.profile_lookup)),
        generation=float(timeout_data.get("generation", defaults.generation)),
    )


def load_config() -> RaceConfig:
    """
    Load configuration from file and environment variables.

    Priority (highest to lowest):
    1. Environment variables (including a local .env file)
    2. Config file (~/.race/config.json)
    3. Default values
    """
    load_dotenv()
    config = RaceConfig()

    # Load from config file if exists
    if CONFIG_PATH.exists():
        try:
            with open(CONFIG_PATH) as f:
                data = json.load(f)

            config.embedding = _parse_embedding_config(data)
            config.llm = _parse_llm_config(data)
            config.retriever = _parse_retriever_config(data)
            config.timeouts = _parse_timeout_config(data)
        except (json.JSONDecodeError, IOError) as e:
            logger.warning("Failed to load config file %s: %s", CONFIG_PATH, e)

    if os.getenv("EMBEDDING_MODE"):
        config.embedding.mode = os.getenv("EMBEDDING_MODE")
    if os.getenv("EMBEDDING_MODEL"):
        config.embedding.model = os.getenv("EMBEDDING_MODEL")

    if os.getenv("RACE_TOPK"):
        config.retriever.topk = int(os.getenv("RACE_TOPK"))
    if os.getenv("RACE_MAX_CONTEXT_LENGTH"):
        config.retriever.max_context_length = int(os.getenv("RACE_MAX_CONTEXT_LENGTH"))
    if os.getenv("RACE_TIMEZONE"):
        config.retriever.timezone = os.getenv("RACE_TIMEZONE")

    # LLM env var overrides (track env-sourced keys so they are never saved)
    _env_llm_map = {
        "ANTHROPIC_API_KEY": "anthropic_api_key",
        "ANTHROPIC_MODEL": "anthropic_model",
        "OPENAI_API_KEY": "openai_api_key",
        "OPENAI_MODEL": "openai_model",
        "GOOGLE_API_KEY": "google_api_key",
        "GEMINI_API_KEY": "google_api_key",
        "GOOGLE_MODEL": "google_model",
        "RACE_LLM_PROVIDER": "provider",
    }
    for env_var, attr in _env_llm_map.items():
        val = os.getenv(env_var)
        if val:
            setattr(config.llm, attr, val)
            config._env_sourced_keys.add(attr)

    # Embeddings share the OpenAI key unless configured separately
    if not config.embedding.openai_api_key and config.llm.openai_api_key:
        config.embedding.openai_api_key = config.llm.openai_api_key
        if "openai_api_key" in config._env_sourced_keys:
            config._env_sourced_keys.add("embedding_openai_api_key")

    return config


def save_config(config: RaceConfig) -> None:
    """Save configuration to file.

    API key fields that were sourced from environment variables are written
    as empty strings so that secrets are not persisted to disk.
    """
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)

    env_sourced = getattr(config, "_env_sourced_keys", set())

    llm_section = {
        "provider": config.llm.provider,
        "anthropic_api_key": config.llm.anthropic_api_key,
        "anthropic_model": config.llm.anthropic_model,
        "openai_api_key": config.llm.openai_api_key,
        "openai_model": config.llm.openai_model,
        "google_api_key": config.llm.google_api_key,
        "google_model": config.llm.google_model,
        "temperature": config.llm.temperature,
        "max_tokens": config.llm.max_tokens,
    }
    for key in ("anthropic_api_key", "openai_api_key", "google_api_key"):
        if key in env_sourced:
            llm_section[key] = ""

    embedding_key = config.embedding.openai_api_key
    if "embedding_openai_api_key" in env_sourced:
        embedding_key = ""

    data = {
        "embedding": {
            "mode": config.embedding.mode,
            "model": config.embedding.model,
            "openai_api_key": embedding_key,
        },
        "llm": llm_section,
        "retriever": {
            "topk": config.retriever.topk,
            "activity_topk": config.retriever.activity_topk,
            "circle_topk": config.retriever.circle_topk,
            "count_topk": config.retriever.count_topk,
            "max_context_length": config.retriever.max_context_length,
            "event_limit": config.retriever.event_limit,
            "timezone": config.retriever.timezone,
            "use_query_hints": config.retriever.use_query_hints,
        },
        "timeouts": {
            "embedding": config.timeouts.embedding,
            "vector_index": config.timeouts.vector_index,
            "event_store": config.timeouts.event_store,
            "circle_lookup": config.timeouts.circle_lookup,
            "profile_lookup": config.timeouts.profile_lookup,
            "generation": config.timeouts.generation,
        },
    }

    with open(CONFIG_PATH, "w") as f:
        json.dump(data, f, indent=2)

    # Set secure permissions
    CONFIG_PATH.chmod(0o600)
