"""
Configuration Management for Notary

Loads configuration from ~/.notary/config.json, a .env file and environment
variables.
"""

import os
import json
import logging
from pathlib import Path
from dataclasses import dataclass, field

from dotenv import load_dotenv

logger = logging.getLogger("notary.common.config")

# Default config paths
CONFIG_DIR = Path.home() / ".notary"
CONFIG_PATH = CONFIG_DIR / "config.json"
DEFAULT_NOTES_PATH = CONFIG_DIR / "notes.json"


@dataclass
class LLMConfig:
    """Text generation provider configuration"""
    provider: str = "ollama"
    ollama_host: str = "http://localhost:11434"
    ollama_model: str = ""
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-20250514"
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    google_api_key: str = ""
    google_model: str = "gemini-2.0-flash-exp"

    @property
    def active_model(self) -> str:
        """Model name configured for the selected provider"""
        return {
            "ollama": self.ollama_model,
            "anthropic": self.anthropic_model,
            "openai": self.openai_model,
            "google": self.google_model,
        }.get(self.provider, "")


@dataclass
class AnswererConfig:
    """Query answering configuration (thresholds are documented in DESIGN.md)"""
    timeout_seconds: float = 60.0
    max_retries: int = 2
    backoff_base_seconds: float = 1.0
    max_context_notes: int = 20
    max_note_chars: int = 1000
    neutral_confidence: float = 0.5
    self_report_influence: float = 1.0
    snippet_match_threshold: float = 0.8
    exploratory_min_coverage: float = 0.5

    def __post_init__(self):
        if self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")
        if self.max_retries < 0:
            raise ValueError("max_retries must not be negative")
        if self.backoff_base_seconds < 0:
            raise ValueError("backoff_base_seconds must not be negative")
        if self.max_context_notes < 1:
            raise ValueError("max_context_notes must be at least 1")
        if self.max_note_chars < 1:
            raise ValueError("max_note_chars must be at least 1")
        for name in (
            "neutral_confidence",
            "self_report_influence",
            "snippet_match_threshold",
            "exploratory_min_coverage",
        ):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be within [0, 1], got {value}")


@dataclass
class StoreConfig:
    """Note store configuration"""
    notes_path: str = str(DEFAULT_NOTES_PATH)


@dataclass
class NotaryConfig:
    """Main Notary configuration"""
    llm: LLMConfig = field(default_factory=LLMConfig)
    answerer: AnswererConfig = field(default_factory=AnswererConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    _env_sourced_keys: set = field(default_factory=set, repr=False)


def _parse_llm_config(data: dict) -> LLMConfig:
    """Parse llm section from config dict"""
    llm_data = data.get("llm", {})
    defaults = LLMConfig()
    return LLMConfig(
        provider=llm_data.get("provider", defaults.provider),
        ollama_host=llm_data.get("ollama_host", defaults.ollama_host),
        ollama_model=llm_data.get("ollama_model", defaults.ollama_model),
        anthropic_api_key=llm_data.get("anthropic_api_key", ""),
        anthropic_model=llm_data.get("anthropic_model", defaults.anthropic_model),
        openai_api_key=llm_data.get("openai_api_key", ""),
        openai_model=llm_data.get("openai_model", defaults.openai_model),
        google_api_key=llm_data.get("google_api_key", ""),
        google_model=llm_data.get("google_model", defaults.google_model),
    )


def _parse_answerer_config(data: dict) -> AnswererConfig:
    """Parse answerer section from config dict"""
    answerer_data = data.get("answerer", {})
    defaults = AnswererConfig()
    return AnswererConfig(
        timeout_seconds=float(answerer_data.get("timeout_seconds", defaults.timeout_seconds)),
        max_retries=int(answerer_data.get("max_retries", defaults.max_retries)),
        backoff_base_seconds=float(
            answerer_data.get("backoff_base_seconds", defaults.backoff_base_seconds)
        ),
        max_context_notes=int(answerer_data.get("max_context_notes", defaults.max_context_notes)),
        max_note_chars=int(answerer_data.get("max_note_chars", defaults.max_note_chars)),
        neutral_confidence=float(
            answerer_data.get("neutral_confidence", defaults.neutral_confidence)
        ),
        self_report_influence=float(
            answerer_data.get("self_report_influence", defaults.self_report_influence)
        ),
        snippet_match_threshold=float(
            answerer_data.get("snippet_match_threshold", defaults.snippet_match_threshold)
        ),
        exploratory_min_coverage=float(
            answerer_data.get("exploratory_min_coverage", defaults.exploratory_min_coverage)
        ),
    )


def _parse_store_config(data: dict) -> StoreConfig:
    """Parse store section from config dict"""
    store_data = data.get("store", {})
    return StoreConfig(notes_path=store_data.get("notes_path", str(DEFAULT_NOTES_PATH)))


def load_config(use_dotenv: bool = True) -> NotaryConfig:
    """
    Load configuration from file and environment variables.

    Priority (highest to lowest):
    1. Environment variables (a .env file fills in unset ones)
    2. Config file (~/.notary/config.json)
    3. Default values
    """
    if use_dotenv:
        load_dotenv(override=False)

    config = NotaryConfig()

    # Load from config file if exists
    if CONFIG_PATH.exists():
        try:
            with open(CONFIG_PATH) as f:
                data = json.load(f)

            config.llm = _parse_llm_config(data)
            config.answerer = _parse_answerer_config(data)
            config.store = _parse_store_config(data)
        except (json.JSONDecodeError, IOError) as e:
            logger.warning("Failed to load config file %s: %s", CONFIG_PATH, e)

    # LLM env var overrides (track env-sourced keys so they are never saved)
    _env_llm_map = {
        "NOTARY_LLM_PROVIDER": "provider",
        "OLLAMA_HOST": "ollama_host",
        "OLLAMA_MODEL": "ollama_model",
        "ANTHROPIC_API_KEY": "anthropic_api_key",
        "ANTHROPIC_MODEL": "anthropic_model",
        "OPENAI_API_KEY": "openai_api_key",
        "OPENAI_MODEL": "openai_model",
        "GOOGLE_API_KEY": "google_api_key",
        "GEMINI_API_KEY": "google_api_key",
        "GOOGLE_MODEL": "google_model",
    }
    for env_var, attr in _env_llm_map.items():
        val = os.getenv(env_var)
        if val:
            setattr(config.llm, attr, val)
            config._env_sourced_keys.add(attr)

    if os.getenv("NOTARY_TIMEOUT"):
        config.answerer.timeout_seconds = float(os.getenv("NOTARY_TIMEOUT"))
    if os.getenv("NOTARY_MAX_RETRIES"):
        config.answerer.max_retries = int(os.getenv("NOTARY_MAX_RETRIES"))
    if os.getenv("NOTARY_NOTES_PATH"):
        config.store.notes_path = os.getenv("NOTARY_NOTES_PATH")

    return config


def save_config(config: NotaryConfig) -> None:
    """Save configuration to file.

    API key fields that were sourced from environment variables are written
    as empty strings so that secrets are not persisted to disk.
    """
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)

    env_sourced = getattr(config, "_env_sourced_keys", set())

    llm_section = {
        "provider": config.llm.provider,
        "ollama_host": config.llm.ollama_host,
        "ollama_model": config.llm.ollama_model,
        "anthropic_api_key": config.llm.anthropic_api_key,
        "anthropic_model": config.llm.anthropic_model,
        "openai_api_key": config.llm.openai_api_key,
        "openai_model": config.llm.openai_model,
        "google_api_key": config.llm.google_api_key,
        "google_model": config.llm.google_model,
    }
    for key in ("anthropic_api_key", "openai_api_key", "google_api_key"):
        if key in env_sourced:
            llm_section[key] = ""

    a = config.answerer
    data = {
        "llm": llm_section,
        "answerer": {
            "timeout_seconds": a.timeout_seconds,
            "max_retries": a.max_retries,
            "backoff_base_seconds": a.backoff_base_seconds,
            "max_context_notes": a.max_context_notes,
            "max_note_chars": a.max_note_chars,
            "neutral_confidence": a.neutral_confidence,
            "self_report_influence": a.self_report_influence,
            "snippet_match_threshold": a.snippet_match_threshold,
            "exploratory_min_coverage": a.exploratory_min_coverage,
        },
        "store": {
            "notes_path": config.store.notes_path,
        },
    }

    with open(CONFIG_PATH, "w") as f:
        json.dump(data, f, indent=2)

    # Set secure permissions
    CONFIG_PATH.chmod(0o600)

