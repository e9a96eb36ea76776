"""
Configuration module for Ollama Code.
Handles environment variables (.env supported) and application settings.
Only the CLI layer reads this; the core receives explicit values.
"""

import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

DEFAULT_OLLAMA_MODEL = "qwen2.5-coder:7b"


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


@dataclass
class OllamaConfig:
    """Ollama server and default generation settings"""
    url: str = field(default_factory=lambda: os.getenv("OLLAMA_URL", "http://localhost:11434"))
    model: str = field(default_factory=lambda: os.getenv("OLLAMA_MODEL", DEFAULT_OLLAMA_MODEL))
    temperature: float = field(default_factory=lambda: float(os.getenv("OLLAMA_TEMPERATURE", "0.7")))
    max_tokens: int = field(default_factory=lambda: int(os.getenv("OLLAMA_MAX_TOKENS", "4096")))

    def pinned_model(self) -> Optional[str]:
        """The configured model when it replaces the stock per-task lineup, else None."""
        if self.model and self.model != DEFAULT_OLLAMA_MODEL:
            return self.model
        return None


@dataclass
class AppConfig:
    """Application-specific configuration"""
    title: str = "Ollama Code"
    mode: str = field(default_factory=lambda: os.getenv("OLLAMA_CODE_MODE", "interactive"))
    work_dir: str = field(default_factory=lambda: os.getenv("WORKING_DIRECTORY", "."))
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO").upper())
    log_file: str = field(default_factory=lambda: os.getenv("LOG_FILE", "ollama_code.log"))
    enable_web_search: bool = field(default_factory=lambda: _env_bool("ENABLE_WEB_SEARCH", "true"))
    command_timeout: int = field(default_factory=lambda: int(os.getenv("COMMAND_TIMEOUT", "60")))
    # Supervisor admission limit for background subagents
    max_subagents: int = field(default_factory=lambda: int(os.getenv("MAX_SUBAGENTS", "5")))


@dataclass
class PerformanceConfig:
    web_search_cache_ttl: int = field(default_factory=lambda: int(os.getenv("WEB_SEARCH_CACHE_TTL", "300")))
    max_search_results: int = field(default_factory=lambda: int(os.getenv("MAX_SEARCH_RESULTS", "5")))


@dataclass
class Config:
    ollama: OllamaConfig = field(default_factory=OllamaConfig)
    app: AppConfig = field(default_factory=AppConfig)
    performance: PerformanceConfig = field(default_factory=PerformanceConfig)


def load_config() -> Config:
    """Read every section from the environment as it is right now."""
    return Config()


def apply_overrides(
    config: Config,
    mode: Optional[str] = None,
    model: Optional[str] = None,
    url: Optional[str] = None,
    work_dir: Optional[str] = None,
    debug: bool = False,
) -> Config:
    """Command-line flags win over the environment. Returns the same object."""
    if mode:
        config.app.mode = mode
    if model:
        config.ollama.model = model
    if url:
        config.ollama.url = url
    if work_dir:
        config.app.work_dir = work_dir
    if debug:
        config.app.log_level = "DEBUG"
    return config
