"""
Multi-model routing.
Maps a task type to a model spec and hands out one cached OllamaClient per
model name, so small fast models classify intents while larger ones write code.
"""

import copy
import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from ollama_service import DEFAULT_BASE_URL, GenerationOptions, OllamaClient

logger = logging.getLogger(__name__)


class TaskType(str, Enum):
    INTENT = "intent"
    CODE = "code"
    SEARCH = "search"
    ANALYSIS = "analysis"
    DEFAULT = "default"


class RouterConfigError(ValueError):
    """Invalid router configuration or unknown task type"""
    pass


@dataclass
class ModelSpec:
    """One backend model configuration"""
    name: str
    max_tokens: int = 4096
    temperature: float = 0.7
    description: str = ""

    def validate(self) -> None:
        if not self.name:
            raise RouterConfigError("model name is required")
        if self.max_tokens <= 0:
            raise RouterConfigError(f"max_tokens must be > 0 for {self.name}")
        if not 0.0 <= self.temperature <= 1.0:
            raise RouterConfigError(f"temperature must be in [0, 1] for {self.name}")

    def options(self, system_prompt: Optional[str] = None) -> GenerationOptions:
        return GenerationOptions(
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            system_prompt=system_prompt,
        )


def _parse_task_type(task: Any) -> TaskType:
    try:
        return TaskType(task)
    except ValueError:
        raise RouterConfigError(f"unknown task type: {task}")


@dataclass
class RouterConfig:
    """Per-task model specs plus the fallback default model"""
    models: Dict[TaskType, ModelSpec] = field(default_factory=dict)
    default_model: ModelSpec = field(default_factory=lambda: ModelSpec(name="qwen2.5-coder:7b"))
    enabled: bool = True

    def get_model(self, task: Any) -> ModelSpec:
        """Resolve a task type to a spec. Disabled or missing entries use the default."""
        task_type = _parse_task_type(task)
        if not self.enabled:
            return self.default_model
        return self.models.get(task_type, self.default_model)

    def set_model(self, task: Any, spec: ModelSpec) -> None:
        self.models[_parse_task_type(task)] = spec

    def validate(self) -> None:
        if not self.default_model or not self.default_model.name:
            raise RouterConfigError("default model name is required")
        if not self.enabled:
            return
        for task_type in TaskType:
            spec = self.models.get(task_type)
            if spec is None:
                raise RouterConfigError(f"missing model for task type: {task_type.value}")
            spec.validate()

    def clone(self) -> "RouterConfig":
        return copy.deepcopy(self)


def default_router_config() -> RouterConfig:
    """Stock qwen2.5-coder lineup: tiny model for intents, 7b for the heavy lifting."""
    return RouterConfig(
        models={
            TaskType.INTENT: ModelSpec("qwen2.5-coder:1.5b", 512, 0.3, "Fast intent detection"),
            TaskType.CODE: ModelSpec("qwen2.5-coder:7b", 4096, 0.7, "Code generation"),
            TaskType.SEARCH: ModelSpec("qwen2.5-coder:3b", 2048, 0.5, "Search and summaries"),
            TaskType.ANALYSIS: ModelSpec("qwen2.5-coder:7b", 8192, 0.5, "Project analysis"),
            TaskType.DEFAULT: ModelSpec("qwen2.5-coder:7b", 4096, 0.7, "General purpose"),
        },
        default_model=ModelSpec("qwen2.5-coder:7b", 4096, 0.7, "General purpose"),
        enabled=True,
    )


def single_model_config(model: str) -> RouterConfig:
    """Every task type routed to one model (used when --model is given)."""
    cfg = default_router_config()
    for spec in cfg.models.values():
        spec.name = model
    cfg.default_model.name = model
    return cfg


class ModelRouter:
    """
    Resolves task types to clients.

    The client cache holds at most one client per model name for the router's
    lifetime. Lookups read the dict without locking; a miss takes the cache
    lock and re-checks before constructing.
    """

    def __init__(
        self,
        config: Optional[RouterConfig] = None,
        base_url: str = DEFAULT_BASE_URL,
        client_factory: Optional[Callable[[str], Any]] = None,
    ):
        cfg = config if config is not None else default_router_config()
        cfg.validate()
        self._config = cfg
        self._config_lock = threading.Lock()
        self.base_url = base_url
        self._client_factory = client_factory or (lambda name: OllamaClient(base_url=base_url, model=name))
        self._clients: Dict[str, Any] = {}
        self._cache_lock = threading.Lock()

    def get_model_spec(self, task: Any) -> ModelSpec:
        with self._config_lock:
            return self._config.get_model(task)

    def get_client(self, task: Any) -> Any:
        """Client for the model configured for this task type."""
        spec = self.get_model_spec(task)
        if not spec.name:
            raise RouterConfigError(f"no model configured for task type: {task}")
        return self.get_client_for_model(spec.name)

    def get_client_for_model(self, name: str) -> Any:
        client = self._clients.get(name)
        if client is not None:
            return client
        with self._cache_lock:
            client = self._clients.get(name)
            if client is None:
                client = self._client_factory(name)
                self._clients[name] = client
                logger.info(f"Created backend client for model {name}")
            return client

    def get_default_client(self) -> Any:
        with self._config_lock:
            name = self._config.default_model.name
        return self.get_client_for_model(name)

    def set_config(self, config: RouterConfig) -> None:
        """Swap in a new configuration. Invalid configurations are rejected unchanged."""
        config.validate()
        with self._config_lock:
            self._config = config.clone()
        logger.info(f"Router configuration replaced (enabled={config.enabled})")

    def get_config(self) -> RouterConfig:
        with self._config_lock:
            return self._config.clone()

    def enable(self) -> None:
        with self._config_lock:
            candidate = self._config.clone()
            candidate.enabled = True
            candidate.validate()
            self._config = candidate

    def disable(self) -> None:
        with self._config_lock:
            self._config.enabled = False

    def is_enabled(self) -> bool:
        with self._config_lock:
            return self._config.enabled

    def clear_cache(self) -> None:
        with self._cache_lock:
            clients = list(self._clients.values())
            self._clients = {}
        for client in clients:
            close = getattr(client, "close", None)
            if callable(close):
                close()

    def get_cached_models(self) -> List[str]:
        with self._cache_lock:
            return sorted(self._clients)

    def stats(self) -> Dict[str, Any]:
        with self._config_lock:
            cfg = self._config
            models = {t.value: s.name for t, s in cfg.models.items()}
            default_name = cfg.default_model.name
            enabled = cfg.enabled
        cached = self.get_cached_models()
        return {
            "enabled": enabled,
            "default_model": default_name,
            "models": models,
            "cached_clients": len(cached),
            "cached_models": cached,
        }
