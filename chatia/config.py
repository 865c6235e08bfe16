"""Configuration loader for Chatia."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List
import os
import yaml

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent.parent / "config" / "default.yaml"
USER_CONFIG_PATH = Path.home() / ".config" / "chatia" / "config.yaml"

# env var -> (provider section, key)
CREDENTIAL_ENV = {
    "OPENAI_API_KEY": ("openai", "api_key"),
    "OPENAI_MODEL": ("openai", "model"),
    "HF_API_KEY": ("huggingface", "api_key"),
    "GEMINI_API_KEY": ("gemini", "api_key"),
    "STABILITY_API_KEY": ("stability", "api_key"),
    "REPLICATE_API_TOKEN": ("replicate-video", "api_key"),
    "OLLAMA_BASE_URL": ("ollama", "base_url"),
}


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    result = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _setting(section: Dict[str, Any], key: str, default: Any) -> Any:
    # A key left empty in YAML loads as None; treat it as unset.
    value = section.get(key)
    return default if value is None else value


def _int_env(name: str) -> int | None:
    value = os.getenv(name)
    if not value:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def apply_env_overrides(data: Dict[str, Any]) -> Dict[str, Any]:
    # Orchestrator
    enabled = os.getenv("ENABLED_PROVIDERS")
    if enabled:
        names = [item.strip() for item in enabled.split(",") if item.strip()]
        data.setdefault("providers", {})["enabled"] = names
    timeout_ms = _int_env("PROVIDER_TIMEOUT_MS")
    if timeout_ms is not None:
        data.setdefault("orchestrator", {})["timeout_ms"] = timeout_ms
    max_providers = _int_env("MAX_PROVIDERS")
    if max_providers is not None:
        data.setdefault("orchestrator", {})["max_providers"] = max_providers
    language = os.getenv("CHATIA_LANGUAGE")
    if language:
        data.setdefault("orchestrator", {})["language"] = language

    # Retry
    base_delay = _int_env("RETRY_BASE_DELAY_MS")
    if base_delay is not None:
        data.setdefault("retry", {})["base_delay_ms"] = base_delay

    # Server
    host = os.getenv("CHATIA_HOST")
    if host:
        data.setdefault("server", {})["host"] = host
    port = _int_env("CHATIA_PORT")
    if port is not None:
        data.setdefault("server", {})["port"] = port

    log_level = os.getenv("CHATIA_LOG_LEVEL")
    if log_level:
        data.setdefault("logging", {})["level"] = log_level

    # Credentials
    for env_name, (section, key) in CREDENTIAL_ENV.items():
        value = os.getenv(env_name)
        if value:
            providers = data.setdefault("providers", {})
            entry = providers.get(section)
            if not isinstance(entry, dict):
                entry = {}
                providers[section] = entry
            entry[key] = value
    return data


def load_config(path: Path | None = None) -> Dict[str, Any]:
    data: Dict[str, Any] = {}
    if DEFAULT_CONFIG_PATH.exists():
        data = yaml.safe_load(DEFAULT_CONFIG_PATH.read_text()) or {}
    explicit = path or (Path(os.environ["CHATIA_CONFIG"]) if os.getenv("CHATIA_CONFIG") else None)
    for candidate in (USER_CONFIG_PATH, explicit):
        if candidate and candidate.exists():
            override = yaml.safe_load(candidate.read_text()) or {}
            data = _deep_merge(data, override)
    return apply_env_overrides(data)


@dataclass
class Config:
    raw: Dict[str, Any]

    @property
    def orchestrator(self) -> Dict[str, Any]:
        return self.raw.get("orchestrator", {}) or {}

    @property
    def providers(self) -> Dict[str, Any]:
        return self.raw.get("providers", {}) or {}

    @property
    def retry(self) -> Dict[str, Any]:
        return self.raw.get("retry", {}) or {}

    @property
    def combiner(self) -> Dict[str, Any]:
        return self.raw.get("combiner", {}) or {}

    @property
    def server(self) -> Dict[str, Any]:
        return self.raw.get("server", {}) or {}

    @property
    def memory(self) -> Dict[str, Any]:
        return self.raw.get("memory", {}) or {}

    @property
    def enabled_providers(self) -> List[str]:
        """Explicit allow-list. Empty means credential-based auto-enable."""
        return [str(name) for name in (self.providers.get("enabled") or [])]

    @property
    def timeout_ms(self) -> int:
        return int(_setting(self.orchestrator, "timeout_ms", 8000))

    @property
    def max_providers(self) -> int:
        return int(_setting(self.orchestrator, "max_providers", 5))

    @property
    def language(self) -> str:
        return str(_setting(self.orchestrator, "language", "pt-BR"))

    @property
    def health_timeout_ms(self) -> int:
        return int(_setting(self.orchestrator, "health_timeout_ms", 5000))

    @property
    def retries(self) -> int:
        return int(_setting(self.retry, "retries", 2))

    @property
    def retry_base_delay_ms(self) -> int:
        return int(_setting(self.retry, "base_delay_ms", 1000))

    @property
    def cli_providers(self) -> List[Dict[str, Any]]:
        return [entry for entry in (self.providers.get("cli") or []) if isinstance(entry, dict)]

    @property
    def log_level(self) -> str:
        return str(_setting(self.raw.get("logging") or {}, "level", "INFO")).upper()

    def provider(self, name: str) -> Dict[str, Any]:
        entry = self.providers.get(name)
        return entry if isinstance(entry, dict) else {}


def get_config() -> Config:
    return Config(load_config())
