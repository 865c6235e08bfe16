"""Ollama connector for local inference."""
from __future__ import annotations

from typing import Any, Dict

from chatia.errors import CredentialMissingError
from chatia.providers.base import (
    CallContext,
    RetryPolicy,
    contain,
    normalize_response,
    request_json,
    with_retry,
)
from chatia.types import TEXT, ProviderResponse


class OllamaConnector:
    name = "ollama"
    modalities = frozenset({TEXT})

    def __init__(self, base_url: str = "", model: str = "qwen2.5:7b", retry: RetryPolicy | None = None) -> None:
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.retry = retry or RetryPolicy()

    @classmethod
    def from_config(cls, cfg: Dict[str, Any], retry: RetryPolicy | None = None) -> "OllamaConnector":
        return cls(
            base_url=str(cfg.get("base_url") or ""),
            model=str(cfg.get("model") or "qwen2.5:7b"),
            retry=retry,
        )

    @property
    def available(self) -> bool:
        # A local server needs no key; the configured URL is its credential.
        return bool(self.base_url)

    def call(self, prompt: str, context: CallContext) -> ProviderResponse:
        return contain(self.name, TEXT, lambda: self._generate(prompt, context))

    def _generate(self, prompt: str, context: CallContext) -> ProviderResponse:
        if not self.base_url:
            raise CredentialMissingError("OLLAMA_BASE_URL not set")
        options = context.options
        payload: Dict[str, Any] = {
            "model": options.get("model") or self.model,
            "prompt": prompt,
            "stream": False,
            "options": {
                "temperature": options.get("temperature", 0.2),
            },
        }
        if options.get("system"):
            payload["system"] = options["system"]
        if options.get("max_tokens") is not None:
            payload["options"]["num_predict"] = options["max_tokens"]

        data = with_retry(
            lambda: request_json(
                "POST", f"{self.base_url}/api/generate", json=payload, timeout=context.timeout_seconds, label="Ollama"
            ),
            self.retry,
            label=self.name,
        )
        return normalize_response(self.name, data, TEXT)

    def health_check(self) -> bool:
        if not self.base_url:
            return False
        try:
            request_json("GET", f"{self.base_url}/api/tags", timeout=5.0, label="Ollama")
            return True
        except Exception:
            return False

    def cost_estimate(self, params: Dict[str, Any]) -> float:
        return 0.0
