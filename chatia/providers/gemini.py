"""Native Gemini API connector."""
from __future__ import annotations

from typing import Any, Dict
import logging

from chatia.errors import CredentialMissingError, ProviderRejectionError
from chatia.providers.base import (
    CallContext,
    RetryPolicy,
    contain,
    normalize_response,
    request_json,
    with_retry,
)
from chatia.types import TEXT, ProviderResponse

logger = logging.getLogger(__name__)


class GeminiConnector:
    """Gemini generateContent over httpx."""

    name = "gemini"
    modalities = frozenset({TEXT})

    MODEL_MAP = {
        "2.5-flash": "gemini-2.5-flash",
        "2.5-pro": "gemini-2.5-pro",
        "2.0-flash": "gemini-2.0-flash",
        "1.5-flash": "gemini-1.5-flash",
        "1.5-pro": "gemini-1.5-pro",
    }

    def __init__(
        self,
        api_key: str = "",
        model: str = "2.5-flash",
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
        retry: RetryPolicy | None = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.retry = retry or RetryPolicy()

    @classmethod
    def from_config(cls, cfg: Dict[str, Any], retry: RetryPolicy | None = None) -> "GeminiConnector":
        return cls(
            api_key=str(cfg.get("api_key") or ""),
            model=str(cfg.get("model") or "2.5-flash"),
            base_url=str(cfg.get("base_url") or "https://generativelanguage.googleapis.com/v1beta"),
            retry=retry,
        )

    @property
    def available(self) -> bool:
        return bool(self.api_key)

    def call(self, prompt: str, context: CallContext) -> ProviderResponse:
        return contain(self.name, TEXT, lambda: self._generate(prompt, context))

    def _generate(self, prompt: str, context: CallContext) -> ProviderResponse:
        if not self.api_key:
            raise CredentialMissingError("GEMINI_API_KEY not set")

        model = str(context.options.get("model") or self.model)
        model_id = self.MODEL_MAP.get(model, model)
        url = f"{self.base_url}/models/{model_id}:generateContent?key={self.api_key}"
        body: Dict[str, Any] = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": context.options.get("temperature", 0.2),
            },
        }
        system = context.options.get("system")
        if system:
            body["systemInstruction"] = {"parts": [{"text": system}]}

        data = with_retry(
            lambda: request_json("POST", url, json=body, timeout=context.timeout_seconds, label="Gemini API"),
            self.retry,
            label=self.name,
        )
        candidates = data.get("candidates", []) if isinstance(data, dict) else []
        if not candidates:
            raise ProviderRejectionError("No candidates in response")

        parts = (candidates[0].get("content") or {}).get("parts", [])
        text = "".join(p.get("text", "") for p in parts)
        usage_meta = data.get("usageMetadata", {})
        logger.debug(
            f"gemini usage prompt={usage_meta.get('promptTokenCount', 0)} "
            f"completion={usage_meta.get('candidatesTokenCount', 0)}"
        )
        return normalize_response(self.name, data, TEXT, text=text, sources=["https://ai.google.dev"])

    def health_check(self) -> bool:
        if not self.api_key:
            return False
        try:
            request_json("GET", f"{self.base_url}/models?key={self.api_key}", timeout=5.0, label="Gemini API")
            return True
        except Exception:
            return False

    def cost_estimate(self, params: Dict[str, Any]) -> float:
        return 0.0
