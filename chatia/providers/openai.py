"""OpenAI chat completions connector.

Doc: https://platform.openai.com/docs/api-reference
"""
from __future__ import annotations

from typing import Any, Dict
import math

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


def extract_chat_text(payload: Any) -> str:
    if not isinstance(payload, dict):
        return ""
    choices = payload.get("choices") or []
    if not choices or not isinstance(choices[0], dict):
        return ""
    content = (choices[0].get("message") or {}).get("content")
    return content if isinstance(content, str) else ""


class OpenAIConnector:
    name = "openai"
    modalities = frozenset({TEXT})

    def __init__(
        self,
        api_key: str = "",
        model: str = "gpt-4o-mini",
        base_url: str = "https://api.openai.com/v1",
        retry: RetryPolicy | None = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.retry = retry or RetryPolicy()

    @classmethod
    def from_config(cls, cfg: Dict[str, Any], retry: RetryPolicy | None = None) -> "OpenAIConnector":
        return cls(
            api_key=str(cfg.get("api_key") or ""),
            model=str(cfg.get("model") or "gpt-4o-mini"),
            base_url=str(cfg.get("base_url") or "https://api.openai.com/v1"),
            retry=retry,
        )

    @property
    def available(self) -> bool:
        return bool(self.api_key)

    def _headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }

    def call(self, prompt: str, context: CallContext) -> ProviderResponse:
        return contain(self.name, TEXT, lambda: self._generate(prompt, context))

    def _generate(self, prompt: str, context: CallContext) -> ProviderResponse:
        if not self.api_key:
            raise CredentialMissingError("OpenAI API key not configured")
        options = context.options
        body = {
            "model": options.get("model") or self.model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": options.get("temperature", 0.7),
            "max_tokens": options.get("max_tokens", 1000),
        }
        data = with_retry(
            lambda: request_json(
                "POST",
                f"{self.base_url}/chat/completions",
                headers=self._headers(),
                json=body,
                timeout=context.timeout_seconds,
                label="OpenAI API",
            ),
            self.retry,
            label=self.name,
        )
        return normalize_response(
            self.name, data, TEXT, text=extract_chat_text(data), sources=["https://platform.openai.com"]
        )

    def health_check(self) -> bool:
        if not self.api_key:
            return False
        try:
            request_json("GET", f"{self.base_url}/models", headers=self._headers(), timeout=5.0, label="OpenAI API")
            return True
        except Exception:
            return False

    def cost_estimate(self, params: Dict[str, Any]) -> float:
        # gpt-4o-mini: $0.15 / 1M input tokens, $0.60 / 1M output tokens
        input_tokens = math.ceil(len(params.get("prompt") or "") / 4)
        output_tokens = int(params.get("max_tokens") or 1000)
        return (input_tokens * 0.15 + output_tokens * 0.60) / 1_000_000
