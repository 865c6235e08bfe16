"""HuggingFace Inference API connector (text generation).

Doc: https://huggingface.co/docs/api-inference
"""
from __future__ import annotations

from typing import Any, Dict

import httpx

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


def extract_generated_text(payload: Any) -> str:
    if isinstance(payload, list):
        payload = payload[0] if payload else {}
    if not isinstance(payload, dict):
        return ""
    text = payload.get("generated_text")
    return text if isinstance(text, str) else ""


class HuggingFaceConnector:
    name = "huggingface"
    modalities = frozenset({TEXT})

    def __init__(
        self,
        api_key: str = "",
        model: str = "meta-llama/Llama-3.2-3B-Instruct",
        base_url: str = "https://api-inference.huggingface.co/models",
        retry: RetryPolicy | None = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.retry = retry or RetryPolicy()

    @classmethod
    def from_config(cls, cfg: Dict[str, Any], retry: RetryPolicy | None = None) -> "HuggingFaceConnector":
        return cls(
            api_key=str(cfg.get("api_key") or ""),
            model=str(cfg.get("model") or "meta-llama/Llama-3.2-3B-Instruct"),
            base_url=str(cfg.get("base_url") or "https://api-inference.huggingface.co/models"),
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
            raise CredentialMissingError("HuggingFace API key not configured")
        options = context.options
        model = options.get("model") or self.model
        body = {
            "inputs": prompt,
            "parameters": {
                "max_new_tokens": options.get("max_tokens", 500),
                "temperature": options.get("temperature", 0.7),
                "return_full_text": False,
            },
        }
        data = with_retry(
            lambda: request_json(
                "POST",
                f"{self.base_url}/{model}",
                headers=self._headers(),
                json=body,
                timeout=context.timeout_seconds,
                label="HuggingFace API",
            ),
            self.retry,
            label=self.name,
        )
        return normalize_response(
            self.name, data, TEXT, text=extract_generated_text(data), sources=["https://huggingface.co"]
        )

    def health_check(self) -> bool:
        if not self.api_key:
            return False
        try:
            with httpx.Client(timeout=5.0) as client:
                response = client.post(
                    f"{self.base_url}/meta-llama/Llama-3.2-1B",
                    headers=self._headers(),
                    json={"inputs": "test"},
                )
        except Exception:
            return False
        # Cold models answer 503; only auth failures mean unhealthy.
        return response.status_code not in (401, 403)

    def cost_estimate(self, params: Dict[str, Any]) -> float:
        return 0.0
