"""Stability AI connector (text-to-image).

Doc: https://platform.stability.ai/docs/api-reference
"""
from __future__ import annotations

from typing import Any, Dict, List

from chatia.errors import CredentialMissingError
from chatia.providers.base import (
    CallContext,
    RetryPolicy,
    contain,
    normalize_response,
    request_json,
    with_retry,
)
from chatia.types import IMAGE, ProviderResponse


class StabilityConnector:
    name = "stability"
    modalities = frozenset({IMAGE})

    def __init__(
        self,
        api_key: str = "",
        engine: str = "stable-diffusion-xl-1024-v1-0",
        base_url: str = "https://api.stability.ai/v1",
        retry: RetryPolicy | None = None,
    ) -> None:
        self.api_key = api_key
        self.engine = engine
        self.base_url = base_url.rstrip("/")
        self.retry = retry or RetryPolicy()

    @classmethod
    def from_config(cls, cfg: Dict[str, Any], retry: RetryPolicy | None = None) -> "StabilityConnector":
        return cls(
            api_key=str(cfg.get("api_key") or ""),
            engine=str(cfg.get("engine") or "stable-diffusion-xl-1024-v1-0"),
            base_url=str(cfg.get("base_url") or "https://api.stability.ai/v1"),
            retry=retry,
        )

    @property
    def available(self) -> bool:
        return bool(self.api_key)

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Accept": "application/json",
            "Content-Type": "application/json",
        }

    def call(self, prompt: str, context: CallContext) -> ProviderResponse:
        return contain(self.name, IMAGE, lambda: self._generate(prompt, context))

    def _generate(self, prompt: str, context: CallContext) -> ProviderResponse:
        if not self.api_key:
            raise CredentialMissingError("Stability AI API key not configured")
        options = context.options
        body = {
            "text_prompts": [{"text": prompt, "weight": 1}],
            "cfg_scale": options.get("cfg_scale", 7),
            "height": options.get("height", 1024),
            "width": options.get("width", 1024),
            "samples": options.get("samples", 1),
            "steps": options.get("steps", 30),
        }
        data = with_retry(
            lambda: request_json(
                "POST",
                f"{self.base_url}/generation/{self.engine}/text-to-image",
                headers=self._headers(),
                json=body,
                timeout=context.timeout_seconds,
                label="Stability AI",
            ),
            self.retry,
            label=self.name,
        )
        artifacts = (data.get("artifacts") or []) if isinstance(data, dict) else []
        files: List[Dict[str, Any]] = []
        for index, artifact in enumerate(artifacts):
            if not isinstance(artifact, dict):
                continue
            files.append({
                "name": f"generated-image-{index}.png",
                "url": None,
                "metadata": {
                    "seed": artifact.get("seed"),
                    "finish_reason": artifact.get("finishReason"),
                },
            })
        response = normalize_response(
            self.name,
            data,
            IMAGE,
            text=f"Generated {len(files)} image(s) for: {prompt}",
            sources=["https://stability.ai"],
        )
        response.files = files
        return response

    def health_check(self) -> bool:
        if not self.api_key:
            return False
        try:
            request_json("GET", f"{self.base_url}/user/account", headers=self._headers(), timeout=5.0, label="Stability AI")
            return True
        except Exception:
            return False

    def cost_estimate(self, params: Dict[str, Any]) -> float:
        # SDXL is roughly $0.002 per image
        return int(params.get("samples") or 1) * 0.002
