"""Video generation connectors.

Runway and Pika have no public API access, so their connectors always answer
with an error. Replicate is implementable but generation is still pending.
"""
from __future__ import annotations

from typing import Any, Dict

from chatia.errors import CredentialMissingError, ProviderRejectionError
from chatia.providers.base import CallContext, contain, request_json
from chatia.types import VIDEO, ProviderResponse


class PlaceholderVideoConnector:
    """Registered for visibility in the admin listing; never auto-enabled."""

    modalities = frozenset({VIDEO})

    def __init__(self, name: str, message: str, docs_url: str) -> None:
        self.name = name
        self.message = message
        self.docs_url = docs_url

    @property
    def available(self) -> bool:
        return False

    def call(self, prompt: str, context: CallContext) -> ProviderResponse:
        return ProviderResponse(
            provider=self.name,
            modality=VIDEO,
            text=f"{self.name} is a placeholder connector.",
            error=self.message,
            error_kind=ProviderRejectionError.kind,
            sources=[self.docs_url],
        )

    def health_check(self) -> bool:
        return False

    def cost_estimate(self, params: Dict[str, Any]) -> float:
        return 0.0


def runway() -> PlaceholderVideoConnector:
    return PlaceholderVideoConnector(
        "runway",
        "Runway ML requires enterprise access. Please contact Runway ML for API credentials.",
        "https://docs.runwayml.com/",
    )


def pika() -> PlaceholderVideoConnector:
    return PlaceholderVideoConnector(
        "pika",
        "Pika Labs API not yet publicly available.",
        "https://pika.art/",
    )


class ReplicateVideoConnector:
    name = "replicate-video"
    modalities = frozenset({VIDEO})

    def __init__(self, api_key: str = "", base_url: str = "https://api.replicate.com/v1") -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")

    @classmethod
    def from_config(cls, cfg: Dict[str, Any]) -> "ReplicateVideoConnector":
        return cls(
            api_key=str(cfg.get("api_key") or ""),
            base_url=str(cfg.get("base_url") or "https://api.replicate.com/v1"),
        )

    @property
    def available(self) -> bool:
        return bool(self.api_key)

    def call(self, prompt: str, context: CallContext) -> ProviderResponse:
        return contain(self.name, VIDEO, lambda: self._generate(prompt))

    def _generate(self, prompt: str) -> ProviderResponse:
        if not self.api_key:
            raise CredentialMissingError("Replicate API token not configured")
        # TODO: start a prediction on a text-to-video model (zeroscope-v2-xl) and poll it.
        return ProviderResponse(
            provider=self.name,
            modality=VIDEO,
            text="Video generation via Replicate - implementation pending",
            error="Implementation in progress.",
            error_kind=ProviderRejectionError.kind,
            sources=["https://replicate.com/docs"],
        )

    def health_check(self) -> bool:
        if not self.api_key:
            return False
        try:
            request_json(
                "GET",
                f"{self.base_url}/models",
                headers={"Authorization": f"Token {self.api_key}"},
                timeout=5.0,
                label="Replicate",
            )
            return True
        except Exception:
            return False

    def cost_estimate(self, params: Dict[str, Any]) -> float:
        return 0.0
