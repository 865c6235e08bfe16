"""Provider connectors and the capability registry."""
from __future__ import annotations

from typing import Any, List

from chatia.providers.base import CallContext, Connector, RetryPolicy
from chatia.providers.cli import CliConnector
from chatia.providers.gemini import GeminiConnector
from chatia.providers.huggingface import HuggingFaceConnector
from chatia.providers.ollama import OllamaConnector
from chatia.providers.openai import OpenAIConnector
from chatia.providers.registry import CapabilityRegistry
from chatia.providers.stability import StabilityConnector
from chatia.providers.video import ReplicateVideoConnector, pika, runway


def build_connectors(config: Any) -> List[Connector]:
    """Every connector variant known at startup, in registration order."""
    retry = RetryPolicy.from_config(config)
    connectors: List[Connector] = [
        OpenAIConnector.from_config(config.provider("openai"), retry),
        HuggingFaceConnector.from_config(config.provider("huggingface"), retry),
        GeminiConnector.from_config(config.provider("gemini"), retry),
        OllamaConnector.from_config(config.provider("ollama"), retry),
        StabilityConnector.from_config(config.provider("stability"), retry),
        runway(),
        pika(),
        ReplicateVideoConnector.from_config(config.provider("replicate-video")),
    ]
    for entry in config.cli_providers:
        connectors.append(CliConnector.from_config(entry, retry))
    return connectors


def build_registry(config: Any) -> CapabilityRegistry:
    return CapabilityRegistry.from_config(config, build_connectors(config))


__all__ = [
    "CallContext",
    "CapabilityRegistry",
    "Connector",
    "RetryPolicy",
    "build_connectors",
    "build_registry",
]
