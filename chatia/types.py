"""Data model shared by connectors, the registry and the orchestrator."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, FrozenSet, List, Optional

TEXT = "text"
IMAGE = "image"
VIDEO = "video"
AUDIO = "audio"
MIDI = "midi"
MODALITIES = (TEXT, IMAGE, VIDEO, AUDIO, MIDI)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class CapabilityDescriptor:
    name: str
    modalities: FrozenSet[str]
    enabled: bool = False
    healthy: bool = False

    def supports(self, modality: str) -> bool:
        return modality in self.modalities

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "enabled": self.enabled,
            "healthy": self.healthy,
            "modalities": [m for m in MODALITIES if m in self.modalities],
        }


@dataclass
class ProviderResponse:
    """Normalized outcome of one provider call.

    A response is valid for consolidation only when it carries text and no
    error. Responses with both text and an error stay invalid but are kept
    for observability.
    """
    provider: str
    modality: str = TEXT
    text: Optional[str] = None
    html: Optional[str] = None
    files: List[Dict[str, Any]] = field(default_factory=list)
    sources: List[str] = field(default_factory=list)
    raw: Any = None
    error: Optional[str] = None
    error_kind: Optional[str] = None
    timestamp: datetime = field(default_factory=utcnow)

    @property
    def valid(self) -> bool:
        return self.error is None and bool(self.text)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "provider": self.provider,
            "type": self.modality,
            "text": self.text,
            "html": self.html,
            "files": list(self.files),
            "sources": list(self.sources),
            "error": self.error,
            "error_kind": self.error_kind,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class OrchestrationRequest:
    prompt: str
    caller_id: str
    providers: Optional[List[str]] = None
    timeout_ms: Optional[int] = None
    include_memory: bool = False
    language: Optional[str] = None


@dataclass
class CombinerContext:
    user_message: str
    responses: List[ProviderResponse]
    language: str
    memory_context: Optional[str] = None


@dataclass
class TraceEntry:
    excerpt: str
    provider: str

    def to_dict(self) -> Dict[str, Any]:
        return {"excerpt": self.excerpt, "provider": self.provider}


@dataclass
class CombinedResult:
    combined: str
    provider_responses: List[ProviderResponse]
    trace: List[TraceEntry]
    consolidator: str
    timestamp: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "combined": self.combined,
            "provider_responses": [r.to_dict() for r in self.provider_responses],
            "combiner_meta": {
                "provider": self.consolidator,
                "timestamp": self.timestamp.isoformat(),
                "trace": [t.to_dict() for t in self.trace],
            },
        }
