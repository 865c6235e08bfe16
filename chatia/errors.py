"""Error taxonomy for provider calls and consolidation."""
from __future__ import annotations

CREDENTIAL_MISSING = "credential_missing"
TIMEOUT = "timeout"
TRANSIENT = "transient"
REJECTION = "rejection"
CONSOLIDATION = "consolidation"
NOT_FOUND = "not_found"
UNKNOWN = "unknown"


class ChatiaError(Exception):
    """Base class for every failure the core knows how to classify."""
    kind = UNKNOWN


class CredentialMissingError(ChatiaError):
    """Raised when a connector lacks its required credential."""
    kind = CREDENTIAL_MISSING


class ProviderTimeoutError(ChatiaError):
    """Raised when a provider call exceeds its time budget."""
    kind = TIMEOUT


class TransientProviderError(ChatiaError):
    """Retryable network or 5xx-class failure."""
    kind = TRANSIENT


class ProviderRejectionError(ChatiaError):
    """Non-retryable 4xx or validation failure."""
    kind = REJECTION


class ConsolidationError(ChatiaError):
    """Raised when the synthesis step fails."""
    kind = CONSOLIDATION


class ProviderNotFoundError(ChatiaError, KeyError):
    """Raised when a provider name is not registered."""
    kind = NOT_FOUND

    def __str__(self) -> str:
        return Exception.__str__(self)


def error_kind(exc: BaseException) -> str:
    if isinstance(exc, ChatiaError):
        return exc.kind
    if isinstance(exc, TimeoutError):
        return TIMEOUT
    return UNKNOWN
