"""Uniform call contract every provider connector honors.

Connectors are plain classes that satisfy the ``Connector`` protocol; there is
no base class to inherit from. The helpers here give them the shared
behavior:

- ``with_retry``: opt-in bounded retry with linear backoff
  (delay = base_delay * attempt), only for transient failures.
- ``wait_until`` / ``call_with_timeout``: race a future or a callable against
  a deadline.
- ``request_json``: one httpx round trip, failures classified into the
  ``chatia.errors`` taxonomy.
- ``normalize_response``: map a heterogeneous payload into a
  ``ProviderResponse``; unknown fields default to empty.
- ``contain``: the connector boundary. Exceptions become error-bearing
  responses and outgoing text is scrubbed of PII.
"""
from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor, TimeoutError as FutureTimeout
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, FrozenSet, Optional, Protocol, TypeVar, runtime_checkable
import logging
import re
import time

import httpx

from chatia.errors import (
    ProviderRejectionError,
    ProviderTimeoutError,
    TransientProviderError,
    error_kind,
)
from chatia.types import TEXT, ProviderResponse

logger = logging.getLogger(__name__)

T = TypeVar("T")

EMAIL_RE = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")
CARD_RE = re.compile(r"\b\d{4}[\s-]?\d{4}[\s-]?\d{4}[\s-]?\d{4}\b")
PHONE_RE = re.compile(r"\b\d{3}[-.]?\d{3}[-.]?\d{4}\b")


@dataclass
class CallContext:
    caller_id: Optional[str] = None
    timeout_ms: int = 8000
    conversation_id: Optional[str] = None
    options: Dict[str, Any] = field(default_factory=dict)

    @property
    def timeout_seconds(self) -> float:
        return max(self.timeout_ms, 1) / 1000.0


@dataclass
class RetryPolicy:
    retries: int = 2
    base_delay_ms: int = 1000

    @classmethod
    def from_config(cls, config: Any) -> "RetryPolicy":
        return cls(retries=config.retries, base_delay_ms=config.retry_base_delay_ms)


@runtime_checkable
class Connector(Protocol):
    name: str
    modalities: FrozenSet[str]

    @property
    def available(self) -> bool:
        """True when the connector's required credential is configured."""
        ...

    def call(self, prompt: str, context: CallContext) -> ProviderResponse:
        ...

    def health_check(self) -> bool:
        ...

    def cost_estimate(self, params: Dict[str, Any]) -> float:
        ...


def scrub_pii(text: str) -> str:
    text = EMAIL_RE.sub("[EMAIL]", text)
    text = CARD_RE.sub("[CARD]", text)
    return PHONE_RE.sub("[PHONE]", text)


def with_retry(
    fn: Callable[[], T],
    policy: RetryPolicy | None = None,
    sleep: Callable[[float], None] = time.sleep,
    label: str = "provider",
) -> T:
    policy = policy or RetryPolicy()
    attempt = 0
    while True:
        try:
            return fn()
        except TransientProviderError as exc:
            attempt += 1
            if attempt > policy.retries:
                raise
            delay = policy.base_delay_ms * attempt / 1000.0
            logger.info(f"{label} retry {attempt}/{policy.retries} after {delay:.1f}s delay: {exc}")
            sleep(delay)


def wait_until(future: "Future[T]", deadline: float, timeout_ms: int) -> T:
    """Wait for ``future`` until the monotonic ``deadline``.

    Several futures may share one deadline; each waits only for what is left
    of it. A future still running at the deadline raises
    ``ProviderTimeoutError("Timeout after <timeout_ms>ms")``.
    """
    try:
        return future.result(timeout=max(0.0, deadline - time.monotonic()))
    except FutureTimeout as exc:
        future.cancel()
        raise ProviderTimeoutError(f"Timeout after {timeout_ms}ms") from exc


def call_with_timeout(fn: Callable[[], T], timeout_ms: int) -> T:
    """Run ``fn`` on a worker thread and give up after ``timeout_ms``.

    The worker is abandoned, not killed, when the deadline passes.
    """
    executor = ThreadPoolExecutor(max_workers=1)
    try:
        return wait_until(executor.submit(fn), time.monotonic() + timeout_ms / 1000.0, timeout_ms)
    finally:
        executor.shutdown(wait=False)


def request_json(
    method: str,
    url: str,
    *,
    timeout: float,
    headers: Dict[str, str] | None = None,
    json: Any = None,
    label: str = "provider",
) -> Any:
    try:
        with httpx.Client(timeout=timeout) as client:
            if method.upper() == "GET":
                response = client.get(url, headers=headers)
            else:
                response = client.post(url, headers=headers, json=json)
    except httpx.TimeoutException as exc:
        raise ProviderTimeoutError(f"{label} timeout after {timeout:g}s") from exc
    except httpx.TransportError as exc:
        raise TransientProviderError(f"{label} transport error: {exc}") from exc

    status = response.status_code
    if status == 429 or status >= 500:
        raise TransientProviderError(f"{label} error: {status} - {response.text[:500]}")
    if status >= 400:
        raise ProviderRejectionError(f"{label} error: {status} - {response.text[:500]}")
    try:
        return response.json()
    except ValueError as exc:
        raise ProviderRejectionError(f"{label} returned a non-JSON body") from exc


def normalize_response(
    provider: str,
    data: Any,
    modality: str = TEXT,
    text: Optional[str] = None,
    sources: Optional[list] = None,
) -> ProviderResponse:
    payload = data if isinstance(data, dict) else {}
    if text is None:
        text = payload.get("text") or payload.get("content") or payload.get("response") or ""
    return ProviderResponse(
        provider=provider,
        modality=modality,
        text=text if isinstance(text, str) else str(text),
        html=payload.get("html") if isinstance(payload.get("html"), str) else None,
        files=list(payload.get("files") or []),
        sources=list(sources if sources is not None else payload.get("sources") or []),
        raw=data,
    )


def error_response(provider: str, error: BaseException | str, modality: str = TEXT, kind: str | None = None) -> ProviderResponse:
    if isinstance(error, BaseException):
        message = str(error) or error.__class__.__name__
        kind = kind or error_kind(error)
    else:
        message = error
    return ProviderResponse(provider=provider, modality=modality, error=message, error_kind=kind)


def contain(provider: str, modality: str, fn: Callable[[], ProviderResponse]) -> ProviderResponse:
    try:
        response = fn()
    except Exception as exc:
        logger.warning(f"{provider} call failed: {exc}")
        return error_response(provider, exc, modality)
    if response.text:
        response.text = scrub_pii(response.text)
    if response.html:
        response.html = scrub_pii(response.html)
    return response
