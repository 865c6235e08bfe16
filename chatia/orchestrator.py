"""Fan-out / fan-in orchestration across provider connectors.

One request moves through RESOLVE -> DISPATCH -> COLLECT -> FILTER and then
either CONSOLIDATE or FALLBACK:

- RESOLVE picks the caller's provider list (capped at ``max_providers``) or
  every enabled text connector in registration order.
- DISPATCH starts one call per provider on its own worker thread. Unknown
  names become ``not_found`` error responses and are never dispatched.
- COLLECT waits for every call against one shared deadline. A call still
  running at the deadline is abandoned and recorded as a timeout; its thread
  may keep running, but its result is discarded. Results stay aligned with
  the resolved provider order regardless of completion order.
- FILTER keeps valid responses (text, no error) for consolidation; invalid
  ones are still returned for observability.
- CONSOLIDATE asks the synthesizer for one merged answer. If that fails the
  valid answers are concatenated as ``provider: text`` with an empty trace.
  With no valid answers at all a fixed apology is returned.

The orchestrator never retries; retry is a connector's own decision.
"""
from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from typing import Any, List, Optional, Sequence, Tuple
import logging
import time

from chatia.combiner import (
    Synthesizer,
    apology,
    build_messages,
    build_synthesizer,
    build_trace,
    fallback_text,
)
from chatia.errors import ConsolidationError, ProviderNotFoundError, ProviderTimeoutError, UNKNOWN
from chatia.memory import MemoryProvider, NullMemory, build_memory
from chatia.providers import build_registry
from chatia.providers.base import CallContext, Connector, error_response, wait_until
from chatia.providers.registry import CapabilityRegistry
from chatia.types import (
    TEXT,
    CombinedResult,
    CombinerContext,
    OrchestrationRequest,
    ProviderResponse,
    TraceEntry,
)

logger = logging.getLogger(__name__)

UNKNOWN_PROVIDER = "unknown"
NO_CONSOLIDATOR = "none"
FALLBACK_CONSOLIDATOR = "fallback"


def _invoke(connector: Connector, prompt: str, context: CallContext) -> ProviderResponse:
    try:
        response = connector.call(prompt, context)
    except Exception as exc:
        # Connectors should contain their own failures; this covers ones that don't.
        logger.warning(f"{connector.name} raised past its boundary: {exc}")
        return error_response(connector.name, exc)
    if not isinstance(response, ProviderResponse):
        return error_response(connector.name, f"Malformed response of type {type(response).__name__}")
    return response


class Orchestrator:
    def __init__(
        self,
        registry: CapabilityRegistry,
        synthesizer: Synthesizer,
        memory: MemoryProvider | None = None,
        timeout_ms: int = 8000,
        max_providers: int = 5,
        language: str = "pt-BR",
    ) -> None:
        self.registry = registry
        self.synthesizer = synthesizer
        self.memory = memory or NullMemory()
        self.timeout_ms = timeout_ms
        self.max_providers = max_providers
        self.language = language

    @classmethod
    def from_config(
        cls,
        config: Any,
        registry: CapabilityRegistry | None = None,
        synthesizer: Synthesizer | None = None,
        memory: MemoryProvider | None = None,
    ) -> "Orchestrator":
        registry = registry or build_registry(config)
        return cls(
            registry=registry,
            synthesizer=synthesizer or build_synthesizer(config, registry),
            memory=memory or build_memory(config),
            timeout_ms=config.timeout_ms,
            max_providers=config.max_providers,
            language=config.language,
        )

    def orchestrate(
        self,
        prompt: str,
        caller_id: str,
        providers: Optional[Sequence[str]] = None,
        timeout_ms: Optional[int] = None,
        include_memory: bool = False,
        language: Optional[str] = None,
    ) -> CombinedResult:
        request = OrchestrationRequest(
            prompt=prompt,
            caller_id=caller_id,
            providers=list(providers) if providers else None,
            timeout_ms=timeout_ms,
            include_memory=include_memory,
            language=language,
        )
        return self.run(request)

    def run(self, request: OrchestrationRequest) -> CombinedResult:
        """Execute one request. Always returns a result, never raises."""
        language = request.language or self.language
        try:
            return self._run(request, language)
        except Exception:
            logger.exception(f"Orchestration failed for caller {request.caller_id}")
            return CombinedResult(
                combined=apology(language),
                provider_responses=[],
                trace=[],
                consolidator=NO_CONSOLIDATOR,
            )

    def _run(self, request: OrchestrationRequest, language: str) -> CombinedResult:
        names = self.resolve(request.providers)
        timeout_ms = request.timeout_ms or self.timeout_ms
        context = CallContext(caller_id=request.caller_id, timeout_ms=timeout_ms)
        logger.info(f"Dispatching to {len(names)} provider(s): {', '.join(names) or 'none'}")

        responses = self.dispatch(names, request.prompt, context)
        valid = [response for response in responses if response.valid]
        logger.info(f"{len(valid)}/{len(responses)} provider response(s) valid")

        if not valid:
            return CombinedResult(
                combined=apology(language),
                provider_responses=responses,
                trace=[],
                consolidator=NO_CONSOLIDATOR,
            )

        memory_context = self._memory_context(request.caller_id) if request.include_memory else None
        combined, trace, consolidator = self.consolidate(
            CombinerContext(
                user_message=request.prompt,
                responses=valid,
                language=language,
                memory_context=memory_context,
            )
        )
        return CombinedResult(
            combined=combined,
            provider_responses=responses,
            trace=trace,
            consolidator=consolidator,
        )

    def resolve(self, requested: Optional[Sequence[str]] = None) -> List[str]:
        if requested:
            return list(requested)[: self.max_providers]
        return [connector.name for connector in self.registry.list_by_modality(TEXT)][: self.max_providers]

    def dispatch(self, names: Sequence[str], prompt: str, context: CallContext) -> List[ProviderResponse]:
        results: List[Optional[ProviderResponse]] = [None] * len(names)
        pending: List[Tuple[int, str, Connector]] = []
        for index, name in enumerate(names):
            try:
                pending.append((index, name, self.registry.get(name)))
            except ProviderNotFoundError as exc:
                logger.warning(str(exc))
                results[index] = error_response(name, exc)

        if pending:
            executor = ThreadPoolExecutor(max_workers=len(pending), thread_name_prefix="dispatch")
            try:
                futures = [
                    (index, name, executor.submit(_invoke, connector, prompt, context))
                    for index, name, connector in pending
                ]
                deadline = time.monotonic() + context.timeout_ms / 1000.0
                for index, name, future in futures:
                    try:
                        results[index] = wait_until(future, deadline, context.timeout_ms)
                    except ProviderTimeoutError as exc:
                        logger.warning(f"{name} timed out after {context.timeout_ms}ms")
                        results[index] = error_response(name, exc)
                    except Exception as exc:
                        logger.warning(f"Dispatch to {name} rejected: {exc}")
                        results[index] = error_response(UNKNOWN_PROVIDER, exc, kind=UNKNOWN)
            finally:
                # Abandoned calls keep their threads; do not wait for them.
                executor.shutdown(wait=False)

        return [result for result in results if result is not None]

    def consolidate(self, context: CombinerContext) -> Tuple[str, List[TraceEntry], str]:
        logger.debug(f"Consolidating {len(context.responses)} answer(s) with {self.synthesizer.name}")
        try:
            text = self.synthesizer.complete(build_messages(context))
            if not text or not text.strip():
                raise ConsolidationError("Synthesizer returned an empty answer")
        except Exception as exc:
            logger.warning(f"Consolidation failed, concatenating {len(context.responses)} answer(s): {exc}")
            return fallback_text(context.responses), [], FALLBACK_CONSOLIDATOR
        return text, build_trace(context.responses), self.synthesizer.name

    def _memory_context(self, caller_id: str) -> Optional[str]:
        try:
            return self.memory.context_for(caller_id)
        except Exception as exc:
            logger.warning(f"Memory lookup failed for caller {caller_id}: {exc}")
            return None
