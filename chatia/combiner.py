"""Consolidation of several provider answers into one.

The synthesis step is a free-form LLM call with no output schema. The trace
returned alongside it is an attribution heuristic (first characters of each
contributing answer), not a verified span mapping.
"""
from __future__ import annotations

from typing import Any, Dict, List, Protocol
import logging

from chatia.errors import ChatiaError, ConsolidationError, ProviderNotFoundError, ProviderTimeoutError
from chatia.providers.base import CallContext, Connector, call_with_timeout, request_json
from chatia.providers.openai import extract_chat_text
from chatia.types import CombinerContext, ProviderResponse, TraceEntry

logger = logging.getLogger(__name__)

EXCERPT_CHARS = 100

TEMPLATES: Dict[str, Dict[str, str]] = {
    "pt-BR": {
        "system": (
            "Você é um consolidador de respostas de IA. Combine as respostas de múltiplos "
            "provedores em uma resposta única, concisa e útil."
        ),
        "header": "VOCÊ É UM CONSOLIDADOR LLM (RESPONDA EM {language}).",
        "task": (
            "Tarefa: com base na pergunta do usuário e nas respostas das várias fontes abaixo "
            "(cada resposta prefixada com [PROVIDER]), faça:\n"
            "1) Avalie a factualidade e a utilidade de cada resposta.\n"
            "2) Extraia os melhores trechos (máx 2 por provider).\n"
            "3) Combine-os em UMA resposta final concisa e prática.\n"
            "4) Cite, ao final, a seção \"FONTES\" com os provedores usados.\n"
            "5) Se houver contradições, destaque-as e dê um veredito breve.\n"
            "6) Se a informação parecer sensível ou incerta, indique claramente as limitações."
        ),
        "question": "Pergunta do usuário:",
        "memory": "Contexto de memória:",
        "responses": "Respostas recebidas:",
        "closing": "Instruções: responda em {language}; seja direto; inclua a seção \"FONTES\".",
        "apology": "Desculpe, não foi possível obter respostas dos provedores de IA no momento.",
    },
    "en": {
        "system": (
            "You consolidate answers from several AI providers into a single, concise and "
            "useful answer."
        ),
        "header": "YOU ARE A CONSOLIDATOR LLM (ANSWER IN {language}).",
        "task": (
            "Task: given the user's question and the answers from the sources below "
            "(each prefixed with [PROVIDER]):\n"
            "1) Judge the factuality and usefulness of each answer.\n"
            "2) Extract the best excerpts (at most 2 per provider).\n"
            "3) Merge them into ONE concise, practical final answer.\n"
            "4) End with a \"SOURCES\" section naming the providers used.\n"
            "5) If answers contradict each other, point it out and give a brief verdict.\n"
            "6) If the information looks sensitive or uncertain, state the limitations clearly."
        ),
        "question": "User question:",
        "memory": "Memory context:",
        "responses": "Answers received:",
        "closing": "Instructions: answer in {language}; be direct; include the \"SOURCES\" section.",
        "apology": "Sorry, no AI provider could produce an answer right now.",
    },
}


def _template(language: str) -> Dict[str, str]:
    return TEMPLATES.get(language) or TEMPLATES["en"]


def apology(language: str) -> str:
    return _template(language)["apology"]


def build_prompt(context: CombinerContext) -> str:
    tpl = _template(context.language)
    blocks = "\n\n".join(f"[PROVIDER: {r.provider}]\n{r.text}\n---" for r in context.responses)
    parts = [
        tpl["header"].format(language=context.language),
        tpl["task"],
        "",
        tpl["question"],
        f'"{context.user_message}"',
        "",
    ]
    if context.memory_context:
        parts.extend([tpl["memory"], f'"{context.memory_context}"', ""])
    parts.extend([
        tpl["responses"],
        blocks,
        "",
        tpl["closing"].format(language=context.language),
    ])
    return "\n".join(parts)


def build_messages(context: CombinerContext) -> List[Dict[str, str]]:
    return [
        {"role": "system", "content": _template(context.language)["system"]},
        {"role": "user", "content": build_prompt(context)},
    ]


def build_trace(responses: List[ProviderResponse]) -> List[TraceEntry]:
    return [TraceEntry(excerpt=(r.text or "")[:EXCERPT_CHARS], provider=r.provider) for r in responses]


def fallback_text(responses: List[ProviderResponse]) -> str:
    return "\n\n".join(f"{r.provider}: {r.text}" for r in responses)


class Synthesizer(Protocol):
    name: str

    def complete(self, messages: List[Dict[str, str]]) -> str:
        """Return the synthesized text or raise ``ConsolidationError``."""
        ...


class OpenAISynthesizer:
    """Chat-completions synthesis against any OpenAI-compatible endpoint."""

    name = "openai-combiner"

    def __init__(
        self,
        api_key: str = "",
        model: str = "gpt-4o-mini",
        base_url: str = "https://api.openai.com/v1",
        temperature: float = 0.3,
        timeout_ms: int = 30000,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.temperature = temperature
        self.timeout_ms = timeout_ms

    def complete(self, messages: List[Dict[str, str]]) -> str:
        if not self.api_key:
            raise ConsolidationError("Combiner API key not configured")
        body = {"model": self.model, "messages": messages, "temperature": self.temperature}
        try:
            data = request_json(
                "POST",
                f"{self.base_url}/chat/completions",
                headers={
                    "Content-Type": "application/json",
                    "Authorization": f"Bearer {self.api_key}",
                },
                json=body,
                timeout=self.timeout_ms / 1000.0,
                label="Combiner",
            )
        except ChatiaError as exc:
            raise ConsolidationError(str(exc)) from exc
        text = extract_chat_text(data).strip()
        if not text:
            raise ConsolidationError("Combiner returned an empty answer")
        return text


class ConnectorSynthesizer:
    """Use any registered text connector as the synthesis backend."""

    def __init__(self, connector: Connector, timeout_ms: int = 30000) -> None:
        self.connector = connector
        self.timeout_ms = timeout_ms
        self.name = f"{connector.name}-combiner"

    def complete(self, messages: List[Dict[str, str]]) -> str:
        prompt = "\n\n".join(m["content"] for m in messages if m.get("content"))
        context = CallContext(caller_id="combiner", timeout_ms=self.timeout_ms)
        try:
            response = call_with_timeout(lambda: self.connector.call(prompt, context), self.timeout_ms)
        except ProviderTimeoutError as exc:
            raise ConsolidationError(f"{self.name}: {exc}") from exc
        text = (response.text or "").strip()
        if response.error or not text:
            raise ConsolidationError(response.error or "Combiner returned an empty answer")
        return text


def build_synthesizer(config: Any, registry: Any) -> Synthesizer:
    cfg = config.combiner
    provider = str(cfg.get("provider") or "openai")
    timeout_ms = int(cfg.get("timeout_ms") or 30000)
    if provider != "openai":
        try:
            return ConnectorSynthesizer(registry.get(provider), timeout_ms=timeout_ms)
        except ProviderNotFoundError:
            logger.warning(f"Combiner provider {provider!r} not registered, using openai")
    openai_cfg = config.provider("openai")
    temperature = cfg.get("temperature")
    return OpenAISynthesizer(
        api_key=str(cfg.get("api_key") or openai_cfg.get("api_key") or ""),
        model=str(cfg.get("model") or openai_cfg.get("model") or "gpt-4o-mini"),
        base_url=str(cfg.get("base_url") or openai_cfg.get("base_url") or "https://api.openai.com/v1"),
        temperature=0.3 if temperature is None else float(temperature),
        timeout_ms=timeout_ms,
    )
