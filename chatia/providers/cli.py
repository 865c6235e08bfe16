"""Connector that runs a local model CLI (claude, codex, ollama run, ...)."""
from __future__ import annotations

from typing import Any, Dict, List, Optional
import os
import shutil
import subprocess

from chatia.errors import (
    CredentialMissingError,
    ProviderRejectionError,
    ProviderTimeoutError,
    TransientProviderError,
)
from chatia.providers.base import CallContext, RetryPolicy, contain, normalize_response, with_retry
from chatia.types import TEXT, ProviderResponse

# Exit codes that are typically transient (generic failure, OOM kill, SIGTERM)
RETRYABLE_EXITS = {1, 137, 143}

PERMANENT_ERRORS = (
    "invalid api key",
    "authentication failed",
    "unauthorized",
    "forbidden",
    "not found",
    "invalid model",
)

RETRYABLE_PATTERNS = (
    "connection refused",
    "connection reset",
    "network unreachable",
    "temporary failure",
    "service unavailable",
    "rate limit",
    "too many requests",
)


def classify_failure(returncode: int, stderr: str) -> Exception:
    message = f"exit {returncode}: {stderr[:300]}" if stderr else f"exit {returncode}"
    lowered = stderr.lower()
    if any(pattern in lowered for pattern in PERMANENT_ERRORS):
        return ProviderRejectionError(message)
    if returncode in RETRYABLE_EXITS or any(pattern in lowered for pattern in RETRYABLE_PATTERNS):
        return TransientProviderError(message)
    return ProviderRejectionError(message)


class CliConnector:
    modalities = frozenset({TEXT})

    def __init__(
        self,
        name: str,
        command: List[str],
        prompt_mode: str = "arg",
        stdin_flag: Optional[str] = None,
        cwd: Optional[str] = None,
        env: Optional[Dict[str, str]] = None,
        retry: RetryPolicy | None = None,
    ) -> None:
        self.name = name
        self.command = list(command)
        self.prompt_mode = prompt_mode
        self.stdin_flag = stdin_flag
        self.cwd = cwd
        self.env = env or {}
        self.retry = retry or RetryPolicy()

    @classmethod
    def from_config(cls, cfg: Dict[str, Any], retry: RetryPolicy | None = None) -> "CliConnector":
        return cls(
            name=str(cfg.get("name") or "cli"),
            command=[str(part) for part in (cfg.get("command") or [])],
            prompt_mode=str(cfg.get("prompt_mode") or "arg"),
            stdin_flag=str(cfg["stdin_flag"]) if cfg.get("stdin_flag") else None,
            cwd=str(cfg["cwd"]) if cfg.get("cwd") else None,
            env={str(k): str(v) for k, v in (cfg.get("env") or {}).items()},
            retry=retry,
        )

    @property
    def available(self) -> bool:
        return bool(self.command) and shutil.which(self.command[0]) is not None

    def call(self, prompt: str, context: CallContext) -> ProviderResponse:
        return contain(self.name, TEXT, lambda: self._generate(prompt, context))

    def _generate(self, prompt: str, context: CallContext) -> ProviderResponse:
        if not self.command:
            raise CredentialMissingError(f"{self.name}: missing command")
        text = with_retry(lambda: self._run_once(prompt, context.timeout_seconds), self.retry, label=self.name)
        return normalize_response(self.name, {"command": self.command[0]}, TEXT, text=text)

    def _run_once(self, prompt: str, timeout_seconds: float) -> str:
        cmd = list(self.command)
        input_data = None
        if self.prompt_mode == "stdin":
            input_data = prompt
            if self.stdin_flag:
                cmd.append(self.stdin_flag)
        else:
            cmd.append(prompt)

        run_env = os.environ.copy()
        run_env.update(self.env)
        try:
            result = subprocess.run(
                cmd,
                input=input_data,
                text=True,
                capture_output=True,
                timeout=timeout_seconds,
                cwd=self.cwd,
                env=run_env,
            )
        except subprocess.TimeoutExpired as exc:
            raise ProviderTimeoutError(f"{self.name} timeout after {timeout_seconds:g}s") from exc
        except OSError as exc:
            raise ProviderRejectionError(f"{self.name}: {exc}") from exc
        if result.returncode != 0:
            raise classify_failure(result.returncode, (result.stderr or "").strip())
        return (result.stdout or "").strip()

    def health_check(self) -> bool:
        return self.available

    def cost_estimate(self, params: Dict[str, Any]) -> float:
        return 0.0
