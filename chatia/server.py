"""FastAPI server for Chatia."""
from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
import logging

from chatia import __version__
from chatia.config import get_config
from chatia.orchestrator import Orchestrator

logger = logging.getLogger(__name__)

app = FastAPI(title="Chatia", version=__version__)


@app.on_event("startup")
def _startup() -> None:
    if getattr(app.state, "orchestrator", None) is not None:
        return
    config = get_config()
    logging.basicConfig(level=config.log_level)
    app.state.config = config
    app.state.orchestrator = Orchestrator.from_config(config)
    app.state.registry = app.state.orchestrator.registry


@app.get("/health")
async def health():
    """Health check endpoint for monitoring."""
    return {"status": "healthy", "service": "chatia"}


@app.post("/api/chat")
def chat(payload: dict, request: Request):
    message = str(payload.get("message") or "").strip()
    if not message:
        return JSONResponse({"error": "message required"}, status_code=400)
    providers = payload.get("providers")
    if providers is not None and not isinstance(providers, list):
        return JSONResponse({"error": "providers must be a list"}, status_code=400)
    timeout_ms = payload.get("timeout_ms")
    try:
        timeout_ms = int(timeout_ms) if timeout_ms is not None else None
    except (TypeError, ValueError):
        return JSONResponse({"error": "timeout_ms must be an integer"}, status_code=400)
    if timeout_ms is not None and timeout_ms <= 0:
        return JSONResponse({"error": "timeout_ms must be positive"}, status_code=400)
    include_memory = payload.get("include_memory", False)
    if not isinstance(include_memory, bool):
        return JSONResponse({"error": "include_memory must be a boolean"}, status_code=400)

    result = request.app.state.orchestrator.orchestrate(
        message,
        caller_id=str(payload.get("caller_id") or "anonymous"),
        providers=[str(name) for name in providers] if providers else None,
        timeout_ms=timeout_ms,
        include_memory=include_memory,
        language=payload.get("language") or None,
    )
    return result.to_dict()


@app.get("/api/providers")
async def list_providers(request: Request):
    return {"providers": request.app.state.registry.list_capabilities()}


@app.post("/api/providers/health")
def providers_health(request: Request):
    registry = request.app.state.registry
    results = registry.health_check_all()
    return {"results": results, "providers": registry.list_capabilities()}


@app.post("/api/providers/{name}/enable")
async def enable_provider(name: str, request: Request):
    return {"success": request.app.state.registry.enable(name)}


@app.post("/api/providers/{name}/disable")
async def disable_provider(name: str, request: Request):
    return {"success": request.app.state.registry.disable(name)}


def main():
    import uvicorn
    config = get_config()
    host = config.server.get("host") or "127.0.0.1"
    port = int(config.server.get("port") or 8099)
    uvicorn.run("chatia.server:app", host=host, port=port, reload=False)


if __name__ == "__main__":
    main()
