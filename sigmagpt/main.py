"""
FastAPI application, the SigmaGPT entry point.
REST endpoints for conversations plus a buffered and a streaming send.

The store, backend and relay are built by create_app() and hung off
app.state, so tests can hand in their own.
"""

import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse

from sigmagpt import __version__
from sigmagpt.backends import make_backend
from sigmagpt.backends.base import BaseBackend
from sigmagpt.config import get_config, is_production
from sigmagpt.errors import ConversationNotFound, ProviderError, SigmaGPTError, ValidationError
from sigmagpt.relay import SSE_HEADERS, ChatRelay, validate_message
from sigmagpt.storage.memory_store import ConversationStore

logger = logging.getLogger(__name__)


def _setup_logging(cfg: dict):
    log_cfg = cfg.get("logging", {})
    level = getattr(logging, str(log_cfg.get("level", "INFO")).upper(), logging.INFO)
    log_file = log_cfg.get("file")

    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=handlers,
    )


def cors_origins(cfg: dict) -> list[str]:
    """Two localhost origins in development; an explicit allow-list in production."""
    cors_cfg = cfg.get("cors", {})
    if is_production(cfg):
        return list(cors_cfg.get("allowed_origins", []))
    return list(cors_cfg.get("dev_origins", []))


def _error(exc: SigmaGPTError) -> JSONResponse:
    return JSONResponse({"error": exc.public_message}, status_code=exc.status_code)


async def _read_message(request: Request):
    """Pull `message` out of the JSON body; anything unreadable counts as missing."""
    try:
        body = await request.json()
    except Exception:
        return None
    if not isinstance(body, dict):
        return None
    return body.get("message")


def create_app(
    cfg: dict | None = None,
    store: ConversationStore | None = None,
    backend: BaseBackend | None = None,
) -> FastAPI:
    cfg = cfg or get_config()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup / shutdown lifecycle."""
        _setup_logging(cfg)
        relay = app.state.relay
        logger.info(
            "SigmaGPT started, listening on %s:%s (%s)",
            cfg["server"]["host"], cfg["server"]["port"], cfg.get("environment"),
        )
        logger.info("AI service: %s (%s)", relay.backend.provider, relay.backend.name)
        logger.info("CORS origins: %s", cors_origins(cfg) or "none")
        yield
        logger.info("SigmaGPT shutting down")

    app = FastAPI(
        title="SigmaGPT",
        description="ChatGPT-style chat backend",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.cfg = cfg
    app.state.store = store if store is not None else ConversationStore()
    app.state.backend = backend if backend is not None else make_backend(cfg)
    app.state.relay = ChatRelay(
        app.state.store,
        app.state.backend,
        stream_timeout=cfg.get("streaming", {}).get("timeout", 45),
        queue_size=cfg.get("streaming", {}).get("queue_size", 64),
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins(cfg),
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "Cache-Control"],
    )

    # -----------------------------------------------------------------------
    # Health / debug
    # -----------------------------------------------------------------------

    @app.get("/api/health")
    async def health():
        return JSONResponse({"status": "OK", "message": "SigmaGPT Backend is running"})

    @app.get("/api/debug")
    async def debug():
        """Provider flags only. Never credentials."""
        provider_cfg = cfg.get("provider", {})
        return JSONResponse({
            "provider": app.state.backend.provider,
            "backend": app.state.backend.describe(),
            "usePuter": bool(provider_cfg.get("use_puter", False)),
            "openaiConfigured": bool(provider_cfg.get("openai", {}).get("api_key")),
            "geminiConfigured": bool(provider_cfg.get("gemini", {}).get("api_key")),
            "environment": cfg.get("environment", "development"),
            "stats": app.state.store.get_stats(),
        })

    # -----------------------------------------------------------------------
    # Conversations
    # -----------------------------------------------------------------------

    @app.get("/api/conversations")
    async def list_conversations():
        return JSONResponse(app.state.store.list())

    @app.get("/api/conversations/{conv_id}")
    async def get_conversation(conv_id: str):
        try:
            conv = app.state.store.get(conv_id)
        except ConversationNotFound as e:
            return _error(e)
        return JSONResponse(conv.to_dict())

    @app.post("/api/conversations")
    async def create_conversation():
        conv = app.state.store.create()
        return JSONResponse(conv.to_dict())

    @app.delete("/api/conversations/{conv_id}")
    async def delete_conversation(conv_id: str):
        try:
            app.state.store.delete(conv_id)
        except ConversationNotFound as e:
            return _error(e)
        return JSONResponse({"message": "Conversation deleted successfully"})

    # -----------------------------------------------------------------------
    # Messages
    # -----------------------------------------------------------------------

    @app.post("/api/conversations/{conv_id}/messages")
    async def send_message(conv_id: str, request: Request):
        """Buffered send: one JSON document with both new messages."""
        message = await _read_message(request)
        try:
            result = await app.state.relay.send_message(conv_id, message)
        except (ValidationError, ProviderError) as e:
            return _error(e)
        return JSONResponse(result)

    @app.post("/api/conversations/{conv_id}/stream")
    async def stream_message(conv_id: str, request: Request):
        """
        Streaming send. Returns text/event-stream of JSON events:
            {type:"user_message",       data:<Message>}
            {type:"assistant_start",    data:{id}}
            {type:"assistant_chunk",    data:{content}}
            {type:"assistant_complete", data:{message, conversation}}
            {type:"error",              data:{message}}
        followed by `data: [DONE]`.
        """
        message = await _read_message(request)
        try:
            validate_message(message)
        except ValidationError as e:
            return _error(e)

        return StreamingResponse(
            app.state.relay.stream_message(conv_id, message),
            media_type="text/event-stream",
            headers=SSE_HEADERS,
        )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    _cfg = get_config()
    uvicorn.run(
        "sigmagpt.main:app",
        host=_cfg["server"]["host"],
        port=_cfg["server"]["port"],
        log_level="info",
    )
