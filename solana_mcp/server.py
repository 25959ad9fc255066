"""FastAPI application wiring the tool registry and agent runtimes to HTTP routes."""

from __future__ import annotations

import json
import logging
import time
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import uvicorn
from fastapi import FastAPI, Query, Request
from fastapi.responses import JSONResponse

from solana_mcp.config import GatewayConfig, default_config
from solana_mcp.errors import (
    ACCOUNT_NOT_FOUND,
    AGENT_NOT_FOUND,
    AGENT_NOT_READY,
    BATCH_TOO_LARGE,
    INVALID_REQUEST,
    PERMISSION_DENIED,
    TOOL_NOT_FOUND,
    VALIDATION_ERROR,
    InvalidRequestError,
    ToolError,
    classify_error,
)
from solana_mcp.mcp import McpProtocol, parse_request
from solana_mcp.memory_store import MemoryStore
from solana_mcp.metrics import default_metrics
from solana_mcp.registry import ToolRegistry
from solana_mcp.runtime import AgentManager
from solana_mcp.solana_rpc import SolanaRpcClient
from solana_mcp.tools import build_default_registry
from solana_mcp.tools.validators import clamp_limit

logger = logging.getLogger(__name__)

APP_VERSION = "0.1.0"
HEALTH_STATUS = {"status": "ok"}
AGENT_HEADER = "X-Agent-ID"

STATUS_BY_CODE = {
    TOOL_NOT_FOUND: 404,
    AGENT_NOT_FOUND: 404,
    ACCOUNT_NOT_FOUND: 404,
    VALIDATION_ERROR: 400,
    INVALID_REQUEST: 400,
    BATCH_TOO_LARGE: 400,
    PERMISSION_DENIED: 403,
    AGENT_NOT_READY: 409,
}


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "level": record.levelname,
            "message": record.getMessage(),
            "name": record.name,
        }
        for key in ("tool", "request_id", "agent_id", "error"):
            if hasattr(record, key):
                payload[key] = getattr(record, key)
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def configure_logging(config: GatewayConfig) -> None:
    level = getattr(logging, config.log_level.upper(), logging.INFO)
    if config.log_format.lower() == "json":
        handler = logging.StreamHandler()
        handler.setFormatter(JsonFormatter())
        logging.basicConfig(level=level, handlers=[handler])
    else:
        logging.basicConfig(level=level)


configure_logging(default_config)


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def _error_response(error: ToolError) -> JSONResponse:
    status_code = STATUS_BY_CODE.get(error.code, 500)
    return JSONResponse(status_code=status_code, content={"error": error.to_dict()})


def _log_tool_result(
    tool_name: str,
    request_id: Optional[str],
    agent_id: Optional[str],
    error: Optional[ToolError] = None,
) -> None:
    extra = {"tool": tool_name, "request_id": request_id, "agent_id": agent_id}
    if error is not None:
        logger.warning(
            "tool=%s outcome=error code=%s request_id=%s",
            tool_name,
            error.code,
            request_id,
            extra={**extra, "error": error.code},
        )
        default_metrics.record_tool(tool_name, success=False, error_code=error.code)
        return
    logger.info("tool=%s outcome=success request_id=%s", tool_name, request_id, extra=extra)
    default_metrics.record_tool(tool_name, success=True)


def create_app(
    config: GatewayConfig | None = None,
    *,
    registry: ToolRegistry | None = None,
    memory: MemoryStore | None = None,
    client: Any = None,
) -> FastAPI:
    """Build the application; collaborators are injectable for tests."""
    config = config or default_config
    registry = registry if registry is not None else build_default_registry()
    memory = memory if memory is not None else MemoryStore(config.memory_file)
    client = client if client is not None else SolanaRpcClient(config)
    agents = AgentManager(registry, memory, client=client, config=config)
    protocol = McpProtocol(registry, agents, client=client, config=config)

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        yield
        await agents.shutdown_all()
        if hasattr(client, "aclose"):
            await client.aclose()

    app = FastAPI(
        title="Solana MCP Gateway",
        description="Schema-validated Solana tool dispatch with per-agent execution memory.",
        version=APP_VERSION,
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.registry = registry
    app.state.memory = memory
    app.state.agents = agents
    app.state.protocol = protocol

    @app.middleware("http")
    async def add_request_context(request: Request, call_next):
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id
        start = time.time()
        default_metrics.incr_request()
        response = await call_next(request)
        duration_ms = (time.time() - start) * 1000
        default_metrics.record_duration(request_id, duration_ms)
        response.headers["X-Request-ID"] = request_id
        return response

    @app.get("/health")
    async def health() -> JSONResponse:
        """Lightweight health endpoint for monitoring."""
        return JSONResponse(content=HEALTH_STATUS)

    @app.get("/metrics")
    async def metrics() -> JSONResponse:
        """Return in-process metrics snapshot."""
        return JSONResponse(content=default_metrics.snapshot())

    @app.get("/mcp/tools")
    async def list_tools() -> JSONResponse:
        """Public tool listing: name, description and permission tags."""
        return JSONResponse(content=registry.list_tools())

    @app.post("/mcp")
    async def mcp_gateway(request: Request) -> JSONResponse:
        """Execute one tool call: ``{tool, params, agent_id?, options?}``."""
        request_id = getattr(request.state, "request_id", None)
        try:
            body = await request.json()
        except ValueError:
            return _error_response(InvalidRequestError("Request body must be valid JSON."))

        if isinstance(body, dict) and not body.get("agent_id") and not body.get("agentId"):
            header_agent = request.headers.get(AGENT_HEADER)
            if header_agent:
                body = {**body, "agent_id": header_agent}

        try:
            tool_request = parse_request(body)
        except ToolError as exc:
            return _error_response(exc)

        try:
            result = await protocol.execute(tool_request)
        except ToolError as exc:
            _log_tool_result(tool_request.tool, request_id, tool_request.agent_id, exc)
            return _error_response(exc)
        except Exception as exc:
            logger.exception(
                "tool=%s outcome=unexpected_error request_id=%s",
                tool_request.tool,
                request_id,
                extra={"tool": tool_request.tool, "request_id": request_id},
            )
            error = classify_error(exc)
            _log_tool_result(tool_request.tool, request_id, tool_request.agent_id, error)
            return _error_response(error)

        _log_tool_result(tool_request.tool, request_id, tool_request.agent_id)
        return JSONResponse(content={"result": result, "timestamp": _timestamp()})

    @app.post("/mcp/batch")
    async def mcp_batch(request: Request) -> JSONResponse:
        """Execute several tool calls sequentially or in parallel."""
        try:
            body = await request.json()
        except ValueError:
            return _error_response(InvalidRequestError("Request body must be valid JSON."))
        try:
            results = await protocol.process_batch(body)
        except ToolError as exc:
            return _error_response(exc)
        return JSONResponse(content=results)

    @app.get("/mcp/agents/{agent_id}/memory")
    async def agent_memory(agent_id: str, limit: int | None = Query(None, ge=0)) -> JSONResponse:
        """Most recent memory records for an agent, oldest first."""
        bounded = clamp_limit(limit, default=config.max_memory_items, max_value=config.max_memory_items)
        records = await memory.get(agent_id, bounded)
        return JSONResponse(content={"agent_id": agent_id, "records": records})

    @app.get("/mcp/agents/{agent_id}/stats")
    async def agent_stats(agent_id: str) -> JSONResponse:
        runtime = agents.get(agent_id)
        if runtime is None:
            return _error_response(ToolError(f"Agent {agent_id} has no active runtime", code=AGENT_NOT_FOUND))
        return JSONResponse(content={"agent_id": agent_id, **runtime.get_stats()})

    @app.post("/mcp/agents/{agent_id}/shutdown")
    async def agent_shutdown(agent_id: str) -> JSONResponse:
        try:
            outcome = await agents.shutdown(agent_id)
        except ToolError as exc:
            return _error_response(exc)
        if outcome is None:
            return _error_response(ToolError(f"Agent {agent_id} has no active runtime", code=AGENT_NOT_FOUND))
        return JSONResponse(content=outcome)

    return app


app = create_app()


def main() -> None:
    """Console entry point: serve the module-level app with uvicorn."""
    uvicorn.run("solana_mcp.server:app", host=default_config.host, port=default_config.port, log_config=None)


# Run with: uvicorn solana_mcp.server:app --reload
