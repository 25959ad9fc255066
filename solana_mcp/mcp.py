"""
Request processing for the MCP surface: single calls and batches.

Requests carrying an ``agent_id`` run through that agent's ``AgentRuntime``
(and are therefore recorded to memory); requests without one run the tool
directly with the same gates and no memory record.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from solana_mcp.config import GatewayConfig, default_config
from solana_mcp.errors import (
    BatchTooLargeError,
    InvalidRequestError,
    SimulationError,
    ToolError,
    ToolNotFoundError,
    classify_error,
)
from solana_mcp.registry import ToolContext, ToolRegistry
from solana_mcp.runtime import AgentManager, ensure_permitted, run_simulation, run_with_timeout

logger = logging.getLogger(__name__)


class RequestOptions(BaseModel):
    timeout: Optional[float] = Field(None, gt=0, description="Execution timeout in seconds")
    simulate: Optional[bool] = None
    priority: Optional[Literal["high", "normal", "low"]] = None


class ToolRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    tool: str = Field(..., min_length=1)
    params: Optional[Dict[str, Any]] = None
    agent_id: Optional[str] = Field(None, alias="agentId", min_length=1)
    options: RequestOptions = Field(default_factory=RequestOptions)


class BatchOptions(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    abort_on_error: bool = Field(False, alias="abortOnError")
    parallel: bool = False


class BatchRequest(BaseModel):
    operations: List[ToolRequest]
    options: BatchOptions = Field(default_factory=BatchOptions)


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def _invalid_request(exc: ValidationError) -> InvalidRequestError:
    details = "; ".join(
        f"{'.'.join(str(p) for p in err.get('loc', ())) or 'body'}: {err.get('msg')}" for err in exc.errors()
    )
    return InvalidRequestError(f"Invalid request: {details}" if details else "Invalid request.")


def parse_request(body: Any) -> ToolRequest:
    if isinstance(body, ToolRequest):
        return body
    try:
        return ToolRequest.model_validate(body)
    except ValidationError as exc:
        raise _invalid_request(exc) from exc


def parse_batch(body: Any) -> BatchRequest:
    if isinstance(body, BatchRequest):
        return body
    try:
        return BatchRequest.model_validate(body)
    except ValidationError as exc:
        raise _invalid_request(exc) from exc


def success_envelope(result: Any) -> Dict[str, Any]:
    return {"success": True, "result": result, "timestamp": _timestamp()}


def error_envelope(error: ToolError) -> Dict[str, Any]:
    envelope: Dict[str, Any] = {"success": False, "error": error.to_dict(), "timestamp": _timestamp()}
    if isinstance(error, SimulationError):
        envelope["simulationResult"] = error.simulation_result
    return envelope


class McpProtocol:
    def __init__(
        self,
        registry: ToolRegistry,
        agents: AgentManager,
        *,
        client: Any = None,
        config: GatewayConfig | None = None,
    ) -> None:
        self.registry = registry
        self.agents = agents
        self.client = client
        self.config = config or default_config

    async def execute(self, request: ToolRequest | Mapping[str, Any]) -> Any:
        """Run one request and return the raw result; failures raise ToolError."""
        req = parse_request(request)
        if req.agent_id is not None:
            runtime = self.agents.get_or_create(req.agent_id)
            try:
                return await runtime.execute(
                    req.tool,
                    req.params,
                    simulate=req.options.simulate,
                    timeout=req.options.timeout,
                )
            except ToolError:
                raise
            except Exception as exc:
                raise classify_error(exc) from exc
        return await self._execute_direct(req)

    async def _execute_direct(self, req: ToolRequest) -> Any:
        tool = self.registry.get(req.tool)
        if tool is None:
            raise ToolNotFoundError(f'Tool "{req.tool}" not found')
        ensure_permitted(tool)
        try:
            validated = tool.validate(req.params)
            ctx = ToolContext(agent_id=None, client=self.client, config=self.config)
            if req.options.simulate and tool.simulate is not None:
                await run_simulation(tool, validated, ctx)
            return await run_with_timeout(
                tool, validated, ctx, req.options.timeout or self.config.execution_timeout
            )
        except ToolError:
            raise
        except Exception as exc:
            raise classify_error(exc) from exc

    async def process_request(self, request: ToolRequest | Mapping[str, Any]) -> Dict[str, Any]:
        """Run one request and shape the outcome as a success/error envelope."""
        try:
            result = await self.execute(request)
        except Exception as exc:
            error = classify_error(exc)
            logger.error(
                "mcp request failed code=%s message=%s",
                error.code,
                error.message,
                extra={"error": error.code},
            )
            return error_envelope(error)
        return success_envelope(result)

    async def process_batch(self, batch: BatchRequest | Mapping[str, Any]) -> List[Dict[str, Any]]:
        parsed = parse_batch(batch)
        operations = parsed.operations
        if len(operations) > self.config.max_batch_size:
            raise BatchTooLargeError(
                f"Batch size {len(operations)} exceeds maximum allowed ({self.config.max_batch_size})"
            )

        if parsed.options.parallel:
            return list(await asyncio.gather(*(self.process_request(op) for op in operations)))

        results: List[Dict[str, Any]] = []
        for operation in operations:
            envelope = await self.process_request(operation)
            results.append(envelope)
            if parsed.options.abort_on_error and not envelope["success"]:
                break
        return results
