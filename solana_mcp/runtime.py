"""
Agent runtime: permission gate, validation, simulation and bounded execution.

An ``AgentRuntime`` owns one agent's accumulating context, status and
counters, and writes one memory record per execution attempt that gets past
the preconditions (not ready, unknown tool, permission). The permission gate
is a placeholder: no identity system is wired in, so any tool tagged with
something other than ``public`` is always denied.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import asdict, dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel

from solana_mcp.config import GatewayConfig, default_config
from solana_mcp.errors import (
    AgentNotReadyError,
    ExecutionTimeoutError,
    PermissionDeniedError,
    SimulationError,
    ToolError,
    ToolNotFoundError,
    ToolValidationError,
    classify_error,
)
from solana_mcp.memory_store import MemoryStore, utc_timestamp
from solana_mcp.registry import ToolContext, ToolDefinition, ToolRegistry

logger = logging.getLogger(__name__)

Listener = Callable[[Dict[str, Any]], Any]
EVENTS = ("ready", "tool_start", "tool_complete", "tool_error", "shutdown")


class AgentStatus(str, Enum):
    INITIALIZING = "initializing"
    READY = "ready"
    EXECUTING = "executing"
    ERROR = "error"
    SHUTTING_DOWN = "shutting_down"
    TERMINATED = "terminated"


@dataclass(slots=True)
class RuntimeConfig:
    execution_timeout: float = default_config.execution_timeout
    simulate_before_execute: bool = default_config.simulate_before_execute
    max_memory_items: int = default_config.max_memory_items
    record_validation_errors: bool = default_config.record_validation_errors

    @classmethod
    def from_gateway(cls, config: GatewayConfig) -> "RuntimeConfig":
        return cls(
            execution_timeout=config.execution_timeout,
            simulate_before_execute=config.simulate_before_execute,
            max_memory_items=config.max_memory_items,
            record_validation_errors=config.record_validation_errors,
        )


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(slots=True)
class AgentStats:
    tools_executed: int = 0
    execution_time: float = 0.0
    errors: int = 0
    last_activity: int = field(default_factory=_now_ms)


def ensure_permitted(tool: ToolDefinition) -> None:
    if not tool.is_public:
        raise PermissionDeniedError(f"No permission to execute {tool.name}")


async def run_simulation(tool: ToolDefinition, params: BaseModel, ctx: ToolContext) -> Dict[str, Any]:
    """Run the tool's pre-flight hook; raise SimulationError when it predicts failure."""
    if tool.simulate is None:
        return {"success": True}
    result = await tool.simulate(params, ctx)
    logger.debug("tool=%s simulation=%s", tool.name, result, extra={"tool": tool.name})
    if not result.get("success"):
        reason = result.get("reason") or "simulation reported failure"
        raise SimulationError(f"Tool execution would fail: {reason}", result)
    return result


async def run_with_timeout(tool: ToolDefinition, params: BaseModel, ctx: ToolContext, timeout: float) -> Any:
    """Run the action; on expiry the action task is cancelled and TIMEOUT is raised."""
    try:
        return await asyncio.wait_for(tool.action(params, ctx), timeout=timeout)
    except asyncio.TimeoutError:
        raise ExecutionTimeoutError(
            f"Tool execution timed out after {timeout:g}s",
            context={"timeout": timeout},
        ) from None


def dump_params(params: BaseModel) -> Dict[str, Any]:
    return params.model_dump(mode="json")


class AgentRuntime:
    """Execution environment for one agent identity."""

    def __init__(
        self,
        agent_id: str,
        registry: ToolRegistry,
        memory: MemoryStore,
        *,
        client: Any = None,
        config: RuntimeConfig | None = None,
        gateway_config: GatewayConfig | None = None,
    ) -> None:
        self.agent_id = agent_id
        self.registry = registry
        self.memory = memory
        self.client = client
        self.gateway_config = gateway_config or default_config
        self.config = config or RuntimeConfig.from_gateway(self.gateway_config)
        self.context: Dict[str, Any] = {}
        self.status = AgentStatus.INITIALIZING
        self.start_time = _now_ms()
        self.stats = AgentStats(last_activity=self.start_time)
        self._listeners: Dict[str, List[Listener]] = {event: [] for event in EVENTS}

        logger.info(
            "agent=%s outcome=initialized timeout=%s simulate=%s",
            agent_id,
            self.config.execution_timeout,
            self.config.simulate_before_execute,
            extra={"agent_id": agent_id},
        )
        self.status = AgentStatus.READY
        self._emit("ready", {"agent_id": agent_id, "config": asdict(self.config)})

    def add_listener(self, event: str, callback: Listener) -> None:
        if event not in self._listeners:
            raise ValueError(f"Unknown runtime event: {event}")
        self._listeners[event].append(callback)

    def remove_listener(self, event: str, callback: Listener) -> None:
        if callback in self._listeners.get(event, []):
            self._listeners[event].remove(callback)

    def _emit(self, event: str, payload: Dict[str, Any]) -> None:
        for callback in list(self._listeners.get(event, [])):
            try:
                callback(payload)
            except Exception:
                logger.exception(
                    "agent=%s listener for %s failed",
                    self.agent_id,
                    event,
                    extra={"agent_id": self.agent_id},
                )

    def update_context(self, patch: Dict[str, Any]) -> Dict[str, Any]:
        """Merge ``patch`` into the accumulated context and return a copy."""
        self.context.update(patch)
        self.stats.last_activity = _now_ms()
        logger.debug(
            "agent=%s context updated keys=%s",
            self.agent_id,
            sorted(patch),
            extra={"agent_id": self.agent_id},
        )
        return dict(self.context)

    def _tool_context(self) -> ToolContext:
        return ToolContext(
            agent_id=self.agent_id,
            client=self.client,
            config=self.gateway_config,
            state=MappingProxyType(dict(self.context)),
        )

    def _settle(self) -> None:
        # A shutdown that raced an in-flight call must stay terminal.
        if self.status in (AgentStatus.EXECUTING, AgentStatus.ERROR):
            self.status = AgentStatus.READY

    async def execute(
        self,
        tool_name: str,
        params: Any = None,
        *,
        simulate: Optional[bool] = None,
        timeout: Optional[float] = None,
    ) -> Any:
        if self.status is not AgentStatus.READY:
            raise AgentNotReadyError(f"Agent is in {self.status.value} state")

        tool = self.registry.get(tool_name)
        if tool is None:
            raise ToolNotFoundError(f'Tool "{tool_name}" not found')
        ensure_permitted(tool)

        self.status = AgentStatus.EXECUTING
        started = time.perf_counter()
        try:
            validated = tool.validate(params)
            ctx = self._tool_context()
            should_simulate = self.config.simulate_before_execute if simulate is None else simulate
            if should_simulate and tool.simulate is not None:
                await run_simulation(tool, validated, ctx)

            self._emit("tool_start", {"tool": tool_name, "params": dump_params(validated)})
            result = await run_with_timeout(
                tool, validated, ctx, timeout or self.config.execution_timeout
            )
            # Computed before the record is written so a failing hook leaves only a failure record.
            patch = tool.update_context(result, validated) if tool.update_context is not None else None
            duration_ms = (time.perf_counter() - started) * 1000
            await self.memory.save(
                self.agent_id,
                {
                    "tool": tool_name,
                    "params": dump_params(validated),
                    "result": result,
                    "timestamp": utc_timestamp(),
                    "duration_ms": duration_ms,
                },
            )
        except asyncio.CancelledError:
            self._settle()
            raise
        except Exception as exc:
            error = classify_error(exc)
            await self._fail(tool_name, params, error, started)
            raise error

        self.stats.tools_executed += 1
        self.stats.execution_time += duration_ms
        self.stats.last_activity = _now_ms()
        if patch:
            self.update_context(patch)
        self._settle()

        logger.info(
            "agent=%s tool=%s outcome=success duration_ms=%.2f",
            self.agent_id,
            tool_name,
            duration_ms,
            extra={"agent_id": self.agent_id, "tool": tool_name},
        )
        self._emit(
            "tool_complete",
            {"tool": tool_name, "execution_time": duration_ms, "success": True, "result": result},
        )
        return result

    async def _fail(self, tool_name: str, params: Any, error: ToolError, started: float) -> None:
        duration_ms = (time.perf_counter() - started) * 1000
        self.stats.errors += 1
        self.stats.last_activity = _now_ms()
        self.status = AgentStatus.ERROR
        logger.warning(
            "agent=%s tool=%s outcome=error code=%s",
            self.agent_id,
            tool_name,
            error.code,
            extra={"agent_id": self.agent_id, "tool": tool_name, "error": error.code},
        )
        logger.debug("agent=%s failure detail=%s", self.agent_id, error.to_log_dict())
        try:
            if self.config.record_validation_errors or not isinstance(error, ToolValidationError):
                await self.memory.save(
                    self.agent_id,
                    {
                        "tool": tool_name,
                        "params": params,
                        "error": error.to_dict(),
                        "timestamp": utc_timestamp(),
                        "duration_ms": duration_ms,
                    },
                )
        except Exception:
            # The original tool error is what the caller must see.
            logger.exception(
                "agent=%s failed to record error for tool=%s",
                self.agent_id,
                tool_name,
                extra={"agent_id": self.agent_id, "tool": tool_name},
            )
        finally:
            self._emit("tool_error", {"tool": tool_name, "error": error})
            self._settle()

    async def load_memory(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Newest ``limit`` records (default: configured max), oldest first."""
        return await self.memory.get(
            self.agent_id, self.config.max_memory_items if limit is None else limit
        )

    def get_stats(self) -> Dict[str, Any]:
        return {
            **asdict(self.stats),
            "uptime_ms": _now_ms() - self.start_time,
            "status": self.status.value,
            "context_size": len(self.context),
        }

    async def shutdown(self) -> Dict[str, Any]:
        self.status = AgentStatus.SHUTTING_DOWN
        self._emit("shutdown", {"agent_id": self.agent_id})
        try:
            await self.memory.save(
                self.agent_id,
                {
                    "type": "system",
                    "action": "shutdown",
                    "stats": self.get_stats(),
                    "timestamp": utc_timestamp(),
                },
            )
        finally:
            self.status = AgentStatus.TERMINATED
        logger.info("agent=%s outcome=terminated", self.agent_id, extra={"agent_id": self.agent_id})
        return {"success": True, "message": "Agent shutdown complete"}


class AgentManager:
    """Owns one runtime per agent id for the lifetime of the process."""

    def __init__(
        self,
        registry: ToolRegistry,
        memory: MemoryStore,
        *,
        client: Any = None,
        config: GatewayConfig | None = None,
    ) -> None:
        self.registry = registry
        self.memory = memory
        self.client = client
        self.config = config or default_config
        self._runtimes: Dict[str, AgentRuntime] = {}

    def __len__(self) -> int:
        return len(self._runtimes)

    def get(self, agent_id: str) -> Optional[AgentRuntime]:
        return self._runtimes.get(agent_id)

    def get_or_create(self, agent_id: str) -> AgentRuntime:
        runtime = self._runtimes.get(agent_id)
        if runtime is None:
            runtime = AgentRuntime(
                agent_id,
                self.registry,
                self.memory,
                client=self.client,
                gateway_config=self.config,
            )
            self._runtimes[agent_id] = runtime
        return runtime

    async def shutdown(self, agent_id: str) -> Optional[Dict[str, Any]]:
        """Terminate an agent. The runtime stays registered so the id cannot be reused."""
        runtime = self._runtimes.get(agent_id)
        if runtime is None:
            return None
        if runtime.status in (AgentStatus.SHUTTING_DOWN, AgentStatus.TERMINATED):
            raise AgentNotReadyError(f"Agent {agent_id} is already {runtime.status.value}")
        return await runtime.shutdown()

    async def shutdown_all(self) -> None:
        for agent_id, runtime in list(self._runtimes.items()):
            if runtime.status is AgentStatus.TERMINATED:
                continue
            try:
                await self.shutdown(agent_id)
            except Exception:
                logger.exception("agent=%s shutdown failed", agent_id, extra={"agent_id": agent_id})
