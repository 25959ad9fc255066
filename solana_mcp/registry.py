"""Tool descriptors and the name -> descriptor registry."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple

from pydantic import BaseModel, ValidationError

from solana_mcp.config import GatewayConfig, default_config
from solana_mcp.errors import ToolValidationError

logger = logging.getLogger(__name__)

PUBLIC = "public"
AUTHENTICATED = "authenticated"
ADMIN = "admin"
KNOWN_PERMISSIONS = frozenset({PUBLIC, AUTHENTICATED, ADMIN})


@dataclass(slots=True)
class ToolContext:
    """What an action sees besides its validated params."""

    agent_id: Optional[str]
    client: Any
    config: GatewayConfig = field(default_factory=lambda: default_config)
    state: Mapping[str, Any] = field(default_factory=dict)


ToolAction = Callable[[Any, ToolContext], Awaitable[Any]]
ToolSimulate = Callable[[Any, ToolContext], Awaitable[Dict[str, Any]]]
ContextUpdater = Callable[[Any, Any], Dict[str, Any]]


def _format_validation_error(exc: ValidationError) -> Tuple[str, List[Dict[str, str]]]:
    fields: List[Dict[str, str]] = []
    for item in exc.errors():
        location = ".".join(str(part) for part in item.get("loc", ())) or "params"
        fields.append({"field": location, "message": item.get("msg", "Invalid value")})
    summary = "; ".join(f"{entry['field']}: {entry['message']}" for entry in fields)
    return f"Invalid parameters: {summary}" if summary else "Invalid parameters.", fields


@dataclass(frozen=True, slots=True)
class ToolDefinition:
    name: str
    description: str
    schema: type[BaseModel]
    action: ToolAction
    permissions: Tuple[str, ...] = (PUBLIC,)
    simulate: Optional[ToolSimulate] = None
    update_context: Optional[ContextUpdater] = None

    def __post_init__(self) -> None:
        unknown = set(self.permissions) - KNOWN_PERMISSIONS
        if unknown:
            raise ValueError(f"Unknown permission tags for {self.name}: {sorted(unknown)}")

    @property
    def is_public(self) -> bool:
        """Absence of tags or an explicit ``public`` tag means unrestricted."""
        return not self.permissions or PUBLIC in self.permissions

    def validate(self, params: Any) -> BaseModel:
        """Return normalized params or raise ToolValidationError with field detail."""
        try:
            return self.schema.model_validate({} if params is None else params)
        except ValidationError as exc:
            message, fields = _format_validation_error(exc)
            raise ToolValidationError(message, fields=fields) from exc

    def input_schema(self) -> Dict[str, Any]:
        return self.schema.model_json_schema()

    def public_view(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "permissions": list(self.permissions),
        }


class ToolRegistry:
    """Read-only mapping of tool name to descriptor, built once at startup."""

    def __init__(self, tools: Iterable[ToolDefinition] = ()) -> None:
        self._tools: Dict[str, ToolDefinition] = {}
        for tool in tools:
            if tool.name in self._tools:
                logger.debug("tool=%s outcome=replaced", tool.name, extra={"tool": tool.name})
            self._tools[tool.name] = tool

    def get(self, name: str) -> Optional[ToolDefinition]:
        return self._tools.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def __iter__(self) -> Iterator[ToolDefinition]:
        return iter(self._tools.values())

    def names(self) -> List[str]:
        return list(self._tools)

    def list_tools(self) -> List[Dict[str, Any]]:
        """Public listing; schema and action are intentionally omitted."""
        return [tool.public_view() for tool in self._tools.values()]
