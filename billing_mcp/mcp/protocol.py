"""Tool descriptions, tool call requests and tool call results."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass(frozen=True)
class ToolParameter:
    name: str
    description: str = ""
    required: bool = False
    type: str = "string"


@dataclass(frozen=True)
class Tool:
    """A tool that clients may call, with its argument schema."""

    name: str
    description: str = ""
    parameters: tuple[ToolParameter, ...] = ()

    def input_schema(self) -> dict[str, Any]:
        """JSON schema of the tool's arguments."""
        properties = {
            p.name: {"type": p.type, **({"description": p.description} if p.description else {})}
            for p in self.parameters
        }
        schema: dict[str, Any] = {"type": "object", "properties": properties}
        required = [p.name for p in self.parameters if p.required]
        if required:
            schema["required"] = required
        return schema

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "description": self.description, "inputSchema": self.input_schema()}


@dataclass
class CallToolRequest:
    name: str = ""
    arguments: dict[str, Any] = field(default_factory=dict)


@dataclass
class CallToolResult:
    content: list[dict[str, Any]] = field(default_factory=list)
    is_error: bool = False

    @property
    def text(self) -> str:
        """All text content joined together."""
        return "".join(str(c.get("text", "")) for c in self.content if c.get("type") == "text")

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"content": [dict(c) for c in self.content]}
        if self.is_error:
            data["isError"] = True
        return data


def tool_result_text(text: str) -> CallToolResult:
    return CallToolResult(content=[{"type": "text", "text": text}])


def tool_result_error(message: str, error: Optional[object]) -> CallToolResult:
    text = message if error is None else f"{message}: {error}"
    return CallToolResult(content=[{"type": "text", "text": text}], is_error=True)