"""Conversation records exchanged with the LLM and kept in the history store."""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

ROLES = ("system", "user", "assistant", "tool")


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class ToolCallRecord:
    """One tool invocation requested by the model.

    ``id`` comes from the backend and is echoed back unchanged in the
    matching tool message. ``raw_arguments`` keeps the exact JSON string the
    backend produced so the assistant message can be replayed verbatim.
    """

    id: str
    name: str
    arguments: dict = field(default_factory=dict)
    raw_arguments: str | None = None

    def arguments_json(self) -> str:
        if self.raw_arguments is not None:
            return self.raw_arguments
        return json.dumps(self.arguments)

    def to_payload(self) -> dict:
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.arguments_json()},
        }

    @classmethod
    def from_payload(cls, data: dict) -> "ToolCallRecord":
        if not isinstance(data, dict):
            raise ValueError(f"tool call must be an object, got {type(data).__name__}")
        fn = data.get("function") or {}
        if not isinstance(fn, dict):
            raise ValueError("tool call function must be an object")
        raw = fn.get("arguments")
        return cls(
            id=data.get("id", ""),
            name=fn.get("name", ""),
            arguments=decode_arguments(raw),
            raw_arguments=raw,
        )

    def with_arguments(self, arguments: dict) -> "ToolCallRecord":
        """Return a copy carrying new arguments (raw string re-encoded)."""
        return ToolCallRecord(
            id=self.id,
            name=self.name,
            arguments=dict(arguments),
            raw_arguments=json.dumps(arguments),
        )


def decode_arguments(raw: Any) -> dict:
    """Decode a backend argument string into a dict.

    Malformed input never raises: it becomes a synthetic map carrying the
    error and the raw text so the model can correct itself on the next turn.
    """
    if isinstance(raw, dict):
        return dict(raw)
    if raw is None or raw == "":
        return {}
    try:
        decoded = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        return {"error": "Invalid JSON arguments from LLM", "raw_arguments": raw}
    if not isinstance(decoded, dict):
        return {"error": "Invalid JSON arguments from LLM", "raw_arguments": raw}
    return decoded


@dataclass
class Message:
    role: str
    content: str | None = None
    tool_calls: list[ToolCallRecord] | None = None
    tool_call_id: str | None = None
    name: str | None = None
    timestamp: str | None = None

    def __post_init__(self):
        if self.role not in ROLES:
            raise ValueError(f"invalid message role {self.role!r}")
        if self.role == "tool" and not self.tool_call_id:
            raise ValueError("tool messages must carry the id of the call they answer")

    @classmethod
    def system(cls, content: str) -> "Message":
        return cls("system", content)

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls("user", content)

    @classmethod
    def assistant(
        cls, content: str | None, tool_calls: list[ToolCallRecord] | None = None
    ) -> "Message":
        return cls("assistant", content, tool_calls=tool_calls or None)

    @classmethod
    def tool(cls, tool_call_id: str, name: str, content: str) -> "Message":
        return cls("tool", content, tool_call_id=tool_call_id, name=name)

    def to_payload(self) -> dict:
        """Shape expected by the chat completion API (no timestamp)."""
        data: dict = {"role": self.role, "content": self.content}
        if self.tool_calls:
            data["tool_calls"] = [tc.to_payload() for tc in self.tool_calls]
        if self.tool_call_id is not None:
            data["tool_call_id"] = self.tool_call_id
        if self.name is not None:
            data["name"] = self.name
        return data

    def to_record(self) -> dict:
        """Durable form: the payload plus an ISO-8601 timestamp."""
        data = self.to_payload()
        data["timestamp"] = self.timestamp or now_iso()
        return data

    @classmethod
    def from_record(cls, data: dict) -> "Message":
        """Rebuild a stored record. Raises ValueError when it is malformed."""
        if not isinstance(data, dict):
            raise ValueError(f"record must be an object, got {type(data).__name__}")
        tool_calls = data.get("tool_calls")
        if tool_calls is not None and not isinstance(tool_calls, list):
            raise ValueError("tool_calls must be a list")
        return cls(
            role=data.get("role", "user"),
            content=data.get("content"),
            tool_calls=[ToolCallRecord.from_payload(tc) for tc in tool_calls]
            if tool_calls
            else None,
            tool_call_id=data.get("tool_call_id"),
            name=data.get("name"),
            timestamp=data.get("timestamp"),
        )


@dataclass
class CallResult:
    """Outcome of one ``ConversationOrchestrator.call``."""

    text: str | None
    tool_calls: list[ToolCallRecord] = field(default_factory=list)
    raw: Any = None
    is_final: bool = True

    def has_text(self) -> bool:
        return self.text is not None and self.text.strip() != ""

    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)
