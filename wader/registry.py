"""Tool descriptors, the registry that holds them, and the executor."""

import json
import logging
from collections.abc import Callable
from dataclasses import dataclass

from .errors import ConfigError
from .messages import ToolCallRecord

logger = logging.getLogger(__name__)


@dataclass
class ToolDescriptor:
    name: str
    description: str
    parameters: dict
    handler: Callable[[dict], str]
    requires_confirmation: bool = True
    few_shot_examples: str = ""

    def definition(self) -> dict:
        """Function-calling definition sent to the model."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


class ToolRegistry:
    """Name-to-descriptor mapping, built once at startup."""

    def __init__(self, descriptors: list[ToolDescriptor] = ()):
        self._tools: dict[str, ToolDescriptor] = {}
        for descriptor in descriptors:
            self.register(descriptor)

    def register(self, descriptor: ToolDescriptor) -> None:
        if descriptor.name in self._tools:
            raise ConfigError(f"tool {descriptor.name!r} is already registered")
        self._tools[descriptor.name] = descriptor

    def get(self, name: str) -> ToolDescriptor | None:
        return self._tools.get(name)

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def names(self) -> list[str]:
        return list(self._tools)

    def descriptors(self) -> list[ToolDescriptor]:
        return list(self._tools.values())

    def definitions(self) -> list[dict]:
        return [d.definition() for d in self._tools.values()]


def error_result(message: str, status: str = "error") -> str:
    return json.dumps({"status": status, "message": message})


class ToolExecutor:
    """Runs one tool call and turns every failure into a JSON error result."""

    def __init__(self, registry: ToolRegistry):
        self.registry = registry

    def execute(self, call: ToolCallRecord) -> str:
        descriptor = self.registry.get(call.name)
        if descriptor is None:
            return error_result(f"Tool '{call.name}' not found or not registered.")
        try:
            result = descriptor.handler(call.arguments)
            if not isinstance(result, str):
                result = json.dumps(result)
        except Exception as e:
            logger.exception("tool %r raised", call.name)
            return error_result(f"Error executing tool '{call.name}': {e}")
        return result
