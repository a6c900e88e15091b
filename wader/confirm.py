"""Per-call confirmation state machine that sits between the model and the tools.

Each tool call starts in one of three states:

* ``ALWAYS_ALLOWED``: the user chose "always" for this tool earlier in the session
* ``AUTO_APPROVED``: the tool does not require confirmation
* ``PENDING_CONFIRMATION``: the user is asked

From ``PENDING_CONFIRMATION`` the user may approve once, approve for the rest
of the session, decline, or ask the model to refine the arguments. Anything
the machine cannot resolve is answered with an ``internal_error`` result and
the tool is not run.
"""

import json
import logging
from collections.abc import Callable
from enum import Enum
from typing import Protocol

from .messages import ToolCallRecord
from .registry import ToolExecutor

logger = logging.getLogger(__name__)


class GateState(Enum):
    ALWAYS_ALLOWED = "always_allowed"
    AUTO_APPROVED = "auto_approved"
    PENDING_CONFIRMATION = "pending_confirmation"
    REFINING = "refining"
    DECLINED = "declined"
    EXECUTED = "executed"


CHOICES = {
    "y": "yes",
    "yes": "yes",
    "n": "no",
    "no": "no",
    "a": "always",
    "always": "always",
    "r": "refine",
    "refine": "refine",
}


def normalize_choice(choice) -> str | None:
    if not isinstance(choice, str):
        return None
    return CHOICES.get(choice.strip().lower())


class SessionConfirmationState:
    """Tools the user has allowed for the rest of this process. Never persisted."""

    def __init__(self):
        self._always: dict[str, bool] = {}

    def is_always_allowed(self, tool_name: str) -> bool:
        return self._always.get(tool_name, False)

    def allow_always(self, tool_name: str) -> None:
        self._always[tool_name] = True

    def allowed_tools(self) -> list[str]:
        return sorted(name for name, allowed in self._always.items() if allowed)

    def reset(self) -> None:
        self._always.clear()


class Prompter(Protocol):
    def choose(self, call: ToolCallRecord) -> str: ...

    def refinement_prompt(self, call: ToolCallRecord) -> str: ...


Refiner = Callable[[ToolCallRecord, str, list], "ToolCallRecord | None"]


def declined_result(tool_name: str) -> str:
    return json.dumps(
        {
            "status": "user_declined",
            "message": f"User declined execution of tool '{tool_name}'.",
        }
    )


def internal_error_result(tool_name: str) -> str:
    return json.dumps(
        {
            "status": "internal_error",
            "message": f"Tool '{tool_name}' execution state unclear, declined by default.",
        }
    )


class ConfirmationGate:
    """Decides, per tool call, whether to execute, ask, or decline.

    ``prompter`` is None in non-interactive mode; calls that need
    confirmation are then declined. ``refiner`` is usually
    ``ConversationOrchestrator.refine_tool_call``.
    """

    def __init__(
        self,
        executor: ToolExecutor,
        session: SessionConfirmationState,
        prompter: Prompter | None = None,
        refiner: Refiner | None = None,
    ):
        self.executor = executor
        self.session = session
        self.prompter = prompter
        self.refiner = refiner
        self.trace: list[GateState] = []
        self.last_call: ToolCallRecord | None = None

    def initial_state(self, call: ToolCallRecord) -> GateState:
        if self.session.is_always_allowed(call.name):
            return GateState.ALWAYS_ALLOWED
        descriptor = self.executor.registry.get(call.name)
        if descriptor is not None and not descriptor.requires_confirmation:
            return GateState.AUTO_APPROVED
        return GateState.PENDING_CONFIRMATION

    def decide(self, call: ToolCallRecord, context: list | None = None) -> str:
        """Run the state machine for one call and return the result JSON."""
        self.trace = []
        self.last_call = call

        # Unknown tools go straight to the executor, which reports them.
        if call.name not in self.executor.registry:
            self.trace.append(GateState.EXECUTED)
            return self.executor.execute(call)

        state = self.initial_state(call)
        while True:
            self.trace.append(state)
            if state in (GateState.ALWAYS_ALLOWED, GateState.AUTO_APPROVED):
                state = GateState.EXECUTED
            elif state is GateState.PENDING_CONFIRMATION:
                state = self._ask(call)
                if state is None:
                    return internal_error_result(call.name)
            elif state is GateState.REFINING:
                call = self._refine(call, context or [])
                self.last_call = call
                state = GateState.PENDING_CONFIRMATION
            elif state is GateState.DECLINED:
                return declined_result(call.name)
            elif state is GateState.EXECUTED:
                return self.executor.execute(call)
            else:
                return internal_error_result(call.name)

    def _ask(self, call: ToolCallRecord) -> GateState | None:
        if self.prompter is None:
            return GateState.DECLINED
        choice = normalize_choice(self.prompter.choose(call))
        if choice == "yes":
            return GateState.EXECUTED
        if choice == "always":
            self.session.allow_always(call.name)
            return GateState.EXECUTED
        if choice == "no":
            return GateState.DECLINED
        if choice == "refine":
            return GateState.REFINING
        return None

    def _refine(self, call: ToolCallRecord, context: list) -> ToolCallRecord:
        prompt = self.prompter.refinement_prompt(call) if self.prompter else ""
        if not prompt or not prompt.strip() or self.refiner is None:
            return call
        refined = self.refiner(call, prompt.strip(), context)
        if refined is None:
            logger.info("refinement of %r failed, keeping previous arguments", call.name)
            return call
        return refined
