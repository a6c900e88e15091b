"""The bounded tool-calling loop between the user, the model and the tools."""

import json
import logging

from .confirm import internal_error_result
from .errors import AgentError, StorageError
from .history import HistoryStore
from .messages import CallResult, Message, ToolCallRecord, decode_arguments
from .registry import ToolRegistry

logger = logging.getLogger(__name__)

DEFAULT_TEMPERATURE = 0.6
DEFAULT_HISTORY_LIMIT = 15
DEFAULT_MAX_ITERATIONS = 5


class NullSink:
    """Presentation hooks. Subclass and override what you need."""

    def before_call(self, messages: list[dict], tools: list[dict]) -> None:
        pass

    def tool_finished(self, call: ToolCallRecord, result: str) -> None:
        pass

    def response_received(self, result: CallResult, is_final: bool) -> None:
        pass


def parse_response(response) -> tuple[str | None, list[ToolCallRecord]]:
    """Extract assistant text and tool calls from a chat completion response."""
    choices = getattr(response, "choices", None)
    if not choices:
        raise AgentError("LLM returned no choices")
    message = choices[0].message
    text = getattr(message, "content", None)
    calls = []
    for tc in getattr(message, "tool_calls", None) or []:
        raw = tc.function.arguments
        if raw is not None and not isinstance(raw, str):
            raw = json.dumps(raw)
        calls.append(
            ToolCallRecord(
                id=tc.id,
                name=tc.function.name,
                arguments=decode_arguments(raw),
                raw_arguments=raw,
            )
        )
    return text, calls


def missing_result(tool_name: str) -> str:
    return json.dumps(
        {
            "status": "error",
            "message": f"Tool '{tool_name}' execution result not provided.",
        }
    )


def pair_tool_results(messages: list[dict]) -> list[dict]:
    """Give every assistant tool call a matching tool message.

    A turn interrupted between the assistant message and its results leaves
    calls unanswered in history. Backends reject such payloads, so each
    missing result is filled in with an ``internal_error`` right after the
    tool messages that did arrive.
    """
    paired = []
    i = 0
    while i < len(messages):
        msg = messages[i]
        paired.append(msg)
        i += 1
        calls = msg.get("tool_calls") if msg.get("role") == "assistant" else None
        if not calls:
            continue
        answered = set()
        while i < len(messages) and messages[i].get("role") == "tool":
            answered.add(messages[i].get("tool_call_id"))
            paired.append(messages[i])
            i += 1
        for tc in calls:
            if tc["id"] in answered:
                continue
            name = tc["function"]["name"]
            filler = Message.tool(
                tc["id"] or "unknown", name, internal_error_result(name)
            )
            paired.append(filler.to_payload())
    return paired


class ConversationOrchestrator:
    """Drives one user turn through as many model round-trips as it needs.

    Every message produced along the way is appended to ``history`` as soon
    as it exists, so a crash mid-turn loses nothing that came before it.
    """

    def __init__(
        self,
        client,
        history: HistoryStore,
        registry: ToolRegistry,
        system_prompt: str,
        *,
        model: str,
        temperature: float = DEFAULT_TEMPERATURE,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        gate=None,
        sink: NullSink | None = None,
    ):
        self.client = client
        self.history = history
        self.registry = registry
        self.system_prompt = system_prompt
        self.model = model
        self.temperature = temperature
        self.history_limit = history_limit
        self.max_iterations = max_iterations
        self.gate = gate
        self.sink = sink or NullSink()

    # -- Context -----------------------------------------------------------

    def window(self, messages: list[dict]) -> list[dict]:
        """Keep the newest ``history_limit`` messages.

        Tool results whose assistant message fell outside the window are
        dropped as well, since backends reject orphaned tool messages.

        Only prior history is windowed. The current turn is appended whole
        by ``build_context``, so one request can carry up to
        ``history_limit`` prior messages plus the user message and
        ``max_iterations`` assistant messages with their tool results.
        """
        if self.history_limit <= 0:
            return []
        kept = messages[-self.history_limit :]
        while kept and kept[0].get("role") == "tool":
            kept = kept[1:]
        return kept

    def _load_prior(self) -> list[dict]:
        prior = []
        for record in self.history.all():
            try:
                prior.append(Message.from_record(record).to_payload())
            except (ValueError, AttributeError, TypeError, KeyError) as e:
                logger.warning("skipping malformed history record: %s", e)
        return pair_tool_results(prior)

    def build_context(self, prior: list[dict], turn: list[Message]) -> list[dict]:
        messages = self.window(prior) + [m.to_payload() for m in turn]
        return [Message.system(self.system_prompt).to_payload(), *messages]

    def _persist(self, message: Message, turn: list[Message]) -> None:
        self.history.add(message.to_record())
        turn.append(message)

    def _close_abandoned(
        self, calls: list[ToolCallRecord], turn: list[Message]
    ) -> None:
        """Answer calls left behind by an aborted batch with ``internal_error``."""
        for call in calls:
            result = internal_error_result(call.name)
            try:
                self._persist(Message.tool(call.id, call.name, result), turn)
            except StorageError as e:
                logger.warning("could not record aborted call %s: %s", call.id, e)
                return

    # -- Main loop ---------------------------------------------------------

    def call(self, user_input: str) -> CallResult:
        prior = self._load_prior()
        turn: list[Message] = []
        self._persist(Message.user(user_input), turn)

        text = None
        calls: list[ToolCallRecord] = []
        raw = None
        for _ in range(self.max_iterations):
            messages = self.build_context(prior, turn)
            tools = self.registry.definitions()
            self.sink.before_call(messages, tools)

            payload = {
                "model": self.model,
                "messages": messages,
                "temperature": self.temperature,
            }
            if tools:
                payload["tools"] = tools
                payload["tool_choice"] = "auto"
            raw = self.client.create_chat_completion(payload)
            text, calls = parse_response(raw)

            self._persist(Message.assistant(text, calls), turn)

            if not calls:
                result = CallResult(text, [], raw, is_final=True)
                self.sink.response_received(result, True)
                return result

            done = 0
            try:
                for call in calls:
                    outcome = None
                    if self.gate is not None:
                        outcome = self.gate.decide(call, messages)
                    if outcome is None:
                        outcome = missing_result(call.name)
                    self.sink.tool_finished(call, outcome)
                    self._persist(Message.tool(call.id, call.name, outcome), turn)
                    done += 1
            finally:
                self._close_abandoned(calls[done:], turn)

        result = CallResult(text, calls, raw, is_final=False)
        self.sink.response_received(result, False)
        return result

    # -- Refinement --------------------------------------------------------

    def refine_tool_call(
        self,
        original: ToolCallRecord,
        refinement_prompt: str,
        current_context: list[dict],
    ) -> ToolCallRecord | None:
        """Ask the model to re-issue ``original`` with arguments revised by the user.

        Nothing is persisted. Returns None when the backend fails, returns
        undecodable arguments, or does not call the same tool.
        """
        name = original.name
        instruction = (
            f"You are helping the user refine the arguments for the tool '{name}'. "
            f"The tool was about to run with these arguments: "
            f"{json.dumps(original.arguments)}. "
            f"The user gave this feedback: '{refinement_prompt}'. "
            f"Produce a new set of arguments for '{name}' that follows the feedback. "
            f"You MUST call the '{name}' tool. Do not answer with text."
        )
        body = [m for m in current_context if m.get("role") != "system"]
        messages = [
            Message.system(self.system_prompt).to_payload(),
            *self.window(body),
            Message.system(instruction).to_payload(),
        ]
        payload = {
            "model": self.model,
            "messages": messages,
            "temperature": self.temperature,
            "tools": self.registry.definitions(),
            "tool_choice": {"type": "function", "function": {"name": name}},
        }
        try:
            response = self.client.create_chat_completion(payload)
            _, calls = parse_response(response)
        except Exception as e:
            logger.warning("refinement request for %r failed: %s", name, e)
            return None

        for call in calls:
            if call.name != name:
                continue
            try:
                arguments = json.loads(call.raw_arguments or "{}")
            except json.JSONDecodeError:
                arguments = None
            if not isinstance(arguments, dict):
                logger.warning("refinement for %r returned invalid JSON", name)
                return None
            return original.with_arguments(arguments)
        return None
