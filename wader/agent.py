import argparse
import functools
import json
import logging
import sys
from importlib import metadata
from pathlib import Path

import tiktoken

from . import fmt
from .client import LLMClient
from .config import (
    _UNSET,
    SETTABLE_KEYS,
    apply_config_to_args,
    generate_config,
    load_config,
    set_global_value,
)
from .confirm import ConfirmationGate, SessionConfirmationState
from .diff import diff_file
from .errors import AgentError
from .history import Storage
from .indexer import INDEX_PROMPT, Indexer
from .messages import CallResult, ToolCallRecord
from .orchestrator import ConversationOrchestrator, NullSink
from .prompt import SystemPromptPreprocessor
from .registry import ToolExecutor
from .tools import build_registry, clean_relative_path, safe_resolve

HISTORY_COLLECTION = "project_history"
MAX_ARG_LOG = 1000
MAX_PREVIEW = 200

PREVIEW_TOOLS = {"create_file", "rewrite_file"}


@functools.lru_cache(maxsize=1)
def _encoder():
    return tiktoken.get_encoding("cl100k_base")


def estimate_tokens(messages: list[dict], tools: list | None = None) -> int:
    """Count tokens across all messages using tiktoken."""
    enc = _encoder()
    total = 0
    for m in messages:
        content = m.get("content") or ""
        for tc in m.get("tool_calls") or []:
            fn = tc.get("function", {})
            content += fn.get("name", "") + (fn.get("arguments") or "")
        total += len(enc.encode(content))
    if tools:
        total += len(enc.encode(json.dumps(tools)))
    # Per-message overhead (role, separators), ~4 tokens each
    total += 4 * len(messages)
    return total


# -- Presentation ------------------------------------------------------------


class ConsoleSink(NullSink):
    """Renders the orchestrator's progress on the terminal.

    While the indexer is running, the final answer is stored as the project
    summary instead of being printed.
    """

    def __init__(self, max_iterations: int, verbose: bool, indexer: Indexer | None = None):
        self.max_iterations = max_iterations
        self.verbose = verbose
        self.indexer = indexer
        self.iteration = 0

    def start_question(self) -> None:
        self.iteration = 0

    def before_call(self, messages: list[dict], tools: list[dict]) -> None:
        self.iteration += 1
        if self.verbose:
            fmt.turn_header(
                self.iteration, self.max_iterations, estimate_tokens(messages, tools)
            )

    def tool_finished(self, call: ToolCallRecord, result: str) -> None:
        if not self.verbose:
            return
        try:
            data = json.loads(result)
        except json.JSONDecodeError:
            data = {"status": "success", "message": result}
        if not isinstance(data, dict):
            data = {"status": "success", "message": str(data)}
        status = data.get("status")
        message = str(data.get("message", ""))[:MAX_PREVIEW]
        if status == "user_declined":
            fmt.tool_declined(call.name)
        elif status in ("error", "internal_error"):
            fmt.tool_error(call.name, message)
        else:
            fmt.tool_result(call.name, message)

    def response_received(self, result: CallResult, is_final: bool) -> None:
        if self.indexer is not None and self.indexer.in_progress:
            if result.has_text():
                self.indexer.add_summary(result.text)
            return
        if result.has_text():
            fmt.assistant_markdown(result.text)
        if not is_final:
            fmt.warning("max tool iterations reached for this question.")


class ConsolePrompter:
    """Asks the user about tool calls that need confirmation."""

    def __init__(self, base_dir: str):
        self.base_dir = base_dir

    def _preview(self, call: ToolCallRecord) -> None:
        filename = call.arguments.get("filename")
        content = call.arguments.get("content")
        if not isinstance(filename, str) or not isinstance(content, str):
            return
        if call.name == "create_file":
            fmt.file_content(filename, content)
            return
        try:
            path = safe_resolve(clean_relative_path(filename), self.base_dir)
        except ValueError:
            return
        hunks = diff_file(path, content)
        fmt.diff_hunks(filename, [h.to_dict() for h in hunks])

    def choose(self, call: ToolCallRecord) -> str:
        shown = call.arguments
        if call.name in PREVIEW_TOOLS:
            shown = {k: v for k, v in call.arguments.items() if k != "content"}
        pretty = json.dumps(shown, indent=2, ensure_ascii=False)
        if len(pretty) > MAX_ARG_LOG:
            pretty = pretty[:MAX_ARG_LOG] + "\n... (truncated)"
        fmt.tool_call(call.name, pretty)
        if call.name in PREVIEW_TOOLS:
            self._preview(call)
        return fmt.ask_choice(
            "Run it? [y]es / [n]o / [a]lways for this tool / [r]efine",
            ["y", "n", "a", "r"],
            "y",
        )

    def refinement_prompt(self, call: ToolCallRecord) -> str:
        return fmt.ask_text(f"How should the arguments of {call.name} change?")


class _SpinnerClient:
    def __init__(self, inner: LLMClient):
        self.inner = inner

    def create_chat_completion(self, payload: dict):
        with fmt.llm_spinner():
            return self.inner.create_chat_completion(payload)


# -- Wiring ------------------------------------------------------------------


def build_system_prompt(preprocessor: SystemPromptPreprocessor, indexer: Indexer) -> str:
    prompt = preprocessor.process()
    summaries = [s for s in indexer.summaries() if s.strip()]
    if summaries:
        prompt += "\n\n## Project summary\n\n" + summaries[-1]
    return prompt


def build_agent(args, base_dir: str, interactive: bool = True):
    """Wire storage, tools, gate and orchestrator from parsed arguments.

    Returns (orchestrator, sink, history, indexer).
    """
    data_dir = Path(base_dir) / args.data_dir
    storage = Storage(data_dir)
    history = storage.collection(HISTORY_COLLECTION)
    indexer = Indexer(storage)

    registry = build_registry(base_dir, args.command_timeout, str(data_dir))
    executor = ToolExecutor(registry)
    system_prompt = build_system_prompt(SystemPromptPreprocessor(registry), indexer)

    client = LLMClient(api_key=args.api_key, base_url=args.base_url)
    sink = ConsoleSink(args.max_iterations, verbose=not args.quiet, indexer=indexer)
    orchestrator = ConversationOrchestrator(
        _SpinnerClient(client) if not args.quiet else client,
        history,
        registry,
        system_prompt,
        model=args.model,
        temperature=args.temperature,
        history_limit=args.history_limit,
        max_iterations=args.max_iterations,
        sink=sink,
    )
    prompter = ConsolePrompter(base_dir) if interactive else None
    orchestrator.gate = ConfirmationGate(
        executor,
        SessionConfirmationState(),
        prompter=prompter,
        refiner=orchestrator.refine_tool_call,
    )
    return orchestrator, sink, history, indexer


def run_indexing(orchestrator: ConversationOrchestrator, indexer: Indexer) -> bool:
    """Explore the project once and remember its summary."""
    if indexer.is_project_indexed():
        return False
    fmt.info("Indexing the project codebase for the first time...")
    indexer.in_progress = True
    try:
        orchestrator.call(INDEX_PROMPT)
    except AgentError as e:
        fmt.error(f"indexing failed: {e}")
        return False
    finally:
        indexer.in_progress = False
    indexer.set_project_indexed(True)
    fmt.info("Project indexed.")
    return True


# -- CLI ---------------------------------------------------------------------


def build_parser():
    """Build and return the argument parser."""
    parser = argparse.ArgumentParser(
        prog="wader",
        description="An interactive coding agent that edits your project through confirmed tool calls.",
    )
    parser.add_argument(
        "--version", action="store_true", help="Print the version and exit."
    )
    parser.add_argument(
        "--base-dir",
        default=".",
        help="Project directory the tools operate in (default: current directory).",
    )
    parser.add_argument(
        "--model", default=_UNSET, help="Model name (default: o3-mini)."
    )
    parser.add_argument(
        "--api-key",
        default=_UNSET,
        help="API key for the provider (default: OPENAI_API_KEY).",
    )
    parser.add_argument(
        "--base-url",
        default=_UNSET,
        help="Base URL of an OpenAI-compatible endpoint.",
    )
    parser.add_argument(
        "--temperature",
        type=float,
        default=_UNSET,
        help="Sampling temperature (default: 0.6).",
    )
    parser.add_argument(
        "--history-limit",
        type=int,
        default=_UNSET,
        help="Number of stored messages sent with each request (default: 15).",
    )
    parser.add_argument(
        "--max-iterations",
        type=int,
        default=_UNSET,
        help="Maximum model round-trips per question (default: 5).",
    )
    parser.add_argument(
        "--data-dir",
        default=_UNSET,
        help="Directory for history files, relative to the project (default: .wader).",
    )
    parser.add_argument(
        "--command-timeout",
        type=int,
        default=_UNSET,
        help="Timeout in seconds for git commands (default: 60).",
    )
    parser.add_argument(
        "--no-index",
        action="store_true",
        default=_UNSET,
        help="Skip the first-run exploration of the project.",
    )

    color_group = parser.add_mutually_exclusive_group()
    color_group.add_argument(
        "--color", action="store_true", default=_UNSET, help="Force ANSI color."
    )
    color_group.add_argument(
        "--no-color", action="store_true", default=_UNSET, help="Disable ANSI color."
    )
    parser.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        default=_UNSET,
        help="Suppress diagnostics. Tool calls that need confirmation are declined.",
    )
    parser.add_argument(
        "--debug", action="store_true", help="Enable debug logging on stderr."
    )

    sub = parser.add_subparsers(dest="command", metavar="{chat,clear,config}")
    sub.add_parser("chat", help="Interactive chat (default).")
    clear = sub.add_parser("clear", help="Clear the project conversation history.")
    clear.add_argument(
        "-y", "--yes", action="store_true", help="Do not ask for confirmation."
    )
    config = sub.add_parser("config", help="Set a value in the global config file.")
    config.add_argument("name", nargs="?", help=f"One of: {', '.join(SETTABLE_KEYS)}.")
    config.add_argument("value", nargs="?")
    config.add_argument(
        "--template",
        action="store_true",
        help="Print a commented config template and exit.",
    )
    return parser


def main():
    parser = build_parser()
    args = parser.parse_args()

    if args.version:
        try:
            version = metadata.version("wader")
        except metadata.PackageNotFoundError:
            version = "unknown"
        print(version)
        sys.exit(0)

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        _run_main(args, parser)
    except AgentError as e:
        fmt.error(str(e))
        sys.exit(1)


def _run_main(args, parser):
    command = args.command or "chat"

    if command == "config":
        if args.template:
            print(generate_config())
            return
        if args.name is None or args.value is None:
            parser.error("config requires NAME and VALUE")
        path = set_global_value(args.name, args.value)
        fmt.info(f"{args.name} saved to {path}")
        return

    base_dir = str(Path(args.base_dir).resolve())
    if not Path(base_dir).is_dir():
        parser.error(f"base directory does not exist: {args.base_dir}")

    apply_config_to_args(args, load_config(Path(base_dir)))
    fmt.init(color=args.color, no_color=args.no_color)

    if command == "clear":
        _clear_history(args, base_dir)
        return

    orchestrator, sink, history, indexer = build_agent(
        args, base_dir, interactive=not args.quiet
    )
    if not args.no_index:
        run_indexing(orchestrator, indexer)
    repl_loop(orchestrator, sink, history, verbose=not args.quiet)


def _clear_history(args, base_dir: str) -> None:
    history = Storage(Path(base_dir) / args.data_dir).collection(HISTORY_COLLECTION)
    if not args.yes and not fmt.confirm(
        "Clear the project history? This cannot be undone."
    ):
        fmt.info("Operation cancelled.")
        return
    history.clear()
    fmt.info("Project history cleared.")


def _repl_help() -> None:
    """Print available REPL commands."""
    fmt.info(
        "Available commands:\n"
        "  /help              Show this help message\n"
        "  /clear             Clear the stored conversation history\n"
        "  /exit, /quit       Exit the REPL (exit and quit also work)"
    )


def _repl_clear(history) -> None:
    if not fmt.confirm("Clear the project history? This cannot be undone."):
        fmt.info("Operation cancelled.")
        return
    dropped = len(history)
    history.clear()
    fmt.info(f"history cleared ({dropped} messages removed)")


def ask(orchestrator: ConversationOrchestrator, sink: ConsoleSink, question: str):
    """Run one question, reporting failures without leaving the REPL."""
    sink.start_question()
    try:
        return orchestrator.call(question)
    except KeyboardInterrupt:
        fmt.warning("interrupted, question aborted.")
    except AgentError as e:
        fmt.error(str(e))
    return None


def repl_loop(
    orchestrator: ConversationOrchestrator,
    sink: ConsoleSink,
    history,
    *,
    verbose: bool = True,
) -> None:
    """Interactive read-eval-print loop."""
    from prompt_toolkit import PromptSession
    from prompt_toolkit.formatted_text import FormattedText
    from prompt_toolkit.history import InMemoryHistory

    input_history = InMemoryHistory()
    for record in history.all():
        if record.get("role") == "user" and record.get("content"):
            input_history.append_string(record["content"])
    session = PromptSession(history=input_history, enable_history_search=True)
    prompt_text = FormattedText([("bold fg:ansigreen", "wader> ")])

    if verbose:
        fmt.repl_banner()

    while True:
        try:
            print(file=sys.stderr)  # blank line before prompt
            line = session.prompt(prompt_text)
        except (EOFError, KeyboardInterrupt):
            print(file=sys.stderr)  # newline after ^D / ^C
            break

        line = line.strip()
        if not line:
            continue
        if line.lower() in ("exit", "quit", "/exit", "/quit"):
            break
        if line == "/help":
            _repl_help()
            continue
        if line == "/clear":
            _repl_clear(history)
            continue

        ask(orchestrator, sink, line)


if __name__ == "__main__":
    main()
