"""Tests for wader.agent: console wiring, indexing, the REPL and the CLI."""

import json
import sys
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from wader import agent, fmt
from wader.agent import (
    ConsolePrompter,
    ConsoleSink,
    build_agent,
    build_parser,
    build_system_prompt,
    repl_loop,
    run_indexing,
    _repl_clear,
)
from wader.config import apply_config_to_args
from wader.errors import AgentError
from wader.history import HistoryStore, Storage
from wader.indexer import Indexer
from wader.messages import CallResult, ToolCallRecord
from wader.orchestrator import ConversationOrchestrator
from wader.prompt import SystemPromptPreprocessor
from wader.registry import ToolRegistry
from wader.tools import build_registry


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _text_response(text):
    msg = SimpleNamespace(content=text, tool_calls=None, role="assistant")
    return SimpleNamespace(choices=[SimpleNamespace(message=msg)])


class _FakeClient:
    def __init__(self, *responses):
        self.responses = list(responses)
        self.payloads = []

    def create_chat_completion(self, payload):
        self.payloads.append(payload)
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


def _parse(argv):
    args = build_parser().parse_args(argv)
    apply_config_to_args(args, {})
    return args


@pytest.fixture(autouse=True)
def _isolated_global_config(tmp_path, monkeypatch):
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))


# ---------------------------------------------------------------------------
# ConsoleSink
# ---------------------------------------------------------------------------


class TestConsoleSink:
    def test_final_answer_is_printed(self, capsys):
        sink = ConsoleSink(5, verbose=False)
        sink.response_received(CallResult("**done**"), True)
        assert "done" in capsys.readouterr().out

    def test_cap_warning(self, monkeypatch):
        warnings = []
        monkeypatch.setattr(fmt, "warning", warnings.append)
        sink = ConsoleSink(5, verbose=False)
        sink.response_received(CallResult(None, is_final=False), False)
        assert warnings == ["max tool iterations reached for this question."]

    def test_indexing_answer_becomes_summary(self, tmp_path, capsys):
        indexer = Indexer(Storage(tmp_path))
        indexer.in_progress = True
        sink = ConsoleSink(5, verbose=False, indexer=indexer)
        sink.response_received(CallResult("A Python CLI."), True)
        assert indexer.summaries() == ["A Python CLI."]
        assert capsys.readouterr().out == ""

    def test_tool_status_routing(self, monkeypatch):
        seen = []
        monkeypatch.setattr(fmt, "tool_result", lambda n, p: seen.append(("ok", n)))
        monkeypatch.setattr(fmt, "tool_error", lambda n, m: seen.append(("err", n)))
        monkeypatch.setattr(fmt, "tool_declined", lambda n: seen.append(("no", n)))
        sink = ConsoleSink(5, verbose=True)
        call = ToolCallRecord("c1", "git_push")
        sink.tool_finished(call, json.dumps({"status": "success", "message": "ok"}))
        sink.tool_finished(call, json.dumps({"status": "error", "message": "bad"}))
        sink.tool_finished(call, json.dumps({"status": "user_declined"}))
        sink.tool_finished(call, json.dumps({"status": "internal_error"}))
        assert seen == [
            ("ok", "git_push"),
            ("err", "git_push"),
            ("no", "git_push"),
            ("err", "git_push"),
        ]

    def test_iteration_counter_resets(self):
        sink = ConsoleSink(5, verbose=False)
        sink.before_call([], [])
        sink.before_call([], [])
        assert sink.iteration == 2
        sink.start_question()
        assert sink.iteration == 0


# ---------------------------------------------------------------------------
# ConsolePrompter
# ---------------------------------------------------------------------------


class TestConsolePrompter:
    def test_rewrite_shows_diff_without_content(self, tmp_path, monkeypatch):
        (tmp_path / "a.txt").write_text("one\ntwo\n", encoding="utf-8")
        shown = {}
        monkeypatch.setattr(fmt, "tool_call", lambda n, a: shown.update(args=a))
        monkeypatch.setattr(
            fmt, "diff_hunks", lambda f, h: shown.update(file=f, hunks=h)
        )
        monkeypatch.setattr(fmt, "ask_choice", lambda q, c, d: "a")

        call = ToolCallRecord(
            "c1", "rewrite_file", {"filename": "a.txt", "content": "one\n2\n"}
        )
        assert ConsolePrompter(str(tmp_path)).choose(call) == "a"
        assert "content" not in json.loads(shown["args"])
        assert shown["file"] == "a.txt"
        assert shown["hunks"] == [{"line": 2, "-": "two", "+": "2"}]

    def test_create_shows_new_content(self, tmp_path, monkeypatch):
        shown = []
        monkeypatch.setattr(fmt, "tool_call", lambda n, a: None)
        monkeypatch.setattr(fmt, "file_content", lambda f, c: shown.append((f, c)))
        monkeypatch.setattr(fmt, "ask_choice", lambda q, c, d: "n")
        call = ToolCallRecord("c1", "create_file", {"filename": "b.txt", "content": "x"})
        assert ConsolePrompter(str(tmp_path)).choose(call) == "n"
        assert shown == [("b.txt", "x")]

    def test_offered_choices(self, tmp_path, monkeypatch):
        asked = {}
        monkeypatch.setattr(fmt, "tool_call", lambda n, a: None)
        monkeypatch.setattr(
            fmt, "ask_choice", lambda q, c, d: asked.update(choices=c, default=d) or d
        )
        ConsolePrompter(str(tmp_path)).choose(ToolCallRecord("c1", "git_commit"))
        assert asked == {"choices": ["y", "n", "a", "r"], "default": "y"}


# ---------------------------------------------------------------------------
# Wiring and indexing
# ---------------------------------------------------------------------------


class TestBuildAgent:
    def test_interactive_gate_has_prompter(self, tmp_path):
        args = _parse([])
        orch, sink, history, indexer = build_agent(args, str(tmp_path))
        assert isinstance(orch.gate.prompter, ConsolePrompter)
        assert orch.gate.refiner == orch.refine_tool_call
        assert orch.max_iterations == 5
        assert orch.history_limit == 15
        assert history.path == tmp_path / ".wader" / "project_history.json"

    def test_quiet_has_no_prompter(self, tmp_path):
        args = _parse(["--quiet"])
        orch, *_ = build_agent(args, str(tmp_path), interactive=False)
        assert orch.gate.prompter is None

    def test_summary_appended_to_system_prompt(self, tmp_path):
        indexer = Indexer(Storage(tmp_path))
        indexer.add_summary("It is a Flask app.")
        pre = SystemPromptPreprocessor(build_registry(str(tmp_path)), include_date=False)
        prompt = build_system_prompt(pre, indexer)
        assert prompt.endswith("## Project summary\n\nIt is a Flask app.")


class TestRunIndexing:
    def _orchestrator(self, tmp_path, client, indexer):
        sink = ConsoleSink(5, verbose=False, indexer=indexer)
        return ConversationOrchestrator(
            client,
            HistoryStore(tmp_path / "h.json"),
            ToolRegistry(),
            "SYSTEM",
            model="m",
            sink=sink,
        )

    def test_indexes_once(self, tmp_path):
        indexer = Indexer(Storage(tmp_path / "data"))
        client = _FakeClient(_text_response("A small library."))
        orch = self._orchestrator(tmp_path, client, indexer)

        assert run_indexing(orch, indexer) is True
        assert indexer.is_project_indexed()
        assert indexer.summaries() == ["A small library."]
        assert indexer.in_progress is False

        assert run_indexing(orch, indexer) is False
        assert len(client.payloads) == 1

    def test_failure_leaves_project_unindexed(self, tmp_path):
        indexer = Indexer(Storage(tmp_path / "data"))
        client = _FakeClient(AgentError("LLM call failed: down"))
        orch = self._orchestrator(tmp_path, client, indexer)

        assert run_indexing(orch, indexer) is False
        assert not indexer.is_project_indexed()
        assert indexer.in_progress is False


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------


class TestParser:
    def test_defaults_are_unset_sentinels(self, tmp_path):
        args = build_parser().parse_args([])
        assert args.command is None
        apply_config_to_args(args, {})
        assert args.model == "o3-mini"

    def test_global_options(self, tmp_path):
        args = _parse(
            ["--model", "gpt-4o", "--history-limit", "3", "--max-iterations", "9"],
        )
        assert (args.model, args.history_limit, args.max_iterations) == ("gpt-4o", 3, 9)

    def test_clear_subcommand(self, tmp_path):
        args = _parse(["clear", "-y"])
        assert args.command == "clear"
        assert args.yes is True

    def test_config_subcommand(self, tmp_path):
        args = _parse(["config", "model", "gpt-4o"])
        assert (args.command, args.name, args.value) == ("config", "model", "gpt-4o")

    def test_color_flags_exclusive(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["--color", "--no-color"])


# ---------------------------------------------------------------------------
# main()
# ---------------------------------------------------------------------------


class TestMain:
    def test_config_writes_global_file(self, tmp_path, monkeypatch):
        monkeypatch.setattr(sys, "argv", ["wader", "config", "model", "gpt-4o"])
        agent.main()
        written = (tmp_path / "xdg" / "wader" / "config.toml").read_text()
        assert 'model = "gpt-4o"' in written

    def test_config_requires_value(self, monkeypatch):
        monkeypatch.setattr(sys, "argv", ["wader", "config", "model"])
        with pytest.raises(SystemExit) as exc:
            agent.main()
        assert exc.value.code == 2

    def test_config_bad_key_exits_one(self, monkeypatch):
        monkeypatch.setattr(sys, "argv", ["wader", "config", "nonsense", "x"])
        with pytest.raises(SystemExit) as exc:
            agent.main()
        assert exc.value.code == 1

    def test_config_template(self, monkeypatch, capsys):
        monkeypatch.setattr(sys, "argv", ["wader", "config", "--template"])
        agent.main()
        assert "# wader configuration file" in capsys.readouterr().out

    def test_clear_with_yes(self, tmp_path, monkeypatch):
        history = Storage(tmp_path / ".wader").collection("project_history")
        history.add({"role": "user", "content": "old"})
        monkeypatch.setattr(
            sys, "argv", ["wader", "--base-dir", str(tmp_path), "clear", "-y"]
        )
        agent.main()
        assert HistoryStore(tmp_path / ".wader" / "project_history.json").all() == []

    def test_clear_cancelled(self, tmp_path, monkeypatch):
        history = Storage(tmp_path / ".wader").collection("project_history")
        history.add({"role": "user", "content": "old"})
        monkeypatch.setattr(fmt, "confirm", lambda q: False)
        monkeypatch.setattr(sys, "argv", ["wader", "--base-dir", str(tmp_path), "clear"])
        agent.main()
        assert len(HistoryStore(tmp_path / ".wader" / "project_history.json")) == 1

    def test_chat_skips_indexing_with_no_index(self, tmp_path, monkeypatch):
        seen = {}
        monkeypatch.setattr(
            agent, "run_indexing", lambda *a: pytest.fail("indexing should be skipped")
        )
        monkeypatch.setattr(
            agent,
            "repl_loop",
            lambda orch, sink, history, verbose: seen.update(orch=orch, verbose=verbose),
        )
        monkeypatch.setattr(
            sys,
            "argv",
            ["wader", "--base-dir", str(tmp_path), "--no-index", "--quiet"],
        )
        agent.main()
        assert seen["verbose"] is False
        assert seen["orch"].gate.prompter is None

    def test_project_config_is_applied(self, tmp_path, monkeypatch):
        (tmp_path / "wader.toml").write_text("max_iterations = 7\n", encoding="utf-8")
        seen = {}
        monkeypatch.setattr(
            agent, "repl_loop", lambda orch, *a, **kw: seen.update(orch=orch)
        )
        monkeypatch.setattr(
            sys, "argv", ["wader", "--base-dir", str(tmp_path), "--no-index"]
        )
        agent.main()
        assert seen["orch"].max_iterations == 7

    def test_missing_base_dir(self, tmp_path, monkeypatch):
        monkeypatch.setattr(
            sys, "argv", ["wader", "--base-dir", str(tmp_path / "nope")]
        )
        with pytest.raises(SystemExit) as exc:
            agent.main()
        assert exc.value.code == 2


# ---------------------------------------------------------------------------
# repl_loop
# ---------------------------------------------------------------------------


class TestReplLoop:
    def _mock_session(self, inputs):
        """Create a mock PromptSession whose .prompt() returns values from inputs."""
        mock_session = MagicMock()
        side = []
        for v in inputs:
            if v is EOFError:
                side.append(EOFError())
            elif v is KeyboardInterrupt:
                side.append(KeyboardInterrupt())
            else:
                side.append(v)
        mock_session.prompt.side_effect = side
        return mock_session

    def _patch_session(self, inputs):
        """Return a patch context that replaces PromptSession with a mock."""
        return patch("prompt_toolkit.PromptSession", return_value=self._mock_session(inputs))

    def _run(self, tmp_path, inputs, orchestrator=None):
        orchestrator = orchestrator or MagicMock()
        history = HistoryStore(tmp_path / "h.json")
        with self._patch_session(inputs):
            repl_loop(orchestrator, ConsoleSink(5, verbose=False), history, verbose=False)
        return orchestrator, history

    @pytest.mark.parametrize("command", ["exit", "quit", "/exit", "/quit", "EXIT"])
    def test_exit_commands(self, tmp_path, command):
        orch, _ = self._run(tmp_path, [command])
        orch.call.assert_not_called()

    def test_eof(self, tmp_path):
        orch, _ = self._run(tmp_path, [EOFError])
        orch.call.assert_not_called()

    def test_ctrl_c_at_prompt_exits(self, tmp_path):
        orch, _ = self._run(tmp_path, [KeyboardInterrupt])
        orch.call.assert_not_called()

    def test_empty_lines_ignored(self, tmp_path):
        orch, _ = self._run(tmp_path, ["", "   ", "hello", "/exit"])
        orch.call.assert_called_once_with("hello")

    def test_questions_in_order(self, tmp_path):
        orch, _ = self._run(tmp_path, ["first", "second", EOFError])
        assert [c.args[0] for c in orch.call.call_args_list] == ["first", "second"]

    def test_errors_do_not_end_the_loop(self, tmp_path, monkeypatch):
        errors = []
        monkeypatch.setattr(fmt, "error", errors.append)
        orch = MagicMock()
        orch.call.side_effect = [AgentError("LLM call failed: boom"), None]
        self._run(tmp_path, ["one", "two", "/exit"], orch)
        assert orch.call.call_count == 2
        assert errors == ["LLM call failed: boom"]

    def test_interrupted_question_does_not_end_the_loop(self, tmp_path):
        orch = MagicMock()
        orch.call.side_effect = [KeyboardInterrupt(), None]
        self._run(tmp_path, ["one", "two", "/exit"], orch)
        assert orch.call.call_count == 2

    def test_help(self, tmp_path, monkeypatch):
        shown = []
        monkeypatch.setattr(fmt, "info", shown.append)
        orch, _ = self._run(tmp_path, ["/help", "/exit"])
        orch.call.assert_not_called()
        assert "/clear" in shown[0]

    def test_clear_command(self, tmp_path, monkeypatch):
        monkeypatch.setattr(fmt, "confirm", lambda q: True)
        history = HistoryStore(tmp_path / "h.json")
        history.add({"role": "user", "content": "old"})
        _repl_clear(history)
        assert HistoryStore(tmp_path / "h.json").all() == []

    def test_clear_declined(self, tmp_path, monkeypatch):
        monkeypatch.setattr(fmt, "confirm", lambda q: False)
        history = HistoryStore(tmp_path / "h.json")
        history.add({"role": "user", "content": "old"})
        _repl_clear(history)
        assert len(history) == 1

    def test_prompt_history_seeded_from_store(self, tmp_path):
        history = HistoryStore(tmp_path / "h.json")
        history.add({"role": "user", "content": "earlier question"})
        history.add({"role": "assistant", "content": "earlier answer"})
        with patch("prompt_toolkit.PromptSession") as session_cls:
            session_cls.return_value = self._mock_session([EOFError])
            repl_loop(MagicMock(), ConsoleSink(5, verbose=False), history, verbose=False)
        input_history = session_cls.call_args.kwargs["history"]
        assert list(input_history.load_history_strings()) == ["earlier question"]
