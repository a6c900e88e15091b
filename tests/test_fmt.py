"""Tests for the fmt module (ANSI-formatted output helpers)."""

from io import StringIO

from rich.console import Console

from wader import fmt


def _capture(func, *args, **kwargs):
    """Call a fmt function with a captured console and return plain-text output."""
    buf = StringIO()
    old = fmt._console
    fmt._console = Console(file=buf, no_color=True, width=80)
    try:
        func(*args, **kwargs)
    finally:
        fmt._console = old
    return buf.getvalue()


class TestTurnHeader:
    def test_contains_turn_info(self):
        out = _capture(fmt.turn_header, 3, 5, 4200)
        assert "Turn 3/5" in out
        assert "4200 tokens" in out


class TestToolCall:
    def test_basic(self):
        out = _capture(fmt.tool_call, "read_file", '{\n  "filename": "foo.txt"\n}')
        assert "read_file" in out
        assert "foo.txt" in out

    def test_empty_args(self):
        out = _capture(fmt.tool_call, "git_status", "")
        assert "git_status" in out


class TestToolOutcomes:
    def test_result(self):
        out = _capture(fmt.tool_result, "read_file", "File 'a' content retrieved")
        assert "read_file" in out
        assert "content retrieved" in out

    def test_error(self):
        out = _capture(fmt.tool_error, "git_push", "Failed to push changes")
        assert "git_push" in out
        assert "Failed to push" in out

    def test_declined(self):
        out = _capture(fmt.tool_declined, "delete_file")
        assert "delete_file declined" in out


class TestDiffHunks:
    def test_renders_removed_and_added(self):
        hunks = [{"line": 4, "-": "old a\nold b", "+": "new"}]
        out = _capture(fmt.diff_hunks, "src/app.py", hunks)
        assert "Changes to src/app.py" in out
        assert "@@ line 4 @@" in out
        assert "- old a" in out
        assert "- old b" in out
        assert "+ new" in out

    def test_pure_insertion_has_no_removed_lines(self):
        out = _capture(fmt.diff_hunks, "a.txt", [{"line": 2, "-": "", "+": "x"}])
        assert "  - " not in out
        assert "+ x" in out

    def test_no_changes(self):
        out = _capture(fmt.diff_hunks, "a.txt", [])
        assert "(no changes)" in out


class TestFileContent:
    def test_every_line_prefixed(self):
        out = _capture(fmt.file_content, "new.txt", "one\ntwo")
        assert "New file new.txt" in out
        assert "+ one" in out
        assert "+ two" in out


class TestDiagnostics:
    def test_warning(self):
        out = _capture(fmt.warning, "careful")
        assert "Warning: careful" in out

    def test_error(self):
        out = _capture(fmt.error, "broken")
        assert "Error: broken" in out

    def test_markup_is_not_interpreted(self):
        out = _capture(fmt.info, "[bold]literal[/bold]")
        assert "[bold]literal[/bold]" in out


class TestInit:
    def test_no_color(self):
        old_console, old_out = fmt._console, fmt._out
        try:
            fmt.init(no_color=True)
            assert fmt._console.no_color is True
            assert fmt._out.no_color is True
        finally:
            fmt._console, fmt._out = old_console, old_out
