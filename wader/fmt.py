"""ANSI-formatted terminal output and prompts using Rich.

Diagnostics go to stderr; the assistant's answers go to stdout.
"""

from rich.console import Console
from rich.markdown import Markdown
from rich.markup import escape
from rich.prompt import Prompt
from rich.rule import Rule
from rich.text import Text

_console = Console(stderr=True)
_out = Console()


def init(*, color: bool = False, no_color: bool = False) -> None:
    """Reconfigure the module-level consoles from CLI flags.

    Call once at startup, before any output.
    """
    global _console, _out
    kwargs: dict = {}
    if color:
        kwargs["force_terminal"] = True
        kwargs["no_color"] = False
    if no_color:
        kwargs["no_color"] = True
    _console = Console(stderr=True, **kwargs)
    _out = Console(**kwargs)


# -- Turn structure ----------------------------------------------------------


def turn_header(n: int, max_n: int, token_est: int) -> None:
    title = f"Turn {n}/{max_n} (~{token_est} tokens)"
    _console.print(Rule(title, style="cyan"))


def llm_spinner(label: str = "Waiting for LLM"):
    """Return a Rich Status context manager that spins on stderr."""
    return _console.status(f"  {label}", spinner="dots")


# -- Tool calls --------------------------------------------------------------


def tool_call(name: str, args_json: str) -> None:
    header = Text()
    header.append("  ▶ ", style="bold magenta")
    header.append(name, style="bold magenta")
    _console.print(header)
    if args_json:
        for line in args_json.splitlines():
            _console.print(Text(f"    {line}", style="dim"))


def tool_result(name: str, preview: str) -> None:
    header = Text()
    header.append(f"  ✓ {name}", style="green")
    _console.print(header)
    if preview:
        _console.print(Text(f"    {preview}", style="dim"))


def tool_error(name: str, msg: str) -> None:
    header = Text()
    header.append(f"  ✗ {name}", style="bold red")
    header.append(f"  {msg}", style="red")
    _console.print(header)


def tool_declined(name: str) -> None:
    _console.print(Text(f"  ⊘ {name} declined", style="yellow"))


# -- Previews ----------------------------------------------------------------


def diff_hunks(filename: str, hunks: list[dict]) -> None:
    """Render hunks in their external ``{line, "-", "+"}`` shape."""
    _console.print(Text(f"  Changes to {filename}:", style="bold"))
    if not hunks:
        _console.print(Text("    (no changes)", style="dim"))
        return
    for hunk in hunks:
        _console.print(Text(f"  @@ line {hunk['line']} @@", style="cyan"))
        if hunk["-"]:
            for line in hunk["-"].split("\n"):
                _console.print(Text(f"  - {line}", style="red"))
        if hunk["+"]:
            for line in hunk["+"].split("\n"):
                _console.print(Text(f"  + {line}", style="green"))


def file_content(filename: str, content: str) -> None:
    _console.print(Text(f"  New file {filename}:", style="bold"))
    for line in content.splitlines():
        _console.print(Text(f"  + {line}", style="green"))


# -- Prompts -----------------------------------------------------------------


def ask_choice(question: str, choices: list[str], default: str) -> str:
    """Ask until one of ``choices`` is entered."""
    return Prompt.ask(
        f"  {escape(question)}", choices=choices, default=default, console=_console
    )


def ask_text(question: str) -> str:
    return Prompt.ask(f"  {escape(question)}", default="", console=_console)


def confirm(question: str) -> bool:
    return ask_choice(question, ["y", "n"], "n") == "y"


# -- Assistant text ----------------------------------------------------------


def assistant_markdown(text: str) -> None:
    _out.print(Markdown(text))


# -- Diagnostics -------------------------------------------------------------


def info(msg: str) -> None:
    _console.print(Text(f"  {msg}", style="dim"))


def warning(msg: str) -> None:
    line = Text()
    line.append("  ⚠ Warning: ", style="yellow")
    line.append(msg, style="yellow")
    _console.print(line)


def error(msg: str) -> None:
    line = Text()
    line.append("Error: ", style="bold red")
    line.append(msg, style="red")
    _console.print(line)


def repl_banner() -> None:
    _console.print(
        Text("Interactive mode. Type exit, /exit or Ctrl-D to quit.", style="dim")
    )
