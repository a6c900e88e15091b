"""Tool implementations exposed to the model, and the registry that wires them.

Every handler takes the decoded argument dict and returns a JSON object
string with at least ``status`` and ``message``.
"""

import fnmatch
import functools
import json
import os
import re
import selectors
import signal
import subprocess
import sys
import time
from pathlib import Path, PurePosixPath

from .registry import ToolDescriptor, ToolRegistry

MAX_READ_CHARS = 50_000
MAX_LIST_ENTRIES = 1000
MAX_SEARCH_MATCHES = 200
MAX_LINE_LENGTH = 2000
BINARY_CHECK_BYTES = 8 * 1024  # 8 KB
DEFAULT_TIMEOUT = 60
POLL_INTERVAL = 0.2  # seconds between select() wake-ups
SKIP_DIRS = {".git"}

_INVALID_CHARS_RE = re.compile(r'[\x00-\x1f\x7f<>:"|?*]')
_DELIMITED_REGEX_RE = re.compile(r"^/(.+)/([a-zA-Z]*)$", re.DOTALL)
_UNSAFE_GIT_ARG_RE = re.compile(r"[<>|;&`$()#]")


def _result(status: str, message: str, **extra) -> str:
    return json.dumps({"status": status, "message": message, **extra})


def _error(message: str, **extra) -> str:
    return _result("error", message, **extra)


# -- Paths -------------------------------------------------------------------


def safe_resolve(file_path: str, base_dir: str) -> Path:
    """Resolve a path, ensuring it stays within base_dir.

    Resolves symlinks for both the base directory and the target path.

    Raises:
        ValueError: If the resolved path escapes the base directory.
    """
    base = Path(base_dir).resolve()
    if Path(file_path).is_absolute():
        resolved = Path(file_path).resolve()
    else:
        resolved = (base / file_path).resolve()
    if resolved.is_relative_to(base):
        return resolved
    raise ValueError(
        f"Path {file_path!r} resolves to {resolved}, "
        f"which is outside base directory {base}"
    )


def clean_relative_path(path: str) -> str:
    """Normalise a model-supplied relative path.

    Drops ``.`` and empty components, rejects ``..`` and control characters.
    Returns ``"."`` for the project root.

    Raises:
        ValueError: For absolute paths, ``..`` components or invalid characters.
    """
    path = (path or "").replace("\\", "/").replace("\x00", "")
    if PurePosixPath(path).is_absolute():
        raise ValueError(f"Path {path!r} must be relative to the project directory")
    parts = []
    for part in path.split("/"):
        if part in ("", "."):
            continue
        if part == "..":
            raise ValueError("Path cannot contain '..' components.")
        if _INVALID_CHARS_RE.search(part):
            raise ValueError(f"Path component {part!r} contains invalid characters.")
        parts.append(part)
    return "/".join(parts) if parts else "."


def _resolve_file(filename: str | None, base_dir: str) -> tuple[Path, str]:
    if filename is None or not str(filename).strip():
        raise ValueError("Filename is required and cannot be empty.")
    rel = clean_relative_path(str(filename))
    if rel == ".":
        raise ValueError("Filename became empty after sanitization or was invalid.")
    return safe_resolve(rel, base_dir), rel


def _is_binary(path: Path) -> bool:
    try:
        with open(path, "rb") as f:
            chunk = f.read(BINARY_CHECK_BYTES)
    except OSError:
        return True
    return b"\x00" in chunk


# -- File tools --------------------------------------------------------------


def _read_file(args: dict, base_dir: str) -> str:
    try:
        path, rel = _resolve_file(args.get("filename"), base_dir)
    except ValueError as e:
        return _error(str(e))
    if not path.exists():
        return _error(f"File '{rel}' not found.")
    if not path.is_file():
        return _error(f"'{rel}' is not a file.")
    if _is_binary(path):
        return _error(f"File '{rel}' appears to be binary.")
    try:
        content = path.read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        return _error(f"Error reading file '{rel}': {e}")

    truncated = len(content) > MAX_READ_CHARS
    if truncated:
        content = content[:MAX_READ_CHARS]
        message = (
            f"File '{rel}' content retrieved and truncated to "
            f"{MAX_READ_CHARS} characters."
        )
    else:
        message = f"File '{rel}' content retrieved successfully."
    return _result(
        "success", message, filename=rel, content=content, truncated=truncated
    )


def _create_file(args: dict, base_dir: str) -> str:
    try:
        path, rel = _resolve_file(args.get("filename"), base_dir)
    except ValueError as e:
        return _error(str(e))
    content = args.get("content")
    if not isinstance(content, str):
        return _error("Content is required and must be a string.")
    if path.exists():
        return _error(f"File '{rel}' already exists. Use rewrite_file to change it.")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    except OSError as e:
        return _error(f"Failed to create file '{rel}': {e}")
    return _result(
        "success", f"File '{rel}' created successfully.", filename=rel,
        bytes_written=len(content.encode("utf-8")),
    )


def _rewrite_file(args: dict, base_dir: str) -> str:
    try:
        path, rel = _resolve_file(args.get("filename"), base_dir)
    except ValueError as e:
        return _error(str(e))
    content = args.get("content")
    if not isinstance(content, str):
        return _error("Content is required and must be a string.")
    if not path.exists():
        return _error(f"File '{rel}' does not exist. Use create_file to make it.")
    if not path.is_file():
        return _error(f"'{rel}' is not a file.")
    try:
        path.write_text(content, encoding="utf-8")
    except OSError as e:
        return _error(f"Failed to rewrite file '{rel}': {e}")
    return _result(
        "success", f"File '{rel}' rewritten successfully.", filename=rel,
        bytes_written=len(content.encode("utf-8")),
    )


def _delete_file(args: dict, base_dir: str) -> str:
    try:
        path, rel = _resolve_file(args.get("filename"), base_dir)
    except ValueError as e:
        return _error(str(e))
    if not path.exists():
        return _error(f"File '{rel}' not found.")
    if not path.is_file():
        return _error(f"'{rel}' is not a file. Only files can be deleted.")
    try:
        path.unlink()
    except OSError as e:
        return _error(f"Failed to delete file '{rel}': {e}")
    return _result("success", f"File '{rel}' deleted successfully.", filename=rel)


def _list_directory(args: dict, base_dir: str, skip_dirs: set[str]) -> str:
    raw_path = args.get("path") or "."
    recursive = bool(args.get("recursive", False))
    include_files = bool(args.get("include_files", True))
    include_dirs = bool(args.get("include_dirs", True))

    if not include_files and not include_dirs:
        return _result(
            "warning",
            "Nothing to list: both include_files and include_dirs are set to false.",
            path=raw_path,
            entries=[],
        )
    try:
        rel = clean_relative_path(raw_path)
        root = safe_resolve(rel, base_dir)
    except ValueError as e:
        return _error(str(e))
    if not root.exists():
        return _error(f"Directory '{rel}' not found or is inaccessible.")
    if not root.is_dir():
        return _error(f"'{rel}' is not a directory.")

    entries: list[dict] = []
    truncated = False
    # Iterative walk with an explicit stack of directories still to visit.
    stack = [(root, "" if rel == "." else rel)]
    while stack:
        directory, prefix = stack.pop()
        try:
            children = sorted(os.scandir(directory), key=lambda e: e.name)
        except OSError as e:
            return _error(f"Error listing directory '{rel}': {e}")
        for child in children:
            name = f"{prefix}/{child.name}" if prefix else child.name
            is_dir = child.is_dir()
            if is_dir and child.name in skip_dirs:
                continue
            if (is_dir and include_dirs) or (child.is_file() and include_files):
                if len(entries) >= MAX_LIST_ENTRIES:
                    truncated = True
                    break
                entries.append(
                    {"name": name, "type": "directory" if is_dir else "file"}
                )
            if recursive and is_dir and not child.is_symlink():
                stack.append((Path(child.path), name))
        if truncated:
            break

    entries.sort(key=lambda e: (e["type"] != "directory", e["name"]))
    message = f"Directory '{rel}' listed successfully."
    if truncated:
        message += f" Output truncated to {MAX_LIST_ENTRIES} entries."
    return _result(
        "success",
        message,
        path=rel,
        recursive=recursive,
        include_files=include_files,
        include_dirs=include_dirs,
        entries=entries,
        truncated=truncated,
    )


_REGEX_FLAGS = {"i": re.IGNORECASE, "m": re.MULTILINE, "s": re.DOTALL, "x": re.VERBOSE}


def _compile_search(pattern: str, ignore_case: bool):
    """Return a ``line -> match-or-None`` callable for the search pattern.

    ``/expr/flags`` is treated as a regular expression, anything else as
    literal text.
    """
    m = _DELIMITED_REGEX_RE.match(pattern)
    if m:
        flags = 0
        for ch in m.group(2):
            flags |= _REGEX_FLAGS.get(ch.lower(), 0)
        if ignore_case:
            flags |= re.IGNORECASE
        return re.compile(m.group(1), flags).search, True
    if ignore_case:
        needle = pattern.casefold()
        return (lambda line: needle in line.casefold()), False
    return (lambda line: pattern in line), False


def _iter_search_files(root: Path, recursive: bool, skip_dirs: set[str]):
    if root.is_file():
        yield root
        return
    for dirpath, dirs, files in os.walk(root):
        dirs[:] = sorted(d for d in dirs if d not in skip_dirs)
        for filename in sorted(files):
            yield Path(dirpath) / filename
        if not recursive:
            break


def _find_text_in_files(args: dict, base_dir: str, skip_dirs: set[str]) -> str:
    pattern = args.get("pattern")
    if not isinstance(pattern, str) or pattern == "":
        return _error("Pattern is required and cannot be empty.")
    raw_path = args.get("path") or "."
    file_mask = args.get("file_mask") or "*"
    recursive = bool(args.get("recursive", True))
    ignore_case = bool(args.get("ignore_case", False))
    context_lines = args.get("context_lines", 0)
    if not isinstance(context_lines, int) or isinstance(context_lines, bool):
        context_lines = 0
    context_lines = max(0, context_lines)

    try:
        matcher, is_regex = _compile_search(pattern, ignore_case)
    except re.error as e:
        return _error(f"Invalid regex pattern: {pattern}. Error: {e}")
    try:
        rel = clean_relative_path(raw_path)
        root = safe_resolve(rel, base_dir)
    except ValueError as e:
        return _error(str(e))
    if not root.exists():
        return _error(f"Search path '{raw_path}' not found within the project.")

    base = Path(base_dir).resolve()
    results: list[dict] = []
    truncated = False
    for filepath in _iter_search_files(root, recursive, skip_dirs):
        file_rel = filepath.relative_to(base).as_posix()
        target = file_rel if "/" in file_mask else filepath.name
        if not fnmatch.fnmatch(target, file_mask):
            continue
        try:
            resolved = filepath.resolve()
        except OSError:
            continue
        if not resolved.is_relative_to(base) or _is_binary(filepath):
            continue
        try:
            lines = filepath.read_text(encoding="utf-8").splitlines()
        except (UnicodeDecodeError, OSError):
            continue

        for idx, line in enumerate(lines):
            found = matcher(line)
            if not found:
                continue
            if len(results) >= MAX_SEARCH_MATCHES:
                truncated = True
                break
            item = {
                "filename": file_rel,
                "line_number": idx + 1,
                "line_content": line[:MAX_LINE_LENGTH],
            }
            if context_lines > 0:
                item["context_before"] = lines[max(0, idx - context_lines) : idx]
                item["context_after"] = lines[idx + 1 : idx + 1 + context_lines]
            if is_regex:
                item["matches"] = [found.group(0), *found.groups()]
            results.append(item)
        if truncated:
            break

    if not results:
        return _result(
            "success",
            f'No matches found for pattern "{pattern}" in path "{raw_path}" '
            f'with mask "{file_mask}".',
            results=[],
        )
    message = f"Found {len(results)} match(es)."
    if truncated:
        message += f" Results truncated to the first {MAX_SEARCH_MATCHES}."
    return _result("success", message, results=results, truncated=truncated)


# -- Processes ---------------------------------------------------------------

_KILL_WAIT_TIMEOUT = 5  # seconds to wait for process to die after kill signals


def _kill_process_tree(proc: subprocess.Popen) -> None:
    """Kill a process and its descendants, then wait for exit."""
    if sys.platform != "win32":
        try:
            os.killpg(proc.pid, signal.SIGKILL)
        except OSError:
            pass  # already exited
    try:
        proc.kill()
    except OSError:
        pass  # already dead
    try:
        proc.wait(timeout=_KILL_WAIT_TIMEOUT)
    except subprocess.TimeoutExpired:
        pass  # give up, process is unkillable


def run_process(argv: list[str], cwd: str, timeout: float = DEFAULT_TIMEOUT) -> dict:
    """Run a command without a shell, polling its pipes until exit or timeout.

    Returns a dict with ``status``, ``exit_code``, ``stdout``, ``stderr`` and
    ``command``; failures to start or timeouts add ``error_message``.
    """
    command = " ".join(argv)
    try:
        proc = subprocess.Popen(
            argv,
            cwd=cwd,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            start_new_session=True,
        )
    except OSError as e:
        return {
            "status": "error",
            "exit_code": None,
            "stdout": "",
            "stderr": "",
            "command": command,
            "error_message": f"Failed to start process for command: {command}: {e}",
        }

    chunks: dict[str, list[bytes]] = {"stdout": [], "stderr": []}
    sel = selectors.DefaultSelector()
    sel.register(proc.stdout, selectors.EVENT_READ, "stdout")
    sel.register(proc.stderr, selectors.EVENT_READ, "stderr")
    started = time.monotonic()
    timed_out = False

    try:
        while sel.get_map():
            if time.monotonic() - started > timeout:
                timed_out = True
                _kill_process_tree(proc)
                break
            for key, _ in sel.select(timeout=POLL_INTERVAL):
                data = os.read(key.fd, 8192)
                if data:
                    chunks[key.data].append(data)
                else:
                    sel.unregister(key.fileobj)
        if not timed_out:
            remaining = max(0.0, timeout - (time.monotonic() - started))
            try:
                proc.wait(timeout=remaining)
            except subprocess.TimeoutExpired:
                timed_out = True
                _kill_process_tree(proc)
    finally:
        sel.close()
        proc.stdout.close()
        proc.stderr.close()

    stdout = b"".join(chunks["stdout"]).decode("utf-8", errors="replace")
    stderr = b"".join(chunks["stderr"]).decode("utf-8", errors="replace")
    if timed_out:
        return {
            "status": "error",
            "exit_code": None,
            "stdout": stdout,
            "stderr": stderr,
            "command": command,
            "error_message": f"Command timed out after {timeout} seconds.",
        }
    return {
        "status": "success" if proc.returncode == 0 else "error",
        "exit_code": proc.returncode,
        "stdout": stdout,
        "stderr": stderr,
        "command": command,
    }


# -- Git tools ---------------------------------------------------------------


def _git(args: list[str], base_dir: str, timeout: float) -> dict:
    return run_process(["git", *args], base_dir, timeout)


def _git_failure(what: str, result: dict) -> str:
    detail = result.get("stderr") or result.get("error_message") or "Unknown error."
    return _error(
        f"Failed to {what}: {detail.strip()}",
        command=result["command"],
        stdout=result.get("stdout", ""),
        stderr=result.get("stderr", ""),
    )


def _check_git_arg(value, label: str) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str) or value.startswith("-"):
        return f"{label} must be a plain name, got {value!r}."
    if ".." in value or _UNSAFE_GIT_ARG_RE.search(value):
        return f"{label} contains potentially unsafe characters."
    return None


def _file_list(files) -> list[str]:
    if files is None:
        return []
    if isinstance(files, str):
        files = [files]
    if not isinstance(files, list):
        raise ValueError("files must be a list of paths.")
    return [clean_relative_path(str(f)) for f in files]


def _git_status(args: dict, base_dir: str, timeout: float) -> str:
    result = _git(["status"], base_dir, timeout)
    if result["status"] != "success":
        return _git_failure("retrieve Git status", result)
    return _result(
        "success",
        "Git status retrieved successfully.",
        output=result["stdout"],
        command=result["command"],
    )


def _git_history(args: dict, base_dir: str, timeout: float) -> str:
    path = args.get("path") or "."
    try:
        path = clean_relative_path(path)
    except ValueError as e:
        return _error(str(e))
    try:
        limit = max(1, int(args.get("limit", 10)))
    except (TypeError, ValueError):
        return _error("limit must be a positive integer.")

    result = _git(
        ["log", "--no-merges", "--pretty=format:%H %s", "-n", str(limit), "--", path],
        base_dir,
        timeout,
    )
    if result["status"] != "success":
        return _git_failure("retrieve Git history", result)
    history = []
    for line in result["stdout"].strip().splitlines():
        if not line:
            continue
        commit_hash, _, subject = line.partition(" ")
        history.append({"hash": commit_hash, "subject": subject})
    return _result(
        "success",
        "Git history retrieved successfully.",
        history=history,
        command=result["command"],
    )


def _git_add(args: dict, base_dir: str, timeout: float) -> str:
    add_all = bool(args.get("all", False))
    try:
        files = _file_list(args.get("files"))
    except ValueError as e:
        return _error(str(e))
    if files and add_all:
        return _error("Cannot use files and all options together.")
    if not files and not add_all:
        return _error("Either files or all must be provided.")

    result = _git(["add", "-A"] if add_all else ["add", "--", *files], base_dir, timeout)
    if result["status"] != "success":
        return _git_failure("add files to the index", result)
    return _result(
        "success", "Files added to the index.", command=result["command"]
    )


def _git_commit(args: dict, base_dir: str, timeout: float) -> str:
    message = args.get("message")
    if not isinstance(message, str) or not message.strip():
        return _error("Commit message is required.")
    add_all = bool(args.get("all", False))
    amend = bool(args.get("amend", False))
    try:
        files = _file_list(args.get("files"))
    except ValueError as e:
        return _error(str(e))
    if files and add_all:
        return _error("Cannot use files and all options together.")

    if files or add_all:
        staged = _git(
            ["add", "-A"] if add_all else ["add", "--", *files], base_dir, timeout
        )
        if staged["status"] != "success":
            return _git_failure("add files to staging area", staged)

    commit_args = ["commit", "-m", message]
    if amend:
        commit_args.append("--amend")
    result = _git(commit_args, base_dir, timeout)
    if result["status"] != "success":
        return _git_failure("commit changes", result)
    return _result(
        "success",
        "Changes committed successfully.",
        output=result["stdout"] + result["stderr"],
        command=result["command"],
    )


def _remote_and_branch(args: dict) -> tuple[list[str], str | None]:
    remote = args.get("remote")
    branch = args.get("branch")
    for value, label in ((remote, "remote"), (branch, "branch")):
        err = _check_git_arg(value, label)
        if err:
            return [], err
    if branch and not remote:
        remote = "origin"
    return [v for v in (remote, branch) if v], None


def _git_pull(args: dict, base_dir: str, timeout: float) -> str:
    extra, err = _remote_and_branch(args)
    if err:
        return _error(err)
    result = _git(["pull", *extra], base_dir, timeout)
    if result["status"] != "success":
        return _git_failure("pull changes", result)
    return _result(
        "success",
        "Changes pulled successfully.",
        output=result["stdout"] + result["stderr"],
        command=result["command"],
    )


def _git_push(args: dict, base_dir: str, timeout: float) -> str:
    extra, err = _remote_and_branch(args)
    if err:
        return _error(err)
    push_args = ["push"]
    if args.get("set_upstream"):
        if len(extra) < 2:
            return _error("set_upstream requires a branch name.")
        push_args.append("--set-upstream")
    result = _git([*push_args, *extra], base_dir, timeout)
    if result["status"] != "success":
        return _git_failure("push changes", result)
    return _result(
        "success",
        "Changes pushed successfully.",
        output=result["stdout"] + result["stderr"],
        command=result["command"],
    )


# -- Registry ----------------------------------------------------------------


def _schema(properties: dict, required: list[str] = ()) -> dict:
    return {"type": "object", "properties": properties, "required": list(required)}


_FILENAME = {
    "type": "string",
    "description": 'Relative path of the file, with forward slashes (e.g. "src/app.py").',
}
_REMOTE = {"type": "string", "description": 'Name of the remote (e.g. "origin").'}
_FILES = {
    "type": "array",
    "items": {"type": "string"},
    "description": "List of files or directories.",
}


def _examples(*lines: str) -> str:
    return "\n".join(lines)


def build_registry(
    base_dir: str,
    timeout: float = DEFAULT_TIMEOUT,
    data_dir: str | None = None,
) -> ToolRegistry:
    """Register every built-in tool, bound to ``base_dir``."""
    skip_dirs = set(SKIP_DIRS)
    if data_dir:
        skip_dirs.add(Path(data_dir).name)

    def bind(fn, **kwargs):
        return functools.partial(fn, base_dir=base_dir, **kwargs)

    git = functools.partial(bind, timeout=timeout)

    return ToolRegistry(
        [
            ToolDescriptor(
                name="read_file",
                description=(
                    "Reads the content of a specified file. Paths are relative to the "
                    "project directory. Content is truncated beyond "
                    f"{MAX_READ_CHARS} characters"
                ),
                parameters=_schema({"filename": _FILENAME}, ["filename"]),
                handler=bind(_read_file),
                requires_confirmation=False,
                few_shot_examples=_examples(
                    "Read the contents of 'README.md'.",
                    "What's inside the 'pyproject.toml' file?",
                    "Show me the code in 'src/app/main.py'.",
                ),
            ),
            ToolDescriptor(
                name="create_file",
                description=(
                    "Creates a new file with the given name and content. Paths are "
                    "relative to the project directory. Fails if the file exists"
                ),
                parameters=_schema(
                    {
                        "filename": _FILENAME,
                        "content": {
                            "type": "string",
                            "description": "The content to write into the new file.",
                        },
                    },
                    ["filename", "content"],
                ),
                handler=bind(_create_file),
                few_shot_examples=_examples(
                    "Create a file named 'docs/report.txt' containing 'Monthly report'.",
                    "Make a new 'public/index.html' with '<h1>Hello</h1>'.",
                ),
            ),
            ToolDescriptor(
                name="rewrite_file",
                description=(
                    "Rewrites the content of an existing file with the given content. "
                    "Paths are relative to the project directory. The file must exist"
                ),
                parameters=_schema(
                    {
                        "filename": _FILENAME,
                        "content": {
                            "type": "string",
                            "description": "The complete new content of the file.",
                        },
                    },
                    ["filename", "content"],
                ),
                handler=bind(_rewrite_file),
                few_shot_examples=_examples(
                    "Rewrite 'src/service.py' with this new code: ...",
                    "Replace the content of '.gitignore' with these entries: ...",
                ),
            ),
            ToolDescriptor(
                name="delete_file",
                description=(
                    "Deletes a specified file. Paths are relative to the project "
                    "directory"
                ),
                parameters=_schema({"filename": _FILENAME}, ["filename"]),
                handler=bind(_delete_file),
                few_shot_examples=_examples(
                    "Delete the file 'temp/old_report.txt'.",
                    "Remove 'src/utils/scratch.py'.",
                ),
            ),
            ToolDescriptor(
                name="list_directory",
                description=(
                    'Lists contents of a directory relative to the project root ("." '
                    "for the root). Supports recursive listing and filtering by "
                    "files or directories"
                ),
                parameters=_schema(
                    {
                        "path": {
                            "type": "string",
                            "description": 'Relative directory path. Defaults to ".".',
                        },
                        "recursive": {
                            "type": "boolean",
                            "description": "List recursively. Defaults to false.",
                        },
                        "include_files": {
                            "type": "boolean",
                            "description": "Include files. Defaults to true.",
                        },
                        "include_dirs": {
                            "type": "boolean",
                            "description": "Include directories. Defaults to true.",
                        },
                    }
                ),
                handler=bind(_list_directory, skip_dirs=skip_dirs),
                requires_confirmation=False,
                few_shot_examples=_examples(
                    "What's in the project root?",
                    "Show me only the folders inside 'src'.",
                    "List everything in 'tests', including subdirectories.",
                ),
            ),
            ToolDescriptor(
                name="find_text_in_files",
                description=(
                    "Searches for a text pattern (or a /regex/flags expression) in "
                    "project files. Returns matching lines with optional context"
                ),
                parameters=_schema(
                    {
                        "pattern": {
                            "type": "string",
                            "description": (
                                'Text to search for, or a regular expression written as "/pattern/flags".'
                            ),
                        },
                        "path": {
                            "type": "string",
                            "description": 'Relative directory or file to search. Defaults to ".".',
                        },
                        "file_mask": {
                            "type": "string",
                            "description": 'Glob to filter files (e.g. "*.py"). Defaults to "*".',
                        },
                        "recursive": {
                            "type": "boolean",
                            "description": "Search subdirectories. Defaults to true.",
                        },
                        "ignore_case": {
                            "type": "boolean",
                            "description": "Case-insensitive search. Defaults to false.",
                        },
                        "context_lines": {
                            "type": "integer",
                            "minimum": 0,
                            "description": "Lines of context around each match. Defaults to 0.",
                        },
                    },
                    ["pattern"],
                ),
                handler=bind(_find_text_in_files, skip_dirs=skip_dirs),
                requires_confirmation=False,
                few_shot_examples=_examples(
                    "Find all occurrences of 'TODO' in Python files.",
                    "Search for '/^def \\w+\\(/m' in the 'src' directory.",
                    "Find 'database url' in *.toml files, ignoring case, with 2 lines of context.",
                ),
            ),
            ToolDescriptor(
                name="git_status",
                description="Shows the current status of the Git repository",
                parameters=_schema({}),
                handler=git(_git_status),
                requires_confirmation=False,
                few_shot_examples=_examples(
                    "What is the git status?", "Are there any pending changes?"
                ),
            ),
            ToolDescriptor(
                name="git_history",
                description=(
                    "Retrieves the Git commit history for a given path with an "
                    "optional limit"
                ),
                parameters=_schema(
                    {
                        "path": {
                            "type": "string",
                            "description": 'Path whose history to show. Defaults to ".".',
                        },
                        "limit": {
                            "type": "integer",
                            "description": "Maximum number of commits. Defaults to 10.",
                        },
                    }
                ),
                handler=git(_git_history),
                requires_confirmation=False,
                few_shot_examples=_examples(
                    "Show me the last 5 commits.",
                    "What were the recent changes in 'src/service'?",
                ),
            ),
            ToolDescriptor(
                name="git_add",
                description="Adds file changes to the Git index",
                parameters=_schema(
                    {
                        "files": _FILES,
                        "all": {
                            "type": "boolean",
                            "description": "Stage all changes (git add -A). Cannot be combined with files.",
                        },
                    }
                ),
                handler=git(_git_add),
                few_shot_examples=_examples(
                    "Stage 'src/service.py'.", "Stage all modified and deleted files."
                ),
            ),
            ToolDescriptor(
                name="git_commit",
                description="Commits changes to the Git repository",
                parameters=_schema(
                    {
                        "message": {"type": "string", "description": "The commit message."},
                        "files": _FILES,
                        "all": {
                            "type": "boolean",
                            "description": "Stage all changes before committing.",
                        },
                        "amend": {
                            "type": "boolean",
                            "description": "Amend the last commit.",
                        },
                    },
                    ["message"],
                ),
                handler=git(_git_commit),
                few_shot_examples=_examples(
                    "Commit all staged changes with message 'Initial commit'.",
                    "Amend the last commit with message 'Fix typo'.",
                ),
            ),
            ToolDescriptor(
                name="git_pull",
                description=(
                    "Fetches from and integrates with another repository or a local "
                    "branch"
                ),
                parameters=_schema(
                    {
                        "remote": _REMOTE,
                        "branch": {"type": "string", "description": "Branch to pull."},
                    }
                ),
                handler=git(_git_pull),
                few_shot_examples=_examples(
                    "Pull the latest changes.", "Pull 'develop' from 'origin'."
                ),
            ),
            ToolDescriptor(
                name="git_push",
                description="Pushes changes to the remote Git repository",
                parameters=_schema(
                    {
                        "remote": _REMOTE,
                        "branch": {"type": "string", "description": "Branch to push."},
                        "set_upstream": {
                            "type": "boolean",
                            "description": "Set the upstream branch.",
                        },
                    }
                ),
                handler=git(_git_push),
                few_shot_examples=_examples(
                    "Push the committed changes.",
                    "Push 'feature/login' to origin and set upstream.",
                ),
            ),
        ]
    )
