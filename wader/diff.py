"""Line-level diff used to preview file rewrites before they are approved.

Implements Myers' O((N+M)D) shortest edit script. Common prefix and suffix
are trimmed first, the search keeps one frontier snapshot per edit distance,
and the edit script is rebuilt by walking those snapshots backwards.
"""

from dataclasses import dataclass
from pathlib import Path

EQUAL = "="
REMOVE = "-"
ADD = "+"


@dataclass(frozen=True)
class DiffHunk:
    """A contiguous group of removals and/or additions.

    ``start_line`` is the 1-based position in the old sequence where the hunk
    applies. A pure insertion after line N starts at N + 1.
    """

    start_line: int
    removed_lines: tuple[str, ...] = ()
    added_lines: tuple[str, ...] = ()

    @property
    def removed(self) -> str:
        return "\n".join(self.removed_lines)

    @property
    def added(self) -> str:
        return "\n".join(self.added_lines)

    def to_dict(self) -> dict:
        return {"line": self.start_line, "-": self.removed, "+": self.added}


def split_lines(text: str) -> list[str]:
    """Split text on newlines after normalising CRLF."""
    return text.replace("\r\n", "\n").split("\n")


def _common_affixes(old: list[str], new: list[str]) -> tuple[int, int]:
    start = 0
    limit = min(len(old), len(new))
    while start < limit and old[start] == new[start]:
        start += 1
    end = 0
    while (
        start + end < len(old)
        and start + end < len(new)
        and old[len(old) - 1 - end] == new[len(new) - 1 - end]
    ):
        end += 1
    return start, end


def _shortest_edit_trace(a: list[str], b: list[str]) -> list[dict[int, int]]:
    """Run the forward search and return the frontier snapshot for every d."""
    n, m = len(a), len(b)
    v: dict[int, int] = {1: 0}
    trace: list[dict[int, int]] = []
    for d in range(n + m + 1):
        trace.append(dict(v))
        for k in range(-d, d + 1, 2):
            if k == -d or (k != d and v[k - 1] < v[k + 1]):
                x = v[k + 1]
            else:
                x = v[k - 1] + 1
            y = x - k
            while x < n and y < m and a[x] == b[y]:
                x += 1
                y += 1
            v[k] = x
            if x >= n and y >= m:
                return trace
    return trace


def _backtrack(
    a: list[str], b: list[str], trace: list[dict[int, int]]
) -> list[tuple[str, str]]:
    x, y = len(a), len(b)
    ops: list[tuple[str, str]] = []
    for d in range(len(trace) - 1, -1, -1):
        v = trace[d]
        k = x - y
        if k == -d or (k != d and v.get(k - 1, -1) < v.get(k + 1, -1)):
            prev_k = k + 1
        else:
            prev_k = k - 1
        prev_x = v.get(prev_k, 0)
        prev_y = prev_x - prev_k
        while x > prev_x and y > prev_y:
            x -= 1
            y -= 1
            ops.append((EQUAL, a[x]))
        if d > 0:
            if x == prev_x:
                y -= 1
                ops.append((ADD, b[y]))
            else:
                x -= 1
                ops.append((REMOVE, a[x]))
        x, y = prev_x, prev_y
    ops.reverse()
    return ops


def _edit_script(a: list[str], b: list[str]) -> list[tuple[str, str]]:
    if not a and not b:
        return []
    if not a:
        return [(ADD, line) for line in b]
    if not b:
        return [(REMOVE, line) for line in a]
    return _backtrack(a, b, _shortest_edit_trace(a, b))


def _group(ops: list[tuple[str, str]], first_line: int) -> list[DiffHunk]:
    hunks: list[DiffHunk] = []
    line = first_line
    start = None
    removed: list[str] = []
    added: list[str] = []

    def flush():
        if start is not None and (removed or added):
            hunks.append(DiffHunk(start, tuple(removed), tuple(added)))

    for tag, text in ops:
        if tag == EQUAL:
            flush()
            start = None
            removed, added = [], []
            line += 1
            continue
        if start is None:
            start = line
        if tag == REMOVE:
            removed.append(text)
            line += 1
        else:
            added.append(text)
    flush()
    return hunks


def diff(old_lines: list[str], new_lines: list[str]) -> list[DiffHunk]:
    """Return the grouped hunks that turn ``old_lines`` into ``new_lines``."""
    old_lines = list(old_lines)
    new_lines = list(new_lines)
    if old_lines == new_lines:
        return []
    start, end = _common_affixes(old_lines, new_lines)
    a = old_lines[start : len(old_lines) - end]
    b = new_lines[start : len(new_lines) - end]
    return _group(_edit_script(a, b), start + 1)


def diff_file(path: str | Path, new_content: str) -> list[DiffHunk]:
    """Diff the current content of ``path`` against ``new_content``.

    A missing file yields no hunks.
    """
    p = Path(path)
    if not p.is_file():
        return []
    old_content = p.read_text(encoding="utf-8", errors="replace")
    return diff(split_lines(old_content), split_lines(new_content))


def apply_hunks(old_lines: list[str], hunks: list[DiffHunk]) -> list[str]:
    """Apply hunks produced by :func:`diff` to ``old_lines``.

    Raises ValueError when a hunk's removed lines do not match the input.
    """
    result: list[str] = []
    cursor = 0
    for hunk in sorted(hunks, key=lambda h: h.start_line):
        idx = hunk.start_line - 1
        if idx < cursor or idx > len(old_lines):
            raise ValueError(f"hunk at line {hunk.start_line} is out of order or range")
        result.extend(old_lines[cursor:idx])
        end = idx + len(hunk.removed_lines)
        if tuple(old_lines[idx:end]) != hunk.removed_lines:
            raise ValueError(f"hunk at line {hunk.start_line} does not match input")
        result.extend(hunk.added_lines)
        cursor = end
    result.extend(old_lines[cursor:])
    return result
