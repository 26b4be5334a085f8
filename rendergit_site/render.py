"""
Pure HTML builders for every page of the site.

Nothing here touches the filesystem or git; callers pass in the facts and get
a page back as a string.
"""
from __future__ import annotations

import html
import re
from typing import Iterable, Iterator, List, Optional, Sequence, Tuple
from urllib.parse import quote

from pygments import highlight
from pygments.formatters import HtmlFormatter
from pygments.lexer import Lexer
from pygments.lexers import TextLexer, guess_lexer
from pygments.lexers.diff import DiffLexer
from pygments.util import ClassNotFound

from . import __version__
from .models import Commit, DiffStat, FileEntry, GraphRow, Person

# ---- constants & utilities ---------------------------------------------------

# Content larger than this is not worth guessing a lexer for.
MAX_GUESS_BYTES = 64 * 1024
# git treats a NUL within the first 8000 bytes as binary content.
BINARY_SNIFF_BYTES = 8000
STAT_PATH_WIDTH = 60

_FORMATTER = HtmlFormatter(nowrap=True)

STYLE = (
    "body { font-family: -apple-system,BlinkMacSystemFont,'Segoe UI',Roboto,Helvetica,Arial; }\n"
    "pre { font-family: ui-monospace,SFMono-Regular,Menlo,Monaco,Consolas,monospace; }\n"
    "ul { list-style: none; padding-left: 1.25rem; }\n"
    + HtmlFormatter().get_style_defs(".highlight")
    + "\n"
)


def esc(s: str) -> str:
    return html.escape(s, quote=True)


def href(path: str) -> str:
    return quote(path, safe="/")


def bytes_human(n: int) -> str:
    units = ["B", "KiB", "MiB", "GiB", "TiB"]
    f = float(n)
    i = 0
    while f >= 1024.0 and i < len(units) - 1:
        f /= 1024.0
        i += 1
    return f"{int(f)} {units[i]}" if i == 0 else f"{f:.1f} {units[i]}"


def is_binary(content: bytes) -> bool:
    return b"\0" in content[:BINARY_SNIFF_BYTES]


def person(p: Person) -> str:
    return esc(f"{p.name} <{p.email}>")


def branch_root(branch: str) -> str:
    """Relative path from `branches/<branch>.html` back to the site root."""
    return "../" * (branch.count("/") + 1)


def raw_href(path: str) -> str:
    return href(path) + ".raw.html"


def _normalize_newlines(text: str) -> str:
    # Pygments does the same before lexing; keeps raw and highlighted lines aligned.
    return text.replace("\r\n", "\n").replace("\r", "\n")


def highlight_lines(text: str, lexer: Lexer) -> List[str]:
    """Highlight `text` and return one HTML fragment per source line."""
    if not text:
        return []
    out = highlight(text, lexer, _FORMATTER).split("\n")
    if out and out[-1] == "":
        out.pop()
    return out


def lexer_for(text: str) -> Lexer:
    """Pick a lexer from the content alone: the page is shared by every path with this content."""
    if len(text) > MAX_GUESS_BYTES:
        return TextLexer(stripnl=False)
    try:
        return guess_lexer(text, stripnl=False)
    except ClassNotFound:
        return TextLexer(stripnl=False)


# ---- document shell ----------------------------------------------------------


def html_header(project: str, title: str = "", top_level: Optional[str] = None) -> str:
    if project and title:
        title = f": {title}"
    name = esc(project)
    if top_level is not None and project:
        name = f'<a href="{top_level}">{name}</a>'
    return (
        "<!DOCTYPE html>\n"
        '<html lang="en">\n'
        "<head>\n"
        '<meta charset="utf-8" />\n'
        f"<title>{esc(project)}{esc(title)}</title>\n"
        f"<style>\n{STYLE}</style>\n"
        "</head>\n"
        "<body>\n"
        f"<h1>{name}{esc(title)}</h1>\n"
    )


def html_footer() -> str:
    return f"<hr>\nGenerated by rendergit-site {esc(__version__)}.\n</body>\n</html>\n"


# ---- file tree ---------------------------------------------------------------

TreeEvent = Tuple[str, str, int]


def iter_tree_events(paths: Iterable[str]) -> Iterator[TreeEvent]:
    """Turn path-sorted file paths into open/leaf/close events in one pass.

    A stack holds the directories currently open. For each path, directories
    of the stack that diverge from the path's own (or lie deeper than it) are
    closed, the path's new directories are opened, then the file itself is
    emitted. Events are `("open", dir_name, depth)`, `("leaf", path, depth)`
    and `("close", dir_name, depth)`, where depth counts open directories.
    """
    stack: List[str] = []
    for path in paths:
        *dirs, _ = path.split("/")
        common = 0
        while common < min(len(stack), len(dirs)) and stack[common] == dirs[common]:
            common += 1
        while len(stack) > common:
            depth = len(stack)
            yield ("close", stack.pop(), depth)
        for d in dirs[common:]:
            stack.append(d)
            yield ("open", d, len(stack))
        yield ("leaf", path, len(stack))
    while stack:
        depth = len(stack)
        yield ("close", stack.pop(), depth)


def render_file_tree(entries: Sequence[FileEntry]) -> str:
    lines = ["<ul>"]
    for kind, value, depth in iter_tree_events(e.path for e in entries):
        pad = "  " * depth
        if kind == "open":
            lines.append(f"{pad}<li>{esc(value)}")
            lines.append(f"{pad}<ul>")
        elif kind == "close":
            lines.append(f"{pad}</ul></li>")
        else:
            name = value.rsplit("/", 1)[-1]
            lines.append(f'{pad}<li><a href="{raw_href(value)}">{esc(name)}</a></li>')
    lines.append("</ul>")
    return "\n".join(lines) + "\n"


# ---- commit pages ------------------------------------------------------------


def _commit_meta(commit: Commit) -> str:
    return (
        f"<p>Author: {person(commit.author)}\n"
        f"<br>Committer: {person(commit.committer)}\n"
        f"<br>Date: {esc(commit.committer.display_date)}\n"
    )


def _branch_heading(branch: str) -> str:
    return f'<h2>Branch: <a href="../../branches/{href(branch)}.html">{esc(branch)}</a></h2>\n'


def render_diff_stat(parent_id: str, stat: DiffStat, paths: Iterable[str], parent_paths: Iterable[str]) -> str:
    """One row per changed file: raw page, the parent's raw page, and the diff anchor."""
    present = set(paths)
    in_parent = set(parent_paths)
    rows: List[str] = []
    for e in stat.entries:
        name = esc(e.path)
        cell = f'<a href="{raw_href(e.path)}">{name}</a>' if e.path in present else name
        if e.path in in_parent:
            cell += f'(<a href="../../commits/{parent_id}/{raw_href(e.path)}">old</a>)'
        pad = " " * max(1, STAT_PATH_WIDTH - len(e.path))
        cell += f'{pad}(<a href="diff-to-{parent_id}.html#{href(e.path)}">diff</a>)'
        changes = "Bin" if e.binary else f"+{e.insertions} -{e.deletions}"
        rows.append(f"{cell} | {changes}")
    rows.append(esc(stat.summary()))
    return "\n".join(rows) + "\n"


def render_commit_index(
    project: str,
    commit: Commit,
    branch: str,
    diff_stats: Sequence[Tuple[str, DiffStat, Sequence[str]]],
    tree: Sequence[FileEntry],
) -> str:
    """The commit's index.html.

    `diff_stats` holds, per parent in order, the parent id, the stat of the
    diff from that parent and the file paths of the parent's tree.
    """
    parts = [html_header(project, f"Commit: {commit.id}", "../.."), _branch_heading(branch), _commit_meta(commit)]
    for p in commit.parents:
        parts.append(
            f'<br>Parent: <a href="../../commits/{p}/index.html">{p}</a>'
            f' (<a href="../../commits/{commit.id}/diff-to-{p}.html">diff to parent</a>)\n'
        )
    parts.append(f"<br>Log message:\n<p><pre>{esc(commit.message)}</pre>\n")
    paths = [e.path for e in tree]
    for parent_id, stat, parent_paths in diff_stats:
        parts.append(f"<br>Diff Stat to {parent_id}:\n<blockquote><pre>\n")
        parts.append(render_diff_stat(parent_id, stat, paths, parent_paths))
        parts.append("</pre></blockquote>\n")
    parts.append("<p>Files:\n")
    parts.append(render_file_tree(tree))
    parts.append(html_footer())
    return "".join(parts)


_C_ESCAPES = {"a": 7, "b": 8, "t": 9, "n": 10, "v": 11, "f": 12, "r": 13, '"': 34, "\\": 92}


def _c_unquote(text: str, start: int) -> Tuple[Optional[str], int]:
    """Decode the git C-quoted string opening at `text[start]`; return it and the index past its closing quote."""
    out = bytearray()
    i = start + 1
    while i < len(text):
        ch = text[i]
        if ch == '"':
            return out.decode("utf-8", errors="replace"), i + 1
        if ch != "\\":
            out += ch.encode("utf-8")
            i += 1
            continue
        code = text[i + 1:i + 2]
        if code in _C_ESCAPES:
            out.append(_C_ESCAPES[code])
            i += 2
        elif re.fullmatch(r"[0-3][0-7]{2}", text[i + 1:i + 4]):
            out.append(int(text[i + 1:i + 4], 8))
            i += 4
        else:
            return None, i
    return None, i


def diff_header_path(line: str) -> Optional[str]:
    """Return P from `diff --git a/P b/P`; renames are disabled so both sides match.

    git C-quotes a side that holds a quote, a backslash or a control character,
    so such headers read `diff --git "a/P" "b/P"` with P escaped.
    """
    rest = line[len("diff --git "):]
    if rest.startswith('"'):
        old, end = _c_unquote(rest, 0)
        if old is None or not old.startswith("a/"):
            return None
        if rest[end:end + 2] == ' "':
            new, _ = _c_unquote(rest, end + 1)
        else:
            new = rest[end + 1:]
        return old[2:] if new == "b/" + old[2:] else None
    n = (len(rest) - 5) // 2
    if len(rest) == 2 * n + 5 and rest.startswith("a/") and rest[n + 2:n + 5] == " b/" and rest[2:n + 2] == rest[n + 5:]:
        return rest[2:n + 2]
    m = re.match(r"^a/(.*?) b/", rest)
    return m.group(1) if m else None


def render_diff_page(project: str, commit: Commit, parent_id: str, branch: str, diff_text: str) -> str:
    """The `diff-to-<parent>.html` page: numbered, highlighted, one anchor per file."""
    text = _normalize_newlines(diff_text)
    raw_lines = text.split("\n")
    if raw_lines and raw_lines[-1] == "":
        raw_lines.pop()
    highlighted = highlight_lines(text, DiffLexer(stripnl=False))

    body: List[str] = []
    for n, (raw, line) in enumerate(zip(raw_lines, highlighted), 1):
        if raw.startswith("diff --git "):
            path = diff_header_path(raw)
            if path is not None:
                line = f'<a id="{esc(path)}"></a>{line}'
        body.append(f"{n:5d}: {line}\n")

    return (
        html_header(project, f"diff {commit.short_id} {parent_id[:8]}", "../..")
        + _branch_heading(branch)
        + f'<h3>Commit: <a href="index.html">{commit.id}</a></h3>\n'
        + _commit_meta(commit)
        + f'<br>Parent: <a href="../{parent_id}/index.html">{parent_id}</a>\n'
        + f"<br>Log message:\n<p><pre>{esc(commit.message)}</pre>\n"
        + '<p>\n<pre class="highlight">'
        + "".join(body)
        + "</pre>\n"
        + html_footer()
    )


# ---- objects -----------------------------------------------------------------


def render_object_page(project: str, blob_hash: str, content: bytes) -> str:
    """The page stored once per blob hash. It may not link anywhere relative,
    since it is reachable from every depth of every commit directory."""
    if is_binary(content):
        body = f"<p>Binary file, {bytes_human(len(content))}.</p>\n"
    else:
        text = _normalize_newlines(content.decode("utf-8", errors="replace"))
        lines = highlight_lines(text, lexer_for(text))
        body = '<pre class="highlight">' + "".join(f"{n:6d}: {line}\n" for n, line in enumerate(lines, 1)) + "</pre>\n"
    return html_header(project, blob_hash) + body + html_footer()


# ---- branch & index pages ----------------------------------------------------


def render_graph_row(row: GraphRow) -> str:
    return f'<tr><td valign="middle"><pre>{row.graph}</pre></td><td></td><td></td><td></td></tr>\n'


def render_branch_row(branch: str, row: GraphRow, commit: Commit) -> str:
    root = branch_root(branch)
    return (
        f'<tr><td valign="middle"><pre>{row.graph}</pre></td>'
        f'<td><a href="{root}commits/{commit.id}/index.html">{esc(commit.subject)}</a></td>'
        f"<td>{person(commit.committer)}</td>"
        f"<td>{esc(commit.committer.display_date)}</td></tr>\n"
    )


def render_branch_page(project: str, branch: str, rows: Iterable[str]) -> str:
    return (
        html_header(project, f"Branch: {branch}", f"{branch_root(branch)}index.html")
        + "<table>\n"
        + "".join(rows)
        + "</table>\n"
        + html_footer()
    )


def render_index_row(branch: str, commit: Commit) -> str:
    return (
        f'<li><a href="branches/{href(branch)}.html">{esc(branch)}</a> '
        f"{esc(commit.subject)} {person(commit.committer)} {esc(commit.committer.display_date)}</li>\n"
    )


def render_index(project: str, public_repository: str, rows: Iterable[str]) -> str:
    parts = [html_header(project, "", "index.html"), "<h2>Repository</h2>\n"]
    if public_repository:
        parts.append(f"Clone this repository using:\n<pre>\n git clone {esc(public_repository)}\n</pre>\n")
    parts.append("<h3>Branches</h3>\n<ul>\n")
    parts.extend(rows)
    parts.append("</ul>\n")
    parts.append(html_footer())
    return "".join(parts)
