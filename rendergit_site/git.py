"""
Read-only query surface over a git mirror of the rendered repository.

Every query runs one `git` subprocess and parses its output immediately into
the records of `rendergit_site.models`. A failing command or a record that
does not match its grammar raises `BackendError`; nothing is retried.
"""
from __future__ import annotations

import datetime
import logging
import pathlib
import re
import subprocess
from typing import Dict, Iterator, List, Optional

from .errors import BackendError
from .models import Commit, DiffStat, DiffStatEntry, FileEntry, Person

logger = logging.getLogger(__name__)

REMOTE = "origin"
REMOTE_PREFIX = f"refs/remotes/{REMOTE}/"

# ---- process helpers ---------------------------------------------------------


def run(cmd: List[str], cwd: str | None = None, text: bool = True) -> subprocess.CompletedProcess:
    """Run `cmd`, raising BackendError when it cannot start or exits non-zero."""
    kwargs = {"encoding": "utf-8", "errors": "replace"} if text else {}
    try:
        cp = subprocess.run(cmd, cwd=cwd, check=False, capture_output=True, **kwargs)
    except OSError as e:
        raise BackendError(f"cannot run {cmd[0]}: {e}", cmd) from e
    if cp.returncode != 0:
        stderr = cp.stderr if text else cp.stderr.decode("utf-8", errors="replace")
        stderr = stderr.strip()
        raise BackendError(f"{' '.join(cmd)} failed: {stderr or f'exit status {cp.returncode}'}", cmd, stderr)
    return cp


# ---- parsers -----------------------------------------------------------------

_PERSON_RE = re.compile(r"^(?P<name>.*?) ?<(?P<email>[^<>]*)> (?P<ts>-?\d+) (?P<tz>[+-]\d{4})$")
_HEX_RE = re.compile(r"^[0-9a-f]{4,64}$")


def parse_person(value: str) -> Person:
    """Parse `Name <email> 1700000000 +0100`; the date is normalized to UTC."""
    m = _PERSON_RE.match(value)
    if not m:
        raise BackendError(f"malformed identity line: {value!r}")
    date = datetime.datetime.fromtimestamp(int(m.group("ts")), tz=datetime.timezone.utc)
    return Person(name=m.group("name"), email=m.group("email"), date=date)


def parse_commit(commit_id: str, raw: str) -> Commit:
    """Parse the output of `git cat-file commit`.

    Headers come first, one per line; a line starting with a space continues
    the previous header (gpgsig, mergetag). A blank line separates the message.
    """
    head, sep, message = raw.partition("\n\n")
    if not sep:
        head, message = raw.rstrip("\n"), ""
    headers: Dict[str, List[str]] = {}
    last: Optional[str] = None
    for line in head.split("\n"):
        if line.startswith(" "):
            if last is None:
                raise BackendError(f"commit {commit_id}: continuation line before any header")
            headers[last][-1] += "\n" + line[1:]
            continue
        key, _, value = line.partition(" ")
        if not key or not _:
            raise BackendError(f"commit {commit_id}: malformed header {line!r}")
        headers.setdefault(key, []).append(value)
        last = key

    for required in ("tree", "author", "committer"):
        if len(headers.get(required, [])) != 1:
            raise BackendError(f"commit {commit_id}: expected exactly one {required!r} header")
    parents = tuple(headers.get("parent", []))
    for p in (headers["tree"][0],) + parents:
        if not _HEX_RE.match(p):
            raise BackendError(f"commit {commit_id}: bad object id {p!r}")

    return Commit(
        id=commit_id,
        tree=headers["tree"][0],
        parents=parents,
        author=parse_person(headers["author"][0]),
        committer=parse_person(headers["committer"][0]),
        message=message.rstrip("\n"),
    )


def parse_ls_tree(raw: str) -> List[FileEntry]:
    """Parse NUL-terminated `git ls-tree -r -z` records, keeping blobs only."""
    entries: List[FileEntry] = []
    for rec in raw.split("\0"):
        if not rec:
            continue
        meta, tab, path = rec.partition("\t")
        fields = meta.split(" ")
        if not tab or len(fields) != 3 or not path:
            raise BackendError(f"malformed tree entry: {rec!r}")
        _, kind, sha = fields
        if not _HEX_RE.match(sha):
            raise BackendError(f"malformed tree entry: {rec!r}")
        if kind != "blob":
            # Submodules (gitlinks) have no blob to render.
            continue
        entries.append(FileEntry(path=path, blob=sha))
    return entries


def parse_numstat(raw: str) -> DiffStat:
    """Parse `git diff --numstat -z --no-renames`: `ins<TAB>del<TAB>path<NUL>`."""
    out: List[DiffStatEntry] = []
    for rec in raw.split("\0"):
        if not rec:
            continue
        parts = rec.split("\t", 2)
        if len(parts) != 3 or not parts[2]:
            raise BackendError(f"malformed diff stat record: {rec!r}")
        a, d, path = parts
        if a == "-" and d == "-":
            out.append(DiffStatEntry(path=path, insertions=0, deletions=0, binary=True))
        elif a.isdigit() and d.isdigit():
            out.append(DiffStatEntry(path=path, insertions=int(a), deletions=int(d)))
        else:
            raise BackendError(f"malformed diff stat record: {rec!r}")
    return DiffStat(entries=tuple(out))


# ---- repository --------------------------------------------------------------


class GitRepository:
    """A local mirror of the source repository, kept under the site target.

    Branches are read from the remote-tracking refs of the mirror, so keeping
    in sync never needs a working tree or a merge.
    """

    def __init__(self, path: pathlib.Path):
        self.path = pathlib.Path(path)
        self._commits: Dict[str, Commit] = {}

    def git(self, *args: str, text: bool = True) -> subprocess.CompletedProcess:
        return run(["git", "-c", "core.quotePath=false", *args], cwd=str(self.path), text=text)

    def sync(self, source: pathlib.Path) -> None:
        """Clone `source` into the mirror, or fetch every branch into it."""
        if not (self.path / ".git").exists():
            logger.info(f"Cloning {source} into {self.path}.")
            self.path.parent.mkdir(parents=True, exist_ok=True)
            run(["git", "clone", "--quiet", "--no-checkout", "--origin", REMOTE, str(source), str(self.path)])
        run(
            ["git", "fetch", "--quiet", "--prune", str(source), f"+refs/heads/*:{REMOTE_PREFIX}*"],
            cwd=str(self.path),
        )

    def list_branches(self) -> List[str]:
        out = self.git("for-each-ref", "--format=%(refname)", REMOTE_PREFIX).stdout
        branches: List[str] = []
        for ref in out.splitlines():
            name = ref[len(REMOTE_PREFIX):] if ref.startswith(REMOTE_PREFIX) else ""
            if name and name != "HEAD" and name not in branches:
                branches.append(name)
        return branches

    def branch_ref(self, branch: str) -> str:
        return REMOTE_PREFIX + branch

    def commit_graph(self, branch: str) -> Iterator[str]:
        """Yield `git rev-list --graph` lines, youngest first, as git orders them."""
        out = self.git("rev-list", "--graph", self.branch_ref(branch), "--").stdout
        for line in out.splitlines():
            yield line

    def metadata(self, commit_id: str) -> Commit:
        commit = self._commits.get(commit_id)
        if commit is None:
            raw = self.git("cat-file", "commit", commit_id).stdout
            commit = parse_commit(commit_id, raw)
            self._commits[commit_id] = commit
        return commit

    def tree(self, commit_id: str) -> List[FileEntry]:
        return parse_ls_tree(self.git("ls-tree", "-r", "-z", commit_id).stdout)

    def diff_stat(self, parent_id: str, commit_id: str) -> DiffStat:
        return parse_numstat(self.git("diff", "--numstat", "-z", "--no-renames", parent_id, commit_id, "--").stdout)

    def diff_patch(self, parent_id: str, commit_id: str) -> str:
        return self.git(
            "diff", "--no-color", "--no-renames", "--no-ext-diff", "--src-prefix=a/", "--dst-prefix=b/",
            parent_id, commit_id, "--",
        ).stdout

    def blob(self, content_hash: str) -> bytes:
        return self.git("cat-file", "blob", content_hash, text=False).stdout
