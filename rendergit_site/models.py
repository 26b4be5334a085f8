from __future__ import annotations

import dataclasses
import datetime
from typing import Optional, Tuple


@dataclasses.dataclass(frozen=True)
class Person:
    name: str
    email: str
    date: datetime.datetime  # always UTC

    @property
    def display_date(self) -> str:
        return self.date.strftime("%a %b %d %H:%M:%S UTC %Y")


@dataclasses.dataclass(frozen=True)
class Commit:
    id: str
    tree: str
    parents: Tuple[str, ...]
    author: Person
    committer: Person
    message: str

    @property
    def subject(self) -> str:
        for line in self.message.splitlines():
            if line.strip():
                return line.strip()
        return ""

    @property
    def short_id(self) -> str:
        return self.id[:8]


@dataclasses.dataclass(frozen=True)
class FileEntry:
    path: str
    blob: str


@dataclasses.dataclass(frozen=True)
class DiffStatEntry:
    path: str
    insertions: int
    deletions: int
    binary: bool = False


@dataclasses.dataclass(frozen=True)
class DiffStat:
    entries: Tuple[DiffStatEntry, ...]

    @property
    def insertions(self) -> int:
        return sum(e.insertions for e in self.entries)

    @property
    def deletions(self) -> int:
        return sum(e.deletions for e in self.entries)

    def summary(self) -> str:
        """Return a git-style `--stat` summary line."""
        n = len(self.entries)
        parts = [f"{n} file{'' if n == 1 else 's'} changed"]
        if self.insertions or not self.deletions:
            parts.append(f"{self.insertions} insertion{'' if self.insertions == 1 else 's'}(+)")
        if self.deletions or not self.insertions:
            parts.append(f"{self.deletions} deletion{'' if self.deletions == 1 else 's'}(-)")
        return ", ".join(parts)


@dataclasses.dataclass(frozen=True)
class GraphRow:
    graph: str                       # display glyphs, already HTML-safe
    commit_id: Optional[str] = None  # None for a decoration-only row
    rank: Optional[int] = None       # 1-based among commit rows; 1 is the branch head

    @property
    def is_commit(self) -> bool:
        return self.commit_id is not None
