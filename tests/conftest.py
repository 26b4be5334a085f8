"""Shared fixtures: throwaway git repositories with deterministic history."""

import os
import pathlib
import subprocess
from typing import Dict, Optional, Union

import pytest

from rendergit_site.cli import generate
from rendergit_site.config import load_settings

BASE_TIME = 1_700_000_000


class SourceRepo:
    """A scratch repository whose commits get increasing, fixed timestamps."""

    def __init__(self, path: pathlib.Path):
        self.path = path
        self.path.mkdir(parents=True)
        self._tick = 0
        self.git("init", "-q")
        self.git("symbolic-ref", "HEAD", "refs/heads/main")
        self.git("config", "user.name", "Test User")
        self.git("config", "user.email", "test@test.com")
        self.git("config", "commit.gpgsign", "false")

    def _env(self) -> Dict[str, str]:
        env = os.environ.copy()
        stamp = f"{BASE_TIME + self._tick * 60} +0000"
        env.update({
            "GIT_AUTHOR_DATE": stamp,
            "GIT_COMMITTER_DATE": stamp,
            "GIT_CONFIG_NOSYSTEM": "1",
        })
        return env

    def git(self, *args: str) -> str:
        result = subprocess.run(
            ["git", *args], cwd=self.path, env=self._env(), check=True, capture_output=True, text=True
        )
        return result.stdout.strip()

    def commit(self, message: str, files: Optional[Dict[str, Union[str, bytes, None]]] = None) -> str:
        """Write (or, for None, delete) `files`, commit everything and return the commit id."""
        for rel, content in (files or {}).items():
            path = self.path / rel
            if content is None:
                path.unlink()
                continue
            path.parent.mkdir(parents=True, exist_ok=True)
            if isinstance(content, bytes):
                path.write_bytes(content)
            else:
                path.write_text(content)
        self._tick += 1
        self.git("add", "-A")
        self.git("commit", "-q", "--allow-empty", "-m", message)
        return self.git("rev-parse", "HEAD")

    def checkout(self, branch: str, create: bool = False) -> None:
        if create:
            self.git("checkout", "-q", "-b", branch)
        else:
            self.git("checkout", "-q", branch)

    def merge(self, branch: str, message: str) -> str:
        self._tick += 1
        self.git("merge", "-q", "--no-ff", "-m", message, branch)
        return self.git("rev-parse", "HEAD")


@pytest.fixture
def source_repo(tmp_path: pathlib.Path) -> SourceRepo:
    return SourceRepo(tmp_path / "source")


@pytest.fixture
def target(tmp_path: pathlib.Path) -> pathlib.Path:
    return tmp_path / "site"


@pytest.fixture
def build_site(source_repo: SourceRepo, target: pathlib.Path):
    """Run the whole pipeline the way the CLI does, with a chosen fingerprint."""

    def _build(fingerprint: str = "fp-1", force: bool = False, **overrides):
        values = {"repository": str(source_repo.path), "project": "demo"}
        values.update(overrides)
        settings = load_settings(target, values, environ={})
        return generate(settings, force=force, fingerprint=fingerprint)

    return _build


def _snapshot(root: pathlib.Path) -> Dict[str, object]:
    """Map every path under `root` (except the git mirror) to its bytes or link target."""
    out: Dict[str, object] = {}
    for path in sorted(root.rglob("*")):
        rel = path.relative_to(root).as_posix()
        if rel == "repository" or rel.startswith("repository/"):
            continue
        if path.is_symlink():
            out[rel] = ("link", os.readlink(path))
        elif path.is_file():
            out[rel] = path.read_bytes()
    return out


@pytest.fixture
def snapshot():
    return _snapshot
