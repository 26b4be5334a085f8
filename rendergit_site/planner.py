"""
Decide which commits still need pages.

Commits never change, so a commit directory that exists is complete and is
never rewritten. Everything is discarded instead when the generation logic
changed since the output was produced (its fingerprint differs) or when a
rebuild is forced.
"""
from __future__ import annotations

import contextlib
import hashlib
import logging
import pathlib
import shutil
from typing import Iterator, Optional

import pygments

from . import __version__

logger = logging.getLogger(__name__)

PARTIAL_SUFFIX = ".partial"


def compute_fingerprint(package_dir: Optional[pathlib.Path] = None) -> str:
    """SHA-1 of the versions and module sources that shape the output."""
    package_dir = package_dir or pathlib.Path(__file__).resolve().parent
    h = hashlib.sha1()
    h.update(f"{__version__} pygments-{pygments.__version__}".encode("utf-8"))
    for source in sorted(package_dir.glob("*.py")):
        h.update(b"\0" + source.name.encode("utf-8") + b"\0")
        h.update(source.read_bytes())
    return h.hexdigest()


class BuildPlanner:
    def __init__(self, target: pathlib.Path, fingerprint: str, stored_fingerprint: str = "", force: bool = False):
        self.target = pathlib.Path(target)
        self.fingerprint = fingerprint
        self.stored_fingerprint = stored_fingerprint
        self.force = force
        self.full_rebuild = force or stored_fingerprint != fingerprint

    @property
    def commits_dir(self) -> pathlib.Path:
        return self.target / "commits"

    @property
    def objects_dir(self) -> pathlib.Path:
        return self.target / "objects"

    @property
    def branches_dir(self) -> pathlib.Path:
        return self.target / "branches"

    def commit_dir(self, commit_id: str) -> pathlib.Path:
        return self.commits_dir / commit_id

    def prepare(self) -> None:
        """Discard stale output, then make sure the output directories exist."""
        if self.full_rebuild:
            if self.force:
                logger.info("Rebuilding all pages as requested.")
            else:
                logger.info("Rebuilding all pages as output template changed.")
            shutil.rmtree(self.objects_dir, ignore_errors=True)
            shutil.rmtree(self.commits_dir, ignore_errors=True)
            self._remove_branch_links()

        for d in (self.objects_dir, self.commits_dir, self.branches_dir):
            d.mkdir(parents=True, exist_ok=True)

        # Leftovers of an interrupted run were never promoted and are incomplete.
        for partial in self.commits_dir.glob(f".*{PARTIAL_SUFFIX}"):
            logger.info(f"Removing incomplete build {partial.name}.")
            shutil.rmtree(partial)

    def _remove_branch_links(self) -> None:
        if not self.branches_dir.is_dir():
            return
        for link in self.branches_dir.rglob("*"):
            if link.is_symlink():
                link.unlink()

    def needs_build(self, commit_id: str) -> bool:
        return not self.commit_dir(commit_id).exists()

    @contextlib.contextmanager
    def staging(self, commit_id: str) -> Iterator[pathlib.Path]:
        """Yield a scratch directory that becomes `commits/<id>` only on success."""
        partial = self.commits_dir / f".{commit_id}{PARTIAL_SUFFIX}"
        if partial.exists():
            shutil.rmtree(partial)
        partial.mkdir(parents=True)
        try:
            yield partial
        except BaseException:
            shutil.rmtree(partial, ignore_errors=True)
            raise
        partial.rename(self.commit_dir(commit_id))

    def finish(self) -> str:
        """Return the fingerprint to record now that the output matches it."""
        return self.fingerprint
