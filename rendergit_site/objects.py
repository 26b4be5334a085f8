"""
Content-addressable store of rendered blob pages.

One page per blob hash lives at `objects/<hash[:2]>/<hash>`. Commit
directories never get a copy: every `<path>.raw.html` is a hard link to the
stored page, which is read-only once published.
"""
from __future__ import annotations

import dataclasses
import logging
import os
import pathlib
import stat
import tempfile
from typing import Callable

logger = logging.getLogger(__name__)

READ_ONLY = stat.S_IRUSR | stat.S_IRGRP | stat.S_IROTH


@dataclasses.dataclass(frozen=True)
class ObjectRef:
    content_hash: str
    path: pathlib.Path
    created: bool  # True when this call rendered the page


class ObjectStore:
    def __init__(self, root: pathlib.Path):
        self.root = pathlib.Path(root)

    def path_for(self, content_hash: str) -> pathlib.Path:
        if len(content_hash) < 3 or "/" in content_hash or content_hash.startswith("."):
            raise ValueError(f"not a content hash: {content_hash!r}")
        return self.root / content_hash[:2] / content_hash

    def exists(self, content_hash: str) -> bool:
        return self.path_for(content_hash).exists()

    def ensure(self, content_hash: str, render: Callable[[], str]) -> ObjectRef:
        """Return the stored page for `content_hash`, rendering it only if absent.

        The page is written to a temporary file and published with os.link,
        which refuses to replace an existing entry: two writers racing on the
        same hash publish exactly one page.
        """
        target = self.path_for(content_hash)
        if target.exists():
            return ObjectRef(content_hash, target, created=False)

        target.parent.mkdir(parents=True, exist_ok=True)
        page = render()
        fd, tmp = tempfile.mkstemp(prefix=f".{content_hash}.", dir=str(target.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(page)
            os.chmod(tmp, READ_ONLY)
            try:
                os.link(tmp, target)
            except FileExistsError:
                logger.debug(f"Object {content_hash} was published concurrently.")
                return ObjectRef(content_hash, target, created=False)
        finally:
            os.unlink(tmp)
        return ObjectRef(content_hash, target, created=True)

    def link(self, content_hash: str, destination: pathlib.Path) -> pathlib.Path:
        """Hard-link the stored page for `content_hash` at `destination`."""
        source = self.path_for(content_hash)
        destination = pathlib.Path(destination)
        destination.parent.mkdir(parents=True, exist_ok=True)
        os.link(source, destination)
        return destination

    def count(self) -> int:
        if not self.root.is_dir():
            return 0
        return sum(
            1
            for shard in self.root.iterdir() if shard.is_dir()
            for entry in shard.iterdir() if not entry.name.startswith(".")
        )
