"""
Assemble the whole site: walk every branch, build the commits that are not
built yet, and rewrite the branch pages, branch links and top-level index.
"""
from __future__ import annotations

import dataclasses
import logging
import os
import pathlib
from typing import List, Sequence, Tuple

from . import render
from .config import Settings, save_settings
from .git import GitRepository
from .graph import walk_graph
from .models import Commit, DiffStat
from .objects import ObjectStore
from .planner import BuildPlanner

logger = logging.getLogger(__name__)


@dataclasses.dataclass
class BuildReport:
    branches: int = 0
    commits_built: int = 0
    commits_skipped: int = 0
    objects_rendered: int = 0
    full_rebuild: bool = False


def write_text(path: pathlib.Path, text: str) -> None:
    """Replace `path` with `text` without ever exposing a half-written file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(f".{path.name}.tmp")
    with open(tmp, "w", encoding="utf-8") as fh:
        fh.write(text)
    os.replace(tmp, path)


def point_symlink(link: pathlib.Path, target: str) -> None:
    link.parent.mkdir(parents=True, exist_ok=True)
    tmp = link.with_name(f".{link.name}.tmp")
    if tmp.is_symlink() or tmp.exists():
        tmp.unlink()
    os.symlink(target, tmp)
    os.replace(tmp, link)


class SiteAssembler:
    def __init__(self, settings: Settings, repo: GitRepository, planner: BuildPlanner, store: ObjectStore):
        self.settings = settings
        self.repo = repo
        self.planner = planner
        self.store = store
        self.target = settings.target
        self.report = BuildReport(full_rebuild=planner.full_rebuild)

    def run(self) -> BuildReport:
        self.planner.prepare()

        branches = list(self.settings.branches) or self.repo.list_branches()
        index_rows: List[str] = []
        for b, branch in enumerate(branches, 1):
            index_rows.extend(self.build_branch(branch, b, len(branches)))
            self.report.branches += 1

        write_text(self.target / "index.html", render.render_index(
            self.settings.project, self.settings.public_repository, index_rows))

        save_settings(dataclasses.replace(self.settings, template=self.planner.finish()))
        return self.report

    def build_branch(self, branch: str, b: int, bcount: int) -> List[str]:
        """Render one branch; return its row for the top-level index."""
        rows = list(walk_graph(self.repo.commit_graph(branch)))
        ccount = sum(1 for r in rows if r.is_commit)
        logger.info(f"Branch {branch} ({b}/{bcount}): processing ({ccount} commits).")

        index_rows: List[str] = []
        table: List[str] = []
        for row in rows:
            if row.commit_id is None:
                table.append(render.render_graph_row(row))
                continue

            commit = self.repo.metadata(row.commit_id)
            if row.rank == 1:
                point_symlink(self.planner.branches_dir / branch, self._commit_link(branch, commit.id))
                index_rows.append(render.render_index_row(branch, commit))
            table.append(render.render_branch_row(branch, row, commit))

            if not self.planner.needs_build(commit.id):
                logger.info(f"Commit {commit.id} ({row.rank}/{ccount}): already processed.")
                self.report.commits_skipped += 1
                continue
            logger.info(f"Commit {commit.id} ({row.rank}/{ccount}): processing.")
            self.build_commit(branch, commit)
            self.report.commits_built += 1

        write_text(
            self.planner.branches_dir / f"{branch}.html",
            render.render_branch_page(self.settings.project, branch, table),
        )
        return index_rows

    def _commit_link(self, branch: str, commit_id: str) -> str:
        # The link lives in branches/, one level deeper per "/" in the branch name.
        return f"{render.branch_root(branch)}commits/{commit_id}"

    def build_commit(self, branch: str, commit: Commit) -> None:
        project = self.settings.project
        tree = self.repo.tree(commit.id)

        diff_stats: List[Tuple[str, DiffStat, Sequence[str]]] = []
        for p in commit.parents:
            parent_paths = [e.path for e in self.repo.tree(p)]
            diff_stats.append((p, self.repo.diff_stat(p, commit.id), parent_paths))

        with self.planner.staging(commit.id) as base:
            write_text(base / "index.html", render.render_commit_index(project, commit, branch, diff_stats, tree))
            for p in commit.parents:
                write_text(
                    base / f"diff-to-{p}.html",
                    render.render_diff_page(project, commit, p, branch, self.repo.diff_patch(p, commit.id)),
                )
            for entry in tree:
                ref = self.store.ensure(
                    entry.blob,
                    lambda blob=entry.blob: render.render_object_page(project, blob, self.repo.blob(blob)),
                )
                if ref.created:
                    self.report.objects_rendered += 1
                self.store.link(entry.blob, base / f"{entry.path}.raw.html")
