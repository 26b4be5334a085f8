from __future__ import annotations

import argparse
import logging
import os
import sys
from typing import List, Optional

from . import __version__
from .config import Settings, load_settings, save_settings, validate
from .errors import ConfigurationError, RenderGitError, UsageError
from .git import GitRepository
from .objects import ObjectStore
from .planner import BuildPlanner, compute_fingerprint
from .site import BuildReport, SiteAssembler

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(message)s"

# ---- arguments ---------------------------------------------------------------


class ArgumentParser(argparse.ArgumentParser):
    """argparse exits with status 2 on bad usage; this tool exits with 1."""

    def error(self, message: str):
        self.print_usage(sys.stderr)
        self.exit(1, f"{self.prog}: error: {message}\n")


def build_parser() -> ArgumentParser:
    ap = ArgumentParser(
        prog="rendergit-site",
        description="Generate static HTML pages in TARGET for the specified git repository.",
    )
    ap.add_argument("target", metavar="TARGET", help="Directory to write the site into")
    ap.add_argument("-p", "--project", help="Project's name")
    ap.add_argument("-r", "--repository", help="Repository to clone from")
    ap.add_argument("-l", "--link", dest="public_repository", help="Public repository link, e.g., 'http://host.org/project.git'")
    ap.add_argument("-b", "--branches", action="append", help="List of branches to process (default: all)")
    ap.add_argument("-q", "--quiet", action="store_true", help="Be quiet")
    ap.add_argument("-f", "--force", action="store_true", help="Force rebuilding of all pages")
    ap.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return ap


def configure_logging(quiet: bool) -> None:
    logging.basicConfig(
        format=LOG_FORMAT,
        level=logging.WARNING if quiet else logging.INFO,
        stream=sys.stdout,
        force=True,
    )


def settings_from_args(args: argparse.Namespace) -> Settings:
    overrides = {
        "project": args.project,
        "repository": os.path.abspath(os.path.expanduser(args.repository)) if args.repository else None,
        "public_repository": args.public_repository,
        "branches": " ".join(args.branches) if args.branches else None,
    }
    settings = load_settings(args.target, overrides)
    if settings.repository is None:
        raise UsageError("-r required.")
    return settings


# ---- main --------------------------------------------------------------------


def generate(settings: Settings, force: bool = False, fingerprint: Optional[str] = None) -> BuildReport:
    """Validate `settings`, sync the mirror and bring the site up to date."""
    validate(settings)
    if settings.target.exists() and not settings.target.is_dir():
        raise ConfigurationError(f"target {settings.target} is not a directory")
    save_settings(settings)

    repo = GitRepository(settings.mirror_path)
    repo.sync(settings.repository)

    planner = BuildPlanner(
        settings.target,
        fingerprint or compute_fingerprint(),
        stored_fingerprint=settings.template,
        force=force,
    )
    store = ObjectStore(settings.target / "objects")
    return SiteAssembler(settings, repo, planner, store).run()


def main(argv: Optional[List[str]] = None) -> int:
    ap = build_parser()
    args = ap.parse_args(argv)
    configure_logging(args.quiet)

    try:
        settings = settings_from_args(args)
        report = generate(settings, force=args.force)
    except UsageError as e:
        ap.print_usage(sys.stderr)
        print(f"{ap.prog}: {e}", file=sys.stderr)
        return 1
    except (RenderGitError, OSError) as e:
        print(f"{ap.prog}: {e}", file=sys.stderr)
        return 1

    logger.info(
        f"Done: {report.branches} branches, {report.commits_built} commits built, "
        f"{report.commits_skipped} already processed, {report.objects_rendered} new objects."
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
