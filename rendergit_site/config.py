"""Run configuration.

Settings are persisted in an INI file inside the target directory so later
runs only need the target. Values are layered: the file first, then
environment variables, then command-line flags. The result is an immutable
`Settings` value that is loaded once and passed down.
"""
from __future__ import annotations

import configparser
import dataclasses
import os
import pathlib
from typing import Dict, Mapping, Optional, Tuple

from .errors import ConfigurationError

CONFIG_FILE = ".ht_rendergit"
SECTION = "rendergit"
ENV_PREFIX = "RENDERGIT_"

# Keys that may come from the environment.
ENV_KEYS = ("project", "repository", "public_repository", "branches")


@dataclasses.dataclass(frozen=True)
class Settings:
    target: pathlib.Path
    repository: Optional[pathlib.Path] = None
    project: str = ""
    public_repository: str = ""
    branches: Tuple[str, ...] = ()
    template: str = ""  # fingerprint of the logic that produced the current output

    @property
    def config_path(self) -> pathlib.Path:
        return self.target / CONFIG_FILE

    @property
    def mirror_path(self) -> pathlib.Path:
        return self.target / "repository"


def split_branches(value: str) -> Tuple[str, ...]:
    seen = []
    for name in value.split():
        if name not in seen:
            seen.append(name)
    return tuple(seen)


def read_config_file(path: pathlib.Path) -> Dict[str, str]:
    if not path.exists():
        return {}
    parser = configparser.ConfigParser(interpolation=None)
    try:
        with open(path, encoding="utf-8") as fh:
            parser.read_file(fh)
    except (configparser.Error, OSError, UnicodeDecodeError) as e:
        raise ConfigurationError(f"cannot read {path}: {e}") from e
    if not parser.has_section(SECTION):
        return {}
    return dict(parser.items(SECTION))


def load_settings(
    target: pathlib.Path,
    overrides: Optional[Mapping[str, Optional[str]]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """Build Settings for `target` from its config file, the environment and `overrides`.

    Args:
        target: Site output directory; it also holds the config file.
        overrides: Command-line values; None means "not given".
        environ: Environment to read, defaults to os.environ.
    """
    target = pathlib.Path(target)
    environ = os.environ if environ is None else environ
    values = read_config_file(target / CONFIG_FILE)
    for key in ENV_KEYS:
        env_value = environ.get(ENV_PREFIX + key.upper())
        if env_value:
            values[key] = env_value
    for key, value in (overrides or {}).items():
        if value is not None:
            values[key] = value

    repository = values.get("repository") or ""
    return Settings(
        target=target,
        repository=pathlib.Path(repository).expanduser() if repository else None,
        project=values.get("project", ""),
        public_repository=values.get("public_repository", ""),
        branches=split_branches(values.get("branches", "")),
        template=values.get("template", ""),
    )


def save_settings(settings: Settings) -> None:
    parser = configparser.ConfigParser(interpolation=None)
    parser[SECTION] = {
        "project": settings.project,
        "repository": str(settings.repository or ""),
        "public_repository": settings.public_repository,
        "target": str(settings.target),
        "branches": " ".join(settings.branches),
        "template": settings.template,
    }
    settings.target.mkdir(parents=True, exist_ok=True)
    tmp = settings.config_path.with_name(CONFIG_FILE + ".tmp")
    with open(tmp, "w", encoding="utf-8") as fh:
        parser.write(fh)
    os.replace(tmp, settings.config_path)


def validate(settings: Settings) -> None:
    """Raise ConfigurationError unless the repository to render exists."""
    if settings.repository is None:
        raise ConfigurationError("no repository configured")
    if not settings.repository.is_dir():
        raise ConfigurationError(f'Repository "{settings.repository}" does not exist.  Misconfiguration likely.')
