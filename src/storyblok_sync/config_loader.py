"""
YAML config file discovery and loading for storyblok_sync.

Config files are looked up in three places (explicit env path, project,
user) and merged section by section, the project winning.  Values may
reference the environment as ``${VAR}`` or ``${VAR:-default}``, and any
node may be pulled from another file with ``!include``, which keeps the
collection list apart from connection settings::

    storyblok:
      access_token: ${STORYBLOK_ACCESS_TOKEN}
    collections: !include collections.yml
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "STORYBLOK_SYNC_CONFIG"
CONFIG_DIR_NAME = ".storyblok_sync"
CONFIG_FILE_NAME = "config.yml"

# ${NAME} or ${NAME:-fallback}
_ENV_REF = re.compile(r"\$\{([^}:]+?)(?::-(.*?))?\}")


def interpolate_env_vars(value: str) -> str:
    """Expand ``${VAR}`` / ``${VAR:-default}`` references in *value*.

    An unset or empty variable expands to its default, or to ``""`` when
    there is none.  An unterminated ``${`` is kept as written.
    """

    def _expand(match: re.Match) -> str:
        current = os.environ.get(match.group(1))
        if current:
            return current
        return match.group(2) or ""

    return _ENV_REF.sub(_expand, value)


def _interpolate_recursive(obj: Any) -> Any:
    if isinstance(obj, str):
        return interpolate_env_vars(obj)
    if isinstance(obj, list):
        return [_interpolate_recursive(item) for item in obj]
    if isinstance(obj, dict):
        return {key: _interpolate_recursive(val) for key, val in obj.items()}
    return obj


class ConfigLoader(yaml.SafeLoader):
    """SafeLoader that understands ``!include``.

    Registered on a subclass so plain ``yaml.safe_load`` stays unaffected.
    """

    include_chain: tuple[Path, ...] = ()


def _include_constructor(loader: ConfigLoader, node: yaml.ScalarNode) -> Any:
    """Load the file named by an ``!include`` node.

    Relative names resolve against the including file's directory.
    """
    including = Path(loader.name).resolve()
    target = Path(loader.construct_scalar(node))
    if not target.is_absolute():
        target = including.parent / target
    target = target.resolve()

    if target in loader.include_chain:
        chain = " -> ".join(str(p) for p in (*loader.include_chain, target))
        raise ValueError(f"Circular include detected: {chain}")
    if not target.exists():
        raise FileNotFoundError(
            f"Include file not found: {target} (referenced from {including})"
        )
    return _load_yaml_with_includes(target, _chain=loader.include_chain)


ConfigLoader.add_constructor("!include", _include_constructor)


def _load_yaml_with_includes(
    path: Path, *, _chain: tuple[Path, ...] = ()
) -> Any:
    path = path.resolve()
    with open(path, encoding="utf-8") as fh:
        loader = ConfigLoader(fh)
        loader.include_chain = (*_chain, path)
        try:
            return loader.get_single_data()
        finally:
            loader.dispose()


def discover_config_files() -> list[Path]:
    """Existing config files, highest precedence first.

    1. the file named by ``STORYBLOK_SYNC_CONFIG``
    2. ``./.storyblok_sync/config.yml``
    3. ``~/.config/storyblok_sync/config.yml``
    """
    candidates: list[Path] = []
    explicit = os.environ.get(CONFIG_ENV_VAR)
    if explicit:
        candidates.append(Path(explicit).expanduser().resolve())
    candidates.append(Path.cwd() / CONFIG_DIR_NAME / CONFIG_FILE_NAME)
    candidates.append(
        Path.home() / ".config" / "storyblok_sync" / CONFIG_FILE_NAME
    )
    return [path for path in candidates if path.exists()]


_STARTER_CONFIG = """\
# storyblok-sync configuration
#
# Connection settings can also be set via environment variables:
#   STORYBLOK_ACCESS_TOKEN, STORYBLOK_REGION, STORYBLOK_API_URL
#
# storyblok:
#   access_token: ${STORYBLOK_ACCESS_TOKEN}
#   region: eu
#   max_parallel_requests: 5
#
# state:
#   dir: .storyblok_sync/state
#
# collections:
#   blog:
#     kind: stories
#     content_types: [blog-post]
#     sort_by: "first_published_at:desc"
#     storyblok_params:
#       version: published
#   categories:
#     kind: datasource
#     datasource: categories
#     dimension: en
#
# logging:
#   level: INFO
#   file: null
"""


def ensure_config(target: Path | None = None) -> Path:
    """Return the config file in use, writing a commented starter if none.

    Args:
        target: Where to write the starter file.  Defaults to the
            project-level ``.storyblok_sync/config.yml``.
    """
    existing = discover_config_files()
    if existing:
        logger.debug("Config file already exists: %s", existing[0])
        return existing[0]

    path = target or Path.cwd() / CONFIG_DIR_NAME / CONFIG_FILE_NAME
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(_STARTER_CONFIG, encoding="utf-8")
    logger.info("Created starter config: %s", path)
    return path


def load_hierarchical_config(
    paths: list[Path] | None = None,
) -> dict[str, Any]:
    """Load *paths* (highest precedence first) into one dict.

    Top-level sections of a higher-precedence file replace the same
    sections from lower ones whole; nothing is deep-merged.  Env
    references are expanded after merging.  No files means ``{}``.
    """
    if paths is None:
        paths = discover_config_files()
    if not paths:
        logger.debug("No config files found, using defaults")
        return {}

    merged: dict[str, Any] = {}
    for path in reversed(paths):
        logger.debug("Loading config: %s", path)
        data = _load_yaml_with_includes(path)
        if isinstance(data, dict):
            merged.update(data)
        elif data is not None:
            logger.warning(
                "Ignoring config file %s: top level is a %s, not a mapping",
                path,
                type(data).__name__,
            )
    return _interpolate_recursive(merged)
