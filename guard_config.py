"""
Guard Configuration
===================

Loads user-level and project-level YAML configuration and builds the
effective rule catalog from it.

Config locations (both optional):

    1. ``~/.session-guard/config.yaml`` (user level; directory overridable
       with SESSION_GUARD_HOME)
    2. ``<project>/.session-guard/config.yaml`` (project level)

Configuration can only widen protection. Protected names are merged with
the built-in defaults and extra categories are appended after the built-in
ones, so nothing in a config file can unblock a built-in rule.

Example::

    version: 1
    protected_containers: [vai-worker, gateway]
    protected_processes: [happy]
    protected_paths: [/data]
    categories:
      - id: drop-production-db
        title: Production database drop
        patterns: ['\\bdropdb\\b[^;&|\\n]*\\bprod']
        reason: Dropping the production database is irreversible.
        suggestion: Ask the operator to run migrations against production.
"""

import logging
import os
import re
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import yaml

from env_constants import (
    DEFAULT_LOG_LEVEL,
    DEFAULT_READ_TIMEOUT,
    HOME_ENV_VAR,
    LOG_LEVEL_ENV_VAR,
    PROJECT_DIR_ENV_VAR,
    READ_TIMEOUT_ENV_VAR,
)
from rule_catalog import CatalogError, RuleCatalog, build_catalog

logger = logging.getLogger(__name__)

CONFIG_DIR_NAME = ".session-guard"
CONFIG_FILE_NAME = "config.yaml"
CONFIG_VERSION = 1

# Maximum number of extra categories accepted from one config file
MAX_EXTRA_CATEGORIES = 50

# Container and process names: no regex metacharacters, no whitespace
VALID_NAME_PATTERN = re.compile(r"^[A-Za-z0-9._-]+$")
# Protected paths must be absolute, home-relative or $HOME-based
VALID_PATH_PATTERN = re.compile(r"^(?:/|~|\$)\S*$")


@dataclass(frozen=True)
class GuardSettings:
    """Merged configuration from every config file that loaded cleanly."""

    protected_containers: tuple[str, ...] = ()
    protected_processes: tuple[str, ...] = ()
    protected_paths: tuple[str, ...] = ()
    extra_categories: tuple[dict, ...] = ()
    sources: tuple[Path, ...] = ()


def get_user_config_path() -> Path:
    """Return the user-level config path (~/.session-guard/config.yaml unless SESSION_GUARD_HOME is set)."""
    override = os.environ.get(HOME_ENV_VAR)
    if override:
        return Path(override).expanduser() / CONFIG_FILE_NAME
    return Path.home() / CONFIG_DIR_NAME / CONFIG_FILE_NAME


def get_project_config_path(project_dir: Path) -> Path:
    return project_dir.resolve() / CONFIG_DIR_NAME / CONFIG_FILE_NAME


def resolve_project_dir(project_dir: Optional[Path] = None) -> Path:
    """
    Pick the project directory for config lookup.

    Precedence: explicit argument, then CLAUDE_PROJECT_DIR (set by the host
    runtime for hook processes), then the current working directory.
    """
    if project_dir is not None:
        return Path(project_dir)
    env_dir = os.environ.get(PROJECT_DIR_ENV_VAR)
    if env_dir:
        return Path(env_dir)
    return Path.cwd()


def _validate_name_list(config: dict, key: str, config_path: Path) -> Optional[list[str]]:
    """
    Validate and normalize a list of protected names.

    Returns:
        Normalized list, an empty list if the key is absent, or None if invalid.
    """
    if key not in config:
        return []

    values = config[key]
    if not isinstance(values, list):
        logger.warning(f"Config at {config_path}: '{key}' must be a list")
        return None

    normalized = []
    for i, value in enumerate(values):
        if not isinstance(value, str):
            logger.warning(f"Config at {config_path}: {key}[{i}] must be a string")
            return None
        value = value.strip()
        if not value or not VALID_NAME_PATTERN.fullmatch(value):
            logger.warning(f"Config at {config_path}: {key}[{i}] has invalid value '{value}'")
            return None
        normalized.append(value)
    return normalized


def _validate_path_list(config: dict, config_path: Path) -> Optional[list[str]]:
    if "protected_paths" not in config:
        return []

    values = config["protected_paths"]
    if not isinstance(values, list):
        logger.warning(f"Config at {config_path}: 'protected_paths' must be a list")
        return None

    normalized = []
    for i, value in enumerate(values):
        if not isinstance(value, str) or not VALID_PATH_PATTERN.fullmatch(value.strip()):
            logger.warning(f"Config at {config_path}: protected_paths[{i}] must be an absolute or home path")
            return None
        value = value.strip()
        # "/data/" and "/data" are the same protected root
        if len(value) > 1:
            value = value.rstrip("/") or "/"
        normalized.append(value)
    return normalized


def _validate_categories(config: dict, config_path: Path) -> Optional[list[dict]]:
    if "categories" not in config:
        return []

    categories = config["categories"]
    if not isinstance(categories, list):
        logger.warning(f"Config at {config_path}: 'categories' must be a list")
        return None
    if len(categories) > MAX_EXTRA_CATEGORIES:
        logger.warning(
            f"Config at {config_path} exceeds {MAX_EXTRA_CATEGORIES} category limit ({len(categories)} categories)"
        )
        return None

    for i, entry in enumerate(categories):
        if not isinstance(entry, dict):
            logger.warning(f"Config at {config_path}: categories[{i}] must be a dict")
            return None
        for field_name in ("id", "title", "patterns", "reason", "suggestion"):
            if field_name not in entry:
                logger.warning(f"Config at {config_path}: categories[{i}] missing '{field_name}'")
                return None
    return categories


def load_config_file(config_path: Path) -> Optional[dict]:
    """
    Load and validate one guard config file.

    Args:
        config_path: Path to the YAML file

    Returns:
        Dict with normalized config, or None if the file doesn't exist or is invalid
    """
    if not config_path.exists():
        return None

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            config = yaml.safe_load(f)

        if not config:
            logger.warning(f"Guard config at {config_path} is empty")
            return None

        if not isinstance(config, dict):
            logger.warning(f"Guard config at {config_path} must be a YAML dictionary")
            return None

        if config.get("version") != CONFIG_VERSION:
            logger.warning(f"Guard config at {config_path} missing or unsupported 'version' field")
            return None

        containers = _validate_name_list(config, "protected_containers", config_path)
        processes = _validate_name_list(config, "protected_processes", config_path)
        paths = _validate_path_list(config, config_path)
        categories = _validate_categories(config, config_path)
        if containers is None or processes is None or paths is None or categories is None:
            return None

        return {
            "version": config["version"],
            "protected_containers": containers,
            "protected_processes": processes,
            "protected_paths": paths,
            "categories": categories,
        }

    except yaml.YAMLError as e:
        logger.warning(f"Failed to parse guard config at {config_path}: {e}")
        return None
    except (IOError, OSError) as e:
        logger.warning(f"Failed to read guard config at {config_path}: {e}")
        return None


def get_effective_settings(project_dir: Optional[Path] = None) -> GuardSettings:
    """
    Merge user-level and project-level config.

    Names are unioned. Extra categories keep file order (user first, then
    project); a category id already defined by an earlier file is skipped.
    """
    containers: set[str] = set()
    processes: set[str] = set()
    paths: set[str] = set()
    categories: list[dict] = []
    seen_ids: set[str] = set()
    sources: list[Path] = []

    config_paths = [get_user_config_path(), get_project_config_path(resolve_project_dir(project_dir))]
    for config_path in dict.fromkeys(config_paths):
        config = load_config_file(config_path)
        if not config:
            continue
        sources.append(config_path)
        containers |= set(config["protected_containers"])
        processes |= set(config["protected_processes"])
        paths |= set(config["protected_paths"])
        for entry in config["categories"]:
            if entry["id"] in seen_ids:
                logger.warning(f"Config at {config_path}: category '{entry['id']}' already defined, skipping")
                continue
            seen_ids.add(entry["id"])
            categories.append(entry)

    return GuardSettings(
        protected_containers=tuple(sorted(containers)),
        protected_processes=tuple(sorted(processes)),
        protected_paths=tuple(sorted(paths)),
        extra_categories=tuple(categories),
        sources=tuple(sources),
    )


def build_effective_catalog(project_dir: Optional[Path] = None) -> RuleCatalog:
    """
    Build the rule catalog for a project, applying user and project config.

    A broken extra category is logged and dropped rather than disabling the
    gate: the built-in catalog (with any extra protected names) still applies.
    """
    settings = get_effective_settings(project_dir)
    try:
        return build_catalog(
            protected_containers=settings.protected_containers,
            protected_processes=settings.protected_processes,
            protected_paths=settings.protected_paths,
            extra_categories=settings.extra_categories,
        )
    except CatalogError as e:
        logger.warning(f"Ignoring configured categories from {[str(p) for p in settings.sources]}: {e}")
        return build_catalog(
            protected_containers=settings.protected_containers,
            protected_processes=settings.protected_processes,
            protected_paths=settings.protected_paths,
        )


def get_read_timeout() -> float:
    """Seconds to wait for hook input on stdin."""
    raw = os.environ.get(READ_TIMEOUT_ENV_VAR)
    if not raw:
        return DEFAULT_READ_TIMEOUT
    try:
        timeout = float(raw)
    except ValueError:
        logger.warning(f"Invalid {READ_TIMEOUT_ENV_VAR}={raw!r}, using {DEFAULT_READ_TIMEOUT}s")
        return DEFAULT_READ_TIMEOUT
    return timeout if timeout > 0 else DEFAULT_READ_TIMEOUT


def configure_logging() -> None:
    """
    Send log records to stderr for hook processes.

    Stdout carries the hook's JSON reply, so nothing else may be written there.
    """
    level_name = os.environ.get(LOG_LEVEL_ENV_VAR, DEFAULT_LOG_LEVEL).upper()
    level = getattr(logging, level_name, None)
    if not isinstance(level, int):
        level = logging.WARNING
    logging.basicConfig(
        level=level,
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
