"""
planning_config -- single public entrypoint for planning configuration.

Responsibility:
    Provides the runtime ``PlanningConfig`` through ``get_active_config()``
    and demo catalog fixtures through ``load_catalog_fixture()``.  Scripts
    and hosts read settings here rather than from files or environment
    variables directly.

Architecture position:
    Configuration -- sits above ``planning_kernel`` and ``planning_engines``
    and below ``planning_services`` callers and scripts.  The kernel MUST
    NEVER import from ``planning_config``; ``planning_config.bridges``
    translates fixtures into kernel rows.

Invariants enforced:
    - Lookup order: explicit ``config_path`` argument, then the
      ``PLANNING_CONFIG`` environment variable, then the packaged
      ``defaults.yaml``.
    - ``PLANNING_DATABASE_URL`` overrides ``database.url`` whatever file
      was used.

Failure modes:
    - ``FileNotFoundError`` -- the selected file does not exist.
    - ``KeyError`` / ``ValueError`` -- schema violations.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``PLANNING_CONFIG_TRACE`` log entry with the source path and checksum.
"""

from __future__ import annotations

import dataclasses
import hashlib
import json
import os
from pathlib import Path

from planning_config.loader import (
    load_yaml_file,
    parse_catalog_fixture,
    parse_planning_config,
)
from planning_config.schema import (
    CatalogFixture,
    DatabaseConfig,
    GridConfig,
    LoggingConfig,
    PlanningConfig,
)
from planning_kernel.logging_config import get_logger

_logger = get_logger("config")

_PACKAGE_DIR = Path(__file__).parent
DEFAULT_CONFIG_PATH = _PACKAGE_DIR / "defaults.yaml"
DEFAULT_FIXTURE_PATH = _PACKAGE_DIR / "sets" / "demo_catalog.yaml"

CONFIG_ENV_VAR = "PLANNING_CONFIG"
DATABASE_URL_ENV_VAR = "PLANNING_DATABASE_URL"


def _checksum(data: dict) -> str:
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


def get_active_config(config_path: Path | str | None = None) -> PlanningConfig:
    """The public configuration entrypoint.

    Args:
        config_path: Explicit YAML file.  Defaults to ``$PLANNING_CONFIG``
            and then to the packaged ``defaults.yaml``.

    Raises:
        FileNotFoundError: If the resolved file does not exist.
        KeyError: If a required key is missing.
        ValueError: If a value is invalid.
    """
    if config_path is None:
        config_path = os.environ.get(CONFIG_ENV_VAR) or DEFAULT_CONFIG_PATH
    path = Path(config_path)

    data = load_yaml_file(path)
    config = parse_planning_config(data, source_path=str(path))

    url_override = os.environ.get(DATABASE_URL_ENV_VAR)
    if url_override:
        config = dataclasses.replace(
            config, database=dataclasses.replace(config.database, url=url_override)
        )

    _logger.info(
        "PLANNING_CONFIG_TRACE",
        extra={
            "trace_type": "PLANNING_CONFIG_TRACE",
            "source_path": str(path),
            "checksum": _checksum(data),
            "database_url_overridden": bool(url_override),
            "log_level": config.logging.level,
        },
    )
    return config


def load_catalog_fixture(path: Path | str | None = None) -> CatalogFixture:
    """Parse and validate a catalog fixture (default: the demo catalog)."""
    return parse_catalog_fixture(load_yaml_file(Path(path or DEFAULT_FIXTURE_PATH)))


__all__ = [
    "get_active_config",
    "load_catalog_fixture",
    "PlanningConfig",
    "DatabaseConfig",
    "LoggingConfig",
    "GridConfig",
    "CatalogFixture",
    "DEFAULT_CONFIG_PATH",
    "DEFAULT_FIXTURE_PATH",
]
