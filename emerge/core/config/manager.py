"""
ConfigManager: dot-notation access to progression balance values.

Purpose
-------
- Provide hierarchical, dot-notation access to tunable balance values
  (XP tables, level thresholds, zone table, cache TTLs).
- Back configuration with YAML defaults shipped inside the package, plus
  optional extra YAML files and in-memory overrides.

Responsibilities
----------------
- Load and deep-merge YAML defaults from `emerge/core/config/defaults/`.
- Overlay additional YAML files (deployment overrides) on top.
- Serve reads from the merged tree with a caller-supplied default.
- Accept in-memory overrides (tests, feature experiments) via `set()`.

Key Design Decisions
--------------------
- YAML is the single source for defaults; nothing is hard-coded in services
  beyond the fallback passed to `get()`.
- ConfigManager is an injected instance rather than class-level state, so two
  engines in one process (or two tests) never share overrides.
"""

from __future__ import annotations

import copy
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, MutableMapping, Optional

import yaml

from emerge.core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULTS_DIR = Path(__file__).resolve().parent / "defaults"

_MISSING = object()


class ConfigManager:
    """
    Balance configuration with dot-notation access.

    Examples
    --------
    >>> config = ConfigManager.from_defaults()
    >>> config.get("progression.xp.base.habit_completion")
    10
    >>> config.set("progression.level.xp_per_level", 50)
    >>> config.get("progression.level.xp_per_level")
    50
    """

    def __init__(self, values: Optional[Mapping[str, Any]] = None) -> None:
        self._values: Dict[str, Any] = copy.deepcopy(dict(values or {}))

    # =========================================================================
    # Construction
    # =========================================================================

    @classmethod
    def from_defaults(
        cls,
        extra_files: Iterable[Path] = (),
        overrides: Optional[Mapping[str, Any]] = None,
    ) -> "ConfigManager":
        """
        Build a manager from packaged defaults, extra YAML files and overrides.

        Args:
            extra_files: YAML files merged after the packaged defaults
            overrides: Dot-notation key/value pairs applied last

        Raises:
            ConfigurationError: If an extra file cannot be read or parsed
        """
        manager = cls()
        for yaml_file in sorted(DEFAULTS_DIR.glob("*.yaml")):
            manager.merge(manager._read_yaml(yaml_file))

        for yaml_file in extra_files:
            manager.merge(manager._read_yaml(Path(yaml_file)))

        for key, value in (overrides or {}).items():
            manager.set(key, value)

        logger.info(
            "Balance configuration loaded",
            extra={"top_level_keys": manager.get_all_keys()},
        )
        return manager

    @staticmethod
    def _read_yaml(path: Path) -> Dict[str, Any]:
        try:
            with path.open("r", encoding="utf-8") as handle:
                data = yaml.safe_load(handle)
        except (OSError, yaml.YAMLError) as exc:
            raise ConfigurationError(str(path), f"unreadable YAML: {exc}") from exc

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigurationError(
                str(path), f"root must be a mapping, got {type(data).__name__}"
            )

        logger.debug("Loaded YAML config", extra={"file": str(path)})
        return data

    # =========================================================================
    # Merging
    # =========================================================================

    @staticmethod
    def _deep_merge_dict(
        target: MutableMapping[str, Any],
        source: Mapping[str, Any],
    ) -> None:
        """Recursively merge `source` into `target` (in-place)."""
        for key, value in source.items():
            if isinstance(value, dict) and isinstance(target.get(key), dict):
                ConfigManager._deep_merge_dict(target[key], value)
            else:
                target[key] = copy.deepcopy(value)

    def merge(self, values: Mapping[str, Any]) -> None:
        self._deep_merge_dict(self._values, values)

    # =========================================================================
    # Access
    # =========================================================================

    def get(self, key: str, default: Any = None) -> Any:
        """
        Retrieve a configuration value by dot-notation path.

        Returns `default` when any segment of the path is missing.
        """
        value: Any = self._values
        for part in key.split("."):
            if not isinstance(value, dict):
                return default
            value = value.get(part, _MISSING)
            if value is _MISSING:
                return default
        return value if value is not None else default

    def set(self, key: str, value: Any) -> None:
        """Override a single value in memory, creating parents as needed."""
        parts = key.split(".")
        node = self._values
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                child = {}
                node[part] = child
            node = child
        node[parts[-1]] = value

    def get_all_keys(self) -> List[str]:
        """Return all top-level configuration keys."""
        return list(self._values.keys())

    def as_dict(self) -> Dict[str, Any]:
        return copy.deepcopy(self._values)
