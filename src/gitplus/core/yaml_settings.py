"""YAML settings source with layered files and include: directives."""

from __future__ import annotations

import os
import sys
from pathlib import Path

import yaml
from platformdirs import user_config_dir
from pydantic_settings import BaseSettings, YamlConfigSettingsSource

APP_NAME = "gitplus"
CONFIG_FILENAME = "gitplus.yaml"
DEFAULTS_FILE = Path(__file__).parent.parent / "defaults" / "default.yaml"

# Created on first use; config.py imports this module
_bootstrap_logger = None


def _get_bootstrap_logger():
    """Logger used while settings are still loading."""
    global _bootstrap_logger
    if _bootstrap_logger is None:
        from gitplus.core.log import ConsoleSink, Logger
        _bootstrap_logger = Logger(console=ConsoleSink(level="warn"))
        _bootstrap_logger.setup(log_root=Path.home(), session="bootstrap")
    return _bootstrap_logger


def _cleanup_bootstrap_logger():
    """Drop the bootstrap logger once the real one is configured."""
    global _bootstrap_logger
    if _bootstrap_logger:
        _bootstrap_logger.close()
        _bootstrap_logger = None


def cli_includes(argv: list[str]) -> list[str]:
    """Collect the values of every ``--include FILE`` in argv."""
    includes = []
    args = iter(argv[1:])
    for arg in args:
        if arg == "--include":
            value = next(args, None)
            if value is not None:
                includes.append(value)
        elif arg.startswith("--include="):
            includes.append(arg.split("=", 1)[1])
    return includes


def merge_mappings(base: dict, override: dict) -> dict:
    """Merge override into a copy of base; nested dicts merge, the
    rest is replaced."""
    result = base.copy()
    for key, value in override.items():
        if isinstance(result.get(key), dict) and isinstance(value, dict):
            result[key] = merge_mappings(result[key], value)
        else:
            result[key] = value
    return result


class YamlWithIncludesSettingsSource(YamlConfigSettingsSource):
    """Settings source reading the layered gitplus YAML files.

    Layers, lowest priority first:
        user config < ./gitplus.yaml < --include
    Each file may name further files with an ``include:`` key; those
    are loaded first and the including file wins on conflicts.
    """

    def __init__(self, settings_cls: type[BaseSettings], yaml_file=None):
        includes = cli_includes(sys.argv)
        base = yaml_file or settings_cls.model_config.get("yaml_file")
        if includes:
            if base is None:
                yaml_file = includes
            elif isinstance(base, (str, os.PathLike)):
                yaml_file = [base, *includes]
            else:
                yaml_file = [*base, *includes]
        else:
            yaml_file = base
        super().__init__(settings_cls, yaml_file)

    def _candidate_files(self, files) -> list[Path]:
        candidates = [
            Path(user_config_dir(APP_NAME, appauthor=False))
            / CONFIG_FILENAME,
        ]
        if files:
            if isinstance(files, (str, os.PathLike)):
                files = [files]
            candidates.extend(Path(f).expanduser() for f in files)
        return candidates

    def _read_files(self, files, deep_merge: bool = True):
        """Load and merge every layer that exists on disk."""
        result = {}
        seen = set()
        for path in self._candidate_files(files):
            key = path.resolve() if path.exists() else path
            if key in seen:
                continue
            seen.add(key)
            if not path.is_file():
                _get_bootstrap_logger().debug(
                    "Configuration file not found (skipping)",
                    file=str(path),
                )
                continue
            with _get_bootstrap_logger().span(
                "Loading configuration", file=str(path)
            ):
                result = merge_mappings(
                    result, self._load_file_recursive(path, set())
                )
        return result

    def _load_file_recursive(self, path: Path, visited: set[Path]) -> dict:
        """Load one file with its includes resolved.

        Raises:
            ValueError: On a circular include or a non-mapping document
        """
        path = path.resolve()
        if path in visited:
            raise ValueError(f"Circular include: {path}")
        visited.add(path)

        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"{path}: top level must be a mapping")

        includes = data.pop("include", None) or []
        if isinstance(includes, str):
            includes = [includes]

        merged: dict = {}
        for include in includes:
            include_path = Path(include).expanduser()
            if not include_path.is_absolute():
                include_path = path.parent / include_path
            merged = merge_mappings(
                merged,
                self._load_file_recursive(include_path, visited.copy()),
            )
        return merge_mappings(merged, data)


class PackageDefaultsSettingsSource(YamlWithIncludesSettingsSource):
    """The defaults shipped in the package, below every other source.

    Kept apart from the user's YAML layers so that environment
    variables can still override a value the defaults file sets.
    """

    def _candidate_files(self, files) -> list[Path]:
        return [DEFAULTS_FILE]
