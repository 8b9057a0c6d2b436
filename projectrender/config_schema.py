"""
Configuration schema and loader utilities for project renders.

Project configuration lives in `_project.yml` (or `_project.yaml`) at the
project root. The `project` section is parsed into dataclasses with manual
validation; every other top-level key is kept as free-form metadata that
formats and project types may interpret. An optional `_variables.yml` is
merged under the `vars` key.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, MutableMapping, Optional

import copy

import yaml


CONFIG_FILENAMES = ("_project.yml", "_project.yaml")
VARS_FILENAMES = ("_variables.yml", "_variables.yaml")
VARS_KEY = "vars"

EXECUTE_DIR_CHOICES = ("file", "project")


class ConfigError(ValueError):
    """Raised when the project configuration is malformed."""


# ---------------------------------------------------------------------------
# Dataclasses
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class ProjectSection:
    """Settings under the top-level `project` key."""

    type: Optional[str] = None
    render: List[str] = field(default_factory=list)
    output_dir: Optional[str] = None
    lib_dir: Optional[str] = None
    execute_dir: Optional[str] = None
    resources: List[str] = field(default_factory=list)

    def validate(self) -> None:
        for entry in self.render:
            if not isinstance(entry, str) or not entry:
                raise ConfigError("project.render entries must be non-empty strings.")
        for entry in self.resources:
            if not isinstance(entry, str) or not entry:
                raise ConfigError("project.resources entries must be non-empty strings.")
        for name, value in (("output-dir", self.output_dir), ("lib-dir", self.lib_dir)):
            if value is None:
                continue
            if not isinstance(value, str) or not value.strip():
                raise ConfigError(f"project.{name} must be a non-empty string.")
            if Path(value).is_absolute():
                raise ConfigError(f"project.{name} must be relative to the project directory.")
        if self.execute_dir is not None and self.execute_dir not in EXECUTE_DIR_CHOICES:
            raise ConfigError(
                f"project.execute-dir must be one of {list(EXECUTE_DIR_CHOICES)}."
            )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        if self.type is not None:
            data["type"] = self.type
        if self.render:
            data["render"] = list(self.render)
        if self.output_dir is not None:
            data["output-dir"] = self.output_dir
        if self.lib_dir is not None:
            data["lib-dir"] = self.lib_dir
        if self.execute_dir is not None:
            data["execute-dir"] = self.execute_dir
        if self.resources:
            data["resources"] = list(self.resources)
        return data


@dataclass(slots=True)
class ProjectConfig:
    project: ProjectSection = field(default_factory=ProjectSection)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def validate(self) -> None:
        self.project.validate()

    def describe(self) -> Dict[str, Any]:
        """Return a JSON-serializable summary (useful for logging)."""
        return {"project": self.project.to_dict(), **self.metadata}


# ---------------------------------------------------------------------------
# Loading utilities
# ---------------------------------------------------------------------------


def find_config_file(directory: Path) -> Optional[Path]:
    """Return the project config file in `directory`, if there is one."""
    for name in CONFIG_FILENAMES:
        candidate = Path(directory) / name
        if candidate.is_file():
            return candidate
    return None


def find_vars_file(directory: Path) -> Optional[Path]:
    for name in VARS_FILENAMES:
        candidate = Path(directory) / name
        if candidate.is_file():
            return candidate
    return None


def _load_yaml_file(path: Path) -> Mapping[str, Any]:
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc
    if raw is None:
        return {}
    if not isinstance(raw, Mapping):
        raise ConfigError(f"Configuration '{path}' must be a mapping at top level.")
    return raw


def _deep_update(base: MutableMapping[str, Any], overlay: Mapping[str, Any]) -> None:
    for key, value in overlay.items():
        if (
            isinstance(value, Mapping)
            and key in base
            and isinstance(base[key], MutableMapping)
        ):
            _deep_update(base[key], value)
        else:
            base[key] = copy.deepcopy(value)


def _string_list(value: Any, key: str) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if not isinstance(value, list):
        raise ConfigError(f"project.{key} must be a string or a list of strings.")
    return list(value)


def _parse_project_section(mapping: Any) -> ProjectSection:
    if mapping is None:
        mapping = {}
    if not isinstance(mapping, Mapping):
        raise ConfigError("The 'project' key must contain a mapping.")
    section = ProjectSection(
        type=mapping.get("type"),
        render=_string_list(mapping.get("render"), "render"),
        output_dir=mapping.get("output-dir"),
        lib_dir=mapping.get("lib-dir"),
        execute_dir=mapping.get("execute-dir"),
        resources=_string_list(mapping.get("resources"), "resources"),
    )
    section.validate()
    return section


def parse_project_config(mapping: Mapping[str, Any]) -> ProjectConfig:
    """Build a validated `ProjectConfig` from an already-loaded mapping."""
    metadata = {key: copy.deepcopy(value) for key, value in mapping.items() if key != "project"}
    config = ProjectConfig(
        project=_parse_project_section(mapping.get("project")),
        metadata=metadata,
    )
    config.validate()
    return config


def load_project_config(config_path: Path) -> ProjectConfig:
    """
    Load a project configuration file plus any sibling variables file.

    Parameters
    ----------
    config_path:
        Path to `_project.yml`.
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file '{config_path}' does not exist.")

    raw_mapping = dict(_load_yaml_file(config_path))

    vars_path = find_vars_file(config_path.parent)
    if vars_path is not None:
        variables = _load_yaml_file(vars_path)
        existing = raw_mapping.get(VARS_KEY) or {}
        if not isinstance(existing, MutableMapping):
            raise ConfigError(f"'{VARS_KEY}' must be a mapping in {config_path}.")
        merged = copy.deepcopy(dict(existing))
        _deep_update(merged, variables)
        raw_mapping[VARS_KEY] = merged

    return parse_project_config(raw_mapping)
