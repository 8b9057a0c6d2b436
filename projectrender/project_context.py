"""
Project context construction and render-input discovery.

A project is the nearest directory (walking upwards) that holds a
`_project.yml`. Its input set is every file an engine claims, found either by
walking the whole tree or by expanding the explicit `project.render` list,
minus ignored paths and engine-managed intermediates.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from pathlib import Path
from typing import Any, List, Optional, Sequence, Tuple, cast

from . import SCRATCH_DIR
from .collaborators import EngineRegistry, ExtensionEngineRegistry, ProjectType, project_type
from .config_schema import ProjectConfig, find_config_file, find_vars_file, load_project_config
from .metadata import find_resources, rewrite_relative_paths
from .paths import (
    forward_slashes,
    glob_to_regex,
    is_within,
    matches_any,
    resolve_path_globs,
    walk_files,
)

LOG = logging.getLogger("projectrender.project")

# Underscore-prefixed, hidden and README paths are never render inputs.
FIXED_IGNORE_GLOBS = (
    "**/_*",
    "**/_*/**",
    "**/.*",
    "**/.*/**",
    "**/README.md",
    "**/README.[Rrq]md",
)


@dataclass(slots=True)
class ProjectFiles:
    input: List[Path] = field(default_factory=list)
    resources: List[Path] = field(default_factory=list)
    config: List[Path] = field(default_factory=list)


@dataclass(slots=True)
class ProjectContext:
    dir: Path
    config: ProjectConfig = field(default_factory=ProjectConfig)
    files: ProjectFiles = field(default_factory=ProjectFiles)
    engines: List[str] = field(default_factory=list)

    @property
    def type(self) -> ProjectType:
        return project_type(self.config.project.type)

    @property
    def output_dir(self) -> Path:
        return project_output_dir(self)


def project_output_dir(context: ProjectContext) -> Path:
    """Absolute output directory (the project dir itself when none is configured)."""
    output_dir = context.config.project.output_dir
    target = context.dir / output_dir if output_dir else context.dir
    return target.resolve() if target.exists() else target


def gitignore_entries(directory: Path) -> List[str]:
    gitignore = Path(directory) / ".gitignore"
    if not gitignore.is_file():
        return []
    entries: List[str] = []
    for line in gitignore.read_text(encoding="utf-8").splitlines():
        entry = line.strip()
        if not entry or entry.startswith("#") or entry.startswith("!"):
            continue
        entries.append(entry.lstrip("/"))
    return entries


def project_ignore_globs(directory: Path, engines: EngineRegistry) -> List[str]:
    return list(engines.ignore_globs()) + [
        f"**/{entry}**" for entry in gitignore_entries(directory)
    ]


def project_input_files(
    directory: Path,
    config: Optional[ProjectConfig] = None,
    engines: Optional[EngineRegistry] = None,
) -> Tuple[List[Path], List[str]]:
    """Return `(input_files, engine_names)` for the project rooted at `directory`."""
    directory = Path(directory).resolve()
    engines = engines or ExtensionEngineRegistry()
    files: List[Path] = []
    engine_names: List[str] = []
    keep_files: List[Path] = []

    output_dir = config.project.output_dir if config else None
    output_abs = (directory / output_dir).resolve() if output_dir else None

    ignore_globs = project_ignore_globs(directory, engines) + list(FIXED_IGNORE_GLOBS)
    ignore_patterns = [glob_to_regex(glob) for glob in ignore_globs]

    def add_file(path: Path) -> None:
        if output_abs is not None and is_within(path, output_abs):
            return
        engine = engines.claims(path)
        if engine is None:
            return
        if engine not in engine_names:
            engine_names.append(engine)
        files.append(path)
        keep_files.extend(keep.resolve() for keep in engines.keep_files(engine, path))

    def add_dir(root: Path) -> None:
        for path in walk_files(root):
            try:
                relative = forward_slashes(path.relative_to(directory))
            except ValueError:
                relative = forward_slashes(path.relative_to(root))
            if not matches_any(relative, ignore_patterns):
                add_file(path)

    render_list = config.project.render if config else []
    if render_list:
        exclude = list(ignore_globs)
        if output_dir:
            exclude.extend([output_dir.strip("/"), f"{output_dir.strip('/')}/**"])
        resolved = resolve_path_globs(directory, render_list, exclude)
        for path in resolved.files():
            if path.is_dir():
                add_dir(path)
            else:
                add_file(path)
    else:
        add_dir(directory)

    kept = set(keep_files)
    inputs: List[Path] = []
    for path in files:
        if path in kept or path in inputs:
            continue
        inputs.append(path)
    return inputs, engine_names


def project_resource_files(directory: Path, config: ProjectConfig) -> List[Path]:
    """Files named by `project.resources` globs (directories are walked)."""
    resources: List[Path] = []
    resolved = resolve_path_globs(directory, config.project.resources)
    for path in resolved.files():
        candidates = walk_files(path, skip_hidden=False) if path.is_dir() else [path]
        for candidate in candidates:
            candidate = candidate.resolve()
            if candidate not in resources:
                resources.append(candidate)
    return resources


def project_config_resources(
    directory: Path,
    ptype: ProjectType,
    config: ProjectConfig,
) -> List[Path]:
    """Files referenced by string values anywhere in the project metadata."""
    ignore = ["project", *ptype.resource_ignore_fields()]
    return find_resources(config.metadata, directory, ignore_keys=ignore)


def project_context(
    path: Path,
    *,
    engines: Optional[EngineRegistry] = None,
    force: bool = False,
) -> Optional[ProjectContext]:
    """
    Build the context for the project containing `path`.

    Walks upward until a directory with a project config file is found. When
    none exists, returns None unless `force` is set, in which case `path` (or
    its directory) is treated as an implicit project.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Project path '{path}' does not exist.")
    engines = engines or ExtensionEngineRegistry()
    start = path.resolve() if path.is_dir() else path.resolve().parent

    directory = start
    while True:
        config_file = find_config_file(directory)
        if config_file is not None:
            return _configured_context(directory, config_file, engines)
        parent = directory.parent
        if parent == directory:
            break
        directory = parent

    if not force:
        return None

    if path.is_dir():
        files, engine_names = project_input_files(start, None, engines)
    else:
        input_file = path.resolve()
        files = [input_file]
        engine_names = [engines.claims(input_file) or "markdown"]
    return ProjectContext(dir=start, files=ProjectFiles(input=files), engines=engine_names)


def _configured_context(
    directory: Path,
    config_file: Path,
    engines: EngineRegistry,
) -> ProjectContext:
    config = load_project_config(config_file)
    ptype = project_type(config.project.type)
    if config.project.type:
        if config.project.lib_dir is None and ptype.lib_dir:
            config.project.lib_dir = ptype.lib_dir
        if not config.project.output_dir and ptype.output_dir:
            config.project.output_dir = ptype.output_dir

    files, engine_names = project_input_files(directory, config, engines)
    resources = project_resource_files(directory, config)
    for resource in project_config_resources(directory, ptype, config):
        if resource not in resources:
            resources.append(resource)

    config_files = [config_file]
    vars_file = find_vars_file(directory)
    if vars_file is not None:
        config_files.append(vars_file)

    LOG.debug(
        "Project context | dir=%s type=%s inputs=%d engines=%s",
        directory,
        ptype.name,
        len(files),
        engine_names,
    )
    return ProjectContext(
        dir=directory,
        config=config,
        files=ProjectFiles(input=files, resources=resources, config=config_files),
        engines=engine_names,
    )


def project_context_for_directory(
    path: Path,
    *,
    engines: Optional[EngineRegistry] = None,
) -> ProjectContext:
    """Like `project_context`, but a directory without config is still a project."""
    return cast(ProjectContext, project_context(path, engines=engines, force=True))


def project_metadata_for_input_file(context: ProjectContext, input_file: Path) -> Any:
    """Project metadata with file references made relative to `input_file`."""
    return rewrite_relative_paths(context.config.metadata, context.dir, input_file)


def ensure_gitignore(context: ProjectContext) -> bool:
    """
    Make sure the scratch directory is git-ignored.

    Only touches projects that already have a `.gitignore` or are the root
    of a git checkout. Returns True when the file was modified.
    """
    gitignore = context.dir / ".gitignore"
    if not gitignore.exists() and not (context.dir / ".git").exists():
        return False
    lines = gitignore.read_text(encoding="utf-8").splitlines() if gitignore.exists() else []
    accepted = {SCRATCH_DIR, f"{SCRATCH_DIR}/", f"/{SCRATCH_DIR}", f"/{SCRATCH_DIR}/"}
    if any(line.strip() in accepted for line in lines):
        return False
    lines.append(f"/{SCRATCH_DIR}/")
    gitignore.write_text("\n".join(lines) + "\n", encoding="utf-8")
    LOG.info("Added /%s/ to %s", SCRATCH_DIR, gitignore)
    return True


__all__ = [
    "FIXED_IGNORE_GLOBS",
    "ProjectContext",
    "ProjectFiles",
    "ensure_gitignore",
    "gitignore_entries",
    "project_config_resources",
    "project_context",
    "project_context_for_directory",
    "project_ignore_globs",
    "project_input_files",
    "project_metadata_for_input_file",
    "project_output_dir",
    "project_resource_files",
]
