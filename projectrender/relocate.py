"""
Relocation of rendered artifacts and their resources into the output dir.

Primary artifacts are always moved. Supporting directories are moved or
copied according to a `TransferMode`, and whatever already sits at a target
path is removed first, so the output tree never mixes two renders of the same
file.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
import logging
import shutil
from pathlib import Path
from typing import Iterable, List, Sequence, Tuple

from .collaborators import RenderedFile, format_keeps_files
from .paths import ResolvedGlobs, is_within, resolve_path_globs, walk_files

LOG = logging.getLogger("projectrender.relocate")


class RelocationWarning(UserWarning):
    """A declared resource could not be found; the render still succeeds."""


class TransferMode(Enum):
    MOVE = "move"
    COPY = "copy"

    @classmethod
    def for_format(cls, fmt) -> "TransferMode":
        return cls.COPY if format_keeps_files(fmt) else cls.MOVE


@dataclass(slots=True)
class RelocationReport:
    files: List[RenderedFile] = field(default_factory=list)
    keep_lib_dir: bool = False
    warnings: List[RelocationWarning] = field(default_factory=list)


def remove_path(path: Path) -> None:
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    elif path.exists() or path.is_symlink():
        path.unlink()


def transfer_dir(src: Path, target: Path, mode: TransferMode) -> bool:
    """
    Replace `target` with the directory `src`.

    Any existing `target` is removed even when `src` is missing. Returns True
    when something was transferred.
    """
    if target.exists() or target.is_symlink():
        remove_path(target)
    if not src.exists():
        return False
    target.parent.mkdir(parents=True, exist_ok=True)
    if mode is TransferMode.COPY:
        shutil.copytree(src, target)
    else:
        shutil.move(str(src), str(target))
    return True


def place_file(src: Path, target: Path) -> None:
    """Move `src` to `target`, removing any previous file or directory there."""
    target.parent.mkdir(parents=True, exist_ok=True)
    if target.exists() or target.is_symlink():
        remove_path(target)
    shutil.move(str(src), str(target))


def copy_resource_file(src: Path, target: Path) -> None:
    target.parent.mkdir(parents=True, exist_ok=True)
    shutil.copy2(src, target)


def _warn(warnings: List[RelocationWarning], message: str) -> None:
    warning = RelocationWarning(message)
    LOG.warning(message)
    warnings.append(warning)


def _expand(paths: Iterable[Path]) -> List[Path]:
    expanded: List[Path] = []
    for path in paths:
        candidates = walk_files(path, skip_hidden=False) if path.is_dir() else [path]
        for candidate in candidates:
            candidate = candidate.resolve()
            if candidate not in expanded:
                expanded.append(candidate)
    return expanded


def expand_resources(
    rendered: RenderedFile,
    project_dir: Path,
) -> Tuple[List[Path], List[RelocationWarning]]:
    """
    Resolve the resource files declared for one rendered file.

    Globs are expanded against the file's directory (`!` globs exclude).
    Explicit files are only added for non self-contained output. Paths inside
    the file's supporting directories are dropped.
    """
    warnings: List[RelocationWarning] = []
    resource_dir = project_dir / rendered.file.parent
    resolved = (
        resolve_path_globs(resource_dir, rendered.resources.globs)
        if rendered.resources.globs
        else ResolvedGlobs()
    )
    include = _expand(resolved.include)
    exclude = set(_expand(resolved.exclude))

    if not rendered.self_contained:
        for name in rendered.resources.files:
            candidate = resource_dir / name
            if candidate.exists():
                for path in _expand([candidate]):
                    if path not in include:
                        include.append(path)
            else:
                _warn(warnings, f"File '{(rendered.file.parent / name).as_posix()}' was not found.")

    supporting = [project_dir / support for support in rendered.supporting]
    resources = [
        path
        for path in include
        if path not in exclude
        and not any(is_within(path, support) for support in supporting)
    ]
    return resources, warnings


def relocate_outputs(
    rendered_files: Sequence[RenderedFile],
    project_dir: Path,
    output_dir: Path,
) -> RelocationReport:
    """
    Move each artifact (and its supporting dirs) from the project tree into
    `output_dir`, and compute the resource files each one needs.
    """
    report = RelocationReport()
    for rendered in rendered_files:
        target = output_dir / rendered.file
        place_file(project_dir / rendered.file, target)
        LOG.debug("Relocated %s -> %s", rendered.file, target)

        mode = TransferMode.for_format(rendered.format)
        report.keep_lib_dir = report.keep_lib_dir or mode is TransferMode.COPY
        for support in rendered.supporting:
            transfer_dir(project_dir / support, output_dir / support, mode)

        resources, warnings = expand_resources(rendered, project_dir)
        report.warnings.extend(warnings)
        report.files.append(replace(rendered, resource_files=resources))
    return report


def finalize_resources(
    files: Sequence[RenderedFile],
    project_dir: Path,
    output_dir: Path,
    project_resources: Sequence[Path] = (),
) -> List[RelocationWarning]:
    """
    Drop tracked outputs from every resource list, then copy the union of
    project resources and per-file resources into `output_dir`.
    """
    warnings: List[RelocationWarning] = []
    output_files = {project_dir / rendered.file for rendered in files}
    for rendered in files:
        rendered.resource_files = [
            path for path in rendered.resource_files if path not in output_files
        ]

    all_resources: List[Path] = []
    for path in list(project_resources) + [
        path for rendered in files for path in rendered.resource_files
    ]:
        if path not in all_resources:
            all_resources.append(path)

    for path in all_resources:
        if is_within(path, output_dir):
            continue
        try:
            relative = path.relative_to(project_dir)
        except ValueError:
            LOG.warning("Skipping resource outside the project: %s", path)
            continue
        target = output_dir / relative
        if path.exists():
            if path.is_file():
                copy_resource_file(path, target)
        elif not target.exists():
            _warn(warnings, f"File '{relative.as_posix()}' was not found.")
    return warnings


__all__ = [
    "RelocationReport",
    "RelocationWarning",
    "TransferMode",
    "copy_resource_file",
    "expand_resources",
    "finalize_resources",
    "place_file",
    "relocate_outputs",
    "remove_path",
    "transfer_dir",
]
