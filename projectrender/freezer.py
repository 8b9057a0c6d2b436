"""
Library freezer and output library-directory merge.

The shared library directory (e.g. `site_libs`) is copied into the freezer
so incremental renders that reuse frozen results still find the assets they
reference. The hidden freezer under the scratch area is always maintained;
the visible `_freeze` copy only once a project has one.
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Iterable, List, Optional

from . import SCRATCH_DIR
from .relocate import TransferMode, copy_resource_file, remove_path, transfer_dir

LOG = logging.getLogger("projectrender.freezer")

FREEZE_DIR = "_freeze"


def project_freezer_dir(project_dir: Path, hidden: bool) -> Path:
    if hidden:
        return Path(project_dir) / SCRATCH_DIR / FREEZE_DIR
    return Path(project_dir) / FREEZE_DIR


def copy_to_project_freezer(
    project_dir: Path,
    lib_dir: str,
    hidden: bool,
    incremental: bool,
) -> Path:
    """
    Copy `lib_dir` into the freezer.

    Incremental copies replace entries one at a time so unrelated frozen
    libraries survive; full copies replace the frozen lib dir wholesale.
    """
    src = Path(project_dir) / lib_dir
    dest = project_freezer_dir(project_dir, hidden) / lib_dir
    if not src.is_dir():
        return dest
    if incremental:
        dest.mkdir(parents=True, exist_ok=True)
        for entry in sorted(src.iterdir()):
            target = dest / entry.name
            if entry.is_dir():
                transfer_dir(entry, target, TransferMode.COPY)
            else:
                remove_path(target)
                copy_resource_file(entry, target)
    else:
        transfer_dir(src, dest, TransferMode.COPY)
    return dest


def _freezer_references(freezer: Path, exclude: Path) -> str:
    chunks: List[str] = []
    for record in sorted(freezer.rglob("*.json")):
        try:
            record.relative_to(exclude)
            continue
        except ValueError:
            pass
        chunks.append(record.read_text(encoding="utf-8", errors="ignore"))
    return "\n".join(chunks)


def prune_project_freezer_dir(
    project_dir: Path,
    lib_dir: str,
    format_lib_dirs: Iterable[str],
    hidden: bool,
) -> List[Path]:
    """
    Remove frozen format-library subdirectories no frozen record mentions.
    """
    freezer = project_freezer_dir(project_dir, hidden)
    frozen_libs = freezer / lib_dir
    if not frozen_libs.is_dir():
        return []
    references = _freezer_references(freezer, frozen_libs)
    lib_prefix = Path(lib_dir).as_posix().strip("/")
    removed: List[Path] = []
    for name in format_lib_dirs:
        candidate = frozen_libs / name
        if candidate.is_dir() and f"{lib_prefix}/{name}/" not in references:
            shutil.rmtree(candidate)
            removed.append(candidate)
    if removed:
        LOG.debug("Pruned frozen libraries: %s", [path.name for path in removed])
    return removed


def prune_project_freezer(project_dir: Path, hidden: bool) -> None:
    """Remove empty directories left in the freezer (and the freezer itself)."""
    freezer = project_freezer_dir(project_dir, hidden)
    if not freezer.is_dir():
        return
    for directory in sorted(
        (path for path in freezer.rglob("*") if path.is_dir()),
        key=lambda path: len(path.parts),
        reverse=True,
    ):
        if not any(directory.iterdir()):
            directory.rmdir()
    if not any(freezer.iterdir()):
        freezer.rmdir()


def freeze_lib_dir(
    project_dir: Path,
    lib_dir: str,
    hidden: bool,
    incremental: bool,
    format_lib_dirs: Iterable[str] = (),
) -> None:
    copy_to_project_freezer(project_dir, lib_dir, hidden, incremental)
    prune_project_freezer_dir(project_dir, lib_dir, format_lib_dirs, hidden)
    prune_project_freezer(project_dir, hidden)


def freeze_project_lib_dir(
    project_dir: Path,
    lib_dir: str,
    incremental: bool,
    format_lib_dirs: Iterable[str] = (),
) -> None:
    """Freeze into the hidden freezer, and into `_freeze` only if it exists."""
    format_lib_dirs = list(format_lib_dirs)
    freeze_lib_dir(project_dir, lib_dir, True, incremental, format_lib_dirs)
    if project_freezer_dir(project_dir, hidden=False).exists():
        freeze_lib_dir(project_dir, lib_dir, False, incremental, format_lib_dirs)


def merge_into_output(
    lib_dir: Path,
    output_lib_dir: Path,
    incremental: bool,
    mode: TransferMode,
) -> None:
    """
    Bring the rendered library directory into the output tree.

    Incremental merges replace one subdirectory at a time and leave other
    output subdirectories alone; full merges replace the output lib dir.
    """
    if not lib_dir.is_dir():
        return
    if incremental:
        for entry in sorted(lib_dir.iterdir()):
            if entry.is_dir():
                transfer_dir(entry, output_lib_dir / entry.name, mode)
        if mode is TransferMode.MOVE:
            shutil.rmtree(lib_dir)
    else:
        transfer_dir(lib_dir, output_lib_dir, mode)


def relocate_lib_dir(
    project_dir: Path,
    output_dir: Path,
    lib_dir: Optional[str],
    *,
    incremental: bool,
    mode: TransferMode,
    format_lib_dirs: Iterable[str] = (),
) -> bool:
    """Freeze and merge the project's lib dir. Returns False when there is none."""
    if not lib_dir:
        return False
    lib_dir_full = Path(project_dir) / lib_dir
    if not lib_dir_full.is_dir():
        return False
    freeze_project_lib_dir(project_dir, lib_dir, incremental, format_lib_dirs)
    merge_into_output(lib_dir_full, Path(output_dir) / lib_dir, incremental, mode)
    LOG.info(
        "Library dir %s merged into output (%s, %s)",
        lib_dir,
        "incremental" if incremental else "full",
        mode.value,
    )
    return True


__all__ = [
    "FREEZE_DIR",
    "copy_to_project_freezer",
    "freeze_lib_dir",
    "freeze_project_lib_dir",
    "merge_into_output",
    "project_freezer_dir",
    "prune_project_freezer",
    "prune_project_freezer_dir",
    "relocate_lib_dir",
]
