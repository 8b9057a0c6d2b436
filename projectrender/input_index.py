"""
Per-input metadata index with timestamp invalidation.

Each render input gets a JSON record under `.project/index/<input>.json`
holding its title, partitioned markdown and resolved formats. A record is
reused while it is at least as new as both the input and the project config
file; otherwise it is regenerated from the renderer and rewritten.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from . import SCRATCH_DIR
from .collaborators import (
    EngineRegistry,
    ExtensionEngineRegistry,
    Format,
    Renderer,
    format_output_file,
    format_title,
)
from .config_schema import find_config_file
from .markdown import PartitionedMarkdown
from .paths import forward_slashes
from .project_context import ProjectContext, project_output_dir

LOG = logging.getLogger("projectrender.index")

INDEX_DIR = "index"
INDEX_SUFFIX = ".json"


def _log(event: str, **payload: object) -> None:
    message = {"event": event, **payload}
    LOG.debug(json.dumps(message, sort_keys=True))


@dataclass(slots=True)
class InputTargetIndex:
    title: Optional[str]
    markdown: PartitionedMarkdown
    formats: Dict[str, Format] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "markdown": self.markdown.to_dict(),
            "formats": self.formats,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "InputTargetIndex":
        if not isinstance(data, dict):
            raise ValueError("index record must be a mapping")
        formats = data.get("formats")
        markdown = data.get("markdown")
        if not isinstance(formats, dict) or not isinstance(markdown, dict):
            raise ValueError("index record is missing 'formats' or 'markdown'")
        if not all(isinstance(fmt, dict) for fmt in formats.values()):
            raise ValueError("index record has a malformed format entry")
        title = data.get("title")
        return cls(
            title=str(title) if title is not None else None,
            markdown=PartitionedMarkdown.from_dict(markdown),
            formats=formats,
        )


def _mtime(path: Path) -> float:
    return os.stat(path).st_mtime


class InputIndexCache:
    """
    Timestamp-validated store of `InputTargetIndex` records.

    Callers go through `get`/`put`/`is_stale` only, so the freshness rule can
    change without touching them.
    """

    def __init__(self, project_dir: Path) -> None:
        self.project_dir = Path(project_dir)

    @property
    def root(self) -> Path:
        return self.project_dir / SCRATCH_DIR / INDEX_DIR

    def relative_input(self, input_file: str | Path) -> Path:
        """Project-relative form of `input_file`; ValueError when it is outside the project."""
        path = Path(input_file)
        if not path.is_absolute():
            return path
        return path.resolve().relative_to(self.project_dir.resolve())

    def path_for(self, input_rel: str | Path) -> Path:
        return self.root / f"{forward_slashes(self.relative_input(input_rel))}{INDEX_SUFFIX}"

    def is_stale(self, input_rel: str | Path) -> bool:
        index_file = self.path_for(input_rel)
        input_file = self.project_dir / input_rel
        if not index_file.exists() or not input_file.exists():
            return True
        index_mod = _mtime(index_file)
        if index_mod < _mtime(input_file):
            return True
        config_file = find_config_file(self.project_dir)
        if config_file is not None and index_mod < _mtime(config_file):
            return True
        return False

    def get(self, input_rel: str | Path) -> Optional[InputTargetIndex]:
        """Return the cached record, or None when missing, stale or unreadable."""
        if self.is_stale(input_rel):
            return None
        index_file = self.path_for(input_rel)
        try:
            record = InputTargetIndex.from_dict(
                json.loads(index_file.read_text(encoding="utf-8"))
            )
        except (OSError, ValueError) as exc:
            _log("index.corrupt", path=str(index_file), error=str(exc))
            return None
        _log("index.cache_hit", input=forward_slashes(input_rel), path=str(index_file))
        return record

    def put(self, input_rel: str | Path, index: InputTargetIndex) -> Path:
        index_file = self.path_for(input_rel)
        index_file.parent.mkdir(parents=True, exist_ok=True)
        index_file.write_text(
            json.dumps(index.to_dict(), sort_keys=True, default=str),
            encoding="utf-8",
        )
        _log("index.cache_write", input=forward_slashes(input_rel), path=str(index_file))
        return index_file


def input_target_index(
    project: ProjectContext,
    input_rel: str | Path,
    renderer: Renderer,
    engines: Optional[EngineRegistry] = None,
) -> Optional[InputTargetIndex]:
    """
    Return the index record for `input_rel` (relative to the project dir).

    Returns None when the input does not exist, is a directory, lies outside
    the project, or is not claimed by any engine. Absolute paths inside the
    project are accepted.
    """
    engines = engines or ExtensionEngineRegistry()
    cache = InputIndexCache(project.dir)
    try:
        input_rel = cache.relative_input(input_rel)
    except ValueError:
        return None
    input_file = Path(project.dir) / input_rel
    if not input_file.exists() or input_file.is_dir():
        return None

    engine = engines.claims(input_file)
    if engine is None:
        return None

    cached = cache.get(input_rel)
    if cached is not None:
        return cached

    _log("index.compute", input=forward_slashes(input_rel), engine=engine)
    formats = renderer.resolve_formats(input_file, project)
    first_format = next(iter(formats.values()), None)
    markdown = renderer.partition_markdown(input_file, engine)
    title = format_title(first_format) if first_format else None
    if not title:
        title = markdown.heading_text

    index = InputTargetIndex(title=title, markdown=markdown, formats=dict(formats))
    cache.put(input_rel, index)
    return index


def resolve_input_target(
    project: ProjectContext,
    href: str,
    renderer: Renderer,
    engines: Optional[EngineRegistry] = None,
    *,
    absolute: bool = True,
) -> Optional[Tuple[Optional[str], str]]:
    """Map an input href to `(title, output_href)` using its first format."""
    index = input_target_index(project, href, renderer, engines)
    if index is None:
        return None
    first_format = next(iter(index.formats.values()), None)
    href_path = Path(href)
    output_file = (format_output_file(first_format) if first_format else None) or (
        f"{href_path.stem}.html"
    )
    output_href = forward_slashes(href_path.parent / output_file)
    if output_href.startswith("./"):
        output_href = output_href[2:]
    if absolute:
        output_href = "/" + output_href
    return index.title, output_href


def input_file_for_output_file(
    project: ProjectContext,
    output: str | Path,
    renderer: Renderer,
    engines: Optional[EngineRegistry] = None,
) -> Optional[Path]:
    """
    Find the input whose formats produce `output` (relative to the output dir).
    """
    output_dir = project_output_dir(project)
    target = os.path.normpath(output_dir / output)
    for input_file in project.files.input:
        input_rel = Path(input_file).relative_to(project.dir)
        index = input_target_index(project, input_rel, renderer, engines)
        if index is None:
            continue
        for fmt in index.formats.values():
            output_file = format_output_file(fmt)
            if not output_file:
                continue
            candidate = os.path.normpath(output_dir / input_rel.parent / output_file)
            if candidate == target:
                return Path(input_file)
    return None


def clear_input_index(project_dir: Path) -> List[Path]:
    """Delete every index record; returns the removed files."""
    root = InputIndexCache(project_dir).root
    removed = sorted(path for path in root.rglob(f"*{INDEX_SUFFIX}") if path.is_file())
    for path in removed:
        path.unlink()
    return removed


__all__ = [
    "INDEX_DIR",
    "INDEX_SUFFIX",
    "InputIndexCache",
    "InputTargetIndex",
    "clear_input_index",
    "input_file_for_output_file",
    "input_target_index",
    "resolve_input_target",
]
