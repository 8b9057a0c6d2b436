"""
Seams between the render pipeline and the components it drives.

The pipeline never converts documents itself. It talks to three
collaborators:

- a `Renderer`, which converts one input and resolves its formats,
- an `EngineRegistry`, which says which engine (if any) claims a file,
- a `ProjectType`, which contributes defaults and pre/post render hooks.

The records exchanged with them (`RenderOptions`, `RenderedFile`) live here
as well.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import (
    TYPE_CHECKING,
    Any,
    Callable,
    Dict,
    Iterable,
    List,
    Mapping,
    Optional,
    Protocol,
    Sequence,
)

if TYPE_CHECKING:  # pragma: no cover
    from .markdown import PartitionedMarkdown
    from .project_context import ProjectContext

Format = Dict[str, Any]

KEY_TITLE = "title"
KEY_OUTPUT_FILE = "output-file"
KEY_KEEP_MD = "keep-md"


class RenderError(RuntimeError):
    """Raised by a renderer when a single input fails to convert."""

    def __init__(self, message: str, *, input_file: Optional[Path] = None) -> None:
        super().__init__(message)
        self.input_file = input_file


def format_title(fmt: Mapping[str, Any]) -> Optional[str]:
    title = (fmt.get("metadata") or {}).get(KEY_TITLE)
    return str(title) if title else None


def format_output_file(fmt: Mapping[str, Any]) -> Optional[str]:
    return (fmt.get("pandoc") or {}).get(KEY_OUTPUT_FILE)


def format_keeps_files(fmt: Mapping[str, Any]) -> bool:
    """True when the format asks for intermediates to stay in the working tree."""
    return bool((fmt.get("execute") or {}).get(KEY_KEEP_MD))


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class RenderFlags:
    to: Optional[str] = None
    quiet: bool = False
    execute_dir: Optional[Path] = None
    execute_daemon: Optional[int] = None


@dataclass(slots=True)
class RenderOptions:
    use_freezer: bool = False
    dev_server_reload: bool = False
    flags: RenderFlags = field(default_factory=RenderFlags)


@dataclass(slots=True)
class ResourceDescriptor:
    globs: List[str] = field(default_factory=list)
    files: List[str] = field(default_factory=list)


@dataclass(slots=True)
class RenderedFile:
    """
    One rendered artifact.

    `file` and `supporting` are relative to the project directory; `input`
    is absolute. `resource_files` is filled in by relocation.
    """

    input: Path
    file: Path
    format: Format = field(default_factory=dict)
    supporting: List[Path] = field(default_factory=list)
    self_contained: bool = False
    resources: ResourceDescriptor = field(default_factory=ResourceDescriptor)
    resource_files: List[Path] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Renderer
# ---------------------------------------------------------------------------


class Renderer(Protocol):
    def render(
        self,
        input_file: Path,
        options: RenderOptions,
        *,
        project: "ProjectContext",
        project_root: Path,
        always_execute: bool,
    ) -> List[RenderedFile]:
        """Convert one input; raise `RenderError` when it fails."""

    def resolve_formats(self, input_file: Path, project: "ProjectContext") -> Dict[str, Format]:
        """Return every format the input would render to, keyed by name."""

    def partition_markdown(self, input_file: Path, engine: str) -> "PartitionedMarkdown":
        """Split the input into front matter, first heading and body."""


# ---------------------------------------------------------------------------
# Engines
# ---------------------------------------------------------------------------


class EngineRegistry(Protocol):
    def claims(self, path: Path) -> Optional[str]:
        ...

    def ignore_globs(self) -> List[str]:
        ...

    def keep_files(self, engine: str, path: Path) -> List[Path]:
        ...


@dataclass(frozen=True, slots=True)
class Engine:
    name: str
    extensions: Sequence[str]
    ignore_globs: Sequence[str] = ()
    keep: Optional[Callable[[Path], List[Path]]] = None


def _knitr_keep(path: Path) -> List[Path]:
    return [path.with_name(f"{path.stem}.knit.md")]


DEFAULT_ENGINES: tuple[Engine, ...] = (
    Engine("markdown", (".md", ".qmd", ".markdown")),
    Engine("jupyter", (".ipynb",), ignore_globs=("**/venv/**", "**/env/**")),
    Engine(
        "knitr",
        (".rmd", ".rmarkdown"),
        ignore_globs=("**/renv/**", "**/packrat/**", "**/rsconnect/**"),
        keep=_knitr_keep,
    ),
)


class ExtensionEngineRegistry:
    """Claims files by (case-insensitive) extension, first engine wins."""

    def __init__(self, engines: Iterable[Engine] = DEFAULT_ENGINES) -> None:
        self._engines = list(engines)

    @property
    def engines(self) -> List[Engine]:
        return list(self._engines)

    def _engine(self, name: str) -> Optional[Engine]:
        for engine in self._engines:
            if engine.name == name:
                return engine
        return None

    def claims(self, path: Path) -> Optional[str]:
        suffix = Path(path).suffix.lower()
        for engine in self._engines:
            if suffix in engine.extensions:
                return engine.name
        return None

    def ignore_globs(self) -> List[str]:
        globs: List[str] = []
        for engine in self._engines:
            globs.extend(glob for glob in engine.ignore_globs if glob not in globs)
        return globs

    def keep_files(self, engine: str, path: Path) -> List[Path]:
        found = self._engine(engine)
        if found is None or found.keep is None:
            return []
        return found.keep(Path(path))


# ---------------------------------------------------------------------------
# Project types
# ---------------------------------------------------------------------------


class ProjectType(Protocol):
    name: str
    lib_dir: Optional[str]
    output_dir: Optional[str]

    def format_lib_dirs(self) -> List[str]:
        ...

    def resource_ignore_fields(self) -> List[str]:
        ...

    def incremental_render_all(
        self,
        context: "ProjectContext",
        options: RenderOptions,
        files: Sequence[Path],
    ) -> bool:
        ...

    def pre_render(self, context: "ProjectContext") -> None:
        ...

    def post_render(
        self,
        context: "ProjectContext",
        incremental: bool,
        outputs: Sequence["ProjectOutputFile"],
    ) -> None:
        ...


@dataclass(frozen=True, slots=True)
class ProjectOutputFile:
    file: Path
    format: Format


class DefaultProjectType:
    """Project type with no defaults and no-op hooks."""

    name = "default"
    lib_dir: Optional[str] = None
    output_dir: Optional[str] = None

    def format_lib_dirs(self) -> List[str]:
        return []

    def resource_ignore_fields(self) -> List[str]:
        return []

    def incremental_render_all(self, context, options, files) -> bool:
        return False

    def pre_render(self, context) -> None:
        return None

    def post_render(self, context, incremental, outputs) -> None:
        return None


_PROJECT_TYPES: Dict[str, ProjectType] = {}


def register_project_type(project_type: ProjectType) -> None:
    _PROJECT_TYPES[project_type.name] = project_type


def project_type(name: Optional[str]) -> ProjectType:
    """Look up a registered project type; unknown or empty names get the default."""
    if name and name in _PROJECT_TYPES:
        return _PROJECT_TYPES[name]
    return _PROJECT_TYPES[DefaultProjectType.name]


register_project_type(DefaultProjectType())


__all__ = [
    "DEFAULT_ENGINES",
    "DefaultProjectType",
    "Engine",
    "EngineRegistry",
    "ExtensionEngineRegistry",
    "Format",
    "ProjectOutputFile",
    "ProjectType",
    "RenderError",
    "RenderFlags",
    "RenderOptions",
    "RenderedFile",
    "Renderer",
    "ResourceDescriptor",
    "format_keeps_files",
    "format_output_file",
    "format_title",
    "project_type",
    "register_project_type",
]
