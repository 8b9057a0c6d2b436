"""
Project-level render orchestration entry point.

Usage:
    python -m projectrender.render_project path/to/project --renderer mypkg.render:Renderer
    python -m projectrender.render_project path/to/project --dry-run
"""

from __future__ import annotations

import argparse
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field, replace
import importlib
import logging
import sys
from pathlib import Path
from typing import Iterator, List, Optional, Sequence, Tuple

from .collaborators import (
    ProjectOutputFile,
    ProjectType,
    RenderError,
    RenderFlags,
    RenderOptions,
    RenderedFile,
    Renderer,
)
from .config_schema import ConfigError
from .freezer import relocate_lib_dir
from .input_index import InputIndexCache
from .project_context import ProjectContext, ensure_gitignore, project_context_for_directory
from .relocate import RelocationWarning, TransferMode, finalize_resources, relocate_outputs

LOG = logging.getLogger("projectrender.render")

_PROJECT_ROOT: ContextVar[Optional[Path]] = ContextVar("projectrender_project_root", default=None)


class MissingInputError(FileNotFoundError):
    """Raised when an explicitly requested render target does not exist."""


@dataclass(slots=True)
class ProjectRenderResult:
    base_dir: Path
    output_dir: Optional[str] = None
    files: List[RenderedFile] = field(default_factory=list)
    error: Optional[RenderError] = None
    warnings: List[RelocationWarning] = field(default_factory=list)

    def describe(self) -> dict:
        return {
            "base_dir": str(self.base_dir),
            "output_dir": self.output_dir,
            "files": [
                {
                    "input": str(rendered.input),
                    "file": rendered.file.as_posix(),
                    "supporting": [path.as_posix() for path in rendered.supporting],
                    "resource_files": [str(path) for path in rendered.resource_files],
                }
                for rendered in self.files
            ],
            "error": str(self.error) if self.error else None,
            "warnings": [str(warning) for warning in self.warnings],
        }


def current_project_root() -> Optional[Path]:
    """Project root of the render in progress, or None outside a render."""
    return _PROJECT_ROOT.get()


@contextmanager
def published_project_root(project_dir: Path) -> Iterator[Path]:
    token = _PROJECT_ROOT.set(project_dir)
    try:
        yield project_dir
    finally:
        _PROJECT_ROOT.reset(token)


def _normalize_targets(project_dir: Path, files: Sequence[str | Path]) -> List[Path]:
    targets: List[Path] = []
    for file in files:
        path = Path(file)
        target = path if path.is_absolute() else project_dir / path
        if not target.exists():
            raise MissingInputError(f"Render target does not exist: {file}")
        resolved = target.resolve()
        if resolved not in targets:
            targets.append(resolved)
    return targets


def _render_files(
    files: Sequence[Path],
    options: RenderOptions,
    always_execute: Sequence[Path],
    renderer: Renderer,
    context: ProjectContext,
    project_root: Path,
) -> Tuple[List[RenderedFile], Optional[RenderError]]:
    rendered: List[RenderedFile] = []
    first_error: Optional[RenderError] = None
    always = set(always_execute)
    for index, input_file in enumerate(files, start=1):
        LOG.info("[%d/%d] Rendering %s", index, len(files), input_file)
        try:
            outputs = renderer.render(
                input_file,
                options,
                project=context,
                project_root=project_root,
                always_execute=input_file in always,
            )
        except RenderError as exc:
            if exc.input_file is None:
                exc.input_file = input_file
            LOG.error("Render failed for %s: %s", input_file, exc)
            if first_error is None:
                first_error = exc
            continue
        rendered.extend(outputs)
    return rendered, first_error


def render_project(
    context: ProjectContext,
    options: Optional[RenderOptions] = None,
    files: Optional[Sequence[str | Path]] = None,
    *,
    renderer: Renderer,
    project_type: Optional[ProjectType] = None,
) -> ProjectRenderResult:
    """
    Render `files` (default: every project input) and assemble the output dir.

    Passing `files` that differ from the full input set makes the render
    incremental: those files always execute (unless the freezer was
    requested) and the library directory is merged rather than replaced.
    """
    ptype = project_type or context.type
    project_dir = context.dir.resolve()
    options = options or RenderOptions()
    options = replace(options, flags=replace(options.flags))

    all_inputs = list(context.files.input)
    requested = _normalize_targets(project_dir, files) if files is not None else None
    incremental = requested is not None and set(requested) != set(all_inputs)
    always_execute: List[Path] = (
        list(requested) if incremental and requested and not options.use_freezer else []
    )
    render_files: List[Path] = list(requested) if requested is not None else all_inputs

    if always_execute and ptype.incremental_render_all(context, options, render_files):
        LOG.info("Project type requires every input; rendering all with the freezer enabled.")
        render_files = all_inputs
        options.use_freezer = True

    result = ProjectRenderResult(
        base_dir=project_dir,
        output_dir=context.config.project.output_dir,
    )

    ensure_gitignore(context)
    ptype.pre_render(context)

    flags: RenderFlags = options.flags
    if flags.execute_dir is None and context.config.project.execute_dir == "project":
        flags.execute_dir = project_dir
    # One file at a time; don't leave a daemon per file resident.
    if len(render_files) > 1 and flags.execute_daemon is None:
        flags.execute_daemon = 0

    output_abs = project_dir / result.output_dir if result.output_dir else None
    if output_abs is not None:
        output_abs.mkdir(parents=True, exist_ok=True)

    with published_project_root(project_dir) as project_root:
        rendered, error = _render_files(
            render_files, options, always_execute, renderer, context, project_root
        )

        if output_abs is not None:
            report = relocate_outputs(rendered, project_dir, output_abs)
            result.warnings.extend(report.warnings)
            relocate_lib_dir(
                project_dir,
                output_abs,
                context.config.project.lib_dir,
                incremental=incremental or options.use_freezer,
                mode=TransferMode.COPY if report.keep_lib_dir else TransferMode.MOVE,
                format_lib_dirs=ptype.format_lib_dirs(),
            )
            result.warnings.extend(
                finalize_resources(
                    report.files, project_dir, output_abs, context.files.resources
                )
            )
            result.files = report.files
        else:
            result.files = [replace(item, resource_files=[]) for item in rendered]

        result.error = error

        output_root = output_abs or project_dir
        ptype.post_render(
            context,
            incremental,
            [
                ProjectOutputFile(file=output_root / item.file, format=item.format)
                for item in result.files
            ],
        )

    if result.warnings:
        LOG.warning("Render completed with %d warning(s).", len(result.warnings))
    LOG.info(
        "Project render completed | files=%d incremental=%s error=%s",
        len(result.files),
        incremental,
        bool(result.error),
    )
    return result


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )


def load_renderer(target: str) -> Renderer:
    """Import a renderer from `module:attribute`; classes are instantiated."""
    module_name, _, attribute = target.partition(":")
    if not module_name or not attribute:
        raise ValueError(f"Renderer '{target}' must use module:attribute format.")
    module = importlib.import_module(module_name)
    obj = getattr(module, attribute)
    return obj() if isinstance(obj, type) else obj


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Incremental project renderer.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument(
        "path",
        type=Path,
        nargs="?",
        default=Path("."),
        help="Project directory (or a file inside it).",
    )
    parser.add_argument(
        "--file",
        action="append",
        dest="files",
        help=(
            "Render only this input (repeatable, relative to the current directory); "
            "makes the render incremental."
        ),
    )
    parser.add_argument(
        "--to",
        type=str,
        default=None,
        help="Target format passed through to the renderer.",
    )
    parser.add_argument(
        "--use-freezer",
        action="store_true",
        help="Allow frozen execution results for explicitly requested files.",
    )
    parser.add_argument(
        "--renderer",
        type=str,
        default=None,
        help="Renderer to use, as module:attribute.",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="List inputs and index freshness without rendering.",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging.",
    )
    parser.add_argument(
        "--quiet",
        action="store_true",
        help="Ask the renderer for quiet output.",
    )
    return parser


def _log_plan(context: ProjectContext) -> None:
    cache = InputIndexCache(context.dir)
    LOG.info(
        "Project plan | dir=%s engines=%s output_dir=%s",
        context.dir,
        context.engines,
        context.config.project.output_dir,
    )
    LOG.debug("Project config | %s", context.config.describe())
    for input_file in context.files.input:
        relative = input_file.relative_to(context.dir)
        LOG.info(
            "Input | %s index=%s",
            relative.as_posix(),
            "stale" if cache.is_stale(relative) else "fresh",
        )
    for resource in context.files.resources:
        LOG.info("Resource | %s", resource)


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_arg_parser()
    args = parser.parse_args(argv)
    _setup_logging(args.verbose)

    try:
        context = project_context_for_directory(args.path)
    except ConfigError as exc:
        LOG.error("Invalid project configuration: %s", exc)
        return 2

    if args.dry_run:
        LOG.info("Dry run enabled; no renders will be executed.")
        _log_plan(context)
        return 0

    if not args.renderer:
        parser.error("--renderer is required unless --dry-run is given.")

    targets = [Path.cwd() / file for file in args.files] if args.files else None
    options = RenderOptions(
        use_freezer=args.use_freezer,
        flags=RenderFlags(to=args.to, quiet=args.quiet),
    )
    try:
        result = render_project(
            context,
            options,
            targets,
            renderer=load_renderer(args.renderer),
        )
    except MissingInputError as exc:
        LOG.error("%s", exc)
        return 2

    if result.error:
        LOG.error("Render failed: %s", result.error)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
