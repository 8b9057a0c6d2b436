"""
Serialized re-rendering for a long-lived preview process.

Change notifications and page requests may arrive concurrently, but renders
must not overlap: `RenderQueue` runs them one at a time, in arrival order,
on a single worker thread. Requests are never dropped or cancelled.
"""

from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor
import logging
from pathlib import Path
from typing import Callable, Optional, TypeVar

from .collaborators import EngineRegistry, ExtensionEngineRegistry, RenderOptions, RenderFlags, Renderer
from .input_index import input_file_for_output_file
from .project_context import ProjectContext, project_context_for_directory
from .render_project import ProjectRenderResult, render_project

LOG = logging.getLogger("projectrender.preview")

T = TypeVar("T")


class RenderQueue:
    """Single-slot queue: at most one job in flight, the rest wait in order."""

    def __init__(self) -> None:
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="render-queue")

    def submit(self, job: Callable[[], T]) -> Future[T]:
        return self._executor.submit(job)

    def enqueue(self, job: Callable[[], T]) -> T:
        """Queue `job` and block until it has run; its exception propagates."""
        return self.submit(job).result()

    def shutdown(self) -> None:
        self._executor.shutdown(wait=True)

    def __enter__(self) -> "RenderQueue":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.shutdown()


class PreviewSession:
    """
    Holds the project context for a preview server and re-renders inputs on
    request, always through the session's `RenderQueue`.
    """

    def __init__(
        self,
        project_dir: Path,
        *,
        renderer: Renderer,
        engines: Optional[EngineRegistry] = None,
        queue: Optional[RenderQueue] = None,
    ) -> None:
        self.project_dir = Path(project_dir)
        self.renderer = renderer
        self.engines = engines or ExtensionEngineRegistry()
        self.queue = queue or RenderQueue()
        self._context = project_context_for_directory(self.project_dir, engines=self.engines)

    @property
    def project(self) -> ProjectContext:
        return self._context

    def refresh_project(self) -> ProjectContext:
        """Rebuild the context so inputs added since startup are picked up."""
        self._context = project_context_for_directory(self.project_dir, engines=self.engines)
        LOG.debug("Preview project refreshed | inputs=%d", len(self._context.files.input))
        return self._context

    def _preview_options(self) -> RenderOptions:
        return RenderOptions(
            use_freezer=True,
            dev_server_reload=True,
            flags=RenderFlags(quiet=True),
        )

    def render_input(self, input_file: Path) -> ProjectRenderResult:
        context = self._context
        return self.queue.enqueue(
            lambda: render_project(
                context,
                self._preview_options(),
                [input_file],
                renderer=self.renderer,
            )
        )

    def render_for_output(self, output: str | Path) -> Optional[ProjectRenderResult]:
        """
        Re-render the input behind `output` (relative to the output dir).

        Falls back to a refreshed context when the output is unknown, and
        returns None when no input produces it.
        """
        input_file = input_file_for_output_file(self._context, output, self.renderer, self.engines)
        if input_file is None or not input_file.exists():
            input_file = input_file_for_output_file(
                self.refresh_project(), output, self.renderer, self.engines
            )
        if input_file is None:
            LOG.debug("No input renders %s", output)
            return None
        return self.render_input(input_file)

    def close(self) -> None:
        self.queue.shutdown()


__all__ = ["PreviewSession", "RenderQueue"]
