from __future__ import annotations

import json
import os
from pathlib import Path
from typing import List, Optional

from projectrender import input_index as ii
from projectrender.markdown import partition_markdown_file
from projectrender.project_context import ProjectContext, ProjectFiles


class FakeRenderer:
    def __init__(self, title: Optional[str] = "From Format") -> None:
        self.title = title
        self.resolved: List[Path] = []

    def resolve_formats(self, input_file, project):
        self.resolved.append(input_file)
        metadata = {"title": self.title} if self.title else {}
        return {
            "html": {
                "metadata": metadata,
                "pandoc": {"output-file": f"{Path(input_file).stem}.html"},
            }
        }

    def partition_markdown(self, input_file, engine):
        return partition_markdown_file(input_file)


def _project(tmp_path: Path, files=()) -> ProjectContext:
    root = tmp_path.resolve()
    (root / "_project.yml").write_text("title: Site\n")
    inputs = []
    for name in files:
        path = root / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("# Heading Title\n\nbody\n")
        inputs.append(path)
    return ProjectContext(dir=root, files=ProjectFiles(input=inputs))


def test_index_is_reused_while_fresh(tmp_path: Path) -> None:
    project = _project(tmp_path, ["docs/page.qmd"])
    renderer = FakeRenderer()

    first = ii.input_target_index(project, "docs/page.qmd", renderer)
    index_file = ii.InputIndexCache(project.dir).path_for("docs/page.qmd")
    written_at = index_file.stat().st_mtime
    second = ii.input_target_index(project, "docs/page.qmd", renderer)

    assert first is not None and second is not None
    assert first.title == "From Format"
    assert second.to_dict() == first.to_dict()
    assert len(renderer.resolved) == 1
    assert index_file == project.dir / ".project" / "index" / "docs" / "page.qmd.json"
    assert index_file.stat().st_mtime == written_at


def test_config_change_invalidates_index(tmp_path: Path) -> None:
    project = _project(tmp_path, ["page.qmd"])
    renderer = FakeRenderer()
    ii.input_target_index(project, "page.qmd", renderer)

    index_mtime = ii.InputIndexCache(project.dir).path_for("page.qmd").stat().st_mtime
    config = project.dir / "_project.yml"
    os.utime(config, (index_mtime + 10, index_mtime + 10))

    ii.input_target_index(project, "page.qmd", renderer)

    assert len(renderer.resolved) == 2


def test_staleness_compares_index_against_input_and_config(tmp_path: Path) -> None:
    project = _project(tmp_path, ["page.qmd"])
    cache = ii.InputIndexCache(project.dir)
    index_file = cache.put(
        "page.qmd",
        ii.InputTargetIndex(title="t", markdown=partition_markdown_file(project.dir / "page.qmd")),
    )
    input_file = project.dir / "page.qmd"
    config = project.dir / "_project.yml"

    os.utime(index_file, (100, 100))
    os.utime(input_file, (50, 50))
    os.utime(config, (40, 40))
    assert cache.is_stale("page.qmd") is False
    assert cache.get("page.qmd") is not None

    os.utime(input_file, (150, 150))
    assert cache.is_stale("page.qmd") is True
    assert cache.get("page.qmd") is None


def test_corrupt_index_is_regenerated(tmp_path: Path) -> None:
    project = _project(tmp_path, ["page.qmd"])
    renderer = FakeRenderer()
    ii.input_target_index(project, "page.qmd", renderer)
    index_file = ii.InputIndexCache(project.dir).path_for("page.qmd")
    index_file.write_text("{not json")

    index = ii.input_target_index(project, "page.qmd", renderer)

    assert index is not None
    assert len(renderer.resolved) == 2
    assert json.loads(index_file.read_text())["title"] == "From Format"


def test_non_indexable_inputs(tmp_path: Path) -> None:
    project = _project(tmp_path, ["page.qmd"])
    (project.dir / "data.csv").write_text("a,b\n")
    (project.dir / "folder").mkdir()
    renderer = FakeRenderer()

    assert ii.input_target_index(project, "data.csv", renderer) is None
    assert ii.input_target_index(project, "missing.qmd", renderer) is None
    assert ii.input_target_index(project, "folder", renderer) is None
    assert renderer.resolved == []


def test_title_falls_back_to_first_heading(tmp_path: Path) -> None:
    project = _project(tmp_path, ["page.qmd"])

    index = ii.input_target_index(project, "page.qmd", FakeRenderer(title=None))

    assert index is not None
    assert index.title == "Heading Title"
    assert index.markdown.heading_text == "Heading Title"


def test_resolve_input_target(tmp_path: Path) -> None:
    project = _project(tmp_path, ["index.qmd", "docs/page.qmd"])
    renderer = FakeRenderer()

    assert ii.resolve_input_target(project, "docs/page.qmd", renderer) == (
        "From Format",
        "/docs/page.html",
    )
    assert ii.resolve_input_target(project, "index.qmd", renderer, absolute=False) == (
        "From Format",
        "index.html",
    )
    assert ii.resolve_input_target(project, "nope.qmd", renderer) is None


def test_input_file_for_output_file_and_clear(tmp_path: Path) -> None:
    project = _project(tmp_path, ["index.qmd", "docs/page.qmd"])
    renderer = FakeRenderer()

    found = ii.input_file_for_output_file(project, "docs/page.html", renderer)

    assert found == project.dir / "docs" / "page.qmd"
    assert ii.input_file_for_output_file(project, "docs/other.html", renderer) is None

    removed = ii.clear_input_index(project.dir)
    assert [path.name for path in removed] == ["page.qmd.json", "index.qmd.json"]


def test_malformed_format_entry_is_regenerated(tmp_path: Path) -> None:
    project = _project(tmp_path, ["page.qmd"])
    renderer = FakeRenderer()
    ii.input_target_index(project, "page.qmd", renderer)
    index_file = ii.InputIndexCache(project.dir).path_for("page.qmd")
    index_file.write_text(json.dumps({"formats": {"html": "oops"}, "markdown": {}}))

    found = ii.input_file_for_output_file(project, "page.html", renderer)

    assert found == project.dir / "page.qmd"
    assert len(renderer.resolved) == 2
    assert json.loads(index_file.read_text())["formats"]["html"]["pandoc"] == {
        "output-file": "page.html"
    }


def test_absolute_input_is_indexed_under_scratch_dir(tmp_path: Path) -> None:
    project = _project(tmp_path, ["docs/page.qmd"])
    renderer = FakeRenderer()

    index = ii.input_target_index(project, project.dir / "docs" / "page.qmd", renderer)
    again = ii.input_target_index(project, "docs/page.qmd", renderer)

    assert index is not None and again is not None
    assert len(renderer.resolved) == 1
    written = sorted(path.relative_to(project.dir).as_posix() for path in project.dir.rglob("*.json"))
    assert written == [".project/index/docs/page.qmd.json"]


def test_input_outside_project_is_not_indexable(tmp_path: Path) -> None:
    (tmp_path / "site").mkdir()
    project = _project(tmp_path / "site", ["page.qmd"])
    outside = tmp_path / "stray.qmd"
    outside.write_text("# Stray\n")
    renderer = FakeRenderer()

    assert ii.input_target_index(project, outside, renderer) is None
    assert renderer.resolved == []
    assert not list(tmp_path.rglob("*.json"))
