from __future__ import annotations

from pathlib import Path
from typing import List

import pytest

from projectrender.collaborators import (
    DefaultProjectType,
    RenderError,
    RenderFlags,
    RenderOptions,
    RenderedFile,
)
from projectrender.project_context import project_context
from projectrender import render_project as rp


class FakeRenderer:
    def __init__(self, fail=(), explode=()) -> None:
        self.fail = set(fail)
        self.explode = set(explode)
        self.calls: List[tuple] = []
        self.options: List[RenderOptions] = []
        self.roots: List[Path] = []

    def render(self, input_file, options, *, project, project_root, always_execute):
        self.calls.append((input_file.name, always_execute))
        self.options.append(options)
        self.roots.append(rp.current_project_root())
        assert project_root == project.dir
        if input_file.name in self.explode:
            raise RuntimeError("renderer crashed")
        if input_file.name in self.fail:
            raise RenderError(f"could not render {input_file.name}")

        output = input_file.with_suffix(".html")
        output.write_text(f"rendered {input_file.name}")
        support = input_file.with_name(f"{input_file.stem}_files")
        support.mkdir(exist_ok=True)
        (support / "figure.png").write_text("fig")
        lib = project.dir / "site_libs" / "quarto-html"
        lib.mkdir(parents=True, exist_ok=True)
        (lib / "quarto.js").write_text("js")
        return [
            RenderedFile(
                input=input_file,
                file=output.relative_to(project.dir),
                format={"metadata": {"title": input_file.stem}},
                supporting=[support.relative_to(project.dir)],
            )
        ]

    def resolve_formats(self, input_file, project):
        return {}

    def partition_markdown(self, input_file, engine):
        raise NotImplementedError


class RecordingType(DefaultProjectType):
    name = "recording"

    def __init__(self, render_all: bool = False) -> None:
        self.render_all = render_all
        self.events: List[tuple] = []

    def incremental_render_all(self, context, options, files):
        self.events.append(("render_all?", [path.name for path in files]))
        return self.render_all

    def pre_render(self, context):
        self.events.append(("pre",))

    def post_render(self, context, incremental, outputs):
        self.events.append(("post", incremental, [item.file for item in outputs]))


def _project(tmp_path: Path, config: str = "project:\n  output-dir: _site\n  lib-dir: site_libs\ncss: styles.css\n"):
    root = tmp_path.resolve()
    (root / "_project.yml").write_text(config)
    (root / "styles.css").write_text("body {}")
    (root / "a.qmd").write_text("# A\n")
    (root / "b.qmd").write_text("# B\n")
    context = project_context(root)
    assert context is not None
    return root, context


def test_full_render_assembles_output_dir(tmp_path: Path) -> None:
    root, context = _project(tmp_path)
    renderer = FakeRenderer()
    ptype = RecordingType()

    result = rp.render_project(context, renderer=renderer, project_type=ptype)

    site = root / "_site"
    assert renderer.calls == [("a.qmd", False), ("b.qmd", False)]
    assert result.error is None
    assert result.output_dir == "_site"
    assert [item.file for item in result.files] == [Path("a.html"), Path("b.html")]
    assert (site / "a.html").read_text() == "rendered a.qmd"
    assert (site / "b_files" / "figure.png").exists()
    assert (site / "site_libs" / "quarto-html" / "quarto.js").exists()
    assert (site / "styles.css").exists()
    assert not (root / "a.html").exists()
    assert not (root / "site_libs").exists()
    assert (root / ".project" / "_freeze" / "site_libs" / "quarto-html" / "quarto.js").exists()
    assert ptype.events == [
        ("pre",),
        ("post", False, [site / "a.html", site / "b.html"]),
    ]


def test_full_render_sets_execution_flags(tmp_path: Path) -> None:
    _, context = _project(
        tmp_path,
        "project:\n  output-dir: _site\n  execute-dir: project\n",
    )
    renderer = FakeRenderer()
    options = RenderOptions(flags=RenderFlags(to="html"))

    rp.render_project(context, options, renderer=renderer)

    flags = renderer.options[0].flags
    assert flags.execute_daemon == 0
    assert flags.execute_dir == context.dir
    assert flags.to == "html"
    assert options.flags.execute_daemon is None


def test_explicit_subset_always_executes(tmp_path: Path) -> None:
    _, context = _project(tmp_path)
    renderer = FakeRenderer()
    ptype = RecordingType()

    rp.render_project(context, files=["a.qmd"], renderer=renderer, project_type=ptype)

    assert renderer.calls == [("a.qmd", True)]
    assert renderer.options[0].flags.execute_daemon is None
    assert ptype.events[0] == ("render_all?", ["a.qmd"])
    assert ptype.events[-1][:2] == ("post", True)


def test_explicit_subset_with_freezer_does_not_force_execution(tmp_path: Path) -> None:
    _, context = _project(tmp_path)
    renderer = FakeRenderer()
    ptype = RecordingType(render_all=True)

    rp.render_project(
        context,
        RenderOptions(use_freezer=True),
        ["a.qmd"],
        renderer=renderer,
        project_type=ptype,
    )

    assert renderer.calls == [("a.qmd", False)]
    assert ptype.events[0] == ("pre",)


def test_explicit_full_set_is_not_incremental(tmp_path: Path) -> None:
    root, context = _project(tmp_path)
    renderer = FakeRenderer()

    rp.render_project(context, files=[root / "b.qmd", "a.qmd"], renderer=renderer)

    assert renderer.calls == [("b.qmd", False), ("a.qmd", False)]


def test_project_type_can_require_full_render(tmp_path: Path) -> None:
    _, context = _project(tmp_path)
    renderer = FakeRenderer()
    options = RenderOptions()

    rp.render_project(
        context,
        options,
        ["b.qmd"],
        renderer=renderer,
        project_type=RecordingType(render_all=True),
    )

    assert renderer.calls == [("a.qmd", False), ("b.qmd", True)]
    assert all(item.use_freezer for item in renderer.options)
    assert options.use_freezer is False


def test_missing_target_is_rejected(tmp_path: Path) -> None:
    _, context = _project(tmp_path)
    renderer = FakeRenderer()

    with pytest.raises(rp.MissingInputError):
        rp.render_project(context, files=["missing.qmd"], renderer=renderer)

    assert renderer.calls == []


def test_failed_input_does_not_stop_the_render(tmp_path: Path) -> None:
    root, context = _project(tmp_path)
    renderer = FakeRenderer(fail={"a.qmd"})

    result = rp.render_project(context, renderer=renderer)

    assert renderer.calls == [("a.qmd", False), ("b.qmd", False)]
    assert isinstance(result.error, RenderError)
    assert result.error.input_file == root / "a.qmd"
    assert [item.file for item in result.files] == [Path("b.html")]
    assert (root / "_site" / "b.html").exists()
    assert result.describe()["error"] == "could not render a.qmd"


def test_project_root_is_scoped_to_the_render(tmp_path: Path) -> None:
    root, context = _project(tmp_path)
    renderer = FakeRenderer()

    assert rp.current_project_root() is None
    rp.render_project(context, renderer=renderer)
    assert renderer.roots == [root, root]
    assert rp.current_project_root() is None

    crashing = FakeRenderer(explode={"a.qmd"})
    with pytest.raises(RuntimeError):
        rp.render_project(context, renderer=crashing)
    assert crashing.roots == [root]
    assert rp.current_project_root() is None


def test_missing_resource_is_a_warning(tmp_path: Path) -> None:
    root, context = _project(tmp_path)
    (root / "styles.css").unlink()

    result = rp.render_project(context, renderer=FakeRenderer())

    assert result.error is None
    assert [str(warning) for warning in result.warnings] == ["File 'styles.css' was not found."]


def test_render_without_output_dir_leaves_files_in_place(tmp_path: Path) -> None:
    root, context = _project(tmp_path, "title: In place\n")
    renderer = FakeRenderer()

    result = rp.render_project(context, renderer=renderer)

    assert (root / "a.html").exists()
    assert (root / "site_libs" / "quarto-html" / "quarto.js").exists()
    assert all(item.resource_files == [] for item in result.files)


def test_main_dry_run_and_missing_renderer(tmp_path: Path) -> None:
    root, _ = _project(tmp_path)

    assert rp.main([str(root), "--dry-run"]) == 0
    with pytest.raises(SystemExit):
        rp.main([str(root)])


def test_main_reports_config_errors(tmp_path: Path) -> None:
    (tmp_path / "_project.yml").write_text("project: [oops\n")

    assert rp.main([str(tmp_path), "--dry-run"]) == 2


def test_load_renderer_instantiates_classes() -> None:
    renderer = rp.load_renderer(f"{__name__}:FakeRenderer")
    assert isinstance(renderer, FakeRenderer)

    with pytest.raises(ValueError):
        rp.load_renderer("no_attribute")


def test_main_resolves_files_against_working_directory(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    (tmp_path / "docs").mkdir()
    root, _ = _project(tmp_path / "docs")
    monkeypatch.chdir(tmp_path)

    code = rp.main(
        ["docs", "--file", "docs/a.qmd", "--renderer", f"{__name__}:FakeRenderer"]
    )

    assert code == 0
    assert (root / "_site" / "a.html").read_text() == "rendered a.qmd"
    assert not (root / "_site" / "b.html").exists()


def test_main_rejects_missing_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    (tmp_path / "docs").mkdir()
    _project(tmp_path / "docs")
    monkeypatch.chdir(tmp_path)

    code = rp.main(["docs", "--file", "a.qmd", "--renderer", f"{__name__}:FakeRenderer"])

    assert code == 2
