"""
Path, glob and directory-walk helpers shared by discovery and relocation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import os
import re
from pathlib import Path
from typing import Iterable, Iterator, List, Pattern, Sequence

_MAGIC = re.compile(r"[*?\[]")


@dataclass(slots=True)
class ResolvedGlobs:
    include: List[Path] = field(default_factory=list)
    exclude: List[Path] = field(default_factory=list)

    def files(self) -> List[Path]:
        """Included paths minus explicitly excluded ones, order preserved."""
        excluded = set(self.exclude)
        return [path for path in self.include if path not in excluded]


def forward_slashes(path: os.PathLike[str] | str) -> str:
    return str(path).replace(os.sep, "/")


def glob_to_regex(glob: str) -> Pattern[str]:
    """
    Translate a path glob into an anchored regular expression.

    Supports `**` (any depth, including zero directories when followed by a
    slash), `*` and `?` (never crossing a separator) and `[...]` classes.
    """
    out: List[str] = []
    i = 0
    n = len(glob)
    while i < n:
        if glob.startswith("**/", i):
            out.append("(?:.*/)?")
            i += 3
            continue
        if glob.startswith("**", i):
            out.append(".*")
            i += 2
            continue
        char = glob[i]
        if char == "*":
            out.append("[^/]*")
        elif char == "?":
            out.append("[^/]")
        elif char == "[":
            end = glob.find("]", i + 1)
            if end == -1:
                out.append(re.escape(char))
            else:
                body = glob[i + 1 : end]
                if body.startswith("!"):
                    body = "^" + body[1:]
                out.append(f"[{body}]")
                i = end + 1
                continue
        else:
            out.append(re.escape(char))
        i += 1
    return re.compile("^" + "".join(out) + "$")


def matches_any(relative: str, patterns: Sequence[Pattern[str]]) -> bool:
    return any(pattern.match(relative) for pattern in patterns)


def _expand_glob(root: Path, pattern: str) -> List[Path]:
    pattern = pattern.lstrip("/")
    if not pattern:
        return []
    if _MAGIC.search(pattern):
        return sorted(path.resolve() for path in root.glob(pattern))
    candidate = root / pattern
    if candidate.exists():
        return [candidate.resolve()]
    return []


def resolve_path_globs(
    root: Path,
    globs: Iterable[str],
    exclude: Iterable[str] = (),
) -> ResolvedGlobs:
    """
    Expand `globs` against `root`.

    Globs prefixed with `!` populate the `exclude` list. Paths whose
    root-relative form matches one of the `exclude` patterns are dropped from
    the includes altogether.
    """
    root = Path(root).resolve()
    result = ResolvedGlobs()
    for glob in globs:
        target = result.include
        if glob.startswith("!"):
            target = result.exclude
            glob = glob[1:]
        for path in _expand_glob(root, glob):
            if path not in target:
                target.append(path)

    patterns = [glob_to_regex(item) for item in exclude]
    if patterns:
        kept: List[Path] = []
        for path in result.include:
            try:
                relative = forward_slashes(path.relative_to(root))
            except ValueError:
                kept.append(path)
                continue
            if not matches_any(relative, patterns):
                kept.append(path)
        result.include = kept
    return result


def walk_files(directory: Path, *, skip_hidden: bool = True) -> Iterator[Path]:
    """Yield files under `directory` in sorted order without following symlinks."""
    for current, dirnames, filenames in os.walk(directory, followlinks=False):
        current_path = Path(current)
        kept_dirs = []
        for name in sorted(dirnames):
            if skip_hidden and name.startswith("."):
                continue
            if (current_path / name).is_symlink():
                continue
            kept_dirs.append(name)
        dirnames[:] = kept_dirs
        for name in sorted(filenames):
            if skip_hidden and name.startswith("."):
                continue
            path = current_path / name
            if path.is_symlink():
                continue
            yield path


def is_within(path: Path, parent: Path) -> bool:
    try:
        Path(path).relative_to(parent)
    except ValueError:
        return False
    return True


__all__ = [
    "ResolvedGlobs",
    "forward_slashes",
    "glob_to_regex",
    "is_within",
    "matches_any",
    "resolve_path_globs",
    "walk_files",
]
