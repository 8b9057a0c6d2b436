"""
Metadata traversal and file-resource discovery.

Arbitrary configuration values are lifted into a small tagged union
(`Scalar`, `Sequence`, `Mapping`) and processed by one recursive visitor.
Resource discovery and project-path rewriting are both built on it.
"""

from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path
from typing import Any, Callable, Collection, Iterator, List, Optional, Tuple, Union


@dataclass(frozen=True, slots=True)
class Scalar:
    value: Any


@dataclass(frozen=True, slots=True)
class Sequence:
    items: Tuple["Node", ...]


@dataclass(frozen=True, slots=True)
class Mapping:
    entries: Tuple[Tuple[str, "Node"], ...]


Node = Union[Scalar, Sequence, Mapping]


def to_node(value: Any) -> Node:
    """Lift a plain YAML/JSON style value into the tagged union."""
    if isinstance(value, dict):
        return Mapping(tuple((str(key), to_node(item)) for key, item in value.items()))
    if isinstance(value, (list, tuple)):
        return Sequence(tuple(to_node(item) for item in value))
    return Scalar(value)


def to_plain(node: Node) -> Any:
    if isinstance(node, Mapping):
        return {key: to_plain(child) for key, child in node.entries}
    if isinstance(node, Sequence):
        return [to_plain(child) for child in node.items]
    return node.value


def walk(
    node: Node,
    *,
    ignore_keys: Collection[str] = (),
    key: Optional[str] = None,
) -> Iterator[Tuple[Optional[str], Scalar]]:
    """Yield `(parent_key, scalar)` pairs, skipping subtrees under ignored keys."""
    if isinstance(node, Mapping):
        for child_key, child in node.entries:
            if child_key in ignore_keys:
                continue
            yield from walk(child, ignore_keys=ignore_keys, key=child_key)
    elif isinstance(node, Sequence):
        for child in node.items:
            yield from walk(child, ignore_keys=ignore_keys, key=key)
    else:
        yield key, node


def transform(node: Node, fn: Callable[[Scalar], Scalar]) -> Node:
    """Return a copy of `node` with every scalar passed through `fn`."""
    if isinstance(node, Mapping):
        return Mapping(tuple((key, transform(child, fn)) for key, child in node.entries))
    if isinstance(node, Sequence):
        return Sequence(tuple(transform(child, fn) for child in node.items))
    return fn(node)


def _existing_file(path: Path) -> bool:
    # Strings that are not paths at all (embedded NULs, overlong names) raise.
    try:
        return path.exists() and not path.is_dir()
    except (OSError, ValueError):
        return False


def find_resources(
    metadata: Any,
    project_dir: Path,
    ignore_keys: Collection[str] = (),
) -> List[Path]:
    """
    Return canonical paths of files referenced by string values in `metadata`.

    A string counts when it names an existing, non-directory file, either as
    an absolute path or relative to `project_dir`.
    """
    node = metadata if isinstance(metadata, (Scalar, Sequence, Mapping)) else to_node(metadata)
    resources: List[Path] = []
    for _, scalar in walk(node, ignore_keys=ignore_keys):
        if not isinstance(scalar.value, str) or not scalar.value:
            continue
        candidate = Path(scalar.value)
        if not candidate.is_absolute():
            candidate = Path(project_dir) / candidate
        if _existing_file(candidate):
            resolved = candidate.resolve()
            if resolved not in resources:
                resources.append(resolved)
    return resources


def rewrite_relative_paths(metadata: Any, project_dir: Path, input_file: Path) -> Any:
    """
    Rewrite project-relative file references so they resolve from `input_file`.

    Only relative strings that exist under `project_dir` are rewritten; the
    input mapping is not mutated.
    """
    project_dir = Path(project_dir)
    offset = os.path.relpath(project_dir, Path(input_file).parent)

    def _rewrite(scalar: Scalar) -> Scalar:
        value = scalar.value
        if not isinstance(value, str) or not value or Path(value).is_absolute():
            return scalar
        try:
            exists = (project_dir / value).exists()
        except (OSError, ValueError):
            return scalar
        if not exists:
            return scalar
        return Scalar(os.path.normpath(os.path.join(offset, value)).replace(os.sep, "/"))

    return to_plain(transform(to_node(metadata), _rewrite))


__all__ = [
    "Mapping",
    "Node",
    "Scalar",
    "Sequence",
    "find_resources",
    "rewrite_relative_paths",
    "to_node",
    "to_plain",
    "transform",
    "walk",
]
