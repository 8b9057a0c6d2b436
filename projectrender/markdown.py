"""
Split a markdown source into front matter, first heading and body.

Renderers may use `partition_markdown` to implement
`Renderer.partition_markdown`; the index cache only relies on
`PartitionedMarkdown.heading_text`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import re
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

_FRONT_MATTER = re.compile(r"\A---[ \t]*\r?\n(.*?)\r?\n(?:---|\.\.\.)[ \t]*(?:\r?\n|\Z)", re.DOTALL)
_ATX_HEADING = re.compile(r"^#{1,6}[ \t]+(.+?)[ \t#]*$", re.MULTILINE)
_HEADING_ATTR = re.compile(r"[ \t]*(\{[^}]*\})[ \t]*$")


@dataclass(slots=True)
class PartitionedMarkdown:
    yaml: Optional[Dict[str, Any]] = None
    heading_text: Optional[str] = None
    heading_attr: Optional[str] = None
    contents: str = ""
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "yaml": self.yaml,
            "headingText": self.heading_text,
            "headingAttr": self.heading_attr,
            "contents": self.contents,
            **self.extra,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PartitionedMarkdown":
        known = {"yaml", "headingText", "headingAttr", "contents"}
        return cls(
            yaml=data.get("yaml"),
            heading_text=data.get("headingText"),
            heading_attr=data.get("headingAttr"),
            contents=str(data.get("contents") or ""),
            extra={key: value for key, value in data.items() if key not in known},
        )


def partition_markdown(text: str) -> PartitionedMarkdown:
    front: Optional[Dict[str, Any]] = None
    body = text
    match = _FRONT_MATTER.match(text)
    if match:
        try:
            loaded = yaml.safe_load(match.group(1))
        except yaml.YAMLError:
            loaded = None
        if isinstance(loaded, dict):
            front = loaded
            body = text[match.end():]

    heading_text = None
    heading_attr = None
    heading = _ATX_HEADING.search(body)
    if heading:
        heading_text = heading.group(1)
        attr = _HEADING_ATTR.search(heading_text)
        if attr:
            heading_attr = attr.group(1)
            heading_text = heading_text[: attr.start()]
        heading_text = heading_text.strip() or None

    return PartitionedMarkdown(
        yaml=front,
        heading_text=heading_text,
        heading_attr=heading_attr,
        contents=body,
    )


def partition_markdown_file(path: Path) -> PartitionedMarkdown:
    return partition_markdown(Path(path).read_text(encoding="utf-8"))


__all__ = ["PartitionedMarkdown", "partition_markdown", "partition_markdown_file"]
