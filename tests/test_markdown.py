from __future__ import annotations

from projectrender.markdown import PartitionedMarkdown, partition_markdown


def test_partition_front_matter_and_heading() -> None:
    text = "---\ntitle: Front\nauthor: me\n---\n\nIntro text\n\n## Methods {#sec-methods}\n\nBody\n"
    partitioned = partition_markdown(text)

    assert partitioned.yaml == {"title": "Front", "author": "me"}
    assert partitioned.heading_text == "Methods"
    assert partitioned.heading_attr == "{#sec-methods}"
    assert partitioned.contents.startswith("\nIntro text")


def test_partition_without_front_matter() -> None:
    partitioned = partition_markdown("# Hello World #\n\ntext")
    assert partitioned.yaml is None
    assert partitioned.heading_text == "Hello World"


def test_partition_no_heading() -> None:
    partitioned = partition_markdown("just text")
    assert partitioned.heading_text is None


def test_partitioned_markdown_dict_round_trip_keeps_extra() -> None:
    data = {"yaml": None, "headingText": "T", "headingAttr": None, "contents": "c", "srcHeading": "# T"}
    partitioned = PartitionedMarkdown.from_dict(data)
    assert partitioned.heading_text == "T"
    assert partitioned.to_dict() == data
