from __future__ import annotations

import pytest

from troublecode.bundle import MAX_BUNDLE_DEPTH, NodeKind
from troublecode.errors import NonSerializableError, PathSyntaxError
from troublecode.pathindex import (
    activate_reference,
    build_path_index,
    format_path,
    parse_path,
)


def _bundle() -> dict:
    return {
        "userError": "boom",
        "logs": [
            {"level": "error", "message": "TypeError"},
            "plain entry",
        ],
        "navigator": {"languages": ["en-US", "ja"], "online": True},
        "empty": [],
    }


class RecordingHost:
    def __init__(self) -> None:
        self.revealed: list[str] = []
        self.highlighted: list[str] = []

    def reveal(self, node) -> None:
        self.revealed.append(node.path)

    def highlight(self, node) -> None:
        self.highlighted.append(node.path)


def test_paths_follow_preorder_and_insertion_order() -> None:
    index = build_path_index(_bundle())
    assert index.paths() == [
        "",
        "userError",
        "logs",
        "logs[0]",
        "logs[0].level",
        "logs[0].message",
        "logs[1]",
        "navigator",
        "navigator.languages",
        "navigator.languages[0]",
        "navigator.languages[1]",
        "navigator.online",
        "empty",
    ]


def test_index_is_deterministic() -> None:
    first = build_path_index(_bundle())
    second = build_path_index(_bundle())
    assert first.paths() == second.paths()
    assert [node.label for node in first.nodes()] == [node.label for node in second.nodes()]


def test_every_path_resolves_to_its_own_node() -> None:
    index = build_path_index(_bundle())
    for path in index:
        node = index.lookup(path)
        assert node is not None
        assert node.path == path
    assert len(set(index.paths())) == len(index)


def test_lookup_values_and_kinds() -> None:
    index = build_path_index(_bundle())
    assert index.lookup("logs[0].message").value == "TypeError"
    assert index.lookup("navigator.online").kind is NodeKind.BOOL
    assert index.lookup("navigator.languages[1]").value == "ja"
    assert index.lookup("empty").kind is NodeKind.SEQUENCE
    assert index.lookup("empty").children == ()
    assert index.root.kind is NodeKind.MAPPING


def test_unknown_paths_return_none() -> None:
    index = build_path_index(_bundle())
    assert index.lookup("logs[5]") is None
    assert index.lookup("nope.nothing") is None
    assert index.lookup(42) is None  # type: ignore[arg-type]
    assert "logs[5]" not in index
    assert "logs[0]" in index


def test_sequence_item_labels() -> None:
    index = build_path_index(_bundle())
    assert index.lookup("logs[0]").label == "logs #1"
    assert index.lookup("logs[1]").label == "logs #2"
    assert index.lookup("navigator.languages[0]").label == "languages #1"
    assert index.lookup("logs[0].level").label == "level"


def test_nested_sequence_labels_use_item() -> None:
    index = build_path_index({"grid": [[1, 2]]})
    assert index.lookup("grid[0]").label == "grid #1"
    assert index.lookup("grid[0][1]").label == "item #2"


def test_sequence_root() -> None:
    index = build_path_index([{"a": 1}, 2])
    assert index.paths() == ["", "[0]", "[0].a", "[1]"]
    assert index.lookup("[0].a").value == 1


def test_scalar_root() -> None:
    index = build_path_index("just text")
    assert index.paths() == [""]
    assert index.root.value == "just text"


def test_parent_and_depth() -> None:
    index = build_path_index(_bundle())
    node = index.lookup("logs[0].message")
    assert node.parent_path == "logs[0]"
    assert node.depth == 3
    assert index.root.parent_path is None


def test_ancestors_outermost_first() -> None:
    index = build_path_index(_bundle())
    assert [node.path for node in index.ancestors("logs[0].message")] == ["", "logs", "logs[0]"]
    assert index.ancestors("missing") == []


def test_colliding_keys_keep_first_node() -> None:
    index = build_path_index({"a.b": 1, "a": {"b": 2}})
    assert index.lookup("a.b").value == 1
    assert index.conflicts == ("a.b",)
    assert index.lookup("a").children[0].value == 2


def test_parse_and_format_paths() -> None:
    assert parse_path("") == ()
    assert parse_path("navigator.languages[0]") == ("navigator", "languages", 0)
    assert parse_path("[2].name") == (2, "name")
    assert parse_path("grid[0][1]") == ("grid", 0, 1)
    assert format_path(("navigator", "languages", 0)) == "navigator.languages[0]"
    assert format_path((2, "name")) == "[2].name"


@pytest.mark.parametrize("path", ["a..b", "a[x]", "a[0", "a]", "a.[0]"])
def test_parse_path_rejects_bad_syntax(path: str) -> None:
    with pytest.raises(PathSyntaxError):
        parse_path(path)


def test_activation_reveals_ancestors_then_highlights() -> None:
    index = build_path_index(_bundle())
    host = RecordingHost()
    assert activate_reference(index, "logs[0].message", host) is True
    assert host.revealed == ["", "logs", "logs[0]"]
    assert host.highlighted == ["logs[0].message"]


def test_activation_of_unknown_path_is_a_noop() -> None:
    index = build_path_index(_bundle())
    host = RecordingHost()
    assert activate_reference(index, "logs[9].message", host) is False
    assert host.revealed == []
    assert host.highlighted == []


def test_values_the_codec_refuses_are_not_indexed() -> None:
    cyclic: dict = {"name": "loop"}
    cyclic["self"] = cyclic
    with pytest.raises(NonSerializableError):
        build_path_index(cyclic)

    too_deep: object = 1
    for _ in range(MAX_BUNDLE_DEPTH + 1):
        too_deep = [too_deep]
    with pytest.raises(NonSerializableError):
        build_path_index(too_deep)
