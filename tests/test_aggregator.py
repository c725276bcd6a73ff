from __future__ import annotations

from controller.aggregator import aggregate
from tests.utils import FakePlatform, make_declaration


def test_preserves_declaration_order() -> None:
    platform = FakePlatform()
    platform.active = {"b": True}
    decls = [make_declaration("c"), make_declaration("a"), make_declaration("b")]

    statuses = aggregate(decls, platform)

    assert [status.name for status in statuses] == ["c", "a", "b"]
    assert [status.active for status in statuses] == [False, False, True]
    assert all(status.detection_method == "port-check" for status in statuses)


def test_failed_probe_degrades_only_its_entry() -> None:
    platform = FakePlatform()
    platform.active = {"a": True, "b": True, "c": True}
    platform.failing = {"b"}
    decls = [make_declaration("a"), make_declaration("b"), make_declaration("c")]

    statuses = aggregate(decls, platform)

    assert [status.active for status in statuses] == [True, False, True]
    assert statuses[1].detection_method == "none"


def test_empty_declarations() -> None:
    assert aggregate([], FakePlatform()) == []


def test_carries_presentation_fields() -> None:
    decl = make_declaration(
        "Web", port=80, link="http://web", image="web.png", show_port=True, controls=True
    )

    status = aggregate([decl], FakePlatform())[0]

    assert status.link == "http://web"
    assert status.image == "web.png"
    assert status.show_port is True
    assert status.controls is True
