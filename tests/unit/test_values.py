"""Tests for the template value tree and debug flattening."""

import pytest

from inkscreen_lite.domain import values
from inkscreen_lite.domain.values import NIL, Array, Nil, Object, Scalar

pytestmark = [pytest.mark.unit, pytest.mark.fast]


def test_from_python_builds_tagged_tree_preserving_key_order() -> None:
    tree = values.from_python({"b": 1, "a": [True, None], "c": {"d": "x"}})

    assert isinstance(tree, Object)
    assert tree.keys() == ["b", "a", "c"]
    assert tree.get("b") == Scalar(1)
    assert tree.get("a") == Array((Scalar(True), NIL))
    assert tree.get("c") == Object((("d", Scalar("x")),))
    assert tree.get("missing") is None


def test_to_python_inverts_from_python() -> None:
    data = {"device": {"width": 800, "fw_version": None}, "metrics": {"cpu": []}}
    assert values.to_python(values.from_python(data)) == data


def test_from_python_when_unsupported_type_then_type_error() -> None:
    with pytest.raises(TypeError, match="object"):
        values.from_python({"x": object()})


def test_values_are_immutable() -> None:
    scalar = Scalar(1)
    with pytest.raises(AttributeError):
        scalar.value = 2  # type: ignore[misc]


@pytest.mark.parametrize(
    "value,expected",
    [
        (Scalar(True), "true"),
        (Scalar(False), "false"),
        (Scalar(42), "42"),
        (Scalar(42.0), "42"),
        (Scalar(42.5), "42.5"),
        (Scalar("03:07 pm"), "03:07 pm"),
        (Nil(), ""),
    ],
)
def test_stringify_scalar(value: values.Value, expected: str) -> None:
    assert values.stringify_scalar(value) == expected  # type: ignore[arg-type]


def test_flatten_orders_scalars_before_nested_each_alphabetically() -> None:
    tree = values.from_python(
        {
            "timezone": "PST",
            "metrics": {"temp": [], "cpu": [{"labels": {"host": "pi"}, "value": 42.5}]},
            "device": {"width": 800, "height": 480, "fw_version": "1.0"},
            "date": "2025-01-15",
            "time": "03:07 pm",
        }
    )

    rows = [(r.path, r.value) for r in values.flatten(tree)]

    assert rows == [
        ("date", "2025-01-15"),
        ("time", "03:07 pm"),
        ("timezone", "PST"),
        ("device.fw_version", "1.0"),
        ("device.height", "480"),
        ("device.width", "800"),
        ("metrics.cpu[1].value", "42.5"),
        ("metrics.cpu[1].labels.host", "pi"),
        ("metrics.temp", "[]"),
    ]


def test_flatten_uses_one_based_array_indices() -> None:
    tree = values.from_python({"xs": [1, 2]})
    assert [r.path for r in values.flatten(tree)] == ["xs[1]", "xs[2]"]


def test_flatten_nil_renders_empty_and_sorts_with_scalars() -> None:
    tree = values.from_python({"b": {"x": 1}, "a": None})
    assert [(r.path, r.value) for r in values.flatten(tree)] == [("a", ""), ("b.x", "1")]


def test_flatten_when_error_recorded_then_single_error_row_replaces_subtree() -> None:
    tree = values.from_python({"metrics": {"cpu": [], "temp": [{"labels": {}, "value": 1.0}]}})

    rows = values.flatten(tree, errors={"metrics.cpu": "connection refused"})

    assert [r.to_dict() for r in rows] == [
        {"path": "metrics.cpu", "value": "connection refused", "is_error": True},
        {"path": "metrics.temp[1].value", "value": "1", "is_error": False},
    ]
