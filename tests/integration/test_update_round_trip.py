from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import pytest

from dynamo_update import ConditionFailedError, ConsumedCapacity, ModelDefinition, Table, dynamo_field


@dataclass(frozen=True)
class Widget:
    user_id: int = dynamo_field(name="UserID", roles=["pk"])
    time: str = dynamo_field(name="Time", roles=["sk"])
    msg: str = dynamo_field(name="Msg", default="")
    count: int = dynamo_field(name="Count", default=0)
    meta: dict[str, str] = dynamo_field(name="Meta", default_factory=dict)
    my_set1: list[str] = dynamo_field(name="MySet1", set_=True, default_factory=list)
    my_set2: dict[str, None] = dynamo_field(name="MySet2", set_=True, default_factory=dict)
    my_set3: set[int] = dynamo_field(name="MySet3", default_factory=set)
    test: list[str] = dynamo_field(name="Test", set_=True, omitempty=True, default_factory=list)
    history: list[str] = dynamo_field(name="History", omitempty=True, default_factory=list)
    note: str | None = dynamo_field(name="Note", default=None)


def _seed(dynamodb_client: Any) -> Table[Widget]:
    table = Table(ModelDefinition.from_dataclass(Widget, table_name="widgets"), client=dynamodb_client)
    table.put(
        Widget(
            user_id=42,
            time="now",
            msg="hello",
            meta={"foo": "bar", "nope": "痛"},
            my_set1=["one", "deleteme"],
            my_set2={"a": None, "b": None, "bad1": None, "c": None, "bad2": None},
            my_set3={1, 999, 2, 3, 555},
        )
    )
    return table


def test_update_applies_every_clause(dynamodb_client: Any) -> None:
    table = _seed(dynamodb_client)

    cc = ConsumedCapacity()
    out = (
        table.update(42, "now")
        .set("Msg", "changed")
        .set_expr("Meta.$ = ?", "foo", "baz")
        .add("Count", 1)
        .add("Test", ["A", "B"])
        .remove_expr("Meta.$", "nope")
        .condition_expr("('Count' = ?) OR attribute_not_exists('Count')", 0)
        .condition_expr("'Msg' = ?", "hello")
        .delete_from_set("MySet1", ["two", "deleteme"])
        .delete_from_set("MySet2", {"a": None, "bad1": None, "bad2": None})
        .delete_from_set("MySet3", {500, 555})
        .consumed_capacity(cc)
        .value()
    )

    expected = Widget(
        user_id=42,
        time="now",
        msg="changed",
        count=1,
        meta={"foo": "baz"},
        my_set1=["one"],
        my_set2={"b": None, "c": None},
        my_set3={1, 2, 3, 999},
        test=["A", "B"],
    )
    assert out == expected
    assert table.get(42, "now", consistent_read=True) == expected
    assert cc.requests == 1


def test_only_updated_values_return_changed_attributes(dynamodb_client: Any) -> None:
    table = _seed(dynamodb_client)

    updated = table.update(42, "now").set("Msg", "hello again").add("Count", 1).only_updated_value()
    assert updated.msg == "hello again"
    assert updated.count == 1
    assert updated.meta == {}
    assert updated.my_set1 == []

    previous = table.update(42, "now").set("Msg", "third").add("Count", 1).only_updated_old_value()
    assert previous.msg == "hello again"
    assert previous.count == 1
    assert previous.meta == {}


def test_failed_condition_leaves_item_untouched(dynamodb_client: Any) -> None:
    table = _seed(dynamodb_client)

    with pytest.raises(ConditionFailedError):
        table.update(42, "now").add("Count", 1).condition_expr("'Count' > ?", 100).value()

    assert table.get(42, "now", consistent_read=True).count == 0


def test_every_condition_must_hold(dynamodb_client: Any) -> None:
    table = _seed(dynamodb_client)

    with pytest.raises(ConditionFailedError):
        (
            table.update(42, "now")
            .set("Msg", "changed")
            .add("Count", 1)
            .condition_expr("'Count' > ?", -1)
            .condition_expr("'Msg' = ?", "nope")
            .run()
        )

    current = table.get(42, "now", consistent_read=True)
    assert current.msg == "hello"
    assert current.count == 0


def test_deleting_every_member_removes_the_set(dynamodb_client: Any) -> None:
    table = _seed(dynamodb_client)

    table.update(42, "now").delete_from_set("MySet1", ["one", "deleteme"]).run()

    item = dynamodb_client.get_item(TableName="widgets", Key={"UserID": {"N": "42"}, "Time": {"S": "now"}})["Item"]
    assert "MySet1" not in item
    assert table.get(42, "now").my_set1 == []


def test_none_and_empty_values_remove_or_null_attributes(dynamodb_client: Any) -> None:
    table = _seed(dynamodb_client)

    table.update(42, "now").set("Meta.'abc'", "x").set("Note", "n").add("Test", ["A"]).run()
    assert table.get(42, "now").meta == {"foo": "bar", "nope": "痛", "abc": "x"}

    old = table.update(42, "now").set("Meta.'abc'", None).set("Note", None).set("Test", []).old_value()
    assert old is not None
    assert old.note == "n"
    assert old.test == ["A"]

    item = dynamodb_client.get_item(TableName="widgets", Key={"UserID": {"N": "42"}, "Time": {"S": "now"}})["Item"]
    assert item["Note"] == {"NULL": True}
    assert "Test" not in item
    assert "abc" not in item["Meta"]["M"]


def test_list_helpers_and_if_not_exists(dynamodb_client: Any) -> None:
    table = _seed(dynamodb_client)

    table.update(42, "now").set_if_not_exists("Count", 10).set_if_not_exists("History", ["b"]).run()
    table.update(42, "now").append_to_list("History", ["c"]).run()
    out = table.update(42, "now").prepend_to_list("History", ["a"]).decrement("Count", 2).value()

    assert out.history == ["a", "b", "c"]
    assert out.count == -2
