from __future__ import annotations

from dataclasses import dataclass

import pytest

from dynamo_update import (
    ConditionFailedError,
    ModelDefinition,
    NotFoundError,
    Table,
    ValidationError,
    dynamo_field,
)
from dynamo_update.mocks import FakeDynamoDBClient, client_error


@dataclass(frozen=True)
class Item:
    pk: str = dynamo_field(name="PK", roles=["pk"])
    sk: str = dynamo_field(name="SK", roles=["sk"])
    value: int = dynamo_field(name="value")
    note: str = dynamo_field(name="note", omitempty=True, default="")


@dataclass(frozen=True)
class Single:
    pk: int = dynamo_field(name="id", roles=["pk"])
    flag: bool = False


def _table(client: FakeDynamoDBClient) -> Table[Item]:
    return Table(ModelDefinition.from_dataclass(Item, table_name="items"), client=client)


def test_table_requires_a_table_name() -> None:
    with pytest.raises(ValueError, match="table_name is required"):
        Table(ModelDefinition.from_dataclass(Item), client=object())

    table = Table(ModelDefinition.from_dataclass(Item), client=object(), table_name="override")
    assert table.name == "override"


def test_put_encodes_item_and_condition() -> None:
    client = FakeDynamoDBClient()
    client.expect(
        "put_item",
        {
            "TableName": "items",
            "Item": {"PK": {"S": "A"}, "SK": {"S": "B"}, "value": {"N": "1"}},
            "ConditionExpression": "attribute_not_exists(#n1)",
            "ExpressionAttributeNames": {"#n1": "PK"},
        },
    )

    _table(client).put(Item(pk="A", sk="B", value=1), condition="attribute_not_exists('PK')")

    client.assert_no_pending()
    assert "note" not in client.calls[0][1]["Item"]
    assert "ExpressionAttributeValues" not in client.calls[0][1]


def test_put_rejects_missing_keys() -> None:
    table = _table(FakeDynamoDBClient())

    with pytest.raises(ValidationError, match="missing pk"):
        table.put(Item(pk="", sk="B", value=1))
    with pytest.raises(ValidationError, match="missing sk"):
        table.put(Item(pk="A", sk="", value=1))


def test_put_maps_condition_failures() -> None:
    client = FakeDynamoDBClient()
    client.expect("put_item", error=client_error("ConditionalCheckFailedException", operation="PutItem"))

    with pytest.raises(ConditionFailedError):
        _table(client).put(Item(pk="A", sk="B", value=1), condition="attribute_not_exists('PK')")


def test_get_decodes_item_or_raises_not_found() -> None:
    client = FakeDynamoDBClient()
    client.expect(
        "get_item",
        {"Key": {"PK": {"S": "A"}, "SK": {"S": "B"}}, "ConsistentRead": True},
        response={"Item": {"PK": {"S": "A"}, "SK": {"S": "B"}, "value": {"N": "7"}}},
    )
    client.expect("get_item", response={})
    client.expect("get_item", error=client_error("ResourceNotFoundException", "no table", operation="GetItem"))
    table = _table(client)

    assert table.get("A", "B", consistent_read=True) == Item(pk="A", sk="B", value=7)
    with pytest.raises(NotFoundError, match="item not found"):
        table.get("A", "C")
    with pytest.raises(NotFoundError, match="no table"):
        table.get("A", "B")


def test_delete_renders_condition_with_values() -> None:
    client = FakeDynamoDBClient()
    client.expect(
        "delete_item",
        {
            "Key": {"PK": {"S": "A"}, "SK": {"S": "B"}},
            "ConditionExpression": "#n1 > :v1",
            "ExpressionAttributeNames": {"#n1": "value"},
            "ExpressionAttributeValues": {":v1": {"N": "3"}},
        },
    )
    client.expect("delete_item", error=client_error("ValidationException", "bad key", operation="DeleteItem"))
    table = _table(client)

    table.delete("A", "B", condition="'value' > ?", args=(3,))
    with pytest.raises(ValidationError, match="bad key"):
        table.delete("A", "B")


def test_key_validation() -> None:
    table = _table(FakeDynamoDBClient())
    with pytest.raises(ValidationError, match="pk is required"):
        table._to_key(None, "B")
    with pytest.raises(ValidationError, match="sk is required"):
        table._to_key("A", "")

    single = Table(ModelDefinition.from_dataclass(Single, table_name="single"), client=FakeDynamoDBClient())
    assert single._to_key(5, None) == {"id": {"N": "5"}}
    with pytest.raises(ValidationError, match="model does not define sk"):
        single._to_key(5, "x")
    with pytest.raises(ValidationError, match="key attribute must be a string, number or binary: pk"):
        single._to_key(True, None)
