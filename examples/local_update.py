from __future__ import annotations

import os
import uuid
from dataclasses import dataclass

from dynamo_update import ClientSettings, ConsumedCapacity, ModelDefinition, Table, create_dynamodb_client, dynamo_field


@dataclass(frozen=True)
class Counter:
    pk: str = dynamo_field(roles=["pk"])
    sk: str = dynamo_field(roles=["sk"])
    hits: int = dynamo_field(default=0)
    tags: list[str] = dynamo_field(set_=True, omitempty=True, default_factory=list)
    labels: dict[str, str] = dynamo_field(default_factory=dict)


def main() -> None:
    settings = ClientSettings.from_env()
    if settings.endpoint_url is None:
        settings = ClientSettings(
            region=settings.region or "us-east-1",
            endpoint_url=os.environ.get("DYNAMODB_ENDPOINT", "http://localhost:8000"),
        )
    client = create_dynamodb_client(settings)
    table_name = f"dynamo_update_example_{uuid.uuid4().hex[:12]}"

    client.create_table(
        TableName=table_name,
        KeySchema=[{"AttributeName": "pk", "KeyType": "HASH"}, {"AttributeName": "sk", "KeyType": "RANGE"}],
        AttributeDefinitions=[
            {"AttributeName": "pk", "AttributeType": "S"},
            {"AttributeName": "sk", "AttributeType": "S"},
        ],
        BillingMode="PAY_PER_REQUEST",
    )
    client.get_waiter("table_exists").wait(TableName=table_name)

    try:
        model = ModelDefinition.from_dataclass(Counter, table_name=table_name)
        table = Table(model, client=client)

        table.put(Counter(pk="A", sk="001", labels={"env": "dev"}))

        cc = ConsumedCapacity()
        out = (
            table.update("A", "001")
            .increment("hits")
            .add("tags", ["blue", "green"])
            .set_expr("labels.$ = ?", "owner", "ops")
            .condition_expr("'hits' = ?", 0)
            .consumed_capacity(cc)
            .value()
        )
        print("updated:", out)
        print("capacity units:", cc.total)

        changed = table.update("A", "001").delete_from_set("tags", ["blue"]).only_updated_value()
        print("only updated:", changed.tags)
    finally:
        client.delete_table(TableName=table_name)


if __name__ == "__main__":
    main()
