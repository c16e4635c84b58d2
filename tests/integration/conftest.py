from __future__ import annotations

import os
from collections.abc import Generator
from typing import Any

import pytest
from moto import mock_aws

from dynamo_update.runtime import ClientSettings, create_dynamodb_client


@pytest.fixture(scope="session", autouse=True)
def aws_credentials() -> None:
    os.environ["AWS_ACCESS_KEY_ID"] = "testing"
    os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"  # noqa: S105
    os.environ["AWS_SECURITY_TOKEN"] = "testing"  # noqa: S105
    os.environ["AWS_SESSION_TOKEN"] = "testing"  # noqa: S105
    os.environ["AWS_DEFAULT_REGION"] = "us-east-1"


@pytest.fixture
def dynamodb_client() -> Generator[Any, None, None]:
    with mock_aws():
        client = create_dynamodb_client(ClientSettings(region="us-east-1"))
        client.create_table(
            TableName="widgets",
            KeySchema=[
                {"AttributeName": "UserID", "KeyType": "HASH"},
                {"AttributeName": "Time", "KeyType": "RANGE"},
            ],
            AttributeDefinitions=[
                {"AttributeName": "UserID", "AttributeType": "N"},
                {"AttributeName": "Time", "AttributeType": "S"},
            ],
            BillingMode="PAY_PER_REQUEST",
        )
        client.get_waiter("table_exists").wait(TableName="widgets")
        yield client
