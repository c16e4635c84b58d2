from __future__ import annotations

import json
from importlib.resources import files
from typing import TYPE_CHECKING, Any

from .codec import AttributeValue, TextMarshaler, decode, decode_item, encode, encode_item, encode_set
from .errors import (
    AwsError,
    BuilderFinalizedError,
    ConditionFailedError,
    DynamoUpdateError,
    EncodingError,
    NotFoundError,
    ValidationError,
)
from .expression import Fragment, Path, parse_path
from .model import (
    AttributeConverter,
    AttributeDefinition,
    ModelDefinition,
    ModelDefinitionError,
    dynamo_field,
)
from .request import ConsumedCapacity, ReturnValues, UpdateRequest

if TYPE_CHECKING:
    from .runtime import ClientSettings, create_boto3_config, create_dynamodb_client, is_lambda_environment
    from .table import Table
    from .update_builder import UpdateBuilder


def _read_version() -> str:
    try:
        data = json.loads(files(__package__).joinpath("version.json").read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return "0.0.0"

    version = data.get("version")
    return version if isinstance(version, str) and version else "0.0.0"


__version__ = _read_version()


def __getattr__(name: str) -> Any:
    if name == "Table":
        from .table import Table

        return Table
    if name == "UpdateBuilder":
        from .update_builder import UpdateBuilder

        return UpdateBuilder
    if name in {"ClientSettings", "create_boto3_config", "create_dynamodb_client", "is_lambda_environment"}:
        from . import runtime

        return getattr(runtime, name)
    raise AttributeError(name)


__all__ = [
    "AttributeConverter",
    "AttributeDefinition",
    "AttributeValue",
    "AwsError",
    "BuilderFinalizedError",
    "ClientSettings",
    "ConditionFailedError",
    "ConsumedCapacity",
    "create_boto3_config",
    "create_dynamodb_client",
    "decode",
    "decode_item",
    "DynamoUpdateError",
    "dynamo_field",
    "encode",
    "encode_item",
    "encode_set",
    "EncodingError",
    "Fragment",
    "is_lambda_environment",
    "ModelDefinition",
    "ModelDefinitionError",
    "NotFoundError",
    "parse_path",
    "Path",
    "ReturnValues",
    "Table",
    "TextMarshaler",
    "UpdateBuilder",
    "UpdateRequest",
    "ValidationError",
    "__version__",
]
