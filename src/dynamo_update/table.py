from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from botocore.exceptions import ClientError

from .aws_errors import map_client_error as _map_client_error
from .codec import AttributeValue, decode_item, encode, encode_item, is_empty, null
from .errors import NotFoundError, ValidationError
from .expression import Fragment, Placeholders
from .model import AttributeDefinition, ModelDefinition

if TYPE_CHECKING:
    from .update_builder import UpdateBuilder


class Table[T]:
    def __init__(
        self,
        model: ModelDefinition[T],
        *,
        client: Any | None = None,
        table_name: str | None = None,
    ) -> None:
        if table_name is None:
            table_name = model.table_name
        if not table_name:
            raise ValueError("table_name is required (or set ModelDefinition.table_name)")

        self._model = model
        self._table_name = table_name
        if client is None:
            from .runtime import create_dynamodb_client

            client = create_dynamodb_client()
        self._client: Any = client

    @property
    def name(self) -> str:
        return self._table_name

    def put(self, item: T, *, condition: str | None = None, args: tuple[Any, ...] = ()) -> None:
        req: dict[str, Any] = {"TableName": self._table_name, "Item": self._to_item(item)}
        if condition:
            self._apply_condition(req, condition, args)

        try:
            self._client.put_item(**req)
        except ClientError as err:
            raise _map_client_error(err) from err

    def get(self, pk: Any, sk: Any | None = None, *, consistent_read: bool = False) -> T:
        key = self._to_key(pk, sk)
        try:
            resp = self._client.get_item(TableName=self._table_name, Key=key, ConsistentRead=consistent_read)
        except ClientError as err:
            raise _map_client_error(err) from err

        item = resp.get("Item")
        if not item:
            raise NotFoundError("item not found")
        return self._from_item(item)

    def delete(
        self,
        pk: Any,
        sk: Any | None = None,
        *,
        condition: str | None = None,
        args: tuple[Any, ...] = (),
    ) -> None:
        req: dict[str, Any] = {"TableName": self._table_name, "Key": self._to_key(pk, sk)}
        if condition:
            self._apply_condition(req, condition, args)

        try:
            self._client.delete_item(**req)
        except ClientError as err:
            raise _map_client_error(err) from err

    def update(self, pk: Any, sk: Any | None = None) -> UpdateBuilder[T]:
        from .update_builder import UpdateBuilder

        return UpdateBuilder(self, pk, sk)

    def _apply_condition(self, req: dict[str, Any], condition: str, args: tuple[Any, ...]) -> None:
        placeholders = Placeholders()
        fragment = Fragment.parse(condition, args).map_values(lambda v: encode(v) or null())
        req["ConditionExpression"] = fragment.render(placeholders)
        if placeholders.names:
            req["ExpressionAttributeNames"] = placeholders.names
        if placeholders.values:
            req["ExpressionAttributeValues"] = placeholders.values

    def _to_item(self, item: T) -> dict[str, AttributeValue]:
        out = encode_item(item)

        if self._model.pk.attribute_name not in out or is_empty(getattr(item, self._model.pk.python_name)):
            raise ValidationError("missing pk")
        if self._model.sk is not None and (
            self._model.sk.attribute_name not in out or is_empty(getattr(item, self._model.sk.python_name))
        ):
            raise ValidationError("missing sk")

        return out

    def _to_key(self, pk: Any, sk: Any | None) -> dict[str, AttributeValue]:
        if is_empty(pk):
            raise ValidationError("pk is required")
        if self._model.sk is None and sk is not None:
            raise ValidationError("model does not define sk")
        if self._model.sk is not None and is_empty(sk):
            raise ValidationError("sk is required")

        key: dict[str, AttributeValue] = {self._model.pk.attribute_name: self._key_value(self._model.pk, pk)}
        if self._model.sk is not None:
            key[self._model.sk.attribute_name] = self._key_value(self._model.sk, sk)
        return key

    def _key_value(self, attr_def: AttributeDefinition, value: Any) -> AttributeValue:
        av = encode(value, attr_def)
        if av is None or not ({"S", "N", "B"} & av.keys()):
            raise ValidationError(f"key attribute must be a string, number or binary: {attr_def.python_name}")
        return av

    def _from_item(self, item: Mapping[str, Any], *, fill_defaults: bool = True) -> T:
        return decode_item(item, self._model.model_type, fill_defaults=fill_defaults)
