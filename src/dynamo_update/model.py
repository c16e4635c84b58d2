from __future__ import annotations

import types
from collections.abc import Mapping, Sequence
from dataclasses import MISSING, dataclass, field, fields, is_dataclass
from functools import lru_cache
from typing import Any, Protocol, Union, cast, get_args, get_origin, get_type_hints, overload


class ModelDefinitionError(ValueError):
    pass


class AttributeConverter(Protocol):
    def to_dynamodb(self, value: Any) -> Any: ...

    def from_dynamodb(self, value: Any) -> Any: ...


@dataclass(frozen=True)
class AttributeDefinition:
    python_name: str
    attribute_name: str
    roles: tuple[str, ...]
    omitempty: bool
    set: bool
    annotation: Any = Any
    converter: AttributeConverter | None = None
    default: Any = MISSING
    default_factory: Any = MISSING

    @property
    def nullable(self) -> bool:
        return is_nullable(self.annotation)


def is_nullable(annotation: Any) -> bool:
    if annotation is Any or annotation is None or isinstance(annotation, str):
        return True
    origin = get_origin(annotation)
    if origin is Union or origin is types.UnionType:
        return type(None) in get_args(annotation)
    return False


def strip_optional(annotation: Any) -> Any:
    origin = get_origin(annotation)
    if origin is Union or origin is types.UnionType:
        args = [a for a in get_args(annotation) if a is not type(None)]
        if len(args) == 1:
            return args[0]
    return annotation


@overload
def dynamo_field(
    *,
    name: str | None = None,
    roles: Sequence[str] | None = None,
    omitempty: bool = False,
    set_: bool = False,
    converter: AttributeConverter | None = None,
    ignore: bool = False,
) -> Any: ...


@overload
def dynamo_field(
    *,
    name: str | None = None,
    roles: Sequence[str] | None = None,
    omitempty: bool = False,
    set_: bool = False,
    converter: AttributeConverter | None = None,
    ignore: bool = False,
    default: Any,
) -> Any: ...


@overload
def dynamo_field(
    *,
    name: str | None = None,
    roles: Sequence[str] | None = None,
    omitempty: bool = False,
    set_: bool = False,
    converter: AttributeConverter | None = None,
    ignore: bool = False,
    default_factory: Any,
) -> Any: ...


def dynamo_field(
    *,
    name: str | None = None,
    roles: Sequence[str] | None = None,
    omitempty: bool = False,
    set_: bool = False,
    converter: AttributeConverter | None = None,
    ignore: bool = False,
    default: Any = MISSING,
    default_factory: Any = MISSING,
) -> Any:
    if default is not MISSING and default_factory is not MISSING:
        raise ValueError("dynamo_field: cannot set both default and default_factory")

    opts: dict[str, Any] = {
        "omitempty": omitempty,
        "set": set_,
        "converter": converter,
        "ignore": ignore,
    }
    if name is not None:
        opts["name"] = name
    if roles is not None:
        opts["roles"] = list(roles)

    return field(default=default, default_factory=default_factory, metadata={"dynamo": opts})


def _resolve_hints(model_type: type) -> dict[str, Any]:
    try:
        return get_type_hints(model_type)
    except (NameError, TypeError):
        return {}


@lru_cache(maxsize=None)
def struct_fields(model_type: type) -> tuple[AttributeDefinition, ...]:
    if not is_dataclass(model_type):
        raise ModelDefinitionError(f"{model_type!r} is not a dataclass")

    hints = _resolve_hints(model_type)
    out: list[AttributeDefinition] = []
    seen: set[str] = set()

    for dc_field in fields(model_type):
        opts = cast(dict[str, Any], dc_field.metadata.get("dynamo", {}))
        if bool(opts.get("ignore", False)):
            continue

        attribute_name = cast(str, opts.get("name", dc_field.name))
        if attribute_name in seen:
            raise ModelDefinitionError(f"duplicate attribute name: {attribute_name}")
        seen.add(attribute_name)

        out.append(
            AttributeDefinition(
                python_name=dc_field.name,
                attribute_name=attribute_name,
                roles=tuple(cast(list[str], opts.get("roles", []))),
                omitempty=bool(opts.get("omitempty", False)),
                set=bool(opts.get("set", False)),
                annotation=hints.get(dc_field.name, Any),
                converter=cast(AttributeConverter | None, opts.get("converter")),
                default=dc_field.default,
                default_factory=dc_field.default_factory,
            )
        )

    return tuple(out)


@dataclass(frozen=True)
class ModelDefinition[T]:
    model_type: type[T]
    table_name: str | None
    pk: AttributeDefinition
    sk: AttributeDefinition | None
    attributes: Mapping[str, AttributeDefinition]

    @classmethod
    def from_dataclass(cls, model_type: type[T], *, table_name: str | None = None) -> ModelDefinition[T]:
        if not is_dataclass(model_type):
            raise ModelDefinitionError("model_type must be a dataclass")

        attributes: dict[str, AttributeDefinition] = {}
        pk_fields: list[str] = []
        sk_fields: list[str] = []

        for attr_def in struct_fields(model_type):
            if "pk" in attr_def.roles:
                pk_fields.append(attr_def.python_name)
            if "sk" in attr_def.roles:
                sk_fields.append(attr_def.python_name)
            if attr_def.set and ("pk" in attr_def.roles or "sk" in attr_def.roles):
                raise ModelDefinitionError(f"set field cannot be a key: {attr_def.python_name}")
            attributes[attr_def.python_name] = attr_def

        if len(pk_fields) != 1:
            raise ModelDefinitionError(f"model must define exactly one pk field (found {len(pk_fields)})")

        if len(sk_fields) > 1:
            raise ModelDefinitionError(f"model must define at most one sk field (found {len(sk_fields)})")

        pk = attributes[pk_fields[0]]
        sk = attributes[sk_fields[0]] if sk_fields else None

        return cls(
            model_type=model_type,
            table_name=table_name,
            pk=pk,
            sk=sk,
            attributes=attributes,
        )

    def lookup(self, name: str) -> AttributeDefinition | None:
        attr_def = self.attributes.get(name)
        if attr_def is not None:
            return attr_def
        for candidate in self.attributes.values():
            if candidate.attribute_name == name:
                return candidate
        return None

    def is_key(self, attr_def: AttributeDefinition) -> bool:
        return attr_def is self.pk or attr_def is self.sk

    def version_field(self) -> AttributeDefinition | None:
        for attr_def in self.attributes.values():
            if "version" in attr_def.roles:
                return attr_def
        return self.attributes.get("version")
