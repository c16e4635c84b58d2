from __future__ import annotations

from dataclasses import dataclass

import pytest

from dynamo_update.model import ModelDefinition, ModelDefinitionError, dynamo_field, is_nullable, struct_fields


@dataclass(frozen=True)
class User:
    pk: str = dynamo_field(name="PK", roles=["pk"])
    sk: str = dynamo_field(name="SK", roles=["sk"])
    email: str = dynamo_field(name="email", omitempty=True, default="")
    tags: list[str] = dynamo_field(name="tags", set_=True, omitempty=True, default_factory=list)
    rev: int = dynamo_field(name="rev", roles=["version"], default=0)
    nickname: str | None = None
    ignored: str = dynamo_field(ignore=True, default="ignored")


def test_model_definition_extracts_keys_and_attributes() -> None:
    model = ModelDefinition.from_dataclass(User, table_name="users")

    assert model.table_name == "users"
    assert model.pk.attribute_name == "PK"
    assert model.sk is not None and model.sk.attribute_name == "SK"
    assert model.attributes["email"].omitempty is True
    assert model.attributes["tags"].set is True
    assert model.attributes["nickname"].nullable is True
    assert model.attributes["email"].nullable is False
    assert "ignored" not in model.attributes


def test_lookup_accepts_python_or_attribute_names() -> None:
    model = ModelDefinition.from_dataclass(User)

    assert model.lookup("pk") is model.pk
    assert model.lookup("PK") is model.pk
    assert model.lookup("missing") is None
    assert model.is_key(model.attributes["sk"])
    assert not model.is_key(model.attributes["email"])


def test_version_field_prefers_role_then_name() -> None:
    assert ModelDefinition.from_dataclass(User).version_field().attribute_name == "rev"

    @dataclass(frozen=True)
    class Named:
        pk: str = dynamo_field(roles=["pk"])
        version: int = 0

    assert ModelDefinition.from_dataclass(Named).version_field().python_name == "version"

    @dataclass(frozen=True)
    class Unversioned:
        pk: str = dynamo_field(roles=["pk"])

    assert ModelDefinition.from_dataclass(Unversioned).version_field() is None


def test_model_definition_rejects_missing_pk() -> None:
    @dataclass(frozen=True)
    class Bad:
        sk: str = dynamo_field(roles=["sk"])

    with pytest.raises(ModelDefinitionError, match="exactly one pk"):
        ModelDefinition.from_dataclass(Bad)


def test_model_definition_rejects_multiple_pk() -> None:
    @dataclass(frozen=True)
    class Bad:
        pk1: str = dynamo_field(roles=["pk"])
        pk2: str = dynamo_field(roles=["pk"])

    with pytest.raises(ModelDefinitionError, match="exactly one pk"):
        ModelDefinition.from_dataclass(Bad)


def test_model_definition_rejects_multiple_sk() -> None:
    @dataclass(frozen=True)
    class Bad:
        pk: str = dynamo_field(roles=["pk"])
        sk1: str = dynamo_field(roles=["sk"])
        sk2: str = dynamo_field(roles=["sk"])

    with pytest.raises(ModelDefinitionError, match="at most one sk"):
        ModelDefinition.from_dataclass(Bad)


def test_model_definition_rejects_set_key() -> None:
    @dataclass(frozen=True)
    class Bad:
        pk: list[str] = dynamo_field(roles=["pk"], set_=True)

    with pytest.raises(ModelDefinitionError, match="set field cannot be a key"):
        ModelDefinition.from_dataclass(Bad)


def test_struct_fields_rejects_duplicate_attribute_names() -> None:
    @dataclass(frozen=True)
    class Bad:
        a: str = dynamo_field(name="x")
        b: str = dynamo_field(name="x")

    with pytest.raises(ModelDefinitionError, match="duplicate attribute name: x"):
        struct_fields(Bad)


def test_struct_fields_requires_a_dataclass() -> None:
    with pytest.raises(ModelDefinitionError, match="not a dataclass"):
        struct_fields(dict)
    with pytest.raises(ModelDefinitionError, match="must be a dataclass"):
        ModelDefinition.from_dataclass(dict)


def test_dynamo_field_rejects_conflicting_defaults() -> None:
    with pytest.raises(ValueError, match="cannot set both default and default_factory"):
        dynamo_field(default="", default_factory=str)


def test_is_nullable() -> None:
    assert is_nullable(str | None)
    assert not is_nullable(str)
    assert not is_nullable(list[str])
