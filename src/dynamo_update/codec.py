from __future__ import annotations

import math
from collections.abc import Mapping, MutableMapping, Sequence
from dataclasses import MISSING, is_dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Protocol, get_args, get_origin, runtime_checkable

from boto3.dynamodb.types import Binary, TypeDeserializer, TypeSerializer

from .errors import EncodingError, ValidationError
from .model import AttributeDefinition, is_nullable, strip_optional, struct_fields

type AttributeValue = dict[str, Any]

_serializer = TypeSerializer()
_deserializer = TypeDeserializer()

_SET_KINDS = {"SS": "S", "NS": "N", "BS": "B"}


@runtime_checkable
class TextMarshaler(Protocol):
    def marshal_text(self) -> str: ...


def null() -> AttributeValue:
    return {"NULL": True}


def is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, TextMarshaler):
        return value.marshal_text() == ""
    if isinstance(value, (str, bytes, bytearray)):
        return len(value) == 0
    if isinstance(value, (list, tuple, set, frozenset, Mapping)):
        return len(value) == 0
    return False


def encode(value: Any, attr: AttributeDefinition | None = None, *, as_set: bool = False) -> AttributeValue | None:
    if attr is not None:
        if attr.converter is not None and value is not None:
            value = attr.converter.to_dynamodb(value)
        as_set = as_set or attr.set

    if as_set and value is not None:
        return encode_set(value)
    return _encode(value)


def encode_set(value: Any) -> AttributeValue | None:
    if isinstance(value, Mapping):
        members = list(value.keys())
    elif isinstance(value, (set, frozenset, list, tuple)):
        members = list(value)
    else:
        raise EncodingError(f"cannot encode {type(value).__name__} as a set")

    if not members:
        return None

    encoded = [_encode_set_member(m) for m in members]
    kinds = {kind for kind, _ in encoded}
    if len(kinds) != 1:
        raise EncodingError(f"set members must share one type (found {sorted(kinds)})")
    (kind,) = kinds

    if kind == "N":
        unique_numbers: dict[Decimal, str] = {}
        for _, text in encoded:
            unique_numbers.setdefault(Decimal(text), text)
        return {"NS": [unique_numbers[k] for k in sorted(unique_numbers)]}
    if kind == "B":
        return {"BS": sorted({raw for _, raw in encoded})}
    return {"SS": sorted({text for _, text in encoded})}


def _encode_set_member(member: Any) -> tuple[str, Any]:
    if isinstance(member, TextMarshaler):
        return "S", member.marshal_text()
    if isinstance(member, bool):
        raise EncodingError("bool cannot be a set member")
    if isinstance(member, str):
        return "S", member
    if isinstance(member, (int, float, Decimal)):
        return "N", _number_text(member)
    if isinstance(member, (bytes, bytearray, Binary)):
        return "B", _binary(member)
    raise EncodingError(f"unsupported set member type: {type(member).__name__}")


def _encode(value: Any) -> AttributeValue | None:
    if value is None:
        return null()
    if isinstance(value, TextMarshaler):
        return {"S": value.marshal_text()}
    if isinstance(value, datetime):
        return {"S": value.isoformat()}
    if isinstance(value, bool):
        return {"BOOL": value}
    if isinstance(value, str):
        return _serializer.serialize(value)
    if isinstance(value, (int, float, Decimal)):
        return {"N": _number_text(value)}
    if isinstance(value, (bytes, bytearray, Binary)):
        return {"B": _binary(value)}
    if isinstance(value, (set, frozenset)):
        return encode_set(value)
    if isinstance(value, Mapping):
        out: dict[str, AttributeValue] = {}
        for key, inner in value.items():
            if not isinstance(key, str):
                raise EncodingError(f"map keys must be strings (got {type(key).__name__})")
            av = _encode(inner)
            if av is not None:
                out[key] = av
        return {"M": out}
    if isinstance(value, (list, tuple)):
        return {"L": [_encode(v) or null() for v in value]}
    if is_dataclass(value) and not isinstance(value, type):
        return {"M": encode_item(value)}
    raise EncodingError(f"unsupported type: {type(value).__name__}")


def _binary(value: bytes | bytearray | Binary) -> bytes:
    if isinstance(value, Binary):
        return bytes(value.value)
    return bytes(value)


def _number_text(value: int | float | Decimal) -> str:
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            raise EncodingError(f"number is not finite: {value!r}")
        value = Decimal(repr(value))
    elif isinstance(value, int):
        value = Decimal(value)
    if not value.is_finite():
        raise EncodingError(f"number is not finite: {value}")

    # 38 significant digits, magnitude 1E-130 to 9.99E+125
    significant = "".join(str(d) for d in value.as_tuple().digits).strip("0")
    if len(significant) > 38 or (significant and not -130 <= value.adjusted() <= 125):
        raise EncodingError(f"number cannot be represented: {value}")
    if value == value.to_integral_value():
        return str(int(value))

    try:
        return str(_serializer.serialize(value)["N"])
    except (TypeError, ArithmeticError) as err:
        raise EncodingError(f"number cannot be represented: {value}") from err


def encode_item(obj: Any) -> dict[str, AttributeValue]:
    if not is_dataclass(obj) or isinstance(obj, type):
        raise EncodingError("item must be a dataclass instance")

    out: dict[str, AttributeValue] = {}
    for attr_def in struct_fields(type(obj)):
        value = getattr(obj, attr_def.python_name)
        if attr_def.omitempty and is_empty(value):
            continue
        av = encode(value, attr_def)
        if av is None:
            continue
        out[attr_def.attribute_name] = av
    return out


def zero_value(annotation: Any) -> Any:
    if is_nullable(annotation):
        return None

    origin = get_origin(annotation) or annotation
    if origin in (Mapping, MutableMapping):
        return {}
    if origin is Sequence:
        return []
    if isinstance(origin, type):
        if is_dataclass(origin):
            return decode_item({}, origin)
        if issubclass(origin, (str, bytes, int, float, Decimal, list, tuple, set, frozenset, dict)):
            return origin()
    return None


def decode(av: Mapping[str, Any], annotation: Any = Any) -> Any:
    if not isinstance(av, Mapping) or len(av) != 1:
        raise EncodingError("attribute value must have exactly one type key")

    ((kind, raw),) = av.items()
    if kind == "NULL":
        return zero_value(annotation)

    target = strip_optional(annotation)
    origin = get_origin(target) or target
    args = get_args(target)

    if kind == "S":
        unmarshal = getattr(origin, "unmarshal_text", None)
        if isinstance(origin, type) and callable(unmarshal):
            try:
                return unmarshal(raw)
            except (TypeError, ValueError) as err:
                raise EncodingError(f"malformed text for {origin.__name__}: {raw!r}") from err
        if origin is datetime:
            try:
                return datetime.fromisoformat(raw)
            except ValueError as err:
                raise EncodingError(f"malformed timestamp: {raw!r}") from err
        if isinstance(origin, type) and issubclass(origin, str) and origin is not str:
            return origin(raw)
        return str(raw)

    if kind == "N":
        return _decode_number(raw, origin)

    if kind == "B":
        return _binary(_deserializer.deserialize({"B": raw}))

    if kind == "BOOL":
        return bool(raw)

    if kind in _SET_KINDS:
        return _decode_set(kind, raw, origin, args)

    if kind == "L":
        elem_type = args[0] if args else Any
        items = [decode(v, elem_type) for v in raw]
        if origin is tuple:
            return tuple(items)
        if origin in (set, frozenset):
            return origin(items)
        return items

    if kind == "M":
        if isinstance(origin, type) and is_dataclass(origin):
            return decode_item(raw, origin)
        value_type = args[1] if len(args) == 2 else Any
        return {str(k): decode(v, value_type) for k, v in raw.items()}

    raise EncodingError(f"unsupported attribute value type: {kind}")


def _decode_number(raw: Any, origin: Any) -> Any:
    try:
        number = _deserializer.deserialize({"N": raw})
    except (TypeError, ValueError, ArithmeticError) as err:
        raise EncodingError(f"invalid number: {raw!r}") from err
    if not number.is_finite():
        raise EncodingError(f"invalid number: {raw!r}")

    if origin is bool:
        return number != 0
    if isinstance(origin, type) and issubclass(origin, int):
        if number != number.to_integral_value():
            raise EncodingError(f"number is not an integer: {raw}")
        return origin(int(number))
    if isinstance(origin, type) and issubclass(origin, float):
        out = float(number)
        if math.isinf(out):
            raise EncodingError(f"number overflows float: {raw}")
        return origin(out)
    return number


def _decode_set(kind: str, raw: Any, origin: Any, args: tuple[Any, ...]) -> Any:
    member_kind = _SET_KINDS[kind]

    if isinstance(origin, type) and issubclass(origin, Mapping):
        key_type = args[0] if args else Any
        marker = zero_value(args[1]) if len(args) == 2 else None
        return dict.fromkeys((decode({member_kind: m}, key_type) for m in raw), marker)

    elem_type = args[0] if args else Any
    members = [decode({member_kind: m}, elem_type) for m in raw]
    if origin in (list, tuple, Sequence):
        ordered = sorted(members)
        return tuple(ordered) if origin is tuple else ordered
    if origin is frozenset:
        return frozenset(members)
    return set(members)


def decode_item[T](item: Mapping[str, Any], model_type: type[T], *, fill_defaults: bool = True) -> T:
    kwargs: dict[str, Any] = {}
    for attr_def in struct_fields(model_type):
        if attr_def.attribute_name in item:
            if attr_def.converter is not None:
                value = decode(item[attr_def.attribute_name], Any)
                if value is not None:
                    value = attr_def.converter.from_dynamodb(value)
            else:
                value = decode(item[attr_def.attribute_name], attr_def.annotation)
            kwargs[attr_def.python_name] = value
            continue

        if fill_defaults and (attr_def.default is not MISSING or attr_def.default_factory is not MISSING):
            continue
        kwargs[attr_def.python_name] = zero_value(attr_def.annotation)

    try:
        return model_type(**kwargs)
    except TypeError as err:
        raise ValidationError(str(err)) from err
