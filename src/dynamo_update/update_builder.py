from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, is_dataclass
from decimal import Decimal
from typing import TYPE_CHECKING, Any, get_args, get_origin

from botocore.exceptions import ClientError

from ._logging import logger, redact_key
from .aws_errors import map_client_error as _map_client_error
from .codec import AttributeValue, encode, encode_set, is_empty, null
from .errors import BuilderFinalizedError, ConditionFailedError, ValidationError
from .expression import Fragment, NameSlot, Path, Placeholders, ValueSlot, parse_path, wrap
from .model import AttributeDefinition, is_nullable, strip_optional, struct_fields
from .request import ConsumedCapacity, ReturnValues, UpdateRequest

if TYPE_CHECKING:
    from .table import Table

_CLAUSES = ("SET", "ADD", "REMOVE", "DELETE")


@dataclass(frozen=True)
class _Target:
    attr: AttributeDefinition | None
    omitempty: bool
    annotation: Any
    known: bool


class UpdateBuilder[T]:
    def __init__(self, table: Table[T], pk: Any, sk: Any | None) -> None:
        self._table = table
        self._pk = pk
        self._sk = sk
        self._updates: list[tuple[str, tuple[Any, ...]]] = []
        self._conditions: list[Fragment] = []
        self._consumed: ConsumedCapacity | None = None
        self._finalized = False

    def set(self, path: str, value: Any) -> UpdateBuilder[T]:
        self._check("set")
        self._updates.append(("SET", (self._path(path), value)))
        return self

    def set_expr(self, expr: str, *args: Any) -> UpdateBuilder[T]:
        self._check("set_expr")
        self._updates.append(("SET_EXPR", (Fragment.parse(expr, args),)))
        return self

    def set_if_not_exists(self, path: str, value: Any) -> UpdateBuilder[T]:
        self._check("set_if_not_exists")
        self._updates.append(("SET_IF_NOT_EXISTS", (self._path(path), value)))
        return self

    def append_to_list(self, path: str, values: Sequence[Any]) -> UpdateBuilder[T]:
        self._check("append_to_list")
        self._updates.append(("APPEND_LIST", (self._path(path), list(values))))
        return self

    def prepend_to_list(self, path: str, values: Sequence[Any]) -> UpdateBuilder[T]:
        self._check("prepend_to_list")
        self._updates.append(("PREPEND_LIST", (self._path(path), list(values))))
        return self

    def add(self, path: str, value: Any) -> UpdateBuilder[T]:
        self._check("add")
        self._updates.append(("ADD", (self._path(path), value)))
        return self

    def increment(self, path: str, by: int | Decimal = 1) -> UpdateBuilder[T]:
        return self.add(path, by)

    def decrement(self, path: str, by: int | Decimal = 1) -> UpdateBuilder[T]:
        return self.add(path, -by)

    def remove(self, *paths: str) -> UpdateBuilder[T]:
        self._check("remove")
        for path in paths:
            self._updates.append(("REMOVE", (self._path(path),)))
        return self

    def remove_expr(self, expr: str, *args: Any) -> UpdateBuilder[T]:
        self._check("remove_expr")
        self._updates.append(("REMOVE_EXPR", (Fragment.parse(expr, args),)))
        return self

    def delete_from_set(self, path: str, members: Any) -> UpdateBuilder[T]:
        self._check("delete_from_set")
        self._updates.append(("DELETE", (self._path(path), members)))
        return self

    def condition_expr(self, expr: str, *args: Any) -> UpdateBuilder[T]:
        self._check("condition_expr")
        self._conditions.append(Fragment.parse(expr, args))
        return self

    def condition(self, field: str, operator: str, value: Any = None) -> UpdateBuilder[T]:
        self._check("condition")
        self._conditions.append(_build_condition_term(self._path(field), operator, value))
        return self

    def condition_exists(self, field: str) -> UpdateBuilder[T]:
        return self.condition(field, "attribute_exists", None)

    def condition_not_exists(self, field: str) -> UpdateBuilder[T]:
        return self.condition(field, "attribute_not_exists", None)

    def condition_version(self, current_version: int) -> UpdateBuilder[T]:
        version_field = self._table._model.version_field()
        if version_field is None:
            raise ValidationError("model does not define a version field")
        return self.condition(version_field.attribute_name, "=", current_version)

    def consumed_capacity(self, out: ConsumedCapacity) -> UpdateBuilder[T]:
        self._check("consumed_capacity")
        self._consumed = out
        return self

    def request(self, return_values: ReturnValues = "NONE") -> UpdateRequest:
        self._finalize("request")
        return self._build_request(return_values)

    def run(self) -> None:
        self._execute("run", "NONE")

    def value(self) -> T:
        attrs = self._execute("value", "ALL_NEW")
        if not attrs:
            raise ValidationError("update did not return Attributes")
        return self._table._from_item(attrs)

    def old_value(self) -> T | None:
        attrs = self._execute("old_value", "ALL_OLD")
        if not attrs:
            return None
        return self._table._from_item(attrs)

    def only_updated_value(self) -> T:
        attrs = self._execute("only_updated_value", "UPDATED_NEW")
        return self._table._from_item(attrs, fill_defaults=False)

    def only_updated_old_value(self) -> T:
        attrs = self._execute("only_updated_old_value", "UPDATED_OLD")
        return self._table._from_item(attrs, fill_defaults=False)

    def _check(self, operation: str) -> None:
        if self._finalized:
            raise BuilderFinalizedError(operation=operation)

    def _finalize(self, operation: str) -> None:
        self._check(operation)
        self._finalized = True

    def _path(self, text: str) -> Path:
        path = parse_path(text)
        attr_def = self._table._model.lookup(path.root)
        if attr_def is not None and attr_def.attribute_name != path.root:
            path = Path((attr_def.attribute_name, *path.segments[1:]))
        return path

    def _execute(self, operation: str, return_values: ReturnValues) -> Mapping[str, Any]:
        self._finalize(operation)
        req = self._build_request(return_values)

        logger.debug(
            "sending update",
            extra={
                "table": req.table_name,
                "key_hash": redact_key(req.key),
                "operation": operation,
                "clause_count": len(req.clauses),
                "has_condition": req.condition_expression is not None,
            },
        )

        try:
            resp = self._table._client.update_item(**req.to_boto())
        except ClientError as err:
            mapped = _map_client_error(err)
            if isinstance(mapped, ConditionFailedError):
                logger.debug(
                    "update condition failed",
                    extra={"table": req.table_name, "key_hash": redact_key(req.key)},
                )
            raise mapped from err

        if self._consumed is not None:
            self._consumed.add(resp.get("ConsumedCapacity"))
        return resp.get("Attributes") or {}

    def _build_request(self, return_values: ReturnValues) -> UpdateRequest:
        key = self._table._to_key(self._pk, self._sk)

        grouped: dict[str, list[Fragment]] = {clause: [] for clause in _CLAUSES}
        for kind, args in self._updates:
            resolved = self._resolve(kind, args)
            if resolved is not None:
                clause, fragment = resolved
                grouped[clause].append(fragment)

        if not any(grouped.values()):
            raise ValidationError("no updates provided")

        conditions = [c.map_values(_encode_expr_value) for c in self._conditions]

        placeholders = Placeholders()
        rendered: dict[str, str | None] = {}
        for clause in _CLAUSES:
            terms = [f.render(placeholders) for f in grouped[clause]]
            rendered[clause] = f"{clause} " + ", ".join(terms) if terms else None

        condition_expr = " AND ".join(wrap(c.render(placeholders)) for c in conditions)

        return UpdateRequest(
            table_name=self._table._table_name,
            key=key,
            set_clause=rendered["SET"],
            add_clause=rendered["ADD"],
            remove_clause=rendered["REMOVE"],
            delete_clause=rendered["DELETE"],
            condition_expression=condition_expr or None,
            names=placeholders.names,
            values=placeholders.values,
            return_values=return_values,
            return_consumed_capacity=self._consumed is not None,
        )

    def _resolve(self, kind: str, args: tuple[Any, ...]) -> tuple[str, Fragment] | None:
        if kind == "SET":
            path, value = args
            av = _encode_set_value(self._target(path), value)
            if av is None:
                return "REMOVE", Fragment((NameSlot(path),))
            return "SET", Fragment((NameSlot(path), " = ", ValueSlot(av)))

        if kind in {"SET_EXPR", "REMOVE_EXPR"}:
            (fragment,) = args
            return ("SET" if kind == "SET_EXPR" else "REMOVE"), fragment.map_values(_encode_expr_value)

        if kind == "SET_IF_NOT_EXISTS":
            path, value = args
            target = self._target(path)
            if value is None and target.known and not is_nullable(target.annotation):
                raise ValidationError(f"set_if_not_exists requires a value for non-nullable field: {path}")
            av = encode(value, target.attr, as_set=_is_set_type(target.annotation)) or null()
            return "SET", Fragment(
                (NameSlot(path), " = if_not_exists(", NameSlot(path), ", ", ValueSlot(av), ")")
            )

        if kind in {"APPEND_LIST", "PREPEND_LIST"}:
            path, values = args
            target = self._target(path)
            if (target.attr is not None and target.attr.set) or _is_set_type(target.annotation):
                raise ValidationError("list operations require a plain list attribute")
            av = encode(values)
            if kind == "APPEND_LIST":
                parts = ("list_append(", NameSlot(path), ", ", ValueSlot(av), ")")
            else:
                parts = ("list_append(", ValueSlot(av), ", ", NameSlot(path), ")")
            return "SET", Fragment((NameSlot(path), " = ", *parts))

        if kind == "ADD":
            path, value = args
            self._target(path)
            if isinstance(value, bool):
                raise ValidationError("ADD requires a numeric or set value")
            if isinstance(value, (int, float, Decimal)):
                av = encode(value)
            elif isinstance(value, (set, frozenset, list, tuple, Mapping)):
                av = encode_set(value)
            else:
                raise ValidationError("ADD requires a numeric or set value")
            if av is None:
                return None
            return "ADD", Fragment((NameSlot(path), " ", ValueSlot(av)))

        if kind == "REMOVE":
            (path,) = args
            self._target(path)
            return "REMOVE", Fragment((NameSlot(path),))

        if kind == "DELETE":
            path, members = args
            target = self._target(path)
            if target.attr is not None and target.known and not target.attr.set:
                if not _is_set_type(target.annotation):
                    raise ValidationError("DELETE requires a set field")
            if not isinstance(members, (set, frozenset, list, tuple, Mapping)):
                members = [members]
            av = encode_set(members)
            if av is None:
                return None
            return "DELETE", Fragment((NameSlot(path), " ", ValueSlot(av)))

        raise ValidationError(f"unsupported update operation: {kind}")

    def _target(self, path: Path) -> _Target:
        model = self._table._model
        root = model.lookup(path.root)
        if root is None:
            return _Target(attr=None, omitempty=False, annotation=Any, known=False)
        if model.is_key(root):
            raise ValidationError(f"cannot update key field: {root.python_name}")

        attr: AttributeDefinition | None = root
        omitempty = root.omitempty
        annotation = root.annotation

        for segment in path.segments[1:]:
            target = strip_optional(annotation)
            origin = get_origin(target) or target
            args = get_args(target)
            attr = None

            if isinstance(segment, int):
                if origin in (list, tuple, Sequence) and args:
                    annotation = args[0]
                    continue
            elif isinstance(origin, type) and is_dataclass(origin):
                child = next((f for f in struct_fields(origin) if f.attribute_name == segment), None)
                if child is not None:
                    attr = child
                    omitempty = child.omitempty
                    annotation = child.annotation
                    continue
            elif isinstance(origin, type) and issubclass(origin, Mapping) and len(args) == 2:
                annotation = args[1]
                continue

            return _Target(attr=None, omitempty=omitempty, annotation=Any, known=False)

        return _Target(attr=attr, omitempty=omitempty, annotation=annotation, known=True)


def _is_set_type(annotation: Any) -> bool:
    origin = get_origin(strip_optional(annotation)) or strip_optional(annotation)
    return origin in (set, frozenset)


def _encode_set_value(target: _Target, value: Any) -> AttributeValue | None:
    if target.omitempty and is_empty(value):
        return None
    if value is None:
        if target.known and not is_nullable(target.annotation):
            return None
        return null()
    return encode(value, target.attr, as_set=_is_set_type(target.annotation))


def _encode_expr_value(value: Any) -> AttributeValue:
    return encode(value) or null()


def _build_condition_term(path: Path, operator: str, value: Any) -> Fragment:
    op = str(operator or "").strip().upper()
    name = NameSlot(path)

    def require_value() -> ValueSlot:
        if value is None:
            raise ValidationError(f"{operator} requires one value")
        return ValueSlot(value)

    if op in {"ATTRIBUTE_EXISTS", "EXISTS"}:
        if value is not None:
            raise ValidationError("EXISTS does not take a value")
        return Fragment(("attribute_exists(", name, ")"))

    if op in {"ATTRIBUTE_NOT_EXISTS", "NOT_EXISTS"}:
        if value is not None:
            raise ValidationError("NOT_EXISTS does not take a value")
        return Fragment(("attribute_not_exists(", name, ")"))

    comparisons = {
        "=": "=",
        "EQ": "=",
        "!=": "<>",
        "<>": "<>",
        "NE": "<>",
        "<": "<",
        "LT": "<",
        "<=": "<=",
        "LE": "<=",
        ">": ">",
        "GT": ">",
        ">=": ">=",
        "GE": ">=",
    }
    if op in comparisons:
        return Fragment((name, f" {comparisons[op]} ", require_value()))

    if op == "BETWEEN":
        if not isinstance(value, (list, tuple)) or len(value) != 2:
            raise ValidationError("BETWEEN requires two values")
        return Fragment((name, " BETWEEN ", ValueSlot(value[0]), " AND ", ValueSlot(value[1])))

    if op == "IN":
        if not isinstance(value, Sequence) or isinstance(value, (str, bytes, bytearray)):
            raise ValidationError("IN requires a sequence of values")
        if not value:
            raise ValidationError("IN requires a sequence of values")
        if len(value) > 100:
            raise ValidationError("IN supports maximum 100 values")
        parts: list[Any] = [name, " IN ("]
        for i, v in enumerate(value):
            if i:
                parts.append(", ")
            parts.append(ValueSlot(v))
        parts.append(")")
        return Fragment(tuple(parts))

    if op == "BEGINS_WITH":
        return Fragment(("begins_with(", name, ", ", require_value(), ")"))
    if op == "CONTAINS":
        return Fragment(("contains(", name, ", ", require_value(), ")"))

    raise ValidationError(f"unsupported condition operator: {operator}")
