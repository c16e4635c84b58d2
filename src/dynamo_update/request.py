from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Literal

from .codec import AttributeValue

type ReturnValues = Literal["NONE", "ALL_NEW", "ALL_OLD", "UPDATED_NEW", "UPDATED_OLD"]


@dataclass
class ConsumedCapacity:
    total: float = 0.0
    requests: int = 0

    def add(self, raw: Mapping[str, Any] | None) -> None:
        self.requests += 1
        if not raw:
            return
        self.total += float(raw.get("CapacityUnits", 0) or 0)


@dataclass(frozen=True)
class UpdateRequest:
    table_name: str
    key: Mapping[str, AttributeValue]
    set_clause: str | None = None
    add_clause: str | None = None
    remove_clause: str | None = None
    delete_clause: str | None = None
    condition_expression: str | None = None
    names: Mapping[str, str] = field(default_factory=dict)
    values: Mapping[str, AttributeValue] = field(default_factory=dict)
    return_values: ReturnValues = "NONE"
    return_consumed_capacity: bool = False

    @property
    def clauses(self) -> tuple[str, ...]:
        return tuple(
            c for c in (self.set_clause, self.add_clause, self.remove_clause, self.delete_clause) if c
        )

    @property
    def update_expression(self) -> str:
        return " ".join(self.clauses)

    def to_boto(self) -> dict[str, Any]:
        req: dict[str, Any] = {
            "TableName": self.table_name,
            "Key": dict(self.key),
            "UpdateExpression": self.update_expression,
            "ReturnValues": self.return_values,
        }
        if self.condition_expression:
            req["ConditionExpression"] = self.condition_expression
        if self.names:
            req["ExpressionAttributeNames"] = dict(self.names)
        if self.values:
            req["ExpressionAttributeValues"] = dict(self.values)
        if self.return_consumed_capacity:
            req["ReturnConsumedCapacity"] = "TOTAL"
        return req
