from __future__ import annotations

import re
from collections.abc import Callable, Hashable, Mapping
from dataclasses import dataclass
from typing import Any

from boto3.dynamodb.types import Binary

from .codec import AttributeValue
from .errors import ValidationError

_PATH_TOKEN = re.compile(r"'([^']*)'|\[(\d+)\]|(\.)|([^.\['\]]+)")


@dataclass(frozen=True)
class Path:
    segments: tuple[str | int, ...]

    @property
    def root(self) -> str:
        return str(self.segments[0])

    def __str__(self) -> str:
        out = ""
        for segment in self.segments:
            if isinstance(segment, int):
                out += f"[{segment}]"
            else:
                out += ("." if out else "") + segment
        return out


def parse_path(text: str) -> Path:
    segments: list[str | int] = []
    need_name = True
    pos = 0

    while pos < len(text):
        match = _PATH_TOKEN.match(text, pos)
        if match is None:
            raise ValidationError(f"invalid path: {text!r}")
        quoted, index, dot, bare = match.groups()
        pos = match.end()

        if dot is not None:
            if need_name:
                raise ValidationError(f"invalid path: {text!r}")
            need_name = True
            continue

        if index is not None:
            if not segments or need_name:
                raise ValidationError(f"invalid path: {text!r}")
            segments.append(int(index))
            continue

        name = quoted if quoted is not None else bare
        if not need_name or not name:
            raise ValidationError(f"invalid path: {text!r}")
        segments.append(name)
        need_name = False

    if need_name:
        raise ValidationError(f"invalid path: {text!r}")
    return Path(tuple(segments))


@dataclass(frozen=True)
class NameSlot:
    path: Path


@dataclass(frozen=True)
class ValueSlot:
    value: Any


type FragmentPart = str | NameSlot | ValueSlot


@dataclass(frozen=True)
class Fragment:
    parts: tuple[FragmentPart, ...]

    @classmethod
    def parse(cls, text: str, args: tuple[Any, ...]) -> Fragment:
        parts: list[FragmentPart] = []
        literal = ""
        remaining = list(args)
        pos = 0

        def take(marker: str) -> Any:
            if not remaining:
                raise ValidationError(f"not enough arguments for {marker!r} in expression: {text!r}")
            return remaining.pop(0)

        while pos < len(text):
            ch = text[pos]
            if ch == "'":
                end = text.find("'", pos + 1)
                if end < 0 or end == pos + 1:
                    raise ValidationError(f"invalid quoted name in expression: {text!r}")
                slot: FragmentPart = NameSlot(Path((text[pos + 1 : end],)))
                pos = end + 1
            elif ch == "$":
                name = take("$")
                if isinstance(name, Path):
                    slot = NameSlot(name)
                elif isinstance(name, str) and name:
                    slot = NameSlot(Path((name,)))
                else:
                    raise ValidationError(f"'$' requires an attribute name, got {name!r}")
                pos += 1
            elif ch == "?":
                slot = ValueSlot(take("?"))
                pos += 1
            else:
                literal += ch
                pos += 1
                continue

            if literal:
                parts.append(literal)
                literal = ""
            parts.append(slot)

        if literal:
            parts.append(literal)
        if remaining:
            raise ValidationError(f"too many arguments for expression: {text!r}")
        return cls(tuple(parts))

    def map_values(self, fn: Callable[[Any], Any]) -> Fragment:
        return Fragment(tuple(ValueSlot(fn(p.value)) if isinstance(p, ValueSlot) else p for p in self.parts))

    def render(self, placeholders: Placeholders) -> str:
        out: list[str] = []
        for part in self.parts:
            if isinstance(part, NameSlot):
                out.append(placeholders.path(part.path))
            elif isinstance(part, ValueSlot):
                out.append(placeholders.value(part.value))
            else:
                out.append(part)
        return "".join(out)


def is_wrapped(expr: str) -> bool:
    expr = expr.strip()
    if not expr.startswith("(") or not expr.endswith(")"):
        return False

    depth = 0
    for i, ch in enumerate(expr):
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth == 0 and i != len(expr) - 1:
                return False
    return depth == 0


def wrap(expr: str) -> str:
    return expr if is_wrapped(expr) else f"({expr})"


def _freeze(value: Any) -> Hashable:
    if isinstance(value, Mapping):
        return tuple(sorted((str(k), _freeze(v)) for k, v in value.items()))
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(v) for v in value)
    if isinstance(value, Binary):
        return bytes(value.value)
    if isinstance(value, bytearray):
        return bytes(value)
    return value


class Placeholders:
    def __init__(self) -> None:
        self.names: dict[str, str] = {}
        self.values: dict[str, AttributeValue] = {}
        self._name_tokens: dict[str, str] = {}
        self._value_tokens: dict[Hashable, str] = {}

    def name(self, segment: str) -> str:
        token = self._name_tokens.get(segment)
        if token is None:
            token = f"#n{len(self._name_tokens) + 1}"
            self._name_tokens[segment] = token
            self.names[token] = segment
        return token

    def value(self, av: AttributeValue) -> str:
        key = _freeze(av)
        token = self._value_tokens.get(key)
        if token is None:
            token = f":v{len(self._value_tokens) + 1}"
            self._value_tokens[key] = token
            self.values[token] = av
        return token

    def path(self, path: Path) -> str:
        out = ""
        for segment in path.segments:
            if isinstance(segment, int):
                out += f"[{segment}]"
            else:
                out += ("." if out else "") + self.name(segment)
        return out
