"""Intermediate Representation (IR) for an in-progress GraphQL operation.

A session's state is a tree of selection nodes keyed by response key
(alias if set, else field name), plus variable declarations, fragment
definitions, and operation-level directives. Argument values are a
tagged union so the serializer never has to guess how to render them.

The ``to_dict``/``from_dict`` codec is what the session stores persist.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterator, Union

from .errors import InvalidSyntaxError


class OperationType(str, Enum):
    """GraphQL operation kinds."""
    QUERY = "query"
    MUTATION = "mutation"
    SUBSCRIPTION = "subscription"


# Argument values


@dataclass
class LiteralValue:
    """A JSON-shaped literal. Input objects are nested dicts."""
    value: Any


@dataclass
class TypedValue:
    """A value already coerced to the argument's schema type."""
    value: Any


@dataclass
class MarkedString:
    """A string that always renders as a quoted GraphQL string."""
    value: str


@dataclass
class EnumLiteral:
    """An enum value name, rendered bare."""
    value: str


@dataclass
class VariableRef:
    """Reference to an operation variable; ``name`` keeps its ``$``."""
    name: str


ArgumentValue = Union[LiteralValue, TypedValue, MarkedString, EnumLiteral, VariableRef]


@dataclass
class DirectiveArgument:
    """A single argument applied to a directive instance."""
    name: str
    value: ArgumentValue


@dataclass
class Directive:
    """A directive instance (``@name(args)``) on a field or operation."""
    name: str
    arguments: list[DirectiveArgument] = field(default_factory=list)

    def set_argument(self, name: str, value: ArgumentValue) -> None:
        """Add an argument, replacing the value if the name is already set."""
        for argument in self.arguments:
            if argument.name == name:
                argument.value = value
                return
        self.arguments.append(DirectiveArgument(name=name, value=value))


def upsert_directive(directives: list[Directive], name: str) -> Directive:
    """Return the directive named ``name`` from the list, appending it if absent."""
    for directive in directives:
        if directive.name == name:
            return directive
    directive = Directive(name=name)
    directives.append(directive)
    return directive


@dataclass
class SelectionNode:
    """A field in the selection tree. The root node has no field name."""
    field_name: str = ""
    alias: str | None = None
    args: dict[str, ArgumentValue] = field(default_factory=dict)
    fields: dict[str, "SelectionNode"] = field(default_factory=dict)
    directives: list[Directive] = field(default_factory=list)
    fragment_spreads: list[str] = field(default_factory=list)
    inline_fragments: list["InlineFragment"] = field(default_factory=list)

    @property
    def key(self) -> str:
        """Response key under which this node is stored in its parent."""
        return self.alias or self.field_name

    @property
    def has_selections(self) -> bool:
        return bool(self.fields or self.fragment_spreads or self.inline_fragments)

    def find(self, path: "FieldPath") -> "SelectionNode | None":
        """Follow ``path`` through ``fields``; None when any segment is missing."""
        node = self
        for segment in path.segments:
            node = node.fields.get(segment)
            if node is None:
                return None
        return node

    def missing_index(self, path: "FieldPath") -> int | None:
        """Index of the first segment of ``path`` absent from the tree, or None."""
        node = self
        for index, segment in enumerate(path.segments):
            node = node.fields.get(segment)
            if node is None:
                return index
        return None

    def walk(self) -> Iterator["SelectionNode"]:
        """Yield this node and every descendant, including inline fragment selections."""
        yield self
        for child in self.fields.values():
            yield from child.walk()
        for fragment in self.inline_fragments:
            for child in fragment.selections.values():
                yield from child.walk()


@dataclass
class InlineFragment:
    """``... on Type { ... }`` attached to a selection node."""
    on_type: str
    selections: dict[str, SelectionNode] = field(default_factory=dict)


@dataclass
class FragmentDefinition:
    """A named fragment, rendered after the operation body."""
    on_type: str
    fields: dict[str, SelectionNode] = field(default_factory=dict)


@dataclass(frozen=True)
class FieldPath:
    """Dotted path of response keys from the operation root."""
    segments: tuple[str, ...] = ()

    @classmethod
    def parse(cls, path: str | None) -> "FieldPath":
        """Parse ``"a.b.c"``; the empty string is the root."""
        text = (path or "").strip()
        if not text:
            return cls()
        segments = tuple(text.split("."))
        if any(not segment for segment in segments):
            raise InvalidSyntaxError(f"Invalid field path '{text}'.")
        return cls(segments)

    def child(self, key: str) -> "FieldPath":
        return FieldPath(self.segments + (key,))

    def prefix(self, length: int) -> "FieldPath":
        return FieldPath(self.segments[:length])

    @property
    def is_root(self) -> bool:
        return not self.segments

    @property
    def depth(self) -> int:
        return len(self.segments)

    def __str__(self) -> str:
        return ".".join(self.segments)


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class QueryState:
    """Everything a session knows about the operation being built."""
    operation_type: OperationType = OperationType.QUERY
    operation_type_name: str = "Query"
    operation_name: str | None = None
    headers: dict[str, str] = field(default_factory=dict)
    query_structure: SelectionNode = field(default_factory=SelectionNode)
    fragments: dict[str, FragmentDefinition] = field(default_factory=dict)
    variables_schema: dict[str, str] = field(default_factory=dict)
    variables_defaults: dict[str, Any] = field(default_factory=dict)
    variables_values: dict[str, Any] = field(default_factory=dict)
    operation_directives: list[Directive] = field(default_factory=list)
    created_at: str = field(default_factory=_utc_now)
    revision: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "operation_type": self.operation_type.value,
            "operation_type_name": self.operation_type_name,
            "operation_name": self.operation_name,
            "headers": dict(self.headers),
            "query_structure": _encode_node(self.query_structure),
            "fragments": {
                name: {
                    "on_type": fragment.on_type,
                    "fields": _encode_fields(fragment.fields),
                }
                for name, fragment in self.fragments.items()
            },
            "variables_schema": dict(self.variables_schema),
            "variables_defaults": {k: encode_raw(v) for k, v in self.variables_defaults.items()},
            "variables_values": dict(self.variables_values),
            "operation_directives": [_encode_directive(d) for d in self.operation_directives],
            "created_at": self.created_at,
            "revision": self.revision,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "QueryState":
        return cls(
            operation_type=OperationType(data.get("operation_type", "query")),
            operation_type_name=data.get("operation_type_name", "Query"),
            operation_name=data.get("operation_name"),
            headers=dict(data.get("headers") or {}),
            query_structure=_decode_node(data.get("query_structure") or {}),
            fragments={
                name: FragmentDefinition(
                    on_type=raw["on_type"],
                    fields=_decode_fields(raw.get("fields") or {}),
                )
                for name, raw in (data.get("fragments") or {}).items()
            },
            variables_schema=dict(data.get("variables_schema") or {}),
            variables_defaults={
                k: decode_raw(v) for k, v in (data.get("variables_defaults") or {}).items()
            },
            variables_values=dict(data.get("variables_values") or {}),
            operation_directives=[
                _decode_directive(d) for d in data.get("operation_directives") or []
            ],
            created_at=data.get("created_at") or _utc_now(),
            revision=int(data.get("revision", 0)),
        )


# Codec

STRING_MARKER = "__graphqlString"
ENUM_MARKER = "__graphqlEnum"


def encode_raw(value: Any) -> Any:
    """Encode a raw literal, preserving string and enum markers in nested values."""
    if isinstance(value, MarkedString):
        return {STRING_MARKER: value.value}
    if isinstance(value, EnumLiteral):
        return {ENUM_MARKER: value.value}
    if isinstance(value, dict):
        return {k: encode_raw(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [encode_raw(v) for v in value]
    return value


def decode_raw(value: Any) -> Any:
    if isinstance(value, dict):
        if len(value) == 1 and STRING_MARKER in value:
            return MarkedString(value[STRING_MARKER])
        if len(value) == 1 and ENUM_MARKER in value:
            return EnumLiteral(value[ENUM_MARKER])
        return {k: decode_raw(v) for k, v in value.items()}
    if isinstance(value, list):
        return [decode_raw(v) for v in value]
    return value


def encode_argument(value: ArgumentValue) -> dict[str, Any]:
    if isinstance(value, VariableRef):
        return {"kind": "variable", "name": value.name}
    if isinstance(value, TypedValue):
        return {"kind": "typed", "value": encode_raw(value.value)}
    if isinstance(value, MarkedString):
        return {"kind": "string", "value": value.value}
    if isinstance(value, EnumLiteral):
        return {"kind": "enum", "value": value.value}
    if isinstance(value, LiteralValue):
        return {"kind": "literal", "value": encode_raw(value.value)}
    raise TypeError(f"Unknown argument value: {value!r}")


_ARGUMENT_DECODERS = {
    "variable": lambda raw: VariableRef(raw["name"]),
    "typed": lambda raw: TypedValue(decode_raw(raw["value"])),
    "string": lambda raw: MarkedString(raw["value"]),
    "enum": lambda raw: EnumLiteral(raw["value"]),
    "literal": lambda raw: LiteralValue(decode_raw(raw["value"])),
}


def decode_argument(raw: dict[str, Any]) -> ArgumentValue:
    try:
        decoder = _ARGUMENT_DECODERS[raw["kind"]]
    except KeyError:
        raise ValueError(f"Unknown argument encoding: {raw!r}") from None
    return decoder(raw)


def _encode_directive(directive: Directive) -> dict[str, Any]:
    return {
        "name": directive.name,
        "arguments": [
            {"name": a.name, "value": encode_argument(a.value)} for a in directive.arguments
        ],
    }


def _decode_directive(raw: dict[str, Any]) -> Directive:
    return Directive(
        name=raw["name"],
        arguments=[
            DirectiveArgument(name=a["name"], value=decode_argument(a["value"]))
            for a in raw.get("arguments") or []
        ],
    )


def _encode_node(node: SelectionNode) -> dict[str, Any]:
    return {
        "field_name": node.field_name,
        "alias": node.alias,
        "args": {name: encode_argument(v) for name, v in node.args.items()},
        "fields": _encode_fields(node.fields),
        "directives": [_encode_directive(d) for d in node.directives],
        "fragment_spreads": list(node.fragment_spreads),
        "inline_fragments": [
            {"on_type": f.on_type, "selections": _encode_fields(f.selections)}
            for f in node.inline_fragments
        ],
    }


def _encode_fields(fields: dict[str, SelectionNode]) -> dict[str, Any]:
    return {key: _encode_node(child) for key, child in fields.items()}


def _decode_node(raw: dict[str, Any]) -> SelectionNode:
    return SelectionNode(
        field_name=raw.get("field_name", ""),
        alias=raw.get("alias"),
        args={name: decode_argument(v) for name, v in (raw.get("args") or {}).items()},
        fields=_decode_fields(raw.get("fields") or {}),
        directives=[_decode_directive(d) for d in raw.get("directives") or []],
        fragment_spreads=list(raw.get("fragment_spreads") or []),
        inline_fragments=[
            InlineFragment(on_type=f["on_type"], selections=_decode_fields(f.get("selections") or {}))
            for f in raw.get("inline_fragments") or []
        ],
    )


def _decode_fields(raw: dict[str, Any]) -> dict[str, SelectionNode]:
    return {key: _decode_node(child) for key, child in raw.items()}
