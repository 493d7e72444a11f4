"""Stateless validation and coercion helpers.

Validators return an error message, or None when the input is acceptable.
Coercers return None when a value cannot be coerced.
"""

import json
import math
import re
from dataclasses import dataclass
from typing import Any, Iterable

from graphql import (
    GraphQLError,
    GraphQLType,
    StringValueNode,
    get_named_type,
    is_enum_type,
    is_list_type,
    is_non_null_type,
    parse_type,
    print_ast,
)

from .ir import EnumLiteral, MarkedString

NAME_PATTERN = re.compile(r"[_A-Za-z][_0-9A-Za-z]*")
CONTROL_CHARACTERS = re.compile(r"[\x00-\x1f\x7f-\x9f]")
_LEADING_INT = re.compile(r"\s*([+-]?\d+)")
_FLOAT_LITERAL = re.compile(r"[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?")

MAX_INPUT_LENGTH = 8192
MAX_PAGINATION_VALUE = 500
PAGINATION_ARGUMENTS = frozenset({"first", "last", "limit", "top", "count"})
MAX_INPUT_DEPTH = 10
MAX_INPUT_PROPERTIES = 1000
MAX_TYPE_NESTING = 5

COMMON_TYPE_MISTAKES = {
    "integer": "Int",
    "int": "Int",
    "number": "Int",
    "float": "Float",
    "double": "Float",
    "bool": "Boolean",
    "boolean": "Boolean",
    "string": "String",
    "str": "String",
    "text": "String",
    "id": "ID",
    "identifier": "ID",
}

# Named types whose slots keep strings as strings
_STRING_SLOTS = frozenset({"String", "ID"})

_COERCION_HINT = "Consider using set_typed_argument() for better type safety."


# Names


def is_valid_graphql_name(name: Any) -> bool:
    return isinstance(name, str) and NAME_PATTERN.fullmatch(name) is not None


def validate_name(name: Any, label: str) -> str | None:
    """Check ``name`` against the GraphQL name grammar."""
    if not is_valid_graphql_name(name):
        return f'Invalid {label} "{name}". Must match /^[_A-Za-z][_0-9A-Za-z]*$/'
    return None


def validate_operation_name(name: str | None) -> str | None:
    if name is None:
        return None
    return validate_name(name, "operation name")


def validate_variable_name(name: Any) -> str | None:
    if not isinstance(name, str) or not name.startswith("$"):
        return 'Variable name must start with "$"'
    if not is_valid_graphql_name(name[1:]):
        return f'Invalid variable name "{name}". Must be $[_A-Za-z][_0-9A-Za-z]*'
    return None


def validate_field_alias(alias: str | None) -> str | None:
    if alias is None:
        return None
    if alias == "":
        return "Field alias cannot be empty"
    return validate_name(alias, "field alias")


# Strings


def validate_string_length(value: str, label: str) -> str | None:
    if len(value) > MAX_INPUT_LENGTH:
        return f'Input for "{label}" exceeds maximum allowed length of {MAX_INPUT_LENGTH} characters.'
    return None


def validate_no_control_characters(value: str, label: str) -> str | None:
    if CONTROL_CHARACTERS.search(value):
        return f'Input for "{label}" contains disallowed control characters.'
    return None


def validate_string_input(value: Any, label: str) -> str | None:
    """Length and control-character checks for untrusted strings; non-strings pass."""
    if not isinstance(value, str):
        return None
    return validate_string_length(value, label) or validate_no_control_characters(value, label)


def leading_integer(value: Any) -> int | None:
    """Integer prefix of a value, the way a lenient number parser reads it."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else None
    if isinstance(value, str):
        match = _LEADING_INT.match(value)
        if match:
            return int(match.group(1))
    return None


def validate_pagination_value(argument_name: str, value: Any) -> str | None:
    if argument_name.lower() not in PAGINATION_ARGUMENTS:
        return None
    number = leading_integer(value)
    if number is not None and number > MAX_PAGINATION_VALUE:
        return (
            f"Pagination value for '{argument_name}' ({number}) "
            f"exceeds maximum of {MAX_PAGINATION_VALUE}."
        )
    return None


# Coercion


def coerce_to_integer(value: Any) -> int | None:
    """Integers pass; strings must round-trip exactly ("007" and "1.0" do not)."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) and value.is_integer() else None
    if isinstance(value, str):
        try:
            parsed = int(value)
        except ValueError:
            return None
        return parsed if str(parsed) == value else None
    return None


def coerce_to_float(value: Any) -> int | float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value if math.isfinite(value) else None
    if isinstance(value, str) and _FLOAT_LITERAL.fullmatch(value):
        parsed = float(value)
        return parsed if math.isfinite(parsed) else None
    return None


def coerce_to_boolean(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.lower() in ("true", "false"):
        return value.lower() == "true"
    return None


@dataclass
class Coercion:
    """Outcome of string auto-coercion."""
    coerced: bool
    value: Any
    type_name: str | None = None
    warning: str | None = None


def coerce_string_value(value: str) -> Coercion:
    """Try Int, then Float, then Boolean; otherwise keep the string."""
    as_int = coerce_to_integer(value)
    if as_int is not None:
        return Coercion(True, as_int, "Int", f'Detected numeric value "{value}". {_COERCION_HINT}')
    as_float = coerce_to_float(value)
    if as_float is not None:
        return Coercion(True, as_float, "Float", f'Detected float value "{value}". {_COERCION_HINT}')
    as_bool = coerce_to_boolean(value)
    if as_bool is not None:
        return Coercion(True, as_bool, "Boolean", f'Detected boolean value "{value}". {_COERCION_HINT}')
    return Coercion(False, value)


def is_string_slot(gql_type: GraphQLType | None) -> bool:
    return gql_type is not None and get_named_type(gql_type).name in _STRING_SLOTS


def coerce_for_slot(value: Any, gql_type: GraphQLType | None) -> Coercion:
    """String auto-coercion, skipped for non-strings and for String/ID slots."""
    if not isinstance(value, str) or is_string_slot(gql_type):
        return Coercion(False, value)
    return coerce_string_value(value)


# Type checks


def describe_type(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, (list, tuple)):
        return "array"
    return "object"


def _display(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def validate_value_against_type(value: Any, gql_type: GraphQLType) -> str | None:
    """Shallow check of a literal against a built-in scalar or enum slot.

    Lists and input objects pass through; their structure is checked by
    full document validation.
    """
    if is_non_null_type(gql_type):
        if value is None:
            return "Expected non-nullable type not to be null"
        gql_type = gql_type.of_type
    if value is None or is_list_type(gql_type):
        return None

    named = get_named_type(gql_type)
    name = named.name
    is_number = isinstance(value, (int, float)) and not isinstance(value, bool)

    if name == "String" and not isinstance(value, str):
        return f"Type String expects a string, but received {describe_type(value)}."
    if name == "ID" and not (isinstance(value, str) or is_number):
        return f"Type ID expects a string or number, but received {describe_type(value)}."
    if name == "Int" and coerce_to_integer(value) is None:
        shown = _display(value)
        return f'Invalid value "{shown}": Int cannot represent non-integer value: "{shown}"'
    if name == "Float" and not is_number:
        return f"Type Float expects a number, but received {describe_type(value)}."
    if name == "Boolean" and not isinstance(value, bool):
        return f"Type Boolean expects a boolean, but received {describe_type(value)}."
    if is_enum_type(named):
        if isinstance(value, EnumLiteral):
            value = value.value
        if not isinstance(value, str):
            return f"Type {name} expects an enum value, but received {describe_type(value)}."
        if value not in named.values:
            return f'Value "{value}" does not exist in "{name}" enum.'
    return None


def validate_variable_type(type_string: Any) -> str | None:
    """Syntax check of a variable type string such as ``[ID!]!``."""
    if not isinstance(type_string, str) or not type_string.strip():
        return "Variable type cannot be empty"
    if type_string.count("[") > MAX_TYPE_NESTING:
        return (
            f"Variable type '{type_string}' exceeds maximum list nesting depth "
            f"of {MAX_TYPE_NESTING}"
        )
    base = type_string.strip().strip("[]!").strip()
    suggestion = COMMON_TYPE_MISTAKES.get(base.lower())
    if suggestion and suggestion != base:
        return f"Invalid type '{base}'. Did you mean '{suggestion}'?"
    try:
        parse_type(type_string)
    except GraphQLError as e:
        return f"Invalid variable type '{type_string}': {e.message}"
    return None


def validate_input_complexity(value: Any, label: str) -> str | None:
    """Bound container nesting and total element count of untrusted input."""
    visited: set[int] = set()
    count = 0

    def walk(item: Any, level: int) -> str | None:
        nonlocal count
        if not isinstance(item, (dict, list, tuple)):
            return None
        if level > MAX_INPUT_DEPTH:
            return f'Input for "{label}" exceeds the maximum allowed depth of {MAX_INPUT_DEPTH}.'
        if id(item) in visited:
            return None
        visited.add(id(item))
        children = list(item.values()) if isinstance(item, dict) else list(item)
        count += len(children)
        if count > MAX_INPUT_PROPERTIES:
            return (
                f'Input for "{label}" exceeds the maximum allowed number of '
                f"properties/elements of {MAX_INPUT_PROPERTIES}."
            )
        for child in children:
            error = walk(child, level + 1)
            if error:
                return error
        return None

    return walk(value, 1)


# Suggestions


def levenshtein(a: str, b: str) -> int:
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            cost = 0 if ca == cb else 1
            current.append(min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost))
        previous = current
    return previous[-1]


def find_similar_name(target: str, candidates: Iterable[str]) -> str | None:
    """Closest candidate by case-insensitive edit distance, within a small threshold."""
    threshold = min(3, math.ceil(len(target) * 0.6))
    lowered = target.lower()
    best, best_score = None, math.inf
    for candidate in candidates:
        distance = levenshtein(lowered, candidate.lower())
        if distance <= threshold and distance < best_score:
            best, best_score = candidate, distance
    return best


def suggestion_suffix(target: str, candidates: list[str], noun: str) -> str:
    """`` Did you mean 'x'?`` or `` Available <noun>: a, b, c, d, e``."""
    similar = find_similar_name(target, candidates)
    if similar:
        return f" Did you mean '{similar}'?"
    if candidates:
        return f" Available {noun}: {', '.join(candidates[:5])}"
    return ""


# Rendering


def _format_float(value: float) -> str:
    if not math.isfinite(value):
        raise ValueError(f"Cannot serialize non-finite number {value!r}")
    if value.is_integer() and abs(value) < 1e21:
        return str(int(value))
    return repr(value)


def serialize_graphql_value(value: Any) -> str:
    """Render a raw value as GraphQL literal text."""
    if value is None:
        return "null"
    if isinstance(value, MarkedString):
        return json.dumps(value.value, ensure_ascii=False)
    if isinstance(value, EnumLiteral):
        return value.value
    if isinstance(value, str):
        if value.startswith("$") and is_valid_graphql_name(value[1:]):
            return value
        return print_ast(StringValueNode(value=value))
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return _format_float(value)
    if isinstance(value, (list, tuple)):
        return "[" + ", ".join(serialize_graphql_value(v) for v in value) + "]"
    if isinstance(value, dict):
        return "{" + ", ".join(f"{k}: {serialize_graphql_value(v)}" for k, v in value.items()) + "}"
    raise TypeError(f"Cannot serialize value of type {type(value).__name__}")
