"""Query builder for session state.

Serializes a selection tree, variable declarations, directives and
fragment definitions into GraphQL document text. Output is deterministic:
insertion order everywhere, two-space indentation.
"""

from typing import Any

from .ir import (
    ArgumentValue,
    Directive,
    EnumLiteral,
    FragmentDefinition,
    LiteralValue,
    MarkedString,
    OperationType,
    QueryState,
    SelectionNode,
    TypedValue,
    VariableRef,
)
from .validation import serialize_graphql_value

INDENT = "  "


def render_argument_value(value: ArgumentValue) -> str:
    """Render one stored argument value."""
    if isinstance(value, VariableRef):
        return value.name
    if isinstance(value, (MarkedString, EnumLiteral)):
        return serialize_graphql_value(value)
    if isinstance(value, (TypedValue, LiteralValue)):
        return serialize_graphql_value(value.value)
    raise TypeError(f"Unknown argument value: {value!r}")


def render_arguments(args: dict[str, ArgumentValue]) -> str:
    """Build ``(name: value, ...)``, or nothing when there are no arguments."""
    if not args:
        return ""
    rendered = ", ".join(f"{name}: {render_argument_value(v)}" for name, v in args.items())
    return f"({rendered})"


def render_directives(directives: list[Directive]) -> str:
    """Build ``@a @b(x: 1)``. Directives without arguments get no parentheses."""
    parts = []
    for directive in directives:
        args = {a.name: a.value for a in directive.arguments}
        parts.append(f"@{directive.name}{render_arguments(args)}")
    return " ".join(parts)


def _render_field(key: str, node: SelectionNode, indent: str) -> list[str]:
    name = node.field_name or key
    head = f"{node.alias}: {name}" if node.alias and node.alias != name else name
    head += render_arguments(node.args)
    directives = render_directives(node.directives)
    if directives:
        head += f" {directives}"

    if not node.has_selections:
        return [f"{indent}{head}"]

    lines = [f"{indent}{head} {{"]
    lines.extend(_render_body(node, indent + INDENT))
    lines.append(f"{indent}}}")
    return lines


def _render_body(node: SelectionNode, indent: str) -> list[str]:
    """Sub-fields, then fragment spreads, then inline fragments."""
    lines = []
    for key, child in node.fields.items():
        lines.extend(_render_field(key, child, indent))
    for spread in node.fragment_spreads:
        lines.append(f"{indent}...{spread}")
    for fragment in node.inline_fragments:
        lines.append(f"{indent}... on {fragment.on_type} {{")
        for key, child in fragment.selections.items():
            lines.extend(_render_field(key, child, indent + INDENT))
        lines.append(f"{indent}}}")
    return lines


def build_selection_set(fields: dict[str, SelectionNode], indent: str = INDENT) -> str:
    """Render a mapping of selection nodes, one field per line."""
    lines = []
    for key, node in fields.items():
        lines.extend(_render_field(key, node, indent))
    return "\n".join(lines)


def _render_variables(
    variables_schema: dict[str, str],
    variables_defaults: dict[str, Any],
) -> str:
    declarations = []
    for name, type_string in variables_schema.items():
        declaration = f"{name}: {type_string}"
        if name in variables_defaults:
            declaration += f" = {serialize_graphql_value(variables_defaults[name])}"
        declarations.append(declaration)
    return ", ".join(declarations)


def _render_fragment(name: str, fragment: FragmentDefinition) -> str:
    return f"fragment {name} on {fragment.on_type} {{\n{build_selection_set(fragment.fields)}\n}}"


def build_query(
    structure: SelectionNode,
    operation_type: OperationType | str,
    variables_schema: dict[str, str],
    operation_name: str | None = None,
    fragments: dict[str, FragmentDefinition] | None = None,
    operation_directives: list[Directive] | None = None,
    variables_defaults: dict[str, Any] | None = None,
) -> str:
    """Build the full document text.

    Args:
        structure: Root selection node
        operation_type: query, mutation or subscription
        variables_schema: Variable name (with ``$``) to type string
        operation_name: Optional operation name
        fragments: Named fragment definitions appended after the operation
        operation_directives: Directives placed after the variable list
        variables_defaults: Default values for declared variables

    Returns:
        The document text, or an empty string when nothing is selected
    """
    if not structure.has_selections:
        return ""

    header = OperationType(operation_type).value
    if operation_name:
        header += f" {operation_name}"
    if variables_schema:
        header += f"({_render_variables(variables_schema, variables_defaults or {})})"
    directives = render_directives(operation_directives or [])
    if directives:
        header += f" {directives}"

    body = "\n".join(_render_body(structure, INDENT))
    document = f"{header} {{\n{body}\n}}"

    if fragments:
        blocks = [_render_fragment(name, fragment) for name, fragment in fragments.items()]
        document += "\n\n" + "\n\n".join(blocks)
    return document


def build_query_from_state(state: QueryState) -> str:
    """Convenience wrapper over :func:`build_query` for a whole session state."""
    return build_query(
        state.query_structure,
        state.operation_type,
        state.variables_schema,
        operation_name=state.operation_name,
        fragments=state.fragments,
        operation_directives=state.operation_directives,
        variables_defaults=state.variables_defaults,
    )
