"""Named and inline fragment operations."""

import logging
import re
from typing import Any

from graphql import GraphQLSchema, is_composite_type

from .context import ServiceContext, ensure
from .errors import ConflictError, InvalidSyntaxError, NotFoundError, TypeMismatchError, tool_result
from .ir import FieldPath, FragmentDefinition, InlineFragment, SelectionNode
from .selection import check_depth
from .validation import suggestion_suffix, validate_name

logger = logging.getLogger(__name__)

# "owner { login, url }" selects owner with two sub-fields
_FIELD_SPEC = re.compile(r"\s*([^\s{}]+)\s*(?:\{([^{}]*)\})?\s*")


def parse_field_specs(field_names: list[str]) -> dict[str, SelectionNode]:
    """Turn field names (with optional one-level ``{ ... }`` shorthand) into nodes."""
    if not field_names:
        raise InvalidSyntaxError("At least one field is required.")
    selections: dict[str, SelectionNode] = {}
    for spec in field_names:
        match = _FIELD_SPEC.fullmatch(spec) if isinstance(spec, str) else None
        if match is None:
            raise InvalidSyntaxError(f'Invalid field selection "{spec}".')
        name, nested = match.group(1), match.group(2)
        ensure(validate_name(name, "field name"))
        node = selections.setdefault(name, SelectionNode(field_name=name))
        if nested is not None:
            sub_names = [s for s in re.split(r"[\s,]+", nested) if s]
            if not sub_names:
                raise InvalidSyntaxError(f'Invalid field selection "{spec}".')
            for sub_name in sub_names:
                ensure(validate_name(sub_name, "field name"))
                node.fields.setdefault(sub_name, SelectionNode(field_name=sub_name))
    return selections


def check_fragment_type(schema: GraphQLSchema, on_type: str) -> None:
    named = schema.get_type(on_type)
    if named is None:
        suffix = suggestion_suffix(
            on_type, [n for n in schema.type_map if not n.startswith("__")], "types"
        )
        raise NotFoundError(f"Type '{on_type}' not found in schema.{suffix}")
    if not is_composite_type(named):
        raise TypeMismatchError(
            f"Fragments can only be defined on object, interface or union types; '{on_type}' is not."
        )


class FragmentOperations(ServiceContext):
    """Defines named fragments and applies named or inline fragments."""

    @tool_result
    async def define_named_fragment(
        self,
        session_id: str,
        fragment_name: str,
        on_type: str,
        field_names: list[str],
    ) -> dict[str, Any]:
        """Define ``fragment Name on Type { fields }``.

        Field names are not checked against the type here; full validation
        reports them.
        """
        ensure(validate_name(fragment_name, "fragment name"))
        ensure(validate_name(on_type, "type name"))
        selections = parse_field_specs(field_names)

        state = await self._load(session_id)
        if fragment_name in state.fragments:
            raise ConflictError(
                f"Fragment '{fragment_name}' already exists. Choose a different name."
            )
        schema = await self._schema(state.headers)
        if schema is not None:
            check_fragment_type(schema, on_type)
        state.fragments[fragment_name] = FragmentDefinition(on_type=on_type, fields=selections)
        await self._save(session_id, state)

        return {
            "success": True,
            "message": (
                f"Fragment '{fragment_name}' defined on type '{on_type}' "
                f"with {len(selections)} fields."
            ),
        }

    @tool_result
    async def apply_named_fragment(
        self,
        session_id: str,
        fragment_name: str,
        parent_path: str = "",
    ) -> dict[str, Any]:
        """Spread a defined fragment under ``parent_path``; applying twice is a no-op."""
        ensure(validate_name(fragment_name, "fragment name"))
        path = FieldPath.parse(parent_path)

        state = await self._load(session_id)
        if fragment_name not in state.fragments:
            raise NotFoundError(
                f"Fragment '{fragment_name}' not found. Define it first using define_named_fragment."
            )
        parent = self._node(state, path, parent=True)
        if fragment_name not in parent.fragment_spreads:
            parent.fragment_spreads.append(fragment_name)
        await self._save(session_id, state)

        return {
            "success": True,
            "message": f"Fragment '{fragment_name}' applied at path '{path}'.",
        }

    @tool_result
    async def apply_inline_fragment(
        self,
        session_id: str,
        on_type: str,
        field_names: list[str],
        parent_path: str = "",
    ) -> dict[str, Any]:
        """Add ``... on Type { fields }`` under ``parent_path``."""
        ensure(validate_name(on_type, "type name"))
        selections = parse_field_specs(field_names)
        path = FieldPath.parse(parent_path)

        state = await self._load(session_id)
        parent = self._node(state, path, parent=True)
        schema = await self._schema(state.headers)
        if schema is not None:
            check_fragment_type(schema, on_type)
        # Fragment selections sit one level below the parent's own fields
        nested = any(node.has_selections for node in selections.values())
        check_depth(path, 3 if nested else 2)
        parent.inline_fragments.append(InlineFragment(on_type=on_type, selections=selections))
        await self._save(session_id, state)

        return {
            "success": True,
            "message": (
                f"Inline fragment on type '{on_type}' applied at path '{path}' "
                f"with {len(selections)} fields."
            ),
        }
