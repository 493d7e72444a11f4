"""Field selection operations."""

import logging
from typing import Any

from graphql import GraphQLNamedType, is_leaf_type, is_union_type

from .complexity import MAX_QUERY_DEPTH
from .context import ServiceContext, ensure
from .errors import (
    ComplexityExceededError,
    ConflictError,
    InvalidSyntaxError,
    NotFoundError,
    TypeMismatchError,
    tool_result,
)
from .ir import FieldPath, SelectionNode
from .schema import field_definition, fields_of, resolve_parent_type
from .validation import suggestion_suffix, validate_field_alias, validate_name

logger = logging.getLogger(__name__)


def check_selectable(parent_type: GraphQLNamedType, path: FieldPath) -> None:
    """Leaf-typed fields cannot have a selection set."""
    if is_leaf_type(parent_type):
        part = path.segments[-1] if path.segments else ""
        raise TypeMismatchError(
            f"Cannot select subfields on scalar/enum field '{part}' of type '{parent_type.name}'"
        )


def check_field_exists(parent_type: GraphQLNamedType, field_name: str) -> None:
    if field_definition(parent_type, field_name) is not None:
        return
    if is_union_type(parent_type):
        raise NotFoundError(
            f"Field '{field_name}' not found on union type '{parent_type.name}'. "
            "Select member fields with apply_inline_fragment."
        )
    candidates = list(fields_of(parent_type))
    suffix = suggestion_suffix(field_name, candidates, "fields")
    raise NotFoundError(f"Field '{field_name}' not found on type '{parent_type.name}'.{suffix}")


def check_alias_free(parent: SelectionNode, key: str, field_name: str) -> None:
    existing = parent.fields.get(key)
    if existing is not None and existing.field_name != field_name:
        raise ConflictError(
            f"Alias conflict: '{key}' is already used for field '{existing.field_name}'. "
            "Choose a different alias."
        )


def check_depth(path: FieldPath, levels: int = 1) -> None:
    """Reject nesting ``levels`` below ``path`` deeper than the depth ceiling."""
    depth = path.depth + levels
    if depth > MAX_QUERY_DEPTH:
        raise ComplexityExceededError(
            f"Query depth {depth} exceeds maximum allowed depth of {MAX_QUERY_DEPTH} at path: {path}"
        )


class SelectionOperations(ServiceContext):
    """Adds fields to the selection tree."""

    @tool_result
    async def select_field(
        self,
        session_id: str,
        field_name: str,
        parent_path: str = "",
        alias: str | None = None,
    ) -> dict[str, Any]:
        """Select one field under ``parent_path``.

        Selecting the same key again is a no-op; the key is the alias when
        one is given.
        """
        ensure(validate_name(field_name, "field name"))
        ensure(validate_field_alias(alias))
        path = FieldPath.parse(parent_path)

        state = await self._load(session_id)
        parent = self._node(state, path, parent=True)
        _, root = await self._session_schema(state)
        if root is not None:
            parent_type = resolve_parent_type(root, state.query_structure, path)
            check_selectable(parent_type, path)
            check_field_exists(parent_type, field_name)

        key = alias or field_name
        check_alias_free(parent, key, field_name)
        check_depth(path)
        if key not in parent.fields:
            parent.fields[key] = SelectionNode(field_name=field_name, alias=alias)
        await self._save(session_id, state)

        return {
            "success": True,
            "message": f"Field '{field_name}' selected successfully at path '{path}'",
            "field_key": key,
            "parent_path": str(path),
        }

    @tool_result
    async def select_multiple_fields(
        self,
        session_id: str,
        field_names: list[str],
        parent_path: str = "",
    ) -> dict[str, Any]:
        """Select several fields under one parent, all or nothing."""
        if not field_names:
            raise InvalidSyntaxError("At least one field name is required.")
        for name in field_names:
            ensure(validate_name(name, "field name"))
        path = FieldPath.parse(parent_path)

        state = await self._load(session_id)
        parent = self._node(state, path, parent=True)
        _, root = await self._session_schema(state)
        if root is not None:
            parent_type = resolve_parent_type(root, state.query_structure, path)
            check_selectable(parent_type, path)
            invalid = [n for n in field_names if field_definition(parent_type, n) is None]
            if invalid:
                available = ", ".join(list(fields_of(parent_type))[:10])
                raise NotFoundError(
                    f"Invalid fields on type '{parent_type.name}': {', '.join(invalid)}. "
                    f"Available fields: {available}"
                )

        for name in field_names:
            check_alias_free(parent, name, name)
        check_depth(path)
        for name in field_names:
            parent.fields.setdefault(name, SelectionNode(field_name=name))
        await self._save(session_id, state)

        return {
            "success": True,
            "message": (
                f"Successfully selected {len(field_names)} fields at path '{path}': "
                f"{', '.join(field_names)}."
            ),
            "selected_fields": list(field_names),
            "parent_path": str(path),
        }
