"""Schema sources and schema lookups.

Schemas come either from a live endpoint (introspection over httpx) or
from a pre-built schema. Fetched schemas are cached process-wide, keyed by
endpoint URL and the header set used to fetch them.
"""

import asyncio
import hashlib
import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

import httpx
from graphql import (
    GraphQLError,
    GraphQLField,
    GraphQLNamedType,
    GraphQLObjectType,
    GraphQLSchema,
    GraphQLType,
    TypeNameMetaFieldDef,
    build_client_schema,
    get_introspection_query,
    get_named_type,
    introspection_from_schema,
    is_interface_type,
    is_object_type,
    parse_type,
    type_from_ast,
)

from .errors import NotFoundError, UpstreamError, UpstreamTimeoutError
from .ir import FieldPath, OperationType, SelectionNode
from .parser import load_schema

logger = logging.getLogger(__name__)

_CREDENTIALS = re.compile(r"//[^/@\s]+@")


def mask_url(url: str) -> str:
    """Hide user:password in a URL before logging it."""
    return _CREDENTIALS.sub("//***:***@", url)


def header_fingerprint(headers: dict[str, str] | None) -> str:
    encoded = json.dumps(sorted((headers or {}).items()))
    return hashlib.sha256(encoded.encode()).hexdigest()[:16]


class SchemaCache:
    """Built schemas and their raw introspection results, by cache key."""

    def __init__(self):
        self._schemas: dict[str, GraphQLSchema] = {}
        self._introspection: dict[str, dict[str, Any]] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def get(self, key: str) -> GraphQLSchema | None:
        return self._schemas.get(key)

    def get_introspection(self, key: str) -> dict[str, Any] | None:
        return self._introspection.get(key)

    def put(self, key: str, schema: GraphQLSchema, introspection: dict[str, Any]) -> None:
        self._schemas[key] = schema
        self._introspection[key] = introspection

    def lock(self, key: str) -> asyncio.Lock:
        """Lock serializing the first fetch for a key."""
        if key not in self._locks:
            self._locks[key] = asyncio.Lock()
        return self._locks[key]

    def clear(self) -> None:
        self._schemas.clear()
        self._introspection.clear()

    def __len__(self) -> int:
        return len(self._schemas)


@runtime_checkable
class SchemaProvider(Protocol):
    """Something that can produce the schema for a session's header set."""

    async def get_schema(self, headers: dict[str, str] | None = None) -> GraphQLSchema:
        ...

    async def get_introspection(self, headers: dict[str, str] | None = None) -> dict[str, Any]:
        ...


class StaticSchemaProvider:
    """Serves one pre-built schema regardless of headers."""

    def __init__(self, schema: GraphQLSchema):
        self.schema = schema

    @classmethod
    def from_path(cls, schema_path: str) -> "StaticSchemaProvider":
        return cls(load_schema(schema_path))

    async def get_schema(self, headers: dict[str, str] | None = None) -> GraphQLSchema:
        return self.schema

    async def get_introspection(self, headers: dict[str, str] | None = None) -> dict[str, Any]:
        return introspection_from_schema(self.schema)


class IntrospectionSchemaProvider:
    """Fetches a schema by running the introspection query against an endpoint.

    Examples:
        cache = SchemaCache()
        provider = IntrospectionSchemaProvider("https://api.example.com/graphql", cache)
        schema = await provider.get_schema({"Authorization": "Bearer ..."})
    """

    def __init__(
        self,
        endpoint: str,
        cache: SchemaCache | None = None,
        *,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the provider.

        Args:
            endpoint: GraphQL endpoint URL
            cache: Shared cache; a private one is created when omitted
            timeout: Seconds allowed for the introspection round trip
            transport: Optional httpx transport (used to fake the endpoint in tests)
        """
        self.endpoint = endpoint
        self.cache = cache if cache is not None else SchemaCache()
        self.timeout = timeout
        self._transport = transport

    def _cache_key(self, headers: dict[str, str] | None) -> str:
        return f"{self.endpoint}#{header_fingerprint(headers)}"

    async def get_schema(self, headers: dict[str, str] | None = None) -> GraphQLSchema:
        """Return the cached schema, fetching it on first use.

        Raises:
            UpstreamError: If the endpoint fails or returns an unusable result
            UpstreamTimeoutError: If the endpoint does not answer in time
        """
        key = self._cache_key(headers)
        schema = self.cache.get(key)
        if schema is not None:
            return schema

        async with self.cache.lock(key):
            schema = self.cache.get(key)
            if schema is not None:
                return schema
            introspection = await self._fetch(headers or {})
            try:
                schema = build_client_schema(introspection)
            except (GraphQLError, TypeError, KeyError) as e:
                raise self._error(str(e)) from e
            self.cache.put(key, schema, introspection)
            logger.info("Cached schema for %s", mask_url(self.endpoint))
        return schema

    async def get_introspection(self, headers: dict[str, str] | None = None) -> dict[str, Any]:
        await self.get_schema(headers)
        return self.cache.get_introspection(self._cache_key(headers))

    def _error(self, reason: str) -> UpstreamError:
        return UpstreamError(f"Error processing schema from {self.endpoint}: {reason}")

    async def _fetch(self, headers: dict[str, str]) -> dict[str, Any]:
        logger.info("Fetching schema from %s", mask_url(self.endpoint))
        try:
            return await asyncio.wait_for(self._post(headers), timeout=self.timeout)
        except asyncio.TimeoutError:
            raise UpstreamTimeoutError(
                f"Error processing schema from {self.endpoint}: "
                f"timed out after {self.timeout} seconds"
            ) from None

    async def _post(self, headers: dict[str, str]) -> dict[str, Any]:
        request_headers = {"Content-Type": "application/json", **headers}
        payload = {"query": get_introspection_query(descriptions=True)}
        async with httpx.AsyncClient(transport=self._transport, timeout=self.timeout) as client:
            try:
                response = await client.post(self.endpoint, json=payload, headers=request_headers)
            except httpx.HTTPError as e:
                raise self._error(f"{type(e).__name__}: {e}") from e

        if response.is_error:
            raise self._error(f"HTTP {response.status_code}: {response.reason_phrase}")
        try:
            result = response.json()
        except ValueError as e:
            raise self._error("Invalid JSON response") from e

        if result.get("errors"):
            messages = "; ".join(e.get("message", str(e)) for e in result["errors"])
            raise self._error(f"GraphQL errors: {messages}")
        if not result.get("data"):
            raise self._error("Invalid introspection response: 'data' field missing")
        return result["data"]


# Lookups


def root_type_for(schema: GraphQLSchema, operation_type: OperationType | str) -> GraphQLObjectType | None:
    roots = {
        OperationType.QUERY: schema.query_type,
        OperationType.MUTATION: schema.mutation_type,
        OperationType.SUBSCRIPTION: schema.subscription_type,
    }
    return roots[OperationType(operation_type)]


def type_from_string(schema: GraphQLSchema, type_string: str) -> GraphQLType | None:
    """Resolve a type string like ``[ID!]!`` against the schema."""
    try:
        type_node = parse_type(type_string)
    except GraphQLError:
        return None
    return type_from_ast(schema, type_node)


def fields_of(gql_type: GraphQLType) -> dict[str, GraphQLField]:
    """Fields of an object or interface type; empty for anything else."""
    named = get_named_type(gql_type)
    if is_object_type(named) or is_interface_type(named):
        return named.fields
    return {}


def missing_segment(path: FieldPath, index: int) -> str:
    """Describe the first segment of ``path`` that is not selected."""
    parent = path.prefix(index)
    location = f"under '{parent}'" if not parent.is_root else "at the operation root"
    return f"'{path.segments[index]}' is not selected {location}"


def field_definition(parent_type: GraphQLNamedType, field_name: str) -> GraphQLField | None:
    if field_name == "__typename":
        return TypeNameMetaFieldDef
    return fields_of(parent_type).get(field_name)


@dataclass
class ResolvedField:
    """A tree node paired with its schema field and the type that declares it."""
    node: SelectionNode
    definition: GraphQLField
    parent_type: GraphQLNamedType

    @property
    def output_type(self) -> GraphQLNamedType:
        return get_named_type(self.definition.type)


def resolve_field(
    root_type: GraphQLObjectType,
    structure: SelectionNode,
    path: FieldPath,
) -> ResolvedField:
    """Walk the tree and the schema together along ``path``.

    Segments are response keys, so aliased fields are looked up by the
    field name stored on the node.

    Raises:
        NotFoundError: If a segment is missing from the tree or the schema
    """
    if path.is_root:
        raise NotFoundError("fieldPath cannot be empty.")

    parent_type: GraphQLNamedType = root_type
    node = structure
    resolved = None
    for index, key in enumerate(path.segments):
        child = node.fields.get(key)
        if child is None:
            raise NotFoundError(f"Field at path '{path}' not found: {missing_segment(path, index)}.")
        definition = field_definition(parent_type, child.field_name)
        if definition is None:
            raise NotFoundError(
                f"Field '{child.field_name}' not found on type '{parent_type.name}'."
            )
        resolved = ResolvedField(node=child, definition=definition, parent_type=parent_type)
        parent_type = resolved.output_type
        node = child
    return resolved


def resolve_parent_type(
    root_type: GraphQLObjectType,
    structure: SelectionNode,
    path: FieldPath,
) -> GraphQLNamedType:
    """Type whose fields may be selected under ``path`` (the root type for "")."""
    if path.is_root:
        return root_type
    return resolve_field(root_type, structure, path).output_type
