"""Shared fixtures: a small Rick-and-Morty style schema and a service over it."""

import pytest
import pytest_asyncio
from graphql import build_schema

from gql_session.core import (
    BuilderSettings,
    MemorySessionStore,
    QueryBuilderService,
    StaticSchemaProvider,
)

TEST_SDL = """
directive @cached(ttl: Int, scope: CacheScope) on FIELD | QUERY
directive @live on QUERY
directive @audit(reason: String!) on MUTATION

enum CacheScope {
  PUBLIC
  PRIVATE
}

enum Status {
  ALIVE
  DEAD
  UNKNOWN
}

enum TestEnum {
  OPTION_A
  OPTION_B
  OPTION_C
}

interface Node {
  id: ID!
}

type Query {
  character(id: ID!): Character
  characters(
    page: Int
    filter: FilterCharacter
    includeImages: Boolean
    limit: Int
    first: Int
    status: Status
  ): Characters
  location(id: ID!): Location
  episode(id: ID!): Episode
  node(id: ID!): Node
  search(text: String!): [SearchResult]
  user(id: ID!): User
  users(limit: Int, offset: Int): [User]
  testField(testArg: String): String
  complexField(
    stringArg: String
    intArg: Int
    floatArg: Float
    boolArg: Boolean
    idArg: ID
    enumArg: TestEnum
    inputArg: TestInput
  ): String
}

type Mutation {
  createUser(input: UserInput!): User
  deleteUser(id: ID!): Boolean
}

type Character implements Node {
  id: ID!
  name: String
  status: Status
  species: String
  origin: Location
  location: Location
  episode: [Episode]!
  friends(first: Int): [Character]
}

type Characters {
  info: Info
  results: [Character]
}

type Location implements Node {
  id: ID!
  name: String
  dimension: String
  residents: [Character]!
}

type Episode implements Node {
  id: ID!
  name: String
  air_date: String
  characters: [Character]!
}

type User {
  id: ID!
  name: String!
  email: String!
  active: Boolean
}

type Info {
  count: Int
  pages: Int
  next: Int
  prev: Int
}

union SearchResult = Character | Location | Episode

input FilterCharacter {
  name: String
  status: Status
  species: String
  origin: OriginFilter
  tags: [String]
}

input OriginFilter {
  name: String
  dimension: String
}

input UserInput {
  name: String!
  email: String!
  active: Boolean
}

input TestInput {
  name: String!
  value: Int!
  active: Boolean
}
"""


@pytest.fixture
def schema():
    """The test schema, built from SDL."""
    return build_schema(TEST_SDL)


@pytest.fixture
def store():
    """A fresh in-memory session store."""
    return MemorySessionStore()


@pytest.fixture
def settings():
    """Default settings with no endpoint."""
    return BuilderSettings()


@pytest.fixture
def service(schema, store, settings):
    """A service over the test schema."""
    return QueryBuilderService(store, StaticSchemaProvider(schema), settings)


@pytest_asyncio.fixture
async def session_id(service):
    """A started query session."""
    result = await service.start_query_session()
    return result["session_id"]


@pytest.fixture
def render(service):
    """Coroutine returning the rendered document of a session."""

    async def _render(session_id):
        return (await service.get_current_query(session_id))["query_string"]

    return _render
