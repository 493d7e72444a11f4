"""Tests for document serialization."""

from gql_session.core.ir import (
    Directive,
    DirectiveArgument,
    EnumLiteral,
    FragmentDefinition,
    InlineFragment,
    LiteralValue,
    MarkedString,
    OperationType,
    QueryState,
    SelectionNode,
    TypedValue,
    VariableRef,
)
from gql_session.core.query_builder import (
    build_query,
    build_query_from_state,
    build_selection_set,
    render_arguments,
    render_directives,
)


def leaf(name, **kwargs):
    return SelectionNode(name, **kwargs)


def root(**fields):
    return SelectionNode(fields=fields)


# =============================================================================
# Fragments of output
# =============================================================================


class TestRenderArguments:
    """Tests for argument lists."""

    def test_empty(self):
        assert render_arguments({}) == ""

    def test_each_kind(self):
        rendered = render_arguments({
            "id": VariableRef("$id"),
            "page": TypedValue(2),
            "name": MarkedString("42"),
            "status": EnumLiteral("ALIVE"),
            "filter": LiteralValue({"species": "Human"}),
        })
        assert rendered == '(id: $id, page: 2, name: "42", status: ALIVE, filter: {species: "Human"})'


class TestRenderDirectives:
    """Tests for directive rendering."""

    def test_without_arguments(self):
        assert render_directives([Directive("live")]) == "@live"

    def test_with_arguments(self):
        directive = Directive("cached", [
            DirectiveArgument("ttl", LiteralValue(60)),
            DirectiveArgument("scope", EnumLiteral("PUBLIC")),
        ])
        assert render_directives([directive, Directive("live")]) == "@cached(ttl: 60, scope: PUBLIC) @live"


# =============================================================================
# Whole documents
# =============================================================================


class TestBuildQuery:
    """Tests for full document text."""

    def test_empty_structure(self):
        assert build_query(SelectionNode(), "query", {}) == ""

    def test_fragment_definitions_alone_render_nothing(self):
        fragments = {"Parts": FragmentDefinition("Character", {"id": SelectionNode("id")})}
        assert build_query(SelectionNode(), "query", {}, fragments=fragments) == ""

    def test_nested_fields(self):
        structure = root(character=leaf(
            "character",
            args={"id": TypedValue("1")},
            fields={"name": leaf("name"), "origin": leaf("origin", fields={"name": leaf("name")})},
        ))
        assert build_query(structure, OperationType.QUERY, {}) == (
            "query {\n"
            '  character(id: "1") {\n'
            "    name\n"
            "    origin {\n"
            "      name\n"
            "    }\n"
            "  }\n"
            "}"
        )

    def test_header_with_variables(self):
        structure = root(character=leaf("character", args={"id": VariableRef("$id")}, fields={"name": leaf("name")}))
        document = build_query(
            structure,
            "query",
            {"$id": "ID!", "$page": "Int", "$status": "Status"},
            operation_name="GetCharacter",
            variables_defaults={"$page": 1, "$status": EnumLiteral("ALIVE")},
        )
        assert document.splitlines()[0] == (
            "query GetCharacter($id: ID!, $page: Int = 1, $status: Status = ALIVE) {"
        )
        assert "  character(id: $id) {" in document

    def test_operation_directives(self):
        structure = root(users=leaf("users", fields={"id": leaf("id")}))
        document = build_query(
            structure,
            "query",
            {"$ttl": "Int"},
            operation_name="Users",
            operation_directives=[Directive("cached", [DirectiveArgument("ttl", VariableRef("$ttl"))])],
        )
        assert document.startswith("query Users($ttl: Int) @cached(ttl: $ttl) {\n")

    def test_mutation_keyword(self):
        structure = root(deleteUser=leaf("deleteUser", args={"id": TypedValue("7")}))
        assert build_query(structure, "mutation", {}) == 'mutation {\n  deleteUser(id: "7")\n}'

    def test_alias(self):
        structure = root(main=leaf("character", alias="main", fields={"id": leaf("id")}))
        assert "  main: character {" in build_query(structure, "query", {})

    def test_alias_equal_to_name_not_repeated(self):
        structure = root(name=leaf("name", alias="name"))
        assert build_query(structure, "query", {}) == "query {\n  name\n}"

    def test_field_directives(self):
        name = leaf("name", directives=[Directive("include", [DirectiveArgument("if", VariableRef("$show"))])])
        structure = root(character=leaf("character", fields={"name": name}))
        assert "    name @include(if: $show)\n" in build_query(structure, "query", {"$show": "Boolean!"})

    def test_spreads_inline_fragments_and_definitions(self):
        search = leaf(
            "search",
            args={"text": MarkedString("rick")},
            fields={"__typename": leaf("__typename")},
            fragment_spreads=["CharacterParts"],
            inline_fragments=[InlineFragment("Location", {"dimension": leaf("dimension")})],
        )
        fragments = {
            "CharacterParts": FragmentDefinition("Character", {"id": leaf("id"), "name": leaf("name")}),
        }
        assert build_query(root(search=search), "query", {}, fragments=fragments) == (
            "query {\n"
            '  search(text: "rick") {\n'
            "    __typename\n"
            "    ...CharacterParts\n"
            "    ... on Location {\n"
            "      dimension\n"
            "    }\n"
            "  }\n"
            "}\n"
            "\n"
            "fragment CharacterParts on Character {\n"
            "  id\n"
            "  name\n"
            "}"
        )

    def test_insertion_order_is_preserved(self):
        structure = root(users=leaf("users"), character=leaf("character"), episode=leaf("episode"))
        lines = build_query(structure, "query", {}).splitlines()
        assert lines[1:4] == ["  users", "  character", "  episode"]

    def test_deterministic(self):
        structure = root(character=leaf("character", args={"id": TypedValue("1")}, fields={"name": leaf("name")}))
        assert build_query(structure, "query", {}) == build_query(structure, "query", {})


class TestBuildHelpers:
    """Tests for the convenience wrappers."""

    def test_selection_set(self):
        fields = {"id": leaf("id"), "name": leaf("name")}
        assert build_selection_set(fields) == "  id\n  name"

    def test_from_state(self):
        state = QueryState(
            operation_name="Q",
            query_structure=root(users=leaf("users", fields={"id": leaf("id")})),
            variables_schema={"$limit": "Int"},
            variables_defaults={"$limit": 10},
        )
        assert build_query_from_state(state).startswith("query Q($limit: Int = 10) {")
