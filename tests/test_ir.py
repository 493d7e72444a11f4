"""Tests for the selection tree and its persistence codec."""

import json

import pytest

from gql_session.core.errors import InvalidSyntaxError
from gql_session.core.ir import (
    Directive,
    EnumLiteral,
    FieldPath,
    FragmentDefinition,
    InlineFragment,
    LiteralValue,
    MarkedString,
    OperationType,
    QueryState,
    SelectionNode,
    TypedValue,
    VariableRef,
    decode_argument,
    encode_argument,
    upsert_directive,
)


class TestFieldPath:
    """Tests for dotted field paths."""

    def test_root(self):
        assert FieldPath.parse("").is_root
        assert FieldPath.parse(None).is_root
        assert str(FieldPath.parse("")) == ""

    def test_segments(self):
        path = FieldPath.parse("characters.results")
        assert path.segments == ("characters", "results")
        assert path.depth == 2
        assert str(path.child("name")) == "characters.results.name"

    @pytest.mark.parametrize("text", ["a..b", ".a", "a."])
    def test_empty_segments_rejected(self, text):
        with pytest.raises(InvalidSyntaxError, match="Invalid field path"):
            FieldPath.parse(text)


class TestSelectionNode:
    """Tests for tree navigation."""

    @pytest.fixture
    def tree(self):
        """character { name origin { name } } plus an inline fragment."""
        origin = SelectionNode("origin", fields={"name": SelectionNode("name")})
        character = SelectionNode(
            "character",
            alias="main",
            fields={"name": SelectionNode("name"), "origin": origin},
            inline_fragments=[InlineFragment("Character", {"species": SelectionNode("species")})],
        )
        return SelectionNode(fields={"main": character})

    def test_key_prefers_alias(self):
        assert SelectionNode("character", alias="main").key == "main"
        assert SelectionNode("character").key == "character"

    def test_find(self, tree):
        assert tree.find(FieldPath.parse("main.origin.name")).field_name == "name"
        assert tree.find(FieldPath.parse("character")) is None
        assert tree.find(FieldPath()) is tree

    def test_walk_includes_inline_fragments(self, tree):
        names = [node.field_name for node in tree.walk()]
        assert "species" in names
        assert names.count("name") == 2

    def test_has_selections(self):
        assert not SelectionNode("name").has_selections
        assert SelectionNode("search", fragment_spreads=["Parts"]).has_selections


class TestDirectives:
    """Tests for directive argument handling."""

    def test_set_argument_replaces(self):
        directive = Directive("cached")
        directive.set_argument("ttl", LiteralValue(30))
        directive.set_argument("scope", EnumLiteral("PUBLIC"))
        directive.set_argument("ttl", LiteralValue(60))
        assert [a.name for a in directive.arguments] == ["ttl", "scope"]
        assert directive.arguments[0].value == LiteralValue(60)

    def test_upsert(self):
        directives = [Directive("include")]
        assert upsert_directive(directives, "include") is directives[0]
        upsert_directive(directives, "skip")
        assert [d.name for d in directives] == ["include", "skip"]


class TestCodec:
    """Tests for the state persistence codec."""

    def test_argument_kinds(self):
        assert encode_argument(VariableRef("$id")) == {"kind": "variable", "name": "$id"}
        assert encode_argument(MarkedString("42")) == {"kind": "string", "value": "42"}
        assert encode_argument(EnumLiteral("ALIVE")) == {"kind": "enum", "value": "ALIVE"}

    def test_nested_markers(self):
        """Markers nested in literals survive a JSON round trip."""
        value = LiteralValue({"name": MarkedString("123"), "status": EnumLiteral("ALIVE"), "n": 1})
        encoded = encode_argument(value)
        assert encoded["value"]["name"] == {"__graphqlString": "123"}
        assert decode_argument(json.loads(json.dumps(encoded))) == value

    def test_unknown_kind(self):
        with pytest.raises(ValueError, match="Unknown argument encoding"):
            decode_argument({"kind": "mystery"})

    def test_state_survives_json(self):
        """A populated state is equal after being stored as JSON."""
        name = SelectionNode("name", directives=[Directive("include")])
        name.directives[0].set_argument("if", VariableRef("$show"))
        character = SelectionNode(
            "character",
            alias="main",
            args={"id": VariableRef("$id")},
            fields={"name": name},
            fragment_spreads=["CharacterParts"],
        )
        characters = SelectionNode(
            "characters",
            args={
                "page": TypedValue(2),
                "status": EnumLiteral("ALIVE"),
                "filter": LiteralValue({"name": "Rick", "tags": ["a", "b"]}),
            },
        )
        search = SelectionNode(
            "search",
            args={"text": MarkedString("rick")},
            inline_fragments=[InlineFragment("Location", {"dimension": SelectionNode("dimension")})],
        )
        state = QueryState(
            operation_type=OperationType.MUTATION,
            operation_type_name="Mutation",
            operation_name="Everything",
            headers={"Authorization": "Bearer x"},
            query_structure=SelectionNode(
                fields={"main": character, "characters": characters, "search": search}
            ),
            fragments={"CharacterParts": FragmentDefinition("Character", {"id": SelectionNode("id")})},
            variables_schema={"$id": "ID!", "$show": "Boolean!", "$status": "Status"},
            variables_defaults={"$status": EnumLiteral("DEAD")},
            variables_values={"$id": "1", "$show": True},
            operation_directives=[Directive("cached", [])],
            revision=4,
        )

        restored = QueryState.from_dict(json.loads(json.dumps(state.to_dict())))

        assert restored == state
        assert list(restored.query_structure.fields) == ["main", "characters", "search"]

    def test_defaults_for_sparse_data(self):
        state = QueryState.from_dict({})
        assert state.operation_type is OperationType.QUERY
        assert state.operation_type_name == "Query"
        assert state.revision == 0
        assert not state.query_structure.has_selections
