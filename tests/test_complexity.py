"""Tests for static complexity analysis."""

import pytest

from gql_session.core.complexity import (
    MAX_COMPLEXITY_SCORE,
    analyze_query_complexity,
)
from gql_session.core.ir import (
    Directive,
    InlineFragment,
    SelectionNode,
    TypedValue,
)


def chain(length, leaf=None):
    """Nested single-field chain ``f0 { f1 { ... } }`` with ``length`` fields."""
    nodes = [SelectionNode(f"f{i}") for i in range(length)]
    for parent, child in zip(nodes, nodes[1:]):
        parent.fields[child.key] = child
    if leaf is not None:
        nodes[-1].fields.update(leaf)
    return SelectionNode(fields={nodes[0].key: nodes[0]}), nodes[-1]


class TestBasics:
    """Tests for depth and count bookkeeping."""

    def test_empty(self):
        report = analyze_query_complexity(SelectionNode())
        assert report.valid
        assert (report.depth, report.field_count, report.complexity_score) == (1, 0, 0)

    def test_depth_and_count(self):
        user = SelectionNode("user", fields={"name": SelectionNode("name"), "email": SelectionNode("email")})
        report = analyze_query_complexity(SelectionNode(fields={"user": user}))
        assert report.depth == 2
        assert report.field_count == 3

    def test_to_dict(self):
        report = analyze_query_complexity(SelectionNode(fields={"a": SelectionNode("a")}))
        assert report.to_dict() == {
            "valid": True,
            "depth": 1,
            "field_count": 1,
            "complexity_score": 1.2,
            "errors": [],
            "warnings": [],
        }


class TestScoring:
    """Tests for the weighted score."""

    def score(self, node):
        return analyze_query_complexity(SelectionNode(fields={node.key: node})).complexity_score

    def test_plain_field(self):
        assert self.score(SelectionNode("a")) == pytest.approx(1.2)

    def test_arguments(self):
        node = SelectionNode("a", args={"x": TypedValue(1), "y": TypedValue(2)})
        assert self.score(node) == pytest.approx(2.4)

    def test_large_pagination(self):
        """1 + 0.5 for the argument + log10(1000) * 2."""
        node = SelectionNode("a", args={"limit": TypedValue(1000)})
        assert self.score(node) == pytest.approx(7.5 * 1.2)

    def test_small_pagination_not_weighted(self):
        node = SelectionNode("a", args={"first": TypedValue(100)})
        assert self.score(node) == pytest.approx(1.5 * 1.2)

    def test_directive(self):
        node = SelectionNode("a", directives=[Directive("include")])
        assert self.score(node) == pytest.approx(1.3 * 1.2)

    def test_depth_multiplier(self):
        structure, _ = chain(2)
        assert analyze_query_complexity(structure).complexity_score == pytest.approx(1.2 + 1.44)

    def test_fragment_spread(self):
        node = SelectionNode("search", fragment_spreads=["Parts"])
        report = analyze_query_complexity(SelectionNode(fields={"search": node}))
        assert report.field_count == 2
        assert report.complexity_score == pytest.approx(1.2 + 2)

    def test_inline_fragment_is_one_level_deeper(self):
        structure = SelectionNode(inline_fragments=[InlineFragment("Character", {"name": SelectionNode("name")})])
        report = analyze_query_complexity(structure)
        assert report.depth == 2
        assert report.field_count == 1
        assert report.complexity_score == pytest.approx(1.44)


class TestLimits:
    """Tests for the hard limits and warnings."""

    def test_depth_at_limit(self):
        structure, _ = chain(12)
        report = analyze_query_complexity(structure)
        assert report.valid
        assert report.depth == 12
        assert any("approaching the limit of 12" in w for w in report.warnings)

    def test_depth_exceeded(self):
        structure, _ = chain(13)
        report = analyze_query_complexity(structure)
        assert not report.valid
        assert len(report.errors) == 1
        assert report.errors[0].startswith("Query depth 13 exceeds maximum allowed depth of 12 at path: f0.")

    def test_field_count(self):
        fields = {f"f{i}": SelectionNode(f"f{i}") for i in range(200)}
        assert analyze_query_complexity(SelectionNode(fields=fields)).valid

        fields["extra"] = SelectionNode("extra")
        report = analyze_query_complexity(SelectionNode(fields=fields))
        assert not report.valid
        assert "Query field count 201 exceeds maximum allowed field count of 200" in report.errors

    def test_score_exceeded(self):
        args = {"a": TypedValue(1), "b": TypedValue(2), "c": TypedValue(3)}
        leaves = {f"leaf{i}": SelectionNode(f"leaf{i}", args=dict(args)) for i in range(150)}
        structure, _ = chain(10, leaf=leaves)

        report = analyze_query_complexity(structure)

        assert report.complexity_score > MAX_COMPLEXITY_SCORE
        assert not report.valid
        assert any(
            e.startswith("Query complexity score") and e.endswith("exceeds maximum allowed complexity of 2500")
            for e in report.errors
        )
        assert any("Consider simplifying the query." in w for w in report.warnings)
