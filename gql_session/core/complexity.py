"""Static cost analysis of a selection tree.

Bounds depth, total field count, and a weighted complexity score before a
query is executed.
"""

import math
from dataclasses import dataclass, field
from typing import Any

from .ir import (
    ArgumentValue,
    EnumLiteral,
    LiteralValue,
    MarkedString,
    SelectionNode,
    TypedValue,
)
from .validation import leading_integer

MAX_QUERY_DEPTH = 12
MAX_FIELD_COUNT = 200
MAX_COMPLEXITY_SCORE = 2500

SCORE_WARNING_RATIO = 0.7
DEPTH_WARNING_RATIO = 0.8
DEPTH_MULTIPLIER = 1.2
ARGUMENT_WEIGHT = 0.5
DIRECTIVE_WEIGHT = 0.3
FRAGMENT_SPREAD_WEIGHT = 2
LARGE_PAGE_THRESHOLD = 100

# "top" is capped on input but not weighted here
WEIGHTED_PAGINATION_ARGUMENTS = frozenset({"first", "last", "limit", "count"})


@dataclass
class ComplexityReport:
    """Result of :func:`analyze_query_complexity`."""
    valid: bool = True
    depth: int = 0
    field_count: int = 0
    complexity_score: float = 0.0
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "valid": self.valid,
            "depth": self.depth,
            "field_count": self.field_count,
            "complexity_score": round(self.complexity_score, 2),
            "errors": list(self.errors),
            "warnings": list(self.warnings),
        }


def _numeric_argument(value: ArgumentValue) -> int:
    if isinstance(value, (TypedValue, LiteralValue, MarkedString, EnumLiteral)):
        return leading_integer(value.value) or 0
    return 0


def _field_score(node: SelectionNode, depth: int) -> float:
    score = 1.0
    if node.args:
        score += len(node.args) * ARGUMENT_WEIGHT
        for name, value in node.args.items():
            if name.lower() in WEIGHTED_PAGINATION_ARGUMENTS:
                number = _numeric_argument(value)
                if number > LARGE_PAGE_THRESHOLD:
                    score += math.log10(number) * 2
    if node.directives:
        score += len(node.directives) * DIRECTIVE_WEIGHT
    return score * DEPTH_MULTIPLIER ** depth


def analyze_query_complexity(structure: SelectionNode) -> ComplexityReport:
    """Walk the tree from the root (depth 1) and score every field.

    A branch deeper than the ceiling records one error and is not
    descended further.
    """
    report = ComplexityReport()
    visited: set[str] = set()

    def analyze(node: SelectionNode | dict[str, SelectionNode], depth: int, path: str) -> None:
        fields = node if isinstance(node, dict) else node.fields
        report.depth = max(report.depth, depth)
        if depth > MAX_QUERY_DEPTH:
            report.valid = False
            report.errors.append(
                f"Query depth {depth} exceeds maximum allowed depth of {MAX_QUERY_DEPTH} at path: {path}"
            )
            return

        for key, child in fields.items():
            child_path = f"{path}.{key}" if path else key
            report.field_count += 1
            report.complexity_score += _field_score(child, depth)
            if child_path not in visited:
                visited.add(child_path)
                if child.has_selections:
                    analyze(child, depth + 1, child_path)
                visited.discard(child_path)

        if isinstance(node, SelectionNode):
            for _ in node.fragment_spreads:
                report.field_count += 1
                report.complexity_score += FRAGMENT_SPREAD_WEIGHT
            for index, fragment in enumerate(node.inline_fragments):
                fragment_path = f"{path}...on{fragment.on_type}[{index}]"
                if fragment.selections:
                    analyze(fragment.selections, depth + 1, fragment_path)

    analyze(structure, 1, "")

    if report.field_count > MAX_FIELD_COUNT:
        report.valid = False
        report.errors.append(
            f"Query field count {report.field_count} exceeds maximum allowed field count of {MAX_FIELD_COUNT}"
        )
    rounded = round(report.complexity_score)
    if report.complexity_score > MAX_COMPLEXITY_SCORE:
        report.valid = False
        report.errors.append(
            f"Query complexity score {rounded} exceeds maximum allowed complexity of {MAX_COMPLEXITY_SCORE}"
        )
    if report.complexity_score > MAX_COMPLEXITY_SCORE * SCORE_WARNING_RATIO:
        report.warnings.append(
            f"Query complexity score {rounded} is approaching the limit of "
            f"{MAX_COMPLEXITY_SCORE}. Consider simplifying the query."
        )
    if report.depth > MAX_QUERY_DEPTH * DEPTH_WARNING_RATIO:
        report.warnings.append(
            f"Query depth {report.depth} is approaching the limit of {MAX_QUERY_DEPTH}. "
            "Consider reducing nesting."
        )
    return report
