"""Tests for boolean expressions and ${} interpolation."""

import re

import pytest

from archeflow.core.models.context import OptionValue, SelectValue, TextValue
from archeflow.errors import ExpressionError, ExpressionSyntaxError, ExpressionTypeError
from archeflow.utils.expressions import (
    And,
    Compare,
    InputSignature,
    Not,
    Or,
    Placeholder,
    Variable,
    bind_paths,
    check_types,
    evaluate,
    interpolate,
    parse_expression,
    parse_placeholder,
    placeholders,
    replacement_template,
    variables,
)


SIGNATURES = {
    "security": InputSignature("option"),
    "db": InputSignature("select", options=frozenset({"mongo", "h2", "oracle"})),
    "features": InputSignature("select", multiple=True, options=frozenset({"metrics", "health"})),
    "name": InputSignature("text"),
}

VALUES = {
    "security": OptionValue(enabled=True),
    "db": SelectValue(selected=("h2",)),
    "features": SelectValue(selected=("metrics", "health"), multiple=True),
    "name": TextValue(text="demo"),
}


class RecordingLookup:
    """Lookup that remembers which paths were read."""

    def __init__(self, values):
        self.values = values
        self.seen = []

    def __call__(self, path):
        self.seen.append(path)
        return self.values.get(path)


class TestParse:
    def test_precedence(self):
        """&& binds tighter than ||."""
        expr = parse_expression("${a} || ${b} && ${c}")
        assert expr == Or(Variable("a"), And(Variable("b"), Variable("c")))

    def test_parentheses_and_not(self):
        expr = parse_expression("!(${db} == 'mongo')")
        assert expr == Not(Compare("==", "db", "mongo"))

    def test_literals(self):
        assert parse_expression("${security} == true") == Compare("==", "security", True)
        assert parse_expression('${name} != "x"') == Compare("!=", "name", "x")
        assert parse_expression("${features} contains ['metrics', 'health']") == Compare(
            "contains", "features", ("metrics", "health")
        )

    def test_variables_in_order(self):
        expr = parse_expression("${security} && !(${db} == 'mongo') || ${name} == 'x'")
        assert list(variables(expr)) == ["security", "db", "name"]

    def test_bind_paths(self):
        expr = bind_paths(parse_expression("${db} == 'h2' && ${name}"), lambda p: f"app.{p}")
        assert list(variables(expr)) == ["app.db", "app.name"]

    @pytest.mark.parametrize(
        "text",
        [
            "",
            "${a} &&",
            "(${a}",
            "${a} == ",
            "${}",
            "${a} === 'x'",
            "${a} and ${b}",
            "${a} contains [",
        ],
    )
    def test_syntax_errors(self, text):
        with pytest.raises(ExpressionSyntaxError):
            parse_expression(text)


class TestCheckTypes:
    def check(self, text):
        check_types(parse_expression(text), SIGNATURES.__getitem__)

    def test_valid_expressions(self):
        self.check("${security} && !(${db} == 'mongo')")
        self.check("${features} contains ['metrics', 'health']")
        self.check("${name} != 'x' || ${security} == false")

    def test_contains_needs_multi_select(self):
        with pytest.raises(ExpressionTypeError, match="multi-select"):
            self.check("${db} contains 'h2'")

    def test_boolean_needs_option(self):
        with pytest.raises(ExpressionTypeError, match="option input"):
            self.check("${name} == true")

    def test_text_literal_on_option(self):
        with pytest.raises(ExpressionTypeError):
            self.check("${security} == 'yes'")

    def test_unknown_select_option(self):
        with pytest.raises(ExpressionTypeError, match="no option"):
            self.check("${db} == 'postgres'")


class TestEvaluate:
    def test_comparisons(self):
        lookup = VALUES.get
        assert evaluate(parse_expression("${db} == 'h2'"), lookup)
        assert evaluate(parse_expression("${db} != 'mongo'"), lookup)
        assert evaluate(parse_expression("${security} == true"), lookup)
        assert evaluate(parse_expression("${features} contains 'metrics'"), lookup)
        assert not evaluate(parse_expression("${name} == 'other'"), lookup)

    def test_contains_requires_every_element(self):
        lookup = {"features": SelectValue(selected=("metrics",), multiple=True)}.get
        assert not evaluate(parse_expression("${features} contains ['metrics', 'health']"), lookup)

    def test_missing_values(self):
        """An unset path is false for ==, contains and bare tests, true for !=."""
        lookup = {}.get
        assert not evaluate(parse_expression("${db} == 'h2'"), lookup)
        assert evaluate(parse_expression("${db} != 'h2'"), lookup)
        assert not evaluate(parse_expression("${features} contains 'metrics'"), lookup)
        assert not evaluate(parse_expression("${security}"), lookup)

    def test_short_circuit_and(self):
        lookup = RecordingLookup({"security": OptionValue(enabled=False)})
        assert not evaluate(parse_expression("${security} == true && ${db} == 'h2'"), lookup)
        assert lookup.seen == ["security"]

    def test_short_circuit_or(self):
        lookup = RecordingLookup(VALUES)
        assert evaluate(parse_expression("${db} == 'h2' || ${health} == true"), lookup)
        assert "health" not in lookup.seen

    def test_kind_mismatch_at_runtime(self):
        with pytest.raises(ExpressionTypeError):
            evaluate(parse_expression("${name} == true"), VALUES.get)


class TestInterpolate:
    def test_plain(self):
        assert interpolate("Hello ${name}!", {"name": "demo"}.get) == "Hello demo!"

    def test_regex_rewrite(self):
        lookup = {"package": "com.example.app"}.get
        assert interpolate(r"src/${package/\./\/}/Main.java", lookup) == "src/com/example/app/Main.java"

    def test_rewrite_group_references(self):
        lookup = {"v": "a.b"}.get
        assert interpolate(r"${v/(\w+)\.(\w+)/$2.$1}", lookup) == "b.a"

    def test_rewrite_escaped_dollar(self):
        lookup = {"v": "a.b"}.get
        assert interpolate(r"${v/\./\$1}", lookup) == "a$1b"

    def test_braces_inside_rewrite(self):
        lookup = {"v": "a12b"}.get
        assert interpolate(r"<${v/\d{2}/x}>", lookup) == "<axb>"
        assert placeholders(r"${v/\d{2}/x} ${w}") == [
            Placeholder("v", r"\d{2}", "x"),
            Placeholder("w"),
        ]

    def test_unterminated_placeholder_is_text(self):
        assert interpolate("cost ${", {}.get) == "cost ${"

    def test_resolve_applied(self):
        lookup = {"app.name": "demo"}.get
        assert interpolate("${name}", lookup, resolve=lambda p: f"app.{p}") == "demo"

    def test_missing_value(self):
        with pytest.raises(ExpressionError, match="No value"):
            interpolate("${missing}", {}.get)

    def test_malformed_rewrite(self):
        with pytest.raises(ExpressionSyntaxError):
            parse_placeholder("name/only-regex")
        with pytest.raises(ExpressionSyntaxError):
            parse_placeholder("name/[/x")


class TestReplacementTemplate:
    def test_group_reference(self):
        template = replacement_template("$1", {}.get)
        assert re.sub(r"(.*)\.mustache$", template, "pom.xml.mustache") == "pom.xml"

    def test_placeholder_value_is_literal(self):
        template = replacement_template(r"${dir}/$1", {"dir": r"a\1$2"}.get)
        assert re.sub(r"(\w+)\.txt", template, "x.txt") == r"a\1$2/x"
