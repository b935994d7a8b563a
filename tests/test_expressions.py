"""Tests for the template and arithmetic evaluator."""

import math

import pytest

from process_studio.expressions import (
    BinaryOp,
    ExpressionSyntaxError,
    Number,
    UnaryOp,
    assignment_target,
    coerce_number,
    evaluate,
    format_number,
    interpolate,
    parse,
    references,
)


class TestInterpolation:
    """``{{name}}`` substitution."""

    def test_missing_variable_defaults_to_zero(self):
        assert evaluate("{{x}} + 5", {}) == 5

    def test_values_are_substituted(self):
        assert interpolate("{{a}} * {{b}}", {"a": 3, "b": 2.5}) == "3 * 2.5"

    def test_whitespace_inside_braces_is_ignored(self):
        assert evaluate("{{ coco }} * 2", {"coco": 10}) == 20

    def test_non_numeric_values_count_as_zero(self):
        assert evaluate("{{label}} + 1", {"label": "Lote A"}) == 1

    def test_numeric_strings_are_read(self):
        assert evaluate("{{qty}} * 2", {"qty": " 4.5 "}) == 9

    def test_negative_values_interpolate_as_unary_minus(self):
        assert evaluate("{{a}} + 5", {"a": -3}) == 2
        assert evaluate("10 - {{a}}", {"a": -3}) == 13

    def test_references_in_order(self):
        assert references("{{a}} + {{ b }} - {{a}}") == ["a", "b", "a"]


class TestCoercion:
    @pytest.mark.parametrize(
        "value, expected",
        [
            (None, 0.0),
            (True, 1.0),
            (False, 0.0),
            (7, 7.0),
            (float("nan"), 0.0),
            ("", 0.0),
            ("12", 12.0),
            ("1e3", 1000.0),
            ("-Infinity", -math.inf),
            ("abc", 0.0),
            ([1], 0.0),
            (10**400, math.inf),
            (-(10**400), -math.inf),
        ],
    )
    def test_coerce_number(self, value, expected):
        assert coerce_number(value) == expected

    def test_format_number_round_trips_through_parser(self):
        for value in (0.0, 20.0, -3.0, 0.1, 1e300, 2.5e-8, math.inf, -math.inf):
            assert evaluate(format_number(value), {}) == value

    def test_integral_values_have_no_fraction(self):
        assert format_number(20.0) == "20"


class TestArithmetic:
    """Precedence, parentheses and IEEE semantics."""

    def test_multiplication_binds_tighter(self):
        assert evaluate("2 + 3 * 4", {}) == 14
        assert evaluate("10 - 6 / 2", {}) == 7

    def test_parentheses_override_precedence(self):
        assert evaluate("(2 + 3) * 4", {}) == 20

    def test_left_associativity(self):
        assert evaluate("10 - 4 - 3", {}) == 3
        assert evaluate("64 / 4 / 2", {}) == 8

    def test_unary_operators(self):
        assert evaluate("-(2 + 3)", {}) == -5
        assert evaluate("--4", {}) == 4
        assert evaluate("+4", {}) == 4

    def test_decimal_forms(self):
        assert evaluate(".5 + 5. + 1e1", {}) == 15.5

    def test_division_by_zero_is_infinite(self):
        assert evaluate("1 / 0", {}) == math.inf
        assert evaluate("-1 / 0", {}) == -math.inf
        assert evaluate("1 / -0", {}) == -math.inf

    def test_zero_over_zero_is_nan(self):
        assert math.isnan(evaluate("0 / 0", {}))
        assert math.isnan(evaluate("{{a}} / {{b}}", {}))

    def test_oversized_integers_evaluate_as_infinity(self):
        assert evaluate("{{x}} + 1", {"x": 10**400}) == math.inf

    def test_long_operator_chains(self):
        assert evaluate("+".join(["1"] * 5000), {}) == 5000
        assert evaluate(" * ".join(["{{x}}"] * 3000), {"x": 1}) == 1

    def test_parse_builds_tree(self):
        tree = parse("1 + 2 * -3")
        assert tree == BinaryOp(
            "+", Number(1.0), BinaryOp("*", Number(2.0), UnaryOp("-", Number(3.0)))
        )


class TestSyntaxErrors:
    """Anything that is not plain arithmetic is rejected."""

    @pytest.mark.parametrize(
        "expression",
        [
            "",
            "   ",
            "1 +",
            "(1 + 2",
            "1 + 2)",
            "2 3",
            "* 4",
            "__import__('os')",
            "1 ** 2",
            "abs(-1)",
            "1 % 2",
            "x + 1",
        ],
    )
    def test_invalid_expressions(self, expression):
        with pytest.raises(ExpressionSyntaxError):
            evaluate(expression, {})

    def test_error_reports_position(self):
        with pytest.raises(ExpressionSyntaxError) as exc_info:
            evaluate("1 + $", {})
        assert exc_info.value.position == 4

    def test_excessive_nesting_is_rejected(self):
        with pytest.raises(ExpressionSyntaxError):
            evaluate("(" * 500 + "1" + ")" * 500, {})

    def test_syntax_error_is_value_error(self):
        assert issubclass(ExpressionSyntaxError, ValueError)


class TestAssignmentTarget:
    """Dual-mode write target selection."""

    def test_explicit_result_var_wins(self):
        assert assignment_target("{{count}} + 1", "total") == "total"

    def test_first_placeholder_without_result_var(self):
        assert assignment_target("{{count}} + {{step}}", None) == "count"
        assert assignment_target("{{count}} + 1", "") == "count"

    def test_no_placeholder_means_no_write(self):
        assert assignment_target("1 + 1", None) is None
