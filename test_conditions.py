"""
Unit tests for field visibility conditions.
"""

import pytest

from form_engine.conditions import (
    FieldCondition,
    evaluate_condition,
    is_truthy,
    resolve_path,
    strict_equals,
)


VALUES = {
    "employmentType": "Contract",
    "age": 30,
    "active": True,
    "zero": 0,
    "name": "Acme Holdings",
    "tags": ["urgent", "review"],
    "empty": "",
    "address": {"city": "Singapore"},
    "contacts": [{"email": "a@example.com"}],
}


def check(field, operator, value=None):
    return evaluate_condition(FieldCondition(field, operator, value), VALUES)


class TestOperators:

    def test_no_condition_is_visible(self):
        assert evaluate_condition(None, VALUES) is True

    def test_equals_and_not_equals(self):
        assert check("employmentType", "equals", "Contract")
        assert not check("employmentType", "equals", "Full-Time")
        assert check("employmentType", "notEquals", "Full-Time")

    def test_equals_is_strict(self):
        """Booleans never equal numbers and strings never equal numbers."""
        assert not check("active", "equals", 1)
        assert not check("zero", "equals", False)
        assert not check("age", "equals", "30")
        assert check("age", "equals", 30.0)

    def test_contains(self):
        assert check("name", "contains", "acme")
        assert not check("name", "contains", "globex")
        assert check("tags", "contains", "urgent")
        assert not check("tags", "contains", "URGENT")
        assert not check("missing", "contains", "x")

    def test_greater_and_less_than(self):
        assert check("age", "greaterThan", 18)
        assert not check("age", "lessThan", 18)
        assert not check("name", "greaterThan", 1)
        assert not check("active", "greaterThan", 0)
        assert not check("age", "greaterThan", "18")

    @pytest.mark.parametrize("field,expected", [
        ("active", True),
        ("age", True),
        ("zero", False),
        ("empty", False),
        ("missing", False),
        ("tags", True),
    ])
    def test_truthy_and_falsy(self, field, expected):
        assert check(field, "truthy") is expected
        assert check(field, "falsy") is (not expected)

    def test_unknown_operator_is_false(self, caplog):
        assert check("age", "between", [1, 2]) is False
        assert "Unknown condition operator 'between'" in caplog.text

    def test_nested_paths(self):
        assert check("address.city", "equals", "Singapore")
        assert check("contacts.0.email", "contains", "@example")
        assert not check("contacts.3.email", "truthy")

    def test_evaluation_is_idempotent(self):
        """Evaluating the same condition twice on unchanged values gives the same answer."""
        condition = FieldCondition("employmentType", "equals", "Contract")
        snapshot = dict(VALUES)

        first = evaluate_condition(condition, VALUES)
        second = evaluate_condition(condition, VALUES)

        assert first == second
        assert VALUES == snapshot


class TestHelpers:

    def test_resolve_path_missing(self):
        assert resolve_path(VALUES, "address.zip") is None
        assert resolve_path(VALUES, "name.first") is None

    @pytest.mark.parametrize("value,expected", [
        (None, False), (False, False), (0, False), (0.0, False), ("", False), ([], False), ({}, False),
        ("0", True), ([0], True), (-1, True),
    ])
    def test_is_truthy(self, value, expected):
        assert is_truthy(value) is expected

    def test_strict_equals(self):
        assert strict_equals(1, 1.0)
        assert not strict_equals(True, 1)
        assert not strict_equals(None, "")

    def test_condition_round_trip_dict(self):
        condition = FieldCondition.from_dict({"field": "a", "operator": "truthy"})

        assert condition.value is None
        assert condition.to_dict() == {"field": "a", "operator": "truthy"}
