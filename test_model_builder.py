"""
Unit tests for model_builder module.
"""

import pytest
from datetime import date
from pydantic import BaseModel, ValidationError

from form_engine.model_builder import (
    create_model_from_schema,
    create_field_from_node,
    get_field_type,
    create_nested_model,
    create_validators_for_field,
    evaluate_refinements,
    collect_refinement_failures,
    model_to_dict,
    parse_model_data,
)
from form_engine.schema_nodes import (
    Refinement, array, boolean, email, enum, max_length, max_value, min_length, min_value,
    number, obj, optional, pattern, string
)


class TestModelBuilder:
    """Test class for model builder."""

    def test_create_model_from_schema_basic(self):
        """Test creating a basic model from schema."""
        schema = obj({
            "name": string(),
            "age": optional(number(integer=True, default=0)),
        })

        model_class = create_model_from_schema(schema, "TestModel")

        assert model_class.__name__ == "TestModel"
        assert issubclass(model_class, BaseModel)

        name_field = model_class.model_fields["name"]
        assert name_field.is_required()
        assert name_field.annotation == str

        age_field = model_class.model_fields["age"]
        assert not age_field.is_required()
        assert age_field.default == 0

    def test_create_model_from_schema_rejects_non_object(self):
        with pytest.raises(ValueError):
            create_model_from_schema(string(), "Broken")

    def test_optional_field_defaults_to_none(self):
        model_class = create_model_from_schema(obj({"nickname": optional(string())}), "Nick")

        assert model_class().nickname is None

    def test_get_field_type_scalars(self):
        assert get_field_type(string(), "M") == str
        assert get_field_type(number(), "M") == float
        assert get_field_type(number(integer=True), "M") == int
        assert get_field_type(boolean(), "M") == bool

    def test_get_field_type_nested_object(self):
        nested = get_field_type(obj({"city": string()}), "Address")

        assert issubclass(nested, BaseModel)
        assert "city" in nested.model_fields

    def test_create_field_from_node_description(self):
        field_type, field_info = create_field_from_node("name", string(description="Name|Legal name"), "M_name")

        assert field_type == str
        assert field_info.description == "Name|Legal name"

    def test_create_nested_model(self):
        """Nested objects become nested models and dump back to dicts."""
        schema = obj({
            "address": obj({"street": string(), "city": string()}),
        })

        model_class = create_nested_model(schema, "Outer")
        instance = model_class(address={"street": "1 Main St", "city": "Springfield"})

        assert model_to_dict(instance) == {"address": {"street": "1 Main St", "city": "Springfield"}}

    def test_extra_keys_are_ignored(self):
        model_class = create_model_from_schema(obj({"name": string()}), "Strict")

        assert model_to_dict(model_class(name="a", unknown=1)) == {"name": "a"}


class TestConstraints:
    """Leaf constraint descriptors enforced by the generated model."""

    def test_string_length(self):
        model_class = create_model_from_schema(obj({"code": string(min_length(2), max_length(4))}), "Code")

        model_class(code="abc")
        with pytest.raises(ValidationError):
            model_class(code="a")
        with pytest.raises(ValidationError):
            model_class(code="abcde")

    def test_numeric_bounds(self):
        model_class = create_model_from_schema(obj({"age": number(min_value(18), max_value(65))}), "Age")

        assert model_class(age=30).age == 30
        with pytest.raises(ValidationError):
            model_class(age=15)
        with pytest.raises(ValidationError):
            model_class(age=70)

    def test_pattern_and_custom_message(self):
        model_class = create_model_from_schema(
            obj({"code": string(pattern(r"^[A-Z]+$", "Upper case only"))}), "Pattern"
        )

        normalized, errors = parse_model_data({"code": "abc"}, model_class)

        assert normalized is None
        assert errors == [{"path": "code", "message": "Upper case only"}]

    def test_email(self):
        model_class = create_model_from_schema(obj({"email": string(email())}), "Email")

        model_class(email="user@example.com")
        with pytest.raises(ValidationError):
            model_class(email="not-an-email")

    def test_enum_choices(self):
        model_class = create_model_from_schema(obj({"status": enum(["Active", "Suspended"])}), "Status")

        assert model_class(status="Active").status == "Active"
        with pytest.raises(ValidationError):
            model_class(status="Deleted")

    def test_date_is_parsed(self):
        from form_engine.schema_nodes import LeafNode
        model_class = create_model_from_schema(obj({"start": LeafNode("date")}), "Dates")

        assert model_class(start="2024-01-31").start == date(2024, 1, 31)

    def test_array_bounds(self):
        model_class = create_model_from_schema(
            obj({"tags": array(string(), min_items=1, max_items=2)}), "Tags"
        )

        assert model_class(tags=["a"]).tags == ["a"]
        with pytest.raises(ValidationError):
            model_class(tags=[])
        with pytest.raises(ValidationError):
            model_class(tags=["a", "b", "c"])

    def test_optional_blank_string_becomes_none(self):
        model_class = create_model_from_schema(obj({"website": optional(string(min_length(5)))}), "Site")

        assert model_class(website="").website is None
        assert model_class(website="   ").website is None

    def test_create_validators_for_field(self):
        assert create_validators_for_field("name", string()) == {}
        assert "validate_nickname_blank" in create_validators_for_field("nickname", optional(string()))


class TestRefinements:
    """Cross-field refinements."""

    def test_fields_match(self):
        refinements = [Refinement("fields_match", ("password", "confirm"), "Passwords do not match")]

        assert evaluate_refinements({"password": "x", "confirm": "x"}, refinements) == []
        assert evaluate_refinements({"password": "x", "confirm": "y"}, refinements) == [
            ("confirm", "Passwords do not match")
        ]

    def test_declared_path_wins(self):
        refinements = [Refinement("fields_match", ("a", "b"), "Mismatch", path="a")]

        assert evaluate_refinements({"a": 1, "b": 2}, refinements) == [("a", "Mismatch")]

    def test_less_or_equal_and_date_order(self):
        numbers = [Refinement("less_or_equal", ("low", "high"), "Low must not exceed high")]
        dates = [Refinement("date_order", ("start", "end"), "End before start")]

        assert evaluate_refinements({"low": 1, "high": 2}, numbers) == []
        assert evaluate_refinements({"low": 3, "high": 2}, numbers) == [("high", "Low must not exceed high")]
        assert evaluate_refinements({"start": "2024-02-01", "end": "2024-01-01"}, dates) == [("end", "End before start")]
        # Empty operands are left to the per-field required checks
        assert evaluate_refinements({"start": "", "end": "2024-01-01"}, dates) == []

    def test_required_if(self):
        refinements = [Refinement("required_if", ("needsFollowUp", "followUpDate"), "Date required")]

        assert evaluate_refinements({"needsFollowUp": False, "followUpDate": ""}, refinements) == []
        assert evaluate_refinements({"needsFollowUp": True, "followUpDate": ""}, refinements) == [
            ("followUpDate", "Date required")
        ]

    def test_must_be_true(self):
        refinements = [Refinement("must_be_true", ("terms",), "Accept the terms")]

        assert evaluate_refinements({"terms": True}, refinements) == []
        assert evaluate_refinements({"terms": False}, refinements) == [("terms", "Accept the terms")]

    def test_unknown_rule_is_ignored(self):
        assert evaluate_refinements({"a": 1}, [Refinement("mystery", ("a",), "?")]) == []

    def test_model_enforces_refinements(self):
        schema = obj(
            {"password": string(), "confirm": string()},
            refinements=[Refinement("fields_match", ("password", "confirm"), "Passwords do not match")],
        )
        model_class = create_model_from_schema(schema, "Register")

        normalized, errors = parse_model_data({"password": "a", "confirm": "b"}, model_class)

        assert normalized is None
        assert errors == [{"path": "", "message": "Passwords do not match"}]

    def test_collect_refinement_failures_nested(self):
        item = obj(
            {"low": number(), "high": number()},
            refinements=[Refinement("less_or_equal", ("low", "high"), "Range inverted")],
        )
        schema = obj({"ranges": array(item), "meta": obj({"a": string(), "b": string()}, refinements=[
            Refinement("fields_match", ("a", "b"), "Mismatch")
        ])})
        values = {
            "ranges": [{"low": 1, "high": 2}, {"low": 5, "high": 3}],
            "meta": {"a": "x", "b": "y"},
        }

        failures = collect_refinement_failures(schema, values)

        assert ("ranges.1.high", "Range inverted") in failures
        assert ("meta.b", "Mismatch") in failures
        assert len(failures) == 2


class TestParseModelData:

    def test_success_returns_normalized_dict(self):
        model_class = create_model_from_schema(obj({"age": optional(number(min_value(18)))}), "Age")

        normalized, errors = parse_model_data({"age": 21}, model_class)

        assert errors == []
        assert normalized == {"age": 21}

    def test_error_paths_are_dotted(self):
        schema = obj({"contacts": array(obj({"email": string(email())}))})
        model_class = create_model_from_schema(schema, "Contacts")

        _, errors = parse_model_data({"contacts": [{"email": "a@b.co"}, {"email": "bad"}]}, model_class)

        assert errors == [{"path": "contacts.1.email", "message": "Invalid email address"}]
