"""
Unit tests for diff_utils module.
"""

import pytest

from form_engine.diff_utils import (
    calculate_diff,
    deepdiff_path_to_dotted,
    format_diff_for_display,
    get_change_summary,
    has_changes,
)


class TestCalculateDiff:
    """Test class for diff calculation."""

    def test_no_changes(self):
        original = {"name": "Acme", "rating": 4}

        diff = calculate_diff(original, dict(original))

        assert diff == {}
        assert not has_changes(diff)

    def test_value_changed(self):
        diff = calculate_diff({"name": "Acme", "rating": 4}, {"name": "Acme", "rating": 5})

        assert diff == {'values_changed': {'rating': {'old_value': 4, 'new_value': 5}}}
        assert has_changes(diff)

    def test_type_changed(self):
        diff = calculate_diff({"rating": None}, {"rating": 3})

        assert diff['type_changes']['rating'] == {'old_value': None, 'new_value': 3}

    def test_nested_paths_are_dotted(self):
        original = {"address": {"city": "Singapore"}, "contacts": [{"email": "a@example.com"}]}
        modified = {"address": {"city": "Penang"}, "contacts": [{"email": "b@example.com"}]}

        diff = calculate_diff(original, modified)

        assert set(diff['values_changed']) == {"address.city", "contacts.0.email"}

    def test_items_added_and_removed(self):
        added = calculate_diff({"tags": ["a"]}, {"tags": ["a", "b"]})
        removed = calculate_diff({"tags": ["a", "b"]}, {"tags": ["a"]})

        assert added['iterable_item_added'] == {"tags.1": "b"}
        assert removed['iterable_item_removed'] == {"tags.1": "b"}

    def test_reordering_is_a_change(self):
        assert has_changes(calculate_diff({"tags": ["a", "b"]}, {"tags": ["b", "a"]}))


class TestHelpers:

    @pytest.mark.parametrize("raw,dotted", [
        ("root['name']", "name"),
        ("root['address']['city']", "address.city"),
        ("root['contacts'][0]['email']", "contacts.0.email"),
        ("root['tags'][12]", "tags.12"),
        ("root", ""),
    ])
    def test_deepdiff_path_to_dotted(self, raw, dotted):
        assert deepdiff_path_to_dotted(raw) == dotted

    def test_has_changes_empty(self):
        assert has_changes({}) is False
        assert has_changes({'values_changed': {}}) is False

    def test_change_summary(self):
        diff = calculate_diff(
            {"name": "Acme", "tags": ["a", "b"], "rating": 1},
            {"name": "Globex", "tags": ["a"], "rating": 1, "extra": True},
        )

        summary = get_change_summary(diff)

        assert summary == {'modified': 1, 'added': 1, 'removed': 1, 'total': 3}


class TestFormatDiff:

    def test_no_changes_message(self):
        assert format_diff_for_display({}) == "**No changes detected**"

    def test_lists_each_change(self):
        diff = calculate_diff({"name": "Acme", "tags": []}, {"name": "Globex", "tags": ["x"]})

        text = format_diff_for_display(diff)

        assert text.startswith("**Changes**")
        assert '`name`: "Acme" → "Globex"' in text
        assert '`tags.0` added: "x"' in text

    def test_empty_and_long_values(self):
        diff = calculate_diff({"notes": None}, {"notes": "x" * 200})

        text = format_diff_for_display(diff)

        assert "_empty_" in text
        assert "..." in text
