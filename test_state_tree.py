"""
Unit tests for the state tree builder.
"""

import pytest

from form_engine.form_exceptions import UnknownFieldPathError
from form_engine.introspector import extract_field_descriptors
from form_engine.schema_nodes import (
    LeafNode, array, boolean, email, enum, min_value, number, obj, optional, string
)
from form_engine.state_tree import (
    LEAF_STATE, COMPOSITE_STATE, REPEATING_STATE,
    build_state_tree, get_node, iter_active_leaves, iter_leaves, mark_present, raw_value, shape_paths,
    descriptor_paths, new_item
)


def build(schema, data=None):
    descriptors = extract_field_descriptors(schema)
    return descriptors, build_state_tree(descriptors, data)


class TestSeeding:
    """Value precedence: initial data > default > zero value."""

    def test_zero_values(self):
        _, root = build(obj({
            "name": string(),
            "active": boolean(),
            "age": number(min_value(18)),
            "amount": number(),
            "status": enum(["A", "B"]),
            "tags": array(string()),
        }))

        assert raw_value(root) == {
            "name": "",
            "active": False,
            "age": 18,
            "amount": None,
            "status": "",
            "tags": [],
        }

    def test_default_beats_zero_value(self):
        _, root = build(obj({"status": enum(["A", "B"], default="B"), "active": boolean(default=True)}))

        assert raw_value(root) == {"status": "B", "active": True}

    def test_initial_data_beats_default(self):
        _, root = build(obj({"status": enum(["A", "B"], default="B")}), {"status": "A"})

        assert get_node(root, "status").value == "A"

    def test_explicit_none_is_kept(self):
        _, root = build(obj({"note": optional(string(default="x"))}), {"note": None})

        assert get_node(root, "note").value is None

    def test_nested_partial_data(self):
        _, root = build(
            obj({"address": obj({"street": string(), "city": string(default="Singapore")})}),
            {"address": {"street": "1 Main St"}},
        )

        assert raw_value(root) == {"address": {"street": "1 Main St", "city": "Singapore"}}

    def test_initial_data_is_copied(self):
        data = {"tags": ["a"]}
        _, root = build(obj({"tags": array(string())}), data)

        get_node(root, "tags").items.append(None)

        assert data == {"tags": ["a"]}

    def test_wrong_container_type_is_ignored(self, caplog):
        _, root = build(obj({"address": obj({"city": string()})}), {"address": "not a dict"})

        assert raw_value(root) == {"address": {"city": ""}}
        assert "should be dict" in caplog.text


class TestRepeating:

    def test_padded_to_min_items(self):
        _, root = build(obj({"contacts": array(obj({"name": string()}), min_items=2)}))

        node = get_node(root, "contacts")
        assert node.kind == REPEATING_STATE
        assert len(node) == 2
        assert raw_value(node) == [{"name": ""}, {"name": ""}]

    def test_items_from_initial_data(self):
        _, root = build(
            obj({"contacts": array(obj({"name": string()}), min_items=1)}),
            {"contacts": [{"name": "Ann"}, {"name": "Bob"}]},
        )

        assert raw_value(get_node(root, "contacts")) == [{"name": "Ann"}, {"name": "Bob"}]

    def test_truncated_to_max_items(self, caplog):
        _, root = build(obj({"tags": array(string(), max_items=2)}), {"tags": ["a", "b", "c"]})

        assert raw_value(get_node(root, "tags")) == ["a", "b"]
        assert "truncating to max_items=2" in caplog.text

    def test_new_item_uses_item_defaults(self):
        descriptors, root = build(obj({"lines": array(obj({"qty": number(default=1), "sku": string()}))}))

        item = new_item(descriptors[0])

        assert item.kind == COMPOSITE_STATE
        assert raw_value(item) == {"qty": 1, "sku": ""}


class TestPaths:

    def test_get_node(self):
        _, root = build(obj({
            "address": obj({"city": string()}),
            "contacts": array(obj({"email": string(email())}), min_items=1),
        }))

        assert get_node(root, "address.city").kind == LEAF_STATE
        assert get_node(root, "contacts.0.email").kind == LEAF_STATE
        assert get_node(root, "") is root

    @pytest.mark.parametrize("path", ["missing", "address.zip", "contacts.5", "contacts.x", "address.city.more"])
    def test_get_node_unknown_path(self, path):
        _, root = build(obj({
            "address": obj({"city": string()}),
            "contacts": array(obj({"email": string()}), min_items=1),
        }))

        with pytest.raises(UnknownFieldPathError) as exc_info:
            get_node(root, path)

        assert exc_info.value.path == path

    def test_iter_leaves_order(self):
        _, root = build(obj({
            "b": string(),
            "a": obj({"y": string(), "x": string()}),
            "c": array(string(), min_items=2),
        }))

        assert [path for path, _ in iter_leaves(root)] == ["b", "a.y", "a.x", "c.0", "c.1"]

    @pytest.mark.parametrize("schema", [
        obj({"name": string()}),
        obj({"name": string(), "address": obj({"street": string(), "geo": obj({"lat": number()})})}),
        obj({"contacts": array(obj({"email": string(), "phones": array(string(), min_items=1)}), min_items=1)}),
        obj({"tags": array(string(), min_items=3), "flag": optional(boolean())}),
        obj({"field": LeafNode("unknown_scalar")}),
    ])
    def test_tree_paths_equal_schema_paths(self, schema):
        """The tree's node paths are exactly the schema's declared field paths."""
        descriptors, root = build(schema)

        assert shape_paths(root) == descriptor_paths(descriptors)

    def test_empty_array_has_no_item_paths(self):
        descriptors, root = build(obj({"tags": array(string())}))

        assert shape_paths(root) == descriptor_paths(descriptors, include_items=False) == {"tags"}


class TestAbsentOptionals:
    """Optional objects and arrays given no value are built but flagged absent."""

    schema = obj({
        "name": string(),
        "address": optional(obj({"city": string(), "geo": obj({"lat": number()})})),
        "tags": optional(array(string(), min_items=1)),
    })

    def test_absent_nodes_keep_their_paths(self):
        descriptors, root = build(self.schema, {"name": "Acme"})

        assert get_node(root, "address").absent
        assert get_node(root, "tags").absent
        assert not get_node(root, "address.geo").absent
        assert shape_paths(root) == descriptor_paths(descriptors)
        assert raw_value(root) == {"name": "Acme", "address": None, "tags": None}

    def test_data_or_default_makes_it_present(self):
        _, root = build(obj({
            "address": optional(obj({"city": string()})),
            "tags": optional(array(string(), default=["a"])),
        }), {"address": {"city": "Penang"}})

        assert not get_node(root, "address").absent
        assert raw_value(root) == {"address": {"city": "Penang"}, "tags": ["a"]}

    def test_required_object_is_never_absent(self):
        _, root = build(obj({"address": obj({"city": string()})}), {"address": None})

        assert not get_node(root, "address").absent

    def test_iter_active_leaves_skips_absent(self):
        _, root = build(self.schema)

        assert [path for path, _ in iter_active_leaves(root)] == ["name"]
        assert len(list(iter_leaves(root))) == 4

    def test_mark_present_returns_outermost(self):
        _, root = build(self.schema)

        assert mark_present(root, "address.geo.lat") == "address"
        assert not get_node(root, "address").absent
        assert mark_present(root, "address.city") is None
        assert mark_present(root, "tags") == "tags"
        assert raw_value(root)["tags"] == [""]
