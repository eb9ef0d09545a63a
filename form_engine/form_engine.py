"""
Form engine facade.

One FormEngine instance owns one state tree. All mutations go through its
operations (set_value, touch, add_item, remove_item, step and group
transitions); the presentation layer reads field state by path and may
subscribe to path-scoped change notifications.
"""

import copy
import logging
from dataclasses import dataclass
from typing import Dict, Any, List, Optional, Callable, Union

from .conditions import evaluate_condition, resolve_path
from .config_loader import get_config_value
from .controllers import ArrayController, FieldGroup, FormStep, GroupController, StepController
from .diff_utils import calculate_diff, has_changes
from .form_exceptions import FieldValidationError, SubmitRejected, UnknownFieldPathError
from .introspector import FieldDescriptor, extract_field_descriptors, iter_descriptors
from .model_builder import collect_refinement_failures, create_model_from_schema, parse_model_data
from .schema_loader import parse_schema
from .schema_nodes import ObjectNode
from .state_tree import (
    LEAF_STATE, StateNode, build_state_tree, get_node, iter_active_leaves, iter_leaves, iter_nodes,
    mark_present, raw_value
)
from .validation import collect_errors, is_valid, validate_leaf, validate_tree

logger = logging.getLogger(__name__)

ChangeCallback = Callable[[str, Any], None]


@dataclass(frozen=True)
class FieldState:
    """Read-only view of one field for the presentation layer."""
    path: str
    value: Any
    valid: bool
    error: Optional[str]
    touched: bool
    visible: bool


@dataclass(frozen=True)
class FormOptions:
    layout: str = 'vertical'
    columns: int = 2
    submit_label: str = 'Submit'
    cancel_label: str = 'Cancel'
    show_cancel: bool = True

    @classmethod
    def from_config(cls, overrides: Optional[Dict[str, Any]] = None) -> "FormOptions":
        """Form options from the `form` config section, with caller overrides on top."""
        values = {
            name: get_config_value('form', name, default)
            for name, default in cls().__dict__.items()
        }
        aliases = {'submitLabel': 'submit_label', 'cancelLabel': 'cancel_label', 'showCancel': 'show_cancel'}
        for key, value in (overrides or {}).items():
            name = aliases.get(key, key)
            if name in values:
                values[name] = value
            else:
                logger.warning(f"Ignoring unknown form option '{key}'")
        if values['layout'] not in ('vertical', 'horizontal', 'grid'):
            logger.warning(f"Unknown form layout '{values['layout']}', using vertical")
            values['layout'] = 'vertical'
        return cls(**values)


class FormEngine:
    """
    A live form built from a schema.

    Args:
        schema: Root ObjectNode, or a schema document (dict with 'fields')
        initial_data: Partial initial values keyed by field name
        steps: Wizard step declarations (FormStep or dicts)
        groups: Field group declarations (FieldGroup or dicts)
        overrides: Per-field overrides keyed by field name or dotted path
        model_name: Name of the generated Pydantic model
        options: Form options (layout, labels); defaults come from config
    """

    def __init__(self, schema: Union[ObjectNode, Dict[str, Any]],
                 initial_data: Optional[Dict[str, Any]] = None,
                 steps: Optional[List[Union[FormStep, Dict[str, Any]]]] = None,
                 groups: Optional[List[Union[FieldGroup, Dict[str, Any]]]] = None,
                 overrides: Optional[Dict[str, Dict[str, Any]]] = None,
                 model_name: str = "DynamicForm",
                 options: Optional[Dict[str, Any]] = None):
        if isinstance(schema, dict):
            schema = parse_schema(schema)
        self.schema = schema
        self.fields: List[FieldDescriptor] = extract_field_descriptors(schema, overrides)
        self.model = create_model_from_schema(schema, model_name)
        self.options = FormOptions.from_config(options)
        self.groups = GroupController(groups)
        self.steps = StepController(steps, self._first_invalid_visible, self.touch)
        self.steps.drop_unknown_fields({d.path for d in iter_descriptors(self.fields) if '*' not in d.path})

        self._initial_data = copy.deepcopy(initial_data or {})
        self._subscribers: Dict[str, List[ChangeCallback]] = {}
        self._visibility: Dict[str, bool] = {}
        self.last_rejection: Optional[SubmitRejected] = None
        self.last_submitted: Optional[Dict[str, Any]] = None

        self._build()
        logger.info(f"Form engine '{model_name}' built with {len(self.fields)} fields, "
                    f"{len(self.steps.steps)} steps, {len(self.groups.groups)} groups")

    @classmethod
    def from_document(cls, document: Dict[str, Any], initial_data: Optional[Dict[str, Any]] = None,
                      model_name: str = "DynamicForm") -> "FormEngine":
        """
        Build an engine from a schema document. The document's optional
        `form` section supplies steps, groups, overrides and options.
        """
        layout = document.get('form') or {}
        return cls(
            parse_schema(document),
            initial_data=initial_data,
            steps=layout.get('steps'),
            groups=layout.get('groups'),
            overrides=layout.get('overrides'),
            model_name=model_name,
            options=layout.get('options'),
        )

    def _build(self) -> None:
        self.tree = build_state_tree(self.fields, self._initial_data)
        self.arrays = ArrayController(self.tree)
        validate_tree(self.tree)
        self._initial_snapshot = self.values()
        self._refresh_visibility()

    # Values and field state

    def values(self) -> Dict[str, Any]:
        """Raw value snapshot of the whole form."""
        return raw_value(self.tree)

    def value(self, path: str) -> Any:
        return raw_value(get_node(self.tree, path))

    def node(self, path: str) -> StateNode:
        return get_node(self.tree, path)

    def field(self, path: str) -> FieldState:
        """
        Current state of the field at `path`.

        For objects and arrays, `valid` is the aggregate over all leaves
        below and `touched` is True when any of them has been touched.

        Raises:
            UnknownFieldPathError: If the path is not part of the form
        """
        node = get_node(self.tree, path)
        if node.kind == LEAF_STATE:
            return FieldState(path, node.value, node.valid, node.error_message, node.touched, self.is_visible(path))
        return FieldState(
            path=path,
            value=raw_value(node),
            valid=is_valid(node),
            error=None,
            touched=any(leaf.touched for _, leaf in iter_leaves(node, path)),
            visible=self.is_visible(path),
        )

    def set_value(self, path: str, value: Any) -> bool:
        """
        Write a scalar value, re-validate the leaf and recompute visibility.
        Writing below an absent optional object or array makes it present,
        and everything below it is validated from then on.

        Returns:
            True if the stored value changed

        Raises:
            UnknownFieldPathError: If the path does not address a scalar field
        """
        node = get_node(self.tree, path)
        if node.kind != LEAF_STATE:
            raise UnknownFieldPathError(path, "only scalar fields can be written; use add_item/remove_item for arrays")

        if node.value == value and type(node.value) is type(value):
            return False

        node.value = copy.deepcopy(value)
        present = mark_present(self.tree, path)
        if present:
            validate_tree(get_node(self.tree, present))
        else:
            validate_leaf(node)
        logger.debug(f"Set '{path}' -> {value!r} (valid={node.valid})")
        self._refresh_visibility()
        self._notify(path)
        return True

    def touch(self, path: str = '') -> None:
        """Mark the field at `path` (and every leaf below it) as touched."""
        node = get_node(self.tree, path)
        for _, leaf in iter_leaves(node, path):
            leaf.touched = True
        self._notify(path)

    def errors(self) -> List[FieldValidationError]:
        """Current per-field errors in declared order, hidden fields included."""
        return collect_errors(self.tree)

    def is_form_valid(self) -> bool:
        return is_valid(self.tree)

    # Visibility

    def _refresh_visibility(self) -> None:
        values = self.values()
        visibility: Dict[str, bool] = {}
        for path, node in iter_nodes(self.tree):
            parent, _, _ = path.rpartition('.')
            parent_visible = visibility.get(parent, True) if parent else True
            condition = node.descriptor.condition if node.descriptor else None
            visibility[path] = parent_visible and evaluate_condition(condition, values)
        self._visibility = visibility

    def is_visible(self, path: str) -> bool:
        """
        Whether the field at `path` should be shown. Hidden fields keep
        their node and their validation state.
        """
        get_node(self.tree, path)
        return self._visibility.get(path, True)

    # Repeating fields

    def item_count(self, path: str) -> int:
        return self.arrays.length(path)

    def can_add_item(self, path: str) -> bool:
        return self.arrays.can_add(path)

    def can_remove_item(self, path: str, index: Optional[int] = None) -> bool:
        return self.arrays.can_remove(path) if index is None else self.arrays.check_remove(path, index) is None

    def add_item(self, path: str) -> bool:
        """Append an item to a repeating field. No-op (False) at max_items."""
        if not self.arrays.add_item(path):
            return False
        self._after_structure_change(path)
        return True

    def remove_item(self, path: str, index: int) -> bool:
        """Remove the item at `index`. No-op (False) when it would go below min_items."""
        if not self.arrays.remove_item(path, index):
            return False
        self._after_structure_change(path)
        return True

    def _after_structure_change(self, path: str) -> None:
        present = mark_present(self.tree, path)
        validate_tree(get_node(self.tree, present or path))
        self._refresh_visibility()
        self._notify(path)

    # Groups

    def is_group_collapsed(self, group_id: str) -> bool:
        return self.groups.is_collapsed(group_id)

    def toggle_group(self, group_id: str) -> bool:
        return self.groups.toggle(group_id)

    def fields_for_group(self, group_id: Optional[str]) -> List[FieldDescriptor]:
        """Top-level fields assigned to `group_id` (None for ungrouped fields)."""
        return [d for d in self.fields if d.group == group_id]

    # Steps

    @property
    def current_step(self) -> int:
        return self.steps.current

    def active_step(self) -> Optional[FormStep]:
        return self.steps.current_step()

    def is_last_step(self) -> bool:
        return self.steps.is_last_step()

    def next_step(self) -> bool:
        """
        Advance one step if every visible field of the current step is valid.
        On failure the first invalid field is touched and the index stays.
        """
        moved = self.steps.next_step()
        if moved:
            self._notify('')
        return moved

    def previous_step(self) -> bool:
        moved = self.steps.current > 0
        self.steps.previous_step()
        if moved:
            self._notify('')
        return True

    def fields_for_current_step(self) -> List[FieldDescriptor]:
        """Descriptors of the active step's fields; all fields for single-step forms."""
        if not self.steps.is_multi_step():
            return list(self.fields)
        members = self.steps.step_fields()
        by_path = {d.path: d for d in iter_descriptors(self.fields)}
        return [by_path[name] for name in members if name in by_path]

    def _first_invalid_visible(self, names: List[str]) -> Optional[str]:
        for name in names:
            node = get_node(self.tree, name)
            if not self.is_visible(name):
                continue
            for leaf_path, leaf in iter_active_leaves(node, name):
                if not leaf.valid and self._visibility.get(leaf_path, True):
                    return name
        return None

    # Submit

    def submit(self) -> Optional[Dict[str, Any]]:
        """
        Validate the whole form against the schema and emit the normalized value.

        Every leaf is re-validated, then the raw values are parsed by the
        schema's Pydantic model (cross-field refinements included). Hidden
        fields are validated like any other field.

        Returns:
            The normalized value on success, None on failure (the reasons are
            recorded on the fields and in `last_rejection`)
        """
        if not self.steps.is_last_step():
            logger.debug(f"Submit requested from step {self.steps.current}, before the last step")

        validate_tree(self.tree)
        values = self.values()
        normalized, model_errors = parse_model_data(values, self.model)
        refinement_failures = collect_refinement_failures(self.schema, values)

        if normalized is not None and not refinement_failures and self.is_form_valid():
            self.last_rejection = None
            self.last_submitted = normalized
            logger.info(f"Submit accepted with {len(normalized)} top-level fields")
            self._notify('')
            return normalized

        form_errors: List[str] = []
        for path, message in refinement_failures:
            if not self._attach_error(path, message):
                form_errors.append(message)
        for error in model_errors:
            attached = self._attach_error(error['path'], error['message'])
            if not attached and not refinement_failures:
                form_errors.append(f"{error['path']}: {error['message']}" if error['path'] else error['message'])

        errors = self.errors()
        hidden = [e.path for e in errors if not self._visibility.get(e.path, True)]
        if hidden and len(hidden) == len(errors) and not form_errors:
            logger.warning(f"Submit blocked only by hidden fields: {hidden}")
            form_errors.append(f"Hidden fields have invalid values: {', '.join(hidden)}")

        self.touch('')
        self.last_rejection = SubmitRejected(errors=errors, form_errors=form_errors)
        logger.info(f"Submit rejected: {len(errors)} field errors, {len(form_errors)} form errors")
        return None

    def _attach_error(self, path: str, message: str) -> bool:
        """Record a schema-level error on the leaf at `path`. False if no leaf is there."""
        if not path:
            return False
        try:
            node = get_node(self.tree, path)
        except UnknownFieldPathError:
            return False
        if node.kind != LEAF_STATE:
            return False
        if node.valid:
            node.valid = False
            node.error_message = message
        return True

    # Change tracking and subscriptions

    def changes(self) -> Dict[str, Dict[str, Any]]:
        """DeepDiff-based changes between the initial snapshot and the current values."""
        return calculate_diff(self._initial_snapshot, self.values())

    def has_changes(self) -> bool:
        return has_changes(self.changes())

    def reset(self) -> None:
        """Rebuild the tree from the original initial data and return to step 0."""
        self._build()
        self.steps.current = 0
        self.last_rejection = None
        logger.debug("Form reset to initial data")
        self._notify('')

    def subscribe(self, path: str, callback: ChangeCallback) -> Callable[[], None]:
        """
        Register `callback(changed_path, value_at_path)` for changes at or
        below `path` ('' subscribes to every change).

        Returns:
            A function that removes the subscription
        """
        if path:
            get_node(self.tree, path)
        self._subscribers.setdefault(path, []).append(callback)

        def unsubscribe() -> None:
            callbacks = self._subscribers.get(path, [])
            if callback in callbacks:
                callbacks.remove(callback)

        return unsubscribe

    def _notify(self, changed_path: str) -> None:
        if not self._subscribers:
            return
        values = self.values()
        for path, callbacks in list(self._subscribers.items()):
            if not _overlaps(path, changed_path):
                continue
            current = resolve_path(values, path) if path else values
            for callback in list(callbacks):
                callback(changed_path, current)


def _overlaps(subscribed: str, changed: str) -> bool:
    """True when one path is the other or lies below it."""
    if not subscribed or not changed or subscribed == changed:
        return True
    return changed.startswith(subscribed + '.') or subscribed.startswith(changed + '.')
