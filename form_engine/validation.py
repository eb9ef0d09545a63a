"""
Per-field validation for the dynamic form engine.

Each leaf carries its schema rules as serializable constraint descriptors.
`validate_value` is the single interpreter for those descriptors; the other
functions apply it to state nodes and aggregate the results.
"""

import logging
import re
from datetime import date
from typing import Any, Iterable, List, Optional

from .form_exceptions import FieldValidationError
from .schema_nodes import Constraint
from .state_tree import COMPOSITE_STATE, LEAF_STATE, LeafState, StateNode, iter_active_leaves, iter_leaves

logger = logging.getLogger(__name__)

EMAIL_PATTERN = r'^[^@\s]+@[^@\s]+\.[^@\s]+$'
URL_PATTERN = r'^https?://[^\s/$.?#][^\s]*$'

REQUIRED_MESSAGE = "This field is required"


def is_empty(value: Any) -> bool:
    """None, blank strings and empty lists count as empty; False and 0 do not."""
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ''
    if isinstance(value, (list, tuple, dict)):
        return len(value) == 0
    return False


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _check_type(scalar: str, value: Any) -> Optional[str]:
    if scalar == 'string':
        if not isinstance(value, str):
            return "Expected text"
    elif scalar == 'number':
        if not _is_number(value):
            return "Expected a number"
    elif scalar == 'integer':
        if not _is_number(value) or (isinstance(value, float) and not value.is_integer()):
            return "Expected a whole number"
    elif scalar == 'boolean':
        if not isinstance(value, bool):
            return "Expected true or false"
    elif scalar == 'date':
        if isinstance(value, date):
            return None
        if not isinstance(value, str):
            return "Expected a date"
        try:
            date.fromisoformat(value)
        except ValueError:
            return "Invalid date, expected YYYY-MM-DD"
    return None


def check_constraint(constraint: Constraint, value: Any) -> Optional[str]:
    """
    Check one constraint descriptor against a non-empty value.

    Returns:
        Failure message, or None when the value satisfies the constraint
    """
    kind = constraint.kind
    expected = constraint.value
    failure: Optional[str] = None

    if kind == 'type':
        failure = _check_type(expected, value)

    elif kind == 'required':
        if is_empty(value):
            failure = REQUIRED_MESSAGE

    elif kind == 'min_length':
        if hasattr(value, '__len__') and len(value) < expected:
            failure = f"Must contain at least {expected} character(s)"

    elif kind == 'max_length':
        if hasattr(value, '__len__') and len(value) > expected:
            failure = f"Must contain at most {expected} character(s)"

    elif kind == 'pattern':
        if isinstance(value, str) and not re.search(expected, value):
            failure = "Invalid format"

    elif kind == 'email':
        if isinstance(value, str) and not re.match(EMAIL_PATTERN, value):
            failure = "Invalid email address"

    elif kind == 'url':
        if isinstance(value, str) and not re.match(URL_PATTERN, value):
            failure = "Invalid URL"

    elif kind == 'min_value':
        if _is_number(value) and value < expected:
            failure = f"Must be greater than or equal to {expected}"

    elif kind == 'max_value':
        if _is_number(value) and value > expected:
            failure = f"Must be less than or equal to {expected}"

    elif kind == 'choices':
        if value not in (expected or []):
            options = ' | '.join(repr(choice) for choice in (expected or []))
            failure = f"Invalid option. Expected {options}"

    else:
        logger.debug(f"Unknown constraint kind '{kind}' ignored")

    if failure and constraint.message:
        return constraint.message
    return failure


def validate_value(value: Any, rules: Iterable[Constraint], required: bool) -> Optional[str]:
    """
    Validate a leaf value against its rules.

    A required field gets a synthetic non-empty check ahead of its rules.
    An optional field treats None and '' as absent and passes.

    Args:
        value: Current value
        rules: Constraint descriptors from the schema
        required: Whether the field is required

    Returns:
        First failure message, or None if the value is valid
    """
    if required:
        failure = check_constraint(Constraint('required'), value)
        if failure:
            return failure
    elif value is None or value == '':
        return None

    for rule in rules:
        failure = check_constraint(rule, value)
        if failure:
            return failure
    return None


def validate_leaf(leaf: LeafState) -> bool:
    """Re-run a leaf's rules and store the outcome on the leaf."""
    descriptor = leaf.descriptor
    message = validate_value(leaf.value, descriptor.rules, descriptor.required)
    leaf.valid = message is None
    leaf.error_message = message
    return leaf.valid


def validate_tree(node: StateNode) -> bool:
    """
    Re-validate every leaf at or below `node`. Leaves below an absent optional
    object or array are cleared instead. Returns aggregate validity.
    """
    if node.kind == LEAF_STATE:
        return validate_leaf(node)
    if node.absent:
        for _, leaf in iter_leaves(node):
            leaf.valid = True
            leaf.error_message = None
        return True
    children = node.children.values() if node.kind == COMPOSITE_STATE else node.items
    valid = True
    for child in children:
        valid = validate_tree(child) and valid
    return valid


def is_valid(node: StateNode) -> bool:
    """Aggregate validity from cached leaf results: AND over all descendant leaves."""
    if node.kind == LEAF_STATE:
        return node.valid
    return all(leaf.valid for _, leaf in iter_active_leaves(node))


def first_invalid_leaf(node: StateNode, prefix: str = '') -> Optional[str]:
    """Path of the first invalid leaf at or below `node`, in declared order."""
    for path, leaf in iter_active_leaves(node, prefix):
        if not leaf.valid:
            return path
    return None


def collect_errors(node: StateNode, prefix: str = '') -> List[FieldValidationError]:
    """FieldValidationError records for every invalid leaf below `node`."""
    return [
        FieldValidationError(path, leaf.error_message or "Invalid value")
        for path, leaf in iter_active_leaves(node, prefix)
        if not leaf.valid
    ]
