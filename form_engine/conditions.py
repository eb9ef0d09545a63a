"""
Field visibility conditions.

A condition makes one field's visibility depend on another field's current
value. Evaluation is a pure function of the condition and a value snapshot.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Any, Optional

logger = logging.getLogger(__name__)

OPERATORS = {
    'equals', 'notEquals', 'contains', 'greaterThan', 'lessThan', 'truthy', 'falsy'
}

_MISSING = object()


@dataclass(frozen=True)
class FieldCondition:
    """Watch `field` (a dotted path) and compare it using `operator`."""
    field: str
    operator: str
    value: Any = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FieldCondition":
        """Build a condition from `{field, operator, value?}`."""
        return cls(field=data['field'], operator=data['operator'], value=data.get('value'))

    def to_dict(self) -> Dict[str, Any]:
        result = {'field': self.field, 'operator': self.operator}
        if self.value is not None:
            result['value'] = self.value
        return result


def is_truthy(value: Any) -> bool:
    """
    Loose truthiness: empty string, zero, None, False and empty
    lists/dicts are falsy; everything else is truthy.
    """
    if value is None or value is False:
        return False
    if isinstance(value, (int, float)) and value == 0:
        return False
    if isinstance(value, (str, list, tuple, dict)) and len(value) == 0:
        return False
    return True


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def strict_equals(left: Any, right: Any) -> bool:
    """Equality without cross-type coercion (True never equals 1)."""
    if _is_number(left) and _is_number(right):
        return left == right
    if type(left) is not type(right):
        return False
    return left == right


def resolve_path(values: Any, path: str) -> Any:
    """
    Read a dotted path (`address.city`, `contacts.0.email`) from a value
    snapshot. Missing segments resolve to None.
    """
    current = values
    for part in path.split('.'):
        if isinstance(current, dict):
            current = current.get(part, _MISSING)
        elif isinstance(current, list) and part.isdigit():
            index = int(part)
            current = current[index] if index < len(current) else _MISSING
        else:
            current = _MISSING
        if current is _MISSING:
            return None
    return current


def evaluate_condition(condition: Optional[FieldCondition], values: Dict[str, Any]) -> bool:
    """
    Evaluate a visibility condition against the current form values.

    Args:
        condition: Condition to evaluate; None means always visible
        values: Raw value snapshot of the whole form

    Returns:
        True if the field should be shown
    """
    if condition is None:
        return True

    target = resolve_path(values, condition.field)
    operator = condition.operator
    expected = condition.value

    if operator == 'equals':
        return strict_equals(target, expected)

    if operator == 'notEquals':
        return not strict_equals(target, expected)

    if operator == 'contains':
        if isinstance(target, (list, tuple, set)):
            return any(strict_equals(item, expected) for item in target)
        if target is None or expected is None:
            return False
        return str(expected).lower() in str(target).lower()

    if operator == 'greaterThan':
        return _is_number(target) and _is_number(expected) and target > expected

    if operator == 'lessThan':
        return _is_number(target) and _is_number(expected) and target < expected

    if operator == 'truthy':
        return is_truthy(target)

    if operator == 'falsy':
        return not is_truthy(target)

    logger.warning(f"Unknown condition operator '{operator}' on field '{condition.field}', treating as false")
    return False
