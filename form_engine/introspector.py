"""
Schema introspection for the dynamic form engine.
Derives ordered field descriptors (kind, label, bounds, rules) from schema nodes.
"""

import dataclasses
import logging
import re
from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional, Tuple

from .conditions import FieldCondition
from .schema_nodes import (
    LEAF, OBJECT, ARRAY, NO_DEFAULT,
    Constraint, LeafNode, ObjectNode, ArrayNode, SchemaNode, unwrap, visit
)

logger = logging.getLogger(__name__)


class FieldKind:
    """Field kind constants."""
    TEXT = "text"
    EMAIL = "email"
    NUMBER = "number"
    CHECKBOX = "checkbox"
    SELECT = "select"
    DATE = "date"
    OBJECT = "object"
    ARRAY = "array"
    # Only reachable through overrides
    TEXTAREA = "textarea"
    PASSWORD = "password"
    URL = "url"
    TEL = "tel"
    TIME = "time"
    DATETIME_LOCAL = "datetime-local"
    SEARCHABLE_SELECT = "searchable-select"


@dataclass(frozen=True)
class FieldConstraints:
    min: Optional[float] = None
    max: Optional[float] = None
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    options: Optional[Tuple[Dict[str, Any], ...]] = None


@dataclass(frozen=True)
class FieldDescriptor:
    """Engine-internal metadata for one schema field."""
    name: str
    path: str
    kind: str
    label: str
    required: bool
    hint: Optional[str] = None
    constraints: FieldConstraints = field(default_factory=FieldConstraints)
    default_value: Any = NO_DEFAULT
    nested: Optional[Tuple["FieldDescriptor", ...]] = None
    item: Optional["FieldDescriptor"] = None
    min_items: int = 0
    max_items: Optional[int] = None
    condition: Optional[FieldCondition] = None
    group: Optional[str] = None
    col_span: Optional[int] = None
    row_span: Optional[int] = None
    placeholder: Optional[str] = None
    loading: bool = False
    searchable: bool = False
    rules: Tuple[Constraint, ...] = ()

    @property
    def has_default(self) -> bool:
        return self.default_value is not NO_DEFAULT

    @property
    def is_composite(self) -> bool:
        return self.kind == FieldKind.OBJECT

    @property
    def is_repeating(self) -> bool:
        return self.kind == FieldKind.ARRAY

    def child(self, name: str) -> Optional["FieldDescriptor"]:
        for nested in self.nested or ():
            if nested.name == name:
                return nested
        return None


# Override keys accepted under their camelCase spelling as well
_OVERRIDE_ALIASES = {
    'type': 'kind',
    'colSpan': 'col_span',
    'rowSpan': 'row_span',
    'defaultValue': 'default_value',
    'minItems': 'min_items',
    'maxItems': 'max_items',
}

_CONSTRAINT_OVERRIDES = {
    'min': 'min',
    'max': 'max',
    'minLength': 'min_length',
    'min_length': 'min_length',
    'maxLength': 'max_length',
    'max_length': 'max_length',
    'options': 'options',
}


def format_label(field_name: str) -> str:
    """
    Turn a camelCase identifier into a readable label: a space before each
    capital and the first letter upper-cased. Other characters are kept.
    Example: "firstName" -> "First Name", "postal_code" -> "Postal_code"
    """
    spaced = re.sub(r'([A-Z])', r' \1', field_name).strip()
    return spaced[:1].upper() + spaced[1:]


def split_description(description: Optional[str]) -> Tuple[Optional[str], Optional[str]]:
    """Split a "Label|Hint" description on the first pipe."""
    if not description:
        return None, None
    label, _, hint = description.partition('|')
    return (label.strip() or None), (hint.strip() or None)


def normalize_options(options: Any) -> Optional[Tuple[Dict[str, Any], ...]]:
    """Accept plain values or {value, label} dicts and return {value, label} dicts."""
    if options is None:
        return None
    normalized = []
    for option in options:
        if isinstance(option, dict):
            value = option.get('value')
            normalized.append({'value': value, 'label': option.get('label', str(value))})
        else:
            normalized.append({'value': option, 'label': str(option)})
    return tuple(normalized)


def infer_kind(node: SchemaNode) -> str:
    """Classify a schema node into a field kind."""
    core, _ = unwrap(node)
    return visit(core, {
        LEAF: _leaf_kind,
        OBJECT: lambda n: FieldKind.OBJECT,
        ARRAY: lambda n: FieldKind.ARRAY,
    })


def _leaf_kind(node: LeafNode) -> str:
    if node.scalar == 'string':
        if node.find_constraint('email') is not None:
            return FieldKind.EMAIL
        return FieldKind.TEXT
    if node.scalar in ('number', 'integer'):
        return FieldKind.NUMBER
    if node.scalar == 'boolean':
        return FieldKind.CHECKBOX
    if node.scalar == 'enum':
        return FieldKind.SELECT
    if node.scalar == 'date':
        return FieldKind.DATE
    logger.debug(f"Unsupported scalar '{node.scalar}', using text kind")
    return FieldKind.TEXT


def leaf_rules(node: LeafNode) -> Tuple[Constraint, ...]:
    """Constraint descriptors that validate a leaf, type check first."""
    return (Constraint('type', {'value': node.scalar}),) + tuple(node.constraints)


def _leaf_constraints(node: LeafNode) -> FieldConstraints:
    bounds: Dict[str, Any] = {}
    for constraint in node.constraints:
        if constraint.kind == 'min_length':
            bounds['min_length'] = constraint.value
        elif constraint.kind == 'max_length':
            bounds['max_length'] = constraint.value
        elif constraint.kind == 'min_value':
            bounds['min'] = constraint.value
        elif constraint.kind == 'max_value':
            bounds['max'] = constraint.value
    if node.scalar == 'enum' and node.choices:
        bounds['options'] = normalize_options(node.choices)
    return FieldConstraints(**bounds)


def describe_field(name: str, node: SchemaNode, path: Optional[str] = None) -> FieldDescriptor:
    """
    Build the descriptor for a single schema field.

    Args:
        name: Field identifier
        node: Schema node for the field (possibly Optional-wrapped)
        path: Dotted path of the field; defaults to the name

    Returns:
        FieldDescriptor with no overrides applied
    """
    path = path or name
    core, optional = unwrap(node)
    label, hint = split_description(node.description)
    base = {
        'name': name,
        'path': path,
        'kind': infer_kind(core),
        'label': label or format_label(name),
        'hint': hint,
        'required': not optional,
        'default_value': node.default,
    }

    if core.tag == LEAF:
        base['constraints'] = _leaf_constraints(core)
        base['rules'] = leaf_rules(core)

    elif core.tag == OBJECT:
        base['nested'] = tuple(
            describe_field(child_name, child_node, f"{path}.{child_name}")
            for child_name, child_node in core.fields.items()
        )

    elif core.tag == ARRAY:
        item = describe_field(name, core.item, f"{path}.*")
        item_label, _ = split_description(core.item.description)
        if not item_label:
            item = dataclasses.replace(item, label=base['label'])
        base['item'] = item
        base['min_items'] = core.min_items
        base['max_items'] = core.max_items

    return FieldDescriptor(**base)


def apply_overrides(descriptor: FieldDescriptor, override: Dict[str, Any]) -> FieldDescriptor:
    """
    Merge a per-field override into a descriptor, property by property.
    Override values win over derived values.
    """
    changes: Dict[str, Any] = {}
    constraint_changes: Dict[str, Any] = {}
    valid_names = {f.name for f in dataclasses.fields(FieldDescriptor)}

    for key, value in override.items():
        if key in _CONSTRAINT_OVERRIDES:
            target = _CONSTRAINT_OVERRIDES[key]
            constraint_changes[target] = normalize_options(value) if target == 'options' else value
            continue

        attr = _OVERRIDE_ALIASES.get(key, key)
        if attr == 'condition' and isinstance(value, dict):
            value = FieldCondition.from_dict(value)
        if attr not in valid_names or attr in ('name', 'path', 'nested', 'item', 'rules'):
            logger.warning(f"Ignoring unsupported override '{key}' for field '{descriptor.path}'")
            continue
        changes[attr] = value

    if constraint_changes:
        changes['constraints'] = dataclasses.replace(descriptor.constraints, **constraint_changes)

    return dataclasses.replace(descriptor, **changes)


def _with_overrides(descriptor: FieldDescriptor, overrides: Dict[str, Dict[str, Any]]) -> FieldDescriptor:
    """Apply overrides to a descriptor and, recursively, to its children."""
    changes: Dict[str, Any] = {}
    if descriptor.nested:
        changes['nested'] = tuple(_with_overrides(child, overrides) for child in descriptor.nested)
    if descriptor.item is not None:
        changes['item'] = _with_overrides(descriptor.item, overrides)
    if changes:
        descriptor = dataclasses.replace(descriptor, **changes)

    override = overrides.get(descriptor.path)
    if override is None and '.' not in descriptor.path:
        override = overrides.get(descriptor.name)
    if override:
        descriptor = apply_overrides(descriptor, override)
    return descriptor


def extract_field_descriptors(schema: ObjectNode,
                              overrides: Optional[Dict[str, Dict[str, Any]]] = None) -> List[FieldDescriptor]:
    """
    Extract field descriptors from an object schema in declared order.

    Args:
        schema: Root object schema (Optional wrappers are stripped)
        overrides: Per-field overrides keyed by field name or dotted path

    Returns:
        Ordered list of FieldDescriptor
    """
    root, _ = unwrap(schema)
    if root.tag != OBJECT:
        logger.warning("Root schema is not an object; no fields extracted")
        return []

    overrides = overrides or {}
    descriptors = [
        _with_overrides(describe_field(name, node), overrides)
        for name, node in root.fields.items()
    ]

    known = {d.path for d in _walk(descriptors)} | {d.name for d in descriptors}
    for key in overrides:
        if key not in known:
            logger.warning(f"Override for unknown field '{key}' ignored")

    logger.debug(f"Extracted {len(descriptors)} field descriptors")
    return descriptors


def _walk(descriptors):
    for descriptor in descriptors:
        yield descriptor
        if descriptor.nested:
            yield from _walk(descriptor.nested)
        if descriptor.item is not None:
            yield from _walk([descriptor.item])


def iter_descriptors(descriptors: List[FieldDescriptor]):
    """Depth-first iteration over descriptors, nested and item descriptors included."""
    return _walk(descriptors)
