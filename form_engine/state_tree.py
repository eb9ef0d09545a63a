"""
State tree for the dynamic form engine.

The tree mirrors the field descriptors exactly: one LeafState per scalar field,
one CompositeState per nested object and one RepeatingState per array field.
Hiding a field never removes its node; only add/remove item operations change
the shape of the tree. An optional object or array that was given no value is
still built, but flagged `absent`: its value is None and the leaves below it are
not validated until something is written there.
"""

import copy
import logging
from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional, Iterator, Tuple, Set, Union

from .form_exceptions import UnknownFieldPathError
from .introspector import FieldDescriptor, FieldKind

logger = logging.getLogger(__name__)

LEAF_STATE = "leaf"
COMPOSITE_STATE = "composite"
REPEATING_STATE = "repeating"


@dataclass
class LeafState:
    descriptor: FieldDescriptor
    value: Any = None
    valid: bool = True
    error_message: Optional[str] = None
    touched: bool = False
    kind: str = field(default=LEAF_STATE, init=False)


@dataclass
class CompositeState:
    descriptor: Optional[FieldDescriptor]
    children: Dict[str, "StateNode"] = field(default_factory=dict)
    absent: bool = False
    kind: str = field(default=COMPOSITE_STATE, init=False)


@dataclass
class RepeatingState:
    descriptor: FieldDescriptor
    items: List["StateNode"] = field(default_factory=list)
    min_items: int = 0
    max_items: Optional[int] = None
    absent: bool = False
    kind: str = field(default=REPEATING_STATE, init=False)

    def __len__(self) -> int:
        return len(self.items)


StateNode = Union[LeafState, CompositeState, RepeatingState]


def zero_value(descriptor: FieldDescriptor) -> Any:
    """Kind-specific empty value for a leaf that has no data and no default."""
    if descriptor.kind == FieldKind.CHECKBOX:
        return False
    if descriptor.kind == FieldKind.NUMBER:
        return descriptor.constraints.min
    if descriptor.kind == FieldKind.ARRAY:
        return []
    if descriptor.kind == FieldKind.OBJECT:
        return {}
    return ''


def build_node(descriptor: FieldDescriptor, data: Any = None, has_data: bool = False) -> StateNode:
    """
    Build the state node for one field.

    Value precedence: explicit data > descriptor default > zero value.
    Optional objects and arrays with neither data nor a default are built
    absent.

    Args:
        descriptor: Field descriptor
        data: Explicit value for this path
        has_data: Whether `data` was supplied (None is a legitimate value)

    Returns:
        Newly built state node
    """
    absent = not descriptor.required and not descriptor.has_default and (not has_data or data is None)

    if descriptor.kind == FieldKind.OBJECT and descriptor.nested is not None:
        source = _pick_source(descriptor, data, has_data, dict, {})
        children = {
            child.name: build_node(child, source.get(child.name), child.name in source)
            for child in descriptor.nested
        }
        return CompositeState(descriptor=descriptor, children=children, absent=absent)

    if descriptor.kind == FieldKind.ARRAY and descriptor.item is not None:
        source = _pick_source(descriptor, data, has_data, list, [])
        if descriptor.max_items is not None and len(source) > descriptor.max_items:
            logger.warning(
                f"Initial data for '{descriptor.path}' has {len(source)} items, "
                f"truncating to max_items={descriptor.max_items}"
            )
            source = source[:descriptor.max_items]
        node = RepeatingState(
            descriptor=descriptor,
            items=[build_node(descriptor.item, item, True) for item in source],
            min_items=descriptor.min_items,
            max_items=descriptor.max_items,
            absent=absent,
        )
        while len(node.items) < node.min_items:
            node.items.append(new_item(descriptor))
        return node

    if has_data:
        value = copy.deepcopy(data)
    elif descriptor.has_default:
        value = copy.deepcopy(descriptor.default_value)
    else:
        value = zero_value(descriptor)
    return LeafState(descriptor=descriptor, value=value)


def _pick_source(descriptor: FieldDescriptor, data: Any, has_data: bool, expected: type, empty: Any) -> Any:
    if has_data and data is not None:
        if isinstance(data, expected):
            return copy.deepcopy(data)
        logger.warning(
            f"Initial data for '{descriptor.path}' should be {expected.__name__}, "
            f"got {type(data).__name__}; ignoring it"
        )
    if descriptor.has_default and isinstance(descriptor.default_value, expected):
        return copy.deepcopy(descriptor.default_value)
    return copy.deepcopy(empty)


def new_item(descriptor: FieldDescriptor) -> StateNode:
    """Build a fresh item node for a repeating field, seeded with item defaults."""
    return build_node(descriptor.item)


def build_state_tree(descriptors: List[FieldDescriptor], initial_data: Optional[Dict[str, Any]] = None) -> CompositeState:
    """
    Build the full state tree for a form.

    Args:
        descriptors: Ordered top-level field descriptors
        initial_data: Partial initial values keyed by field name

    Returns:
        Root CompositeState
    """
    initial_data = initial_data or {}
    children = {
        descriptor.name: build_node(descriptor, initial_data.get(descriptor.name), descriptor.name in initial_data)
        for descriptor in descriptors
    }
    root = CompositeState(descriptor=None, children=children)
    logger.debug(f"Built state tree with {len(children)} top-level fields")
    return root


def split_path(path: str) -> List[str]:
    if not path:
        return []
    return path.split('.')


def get_node(root: StateNode, path: str) -> StateNode:
    """
    Resolve a dotted path to a state node.

    Raises:
        UnknownFieldPathError: If any segment does not exist
    """
    node = root
    for part in split_path(path):
        if node.kind == COMPOSITE_STATE:
            if part not in node.children:
                raise UnknownFieldPathError(path, f"'{part}' is not a field")
            node = node.children[part]
        elif node.kind == REPEATING_STATE:
            if not part.isdigit() or int(part) >= len(node.items):
                raise UnknownFieldPathError(path, f"'{part}' is not a valid item index")
            node = node.items[int(part)]
        else:
            raise UnknownFieldPathError(path, f"'{part}' is below a scalar field")
    return node


def iter_nodes(node: StateNode, prefix: str = '') -> Iterator[Tuple[str, StateNode]]:
    """Yield (path, node) for every node below `node` (the node itself excluded)."""
    if node.kind == COMPOSITE_STATE:
        for name, child in node.children.items():
            child_path = f"{prefix}.{name}" if prefix else name
            yield child_path, child
            yield from iter_nodes(child, child_path)
    elif node.kind == REPEATING_STATE:
        for index, item in enumerate(node.items):
            item_path = f"{prefix}.{index}" if prefix else str(index)
            yield item_path, item
            yield from iter_nodes(item, item_path)


def iter_leaves(node: StateNode, prefix: str = '') -> Iterator[Tuple[str, LeafState]]:
    """Yield (path, leaf) for every leaf at or below `node`."""
    if node.kind == LEAF_STATE:
        yield prefix, node
        return
    for path, child in iter_nodes(node, prefix):
        if child.kind == LEAF_STATE:
            yield path, child


def iter_active_leaves(node: StateNode, prefix: str = '') -> Iterator[Tuple[str, LeafState]]:
    """Like iter_leaves, but nothing below an absent object or array is yielded."""
    if node.kind == LEAF_STATE:
        yield prefix, node
        return
    if node.absent:
        return
    children = node.children.items() if node.kind == COMPOSITE_STATE else enumerate(node.items)
    for name, child in children:
        child_path = f"{prefix}.{name}" if prefix else str(name)
        yield from iter_active_leaves(child, child_path)


def mark_present(root: StateNode, path: str) -> Optional[str]:
    """
    Clear the absent flag of every object or array along `path`, the node at
    `path` included.

    Returns:
        Path of the outermost node that was absent, or None
    """
    outermost = None
    node = root
    walked: List[str] = []
    for part in split_path(path):
        node = get_node(node, part)
        walked.append(part)
        if node.kind != LEAF_STATE and node.absent:
            node.absent = False
            if outermost is None:
                outermost = '.'.join(walked)
    return outermost


def raw_value(node: StateNode) -> Any:
    """Plain-data snapshot of a node: dicts, lists and scalars (None when absent)."""
    if node.kind == LEAF_STATE:
        return node.value
    if node.absent:
        return None
    if node.kind == COMPOSITE_STATE:
        return {name: raw_value(child) for name, child in node.children.items()}
    return [raw_value(item) for item in node.items]


def _shape(path: str) -> str:
    return '.'.join('*' if part.isdigit() else part for part in split_path(path))


def shape_paths(root: StateNode) -> Set[str]:
    """Node paths of the tree with item indices replaced by '*'."""
    return {_shape(path) for path, _ in iter_nodes(root)}


def descriptor_paths(descriptors: List[FieldDescriptor], include_items: bool = True) -> Set[str]:
    """Declared field paths of the descriptors, item paths written with '*'."""
    paths: Set[str] = set()
    for descriptor in descriptors:
        paths.add(descriptor.path)
        if descriptor.nested:
            paths |= descriptor_paths(list(descriptor.nested), include_items)
        if descriptor.item is not None and include_items:
            paths |= descriptor_paths([descriptor.item], include_items)
    return paths
