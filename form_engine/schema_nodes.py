"""
Schema node types consumed by the form engine.

A schema is a closed, explicitly tagged union of four node kinds. Consumers
dispatch on `node.tag` (or through `visit`) instead of probing types.
"""

from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional, Callable, Tuple, Union

LEAF = "leaf"
OBJECT = "object"
ARRAY = "array"
OPTIONAL = "optional"

# Scalar names understood by the introspector and model builder
SCALAR_TYPES = {'string', 'number', 'integer', 'boolean', 'enum', 'date'}

# Sentinel for "no default declared" (None is a legitimate default)
NO_DEFAULT = object()


@dataclass(frozen=True)
class Constraint:
    """Serializable constraint descriptor: a kind plus its parameters."""
    kind: str
    params: Dict[str, Any] = field(default_factory=dict)

    @property
    def value(self) -> Any:
        return self.params.get('value')

    @property
    def message(self) -> Optional[str]:
        return self.params.get('message')

    def to_dict(self) -> Dict[str, Any]:
        return {'kind': self.kind, **self.params}


@dataclass(frozen=True)
class Refinement:
    """Serializable cross-field rule declared on an object node."""
    rule: str
    fields: Tuple[str, ...]
    message: str
    path: Optional[str] = None


@dataclass
class LeafNode:
    scalar: str
    constraints: List[Constraint] = field(default_factory=list)
    choices: Optional[List[Any]] = None
    description: Optional[str] = None
    default: Any = NO_DEFAULT
    tag: str = field(default=LEAF, init=False)

    def find_constraint(self, kind: str) -> Optional[Constraint]:
        for constraint in self.constraints:
            if constraint.kind == kind:
                return constraint
        return None


@dataclass
class ObjectNode:
    fields: Dict[str, "SchemaNode"] = field(default_factory=dict)
    refinements: List[Refinement] = field(default_factory=list)
    description: Optional[str] = None
    default: Any = NO_DEFAULT
    title: Optional[str] = None
    tag: str = field(default=OBJECT, init=False)


@dataclass
class ArrayNode:
    item: "SchemaNode"
    min_items: int = 0
    max_items: Optional[int] = None
    description: Optional[str] = None
    default: Any = NO_DEFAULT
    tag: str = field(default=ARRAY, init=False)


@dataclass
class OptionalNode:
    inner: "SchemaNode"
    nullable: bool = False
    tag: str = field(default=OPTIONAL, init=False)

    @property
    def description(self) -> Optional[str]:
        return self.inner.description

    @property
    def default(self) -> Any:
        return self.inner.default


SchemaNode = Union[LeafNode, ObjectNode, ArrayNode, OptionalNode]


def unwrap(node: SchemaNode) -> Tuple[SchemaNode, bool]:
    """
    Strip Optional wrappers.

    Returns:
        Tuple of (core node, is_optional)
    """
    optional = False
    while node.tag == OPTIONAL:
        optional = True
        node = node.inner
    return node, optional


def visit(node: SchemaNode, handlers: Dict[str, Callable[[Any], Any]]) -> Any:
    """
    Dispatch `node` to the handler registered for its tag.

    Args:
        node: Schema node
        handlers: Mapping of tag -> callable taking the node

    Returns:
        Whatever the handler returns
    """
    handler = handlers.get(node.tag)
    if handler is None:
        raise KeyError(f"No handler for schema node tag '{node.tag}'")
    return handler(node)


# Convenience constructors used by code-defined schemas and tests

def string(*constraints: Constraint, description: Optional[str] = None, default: Any = NO_DEFAULT) -> LeafNode:
    return LeafNode('string', list(constraints), description=description, default=default)


def number(*constraints: Constraint, description: Optional[str] = None, default: Any = NO_DEFAULT,
           integer: bool = False) -> LeafNode:
    return LeafNode('integer' if integer else 'number', list(constraints),
                    description=description, default=default)


def boolean(description: Optional[str] = None, default: Any = NO_DEFAULT) -> LeafNode:
    return LeafNode('boolean', description=description, default=default)


def enum(choices: List[Any], description: Optional[str] = None, default: Any = NO_DEFAULT) -> LeafNode:
    return LeafNode('enum', [Constraint('choices', {'value': list(choices)})], choices=list(choices),
                    description=description, default=default)


def obj(fields: Dict[str, SchemaNode], refinements: Optional[List[Refinement]] = None,
        description: Optional[str] = None, default: Any = NO_DEFAULT) -> ObjectNode:
    return ObjectNode(dict(fields), list(refinements or []), description=description, default=default)


def array(item: SchemaNode, min_items: int = 0, max_items: Optional[int] = None,
          description: Optional[str] = None, default: Any = NO_DEFAULT) -> ArrayNode:
    return ArrayNode(item, min_items, max_items, description=description, default=default)


def optional(inner: SchemaNode, nullable: bool = False) -> OptionalNode:
    return OptionalNode(inner, nullable)


def min_length(value: int, message: Optional[str] = None) -> Constraint:
    return Constraint('min_length', _params(value, message))


def max_length(value: int, message: Optional[str] = None) -> Constraint:
    return Constraint('max_length', _params(value, message))


def min_value(value: float, message: Optional[str] = None) -> Constraint:
    return Constraint('min_value', _params(value, message))


def max_value(value: float, message: Optional[str] = None) -> Constraint:
    return Constraint('max_value', _params(value, message))


def pattern(value: str, message: Optional[str] = None) -> Constraint:
    return Constraint('pattern', _params(value, message))


def email(message: Optional[str] = None) -> Constraint:
    return Constraint('email', _params(None, message))


def url(message: Optional[str] = None) -> Constraint:
    return Constraint('url', _params(None, message))


def _params(value: Any, message: Optional[str]) -> Dict[str, Any]:
    params: Dict[str, Any] = {}
    if value is not None:
        params['value'] = value
    if message:
        params['message'] = message
    return params
