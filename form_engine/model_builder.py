"""
Dynamic Pydantic model builder for the dynamic form engine.
Creates Pydantic models from schema nodes; the model is the schema's own
full-object validator used at submit time.
"""

from typing import Annotated, Dict, Any, Type, Optional, List, Tuple
from datetime import date
from pydantic import BaseModel, ConfigDict, Field, AfterValidator, ValidationError, create_model, field_validator, model_validator
import logging

from .conditions import is_truthy
from .schema_nodes import LEAF, OBJECT, ARRAY, NO_DEFAULT, Constraint, ObjectNode, Refinement, SchemaNode, unwrap
from .validation import check_constraint, is_empty

logger = logging.getLogger(__name__)

_SCALAR_PYTHON_TYPES = {
    'string': str,
    'number': float,
    'integer': int,
    'boolean': bool,
    'date': date,
}


def create_model_from_schema(schema: ObjectNode, model_name: str = "DynamicModel") -> Type[BaseModel]:
    """
    Create a Pydantic model from an object schema.

    Args:
        schema: Root object schema node
        model_name: Name for the generated model class

    Returns:
        Pydantic model class
    """
    root, _ = unwrap(schema)
    if root.tag != OBJECT:
        raise ValueError("Root schema must be an object node")

    try:
        dynamic_model = create_nested_model(root, model_name)
        logger.info(f"Created dynamic model '{model_name}' with {len(root.fields)} fields")
        return dynamic_model
    except Exception as e:
        logger.error(f"Failed to create model '{model_name}': {e}")
        raise


def create_nested_model(node: ObjectNode, model_name: str) -> Type[BaseModel]:
    """
    Create a Pydantic model for an object node, nested objects included.

    Args:
        node: Object schema node
        model_name: Name for the model

    Returns:
        Pydantic model class for the object
    """
    model_fields = {}
    validators_dict = {}

    for field_name, field_node in node.fields.items():
        model_fields[field_name] = create_field_from_node(field_name, field_node, f"{model_name}_{field_name}")
        validators_dict.update(create_validators_for_field(field_name, field_node))

    validators_dict.update(create_refinement_validators(node.refinements))

    return create_model(
        model_name,
        __config__=ConfigDict(extra='ignore'),
        __validators__=validators_dict,
        **model_fields
    )


def create_field_from_node(field_name: str, node: SchemaNode, model_name: str) -> tuple:
    """
    Create a Pydantic field from a schema node.

    Returns:
        Tuple of (field_type, FieldInfo)
    """
    core, optional = unwrap(node)
    field_type = get_field_type(core, model_name)

    field_kwargs = {}
    if node.default is not NO_DEFAULT:
        field_kwargs['default'] = node.default
    elif optional:
        field_kwargs['default'] = None

    if optional:
        field_type = Optional[field_type]

    if node.description:
        field_kwargs['description'] = node.description

    return field_type, Field(**field_kwargs)


def get_field_type(node: SchemaNode, model_name: str) -> Any:
    """
    Map a schema node to a Python/Pydantic type.
    Leaf constraints are attached as an AfterValidator interpreting the
    node's constraint descriptors.
    """
    core, optional = unwrap(node)

    if core.tag == LEAF:
        if core.scalar == 'enum':
            base_type = Any
        elif core.scalar in _SCALAR_PYTHON_TYPES:
            base_type = _SCALAR_PYTHON_TYPES[core.scalar]
        else:
            logger.warning(f"Unknown field type '{core.scalar}', defaulting to str")
            base_type = str

        if core.constraints:
            base_type = Annotated[base_type, AfterValidator(_constraint_validator(core.constraints))]
        return Optional[base_type] if optional else base_type

    if core.tag == ARRAY:
        item_type = get_field_type(core.item, f"{model_name}_item")
        bounds = {'min_length': core.min_items}
        if core.max_items is not None:
            bounds['max_length'] = core.max_items
        list_type = Annotated[List[item_type], Field(**bounds)]
        return Optional[list_type] if optional else list_type

    nested_model = create_nested_model(core, model_name)
    return Optional[nested_model] if optional else nested_model


def _constraint_validator(constraints: List[Constraint]):
    def validate(value: Any) -> Any:
        if value is None:
            return value
        for constraint in constraints:
            failure = check_constraint(constraint, value)
            if failure:
                raise ValueError(failure)
        return value
    return validate


def create_validators_for_field(field_name: str, node: SchemaNode) -> Dict[str, Any]:
    """
    Create custom validators for a field based on its schema node.

    Optional fields treat blank strings as absent, matching the per-field
    validation the form applies while editing.
    """
    validators = {}
    _, optional = unwrap(node)

    if optional:
        @field_validator(field_name, mode='before')
        @classmethod
        def blank_to_none(cls, v):
            if isinstance(v, str) and v.strip() == '':
                return None
            return v
        validators[f'validate_{field_name}_blank'] = blank_to_none

    return validators


def create_refinement_validators(refinements: List[Refinement]) -> Dict[str, Any]:
    """Wrap an object's cross-field refinements as an after-model validator."""
    if not refinements:
        return {}

    @model_validator(mode='after')
    def check_refinements(self):
        failures = evaluate_refinements(self.model_dump(), refinements)
        if failures:
            raise ValueError(failures[0][1])
        return self

    return {'validate_refinements': check_refinements}


def evaluate_refinements(values: Dict[str, Any], refinements: List[Refinement]) -> List[Tuple[str, str]]:
    """
    Evaluate cross-field refinements against an object's values.

    Args:
        values: Values of the object the refinements are declared on
        refinements: Refinement descriptors

    Returns:
        List of (relative path, message) for every failing refinement
    """
    failures = []
    for refinement in refinements:
        failing_field = _failing_field(values, refinement)
        if failing_field is not None:
            failures.append((refinement.path or failing_field, refinement.message))
    return failures


def _failing_field(values: Dict[str, Any], refinement: Refinement) -> Optional[str]:
    fields = refinement.fields
    rule = refinement.rule

    if rule == 'fields_match':
        first = values.get(fields[0])
        for name in fields[1:]:
            if values.get(name) != first:
                return name
        return None

    if rule in ('less_or_equal', 'date_order'):
        low, high = values.get(fields[0]), values.get(fields[1])
        if is_empty(low) or is_empty(high):
            return None
        try:
            return fields[1] if low > high else None
        except TypeError:
            return None

    if rule == 'required_if':
        if is_truthy(values.get(fields[0])) and is_empty(values.get(fields[1])):
            return fields[1]
        return None

    if rule == 'must_be_true':
        for name in fields:
            if values.get(name) is not True:
                return name
        return None

    logger.warning(f"Unknown refinement rule '{rule}' ignored")
    return None


def collect_refinement_failures(schema: SchemaNode, values: Any, prefix: str = '') -> List[Tuple[str, str]]:
    """
    Evaluate refinements on every object in the schema, nested objects and
    array items included.

    Returns:
        List of (absolute dotted path, message)
    """
    core, _ = unwrap(schema)
    failures: List[Tuple[str, str]] = []

    if core.tag == OBJECT and isinstance(values, dict):
        for path, message in evaluate_refinements(values, core.refinements):
            failures.append((f"{prefix}.{path}" if prefix else path, message))
        for name, child in core.fields.items():
            child_prefix = f"{prefix}.{name}" if prefix else name
            failures.extend(collect_refinement_failures(child, values.get(name), child_prefix))

    elif core.tag == ARRAY and isinstance(values, list):
        for index, item in enumerate(values):
            item_prefix = f"{prefix}.{index}" if prefix else str(index)
            failures.extend(collect_refinement_failures(core.item, item, item_prefix))

    return failures


def model_to_dict(model_instance: BaseModel, exclude_none: bool = False) -> Dict[str, Any]:
    """Convert a Pydantic model instance to a dictionary."""
    return model_instance.model_dump(exclude_none=exclude_none)


def _clean_message(message: str) -> str:
    prefix = "Value error, "
    return message[len(prefix):] if message.startswith(prefix) else message


def parse_model_data(data: Dict[str, Any], model_class: Type[BaseModel]) -> Tuple[Optional[Dict[str, Any]], List[Dict[str, str]]]:
    """
    Parse data with a Pydantic model.

    Args:
        data: Raw data to parse
        model_class: Pydantic model class

    Returns:
        Tuple of (normalized dict or None, list of {'path', 'message'} errors)
    """
    try:
        instance = model_class(**data)
        return model_to_dict(instance), []
    except ValidationError as e:
        errors = []
        for error in e.errors():
            path = '.'.join(str(loc) for loc in error.get('loc', []))
            errors.append({'path': path, 'message': _clean_message(error.get('msg', 'Invalid value'))})
        return None, errors
