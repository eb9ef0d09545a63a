"""
Schema loader for the dynamic form engine.
Handles loading and validation of YAML/JSON schema documents and converts
them into schema nodes.
"""

import json
import yaml
from pathlib import Path
from typing import Dict, Any, Optional, List
import logging
import re

from .config_loader import get_config_value
from .form_exceptions import SchemaDefinitionError, SchemaLoadError
from .schema_nodes import (
    NO_DEFAULT, ArrayNode, Constraint, LeafNode, ObjectNode, OptionalNode, Refinement, SchemaNode
)

logger = logging.getLogger(__name__)

# Supported field types
SUPPORTED_FIELD_TYPES = {
    'string', 'number', 'integer', 'float', 'boolean',
    'date', 'enum', 'array', 'object'
}

SUPPORTED_FORMATS = {'email', 'url'}

SUPPORTED_REFINEMENT_RULES = {'fields_match', 'less_or_equal', 'date_order', 'required_if', 'must_be_true'}

# Document key -> constraint kind
_CONSTRAINT_KEYS = {
    'min_length': 'min_length',
    'max_length': 'max_length',
    'pattern': 'pattern',
    'min_value': 'min_value',
    'max_value': 'max_value',
}


def get_schemas_dir() -> Path:
    """Schema directory from configuration."""
    return Path(get_config_value('schema', 'directory', 'schemas'))


def read_schema_file(schema_path: str, schemas_dir: Optional[Path] = None) -> Dict[str, Any]:
    """
    Read and check a schema document from a YAML or JSON file.

    Args:
        schema_path: Path to schema file (relative to the schemas directory)
        schemas_dir: Directory override; defaults to the configured directory

    Returns:
        Schema dictionary

    Raises:
        SchemaLoadError: If the file is missing, unreadable, unparsable or
            not a valid schema document
    """
    full_path = (schemas_dir or get_schemas_dir()) / schema_path

    if not full_path.exists():
        raise SchemaLoadError(full_path, FileNotFoundError(f"Schema file not found: {full_path}"))

    suffix = full_path.suffix.lower()
    if suffix not in ('.yaml', '.yml', '.json'):
        raise SchemaLoadError(full_path, ValueError(f"Unsupported schema file format: {full_path.suffix}"))

    try:
        with open(full_path, 'r', encoding='utf-8') as f:
            schema = json.load(f) if suffix == '.json' else yaml.safe_load(f)
    except (yaml.YAMLError, json.JSONDecodeError, OSError) as e:
        raise SchemaLoadError(full_path, e) from e

    if not validate_schema(schema):
        raise SchemaLoadError(full_path, ValueError("Invalid schema structure"))

    logger.info(f"Successfully loaded schema: {schema_path}")
    return schema


def load_schema(schema_path: str, schemas_dir: Optional[Path] = None) -> Optional[Dict[str, Any]]:
    """
    Load a schema document from YAML or JSON file.

    Returns:
        Schema dictionary or None if loading fails (the reason is logged)
    """
    try:
        return read_schema_file(schema_path, schemas_dir)
    except SchemaLoadError as e:
        logger.error(str(e))
        return None


def load_form_schema(schema_path: str, schemas_dir: Optional[Path] = None) -> Optional[ObjectNode]:
    """Load a schema file and convert it to schema nodes. None if loading fails."""
    document = load_schema(schema_path, schemas_dir)
    if document is None:
        return None
    return parse_schema(document)


def get_configured_schema() -> Dict[str, Any]:
    """
    Get the schema document specified in the configuration.

    Returns:
        Schema dictionary (never None - returns fallback if primary not found)
    """
    primary_schema = get_config_value('schema', 'primary_schema', 'default_schema.yaml')
    fallback_schema = get_config_value('schema', 'fallback_schema', 'default_schema.yaml')

    schema = load_schema(primary_schema)
    if schema:
        logger.info(f"Using primary schema: {primary_schema}")
        return schema

    logger.warning(f"Primary schema {primary_schema} not found, trying fallback: {fallback_schema}")
    schema = load_schema(fallback_schema)
    if schema:
        logger.info(f"Using fallback schema: {fallback_schema}")
        return schema

    logger.error("No valid schemas found, creating minimal fallback")
    return create_fallback_schema()


def validate_schema(schema: Dict[str, Any]) -> bool:
    """
    Validate schema document structure and field definitions.

    Returns:
        True if schema is valid, False otherwise
    """
    if not isinstance(schema, dict):
        logger.error("Schema must be a dictionary")
        return False

    if 'fields' not in schema:
        logger.error("Schema must contain 'fields' key")
        return False

    fields = schema['fields']
    if not isinstance(fields, dict):
        logger.error("Schema 'fields' must be a dictionary")
        return False

    for field_name, field_config in fields.items():
        if not validate_field_config(field_name, field_config):
            return False

    return validate_refinements_config('schema', schema.get('refinements', []), fields)


def validate_field_config(field_name: str, field_config: Dict[str, Any]) -> bool:
    """
    Validate individual field configuration.

    Returns:
        True if field config is valid, False otherwise
    """
    if not isinstance(field_config, dict):
        logger.error(f"Field '{field_name}' config must be a dictionary")
        return False

    if 'type' not in field_config:
        logger.error(f"Field '{field_name}' must have a 'type'")
        return False

    field_type = field_config['type']
    if field_type not in SUPPORTED_FIELD_TYPES:
        logger.error(f"Field '{field_name}' has unsupported type '{field_type}'. "
                     f"Supported types: {SUPPORTED_FIELD_TYPES}")
        return False

    if field_type == 'enum':
        choices = field_config.get('choices')
        if not isinstance(choices, list) or len(choices) == 0:
            logger.error(f"Enum field '{field_name}' choices must be a non-empty list")
            return False

    if field_type == 'array':
        if 'items' not in field_config:
            logger.error(f"Array field '{field_name}' must have 'items' definition")
            return False

        if not validate_field_config(f"{field_name}[items]", field_config['items']):
            return False

        for bound in ['min_items', 'max_items']:
            if bound in field_config:
                value = field_config[bound]
                if not isinstance(value, int) or isinstance(value, bool) or value < 0:
                    logger.error(f"Field '{field_name}' {bound} must be a non-negative integer")
                    return False

        min_items = field_config.get('min_items', 0)
        max_items = field_config.get('max_items')
        if max_items is not None and max_items < min_items:
            logger.error(f"Field '{field_name}' max_items must not be less than min_items")
            return False

    if field_type == 'object':
        properties = field_config.get('properties')
        if not isinstance(properties, dict):
            logger.error(f"Object field '{field_name}' must have a 'properties' dictionary")
            return False

        for prop_name, prop_config in properties.items():
            if not validate_field_config(f"{field_name}.{prop_name}", prop_config):
                return False

        if not validate_refinements_config(field_name, field_config.get('refinements', []), properties):
            return False

    if field_type in ['number', 'integer', 'float']:
        for constraint in ['min_value', 'max_value']:
            if constraint in field_config:
                value = field_config[constraint]
                if not isinstance(value, (int, float)) or isinstance(value, bool):
                    logger.error(f"Field '{field_name}' {constraint} must be a number")
                    return False

    if field_type == 'string':
        for constraint in ['min_length', 'max_length']:
            if constraint in field_config:
                value = field_config[constraint]
                if not isinstance(value, int) or value < 0:
                    logger.error(f"Field '{field_name}' {constraint} must be a non-negative integer")
                    return False

        if 'pattern' in field_config:
            try:
                re.compile(field_config['pattern'])
            except re.error as e:
                logger.error(f"Field '{field_name}' has invalid regex pattern: {e}")
                return False

        if 'format' in field_config and field_config['format'] not in SUPPORTED_FORMATS:
            logger.error(f"Field '{field_name}' has unsupported format '{field_config['format']}'")
            return False

    return True


def validate_refinements_config(owner: str, refinements: Any, fields: Dict[str, Any]) -> bool:
    """Validate the cross-field refinements declared on an object."""
    if not isinstance(refinements, list):
        logger.error(f"Refinements of '{owner}' must be a list")
        return False

    for refinement in refinements:
        if not isinstance(refinement, dict):
            logger.error(f"Refinement of '{owner}' must be a dictionary")
            return False
        rule = refinement.get('rule')
        if rule not in SUPPORTED_REFINEMENT_RULES:
            logger.error(f"Refinement of '{owner}' has unsupported rule '{rule}'")
            return False
        names = refinement.get('fields')
        if not isinstance(names, list) or not names:
            logger.error(f"Refinement '{rule}' of '{owner}' needs a non-empty 'fields' list")
            return False
        unknown = [name for name in names if name not in fields]
        if unknown:
            logger.error(f"Refinement '{rule}' of '{owner}' references unknown fields: {unknown}")
            return False
        if rule in ('less_or_equal', 'date_order', 'required_if') and len(names) != 2:
            logger.error(f"Refinement '{rule}' of '{owner}' needs exactly two fields")
            return False

    return True


def parse_schema(schema: Dict[str, Any]) -> ObjectNode:
    """
    Convert a schema document into an object schema node.

    Raises:
        SchemaDefinitionError: If a field definition cannot be converted
    """
    if not isinstance(schema, dict) or not isinstance(schema.get('fields'), dict):
        raise SchemaDefinitionError('<root>', "schema must contain a 'fields' dictionary")

    root = ObjectNode(
        fields={name: parse_field(name, config) for name, config in schema['fields'].items()},
        refinements=parse_refinements(schema.get('refinements', [])),
        description=schema.get('description'),
        title=schema.get('title'),
    )
    logger.debug(f"Parsed schema '{schema.get('title', 'untitled')}' with {len(root.fields)} fields")
    return root


def parse_field(field_name: str, field_config: Dict[str, Any]) -> SchemaNode:
    """
    Convert one field definition into a schema node.
    Non-required (or nullable) fields are wrapped in an OptionalNode.
    """
    if not isinstance(field_config, dict):
        raise SchemaDefinitionError(field_name, "field definition must be a dictionary")

    field_type = field_config.get('type')
    if not field_type:
        raise SchemaDefinitionError(field_name, "missing 'type'")

    description = _description(field_config)
    default = field_config.get('default', NO_DEFAULT)

    if field_type == 'object':
        properties = field_config.get('properties')
        if not isinstance(properties, dict):
            raise SchemaDefinitionError(field_name, "object fields need a 'properties' mapping")
        node: SchemaNode = ObjectNode(
            fields={name: parse_field(f"{field_name}.{name}", config) for name, config in properties.items()},
            refinements=parse_refinements(field_config.get('refinements', [])),
            description=description,
            default=default,
        )

    elif field_type == 'array':
        if 'items' not in field_config:
            raise SchemaDefinitionError(field_name, "array fields need an 'items' definition")
        items_config = dict(field_config['items'])
        items_config.setdefault('required', True)
        node = ArrayNode(
            item=parse_field(f"{field_name}[items]", items_config),
            min_items=field_config.get('min_items', 0),
            max_items=field_config.get('max_items'),
            description=description,
            default=default,
        )

    else:
        node = _parse_leaf(field_name, field_type, field_config, description, default)

    if not field_config.get('required', False) or field_config.get('nullable', False):
        return OptionalNode(node, nullable=field_config.get('nullable', False))
    return node


def _parse_leaf(field_name: str, field_type: str, field_config: Dict[str, Any],
                description: Optional[str], default: Any) -> LeafNode:
    messages = field_config.get('messages', {})
    scalar = 'number' if field_type == 'float' else field_type
    constraints: List[Constraint] = []

    for key, kind in _CONSTRAINT_KEYS.items():
        if key in field_config:
            constraints.append(Constraint(kind, _with_message({'value': field_config[key]}, messages.get(key))))

    if field_config.get('format') in SUPPORTED_FORMATS:
        fmt = field_config['format']
        constraints.append(Constraint(fmt, _with_message({}, messages.get(fmt))))

    choices = None
    if scalar == 'enum':
        choices = list(field_config.get('choices') or [])
        if not choices:
            raise SchemaDefinitionError(field_name, "enum fields need a non-empty 'choices' list")
        constraints.append(Constraint('choices', _with_message({'value': choices}, messages.get('choices'))))

    if scalar not in SUPPORTED_FIELD_TYPES:
        logger.warning(f"Field '{field_name}' has unsupported type '{field_type}', treating as text")

    return LeafNode(scalar, constraints, choices=choices, description=description, default=default)


def _with_message(params: Dict[str, Any], message: Optional[str]) -> Dict[str, Any]:
    if message:
        params['message'] = message
    return params


def _description(field_config: Dict[str, Any]) -> Optional[str]:
    """Prefer an explicit "Label|Hint" description; otherwise build one from label/help."""
    if field_config.get('description'):
        return field_config['description']
    label = field_config.get('label')
    hint = field_config.get('help')
    if label and hint:
        return f"{label}|{hint}"
    return label or (f"|{hint}" if hint else None)


def parse_refinements(refinements: List[Dict[str, Any]]) -> List[Refinement]:
    return [
        Refinement(
            rule=r['rule'],
            fields=tuple(r['fields']),
            message=r.get('message', 'Invalid value'),
            path=r.get('path'),
        )
        for r in refinements
    ]


def create_fallback_schema() -> Dict[str, Any]:
    """
    Create a minimal fallback schema.

    Returns:
        Basic schema with a couple of generic fields
    """
    return {
        "title": "Fallback Schema",
        "description": "Generic schema used when no schema file is available",
        "fields": {
            "name": {
                "type": "string",
                "description": "Name",
                "required": True,
                "min_length": 1,
                "max_length": 200
            },
            "notes": {
                "type": "string",
                "description": "Notes|Anything worth recording",
                "required": False
            }
        }
    }


def list_available_schemas(schemas_dir: Optional[Path] = None) -> List[str]:
    """
    List all available schema files in the schemas directory.

    Returns:
        Sorted list of schema filenames
    """
    directory = schemas_dir or get_schemas_dir()
    if not directory.exists():
        return []

    schema_files = []
    for pattern in ['*.yaml', '*.yml', '*.json']:
        schema_files.extend([f.name for f in directory.glob(pattern)])

    return sorted(schema_files)


def get_schema_info(schema: Dict[str, Any]) -> Dict[str, Any]:
    """
    Get metadata information about a schema document.

    Returns:
        Dictionary with schema metadata
    """
    fields = schema.get('fields', {})

    return {
        "title": schema.get('title', 'Untitled Schema'),
        "description": schema.get('description', ''),
        "field_count": len(fields),
        "required_fields": [
            name for name, config in fields.items()
            if config.get('required', False)
        ],
        "field_types": {
            name: config.get('type', 'unknown')
            for name, config in fields.items()
        }
    }
