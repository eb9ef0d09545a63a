"""
Exception classes and error records for the dynamic form engine.

Exceptions here signal programming or configuration mistakes (unknown paths,
malformed schema documents). Invalid user input is never raised: it is
recorded on the state tree and surfaced through the records at the bottom of
this module.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Dict, Any, List

logger = logging.getLogger(__name__)


class FormEngineError(Exception):
    """
    Base exception for form engine errors.

    Attributes:
        message: Error message
        context: Additional context information
        recovery_suggestions: List of suggested recovery actions
    """

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None,
                 recovery_suggestions: Optional[List[str]] = None):
        self.message = message
        self.context = context or {}
        self.recovery_suggestions = recovery_suggestions or []
        super().__init__(self.message)

    def __str__(self) -> str:
        return self.message

    def get_full_details(self) -> Dict[str, Any]:
        """Get complete error details including context and suggestions."""
        return {
            'error_type': self.__class__.__name__,
            'message': self.message,
            'context': self.context,
            'recovery_suggestions': self.recovery_suggestions
        }


class UnknownFieldPathError(FormEngineError):
    """
    Raised when an operation addresses a path that is not part of the form.
    """

    def __init__(self, path: str, reason: str = "no such field", message: Optional[str] = None):
        self.path = path
        self.reason = reason

        if message is None:
            message = f"Unknown field path '{path}': {reason}"

        context = {
            'path': path,
            'reason': reason
        }

        recovery_suggestions = [
            "Use dotted paths such as 'address.city' or 'contacts.0.email'",
            "Check the field names against FormEngine.fields",
            "Array items are addressed by their numeric index"
        ]

        super().__init__(message, context, recovery_suggestions)


class SchemaDefinitionError(FormEngineError):
    """
    Raised when a schema document cannot be converted to schema nodes.
    """

    def __init__(self, field_name: str, issue: str, message: Optional[str] = None):
        self.field_name = field_name
        self.issue = issue

        if message is None:
            message = f"Invalid definition for field '{field_name}': {issue}"

        context = {
            'field_name': field_name,
            'issue': issue
        }

        recovery_suggestions = [
            "Every field needs a 'type'",
            "Object fields need a 'properties' mapping",
            "Array fields need an 'items' definition",
            "Enum fields need a non-empty 'choices' list"
        ]

        super().__init__(message, context, recovery_suggestions)


class SchemaLoadError(FormEngineError):
    """
    Raised when a schema file cannot be read or parsed.
    """

    def __init__(self, schema_path: Path, original_error: Exception,
                 message: Optional[str] = None):
        self.schema_path = schema_path
        self.original_error = original_error

        if message is None:
            message = f"Failed to load schema from {schema_path}: {str(original_error)}"

        context = {
            'schema_path': str(schema_path),
            'original_error_type': type(original_error).__name__,
            'original_error_message': str(original_error)
        }

        recovery_suggestions = [
            "Check that the schema file exists in the configured schema directory",
            "Verify YAML/JSON syntax is correct",
            "Run validate_schema() on the document to locate invalid fields"
        ]

        super().__init__(message, context, recovery_suggestions)


@dataclass(frozen=True)
class FieldValidationError:
    """A leaf whose current value fails its rules. Recoverable and inline."""
    path: str
    message: str


@dataclass(frozen=True)
class StructuralConstraintViolation:
    """An add/remove that would leave a repeating field outside [min, max]."""
    path: str
    operation: str
    length: int
    min_items: int
    max_items: Optional[int]


@dataclass
class SubmitRejected:
    """
    Outcome of a failed submit.

    `errors` holds per-field failures, `form_errors` holds schema-level
    messages that could not be attributed to a single field.
    """
    errors: List[FieldValidationError] = field(default_factory=list)
    form_errors: List[str] = field(default_factory=list)

    def messages(self) -> List[str]:
        return [f"{e.path}: {e.message}" for e in self.errors] + list(self.form_errors)
