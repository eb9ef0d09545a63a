"""
Diff utilities for the dynamic form engine.
Compares the form's initial value snapshot with its current raw values using
DeepDiff, to report dirty state and a per-field change list.
"""

from typing import Dict, Any, List
from deepdiff import DeepDiff
import re
import logging

logger = logging.getLogger(__name__)

CHANGE_TYPES = [
    'values_changed',
    'type_changes',
    'dictionary_item_added',
    'dictionary_item_removed',
    'iterable_item_added',
    'iterable_item_removed',
]

_PATH_TOKEN_PATTERN = re.compile(r"\['([^']*)'\]|\[(\d+)\]")


def deepdiff_path_to_dotted(path: str) -> str:
    """
    Convert a DeepDiff path such as root['contacts'][0]['email'] into the
    dotted form used by the state tree (contacts.0.email).
    """
    tokens = []
    for key, index in _PATH_TOKEN_PATTERN.findall(path):
        tokens.append(key if key or not index else index)
    return '.'.join(tokens)


def calculate_diff(original: Dict[str, Any], modified: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    """
    Calculate differences between two value snapshots.

    List order is significant: reordering repeating items is a change.

    Args:
        original: Snapshot taken when the form was built
        modified: Current raw values

    Returns:
        Dict keyed by change type; each section maps dotted paths to details:
        - values_changed / type_changes: {'old_value', 'new_value'}
        - *_added: the added value
        - *_removed: the removed value
    """
    try:
        diff = DeepDiff(original, modified, verbose_level=2)
    except Exception as e:
        logger.error(f"Error calculating diff: {e}", exc_info=True)
        return {}

    processed: Dict[str, Dict[str, Any]] = {}
    for change_type in CHANGE_TYPES:
        section = diff.get(change_type)
        if not section:
            continue
        entries = {}
        for raw_path, detail in section.items():
            path = deepdiff_path_to_dotted(raw_path)
            if change_type in ('values_changed', 'type_changes'):
                entries[path] = {
                    'old_value': detail.get('old_value'),
                    'new_value': detail.get('new_value'),
                }
            else:
                entries[path] = detail
        processed[change_type] = entries

    return processed


def has_changes(diff: Dict[str, Any]) -> bool:
    """
    Check if there are any changes in the diff.

    Args:
        diff: Diff dictionary from calculate_diff

    Returns:
        True if there are changes, False otherwise
    """
    if not diff:
        return False
    return any(diff.get(change_type) for change_type in CHANGE_TYPES)


def get_change_summary(diff: Dict[str, Any]) -> Dict[str, int]:
    """
    Get a summary of changes by type.

    Returns:
        Dictionary with change counts: modified, added, removed, total
    """
    summary = {
        'modified': len(diff.get('values_changed', {})) + len(diff.get('type_changes', {})),
        'added': len(diff.get('dictionary_item_added', {})) + len(diff.get('iterable_item_added', {})),
        'removed': len(diff.get('dictionary_item_removed', {})) + len(diff.get('iterable_item_removed', {})),
    }
    summary['total'] = summary['modified'] + summary['added'] + summary['removed']
    return summary


def format_diff_for_display(diff: Dict[str, Any]) -> str:
    """
    Format diff output as markdown for the presentation layer.

    Args:
        diff: Diff dictionary from calculate_diff

    Returns:
        Formatted string for display
    """
    if not has_changes(diff):
        return "**No changes detected**"

    lines = ["**Changes**"]
    for path, change in diff.get('values_changed', {}).items():
        lines.append(f"- `{path}`: {_format_value(change['old_value'])} → {_format_value(change['new_value'])}")
    for path, change in diff.get('type_changes', {}).items():
        lines.append(f"- `{path}`: {_format_value(change['old_value'])} → {_format_value(change['new_value'])}")
    for section in ('dictionary_item_added', 'iterable_item_added'):
        for path, value in diff.get(section, {}).items():
            lines.append(f"- `{path}` added: {_format_value(value)}")
    for section in ('dictionary_item_removed', 'iterable_item_removed'):
        for path, value in diff.get(section, {}).items():
            lines.append(f"- `{path}` removed: {_format_value(value)}")
    return '\n'.join(lines)


def _format_value(value: Any, max_length: int = 60) -> str:
    """Format a value for display, truncating long representations."""
    if value is None:
        return "_empty_"
    if isinstance(value, str):
        text = f'"{value}"'
    else:
        text = repr(value)
    if len(text) > max_length:
        text = text[:max_length - 3] + "..."
    return text
