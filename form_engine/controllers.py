"""
State machines for repeating fields, collapsible groups and wizard steps.
"""

import logging
from dataclasses import dataclass, replace
from typing import Dict, Any, List, Optional, Callable, Set, Tuple, Union

from .form_exceptions import StructuralConstraintViolation, UnknownFieldPathError
from .state_tree import REPEATING_STATE, CompositeState, RepeatingState, get_node, new_item

logger = logging.getLogger(__name__)


class ArrayController:
    """Add/remove items of repeating fields while keeping length within [min, max]."""

    def __init__(self, root: CompositeState):
        self._root = root

    def _repeating(self, path: str) -> RepeatingState:
        node = get_node(self._root, path)
        if node.kind != REPEATING_STATE:
            raise UnknownFieldPathError(path, "not a repeating field")
        return node

    def length(self, path: str) -> int:
        return len(self._repeating(path).items)

    def check_add(self, path: str) -> Optional[StructuralConstraintViolation]:
        """Return the violation an add would cause, or None if it is allowed."""
        node = self._repeating(path)
        if node.max_items is not None and len(node.items) >= node.max_items:
            return StructuralConstraintViolation(path, 'add', len(node.items), node.min_items, node.max_items)
        return None

    def check_remove(self, path: str, index: Optional[int] = None) -> Optional[StructuralConstraintViolation]:
        """Return the violation a remove would cause, or None if it is allowed."""
        node = self._repeating(path)
        out_of_range = index is not None and not 0 <= index < len(node.items)
        if len(node.items) - 1 < node.min_items or out_of_range or not node.items:
            return StructuralConstraintViolation(path, 'remove', len(node.items), node.min_items, node.max_items)
        return None

    def can_add(self, path: str) -> bool:
        return self.check_add(path) is None

    def can_remove(self, path: str) -> bool:
        return self.check_remove(path) is None

    def add_item(self, path: str) -> bool:
        """
        Append a new item built from the item descriptor.

        Returns:
            True if an item was added, False if max_items was reached
        """
        violation = self.check_add(path)
        if violation is not None:
            logger.debug(f"Refused add on '{path}': length {violation.length} at max {violation.max_items}")
            return False
        node = self._repeating(path)
        node.items.append(new_item(node.descriptor))
        logger.debug(f"Added item to '{path}', length now {len(node.items)}")
        return True

    def remove_item(self, path: str, index: int) -> bool:
        """
        Remove the item at `index`.

        Returns:
            True if the item was removed, False if it would go below min_items
            or the index does not exist
        """
        violation = self.check_remove(path, index)
        if violation is not None:
            logger.debug(f"Refused remove of item {index} on '{path}' (length {violation.length}, min {violation.min_items})")
            return False
        node = self._repeating(path)
        del node.items[index]
        logger.debug(f"Removed item {index} from '{path}', length now {len(node.items)}")
        return True


@dataclass(frozen=True)
class FieldGroup:
    id: str
    title: str
    description: Optional[str] = None
    collapsible: bool = True
    collapsed: bool = False
    icon: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FieldGroup":
        return cls(
            id=data['id'],
            title=data.get('title', data['id']),
            description=data.get('description'),
            collapsible=data.get('collapsible', True),
            collapsed=data.get('collapsed', data.get('collapsedByDefault', False)),
            icon=data.get('icon'),
        )


class GroupController:
    """Collapsed/expanded state per field group."""

    def __init__(self, groups: Optional[List[Union[FieldGroup, Dict[str, Any]]]] = None):
        self.groups: List[FieldGroup] = [
            g if isinstance(g, FieldGroup) else FieldGroup.from_dict(g) for g in (groups or [])
        ]
        self._collapsed: Dict[str, bool] = {g.id: g.collapsed for g in self.groups}

    def has_groups(self) -> bool:
        return bool(self.groups)

    def is_collapsed(self, group_id: str) -> bool:
        return self._collapsed.get(group_id, False)

    def toggle(self, group_id: str) -> bool:
        """Flip a group's collapsed flag. Returns the new state; unknown ids are ignored."""
        if group_id not in self._collapsed:
            logger.warning(f"Toggle requested for unknown group '{group_id}'")
            return False
        self._collapsed[group_id] = not self._collapsed[group_id]
        return self._collapsed[group_id]


@dataclass(frozen=True)
class FormStep:
    id: str
    title: str
    fields: Tuple[str, ...] = ()
    description: Optional[str] = None
    icon: Optional[str] = None
    validate: bool = True

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FormStep":
        return cls(
            id=data['id'],
            title=data.get('title', data['id']),
            fields=tuple(data.get('fields', data.get('memberFieldNames', ()))),
            description=data.get('description'),
            icon=data.get('icon'),
            validate=data.get('validate', True),
        )


class StepController:
    """
    Wizard steps 0..N-1. Moving forward is gated on the validity of the
    current step's fields; moving back is not.

    Args:
        steps: Step declarations
        first_invalid: Returns the first invalid field among the given names, or None
        touch: Marks a field (and all leaves below it) as touched
    """

    def __init__(self, steps: Optional[List[Union[FormStep, Dict[str, Any]]]],
                 first_invalid: Callable[[List[str]], Optional[str]],
                 touch: Callable[[str], None]):
        self.steps: List[FormStep] = [
            s if isinstance(s, FormStep) else FormStep.from_dict(s) for s in (steps or [])
        ]
        self._first_invalid = first_invalid
        self._touch = touch
        self.current = 0

    def drop_unknown_fields(self, known: Set[str]) -> List[str]:
        """
        Remove step members that are not fields of the form, with a warning
        per step. Returns the dropped names.
        """
        dropped: List[str] = []
        for index, step in enumerate(self.steps):
            unknown = [name for name in step.fields if name not in known]
            if not unknown:
                continue
            logger.warning(f"Step '{step.id}' lists unknown fields {unknown}; ignoring them")
            self.steps[index] = replace(step, fields=tuple(name for name in step.fields if name in known))
            dropped.extend(unknown)
        return dropped

    def is_multi_step(self) -> bool:
        return bool(self.steps)

    def is_last_step(self) -> bool:
        if not self.steps:
            return True
        return self.current == len(self.steps) - 1

    def current_step(self) -> Optional[FormStep]:
        return self.steps[self.current] if self.steps else None

    def step_fields(self) -> List[str]:
        step = self.current_step()
        return list(step.fields) if step else []

    def can_proceed(self) -> bool:
        """Check the current step's fields, touching the first invalid one."""
        step = self.current_step()
        if step is None or not step.validate:
            return True
        invalid = self._first_invalid(list(step.fields))
        if invalid is not None:
            self._touch(invalid)
            logger.debug(f"Step '{step.id}' blocked by invalid field '{invalid}'")
            return False
        return True

    def next_step(self) -> bool:
        if self.is_last_step() or not self.can_proceed():
            return False
        self.current += 1
        logger.debug(f"Advanced to step {self.current}")
        return True

    def previous_step(self) -> bool:
        if self.current > 0:
            self.current -= 1
            logger.debug(f"Returned to step {self.current}")
        return True
