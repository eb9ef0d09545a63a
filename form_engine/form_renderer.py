"""
Streamlit presentation layer for the dynamic form engine.

Widgets are bound to engine paths: each render reads FieldState through the
engine and writes user input back with set_value/touch. The renderer keeps no
form state of its own.
"""

import streamlit as st
from datetime import datetime, date, time
from typing import Dict, Any, List, Optional
import logging

from .form_engine import FormEngine
from .introspector import FieldDescriptor, FieldKind
from .state_tree import REPEATING_STATE

logger = logging.getLogger(__name__)

_TEXT_INPUT_TYPES = {
    FieldKind.TEXT: 'default',
    FieldKind.EMAIL: 'default',
    FieldKind.URL: 'default',
    FieldKind.TEL: 'default',
    FieldKind.PASSWORD: 'password',
}


def widget_key(form_key: str, path: str) -> str:
    return f"{form_key}__{path.replace('.', '__')}"


def layout_rows(descriptors: List[FieldDescriptor], columns: int) -> List[List[FieldDescriptor]]:
    """
    Pack descriptors into rows of at most `columns` width using col_span.
    Composite and repeating fields always take a full row.
    """
    columns = max(1, columns)
    rows: List[List[FieldDescriptor]] = []
    current: List[FieldDescriptor] = []
    used = 0
    for descriptor in descriptors:
        span = columns if descriptor.is_composite or descriptor.is_repeating else min(descriptor.col_span or 1, columns)
        if current and used + span > columns:
            rows.append(current)
            current, used = [], 0
        current.append(descriptor)
        used += span
    if current:
        rows.append(current)
    return rows


def to_date(value: Any) -> Optional[date]:
    """Parse a stored date value for st.date_input."""
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            from dateutil import parser
            return parser.parse(value).date()
        except (ValueError, OverflowError) as e:
            logger.warning(f"Failed to parse date string '{value}': {e}")
    return None


def to_time(value: Any) -> Optional[time]:
    if isinstance(value, time):
        return value
    if isinstance(value, str) and value:
        try:
            from dateutil import parser
            return parser.parse(value).time()
        except (ValueError, OverflowError) as e:
            logger.warning(f"Failed to parse time string '{value}': {e}")
    return None


class FormRenderer:
    """Renders a FormEngine with Streamlit widgets."""

    @staticmethod
    def render(engine: FormEngine, key: str) -> Optional[Dict[str, Any]]:
        """
        Render the form and its navigation.

        Args:
            engine: Engine holding the form state
            key: Unique form key, used to namespace widget keys

        Returns:
            The normalized value when the form was submitted successfully on
            this run, otherwise None
        """
        if engine.steps.is_multi_step():
            FormRenderer._render_step_header(engine)

        descriptors = engine.fields_for_current_step()
        if engine.groups.has_groups():
            FormRenderer._render_grouped(engine, descriptors, key)
        else:
            FormRenderer._render_fields(engine, descriptors, key)

        return FormRenderer._render_actions(engine, key)

    @staticmethod
    def _render_step_header(engine: FormEngine):
        step = engine.active_step()
        total = len(engine.steps.steps)
        st.progress((engine.current_step + 1) / total)
        title = f"{step.icon} {step.title}" if step.icon else step.title
        st.subheader(f"Step {engine.current_step + 1} of {total}: {title}")
        if step.description:
            st.caption(step.description)

    @staticmethod
    def _render_grouped(engine: FormEngine, descriptors: List[FieldDescriptor], key: str):
        members = {d.path for d in descriptors}
        ungrouped = [d for d in engine.fields_for_group(None) if d.path in members]
        if ungrouped:
            FormRenderer._render_fields(engine, ungrouped, key)

        for group in engine.groups.groups:
            fields = [d for d in engine.fields_for_group(group.id) if d.path in members]
            if not fields:
                continue

            collapsed = engine.is_group_collapsed(group.id)
            title = f"{group.icon} {group.title}" if group.icon else group.title
            if group.collapsible:
                marker = "▸" if collapsed else "▾"
                st.button(f"{marker} {title}", key=widget_key(key, f"group_{group.id}"),
                          on_click=engine.toggle_group, args=(group.id,))
            else:
                st.markdown(f"**{title}**")
            if group.description:
                st.caption(group.description)
            if not (group.collapsible and collapsed):
                FormRenderer._render_fields(engine, fields, key)

    @staticmethod
    def _render_fields(engine: FormEngine, descriptors: List[FieldDescriptor], key: str):
        visible = [d for d in descriptors if engine.is_visible(d.path)]
        if engine.options.layout == 'vertical':
            for descriptor in visible:
                FormRenderer._render_field(engine, descriptor, descriptor.path, key)
            return

        columns = engine.options.columns if engine.options.layout == 'grid' else len(visible) or 1
        for row in layout_rows(visible, columns):
            spans = [columns if d.is_composite or d.is_repeating else (d.col_span or 1) for d in row]
            cols = st.columns(spans)
            for col, descriptor in zip(cols, row):
                with col:
                    FormRenderer._render_field(engine, descriptor, descriptor.path, key)

    @staticmethod
    def _render_field(engine: FormEngine, descriptor: FieldDescriptor, path: str, key: str):
        """Render one field (leaf, object or array) bound to `path`."""
        if not engine.is_visible(path):
            return

        try:
            if descriptor.is_composite:
                FormRenderer._render_object(engine, descriptor, path, key)
            elif descriptor.is_repeating:
                FormRenderer._render_array(engine, descriptor, path, key)
            else:
                FormRenderer._render_leaf(engine, descriptor, path, key)
        except Exception as e:
            st.error(f"Error rendering field {path}: {str(e)}")
            logger.error(f"Error rendering field {path}: {e}", exc_info=True)

    @staticmethod
    def _render_object(engine: FormEngine, descriptor: FieldDescriptor, path: str, key: str):
        st.markdown(f"**{descriptor.label}**")
        if descriptor.hint:
            st.caption(descriptor.hint)
        with st.container(border=True):
            for child in descriptor.nested or ():
                FormRenderer._render_field(engine, child, f"{path}.{child.name}", key)

    @staticmethod
    def _render_array(engine: FormEngine, descriptor: FieldDescriptor, path: str, key: str):
        node = engine.node(path)
        if node.kind != REPEATING_STATE:
            return
        count = engine.item_count(path)
        bounds = f"{descriptor.min_items}-{descriptor.max_items}" if descriptor.max_items is not None else f"{descriptor.min_items}+"
        st.markdown(f"**{descriptor.label}** ({count} items, {bounds})")
        if descriptor.hint:
            st.caption(descriptor.hint)

        for index in range(count):
            item_path = f"{path}.{index}"
            with st.container(border=True):
                col1, col2 = st.columns([6, 1])
                with col1:
                    FormRenderer._render_field(engine, descriptor.item, item_path, key)
                with col2:
                    st.button("🗑️", key=widget_key(key, f"{item_path}__remove"),
                              disabled=not engine.can_remove_item(path, index),
                              on_click=engine.remove_item, args=(path, index),
                              help="Remove item")

        st.button(f"➕ Add {descriptor.item.label if descriptor.item else 'item'}",
                  key=widget_key(key, f"{path}__add"),
                  disabled=not engine.can_add_item(path),
                  on_click=engine.add_item, args=(path,))

    @staticmethod
    def _render_leaf(engine: FormEngine, descriptor: FieldDescriptor, path: str, key: str):
        state = engine.field(path)
        label = descriptor.label + (" *" if descriptor.required else "")
        kwargs = {
            'label': label,
            'key': widget_key(key, f"{path}__v{id(engine.node(path))}"),
            'help': descriptor.hint,
            'disabled': descriptor.loading,
        }
        kind = descriptor.kind

        if kind in _TEXT_INPUT_TYPES:
            new_value = st.text_input(value=state.value or '', placeholder=descriptor.placeholder,
                                      type=_TEXT_INPUT_TYPES[kind], max_chars=descriptor.constraints.max_length,
                                      **kwargs)
        elif kind == FieldKind.TEXTAREA:
            new_value = st.text_area(value=state.value or '', placeholder=descriptor.placeholder,
                                     max_chars=descriptor.constraints.max_length, height=100, **kwargs)
        elif kind == FieldKind.NUMBER:
            new_value = FormRenderer._render_number_input(descriptor, state.value, kwargs)
        elif kind == FieldKind.CHECKBOX:
            new_value = st.checkbox(value=bool(state.value), **kwargs)
        elif kind in (FieldKind.SELECT, FieldKind.SEARCHABLE_SELECT):
            new_value = FormRenderer._render_selectbox(descriptor, state.value, kwargs)
        elif kind == FieldKind.DATE:
            result = st.date_input(value=to_date(state.value), **kwargs)
            new_value = result.strftime("%Y-%m-%d") if isinstance(result, date) else ''
        elif kind == FieldKind.TIME:
            result = st.time_input(value=to_time(state.value), **kwargs)
            new_value = result.strftime("%H:%M") if isinstance(result, time) else ''
        else:
            new_value = st.text_input(value='' if state.value is None else str(state.value),
                                      placeholder=descriptor.placeholder, **kwargs)

        blank = (None, '')
        if not (new_value in blank and state.value in blank) and engine.set_value(path, new_value):
            engine.touch(path)

        state = engine.field(path)
        if state.touched and not state.valid:
            st.error(state.error)

    @staticmethod
    def _render_number_input(descriptor: FieldDescriptor, value: Any, kwargs: Dict[str, Any]) -> Any:
        """Render number input field; integers keep an integer step and format."""
        integer = any(rule.kind == 'type' and rule.value == 'integer' for rule in descriptor.rules)
        cast = int if integer else float
        if integer:
            kwargs['step'] = 1
            kwargs['format'] = "%d"
        else:
            kwargs['step'] = 0.01
            kwargs['format'] = "%.2f"
        if descriptor.constraints.min is not None:
            kwargs['min_value'] = cast(descriptor.constraints.min)
        if descriptor.constraints.max is not None:
            kwargs['max_value'] = cast(descriptor.constraints.max)
        current = cast(value) if isinstance(value, (int, float)) and not isinstance(value, bool) else None
        result = st.number_input(value=current, placeholder=descriptor.placeholder, **kwargs)
        if result is None:
            return None
        return int(result) if integer else float(result)

    @staticmethod
    def _render_selectbox(descriptor: FieldDescriptor, value: Any, kwargs: Dict[str, Any]) -> Any:
        """Render selectbox field; optional selects get an empty choice."""
        options = list(descriptor.constraints.options or ())
        values = [option['value'] for option in options]
        labels = {option['value']: option['label'] for option in options}
        if descriptor.loading:
            st.caption("Loading options...")

        placeholder = descriptor.placeholder or "-- Select --"
        index = values.index(value) if value in values else None
        return st.selectbox(options=values, index=index, placeholder=placeholder,
                            format_func=lambda v: labels.get(v, str(v)), **kwargs)

    @staticmethod
    def _render_actions(engine: FormEngine, key: str) -> Optional[Dict[str, Any]]:
        """Render step navigation, cancel and submit. Returns the submitted value."""
        options = engine.options
        cols = st.columns(4)

        if engine.steps.is_multi_step():
            with cols[0]:
                st.button("⬅️ Previous", key=widget_key(key, "__previous"),
                          disabled=engine.current_step == 0, on_click=engine.previous_step)
            if not engine.is_last_step():
                with cols[1]:
                    st.button("Next ➡️", key=widget_key(key, "__next"), on_click=engine.next_step)

        if options.show_cancel:
            with cols[2]:
                if st.button(options.cancel_label, key=widget_key(key, "__cancel")):
                    engine.reset()
                    st.rerun()

        if not engine.is_last_step():
            return None

        with cols[3]:
            submitted = st.button(options.submit_label, key=widget_key(key, "__submit"), type="primary")
        if not submitted:
            return None

        result = engine.submit()
        if result is not None:
            st.success("✅ Form submitted")
            return result

        rejection = engine.last_rejection
        st.error(f"❌ Please fix {len(rejection.errors) + len(rejection.form_errors)} error(s) before submitting")
        for message in rejection.form_errors:
            st.error(message)
        return None
