"""
Main Streamlit application for Dynamic Forms.
Renders schema-driven forms (suppliers, audits, personnel) from the YAML
schemas in the configured schema directory.
"""

import streamlit as st
from pathlib import Path
import logging

from form_engine.config_loader import configure_logging, get_config, get_config_value
from form_engine.diff_utils import format_diff_for_display, get_change_summary
from form_engine.form_engine import FormEngine
from form_engine.form_renderer import FormRenderer
from form_engine.form_exceptions import SchemaLoadError
from form_engine.schema_loader import (
    get_configured_schema, get_schema_info, list_available_schemas, read_schema_file
)
from form_engine.session_manager import SessionManager

# Configure logging dynamically from config
configure_logging(get_config())
logger = logging.getLogger(__name__)

st.set_page_config(
    page_title=get_config_value('app', 'name', 'Dynamic Forms'),
    page_icon="📋",
    layout="wide",
    initial_sidebar_state="expanded"
)


def main():
    """Main application entry point."""
    SessionManager.initialize()

    render_sidebar()
    render_main_content()


def form_id_for(schema_file: str) -> str:
    return Path(schema_file).stem.replace('_schema', '')


def model_name_for(form_id: str) -> str:
    return ''.join(part.title() for part in form_id.split('_')) + "Form"


def load_document(schema_file: str):
    """Load a schema document; falls back to the configured schema."""
    try:
        return read_schema_file(schema_file)
    except SchemaLoadError as e:
        logger.error(f"Error loading {schema_file}: {e}")
        st.warning(f"⚠️ {e.message}. Using the configured schema instead.")
        with st.expander("How to fix this"):
            for suggestion in e.recovery_suggestions:
                st.markdown(f"- {suggestion}")
        return get_configured_schema()


def render_sidebar():
    """Render the form selector and session tools."""
    with st.sidebar:
        st.header("📋 Forms")
        schema_files = list_available_schemas()
        if not schema_files:
            st.info("No schema files found in the schema directory")
            return

        form_ids = [form_id_for(name) for name in schema_files]
        active = SessionManager.get_active_form()
        index = form_ids.index(active) if active in form_ids else 0
        selected = st.radio("Form", schema_files, index=index, format_func=form_id_for)
        SessionManager.set_active_form(form_id_for(selected))
        st.session_state['active_schema_file'] = selected

        st.divider()
        ui_state = SessionManager.get_ui_state()
        SessionManager.set_ui_state('show_values', st.checkbox("Show raw values", value=ui_state.get('show_values', False)))
        SessionManager.set_ui_state('show_changes', st.checkbox("Show changes", value=ui_state.get('show_changes', True)))

        if st.button("🔄 Reset session"):
            SessionManager.reset_session()
            st.rerun()

        with st.expander("Session info"):
            st.json(SessionManager.get_session_info())


def render_main_content():
    """Render the active form."""
    schema_file = st.session_state.get('active_schema_file')
    if not schema_file:
        st.info("Select a form in the sidebar")
        return

    form_id = form_id_for(schema_file)
    document = load_document(schema_file)
    info = get_schema_info(document)

    st.title(info['title'])
    if info['description']:
        st.caption(info['description'])

    try:
        engine = SessionManager.get_or_create_engine(
            form_id, lambda: FormEngine.from_document(document, model_name=model_name_for(form_id))
        )
    except Exception as e:
        st.error(f"Error building form: {str(e)}")
        logger.error(f"Error building form '{form_id}': {e}", exc_info=True)
        return

    result = FormRenderer.render(engine, key=form_id)
    if result is not None:
        SessionManager.record_submission(form_id, result)

    render_status(form_id, engine)


def render_status(form_id: str, engine: FormEngine):
    """Render change tracking, raw values and the last submission."""
    ui_state = SessionManager.get_ui_state()

    if ui_state.get('show_changes', True):
        diff = engine.changes()
        summary = get_change_summary(diff)
        with st.expander(f"Changes ({summary['total']})"):
            st.markdown(format_diff_for_display(diff))

    if ui_state.get('show_values', False):
        with st.expander("Raw values"):
            st.json(engine.values())

    submission = SessionManager.get_submission(form_id)
    if submission:
        with st.expander(f"Last submission ({submission['submitted_at']})"):
            st.json(submission['value'])


if __name__ == "__main__":
    main()
