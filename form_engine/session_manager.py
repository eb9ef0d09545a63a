"""
Session state management for the dynamic forms app.
Keeps one FormEngine per form id in Streamlit session state, plus the
active form and the last submitted value of each form.
"""

import streamlit as st
from typing import Dict, Any, Optional, Callable, List
from datetime import datetime
import logging

from .form_engine import FormEngine

logger = logging.getLogger(__name__)

DEFAULT_FORM = "supplier"


class SessionManager:
    """Manages Streamlit session state for the dynamic forms app."""

    @staticmethod
    def initialize():
        """Initialize all session state variables with default values."""
        defaults = {
            'forms': {},
            'submissions': {},
            'active_form': DEFAULT_FORM,
            'last_activity': datetime.now(),
            'session_id': None,
            'ui_state': {
                'show_values': False,
                'show_changes': True
            }
        }

        for key, default_value in defaults.items():
            if key not in st.session_state:
                st.session_state[key] = default_value

        if not st.session_state['session_id']:
            st.session_state['session_id'] = f"session_{datetime.now().strftime('%Y%m%d_%H%M%S')}"

        logger.info(f"Session initialized: {st.session_state['session_id']}")

    @staticmethod
    def _forms() -> Dict[str, FormEngine]:
        if 'forms' not in st.session_state:
            st.session_state['forms'] = {}
        return st.session_state['forms']

    @staticmethod
    def get_engine(form_id: str) -> Optional[FormEngine]:
        """Get the engine held for a form id, if any."""
        return SessionManager._forms().get(form_id)

    @staticmethod
    def set_engine(form_id: str, engine: FormEngine):
        """Store the engine for a form id, replacing any previous one."""
        forms = SessionManager._forms()
        if form_id in forms:
            logger.info(f"Replacing engine for form '{form_id}'")
        forms[form_id] = engine
        SessionManager.update_activity()

    @staticmethod
    def get_or_create_engine(form_id: str, factory: Callable[[], FormEngine]) -> FormEngine:
        """
        Return the session's engine for `form_id`, building it on first use.

        Args:
            form_id: Form identifier
            factory: Builds a new engine; only called when none exists

        Returns:
            The engine that lives for the rest of the session
        """
        engine = SessionManager.get_engine(form_id)
        if engine is None:
            engine = factory()
            SessionManager.set_engine(form_id, engine)
            logger.info(f"Created engine for form '{form_id}'")
        return engine

    @staticmethod
    def drop_engine(form_id: str) -> bool:
        """Tear down the engine for a form id. Returns False if none existed."""
        forms = SessionManager._forms()
        if form_id not in forms:
            return False
        del forms[form_id]
        logger.info(f"Dropped engine for form '{form_id}'")
        return True

    @staticmethod
    def list_forms() -> List[str]:
        return list(SessionManager._forms().keys())

    @staticmethod
    def get_active_form() -> str:
        """Get the active form id."""
        return st.session_state.get('active_form', DEFAULT_FORM)

    @staticmethod
    def set_active_form(form_id: str):
        """Set the active form id."""
        old_form = st.session_state.get('active_form')
        if old_form != form_id:
            logger.info(f"Form switch: {old_form} -> {form_id}")
            st.session_state['active_form'] = form_id
            SessionManager.update_activity()

    @staticmethod
    def record_submission(form_id: str, value: Dict[str, Any]):
        """Keep the last submitted (normalized) value of a form."""
        if 'submissions' not in st.session_state:
            st.session_state['submissions'] = {}
        st.session_state['submissions'][form_id] = {
            'value': value,
            'submitted_at': datetime.now().isoformat()
        }
        SessionManager.update_activity()

    @staticmethod
    def get_submission(form_id: str) -> Optional[Dict[str, Any]]:
        """Last submission record ({'value', 'submitted_at'}) for a form."""
        return st.session_state.get('submissions', {}).get(form_id)

    @staticmethod
    def get_ui_state() -> Dict[str, Any]:
        """Get UI state preferences."""
        return st.session_state.get('ui_state', {})

    @staticmethod
    def set_ui_state(key: str, value: Any):
        """Set a UI state preference."""
        if 'ui_state' not in st.session_state:
            st.session_state['ui_state'] = {}

        st.session_state['ui_state'][key] = value

    @staticmethod
    def update_activity():
        """Update last activity timestamp."""
        st.session_state['last_activity'] = datetime.now()

    @staticmethod
    def get_session_id() -> str:
        """Get the session ID."""
        return st.session_state.get('session_id') or 'unknown'

    @staticmethod
    def reset_session():
        """Reset the entire session state, keeping UI preferences."""
        logger.info(f"Resetting session: {SessionManager.get_session_id()}")

        ui_state = SessionManager.get_ui_state()

        for key in list(st.session_state.keys()):
            del st.session_state[key]

        SessionManager.initialize()
        st.session_state['ui_state'] = ui_state

    @staticmethod
    def get_session_info() -> Dict[str, Any]:
        """Get session information for debugging."""
        forms = SessionManager._forms()
        return {
            'session_id': SessionManager.get_session_id(),
            'active_form': SessionManager.get_active_form(),
            'forms': list(forms.keys()),
            'dirty_forms': [form_id for form_id, engine in forms.items() if engine.has_changes()],
            'submitted_forms': list(st.session_state.get('submissions', {}).keys()),
        }
