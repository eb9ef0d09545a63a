"""
Unit tests for configuration loader module.
"""

import logging
import tempfile
from pathlib import Path
from unittest.mock import patch

import pytest
import yaml

from form_engine import config_loader
from form_engine.config_loader import (
    deep_merge, get_default_config, load_config, reload_config, get_config_value,
    get_logging_level, configure_logging
)


class TestDeepMerge:
    """Test cases for deep_merge function."""

    def test_deep_merge_simple_dicts(self):
        base = {'a': 1, 'b': 2}
        update = {'b': 3, 'c': 4}

        result = deep_merge(base, update)

        assert result == {'a': 1, 'b': 3, 'c': 4}
        # Originals untouched
        assert base == {'a': 1, 'b': 2}
        assert update == {'b': 3, 'c': 4}

    def test_deep_merge_nested_dicts(self):
        base = {'form': {'layout': 'vertical', 'columns': 2}, 'schema': {'directory': 'schemas'}}
        update = {'form': {'columns': 3}, 'schema': {'primary_schema': 'audit_schema.yaml'}}

        result = deep_merge(base, update)

        assert result == {
            'form': {'layout': 'vertical', 'columns': 3},
            'schema': {'directory': 'schemas', 'primary_schema': 'audit_schema.yaml'},
        }

    def test_deep_merge_replaces_non_dict_values(self):
        result = deep_merge({'a': {'b': 1}}, {'a': 'flat'})

        assert result == {'a': 'flat'}


class TestLoadConfig:
    """Test cases for load_config with temporary files."""

    def setup_method(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.config_path = Path(self.temp_dir.name) / "config.yaml"

    def teardown_method(self):
        self.temp_dir.cleanup()
        config_loader._config_cache = None

    def write(self, content):
        self.config_path.write_text(content, encoding='utf-8')

    def test_missing_file_uses_defaults(self):
        assert load_config(self.config_path) == get_default_config()

    def test_partial_file_is_merged_over_defaults(self):
        self.write(yaml.dump({'form': {'layout': 'grid', 'submit_label': 'Save'}}))

        config = load_config(self.config_path)

        assert config['form']['layout'] == 'grid'
        assert config['form']['submit_label'] == 'Save'
        assert config['form']['cancel_label'] == 'Cancel'
        assert config['schema'] == get_default_config()['schema']

    def test_empty_file_uses_defaults(self):
        self.write("")

        assert load_config(self.config_path) == get_default_config()

    def test_non_mapping_uses_defaults(self):
        self.write("- just\n- a list\n")

        assert load_config(self.config_path) == get_default_config()

    def test_invalid_yaml_uses_defaults(self, caplog):
        self.write("form: [unclosed\n")

        assert load_config(self.config_path) == get_default_config()
        assert "YAML parsing error" in caplog.text

    def test_unreadable_file_uses_defaults(self):
        self.write("form: {}\n")

        with patch('builtins.open', side_effect=OSError("denied")):
            assert load_config(self.config_path) == get_default_config()

    def test_reload_config_replaces_cache(self):
        self.write(yaml.dump({'schema': {'directory': 'elsewhere'}}))

        reload_config(self.config_path)

        assert get_config_value('schema', 'directory') == 'elsewhere'
        assert get_config_value('schema', 'missing', 'fallback') == 'fallback'
        assert get_config_value('nosuchsection', 'key') is None


class TestLogging:

    @pytest.mark.parametrize("name,level", [
        ('DEBUG', logging.DEBUG),
        ('info', logging.INFO),
        ('Warning', logging.WARNING),
        ('ERROR', logging.ERROR),
        ('CRITICAL', logging.CRITICAL),
        ('chatty', logging.INFO),
    ])
    def test_get_logging_level(self, name, level):
        assert get_logging_level(name) == level

    def test_configure_logging_uses_section(self):
        config = deep_merge(get_default_config(), {'logging': {'level': 'DEBUG'}})

        with patch('logging.basicConfig') as basic_config:
            level = configure_logging(config)

        assert level == logging.DEBUG
        basic_config.assert_called_once_with(level=logging.DEBUG, format=config['logging']['format'])
