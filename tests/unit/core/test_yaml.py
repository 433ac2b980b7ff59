"""Unit tests for core.yaml module."""

from pathlib import Path

import pytest
import yaml

from nostrinbox.core.exceptions import ConfigurationError
from nostrinbox.core.yaml import load_yaml


class TestLoadYaml:
    """load_yaml() behavior."""

    def test_mapping(self, tmp_path: Path) -> None:
        path = tmp_path / "messenger.yaml"
        path.write_text("interval: 60\nrelays:\n  read: [wss://nos.lol]\n")

        assert load_yaml(path) == {"interval": 60, "relays": {"read": ["wss://nos.lol"]}}

    def test_empty_file(self, tmp_path: Path) -> None:
        path = tmp_path / "empty.yaml"
        path.write_text("")

        assert load_yaml(str(path)) == {}

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_yaml(tmp_path / "absent.yaml")

    def test_top_level_list(self, tmp_path: Path) -> None:
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")

        with pytest.raises(ConfigurationError, match="mapping"):
            load_yaml(path)

    def test_invalid_syntax(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.yaml"
        path.write_text("key: [unclosed\n")

        with pytest.raises(yaml.YAMLError):
            load_yaml(path)

    def test_no_python_objects(self, tmp_path: Path) -> None:
        path = tmp_path / "unsafe.yaml"
        path.write_text("x: !!python/object/apply:os.system ['true']\n")

        with pytest.raises(yaml.YAMLError):
            load_yaml(path)
