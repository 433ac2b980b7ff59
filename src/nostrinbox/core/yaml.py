"""YAML configuration loading.

Uses ``yaml.safe_load`` so configuration files cannot instantiate
arbitrary Python objects. Consumed by
[BaseService.from_yaml()][nostrinbox.core.base_service.BaseService.from_yaml]
and the CLI.

Examples:
    ```python
    from nostrinbox.core.yaml import load_yaml

    config = load_yaml("config/messenger.yaml")
    ```
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from .exceptions import ConfigurationError


def load_yaml(config_path: str | Path) -> dict[str, Any]:
    """Load and parse a YAML configuration file.

    Args:
        config_path: Path to the YAML file (absolute or relative).

    Returns:
        Parsed configuration as a nested dictionary. Returns an empty dict
        if the file exists but contains no data.

    Raises:
        FileNotFoundError: If the file does not exist.
        yaml.YAMLError: If the file contains invalid YAML syntax.
        ConfigurationError: If the top level of the document is not a mapping.

    Warning:
        The returned dictionary is not schema-validated. Pass it to the
        service's Pydantic config model.
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with path.open(encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Config file {config_path} must contain a mapping, got {type(data).__name__}"
        )
    return data
