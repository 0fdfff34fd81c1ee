"""YAML configuration loader for veily-guard.

Example YAML configuration:

    guard:
      api_key: vk_live_xxx
      base_url: https://api.veily.dev
      timeout_ms: 3000
      private_key_file: keys/inbound.pem
      headers:
        x-team: payments
"""

from pathlib import Path
from typing import Any, Optional

import yaml

from veily_guard.config.settings import GuardConfig, ensure_config, read_key_file
from veily_guard.errors import ConfigurationError


def load_config_from_yaml(path: Path | str, **overrides: Any) -> GuardConfig:
    """Load a GuardConfig from the ``guard`` section of a YAML file.

    ``private_key_file`` is resolved relative to the YAML file and its
    contents become ``private_key``.

    Args:
        path: Path to the YAML configuration file.
        **overrides: Values that take precedence over the file.

    Returns:
        Validated GuardConfig.

    Raises:
        FileNotFoundError: If the configuration or key file doesn't exist.
        ConfigurationError: If the YAML structure or values are invalid.
        yaml.YAMLError: If the YAML is malformed.

    Example:
        >>> cfg = load_config_from_yaml("config/guard.yaml")
        >>> cfg.encryption_enabled
        True
    """
    path = Path(path)

    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)

    if data is None:
        data = {}

    if not isinstance(data, dict):
        raise ConfigurationError(f"Invalid YAML structure: expected dict, got {type(data).__name__}")

    section = data.get("guard", {})
    if section is None:
        section = {}
    if not isinstance(section, dict):
        raise ConfigurationError(
            f"Invalid guard section: expected dict, got {type(section).__name__}"
        )

    values = dict(section)
    key_file: Optional[str] = values.pop("private_key_file", None)
    if key_file is not None:
        if "private_key" in values:
            raise ConfigurationError("Set either private_key or private_key_file, not both")
        key_path = Path(key_file)
        if not key_path.is_absolute():
            key_path = path.parent / key_path
        values["private_key"] = read_key_file(key_path)

    values.update(overrides)
    return ensure_config(values)
