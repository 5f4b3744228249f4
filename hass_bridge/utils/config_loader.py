import logging
import os
import re
from pathlib import Path
from typing import Any, Dict

import yaml

logger = logging.getLogger(__name__)

# camelCase option names used by the adapter admin UI
CAMEL_CASE_OPTIONS = {
    "visUrl": "vis_url",
    "authRequired": "auth_required",
    "mdnsEnabled": "mdns_enabled",
    "serviceName": "service_name",
    "logLevel": "log_level",
    "serviceDir": "service_dir",
    "statusFile": "status_file",
}

_ENV_PATTERN = re.compile(r"\$\{([^}]+)\}")


def substitute_env_vars(config: Any) -> Any:
    """Recursively substitute environment variables in configuration.

    Supports bash-style default values: ${VAR_NAME:-default_value}

    Args:
        config: Configuration value (dict, list, or str)

    Returns:
        Configuration with environment variables substituted
    """
    if isinstance(config, dict):
        return {k: substitute_env_vars(v) for k, v in config.items()}
    if isinstance(config, list):
        return [substitute_env_vars(item) for item in config]
    if not isinstance(config, str) or "${" not in config:
        return config

    def replace_var(match):
        var_expr = match.group(1)
        if ":-" in var_expr:
            var_name, default_value = var_expr.split(":-", 1)
            return os.environ.get(var_name.strip(), default_value.strip())
        var_name = var_expr.strip()
        if var_name in os.environ:
            return os.environ[var_name]
        logger.warning(f"Environment variable not found: {var_name}")
        return match.group(0)

    return _ENV_PATTERN.sub(replace_var, config)


def normalize_option_names(options: Dict[str, Any]) -> Dict[str, Any]:
    """Map camelCase option names onto the snake_case settings fields."""
    return {CAMEL_CASE_OPTIONS.get(key, key): value for key, value in options.items()}


def load_yaml_config(path: str | Path) -> Dict[str, Any]:
    """Load bridge options from a YAML file.

    A missing file is an error since the caller asked for it explicitly.
    Unparseable YAML is logged and treated as an empty config.

    Args:
        path: Location of the YAML file

    Returns:
        Dict of settings field names to values
    """
    config_path = Path(path)
    logger.info(f"Loading bridge configuration from: {config_path}")

    with open(config_path, "r") as f:
        try:
            raw = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            logger.error(f"Failed to parse bridge configuration YAML: {e}")
            return {}

    if not isinstance(raw, dict):
        logger.error(f"Bridge configuration must be a mapping, got {type(raw).__name__}")
        return {}

    options = normalize_option_names(substitute_env_vars(raw))
    logger.info(f"Loaded configuration options: {sorted(options)}")
    return options
