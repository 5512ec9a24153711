"""
Loading of the library configuration. The yaml defaults are read once at
import, environment overrides are applied and the result is checked against
the validation schema before logging is configured from it.
"""

# Standard
import os

# First Party
import aconfig
import alog

# Local
from .validation import get_invalid_params

_CONFIG_DIR = os.path.dirname(__file__)


def _load_yaml_config(file_name: str, env_overrides: bool) -> aconfig.Config:
    return aconfig.Config.from_yaml(
        os.path.join(_CONFIG_DIR, file_name),
        override_env_vars=env_overrides,
    )


# Every key can be overridden by its upper-cased environment variable
library_config = _load_yaml_config("config.yaml", env_overrides=True)

# The schema itself is never overridden
validation_config = _load_yaml_config("config_validation.yaml", env_overrides=False)

_invalid_keys = get_invalid_params(library_config, validation_config)
assert not _invalid_keys, f"Invalid abstract_operator config keys: {_invalid_keys}"

# Logging until the command line reconfigures it
alog.configure(
    default_level=library_config.log_level,
    filters=library_config.log_filters,
    formatter="json" if library_config.log_json else "pretty",
    thread_id=library_config.log_thread_id,
)
