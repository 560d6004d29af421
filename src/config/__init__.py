"""Configuration loading for the document store client.

Configuration Structure
-----------------------

config/
    config.yaml          # Cosmos connection, bulk and retry settings

Main Functions
--------------

    - load_config(): Load and validate StoreConfig from YAML

Usage Examples
--------------

    >>> from config import load_config
    >>>
    >>> config = load_config()
    >>> writer = BulkWriter(store, container=config.container, ...)
"""

from config.config import (
    DEFAULT_CONFIG_FILE,
    PLACEHOLDER_KEY,
    DiagnosticsThresholds,
    RetrySettings,
    StoreConfig,
    load_config,
    load_yaml,
)

__all__ = [
    "DEFAULT_CONFIG_FILE",
    "PLACEHOLDER_KEY",
    "DiagnosticsThresholds",
    "RetrySettings",
    "StoreConfig",
    "load_config",
    "load_yaml",
]
