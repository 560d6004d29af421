"""Document store configuration from YAML file.

Loads from config/config.yaml with all settings in one place:
- Cosmos account connection (endpoint, key, database, container)
- Container provisioning and bulk insert settings
- Retry policy and diagnostics thresholds for document operations

Environment variables ARE supported using ${VAR_NAME} syntax in YAML files,
and COSMOS_ENDPOINT / COSMOS_KEY / COSMOS_DATABASE / COSMOS_CONTAINER
override the file when set.

The config object is built once at process start and passed explicitly to
every component that needs it. There is no module-level instance.
"""

import logging
import os
import re
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from core.errors.exceptions import ConfigurationError
from core.resilience.retry import RetryPolicy

logger = logging.getLogger(__name__)

# Value shipped in sample settings files; never a real key
PLACEHOLDER_KEY = "Super secret key"

# Default config file: config/config.yaml in src/ directory
DEFAULT_CONFIG_FILE = Path(__file__).parent / "config.yaml"

ENV_OVERRIDES = {
    "endpoint": "COSMOS_ENDPOINT",
    "key": "COSMOS_KEY",
    "database": "COSMOS_DATABASE",
    "container": "COSMOS_CONTAINER",
}


def load_yaml(path: Path) -> Dict[str, Any]:
    """Load YAML file and return dict."""
    if not path.exists():
        return {}
    with open(path, "r") as f:
        return yaml.safe_load(f) or {}


def _expand_env_vars(data: Any) -> Any:
    """Recursively expand ${VAR_NAME} and ${VAR_NAME:-default} environment variables in config data."""
    if isinstance(data, dict):
        return {key: _expand_env_vars(value) for key, value in data.items()}
    elif isinstance(data, list):
        return [_expand_env_vars(item) for item in data]
    elif isinstance(data, str):
        pattern = r"\$\{([^}:]+)(?::-(([^}]*))?)?\}"

        def replacer(match):
            var_name = match.group(1)
            default_value = match.group(2) if match.group(2) is not None else match.group(0)
            return os.getenv(var_name, default_value)

        return re.sub(pattern, replacer, data)
    else:
        return data


def _deep_merge(base: Dict[str, Any], overlay: Dict[str, Any]) -> Dict[str, Any]:
    result = base.copy()
    for key, value in overlay.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


@dataclass
class RetrySettings:
    """Retry policy parameters for point-read, query and upsert."""

    first_delay_seconds: float = 1.0
    max_attempts: int = 3
    max_delay_seconds: Optional[float] = None

    def __post_init__(self):
        """Ensure proper types from YAML/env vars."""
        self.first_delay_seconds = float(self.first_delay_seconds)
        self.max_attempts = int(self.max_attempts)
        if self.max_delay_seconds is not None:
            self.max_delay_seconds = float(self.max_delay_seconds)

    def to_policy(self) -> RetryPolicy:
        return RetryPolicy.from_seconds(
            self.first_delay_seconds, self.max_attempts, self.max_delay_seconds
        )


@dataclass
class DiagnosticsThresholds:
    """Client elapsed time above which a call's diagnostics are logged."""

    point_read_ms: float = 800.0
    query_ms: float = 4000.0
    upsert_ms: float = 1000.0

    def __post_init__(self):
        self.point_read_ms = float(self.point_read_ms)
        self.query_ms = float(self.query_ms)
        self.upsert_ms = float(self.upsert_ms)

    @property
    def point_read(self) -> timedelta:
        return timedelta(milliseconds=self.point_read_ms)

    @property
    def query(self) -> timedelta:
        return timedelta(milliseconds=self.query_ms)

    @property
    def upsert(self) -> timedelta:
        return timedelta(milliseconds=self.upsert_ms)


@dataclass
class StoreConfig:
    """Document store configuration.

    Configuration structure:
        cosmos:
          endpoint: https://<account>.documents.azure.com:443/
          key: ${COSMOS_KEY}
          use_default_credential: false
          database: Demo
          container: Items
          preferred_regions: [Australia East]
          container_settings:
            partition_key_path: /State
            throughput: 10000
          bulk:
            items_to_insert: 100000
            max_concurrency: 100      # null or 0 = unbounded
          retry:
            first_delay_seconds: 1.0
            max_attempts: 3
          diagnostics_thresholds_ms:
            point_read: 800
            query: 4000
            upsert: 1000
    """

    # =========================================================================
    # CONNECTION
    # =========================================================================
    endpoint: str = ""
    key: str = ""
    use_default_credential: bool = False
    database: str = ""
    container: str = ""
    preferred_regions: List[str] = field(default_factory=list)

    # =========================================================================
    # PROVISIONING AND BULK INSERT
    # =========================================================================
    partition_key_path: str = "/State"
    container_throughput: int = 10000
    items_to_insert: int = 100000
    bulk_max_concurrency: Optional[int] = 100

    # =========================================================================
    # DOCUMENT OPERATIONS
    # =========================================================================
    retry: RetrySettings = field(default_factory=RetrySettings)
    thresholds: DiagnosticsThresholds = field(default_factory=DiagnosticsThresholds)

    def __post_init__(self):
        self.container_throughput = int(self.container_throughput)
        self.items_to_insert = int(self.items_to_insert)
        if self.bulk_max_concurrency is not None:
            self.bulk_max_concurrency = int(self.bulk_max_concurrency) or None
        if not isinstance(self.use_default_credential, bool):
            self.use_default_credential = str(self.use_default_credential).lower() in (
                "1",
                "true",
                "yes",
            )

    def validate(self) -> None:
        """Raise ConfigurationError listing every problem found."""
        errors: List[str] = []

        if not self.endpoint:
            errors.append("cosmos.endpoint: please specify a valid endpoint")
        if not self.use_default_credential and (
            not self.key or self.key == PLACEHOLDER_KEY
        ):
            errors.append(
                "cosmos.key: please specify a valid authorization key "
                "(or set use_default_credential: true)"
            )
        if not self.database:
            errors.append("cosmos.database: please specify a valid database name")
        if not self.container:
            errors.append("cosmos.container: please specify a valid container name")
        if not self.partition_key_path.startswith("/"):
            errors.append(
                f"container.partition_key_path: must start with '/', got '{self.partition_key_path}'"
            )

        self._validate_min(errors, "container.throughput", self.container_throughput, 400)
        self._validate_min(errors, "bulk.items_to_insert", self.items_to_insert, 0)
        if self.bulk_max_concurrency is not None:
            self._validate_min(errors, "bulk.max_concurrency", self.bulk_max_concurrency, 1)
        self._validate_min(errors, "retry.max_attempts", self.retry.max_attempts, 0)
        self._validate_min(
            errors, "retry.first_delay_seconds", self.retry.first_delay_seconds, 0
        )
        for name in ("point_read_ms", "query_ms", "upsert_ms"):
            self._validate_min(
                errors,
                f"diagnostics_thresholds_ms.{name.removesuffix('_ms')}",
                getattr(self.thresholds, name),
                0,
            )

        if errors:
            raise ConfigurationError(errors)

    @staticmethod
    def _validate_min(errors: List[str], name: str, value: float, minimum: float) -> None:
        if value < minimum:
            errors.append(f"{name}: must be >= {minimum}, got {value}")


def load_config(
    config_path: Optional[Path] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> StoreConfig:
    """Load store configuration from config.yaml file.

    Path resolution: explicit argument, then DOCSTORE_CONFIG, then the
    bundled config/config.yaml.
    """
    if config_path is None:
        env_path = os.getenv("DOCSTORE_CONFIG")
        config_path = Path(env_path) if env_path else DEFAULT_CONFIG_FILE

    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path}\n" f"Expected file: config/config.yaml"
        )

    logger.info(f"Loading configuration from file: {config_path}")
    yaml_data = _expand_env_vars(load_yaml(config_path))

    if "cosmos" not in yaml_data:
        raise ValueError(
            "Invalid config file: missing 'cosmos:' section\n"
            "See config/config.yaml for correct structure"
        )

    cosmos = yaml_data["cosmos"]
    if overrides:
        logger.debug(f"Applying overrides: {list(overrides.keys())}")
        cosmos = _deep_merge(cosmos, overrides)

    for attr, env_var in ENV_OVERRIDES.items():
        value = os.getenv(env_var)
        if value:
            cosmos[attr] = value

    container_settings = cosmos.get("container_settings", {})
    bulk = cosmos.get("bulk", {})
    thresholds = cosmos.get("diagnostics_thresholds_ms", {})

    config = StoreConfig(
        endpoint=cosmos.get("endpoint", ""),
        key=cosmos.get("key", ""),
        use_default_credential=cosmos.get("use_default_credential", False),
        database=cosmos.get("database", ""),
        container=cosmos.get("container", ""),
        preferred_regions=list(cosmos.get("preferred_regions") or []),
        partition_key_path=container_settings.get("partition_key_path", "/State"),
        container_throughput=container_settings.get("throughput", 10000),
        items_to_insert=bulk.get("items_to_insert", 100000),
        bulk_max_concurrency=bulk.get("max_concurrency", 100),
        retry=RetrySettings(**cosmos.get("retry", {})),
        thresholds=DiagnosticsThresholds(
            point_read_ms=thresholds.get("point_read", 800),
            query_ms=thresholds.get("query", 4000),
            upsert_ms=thresholds.get("upsert", 1000),
        ),
    )

    logger.debug("Configuration loaded successfully:")
    logger.debug(f"  - Database: {config.database}")
    logger.debug(f"  - Container: {config.container}")
    logger.debug(f"  - Bulk concurrency: {config.bulk_max_concurrency or 'unbounded'}")

    config.validate()
    logger.debug("Configuration validation passed")

    return config
