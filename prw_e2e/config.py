"""Configuration management module for the remote-write end-to-end test pipeline."""

import os
import re
import yaml
from typing import List, Optional, Tuple
from dataclasses import dataclass
from pathlib import Path

from prw_e2e.data_models import DEFAULT_BOUNDS, DEFAULT_LABEL_CATALOG, Label, MetricFormat
from prw_e2e.exceptions import ConfigurationError


DEFAULT_QUERY_URL = "http://aps-workspaces-beta.us-west-2.amazonaws.com/workspaces/test-ws/api/v1/query?query="
DEFAULT_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_ENDPOINT_PATTERN = re.compile(r'^[A-Za-z0-9.\-]+:\d{1,5}$')


@dataclass
class GeneratorConfig:
    """Synthetic metric generation configuration."""
    base_metric_name: str = "metricName"
    item_count: int = 50
    value_bound: int = 5000
    seed: Optional[int] = None
    label_catalog: Tuple[Label, ...] = DEFAULT_LABEL_CATALOG
    bounds: Tuple[float, ...] = DEFAULT_BOUNDS


@dataclass
class CollectorConfig:
    """OTLP Collector export configuration."""
    endpoint: str = "localhost:55680"
    request_timeout: float = 30.0
    inter_send_delay: float = 1.0
    startup_wait: float = 10.0


@dataclass
class QueryConfig:
    """Query backend configuration."""
    query_url: str = DEFAULT_QUERY_URL
    timeout: float = 30.0
    sign_requests: bool = True
    aws_service: str = "aps"
    aws_region: str = "us-west-2"


@dataclass
class FilesConfig:
    """Data file locations."""
    input_path: str = "./test/data.txt"
    output_path: str = "./test/ans.txt"


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: str = "INFO"
    format: str = DEFAULT_LOG_FORMAT


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


def _parse_bounds(value) -> Tuple[float, ...]:
    if isinstance(value, str):
        value = [item for item in value.split(',') if item.strip()]
    return tuple(float(item) for item in value)


def _parse_label_catalog(entries) -> Tuple[Label, ...]:
    """Accept ``"key value"`` strings, ``[key, value]`` pairs or ``{key: value}`` maps."""
    if isinstance(entries, dict):
        return tuple((str(k), str(v)) for k, v in entries.items())

    catalog: List[Label] = []
    for entry in entries:
        if isinstance(entry, str):
            parts = entry.split()
        else:
            parts = [str(part) for part in entry]
        if len(parts) != 2:
            raise ValueError(f"label catalog entry must be a key/value pair: {entry!r}")
        catalog.append((parts[0], parts[1]))
    return tuple(catalog)


class Config:
    """Configuration manager for the remote-write end-to-end test pipeline."""

    def __init__(self, config_file: Optional[str] = None):
        """Initialize configuration manager.

        Args:
            config_file: Optional path to YAML configuration file
        """
        self.generator: GeneratorConfig = GeneratorConfig()
        self.collector: CollectorConfig = CollectorConfig()
        self.query: QueryConfig = QueryConfig()
        self.files: FilesConfig = FilesConfig()
        self.logging: LoggingConfig = LoggingConfig()

        # Load configuration from environment variables first
        self.load_from_env()

        # Override with config file if provided
        if config_file:
            self.load_from_file(config_file)
        elif os.path.exists("config.yaml"):
            self.load_from_file("config.yaml")

    def load_from_env(self) -> None:
        """Load configuration from environment variables."""
        try:
            seed = os.getenv("METRIC_SEED")
            bounds = os.getenv("METRIC_BOUNDS")
            self.generator = GeneratorConfig(
                base_metric_name=os.getenv("METRIC_BASE_NAME", "metricName"),
                item_count=int(os.getenv("METRIC_ITEM_COUNT", "50")),
                value_bound=int(os.getenv("METRIC_VALUE_BOUND", "5000")),
                seed=int(seed) if seed else None,
                bounds=_parse_bounds(bounds) if bounds else DEFAULT_BOUNDS
            )

            self.collector = CollectorConfig(
                endpoint=os.getenv("COLLECTOR_ENDPOINT", "localhost:55680"),
                request_timeout=float(os.getenv("REQUEST_TIMEOUT", "30")),
                inter_send_delay=float(os.getenv("INTER_SEND_DELAY", "1")),
                startup_wait=float(os.getenv("COLLECTOR_STARTUP_WAIT", "10"))
            )

            self.query = QueryConfig(
                query_url=os.getenv("QUERY_URL", DEFAULT_QUERY_URL),
                timeout=float(os.getenv("QUERY_TIMEOUT", "30")),
                sign_requests=_parse_bool(os.getenv("QUERY_SIGN_REQUESTS", "true")),
                aws_service=os.getenv("AWS_SERVICE", "aps"),
                aws_region=os.getenv("AWS_REGION", "us-west-2")
            )
        except ValueError as e:
            raise ConfigurationError(f"Invalid environment configuration: {e}")

        self.files = FilesConfig(
            input_path=os.getenv("INPUT_PATH", "./test/data.txt"),
            output_path=os.getenv("OUTPUT_PATH", "./test/ans.txt")
        )

        self.logging = LoggingConfig(
            level=os.getenv("LOG_LEVEL", "INFO"),
            format=os.getenv("LOG_FORMAT", DEFAULT_LOG_FORMAT)
        )

    def load_from_file(self, config_path: str) -> None:
        """Load configuration from YAML file.

        Args:
            config_path: Path to YAML configuration file

        Raises:
            ConfigurationError: If file cannot be read or parsed
        """
        config_file = Path(config_path)
        if not config_file.exists():
            raise ConfigurationError(f"Configuration file not found: {config_path}")

        try:
            with open(config_file, 'r', encoding='utf-8') as f:
                config_data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in configuration file {config_path}: {e}")
        except OSError as e:
            raise ConfigurationError(f"Error reading configuration file {config_path}: {e}")

        if not config_data:
            raise ConfigurationError(f"Configuration file is empty: {config_path}")

        try:
            if 'generator' in config_data:
                gen = config_data['generator']
                defaults = self.generator
                self.generator = GeneratorConfig(
                    base_metric_name=gen.get('base_metric_name', defaults.base_metric_name),
                    item_count=gen.get('item_count', defaults.item_count),
                    value_bound=gen.get('value_bound', defaults.value_bound),
                    seed=gen.get('seed', defaults.seed),
                    label_catalog=_parse_label_catalog(gen['label_catalog'])
                    if 'label_catalog' in gen else defaults.label_catalog,
                    bounds=_parse_bounds(gen['bounds']) if 'bounds' in gen else defaults.bounds
                )

            if 'collector' in config_data:
                col = config_data['collector']
                defaults = self.collector
                self.collector = CollectorConfig(
                    endpoint=col.get('endpoint', defaults.endpoint),
                    request_timeout=col.get('request_timeout', defaults.request_timeout),
                    inter_send_delay=col.get('inter_send_delay', defaults.inter_send_delay),
                    startup_wait=col.get('startup_wait', defaults.startup_wait)
                )

            if 'query' in config_data:
                qry = config_data['query']
                defaults = self.query
                self.query = QueryConfig(
                    query_url=qry.get('query_url', defaults.query_url),
                    timeout=qry.get('timeout', defaults.timeout),
                    sign_requests=qry.get('sign_requests', defaults.sign_requests),
                    aws_service=qry.get('aws_service', defaults.aws_service),
                    aws_region=qry.get('aws_region', defaults.aws_region)
                )

            if 'files' in config_data:
                files = config_data['files']
                self.files = FilesConfig(
                    input_path=files.get('input_path', self.files.input_path),
                    output_path=files.get('output_path', self.files.output_path)
                )

            if 'logging' in config_data:
                logging_config = config_data['logging']
                self.logging = LoggingConfig(
                    level=logging_config.get('level', self.logging.level),
                    format=logging_config.get('format', self.logging.format)
                )

        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise ConfigurationError(f"Invalid configuration structure in {config_path}: {e}")

    def metric_format(self) -> MetricFormat:
        """Build the immutable format description used by the core components.

        Returns:
            MetricFormat object
        """
        return MetricFormat(
            label_catalog=tuple(self.generator.label_catalog),
            bounds=tuple(self.generator.bounds)
        )

    def validate(self) -> bool:
        """Validate the complete configuration.

        Returns:
            True if configuration is valid

        Raises:
            ConfigurationError: If configuration is invalid
        """
        self._validate_generator_config()
        self._validate_collector_config()
        self._validate_query_config()
        self._validate_files_config()
        self._validate_logging_config()
        return True

    def _validate_generator_config(self) -> None:
        gen = self.generator

        if not isinstance(gen.base_metric_name, str) or not re.match(r'^[a-zA-Z_:][a-zA-Z0-9_:]*$', gen.base_metric_name):
            raise ConfigurationError("Generator base_metric_name must be a valid Prometheus metric name")

        if not isinstance(gen.item_count, int) or gen.item_count <= 0:
            raise ConfigurationError("Generator item_count must be a positive integer")

        if not isinstance(gen.value_bound, int) or gen.value_bound <= 0:
            raise ConfigurationError("Generator value_bound must be a positive integer")

        if gen.seed is not None and not isinstance(gen.seed, int):
            raise ConfigurationError("Generator seed must be an integer")

        if not gen.label_catalog:
            raise ConfigurationError("Generator label_catalog must hold at least one label pair")

        keys = [key for key, _ in gen.label_catalog]
        if len(set(keys)) != len(keys):
            raise ConfigurationError("Generator label_catalog keys must be distinct")

        for key, value in gen.label_catalog:
            if not key or not value or ' ' in key or ' ' in value or ',' in key or ',' in value:
                raise ConfigurationError(
                    f"Label pair {key!r}={value!r} must be non-empty without spaces or commas")

        if len(gen.bounds) < 1:
            raise ConfigurationError("Generator bounds must hold at least one value")

        if any(later <= earlier for earlier, later in zip(gen.bounds, gen.bounds[1:])):
            raise ConfigurationError("Generator bounds must be strictly increasing")

        # Bounds double as quantile levels
        if any(bound < 0 or bound > 1 for bound in gen.bounds):
            raise ConfigurationError("Generator bounds must lie in [0, 1] to serve as quantile levels")

    def _validate_collector_config(self) -> None:
        col = self.collector

        if not isinstance(col.endpoint, str) or not _ENDPOINT_PATTERN.match(col.endpoint):
            raise ConfigurationError("Collector endpoint must be in host:port form")

        if not isinstance(col.request_timeout, (int, float)) or col.request_timeout <= 0:
            raise ConfigurationError("Collector request_timeout must be a positive number")

        if not isinstance(col.inter_send_delay, (int, float)) or col.inter_send_delay < 0:
            raise ConfigurationError("Collector inter_send_delay must be a non-negative number")

        if not isinstance(col.startup_wait, (int, float)) or col.startup_wait < 0:
            raise ConfigurationError("Collector startup_wait must be a non-negative number")

    def _validate_query_config(self) -> None:
        qry = self.query

        if not qry.query_url or not isinstance(qry.query_url, str):
            raise ConfigurationError("Query query_url is required and must be a non-empty string")

        if not qry.query_url.startswith(('http://', 'https://')):
            raise ConfigurationError("Query query_url must start with http:// or https://")

        if not isinstance(qry.timeout, (int, float)) or qry.timeout <= 0:
            raise ConfigurationError("Query timeout must be a positive number")

        if qry.sign_requests and (not qry.aws_service or not qry.aws_region):
            raise ConfigurationError("Query aws_service and aws_region are required when signing requests")

    def _validate_files_config(self) -> None:
        if not self.files.input_path or not self.files.output_path:
            raise ConfigurationError("Files input_path and output_path must be non-empty")

        if Path(self.files.input_path) == Path(self.files.output_path):
            raise ConfigurationError("Files input_path and output_path must differ")

    def _validate_logging_config(self) -> None:
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']

        if not isinstance(self.logging.level, str):
            raise ConfigurationError("Logging level must be a string")

        if self.logging.level.upper() not in valid_levels:
            raise ConfigurationError(f"Logging level must be one of: {', '.join(valid_levels)}")

        if not isinstance(self.logging.format, str) or len(self.logging.format.strip()) == 0:
            raise ConfigurationError("Logging format must be a non-empty string")
