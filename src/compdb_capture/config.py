"""Configuration management for compdb-capture.

Supports loading configuration from:
1. Default values
2. Config file (--config PATH, or .compdb-capture.yaml in the working directory)
3. Environment variables

Configuration precedence: env vars > config file > defaults
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .classifier import (
    DEFAULT_COMPILERS,
    DEFAULT_NOISE_MARKERS,
    DEFAULT_SOURCE_EXTENSIONS,
    ExtractionPolicy,
    LineClassifier,
)
from .logging import get_logger

logger = get_logger("config")

# Default values
DEFAULT_OUTPUT_PATH = "compile_commands.json"
DEFAULT_CONFIG_NAME = ".compdb-capture.yaml"
MAX_CONFIG_SIZE = 1024 * 1024  # 1MB

EXTRACTION_POLICIES = [policy.value for policy in ExtractionPolicy]


class ConfigError(Exception):
    """Configuration error."""

    pass


@dataclass
class OutputConfig:
    """Where the compilation database is written."""

    path: str = DEFAULT_OUTPUT_PATH

    def validate(self) -> None:
        """Validate configuration.

        Raises ConfigError if validation fails.
        """
        if not self.path:
            raise ConfigError("output path must not be empty")

        if "\x00" in self.path:
            raise ConfigError(f"Null bytes in output path: {self.path!r}")


@dataclass
class ClassifierConfig:
    """Line classification settings."""

    compilers: list[str] = field(default_factory=lambda: list(DEFAULT_COMPILERS))
    source_extensions: list[str] = field(
        default_factory=lambda: list(DEFAULT_SOURCE_EXTENSIONS)
    )
    noise_markers: list[str] = field(default_factory=lambda: list(DEFAULT_NOISE_MARKERS))
    extraction: str = ExtractionPolicy.PATTERN.value

    def validate(self) -> None:
        """Validate configuration.

        Raises ConfigError if validation fails.
        """
        if not self.compilers:
            raise ConfigError("compilers must list at least one compiler")

        for name in self.compilers:
            if not name or any(c.isspace() or c == "/" for c in name):
                raise ConfigError(f"Invalid compiler name: {name!r}")

        if not self.source_extensions:
            raise ConfigError("source_extensions must list at least one extension")

        for ext in self.source_extensions:
            if not ext.startswith(".") or len(ext) < 2 or any(c.isspace() for c in ext):
                raise ConfigError(f"Invalid source extension: {ext!r}")

        if self.extraction not in EXTRACTION_POLICIES:
            raise ConfigError(
                f"extraction must be one of {EXTRACTION_POLICIES}, got {self.extraction!r}"
            )

        if not self.noise_markers:
            logger.debug("No noise markers configured")

    def build(self) -> LineClassifier:
        """Create a classifier from these settings."""
        return LineClassifier(
            compilers=tuple(self.compilers),
            source_extensions=tuple(self.source_extensions),
            noise_markers=tuple(self.noise_markers),
            extraction=ExtractionPolicy(self.extraction),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "compilers": list(self.compilers),
            "source_extensions": list(self.source_extensions),
            "noise_markers": list(self.noise_markers),
            "extraction": self.extraction,
        }


@dataclass
class Config:
    """Main configuration container."""

    output: OutputConfig = field(default_factory=OutputConfig)
    classifier: ClassifierConfig = field(default_factory=ClassifierConfig)

    def validate(self) -> None:
        """Validate all configuration."""
        self.output.validate()
        self.classifier.validate()


def load_config(config_path: Path | None = None, search_dir: Path | None = None) -> Config:
    """
    Load configuration from file and environment.

    Args:
        config_path: Explicit path to config file (optional)
        search_dir: Directory to look for .compdb-capture.yaml (default: cwd)

    Returns:
        Validated Config object
    """
    config = Config()

    if config_path is None:
        candidate = (search_dir or Path.cwd()) / DEFAULT_CONFIG_NAME
        if candidate.exists():
            config_path = candidate
    elif not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")

    if config_path:
        try:
            config = _load_config_file(config_path)
            logger.debug("Loaded config from %s", config_path)
        except (ConfigError, OSError, ValueError, yaml.YAMLError) as e:
            logger.warning("Failed to load config from %s: %s", config_path, e)
            config = Config()

    config = _apply_env_overrides(config)

    config.validate()

    return config


def _string_list(data: dict[str, Any], key: str, default: tuple[str, ...]) -> list[str]:
    value = data.get(key, list(default))
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ConfigError(f"'{key}' must be a list of strings")
    return value


def _load_config_file(config_path: Path) -> Config:
    """Load configuration from YAML file."""
    size = config_path.stat().st_size
    if size > MAX_CONFIG_SIZE:
        raise ConfigError(f"Config file too large: {size} > {MAX_CONFIG_SIZE}")

    with open(config_path, encoding="utf-8") as f:
        data = yaml.safe_load(f)

    if data is None:
        return Config()

    if not isinstance(data, dict):
        raise ConfigError("Config file must be a YAML mapping")

    allowed_keys = {"output", "classifier"}
    unknown_keys = set(data.keys()) - allowed_keys
    if unknown_keys:
        logger.warning("Unknown config keys ignored: %s", unknown_keys)

    output_data = data.get("output", {})
    if not isinstance(output_data, dict):
        raise ConfigError("'output' must be a mapping")

    output = OutputConfig(path=str(output_data.get("path", DEFAULT_OUTPUT_PATH)))

    classifier_data = data.get("classifier", {})
    if not isinstance(classifier_data, dict):
        raise ConfigError("'classifier' must be a mapping")

    classifier = ClassifierConfig(
        compilers=_string_list(classifier_data, "compilers", DEFAULT_COMPILERS),
        source_extensions=_string_list(
            classifier_data, "source_extensions", DEFAULT_SOURCE_EXTENSIONS
        ),
        noise_markers=_string_list(classifier_data, "noise_markers", DEFAULT_NOISE_MARKERS),
        extraction=str(classifier_data.get("extraction", ExtractionPolicy.PATTERN.value)),
    )

    return Config(output=output, classifier=classifier)


def _apply_env_overrides(config: Config) -> Config:
    """Apply environment variable overrides to config."""
    env_output = os.environ.get("COMPDB_CAPTURE_OUTPUT")
    if env_output:
        config.output.path = env_output
        logger.debug("Using output path from env: %s", env_output)

    env_extraction = os.environ.get("COMPDB_CAPTURE_EXTRACTION")
    if env_extraction:
        if env_extraction in EXTRACTION_POLICIES:
            config.classifier.extraction = env_extraction
        else:
            logger.warning("Invalid COMPDB_CAPTURE_EXTRACTION: %s", env_extraction)

    return config


def save_config(config: Config, config_path: Path) -> None:
    """
    Save configuration to YAML file.

    Args:
        config: Configuration to save
        config_path: Path to write config file
    """
    data = {
        "output": {"path": config.output.path},
        "classifier": config.classifier.to_dict(),
    }

    config_path.parent.mkdir(parents=True, exist_ok=True)

    with open(config_path, "w", encoding="utf-8") as f:
        yaml.dump(data, f, default_flow_style=False, sort_keys=False)

    logger.info("Saved config to %s", config_path)
