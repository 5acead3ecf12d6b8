"""Configuration loader and validation for statement reconciliation settings."""

from pathlib import Path
from typing import Any, Optional
import logging

import yaml
from pydantic import BaseModel, Field, ValidationError as PydanticValidationError

from .utils.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class InputConfig(BaseModel):
    """Configuration for reading raw statement files."""

    encoding: str = "utf-8-sig"
    fallback_encoding: str = "latin-1"
    sniff_lines: int = 5
    default_delimiter: str = ";"


class HeaderConfig(BaseModel):
    """Keywords used to find the header row and assign column roles."""

    scan_rows: int = 20
    date_keywords: list[str] = Field(default_factory=lambda: ["tanggal", "date", "tgl"])
    marker_keywords: list[str] = Field(
        default_factory=lambda: [
            "keterangan",
            "description",
            "desc",
            "mutasi",
            "amount",
            "saldo",
            "balance",
        ]
    )
    description_keywords: list[str] = Field(
        default_factory=lambda: ["keterangan", "description", "desc", "uraian", "narrative"]
    )
    reference_keywords: list[str] = Field(
        default_factory=lambda: ["cabang", "branch", "reference", "ref", "referensi"]
    )
    amount_keywords: list[str] = Field(default_factory=lambda: ["mutasi", "amount", "jumlah", "nominal"])
    debit_keywords: list[str] = Field(default_factory=lambda: ["debet", "debit", "db", "withdrawal"])
    credit_keywords: list[str] = Field(default_factory=lambda: ["kredit", "credit", "cr", "deposit"])
    balance_keywords: list[str] = Field(default_factory=lambda: ["saldo", "balance"])


class NormalizerConfig(BaseModel):
    """Configuration for turning data rows into statement lines."""

    footer_markers: list[str] = Field(
        default_factory=lambda: [
            "MUTASI DEBET",
            "MUTASI KREDIT",
            "MUTASI DB",
            "MUTASI CR",
            "SALDO AKHIR",
        ]
    )
    opening_markers: list[str] = Field(default_factory=lambda: ["SALDO AWAL"])
    default_currency: str = "IDR"


class MatchingSettings(BaseModel):
    """Auto-Matcher thresholds and scoring."""

    date_window_days: int = 7
    matched_threshold: int = 85
    suggested_threshold: int = 70
    strong_similarity: float = 0.85
    weak_similarity: float = 0.6
    run_after_ingest: bool = True


class IngestionConfig(BaseModel):
    """Configuration for the ingestion pipeline."""

    duplicate_policy: str = "skip"
    strict_totals: bool = False
    storage_root: Optional[str] = None
    public_base_url: Optional[str] = None
    max_workers: int = 2


class DatabaseConfig(BaseModel):
    """Configuration for the relational store."""

    url: str = "sqlite:///statement_recon.db"
    echo: bool = False


class LoggingConfig(BaseModel):
    """Configuration for logging."""

    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    file: Optional[str] = None


class ReconConfig(BaseModel):
    """Main configuration model for statement reconciliation."""

    input: InputConfig = Field(default_factory=InputConfig)
    header: HeaderConfig = Field(default_factory=HeaderConfig)
    normalizer: NormalizerConfig = Field(default_factory=NormalizerConfig)
    matching: MatchingSettings = Field(default_factory=MatchingSettings)
    ingestion: IngestionConfig = Field(default_factory=IngestionConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    config_file_path: Optional[str] = None


def get_default_config() -> dict[str, Any]:
    """Return the default configuration as a dictionary."""
    return ReconConfig().model_dump(exclude={"config_file_path"})


def load_config(config_path: Optional[Path] = None) -> ReconConfig:
    """
    Load configuration from a YAML file or use defaults.

    Args:
        config_path: Path to YAML configuration file (optional)

    Returns:
        ReconConfig object with loaded or default settings

    Raises:
        ConfigurationError: If the file cannot be read or fails validation
    """
    config_dict = get_default_config()

    if config_path and config_path.exists():
        logger.info(f"Loading configuration from: {config_path}")
        try:
            with open(config_path, "r") as f:
                user_config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {config_path}: {e}") from e

        if not isinstance(user_config, dict):
            raise ConfigurationError(f"Configuration root in {config_path} must be a mapping")

        # Deep merge user config into defaults
        config_dict = _deep_merge(config_dict, user_config)
        config_dict["config_file_path"] = str(config_path)
    else:
        logger.info("Using default configuration")

    try:
        config = ReconConfig(**config_dict)
    except PydanticValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e

    _validate_thresholds(config)
    return config


def _validate_thresholds(config: ReconConfig) -> None:
    """Reject threshold settings that would make the confidence tiers overlap."""
    matching = config.matching
    if not 0 < matching.suggested_threshold <= matching.matched_threshold <= 100:
        raise ConfigurationError(
            "matching thresholds must satisfy 0 < suggested_threshold <= matched_threshold <= 100"
        )
    if matching.date_window_days < 0:
        raise ConfigurationError("matching.date_window_days cannot be negative")
    if config.ingestion.duplicate_policy not in ("skip", "insert"):
        raise ConfigurationError("ingestion.duplicate_policy must be 'skip' or 'insert'")


def _deep_merge(base: dict, override: dict) -> dict:
    """
    Deep merge two dictionaries.

    Args:
        base: Base dictionary
        override: Dictionary to merge on top

    Returns:
        Merged dictionary
    """
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def generate_default_config(output_path: Path) -> None:
    """
    Generate a default configuration file.

    Args:
        output_path: Path to write the configuration file
    """
    config_dict = get_default_config()

    yaml_content = """# Bank statement reconciliation configuration
# Generated configuration file - customize as needed

"""
    yaml_content += yaml.dump(config_dict, default_flow_style=False, sort_keys=False)

    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w") as f:
        f.write(yaml_content)

    logger.info(f"Generated configuration file: {output_path}")
