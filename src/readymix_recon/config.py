"""Configuration loader and validation for reconciliation settings."""

from pathlib import Path
from typing import Any, Literal, Optional
import logging

import yaml
from pydantic import BaseModel, Field, ValidationError, model_validator

from .utils.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class KindScoring(BaseModel):
    """Factor weights and tolerances for one receivable pool."""

    amount_weight: float = Field(ge=0.0, le=1.0)
    close_amount_percent: float = 1.0
    close_amount_multiplier: float = 0.875
    similar_amount_percent: float = 5.0
    similar_amount_multiplier: float = 0.5

    client_weight: float = Field(ge=0.0, le=1.0)
    # Name tokens shorter than this are ignored ("de", "et", "sa")
    min_token_length: int = 3

    reference_weight: float = Field(default=0.15, ge=0.0, le=1.0)

    date_weight: float = Field(default=0.10, ge=0.0, le=1.0)
    date_full_tolerance_days: int = 7
    date_half_tolerance_days: Optional[int] = None

    @model_validator(mode="after")
    def _check_weights(self) -> "KindScoring":
        total = (
            self.amount_weight
            + self.client_weight
            + self.reference_weight
            + self.date_weight
        )
        if total > 1.0 + 1e-9:
            raise ValueError(f"factor weights sum to {total:.2f}, must not exceed 1.0")
        if self.close_amount_percent > self.similar_amount_percent:
            raise ValueError("close_amount_percent must not exceed similar_amount_percent")
        return self


class MatchingConfig(BaseModel):
    """Configuration for the matching engine."""

    inclusion_threshold: float = Field(default=0.20, ge=0.0, le=1.0)
    max_suggestions: int = Field(default=5, ge=1)
    invoice: KindScoring = Field(
        default_factory=lambda: KindScoring(
            amount_weight=0.40,
            client_weight=0.35,
            date_full_tolerance_days=7,
            date_half_tolerance_days=30,
        )
    )
    delivery: KindScoring = Field(
        default_factory=lambda: KindScoring(
            amount_weight=0.35,
            client_weight=0.30,
            date_full_tolerance_days=14,
        )
    )


class AutoReconcileConfig(BaseModel):
    """Configuration for the automatic reconciliation pass."""

    min_score: float = Field(default=0.80, ge=0.0, le=1.0)
    system_identity: str = "system"


class LedgerConfig(BaseModel):
    """Configuration for receivables and ingestion."""

    delivery_tax_rate: float = Field(default=0.20, ge=0.0)
    default_currency: str = "MAD"
    ignore_note: str = "Manually ignored"


class StorageConfig(BaseModel):
    """Configuration for the transaction store backend."""

    backend: Literal["memory", "sql"] = "sql"
    database_url: str = "sqlite:///reconciliation.db"
    echo: bool = False


class ExcelOutputConfig(BaseModel):
    """Configuration for Excel output."""

    filename_template: str = "reconciliation_audit_{date}_{time}.xlsx"


class SheetConfig(BaseModel):
    """Configuration for a report sheet."""

    enabled: bool = True
    name: str


class SheetsConfig(BaseModel):
    """Configuration for all report sheets."""

    summary: SheetConfig = Field(default_factory=lambda: SheetConfig(name="Summary"))
    reconciliations: SheetConfig = Field(
        default_factory=lambda: SheetConfig(name="Reconciliations")
    )
    variances: SheetConfig = Field(default_factory=lambda: SheetConfig(name="Variances"))
    unmatched: SheetConfig = Field(default_factory=lambda: SheetConfig(name="Unmatched"))


class OutputConfig(BaseModel):
    """Configuration for output."""

    excel: ExcelOutputConfig = Field(default_factory=ExcelOutputConfig)
    sheets: SheetsConfig = Field(default_factory=SheetsConfig)


class LoggingConfig(BaseModel):
    """Configuration for logging."""

    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    file: Optional[str] = None


class ReconConfig(BaseModel):
    """Main configuration model for reconciliation."""

    matching: MatchingConfig = Field(default_factory=MatchingConfig)
    auto_reconcile: AutoReconcileConfig = Field(default_factory=AutoReconcileConfig)
    ledger: LedgerConfig = Field(default_factory=LedgerConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    config_file_path: Optional[str] = None


def get_default_config() -> dict[str, Any]:
    """Return the default configuration as a dictionary."""
    return {
        "matching": {
            "inclusion_threshold": 0.20,
            "max_suggestions": 5,
            "invoice": {
                "amount_weight": 0.40,
                "close_amount_percent": 1.0,
                "close_amount_multiplier": 0.875,
                "similar_amount_percent": 5.0,
                "similar_amount_multiplier": 0.5,
                "client_weight": 0.35,
                "min_token_length": 3,
                "reference_weight": 0.15,
                "date_weight": 0.10,
                "date_full_tolerance_days": 7,
                "date_half_tolerance_days": 30,
            },
            "delivery": {
                "amount_weight": 0.35,
                "close_amount_percent": 1.0,
                "close_amount_multiplier": 0.875,
                "similar_amount_percent": 5.0,
                "similar_amount_multiplier": 0.5,
                "client_weight": 0.30,
                "min_token_length": 3,
                "reference_weight": 0.15,
                "date_weight": 0.10,
                "date_full_tolerance_days": 14,
                "date_half_tolerance_days": None,
            },
        },
        "auto_reconcile": {
            "min_score": 0.80,
            "system_identity": "system",
        },
        "ledger": {
            "delivery_tax_rate": 0.20,
            "default_currency": "MAD",
            "ignore_note": "Manually ignored",
        },
        "storage": {
            "backend": "sql",
            "database_url": "sqlite:///reconciliation.db",
            "echo": False,
        },
        "output": {
            "excel": {
                "filename_template": "reconciliation_audit_{date}_{time}.xlsx",
            },
            "sheets": {
                "summary": {"enabled": True, "name": "Summary"},
                "reconciliations": {"enabled": True, "name": "Reconciliations"},
                "variances": {"enabled": True, "name": "Variances"},
                "unmatched": {"enabled": True, "name": "Unmatched"},
            },
        },
        "logging": {
            "level": "INFO",
            "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            "file": None,
        },
    }


def load_config(config_path: Optional[Path] = None) -> ReconConfig:
    """
    Load configuration from a YAML file or use defaults.

    Args:
        config_path: Path to YAML configuration file (optional)

    Returns:
        ReconConfig object with loaded or default settings

    Raises:
        ConfigurationError: If the file is unreadable or values are invalid
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
            raise ConfigurationError(f"Top level of {config_path} must be a mapping")

        config_dict = _deep_merge(config_dict, user_config)
        config_dict["config_file_path"] = str(config_path)
    else:
        logger.info("Using default configuration")

    try:
        return ReconConfig(**config_dict)
    except ValidationError as e:
        raise ConfigurationError(str(e)) from e


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

    yaml_content = """# Ready-mix bank reconciliation configuration
# Generated configuration file - customize as needed

"""
    yaml_content += yaml.dump(config_dict, default_flow_style=False, sort_keys=False)

    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w") as f:
        f.write(yaml_content)

    logger.info(f"Generated configuration file: {output_path}")
