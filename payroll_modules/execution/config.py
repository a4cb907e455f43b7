"""
Payroll Execution Configuration Schema.

Defines the structure and sensible defaults for payroll execution settings.
Actual values are loaded from a YAML file or a dict at runtime.
"""

from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Any, Self

import yaml

from payroll_kernel.db.types import validate_currency
from payroll_kernel.logging_config import get_logger

logger = get_logger("modules.payroll.execution.config")

_DECIMAL_FIELDS = ("minimum_wage", "spike_threshold")


@dataclass
class PayrollExecutionConfig:
    """
    Configuration schema for payroll execution.

    Override at instantiation with company-specific values:

        config = PayrollExecutionConfig(
            minimum_wage=Decimal("7000"),
            **load_config("payroll_execution.yaml").__dict__,
        )
    """

    # Penalties are capped so net pay never drops below this
    minimum_wage: Decimal = Decimal("6000")

    # Anomaly detection: flag a net pay increase above this fraction
    spike_threshold: Decimal = Decimal("0.5")

    # Bank transfer file
    currency: str = "EGP"
    company_name: str = "HR Consultant Company"
    compress_pdf: bool = True

    # Anomaly resolution
    default_resolution_note: str = "Resolved without notes"

    # Seconds to wait for another calculation of the same run
    calculation_lock_timeout_seconds: float = 5.0

    def __post_init__(self):
        if self.minimum_wage < 0:
            raise ValueError("minimum_wage cannot be negative")
        if self.spike_threshold <= 0:
            raise ValueError("spike_threshold must be positive")
        self.currency = validate_currency(self.currency)
        if not self.company_name or not self.company_name.strip():
            raise ValueError("company_name is required")
        if not self.default_resolution_note:
            raise ValueError("default_resolution_note is required")
        if self.calculation_lock_timeout_seconds <= 0:
            raise ValueError("calculation_lock_timeout_seconds must be positive")

        logger.info(
            "payroll_execution_config_initialized",
            extra={
                "minimum_wage": str(self.minimum_wage),
                "spike_threshold": str(self.spike_threshold),
                "currency": self.currency,
                "calculation_lock_timeout_seconds": self.calculation_lock_timeout_seconds,
            },
        )

    @classmethod
    def with_defaults(cls) -> Self:
        """Create config with the defaults above."""
        logger.info("payroll_execution_config_created_with_defaults")
        return cls()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        """Create config from dictionary (e.g., loaded from a YAML file)."""
        logger.info(
            "payroll_execution_config_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )
        data = dict(data)
        for key in _DECIMAL_FIELDS:
            if key in data and not isinstance(data[key], Decimal):
                data[key] = Decimal(str(data[key]))
        return cls(**data)


def load_config(path: str | Path) -> PayrollExecutionConfig:
    """
    Load payroll execution settings from a YAML file.

    The file holds a flat mapping of ``PayrollExecutionConfig`` fields,
    optionally nested under a ``payroll_execution`` key.  Missing keys keep
    their defaults.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if a value fails validation.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if "payroll_execution" in data:
        data = data["payroll_execution"] or {}
    logger.info("payroll_execution_config_file_loaded", extra={"path": str(path)})
    return PayrollExecutionConfig.from_dict(data)
