"""Configuration validation utilities."""

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class ValidationError:
    """Represents a configuration validation error."""
    field: str
    message: str
    value: Any


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class ConfigValidator:
    """Validates configuration parameters."""

    @staticmethod
    def validate_billing_params(params: dict[str, Any]) -> list[ValidationError]:
        """Validate billing parameters."""
        errors = []

        for field in ("min_billable_hours", "call_out_hours"):
            if field in params:
                value = params[field]
                if not _is_number(value) or value < 0:
                    errors.append(ValidationError(
                        field=field,
                        message="Must be a non-negative number",
                        value=value
                    ))

        if "hourly_rate" in params:
            value = params["hourly_rate"]
            if not _is_number(value) or value <= 0:
                errors.append(ValidationError(
                    field="hourly_rate",
                    message="Must be a positive number",
                    value=value
                ))

        if "currency" in params:
            value = params["currency"]
            if not isinstance(value, str) or len(value) != 3:
                errors.append(ValidationError(
                    field="currency",
                    message="Must be a 3-letter currency code",
                    value=value
                ))

        for field in ("round_down_threshold", "round_half_threshold"):
            if field in params:
                value = params[field]
                if not _is_number(value) or value <= 0 or value >= 1:
                    errors.append(ValidationError(
                        field=field,
                        message="Must be a number strictly between 0 and 1",
                        value=value
                    ))

        down = params.get("round_down_threshold")
        half = params.get("round_half_threshold")
        if _is_number(down) and _is_number(half) and down >= half:
            errors.append(ValidationError(
                field="round_half_threshold",
                message="Must be greater than round_down_threshold",
                value=half
            ))

        return errors

    @staticmethod
    def validate_step_params(params: dict[str, Any]) -> list[ValidationError]:
        """Validate step catalog parameters."""
        errors = []

        if "include_return" in params and not isinstance(params["include_return"], bool):
            errors.append(ValidationError(
                field="include_return",
                message="Must be a boolean",
                value=params["include_return"]
            ))

        return errors

    @staticmethod
    def validate_storage_params(params: dict[str, Any]) -> list[ValidationError]:
        """Validate storage parameters."""
        errors = []

        if "retention_days" in params:
            value = params["retention_days"]
            if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
                errors.append(ValidationError(
                    field="retention_days",
                    message="Must be a positive integer",
                    value=value
                ))

        for field in ("db_path", "key_prefix", "index_key", "timer_key_prefix", "timer_index_key"):
            if field in params:
                value = params[field]
                if not isinstance(value, str) or not value:
                    errors.append(ValidationError(
                        field=field,
                        message="Must be a non-empty string",
                        value=value
                    ))

        return errors

    @staticmethod
    def validate_timer_params(params: dict[str, Any]) -> list[ValidationError]:
        """Validate display tick parameters."""
        errors = []

        if "tick_interval_seconds" in params:
            value = params["tick_interval_seconds"]
            if not _is_number(value) or value <= 0:
                errors.append(ValidationError(
                    field="tick_interval_seconds",
                    message="Must be a positive number",
                    value=value
                ))

        return errors

    @staticmethod
    def validate_config(config: dict[str, Any]) -> list[ValidationError]:
        """Validate complete configuration."""
        errors = []

        if "billing" in config:
            errors.extend(ConfigValidator.validate_billing_params(config["billing"]))

        if "steps" in config:
            errors.extend(ConfigValidator.validate_step_params(config["steps"]))

        if "storage" in config:
            errors.extend(ConfigValidator.validate_storage_params(config["storage"]))

        if "timer" in config:
            errors.extend(ConfigValidator.validate_timer_params(config["timer"]))

        return errors
