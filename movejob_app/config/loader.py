"""Configuration loader with 3-tier parameter precedence."""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import yaml

from ..errors import InvalidConfiguration
from .defaults import (
    BillingParams,
    EngineConfig,
    StepParams,
    StorageParams,
    TimerParams,
    get_default_config,
)
from .validation import ConfigValidator

CONFIG_FILE_NAME = "engine.yaml"


@dataclass(frozen=True)
class ConfigLoader:
    """Manages configuration loading with 3-tier precedence."""

    config_dir: Path
    defaults: EngineConfig

    @classmethod
    def create(cls, config_dir: Optional[Path] = None) -> "ConfigLoader":
        """Create a ConfigLoader instance."""
        if config_dir is None:
            config_dir = Path(__file__).parent.parent.parent / "config"

        return cls(
            config_dir=Path(config_dir),
            defaults=get_default_config(),
        )

    def load_business_config(self) -> dict[str, Any]:
        """Load business-wide overrides from engine.yaml."""
        config_file = self.config_dir / CONFIG_FILE_NAME

        if not config_file.exists():
            return {}

        with open(config_file) as f:
            business_config = yaml.safe_load(f)

        return business_config or {}

    def merge_config(
        self,
        job_overrides: Optional[dict[str, Any]] = None
    ) -> dict[str, Any]:
        """
        Merge configuration with 3-tier precedence.

        Priority order:
        1. Per-job overrides (highest priority)
        2. Business-wide overrides from engine.yaml
        3. Global defaults (lowest priority)
        """
        config = self._dataclass_to_dict(self.defaults)

        config = self._deep_merge(config, self.load_business_config())

        if job_overrides:
            config = self._deep_merge(config, job_overrides)

        return config

    def load(self, job_overrides: Optional[dict[str, Any]] = None) -> EngineConfig:
        """Merge, validate and build a typed EngineConfig."""
        merged = self.merge_config(job_overrides)

        errors = ConfigValidator.validate_config(merged)
        if errors:
            first = errors[0]
            raise InvalidConfiguration(
                "; ".join(f"{err.field}: {err.message} (got: {err.value!r})" for err in errors),
                field=first.field,
                value=first.value,
            )

        return build_engine_config(merged)

    def _dataclass_to_dict(self, obj: Any) -> dict[str, Any]:
        """Convert nested dataclasses to dictionary."""
        if hasattr(obj, '__dataclass_fields__'):
            result = {}
            for field_name in obj.__dataclass_fields__:
                value = getattr(obj, field_name)
                if hasattr(value, '__dataclass_fields__'):
                    result[field_name] = self._dataclass_to_dict(value)
                else:
                    result[field_name] = value
            return result
        return obj  # type: ignore[no-any-return]

    def _deep_merge(self, base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
        """Deep merge two dictionaries."""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result


def build_engine_config(config: dict[str, Any]) -> EngineConfig:
    """Build an EngineConfig from a merged dictionary, ignoring unknown keys."""
    def pick(params_cls: type, section: str) -> Any:
        values = config.get(section, {}) or {}
        known = {k: v for k, v in values.items() if k in params_cls.__dataclass_fields__}
        return params_cls(**known)

    return EngineConfig(
        billing=pick(BillingParams, "billing"),
        steps=pick(StepParams, "steps"),
        storage=pick(StorageParams, "storage"),
        timer=pick(TimerParams, "timer"),
    )
