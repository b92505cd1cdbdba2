"""Default configuration parameters for the job execution engine."""

from dataclasses import dataclass


@dataclass(frozen=True)
class BillingParams:
    """Billing rules applied to worked time."""
    min_billable_hours: float = 2.0                  # Call-out minimum
    call_out_hours: float = 0.5                      # Fixed dispatch surcharge
    hourly_rate: float = 110.0
    currency: str = "AUD"

    # Half-hour rounding breakpoints on the fractional hour
    round_down_threshold: float = 0.1167             # 7 minutes
    round_half_threshold: float = 0.6167             # 37 minutes


@dataclass(frozen=True)
class StepParams:
    """Step catalog generation parameters."""
    include_return: bool = True                      # Final return-to-depot step


@dataclass(frozen=True)
class StorageParams:
    """Persistent state store parameters."""
    db_path: str = "job_states.db"
    retention_days: int = 30
    key_prefix: str = "job_state_"
    index_key: str = "job_states_index"
    timer_key_prefix: str = "job_timer_"
    timer_index_key: str = "job_timers_index"


@dataclass(frozen=True)
class TimerParams:
    """Live display parameters."""
    tick_interval_seconds: float = 1.0


@dataclass(frozen=True)
class EngineConfig:
    """Complete engine configuration."""
    billing: BillingParams
    steps: StepParams
    storage: StorageParams
    timer: TimerParams


def get_default_config() -> EngineConfig:
    """Get the default configuration instance."""
    return EngineConfig(
        billing=BillingParams(),
        steps=StepParams(),
        storage=StorageParams(),
        timer=TimerParams(),
    )
