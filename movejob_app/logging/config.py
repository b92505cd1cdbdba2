"""
Centralized logging configuration for the job execution engine.

This module provides standardized logging configuration using structlog
for all components. The timer, progress and billing subsystems each get a
bound logger so their audit events can be filtered downstream.
"""
import logging
import sys
from typing import Any, Optional

import structlog
from structlog.types import FilteringBoundLogger


def configure_logging(
    level: str = "INFO",
    format_json: bool = False,
    include_timestamp: bool = True,
    include_caller: bool = False,
    extra_processors: Optional[list] = None
) -> None:
    """
    Route engine events through structlog onto stdout.

    Shipped deployments use the JSON renderer so the timer and billing
    audit events can be collected downstream. The console renderer is for
    local runs and only colours a terminal. Timestamps are UTC ISO-8601,
    matching format_epoch_ms.

    Args:
        level: Standard level name, e.g. "INFO" or "DEBUG"
        format_json: Render one JSON object per event
        include_timestamp: Stamp each event with the UTC time
        include_caller: Add the emitting file and line
        extra_processors: Processors run before the renderer
    """
    log_level = getattr(logging, level.upper())

    logging.basicConfig(
        level=log_level,
        stream=sys.stdout,
        format="%(message)s"  # structlog will handle formatting
    )

    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if include_timestamp:
        processors.append(structlog.processors.TimeStamper(fmt="iso", utc=True))

    if include_caller:
        processors.append(structlog.processors.CallsiteParameterAdder(
            parameters=[structlog.processors.CallsiteParameter.FILENAME,
                        structlog.processors.CallsiteParameter.LINENO]
        ))

    if extra_processors:
        processors.extend(extra_processors)

    if format_json:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> FilteringBoundLogger:
    """Module logger; callers bind job_id per session or machine."""
    return structlog.get_logger(name)


def get_timer_logger(name: str) -> FilteringBoundLogger:
    """Get a logger bound to the job timer subsystem."""
    return get_logger(name).bind(
        subsystem="job_timer",
        audit_trail=True
    )


def get_progress_logger(name: str) -> FilteringBoundLogger:
    """Get a logger bound to the job progress subsystem."""
    return get_logger(name).bind(
        subsystem="job_progress",
        audit_trail=True
    )


def get_billing_logger(name: str) -> FilteringBoundLogger:
    """Get a logger bound to the billing subsystem."""
    return get_logger(name).bind(
        subsystem="billing",
        audit_trail=True
    )


def log_step_transition(
    logger: FilteringBoundLogger,
    job_id: str,
    from_step: int,
    to_step: int,
    trigger: str,
    context: Optional[dict[str, Any]] = None
) -> None:
    """
    Log a step transition with standardized format.

    Args:
        logger: Structlog logger instance
        job_id: ID of the job transitioning
        from_step: Step before the transition
        to_step: Step after the transition
        trigger: Command that caused the transition
        context: Additional context data
    """
    bound_logger = logger.bind(
        job_id=job_id,
        from_step=from_step,
        to_step=to_step,
        trigger=trigger,
    )

    if context:
        bound_logger = bound_logger.bind(context=context)

    if trigger == "operator_reset":
        bound_logger.warning("step_transition")
    else:
        bound_logger.info("step_transition")


def log_rejected_command(
    logger: FilteringBoundLogger,
    job_id: str,
    command: str,
    reason: str,
    context: Optional[dict[str, Any]] = None
) -> None:
    """
    Log a command that was recovered as a no-op.

    Args:
        logger: Structlog logger instance
        job_id: ID of the job the command targeted
        command: Name of the rejected command
        reason: Why the command was rejected
        context: Additional context data
    """
    bound_logger = logger.bind(
        job_id=job_id,
        command=command,
        reason=reason,
    )

    if context:
        bound_logger = bound_logger.bind(context=context)

    bound_logger.warning("command_rejected")


def log_billing_decision(
    logger: FilteringBoundLogger,
    job_id: str,
    raw_hours: float,
    billable_hours: float,
    cost: float,
    context: Optional[dict[str, Any]] = None
) -> None:
    """
    Log a billing computation with standardized format.

    Args:
        logger: Structlog logger instance
        job_id: ID of the job being billed
        raw_hours: Worked hours before floor, surcharge and rounding
        billable_hours: Hours charged
        cost: Monetary total
        context: Additional context data
    """
    bound_logger = logger.bind(
        job_id=job_id,
        raw_hours=round(raw_hours, 4),
        billable_hours=billable_hours,
        cost=cost,
    )

    if context:
        bound_logger = bound_logger.bind(context=context)

    bound_logger.info("billing_decision")
