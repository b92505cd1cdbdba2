"""
Billable time and cost calculation.

Worked time is converted to hours, floored to the call-out minimum, charged
a fixed call-out surcharge and then rounded to the half hour with a
7-minute / 37-minute threshold rule.
"""

import math
from dataclasses import dataclass
from typing import Optional

from ..config.defaults import BillingParams
from ..utils.time import ms_to_hours


@dataclass(frozen=True)
class BillableResult:
    """Outcome of a billing computation."""
    billable_hours: float
    cost: float
    raw_hours: float


@dataclass(frozen=True)
class Invoice:
    """Invoice figures derived on demand from a job's worked time."""
    job_id: str
    billable_hours: float
    raw_hours: float
    hourly_rate: float
    total: float
    currency: str

    def to_dict(self) -> dict:
        return {
            "jobId": self.job_id,
            "billableHours": self.billable_hours,
            "rawHours": self.raw_hours,
            "hourlyRate": self.hourly_rate,
            "total": self.total,
            "currency": self.currency,
        }


def round_billable_hours(hours: float, params: Optional[BillingParams] = None) -> float:
    """
    Round hours to the half hour using the threshold rule.

    The fractional hour ``f`` decides the bucket:
    ``f <= round_down_threshold`` rounds down to the whole hour,
    ``f <= round_half_threshold`` rounds to the half hour, anything above
    rounds up to the next whole hour.
    """
    params = params or BillingParams()
    whole = math.floor(hours)
    fraction = hours - whole

    if fraction <= params.round_down_threshold:
        return float(whole)
    if fraction <= params.round_half_threshold:
        return whole + 0.5
    return float(whole + 1)


def compute_billable(worked_ms: int, params: Optional[BillingParams] = None) -> BillableResult:
    """
    Compute billable hours and cost for a worked duration.

    Args:
        worked_ms: Worked time in milliseconds (breaks already excluded);
            negative values are treated as zero
        params: Billing rules, defaults to BillingParams()

    Returns:
        BillableResult with rounded billable hours, cost and raw hours
    """
    params = params or BillingParams()

    raw_hours = ms_to_hours(max(0, worked_ms))

    billable = max(raw_hours, params.min_billable_hours)
    billable += params.call_out_hours
    billable = round_billable_hours(billable, params)

    return BillableResult(
        billable_hours=billable,
        cost=billable * params.hourly_rate,
        raw_hours=raw_hours,
    )


def build_invoice(job_id: str, worked_ms: int, params: Optional[BillingParams] = None) -> Invoice:
    """Derive the invoice for a job from its worked (billable) milliseconds."""
    params = params or BillingParams()
    result = compute_billable(worked_ms, params)

    return Invoice(
        job_id=job_id,
        billable_hours=result.billable_hours,
        raw_hours=result.raw_hours,
        hourly_rate=params.hourly_rate,
        total=result.cost,
        currency=params.currency,
    )
