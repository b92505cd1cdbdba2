"""
Interfaces of the external collaborators the engine consumes.

The engine never talks to the remote job API or the payments provider
itself; the host application supplies objects satisfying these protocols.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Protocol


@dataclass(frozen=True)
class RemoteJob:
    """Job data supplied by the remote job source when a session first opens."""
    job_id: str
    stop_labels: tuple[str, ...] = field(default_factory=tuple)
    current_step: int = 0                            # Already-in-progress step, if any
    include_return: Optional[bool] = None            # Falls back to the configured default

    @property
    def stop_count(self) -> int:
        return len(self.stop_labels)


class PaymentStage(str, Enum):
    """When a payment request is raised."""
    BILLING_STEP = "billing_step"
    COMPLETION = "completion"


@dataclass(frozen=True)
class PaymentRequest:
    """Figures handed to the payment collaborator."""
    job_id: str
    stage: PaymentStage
    billable_hours: float
    cost: float
    currency: str

    def to_dict(self) -> dict:
        return {
            "jobId": self.job_id,
            "stage": self.stage.value,
            "billableHours": self.billable_hours,
            "cost": self.cost,
            "currency": self.currency,
        }


class RemoteJobSource(Protocol):
    """Supplies initial job data; never polled by the engine."""

    async def fetch_job(self, job_id: str) -> RemoteJob:
        ...


class PaymentCollaborator(Protocol):
    """Receives billing figures at the billing-trigger step and at completion."""

    async def request_payment(self, request: PaymentRequest) -> None:
        ...
