"""Two-sided negotiation state of a vendor request.

Each side (vendor, user) moves independently through pending/accepted/rejected.
Rejection by either side deletes the ledger entry, so a persisted request only
ever holds pending or accepted on each side.
"""

from __future__ import annotations

from dataclasses import dataclass, replace

from eventhub.common.enums import NegotiationStatus, ProgressStep
from eventhub.db.models.vendor import VendorRequest

PROGRESS_STEPS: tuple[ProgressStep, ...] = (
    ProgressStep.BOOKED,
    ProgressStep.ARRIVED,
    ProgressStep.DEPARTED,
)


@dataclass(frozen=True)
class NegotiationState:
    vendor: NegotiationStatus = NegotiationStatus.PENDING
    user: NegotiationStatus = NegotiationStatus.PENDING

    @classmethod
    def of(cls, request: VendorRequest) -> NegotiationState:
        return cls(
            vendor=NegotiationStatus(request.vendor_status),
            user=NegotiationStatus(request.user_status),
        )

    @property
    def is_doubly_accepted(self) -> bool:
        return self.vendor == NegotiationStatus.ACCEPTED and self.user == NegotiationStatus.ACCEPTED

    @property
    def is_rejected(self) -> bool:
        return NegotiationStatus.REJECTED in (self.vendor, self.user)

    def with_vendor(self, status: NegotiationStatus) -> NegotiationState:
        return replace(self, vendor=status)

    def with_user(self, status: NegotiationStatus) -> NegotiationState:
        return replace(self, user=status)

    def apply(self, request: VendorRequest) -> None:
        request.vendor_status = self.vendor.value
        request.user_status = self.user.value


def initial_progress() -> list[dict]:
    return [
        {"step": step.value, "done": index == 0}
        for index, step in enumerate(PROGRESS_STEPS)
    ]


def populate_progress(request: VendorRequest) -> bool:
    """Fill the checklist once the request is doubly accepted.

    Returns True when the checklist was written by this call.
    """
    if not NegotiationState.of(request).is_doubly_accepted or request.progress:
        return False
    request.progress = initial_progress()
    return True
