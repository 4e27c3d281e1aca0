from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime

from pydantic import BaseModel

from eventhub.common.exceptions import BadRequestError
from eventhub.db.models.vendor import VendorRequest


class GeoPoint(BaseModel):
    lng: float
    lat: float

    def ensure_valid(self) -> GeoPoint:
        if not -180.0 <= self.lng <= 180.0:
            raise BadRequestError("Longitude must be between -180 and 180")
        if not -90.0 <= self.lat <= 90.0:
            raise BadRequestError("Latitude must be between -90 and 90")
        return self


class TimeWindow(BaseModel):
    start_at: datetime
    end_at: datetime

    def ensure_valid(self) -> TimeWindow:
        if (self.start_at.tzinfo is None) != (self.end_at.tzinfo is None):
            raise BadRequestError("start_at and end_at must both include a timezone or neither")
        if self.end_at <= self.start_at:
            raise BadRequestError("End date/time must be after start date/time")
        return self


@dataclass
class RetractionReport:
    request_id: uuid.UUID
    retracted: list[uuid.UUID] = field(default_factory=list)
    failed: list[uuid.UUID] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.failed


@dataclass
class TransitionOutcome:
    request_id: uuid.UUID
    deleted: bool
    request: VendorRequest | None = None
    retraction: RetractionReport | None = None

    @property
    def deleted_requests_count(self) -> int:
        return len(self.retraction.retracted) if self.retraction else 0

    @property
    def failed_requests_count(self) -> int:
        return len(self.retraction.failed) if self.retraction else 0
