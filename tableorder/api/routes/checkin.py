"""Table check-in route: scanned QR payload plus the device's location reading."""

import logging
from typing import Literal, Optional

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from tableorder.api.deps import SnapshotDep
from tableorder.core.config import settings
from tableorder.core.rate_limit import limiter
from tableorder.schemas.order import Cart
from tableorder.services.geo_checkin_service import GeoCheckInService, ReportedGeolocation

logger = logging.getLogger(__name__)

router = APIRouter()


class CheckInRequest(BaseModel):
    payload: str = Field(..., max_length=200, description="Scanned '<lat>,<lon>-<table>' text")
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    accuracy_meters: Optional[float] = Field(None, ge=0)
    geolocation_error: Optional[Literal["denied", "unavailable", "timeout"]] = None


@router.post("/checkin")
@limiter.limit(settings.checkin_rate_limit)
async def check_in(request: Request, body: CheckInRequest, snapshot: SnapshotDep):
    """Validate a table check-in. The client binds branch and table on success."""
    service = GeoCheckInService(
        timeout_seconds=settings.geolocation_timeout_seconds,
        tolerance=settings.branch_match_tolerance_deg,
    )
    provider = ReportedGeolocation(
        latitude=body.latitude,
        longitude=body.longitude,
        accuracy_meters=body.accuracy_meters,
        error=body.geolocation_error,
    )
    result = await service.check_in(Cart(), snapshot.branches, body.payload, provider)
    return result.to_dict()
