"""
Geo-fenced Table Check-in Service
Validates a scanned table QR code against the branch geofence before the
cart is bound to that branch and table.
"""

import asyncio
import logging
import math
from dataclasses import dataclass
from typing import List, Optional, Protocol, Tuple

from tableorder.core.errors import (
    BranchNotFoundError,
    GeolocationDeniedError,
    GeolocationTimeoutError,
    GeolocationUnavailableError,
    OutOfRangeError,
    QRPayloadError,
)
from tableorder.schemas.catalog import Branch
from tableorder.schemas.order import Cart

logger = logging.getLogger(__name__)

EARTH_RADIUS_M = 6371000
BRANCH_MATCH_TOLERANCE_DEG = 0.00001
DEFAULT_GEOLOCATION_TIMEOUT_S = 10.0


@dataclass(frozen=True)
class GeoReading:
    latitude: float
    longitude: float
    accuracy_meters: Optional[float] = None


class GeolocationProvider(Protocol):
    """Source of a single fresh, high-accuracy device location."""

    async def current_position(self) -> GeoReading:
        ...


class ReportedGeolocation:
    """Provider for a position the client already obtained.

    ``error`` carries the device's failure code instead of a position:
    ``denied``, ``unavailable`` or ``timeout``.
    """

    ERROR_DENIED = "denied"
    ERROR_UNAVAILABLE = "unavailable"
    ERROR_TIMEOUT = "timeout"

    def __init__(self, latitude: Optional[float] = None, longitude: Optional[float] = None,
                 accuracy_meters: Optional[float] = None, error: Optional[str] = None):
        self.latitude = latitude
        self.longitude = longitude
        self.accuracy_meters = accuracy_meters
        self.error = error

    async def current_position(self) -> GeoReading:
        if self.error == self.ERROR_DENIED:
            raise GeolocationDeniedError()
        if self.error == self.ERROR_TIMEOUT:
            raise asyncio.TimeoutError()
        if self.error is not None or self.latitude is None or self.longitude is None:
            raise GeolocationUnavailableError()
        return GeoReading(self.latitude, self.longitude, self.accuracy_meters)


@dataclass(frozen=True)
class CheckInResult:
    branch: Branch
    table_number: str
    distance_meters: float

    def to_dict(self) -> dict:
        return {
            "branch_id": self.branch.id,
            "branch_name": self.branch.name,
            "table_number": self.table_number,
            "distance_meters": round(self.distance_meters, 1),
            "allowed_distance_meters": self.branch.allowed_distance,
        }


def haversine(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Calculate distance between two points in meters."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lon2 - lon1)

    a = (math.sin(dphi / 2) ** 2
         + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2)
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_M * c


def parse_checkin_payload(payload: str) -> Tuple[float, float, str]:
    """Parse ``"<lat>,<lon>-<table>"`` into ``(lat, lon, table)``.

    A negative coordinate adds a ``-`` and is rejected like any other
    malformed payload.
    """
    text = (payload or "").strip()
    segments = text.split("-")
    if len(segments) != 2:
        raise QRPayloadError(payload, "expected '<lat>,<lon>-<table>'")

    coords, table = segments[0].split(","), segments[1].strip()
    if len(coords) != 2:
        raise QRPayloadError(payload, "expected two coordinates")
    try:
        lat, lon = float(coords[0]), float(coords[1])
    except ValueError:
        raise QRPayloadError(payload, "coordinates are not numbers")
    if not (math.isfinite(lat) and math.isfinite(lon)):
        raise QRPayloadError(payload, "coordinates are not numbers")
    if not table:
        raise QRPayloadError(payload, "missing table number")
    return lat, lon, table


def match_branch(branches: List[Branch], lat: float, lon: float,
                 tolerance: float = BRANCH_MATCH_TOLERANCE_DEG) -> Optional[Branch]:
    """First branch whose coordinates equal ``(lat, lon)`` within ``tolerance`` per axis."""
    for branch in branches:
        if not branch.has_location:
            continue
        if abs(branch.latitude - lat) < tolerance and abs(branch.longitude - lon) < tolerance:
            return branch
    return None


class GeoCheckInService:
    """Validate table check-ins against the branch geofence."""

    def __init__(self, timeout_seconds: float = DEFAULT_GEOLOCATION_TIMEOUT_S,
                 tolerance: float = BRANCH_MATCH_TOLERANCE_DEG):
        self.timeout_seconds = timeout_seconds
        self.tolerance = tolerance

    def resolve_branch(self, branches: List[Branch], payload: str) -> Tuple[Branch, str]:
        lat, lon, table = parse_checkin_payload(payload)
        branch = match_branch(branches, lat, lon, self.tolerance)
        if branch is None:
            raise BranchNotFoundError(lat, lon)
        return branch, table

    async def locate(self, provider: GeolocationProvider) -> GeoReading:
        try:
            return await asyncio.wait_for(provider.current_position(), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            raise GeolocationTimeoutError(self.timeout_seconds)

    def validate_distance(self, branch: Branch, reading: GeoReading) -> float:
        distance = haversine(reading.latitude, reading.longitude, branch.latitude, branch.longitude)
        if distance > branch.allowed_distance:
            logger.info(
                f"Check-in rejected for branch {branch.id}: {distance:.1f}m > {branch.allowed_distance:g}m"
            )
            raise OutOfRangeError(distance, branch.allowed_distance, branch.id)
        return distance

    async def check_in(self, cart: Cart, branches: List[Branch], payload: str,
                       provider: GeolocationProvider) -> CheckInResult:
        """Run the whole check-in; the cart is only touched on success."""
        branch, table = self.resolve_branch(branches, payload)
        reading = await self.locate(provider)
        distance = self.validate_distance(branch, reading)

        cart.branch_id = branch.id
        cart.table_number = table
        logger.info(f"Checked in at branch {branch.id} table {table} ({distance:.1f}m)")
        return CheckInResult(branch=branch, table_number=table, distance_meters=distance)
