"""Tests for geofenced table check-in."""

import asyncio

import pytest

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
from tableorder.services.geo_checkin_service import (
    GeoCheckInService,
    GeoReading,
    ReportedGeolocation,
    haversine,
    match_branch,
    parse_checkin_payload,
)

CN1_LAT = 10.7769
CN1_LON = 106.7009

# ~150 m north of cn1
FAR_LAT = CN1_LAT + 150 / 111195


class SlowGeolocation:
    async def current_position(self) -> GeoReading:
        await asyncio.sleep(5)
        return GeoReading(CN1_LAT, CN1_LON)


class TestHaversine:
    def test_same_point_is_zero(self):
        assert haversine(CN1_LAT, CN1_LON, CN1_LAT, CN1_LON) == 0

    def test_one_degree_latitude(self):
        assert haversine(0, 0, 1, 0) == pytest.approx(111195, rel=1e-3)

    def test_symmetric(self):
        a = haversine(10.7769, 106.7009, 10.7326, 106.7072)
        b = haversine(10.7326, 106.7072, 10.7769, 106.7009)
        assert a == pytest.approx(b)
        assert 4900 < a < 5000


class TestParsePayload:
    def test_valid_payload(self):
        assert parse_checkin_payload("10.7769,106.7009-5") == (10.7769, 106.7009, "5")

    @pytest.mark.parametrize("payload", [
        "abc-5",
        "10.77-5",
        "10.7769,106.7009",
        "10.7769,106.7009-",
        "10.7769,106.7009-5-6",
        "1,2,3-5",
        "x,y-5",
        "",
    ])
    def test_malformed_payloads(self, payload):
        with pytest.raises(QRPayloadError):
            parse_checkin_payload(payload)

    def test_negative_coordinate_is_rejected(self):
        with pytest.raises(QRPayloadError):
            parse_checkin_payload("-33.86,151.2-5")


class TestMatchBranch:
    def test_tolerance_per_axis(self, snapshot):
        assert match_branch(snapshot.branches, CN1_LAT + 0.000005, CN1_LON - 0.000005).id == "cn1"
        assert match_branch(snapshot.branches, CN1_LAT + 0.0001, CN1_LON) is None

    def test_branch_without_location_never_matches(self):
        assert match_branch([Branch(id="x")], 0.0, 0.0) is None


class TestCheckIn:
    @pytest.mark.asyncio
    async def test_on_site_binds_cart(self, snapshot):
        cart = Cart()
        result = await GeoCheckInService().check_in(
            cart, snapshot.branches, f"{CN1_LAT},{CN1_LON}-5", ReportedGeolocation(CN1_LAT, CN1_LON),
        )
        assert result.distance_meters == 0
        assert result.branch.id == "cn1"
        assert (cart.branch_id, cart.table_number) == ("cn1", "5")

    @pytest.mark.asyncio
    async def test_out_of_range_reports_distance(self, snapshot):
        cart = Cart()
        with pytest.raises(OutOfRangeError) as exc:
            await GeoCheckInService().check_in(
                cart, snapshot.branches, f"{CN1_LAT},{CN1_LON}-5", ReportedGeolocation(FAR_LAT, CN1_LON),
            )
        assert exc.value.distance_meters == pytest.approx(150, abs=1)
        assert exc.value.allowed_meters == 100
        assert "150" in exc.value.message
        assert cart.branch_id is None and cart.table_number is None

    @pytest.mark.asyncio
    async def test_unknown_branch_leaves_cart_untouched(self, snapshot):
        cart = Cart(branch_id="cn2", table_number="3")
        with pytest.raises(BranchNotFoundError):
            await GeoCheckInService().check_in(
                cart, snapshot.branches, "1.0,2.0-5", ReportedGeolocation(1.0, 2.0),
            )
        assert (cart.branch_id, cart.table_number) == ("cn2", "3")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error,expected", [
        ("denied", GeolocationDeniedError),
        ("unavailable", GeolocationUnavailableError),
        ("timeout", GeolocationTimeoutError),
    ])
    async def test_geolocation_failures_are_distinct(self, snapshot, error, expected):
        with pytest.raises(expected):
            await GeoCheckInService().check_in(
                Cart(), snapshot.branches, f"{CN1_LAT},{CN1_LON}-5", ReportedGeolocation(error=error),
            )

    @pytest.mark.asyncio
    async def test_slow_device_times_out(self, snapshot):
        with pytest.raises(GeolocationTimeoutError) as exc:
            await GeoCheckInService(timeout_seconds=0.05).check_in(
                Cart(), snapshot.branches, f"{CN1_LAT},{CN1_LON}-5", SlowGeolocation(),
            )
        assert exc.value.timeout_seconds == 0.05

    @pytest.mark.asyncio
    async def test_check_in_does_not_write(self, store, snapshot):
        before = store.read_all()
        await GeoCheckInService().check_in(
            Cart(), snapshot.branches, f"{CN1_LAT},{CN1_LON}-5", ReportedGeolocation(CN1_LAT, CN1_LON),
        )
        assert store.read_all() == before
