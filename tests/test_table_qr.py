"""Tests for table links and QR rendering."""

import base64

import pytest

from tableorder.core.errors import QRPayloadError
from tableorder.schemas.catalog import Branch
from tableorder.services.geo_checkin_service import parse_checkin_payload
from tableorder.services.table_qr_service import (
    build_checkin_payload,
    build_table_url,
    consume_table_link,
    render_qr,
)


class TestTableUrl:
    def test_build_and_consume(self):
        url = build_table_url("https://order.example.com/menu", "cn1", 12)
        assert url == "https://order.example.com/menu?branchId=cn1&table=12"

        link = consume_table_link(url)
        assert (link.branch_id, link.table) == ("cn1", "12")
        assert link.stripped_url == "https://order.example.com/menu"

    def test_missing_params(self):
        assert consume_table_link("https://order.example.com/?branchId=cn1") is None
        assert consume_table_link("https://order.example.com/") is None

    def test_unknown_branch_ignored(self):
        url = build_table_url("https://order.example.com/", "cn9", 1)
        assert consume_table_link(url, [Branch(id="cn1")]) is None


class TestCheckinPayload:
    def test_round_trips_through_parser(self):
        branch = Branch(id="cn1", latitude=10.7769, longitude=106.7009)
        payload = build_checkin_payload(branch, 5)
        assert payload == "10.7769,106.7009-5"
        assert parse_checkin_payload(payload) == (10.7769, 106.7009, "5")

    def test_branch_without_coordinates(self):
        with pytest.raises(QRPayloadError):
            build_checkin_payload(Branch(id="cn1"), 5)


class TestRenderQr:
    def test_png_is_base64(self):
        raw = base64.b64decode(render_qr("10.7769,106.7009-5"))
        assert raw.startswith(b"\x89PNG")

    def test_svg(self):
        assert "<svg" in render_qr("10.7769,106.7009-5", "svg")
