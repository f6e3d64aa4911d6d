"""Table links and printable QR codes.

Two targets can be encoded for a table: the customer web URL with
``branchId``/``table`` query parameters, and the check-in payload
``"<lat>,<lon>-<table>"`` that proves the customer is on site.
"""

import base64
import io
import logging
from dataclasses import dataclass
from typing import List, Optional, Union
from urllib.parse import parse_qs, urlencode, urlsplit, urlunsplit

import qrcode
import qrcode.image.svg

from tableorder.core.errors import QRPayloadError
from tableorder.schemas.catalog import Branch

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TableLink:
    branch_id: str
    table: str
    stripped_url: str


def build_table_url(base_url: str, branch_id: str, table: Union[str, int]) -> str:
    parts = urlsplit(base_url)
    query = urlencode({"branchId": branch_id, "table": str(table)})
    return urlunsplit((parts.scheme, parts.netloc, parts.path or "/", query, ""))


def consume_table_link(url: str, branches: Optional[List[Branch]] = None) -> Optional[TableLink]:
    """Read ``branchId`` and ``table`` from ``url``.

    Returns None when either parameter is missing or, given ``branches``, the
    branch is unknown. ``stripped_url`` has the query removed so the link is
    consumed once.
    """
    parts = urlsplit(url)
    params = parse_qs(parts.query)
    branch_id = (params.get("branchId") or [""])[0].strip()
    table = (params.get("table") or [""])[0].strip()
    if not branch_id or not table:
        return None
    if branches is not None and not any(b.id == branch_id for b in branches):
        logger.info(f"Ignoring table link for unknown branch '{branch_id}'")
        return None
    stripped = urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))
    return TableLink(branch_id=branch_id, table=table, stripped_url=stripped)


def build_checkin_payload(branch: Branch, table: Union[str, int]) -> str:
    if not branch.has_location:
        raise QRPayloadError("", f"branch '{branch.id}' has no coordinates")
    return f"{branch.latitude},{branch.longitude}-{table}"


def render_qr(data: str, fmt: str = "png") -> str:
    """Render ``data`` as base64 PNG or as SVG markup."""
    qr = qrcode.QRCode(version=1, box_size=10, border=4)
    qr.add_data(data)
    qr.make(fit=True)

    buffer = io.BytesIO()
    if fmt == "svg":
        img = qr.make_image(image_factory=qrcode.image.svg.SvgPathImage)
        img.save(buffer)
        return buffer.getvalue().decode("utf-8")

    img = qr.make_image(fill_color="black", back_color="white")
    img.save(buffer, format="PNG")
    return base64.b64encode(buffer.getvalue()).decode("utf-8")
