"""Initial data seeding and the destructive reset-all-data action."""

import copy
import logging
from typing import Any, Dict

from tableorder.core.errors import StoreError
from tableorder.core.rbac import ClientRole
from tableorder.db.store import DocumentStore
from tableorder.schemas.catalog import KitchenSettings
from tableorder.schemas.snapshot import DEFAULT_THEME_COLOR
from tableorder.services.confirmation_service import ConfirmationGate, ConfirmationRequest

logger = logging.getLogger(__name__)

DEFAULT_PRINTER_SETTINGS = {
    "header": "Nhà hàng Chay Hoa Sen\nĐịa chỉ: 123 Đường ABC, Quận 1, TPHCM\nHotline: 0123.456.789",
    "footer": "Cảm ơn quý khách! Hẹn gặp lại!",
    "qrCodeUrl": "https://api.qrserver.com/v1/create-qr-code/?size=150x150&data=ChayHoaSen-BankInfo",
    "paperSize": "80mm",
    "printerName": "Máy in mặc định",
}

INITIAL_DATA: Dict[str, Any] = {
    "branches": [
        {"id": "cn1", "name": "Chi nhánh Quận 1", "latitude": 10.7769, "longitude": 106.7009,
         "allowedDistance": 100, "tableCount": 20, "printerSettings": DEFAULT_PRINTER_SETTINGS},
        {"id": "cn2", "name": "Chi nhánh Quận 7", "latitude": 10.7326, "longitude": 106.7072,
         "allowedDistance": 100, "tableCount": 20, "printerSettings": DEFAULT_PRINTER_SETTINGS},
    ],
    "categories": [
        {"id": "kv", "name": "Món Khai Vị"},
        {"id": "mc", "name": "Món Chính"},
        {"id": "tm", "name": "Tráng Miệng"},
        {"id": "du", "name": "Đồ Uống"},
    ],
    "menuItems": [
        {"id": "m1", "name": "Gỏi Cuốn Hoa Sen", "categoryId": "kv",
         "description": "Gỏi cuốn thanh đạm với rau tươi và đậu hũ.", "price": 45000,
         "imageUrl": "https://picsum.photos/seed/goicuon/540/540",
         "isOutOfStock": False, "isFeatured": True, "branchIds": ["cn1", "cn2"]},
        {"id": "m2", "name": "Chả Giò Chay", "categoryId": "kv",
         "description": "Chả giò giòn rụm với nhân rau củ.", "price": 55000,
         "imageUrl": "https://picsum.photos/seed/chagio/540/540",
         "isOutOfStock": False, "isFeatured": False, "branchIds": ["cn1"]},
        {"id": "m3", "name": "Cơm Hạt Sen", "categoryId": "mc",
         "description": "Cơm chiên với hạt sen, nấm và rau củ.", "price": 85000,
         "imageUrl": "https://picsum.photos/seed/comhatsen/540/540",
         "isOutOfStock": True, "isFeatured": True, "branchIds": ["cn2"]},
        {"id": "m4", "name": "Lẩu Nấm", "categoryId": "mc",
         "description": "Lẩu nấm chay ngọt thanh, bổ dưỡng.", "price": 250000,
         "imageUrl": "https://picsum.photos/seed/launam/540/540",
         "isOutOfStock": False, "isFeatured": False, "branchIds": ["cn1", "cn2"]},
    ],
    "orders": [],
    "admins": {
        "admin1": {"username": "admin", "password": "123"},
    },
    "kitchenSettings": KitchenSettings().to_store(),
    "themeColor": DEFAULT_THEME_COLOR,
}


def initial_document() -> Dict[str, Any]:
    return copy.deepcopy(INITIAL_DATA)


def seed_if_empty(store: DocumentStore) -> bool:
    """Seed an empty store, or just the admins when those are missing.

    Failures are logged and never raised. Returns True when anything was written.
    """
    try:
        document = store.read_all()
        if not document:
            logger.info("No data found, seeding initial data...")
            store.replace_subtree("/", initial_document())
            return True
        if not document.get("admins"):
            logger.info("No admins found, seeding default admin...")
            store.replace_subtree("admins", initial_document()["admins"])
            return True
    except StoreError as e:
        logger.error(f"Seeding failed: {e}")
    return False


def reset_all_data(store: DocumentStore) -> None:
    """Replace the whole document with the initial data set. No confirmation here."""
    store.replace_subtree("/", initial_document())
    logger.warning("All data reset to the initial data set")


def request_reset(store: DocumentStore, gate: ConfirmationGate,
                  requested_by: ClientRole = ClientRole.ADMIN) -> ConfirmationRequest:
    return gate.request(
        action="reset_all_data",
        title="Reset all data",
        description="Delete every order and restore the initial menu, branches and settings?",
        on_confirm=lambda: reset_all_data(store),
        requested_by=requested_by,
    )
