"""Catalog schemas: branches, menu, toppings and settings as stored in the document."""

from __future__ import annotations

from enum import Enum
from typing import Annotated, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

# Opaque non-negative amount in a single currency (no minor units)
Price = Annotated[Union[int, float], Field(ge=0)]

DEFAULT_ALLOWED_DISTANCE_M = 100
DEFAULT_NOTIFICATION_SOUND_URL = "https://actions.google.com/sounds/v1/alarms/beep_short.ogg"


class StoreModel(BaseModel):
    """Base for everything that round-trips through the document store.

    Attributes are snake_case in Python and camelCase on the wire.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_store(self) -> dict:
        """Serialize to the camelCase JSON shape written to the store."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class PaperSize(str, Enum):
    MM_80 = "80mm"
    MM_58 = "58mm"
    A4 = "A4"
    A5 = "A5"


class PrinterSettings(StoreModel):
    """Bill header/footer and payment QR for one branch."""
    header: str = ""
    footer: str = ""
    qr_code_url: str = ""
    paper_size: PaperSize = PaperSize.MM_80
    printer_name: Optional[str] = None


class Branch(StoreModel):
    id: str
    name: str = ""
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    allowed_distance: float = Field(DEFAULT_ALLOWED_DISTANCE_M, gt=0)
    table_count: int = Field(0, ge=0)
    printer_settings: PrinterSettings = Field(default_factory=PrinterSettings)

    @property
    def has_location(self) -> bool:
        return self.latitude is not None and self.longitude is not None


class Category(StoreModel):
    id: str
    name: str = ""


class Topping(StoreModel):
    id: str
    name: str = ""
    price: Price = 0


class ToppingGroup(StoreModel):
    id: str
    name: str = ""
    min_selection: int = Field(0, ge=0)
    max_selection: int = Field(0, ge=0)
    topping_ids: List[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_bounds(self) -> "ToppingGroup":
        if self.min_selection > self.max_selection:
            raise ValueError(
                f"minSelection ({self.min_selection}) exceeds maxSelection ({self.max_selection})"
            )
        return self


class MenuItem(StoreModel):
    id: str
    category_id: str = ""
    name: str = ""
    description: str = ""
    price: Price = 0
    image_url: str = ""
    is_out_of_stock: bool = False
    is_featured: bool = False
    branch_ids: List[str] = Field(default_factory=list)
    topping_group_ids: List[str] = Field(default_factory=list)

    def is_sold_at(self, branch_id: Optional[str]) -> bool:
        return bool(branch_id) and branch_id in self.branch_ids


class SavedSound(StoreModel):
    id: str
    name: str = ""
    url: str = ""


class KitchenSettings(StoreModel):
    notification_sound_url: str = DEFAULT_NOTIFICATION_SOUND_URL
    notification_repeat_count: int = Field(1, ge=1)
    saved_sounds: List[SavedSound] = Field(default_factory=list)


class Admin(StoreModel):
    username: str = ""
    password: str = ""
