"""
Expiry-related Pydantic schemas.

This module contains the inputs of the expiry calculator, the override and
ignore records, and the "items expiring soon" response.
"""

from datetime import date, datetime
from typing import List, Optional, Union
from pydantic import BaseModel, Field


class ExpirySource(BaseModel):
    """Everything needed to compute the expiry date of one pick entry."""

    pick_entry_id: str
    scheduled_for: Optional[Union[datetime, date]] = Field(None, description="Owning run's scheduled instant")
    time_zone: Optional[str] = Field(None, description="Owning company's IANA timezone")
    shelf_life_days: Optional[int] = Field(None, description="SKU shelf life in days")


class ExpiryOverride(BaseModel):
    """Manual split of a pick entry's quantity onto one expiry date."""

    pick_entry_id: str
    expiry_date: str = Field(..., description="YYYY-MM-DD")
    quantity: int

    class Config:
        frozen = True


class ExpiryIgnore(BaseModel):
    """Standing exemption for a coil item/date quantity."""

    company_id: str
    coil_item_id: str
    expiry_date: str = Field(..., description="YYYY-MM-DD")
    quantity: int
    ignored_at: Optional[datetime] = None
    created_by: Optional[str] = None

    class Config:
        frozen = True


class ExpiryAllocation(BaseModel):
    """A quantity expiring on one date."""

    expiry_date: str
    quantity: Union[int, float]
    source: str = Field(..., description="'override' or 'computed'")

    class Config:
        frozen = True


class ExpiringStockEntry(BaseModel):
    """A pick entry as seen by the expiring-items report."""

    pick_entry_id: str
    run_id: str
    coil_item_id: str
    scheduled_for: Optional[Union[datetime, date]] = None
    count: Union[int, float] = 0
    expiry_date: Optional[str] = None
    overrides: List[ExpiryOverride] = Field(default_factory=list)
    sku_id: Optional[str] = None
    sku_code: str = ""
    sku_name: str = ""
    machine_id: Optional[str] = None
    machine_code: str = ""
    machine_description: Optional[str] = None
    coil_id: Optional[str] = None
    coil_code: str = ""


class ExpiringItem(BaseModel):
    """Quantity of a coil item expiring on a section date."""

    coil_item_id: str
    quantity: Union[int, float]
    sku_id: Optional[str] = None
    sku_code: str
    sku_name: str
    machine_id: Optional[str] = None
    machine_code: str
    machine_description: Optional[str] = None
    coil_id: Optional[str] = None
    coil_code: str


class ExpiringItemsSection(BaseModel):
    """Items expiring on one date, relative to the run day."""

    expiry_date: str = Field(..., description="YYYY-MM-DD, in company timezone")
    day_offset: int = Field(..., description="Days relative to the run day")
    items: List[ExpiringItem] = Field(default_factory=list)


class ExpiringItemsResponse(BaseModel):
    """Expiring items for a run."""

    warning_count: int = 0
    sections: List[ExpiringItemsSection] = Field(default_factory=list)

    class Config:
        json_schema_extra = {
            "example": {
                "warning_count": 1,
                "sections": [
                    {
                        "expiry_date": "2025-01-12",
                        "day_offset": 0,
                        "items": [
                            {
                                "coil_item_id": "ci-7",
                                "quantity": 3,
                                "sku_code": "SKU-9",
                                "sku_name": "Greek Yoghurt",
                                "machine_code": "M-101",
                                "coil_code": "B4"
                            }
                        ]
                    }
                ]
            }
        }
