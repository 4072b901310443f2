"""
Pick sequencing Pydantic schemas.

This module contains the pending pick entry view consumed by the sequencer
and the audio command records it produces.
"""

from enum import Enum
from typing import Optional, Union
from pydantic import BaseModel, Field


class PickEntryStatus(str, Enum):
    """Pick entry status enumeration."""
    PENDING = "PENDING"
    PICKED = "PICKED"
    SKIPPED = "SKIPPED"


class AudioCommandType(str, Enum):
    """Audio command type enumeration."""
    LOCATION = "location"
    MACHINE = "machine"
    ITEM = "item"


class PickLocationRef(BaseModel):
    """Location a pending entry is picked for."""

    id: Optional[str] = None
    name: Optional[str] = None


class PickMachineRef(BaseModel):
    """Machine a pending entry is picked for."""

    id: Optional[str] = None
    code: Optional[str] = None
    description: Optional[str] = None


class PickSkuRef(BaseModel):
    """SKU being picked."""

    code: str = ""
    name: Optional[str] = None
    type: Optional[str] = None


class PendingPickEntry(BaseModel):
    """Flattened pick entry with everything the sequencer sorts and announces."""

    id: str = Field(..., description="Pick entry ID")
    status: PickEntryStatus = PickEntryStatus.PENDING
    count: Optional[Union[int, float]] = None
    coil_code: Optional[str] = None
    location: Optional[PickLocationRef] = None
    machine: Optional[PickMachineRef] = None
    sku: Optional[PickSkuRef] = None


class AudioCommand(BaseModel):
    """One announcement in the pick/pack sequence."""

    id: str = Field(..., description="Command ID (pick entry ID for items)")
    type: AudioCommandType = Field(..., description="Announcement level")
    audio_command: str = Field(..., alias="audioCommand", description="Text to announce")
    pick_entry_id: str = Field("", alias="pickEntryId", description="Empty for location/machine commands")
    count: Union[int, float] = Field(0, description="Quantity to pick, 0 for location/machine commands")
    location_name: Optional[str] = Field(None, alias="locationName")
    machine_name: Optional[str] = Field(None, alias="machineName")
    sku_name: Optional[str] = Field(None, alias="skuName")
    sku_code: Optional[str] = Field(None, alias="skuCode")
    coil_code: Optional[str] = Field(None, alias="coilCode")

    class Config:
        frozen = True
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "id": "pe-42",
                "type": "item",
                "audioCommand": "Salted Chips, Chips. Need 8. Coil A1",
                "pickEntryId": "pe-42",
                "count": 8,
                "machineName": "M-101",
                "skuName": "Salted Chips",
                "skuCode": "SKU-1",
                "coilCode": "A1"
            }
        }
