"""
Pydantic schemas for parsed runs, expiry data and audio commands.

This package contains all Pydantic models passed between the parsing,
expiry and sequencing services.
"""

from api.schemas.run_import_schema import (
    ParsedSku, ParsedMachineLocation, ParsedMachineType, ParsedMachine,
    ParsedCoil, ParsedCoilItem, ParsedPickEntry, ParsedRun, SheetIssue,
    ParsedRunWorkbook
)
from api.schemas.expiry_schema import (
    ExpirySource, ExpiryOverride, ExpiryIgnore, ExpiryAllocation,
    ExpiringStockEntry, ExpiringItem, ExpiringItemsSection, ExpiringItemsResponse
)
from api.schemas.audio_schema import (
    PickEntryStatus, AudioCommandType, PickLocationRef, PickMachineRef,
    PickSkuRef, PendingPickEntry, AudioCommand
)

__all__ = [
    # Run import
    'ParsedSku',
    'ParsedMachineLocation',
    'ParsedMachineType',
    'ParsedMachine',
    'ParsedCoil',
    'ParsedCoilItem',
    'ParsedPickEntry',
    'ParsedRun',
    'SheetIssue',
    'ParsedRunWorkbook',

    # Expiry
    'ExpirySource',
    'ExpiryOverride',
    'ExpiryIgnore',
    'ExpiryAllocation',
    'ExpiringStockEntry',
    'ExpiringItem',
    'ExpiringItemsSection',
    'ExpiringItemsResponse',

    # Audio
    'PickEntryStatus',
    'AudioCommandType',
    'PickLocationRef',
    'PickMachineRef',
    'PickSkuRef',
    'PendingPickEntry',
    'AudioCommand',
]
