"""
Run import Pydantic schemas.

This module contains the records produced by parsing a run workbook. All of
them are immutable; the resolver shares instances between pick entries when
it deduplicates machines, coils and SKUs.
"""

from datetime import date
from typing import List, Optional, Union
from pydantic import BaseModel, Field

# Integral spreadsheet numbers stay ints, everything else is a float
Quantity = Optional[Union[int, float]]


class ParsedSku(BaseModel):
    """A product as named in the workbook."""

    code: str = Field(..., description="SKU code, unique within a company")
    name: str = Field("", description="Display name")
    type: Optional[str] = Field(None, description="Optional type/category tag")

    class Config:
        frozen = True


class ParsedMachineLocation(BaseModel):
    """Location a machine sits at."""

    name: str = Field(..., description="Location name")
    address: Optional[str] = Field(None, description="Street address if present")

    class Config:
        frozen = True


class ParsedMachineType(BaseModel):
    """Machine model/type information."""

    name: str = Field(..., description="Machine type name")
    category: Optional[str] = Field(None, description="Machine category")

    class Config:
        frozen = True


class ParsedMachine(BaseModel):
    """A vending machine identified by its code."""

    code: str = Field(..., description="Machine code, unique within a parse")
    name: str = Field("", description="Display name")
    run_date: Optional[date] = Field(None, description="Run date printed on the machine block")
    location: Optional[ParsedMachineLocation] = None
    machine_type: Optional[ParsedMachineType] = None

    class Config:
        frozen = True


class ParsedCoil(BaseModel):
    """A slot within a machine."""

    code: str = Field(..., description="Coil code, unique within its machine")
    machine: ParsedMachine

    class Config:
        frozen = True


class ParsedCoilItem(BaseModel):
    """A SKU loaded in a coil, with the quantities read from one row."""

    coil: ParsedCoil
    sku: ParsedSku
    current: Quantity = None
    par: Quantity = None
    need: Quantity = None
    forecast: Quantity = None
    total: Quantity = None
    notes: Optional[str] = None

    class Config:
        frozen = True


class ParsedPickEntry(BaseModel):
    """One pick requirement, produced for every physical coil row."""

    coil_item: ParsedCoilItem
    count: Quantity = Field(None, description="Quantity to pick, see derive_count()")
    current: Quantity = None
    par: Quantity = None
    need: Quantity = None
    forecast: Quantity = None
    notes: Optional[str] = None

    class Config:
        frozen = True


class ParsedRun(BaseModel):
    """All pick entries of one workbook."""

    run_date: Optional[date] = None
    pick_entries: List[ParsedPickEntry] = Field(default_factory=list)

    class Config:
        frozen = True


class SheetIssue(BaseModel):
    """A sheet or row that was skipped while parsing."""

    sheet_name: str
    reason: str
    row: Optional[int] = Field(None, description="1-based row number, None for whole-sheet issues")

    class Config:
        frozen = True


class ParsedRunWorkbook(BaseModel):
    """Result of parsing a run workbook."""

    run: Optional[ParsedRun] = None
    machines: List[ParsedMachine] = Field(default_factory=list, description="Distinct machines in first-seen order")
    coils: List[ParsedCoil] = Field(default_factory=list, description="Distinct coils in first-seen order")
    skus: List[ParsedSku] = Field(default_factory=list, description="Distinct SKUs in first-seen order")
    skipped_sheets: List[SheetIssue] = Field(default_factory=list, description="Skipped sheets and rows")

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {
                "run": {
                    "run_date": "2025-01-10",
                    "pick_entries": [
                        {
                            "coil_item": {
                                "coil": {
                                    "code": "A1",
                                    "machine": {
                                        "code": "M-101",
                                        "name": "Lobby Snack",
                                        "run_date": "2025-01-10",
                                        "location": {"name": "Central Library", "address": "1 Main St"},
                                        "machine_type": {"name": "Snack", "category": "Ambient"}
                                    }
                                },
                                "sku": {"code": "SKU-1", "name": "Salted Chips", "type": "Chips"},
                                "current": 2,
                                "par": 10,
                                "need": 8,
                                "forecast": None,
                                "total": 8,
                                "notes": None
                            },
                            "count": 8,
                            "current": 2,
                            "par": 10,
                            "need": 8,
                            "forecast": None,
                            "notes": None
                        }
                    ]
                },
                "skipped_sheets": [
                    {"sheet_name": "Summary", "reason": "no recognizable header row", "row": None}
                ]
            }
        }
