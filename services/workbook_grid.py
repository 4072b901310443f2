"""
Workbook grid readers.

The resolver only needs sheet names, sheet dimensions and typed cell values.
This module defines that interface and two implementations: an in-memory
grid and an openpyxl-backed adapter for .xlsx/.xlsm files.
"""

import logging
from datetime import date, datetime, time
from io import BytesIO
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple, Union

import openpyxl

logger = logging.getLogger(__name__)

CellValue = Optional[Union[str, int, float, datetime, date]]


class WorkbookGrid(Protocol):
    """Read-only view of a workbook as 2-D grids of typed cell values."""

    def sheet_names(self) -> List[str]:
        ...

    def dimensions(self, sheet: str) -> Tuple[int, int]:
        """Return (rows, columns) of the used range."""
        ...

    def cell_value(self, sheet: str, row: int, col: int) -> CellValue:
        """Return the value at 0-based (row, col), None when empty or out of range."""
        ...


def _coerce_cell(value: Any) -> CellValue:
    if value is None or isinstance(value, (str, datetime, date)):
        return value
    if isinstance(value, bool):
        # Booleans are not quantities
        return str(value).upper()
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, time):
        return value.isoformat()
    return str(value)


class InMemoryWorkbookGrid:
    """Grid over rows already held in memory, keyed by sheet name in sheet order."""

    def __init__(self, sheets: Dict[str, Sequence[Sequence[Any]]]):
        self._sheets = {name: [list(row) for row in rows] for name, rows in sheets.items()}

    def sheet_names(self) -> List[str]:
        return list(self._sheets.keys())

    def dimensions(self, sheet: str) -> Tuple[int, int]:
        rows = self._sheets.get(sheet, [])
        return len(rows), max((len(row) for row in rows), default=0)

    def cell_value(self, sheet: str, row: int, col: int) -> CellValue:
        rows = self._sheets.get(sheet, [])
        if row < 0 or row >= len(rows):
            return None
        values = rows[row]
        if col < 0 or col >= len(values):
            return None
        return _coerce_cell(values[col])


class OpenpyxlWorkbookGrid:
    """Grid over an openpyxl workbook loaded with computed values."""

    def __init__(self, workbook: openpyxl.Workbook):
        self._workbook = workbook

    @classmethod
    def from_bytes(cls, data: bytes) -> "OpenpyxlWorkbookGrid":
        """Load a workbook from raw .xlsx bytes."""
        workbook = openpyxl.load_workbook(BytesIO(data), data_only=True)
        return cls(workbook)

    @classmethod
    def from_path(cls, file_path: str) -> "OpenpyxlWorkbookGrid":
        """Load a workbook from a file path."""
        logger.info(f"Loading workbook: {file_path}")
        workbook = openpyxl.load_workbook(file_path, data_only=True)
        return cls(workbook)

    def sheet_names(self) -> List[str]:
        return list(self._workbook.sheetnames)

    def dimensions(self, sheet: str) -> Tuple[int, int]:
        worksheet = self._workbook[sheet]
        return worksheet.max_row, worksheet.max_column

    def cell_value(self, sheet: str, row: int, col: int) -> CellValue:
        worksheet = self._workbook[sheet]
        if row < 0 or col < 0 or row >= worksheet.max_row or col >= worksheet.max_column:
            return None
        return _coerce_cell(worksheet.cell(row=row + 1, column=col + 1).value)


def _is_blank(value: CellValue) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def read_rows(grid: WorkbookGrid, sheet: str) -> List[Tuple[int, List[CellValue]]]:
    """
    Materialize the non-blank rows of a sheet.

    Returns:
        List of (0-based row index, cell values) pairs, blank rows dropped.
    """
    row_count, col_count = grid.dimensions(sheet)
    rows = []
    for row_idx in range(row_count):
        values = [grid.cell_value(sheet, row_idx, col_idx) for col_idx in range(col_count)]
        if all(_is_blank(value) for value in values):
            continue
        rows.append((row_idx, values))
    return rows
