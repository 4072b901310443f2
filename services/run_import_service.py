"""
Run Import Service - workbook parsing and run assembly.

This module turns the grid of a run workbook into the normalized run graph:
locations, machines, machine types, coils, SKUs, coil items and one pick
entry per coil row. It performs no I/O; callers hand it a WorkbookGrid and
persist the result themselves.
"""

import logging
from datetime import date
from typing import Dict, List, Optional, Tuple

from api.config import settings
from api.schemas.run_import_schema import (
    ParsedCoil, ParsedCoilItem, ParsedMachine, ParsedMachineLocation,
    ParsedMachineType, ParsedPickEntry, ParsedRun, ParsedRunWorkbook,
    ParsedSku, Quantity, SheetIssue
)
from services.cell_parser import CellParser
from services.header_rules import HEADER_RULES, HeaderRule, detect_columns, is_header_row
from services.workbook_grid import CellValue, WorkbookGrid, read_rows

logger = logging.getLogger(__name__)

Row = List[CellValue]


class SheetFormatError(Exception):
    """Raised when a sheet cannot be parsed; the sheet is skipped, not the workbook."""


def derive_count(need: Quantity, par: Quantity, current: Quantity) -> Quantity:
    """
    Derive the quantity to pick for a coil row.

    need when present; otherwise par - current clamped at zero when both
    are present; otherwise None.
    """
    if need is not None:
        return need
    if par is not None and current is not None:
        return max(par - current, 0)
    return None


class ParseContext:
    """
    Deduplication maps for a single parse call.

    Holds one instance per machine code, (machine code, coil code) and SKU
    code, plus locations and machine types, so entities seen on several
    rows or sheets are shared. A new context is created for every parse.
    """

    def __init__(self):
        self.machines: Dict[str, ParsedMachine] = {}
        self.coils: Dict[Tuple[str, str], ParsedCoil] = {}
        self.skus: Dict[str, ParsedSku] = {}
        self.locations: Dict[str, ParsedMachineLocation] = {}
        self.machine_types: Dict[Tuple[str, Optional[str]], ParsedMachineType] = {}

    def stage(self) -> "ParseContext":
        """Copy of this context for resolving one sheet; see commit()."""
        staged = ParseContext()
        staged.machines = dict(self.machines)
        staged.coils = dict(self.coils)
        staged.skus = dict(self.skus)
        staged.locations = dict(self.locations)
        staged.machine_types = dict(self.machine_types)
        return staged

    def commit(self, staged: "ParseContext"):
        """Adopt the entities a successfully resolved sheet added."""
        self.machines = staged.machines
        self.coils = staged.coils
        self.skus = staged.skus
        self.locations = staged.locations
        self.machine_types = staged.machine_types

    def resolve_location(self, name: str, address: Optional[str]) -> ParsedMachineLocation:
        if name not in self.locations:
            self.locations[name] = ParsedMachineLocation(name=name, address=address or None)
        return self.locations[name]

    def resolve_machine_type(self, name: Optional[str], category: Optional[str]) -> Optional[ParsedMachineType]:
        if not name and not category:
            return None
        key = (name or '', category)
        if key not in self.machine_types:
            self.machine_types[key] = ParsedMachineType(name=name or '', category=category)
        return self.machine_types[key]

    def resolve_machine(
        self,
        code: str,
        name: str,
        run_date: Optional[date],
        location: Optional[ParsedMachineLocation],
        machine_type: Optional[ParsedMachineType]
    ) -> ParsedMachine:
        machine = self.machines.get(code)
        if machine is None:
            machine = ParsedMachine(
                code=code,
                name=name,
                run_date=run_date,
                location=location,
                machine_type=machine_type
            )
            self.machines[code] = machine
        else:
            logger.debug(f"Reusing machine {code}")
        return machine

    def resolve_coil(self, machine: ParsedMachine, code: str) -> ParsedCoil:
        key = (machine.code, code)
        if key not in self.coils:
            self.coils[key] = ParsedCoil(code=code, machine=machine)
        return self.coils[key]

    def resolve_sku(self, code: str, name: str, sku_type: Optional[str]) -> ParsedSku:
        if code not in self.skus:
            self.skus[code] = ParsedSku(code=code, name=name, type=sku_type)
        return self.skus[code]


class SheetResult:
    """Entries and metadata resolved from one sheet."""

    def __init__(self, sheet_name: str, location_name: str):
        self.sheet_name = sheet_name
        self.location_name = location_name
        self.run_date: Optional[date] = None
        self.pick_entries: List[ParsedPickEntry] = []
        self.issues: List[SheetIssue] = []


class EntityResolver:
    """Walk one sheet's rows and resolve the entities they describe."""

    def __init__(
        self,
        context: ParseContext,
        header_rules: Optional[List[HeaderRule]] = None,
        location_prefix: str = settings.LOCATION_HEADER_PREFIX,
        machine_marker: str = settings.MACHINE_HEADER_MARKER
    ):
        self.context = context
        self.header_rules = header_rules or HEADER_RULES
        self.location_prefix = location_prefix
        self.machine_marker = machine_marker

    def resolve_sheet(self, sheet_name: str, rows: List[Tuple[int, Row]]) -> SheetResult:
        """
        Resolve pick entries from a sheet's non-blank rows.

        Raises:
            SheetFormatError: If the sheet has no recognizable header row
        """
        if not rows:
            raise SheetFormatError("sheet is empty")

        location_name, address, banner_date, cursor = self._parse_location(sheet_name, rows)
        result = SheetResult(sheet_name, location_name)
        location = self.context.resolve_location(location_name, address)

        columns: Optional[Dict[str, int]] = None
        machine: Optional[ParsedMachine] = None
        machine_dates: List[date] = []
        preamble_date: Optional[date] = None

        while cursor < len(rows):
            row_idx, row = rows[cursor]
            first_cell = CellParser.cell_as_string(row, 0)

            if CellParser.has_machine_marker(first_cell, self.machine_marker):
                machine, machine_date, cursor = self._parse_machine_block(rows, cursor, location)
                if machine_date:
                    machine_dates.append(machine_date)
                continue

            detected = detect_columns(row, self.header_rules)
            if is_header_row(detected):
                columns = detected
                logger.debug(f"Sheet '{sheet_name}': header at row {row_idx + 1}: {sorted(columns)}")
                cursor += 1
                continue

            if columns is None:
                if preamble_date is None and machine is None:
                    preamble_date = self._find_date_cell(row)
                cursor += 1
                continue

            entry = self._parse_coil_row(sheet_name, row_idx, row, columns, machine, location, result)
            if entry is not None:
                result.pick_entries.append(entry)
            cursor += 1

        if columns is None:
            raise SheetFormatError("no recognizable header row")

        result.run_date = banner_date or (machine_dates[0] if machine_dates else None) or preamble_date
        return result

    def _parse_location(self, sheet_name: str, rows: List[Tuple[int, Row]]):
        """Return (location name, address, banner date, next row cursor)."""
        first_cell = CellParser.cell_as_string(rows[0][1], 0)
        if not first_cell.startswith(self.location_prefix):
            return sheet_name.strip(), None, None, 0

        name, banner_date = CellParser.parse_location_banner(first_cell, self.location_prefix)
        cursor = 1
        address = None
        if len(rows) > 1:
            candidate_row = rows[1][1]
            candidate = CellParser.cell_as_string(candidate_row, 0)
            if (candidate and not CellParser.has_machine_marker(candidate, self.machine_marker)
                    and not is_header_row(detect_columns(candidate_row, self.header_rules))):
                address = candidate
                cursor = 2
        return name or sheet_name.strip(), address, banner_date, cursor

    def _parse_machine_block(self, rows: List[Tuple[int, Row]], cursor: int, location: ParsedMachineLocation):
        """Resolve a machine marker row and its info row; return (machine, date, next cursor)."""
        row_idx, row = rows[cursor]
        marker_text = CellParser.cell_as_string(row, 0)
        code = CellParser.parse_machine_code(marker_text, self.machine_marker)
        if not code:
            raise SheetFormatError(f"unable to parse machine code from '{marker_text}' at row {row_idx + 1}")

        cursor += 1
        info = CellParser.parse_machine_info('')
        if cursor < len(rows):
            info_row = rows[cursor][1]
            info_text = CellParser.cell_as_string(info_row, 0)
            if (info_text and not CellParser.has_machine_marker(info_text, self.machine_marker)
                    and not is_header_row(detect_columns(info_row, self.header_rules))):
                info = CellParser.parse_machine_info(info_text)
                cursor += 1

        machine_type = self.context.resolve_machine_type(info['machine_type_name'], info['category'])
        machine = self.context.resolve_machine(
            code, info['machine_name'], info['run_date'], location, machine_type
        )
        return machine, info['run_date'], cursor

    @staticmethod
    def _find_date_cell(row: Row) -> Optional[date]:
        for value in row:
            if isinstance(value, date):
                return CellParser.parse_date(value)
            if isinstance(value, str):
                parsed = CellParser.parse_date(value)
                if parsed is None and 'date' in value.casefold():
                    # Label cells such as "Run date: 10/01/2025"
                    parsed = CellParser.find_date_in_text(value)
                if parsed:
                    return parsed
        return None

    def _parse_coil_row(
        self,
        sheet_name: str,
        row_idx: int,
        row: Row,
        columns: Dict[str, int],
        block_machine: Optional[ParsedMachine],
        location: ParsedMachineLocation,
        result: SheetResult
    ) -> Optional[ParsedPickEntry]:
        coil_code = CellParser.cell_as_string(row, columns.get('coil_code'))
        sku_code, sku_name, sku_type = CellParser.parse_sku(
            CellParser.cell_as_string(row, columns.get('sku'))
        )
        sku_code = CellParser.cell_as_string(row, columns.get('sku_code')) or sku_code
        sku_name = CellParser.cell_as_string(row, columns.get('sku_name')) or sku_name
        sku_type = CellParser.cell_as_string(row, columns.get('sku_type')) or sku_type

        if not coil_code and not sku_code and not sku_name:
            return None

        if not sku_code:
            self._record_row_issue(result, sheet_name, row_idx, "row has no SKU code")
            return None

        machine = block_machine
        machine_code = CellParser.cell_as_string(row, columns.get('machine_code'))
        if machine_code:
            machine = self.context.resolve_machine(
                machine_code,
                CellParser.cell_as_string(row, columns.get('machine_name')),
                None,
                location,
                None
            )
        if machine is None:
            self._record_row_issue(result, sheet_name, row_idx, "row is not under a machine")
            return None

        sku = self.context.resolve_sku(sku_code, sku_name, sku_type or None)
        coil = self.context.resolve_coil(machine, coil_code)

        numbers = {
            field: CellParser.parse_optional_number(row[columns[field]] if columns[field] < len(row) else None)
            for field in ('current', 'par', 'need', 'forecast', 'total')
            if field in columns
        }
        notes = CellParser.cell_as_string(row, columns.get('notes')) or None

        coil_item = ParsedCoilItem(
            coil=coil,
            sku=sku,
            current=numbers.get('current'),
            par=numbers.get('par'),
            need=numbers.get('need'),
            forecast=numbers.get('forecast'),
            total=numbers.get('total'),
            notes=notes
        )
        return ParsedPickEntry(
            coil_item=coil_item,
            count=derive_count(coil_item.need, coil_item.par, coil_item.current),
            current=coil_item.current,
            par=coil_item.par,
            need=coil_item.need,
            forecast=coil_item.forecast,
            notes=notes
        )

    @staticmethod
    def _record_row_issue(result: SheetResult, sheet_name: str, row_idx: int, reason: str):
        logger.warning(f"Sheet '{sheet_name}' row {row_idx + 1} skipped: {reason}")
        result.issues.append(SheetIssue(sheet_name=sheet_name, reason=reason, row=row_idx + 1))


class RunAssembler:
    """Merge sheet results into a single ParsedRun."""

    @staticmethod
    def resolve_run_date(sheet_results: List[SheetResult], filename: Optional[str] = None) -> Optional[date]:
        """
        First non-null sheet date in sheet order wins.

        A sheet's date is its explicit date (banner, machine info, date cell)
        or else a date in its sheet name. The filename is the last resort.
        """
        for sheet in sheet_results:
            sheet_date = sheet.run_date or CellParser.find_date_in_text(sheet.sheet_name)
            if sheet_date:
                return sheet_date
        return CellParser.find_date_in_text(filename)

    def assemble(
        self,
        sheet_results: List[SheetResult],
        context: ParseContext,
        issues: List[SheetIssue],
        filename: Optional[str] = None
    ) -> ParsedRunWorkbook:
        run = None
        if sheet_results:
            pick_entries = [entry for sheet in sheet_results for entry in sheet.pick_entries]
            run = ParsedRun(
                run_date=self.resolve_run_date(sheet_results, filename),
                pick_entries=pick_entries
            )

        return ParsedRunWorkbook(
            run=run,
            machines=list(context.machines.values()),
            coils=list(context.coils.values()),
            skus=list(context.skus.values()),
            skipped_sheets=issues
        )


class RunWorkbookParser:
    """
    Parse a run workbook into a ParsedRunWorkbook.

    Sheets that cannot be parsed are skipped and reported in
    `skipped_sheets`; a workbook without any usable sheet yields run=None.
    """

    def __init__(self, header_rules: Optional[List[HeaderRule]] = None):
        self.header_rules = header_rules or HEADER_RULES
        self.assembler = RunAssembler()

    def parse(self, grid: WorkbookGrid, filename: Optional[str] = None) -> ParsedRunWorkbook:
        context = ParseContext()
        sheet_results: List[SheetResult] = []
        issues: List[SheetIssue] = []

        for sheet_name in grid.sheet_names():
            # A skipped sheet must leave no entities behind
            staged = context.stage()
            resolver = EntityResolver(staged, self.header_rules)
            try:
                sheet = resolver.resolve_sheet(sheet_name, read_rows(grid, sheet_name))
            except SheetFormatError as e:
                logger.warning(f"Skipping sheet '{sheet_name}': {e}")
                issues.append(SheetIssue(sheet_name=sheet_name, reason=str(e)))
                continue

            context.commit(staged)

            logger.info(f"Sheet '{sheet_name}': {len(sheet.pick_entries)} pick entries "
                        f"for location '{sheet.location_name}'")
            sheet_results.append(sheet)
            issues.extend(sheet.issues)

        workbook = self.assembler.assemble(sheet_results, context, issues, filename)
        entry_count = len(workbook.run.pick_entries) if workbook.run else 0
        logger.info(f"Parsed {len(sheet_results)} of {len(grid.sheet_names())} sheets: "
                    f"{entry_count} pick entries, {len(workbook.machines)} machines, "
                    f"{len(workbook.skus)} SKUs")
        return workbook


def parse_run_workbook(grid: WorkbookGrid, filename: Optional[str] = None) -> ParsedRunWorkbook:
    """Parse a run workbook grid with the default header rules."""
    return RunWorkbookParser().parse(grid, filename)
