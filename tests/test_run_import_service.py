"""
Tests for run workbook parsing.

Tests cover both sheet layouts, entity deduplication, count derivation,
run date resolution and per-sheet failure handling.
"""

import pytest
from datetime import date
from services.run_import_service import (
    EntityResolver, ParseContext, SheetFormatError, derive_count, parse_run_workbook
)
from services.workbook_grid import InMemoryWorkbookGrid, read_rows


class TestDeriveCount:
    """Test the pick count fallback chain."""

    def test_need_wins(self):
        """An explicit need is used even when par/current disagree."""
        assert derive_count(8, 10, 5) == 8
        assert derive_count(0, 10, 5) == 0

    def test_par_minus_current(self):
        """Without need, the shortfall from par is picked."""
        assert derive_count(None, 10, 4) == 6

    def test_never_negative(self):
        """Overstocked coils need nothing."""
        assert derive_count(None, 6, 9) == 0

    def test_unknown(self):
        """Missing par or current leaves the count unknown."""
        assert derive_count(None, 10, None) is None
        assert derive_count(None, None, 3) is None


class TestBlockLayout:
    """Test banner + machine block sheets."""

    def test_entries(self, run_grid):
        """Each coil row becomes one pick entry in sheet order."""
        workbook = parse_run_workbook(run_grid)
        entries = workbook.run.pick_entries

        assert [entry.coil_item.coil.code for entry in entries] == ['A1', 'A2', 'B1']
        assert [entry.count for entry in entries] == [8, 7, None]

        first = entries[0]
        assert first.coil_item.sku.code == 'SKU-1'
        assert first.coil_item.sku.name == 'Salted Chips'
        assert first.coil_item.sku.type == 'Chips'
        assert first.coil_item.total == 8
        assert entries[1].notes == 'check seal'

    def test_location_and_machine(self, run_grid):
        """Banner, address and machine info lines are resolved."""
        workbook = parse_run_workbook(run_grid)
        machine = workbook.run.pick_entries[0].coil_item.coil.machine

        assert machine.code == 'M-101'
        assert machine.name == 'Lobby Snack'
        assert machine.run_date == date(2025, 1, 10)
        assert machine.location.name == 'Central Library'
        assert machine.location.address == '1 Main St'
        assert machine.machine_type.name == 'Snack'
        assert machine.machine_type.category == 'Ambient'

        second = workbook.run.pick_entries[2].coil_item.coil.machine
        assert second.code == 'M-102'
        assert second.machine_type.name == 'Drinks'
        assert second.location == machine.location

    def test_numeric_placeholders_are_null(self, run_grid):
        """Error cells and placeholders are missing values, not zeros."""
        entry = parse_run_workbook(run_grid).run.pick_entries[2]
        assert entry.current is None
        assert entry.need is None
        assert entry.par == 6
        assert entry.count is None

    def test_distinct_entities(self, run_grid):
        """Machines, coils and SKUs are listed once, first seen first."""
        workbook = parse_run_workbook(run_grid)
        assert [machine.code for machine in workbook.machines] == ['M-101', 'M-102']
        assert [sku.code for sku in workbook.skus] == ['SKU-1', 'SKU-2']
        assert len(workbook.coils) == 3

    def test_run_date_from_banner(self, run_grid):
        """The banner date is the run date."""
        assert parse_run_workbook(run_grid).run.run_date == date(2025, 1, 10)

    def test_idempotent(self, run_grid):
        """Parsing the same grid twice gives equal results."""
        assert parse_run_workbook(run_grid) == parse_run_workbook(run_grid)


class TestFlatLayout:
    """Test one-row-per-coil sheets."""

    def test_entries(self, gym_rows):
        """Machine and SKU come from their own columns."""
        workbook = parse_run_workbook(InMemoryWorkbookGrid({'Gym': gym_rows}))
        entries = workbook.run.pick_entries

        assert len(entries) == 2
        machine = entries[0].coil_item.coil.machine
        assert machine.code == 'M-201'
        assert machine.name == 'Gym Vendor'
        assert machine.location.name == 'Gym'
        assert machine.machine_type is None

        assert entries[0].coil_item.sku.code == 'SKU-3'
        assert entries[0].coil_item.sku.name == 'Protein Bar'
        assert entries[0].coil_item.sku.type == 'Bars'
        assert entries[1].coil_item.sku.type is None

        assert [entry.count for entry in entries] == [6, 0]
        assert len(workbook.machines) == 1

    def test_run_date_from_date_cell(self, gym_rows):
        """A labelled date above the table is the sheet's date."""
        workbook = parse_run_workbook(InMemoryWorkbookGrid({'Gym': gym_rows}))
        assert workbook.run.run_date == date(2025, 1, 12)


class TestDeduplication:
    """Test entity sharing across rows and sheets."""

    def test_machine_shared_across_sheets(self, library_rows):
        """A machine repeated on another sheet keeps its first-seen data."""
        annex = [
            ['Location: Annex'],
            ['Lobby Snack - Machine M-101'],
            ['Coil', 'Product', 'Need'],
            ['A9', 'SKU-5 - Gum', 3],
        ]
        workbook = parse_run_workbook(InMemoryWorkbookGrid({
            'Central Library': library_rows,
            'Annex': annex,
        }))

        assert [machine.code for machine in workbook.machines] == ['M-101', 'M-102']
        machines = {entry.coil_item.coil.machine for entry in workbook.run.pick_entries}
        assert len(machines) == 2

        annex_entry = workbook.run.pick_entries[-1]
        assert annex_entry.coil_item.coil.machine.location.name == 'Central Library'
        assert annex_entry.coil_item.coil.code == 'A9'

    def test_staged_context_does_not_touch_parent(self):
        """Entities resolved in a staged context reach the parent only on commit."""
        context = ParseContext()
        staged = context.stage()
        location = staged.resolve_location('Depot', None)
        staged.resolve_machine('M-1', 'Depot Snack', None, location, None)

        assert context.machines == {}
        assert context.locations == {}

        context.commit(staged)
        assert list(context.machines) == ['M-1']

    def test_sku_shared_across_machines(self, run_grid):
        """The same SKU code resolves to one SKU on every machine."""
        entries = parse_run_workbook(run_grid).run.pick_entries
        assert entries[0].coil_item.sku == entries[2].coil_item.sku
        assert entries[0].coil_item.coil != entries[2].coil_item.coil


class TestRunDate:
    """Test run date resolution across sheets."""

    def test_first_dated_sheet_wins(self, library_rows, gym_rows):
        """Sheets are consulted in order."""
        workbook = parse_run_workbook(InMemoryWorkbookGrid({
            'Gym': gym_rows,
            'Central Library': library_rows,
        }))
        assert workbook.run.run_date == date(2025, 1, 12)

    def test_banner_beats_machine_date(self):
        """The banner date outranks machine info dates."""
        rows = [
            ['Location: Depot (10/01/2025)'],
            ['Depot Snack - Machine M-9'],
            ['Depot Snack (09/01/2025)'],
            ['Coil', 'Product', 'Need'],
            ['A1', 'SKU-1 - Chips', 2],
        ]
        workbook = parse_run_workbook(InMemoryWorkbookGrid({'Depot': rows}))
        assert workbook.run.run_date == date(2025, 1, 10)

    def test_machine_date(self):
        """Without a banner date the first machine date is used."""
        rows = [
            ['Location: Depot'],
            ['Depot Snack - Machine M-9'],
            ['Depot Snack (05/01/2025)'],
            ['Coil', 'Product', 'Need'],
            ['A1', 'SKU-1 - Chips', 2],
        ]
        workbook = parse_run_workbook(InMemoryWorkbookGrid({'Depot': rows}))
        assert workbook.run.run_date == date(2025, 1, 5)

    def test_filename_fallback(self):
        """The filename is consulted when no sheet carries a date."""
        grid = InMemoryWorkbookGrid({'Depot': [
            ['Machine', 'Coil', 'Product'],
            ['M-1', 'A1', 'SKU-1 - Chips'],
        ]})
        assert parse_run_workbook(grid, 'run_2025-02-03.xlsx').run.run_date == date(2025, 2, 3)
        assert parse_run_workbook(grid).run.run_date is None


class TestFailureHandling:
    """Test that bad sheets and rows are skipped, not fatal."""

    def test_sheet_without_header_is_skipped(self, run_grid):
        """A summary sheet is reported and the rest of the workbook parsed."""
        workbook = parse_run_workbook(run_grid)
        assert len(workbook.run.pick_entries) == 3
        assert len(workbook.skipped_sheets) == 1
        issue = workbook.skipped_sheets[0]
        assert issue.sheet_name == 'Summary'
        assert issue.reason == 'no recognizable header row'
        assert issue.row is None

    def test_skipped_sheet_leaves_no_entities(self):
        """Machines and locations seen on a skipped sheet do not leak into later sheets."""
        bad_site = [
            ['Location: Bad Site'],
            ['Kiosk - Machine M1'],
            ['Kiosk Snack (Snack)'],
        ]
        good_site = [
            ['Location: Good Site'],
            ['Lobby - Machine M1'],
            ['Lobby Drinks (Drinks)'],
            ['Coil', 'Product', 'Need'],
            ['A1', 'SKU-1 - Chips', 2],
        ]
        workbook = parse_run_workbook(InMemoryWorkbookGrid({
            'Bad Site': bad_site,
            'Good Site': good_site,
        }))

        assert [(issue.sheet_name, issue.reason) for issue in workbook.skipped_sheets] == [
            ('Bad Site', 'no recognizable header row'),
        ]
        machine = workbook.run.pick_entries[0].coil_item.coil.machine
        assert machine.location.name == 'Good Site'
        assert machine.name == 'Lobby Drinks'
        assert machine.machine_type.name == 'Drinks'
        assert workbook.machines == [machine]

    def test_machine_marker_without_code(self):
        """A marker row with no code skips the sheet instead of reusing the previous machine."""
        rows = [
            ['Hall - Machine M7'],
            ['Coil', 'Product', 'Need'],
            ['B1', 'SKU-1 - Chips', 2],
            ['Hall - Machine '],
            ['Drinks'],
            ['C1', 'SKU-2 - Cola', 4],
        ]
        workbook = parse_run_workbook(InMemoryWorkbookGrid({'Hall': rows}))

        assert workbook.run is None
        assert workbook.machines == []
        assert len(workbook.skipped_sheets) == 1
        assert workbook.skipped_sheets[0].sheet_name == 'Hall'
        assert workbook.skipped_sheets[0].reason.startswith('unable to parse machine code')

    def test_empty_sheet(self):
        """Empty sheets raise SheetFormatError in the resolver."""
        resolver = EntityResolver(ParseContext())
        with pytest.raises(SheetFormatError):
            resolver.resolve_sheet('Blank', [])

    def test_no_usable_sheets(self, summary_rows):
        """A workbook without any usable sheet has no run."""
        workbook = parse_run_workbook(InMemoryWorkbookGrid({'Summary': summary_rows, 'Blank': []}))
        assert workbook.run is None
        assert [issue.sheet_name for issue in workbook.skipped_sheets] == ['Summary', 'Blank']

    def test_row_without_sku_is_reported(self):
        """Rows without a SKU code are skipped with their row number."""
        rows = [
            ['Depot Snack - Machine M-9'],
            ['Coil', 'Product', 'Need'],
            ['A1', None, 2],
            ['A2', 'SKU-2 - Cola', 4],
        ]
        workbook = parse_run_workbook(InMemoryWorkbookGrid({'Depot': rows}))
        assert [entry.coil_item.coil.code for entry in workbook.run.pick_entries] == ['A2']
        assert workbook.skipped_sheets[0].row == 3
        assert workbook.skipped_sheets[0].reason == 'row has no SKU code'

    def test_row_outside_machine_is_reported(self):
        """Block layout rows before any machine have nowhere to go."""
        rows = [
            ['Coil', 'Product', 'Need'],
            ['A1', 'SKU-1 - Chips', 2],
        ]
        workbook = parse_run_workbook(InMemoryWorkbookGrid({'Depot': rows}))
        assert workbook.run.pick_entries == []
        assert workbook.skipped_sheets[0].reason == 'row is not under a machine'


class TestReadRows:
    """Test row materialization."""

    def test_blank_rows_dropped(self, library_rows):
        """Blank rows are skipped but row indexes are preserved."""
        rows = read_rows(InMemoryWorkbookGrid({'S': library_rows}), 'S')
        indexes = [row_idx for row_idx, _ in rows]
        assert 7 not in indexes
        assert indexes[-1] == 11
