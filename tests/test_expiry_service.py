"""
Tests for expiry dates, overrides, ignores and the expiring-items report.
"""

import pytest
from datetime import date, datetime

import pytz

from api.schemas.expiry_schema import ExpiringStockEntry, ExpiryIgnore, ExpiryOverride, ExpirySource
from services.expiry_service import (
    ExpiryCalculator, ExpiryOverrideError, build_expiring_items, compute_expiry_date,
    is_valid_expiry_date, resolve_expiry_breakdown, validate_override_split
)

UTC = pytz.UTC


def stock(pick_entry_id, run_id, coil_item_id, scheduled_for, count, expiry_date=None, overrides=()):
    return ExpiringStockEntry(
        pick_entry_id=pick_entry_id,
        run_id=run_id,
        coil_item_id=coil_item_id,
        scheduled_for=scheduled_for,
        count=count,
        expiry_date=expiry_date,
        overrides=list(overrides),
        sku_code=f"SKU-{coil_item_id}",
        sku_name=f"Item {coil_item_id}",
        machine_code='M-101',
        coil_code=f"C{coil_item_id}"
    )


class TestComputeExpiryDate:
    """Test expiry date calculation."""

    def test_utc_midnight_in_new_york(self):
        """A date-only schedule keeps its calendar day."""
        scheduled = datetime(2025, 1, 10, tzinfo=UTC)
        assert compute_expiry_date(scheduled, 'America/New_York', 3) == '2025-01-12'

    def test_local_midnight_in_new_york(self):
        """Local midnight schedules resolve to the local day."""
        scheduled = datetime(2025, 1, 10, 5, 0, tzinfo=UTC)
        assert compute_expiry_date(scheduled, 'America/New_York', 3) == '2025-01-12'

    def test_late_evening_instant(self):
        """Instants late in the UTC day can still be the previous local day."""
        scheduled = datetime(2025, 1, 10, 3, 0, tzinfo=UTC)
        assert compute_expiry_date(scheduled, 'America/New_York', 1) == '2025-01-09'

    def test_one_day_shelf_life(self):
        """Shelf life of one day expires on the run day."""
        assert compute_expiry_date(date(2025, 1, 10), 'UTC', 1) == '2025-01-10'

    def test_no_expiry(self):
        """No schedule or no shelf life means no expiry date."""
        assert compute_expiry_date(None, 'UTC', 3) is None
        assert compute_expiry_date(date(2025, 1, 10), 'UTC', 0) is None
        assert compute_expiry_date(date(2025, 1, 10), 'UTC', None) is None

    def test_invalid_timezone(self):
        """Unknown timezones fall back to UTC."""
        scheduled = datetime(2025, 1, 10, 3, 0, tzinfo=UTC)
        assert compute_expiry_date(scheduled, 'Not/AZone', 1) == '2025-01-10'

    def test_calculator_annotate(self):
        """The calculator maps pick entries to their expiry dates."""
        calculator = ExpiryCalculator()
        results = calculator.annotate([
            ExpirySource(pick_entry_id='1', scheduled_for=date(2025, 1, 10), time_zone='UTC', shelf_life_days=5),
            ExpirySource(pick_entry_id='2', scheduled_for=date(2025, 1, 10), time_zone='UTC', shelf_life_days=0),
        ])
        assert results == {'1': '2025-01-14', '2': None}


class TestOverrides:
    """Test override validation and precedence."""

    def test_overrides_replace_computed_date(self):
        """Overrides are used instead of the computed date, in date order."""
        overrides = [
            ExpiryOverride(pick_entry_id='1', expiry_date='2025-01-15', quantity=4),
            ExpiryOverride(pick_entry_id='1', expiry_date='2025-01-13', quantity=6),
        ]
        breakdown = resolve_expiry_breakdown(10, '2025-01-12', overrides)
        assert [(item.expiry_date, item.quantity, item.source) for item in breakdown] == [
            ('2025-01-13', 6, 'override'),
            ('2025-01-15', 4, 'override'),
        ]

    def test_computed_without_overrides(self):
        """The whole count expires on the computed date."""
        breakdown = resolve_expiry_breakdown(10, '2025-01-12')
        assert [(item.expiry_date, item.quantity, item.source) for item in breakdown] == [
            ('2025-01-12', 10, 'computed'),
        ]
        assert resolve_expiry_breakdown(10, None) == []
        assert resolve_expiry_breakdown(0, '2025-01-12') == []

    def test_valid_split(self):
        """Quantities summing to the count are accepted."""
        validate_override_split(10, [
            ExpiryOverride(pick_entry_id='1', expiry_date='2025-01-13', quantity=6),
            ExpiryOverride(pick_entry_id='1', expiry_date='2025-01-15', quantity=4),
        ])
        validate_override_split(10, [])

    @pytest.mark.parametrize('overrides', [
        [('2025-01-13', 6), ('2025-01-15', 3)],
        [('2025-01-13', 6), ('2025-01-13', 4)],
        [('2025-13-01', 10)],
        [('2025-01-13', 10), ('2025-01-14', 0)],
    ])
    def test_invalid_split(self, overrides):
        """Wrong totals, duplicate or malformed dates and zero quantities are rejected."""
        records = [
            ExpiryOverride(pick_entry_id='1', expiry_date=expiry_date, quantity=quantity)
            for expiry_date, quantity in overrides
        ]
        with pytest.raises(ExpiryOverrideError):
            validate_override_split(10, records)

    def test_date_format(self):
        """Only real YYYY-MM-DD dates are valid."""
        assert is_valid_expiry_date('2025-01-12')
        assert not is_valid_expiry_date('2025-1-12')
        assert not is_valid_expiry_date('2025-02-30')
        assert not is_valid_expiry_date(None)


class TestBuildExpiringItems:
    """Test the expiring-items report."""

    RUN_DAY = datetime(2025, 1, 12, tzinfo=UTC)

    @pytest.fixture
    def entries(self):
        earlier = datetime(2025, 1, 8, tzinfo=UTC)
        two_days_before = datetime(2025, 1, 10, tzinfo=UTC)
        return [
            # Item 1: 5 expire on the run day, the run restocks 3
            stock('10', 'r0', '1', earlier, 5, '2025-01-12'),
            stock('30', 'r1', '1', self.RUN_DAY, 3, '2025-01-16'),
            # Item 2: 4 expire two days before, fully restocked that day
            stock('11', 'r0', '2', earlier, 4, '2025-01-10'),
            stock('20', 'r-mid', '2', two_days_before, 4, '2025-01-14'),
            stock('31', 'r1', '2', self.RUN_DAY, 2, '2025-01-20'),
            # Item 3: overrides put 2 on the day before the run
            stock('12', 'r0', '3', earlier, 6, '2025-01-12', [
                ExpiryOverride(pick_entry_id='12', expiry_date='2025-01-11', quantity=2),
                ExpiryOverride(pick_entry_id='12', expiry_date='2025-01-30', quantity=4),
            ]),
            stock('32', 'r1', '3', self.RUN_DAY, 1, '2025-01-17'),
            # Item 4 is not in the run
            stock('13', 'r0', '4', earlier, 9, '2025-01-12'),
        ]

    def test_sections(self, entries):
        """Missing quantities are grouped by expiry date."""
        report = build_expiring_items('r1', self.RUN_DAY, 'UTC', entries)

        assert report.warning_count == 2
        assert [(section.expiry_date, section.day_offset) for section in report.sections] == [
            ('2025-01-11', -1),
            ('2025-01-12', 0),
        ]
        day_before, run_day = report.sections
        assert [(item.coil_item_id, item.quantity) for item in day_before.items] == [('3', 2)]
        assert [(item.coil_item_id, item.quantity) for item in run_day.items] == [('1', 2)]
        assert run_day.items[0].sku_name == 'Item 1'

    def test_ignores_subtract(self, entries):
        """Ignored quantities are removed and empty sections dropped."""
        ignores = [ExpiryIgnore(company_id='1', coil_item_id='1', expiry_date='2025-01-12', quantity=2)]
        report = build_expiring_items('r1', self.RUN_DAY, 'UTC', entries, ignores)

        assert report.warning_count == 1
        assert [section.expiry_date for section in report.sections] == ['2025-01-11']

    def test_partial_ignore(self, entries):
        """A smaller ignore leaves the remainder."""
        ignores = [ExpiryIgnore(company_id='1', coil_item_id='3', expiry_date='2025-01-11', quantity=1)]
        report = build_expiring_items('r1', self.RUN_DAY, 'UTC', entries, ignores)
        assert report.sections[0].items[0].quantity == 1

    def test_unscheduled_run(self, entries):
        """Runs without a schedule have nothing expiring."""
        report = build_expiring_items('r1', None, 'UTC', entries)
        assert report.warning_count == 0
        assert report.sections == []

    def test_unknown_run(self, entries):
        """A run without entries has nothing expiring."""
        assert build_expiring_items('r9', self.RUN_DAY, 'UTC', entries).warning_count == 0
