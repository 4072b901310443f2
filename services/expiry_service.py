"""
Expiry Service - expiry dates, overrides, ignores and expiring items.

Expiry dates are computed as the run's local calendar date in the company
timezone plus (shelf life - 1) days, and stored as YYYY-MM-DD strings.
Overrides split one pick entry's quantity across several dates; ignores
suppress a coil item/date quantity from expiry warnings.
"""

import logging
import re
from collections import defaultdict
from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

from api.config import settings
from api.schemas.expiry_schema import (
    ExpiringItem, ExpiringItemsResponse, ExpiringItemsSection, ExpiringStockEntry,
    ExpiryAllocation, ExpiryIgnore, ExpiryOverride, ExpirySource
)
from services.timezone_service import (
    DateLike, get_timezone_day_range, local_calendar_date, resolve_timezone
)

logger = logging.getLogger(__name__)

EXPIRY_DATE_PATTERN = re.compile(r'^\d{4}-\d{2}-\d{2}$')

Number = Union[int, float]


class ExpiryOverrideError(ValueError):
    """Raised when expiry overrides do not form a valid split of a pick entry."""


def compute_expiry_date(
    scheduled_for: Optional[DateLike],
    time_zone: Optional[str],
    shelf_life_days: Optional[int],
    default_timezone: str = settings.DEFAULT_TIMEZONE
) -> Optional[str]:
    """
    Compute a pick entry's expiry date.

    The scheduled instant is converted to the company's local calendar date
    first, then shelf_life_days - 1 calendar days are added.

    Returns:
        YYYY-MM-DD, or None when there is no schedule or no positive shelf life
    """
    if scheduled_for is None or not shelf_life_days or shelf_life_days <= 0:
        return None

    tz_name = resolve_timezone(time_zone, default_timezone)
    scheduled_date = local_calendar_date(scheduled_for, tz_name)
    return (scheduled_date + timedelta(days=shelf_life_days - 1)).isoformat()


def is_valid_expiry_date(value) -> bool:
    """Check for a real YYYY-MM-DD date string."""
    if not isinstance(value, str) or not EXPIRY_DATE_PATTERN.match(value):
        return False
    try:
        date.fromisoformat(value)
        return True
    except ValueError:
        return False


class ExpiryCalculator:
    """Compute expiry dates for pick entries."""

    def __init__(self, default_timezone: str = settings.DEFAULT_TIMEZONE):
        self.default_timezone = default_timezone

    def expiry_for(self, source: ExpirySource) -> Optional[str]:
        return compute_expiry_date(
            source.scheduled_for,
            source.time_zone,
            source.shelf_life_days,
            self.default_timezone
        )

    def annotate(self, sources: Iterable[ExpirySource]) -> Dict[str, Optional[str]]:
        """Return pick entry ID -> expiry date (or None) for every source."""
        results = {}
        for source in sources:
            results[source.pick_entry_id] = self.expiry_for(source)
        computed = sum(1 for value in results.values() if value)
        logger.debug(f"Computed {computed} expiry dates for {len(results)} pick entries")
        return results


def validate_override_split(count: Number, overrides: Sequence[ExpiryOverride]) -> None:
    """
    Check that overrides are a valid split of a pick entry's count.

    Raises:
        ExpiryOverrideError: On malformed or duplicate dates, non-positive
            quantities, or a total that differs from count
    """
    seen = set()
    for override in overrides:
        if not is_valid_expiry_date(override.expiry_date):
            raise ExpiryOverrideError(f"Invalid expiry date '{override.expiry_date}', expected YYYY-MM-DD")
        if override.expiry_date in seen:
            raise ExpiryOverrideError(f"Duplicate expiry date {override.expiry_date}")
        if override.quantity <= 0:
            raise ExpiryOverrideError(
                f"Quantity for {override.expiry_date} must be positive, got {override.quantity}"
            )
        seen.add(override.expiry_date)

    if overrides:
        total = sum(override.quantity for override in overrides)
        if total != count:
            raise ExpiryOverrideError(f"Override quantities sum to {total}, pick entry count is {count}")


def resolve_expiry_breakdown(
    count: Optional[Number],
    computed_expiry_date: Optional[str],
    overrides: Sequence[ExpiryOverride] = ()
) -> List[ExpiryAllocation]:
    """
    Quantities per expiry date for one pick entry.

    Overrides replace the computed date entirely; without overrides the
    whole count expires on the computed date.
    """
    if overrides:
        return [
            ExpiryAllocation(expiry_date=override.expiry_date, quantity=override.quantity, source='override')
            for override in sorted(overrides, key=lambda item: item.expiry_date)
        ]
    if computed_expiry_date and count and count > 0:
        return [ExpiryAllocation(expiry_date=computed_expiry_date, quantity=count, source='computed')]
    return []


def summarize_ignores(ignores: Iterable[ExpiryIgnore]) -> Dict[Tuple[str, str], int]:
    """Ignored quantity per (coil item ID, expiry date)."""
    ignored: Dict[Tuple[str, str], int] = defaultdict(int)
    for ignore in ignores:
        ignored[(ignore.coil_item_id, ignore.expiry_date)] += ignore.quantity
    return ignored


def apply_expiry_ignores(
    items: Sequence[ExpiringItem],
    expiry_date: str,
    ignores: Iterable[ExpiryIgnore]
) -> List[ExpiringItem]:
    """Subtract ignored quantities from items expiring on expiry_date; drop emptied items."""
    ignored = summarize_ignores(ignores)
    remaining = []
    for item in items:
        quantity = item.quantity - ignored.get((item.coil_item_id, expiry_date), 0)
        if quantity > 0:
            remaining.append(item.model_copy(update={'quantity': quantity}))
    return remaining


def build_expiring_items(
    run_id: str,
    scheduled_for: Optional[DateLike],
    time_zone: Optional[str],
    stock_entries: Sequence[ExpiringStockEntry],
    ignores: Iterable[ExpiryIgnore] = (),
    day_offsets: Sequence[int] = tuple(settings.EXPIRY_WARNING_DAY_OFFSETS)
) -> ExpiringItemsResponse:
    """
    Items expiring around a run that the run and earlier restocks do not cover.

    For each coil item picked in the run, stock expiring on each warning day
    (the run day plus the configured offsets) is reduced by what was restocked
    on that day: the run's own counts for the run day, and the counts of runs
    scheduled on earlier warning days. Ignored quantities are subtracted last.

    Args:
        run_id: The run being checked
        scheduled_for: The run's scheduled instant
        time_zone: Company timezone
        stock_entries: Pick entries of the company touching the run's coil items,
            this run included
        ignores: Standing expiry ignores of the company
        day_offsets: Warning days relative to the run day

    Returns:
        ExpiringItemsResponse with date sections in ascending order
    """
    if scheduled_for is None:
        return ExpiringItemsResponse()

    tz_name = resolve_timezone(time_zone)
    labels = {
        offset: get_timezone_day_range(tz_name, offset, scheduled_for).label
        for offset in day_offsets
    }
    label_to_offset = {label: offset for offset, label in labels.items()}

    run_coil_items = {entry.coil_item_id for entry in stock_entries if entry.run_id == run_id}
    if not run_coil_items:
        return ExpiringItemsResponse()

    expiring: Dict[Tuple[str, int], Number] = defaultdict(int)
    restocked: Dict[Tuple[str, int], Number] = defaultdict(int)
    details: Dict[str, ExpiringStockEntry] = {}

    for entry in stock_entries:
        if entry.coil_item_id not in run_coil_items:
            continue

        allocations = resolve_expiry_breakdown(entry.count, entry.expiry_date, entry.overrides)
        for allocation in allocations:
            offset = label_to_offset.get(allocation.expiry_date)
            if offset is None:
                continue
            expiring[(entry.coil_item_id, offset)] += allocation.quantity
            details.setdefault(entry.coil_item_id, entry)

        if entry.count <= 0:
            continue
        if entry.run_id == run_id:
            restocked[(entry.coil_item_id, 0)] += entry.count
        elif entry.scheduled_for is not None:
            run_day = local_calendar_date(entry.scheduled_for, tz_name).isoformat()
            offset = label_to_offset.get(run_day)
            if offset is not None and offset != 0:
                restocked[(entry.coil_item_id, offset)] += entry.count

    by_date: Dict[str, List[ExpiringItem]] = defaultdict(list)
    for (coil_item_id, offset), quantity in expiring.items():
        missing = max(0, quantity - restocked.get((coil_item_id, offset), 0))
        if missing <= 0:
            continue
        source = details[coil_item_id]
        by_date[labels[offset]].append(ExpiringItem(
            coil_item_id=coil_item_id,
            quantity=missing,
            sku_id=source.sku_id,
            sku_code=source.sku_code,
            sku_name=source.sku_name,
            machine_id=source.machine_id,
            machine_code=source.machine_code,
            machine_description=source.machine_description,
            coil_id=source.coil_id,
            coil_code=source.coil_code
        ))

    ignores = list(ignores)
    sections = []
    for expiry_date in sorted(by_date):
        items = apply_expiry_ignores(by_date[expiry_date], expiry_date, ignores)
        if not items:
            continue
        items.sort(key=lambda item: (item.sku_name, item.machine_code, item.coil_code, item.coil_item_id))
        sections.append(ExpiringItemsSection(
            expiry_date=expiry_date,
            day_offset=label_to_offset[expiry_date],
            items=items
        ))

    warning_count = sum(len(section.items) for section in sections)
    logger.info(f"Run {run_id}: {warning_count} expiring items across {len(sections)} days")
    return ExpiringItemsResponse(warning_count=warning_count, sections=sections)
