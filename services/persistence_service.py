"""
Persistence Service - storing parsed runs and expiry records.

This module implements the persistence collaborator of the run import core
with SQLAlchemy: find-or-create helpers keyed by natural identifiers, run
import, expiry date refresh, expiry override/ignore storage, and the read
models consumed by the pick sequencer and expiring-items report.

Callers own the transaction: services flush but never commit.
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

import pytz
from sqlalchemy import select
from sqlalchemy.orm import Session

from api.config import settings
from api.schemas.audio_schema import (
    PendingPickEntry, PickLocationRef, PickMachineRef, PickSkuRef
)
from api.schemas.expiry_schema import (
    ExpiringItemsResponse, ExpiringStockEntry, ExpiryIgnore as ExpiryIgnoreRecord,
    ExpiryOverride as ExpiryOverrideRecord
)
from api.schemas.run_import_schema import (
    ParsedMachine, ParsedMachineLocation, ParsedMachineType, ParsedPickEntry,
    ParsedRunWorkbook, ParsedSku
)
from backend.models.schema import (
    Coil, CoilItem, Company, ExpiryIgnore, Location, Machine, MachineType,
    PickEntry, PickEntryExpiryOverride, Run, RunStatus, Sku
)
from services.expiry_service import (
    ExpiryOverrideError, build_expiring_items, compute_expiry_date,
    is_valid_expiry_date, validate_override_split
)
from services.timezone_service import determine_scheduled_for, resolve_timezone, to_utc

logger = logging.getLogger(__name__)

DEFAULT_MACHINE_TYPE = 'General'


class RunImportError(Exception):
    """Raised when a parsed workbook cannot be imported."""


def normalize_integer(value, fallback: Optional[int] = None) -> Optional[int]:
    """Round a parsed quantity for an integer column."""
    if value is None:
        return fallback
    try:
        return int(round(value))
    except (TypeError, ValueError, OverflowError):
        return fallback


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands TIMESTAMP values back naive; they are stored as UTC
    return to_utc(value) if value is not None else None


class PersistenceService:
    """
    Find-or-create access to persisted entities for one company.

    Lookups match natural identifiers exactly, as stored, and are cached per
    instance, so one service should serve one import.
    """

    def __init__(self, db_session: Session, company_id: int):
        self.session = db_session
        self.company_id = company_id
        self._locations: Dict[str, Location] = {}
        self._machine_types: Dict[str, MachineType] = {}
        self._machines: Dict[str, Machine] = {}
        self._coils: Dict[Tuple[int, str], Coil] = {}
        self._skus: Dict[str, Sku] = {}
        self._coil_items: Dict[Tuple[int, int], CoilItem] = {}

    def get_company_timezone(self, default: str = settings.DEFAULT_TIMEZONE) -> str:
        company = self.session.get(Company, self.company_id)
        return resolve_timezone(company.time_zone if company else None, default)

    def get_shelf_life_days(self, sku_id: int) -> int:
        sku = self.session.get(Sku, sku_id)
        return sku.expiry_days if sku and sku.expiry_days else 0

    def find_or_create_location(self, location: Optional[ParsedMachineLocation]) -> Optional[Location]:
        if location is None or not location.name.strip():
            return None
        name = location.name.strip()
        if name in self._locations:
            return self._locations[name]

        record = self.session.execute(
            select(Location).filter_by(company_id=self.company_id, name=name)
        ).scalar_one_or_none()
        if record is None:
            record = Location(company_id=self.company_id, name=name, address=location.address)
            self.session.add(record)
            self.session.flush()
            logger.debug(f"Created location '{name}'")
        elif location.address and record.address != location.address:
            record.address = location.address

        self._locations[name] = record
        return record

    def find_or_create_machine_type(self, machine_type: Optional[ParsedMachineType]) -> MachineType:
        name = (machine_type.name.strip() if machine_type else '') or DEFAULT_MACHINE_TYPE
        category = machine_type.category if machine_type else None
        if name in self._machine_types:
            return self._machine_types[name]

        record = self.session.execute(select(MachineType).filter_by(name=name)).scalar_one_or_none()
        if record is None:
            record = MachineType(name=name, description=category)
            self.session.add(record)
            self.session.flush()
        elif category and record.description != category:
            record.description = category

        self._machine_types[name] = record
        return record

    def find_or_create_machine(
        self,
        machine: ParsedMachine,
        machine_type: Optional[MachineType],
        location: Optional[Location]
    ) -> Machine:
        code = machine.code.strip()
        if not code:
            raise RunImportError("Encountered a machine without a code in the workbook")
        if code in self._machines:
            return self._machines[code]

        record = self.session.execute(
            select(Machine).filter_by(company_id=self.company_id, code=code)
        ).scalar_one_or_none()
        if record is None:
            record = Machine(company_id=self.company_id, code=code)
            self.session.add(record)

        if machine.name:
            record.description = machine.name
        if location is not None:
            record.location = location
        if machine_type is not None:
            record.machine_type = machine_type
        self.session.flush()

        self._machines[code] = record
        return record

    def find_or_create_coil(self, machine: Machine, code: str) -> Coil:
        code = code.strip()
        key = (machine.id, code)
        if key in self._coils:
            return self._coils[key]

        record = self.session.execute(
            select(Coil).filter_by(machine_id=machine.id, code=code)
        ).scalar_one_or_none()
        if record is None:
            record = Coil(machine_id=machine.id, code=code)
            self.session.add(record)
            self.session.flush()

        self._coils[key] = record
        return record

    def find_or_create_sku(self, sku: ParsedSku) -> Sku:
        code = sku.code.strip()
        if not code:
            raise RunImportError("Encountered a SKU without a code in the workbook")
        if code in self._skus:
            return self._skus[code]

        record = self.session.execute(
            select(Sku).filter_by(company_id=self.company_id, code=code)
        ).scalar_one_or_none()
        name = sku.name.strip() if sku.name else ''
        if record is None:
            record = Sku(company_id=self.company_id, code=code, name=name or code, type=sku.type, expiry_days=0)
            self.session.add(record)
            self.session.flush()
        else:
            if name and record.name != name:
                record.name = name
            if sku.type and record.type != sku.type:
                record.type = sku.type

        self._skus[code] = record
        return record

    def find_or_create_coil_item(self, coil: Coil, sku: Sku, par=None) -> CoilItem:
        key = (coil.id, sku.id)
        record = self._coil_items.get(key)
        if record is None:
            record = self.session.execute(
                select(CoilItem).filter_by(coil_id=coil.id, sku_id=sku.id)
            ).scalar_one_or_none()
        if record is None:
            record = CoilItem(coil_id=coil.id, sku_id=sku.id, par=normalize_integer(par, 0))
            self.session.add(record)
            self.session.flush()
        elif par is not None and record.par != normalize_integer(par, 0):
            record.par = normalize_integer(par, 0)

        self._coil_items[key] = record
        return record

    def create_pick_entry(self, run: Run, coil_item: CoilItem, entry: ParsedPickEntry) -> PickEntry:
        """Persist one parsed pick entry; entries are never merged."""
        record = PickEntry(
            run=run,
            coil_item=coil_item,
            status='PENDING',
            count=normalize_integer(entry.count, 0),
            current=normalize_integer(entry.current),
            par=normalize_integer(entry.par),
            need=normalize_integer(entry.need),
            forecast=normalize_integer(entry.forecast),
            total=normalize_integer(entry.coil_item.total),
            notes=entry.notes
        )
        self.session.add(record)
        return record


class RunImportService:
    """Persist parsed run workbooks."""

    def __init__(self, db_session: Session):
        self.session = db_session

    def import_workbook(
        self,
        workbook: ParsedRunWorkbook,
        company_id: int,
        time_zone: Optional[str] = None
    ) -> Run:
        """
        Create a run with one pick entry per parsed entry.

        Args:
            workbook: Result of parse_run_workbook()
            company_id: Owning company
            time_zone: Scheduling timezone; defaults to the company's

        Returns:
            The new Run (flushed, not committed)

        Raises:
            RunImportError: If the workbook has no pick entries
        """
        run = workbook.run
        if run is None or not run.pick_entries:
            raise RunImportError("Workbook did not contain any pick entries to import")

        store = PersistenceService(self.session, company_id)
        tz_name = resolve_timezone(time_zone) if time_zone else store.get_company_timezone()
        scheduled_for = determine_scheduled_for(run.run_date, tz_name)

        run_record = Run(
            company_id=company_id,
            status=RunStatus.CREATED.value,
            scheduled_for=scheduled_for.replace(tzinfo=None)
        )
        self.session.add(run_record)

        for entry in run.pick_entries:
            coil = entry.coil_item.coil
            machine = coil.machine
            location = store.find_or_create_location(machine.location)
            machine_type = store.find_or_create_machine_type(machine.machine_type)
            machine_record = store.find_or_create_machine(machine, machine_type, location)
            coil_record = store.find_or_create_coil(machine_record, coil.code)
            sku_record = store.find_or_create_sku(entry.coil_item.sku)
            coil_item = store.find_or_create_coil_item(coil_record, sku_record, entry.par)
            pick_entry = store.create_pick_entry(run_record, coil_item, entry)
            pick_entry.expiry_date = compute_expiry_date(scheduled_for, tz_name, sku_record.expiry_days)

        self.session.flush()
        logger.info(f"Imported run {run_record.id} for company {company_id}: "
                    f"{len(run.pick_entries)} pick entries, scheduled for {scheduled_for.isoformat()}")
        return run_record

    def refresh_expiry_dates(self, run: Run) -> int:
        """
        Recompute the stored expiry date of every pick entry of a run.

        Returns:
            Number of entries whose expiry date changed
        """
        tz_name = PersistenceService(self.session, run.company_id).get_company_timezone()
        scheduled_for = _as_utc(run.scheduled_for)
        changed = 0
        for entry in run.pick_entries:
            expiry_date = compute_expiry_date(scheduled_for, tz_name, entry.coil_item.sku.expiry_days)
            if entry.expiry_date != expiry_date:
                entry.expiry_date = expiry_date
                changed += 1
        self.session.flush()
        logger.info(f"Run {run.id}: refreshed expiry dates, {changed} changed")
        return changed


class ExpiryRecordService:
    """Store expiry overrides and ignores."""

    def __init__(self, db_session: Session):
        self.session = db_session

    def list_overrides(self, pick_entry_id: int) -> List[ExpiryOverrideRecord]:
        rows = self.session.execute(
            select(PickEntryExpiryOverride)
            .filter_by(pick_entry_id=pick_entry_id)
            .order_by(PickEntryExpiryOverride.expiry_date)
        ).scalars().all()
        return [
            ExpiryOverrideRecord(pick_entry_id=str(row.pick_entry_id), expiry_date=row.expiry_date, quantity=row.quantity)
            for row in rows
        ]

    def replace_overrides(self, pick_entry_id: int, overrides: Sequence[Tuple[str, int]]) -> List[ExpiryOverrideRecord]:
        """
        Replace a pick entry's overrides with a new split.

        Args:
            pick_entry_id: Pick entry to split
            overrides: (expiry date, quantity) pairs; must sum to the entry's count

        Raises:
            ExpiryOverrideError: If the entry is missing or the split is invalid
        """
        entry = self.session.get(PickEntry, pick_entry_id)
        if entry is None:
            raise ExpiryOverrideError(f"Pick entry {pick_entry_id} not found")

        records = [
            ExpiryOverrideRecord(pick_entry_id=str(pick_entry_id), expiry_date=expiry_date, quantity=quantity)
            for expiry_date, quantity in overrides
        ]
        validate_override_split(entry.count, records)

        entry.expiry_overrides.clear()
        self.session.flush()
        for record in records:
            entry.expiry_overrides.append(PickEntryExpiryOverride(
                expiry_date=record.expiry_date,
                quantity=record.quantity
            ))
        self.session.flush()
        logger.info(f"Pick entry {pick_entry_id}: {len(records)} expiry overrides set")
        return sorted(records, key=lambda item: item.expiry_date)

    def clear_overrides(self, pick_entry_id: int) -> int:
        entry = self.session.get(PickEntry, pick_entry_id)
        if entry is None:
            return 0
        removed = len(entry.expiry_overrides)
        entry.expiry_overrides.clear()
        self.session.flush()
        return removed

    def ignore_expiry(
        self,
        company_id: int,
        coil_item_id: int,
        expiry_date: str,
        quantity: int,
        created_by: Optional[str] = None
    ) -> ExpiryIgnore:
        """
        Record a standing ignore; re-ignoring the same item/date updates it.

        Raises:
            ValueError: On a malformed date or non-positive quantity
        """
        if not is_valid_expiry_date(expiry_date):
            raise ValueError(f"Invalid expiry date '{expiry_date}', expected YYYY-MM-DD")
        if quantity <= 0:
            raise ValueError(f"Ignored quantity must be positive, got {quantity}")

        record = self.session.execute(
            select(ExpiryIgnore).filter_by(
                company_id=company_id, coil_item_id=coil_item_id, expiry_date=expiry_date
            )
        ).scalar_one_or_none()
        now = datetime.now(pytz.UTC).replace(tzinfo=None)
        if record is None:
            record = ExpiryIgnore(
                company_id=company_id,
                coil_item_id=coil_item_id,
                expiry_date=expiry_date,
                quantity=quantity,
                ignored_at=now,
                created_by=created_by
            )
            self.session.add(record)
        else:
            record.quantity = quantity
            record.ignored_at = now
            if created_by:
                record.created_by = created_by
        self.session.flush()
        return record

    def remove_ignore(self, company_id: int, coil_item_id: int, expiry_date: str) -> bool:
        record = self.session.execute(
            select(ExpiryIgnore).filter_by(
                company_id=company_id, coil_item_id=coil_item_id, expiry_date=expiry_date
            )
        ).scalar_one_or_none()
        if record is None:
            return False
        self.session.delete(record)
        self.session.flush()
        return True

    def list_ignores(self, company_id: int, coil_item_ids: Optional[Sequence[int]] = None) -> List[ExpiryIgnoreRecord]:
        query = select(ExpiryIgnore).filter_by(company_id=company_id)
        if coil_item_ids is not None:
            query = query.where(ExpiryIgnore.coil_item_id.in_(list(coil_item_ids)))
        rows = self.session.execute(query.order_by(ExpiryIgnore.expiry_date, ExpiryIgnore.id)).scalars().all()
        return [
            ExpiryIgnoreRecord(
                company_id=str(row.company_id),
                coil_item_id=str(row.coil_item_id),
                expiry_date=row.expiry_date,
                quantity=row.quantity,
                ignored_at=row.ignored_at,
                created_by=row.created_by
            )
            for row in rows
        ]


def _machine_for(entry: PickEntry) -> Machine:
    return entry.coil_item.coil.machine


def load_pending_pick_entries(db_session: Session, run_id: int) -> List[PendingPickEntry]:
    """Read a run's pick entries as sequencer input."""
    entries = db_session.execute(
        select(PickEntry).filter_by(run_id=run_id).order_by(PickEntry.id)
    ).scalars().all()

    pending = []
    for entry in entries:
        coil = entry.coil_item.coil
        machine = coil.machine
        location = machine.location
        sku = entry.coil_item.sku
        pending.append(PendingPickEntry(
            id=str(entry.id),
            status=entry.status,
            count=entry.count,
            coil_code=coil.code,
            location=PickLocationRef(id=str(location.id), name=location.name) if location else None,
            machine=PickMachineRef(id=str(machine.id), code=machine.code, description=machine.description),
            sku=PickSkuRef(code=sku.code, name=sku.name, type=sku.type) if sku else None
        ))
    return pending


def build_run_expiring_items(db_session: Session, company_id: int, run_id: int) -> Optional[ExpiringItemsResponse]:
    """
    Expiring items report for a persisted run.

    Returns:
        None when the run does not exist for the company
    """
    run = db_session.get(Run, run_id)
    if run is None or run.company_id != company_id:
        return None

    coil_item_ids = sorted({entry.coil_item_id for entry in run.pick_entries})
    if not coil_item_ids:
        return ExpiringItemsResponse()

    entries = db_session.execute(
        select(PickEntry)
        .join(Run, Run.id == PickEntry.run_id)
        .where(Run.company_id == company_id, PickEntry.coil_item_id.in_(coil_item_ids))
        .order_by(PickEntry.id)
    ).scalars().all()

    stock_entries = []
    for entry in entries:
        coil = entry.coil_item.coil
        machine = _machine_for(entry)
        sku = entry.coil_item.sku
        stock_entries.append(ExpiringStockEntry(
            pick_entry_id=str(entry.id),
            run_id=str(entry.run_id),
            coil_item_id=str(entry.coil_item_id),
            scheduled_for=_as_utc(entry.run.scheduled_for),
            count=entry.count,
            expiry_date=entry.expiry_date,
            overrides=[
                ExpiryOverrideRecord(
                    pick_entry_id=str(entry.id),
                    expiry_date=override.expiry_date,
                    quantity=override.quantity
                )
                for override in entry.expiry_overrides
            ],
            sku_id=str(sku.id),
            sku_code=sku.code,
            sku_name=sku.name,
            machine_id=str(machine.id),
            machine_code=machine.code,
            machine_description=machine.description,
            coil_id=str(coil.id),
            coil_code=coil.code
        ))

    time_zone = PersistenceService(db_session, company_id).get_company_timezone()
    ignores = ExpiryRecordService(db_session).list_ignores(company_id, coil_item_ids)
    return build_expiring_items(
        str(run.id),
        _as_utc(run.scheduled_for),
        time_zone,
        stock_entries,
        ignores
    )
