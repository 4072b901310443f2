"""
Pick Sequencer - ordered audio commands for packing a run.

Pending pick entries are sorted by location name, machine code, count
(largest first), coil code and SKU name, then announced as a flat list:
one location command per location, one machine command per machine, and one
item command per entry.
"""

import logging
from typing import Iterable, List, Optional, Tuple, Union

from api.schemas.audio_schema import (
    AudioCommand, AudioCommandType, PendingPickEntry, PickEntryStatus,
    PickLocationRef, PickMachineRef, PickSkuRef
)
from api.schemas.run_import_schema import ParsedRun

logger = logging.getLogger(__name__)

NO_LOCATION_KEY = 'no-location'
NO_MACHINE_KEY = 'no-machine'
UNKNOWN_NAME = 'Unknown'


def _text_key(value: Optional[str]) -> Tuple[int, str, str]:
    """Case-insensitive ascending key; missing values sort last."""
    if not value:
        return (1, '', '')
    return (0, value.casefold(), value)


def format_count(count: Union[int, float, None]) -> str:
    if isinstance(count, float) and count.is_integer():
        count = int(count)
    return str(count)


def build_item_text(sku: PickSkuRef, count, coil_code: Optional[str]) -> str:
    """Item text: "{skuName}[, {skuType}]. Need {count}[. Coil {coilCode}]"."""
    text = sku.name or 'Unknown item'
    if sku.type and sku.type.strip():
        text += f", {sku.type.strip()}"
    text += f". Need {format_count(count)}"
    if coil_code:
        text += f". Coil {coil_code}"
    return text


class PickSequencer:
    """Produce the audio command sequence for a set of pick entries."""

    @staticmethod
    def location_key(entry: PendingPickEntry) -> str:
        location = entry.location
        if location is None or not (location.id or location.name):
            return NO_LOCATION_KEY
        return location.id or location.name

    @staticmethod
    def machine_key(entry: PendingPickEntry) -> str:
        machine = entry.machine
        if machine is None or not (machine.id or machine.code):
            return NO_MACHINE_KEY
        return machine.id or machine.code

    @staticmethod
    def machine_label(machine: Optional[PickMachineRef]) -> str:
        if machine is None:
            return UNKNOWN_NAME
        return machine.code or machine.description or UNKNOWN_NAME

    @classmethod
    def sort_key(cls, entry: PendingPickEntry):
        """
        Location name, machine code, count descending, coil code, SKU name.

        Location/machine identity and the entry ID only break remaining ties,
        so the order never depends on input order.
        """
        location_name = entry.location.name if entry.location else None
        machine_code = entry.machine.code if entry.machine else None
        sku_name = entry.sku.name if entry.sku else None
        return (
            _text_key(location_name),
            cls.location_key(entry),
            _text_key(machine_code),
            cls.machine_key(entry),
            -(entry.count or 0),
            _text_key(entry.coil_code),
            _text_key(sku_name),
            entry.id,
        )

    @staticmethod
    def is_pending(entry: PendingPickEntry) -> bool:
        return entry.status == PickEntryStatus.PENDING and entry.count is not None and entry.count > 0

    def build_audio_commands(self, entries: Iterable[PendingPickEntry]) -> List[AudioCommand]:
        """
        Build the ordered audio command list.

        Only pending entries with a positive count are announced; entries
        without a SKU are dropped.
        """
        pending = sorted((entry for entry in entries if self.is_pending(entry)), key=self.sort_key)

        commands: List[AudioCommand] = []
        seen_locations = set()
        seen_machines = set()
        skipped = 0

        for entry in pending:
            if entry.sku is None:
                skipped += 1
                logger.debug(f"Pick entry {entry.id} has no SKU, not announced")
                continue

            location_key = self.location_key(entry)
            location_name = (entry.location.name if entry.location else None) or UNKNOWN_NAME
            if location_key not in seen_locations:
                seen_locations.add(location_key)
                commands.append(AudioCommand(
                    id=f"location-{location_key}",
                    type=AudioCommandType.LOCATION,
                    audio_command=f"Location {location_name}",
                    location_name=location_name,
                ))

            machine_key = self.machine_key(entry)
            machine_name = self.machine_label(entry.machine)
            if (location_key, machine_key) not in seen_machines:
                seen_machines.add((location_key, machine_key))
                commands.append(AudioCommand(
                    id=f"machine-{machine_key}",
                    type=AudioCommandType.MACHINE,
                    audio_command=f"Machine {machine_name}",
                    machine_name=machine_name,
                ))

            commands.append(AudioCommand(
                id=entry.id,
                type=AudioCommandType.ITEM,
                audio_command=build_item_text(entry.sku, entry.count, entry.coil_code),
                pick_entry_id=entry.id,
                count=entry.count,
                location_name=location_name,
                machine_name=machine_name,
                sku_name=entry.sku.name or 'Unknown item',
                sku_code=entry.sku.code,
                coil_code=entry.coil_code or '',
            ))

        if skipped:
            logger.warning(f"Skipped {skipped} pick entries without a SKU")
        logger.info(f"Built {len(commands)} audio commands from {len(pending)} pending pick entries")
        return commands


def pending_entries_from_parsed_run(run: ParsedRun) -> List[PendingPickEntry]:
    """
    View a freshly parsed run as pending pick entries.

    Entry IDs are 1-based row positions within the run.
    """
    entries = []
    for idx, parsed in enumerate(run.pick_entries, 1):
        coil = parsed.coil_item.coil
        machine = coil.machine
        location = machine.location
        sku = parsed.coil_item.sku
        entries.append(PendingPickEntry(
            id=str(idx),
            count=parsed.count,
            coil_code=coil.code,
            location=PickLocationRef(name=location.name) if location else None,
            machine=PickMachineRef(code=machine.code, description=machine.name or None),
            sku=PickSkuRef(code=sku.code, name=sku.name or None, type=sku.type),
        ))
    return entries
