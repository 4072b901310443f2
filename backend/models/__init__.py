"""Models package for the run import system."""
from backend.models.schema import (
    Base, Company, Location, MachineType, Machine, Coil, Sku, CoilItem,
    Run, RunStatus, PickEntry, PickEntryExpiryOverride, ExpiryIgnore
)

__all__ = [
    'Base', 'Company', 'Location', 'MachineType', 'Machine', 'Coil', 'Sku',
    'CoilItem', 'Run', 'RunStatus', 'PickEntry', 'PickEntryExpiryOverride',
    'ExpiryIgnore'
]
