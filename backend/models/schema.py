"""
SQLAlchemy models for the run import system.

This module defines the database schema using SQLAlchemy ORM,
matching the schema defined in Alembic migrations.
"""

from enum import Enum
from sqlalchemy import (
    Column, Integer, String, Text, TIMESTAMP, ForeignKey,
    CheckConstraint, Index, UniqueConstraint, text
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


class RunStatus(str, Enum):
    """Run lifecycle status."""
    CREATED = 'CREATED'
    PENDING_FRESH = 'PENDING_FRESH'
    PICKING = 'PICKING'
    READY = 'READY'


class Company(Base):
    """A company owning SKUs, locations and runs."""

    __tablename__ = 'companies'

    id = Column(Integer, primary_key=True, autoincrement=True, nullable=False)
    name = Column(String(255), nullable=False)
    time_zone = Column(
        String(64),
        nullable=True,
        comment='IANA timezone; UTC is assumed when NULL'
    )
    created_at = Column(TIMESTAMP, server_default=text('CURRENT_TIMESTAMP'), nullable=False)

    runs = relationship('Run', back_populates='company')

    def __repr__(self):
        return f"<Company(id={self.id}, name='{self.name}', time_zone='{self.time_zone}')>"


class Location(Base):
    """A site visited on runs."""

    __tablename__ = 'locations'
    __table_args__ = (
        UniqueConstraint('company_id', 'name', name='uq_locations_company_name'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True, nullable=False)
    company_id = Column(Integer, ForeignKey('companies.id', ondelete='CASCADE'), nullable=False)
    name = Column(String(255), nullable=False)
    address = Column(String(512), nullable=True)

    machines = relationship('Machine', back_populates='location')


class MachineType(Base):
    """Machine model, shared across companies."""

    __tablename__ = 'machine_types'

    id = Column(Integer, primary_key=True, autoincrement=True, nullable=False)
    name = Column(String(255), nullable=False, unique=True)
    description = Column(String(255), nullable=True, comment='Machine category from the import')


class Machine(Base):
    """A vending machine, identified by code within a company."""

    __tablename__ = 'machines'
    __table_args__ = (
        UniqueConstraint('company_id', 'code', name='uq_machines_company_code'),
        Index('idx_machines_location', 'location_id'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True, nullable=False)
    company_id = Column(Integer, ForeignKey('companies.id', ondelete='CASCADE'), nullable=False)
    code = Column(String(64), nullable=False)
    description = Column(String(255), nullable=True)
    location_id = Column(Integer, ForeignKey('locations.id', ondelete='SET NULL'), nullable=True)
    machine_type_id = Column(Integer, ForeignKey('machine_types.id'), nullable=True)

    location = relationship('Location', back_populates='machines')
    machine_type = relationship('MachineType')
    coils = relationship('Coil', back_populates='machine', cascade='all, delete-orphan')


class Coil(Base):
    """A slot within a machine."""

    __tablename__ = 'coils'
    __table_args__ = (
        UniqueConstraint('machine_id', 'code', name='uq_coils_machine_code'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True, nullable=False)
    machine_id = Column(Integer, ForeignKey('machines.id', ondelete='CASCADE'), nullable=False)
    code = Column(String(64), nullable=False)

    machine = relationship('Machine', back_populates='coils')
    coil_items = relationship('CoilItem', back_populates='coil', cascade='all, delete-orphan')


class Sku(Base):
    """A product, unique by code within a company."""

    __tablename__ = 'skus'
    __table_args__ = (
        UniqueConstraint('company_id', 'code', name='uq_skus_company_code'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True, nullable=False)
    company_id = Column(Integer, ForeignKey('companies.id', ondelete='CASCADE'), nullable=False)
    code = Column(String(64), nullable=False)
    name = Column(String(255), nullable=False)
    type = Column(String(255), nullable=True)
    expiry_days = Column(
        Integer,
        server_default='0',
        nullable=False,
        comment='Shelf life in days; 0 disables expiry tracking'
    )


class CoilItem(Base):
    """A SKU loaded in a coil."""

    __tablename__ = 'coil_items'
    __table_args__ = (
        UniqueConstraint('coil_id', 'sku_id', name='uq_coil_items_coil_sku'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True, nullable=False)
    coil_id = Column(Integer, ForeignKey('coils.id', ondelete='CASCADE'), nullable=False)
    sku_id = Column(Integer, ForeignKey('skus.id', ondelete='CASCADE'), nullable=False)
    par = Column(Integer, server_default='0', nullable=False)

    coil = relationship('Coil', back_populates='coil_items')
    sku = relationship('Sku')


class Run(Base):
    """A scheduled restocking run."""

    __tablename__ = 'runs'
    __table_args__ = (
        CheckConstraint(
            "status IN ('CREATED', 'PENDING_FRESH', 'PICKING', 'READY')",
            name='runs_status_check'
        ),
        Index('idx_runs_company_scheduled', 'company_id', 'scheduled_for'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True, nullable=False)
    company_id = Column(Integer, ForeignKey('companies.id', ondelete='CASCADE'), nullable=False)
    status = Column(String(20), server_default=RunStatus.CREATED.value, nullable=False)
    scheduled_for = Column(TIMESTAMP, nullable=True, comment='UTC instant of local midnight on the run day')
    created_at = Column(TIMESTAMP, server_default=text('CURRENT_TIMESTAMP'), nullable=False)

    company = relationship('Company', back_populates='runs')
    pick_entries = relationship('PickEntry', back_populates='run', cascade='all, delete-orphan')

    def __repr__(self):
        return f"<Run(id={self.id}, company_id={self.company_id}, scheduled_for={self.scheduled_for})>"


class PickEntry(Base):
    """The need for a quantity of a coil item on a run."""

    __tablename__ = 'pick_entries'
    __table_args__ = (
        CheckConstraint(
            "status IN ('PENDING', 'PICKED', 'SKIPPED')",
            name='pick_entries_status_check'
        ),
        Index('idx_pick_entries_run', 'run_id'),
        Index('idx_pick_entries_expiry', 'expiry_date'),
        Index('idx_pick_entries_coil_item_expiry', 'coil_item_id', 'expiry_date'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True, nullable=False)
    run_id = Column(Integer, ForeignKey('runs.id', ondelete='CASCADE'), nullable=False)
    coil_item_id = Column(Integer, ForeignKey('coil_items.id', ondelete='CASCADE'), nullable=False)
    status = Column(String(20), server_default='PENDING', nullable=False)
    count = Column(Integer, server_default='0', nullable=False)
    current = Column(Integer, nullable=True)
    par = Column(Integer, nullable=True)
    need = Column(Integer, nullable=True)
    forecast = Column(Integer, nullable=True)
    total = Column(Integer, nullable=True)
    notes = Column(Text, nullable=True)
    expiry_date = Column(String(10), nullable=True, comment='YYYY-MM-DD in company timezone')

    run = relationship('Run', back_populates='pick_entries')
    coil_item = relationship('CoilItem')
    expiry_overrides = relationship(
        'PickEntryExpiryOverride',
        back_populates='pick_entry',
        cascade='all, delete-orphan',
        order_by='PickEntryExpiryOverride.expiry_date'
    )


class PickEntryExpiryOverride(Base):
    """Quantity of a pick entry expiring on a specific date."""

    __tablename__ = 'pick_entry_expiry_overrides'
    __table_args__ = (
        UniqueConstraint('pick_entry_id', 'expiry_date', name='uq_expiry_overrides_entry_date'),
        Index('idx_expiry_overrides_expiry', 'expiry_date'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True, nullable=False)
    pick_entry_id = Column(Integer, ForeignKey('pick_entries.id', ondelete='CASCADE'), nullable=False)
    expiry_date = Column(String(10), nullable=False)
    quantity = Column(Integer, nullable=False)
    created_at = Column(TIMESTAMP, server_default=text('CURRENT_TIMESTAMP'), nullable=False)
    updated_at = Column(TIMESTAMP, server_default=text('CURRENT_TIMESTAMP'), nullable=False)

    pick_entry = relationship('PickEntry', back_populates='expiry_overrides')


class ExpiryIgnore(Base):
    """Standing exemption from expiry warnings for a coil item and date."""

    __tablename__ = 'expiry_ignores'
    __table_args__ = (
        UniqueConstraint('company_id', 'coil_item_id', 'expiry_date', name='uq_expiry_ignores_company_item_date'),
        Index('idx_expiry_ignores_company_date', 'company_id', 'expiry_date'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True, nullable=False)
    company_id = Column(Integer, ForeignKey('companies.id', ondelete='CASCADE'), nullable=False)
    coil_item_id = Column(Integer, ForeignKey('coil_items.id', ondelete='CASCADE'), nullable=False)
    expiry_date = Column(String(10), nullable=False)
    quantity = Column(Integer, nullable=False)
    ignored_at = Column(TIMESTAMP, server_default=text('CURRENT_TIMESTAMP'), nullable=False)
    created_by = Column(String(255), nullable=True)

    def __repr__(self):
        return (f"<ExpiryIgnore(company_id={self.company_id}, coil_item_id={self.coil_item_id}, "
                f"expiry_date='{self.expiry_date}', quantity={self.quantity})>")
