"""Initial schema for run import system

Revision ID: 001_initial_schema
Revises:
Create Date: 2025-01-06

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001_initial_schema'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Create companies table
    op.create_table(
        'companies',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('time_zone', sa.String(length=64), nullable=True,
                  comment='IANA timezone; UTC is assumed when NULL'),
        sa.Column('created_at', sa.TIMESTAMP(), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        comment='Companies owning SKUs, locations and runs'
    )

    # Create locations table
    op.create_table(
        'locations',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('address', sa.String(length=512), nullable=True),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('company_id', 'name', name='uq_locations_company_name')
    )

    # Create machine_types table
    op.create_table(
        'machine_types',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.String(length=255), nullable=True,
                  comment='Machine category from the import'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name')
    )

    # Create machines table
    op.create_table(
        'machines',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(length=64), nullable=False),
        sa.Column('description', sa.String(length=255), nullable=True),
        sa.Column('location_id', sa.Integer(), nullable=True),
        sa.Column('machine_type_id', sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['machine_type_id'], ['machine_types.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('company_id', 'code', name='uq_machines_company_code')
    )
    op.create_index('idx_machines_location', 'machines', ['location_id'])

    # Create coils table
    op.create_table(
        'coils',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('machine_id', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(length=64), nullable=False),
        sa.ForeignKeyConstraint(['machine_id'], ['machines.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('machine_id', 'code', name='uq_coils_machine_code')
    )

    # Create skus table
    op.create_table(
        'skus',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('type', sa.String(length=255), nullable=True),
        sa.Column('expiry_days', sa.Integer(), server_default='0', nullable=False,
                  comment='Shelf life in days; 0 disables expiry tracking'),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('company_id', 'code', name='uq_skus_company_code')
    )

    # Create coil_items table
    op.create_table(
        'coil_items',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('coil_id', sa.Integer(), nullable=False),
        sa.Column('sku_id', sa.Integer(), nullable=False),
        sa.Column('par', sa.Integer(), server_default='0', nullable=False),
        sa.ForeignKeyConstraint(['coil_id'], ['coils.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['sku_id'], ['skus.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('coil_id', 'sku_id', name='uq_coil_items_coil_sku')
    )

    # Create runs table
    op.create_table(
        'runs',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=20), server_default='CREATED', nullable=False),
        sa.Column('scheduled_for', sa.TIMESTAMP(), nullable=True,
                  comment='UTC instant of local midnight on the run day'),
        sa.Column('created_at', sa.TIMESTAMP(), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.CheckConstraint(
            "status IN ('CREATED', 'PENDING_FRESH', 'PICKING', 'READY')",
            name='runs_status_check'
        ),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_runs_company_scheduled', 'runs', ['company_id', 'scheduled_for'])

    # Create pick_entries table
    op.create_table(
        'pick_entries',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('run_id', sa.Integer(), nullable=False),
        sa.Column('coil_item_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=20), server_default='PENDING', nullable=False),
        sa.Column('count', sa.Integer(), server_default='0', nullable=False),
        sa.Column('current', sa.Integer(), nullable=True),
        sa.Column('par', sa.Integer(), nullable=True),
        sa.Column('need', sa.Integer(), nullable=True),
        sa.Column('forecast', sa.Integer(), nullable=True),
        sa.Column('total', sa.Integer(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('expiry_date', sa.String(length=10), nullable=True,
                  comment='YYYY-MM-DD in company timezone'),
        sa.CheckConstraint(
            "status IN ('PENDING', 'PICKED', 'SKIPPED')",
            name='pick_entries_status_check'
        ),
        sa.ForeignKeyConstraint(['run_id'], ['runs.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['coil_item_id'], ['coil_items.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_pick_entries_run', 'pick_entries', ['run_id'])
    op.create_index('idx_pick_entries_expiry', 'pick_entries', ['expiry_date'])
    op.create_index('idx_pick_entries_coil_item_expiry', 'pick_entries', ['coil_item_id', 'expiry_date'])

    # Create pick_entry_expiry_overrides table
    op.create_table(
        'pick_entry_expiry_overrides',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('pick_entry_id', sa.Integer(), nullable=False),
        sa.Column('expiry_date', sa.String(length=10), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.TIMESTAMP(), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.ForeignKeyConstraint(['pick_entry_id'], ['pick_entries.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('pick_entry_id', 'expiry_date', name='uq_expiry_overrides_entry_date')
    )
    op.create_index('idx_expiry_overrides_expiry', 'pick_entry_expiry_overrides', ['expiry_date'])

    # Create expiry_ignores table
    op.create_table(
        'expiry_ignores',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('coil_item_id', sa.Integer(), nullable=False),
        sa.Column('expiry_date', sa.String(length=10), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('ignored_at', sa.TIMESTAMP(), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.Column('created_by', sa.String(length=255), nullable=True),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['coil_item_id'], ['coil_items.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('company_id', 'coil_item_id', 'expiry_date',
                            name='uq_expiry_ignores_company_item_date')
    )
    op.create_index('idx_expiry_ignores_company_date', 'expiry_ignores', ['company_id', 'expiry_date'])


def downgrade() -> None:
    op.drop_index('idx_expiry_ignores_company_date', table_name='expiry_ignores')
    op.drop_table('expiry_ignores')

    op.drop_index('idx_expiry_overrides_expiry', table_name='pick_entry_expiry_overrides')
    op.drop_table('pick_entry_expiry_overrides')

    op.drop_index('idx_pick_entries_coil_item_expiry', table_name='pick_entries')
    op.drop_index('idx_pick_entries_expiry', table_name='pick_entries')
    op.drop_index('idx_pick_entries_run', table_name='pick_entries')
    op.drop_table('pick_entries')

    op.drop_index('idx_runs_company_scheduled', table_name='runs')
    op.drop_table('runs')

    op.drop_table('coil_items')
    op.drop_table('skus')
    op.drop_table('coils')

    op.drop_index('idx_machines_location', table_name='machines')
    op.drop_table('machines')

    op.drop_table('machine_types')
    op.drop_table('locations')
    op.drop_table('companies')
