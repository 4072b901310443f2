"""
Pytest configuration and fixtures for run import tests.
"""

import os
import pytest
from datetime import datetime
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from dotenv import load_dotenv

from backend.models.schema import Base, Company
from services.workbook_grid import InMemoryWorkbookGrid

# Load environment
load_dotenv()

# Test database URL (in-memory SQLite unless overridden)
TEST_DATABASE_URL = os.getenv('TEST_DATABASE_URL', 'sqlite://')

HEADER = ['Coil', 'Product', 'Current', 'Par', 'Need', 'Forecast', 'Total', 'Notes']


@pytest.fixture(scope='session')
def engine():
    """Create test database engine."""
    eng = create_engine(TEST_DATABASE_URL)
    Base.metadata.create_all(eng)
    yield eng
    Base.metadata.drop_all(eng)
    eng.dispose()


@pytest.fixture(scope='function')
def session(engine):
    """Create a new database session for a test."""
    connection = engine.connect()
    transaction = connection.begin()
    Session = sessionmaker(bind=connection)
    sess = Session()

    yield sess

    sess.close()
    transaction.rollback()
    connection.close()


@pytest.fixture
def company(session):
    """A company scheduling runs in New York time."""
    record = Company(name='Acme Vending', time_zone='America/New_York')
    session.add(record)
    session.flush()
    return record


@pytest.fixture
def library_rows():
    """Block layout sheet: banner, address, two machines with their own headers."""
    return [
        ['Location: Central Library (10/01/2025)'],
        ['1 Main St'],
        ['Lobby Snack - Machine M-101'],
        ['Lobby Snack, Ambient (Snack) (10/01/2025)'],
        HEADER,
        ['A1', 'SKU-1 - Salted Chips - Chips', 2, 10, 8, None, 8, None],
        ['A2', 'SKU-2 - Cola', 5, 12, None, None, None, 'check seal'],
        [None],
        ['Break Room - Machine M-102'],
        ['Break Room Drinks, Chilled (Drinks)'],
        HEADER,
        ['B1', 'SKU-1 - Salted Chips - Chips', '#N/A', 6, 'n/a', None, None, None],
    ]


@pytest.fixture
def gym_rows():
    """Flat layout sheet: one row per coil, machine code in its own column."""
    return [
        ['Run date: 12/01/2025'],
        ['Machine', 'Machine Name', 'Coil', 'SKU Code', 'SKU Name', 'SKU Type', 'Par', 'Current', 'Need'],
        ['M-201', 'Gym Vendor', 'C1', 'SKU-3', 'Protein Bar', 'Bars', 10, 4, None],
        ['M-201', 'Gym Vendor', 'C2', 'SKU-4', 'Water', None, 8, 8, None],
    ]


@pytest.fixture
def summary_rows():
    """A sheet with no coil table."""
    return [
        ['Totals', 42],
        ['Generated', datetime(2025, 1, 9, 18, 30)],
    ]


@pytest.fixture
def run_grid(library_rows, summary_rows):
    """Workbook with one usable sheet and one summary sheet."""
    return InMemoryWorkbookGrid({
        'Central Library': library_rows,
        'Summary': summary_rows,
    })
