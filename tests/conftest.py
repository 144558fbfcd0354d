"""
Pytest Configuration and Fixtures
"""

import os
import sys
import pytest

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(os.path.dirname(__file__)), 'src'))

from surety_rail.config import SuretyConfig, WEI_PER_ETHER
from surety_rail.enforcement.rail import SuretyRail
from surety_rail.persistence.database import Database

OWNER = "0xowner"
FIRST_AIRLINE = "0xairline1"
AIRLINES = ["0xairline2", "0xairline3", "0xairline4"]
FIFTH_AIRLINE = "0xairline5"
OUTSIDER = "0xoutsider"
BOND = 10 * WEI_PER_ETHER


@pytest.fixture
def config():
    """Default consortium configuration."""
    return SuretyConfig(owner_id=OWNER)


@pytest.fixture
def rail(config):
    """Fresh rail with the app module authorized and nobody registered."""
    return SuretyRail(config)


@pytest.fixture
def seeded_rail(rail):
    """Rail with the first airline registered and funded."""
    rail.register_first_member(FIRST_AIRLINE, "Airline 1", OWNER)
    rail.fund(FIRST_AIRLINE, BOND, FIRST_AIRLINE)
    return rail


@pytest.fixture
def consortium(seeded_rail):
    """Four registered, funded airlines: the quorum phase starts here."""
    for i, airline in enumerate(AIRLINES, start=2):
        seeded_rail.register_candidate(airline, f"Airline {i}", FIRST_AIRLINE)
        seeded_rail.fund(airline, BOND, airline)
    return seeded_rail


@pytest.fixture
def temp_db(tmp_path):
    """Temporary SQLite database."""
    db = Database(f"sqlite:///{tmp_path / 'surety.db'}")
    db.initialize()
    yield db
    db.close()
