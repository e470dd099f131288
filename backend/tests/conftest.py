"""
Pytest configuration and shared fixtures for backend tests.
"""
import sys
from pathlib import Path

import pytest

# Add backend directory to Python path
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

from config import StorageSettings
from database import StorageEngine
from storage import Storage
from tests.fixtures.factories import OWNER_PASSWORD, OWNER_USERNAME


@pytest.fixture(scope="function")
def store_settings(tmp_path):
    """Settings pointing at a store file that does not exist yet."""
    return StorageSettings(
        sqlite_db_path=tmp_path / "data" / "store.db",
        admin_username=OWNER_USERNAME,
        admin_password=OWNER_PASSWORD,
        # Lowest bcrypt cost keeps hashing fast in tests
        password_hash_rounds=4,
        retry_base_delay=0.01,
    )


@pytest.fixture(scope="function")
def test_engine(store_settings):
    """Create an opened, bootstrapped store engine for testing."""
    engine = StorageEngine(store_settings)
    engine.open()
    yield engine
    # Cleanup
    engine.dispose()


@pytest.fixture(scope="function")
def test_session(test_engine):
    """Create a test database session."""
    session = test_engine.session()
    yield session
    session.close()


@pytest.fixture(scope="function")
def storage(test_engine):
    """Async storage facade over the test engine."""
    return Storage(test_engine)
