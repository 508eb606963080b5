import shutil
from pathlib import Path

import pytest

from companion_chat.storage import KeyValueStore

TEST_DATA_DIR = Path("data-tests")


@pytest.fixture(autouse=True)
def clean_test_data():
    """Wipe data-tests/ before every test."""
    if TEST_DATA_DIR.exists():
        shutil.rmtree(TEST_DATA_DIR)
    yield
    # leave data-tests around after tests for inspection; CI can ignore it


@pytest.fixture
def store() -> KeyValueStore:
    return KeyValueStore(TEST_DATA_DIR)
