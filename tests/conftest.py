import sys
import os

import pytest

# Add backend/ to path so tests can import backend modules directly
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "backend"))

# Add scripts/ to path so tests can import script modules directly
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "scripts"))

DATA_DIR = os.path.join(os.path.dirname(__file__), "..", "data")


@pytest.fixture(scope="session")
def repo_data():
    """The bundled CSV dataset, loaded once per session."""
    from data_loader import load_data
    return load_data(DATA_DIR)


@pytest.fixture
def repo_store(repo_data):
    from store import DataStore
    return DataStore(repo_data)
